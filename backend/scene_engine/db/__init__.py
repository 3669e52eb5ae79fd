from scene_engine.db.base import Base
from scene_engine.db.session import SessionLocal, engine

__all__ = ["Base", "SessionLocal", "engine"]
