from fastapi import FastAPI

from scene_engine.core.config import settings
from scene_engine.core.files import ensure_media_dirs
from scene_engine.core.logging import setup_logging
from scene_engine.db.init_db import create_tables, seed_export_presets
from scene_engine.db.session import SessionLocal
from scene_engine.api.routes import health, scenes, render_jobs

setup_logging()

# Create DB tables on startup (for dev; later replace with Alembic)
create_tables()
with SessionLocal() as _db:
    seed_export_presets(_db)
ensure_media_dirs()

app = FastAPI(title=settings.PROJECT_NAME)


app.include_router(health.router, prefix=settings.API_V1_PREFIX)
app.include_router(scenes.router, prefix=settings.API_V1_PREFIX)
app.include_router(render_jobs.router, prefix=settings.API_V1_PREFIX)
