from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text

from scene_engine.db.base import Base


class SuccessfulPattern(Base):
    """Prompt snippet that produced a high-scoring render for a material category."""

    __tablename__ = "successful_patterns"

    id = Column(Integer, primary_key=True, index=True)
    material_category = Column(String(64), index=True, nullable=False)
    prompt_snippet = Column(Text, nullable=False)
    verification_score = Column(Integer, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
