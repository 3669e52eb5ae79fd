from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from scene_engine.db.base import Base


class SceneVersion(Base):
    """Archived render, taken just before the scene's image is overwritten."""

    __tablename__ = "scene_versions"
    __table_args__ = (UniqueConstraint("scene_id", "version_number"),)

    id = Column(Integer, primary_key=True, index=True)
    scene_id = Column(Integer, ForeignKey("scenes.id", ondelete="CASCADE"), index=True)

    version_number = Column(Integer, nullable=False)
    image_path = Column(String(1024), nullable=False)
    prompt = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    scene = relationship("Scene", back_populates="versions")
