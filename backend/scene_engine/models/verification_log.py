from datetime import datetime
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from scene_engine.db.base import Base


class VerificationLog(Base):
    """Append-only; one row per verification call."""

    __tablename__ = "verification_logs"

    id = Column(Integer, primary_key=True, index=True)
    scene_id = Column(Integer, ForeignKey("scenes.id", ondelete="CASCADE"), index=True)

    verification_type = Column(String(64), default="image_consistency")
    score = Column(Integer, nullable=True)
    passed = Column(Boolean, default=False)
    issues = Column(JSON, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)

    scene = relationship("Scene", back_populates="verification_logs")
