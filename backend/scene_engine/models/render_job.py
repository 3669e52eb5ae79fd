from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Enum, Float
from sqlalchemy.orm import relationship
from scene_engine.db.base import Base

import enum


class RenderJobStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class RenderJobType(str, enum.Enum):
    image = "image"
    image_refinement = "image-refinement"


class RenderJob(Base):
    __tablename__ = "render_jobs"

    id = Column(Integer, primary_key=True, index=True)

    scene_id = Column(Integer, ForeignKey("scenes.id", ondelete="CASCADE"), index=True)

    job_type = Column(
        Enum(RenderJobType, values_callable=lambda e: [m.value for m in e]),
        default=RenderJobType.image,
        nullable=False,
    )
    status = Column(Enum(RenderJobStatus), default=RenderJobStatus.pending)

    # Run parameters: mode, corrective instruction, extra refs (JSON)
    payload = Column(Text, nullable=True)

    # Where this attempt's render was written
    output_path = Column(String(1024), nullable=True)

    cost_estimate = Column(Float, nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    scene = relationship("Scene", back_populates="render_jobs")
