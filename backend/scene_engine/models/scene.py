import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship

from scene_engine.db.base import Base

MAX_VERIFICATION_ATTEMPTS = 3


class SceneImageStatus(str, enum.Enum):
    draft = "draft"
    generating = "generating"
    done = "done"
    failed = "failed"


scene_materials = Table(
    "scene_materials",
    Base.metadata,
    Column("scene_id", Integer, ForeignKey("scenes.id", ondelete="CASCADE"), primary_key=True),
    Column("material_id", Integer, ForeignKey("materials.id"), primary_key=True),
)


class Scene(Base):
    __tablename__ = "scenes"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), index=True)

    name = Column(String(255), nullable=True)
    order_index = Column(Integer, default=0)
    template_id = Column(String(64), ForeignKey("scene_templates.id"), nullable=True)

    scene_description = Column(Text, nullable=True)
    prompt_tags = Column(JSON, default=list)
    format = Column(String(64), nullable=True)  # vorlage / gerahmt / ausmalen
    export_preset = Column(String(64), nullable=True)
    target_width = Column(Integer, nullable=True)
    target_height = Column(Integer, nullable=True)

    blueprint_image_path = Column(String(1024), nullable=True)
    motif_image_paths = Column(JSON, default=list)
    extra_reference_paths = Column(JSON, default=list)

    enriched_prompt = Column(Text, nullable=True)
    last_refinement_prompt = Column(Text, nullable=True)

    image_path = Column(String(1024), nullable=True)
    image_status = Column(Enum(SceneImageStatus), default=SceneImageStatus.draft, nullable=False)
    last_error_message = Column(Text, nullable=True)

    verification_score = Column(Integer, nullable=True)
    verification_issues = Column(JSON, nullable=True)
    verification_attempts = Column(Integer, default=0, nullable=False)

    # User feedback, independent of automatic verification
    review_notes = Column(Text, nullable=True)
    review_rating = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", back_populates="scenes")
    template = relationship("SceneTemplate")
    materials = relationship("Material", secondary=scene_materials)

    render_jobs = relationship(
        "RenderJob", back_populates="scene", cascade="all, delete-orphan"
    )
    versions = relationship(
        "SceneVersion",
        back_populates="scene",
        cascade="all, delete-orphan",
        order_by="SceneVersion.version_number",
    )
    verification_logs = relationship(
        "VerificationLog", back_populates="scene", cascade="all, delete-orphan"
    )

    @property
    def active_materials(self):
        return [m for m in self.materials if m.is_active]
