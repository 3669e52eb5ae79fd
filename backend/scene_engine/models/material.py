import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from scene_engine.db.base import Base


class MaterialCategory(str, enum.Enum):
    canvas_motif = "canvas_motif"
    paint_pots = "paint_pots"
    brushes = "brushes"
    canvas = "canvas"
    frame = "frame"
    tool = "tool"
    packaging = "packaging"
    accessory = "accessory"


class MaterialStatus(str, enum.Enum):
    idle = "idle"
    engaged = "engaged"


class Material(Base):
    """A physical prop. Managed elsewhere; the engine only reads it."""

    __tablename__ = "materials"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # Stored as the MaterialCategory value; unknown categories use the default policy
    category = Column(String(64), nullable=False)
    status = Column(String(32), default=MaterialStatus.idle.value, nullable=False)

    description = Column(Text, nullable=True)
    material_type = Column(String(255), nullable=True)
    dimensions = Column(String(255), nullable=True)
    size = Column(String(255), nullable=True)
    surface = Column(String(255), nullable=True)
    weight = Column(String(255), nullable=True)
    color = Column(String(255), nullable=True)
    format_code = Column(String(64), nullable=True)
    frame_option = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    images = relationship(
        "MaterialImage",
        back_populates="material",
        cascade="all, delete-orphan",
        order_by="MaterialImage.position",
    )

    @property
    def is_active(self) -> bool:
        return self.status != MaterialStatus.idle.value


class MaterialImage(Base):
    __tablename__ = "material_images"

    id = Column(Integer, primary_key=True, index=True)
    material_id = Column(Integer, ForeignKey("materials.id", ondelete="CASCADE"), index=True)

    image_path = Column(String(1024), nullable=False)
    perspective = Column(String(64), nullable=True)  # front, detail, top, back, ...
    is_primary = Column(Boolean, default=False)
    position = Column(Integer, default=0)

    material = relationship("Material", back_populates="images")
