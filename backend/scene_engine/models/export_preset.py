from sqlalchemy import Column, Integer, String

from scene_engine.db.base import Base


class ExportPreset(Base):
    __tablename__ = "export_presets"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)


BUILTIN_PRESETS = [
    {"id": "facebook_banner", "name": "Facebook Banner", "width": 1640, "height": 624},
    {"id": "instagram_post", "name": "Instagram Post", "width": 1080, "height": 1080},
    {"id": "instagram_story", "name": "Instagram Story", "width": 1080, "height": 1920},
    {"id": "youtube_thumbnail", "name": "YouTube Thumbnail", "width": 1280, "height": 720},
    {"id": "free", "name": "Free Format", "width": 1536, "height": 1024},
]
