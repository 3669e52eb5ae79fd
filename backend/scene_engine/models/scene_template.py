from sqlalchemy import Column, String, Text

from scene_engine.db.base import Base


class SceneTemplate(Base):
    """Managed externally. `prompt_template` may contain a `{materials}` placeholder."""

    __tablename__ = "scene_templates"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    prompt_template = Column(Text, nullable=False)
