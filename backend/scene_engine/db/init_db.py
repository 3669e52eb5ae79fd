import logging

from sqlalchemy.orm import Session

from scene_engine.db.base import Base
from scene_engine.db.session import engine
from scene_engine import models  # noqa: F401  registers all tables

logger = logging.getLogger(__name__)


def create_tables(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def seed_export_presets(db: Session) -> int:
    """Insert the built-in export presets that are not present yet."""
    added = 0
    for preset in models.BUILTIN_PRESETS:
        if db.get(models.ExportPreset, preset["id"]) is None:
            db.add(models.ExportPreset(**preset))
            added += 1
    if added:
        db.commit()
        logger.info("Seeded %d export presets", added)
    return added
