import logging
import os
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from scene_engine import models
from scene_engine.core.files import copy_file, delete_file, version_path

logger = logging.getLogger(__name__)


def next_version_number(db: Session, scene_id: int) -> int:
    current = (
        db.query(func.max(models.SceneVersion.version_number))
        .filter(models.SceneVersion.scene_id == scene_id)
        .scalar()
    )
    return (current or 0) + 1


def snapshot_before_overwrite(db: Session, scene, source_path: str) -> Optional[models.SceneVersion]:
    """
    Archive the file about to be overwritten. Best-effort: a missing or
    uncopyable source logs a warning and creates no version.
    """
    if not source_path or not os.path.exists(source_path):
        logger.warning("No render to archive for scene %s at %s", scene.id, source_path)
        return None

    number = next_version_number(db, scene.id)
    ext = os.path.splitext(source_path)[1] or ".png"
    target = version_path(scene.id, number, ext)
    try:
        copy_file(source_path, target)
    except OSError as e:
        logger.warning("Could not archive render of scene %s: %s", scene.id, e)
        return None

    version = models.SceneVersion(
        scene_id=scene.id,
        version_number=number,
        image_path=target,
        prompt=scene.enriched_prompt,
    )
    db.add(version)
    db.commit()
    logger.info("Archived scene %s render as version %d", scene.id, number)
    return version


def list_versions(db: Session, scene_id: int) -> List[models.SceneVersion]:
    return (
        db.query(models.SceneVersion)
        .filter(models.SceneVersion.scene_id == scene_id)
        .order_by(models.SceneVersion.version_number.desc())
        .all()
    )


def get_version(db: Session, scene_id: int, version_id: int) -> Optional[models.SceneVersion]:
    return (
        db.query(models.SceneVersion)
        .filter(models.SceneVersion.id == version_id, models.SceneVersion.scene_id == scene_id)
        .first()
    )


def restore_version(db: Session, scene, version: models.SceneVersion) -> None:
    """Point the scene at an archived render; no new version is created."""
    scene.image_path = version.image_path
    scene.enriched_prompt = version.prompt
    scene.image_status = models.SceneImageStatus.done
    scene.last_error_message = None
    db.commit()
    logger.info("Scene %s restored to version %d", scene.id, version.version_number)


def delete_version(db: Session, version: models.SceneVersion) -> None:
    path = version.image_path
    db.delete(version)
    db.commit()
    delete_file(path)
