"""
Request side of scene generation.

Every user-triggered generation goes through here: the scene is claimed with
a conditional update (a scene that is already generating is rejected), a
RenderJob row is created and the job is handed to the render queue. The
request returns right away; `workers.tasks.render_scene_task` does the work.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from scene_engine import models, schemas
from scene_engine.core.errors import SceneBusyError, SceneEngineError
from scene_engine.core.queue import render_queue
from scene_engine.services.aspect_ratio import PRESET_ASPECT_RATIOS
from scene_engine.services.reference_images import MAX_EXTRA_REFERENCE_IMAGES
from scene_engine.services.run_payload import MODE_REFINE, RunPayload
from scene_engine.workers.tasks import render_scene_task

logger = logging.getLogger(__name__)


class InvalidRequestError(SceneEngineError):
    """Request cannot be served with the scene's current data (HTTP 400)."""


class NotFoundError(SceneEngineError):
    def __init__(self, kind: str, ident):
        super().__init__(f"{kind.capitalize()} {ident} not found")
        self.kind = kind
        self.ident = ident


def acquire_scene(db: Session, scene_id: int) -> None:
    """
    Atomically move a scene to `generating`. Raises SceneBusyError if a run
    is already in flight for it.
    """
    claimed = (
        db.query(models.Scene)
        .filter(
            models.Scene.id == scene_id,
            models.Scene.image_status != models.SceneImageStatus.generating,
        )
        .update(
            {
                models.Scene.image_status: models.SceneImageStatus.generating,
                models.Scene.last_error_message: None,
                models.Scene.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    )
    if not claimed:
        db.rollback()
        raise SceneBusyError(scene_id)


def _new_job(db: Session, scene_id: int, job_type: models.RenderJobType, payload: RunPayload) -> models.RenderJob:
    rj = models.RenderJob(
        scene_id=scene_id,
        job_type=job_type,
        status=models.RenderJobStatus.processing,
        payload=payload.to_json(),
        started_at=datetime.utcnow(),
    )
    db.add(rj)
    return rj


def dispatch(db: Session, scene: models.Scene, rj: models.RenderJob) -> models.RenderJob:
    """Hand a committed job to the worker; a queue failure fails the scene."""
    try:
        job = render_queue.enqueue(render_scene_task, rj.id)
    except RedisError as e:
        logger.error("Could not enqueue render job %s for scene %s: %s", rj.id, scene.id, e)
        message = f"Could not queue render job: {e}"
        scene.image_status = models.SceneImageStatus.failed
        scene.last_error_message = message
        rj.status = models.RenderJobStatus.failed
        rj.error_message = message
        rj.completed_at = datetime.utcnow()
        db.commit()
        raise SceneEngineError(message) from e

    logger.info("Queued render job %s for scene %s (rq job %s)", rj.id, scene.id, job.get_id())
    return rj


def _restart(db: Session, scene: models.Scene, job_type: models.RenderJobType, payload: RunPayload) -> models.RenderJob:
    """Claim an existing scene, reset its attempt counter and queue a new run."""
    acquire_scene(db, scene.id)
    db.refresh(scene)
    scene.verification_attempts = 0
    rj = _new_job(db, scene.id, job_type, payload)
    db.commit()
    db.refresh(rj)
    return dispatch(db, scene, rj)


def get_scene(db: Session, scene_id: int) -> models.Scene:
    scene = db.query(models.Scene).filter(models.Scene.id == scene_id).first()
    if not scene:
        raise NotFoundError("scene", scene_id)
    return scene


def get_preset(db: Session, preset_id: Optional[str]) -> Optional[models.ExportPreset]:
    if not preset_id:
        return None
    return db.get(models.ExportPreset, preset_id)


def load_materials(db: Session, material_ids: Sequence[int]) -> List[models.Material]:
    materials = []
    for material_id in dict.fromkeys(material_ids):
        material = db.get(models.Material, material_id)
        if not material:
            raise NotFoundError("material", material_id)
        if not material.is_active:
            logger.info("Material %s (%s) is idle and will not be rendered", material.name, material.id)
        materials.append(material)
    return materials


def _next_order_index(db: Session, project_id: int) -> int:
    rows = db.query(models.Scene.order_index).filter(models.Scene.project_id == project_id).all()
    return max((row[0] or 0 for row in rows), default=0) + 1


def create_scene(db: Session, scene_in: schemas.SceneCreate):
    """New scene in `generating` plus its first render job."""
    project = db.get(models.Project, scene_in.project_id)
    if not project:
        raise NotFoundError("project", scene_in.project_id)

    if scene_in.template_id and not db.get(models.SceneTemplate, scene_in.template_id):
        raise NotFoundError("template", scene_in.template_id)

    materials = load_materials(db, scene_in.material_ids)

    preset_id = scene_in.export_preset or "free"
    preset = get_preset(db, preset_id)
    if preset is None and preset_id not in PRESET_ASPECT_RATIOS:
        raise InvalidRequestError(f"Unknown export preset: {preset_id}")

    width, height = scene_in.target_width, scene_in.target_height
    if (not width or not height) and preset:
        width, height = preset.width, preset.height

    order_index = _next_order_index(db, project.id)
    scene = models.Scene(
        project_id=project.id,
        name=scene_in.name or f"Scene {order_index}",
        order_index=order_index,
        template_id=scene_in.template_id,
        scene_description=scene_in.scene_description,
        prompt_tags=list(scene_in.prompt_tags),
        format=scene_in.format,
        export_preset=preset_id,
        target_width=width,
        target_height=height,
        blueprint_image_path=scene_in.blueprint_image_path,
        motif_image_paths=list(scene_in.motif_image_paths),
        extra_reference_paths=list(scene_in.extra_reference_paths),
        image_status=models.SceneImageStatus.generating,
        verification_attempts=0,
    )
    scene.materials = materials
    db.add(scene)
    db.flush()

    rj = _new_job(db, scene.id, models.RenderJobType.image, RunPayload())
    db.commit()
    db.refresh(scene)
    db.refresh(rj)

    logger.info(
        "Created scene %s: %d materials, %d motifs, preset=%s",
        scene.id, len(materials), len(scene.motif_image_paths or []), scene.export_preset,
    )
    dispatch(db, scene, rj)
    return scene, rj


def regenerate_scene(db: Session, scene: models.Scene) -> models.RenderJob:
    return _restart(db, scene, models.RenderJobType.image, RunPayload())


def create_variant(db: Session, source: models.Scene, export_preset: str):
    """Copy a scene's inputs into a new scene rendered for another export preset."""
    if not source.enriched_prompt:
        raise InvalidRequestError("Source scene has no enriched prompt. Generate an image first.")
    preset = get_preset(db, export_preset)
    if not preset:
        raise InvalidRequestError(f"Unknown export preset: {export_preset}")

    scene = models.Scene(
        project_id=source.project_id,
        name=f"{source.name or 'Scene'} ({preset.name})",
        order_index=_next_order_index(db, source.project_id),
        template_id=source.template_id,
        scene_description=source.scene_description,
        prompt_tags=list(source.prompt_tags or []),
        format=source.format,
        export_preset=preset.id,
        target_width=preset.width,
        target_height=preset.height,
        blueprint_image_path=source.blueprint_image_path,
        motif_image_paths=list(source.motif_image_paths or []),
        extra_reference_paths=list(source.extra_reference_paths or []),
        enriched_prompt=source.enriched_prompt,
        image_status=models.SceneImageStatus.generating,
        verification_attempts=0,
    )
    scene.materials = list(source.active_materials)
    db.add(scene)
    db.flush()

    rj = _new_job(db, scene.id, models.RenderJobType.image, RunPayload())
    db.commit()
    db.refresh(scene)
    db.refresh(rj)
    dispatch(db, scene, rj)
    return scene, rj


def feedback_materials(db: Session, scene: models.Scene, material_ids: Optional[Sequence[int]]) -> List[models.Material]:
    if material_ids:
        return [m for m in load_materials(db, material_ids) if m.is_active]
    return scene.active_materials


def check_feedback_ready(scene: models.Scene) -> None:
    if not scene.review_notes or not scene.review_notes.strip():
        raise InvalidRequestError("No feedback stored. Save review notes first.")
    if not scene.enriched_prompt:
        raise InvalidRequestError("Scene has no prompt yet, refinement is not possible.")


def regenerate_with_feedback(
    db: Session,
    scene: models.Scene,
    prompt_addendum: Optional[str] = None,
    material_ids: Optional[Sequence[int]] = None,
    has_extension_image: bool = False,
    extra_reference_paths: Sequence[str] = (),
) -> models.RenderJob:
    """
    Image-to-image refinement driven by the review notes. Without a manual
    addendum the worker derives one from the notes.
    """
    addendum = (prompt_addendum or "").strip()
    if not addendum:
        check_feedback_ready(scene)
    if not scene.image_path:
        raise InvalidRequestError("Scene has no image to refine.")
    if material_ids:
        load_materials(db, material_ids)

    extras = list(dict.fromkeys(list(scene.extra_reference_paths or []) + list(extra_reference_paths)))
    payload = RunPayload(
        mode=MODE_REFINE,
        instruction=addendum or None,
        feedback=not addendum,
        extra_reference_paths=extras[:MAX_EXTRA_REFERENCE_IMAGES],
        material_ids=list(material_ids) if material_ids else None,
        has_extension_image=has_extension_image,
        source_path=scene.image_path,
    )
    return _restart(db, scene, models.RenderJobType.image_refinement, payload)


def start_correction(db: Session, scene: models.Scene, instruction: str) -> models.RenderJob:
    """Queue a refinement run with a synthesized corrective instruction."""
    payload = RunPayload(mode=MODE_REFINE, instruction=instruction, source_path=scene.image_path)
    return _restart(db, scene, models.RenderJobType.image_refinement, payload)


def delete_scene(db: Session, scene: models.Scene) -> List[str]:
    """Remove the scene with its jobs, versions and logs; returns files to delete."""
    scene_id = scene.id
    files = [v.image_path for v in scene.versions]
    for rj in scene.render_jobs:
        if rj.output_path:
            files.append(rj.output_path)
    if scene.image_path:
        files.append(scene.image_path)

    db.delete(scene)
    db.commit()
    logger.info("Deleted scene %s", scene_id)
    return list(dict.fromkeys(files))
