import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from scene_engine.api.dependencies import get_db
from scene_engine import models, schemas
from scene_engine.core.errors import (
    ConfigurationError,
    ProviderError,
    SceneBusyError,
    SceneEngineError,
)
from scene_engine.core.files import (
    delete_file,
    load_image,
    save_extra_reference_image,
    save_motif_image,
)
from scene_engine.services import scene_generation, versioning
from scene_engine.services.aspect_ratio import PRESET_ASPECT_RATIOS
from scene_engine.services.prompt_builder import FEEDBACK_ADDENDUM_SYSTEM_PROMPT, PromptBuilder
from scene_engine.services.providers.factory import get_image_provider
from scene_engine.services.reference_images import (
    MAX_EXTRA_REFERENCE_IMAGES,
    MAX_MOTIF_IMAGES,
    ReferenceImage,
)
from scene_engine.services.refinement import build_correction
from scene_engine.services.run_config import resolve_run_config
from scene_engine.services.scene_generation import InvalidRequestError, NotFoundError
from scene_engine.services.verification import ConsistencyVerifier, record_verification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scenes", tags=["scenes"])


def _http_error(e: SceneEngineError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SceneBusyError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (InvalidRequestError, ConfigurationError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ProviderError):
        return HTTPException(status_code=502, detail=str(e))
    # queue unavailable
    return HTTPException(status_code=503, detail=str(e))


def _get_scene_or_404(db: Session, scene_id: int) -> models.Scene:
    scene = (
        db.query(models.Scene)
        .filter(models.Scene.id == scene_id)
        .first()
    )
    if not scene:
        raise HTTPException(status_code=404, detail="Scene not found")
    return scene


def _enqueued(scene: models.Scene, rj: models.RenderJob, message: str) -> schemas.SceneEnqueued:
    return schemas.SceneEnqueued(
        id=scene.id,
        image_status=scene.image_status,
        render_job_id=rj.id,
        message=message,
    )


# ---------- uploads ----------

@router.post("/upload-motif", response_model=schemas.UploadedPaths)
def upload_motif_images(files: List[UploadFile] = File(...)):
    if len(files) > MAX_MOTIF_IMAGES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_MOTIF_IMAGES} motif images")
    return schemas.UploadedPaths(paths=[save_motif_image(f) for f in files])


@router.post("/upload-extra-reference", response_model=schemas.UploadedPaths)
def upload_extra_reference_images(files: List[UploadFile] = File(...)):
    if len(files) > MAX_EXTRA_REFERENCE_IMAGES:
        raise HTTPException(
            status_code=400,
            detail=f"At most {MAX_EXTRA_REFERENCE_IMAGES} extra reference images",
        )
    return schemas.UploadedPaths(paths=[save_extra_reference_image(f) for f in files])


# ---------- scenes ----------

@router.post("/", response_model=schemas.SceneEnqueued, status_code=status.HTTP_201_CREATED)
def create_scene(scene_in: schemas.SceneCreate, db: Session = Depends(get_db)):
    try:
        scene, rj = scene_generation.create_scene(db, scene_in)
    except SceneEngineError as e:
        raise _http_error(e)
    return _enqueued(scene, rj, "Image generation started")


@router.get("/", response_model=List[schemas.Scene])
def list_scenes(project_id: Optional[int] = None, db: Session = Depends(get_db)):
    query = db.query(models.Scene)
    if project_id is not None:
        query = query.filter(models.Scene.project_id == project_id)
    return query.order_by(models.Scene.order_index, models.Scene.id).all()


@router.get("/{scene_id}", response_model=schemas.Scene)
def get_scene(scene_id: int, db: Session = Depends(get_db)):
    return _get_scene_or_404(db, scene_id)


@router.patch("/{scene_id}", response_model=schemas.Scene)
def update_scene(scene_id: int, scene_in: schemas.SceneUpdate, db: Session = Depends(get_db)):
    scene = _get_scene_or_404(db, scene_id)
    data = scene_in.model_dump(exclude_unset=True)

    material_ids = data.pop("material_ids", None)
    if material_ids is not None:
        try:
            scene.materials = scene_generation.load_materials(db, material_ids)
        except SceneEngineError as e:
            raise _http_error(e)

    preset_id = data.get("export_preset")
    if preset_id and not db.get(models.ExportPreset, preset_id) and preset_id not in PRESET_ASPECT_RATIOS:
        raise HTTPException(status_code=400, detail=f"Unknown export preset: {preset_id}")

    if data.get("template_id") and not db.get(models.SceneTemplate, data["template_id"]):
        raise HTTPException(status_code=404, detail="Template not found")

    for field, value in data.items():
        setattr(scene, field, value)

    db.commit()
    db.refresh(scene)
    return scene


@router.delete("/{scene_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_scene(scene_id: int, db: Session = Depends(get_db)):
    scene = _get_scene_or_404(db, scene_id)
    for path in scene_generation.delete_scene(db, scene):
        delete_file(path)


# ---------- generation ----------

@router.post("/{scene_id}/regenerate", response_model=schemas.SceneEnqueued)
def regenerate_scene(scene_id: int, db: Session = Depends(get_db)):
    scene = _get_scene_or_404(db, scene_id)
    try:
        rj = scene_generation.regenerate_scene(db, scene)
    except SceneEngineError as e:
        raise _http_error(e)
    return _enqueued(scene, rj, "Regeneration started")


@router.post("/{scene_id}/variant", response_model=schemas.SceneEnqueued, status_code=status.HTTP_201_CREATED)
def create_variant(scene_id: int, body: schemas.VariantRequest, db: Session = Depends(get_db)):
    source = _get_scene_or_404(db, scene_id)
    try:
        scene, rj = scene_generation.create_variant(db, source, body.export_preset)
    except SceneEngineError as e:
        raise _http_error(e)
    return _enqueued(scene, rj, f"Variant for {body.export_preset} started")


@router.post("/{scene_id}/prepare-refinement", response_model=schemas.PreparedRefinement)
def prepare_refinement(scene_id: int, body: schemas.RefinementRequest, db: Session = Depends(get_db)):
    """Preview the corrective addendum the review notes would produce."""
    scene = _get_scene_or_404(db, scene_id)
    try:
        scene_generation.check_feedback_ready(scene)
        materials = scene_generation.feedback_materials(db, scene, body.material_ids)
        provider = get_image_provider(resolve_run_config(db))
        request = PromptBuilder.build_feedback_request(
            scene.review_notes,
            scene.enriched_prompt,
            materials,
            has_extension_image=body.has_extension_image,
        )
        addendum = (provider.enrich(FEEDBACK_ADDENDUM_SYSTEM_PROMPT, request) or "").strip()
    except SceneEngineError as e:
        raise _http_error(e)

    if not addendum:
        raise HTTPException(status_code=502, detail="Could not derive refinement instructions")
    return schemas.PreparedRefinement(prompt_addendum=addendum)


@router.post("/{scene_id}/regenerate-with-feedback", response_model=schemas.SceneEnqueued)
def regenerate_with_feedback(
    scene_id: int,
    body: schemas.FeedbackRegenerateRequest,
    db: Session = Depends(get_db),
):
    scene = _get_scene_or_404(db, scene_id)
    try:
        rj = scene_generation.regenerate_with_feedback(
            db,
            scene,
            prompt_addendum=body.prompt_addendum,
            material_ids=body.material_ids,
            has_extension_image=body.has_extension_image,
            extra_reference_paths=body.extra_reference_paths,
        )
    except SceneEngineError as e:
        raise _http_error(e)
    return _enqueued(scene, rj, "Refinement started")


@router.post("/{scene_id}/vision-correction", response_model=schemas.VisionCorrectionResult)
def vision_correction(scene_id: int, db: Session = Depends(get_db)):
    """
    Verify the current render now. If the check finds something to fix, a
    refinement run with the synthesized correction is queued.
    """
    scene = _get_scene_or_404(db, scene_id)
    if scene.image_status == models.SceneImageStatus.generating:
        raise HTTPException(status_code=409, detail=f"Scene {scene_id} is already generating")
    if not scene.image_path:
        raise HTTPException(status_code=400, detail="Scene has no image to correct")

    materials = scene.active_materials
    if not materials:
        raise HTTPException(status_code=400, detail="Scene has no active materials to verify against")

    try:
        data, mime_type = load_image(scene.image_path)
    except (OSError, ValueError):
        raise HTTPException(status_code=400, detail="Scene image is not readable")

    try:
        provider = get_image_provider(resolve_run_config(db))
    except SceneEngineError as e:
        raise _http_error(e)

    image = ReferenceImage(data=data, mime_type=mime_type, label="render")
    result = ConsistencyVerifier(provider).verify(image, materials, scene.scene_description)
    record_verification(db, scene, result, verification_type="vision-correction")

    needs_fix = bool(result.suggestions) or any(
        i.severity in ("critical", "major") for i in result.issues
    )
    if not needs_fix:
        return schemas.VisionCorrectionResult(
            id=scene.id,
            image_status=scene.image_status,
            verification_score=result.score,
            passed=result.passed,
            issues=result.issues_as_dicts(),
            message="No corrections needed",
        )

    try:
        rj = scene_generation.start_correction(db, scene, build_correction(result))
    except SceneEngineError as e:
        raise _http_error(e)

    return schemas.VisionCorrectionResult(
        id=scene.id,
        image_status=scene.image_status,
        verification_score=result.score,
        passed=result.passed,
        issues=result.issues_as_dicts(),
        render_job_id=rj.id,
        message="Correction started",
    )


# ---------- versions + verification history ----------

@router.get("/{scene_id}/versions", response_model=List[schemas.SceneVersion])
def list_versions(scene_id: int, db: Session = Depends(get_db)):
    _get_scene_or_404(db, scene_id)
    return versioning.list_versions(db, scene_id)


@router.post("/{scene_id}/versions/{version_id}/restore", response_model=schemas.Scene)
def restore_version(scene_id: int, version_id: int, db: Session = Depends(get_db)):
    scene = _get_scene_or_404(db, scene_id)
    if scene.image_status == models.SceneImageStatus.generating:
        raise HTTPException(status_code=409, detail=f"Scene {scene_id} is already generating")

    version = versioning.get_version(db, scene_id, version_id)
    if not version:
        raise HTTPException(status_code=404, detail="Version not found")

    versioning.restore_version(db, scene, version)
    db.refresh(scene)
    return scene


@router.delete("/{scene_id}/versions/{version_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_version(scene_id: int, version_id: int, db: Session = Depends(get_db)):
    scene = _get_scene_or_404(db, scene_id)
    version = versioning.get_version(db, scene_id, version_id)
    if not version:
        raise HTTPException(status_code=404, detail="Version not found")
    if scene.image_path == version.image_path:
        raise HTTPException(status_code=400, detail="Cannot delete the version currently shown")

    versioning.delete_version(db, version)


@router.get("/{scene_id}/verification-logs", response_model=List[schemas.VerificationLog])
def list_verification_logs(scene_id: int, db: Session = Depends(get_db)):
    _get_scene_or_404(db, scene_id)
    logs = (
        db.query(models.VerificationLog)
        .filter(models.VerificationLog.scene_id == scene_id)
        .order_by(models.VerificationLog.created_at.desc(), models.VerificationLog.id.desc())
        .all()
    )
    return logs
