# scene_engine/workers/tasks.py

import logging
from datetime import datetime

from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from scene_engine.db.session import SessionLocal
from scene_engine import models
from scene_engine.core.errors import SceneEngineError
from scene_engine.core.files import image_dimensions, load_image, render_path, save_render
from scene_engine.core.queue import render_queue
from scene_engine.services.aspect_ratio import nearest_aspect_ratio, resolve_aspect_ratio
from scene_engine.services.pattern_memory import inject_patterns, save_patterns_for_categories
from scene_engine.services.prompt_builder import (
    FEEDBACK_ADDENDUM_SYSTEM_PROMPT,
    SCENE_SYSTEM_PROMPT,
    PromptBuilder,
)
from scene_engine.services.providers.factory import get_image_provider
from scene_engine.services.reference_images import ReferenceImage, count_motifs, select_reference_images
from scene_engine.services.refinement import build_correction, should_retry
from scene_engine.services.run_config import resolve_run_config
from scene_engine.services.run_payload import MODE_REFINE, RunPayload
from scene_engine.services.verification import (
    ConsistencyVerifier,
    neutral_result,
    record_verification,
)
from scene_engine.services.versioning import snapshot_before_overwrite

logger = logging.getLogger(__name__)

RESTART_MESSAGE = "Server restarted during processing"

DEFAULT_SCENE_DESCRIPTION = "A professional product photography scene showcasing the materials"

EXTRA_REFERENCE_NOTE = (
    "\n\nThe user uploaded additional reference images (person, object or visual). The "
    "generated image MUST include and faithfully reproduce their content, placed naturally "
    "in the scene. They follow the blueprint in the reference image set."
)


class SceneRenderer:
    """
    One render run for a scene: compose, select references, generate, store,
    verify and either finish or hand off to an automatic refinement.
    """

    def __init__(self, db: Session, scene: models.Scene, job: models.RenderJob, payload: RunPayload):
        self.db = db
        self.scene = scene
        self.job = job
        self.payload = payload

    def run(self) -> str:
        # a) provider + credentials, resolved once for the whole run
        config = resolve_run_config(self.db)
        provider = get_image_provider(config)

        # b) idle materials never take part
        materials = self._materials()
        motif_paths = list(self.scene.motif_image_paths or [])

        if self.payload.mode == MODE_REFINE:
            image, enriched = self._refine(provider, config, materials, motif_paths)
        else:
            image, enriched = self._generate(provider, config, materials, motif_paths)

        # g) archive whatever is about to be overwritten, then store
        target = render_path(self.scene.id)
        snapshot_before_overwrite(self.db, self.scene, target)
        output_path = save_render(self.scene.id, image.data, image.mime_type)
        self.scene.enriched_prompt = enriched
        self.job.output_path = output_path
        self.job.cost_estimate = image.cost_estimate
        self.db.commit()
        logger.info("Scene %s: render stored at %s", self.scene.id, output_path)

        # h) verification only makes sense with ground truth to compare against
        if not materials:
            self._finish(output_path)
            return f"rendered scene {self.scene.id} (verification skipped)"

        rendered = ReferenceImage(data=image.data, mime_type=image.mime_type, label="render")
        result = ConsistencyVerifier(provider).verify(rendered, materials, self.scene.scene_description)
        record_verification(self.db, self.scene, result)

        if result.score >= 90 and result != neutral_result():
            save_patterns_for_categories(self.db, [m.category for m in materials], enriched, result.score)

        # i) bounded auto-refinement
        if should_retry(result, self.scene.verification_attempts):
            if self._hand_off(build_correction(result), output_path):
                return f"scene {self.scene.id} scored {result.score}, refinement queued"

        # j) done, with the latest render whatever its score
        self._finish(output_path)
        return f"rendered scene {self.scene.id} (score {result.score})"

    def _materials(self):
        if self.payload.material_ids:
            found = (
                self.db.query(models.Material)
                .filter(models.Material.id.in_(self.payload.material_ids))
                .all()
            )
            return [m for m in found if m.is_active]
        return self.scene.active_materials

    def _aspect_ratio(self) -> str:
        preset = None
        if self.scene.export_preset:
            preset = self.db.get(models.ExportPreset, self.scene.export_preset)
        return resolve_aspect_ratio(
            self.scene.target_width,
            self.scene.target_height,
            self.scene.export_preset,
            preset,
        )

    def _generate(self, provider, config, materials, motif_paths):
        scene = self.scene
        extras = list(scene.extra_reference_paths or [])
        template = scene.template

        # c) selector; prompts count only the motifs it kept
        refs = select_reference_images(materials, scene.blueprint_image_path, motif_paths, extras)
        motif_count = count_motifs(refs)
        if motif_count < len(motif_paths):
            logger.warning(
                "Scene %s: %d of %d motif images left out of the reference set",
                scene.id, len(motif_paths) - motif_count, len(motif_paths),
            )

        # d) composer
        request = PromptBuilder.build_enrichment_request(
            materials,
            scene.scene_description,
            template_prompt=template.prompt_template if template else None,
            tags=scene.prompt_tags,
            style_format=scene.format,
            extra_reference_count=len(extras),
            motif_count=motif_count,
        )

        # e) enrichment; an empty answer falls back to the raw description
        enriched = (provider.enrich(SCENE_SYSTEM_PROMPT, request) or "").strip()
        if not enriched:
            logger.warning("Scene %s: enrichment returned nothing, using the description", scene.id)
            enriched = scene.scene_description or DEFAULT_SCENE_DESCRIPTION
        if extras:
            enriched += EXTRA_REFERENCE_NOTE
        enriched = inject_patterns(self.db, [m.category for m in materials], enriched)

        # f) generation
        aspect_ratio = self._aspect_ratio()
        prompt = PromptBuilder.build_image_prompt(
            enriched, materials, motif_count, aspect_ratio, scene.prompt_tags
        )
        logger.info(
            "Scene %s: generating with %d reference images, aspect=%s",
            scene.id, len(refs), aspect_ratio,
        )
        image = provider.generate_image(
            prompt, refs, aspect_ratio, config.image_size, motif_count=motif_count
        )
        return image, enriched

    def _refine(self, provider, config, materials, motif_paths):
        scene = self.scene
        extras = list(self.payload.extra_reference_paths or scene.extra_reference_paths or [])

        source_path = self.payload.source_path or scene.image_path
        if not source_path:
            raise SceneEngineError("No source image to refine")
        try:
            data, mime_type = load_image(source_path)
        except (OSError, ValueError) as e:
            raise SceneEngineError(f"Source image for refinement is not readable: {source_path}") from e
        source = ReferenceImage(data=data, mime_type=mime_type, label="source")

        instruction = (self.payload.instruction or "").strip()
        if not instruction and self.payload.feedback:
            request = PromptBuilder.build_feedback_request(
                scene.review_notes or "",
                scene.enriched_prompt,
                materials,
                has_extension_image=self.payload.has_extension_image,
            )
            instruction = (provider.enrich(FEEDBACK_ADDENDUM_SYSTEM_PROMPT, request) or "").strip()
        if not instruction:
            raise SceneEngineError("Could not derive refinement instructions from the feedback")

        scene.last_refinement_prompt = instruction
        self.db.commit()

        # keep the source image's format
        dims = image_dimensions(source_path)
        aspect_ratio = nearest_aspect_ratio(*dims) if dims else self._aspect_ratio()

        refs = select_reference_images(materials, scene.blueprint_image_path, motif_paths, extras)
        prompt = PromptBuilder.build_edit_prompt(
            instruction,
            scene.enriched_prompt,
            materials,
            dimensions=dims,
            aspect_ratio=aspect_ratio,
            has_extra_references=bool(extras),
        )
        logger.info(
            "Scene %s: refining %s with %d reference images, aspect=%s",
            scene.id, source_path, len(refs), aspect_ratio,
        )
        image = provider.generate_image(
            prompt,
            refs,
            aspect_ratio,
            config.image_size,
            source_image=source,
            motif_count=count_motifs(refs),
        )
        return image, scene.enriched_prompt

    def _hand_off(self, correction: str, output_path: str) -> bool:
        """
        Complete this job and queue an automatic refinement. The scene stays
        `generating`. Returns False if the follow-up could not be queued.
        """
        scene, now = self.scene, datetime.utcnow()
        follow_up = models.RenderJob(
            scene_id=scene.id,
            job_type=models.RenderJobType.image_refinement,
            status=models.RenderJobStatus.pending,
            payload=RunPayload(
                mode=MODE_REFINE,
                instruction=correction,
                source_path=output_path,
                material_ids=self.payload.material_ids,
                extra_reference_paths=list(self.payload.extra_reference_paths or []),
                auto=True,
            ).to_json(),
        )
        scene.verification_attempts = (scene.verification_attempts or 0) + 1
        self.job.status = models.RenderJobStatus.completed
        self.job.completed_at = now
        self.db.add(follow_up)
        self.db.commit()

        try:
            render_queue.enqueue(render_scene_task, follow_up.id)
        except RedisError as e:
            logger.error("Scene %s: could not queue refinement, finishing as is: %s", scene.id, e)
            follow_up.status = models.RenderJobStatus.failed
            follow_up.error_message = f"Could not queue refinement: {e}"
            follow_up.completed_at = datetime.utcnow()
            self.db.commit()
            return False

        logger.info(
            "Scene %s: auto-refinement %d queued as render job %s",
            scene.id, scene.verification_attempts, follow_up.id,
        )
        return True

    def _finish(self, output_path: str) -> None:
        now = datetime.utcnow()
        self.scene.image_path = output_path
        self.scene.image_status = models.SceneImageStatus.done
        self.scene.last_error_message = None
        if self.job.status != models.RenderJobStatus.completed:
            self.job.status = models.RenderJobStatus.completed
            self.job.completed_at = now
        self.db.commit()


def _fail(db: Session, scene_id: int, job_id: int, message: str) -> None:
    """Terminal failure for both the scene and the job, in a fresh transaction."""
    db.rollback()
    now = datetime.utcnow()
    scene = db.get(models.Scene, scene_id) if scene_id else None
    if scene is not None:
        scene.image_status = models.SceneImageStatus.failed
        scene.last_error_message = message
    job = db.get(models.RenderJob, job_id)
    if job is not None:
        job.status = models.RenderJobStatus.failed
        job.error_message = message
        job.completed_at = now
    db.commit()


def render_scene_task(render_job_id: int) -> str:
    """
    Worker entry point: run one render job to a terminal state (or hand it
    off to an automatic refinement).
    """
    db = SessionLocal()
    try:
        job = db.get(models.RenderJob, render_job_id)
        if not job:
            return f"render_job_id={render_job_id} not found"

        scene = job.scene
        if not scene:
            _fail(db, None, job.id, "Scene not found")
            return "scene not found"

        scene_id = scene.id
        job.status = models.RenderJobStatus.processing
        job.started_at = job.started_at or datetime.utcnow()
        db.commit()

        payload = RunPayload.from_json(job.payload)
        logger.info("Render job %s for scene %s started (mode=%s)", job.id, scene_id, payload.mode)

        try:
            return SceneRenderer(db, scene, job, payload).run()
        except Exception as e:
            logger.exception("Render job %s for scene %s failed", render_job_id, scene_id)
            _fail(db, scene_id, render_job_id, str(e) or e.__class__.__name__)
            return f"failed: {e}"
    finally:
        db.close()


def recover_interrupted_runs(db: Session) -> dict:
    """
    Runs in flight when the process stopped never finish. Fail every
    `generating` scene and every pending/processing job.
    """
    now = datetime.utcnow()
    scenes = (
        db.query(models.Scene)
        .filter(models.Scene.image_status == models.SceneImageStatus.generating)
        .all()
    )
    for scene in scenes:
        scene.image_status = models.SceneImageStatus.failed
        scene.last_error_message = RESTART_MESSAGE

    jobs = (
        db.query(models.RenderJob)
        .filter(
            models.RenderJob.status.in_(
                [models.RenderJobStatus.pending, models.RenderJobStatus.processing]
            )
        )
        .all()
    )
    for job in jobs:
        job.status = models.RenderJobStatus.failed
        job.error_message = RESTART_MESSAGE
        job.completed_at = now

    db.commit()
    if scenes or jobs:
        logger.warning(
            "Recovered %d interrupted scenes and %d render jobs", len(scenes), len(jobs)
        )
    return {"scenes": len(scenes), "render_jobs": len(jobs)}
