from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from scene_engine.models.scene import SceneImageStatus
from scene_engine.services.reference_images import MAX_EXTRA_REFERENCE_IMAGES, MAX_MOTIF_IMAGES


class MaterialSummary(BaseModel):
    id: int
    name: str
    category: str
    status: str

    class Config:
        from_attributes = True


class SceneCreate(BaseModel):
    project_id: int
    name: Optional[str] = None
    template_id: Optional[str] = None
    scene_description: Optional[str] = None
    material_ids: List[int] = []
    prompt_tags: List[str] = []
    format: Optional[str] = None
    export_preset: Optional[str] = "free"
    target_width: Optional[int] = Field(default=None, gt=0)
    target_height: Optional[int] = Field(default=None, gt=0)
    blueprint_image_path: Optional[str] = None
    motif_image_paths: List[str] = Field(default_factory=list, max_length=MAX_MOTIF_IMAGES)
    extra_reference_paths: List[str] = Field(default_factory=list, max_length=MAX_EXTRA_REFERENCE_IMAGES)


class SceneUpdate(BaseModel):
    review_notes: Optional[str] = None
    review_rating: Optional[int] = Field(default=None, ge=1, le=5)
    name: Optional[str] = None
    template_id: Optional[str] = None
    scene_description: Optional[str] = None
    prompt_tags: Optional[List[str]] = None
    format: Optional[str] = None
    export_preset: Optional[str] = None
    blueprint_image_path: Optional[str] = None
    motif_image_paths: Optional[List[str]] = Field(default=None, max_length=MAX_MOTIF_IMAGES)
    extra_reference_paths: Optional[List[str]] = Field(default=None, max_length=MAX_EXTRA_REFERENCE_IMAGES)
    material_ids: Optional[List[int]] = None


class Scene(BaseModel):
    id: int
    project_id: int
    name: Optional[str] = None
    order_index: Optional[int] = None
    template_id: Optional[str] = None
    scene_description: Optional[str] = None
    prompt_tags: Optional[List[str]] = None
    format: Optional[str] = None
    export_preset: Optional[str] = None
    target_width: Optional[int] = None
    target_height: Optional[int] = None
    blueprint_image_path: Optional[str] = None
    motif_image_paths: Optional[List[str]] = None
    extra_reference_paths: Optional[List[str]] = None

    enriched_prompt: Optional[str] = None
    last_refinement_prompt: Optional[str] = None
    image_path: Optional[str] = None
    image_status: SceneImageStatus
    last_error_message: Optional[str] = None

    verification_score: Optional[int] = None
    verification_issues: Optional[List[Dict[str, Any]]] = None
    verification_attempts: int = 0

    review_notes: Optional[str] = None
    review_rating: Optional[int] = None

    materials: List[MaterialSummary] = []

    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SceneEnqueued(BaseModel):
    id: int
    image_status: SceneImageStatus
    render_job_id: int
    message: Optional[str] = None


class VariantRequest(BaseModel):
    export_preset: str


class RefinementRequest(BaseModel):
    material_ids: Optional[List[int]] = None
    has_extension_image: bool = False


class PreparedRefinement(BaseModel):
    prompt_addendum: str


class FeedbackRegenerateRequest(RefinementRequest):
    prompt_addendum: Optional[str] = None
    extra_reference_paths: List[str] = Field(default_factory=list, max_length=MAX_EXTRA_REFERENCE_IMAGES)


class VisionCorrectionResult(BaseModel):
    id: int
    image_status: SceneImageStatus
    verification_score: int
    passed: bool
    issues: List[Dict[str, Any]] = []
    render_job_id: Optional[int] = None
    message: str


class UploadedPaths(BaseModel):
    paths: List[str]
