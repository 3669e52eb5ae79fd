from .scene import (
    Scene,
    SceneCreate,
    SceneUpdate,
    SceneEnqueued,
    MaterialSummary,
    VariantRequest,
    RefinementRequest,
    PreparedRefinement,
    FeedbackRegenerateRequest,
    VisionCorrectionResult,
    UploadedPaths,
)
from .render_job import RenderJob
from .scene_version import SceneVersion
from .verification import VerificationLog

__all__ = [
    "Scene",
    "SceneCreate",
    "SceneUpdate",
    "SceneEnqueued",
    "MaterialSummary",
    "VariantRequest",
    "RefinementRequest",
    "PreparedRefinement",
    "FeedbackRegenerateRequest",
    "VisionCorrectionResult",
    "UploadedPaths",
    "RenderJob",
    "SceneVersion",
    "VerificationLog",
]
