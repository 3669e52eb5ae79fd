from scene_engine.db.base import Base
from .project import Project
from .material import Material, MaterialImage, MaterialCategory, MaterialStatus
from .scene_template import SceneTemplate
from .export_preset import ExportPreset, BUILTIN_PRESETS
from .setting import Setting
from .scene import Scene, SceneImageStatus, scene_materials, MAX_VERIFICATION_ATTEMPTS
from .render_job import RenderJob, RenderJobStatus, RenderJobType
from .scene_version import SceneVersion
from .verification_log import VerificationLog
from .successful_pattern import SuccessfulPattern

__all__ = [
    "Base",
    "Project",
    "Material",
    "MaterialImage",
    "MaterialCategory",
    "MaterialStatus",
    "SceneTemplate",
    "ExportPreset",
    "BUILTIN_PRESETS",
    "Setting",
    "Scene",
    "SceneImageStatus",
    "scene_materials",
    "MAX_VERIFICATION_ATTEMPTS",
    "RenderJob",
    "RenderJobStatus",
    "RenderJobType",
    "SceneVersion",
    "VerificationLog",
    "SuccessfulPattern",
]
