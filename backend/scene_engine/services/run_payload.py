import json
from dataclasses import asdict, dataclass, field
from typing import List, Optional

MODE_GENERATE = "generate"
MODE_REFINE = "refine"


@dataclass
class RunPayload:
    """Parameters of one render run, stored as JSON on RenderJob.payload."""

    mode: str = MODE_GENERATE
    # Corrective instruction for refine runs; derived from review notes when `feedback` is set
    instruction: Optional[str] = None
    feedback: bool = False
    extra_reference_paths: List[str] = field(default_factory=list)
    material_ids: Optional[List[int]] = None
    has_extension_image: bool = False
    # Render to edit in refine runs
    source_path: Optional[str] = None
    auto: bool = False

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "RunPayload":
        if not raw:
            return cls()
        data = json.loads(raw)
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
