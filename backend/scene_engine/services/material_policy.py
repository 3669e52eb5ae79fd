"""
Per-category material policy.

One table drives ranking, reference selection, prompt composition and the
verification checklist, so the four stay consistent.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from scene_engine.models.material import MaterialCategory


@dataclass(frozen=True)
class CategoryPolicy:
    # (label substring, priority) pairs, checked in order
    rank_rules: Tuple[Tuple[str, int], ...]
    default_rank: int
    # Labels that must never be sent as a reference (priority 0)
    excluded_labels: Tuple[str, ...] = ()
    # 0 = selected first
    selection_tier: int = 2
    image_cap: int = 2
    fidelity_note: Optional[str] = None
    checklist: Tuple[str, ...] = field(default_factory=tuple)


PAINT_POTS_POLICY = CategoryPolicy(
    rank_rules=(("detail", 100), ("front", 90), ("top", 85), ("packaged", 70)),
    default_rank=60,
    selection_tier=0,
    image_cap=5,
    fidelity_note=(
        "Each paint pot has a white snap lid with a small printed alphanumeric "
        "label (usually 2 characters, e.g. \"A4\", \"X3\"). The label must stay "
        "clearly legible. The reference images show the general look of the pots."
    ),
    checklist=(
        "Are the alphanumeric labels (2 characters, e.g. \"A4\", \"X3\") visible?",
        "Is the label clearly legible and positioned on the lid?",
        "Do the pot shape and size match the reference (~2cm diameter)?",
        "Is the material plastic with the correct color ({color})?",
    ),
)

BRUSHES_POLICY = CategoryPolicy(
    rank_rules=(("front", 100), ("side", 90), ("detail", 85)),
    default_rank=70,
    selection_tier=1,
    image_cap=3,
    fidelity_note="The reference images show the brush shape and size as orientation.",
    checklist=(
        "Do the bristles match the reference texture and color?",
        "Is the handle material correct (wood/plastic)?",
        "Is the brush size proportional to other objects?",
    ),
)

CANVAS_MOTIF_POLICY = CategoryPolicy(
    rank_rules=(("front", 100), ("detail", 90)),
    default_rank=70,
    excluded_labels=("back",),
    selection_tier=2,
    image_cap=2,
    fidelity_note=(
        "The reference images only show an EXAMPLE canvas for format, frame and "
        "texture. Do NOT reproduce the motif shown on them."
    ),
    checklist=(
        "Is the FRONT side visible (where the motif is painted)?",
        "Is the canvas NOT showing the back side with printing/text?",
        "Does the canvas size match {dimensions}?",
        "Is the frame type correct ({format_code})?",
    ),
)

DEFAULT_POLICY = CategoryPolicy(
    rank_rules=(("front", 100), ("detail", 95), ("side", 85), ("top", 80)),
    default_rank=70,
    selection_tier=2,
    image_cap=2,
    fidelity_note=(
        "The reference images show the exact appearance of this material. Match "
        "its look, proportions and surface as closely as possible."
    ),
    checklist=(
        "Does the appearance match the reference images?",
        "Are material properties (texture, color, shape) accurate?",
        "Is the size proportional to other objects?",
    ),
)

POLICIES: Dict[str, CategoryPolicy] = {
    MaterialCategory.paint_pots.value: PAINT_POTS_POLICY,
    MaterialCategory.brushes.value: BRUSHES_POLICY,
    MaterialCategory.canvas_motif.value: CANVAS_MOTIF_POLICY,
}


def policy_for(category: Optional[str]) -> CategoryPolicy:
    return POLICIES.get(category or "", DEFAULT_POLICY)


# Negative rule emitted when a category is absent from the scene
RESTRICTION_LINES: List[Tuple[str, str]] = [
    (MaterialCategory.paint_pots.value, "Do not show paint pots or paint containers in this scene."),
    (MaterialCategory.brushes.value, "Do not show brushes in this scene."),
    (MaterialCategory.canvas.value, "Do not show unpainted or blank canvas in this scene."),
    (MaterialCategory.tool.value, "Do not show paint palettes, mixing palettes or similar painting tools in this scene."),
    (MaterialCategory.accessory.value, "Do not show colored pencils, markers, pens or similar accessories in this scene."),
    (MaterialCategory.frame.value, "Do not show frames or framing elements unless they are part of a selected material."),
    (MaterialCategory.packaging.value, "Do not show packaging or packaging materials in this scene."),
]

SOURCE_ONLY_RULE = (
    "Only objects that come from the provided reference images (selected materials) "
    "or from the uploaded motif images may appear. No generic substitutes, no extra "
    "props, no foreign objects."
)
