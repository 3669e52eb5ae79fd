import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from scene_engine.core.files import load_image
from scene_engine.services.material_policy import policy_for
from scene_engine.services.perspective import rank, rank_images

logger = logging.getLogger(__name__)

MAX_REFERENCE_IMAGES = 14
MAX_MOTIF_IMAGES = 14
MAX_EXTRA_REFERENCE_IMAGES = 8


@dataclass
class ReferenceImage:
    data: bytes
    mime_type: str
    label: str


def _read(path: str, label: str) -> Optional[ReferenceImage]:
    try:
        data, mime_type = load_image(path)
    except (OSError, ValueError) as e:
        logger.warning("Skipping unreadable reference image %s (%s): %s", path, label, e)
        return None
    return ReferenceImage(data=data, mime_type=mime_type, label=label)


def select_reference_images(
    materials: Sequence,
    blueprint_path: Optional[str] = None,
    motif_paths: Sequence[str] = (),
    extra_reference_paths: Sequence[str] = (),
    capacity: int = MAX_REFERENCE_IMAGES,
) -> List[ReferenceImage]:
    """
    Build the ordered reference image set sent to the image model.

    Order: material images (paint pots, then brushes, then the rest), the
    blueprint, extra references, and motifs last. Prompts refer to the motifs
    as "the last N images", so nothing may follow them.
    """
    reserved = (1 if blueprint_path else 0) + len(motif_paths) + len(extra_reference_paths)
    material_budget = max(0, capacity - reserved)

    selected: List[ReferenceImage] = []

    ordered = sorted(materials, key=lambda m: policy_for(m.category).selection_tier)
    for material in ordered:
        if len(selected) >= material_budget:
            break
        policy = policy_for(material.category)
        for img in rank_images(material.category, material.images)[: policy.image_cap]:
            if len(selected) >= material_budget:
                break
            ref = _read(img.image_path, f"{material.name} ({img.perspective or 'default'})")
            if ref is None:
                continue
            selected.append(ref)
            logger.debug(
                "Reference %s: %s view (priority %d)",
                material.name,
                img.perspective or "default",
                rank(material.category, img.perspective),
            )

    material_count = len(selected)

    if blueprint_path and len(selected) < capacity:
        ref = _read(blueprint_path, "blueprint")
        if ref:
            selected.append(ref)

    for i, path in enumerate(extra_reference_paths, start=1):
        if len(selected) >= capacity:
            break
        ref = _read(path, f"extra reference {i}")
        if ref:
            selected.append(ref)

    for i, path in enumerate(motif_paths, start=1):
        if len(selected) >= capacity:
            break
        ref = _read(path, f"motif {i}")
        if ref:
            selected.append(ref)

    logger.info(
        "Selected %d reference images (%d material, %d reserved requested)",
        len(selected),
        material_count,
        reserved,
    )
    return selected


def count_motifs(refs: Sequence[ReferenceImage]) -> int:
    """Motif images actually included; they sit at the end of the set."""
    return sum(1 for ref in refs if ref.label.startswith("motif "))
