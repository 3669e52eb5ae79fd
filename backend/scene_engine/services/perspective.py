from typing import List, Optional, Sequence

from scene_engine.services.material_policy import policy_for

EXCLUDED = 0


def rank(category: Optional[str], perspective: Optional[str]) -> int:
    """
    Priority of a material image for its category; higher is better.
    Labels are matched case-insensitively by substring. Unknown or missing
    labels get the category's lowest tier, excluded views get 0.
    """
    policy = policy_for(category)
    label = (perspective or "").lower()
    if not label:
        return policy.default_rank

    for excluded in policy.excluded_labels:
        if excluded in label:
            return EXCLUDED

    for needle, priority in policy.rank_rules:
        if needle in label:
            return priority
    return policy.default_rank


def rank_images(category: Optional[str], images: Sequence) -> List:
    """Sort images (anything with a `perspective` attribute) best first, dropping excluded views."""
    scored = [(rank(category, getattr(img, "perspective", None)), img) for img in images]
    kept = [pair for pair in scored if pair[0] > EXCLUDED]
    # sorted() is stable, so first-seen wins on ties
    kept = sorted(kept, key=lambda pair: pair[0], reverse=True)
    return [img for _, img in kept]
