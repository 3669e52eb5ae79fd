from typing import Optional

SUPPORTED_RATIOS = ["1:1", "3:4", "4:3", "9:16", "16:9", "2:3", "3:2", "21:9", "9:21"]

DEFAULT_ASPECT_RATIO = "3:2"

PRESET_ASPECT_RATIOS = {
    "facebook_banner": "21:9",
    "instagram_post": "1:1",
    "instagram_story": "9:16",
    "youtube_thumbnail": "16:9",
    "free": "3:2",
}


def nearest_aspect_ratio(width: int, height: int) -> str:
    """Nearest supported ratio to width/height (first listed wins on ties)."""
    if not width or not height or width <= 0 or height <= 0:
        return DEFAULT_ASPECT_RATIO
    target = width / height
    best, best_diff = SUPPORTED_RATIOS[0], float("inf")
    for candidate in SUPPORTED_RATIOS:
        w, h = (int(x) for x in candidate.split(":"))
        diff = abs(w / h - target)
        if diff < best_diff:
            best, best_diff = candidate, diff
    return best


def resolve_aspect_ratio(
    width: Optional[int] = None,
    height: Optional[int] = None,
    preset_id: Optional[str] = None,
    preset=None,
) -> str:
    """
    Explicit pixel dimensions win, then the preset row's dimensions, then the
    preset's static mapping, then 3:2.
    """
    if width and height:
        return nearest_aspect_ratio(width, height)
    if preset is not None:
        return nearest_aspect_ratio(preset.width, preset.height)
    return PRESET_ASPECT_RATIOS.get(preset_id or "free", DEFAULT_ASPECT_RATIO)
