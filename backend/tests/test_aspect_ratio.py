from types import SimpleNamespace

import pytest

from scene_engine.models import BUILTIN_PRESETS
from scene_engine.services.aspect_ratio import (
    DEFAULT_ASPECT_RATIO,
    PRESET_ASPECT_RATIOS,
    nearest_aspect_ratio,
    resolve_aspect_ratio,
)


class TestNearestAspectRatio:
    def test_exact_matches(self):
        assert nearest_aspect_ratio(1080, 1080) == "1:1"
        assert nearest_aspect_ratio(1920, 1080) == "16:9"
        assert nearest_aspect_ratio(1080, 1920) == "9:16"

    def test_nearest_supported(self):
        # 1640x624 (2.63) sits closest to 21:9
        assert nearest_aspect_ratio(1640, 624) == "21:9"
        assert nearest_aspect_ratio(1024, 768) == "4:3"

    def test_invalid_dimensions_fall_back(self):
        assert nearest_aspect_ratio(0, 100) == DEFAULT_ASPECT_RATIO
        assert nearest_aspect_ratio(None, None) == DEFAULT_ASPECT_RATIO


class TestResolveAspectRatio:
    def test_explicit_dimensions_win(self):
        preset = SimpleNamespace(width=1080, height=1080)
        assert resolve_aspect_ratio(1920, 1080, "instagram_post", preset) == "16:9"

    def test_preset_row_dimensions(self):
        preset = SimpleNamespace(width=1080, height=1920)
        assert resolve_aspect_ratio(None, None, "custom", preset) == "9:16"

    def test_static_mapping_then_default(self):
        assert resolve_aspect_ratio(preset_id="youtube_thumbnail") == "16:9"
        assert resolve_aspect_ratio(preset_id="unknown") == DEFAULT_ASPECT_RATIO
        assert resolve_aspect_ratio() == "3:2"


@pytest.mark.parametrize("preset", BUILTIN_PRESETS, ids=lambda p: p["id"])
def test_seeded_presets_agree_with_static_mapping(preset):
    row = SimpleNamespace(width=preset["width"], height=preset["height"])
    assert resolve_aspect_ratio(preset_id=preset["id"], preset=row) == PRESET_ASPECT_RATIOS[preset["id"]]
