from types import SimpleNamespace

from conftest import write_png
from scene_engine.services.reference_images import MAX_REFERENCE_IMAGES, count_motifs, select_reference_images


def _material(tmp_path, name, category, perspectives):
    images = []
    for i, perspective in enumerate(perspectives):
        path = write_png(tmp_path / f"{name}-{i}.png")
        images.append(SimpleNamespace(image_path=path, perspective=perspective))
    return SimpleNamespace(id=hash(name) % 1000, name=name, category=category, images=images)


def _paths(tmp_path, prefix, count):
    return [write_png(tmp_path / f"{prefix}-{i}.png") for i in range(count)]


class TestSelectReferenceImages:
    def test_scenario_a_nothing_selected(self):
        assert select_reference_images([], None, [], []) == []

    def test_scenario_b_paint_pot_order(self, tmp_path):
        pots = _material(tmp_path, "pots", "paint_pots", ["front", "detail", "packaged"])
        refs = select_reference_images([pots])
        assert [r.label for r in refs] == [
            "pots (detail)",
            "pots (front)",
            "pots (packaged)",
        ]
        assert all(r.mime_type == "image/png" for r in refs)

    def test_category_order_and_caps(self, tmp_path):
        canvas = _material(tmp_path, "canvas", "canvas_motif", ["front", "detail", "top"])
        brushes = _material(tmp_path, "brushes", "brushes", ["front", "side", "detail", "top"])
        pots = _material(tmp_path, "pots", "paint_pots", ["front"] * 7)

        refs = select_reference_images([canvas, brushes, pots])
        labels = [r.label for r in refs]

        # paint pots first (cap 5), then brushes (cap 3), then the rest (cap 2)
        assert labels[:5] == ["pots (front)"] * 5
        assert labels[5:8] == ["brushes (front)", "brushes (side)", "brushes (detail)"]
        assert labels[8:] == ["canvas (front)", "canvas (detail)"]

    def test_canvas_back_never_selected(self, tmp_path):
        canvas = _material(tmp_path, "canvas", "canvas_motif", ["back", "front"])
        refs = select_reference_images([canvas])
        assert [r.label for r in refs] == ["canvas (front)"]

    def test_motifs_last_and_capacity_respected(self, tmp_path):
        pots = _material(tmp_path, "pots", "paint_pots", ["front"] * 5)
        brushes = _material(tmp_path, "brushes", "brushes", ["front"] * 3)
        other = _material(tmp_path, "easel", "tool", ["front", "side"])
        blueprint = write_png(tmp_path / "blueprint.png")
        extras = _paths(tmp_path, "extra", 2)
        motifs = _paths(tmp_path, "motif", 3)

        refs = select_reference_images([pots, brushes, other], blueprint, motifs, extras)

        assert len(refs) == MAX_REFERENCE_IMAGES
        labels = [r.label for r in refs]
        assert labels[-3:] == ["motif 1", "motif 2", "motif 3"]
        assert labels[-6:-3] == ["blueprint", "extra reference 1", "extra reference 2"]
        # 14 - (1 + 2 + 3) leaves room for 8 material images
        assert sum(1 for label in labels if label.startswith(("pots", "brushes", "easel"))) == 8

    def test_too_many_motifs_keeps_capacity(self, tmp_path):
        pots = _material(tmp_path, "pots", "paint_pots", ["front"])
        motifs = _paths(tmp_path, "motif", 16)
        refs = select_reference_images([pots], None, motifs, [])
        assert len(refs) == MAX_REFERENCE_IMAGES
        assert all(r.label.startswith("motif") for r in refs)

    def test_unreadable_images_are_skipped(self, tmp_path):
        pots = _material(tmp_path, "pots", "paint_pots", ["front", "detail"])
        pots.images[0].image_path = str(tmp_path / "missing.png")
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"not an image")

        refs = select_reference_images([pots], str(broken), [], [])
        assert [r.label for r in refs] == ["pots (detail)"]

    def test_count_motifs_only_counts_included(self, tmp_path):
        pots = _material(tmp_path, "pots", "paint_pots", ["front"])
        motifs = _paths(tmp_path, "motif", 2) + [str(tmp_path / "gone.png")]
        extras = _paths(tmp_path, "extra", 1)

        refs = select_reference_images([pots], None, motifs, extras)

        assert count_motifs(refs) == 2
        assert count_motifs(select_reference_images([pots], None, _paths(tmp_path, "m", 16), [])) == 14
