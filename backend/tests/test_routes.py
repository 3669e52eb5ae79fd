import os

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import RedisError

from conftest import png_bytes, report, write_png
from scene_engine import models
from scene_engine.api.dependencies import get_db
from scene_engine.api.routes import scenes as scene_routes
from scene_engine.core import files
from scene_engine.db.init_db import seed_export_presets
from scene_engine.main import app
from scene_engine.services import versioning

API = "/api/v1"


@pytest.fixture
def client(session_factory, fake_queue, provider, monkeypatch):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    monkeypatch.setattr(scene_routes, "get_image_provider", lambda config: provider)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def rendered_scene(db, make_scene, make_material):
    """A finished scene with one engaged material and an image on disk."""
    pots = make_material()
    scene = make_scene(
        [pots],
        image_status=models.SceneImageStatus.done,
        enriched_prompt="Studio shot of the paint set",
    )
    scene.image_path = write_png(files.render_path(scene.id))
    db.commit()
    return scene


def _refresh(db, scene_id):
    db.expire_all()
    return db.get(models.Scene, scene_id)


class TestHealth:
    def test_health(self, client):
        resp = client.get(f"{API}/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestCreateAndPoll:
    def test_create_enqueues_and_returns_immediately(self, client, db, project, make_material, fake_queue):
        pots = make_material()
        resp = client.post(
            f"{API}/scenes/",
            json={"project_id": project.id, "material_ids": [pots.id], "scene_description": "Table"},
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["image_status"] == "generating"
        assert fake_queue.job_ids == [body["render_job_id"]]

        polled = client.get(f"{API}/scenes/{body['id']}").json()
        assert polled["image_status"] == "generating"
        assert polled["image_path"] is None
        assert polled["materials"][0]["name"] == "Paint pot set"

        fake_queue.drain()

        polled = client.get(f"{API}/scenes/{body['id']}").json()
        assert polled["image_status"] == "done"
        assert polled["image_path"] == files.render_path(body["id"])
        assert polled["verification_score"] == 92

    def test_unknown_project(self, client):
        resp = client.post(f"{API}/scenes/", json={"project_id": 404})
        assert resp.status_code == 404

    def test_unknown_material(self, client, project):
        resp = client.post(f"{API}/scenes/", json={"project_id": project.id, "material_ids": [12345]})
        assert resp.status_code == 404

    def test_unknown_preset(self, client, project):
        resp = client.post(f"{API}/scenes/", json={"project_id": project.id, "export_preset": "billboard"})
        assert resp.status_code == 400

    def test_too_many_motifs_rejected(self, client, project):
        resp = client.post(
            f"{API}/scenes/",
            json={"project_id": project.id, "motif_image_paths": [f"m{i}.png" for i in range(15)]},
        )
        assert resp.status_code == 422

    def test_queue_unavailable(self, client, db, project, fake_queue):
        fake_queue.error = RedisError("connection refused")
        resp = client.post(f"{API}/scenes/", json={"project_id": project.id})

        assert resp.status_code == 503
        scene = db.query(models.Scene).one()
        assert scene.image_status == models.SceneImageStatus.failed
        assert db.query(models.RenderJob).one().status == models.RenderJobStatus.failed

    def test_list_by_project(self, client, make_scene, project):
        make_scene(name="A")
        make_scene(name="B")
        resp = client.get(f"{API}/scenes/", params={"project_id": project.id})
        assert [s["name"] for s in resp.json()] == ["A", "B"]
        assert client.get(f"{API}/scenes/", params={"project_id": 999}).json() == []

    def test_get_missing_scene(self, client):
        assert client.get(f"{API}/scenes/999").status_code == 404


class TestSceneLock:
    def test_regenerate_while_generating_conflicts(self, client, project, fake_queue):
        scene_id = client.post(f"{API}/scenes/", json={"project_id": project.id}).json()["id"]

        resp = client.post(f"{API}/scenes/{scene_id}/regenerate")

        assert resp.status_code == 409
        assert len(fake_queue.calls) == 1

    def test_regenerate_resets_attempts(self, client, db, rendered_scene, fake_queue):
        rendered_scene.verification_attempts = 3
        db.commit()

        resp = client.post(f"{API}/scenes/{rendered_scene.id}/regenerate")

        assert resp.status_code == 200
        assert resp.json()["image_status"] == "generating"
        scene = _refresh(db, rendered_scene.id)
        assert scene.verification_attempts == 0
        # the previous render stays visible while the new one runs
        assert scene.image_path == files.render_path(scene.id)


class TestUpdateAndDelete:
    def test_patch_review_notes(self, client, rendered_scene):
        resp = client.patch(
            f"{API}/scenes/{rendered_scene.id}",
            json={"review_notes": "Labels too small", "review_rating": 3},
        )
        assert resp.status_code == 200
        assert resp.json()["review_notes"] == "Labels too small"
        assert resp.json()["review_rating"] == 3

    def test_patch_rejects_bad_rating(self, client, rendered_scene):
        resp = client.patch(f"{API}/scenes/{rendered_scene.id}", json={"review_rating": 6})
        assert resp.status_code == 422

    def test_delete_removes_scene_and_files(self, client, db, rendered_scene):
        path = rendered_scene.image_path
        scene_id = rendered_scene.id

        resp = client.delete(f"{API}/scenes/{scene_id}")

        assert resp.status_code == 204
        assert not os.path.exists(path)
        db.expire_all()
        assert db.get(models.Scene, scene_id) is None


class TestVariant:
    def test_variant_uses_preset_dimensions(self, client, db, rendered_scene, fake_queue):
        seed_export_presets(db)

        resp = client.post(
            f"{API}/scenes/{rendered_scene.id}/variant",
            json={"export_preset": "instagram_story"},
        )

        assert resp.status_code == 201
        variant = _refresh(db, resp.json()["id"])
        assert variant.id != rendered_scene.id
        assert (variant.target_width, variant.target_height) == (1080, 1920)
        assert variant.enriched_prompt == "Studio shot of the paint set"
        assert fake_queue.job_ids == [resp.json()["render_job_id"]]

    def test_variant_needs_known_preset(self, client, rendered_scene):
        resp = client.post(f"{API}/scenes/{rendered_scene.id}/variant", json={"export_preset": "poster"})
        assert resp.status_code == 400

    def test_variant_needs_enriched_prompt(self, client, db, make_scene):
        seed_export_presets(db)
        scene = make_scene()
        resp = client.post(f"{API}/scenes/{scene.id}/variant", json={"export_preset": "instagram_post"})
        assert resp.status_code == 400


class TestFeedback:
    def test_prepare_refinement_requires_notes(self, client, rendered_scene):
        resp = client.post(f"{API}/scenes/{rendered_scene.id}/prepare-refinement", json={})
        assert resp.status_code == 400

    def test_prepare_refinement_returns_addendum(self, client, db, rendered_scene, provider, fake_queue):
        rendered_scene.review_notes = "The lids should be white"
        db.commit()
        provider.enriched = "Make every lid white."

        resp = client.post(f"{API}/scenes/{rendered_scene.id}/prepare-refinement", json={})

        assert resp.status_code == 200
        assert resp.json() == {"prompt_addendum": "Make every lid white."}
        assert fake_queue.calls == []

    def test_regenerate_with_feedback_needs_image(self, client, make_scene):
        scene = make_scene(review_notes="More light", enriched_prompt="prompt")
        resp = client.post(f"{API}/scenes/{scene.id}/regenerate-with-feedback", json={})
        assert resp.status_code == 400

    def test_regenerate_with_manual_addendum(self, client, db, rendered_scene, fake_queue):
        resp = client.post(
            f"{API}/scenes/{rendered_scene.id}/regenerate-with-feedback",
            json={"prompt_addendum": "Add a coffee cup"},
        )

        assert resp.status_code == 200
        job = db.get(models.RenderJob, resp.json()["render_job_id"])
        assert job.job_type == models.RenderJobType.image_refinement
        assert "Add a coffee cup" in job.payload


class TestVisionCorrection:
    def test_issues_queue_a_correction(self, client, db, rendered_scene, provider, fake_queue):
        provider.reports = [
            report(60, issues=["Paint pot set | label | critical | Labels missing"],
                   suggestions=["Print the labels A4 and X3 on the lids"])
        ]

        resp = client.post(f"{API}/scenes/{rendered_scene.id}/vision-correction")

        assert resp.status_code == 200
        body = resp.json()
        assert body["verification_score"] == 60
        assert body["passed"] is False
        assert body["image_status"] == "generating"
        assert fake_queue.job_ids == [body["render_job_id"]]
        log = db.query(models.VerificationLog).one()
        assert log.verification_type == "vision-correction"

    def test_clean_result_queues_nothing(self, client, rendered_scene, provider, fake_queue):
        provider.reports = [report(96)]

        body = client.post(f"{API}/scenes/{rendered_scene.id}/vision-correction").json()

        assert body["render_job_id"] is None
        assert body["message"] == "No corrections needed"
        assert fake_queue.calls == []

    def test_needs_an_image(self, client, make_scene, make_material):
        scene = make_scene([make_material()])
        assert client.post(f"{API}/scenes/{scene.id}/vision-correction").status_code == 400

    def test_busy_scene(self, client, make_scene):
        scene = make_scene(image_status=models.SceneImageStatus.generating)
        assert client.post(f"{API}/scenes/{scene.id}/vision-correction").status_code == 409


class TestVersionsAndLogs:
    def test_list_restore_and_delete(self, client, db, rendered_scene):
        first = versioning.snapshot_before_overwrite(db, rendered_scene, rendered_scene.image_path)
        second = versioning.snapshot_before_overwrite(db, rendered_scene, rendered_scene.image_path)

        listed = client.get(f"{API}/scenes/{rendered_scene.id}/versions").json()
        assert [v["version_number"] for v in listed] == [2, 1]

        resp = client.post(f"{API}/scenes/{rendered_scene.id}/versions/{first.id}/restore")
        assert resp.status_code == 200
        assert resp.json()["image_path"] == first.image_path

        # the version on display cannot be deleted
        resp = client.delete(f"{API}/scenes/{rendered_scene.id}/versions/{first.id}")
        assert resp.status_code == 400

        resp = client.delete(f"{API}/scenes/{rendered_scene.id}/versions/{second.id}")
        assert resp.status_code == 204
        assert len(client.get(f"{API}/scenes/{rendered_scene.id}/versions").json()) == 1

    def test_restore_unknown_version(self, client, rendered_scene):
        resp = client.post(f"{API}/scenes/{rendered_scene.id}/versions/999/restore")
        assert resp.status_code == 404

    def test_verification_logs_and_render_jobs(self, client, project, make_material, fake_queue, provider):
        pots = make_material()
        provider.reports = [report(81)]
        created = client.post(
            f"{API}/scenes/", json={"project_id": project.id, "material_ids": [pots.id]}
        ).json()
        fake_queue.drain()

        logs = client.get(f"{API}/scenes/{created['id']}/verification-logs").json()
        assert [(l["score"], l["verification_type"]) for l in logs] == [(81, "image")]

        jobs = client.get(f"{API}/render_jobs/scene/{created['id']}").json()
        assert [j["status"] for j in jobs] == ["completed"]
        job = client.get(f"{API}/render_jobs/{created['render_job_id']}").json()
        assert job["cost_estimate"] == pytest.approx(0.04)
        assert client.get(f"{API}/render_jobs/999").status_code == 404


class TestUploads:
    def test_upload_motifs(self, client):
        resp = client.post(
            f"{API}/scenes/upload-motif",
            files=[
                ("files", ("a.png", png_bytes(), "image/png")),
                ("files", ("b.png", png_bytes(), "image/png")),
            ],
        )
        assert resp.status_code == 200
        paths = resp.json()["paths"]
        assert len(paths) == 2
        assert all(os.path.exists(p) for p in paths)

    def test_upload_extra_reference_cap(self, client):
        files_ = [("files", (f"{i}.png", png_bytes(), "image/png")) for i in range(9)]
        resp = client.post(f"{API}/scenes/upload-extra-reference", files=files_)
        assert resp.status_code == 400
