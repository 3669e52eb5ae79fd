"""
Shared pytest fixtures for the scene engine tests.

Every test runs against an in-memory SQLite database, a temporary media
root, a recording stand-in for the RQ queue and a scripted provider, so no
Redis server or network access is needed.
"""

import io
import os
import tempfile
from typing import Dict, List, Optional, Sequence

# Must be set before scene_engine.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="scene-engine-media-"))

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scene_engine import models
from scene_engine.core import files
from scene_engine.core.config import settings
from scene_engine.db.base import Base
from scene_engine.services import scene_generation
from scene_engine.services.providers.base import BaseImageProvider, GeneratedImage
from scene_engine.workers import tasks


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    # The worker opens its own sessions
    monkeypatch.setattr(tasks, "SessionLocal", factory)
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ============================================================================
# MEDIA
# ============================================================================

@pytest.fixture(autouse=True)
def media_root(tmp_path, monkeypatch):
    root = tmp_path / "media"
    root.mkdir()
    monkeypatch.setattr(files, "MEDIA_ROOT", str(root))
    files.ensure_media_dirs()
    return root


def write_png(path, size=(64, 48), color=(200, 120, 40)) -> str:
    path = str(path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    Image.new("RGB", size, color).save(path, format="PNG")
    return path


def png_bytes(size=(64, 48), color=(10, 200, 90)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_png(tmp_path):
    counter = {"n": 0}

    def _make(name: Optional[str] = None, size=(64, 48), color=(200, 120, 40)) -> str:
        counter["n"] += 1
        filename = name or f"img-{counter['n']}.png"
        return write_png(tmp_path / "inputs" / filename, size=size, color=color)

    return _make


# ============================================================================
# QUEUE + PROVIDER FAKES
# ============================================================================

class _FakeRQJob:
    def __init__(self, job_id: str):
        self.id = job_id

    def get_id(self) -> str:
        return self.id


class FakeQueue:
    """Records enqueued calls instead of talking to Redis."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    def enqueue(self, func, *args, **kwargs):
        if self.error is not None:
            raise self.error
        self.calls.append((func, args))
        return _FakeRQJob(f"rq-{len(self.calls)}")

    def empty(self):
        self.calls.clear()

    @property
    def job_ids(self) -> List[int]:
        return [args[0] for _, args in self.calls]

    def run_next(self):
        func, args = self.calls.pop(0)
        return func(*args)

    def drain(self, limit: int = 10) -> List[str]:
        """Run queued jobs (including follow-ups they enqueue) like a worker would."""
        results = []
        while self.calls and len(results) < limit:
            results.append(self.run_next())
        return results


@pytest.fixture
def fake_queue(monkeypatch):
    queue = FakeQueue()
    monkeypatch.setattr(scene_generation, "render_queue", queue)
    monkeypatch.setattr(tasks, "render_queue", queue)
    return queue


def report(score: int, issues: Sequence[str] = (), suggestions: Sequence[str] = ()) -> str:
    text = f"OVERALL SCORE: {score}\n\nISSUES FOUND:\n"
    text += "".join(f"ISSUE: {line}\n" for line in issues)
    if suggestions:
        text += "\nCORRECTION SUGGESTIONS:\n" + "".join(f"- {s}\n" for s in suggestions)
    return text


class FakeProvider(BaseImageProvider):
    """Scripted provider: enrichment text, one image per call, queued verification reports."""

    name = "fake"

    def __init__(self, enriched: str = "A bright studio table with the paint set", reports=None):
        self.enriched = enriched
        self.reports = list(reports or [])
        self.enrich_calls: List[Dict] = []
        self.generate_calls: List[Dict] = []
        self.analyze_calls: List[Dict] = []
        self.generate_error: Optional[Exception] = None
        self.analyze_error: Optional[Exception] = None

    def enrich(self, system_instruction, user_instruction):
        self.enrich_calls.append({"system": system_instruction, "user": user_instruction})
        return self.enriched

    def generate_image(
        self,
        prompt,
        reference_images,
        aspect_ratio,
        image_size="2K",
        source_image=None,
        motif_count=0,
    ):
        self.generate_calls.append(
            {
                "prompt": prompt,
                "reference_images": list(reference_images),
                "aspect_ratio": aspect_ratio,
                "source_image": source_image,
                "motif_count": motif_count,
            }
        )
        if self.generate_error is not None:
            raise self.generate_error
        color = (20 * len(self.generate_calls) % 255, 100, 150)
        return GeneratedImage(data=png_bytes(color=color), mime_type="image/png", cost_estimate=0.04)

    def analyze_consistency(self, image, material_ground_truth, scene_description):
        self.analyze_calls.append({"image": image, "prompt": material_ground_truth})
        if self.analyze_error is not None:
            raise self.analyze_error
        if self.reports:
            return self.reports.pop(0)
        return report(92)


@pytest.fixture
def provider(monkeypatch):
    fake = FakeProvider()
    monkeypatch.setattr(tasks, "get_image_provider", lambda config: fake)
    return fake


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "IMAGE_PROVIDER", "gemini")
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")


# ============================================================================
# FACTORIES
# ============================================================================

@pytest.fixture
def project(db):
    p = models.Project(name="Spring campaign")
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture
def make_material(db, make_png):
    def _make(
        name: str = "Paint pot set",
        category: str = "paint_pots",
        status: str = "engaged",
        perspectives: Sequence[Optional[str]] = ("front",),
        **attrs,
    ) -> models.Material:
        material = models.Material(name=name, category=category, status=status, **attrs)
        for i, perspective in enumerate(perspectives):
            material.images.append(
                models.MaterialImage(
                    image_path=make_png(),
                    perspective=perspective,
                    is_primary=(i == 0),
                    position=i,
                )
            )
        db.add(material)
        db.commit()
        db.refresh(material)
        return material

    return _make


@pytest.fixture
def make_scene(db, project):
    def _make(materials=(), **fields) -> models.Scene:
        fields.setdefault("name", "Scene 1")
        fields.setdefault("scene_description", "Paint set on a wooden table")
        fields.setdefault("export_preset", "free")
        scene = models.Scene(project_id=project.id, **fields)
        scene.materials = list(materials)
        db.add(scene)
        db.commit()
        db.refresh(scene)
        return scene

    return _make
