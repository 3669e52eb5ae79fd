import io
import logging
import os
import shutil
import uuid
from typing import Optional, Tuple

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from scene_engine.core.config import settings

logger = logging.getLogger(__name__)

MEDIA_ROOT = settings.MEDIA_ROOT

RENDERS_DIR = "renders"
VERSIONS_DIR = os.path.join(RENDERS_DIR, "versions")
MOTIFS_DIR = os.path.join("uploads", "motifs")
EXTRA_REFS_DIR = os.path.join("uploads", "references")


def ensure_media_dirs():
    for sub in (RENDERS_DIR, VERSIONS_DIR, MOTIFS_DIR, EXTRA_REFS_DIR):
        os.makedirs(os.path.join(MEDIA_ROOT, sub), exist_ok=True)


def render_path(scene_id: int) -> str:
    return os.path.join(MEDIA_ROOT, RENDERS_DIR, f"{scene_id}.png")


def version_path(scene_id: int, version_number: int, ext: str = ".png") -> str:
    return os.path.join(MEDIA_ROOT, VERSIONS_DIR, f"scene-{scene_id}-v{version_number}{ext}")


def _save_upload(subdir: str, file: UploadFile) -> str:
    ensure_media_dirs()
    ext = os.path.splitext(file.filename or "")[1] or ".png"
    filename = f"{uuid.uuid4().hex}{ext}"
    path = os.path.join(MEDIA_ROOT, subdir, filename)

    with open(path, "wb") as f:
        f.write(file.file.read())

    return path


def save_motif_image(file: UploadFile) -> str:
    return _save_upload(MOTIFS_DIR, file)


def save_extra_reference_image(file: UploadFile) -> str:
    return _save_upload(EXTRA_REFS_DIR, file)


def load_image(path: str) -> Tuple[bytes, str]:
    """
    Read an image file and return (bytes, mime type).
    Raises OSError for missing files and ValueError for data Pillow cannot decode.
    """
    with open(path, "rb") as f:
        data = f.read()
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = img.format
    except (UnidentifiedImageError, SyntaxError) as e:
        raise ValueError(f"Not a readable image: {path}") from e
    mime_type = Image.MIME.get(fmt, "image/png")
    return data, mime_type


def image_dimensions(path: str) -> Optional[Tuple[int, int]]:
    try:
        with Image.open(path) as img:
            return img.size
    except (OSError, UnidentifiedImageError) as e:
        logger.warning("Could not read dimensions of %s: %s", path, e)
        return None


def save_render(scene_id: int, data: bytes, mime_type: str = "image/png") -> str:
    """Write a rendered image to renders/<scene_id>.png, converting to PNG if needed."""
    ensure_media_dirs()
    path = render_path(scene_id)
    if mime_type == "image/png":
        with open(path, "wb") as f:
            f.write(data)
    else:
        with Image.open(io.BytesIO(data)) as img:
            img.save(path, format="PNG")
    return path


def copy_file(src: str, dst: str) -> None:
    os.makedirs(os.path.dirname(dst), exist_ok=True)
    shutil.copyfile(src, dst)


def delete_file(path: Optional[str]) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not delete %s: %s", path, e)
