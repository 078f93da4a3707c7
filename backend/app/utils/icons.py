from __future__ import annotations

import logging
import os
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from app.config import icons_dir
from app.errors import ValidationError

logger = logging.getLogger(__name__)

ICON_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")
_EXT_BY_CONTENT_TYPE = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}


def icon_dimensions(raw: bytes) -> tuple[int, int]:
    """Original pixel size of a marker icon; the map scales it to a fixed height."""
    try:
        with Image.open(BytesIO(raw)) as img:
            w, h = img.size
    except (UnidentifiedImageError, OSError, ValueError):
        raise ValidationError("Icon must be a png, jpg or webp image")
    return int(w or 38), int(h or 38)


def icon_extension(filename: str, content_type: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext in ICON_EXTENSIONS:
        return ext
    ext = _EXT_BY_CONTENT_TYPE.get((content_type or "").split(";", 1)[0].strip().lower(), "")
    if not ext:
        raise ValidationError("Icon must be a png, jpg or webp image")
    return ext


def save_icon(*, raw: bytes, slug: str, filename: str, content_type: str) -> str:
    """Write `<slug><ext>` into the icons directory and return the file name."""
    ext = icon_extension(filename, content_type)
    base = icons_dir()
    os.makedirs(base, exist_ok=True)
    # One file per slug: drop stale variants with another extension.
    remove_icon_files(slug)
    name = f"{slug}{ext}"
    with open(os.path.join(base, name), "wb") as f:
        f.write(raw)
    return name


def remove_icon_files(slug: str) -> None:
    base = icons_dir()
    for ext in ICON_EXTENSIONS:
        path = os.path.join(base, f"{slug}{ext}")
        if os.path.exists(path):
            try:
                os.remove(path)
            except OSError:
                logger.warning("Could not remove icon file %s", path)


def icon_path(filename: str) -> str | None:
    name = os.path.basename(filename or "")
    if not name or name != filename:
        return None
    path = os.path.join(icons_dir(), name)
    return path if os.path.isfile(path) else None
