from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from io import BytesIO
from typing import Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from app.config import max_image_height, max_image_width

logger = logging.getLogger(__name__)

JPEG_QUALITY = 82

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
ALLOWED_IMAGE_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}


class StorageError(Exception):
    """Raised by a MediaStore when the backing storage rejects an operation."""


@dataclass(frozen=True)
class StoredImage:
    url: str
    public_id: str


@dataclass(frozen=True)
class UploadedImage:
    raw: bytes
    filename: str
    content_type: str

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower()


class MediaStore(Protocol):
    def upload(self, image: UploadedImage, folder: str) -> StoredImage: ...

    def rename(self, public_id: str, new_public_id: str) -> StoredImage: ...

    def destroy(self, public_id: str) -> None: ...

    def delete_resources(self, public_ids: list[str]) -> None: ...

    def delete_folder(self, folder: str) -> None: ...


def is_accepted_image(image: UploadedImage) -> bool:
    ctype = (image.content_type or "").split(";", 1)[0].strip().lower()
    return image.extension in ALLOWED_IMAGE_EXTENSIONS and ctype in ALLOWED_IMAGE_CONTENT_TYPES


def prepare_image(image: UploadedImage) -> tuple[bytes, str]:
    """
    Normalize an upload before storing it.

    EXIF orientation is applied, the image is shrunk to fit inside
    max_image_width() x max_image_height() (aspect kept, never enlarged) and
    re-encoded as progressive JPEG. Returns (bytes, extension). Anything Pillow
    cannot read is passed through untouched with its original extension.
    """
    try:
        img = Image.open(BytesIO(image.raw))
        img = ImageOps.exif_transpose(img)
        img = img.convert("RGB")
        img.thumbnail((max_image_width(), max_image_height()), Image.LANCZOS)

        out = BytesIO()
        img.save(out, format="JPEG", quality=JPEG_QUALITY, optimize=True, progressive=True)
        return out.getvalue(), ".jpg"
    except (UnidentifiedImageError, OSError, ValueError):
        logger.warning("Could not optimize image %r; storing original bytes", image.filename)
        return image.raw, image.extension or ".bin"


def get_media_store() -> MediaStore:
    """FastAPI dependency: Cloudinary when configured, local disk otherwise."""
    from app.utils.cloudinary_config import cloudinary_is_configured

    if cloudinary_is_configured():
        from app.utils.cloudinary_storage import CloudinaryMediaStore

        return CloudinaryMediaStore()

    from app.utils.local_storage import LocalMediaStore

    return LocalMediaStore()
