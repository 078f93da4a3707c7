from __future__ import annotations

import os
import tempfile
import uuid

import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader

from app.config import cloudinary_folder
from app.utils.cloudinary_config import configure_cloudinary
from app.utils.media_store import StorageError, StoredImage, UploadedImage, prepare_image


def _full_folder(folder: str) -> str:
    return f"{cloudinary_folder()}/{folder.strip('/')}"


class CloudinaryMediaStore:
    """
    MediaStore backed by Cloudinary.

    Public ids returned from upload()/rename() already carry the
    CLOUDINARY_FOLDER prefix; folder arguments are logical and get prefixed here.
    """

    def __init__(self) -> None:
        configure_cloudinary()

    def upload(self, image: UploadedImage, folder: str) -> StoredImage:
        data, ext = prepare_image(image)
        tmp_path: str | None = None
        try:
            with tempfile.NamedTemporaryFile(delete=False, suffix=ext) as tmp:
                tmp.write(data)
                tmp_path = tmp.name

            res = cloudinary.uploader.upload(
                tmp_path,
                resource_type="image",
                folder=_full_folder(folder),
                public_id=uuid.uuid4().hex,
                overwrite=False,
                type="upload",
                invalidate=False,
            )
        finally:
            if tmp_path:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

        url = str(res.get("secure_url") or "").strip()
        pid = str(res.get("public_id") or "").strip()
        if not url or not pid:
            raise StorageError(f"Cloudinary upload returned no url/public_id for {image.filename!r}")
        return StoredImage(url=url, public_id=pid)

    def rename(self, public_id: str, new_public_id: str) -> StoredImage:
        res = cloudinary.uploader.rename(public_id, new_public_id, overwrite=False, invalidate=False)
        url = str(res.get("secure_url") or "").strip()
        pid = str(res.get("public_id") or "").strip()
        if not url or not pid:
            raise StorageError(f"Cloudinary rename returned no url/public_id for {public_id!r}")
        return StoredImage(url=url, public_id=pid)

    def destroy(self, public_id: str) -> None:
        pid = (public_id or "").strip()
        if not pid:
            return
        res = cloudinary.uploader.destroy(pid, resource_type="image", invalidate=False)
        result = str((res or {}).get("result") or "")
        if result not in {"ok", "not found"}:
            raise StorageError(f"Cloudinary destroy failed for {pid!r}: {result or 'no result'}")

    def delete_resources(self, public_ids: list[str]) -> None:
        ids = [p.strip() for p in public_ids if p and p.strip()]
        if not ids:
            return
        cloudinary.api.delete_resources(ids, resource_type="image")

    def delete_folder(self, folder: str) -> None:
        path = _full_folder(folder)
        # A Cloudinary folder can only be removed once it is empty.
        cloudinary.api.delete_resources_by_prefix(f"{path}/", resource_type="image")
        try:
            cloudinary.api.delete_folder(path)
        except cloudinary.exceptions.NotFound:
            return
