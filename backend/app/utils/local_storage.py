from __future__ import annotations

import glob
import os
import shutil
import uuid

from app.config import uploads_dir
from app.utils.media_store import StorageError, StoredImage, UploadedImage, prepare_image


class LocalMediaStore:
    """
    MediaStore on the local filesystem (dev / tests).

    A public id is the path below the uploads root without extension, e.g.
    `listings/12/gallery/<hex>`; the file itself keeps its extension and is
    served at `/uploads/<public_id><ext>`.
    """

    def __init__(self, root: str | None = None) -> None:
        self.root = os.path.abspath(root or uploads_dir())

    def _path_for(self, rel: str) -> str:
        rel = (rel or "").strip().strip("/")
        if not rel:
            raise StorageError("Empty storage path")
        path = os.path.abspath(os.path.join(self.root, rel))
        if os.path.commonpath([self.root, path]) != self.root or path == self.root:
            raise StorageError(f"Path escapes uploads root: {rel!r}")
        return path

    def _find(self, public_id: str) -> str | None:
        base = self._path_for(public_id)
        matches = sorted(glob.glob(glob.escape(base) + ".*"))
        return matches[0] if matches else None

    def _url_for(self, path: str) -> str:
        rel = os.path.relpath(path, self.root).replace(os.sep, "/")
        return f"/uploads/{rel}"

    def upload(self, image: UploadedImage, folder: str) -> StoredImage:
        data, ext = prepare_image(image)
        public_id = f"{folder.strip('/')}/{uuid.uuid4().hex}"
        path = self._path_for(public_id) + ext
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return StoredImage(url=self._url_for(path), public_id=public_id)

    def rename(self, public_id: str, new_public_id: str) -> StoredImage:
        src = self._find(public_id)
        if not src:
            raise StorageError(f"No stored file for {public_id!r}")
        ext = os.path.splitext(src)[1]
        dst = self._path_for(new_public_id) + ext
        os.makedirs(os.path.dirname(dst), exist_ok=True)
        os.replace(src, dst)
        return StoredImage(url=self._url_for(dst), public_id=new_public_id.strip("/"))

    def destroy(self, public_id: str) -> None:
        if not (public_id or "").strip():
            return
        path = self._find(public_id)
        if path:
            os.remove(path)

    def delete_resources(self, public_ids: list[str]) -> None:
        for pid in public_ids:
            self.destroy(pid)

    def delete_folder(self, folder: str) -> None:
        path = self._path_for(folder)
        if os.path.isdir(path):
            shutil.rmtree(path)
