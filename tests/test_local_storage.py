import os
from io import BytesIO

import pytest
from PIL import Image

from conftest import png_bytes

from app.utils.local_storage import LocalMediaStore
from app.utils.media_store import StorageError, UploadedImage, get_media_store


def _png(w=40, h=20):
    return UploadedImage(raw=png_bytes(w, h), filename="photo.png", content_type="image/png")


def _file_for(store, stored):
    return os.path.join(store.root, stored.url[len("/uploads/"):])


def test_upload_normalizes_to_jpeg_within_bounds(tmp_path):
    store = LocalMediaStore(str(tmp_path))
    stored = store.upload(_png(2400, 800), "listings/abc/cover")

    assert stored.public_id.startswith("listings/abc/cover/")
    assert stored.url == f"/uploads/{stored.public_id}.jpg"
    with Image.open(_file_for(store, stored)) as img:
        assert img.format == "JPEG"
        assert img.size == (1200, 400)


def test_small_images_are_not_enlarged(tmp_path):
    store = LocalMediaStore(str(tmp_path))
    stored = store.upload(_png(40, 20), "x")
    with Image.open(_file_for(store, stored)) as img:
        assert img.size == (40, 20)


def test_unreadable_bytes_are_stored_as_is(tmp_path):
    store = LocalMediaStore(str(tmp_path))
    stored = store.upload(UploadedImage(raw=b"not an image", filename="a.webp", content_type="image/webp"), "x")
    assert stored.url.endswith(".webp")
    with open(_file_for(store, stored), "rb") as f:
        assert f.read() == b"not an image"


def test_rename_moves_file(tmp_path):
    store = LocalMediaStore(str(tmp_path))
    stored = store.upload(_png(), "listings/tmp/gallery")
    new_id = stored.public_id.replace("listings/tmp/", "listings/7/")

    moved = store.rename(stored.public_id, new_id)
    assert moved.public_id == new_id
    assert moved.url == f"/uploads/{new_id}.jpg"
    assert os.path.exists(_file_for(store, moved))
    assert not os.path.exists(_file_for(store, stored))

    with pytest.raises(StorageError):
        store.rename(stored.public_id, new_id)


def test_destroy_and_delete_resources(tmp_path):
    store = LocalMediaStore(str(tmp_path))
    a = store.upload(_png(), "f")
    b = store.upload(_png(), "f")
    c = store.upload(_png(), "f")

    store.destroy(a.public_id)
    assert not os.path.exists(_file_for(store, a))
    store.destroy(a.public_id)
    store.destroy("")

    store.delete_resources([b.public_id, c.public_id, "f/never-existed"])
    assert os.listdir(os.path.join(store.root, "f")) == []


def test_delete_folder(tmp_path):
    store = LocalMediaStore(str(tmp_path))
    store.upload(_png(), "listings/3/cover")
    store.upload(_png(), "listings/3/gallery")
    keep = store.upload(_png(), "listings/4/cover")

    store.delete_folder("listings/3")
    assert not os.path.exists(os.path.join(store.root, "listings", "3"))
    assert os.path.exists(_file_for(store, keep))
    store.delete_folder("listings/3")


def test_paths_cannot_escape_root(tmp_path):
    store = LocalMediaStore(str(tmp_path / "uploads"))
    with pytest.raises(StorageError):
        store.upload(_png(), "../outside")
    with pytest.raises(StorageError):
        store.delete_folder("")


def test_default_store_is_local_without_cloudinary():
    store = get_media_store()
    assert isinstance(store, LocalMediaStore)
    assert store.root == os.path.abspath(os.environ["UPLOADS_DIR"])


def test_uploads_are_served_and_missing_files_return_204(client):
    store = LocalMediaStore()
    stored = store.upload(_png(), "listings/1/cover")

    resp = client.get(stored.url)
    assert resp.status_code == 200
    assert Image.open(BytesIO(resp.content)).format == "JPEG"

    assert client.get("/uploads/listings/1/cover/gone.jpg").status_code == 204
    assert client.get("/uploads/../../etc/passwd").status_code in (204, 404)
