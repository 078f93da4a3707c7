import os
import shutil
import tempfile
from io import BytesIO

import pytest

# Configure the app before it is imported anywhere: config is read at import time.
_TMP = tempfile.mkdtemp(prefix="atlas-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["APP_ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOADS_DIR"] = os.path.join(_TMP, "uploads")
os.environ["ICONS_DIR"] = os.path.join(_TMP, "icons")
os.environ["DEFAULT_COVER_IMAGE_URL"] = ""
# Empty (not unset) so a developer .env cannot switch tests to Cloudinary.
for _name in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET", "ADMIN_EMAIL", "ADMIN_PASSWORD"):
    os.environ[_name] = ""

from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402

from app.db import ENGINE, SessionLocal  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Base, Category, Listing, ListingType, User  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from app.security import create_access_token, hash_password  # noqa: E402
from app.utils.media_store import StoredImage, get_media_store  # noqa: E402


DEFAULT_LISTING_TYPES = [
    (1, "Local business", "local-business"),
    (2, "Professional service", "professional-service"),
    (3, "Event", "event"),
    (4, "Point of interest", "point-of-interest"),
    (5, "Vehicles", "vehicles"),
]


def png_bytes(width=40, height=20, color=(200, 30, 30)):
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class RecordingStore:
    """In-memory MediaStore that records every call; methods listed in `fail` raise."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []
        self._n = 0

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise RuntimeError(f"{name} failed")

    def calls_to(self, name):
        return [c for c in self.calls if c[0] == name]

    def upload(self, image, folder):
        self._record("upload", folder, image.filename)
        self._n += 1
        pid = f"{folder}/img{self._n}"
        return StoredImage(url=f"https://cdn.test/{pid}.jpg", public_id=pid)

    def rename(self, public_id, new_public_id):
        self._record("rename", public_id, new_public_id)
        return StoredImage(url=f"https://cdn.test/{new_public_id}.jpg", public_id=new_public_id)

    def destroy(self, public_id):
        self._record("destroy", public_id)

    def delete_resources(self, public_ids):
        self._record("delete_resources", list(public_ids))

    def delete_folder(self, folder):
        self._record("delete_folder", folder)


@pytest.fixture(autouse=True)
def _fresh_state():
    Base.metadata.drop_all(ENGINE)
    Base.metadata.create_all(ENGINE)
    limiter.reset()
    app.dependency_overrides.clear()
    for d in (os.environ["UPLOADS_DIR"], os.environ["ICONS_DIR"]):
        shutil.rmtree(d, ignore_errors=True)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def _make_user(email, role="user", password="secret123"):
    with SessionLocal() as s:
        user = User(email=email, role=role, password_hash=hash_password(password))
        s.add(user)
        s.commit()
        return user.id


@pytest.fixture
def make_user():
    """Create a user; returns (user_id, auth headers)."""

    def _factory(email="owner@example.com", role="user"):
        user_id = _make_user(email, role)
        token = create_access_token(user_id=user_id, role=role)
        return user_id, {"Authorization": f"Bearer {token}"}

    return _factory


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com")


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", role="admin")


@pytest.fixture
def catalog():
    """Listing types 1..5 plus a top-level category and one subcategory."""
    with SessionLocal() as s:
        for i, name, slug in DEFAULT_LISTING_TYPES:
            s.add(ListingType(id=i, name=name, slug=slug))
        food = Category(name="Food", slug="food", icon_original_width=76, icon_original_height=38, marker_icon_slug="food")
        s.add(food)
        s.flush()
        pizza = Category(name="Pizza", slug="pizza", parent_id=food.id)
        s.add(pizza)
        s.commit()
        return {"food": food.id, "pizza": pizza.id}


@pytest.fixture
def recording_store():
    store = RecordingStore()
    app.dependency_overrides[get_media_store] = lambda: store
    return store


@pytest.fixture
def failing_store():
    store = RecordingStore(fail={"rename", "destroy", "delete_resources", "delete_folder"})
    app.dependency_overrides[get_media_store] = lambda: store
    return store


@pytest.fixture
def listing_form(catalog):
    def _form(**overrides):
        data = {
            "title": "Corner Pizza",
            "category_id": str(catalog["pizza"]),
            "listing_type_id": "1",
            "lat": "10",
            "lng": "10",
            "address": "Main St 1",
            "province": "Buenos Aires",
            "city": "La Plata",
            "email": "shop@example.com",
            "phone": "123",
            "description": "Wood oven",
            "provincia_id": "6",
            "city_id": "6441",
            "opening_hours": "9-18",
            "amenities": '["wifi", "parking"]',
        }
        data.update(overrides)
        return {k: v for k, v in data.items() if v is not None}

    return _form


@pytest.fixture
def create_listing(client, owner, listing_form):
    """POST a listing as `owner`; returns the response JSON (asserts 201)."""

    def _create(headers=None, files=None, **overrides):
        resp = client.post("/api/listings", data=listing_form(**overrides), files=files, headers=headers or owner[1])
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _create


@pytest.fixture
def fetch_listing():
    """Read a listing row through a fresh session (None when deleted)."""

    def _fetch(listing_id):
        with SessionLocal() as s:
            return s.get(Listing, listing_id)

    return _fetch


@pytest.fixture
def publish():
    def _publish(listing_id):
        with SessionLocal() as s:
            s.get(Listing, listing_id).status = "published"
            s.commit()

    return _publish
