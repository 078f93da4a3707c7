import pytest

from conftest import RecordingStore, png_bytes
from app.config import listing_schemas_path
from app.db import SessionLocal
from app.errors import NotFoundError, ValidationError
from app.listing_pipeline import (
    create_listing,
    gallery_from_details,
    parse_amenities,
    parse_dynamic_details,
    set_listing_status,
    slugify,
    validate_dynamic_fields,
    validate_images,
)
from app.listing_schemas import ListingSchemaRegistry
from app.models import Listing
from app.utils.media_store import StoredImage, UploadedImage


SCHEMA = [
    {"name": "service_type", "label": "Service type", "type": "text", "required": True},
    {"name": "salary_range", "label": "Price range", "type": "text", "required": False},
    {"name": "tags", "label": "Tags", "type": "text", "required": True},
]


def _png(name="a.png", raw=None, content_type="image/png"):
    return UploadedImage(raw=png_bytes() if raw is None else raw, filename=name, content_type=content_type)


@pytest.mark.parametrize("value", [None, "", "   ", []])
def test_blank_values_count_as_missing(value):
    errors = validate_dynamic_fields(SCHEMA, {"service_type": value, "tags": ["x"]})
    assert errors == [{"field": "service_type", "message": "Service type is required"}]


def test_complete_payload_with_extra_keys_is_valid():
    payload = {"service_type": "plumbing", "tags": ["24h"], "unrelated": 1}
    assert validate_dynamic_fields(SCHEMA, payload) == []


def test_empty_schema_accepts_anything():
    assert validate_dynamic_fields([], {}) == []
    assert validate_dynamic_fields([], {"x": None}) == []


def test_parse_dynamic_details():
    assert parse_dynamic_details(None) is None
    assert parse_dynamic_details("  ") is None
    assert parse_dynamic_details('{"a": "x"}') == {"a": "x"}
    assert parse_dynamic_details({"a": "x"}) == {"a": "x"}
    with pytest.raises(ValidationError):
        parse_dynamic_details("{broken")
    with pytest.raises(ValidationError):
        parse_dynamic_details("[1, 2]")


def test_parse_amenities():
    assert parse_amenities(None) is None
    assert parse_amenities('["wifi", "parking"]') == ["wifi", "parking"]
    assert parse_amenities(["wifi", 3]) == ["wifi", "3"]
    with pytest.raises(ValidationError):
        parse_amenities('{"wifi": true}')
    with pytest.raises(ValidationError):
        parse_amenities("wifi,parking")


def test_slugify():
    assert slugify("Café del Sol!") == "cafe-del-sol"
    assert slugify("  --  ") == "listing"


def test_legacy_gallery_arrays_are_padded():
    details = {"gallery_urls": ["u1", "u2", "u3"], "gallery_public_ids": ["p1"]}
    assert gallery_from_details(details) == [
        StoredImage("u1", "p1"),
        StoredImage("u2", ""),
        StoredImage("u3", ""),
    ]
    assert gallery_from_details({"gallery_urls": ["u1"], "gallery_public_ids": ["p1", "p2"]}) == [StoredImage("u1", "p1")]
    assert gallery_from_details(None) == []


def test_validate_images_limits(monkeypatch):
    validate_images(_png(), [_png("b.webp", content_type="image/webp")])

    with pytest.raises(ValidationError) as exc:
        validate_images(None, [_png(f"{i}.png") for i in range(7)])
    assert "At most 6" in exc.value.details[0]

    with pytest.raises(ValidationError):
        validate_images(_png("a.png", raw=b""), [])

    # Extension and MIME type must both be acceptable.
    with pytest.raises(ValidationError):
        validate_images(_png("a.gif"), [])
    with pytest.raises(ValidationError):
        validate_images(_png("a.png", content_type="application/pdf"), [])

    monkeypatch.setenv("MAX_UPLOAD_IMAGE_BYTES", "10")
    with pytest.raises(ValidationError) as exc:
        validate_images(_png(), [])
    assert "exceeds 10 bytes" in exc.value.details[0]


def test_create_accepts_mapping_payloads(catalog, owner):
    store = RecordingStore()
    fields = {
        "title": "Classic Car",
        "category_id": catalog["food"],
        "listing_type_id": 5,
        "lat": -34.6,
        "lng": -58.4,
        "address": "Av. 1",
        "province": "BA",
        "city": "CABA",
        "email": "cars@example.com",
        "amenities": ["garage"],
        "dynamic_details": {
            "type": "Car",
            "car_brand": "Ford",
            "model": "Falcon",
            "anio": 1978,
            "kilometre": "120000",
            "price": "9000",
        },
    }
    with SessionLocal() as db:
        out = create_listing(db, store, ListingSchemaRegistry(listing_schemas_path()), owner_id=owner[0], fields=fields)
        db.commit()

    assert out["slug"] == f"classic-car-{out['id']}"
    with SessionLocal() as db:
        row = db.get(Listing, out["id"])
        assert row.details["dynamic_fields"]["anio"] == 1978
        assert row.details["amenities"] == ["garage"]
        assert (row.longitude, row.latitude) == (-58.4, -34.6)


def test_create_missing_vehicle_fields_lists_each(catalog, owner):
    store = RecordingStore()
    fields = {
        "title": "Car",
        "category_id": catalog["food"],
        "listing_type_id": "5",
        "lat": "1",
        "lng": "1",
        "address": "a",
        "province": "p",
        "city": "c",
        "email": "a@b.co",
        "dynamic_details": '{"type": "Car", "model": ""}',
    }
    with SessionLocal() as db, pytest.raises(ValidationError) as exc:
        create_listing(db, store, ListingSchemaRegistry(listing_schemas_path()), owner_id=owner[0], fields=fields, cover=_png())
    assert [d["field"] for d in exc.value.details] == ["car_brand", "model", "anio", "kilometre", "price"]
    assert store.calls == []


def test_set_listing_status_checks_value_first(catalog):
    with SessionLocal() as db:
        with pytest.raises(ValidationError):
            set_listing_status(db, listing_id=1, status="archived")
        with pytest.raises(NotFoundError):
            set_listing_status(db, listing_id=1, status="published")
