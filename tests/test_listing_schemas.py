import json
import logging
import os

from app.config import listing_schemas_path
from app.listing_schemas import ListingSchemaRegistry


def _write(path, data, mtime):
    path.write_text(json.dumps(data), encoding="utf-8")
    os.utime(path, (mtime, mtime))


def test_bundled_schema_defaults():
    reg = ListingSchemaRegistry(listing_schemas_path())

    assert reg.fields_for(1) == []
    assert reg.fields_for(4) == []
    assert [f["name"] for f in reg.required_fields(2)] == ["service_type"]
    assert [f["name"] for f in reg.required_fields(3)] == ["event_date", "contact"]
    vehicle = reg.fields_for("5")
    assert [f["name"] for f in vehicle] == ["type", "car_brand", "model", "anio", "kilometre", "price"]
    assert all(f["required"] for f in vehicle)
    assert "Toyota" in vehicle[1]["options"]


def test_unknown_and_non_numeric_ids_have_empty_schema():
    reg = ListingSchemaRegistry(listing_schemas_path())
    assert reg.fields_for(99) == []
    assert reg.fields_for("abc") == []
    assert reg.fields_for(None) == []


def test_callers_get_copies():
    reg = ListingSchemaRegistry(listing_schemas_path())
    fields = reg.fields_for(2)
    fields[0]["required"] = True
    fields.clear()
    assert reg.fields_for(2)[0]["required"] is False


def test_reloads_when_file_changes(tmp_path):
    path = tmp_path / "schemas.json"
    _write(path, {"7": [{"name": "a", "required": True}]}, 1_700_000_000)
    reg = ListingSchemaRegistry(str(path))
    assert [f["name"] for f in reg.fields_for(7)] == ["a"]
    assert reg.fields_for(7)[0]["label"] == "a"

    _write(path, {"7": [{"name": "b", "label": "B", "required": False}]}, 1_700_000_100)
    assert reg.fields_for(7) == [{"name": "b", "label": "B", "type": "text", "required": False}]


def test_missing_file_is_empty_and_logged(tmp_path, caplog):
    reg = ListingSchemaRegistry(str(tmp_path / "nope.json"))
    with caplog.at_level(logging.WARNING, logger="app.listing_schemas"):
        assert reg.fields_for(2) == []
    assert "not found" in caplog.text


def test_corrupt_file_is_empty(tmp_path, caplog):
    path = tmp_path / "schemas.json"
    path.write_text("{not json", encoding="utf-8")
    reg = ListingSchemaRegistry(str(path))
    with caplog.at_level(logging.WARNING, logger="app.listing_schemas"):
        assert reg.fields_for(2) == []
    assert "Failed to load" in caplog.text


def test_malformed_descriptors_are_skipped(tmp_path):
    path = tmp_path / "schemas.json"
    _write(path, {"1": [{"label": "no name"}, "junk", {"name": "ok"}], "2": "not a list"}, 1_700_000_000)
    reg = ListingSchemaRegistry(str(path))
    assert [f["name"] for f in reg.fields_for(1)] == ["ok"]
    assert reg.fields_for(2) == []


def test_schema_endpoint(client):
    resp = client.get("/api/listing-types/3/schema")
    assert resp.status_code == 200
    assert [f["name"] for f in resp.json()] == ["event_date", "event_time", "is_free", "contact"]
    assert client.get("/api/listing-types/abc/schema").json() == []
    assert client.get("/api/listing-types/404/schema").json() == []
