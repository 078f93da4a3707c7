import logging

import pytest

from app.listing_queries import marker_width, merged_details, parse_bbox, parse_id_list


@pytest.mark.parametrize(
    "width,height,expected",
    [
        (38, 38, 38),
        (76, 38, 76),
        (60, 40, 57),
        # Half-up: 1/76*38 == 0.5 rounds to 1, not to the even 0.
        (1, 76, 1),
        (3, 76, 2),
        (None, None, 38),
        (50, 0, 50),
    ],
)
def test_marker_width(width, height, expected):
    assert marker_width(width, height) == expected


def test_parse_bbox(caplog):
    assert parse_bbox("0,0,20,20") == (0.0, 0.0, 20.0, 20.0)
    assert parse_bbox(" -58.5, -34.7 ,-58.3,-34.5") == (-58.5, -34.7, -58.3, -34.5)
    assert parse_bbox(None) is None
    with caplog.at_level(logging.WARNING, logger="app.listing_queries"):
        assert parse_bbox("1,2,3") is None
        assert parse_bbox("a,b,c,d") is None
        assert parse_bbox("nan,0,20,20") is None
        assert parse_bbox("0,0,inf,20") is None
    assert "malformed bbox" in caplog.text


def test_parse_id_list():
    assert parse_id_list("1, 2,x,,3") == [1, 2, 3]
    assert parse_id_list(None) == []


def test_merged_details_flattens_dynamic_fields():
    details = {
        "provincia_id": "6",
        "localidad_id": "60441",
        "amenities": ["wifi"],
        "cover_image_public_id": "c",
        "gallery_urls": ["u"],
        "dynamic_fields": {"event_date": "2026-01-01"},
    }
    assert merged_details(details) == {
        "provincia_id": "6",
        "localidad_id": "60441",
        "opening_hours": "",
        "amenities": ["wifi"],
        "event_date": "2026-01-01",
    }
    assert merged_details(None)["amenities"] == []
