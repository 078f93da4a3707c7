from __future__ import annotations

import logging
import math
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.errors import AuthorizationError, NotFoundError, ValidationError
from app.listing_pipeline import LISTING_STATUSES, find_listing, gallery_from_details
from app.models import Category, Listing

logger = logging.getLogger(__name__)

# Map pins are drawn at a fixed height; width follows the icon's aspect ratio.
MARKER_HEIGHT = 38
DEFAULT_MARKER = "default-pin"


def marker_width(width: int | None, height: int | None, *, target_height: int = MARKER_HEIGHT) -> int:
    w = int(width or target_height)
    h = int(height or target_height)
    if h <= 0:
        return target_height
    # Half-up rounding, as opposed to Python's round() which rounds half to even.
    return int(math.floor(w * target_height / h + 0.5))


def parse_bbox(raw: str | None) -> tuple[float, float, float, float] | None:
    """`minLng,minLat,maxLng,maxLat` -> tuple, or None (logged) when malformed."""
    if not raw or not raw.strip():
        return None
    parts: list[float] = []
    for p in raw.split(","):
        try:
            value = float(p.strip())
        except ValueError:
            continue
        if math.isfinite(value):
            parts.append(value)
    if len(parts) != 4:
        logger.warning("Ignoring malformed bbox %r", raw)
        return None
    return parts[0], parts[1], parts[2], parts[3]


def parse_id_list(raw: str | None) -> list[int]:
    out: list[int] = []
    for p in (raw or "").split(","):
        p = p.strip()
        if p.isdigit():
            out.append(int(p))
    return out


def _category_names(cat: Category | None) -> tuple[str | None, str | None]:
    if cat is None:
        return None, None
    if cat.parent is not None:
        return cat.parent.name, cat.name
    return cat.name, None


def merged_details(details: Mapping[str, Any] | None) -> dict[str, Any]:
    """Sub-location, hours and amenities plus the dynamic fields, flattened for clients."""
    details = details or {}
    out: dict[str, Any] = {
        "provincia_id": details.get("provincia_id"),
        "localidad_id": details.get("localidad_id"),
        "opening_hours": details.get("opening_hours") or "",
        "amenities": list(details.get("amenities") or []),
    }
    out.update(details.get("dynamic_fields") or {})
    return out


def _map_row(listing: Listing) -> dict[str, Any]:
    cat = listing.category
    category_name, subcategory_name = _category_names(cat)
    return {
        "id": listing.id,
        "title": listing.title,
        "slug": listing.slug,
        "latitude": listing.latitude,
        "longitude": listing.longitude,
        "marker_icon_slug": (cat.marker_icon_slug if cat else None) or DEFAULT_MARKER,
        "icon_calculated_width": marker_width(
            cat.icon_original_width if cat else None,
            cat.icon_original_height if cat else None,
        ),
        "icon_calculated_height": MARKER_HEIGHT,
        "cover_image_path": listing.cover_image_path,
        "listing_type_name": listing.listing_type.name if listing.listing_type else None,
        "category_name": category_name,
        "subcategory_name": subcategory_name,
        "address": listing.address,
        "phone": listing.phone,
        "email": listing.email,
        "whatsapp": listing.whatsapp,
        "website": listing.website,
    }


def _with_relations(stmt):
    return stmt.options(
        selectinload(Listing.category).selectinload(Category.parent),
        selectinload(Listing.listing_type),
    )


def map_search(
    db: Session,
    *,
    search: str | None = None,
    bbox: str | None = None,
    category_ids: str | None = None,
    listing_type_ids: str | None = None,
) -> list[dict[str, Any]]:
    stmt = select(Listing).where(Listing.status == "published")

    term = (search or "").strip()
    if len(term) > 2:
        stmt = stmt.where(Listing.title.ilike(f"%{term}%"))

    box = parse_bbox(bbox)
    if box is not None:
        min_lng, min_lat, max_lng, max_lat = box
        stmt = stmt.where(
            Listing.longitude >= min_lng,
            Listing.longitude <= max_lng,
            Listing.latitude >= min_lat,
            Listing.latitude <= max_lat,
        )

    cat_ids = parse_id_list(category_ids)
    if cat_ids:
        stmt = stmt.where(Listing.category_id.in_(cat_ids))
    type_ids = parse_id_list(listing_type_ids)
    if type_ids:
        stmt = stmt.where(Listing.listing_type_id.in_(type_ids))

    rows = db.execute(_with_relations(stmt).order_by(Listing.id)).scalars().all()
    return [_map_row(l) for l in rows]


def public_listing(db: Session, slug: str) -> dict[str, Any]:
    stmt = select(Listing).where(Listing.slug == slug, Listing.status == "published")
    listing = db.execute(_with_relations(stmt)).scalars().first()
    if listing is None:
        raise NotFoundError("Listing not found")

    out = _map_row(listing)
    out.update(
        {
            "description": listing.description,
            "city": listing.city,
            "province": listing.province,
            "details": merged_details(listing.details),
            "gallery_images": [g.url for g in gallery_from_details(listing.details)],
        }
    )
    return out


def my_listings(db: Session, user_id: int) -> list[dict[str, Any]]:
    stmt = (
        select(Listing)
        .where(Listing.user_id == user_id)
        .order_by(Listing.created_at.desc(), Listing.id.desc())
    )
    rows = db.execute(_with_relations(stmt)).scalars().all()
    return [
        {
            "id": l.id,
            "title": l.title,
            "address": l.address,
            "city": l.city,
            "province": l.province,
            "category_name": l.category.name if l.category else None,
            "listing_type_name": l.listing_type.name if l.listing_type else None,
            "status": l.status,
        }
        for l in rows
    ]


def listing_for_edit(db: Session, listing_id: int, user_id: int) -> dict[str, Any]:
    listing = find_listing(db, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    if listing.user_id != user_id:
        raise AuthorizationError("You do not own this listing")

    details = listing.details or {}
    cat = listing.category
    return {
        "id": listing.id,
        "title": listing.title,
        "slug": listing.slug,
        "status": listing.status,
        "category_id": listing.category_id,
        "listing_type_id": listing.listing_type_id,
        "description": listing.description,
        "address": listing.address,
        "city": listing.city,
        "province": listing.province,
        "email": listing.email,
        "whatsapp": listing.whatsapp,
        "phone": listing.phone,
        "website": listing.website,
        "cover_image_path": listing.cover_image_path,
        "lat": listing.latitude,
        "lng": listing.longitude,
        "marker_icon_slug": cat.marker_icon_slug if cat else DEFAULT_MARKER,
        "icon_original_width": cat.icon_original_width if cat else MARKER_HEIGHT,
        "icon_original_height": cat.icon_original_height if cat else MARKER_HEIGHT,
        "details": merged_details(details),
        "gallery_images": [g.url for g in gallery_from_details(details)],
        "cover_image_public_id": details.get("cover_image_public_id") or None,
    }


def moderation_queue(db: Session, status: str | None = None) -> list[dict[str, Any]]:
    stmt = select(Listing).options(selectinload(Listing.owner), selectinload(Listing.category))
    if status:
        s = status.strip().lower()
        if s not in LISTING_STATUSES:
            raise ValidationError("Invalid status", details=[f"status must be one of: {', '.join(LISTING_STATUSES)}"])
        stmt = stmt.where(Listing.status == s)
    rows = db.execute(stmt.order_by(Listing.created_at.desc(), Listing.id.desc())).scalars().all()
    return [
        {
            "id": l.id,
            "title": l.title,
            "slug": l.slug,
            "status": l.status,
            "city": l.city,
            "province": l.province,
            "category_name": l.category.name if l.category else None,
            "owner_email": l.owner.email if l.owner else None,
            "created_at": l.created_at.isoformat() if l.created_at else None,
            "updated_at": l.updated_at.isoformat() if l.updated_at else None,
        }
        for l in rows
    ]
