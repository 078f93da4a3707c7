"""
Listing write pipeline: create, update, delete and moderation status.

Validation always completes before any upload or row write. Storage steps that
happen after the row is written (renames, deletes of replaced images) are
best-effort: a failure is logged and returned to the caller as a warning, never
raised.

Detail document persisted in `listings.details`:

    {
      "provincia_id", "localidad_id", "opening_hours", "amenities": [str],
      "cover_image_public_id", "gallery_public_ids": [str], "gallery_urls": [str],
      "dynamic_fields": {...}
    }
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import re
import unicodedata
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import default_cover_image_url, max_gallery_images, max_upload_image_bytes
from app.errors import AuthorizationError, InternalError, NotFoundError, ValidationError
from app.listing_schemas import ListingSchemaRegistry
from app.models import Category, Listing, ListingType
from app.utils.media_store import MediaStore, StoredImage, UploadedImage, is_accepted_image

logger = logging.getLogger(__name__)

LISTING_STATUSES = ("pending", "published", "rejected")

REQUIRED_CREATE_FIELDS = ("title", "category_id", "listing_type_id", "lat", "lng", "address", "province", "city", "email")

# Primary keys are 32-bit INTEGER columns.
MAX_ROW_ID = 2**31 - 1

# Fixed columns a caller may change on update; the first group may not be blanked.
_REQUIRED_TEXT_COLUMNS = ("title", "address", "city", "province", "email")
_OPTIONAL_TEXT_COLUMNS = ("phone", "whatsapp", "website", "description")

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TRUTHY = {"1", "true", "yes", "on"}


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass
class SyncReport:
    """Collects failures of best-effort storage steps."""

    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


# -----------------------
# Small parsers
# -----------------------
def _blank(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return not v.strip()
    if isinstance(v, (list, tuple, dict)):
        return len(v) == 0
    return False


def _text(v: Any) -> str:
    return str(v if v is not None else "").strip()


def _parse_flag(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return _text(v).lower() in _TRUTHY


def _parse_int(v: Any) -> int | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    try:
        return int(_text(v))
    except ValueError:
        return None


def _parse_float(v: Any) -> float | None:
    if isinstance(v, bool):
        return None
    try:
        out = float(_text(v)) if not isinstance(v, (int, float)) else float(v)
    except ValueError:
        return None
    if out != out or out in (float("inf"), float("-inf")):
        return None
    return out


def slugify(title: str) -> str:
    s = unicodedata.normalize("NFKD", title or "").encode("ascii", "ignore").decode("ascii")
    s = re.sub(r"[^a-z0-9]+", "-", s.lower()).strip("-")
    return s[:200] or "listing"


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def parse_dynamic_details(raw: Any) -> dict[str, Any] | None:
    """JSON text or mapping -> dict; None when nothing was supplied."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError:
            raise ValidationError("Invalid dynamic details format", details=["dynamic_details is not valid JSON"])
        if isinstance(data, dict):
            return data
    raise ValidationError("Invalid dynamic details format", details=["dynamic_details must be a JSON object"])


def _parse_string_list(raw: Any, *, name: str) -> list[str] | None:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    data = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError:
            raise ValidationError(f"Invalid {name} format", details=[f"{name} is not valid JSON"])
    if not isinstance(data, (list, tuple)):
        raise ValidationError(f"Invalid {name} format", details=[f"{name} must be a list"])
    return [str(x) for x in data if x is not None]


def parse_amenities(raw: Any) -> list[str] | None:
    return _parse_string_list(raw, name="amenities")


def validate_dynamic_fields(schema_fields: list[dict[str, Any]], payload: Mapping[str, Any]) -> list[dict[str, str]]:
    """
    Required-field check of a dynamic payload against a listing type schema.

    Returns one error per missing required field (absent, None, blank string or
    empty list). Extra keys are allowed; an empty schema accepts anything.
    """
    errors: list[dict[str, str]] = []
    for f in schema_fields:
        if not f.get("required"):
            continue
        name = f["name"]
        if _blank(payload.get(name)):
            errors.append({"field": name, "message": f"{f.get('label') or name} is required"})
    return errors


def _check_dynamic(schemas: ListingSchemaRegistry, listing_type_id: int, payload: Mapping[str, Any]) -> None:
    errors = validate_dynamic_fields(schemas.required_fields(listing_type_id), payload)
    if errors:
        raise ValidationError("Missing required fields for this listing type", details=errors)


def validate_images(cover: UploadedImage | None, gallery: list[UploadedImage]) -> None:
    problems: list[str] = []
    limit = max_gallery_images()
    if len(gallery) > limit:
        problems.append(f"At most {limit} gallery images are allowed")
    max_bytes = max_upload_image_bytes()
    for label, img in ([("coverImage", cover)] if cover else []) + [("galleryImages", g) for g in gallery]:
        if not img.raw:
            problems.append(f"{label}: {img.filename or 'file'} is empty")
        elif len(img.raw) > max_bytes:
            problems.append(f"{label}: {img.filename or 'file'} exceeds {max_bytes} bytes")
        if not is_accepted_image(img):
            problems.append(f"{label}: {img.filename or 'file'} must be a jpeg, jpg, png or webp image")
    if problems:
        raise ValidationError("Invalid images", details=problems)


def _check_coordinates(lat: Any, lng: Any, problems: list[str]) -> tuple[float | None, float | None]:
    flat = _parse_float(lat)
    flng = _parse_float(lng)
    if flat is None or not -90.0 <= flat <= 90.0:
        problems.append("lat must be a number between -90 and 90")
    if flng is None or not -180.0 <= flng <= 180.0:
        problems.append("lng must be a number between -180 and 180")
    return flat, flng


def _check_id(name: str, v: Any, problems: list[str]) -> int | None:
    out = _parse_int(v)
    if out is None or not 0 < out <= MAX_ROW_ID:
        problems.append(f"{name} must be a positive integer no larger than {MAX_ROW_ID}")
        return None
    return out


def _require_category(db: Session, category_id: int) -> None:
    if db.get(Category, category_id) is None:
        raise ValidationError("Category does not exist", details=[f"category_id {category_id} not found"])


def _require_listing_type(db: Session, listing_type_id: int) -> None:
    if db.get(ListingType, listing_type_id) is None:
        raise ValidationError("Listing type does not exist", details=[f"listing_type_id {listing_type_id} not found"])


# -----------------------
# Detail document
# -----------------------
def gallery_from_details(details: Mapping[str, Any] | None) -> list[StoredImage]:
    """
    Read gallery pairs from a stored detail document.

    Older rows may carry id/url arrays of different lengths; missing ids are
    read as "" so the URL list stays authoritative.
    """
    details = details or {}
    urls = [str(u) for u in (details.get("gallery_urls") or []) if u]
    ids = [str(p or "") for p in (details.get("gallery_public_ids") or [])]
    ids = ids[: len(urls)] + [""] * max(0, len(urls) - len(ids))
    return [StoredImage(url=u, public_id=p) for u, p in zip(urls, ids)]


def _gallery_document(gallery: list[StoredImage]) -> dict[str, list[str]]:
    return {
        "gallery_urls": [g.url for g in gallery],
        "gallery_public_ids": [g.public_id for g in gallery],
    }


def _build_details(
    base: Mapping[str, Any],
    *,
    metadata: Mapping[str, Any],
    cover_public_id: str | None,
    gallery: list[StoredImage],
    dynamic_fields: Mapping[str, Any],
) -> dict[str, Any]:
    doc = dict(base)
    doc.update(metadata)
    doc["cover_image_public_id"] = cover_public_id
    doc.update(_gallery_document(gallery))
    doc["dynamic_fields"] = dict(dynamic_fields)
    return doc


def _metadata_from(fields: Mapping[str, Any], *, amenities: list[str] | None, create: bool) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    if create or "provincia_id" in fields:
        meta["provincia_id"] = fields.get("provincia_id")
    localidad = fields.get("localidad_id", fields.get("city_id"))
    if create or "localidad_id" in fields or "city_id" in fields:
        meta["localidad_id"] = localidad
    if create or "opening_hours" in fields:
        meta["opening_hours"] = _text(fields.get("opening_hours"))
    if amenities is not None:
        meta["amenities"] = amenities
    elif create:
        meta["amenities"] = []
    return meta


# -----------------------
# Create
# -----------------------
def create_listing(
    db: Session,
    store: MediaStore,
    schemas: ListingSchemaRegistry,
    *,
    owner_id: int,
    fields: Mapping[str, Any],
    cover: UploadedImage | None = None,
    gallery: list[UploadedImage] | None = None,
) -> dict[str, Any]:
    gallery_files = list(gallery or [])

    missing = [name for name in REQUIRED_CREATE_FIELDS if _blank(fields.get(name))]
    if missing:
        raise ValidationError("Missing required fields", details=missing)

    email = _text(fields.get("email"))
    if not is_valid_email(email):
        raise ValidationError("Invalid email format", details=["email"])

    problems: list[str] = []
    lat, lng = _check_coordinates(fields.get("lat"), fields.get("lng"), problems)
    category_id = _check_id("category_id", fields.get("category_id"), problems)
    listing_type_id = _check_id("listing_type_id", fields.get("listing_type_id"), problems)
    if problems:
        raise ValidationError("Invalid field values", details=problems)

    dynamic = parse_dynamic_details(fields.get("dynamic_details")) or {}
    amenities = parse_amenities(fields.get("amenities"))
    _check_dynamic(schemas, listing_type_id, dynamic)

    _require_category(db, category_id)
    _require_listing_type(db, listing_type_id)
    validate_images(cover, gallery_files)

    report = SyncReport()
    namespace = uuid.uuid4().hex
    temp_prefix = f"listings/{namespace}/"

    cover_stored: StoredImage | None = None
    stored_gallery: list[StoredImage] = []
    try:
        if cover is not None:
            cover_stored = store.upload(cover, f"{temp_prefix}coverImage")
        for img in gallery_files:
            stored_gallery.append(store.upload(img, f"{temp_prefix}gallery"))
    except Exception as exc:
        logger.exception("Image upload failed while creating listing (namespace=%s)", namespace)
        raise InternalError("Image upload failed") from exc

    metadata = _metadata_from(fields, amenities=amenities, create=True)
    listing = Listing(
        user_id=owner_id,
        title=_text(fields.get("title")),
        category_id=category_id,
        listing_type_id=listing_type_id,
        longitude=lng,
        latitude=lat,
        address=_text(fields.get("address")),
        city=_text(fields.get("city")),
        province=_text(fields.get("province")),
        email=email,
        phone=_text(fields.get("phone")) or None,
        whatsapp=_text(fields.get("whatsapp")) or None,
        website=_text(fields.get("website")) or None,
        description=_text(fields.get("description")) or None,
        status="pending",
        cover_image_path=cover_stored.url if cover_stored else (default_cover_image_url() or None),
        details=_build_details(
            {},
            metadata=metadata,
            cover_public_id=cover_stored.public_id if cover_stored else None,
            gallery=stored_gallery,
            dynamic_fields=dynamic,
        ),
    )
    try:
        db.add(listing)
        db.flush()
        listing.slug = f"{slugify(listing.title)}-{listing.id}"
        db.flush()
    except SQLAlchemyError as exc:
        logger.exception("Insert failed while creating listing (namespace=%s)", namespace)
        raise InternalError("Could not save listing") from exc

    final_prefix = f"listings/{listing.id}/"

    def _move(img: StoredImage) -> StoredImage:
        new_pid = img.public_id.replace(temp_prefix, final_prefix, 1)
        if new_pid == img.public_id:
            return img
        try:
            return store.rename(img.public_id, new_pid)
        except Exception as exc:
            report.warn(f"Listing {listing.id}: could not move image {img.public_id} ({exc.__class__.__name__})")
            return img

    if cover_stored is not None:
        cover_stored = _move(cover_stored)
        listing.cover_image_path = cover_stored.url
    stored_gallery = [_move(g) for g in stored_gallery]

    listing.details = _build_details(
        listing.details or {},
        metadata={},
        cover_public_id=cover_stored.public_id if cover_stored else None,
        gallery=stored_gallery,
        dynamic_fields=dynamic,
    )
    db.flush()

    logger.info("Listing %s created by user %s (%d gallery images)", listing.id, owner_id, len(stored_gallery))
    return {
        "id": listing.id,
        "slug": listing.slug,
        "status": listing.status,
        "coverImageUrl": listing.cover_image_path,
        "galleryUrls": [g.url for g in stored_gallery],
        "warnings": report.warnings,
    }


# -----------------------
# Update
# -----------------------
def find_listing(db: Session, listing_id: int) -> Listing | None:
    if not 0 < listing_id <= MAX_ROW_ID:
        return None
    return db.get(Listing, listing_id)


def _owned_listing(db: Session, listing_id: int, owner_id: int) -> Listing:
    listing = find_listing(db, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    if listing.user_id != owner_id:
        raise AuthorizationError("You do not own this listing")
    return listing


def update_listing(
    db: Session,
    store: MediaStore,
    schemas: ListingSchemaRegistry,
    *,
    listing_id: int,
    owner_id: int,
    fields: Mapping[str, Any],
    cover: UploadedImage | None = None,
    gallery: list[UploadedImage] | None = None,
) -> dict[str, Any]:
    """
    Apply a partial update. Only supplied keys of `fields` change; absent keys
    keep their stored values.
    """
    listing = _owned_listing(db, listing_id, owner_id)
    gallery_files = list(gallery or [])
    old_details: dict[str, Any] = dict(listing.details or {})

    problems: list[str] = []
    blanked = [name for name in _REQUIRED_TEXT_COLUMNS if name in fields and _blank(fields.get(name))]
    if blanked:
        raise ValidationError("Required fields cannot be empty", details=blanked)

    if "email" in fields and not is_valid_email(_text(fields.get("email"))):
        raise ValidationError("Invalid email format", details=["email"])

    has_lat, has_lng = "lat" in fields, "lng" in fields
    lat = lng = None
    if has_lat != has_lng:
        problems.append("lat and lng must be supplied together")
    elif has_lat:
        lat, lng = _check_coordinates(fields.get("lat"), fields.get("lng"), problems)

    category_id = None
    if "category_id" in fields:
        category_id = _check_id("category_id", fields.get("category_id"), problems)

    listing_type_id = listing.listing_type_id
    requested_type = _parse_int(fields.get("listingTypeId", fields.get("listing_type_id")))
    if requested_type is not None:
        listing_type_id = _check_id("listingTypeId", requested_type, problems)
    if problems:
        raise ValidationError("Invalid field values", details=problems)

    supplied_dynamic = parse_dynamic_details(fields.get("dynamic_details"))
    dynamic = supplied_dynamic if supplied_dynamic is not None else dict(old_details.get("dynamic_fields") or {})
    amenities = parse_amenities(fields.get("amenities"))
    to_delete = _parse_string_list(fields.get("galleryImagesToDelete"), name="galleryImagesToDelete") or []
    _check_dynamic(schemas, listing_type_id, dynamic)

    if category_id is not None:
        _require_category(db, category_id)
    if listing_type_id != listing.listing_type_id:
        _require_listing_type(db, listing_type_id)
    validate_images(cover, gallery_files)

    report = SyncReport()
    prefix = f"listings/{listing.id}/"

    # Cover
    cover_url = listing.cover_image_path
    cover_public_id = old_details.get("cover_image_public_id") or None
    if cover is not None:
        destroyed = False
        if cover_public_id:
            try:
                store.destroy(cover_public_id)
                destroyed = True
            except Exception as exc:
                report.warn(f"Listing {listing.id}: could not delete old cover {cover_public_id} ({exc.__class__.__name__})")
        try:
            new_cover = store.upload(cover, f"{prefix}coverImage")
            cover_url, cover_public_id = new_cover.url, new_cover.public_id
        except Exception as exc:
            report.warn(f"Listing {listing.id}: could not upload cover {cover.filename} ({exc.__class__.__name__})")
            # Never keep a reference to an object that was just destroyed.
            if destroyed:
                cover_url, cover_public_id = None, None
    elif _parse_flag(fields.get("deleteCoverImage")):
        if cover_public_id:
            try:
                store.destroy(cover_public_id)
                cover_url, cover_public_id = None, None
            except Exception as exc:
                report.warn(f"Listing {listing.id}: could not delete cover {cover_public_id} ({exc.__class__.__name__})")
        else:
            cover_url = None

    # Gallery
    current = gallery_from_details(old_details)
    doomed = set(to_delete)
    removed = [g for g in current if g.url in doomed]
    kept = [g for g in current if g.url not in doomed]
    removed_ids = [g.public_id for g in removed if g.public_id]
    if removed_ids:
        try:
            store.delete_resources(removed_ids)
        except Exception as exc:
            report.warn(f"Listing {listing.id}: could not delete gallery images {removed_ids} ({exc.__class__.__name__})")
    for img in gallery_files:
        try:
            kept.append(store.upload(img, f"{prefix}gallery"))
        except Exception as exc:
            report.warn(f"Listing {listing.id}: could not upload gallery image {img.filename} ({exc.__class__.__name__})")

    # Fixed columns
    for name in _REQUIRED_TEXT_COLUMNS:
        if name in fields:
            setattr(listing, name, _text(fields.get(name)))
    for name in _OPTIONAL_TEXT_COLUMNS:
        if name in fields:
            setattr(listing, name, _text(fields.get(name)) or None)
    if lat is not None and lng is not None:
        listing.latitude, listing.longitude = lat, lng
    if category_id is not None:
        listing.category_id = category_id
    listing.listing_type_id = listing_type_id
    listing.cover_image_path = cover_url
    listing.details = _build_details(
        old_details,
        metadata=_metadata_from(fields, amenities=amenities, create=False),
        cover_public_id=cover_public_id,
        gallery=kept,
        dynamic_fields=dynamic,
    )
    listing.updated_at = _utcnow()
    db.flush()

    logger.info("Listing %s updated by user %s", listing.id, owner_id)
    return {"message": "Listing updated", "warnings": report.warnings}


# -----------------------
# Delete
# -----------------------
def delete_listing(db: Session, store: MediaStore, *, listing_id: int, owner_id: int) -> dict[str, Any]:
    listing = _owned_listing(db, listing_id, owner_id)
    details = dict(listing.details or {})
    report = SyncReport()

    cover_public_id = details.get("cover_image_public_id")
    if cover_public_id:
        try:
            store.destroy(cover_public_id)
        except Exception as exc:
            report.warn(f"Listing {listing.id}: could not delete cover {cover_public_id} ({exc.__class__.__name__})")

    gallery_ids = [g.public_id for g in gallery_from_details(details) if g.public_id]
    if gallery_ids:
        try:
            store.delete_resources(gallery_ids)
        except Exception as exc:
            report.warn(f"Listing {listing.id}: could not delete gallery images ({exc.__class__.__name__})")

    try:
        store.delete_folder(f"listings/{listing.id}")
    except Exception as exc:
        report.warn(f"Listing {listing.id}: could not delete storage folder ({exc.__class__.__name__})")

    db.delete(listing)
    db.flush()
    logger.info("Listing %s deleted by user %s", listing_id, owner_id)
    return {"message": "Listing deleted", "warnings": report.warnings}


# -----------------------
# Moderation
# -----------------------
def set_listing_status(db: Session, *, listing_id: int, status: Any) -> dict[str, Any]:
    new_status = _text(status).lower()
    if new_status not in LISTING_STATUSES:
        raise ValidationError("Invalid status", details=[f"status must be one of: {', '.join(LISTING_STATUSES)}"])

    if not 0 < listing_id <= MAX_ROW_ID:
        raise NotFoundError("Listing not found")
    res = db.execute(
        sa_update(Listing).where(Listing.id == listing_id).values(status=new_status, updated_at=_utcnow())
    )
    if (res.rowcount or 0) == 0:
        raise NotFoundError("Listing not found")
    logger.info("Listing %s status set to %s", listing_id, new_status)
    return {"id": listing_id, "status": new_status}
