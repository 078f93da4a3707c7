from __future__ import annotations

import logging
import mimetypes
import os
import re
from typing import Annotated, Any

from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.trustedhost import TrustedHostMiddleware

import jwt

from app.config import (
    admin_seed_email,
    admin_seed_password,
    allowed_hosts,
    app_env,
    configure_logging,
    cors_origins,
    enforce_secure_secrets,
    is_debug,
    uploads_dir,
)
from app.db import ENGINE, session_scope
from app.errors import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from app.listing_pipeline import (
    MAX_ROW_ID,
    create_listing,
    delete_listing,
    is_valid_email,
    set_listing_status,
    update_listing,
)
from app.listing_queries import listing_for_edit, map_search, moderation_queue, my_listings, public_listing
from app.listing_schemas import ListingSchemaRegistry, get_listing_schemas
from app.models import Base, Category, Listing, ListingType, User
from app.rate_limit import limiter
from app.security import create_access_token, decode_access_token, hash_password, verify_password
from app.utils.icons import icon_dimensions, icon_path, remove_icon_files, save_icon
from app.utils.media_store import MediaStore, UploadedImage, get_media_store


configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Atlas Directory API")

# Production hardening: ensure we don't run with dangerous defaults.
enforce_secure_secrets()

# Optional host protection (recommend configuring ALLOWED_HOSTS in prod).
app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts())


@app.middleware("http")
async def _security_headers(request, call_next):
    resp = await call_next(request)
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "no-referrer")
    resp.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    return resp


app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------
# Error rendering
# -----------------------
@app.exception_handler(ApiError)
async def _api_error(request: Request, exc: ApiError):
    if isinstance(exc, InternalError) and not is_debug():
        return JSONResponse(status_code=exc.status_code, content={"error": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in (e.get("loc") or ())[1:]), "message": str(e.get("msg") or "")}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content=ValidationError("Invalid request", details=details).to_dict())


@app.exception_handler(IntegrityError)
async def _integrity_error(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(status_code=409, content=ConflictError("Resource conflicts with existing data").to_dict())


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = f"{exc.__class__.__name__}: {exc}" if is_debug() else "Internal server error"
    return JSONResponse(status_code=500, content={"error": message})


# -----------------------
# Static media
# -----------------------
@app.get("/uploads/{path:path}", include_in_schema=False)
def uploads_proxy(path: str):
    """
    Serve locally-stored uploads from disk.

    Rows may reference files that no longer exist (ephemeral disks, manual
    cleanup). To avoid noisy 404s for these stale URLs we return 204.
    """
    rel = (path or "").lstrip("/").replace("\\", "/")
    if not rel:
        return Response(status_code=204)
    base = os.path.abspath(uploads_dir())
    full = os.path.abspath(os.path.join(base, rel))
    if os.path.commonpath([base, full]) != base or not os.path.isfile(full):
        return Response(status_code=204)
    return FileResponse(full)


@app.get("/icons/{filename}", include_in_schema=False)
def icons(filename: str):
    path = icon_path(filename)
    if not path:
        raise NotFoundError("Icon not found")
    return FileResponse(path)


# -----------------------
# Startup
# -----------------------
@app.on_event("startup")
def init_database() -> None:
    # Migrations own the schema everywhere except the sqlite dev fallback.
    if app_env() == "local":
        Base.metadata.create_all(ENGINE)


@app.on_event("startup")
def seed_admin_user() -> None:
    """Create the administrator account from ADMIN_EMAIL / ADMIN_PASSWORD when both are set."""
    email = admin_seed_email()
    password = admin_seed_password()
    if not email or not password:
        return
    try:
        with session_scope() as db:
            existing = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if existing:
                return
            db.add(User(email=email, role="admin", password_hash=hash_password(password)))
        logger.info("Seeded admin user %s", email)
    except SQLAlchemyError:
        # If the DB isn't migrated yet, skip and seed on a later start.
        logger.warning("Admin seed skipped: database not ready")


# -----------------------
# Dependencies
# -----------------------
def get_db():
    with session_scope() as db:
        yield db


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    if not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_current_user(
    db: Annotated[Session, Depends(get_db)],
    authorization: Annotated[str | None, Header()] = None,
) -> User:
    token = _bearer_token(authorization)
    if not token:
        raise AuthenticationError("Not authenticated")
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub") or 0)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except (jwt.PyJWTError, ValueError):
        raise AuthenticationError("Invalid token")

    user = db.get(User, user_id)
    if not user:
        raise AuthenticationError("User not found")
    return user


def require_admin(me: Annotated[User, Depends(get_current_user)]) -> User:
    if (me.role or "").lower() != "admin":
        logger.warning("Admin access denied for user %s (role=%s)", me.id, me.role)
        raise AuthorizationError("Admin access required")
    return me


def _client_ip(request: Request) -> str:
    fwd = (request.headers.get("x-forwarded-for") or "").split(",", 1)[0].strip()
    if fwd:
        return fwd
    return request.client.host if request.client else "unknown"


def _read_upload(file: UploadFile | None) -> UploadedImage | None:
    if file is None or not (file.filename or "").strip():
        return None
    raw = file.file.read()
    content_type = (file.content_type or "").lower().strip()
    if not content_type or content_type == "application/octet-stream":
        content_type = (mimetypes.guess_type(file.filename or "")[0] or content_type).lower()
    return UploadedImage(raw=raw, filename=file.filename or "", content_type=content_type)


def _read_uploads(files: list[UploadFile] | None) -> list[UploadedImage]:
    out: list[UploadedImage] = []
    for f in files or []:
        img = _read_upload(f)
        if img is not None:
            out.append(img)
    return out


def _provided(**fields: Any) -> dict[str, Any]:
    """Form fields the client actually sent."""
    return {k: v for k, v in fields.items() if v is not None}


_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def _require_name_and_slug(name: str | None, slug: str | None) -> tuple[str, str]:
    name = (name or "").strip()
    slug = (slug or "").strip().lower()
    missing = [k for k, v in (("name", name), ("slug", slug)) if not v]
    if missing:
        raise ValidationError("Name and slug are required", details=missing)
    if not _SLUG_RE.match(slug):
        raise ValidationError("Invalid slug", details=["slug may only contain a-z, 0-9, '-' and '_'"])
    return name, slug


# -----------------------
# Schemas
# -----------------------
class RegisterIn(BaseModel):
    email: str
    password: str


class LoginIn(BaseModel):
    email: str
    password: str


class ListingTypeIn(BaseModel):
    name: str = ""
    slug: str = ""


class StatusIn(BaseModel):
    status: str = ""


def _user_out(u: User) -> dict[str, Any]:
    return {"id": u.id, "email": u.email, "role": u.role}


def _category_out(c: Category) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "parent_id": c.parent_id,
        "marker_icon_slug": c.marker_icon_slug,
        "icon_original_width": c.icon_original_width,
        "icon_original_height": c.icon_original_height,
    }


def _listing_type_out(t: ListingType) -> dict[str, Any]:
    return {"id": t.id, "name": t.name, "slug": t.slug}


# -----------------------
# Health
# -----------------------
@app.get("/health")
def health():
    return {"ok": True}


# -----------------------
# Auth
# -----------------------
@app.post("/api/auth/register", status_code=201)
def register(data: RegisterIn, db: Annotated[Session, Depends(get_db)]):
    email = data.email.strip().lower()
    if not is_valid_email(email):
        raise ValidationError("Invalid email", details=["email"])
    if len(data.password or "") < 6:
        raise ValidationError("Password must be at least 6 characters", details=["password"])

    exists = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if exists:
        raise ConflictError("User already exists")

    user = User(email=email, role="user", password_hash=hash_password(data.password))
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        # Concurrent double-submits can still hit the unique constraint.
        db.rollback()
        raise ConflictError("User already exists")
    return _user_out(user)


@app.post("/api/auth/login")
def login(data: LoginIn, request: Request, db: Annotated[Session, Depends(get_db)]):
    email = data.email.strip().lower()
    limiter.hit(key=f"login:{email}:{_client_ip(request)}", limit=10, window_seconds=300, detail="Too many login attempts")

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not verify_password(data.password or "", user.password_hash):
        raise AuthenticationError("Invalid credentials")
    return {"accessToken": create_access_token(user_id=user.id, role=user.role), "user": _user_out(user)}


@app.get("/api/auth/me")
def me(me: Annotated[User, Depends(get_current_user)]):
    return _user_out(me)


# -----------------------
# Categories
# -----------------------
@app.get("/api/categories")
def list_top_categories(db: Annotated[Session, Depends(get_db)]):
    rows = db.execute(select(Category).where(Category.parent_id.is_(None)).order_by(Category.name)).scalars().all()
    return [_category_out(c) for c in rows]


@app.get("/api/categories/all")
def list_all_categories(db: Annotated[Session, Depends(get_db)]):
    rows = db.execute(select(Category).order_by(Category.parent_id.is_not(None), Category.parent_id, Category.name)).scalars().all()
    return [_category_out(c) for c in rows]


@app.get("/api/categories/{parent_id:int}/subcategories")
def list_subcategories(parent_id: int, db: Annotated[Session, Depends(get_db)]):
    rows = db.execute(select(Category).where(Category.parent_id == parent_id).order_by(Category.name)).scalars().all()
    return [_category_out(c) for c in rows]


def _resolve_parent(db: Session, raw: str | None, *, category: Category | None = None) -> int | None:
    raw = (raw or "").strip()
    if not raw or raw.lower() in {"null", "none"}:
        return None
    try:
        parent_id = int(raw)
    except ValueError:
        raise ValidationError("Invalid parent category", details=["parent_id must be an integer"])
    if not 0 < parent_id <= MAX_ROW_ID:
        raise ValidationError("Parent category not found", details=[f"parent_id {parent_id} not found"])
    if category is not None and parent_id == category.id:
        raise ValidationError("A category cannot be its own parent")
    parent = db.get(Category, parent_id)
    if parent is None:
        raise ValidationError("Parent category not found", details=[f"parent_id {parent_id} not found"])
    if parent.parent_id is not None:
        raise ValidationError("Subcategories cannot have subcategories")
    if category is not None and category.children:
        raise ValidationError("A category with subcategories cannot become a subcategory")
    return parent_id


def _ensure_category_slug_free(db: Session, slug: str, *, exclude_id: int | None = None) -> None:
    stmt = select(Category.id).where(Category.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError("Slug already exists", details=["slug"])


@app.post("/api/categories", status_code=201)
def create_category(
    _: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    name: Annotated[str | None, Form()] = None,
    slug: Annotated[str | None, Form()] = None,
    parent_id: Annotated[str | None, Form()] = None,
    icon_file: Annotated[UploadFile | None, File(alias="iconFile")] = None,
):
    name, slug = _require_name_and_slug(name, slug)
    parent = _resolve_parent(db, parent_id)
    _ensure_category_slug_free(db, slug)
    icon = _read_upload(icon_file)

    cat = Category(name=name, slug=slug, parent_id=parent)
    if icon is not None:
        cat.icon_original_width, cat.icon_original_height = icon_dimensions(icon.raw)
        save_icon(raw=icon.raw, slug=slug, filename=icon.filename, content_type=icon.content_type)
        cat.marker_icon_slug = slug
    db.add(cat)
    db.flush()
    logger.info("Category %s (%s) created", cat.id, cat.slug)
    return _category_out(cat)


@app.patch("/api/categories/{category_id:int}")
def update_category(
    category_id: int,
    _: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    name: Annotated[str | None, Form()] = None,
    slug: Annotated[str | None, Form()] = None,
    parent_id: Annotated[str | None, Form()] = None,
    marker_icon_slug: Annotated[str | None, Form()] = None,
    icon_file: Annotated[UploadFile | None, File(alias="iconFile")] = None,
):
    cat = db.get(Category, category_id)
    if not cat:
        raise NotFoundError("Category not found")
    name, slug = _require_name_and_slug(name, slug)
    parent = _resolve_parent(db, parent_id, category=cat)
    _ensure_category_slug_free(db, slug, exclude_id=cat.id)
    icon = _read_upload(icon_file)

    old_marker = cat.marker_icon_slug
    if icon is not None:
        cat.icon_original_width, cat.icon_original_height = icon_dimensions(icon.raw)
        save_icon(raw=icon.raw, slug=slug, filename=icon.filename, content_type=icon.content_type)
        cat.marker_icon_slug = slug
        if old_marker and old_marker not in {slug, "default-pin"}:
            remove_icon_files(old_marker)
    elif (marker_icon_slug or "").strip():
        cat.marker_icon_slug = marker_icon_slug.strip()

    cat.name = name
    cat.slug = slug
    cat.parent_id = parent
    db.flush()
    return _category_out(cat)


@app.delete("/api/categories/{category_id:int}")
def delete_category(
    category_id: int,
    _: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    cat = db.get(Category, category_id)
    if not cat:
        raise NotFoundError("Category not found")
    if db.execute(select(Category.id).where(Category.parent_id == cat.id)).first():
        raise ConflictError("Delete the subcategories of this category first")
    in_use = db.execute(select(func.count(Listing.id)).where(Listing.category_id == cat.id)).scalar_one()
    if in_use:
        raise ConflictError("Category is used by listings", details=[f"{in_use} listing(s)"])
    db.delete(cat)
    db.flush()
    return {"message": "Category deleted"}


# -----------------------
# Listing types
# -----------------------
@app.get("/api/listing-types")
def list_listing_types(db: Annotated[Session, Depends(get_db)]):
    rows = db.execute(select(ListingType).order_by(ListingType.name)).scalars().all()
    return [_listing_type_out(t) for t in rows]


@app.get("/api/listing-types/{listing_type_id}/schema")
def listing_type_schema(
    listing_type_id: str,
    schemas: Annotated[ListingSchemaRegistry, Depends(get_listing_schemas)],
):
    return schemas.fields_for(listing_type_id)


def _ensure_listing_type_slug_free(db: Session, slug: str, *, exclude_id: int | None = None) -> None:
    stmt = select(ListingType.id).where(ListingType.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(ListingType.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError("Slug already exists", details=["slug"])


@app.post("/api/listing-types", status_code=201)
def create_listing_type(
    data: ListingTypeIn,
    _: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    name, slug = _require_name_and_slug(data.name, data.slug)
    _ensure_listing_type_slug_free(db, slug)
    t = ListingType(name=name, slug=slug)
    db.add(t)
    db.flush()
    return _listing_type_out(t)


@app.patch("/api/listing-types/{listing_type_id:int}")
def update_listing_type(
    listing_type_id: int,
    data: ListingTypeIn,
    _: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    t = db.get(ListingType, listing_type_id)
    if not t:
        raise NotFoundError("Listing type not found")
    name, slug = _require_name_and_slug(data.name, data.slug)
    _ensure_listing_type_slug_free(db, slug, exclude_id=t.id)
    t.name = name
    t.slug = slug
    db.flush()
    return _listing_type_out(t)


@app.delete("/api/listing-types/{listing_type_id:int}")
def delete_listing_type(
    listing_type_id: int,
    _: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    t = db.get(ListingType, listing_type_id)
    if not t:
        raise NotFoundError("Listing type not found")
    in_use = db.execute(select(func.count(Listing.id)).where(Listing.listing_type_id == t.id)).scalar_one()
    if in_use:
        raise ConflictError("Listing type is used by listings", details=[f"{in_use} listing(s)"])
    db.delete(t)
    db.flush()
    return {"message": "Listing type deleted"}


# -----------------------
# Listings (reads)
# -----------------------
@app.get("/api/listings")
def search_listings(
    db: Annotated[Session, Depends(get_db)],
    search: str | None = Query(default=None),
    bbox: str | None = Query(default=None),
    category_ids: str | None = Query(default=None, alias="categoryIds"),
    listing_type_ids: str | None = Query(default=None, alias="listingTypeIds"),
):
    return map_search(db, search=search, bbox=bbox, category_ids=category_ids, listing_type_ids=listing_type_ids)


@app.get("/api/listings/{slug}/public")
def get_public_listing(slug: str, db: Annotated[Session, Depends(get_db)]):
    return public_listing(db, slug)


@app.get("/api/my-listings")
def get_my_listings(
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    return my_listings(db, me.id)


@app.get("/api/listings/{listing_id:int}")
def get_listing_for_edit(
    listing_id: int,
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    return listing_for_edit(db, listing_id, me.id)


@app.get("/api/admin/listings")
def admin_listings(
    _: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    status: str | None = Query(default=None),
):
    return moderation_queue(db, status)


# -----------------------
# Listings (writes)
# -----------------------
@app.post("/api/listings", status_code=201)
def create_listing_route(
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[MediaStore, Depends(get_media_store)],
    schemas: Annotated[ListingSchemaRegistry, Depends(get_listing_schemas)],
    title: Annotated[str | None, Form()] = None,
    category_id: Annotated[str | None, Form()] = None,
    listing_type_id: Annotated[str | None, Form()] = None,
    lat: Annotated[str | None, Form()] = None,
    lng: Annotated[str | None, Form()] = None,
    address: Annotated[str | None, Form()] = None,
    city: Annotated[str | None, Form()] = None,
    province: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    phone: Annotated[str | None, Form()] = None,
    whatsapp: Annotated[str | None, Form()] = None,
    website: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    provincia_id: Annotated[str | None, Form()] = None,
    city_id: Annotated[str | None, Form()] = None,
    localidad_id: Annotated[str | None, Form()] = None,
    opening_hours: Annotated[str | None, Form()] = None,
    amenities: Annotated[str | None, Form()] = None,
    dynamic_details: Annotated[str | None, Form()] = None,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
    gallery_images: Annotated[list[UploadFile] | None, File(alias="galleryImages")] = None,
):
    fields = _provided(
        title=title,
        category_id=category_id,
        listing_type_id=listing_type_id,
        lat=lat,
        lng=lng,
        address=address,
        city=city,
        province=province,
        email=email,
        phone=phone,
        whatsapp=whatsapp,
        website=website,
        description=description,
        provincia_id=provincia_id,
        city_id=city_id,
        localidad_id=localidad_id,
        opening_hours=opening_hours,
        amenities=amenities,
        dynamic_details=dynamic_details,
    )
    return create_listing(
        db,
        store,
        schemas,
        owner_id=me.id,
        fields=fields,
        cover=_read_upload(cover_image),
        gallery=_read_uploads(gallery_images),
    )


@app.post("/api/listings/{listing_id:int}")
def update_listing_route(
    listing_id: int,
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[MediaStore, Depends(get_media_store)],
    schemas: Annotated[ListingSchemaRegistry, Depends(get_listing_schemas)],
    title: Annotated[str | None, Form()] = None,
    category_id: Annotated[str | None, Form()] = None,
    listing_type_id_form: Annotated[str | None, Form(alias="listingTypeId")] = None,
    lat: Annotated[str | None, Form()] = None,
    lng: Annotated[str | None, Form()] = None,
    address: Annotated[str | None, Form()] = None,
    city: Annotated[str | None, Form()] = None,
    province: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    phone: Annotated[str | None, Form()] = None,
    whatsapp: Annotated[str | None, Form()] = None,
    website: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    provincia_id: Annotated[str | None, Form()] = None,
    localidad_id: Annotated[str | None, Form()] = None,
    opening_hours: Annotated[str | None, Form()] = None,
    amenities: Annotated[str | None, Form()] = None,
    dynamic_details: Annotated[str | None, Form()] = None,
    gallery_images_to_delete: Annotated[str | None, Form(alias="galleryImagesToDelete")] = None,
    delete_cover_image: Annotated[str | None, Form(alias="deleteCoverImage")] = None,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
    gallery_images: Annotated[list[UploadFile] | None, File(alias="galleryImages")] = None,
):
    fields = _provided(
        title=title,
        category_id=category_id,
        listingTypeId=listing_type_id_form,
        lat=lat,
        lng=lng,
        address=address,
        city=city,
        province=province,
        email=email,
        phone=phone,
        whatsapp=whatsapp,
        website=website,
        description=description,
        provincia_id=provincia_id,
        localidad_id=localidad_id,
        opening_hours=opening_hours,
        amenities=amenities,
        dynamic_details=dynamic_details,
        galleryImagesToDelete=gallery_images_to_delete,
        deleteCoverImage=delete_cover_image,
    )
    return update_listing(
        db,
        store,
        schemas,
        listing_id=listing_id,
        owner_id=me.id,
        fields=fields,
        cover=_read_upload(cover_image),
        gallery=_read_uploads(gallery_images),
    )


@app.patch("/api/listings/{listing_id:int}/status")
def update_listing_status(
    listing_id: int,
    data: StatusIn,
    _: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    res = set_listing_status(db, listing_id=listing_id, status=data.status)
    return {"message": f"Listing {listing_id} status set to {res['status']}", **res}


@app.delete("/api/listings/{listing_id:int}")
def delete_listing_route(
    listing_id: int,
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[MediaStore, Depends(get_media_store)],
):
    return delete_listing(db, store, listing_id=listing_id, owner_id=me.id)
