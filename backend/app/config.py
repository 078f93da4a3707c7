from __future__ import annotations

import logging
import os

from dotenv import load_dotenv


def _load_dotenv_if_present() -> None:
    """
    Load environment variables from a local `.env` file (dev convenience).

    Production deployments should set real environment variables instead.
    """
    # Do not override existing environment variables.
    load_dotenv(override=False)


# Load .env as early as possible (dev only).
_load_dotenv_if_present()

_APP_DIR = os.path.dirname(os.path.abspath(__file__))
_BACKEND_DIR = os.path.dirname(_APP_DIR)


def _int_env(name: str, default: int, *, lo: int | None = None, hi: int | None = None) -> int:
    raw = (os.environ.get(name) or "").strip()
    try:
        v = int(raw or str(default))
    except ValueError:
        v = default
    if lo is not None and v < lo:
        v = lo
    if hi is not None and v > hi:
        v = hi
    return v


def database_url() -> str:
    # Fallback for local dev:
    url = os.environ.get("DATABASE_URL") or "sqlite:///./local.db"
    # Some managed providers still supply `postgres://...` which SQLAlchemy treats as invalid.
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def jwt_secret() -> str:
    return os.environ.get("JWT_SECRET") or "dev-secret-change-me"


def access_token_ttl_minutes() -> int:
    return _int_env("ACCESS_TOKEN_TTL_MINUTES", 15, lo=1, hi=1440)


def bcrypt_rounds() -> int:
    # Lower in tests only; 12 is the production cost.
    return _int_env("BCRYPT_ROUNDS", 12, lo=4, hi=16)


def is_local_dev() -> bool:
    """
    We treat the app as "local dev" when DATABASE_URL is not set, because
    `database_url()` falls back to sqlite in that case.
    """
    return not (os.environ.get("DATABASE_URL") or "").strip()


def app_env() -> str:
    """
    Application environment marker:
    - local (default when running with sqlite fallback)
    - test
    - staging
    - prod
    """
    raw = (os.environ.get("APP_ENV") or "").strip().lower()
    if raw:
        return raw
    return "local" if is_local_dev() else "prod"


def is_debug() -> bool:
    """Internal error messages are only exposed to clients in these environments."""
    return app_env() in {"local", "dev", "development", "test"}


def allowed_hosts() -> list[str]:
    """
    Comma-separated list for TrustedHost middleware.
    Example: ALLOWED_HOSTS=api.example.com,example.com
    """
    raw = (os.environ.get("ALLOWED_HOSTS") or "").strip()
    if not raw:
        return ["*"]
    hosts = [h.strip() for h in raw.split(",") if h.strip()]
    return hosts or ["*"]


def cors_origins() -> list[str]:
    """
    Configure with env `CORS_ORIGINS` as a comma-separated list.
    """
    raw = (os.environ.get("CORS_ORIGINS") or "").strip()
    if raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return [
        "http://localhost:3000",
        "http://localhost:3001",
    ]


def enforce_secure_secrets() -> None:
    """
    Fail-fast in production if dangerous defaults are still in use.
    """
    if app_env() in {"prod", "production"}:
        if jwt_secret() == "dev-secret-change-me":
            raise RuntimeError("JWT_SECRET must be set in production (default dev secret detected)")


def log_level() -> str:
    return (os.environ.get("LOG_LEVEL") or "INFO").strip().upper() or "INFO"


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, log_level(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# -----------------------
# Media
# -----------------------
def uploads_dir() -> str:
    return os.environ.get("UPLOADS_DIR") or os.path.join(_BACKEND_DIR, "uploads")


def icons_dir() -> str:
    """Marker icons for categories, served under /icons."""
    return os.environ.get("ICONS_DIR") or os.path.join(_BACKEND_DIR, "public", "icons")


def max_upload_image_bytes() -> int:
    # Default: 2 MB per file (raw upload bytes).
    return _int_env("MAX_UPLOAD_IMAGE_BYTES", 2 * 1024 * 1024, lo=1)


def max_gallery_images() -> int:
    return _int_env("MAX_GALLERY_IMAGES", 6, lo=0, hi=50)


def max_image_width() -> int:
    return _int_env("MAX_IMAGE_WIDTH", 1200, lo=16)


def max_image_height() -> int:
    return _int_env("MAX_IMAGE_HEIGHT", 800, lo=16)


def default_cover_image_url() -> str:
    return (os.environ.get("DEFAULT_COVER_IMAGE_URL") or "").strip()


def cloudinary_folder() -> str:
    return (os.getenv("CLOUDINARY_FOLDER") or "atlas").strip().strip("/") or "atlas"


# -----------------------
# Listing type schemas
# -----------------------
def listing_schemas_path() -> str:
    """
    JSON file mapping listing_type_id -> ordered field descriptors.
    Edits are picked up without a restart.
    """
    return os.environ.get("LISTING_SCHEMAS_PATH") or os.path.join(_APP_DIR, "listing_schemas.json")


# -----------------------
# Seed admin
# -----------------------
def admin_seed_email() -> str:
    return (os.environ.get("ADMIN_EMAIL") or "").strip().lower()


def admin_seed_password() -> str:
    return (os.environ.get("ADMIN_PASSWORD") or "").strip()
