"""seed default listing types

Revision ID: 0002_seed_listing_types
Revises: 0001_initial
Create Date: 2026-10-17
"""

from __future__ import annotations

import datetime as dt

from alembic import op
import sqlalchemy as sa


revision = "0002_seed_listing_types"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


# Ids are fixed: app/listing_schemas.json is keyed by them.
DEFAULT_LISTING_TYPES = [
    (1, "Local business", "local-business"),
    (2, "Professional service", "professional-service"),
    (3, "Event", "event"),
    (4, "Point of interest", "point-of-interest"),
    (5, "Vehicles", "vehicles"),
]

listing_types = sa.table(
    "listing_types",
    sa.column("id", sa.Integer()),
    sa.column("name", sa.String()),
    sa.column("slug", sa.String()),
    sa.column("created_at", sa.DateTime(timezone=True)),
)


def upgrade() -> None:
    now = dt.datetime.now(dt.timezone.utc)
    op.bulk_insert(
        listing_types,
        [{"id": i, "name": name, "slug": slug, "created_at": now} for i, name, slug in DEFAULT_LISTING_TYPES],
    )
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        # Explicit ids leave the serial sequence behind; move it past the seeded rows.
        op.execute("SELECT setval(pg_get_serial_sequence('listing_types', 'id'), (SELECT MAX(id) FROM listing_types))")


def downgrade() -> None:
    op.execute(
        listing_types.delete().where(listing_types.c.slug.in_([slug for _, _, slug in DEFAULT_LISTING_TYPES]))
    )
