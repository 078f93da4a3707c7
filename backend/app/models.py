from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in local dev / tests).
DetailsJSON = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(32), default="user")  # user | admin
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # No ON DELETE action: deleting a user that still owns listings fails at the DB.
    listings = relationship("Listing", back_populates="owner")


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    # Two levels only: top-level categories and their subcategories.
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True, index=True)

    # Map pin metadata; the pin is rendered at a fixed height, width kept proportional.
    marker_icon_slug: Mapped[str] = mapped_column(String(120), default="default-pin")
    icon_original_width: Mapped[int] = mapped_column(Integer, default=38)
    icon_original_height: Mapped[int] = mapped_column(Integer, default=38)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    parent = relationship("Category", remote_side="Category.id", back_populates="children")
    children = relationship("Category", back_populates="parent")


class ListingType(Base):
    __tablename__ = "listing_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    # Assigned right after insert: "<slugified-title>-<id>".
    slug: Mapped[str | None] = mapped_column(String(300), unique=True, index=True, nullable=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), index=True)
    listing_type_id: Mapped[int] = mapped_column(ForeignKey("listing_types.id"), index=True)

    address: Mapped[str] = mapped_column(String(512), default="")
    city: Mapped[str] = mapped_column(String(160), default="")
    province: Mapped[str] = mapped_column(String(160), default="")
    email: Mapped[str] = mapped_column(String(255), default="")
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    whatsapp: Mapped[str | None] = mapped_column(String(40), nullable=True)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Point in SRID 4326 degrees, longitude first.
    longitude: Mapped[float] = mapped_column(Float, index=True)
    latitude: Mapped[float] = mapped_column(Float, index=True)

    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending|published|rejected
    cover_image_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Detail document: sub-location ids, opening hours, amenities, image ids, dynamic fields.
    details: Mapped[dict[str, Any]] = mapped_column(DetailsJSON, default=dict)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    owner = relationship("User", back_populates="listings")
    category = relationship("Category")
    listing_type = relationship("ListingType")
