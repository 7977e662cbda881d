"""SQLAlchemy ORM models backing the persistent catalog cache."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class CatalogItemRecord(Base):
    """A movie or show mirrored from TMDB."""

    __tablename__ = "catalog_items"
    __table_args__ = (
        UniqueConstraint("media_type", "external_id", name="uq_catalog_item_external"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_type: Mapped[str] = mapped_column(String(16))
    external_id: Mapped[int] = mapped_column(Integer, index=True)
    title: Mapped[str] = mapped_column(String(255))
    overview: Mapped[str | None] = mapped_column(Text, nullable=True)
    release_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    poster_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    backdrop_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vote_average: Mapped[float | None] = mapped_column(Float, nullable=True)
    runtime: Mapped[int | None] = mapped_column(Integer, nullable=True)
    original_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime)

    genre_links: Mapped[list["CatalogItemGenre"]] = relationship(
        back_populates="item", cascade="all, delete-orphan"
    )


class GenreRecord(Base):
    """Genre names as received from TMDB; never deleted."""

    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), unique=True)


class CatalogItemGenre(Base):
    """Association between a catalog item and one of its genres."""

    __tablename__ = "catalog_item_genres"
    __table_args__ = (
        UniqueConstraint("item_id", "genre_id", name="uq_catalog_item_genre"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("catalog_items.id", ondelete="CASCADE")
    )
    genre_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("genres.id", ondelete="CASCADE")
    )

    item: Mapped[CatalogItemRecord] = relationship(back_populates="genre_links")
    genre: Mapped[GenreRecord] = relationship(lazy="joined")
