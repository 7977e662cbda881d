"""Local persistence of catalog items, genres and their associations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Protocol

from sqlalchemy import ColumnElement, String, func, or_, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.functions import GenericFunction

from .db_models import CatalogItemGenre, CatalogItemRecord, GenreRecord
from .errors import PersistenceError
from .models import MediaType


ITEM_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "overview",
        "release_date",
        "poster_path",
        "backdrop_path",
        "vote_average",
        "runtime",
        "original_title",
    }
)


class casefold(GenericFunction):
    """Unicode case folding; SQLite connections register it in app.database."""

    type = String()
    inherit_cache = True


@compiles(casefold, "postgresql")
def _compile_casefold_postgresql(element, compiler, **kw):
    return f"lower({compiler.process(element.clauses, **kw)})"


class ItemOrder(str, Enum):
    """Orderings supported by :meth:`CatalogStore.find_many`."""

    RATING_DESC = "rating_desc"
    TITLE_ASC = "title_asc"
    INSERTION = "insertion"


@dataclass(frozen=True, slots=True)
class ItemFilter:
    """Row filter; ``text`` matches title or original title, case-insensitively."""

    text: str | None = None

    def matches(self, title: str, original_title: str | None) -> bool:
        if not self.text:
            return True
        needle = self.text.casefold()
        return needle in title.casefold() or (
            original_title is not None and needle in original_title.casefold()
        )


@dataclass(slots=True)
class StoredGenre:
    id: int
    name: str


@dataclass(slots=True)
class StoredItem:
    """Detached snapshot of a persisted catalog item."""

    id: int
    media_type: MediaType
    external_id: int
    title: str
    last_synced_at: datetime
    overview: str | None = None
    release_date: date | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    vote_average: float | None = None
    runtime: int | None = None
    original_title: str | None = None
    genres: list[StoredGenre] = field(default_factory=list)


class CatalogStore(Protocol):
    """Storage operations the synchroniser relies on, scoped to one media type."""

    media_type: MediaType

    async def find_by_external_id(self, external_id: int) -> StoredItem | None: ...

    async def find_many(
        self, item_filter: ItemFilter, order: ItemOrder, skip: int, take: int
    ) -> list[StoredItem]: ...

    async def count(self, item_filter: ItemFilter) -> int: ...

    async def upsert(
        self, external_id: int, fields: Mapping[str, Any], *, synced_at: datetime
    ) -> StoredItem: ...

    async def create_genre_if_absent(self, name: str) -> StoredGenre: ...

    async def associate_if_absent(self, item_id: int, genre_id: int) -> None: ...


_DIALECT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class SqlCatalogStore:
    """:class:`CatalogStore` backed by SQLAlchemy async sessions.

    Writes rely on ``INSERT ... ON CONFLICT`` against the unique constraints,
    so concurrent upserts of the same item, genre or association converge
    instead of failing or duplicating rows.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        media_type: MediaType,
    ) -> None:
        self._session_factory = session_factory
        self.media_type = media_type

    async def find_by_external_id(self, external_id: int) -> StoredItem | None:
        try:
            async with self._session_factory() as session:
                record = await self._load(session, external_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to load {self.media_type} {external_id}"
            ) from exc
        return _to_stored(record) if record is not None else None

    async def find_many(
        self, item_filter: ItemFilter, order: ItemOrder, skip: int, take: int
    ) -> list[StoredItem]:
        stmt = (
            select(CatalogItemRecord)
            .where(*self._conditions(item_filter))
            .options(
                selectinload(CatalogItemRecord.genre_links).selectinload(
                    CatalogItemGenre.genre
                )
            )
            .order_by(*_order_clauses(order))
            .offset(max(skip, 0))
            .limit(max(take, 0))
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list {self.media_type} items") from exc
        return [_to_stored(record) for record in records]

    async def count(self, item_filter: ItemFilter) -> int:
        stmt = (
            select(func.count())
            .select_from(CatalogItemRecord)
            .where(*self._conditions(item_filter))
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to count {self.media_type} items") from exc

    async def upsert(
        self, external_id: int, fields: Mapping[str, Any], *, synced_at: datetime
    ) -> StoredItem:
        values = {key: value for key, value in fields.items() if key in ITEM_FIELDS}
        if not values.get("title"):
            raise PersistenceError(f"{self.media_type} {external_id} has no title")
        values["last_synced_at"] = synced_at

        try:
            async with self._session_factory() as session:
                insert = _dialect_insert(session)
                stmt = insert(CatalogItemRecord).values(
                    media_type=self.media_type, external_id=external_id, **values
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["media_type", "external_id"], set_=values
                )
                await session.execute(stmt)
                await session.commit()
                record = await self._load(session, external_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to upsert {self.media_type} {external_id}"
            ) from exc
        if record is None:
            raise PersistenceError(
                f"{self.media_type} {external_id} vanished after upsert"
            )
        return _to_stored(record)

    async def create_genre_if_absent(self, name: str) -> StoredGenre:
        try:
            async with self._session_factory() as session:
                insert = _dialect_insert(session)
                await session.execute(
                    insert(GenreRecord)
                    .values(name=name)
                    .on_conflict_do_nothing(index_elements=["name"])
                )
                await session.commit()
                result = await session.execute(
                    select(GenreRecord).where(GenreRecord.name == name)
                )
                genre = result.scalar_one()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to store genre {name!r}") from exc
        return StoredGenre(id=genre.id, name=genre.name)

    async def associate_if_absent(self, item_id: int, genre_id: int) -> None:
        try:
            async with self._session_factory() as session:
                insert = _dialect_insert(session)
                await session.execute(
                    insert(CatalogItemGenre)
                    .values(item_id=item_id, genre_id=genre_id)
                    .on_conflict_do_nothing(index_elements=["item_id", "genre_id"])
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to link item {item_id} to genre {genre_id}"
            ) from exc

    def _conditions(self, item_filter: ItemFilter) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = [
            CatalogItemRecord.media_type == self.media_type
        ]
        if item_filter.text:
            needle = item_filter.text.casefold()
            conditions.append(
                or_(
                    casefold(CatalogItemRecord.title).contains(needle, autoescape=True),
                    casefold(CatalogItemRecord.original_title).contains(
                        needle, autoescape=True
                    ),
                )
            )
        return conditions

    async def _load(
        self, session: AsyncSession, external_id: int
    ) -> CatalogItemRecord | None:
        stmt = (
            select(CatalogItemRecord)
            .where(
                CatalogItemRecord.media_type == self.media_type,
                CatalogItemRecord.external_id == external_id,
            )
            .options(
                selectinload(CatalogItemRecord.genre_links).selectinload(
                    CatalogItemGenre.genre
                )
            )
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()


def _dialect_insert(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect]
    except KeyError:
        raise PersistenceError(f"Unsupported database dialect: {dialect}") from None


def _order_clauses(order: ItemOrder) -> tuple[Any, ...]:
    if order is ItemOrder.RATING_DESC:
        return (
            CatalogItemRecord.vote_average.desc().nulls_last(),
            CatalogItemRecord.id.asc(),
        )
    if order is ItemOrder.TITLE_ASC:
        return (CatalogItemRecord.title.asc(), CatalogItemRecord.id.asc())
    return (CatalogItemRecord.id.asc(),)


def _to_stored(record: CatalogItemRecord) -> StoredItem:
    return StoredItem(
        id=record.id,
        media_type=record.media_type,  # type: ignore[arg-type]
        external_id=record.external_id,
        title=record.title,
        last_synced_at=record.last_synced_at,
        overview=record.overview,
        release_date=record.release_date,
        poster_path=record.poster_path,
        backdrop_path=record.backdrop_path,
        vote_average=record.vote_average,
        runtime=record.runtime,
        original_title=record.original_title,
        genres=[
            StoredGenre(id=link.genre.id, name=link.genre.name)
            for link in record.genre_links
        ],
    )
