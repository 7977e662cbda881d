"""SqlCatalogStore behaviour against a temporary SQLite database."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

from app.database import Database
from app.db_models import CatalogItemGenre, CatalogItemRecord, GenreRecord
from app.errors import InvalidQuery
from app.models import UpstreamPage
from app.services.catalog_sync import CatalogSyncService
from app.store import ItemFilter, ItemOrder, SqlCatalogStore
from conftest import FakeUpstream, movie_payload

NOW = datetime(2024, 5, 1, 12, 0, 0)


async def _database(tmp_path, name: str) -> Database:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / name}")
    await database.create_all()
    return database


async def _row_count(database: Database, model) -> int:
    async with database.session() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return int(result.scalar_one())


def test_upsert_is_idempotent_by_external_id(tmp_path) -> None:
    async def runner() -> None:
        database = await _database(tmp_path, "upsert.db")
        store = SqlCatalogStore(database.session_factory, "movie")
        fields = {
            "title": "Heat",
            "overview": "Cops and robbers",
            "release_date": date(1995, 12, 15),
            "vote_average": 7.9,
        }

        first = await store.upsert(949, fields, synced_at=NOW - timedelta(days=2))
        second = await store.upsert(949, fields, synced_at=NOW)

        assert first.id == second.id
        assert second.last_synced_at == NOW
        assert await _row_count(database, CatalogItemRecord) == 1

        await database.dispose()

    asyncio.run(runner())


def test_upsert_keeps_fields_missing_from_payload(tmp_path) -> None:
    async def runner() -> None:
        database = await _database(tmp_path, "partial.db")
        store = SqlCatalogStore(database.session_factory, "movie")

        await store.upsert(1, {"title": "Alien", "runtime": 117}, synced_at=NOW)
        updated = await store.upsert(
            1, {"title": "Alien: el octavo pasajero", "vote_average": 8.1}, synced_at=NOW
        )

        assert updated.runtime == 117
        assert updated.title == "Alien: el octavo pasajero"
        assert updated.vote_average == 8.1

        await database.dispose()

    asyncio.run(runner())


def test_same_external_id_is_separate_per_media_type(tmp_path) -> None:
    async def runner() -> None:
        database = await _database(tmp_path, "media.db")
        movies = SqlCatalogStore(database.session_factory, "movie")
        shows = SqlCatalogStore(database.session_factory, "tv")

        await movies.upsert(42, {"title": "A movie"}, synced_at=NOW)
        await shows.upsert(42, {"title": "A show"}, synced_at=NOW)

        assert (await movies.find_by_external_id(42)).title == "A movie"
        assert (await shows.find_by_external_id(42)).title == "A show"
        assert await movies.count(ItemFilter()) == 1
        assert await _row_count(database, CatalogItemRecord) == 2

        await database.dispose()

    asyncio.run(runner())


def test_genres_and_associations_are_idempotent(tmp_path) -> None:
    async def runner() -> None:
        database = await _database(tmp_path, "genres.db")
        store = SqlCatalogStore(database.session_factory, "movie")
        item = await store.upsert(603, {"title": "Matrix"}, synced_at=NOW)

        genre = await store.create_genre_if_absent("Acción")
        again = await store.create_genre_if_absent("Acción")
        other_case = await store.create_genre_if_absent("acción")
        await store.associate_if_absent(item.id, genre.id)
        await store.associate_if_absent(item.id, genre.id)

        assert genre.id == again.id
        assert other_case.id != genre.id
        assert await _row_count(database, GenreRecord) == 2
        assert await _row_count(database, CatalogItemGenre) == 1

        loaded = await store.find_by_external_id(603)
        assert [(g.id, g.name) for g in loaded.genres] == [(genre.id, "Acción")]

        await database.dispose()

    asyncio.run(runner())


def test_concurrent_association_writes_converge(tmp_path) -> None:
    async def runner() -> None:
        database = await _database(tmp_path, "concurrent.db")
        store = SqlCatalogStore(database.session_factory, "movie")
        item = await store.upsert(1, {"title": "Twice"}, synced_at=NOW)
        genre = await store.create_genre_if_absent("Drama")

        await asyncio.gather(
            *(store.associate_if_absent(item.id, genre.id) for _ in range(5)),
            *(store.create_genre_if_absent("Drama") for _ in range(5)),
        )

        assert await _row_count(database, CatalogItemGenre) == 1
        assert await _row_count(database, GenreRecord) == 1

        await database.dispose()

    asyncio.run(runner())


def test_find_many_filters_orders_and_pages(tmp_path) -> None:
    async def runner() -> None:
        database = await _database(tmp_path, "listing.db")
        store = SqlCatalogStore(database.session_factory, "movie")
        await store.upsert(1, {"title": "Batman Begins", "vote_average": 7.7}, synced_at=NOW)
        await store.upsert(2, {"title": "The Dark Knight", "original_title": "The Dark Knight", "vote_average": 8.5}, synced_at=NOW)
        await store.upsert(3, {"title": "El caballero oscuro", "original_title": "BATMAN: The Dark Knight"}, synced_at=NOW)
        await store.upsert(4, {"title": "Batman 100%", "vote_average": 5.0}, synced_at=NOW)

        by_rating = await store.find_many(ItemFilter(), ItemOrder.RATING_DESC, 0, 10)
        assert [item.external_id for item in by_rating] == [2, 1, 4, 3]

        matches = await store.find_many(
            ItemFilter(text="batman"), ItemOrder.TITLE_ASC, 0, 10
        )
        assert [item.external_id for item in matches] == [4, 1, 3]
        assert await store.count(ItemFilter(text="batman")) == 3

        second_page = await store.find_many(
            ItemFilter(text="batman"), ItemOrder.TITLE_ASC, 2, 2
        )
        assert [item.external_id for item in second_page] == [3]

        # LIKE wildcards in the query are matched literally.
        assert await store.count(ItemFilter(text="100%")) == 1
        assert await store.count(ItemFilter(text="_")) == 0

        await database.dispose()

    asyncio.run(runner())


def test_search_refresh_round_trip_through_sqlite(tmp_path) -> None:
    """A cache miss writes to SQLite and the next identical query is a hit."""

    async def runner() -> None:
        database = await _database(tmp_path, "sync.db")
        store = SqlCatalogStore(database.session_factory, "movie")
        upstream = FakeUpstream()
        upstream.search_page = UpstreamPage(
            page=1,
            results=[
                movie_payload(
                    index,
                    f"Batman {index}",
                    genres=[{"id": 28, "name": "Acción"}],
                )
                for index in range(1, 4)
            ],
            total_pages=1,
            total_results=3,
        )
        service = CatalogSyncService(upstream, store, clock=lambda: NOW)

        first = await service.search("batman", page=1, limit=3)
        second = await service.search("batman", page=1, limit=3)

        assert len(upstream.calls) == 1
        assert [item.id for item in first.results] == [1, 2, 3]
        assert [item.id for item in second.results] == [1, 2, 3]
        assert second.total_results == 3
        local_genre_ids = {genre.id for item in second.results for genre in item.genres}
        assert len(local_genre_ids) == 1
        assert await _row_count(database, GenreRecord) == 1
        assert await _row_count(database, CatalogItemGenre) == 3

        await database.dispose()

    asyncio.run(runner())


def test_search_folds_accented_capitals(tmp_path) -> None:
    """SQLite's lower() is ASCII-only, so matching must go through casefold."""

    async def runner() -> None:
        database = await _database(tmp_path, "accents.db")
        store = SqlCatalogStore(database.session_factory, "movie")
        await store.upsert(1, {"title": "ÉRASE UNA VEZ"}, synced_at=NOW)
        await store.upsert(
            2, {"title": "La sirenita", "original_title": "ÁRBOL DE LA VIDA"}, synced_at=NOW
        )
        await store.upsert(3, {"title": "Erase una vez"}, synced_at=NOW)

        assert await store.count(ItemFilter(text="érase")) == 1
        assert ItemFilter(text="érase").matches("ÉRASE UNA VEZ", None)
        matches = await store.find_many(
            ItemFilter(text="árbol"), ItemOrder.TITLE_ASC, 0, 10
        )
        assert [item.external_id for item in matches] == [2]

        await database.dispose()

    asyncio.run(runner())


def test_huge_page_is_rejected_before_querying(tmp_path) -> None:
    async def runner() -> None:
        database = await _database(tmp_path, "paging.db")
        store = SqlCatalogStore(database.session_factory, "movie")
        service = CatalogSyncService(FakeUpstream(), store, clock=lambda: NOW)

        with pytest.raises(InvalidQuery):
            await service.list_stored(page=10**18, limit=100)

        await database.dispose()

    asyncio.run(runner())
