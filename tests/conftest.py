"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from app.categories import CategoryDefinition  # noqa: E402
from app.errors import CatalogItemNotFound, PersistenceError, UpstreamFetchFailed  # noqa: E402
from app.models import MediaType, UpstreamPage  # noqa: E402
from app.store import (  # noqa: E402
    ITEM_FIELDS,
    ItemFilter,
    ItemOrder,
    StoredGenre,
    StoredItem,
)


class InMemoryCatalogStore:
    """Dictionary-backed CatalogStore double that records every call."""

    def __init__(self, media_type: MediaType = "movie") -> None:
        self.media_type = media_type
        self.items: dict[int, StoredItem] = {}
        self.genres: dict[str, StoredGenre] = {}
        self.links: set[tuple[int, int]] = set()
        self.calls: list[str] = []
        self.failing_ids: set[int] = set()

    def seed(
        self, external_id: int, title: str, *, synced_at: datetime, **fields: Any
    ) -> StoredItem:
        item = StoredItem(
            id=len(self.items) + 1,
            media_type=self.media_type,
            external_id=external_id,
            title=title,
            last_synced_at=synced_at,
            **fields,
        )
        self.items[external_id] = item
        return item

    def _snapshot(self, item: StoredItem) -> StoredItem:
        genres = [
            genre
            for genre in self.genres.values()
            if (item.id, genre.id) in self.links
        ]
        return replace(item, genres=genres)

    def _matching(self, item_filter: ItemFilter) -> list[StoredItem]:
        return [
            item
            for item in self.items.values()
            if item_filter.matches(item.title, item.original_title)
        ]

    async def find_by_external_id(self, external_id: int) -> StoredItem | None:
        self.calls.append("find_by_external_id")
        item = self.items.get(external_id)
        return self._snapshot(item) if item is not None else None

    async def find_many(
        self, item_filter: ItemFilter, order: ItemOrder, skip: int, take: int
    ) -> list[StoredItem]:
        self.calls.append("find_many")
        rows = self._matching(item_filter)
        if order is ItemOrder.RATING_DESC:
            rows.sort(
                key=lambda item: (
                    item.vote_average is None,
                    -(item.vote_average or 0.0),
                    item.id,
                )
            )
        elif order is ItemOrder.TITLE_ASC:
            rows.sort(key=lambda item: (item.title, item.id))
        else:
            rows.sort(key=lambda item: item.id)
        return [self._snapshot(item) for item in rows[skip : skip + take]]

    async def count(self, item_filter: ItemFilter) -> int:
        self.calls.append("count")
        return len(self._matching(item_filter))

    async def upsert(
        self, external_id: int, fields: Mapping[str, Any], *, synced_at: datetime
    ) -> StoredItem:
        self.calls.append("upsert")
        if external_id in self.failing_ids:
            raise PersistenceError(f"simulated failure for {external_id}")
        values = {key: value for key, value in fields.items() if key in ITEM_FIELDS}
        existing = self.items.get(external_id)
        if existing is None:
            item = self.seed(external_id, values.pop("title"), synced_at=synced_at, **values)
        else:
            item = replace(existing, last_synced_at=synced_at, **values)
            self.items[external_id] = item
        return self._snapshot(item)

    async def create_genre_if_absent(self, name: str) -> StoredGenre:
        self.calls.append("create_genre_if_absent")
        genre = self.genres.get(name)
        if genre is None:
            genre = StoredGenre(id=100 + len(self.genres), name=name)
            self.genres[name] = genre
        return genre

    async def associate_if_absent(self, item_id: int, genre_id: int) -> None:
        self.calls.append("associate_if_absent")
        self.links.add((item_id, genre_id))


class FakeUpstream:
    """Scripted UpstreamClient double."""

    def __init__(self) -> None:
        self.pages: dict[str, UpstreamPage] = {}
        self.search_page: UpstreamPage = UpstreamPage()
        self.details: dict[int, dict[str, Any]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.error: Exception | None = None

    async def get_page(self, category: CategoryDefinition, page: int) -> UpstreamPage:
        self.calls.append(("page", category.endpoint, page))
        if self.error is not None:
            raise self.error
        return self.pages.get(category.endpoint, UpstreamPage(page=page))

    async def search(self, media_type: MediaType, query: str, page: int) -> UpstreamPage:
        self.calls.append(("search", media_type, query, page))
        if self.error is not None:
            raise self.error
        return self.search_page

    async def get_details(self, media_type: MediaType, external_id: int) -> dict[str, Any]:
        self.calls.append(("details", media_type, external_id))
        if self.error is not None:
            raise self.error
        try:
            return self.details[external_id]
        except KeyError:
            raise CatalogItemNotFound(media_type, external_id) from None


def movie_payload(external_id: int, title: str, **overrides: Any) -> dict[str, Any]:
    """Return a TMDB-shaped movie listing record."""

    payload: dict[str, Any] = {
        "id": external_id,
        "title": title,
        "original_title": title,
        "overview": f"About {title}",
        "release_date": "2008-07-16",
        "poster_path": f"/poster-{external_id}.jpg",
        "backdrop_path": f"/backdrop-{external_id}.jpg",
        "vote_average": 7.5,
        "genre_ids": [28],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def memory_store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore("movie")


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def upstream_failure() -> UpstreamFetchFailed:
    return UpstreamFetchFailed("TMDB responded with 503", status_code=503)
