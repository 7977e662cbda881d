"""Serve catalog queries from the local store or TMDB and keep both in sync."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Mapping

from ..categories import get_category
from ..errors import (
    InvalidIdentifier,
    InvalidQuery,
    PersistenceError,
    RecordNormalizationError,
    UpstreamFetchFailed,
)
from ..freshness import FreshnessPolicy, PageRequest
from ..models import (
    CatalogPage,
    MovieDetails,
    MoviePage,
    ShowDetails,
    ShowPage,
    UpstreamPage,
)
from ..normalizer import (
    NormalizedRecord,
    details_from_stored,
    normalize_record,
    summary_from_stored,
)
from ..store import CatalogStore, ItemFilter, ItemOrder, StoredItem
from .tmdb import UpstreamClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RecordFailure:
    """Why a single upstream record could not be stored."""

    external_id: int | None
    reason: str


@dataclass(slots=True)
class SyncReport:
    """Outcome of writing one upstream batch to the store."""

    records: list[NormalizedRecord] = field(default_factory=list)
    stored: list[int] = field(default_factory=list)
    failures: list[RecordFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def parse_external_id(raw: object) -> int:
    """Return ``raw`` as a positive TMDB identifier or raise InvalidIdentifier."""

    if isinstance(raw, bool):
        raise InvalidIdentifier(raw)
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not (text.isascii() and text.isdigit()):
            raise InvalidIdentifier(raw)
        value = int(text)
    else:
        raise InvalidIdentifier(raw)
    if value <= 0:
        raise InvalidIdentifier(raw)
    return value


class CatalogSyncService:
    """Coordinates the freshness policy, TMDB and the local store for one media type."""

    def __init__(
        self,
        upstream: UpstreamClient,
        store: CatalogStore,
        *,
        policy: FreshnessPolicy | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._upstream = upstream
        self._store = store
        self._policy = policy or FreshnessPolicy()
        self._clock = clock
        self.media_type = store.media_type
        self._page_model = MoviePage if self.media_type == "movie" else ShowPage

    async def list_category(
        self, category: str, page: int = 1, limit: int = 20
    ) -> CatalogPage:
        """Return one page of a listing category (popular, top rated, ...)."""

        request = PageRequest.validated(page, limit)
        definition = get_category(self.media_type, category)

        async def fetch() -> UpstreamPage:
            return await self._upstream.get_page(definition, request.page)

        if definition.store_backed:
            return await self._serve_store_backed(
                request, ItemFilter(), ItemOrder.RATING_DESC, fetch, label=definition.key
            )
        logger.debug("Passing %s %s through to TMDB", self.media_type, definition.key)
        return await self._merge_upstream_page(await fetch(), request)

    async def search(
        self, query: str, page: int = 1, limit: int = 20
    ) -> CatalogPage:
        """Title search, answered locally while the matching rows are fresh."""

        text = (query or "").strip() if isinstance(query, str) else ""
        if not text:
            raise InvalidQuery("query must not be empty")
        request = PageRequest.validated(page, limit)

        async def fetch() -> UpstreamPage:
            return await self._upstream.search(self.media_type, text, request.page)

        return await self._serve_store_backed(
            request, ItemFilter(text=text), ItemOrder.TITLE_ASC, fetch, label="search"
        )

    async def list_stored(self, page: int = 1, limit: int = 20) -> CatalogPage:
        """Page through what is already stored, without contacting TMDB."""

        request = PageRequest.validated(page, limit)
        return await self._local_page(request, ItemFilter(), ItemOrder.INSERTION)

    async def get_details(self, raw_id: object) -> MovieDetails | ShowDetails:
        """Return a full record, refetching it when the stored copy is incomplete."""

        external_id = parse_external_id(raw_id)
        stored = await self._store.find_by_external_id(external_id)
        if stored is not None and stored.runtime is not None:
            logger.debug("Serving %s %s from the store", self.media_type, external_id)
            return details_from_stored(stored)

        payload = await self._upstream.get_details(self.media_type, external_id)
        try:
            record = normalize_record(self.media_type, payload)
        except RecordNormalizationError as exc:
            raise UpstreamFetchFailed(
                f"Invalid data from TMDB for {self.media_type} {external_id}"
            ) from exc

        try:
            await self._persist(record, self._clock())
        except PersistenceError:
            logger.warning(
                "Could not store %s %s; returning TMDB payload anyway",
                self.media_type,
                external_id,
                exc_info=True,
            )
        return record.to_details()

    async def sync_records(self, payloads: Iterable[Mapping[str, Any]]) -> SyncReport:
        """Normalize and upsert a batch; one bad record never aborts the rest."""

        report = SyncReport()
        synced_at = self._clock()
        for payload in payloads:
            try:
                record = normalize_record(self.media_type, payload)
            except RecordNormalizationError as exc:
                raw_id = payload.get("id") if isinstance(payload, Mapping) else None
                report.failures.append(
                    RecordFailure(
                        external_id=raw_id if isinstance(raw_id, int) else None,
                        reason=str(exc),
                    )
                )
                continue
            report.records.append(record)
            try:
                await self._persist(record, synced_at)
            except PersistenceError as exc:
                report.failures.append(
                    RecordFailure(external_id=record.external_id, reason=str(exc))
                )
                continue
            report.stored.append(record.external_id)

        if report.failures:
            logger.warning(
                "Skipped %s of %s %s records while syncing: %s",
                len(report.failures),
                len(report.failures) + len(report.stored),
                self.media_type,
                "; ".join(
                    f"{failure.external_id}: {failure.reason}"
                    for failure in report.failures
                ),
            )
        return report

    async def _serve_store_backed(
        self,
        request: PageRequest,
        item_filter: ItemFilter,
        order: ItemOrder,
        fetch: Callable[[], Awaitable[UpstreamPage]],
        *,
        label: str,
    ) -> CatalogPage:
        local = await self._store.find_many(
            item_filter, order, request.skip, request.limit
        )
        if not self._policy.should_refresh(request, local, now=self._clock()):
            logger.debug(
                "Cache hit for %s %s page %s", self.media_type, label, request.page
            )
            return await self._shape_local(request, item_filter, local)

        logger.info(
            "Refreshing %s %s page %s from TMDB (%s local rows)",
            self.media_type,
            label,
            request.page,
            len(local),
        )
        return await self._merge_upstream_page(await fetch(), request)

    async def _merge_upstream_page(
        self, upstream_page: UpstreamPage, request: PageRequest
    ) -> CatalogPage:
        """Store an upstream page and answer with its normalized records.

        Paging counts are TMDB's own. Results are rebuilt from the normalized
        records, so entries that fail normalization are left out and listing
        fields with no stored counterpart (such as ``genre_ids``) are not
        echoed back.
        """

        report = await self.sync_records(upstream_page.results)
        results = [record.to_summary() for record in report.records]
        return self._page_model(
            page=upstream_page.page or request.page,
            results=results[: request.limit],
            total_pages=upstream_page.total_pages,
            total_results=upstream_page.total_results,
        )

    async def _local_page(
        self, request: PageRequest, item_filter: ItemFilter, order: ItemOrder
    ) -> CatalogPage:
        local = await self._store.find_many(
            item_filter, order, request.skip, request.limit
        )
        return await self._shape_local(request, item_filter, local)

    async def _shape_local(
        self,
        request: PageRequest,
        item_filter: ItemFilter,
        local: list[StoredItem],
    ) -> CatalogPage:
        total = await self._store.count(item_filter)
        return self._page_model(
            page=request.page,
            results=[summary_from_stored(item) for item in local],
            total_pages=request.total_pages(total),
            total_results=total,
        )

    async def _persist(self, record: NormalizedRecord, synced_at: datetime) -> StoredItem:
        item = await self._store.upsert(
            record.external_id, record.fields, synced_at=synced_at
        )
        for genre in record.genres:
            stored_genre = await self._store.create_genre_if_absent(genre.name)
            await self._store.associate_if_absent(item.id, stored_genre.id)
        return item
