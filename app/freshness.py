"""Decides whether locally cached records can answer a listing query."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, Sequence

from .errors import InvalidQuery

DEFAULT_STALENESS_WINDOW = timedelta(hours=24)
# TMDB serves at most 500 pages per listing.
MAX_PAGE = 500
MAX_LIMIT = 100


class Syncable(Protocol):
    last_synced_at: datetime | None


@dataclass(frozen=True, slots=True)
class PageRequest:
    """A 1-based page of ``limit`` records."""

    page: int
    limit: int

    @classmethod
    def validated(cls, page: int, limit: int) -> "PageRequest":
        """Build a request, rejecting pages or limits outside their ranges."""

        if isinstance(page, bool) or not isinstance(page, int) or not 1 <= page <= MAX_PAGE:
            raise InvalidQuery(f"page must be an integer between 1 and {MAX_PAGE}")
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
            raise InvalidQuery(f"limit must be an integer between 1 and {MAX_LIMIT}")
        return cls(page=page, limit=limit)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total_results: int) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(total_results / self.limit)


@dataclass(frozen=True)
class FreshnessPolicy:
    """Refresh when the store cannot fill the page or holds stale rows."""

    window: timedelta = DEFAULT_STALENESS_WINDOW

    def should_refresh(
        self,
        requested: PageRequest,
        local_matches: Sequence[Syncable],
        *,
        now: datetime | None = None,
    ) -> bool:
        if requested.limit <= 0:
            return False
        if len(local_matches) < requested.limit:
            return True
        reference = now or datetime.utcnow()
        return any(self.is_stale(item.last_synced_at, reference) for item in local_matches)

    def is_stale(self, synced_at: datetime | None, now: datetime) -> bool:
        if synced_at is None:
            return True
        return now - synced_at > self.window
