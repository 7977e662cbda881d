"""Listing categories exposed for each media type."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import InvalidQuery
from .models import MediaType


@dataclass(frozen=True)
class CategoryDefinition:
    """Describes a TMDB listing and how it is cached locally.

    Store-backed categories are served from the local store while it is
    fresh; the others always go to TMDB and only write through.
    """

    key: str
    slug: str
    media_type: MediaType
    endpoint: str
    store_backed: bool = False


CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition(
        key="popular",
        slug="popular",
        media_type="movie",
        endpoint="/movie/popular",
        store_backed=True,
    ),
    CategoryDefinition(
        key="top_rated",
        slug="top-rated",
        media_type="movie",
        endpoint="/movie/top_rated",
    ),
    CategoryDefinition(
        key="upcoming",
        slug="upcoming",
        media_type="movie",
        endpoint="/movie/upcoming",
    ),
    CategoryDefinition(
        key="now_playing",
        slug="now-playing",
        media_type="movie",
        endpoint="/movie/now_playing",
    ),
    CategoryDefinition(
        key="popular",
        slug="popular",
        media_type="tv",
        endpoint="/tv/popular",
        store_backed=True,
    ),
    CategoryDefinition(
        key="top_rated",
        slug="top-rated",
        media_type="tv",
        endpoint="/tv/top_rated",
    ),
    CategoryDefinition(
        key="on_the_air",
        slug="on-the-air",
        media_type="tv",
        endpoint="/tv/on_the_air",
    ),
    CategoryDefinition(
        key="airing_today",
        slug="airing-today",
        media_type="tv",
        endpoint="/tv/airing_today",
    ),
)


def categories_for(media_type: MediaType) -> tuple[CategoryDefinition, ...]:
    """Return the listing categories offered for ``media_type``."""

    return tuple(
        definition for definition in CATEGORIES if definition.media_type == media_type
    )


def get_category(media_type: MediaType, key: str) -> CategoryDefinition:
    """Look up a category by key, accepting the URL slug spelling too."""

    normalized = (key or "").strip().lower().replace("-", "_")
    for definition in categories_for(media_type):
        if definition.key == normalized:
            return definition
    raise InvalidQuery(f"Unknown {media_type} category: {key!r}")
