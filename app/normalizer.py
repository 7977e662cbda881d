"""Translate between TMDB payloads, stored rows and response models.

TMDB is loose about optional values: blank strings, ``0`` ratings and
unparsable dates all mean "unknown". Everything that reaches the store or a
response goes through the helpers below so that such values become ``None``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping

from .errors import RecordNormalizationError
from .models import (
    GenreRef,
    MediaType,
    MovieDetails,
    MovieSummary,
    ShowDetails,
    ShowSummary,
)
from .store import StoredItem


def clean_text(value: Any) -> str | None:
    """Return stripped text, or ``None`` for missing/blank values."""

    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def parse_date(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` (or an ISO timestamp); never raises."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = clean_text(value)
    if text is None:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def clean_number(value: Any) -> float | None:
    """Keep finite, non-zero numbers; zero is TMDB's "no votes yet"."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number) or number == 0:
        return None
    return number


def clean_count(value: Any) -> int | None:
    """Positive whole numbers only (runtime minutes, season counts)."""

    number = clean_number(value)
    if number is None or number < 0:
        return None
    return int(number)


def _external_id(payload: Mapping[str, Any]) -> int:
    raw = payload.get("id")
    if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
        raise RecordNormalizationError(f"Record has no usable id: {raw!r}")
    return raw


def _genres(payload: Mapping[str, Any]) -> list[GenreRef]:
    genres: list[GenreRef] = []
    seen: set[str] = set()
    for entry in payload.get("genres") or []:
        if not isinstance(entry, Mapping):
            continue
        name = clean_text(entry.get("name"))
        genre_id = entry.get("id")
        if name is None or name in seen:
            continue
        if isinstance(genre_id, bool) or not isinstance(genre_id, int):
            continue
        seen.add(name)
        genres.append(GenreRef(id=genre_id, name=name))
    return genres


@dataclass(slots=True)
class NormalizedRecord:
    """A TMDB record reduced to the persisted shape plus response-only extras.

    ``fields`` only holds the columns the payload actually carried; listing
    payloads have no ``runtime``, so an upsert from a listing keeps whatever
    runtime a detail fetch stored earlier.
    """

    media_type: MediaType
    external_id: int
    fields: dict[str, Any]
    genres: list[GenreRef] = field(default_factory=list)
    tagline: str | None = None
    number_of_seasons: int | None = None
    number_of_episodes: int | None = None

    def to_summary(self) -> MovieSummary | ShowSummary:
        if self.media_type == "movie":
            return MovieSummary(**self._movie_fields())
        return ShowSummary(**self._show_fields())

    def to_details(self) -> MovieDetails | ShowDetails:
        if self.media_type == "movie":
            return MovieDetails(**self._movie_fields(), tagline=self.tagline)
        return ShowDetails(
            **self._show_fields(),
            tagline=self.tagline,
            number_of_seasons=self.number_of_seasons,
            number_of_episodes=self.number_of_episodes,
        )

    def _movie_fields(self) -> dict[str, Any]:
        return {
            "id": self.external_id,
            "title": self.fields["title"],
            "overview": self.fields.get("overview"),
            "release_date": self.fields.get("release_date"),
            "poster_path": self.fields.get("poster_path"),
            "backdrop_path": self.fields.get("backdrop_path"),
            "runtime": self.fields.get("runtime"),
            "vote_average": self.fields.get("vote_average"),
            "original_title": self.fields.get("original_title"),
            "genres": list(self.genres),
        }

    def _show_fields(self) -> dict[str, Any]:
        return {
            "id": self.external_id,
            "name": self.fields["title"],
            "overview": self.fields.get("overview"),
            "first_air_date": self.fields.get("release_date"),
            "poster_path": self.fields.get("poster_path"),
            "backdrop_path": self.fields.get("backdrop_path"),
            "vote_average": self.fields.get("vote_average"),
            "original_name": self.fields.get("original_title"),
            "genres": list(self.genres),
        }


def normalize_record(
    media_type: MediaType, payload: Mapping[str, Any]
) -> NormalizedRecord:
    """Map a TMDB movie or show payload to a :class:`NormalizedRecord`."""

    if not isinstance(payload, Mapping):
        raise RecordNormalizationError("Record payload is not an object")

    external_id = _external_id(payload)
    if media_type == "movie":
        title_key, original_key, date_key = "title", "original_title", "release_date"
    else:
        title_key, original_key, date_key = "name", "original_name", "first_air_date"

    title = clean_text(payload.get(title_key)) or clean_text(payload.get(original_key))
    if title is None:
        raise RecordNormalizationError(f"{media_type} {external_id} has no title")

    fields: dict[str, Any] = {
        "title": title,
        "overview": clean_text(payload.get("overview")),
        "release_date": parse_date(payload.get(date_key)),
        "poster_path": clean_text(payload.get("poster_path")),
        "backdrop_path": clean_text(payload.get("backdrop_path")),
        "vote_average": clean_number(payload.get("vote_average")),
        "original_title": clean_text(payload.get(original_key)),
    }
    if media_type == "movie" and "runtime" in payload:
        fields["runtime"] = clean_count(payload.get("runtime"))

    record = NormalizedRecord(
        media_type=media_type,
        external_id=external_id,
        fields=fields,
        genres=_genres(payload),
        tagline=clean_text(payload.get("tagline")),
    )
    if media_type == "tv":
        record.number_of_seasons = clean_count(payload.get("number_of_seasons"))
        record.number_of_episodes = clean_count(payload.get("number_of_episodes"))
    return record


def _stored_genres(item: StoredItem) -> list[GenreRef]:
    return [GenreRef(id=genre.id, name=genre.name) for genre in item.genres]


def summary_from_stored(item: StoredItem) -> MovieSummary | ShowSummary:
    """Shape a stored row; genre ids are the local surrogate ids."""

    if item.media_type == "movie":
        return MovieSummary(
            id=item.external_id,
            title=item.title,
            overview=item.overview,
            release_date=item.release_date,
            poster_path=item.poster_path,
            backdrop_path=item.backdrop_path,
            runtime=item.runtime,
            vote_average=item.vote_average,
            original_title=item.original_title,
            genres=_stored_genres(item),
        )
    return ShowSummary(
        id=item.external_id,
        name=item.title,
        overview=item.overview,
        first_air_date=item.release_date,
        poster_path=item.poster_path,
        backdrop_path=item.backdrop_path,
        vote_average=item.vote_average,
        original_name=item.original_title,
        genres=_stored_genres(item),
    )


def details_from_stored(item: StoredItem) -> MovieDetails | ShowDetails:
    """Shape a stored row as a detail payload.

    The tagline is not persisted, so it is always ``None`` here.
    """

    summary = summary_from_stored(item)
    if isinstance(summary, MovieSummary):
        return MovieDetails(**summary.model_dump(), tagline=None)
    return ShowDetails(**summary.model_dump(), tagline=None)
