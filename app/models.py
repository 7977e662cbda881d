"""Pydantic models describing catalog payloads."""

from __future__ import annotations

from datetime import date
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field, field_validator

MediaType = Literal["movie", "tv"]


class GenreRef(BaseModel):
    """Genre as exposed to callers: ``{id, name}``."""

    id: int
    name: str


class MovieSummary(BaseModel):
    """A movie entry inside a listing page."""

    id: int
    title: str
    overview: str | None = None
    release_date: date | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    runtime: int | None = None
    vote_average: float | None = None
    original_title: str | None = None
    genres: list[GenreRef] = Field(default_factory=list)


class MovieDetails(MovieSummary):
    """Full movie payload; ``tagline`` is only known after a TMDB fetch."""

    tagline: str | None = None


class ShowSummary(BaseModel):
    """A TV show entry inside a listing page."""

    id: int
    name: str
    overview: str | None = None
    first_air_date: date | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    vote_average: float | None = None
    original_name: str | None = None
    genres: list[GenreRef] = Field(default_factory=list)


class ShowDetails(ShowSummary):
    """Full show payload as returned by the details endpoint."""

    tagline: str | None = None
    number_of_seasons: int | None = None
    number_of_episodes: int | None = None


SummaryT = TypeVar("SummaryT", MovieSummary, ShowSummary)


class CatalogPage(BaseModel, Generic[SummaryT]):
    """One page of results, shaped the same whichever source served it."""

    page: int
    results: list[SummaryT] = Field(default_factory=list)
    total_pages: int = 0
    total_results: int = 0


MoviePage = CatalogPage[MovieSummary]
ShowPage = CatalogPage[ShowSummary]


class UpstreamPage(BaseModel):
    """Listing envelope returned by TMDB; records stay raw for the normalizer."""

    page: int = 1
    results: list[dict[str, Any]] = Field(default_factory=list)
    total_pages: int = 0
    total_results: int = 0

    @field_validator("results", mode="before")
    @classmethod
    def _drop_non_mapping_results(cls, value: object) -> list[dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]

    @field_validator("page", "total_pages", "total_results", mode="before")
    @classmethod
    def _null_counts_are_zero(cls, value: object) -> object:
        return 0 if value is None else value
