"""Client for The Movie Database (TMDB) listing, search and detail endpoints."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from ..categories import CategoryDefinition
from ..config import Settings
from ..errors import CatalogItemNotFound, UpstreamFetchFailed
from ..models import MediaType, UpstreamPage

logger = logging.getLogger(__name__)


class UpstreamClient(Protocol):
    """What the synchroniser needs from the content provider."""

    async def get_page(self, category: CategoryDefinition, page: int) -> UpstreamPage: ...

    async def get_details(
        self, media_type: MediaType, external_id: int
    ) -> dict[str, Any]: ...

    async def search(self, media_type: MediaType, query: str, page: int) -> UpstreamPage: ...


class TMDBClient:
    """Thin wrapper around the TMDB v3 HTTP API.

    Every failure (transport error, timeout, non-2xx status, malformed body)
    surfaces as :class:`UpstreamFetchFailed`. Retries are left to the caller.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_bearer_token:
            raise ValueError("TMDB bearer token is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    def _headers(self) -> dict[str, str]:
        return {
            "accept": "application/json",
            "Authorization": f"Bearer {self._settings.tmdb_bearer_token}",
            "User-Agent": f"{self._settings.app_name} (cinesync)",
        }

    async def get_page(self, category: CategoryDefinition, page: int) -> UpstreamPage:
        """Fetch one page of a listing category such as ``/movie/popular``."""

        data = await self._get_json(category.endpoint, {"page": page})
        return self._parse_page(data, category.endpoint)

    async def search(self, media_type: MediaType, query: str, page: int) -> UpstreamPage:
        """Run a title search for movies or shows."""

        endpoint = f"/search/{media_type}"
        data = await self._get_json(
            endpoint,
            {"query": query, "page": page, "include_adult": "false"},
        )
        return self._parse_page(data, endpoint)

    async def get_details(
        self, media_type: MediaType, external_id: int
    ) -> dict[str, Any]:
        """Fetch the full record for a movie or show."""

        data = await self._get_json(
            f"/{media_type}/{external_id}",
            {},
            not_found=(media_type, external_id),
        )
        if not isinstance(data, dict):
            raise UpstreamFetchFailed(
                f"Unexpected TMDB detail payload for {media_type} {external_id}"
            )
        return data

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any],
        *,
        not_found: tuple[MediaType, int] | None = None,
    ) -> Any:
        query = {"language": self._settings.tmdb_language, **params}
        try:
            response = await self._client.get(path, params=query, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning(
                "TMDB request to %s failed (%s): %s", path, exc.__class__.__name__, exc
            )
            raise UpstreamFetchFailed(f"Error fetching {path} from TMDB: {exc}") from exc

        if response.status_code == 404 and not_found is not None:
            raise CatalogItemNotFound(*not_found)
        if response.status_code >= 400:
            logger.warning(
                "TMDB request to %s returned %s: %s",
                path,
                response.status_code,
                response.text[:200],
            )
            raise UpstreamFetchFailed(
                f"TMDB responded with {response.status_code} for {path}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON TMDB response for %s", path)
            raise UpstreamFetchFailed(f"TMDB returned invalid JSON for {path}") from exc

    @staticmethod
    def _parse_page(data: Any, endpoint: str) -> UpstreamPage:
        if not isinstance(data, dict):
            raise UpstreamFetchFailed(f"Unexpected TMDB response structure for {endpoint}")
        try:
            return UpstreamPage.model_validate(data)
        except ValidationError as exc:
            raise UpstreamFetchFailed(
                f"Unexpected TMDB page envelope for {endpoint}"
            ) from exc
