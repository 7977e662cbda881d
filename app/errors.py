"""Exceptions raised by the catalog synchronisation layer."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for every catalog-level failure."""


class CatalogValidationError(CatalogError, ValueError):
    """Raised for malformed caller input, before any I/O happens."""


class InvalidIdentifier(CatalogValidationError):
    """The external identifier is not a positive integer."""

    def __init__(self, raw: object):
        super().__init__(f"Identifier {raw!r} is not a valid numeric id")
        self.raw = raw


class InvalidQuery(CatalogValidationError):
    """Paging or search parameters are out of range."""


class UpstreamFetchFailed(CatalogError):
    """TMDB could not be reached or answered with an unusable response."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CatalogItemNotFound(CatalogError, LookupError):
    """Neither the store nor TMDB knows the requested identifier."""

    def __init__(self, media_type: str, external_id: int):
        super().__init__(f"No {media_type} with id {external_id}")
        self.media_type = media_type
        self.external_id = external_id


class PersistenceError(CatalogError):
    """A store write or read failed."""


class RecordNormalizationError(CatalogError, ValueError):
    """An upstream record is missing the fields required to store it."""
