"""Failure taxonomy surfaced by the venue search core.

Only the category travels upward; driver messages stay in the logs.
"""

from __future__ import annotations


class VenueSearchError(Exception):
    category = "internal_error"
    hint = "Unexpected error while searching venues."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.hint)


class StoreUnavailableError(VenueSearchError):
    category = "store_unavailable"
    hint = "Unable to reach the venue database. Please try again later."


class QueryTimeoutError(VenueSearchError):
    category = "query_timeout"
    hint = "The query took too long. Please try again."


class VenueNotFoundError(VenueSearchError):
    category = "not_found"
    hint = "Venue not found."


class VenueNotAvailableError(VenueSearchError):
    category = "not_available"
    hint = "Venue not available."


__all__ = [
    "QueryTimeoutError",
    "StoreUnavailableError",
    "VenueNotAvailableError",
    "VenueNotFoundError",
    "VenueSearchError",
]
