from __future__ import annotations

from typing import Annotated

from fastapi import Path, Query

SuggestionTerm = Annotated[
    str | None,
    Query(
        max_length=200,
        description="Partial venue name, city, state or tag",
    ),
]

SuggestionLimit = Annotated[
    str | None,
    Query(description="Maximum suggestions per category (capped at 20)"),
]

VenueId = Annotated[
    str,
    Path(min_length=1, max_length=64, description="Venue identifier"),
]
