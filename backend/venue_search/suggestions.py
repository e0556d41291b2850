from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .contracts import SortSpec, Suggestions
from .filters import visibility_guard
from .predicates import MISSING, AllOf, Contains, any_contains, resolve
from .settings import settings
from .storage import VenueStore, bounded
from .validators import clean_text

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_LIMIT = 10
SUGGESTION_PATHS = ("name", "location", "location.city", "location.state", "tags")


def _matching(values: Iterable[Any], term: str, limit: int) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if not isinstance(value, str):
            continue
        value = value.strip()
        if value and term in value.lower():
            seen.setdefault(value, None)
        if len(seen) >= limit:
            break
    return list(seen)


def _location_parts(document: Mapping[str, Any], key: str) -> Iterable[Any]:
    location = resolve(document, "location")
    if isinstance(location, Mapping):
        part = resolve(location, key)
        if part is not MISSING:
            yield part
    elif isinstance(location, str):
        # free-text legacy locations offer each comma-separated part
        yield from (part.strip() for part in location.split(","))


def _tags(document: Mapping[str, Any]) -> Iterable[Any]:
    tags = document.get("tags")
    return tags if isinstance(tags, list) else ()


async def suggest(
    store: VenueStore,
    query: Any,
    limit: Any = None,
    *,
    timeout: float | None = None,
) -> Suggestions:
    """Venue names, cities, states and tags among public venues that contain `query`."""
    term = clean_text(query)
    if not term:
        return Suggestions()
    try:
        cap = int(limit) if limit is not None else DEFAULT_SUGGESTION_LIMIT
    except (TypeError, ValueError):
        cap = DEFAULT_SUGGESTION_LIMIT
    if cap < 1:
        cap = DEFAULT_SUGGESTION_LIMIT
    cap = min(cap, settings.SUGGESTION_MAX_LIMIT)

    needle = term.lower()
    predicate = AllOf((any_contains(term, SUGGESTION_PATHS), *visibility_guard()))
    documents = await bounded(
        store.find_page(predicate, SortSpec(field="name", descending=False)),
        timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS,
        "suggestions",
    )
    logger.debug("suggestions term=%s candidates=%d", term, len(documents))

    names = (doc.get("name") for doc in documents if Contains("name", term).matches(doc))
    return Suggestions(
        query=term,
        venues=_matching(names, needle, cap),
        cities=_matching(
            (part for doc in documents for part in _location_parts(doc, "city")), needle, cap
        ),
        states=_matching(
            (part for doc in documents for part in _location_parts(doc, "state")), needle, cap
        ),
        tags=_matching((tag for doc in documents for tag in _tags(doc)), needle, cap),
    )


__all__ = ["DEFAULT_SUGGESTION_LIMIT", "suggest"]
