from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .contracts import SortSpec
from .predicates import MATCH_ALL
from .storage import SqlReviewStore, SqlVenueStore

logger = logging.getLogger(__name__)


def read_seed(path: Path) -> dict[str, list[dict[str, Any]]]:
    """Parse a `{venues, reviews, users}` seed file; missing sections are empty."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, list):
        # a bare list is a venues-only export
        payload = {"venues": payload}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Seed file {path} must hold a JSON object or list")
    return {
        section: [item for item in payload.get(section) or [] if isinstance(item, Mapping)]
        for section in ("venues", "reviews", "users")
    }


def _with_names(reviews: list[dict[str, Any]], users: list[dict[str, Any]]) -> list[dict[str, Any]]:
    names = {str(user.get("id") or user.get("_id")): user.get("name") for user in users}
    resolved = []
    for review in reviews:
        review = dict(review)
        review.setdefault("userName", names.get(str(review.get("userId"))))
        reply = review.get("reply")
        if isinstance(reply, Mapping):
            reply = dict(reply)
            reply.setdefault("repliedByName", names.get(str(reply.get("repliedBy"))))
            review["reply"] = reply
        resolved.append(review)
    return resolved


async def load_seed(
    path: Path, venues: SqlVenueStore, reviews: SqlReviewStore
) -> tuple[int, int]:
    """Import a seed file into empty SQL stores. Returns (venues, reviews) written."""
    existing = await venues.find_page(MATCH_ALL, SortSpec(), 0, 1)
    if existing:
        logger.info("Venue store already populated; skipping seed %s", path)
        return 0, 0
    data = read_seed(path)
    venue_ids = await venues.add_many(data["venues"])
    review_count = await reviews.add_many(_with_names(data["reviews"], data["users"]))
    logger.info("Seeded %d venues and %d reviews from %s", len(venue_ids), review_count, path)
    return len(venue_ids), review_count


__all__ = ["load_seed", "read_seed"]
