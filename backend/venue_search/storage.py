from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections.abc import Awaitable, Collection, Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any, Protocol, TypeVar

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .contracts import SortSpec
from .db.core import SessionLocal
from .db.models import ReviewRecord, VenueRecord
from .errors import QueryTimeoutError, StoreUnavailableError
from .predicates import MISSING, AllOf, Eq, NotEq, OneOf, Predicate, resolve

logger = logging.getLogger(__name__)

T = TypeVar("T")

# document keys backed by real VenueRecord columns
COLUMN_KEYS = ("id", "_id", "vendorId", "status", "vendorActive", "createdAt", "updatedAt")


class VenueStore(Protocol):
    async def find_page(
        self, predicate: Predicate, sort: SortSpec, offset: int = 0, limit: int | None = None
    ) -> list[dict[str, Any]]: ...

    async def count(self, predicate: Predicate) -> int: ...

    async def get(self, venue_id: str) -> dict[str, Any] | None: ...

    async def ping(self) -> None: ...


class ReviewStore(Protocol):
    async def find_by_venue_ids(self, venue_ids: Collection[str]) -> list[dict[str, Any]]: ...


async def bounded(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """Await a store call under a deadline; expiry surfaces as `QueryTimeoutError`."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("store_timeout operation=%s timeout=%.1fs", operation, timeout)
        raise QueryTimeoutError() from exc


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


def _ensure_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Ignoring unparseable timestamp: %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _doc_id(document: Mapping[str, Any]) -> str:
    value = document.get("id") or document.get("_id")
    return str(value) if value is not None else ""


# --------------------------------------------------------------------------- ordering
def _sort_key(value: Any) -> tuple[int, Any] | None:
    if value is MISSING or value is None or value == "":
        return None
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, float(value))
    if isinstance(value, (datetime, date)):
        return (1, value.isoformat())
    if isinstance(value, Mapping):
        # legacy `rating` objects sort by their average
        return _sort_key(value.get("average", MISSING))
    return (1, str(value).lower())


def _document_sort_key(
    document: Mapping[str, Any], paths: tuple[str, ...]
) -> tuple[int, Any] | None:
    """First present value along ``paths``; a zero defers to a later non-zero number."""
    first = None
    for path in paths:
        key = _sort_key(resolve(document, path))
        if key is None:
            continue
        if key != (0, 0.0):
            return key
        if first is None:
            first = key
    return first


def sort_documents(documents: Iterable[Mapping[str, Any]], sort: SortSpec) -> list[dict[str, Any]]:
    """Order by the sort paths; missing values go last either way, ties by id ascending."""
    present: list[tuple[tuple[int, Any], dict[str, Any]]] = []
    missing: list[dict[str, Any]] = []
    for document in sorted(documents, key=_doc_id):
        key = _document_sort_key(document, sort.paths)
        if key is None:
            missing.append(dict(document))
        else:
            present.append((key, dict(document)))
    # list.sort stays stable under reverse=True, so the id order survives ties
    present.sort(key=lambda pair: pair[0], reverse=sort.descending)
    return [document for _, document in present] + missing


def _page(documents: list[dict[str, Any]], offset: int, limit: int | None) -> list[dict[str, Any]]:
    end = None if limit is None else offset + limit
    return documents[offset:end]


class _DocumentStore:
    async def _candidates(self, predicate: Predicate) -> list[dict[str, Any]]:  # pragma: no cover
        raise NotImplementedError

    async def find_page(
        self, predicate: Predicate, sort: SortSpec, offset: int = 0, limit: int | None = None
    ) -> list[dict[str, Any]]:
        candidates = await self._candidates(predicate)
        return _page(sort_documents(candidates, sort), max(offset, 0), limit)

    async def count(self, predicate: Predicate) -> int:
        return len(await self._candidates(predicate))


# --------------------------------------------------------------------------- in-memory
class MemoryVenueStore(_DocumentStore):
    """Venue documents held in process; used for seed previews and tests."""

    def __init__(self, documents: Iterable[Mapping[str, Any]] = ()) -> None:
        self._documents: list[dict[str, Any]] = []
        for document in documents:
            self.add(document)

    def add(self, document: Mapping[str, Any]) -> str:
        stored = copy.deepcopy(dict(document))
        stored["id"] = _doc_id(stored) or str(uuid.uuid4())
        if isinstance(stored.get("status"), str):
            stored["status"] = stored["status"].strip().lower()
        self._documents.append(stored)
        return stored["id"]

    async def _candidates(self, predicate: Predicate) -> list[dict[str, Any]]:
        return [copy.deepcopy(doc) for doc in self._documents if predicate.matches(doc)]

    async def get(self, venue_id: str) -> dict[str, Any] | None:
        for document in self._documents:
            if document["id"] == str(venue_id):
                return copy.deepcopy(document)
        return None

    async def ping(self) -> None:
        return None


class MemoryReviewStore:
    def __init__(self, reviews: Iterable[Mapping[str, Any]] = ()) -> None:
        self._reviews = [copy.deepcopy(dict(review)) for review in reviews]

    def add(self, review: Mapping[str, Any]) -> None:
        self._reviews.append(copy.deepcopy(dict(review)))

    async def find_by_venue_ids(self, venue_ids: Collection[str]) -> list[dict[str, Any]]:
        wanted = {str(venue_id) for venue_id in venue_ids}
        matched = [
            copy.deepcopy(review) for review in self._reviews if str(review.get("venueId")) in wanted
        ]
        matched.sort(key=lambda review: str(review.get("createdAt") or ""), reverse=True)
        return matched


# --------------------------------------------------------------------------- SQL
def _push_down(stmt: Any, predicate: Predicate) -> Any:
    """Translate the column-backed top-level clauses to SQL; the rest is evaluated in Python."""
    clauses = predicate.clauses if isinstance(predicate, AllOf) else (predicate,)
    for clause in clauses:
        if isinstance(clause, OneOf) and clause.path == "status":
            if clause.ignore_case:
                folded = [str(value).lower() for value in clause.values]
                stmt = stmt.where(func.lower(VenueRecord.status).in_(folded))
            else:
                stmt = stmt.where(VenueRecord.status.in_([str(value) for value in clause.values]))
        elif isinstance(clause, Eq) and clause.value is not None:
            if clause.path == "status":
                stmt = stmt.where(VenueRecord.status == str(clause.value))
            elif clause.path == "vendorId":
                stmt = stmt.where(VenueRecord.vendor_id == str(clause.value))
        elif isinstance(clause, NotEq) and clause.path == "vendorActive" and clause.value is False:
            stmt = stmt.where(VenueRecord.vendor_active.is_not(False))
    return stmt


def _record_to_document(record: VenueRecord) -> dict[str, Any]:
    document = dict(record.payload or {})
    document.update(
        id=record.id,
        vendorId=record.vendor_id,
        status=record.status,
        vendorActive=record.vendor_active,
        createdAt=_iso(record.created_at),
        updatedAt=_iso(record.updated_at),
    )
    return document


def _ref(ref_id: str | None, name: str | None) -> Any:
    """Populated references carry a display name; unpopulated ones stay a raw id."""
    if name:
        return {"id": ref_id, "name": name}
    return ref_id


def _split_ref(value: Any, name: str | None = None) -> tuple[str | None, str | None]:
    if isinstance(value, Mapping):
        ref_id = value.get("id") or value.get("_id")
        return (str(ref_id) if ref_id is not None else None), value.get("name") or name
    return (str(value) if value is not None else None), name


def _review_to_dict(record: ReviewRecord) -> dict[str, Any]:
    reply = None
    if record.reply_message is not None or record.reply_by_id is not None:
        reply = {
            "message": record.reply_message,
            "repliedBy": _ref(record.reply_by_id, record.reply_by_name),
            "repliedAt": _iso(record.reply_at),
        }
    return {
        "id": record.id,
        "venueId": record.venue_id,
        "userId": _ref(record.user_id, record.user_name),
        "rating": record.rating,
        "comment": record.comment or "",
        "reply": reply,
        "createdAt": _iso(record.created_at),
    }


class _SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    async def _scalars(self, stmt: Any, store: str) -> list[Any]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as exc:
            logger.error("%s_unavailable error=%s", store, type(exc).__name__, exc_info=True)
            raise StoreUnavailableError() from exc

    async def _write(self, records: list[Any], store: str) -> None:
        try:
            async with self._session_factory() as session:
                session.add_all(records)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("%s_write_failed error=%s", store, type(exc).__name__, exc_info=True)
            raise StoreUnavailableError() from exc


class SqlVenueStore(_SqlStore, _DocumentStore):
    async def _candidates(self, predicate: Predicate) -> list[dict[str, Any]]:
        stmt = _push_down(select(VenueRecord), predicate)
        records = await self._scalars(stmt, "venue_store")
        documents = (_record_to_document(record) for record in records)
        return [document for document in documents if predicate.matches(document)]

    async def get(self, venue_id: str) -> dict[str, Any] | None:
        records = await self._scalars(
            select(VenueRecord).where(VenueRecord.id == str(venue_id)), "venue_store"
        )
        return _record_to_document(records[0]) if records else None

    async def ping(self) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailableError() from exc

    async def add_many(self, documents: Iterable[Mapping[str, Any]]) -> list[str]:
        records = []
        for document in documents:
            payload = {key: value for key, value in document.items() if key not in COLUMN_KEYS}
            vendor = document.get("vendorId")
            if isinstance(vendor, Mapping):
                vendor = vendor.get("id") or vendor.get("_id")
            record = VenueRecord(
                id=_doc_id(document) or str(uuid.uuid4()),
                vendor_id=str(vendor) if vendor is not None else None,
                status=str(document.get("status") or "pending").strip().lower(),
                vendor_active=document.get("vendorActive"),
                payload=payload,
            )
            created = _ensure_datetime(document.get("createdAt"))
            updated = _ensure_datetime(document.get("updatedAt"))
            if created is not None:
                record.created_at = created
            if updated is not None or created is not None:
                record.updated_at = updated or created
            records.append(record)
        await self._write(records, "venue_store")
        return [record.id for record in records]


class SqlReviewStore(_SqlStore):
    async def find_by_venue_ids(self, venue_ids: Collection[str]) -> list[dict[str, Any]]:
        ids = [str(venue_id) for venue_id in venue_ids]
        if not ids:
            return []
        stmt = (
            select(ReviewRecord)
            .where(ReviewRecord.venue_id.in_(ids))
            .order_by(ReviewRecord.created_at.desc(), ReviewRecord.id)
        )
        return [_review_to_dict(record) for record in await self._scalars(stmt, "review_store")]

    async def add_many(self, reviews: Iterable[Mapping[str, Any]]) -> int:
        records = []
        for review in reviews:
            reply = review.get("reply") if isinstance(review.get("reply"), Mapping) else {}
            user_id, user_name = _split_ref(review.get("userId"), review.get("userName"))
            reply_by_id, reply_by_name = _split_ref(reply.get("repliedBy"), reply.get("repliedByName"))
            record = ReviewRecord(
                id=str(review.get("id") or uuid.uuid4()),
                venue_id=str(review["venueId"]),
                user_id=user_id or "anonymous",
                user_name=user_name,
                rating=int(review["rating"]),
                comment=review.get("comment"),
                reply_message=reply.get("message"),
                reply_by_id=reply_by_id,
                reply_by_name=reply_by_name,
                reply_at=_ensure_datetime(reply.get("repliedAt")),
            )
            created = _ensure_datetime(review.get("createdAt"))
            if created is not None:
                record.created_at = created
            records.append(record)
        await self._write(records, "review_store")
        return len(records)


__all__ = [
    "MemoryReviewStore",
    "MemoryVenueStore",
    "ReviewStore",
    "SqlReviewStore",
    "SqlVenueStore",
    "VenueStore",
    "bounded",
    "sort_documents",
]
