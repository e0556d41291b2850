"""Store-agnostic boolean filter expressions over raw venue documents.

Paths are dotted (``location.city``). Resolution walks mappings only, so a path
into a string-shaped legacy field simply does not resolve. Each segment matches
its key exactly when present, otherwise case-insensitively (``City``). List
values follow document-store semantics: a clause holds when any element
satisfies it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .validators import coerce_float


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def resolve(record: Mapping[str, Any], path: str) -> Any:
    current: Any = record
    for segment in path.split("."):
        if not isinstance(current, Mapping):
            return MISSING
        current = _member(current, segment)
        if current is MISSING:
            return MISSING
    return current


def _member(mapping: Mapping[str, Any], key: str) -> Any:
    if key in mapping:
        return mapping[key]
    folded = key.lower()
    for name, value in mapping.items():
        if isinstance(name, str) and name.lower() == folded:
            return value
    return MISSING


def _elements(value: Any) -> Iterable[Any]:
    if isinstance(value, (list, tuple, set)):
        return value
    return (value,)


def _same(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return actual is expected
    if actual == expected:
        return True
    # ids are compared by their string form
    if isinstance(actual, Mapping):
        actual = actual.get("id") or actual.get("_id")
    return actual is not None and expected is not None and str(actual) == str(expected)


def _number(value: Any) -> float | None:
    # numeric strings from legacy imports count; booleans never do
    if value is MISSING or isinstance(value, (Mapping, list, tuple)):
        return None
    return coerce_float(value)


class Predicate:
    def matches(self, record: Mapping[str, Any]) -> bool:  # pragma: no cover - abstract
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class Eq(Predicate):
    """Equality; a None value matches missing or null fields."""

    path: str
    value: Any

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = resolve(record, self.path)
        if self.value is None:
            return actual is MISSING or actual is None
        if actual is MISSING:
            return False
        return any(_same(item, self.value) for item in _elements(actual))

    def to_dict(self) -> dict[str, Any]:
        return {self.path: self.value}


@dataclass(frozen=True, slots=True)
class NotEq(Predicate):
    """Negated equality; missing fields pass."""

    path: str
    value: Any

    def matches(self, record: Mapping[str, Any]) -> bool:
        return not Eq(self.path, self.value).matches(record)

    def to_dict(self) -> dict[str, Any]:
        return {self.path: {"$ne": self.value}}


@dataclass(frozen=True, slots=True)
class OneOf(Predicate):
    """Set membership; with ``ignore_case`` string values compare case-folded."""

    path: str
    values: tuple[Any, ...]
    ignore_case: bool = False

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = resolve(record, self.path)
        if actual is MISSING:
            return False
        for item in _elements(actual):
            for expected in self.values:
                if self.ignore_case and isinstance(item, str) and isinstance(expected, str):
                    if item.lower() == expected.lower():
                        return True
                elif _same(item, expected):
                    return True
        return False

    def to_dict(self) -> dict[str, Any]:
        return {self.path: {"$in": list(self.values)}}


@dataclass(frozen=True, slots=True)
class Contains(Predicate):
    """Case-insensitive substring match against string values."""

    path: str
    term: str

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = resolve(record, self.path)
        needle = self.term.lower()
        return any(
            isinstance(item, str) and needle in item.lower() for item in _elements(actual)
        )

    def to_dict(self) -> dict[str, Any]:
        return {self.path: {"$contains": self.term, "$options": "i"}}


@dataclass(frozen=True, slots=True)
class Between(Predicate):
    """Inclusive numeric range over the first non-zero number found along ``path, *fallbacks``."""

    path: str
    minimum: float | None = None
    maximum: float | None = None
    fallbacks: tuple[str, ...] = ()

    def value_of(self, record: Mapping[str, Any]) -> float | None:
        first: float | None = None
        for path in (self.path, *self.fallbacks):
            number = _number(resolve(record, path))
            if number is None:
                continue
            if number:
                return number
            if first is None:
                first = number
        return first

    def matches(self, record: Mapping[str, Any]) -> bool:
        value = self.value_of(record)
        if value is None:
            return False
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        bounds: dict[str, Any] = {}
        if self.minimum is not None:
            bounds["$gte"] = self.minimum
        if self.maximum is not None:
            bounds["$lte"] = self.maximum
        if self.fallbacks:
            bounds["$coalesce"] = list(self.fallbacks)
        return {self.path: bounds}


@dataclass(frozen=True, slots=True)
class AllOf(Predicate):
    clauses: tuple[Predicate, ...] = field(default_factory=tuple)

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(clause.matches(record) for clause in self.clauses)

    def to_dict(self) -> dict[str, Any]:
        return {"$and": [clause.to_dict() for clause in self.clauses]}


@dataclass(frozen=True, slots=True)
class AnyOf(Predicate):
    clauses: tuple[Predicate, ...] = field(default_factory=tuple)

    def matches(self, record: Mapping[str, Any]) -> bool:
        return any(clause.matches(record) for clause in self.clauses)

    def to_dict(self) -> dict[str, Any]:
        return {"$or": [clause.to_dict() for clause in self.clauses]}


MATCH_ALL = AllOf(())


def any_contains(term: str, paths: Iterable[str]) -> AnyOf:
    return AnyOf(tuple(Contains(path, term) for path in paths))


__all__ = [
    "MATCH_ALL",
    "MISSING",
    "AllOf",
    "AnyOf",
    "Between",
    "Contains",
    "Eq",
    "NotEq",
    "OneOf",
    "Predicate",
    "any_contains",
    "resolve",
]
