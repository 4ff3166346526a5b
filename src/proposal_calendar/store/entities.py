"""Entity store abstraction with an in-memory backend.

The calendar core only needs generic CRUD over named collections. Records are
plain JSON-compatible dicts; datetimes are stored as ISO-8601 strings.

Filter maps use equality by default plus three operators::

    {"organization_id": "org-1"}
    {"proposal_id": {"$in": ["p-1", "p-2"]}}
    {"status": {"$ne": "completed"}}
    {"proposal_id": {"$exists": False}}

Sort specs name a field, with a ``-`` prefix for descending order.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic_core import to_jsonable_python

from proposal_calendar.errors import EntityStoreError, RecordNotFoundError

logger = logging.getLogger(__name__)

Record = dict[str, Any]

FILTER_OPERATORS = frozenset({"$in", "$ne", "$exists"})
_MISSING = object()


class EntityStore(Protocol):
    """Protocol for entity store backends."""

    async def list(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """Return records in *collection* matching every entry of *filters*."""
        ...

    async def get(self, collection: str, record_id: str) -> Record:
        """Return one record.

        Raises:
            RecordNotFoundError: If no record has that id
        """
        ...

    async def create(self, collection: str, record: Mapping[str, Any]) -> Record:
        """Insert a record, assigning an id when absent, and return it."""
        ...

    async def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> Record:
        """Merge *patch* into a record and return the updated record.

        Raises:
            RecordNotFoundError: If no record has that id
        """
        ...

    async def delete(self, collection: str, record_id: str) -> None:
        """Delete a record.

        Raises:
            RecordNotFoundError: If no record has that id
        """
        ...


def to_record(value: Mapping[str, Any]) -> Record:
    """Convert a mapping into JSON-compatible form (datetimes become ISO strings)."""
    return to_jsonable_python(dict(value))


def validate_filters(filters: Mapping[str, Any]) -> None:
    for field_name, expected in filters.items():
        if not isinstance(field_name, str) or not field_name:
            raise ValueError(f"Invalid filter field: {field_name!r}")
        if isinstance(expected, Mapping):
            unknown = set(expected) - FILTER_OPERATORS
            if unknown:
                raise ValueError(
                    f"Unsupported filter operator(s) for {field_name}: {sorted(unknown)}"
                )


def _matches_condition(actual: object, expected: object) -> bool:
    if isinstance(expected, Mapping):
        for operator, operand in expected.items():
            if operator == "$in":
                if actual is _MISSING or actual not in list(operand):
                    return False
            elif operator == "$ne":
                if actual is not _MISSING and actual == operand:
                    return False
            elif operator == "$exists":
                if (actual is not _MISSING) != bool(operand):
                    return False
        return True
    return actual is not _MISSING and actual == expected


def record_matches(record: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    """True when *record* satisfies every condition in *filters*."""
    return all(
        _matches_condition(record.get(field_name, _MISSING), expected)
        for field_name, expected in filters.items()
    )


def parse_sort(sort: str | None) -> tuple[str, bool] | None:
    """Split a sort spec into ``(field, descending)``."""
    if not sort:
        return None
    descending = sort.startswith("-")
    field_name = sort[1:] if descending else sort
    if not field_name:
        raise ValueError(f"Invalid sort spec: {sort!r}")
    return field_name, descending


def sort_records(records: list[Record], sort: str | None) -> list[Record]:
    """Sort records by a sort spec; records missing the field always sort last."""
    parsed = parse_sort(sort)
    if parsed is None:
        return records
    field_name, descending = parsed
    present = [r for r in records if r.get(field_name) is not None]
    missing = [r for r in records if r.get(field_name) is None]
    present.sort(key=lambda r: r[field_name], reverse=descending)
    return present + missing


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class InMemoryEntityStore:
    """Dict-backed entity store for tests, demos and the CLI.

    Args:
        seed: Optional ``{collection: [records]}`` mapping to preload
    """

    def __init__(self, seed: Mapping[str, Iterable[Mapping[str, Any]]] | None = None) -> None:
        self._collections: dict[str, dict[str, Record]] = defaultdict(dict)
        for collection, records in (seed or {}).items():
            for record in records:
                stored = to_record(record)
                record_id = str(stored.get("id") or uuid.uuid4())
                stored["id"] = record_id
                self._collections[collection][record_id] = stored

    @classmethod
    def from_json_file(cls, path: Path) -> InMemoryEntityStore:
        """Build a store seeded from a JSON fixture file."""
        try:
            seed = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise EntityStoreError("seed", f"cannot load {path}: {exc}") from exc
        if not isinstance(seed, dict):
            raise EntityStoreError("seed", f"{path} must contain an object of collections")
        store = cls(seed)
        logger.info(
            "Seeded in-memory store from %s (%d collections)", path, len(store._collections)
        )
        return store

    async def list(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        filters = filters or {}
        validate_filters(filters)
        matched = [
            copy.deepcopy(record)
            for record in self._collections.get(collection, {}).values()
            if record_matches(record, filters)
        ]
        matched = sort_records(matched, sort)
        if limit is not None:
            matched = matched[:limit]
        return matched

    async def get(self, collection: str, record_id: str) -> Record:
        record = self._collections.get(collection, {}).get(record_id)
        if record is None:
            raise RecordNotFoundError(collection, record_id)
        return copy.deepcopy(record)

    async def create(self, collection: str, record: Mapping[str, Any]) -> Record:
        stored = to_record(record)
        record_id = str(stored.get("id") or uuid.uuid4())
        stored["id"] = record_id
        stored.setdefault("created_date", _now_iso())
        self._collections[collection][record_id] = stored
        return copy.deepcopy(stored)

    async def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> Record:
        existing = self._collections.get(collection, {}).get(record_id)
        if existing is None:
            raise RecordNotFoundError(collection, record_id)
        changes = to_record(patch)
        changes.pop("id", None)
        existing.update(changes)
        existing["updated_date"] = _now_iso()
        return copy.deepcopy(existing)

    async def delete(self, collection: str, record_id: str) -> None:
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(collection, record_id)
        del records[record_id]
