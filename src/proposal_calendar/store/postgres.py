"""PostgreSQL entity store backed by a single JSONB table.

Every collection shares the ``entities`` table; a record's fields live in the
``data`` column. Filters compile to ``jsonb`` predicates with positional
parameters, so field names and values never reach the SQL text.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any

import asyncpg

from proposal_calendar.errors import EntityStoreError, RecordNotFoundError
from proposal_calendar.store.entities import Record, parse_sort, to_record, validate_filters

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS entities (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    data JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (collection, id)
);
CREATE INDEX IF NOT EXISTS entities_data_gin ON entities USING GIN (data);
"""


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


def compile_filters(
    collection: str,
    filters: Mapping[str, Any],
) -> tuple[str, list[Any]]:
    """Build a WHERE clause and its positional args for a filter map."""
    validate_filters(filters)
    conditions: list[str] = ["collection = $1"]
    args: list[Any] = [collection]

    def _param(value: Any) -> str:
        args.append(value)
        return f"${len(args)}"

    for field_name, expected in filters.items():
        if isinstance(expected, Mapping):
            field_ref = f"({_param(field_name)}::text)"
            for operator, operand in expected.items():
                if operator == "$in":
                    values = list(operand)
                    conditions.append(f"data->{field_ref} = ANY({_param(values)}::jsonb[])")
                elif operator == "$ne":
                    conditions.append(
                        f"data->{field_ref} IS DISTINCT FROM {_param(operand)}::jsonb"
                    )
                elif operator == "$exists":
                    clause = f"data ? {field_ref}"
                    conditions.append(clause if operand else f"NOT ({clause})")
        else:
            field_ref = f"({_param(field_name)}::text)"
            conditions.append(f"data->{field_ref} = {_param(expected)}::jsonb")

    return " AND ".join(conditions), args


class PostgresEntityStore:
    """asyncpg-backed entity store.

    Usage::

        store = PostgresEntityStore("postgresql://localhost/calendar")
        await store.connect()
        events = await store.list("CalendarEvent", {"organization_id": "org-1"})
        await store.close()
    """

    def __init__(
        self,
        dsn: str,
        *,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create the pool and ensure the entities table exists."""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(
            dsn=self._dsn,
            min_size=self._min_pool_size,
            max_size=self._max_pool_size,
            init=_init_connection,
        )
        async with self._pool.acquire() as conn:
            await conn.execute(_SCHEMA_SQL)
        logger.info(
            "Connected entity store pool (min=%d, max=%d)",
            self._min_pool_size,
            self._max_pool_size,
        )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Closed entity store pool")

    def _require_pool(self, collection: str) -> asyncpg.Pool:
        if self._pool is None:
            raise EntityStoreError(collection, "store is not connected")
        return self._pool

    async def list(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        pool = self._require_pool(collection)
        where, args = compile_filters(collection, filters or {})
        query = f"SELECT data FROM entities WHERE {where}"
        parsed_sort = parse_sort(sort)
        if parsed_sort is not None:
            field_name, descending = parsed_sort
            args.append(field_name)
            direction = "DESC" if descending else "ASC"
            query += f" ORDER BY data->>(${len(args)}::text) {direction} NULLS LAST, id ASC"
        if limit is not None:
            args.append(int(limit))
            query += f" LIMIT ${len(args)}"
        try:
            rows = await pool.fetch(query, *args)
        except (asyncpg.PostgresError, OSError) as exc:
            raise EntityStoreError(collection, f"list failed: {exc}") from exc
        return [dict(row["data"]) for row in rows]

    async def get(self, collection: str, record_id: str) -> Record:
        pool = self._require_pool(collection)
        try:
            row = await pool.fetchrow(
                "SELECT data FROM entities WHERE collection = $1 AND id = $2",
                collection,
                record_id,
            )
        except (asyncpg.PostgresError, OSError) as exc:
            raise EntityStoreError(collection, f"get failed: {exc}") from exc
        if row is None:
            raise RecordNotFoundError(collection, record_id)
        return dict(row["data"])

    async def create(self, collection: str, record: Mapping[str, Any]) -> Record:
        pool = self._require_pool(collection)
        data = to_record(record)
        data["id"] = str(data.get("id") or uuid.uuid4())
        try:
            row = await pool.fetchrow(
                """
                INSERT INTO entities (collection, id, data)
                VALUES ($1, $2, jsonb_set($3::jsonb, '{created_date}', to_jsonb(now())))
                RETURNING data
                """,
                collection,
                data["id"],
                data,
            )
        except (asyncpg.PostgresError, OSError) as exc:
            raise EntityStoreError(collection, f"create failed: {exc}") from exc
        return dict(row["data"])

    async def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> Record:
        pool = self._require_pool(collection)
        changes = to_record(patch)
        changes.pop("id", None)
        try:
            row = await pool.fetchrow(
                """
                UPDATE entities
                SET data = jsonb_set(data || $3::jsonb, '{updated_date}', to_jsonb(now())),
                    updated_at = now()
                WHERE collection = $1 AND id = $2
                RETURNING data
                """,
                collection,
                record_id,
                changes,
            )
        except (asyncpg.PostgresError, OSError) as exc:
            raise EntityStoreError(collection, f"update failed: {exc}") from exc
        if row is None:
            raise RecordNotFoundError(collection, record_id)
        return dict(row["data"])

    async def delete(self, collection: str, record_id: str) -> None:
        pool = self._require_pool(collection)
        try:
            status = await pool.execute(
                "DELETE FROM entities WHERE collection = $1 AND id = $2",
                collection,
                record_id,
            )
        except (asyncpg.PostgresError, OSError) as exc:
            raise EntityStoreError(collection, f"delete failed: {exc}") from exc
        if status.endswith(" 0"):
            raise RecordNotFoundError(collection, record_id)
