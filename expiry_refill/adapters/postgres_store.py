"""
PostgreSQL-backed record store.

Documents live as JSONB rows (`id text`, `doc jsonb`) and are looked up by one
top-level field of the document, mirroring a document database's
"find where field == value" query. `db/init.sql` creates the table together
with an expression index on the default key field.
"""

from __future__ import annotations

from typing import List, Optional

import psycopg
from psycopg import sql
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from expiry_refill.adapters.abstract import AbstractRecordStore
from expiry_refill.config import get_settings
from expiry_refill.domain.models import Record
from expiry_refill.errors import StoreUnavailable
from expiry_refill.infrastructure.db_factory import open_pool
from expiry_refill.utils.logging import get_logger

log = get_logger(__name__)


def _table_identifier(table: str) -> sql.Identifier:
    """Split an optionally schema-qualified table name into a quoted identifier."""
    return sql.Identifier(*table.split("."))


class PostgresRecordStore(AbstractRecordStore):
    """
    Look up JSONB documents by a key field using a psycopg async pool.

    The pool is either injected (tests, shared pools) or opened lazily by
    `open()`; only a pool opened here is closed by `close()`.
    """

    def __init__(
        self,
        pool: Optional[AsyncConnectionPool] = None,
        table: Optional[str] = None,
        key_field: Optional[str] = None,
        value_field: Optional[str] = None,
        dsn_override: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.table = table or settings.store_table
        self.key_field = key_field or settings.store_key_field
        self.value_field = value_field or settings.store_value_field
        self._dsn_override = dsn_override
        self._pool = pool
        self._owns_pool = pool is None
        self._query = sql.SQL(
            "SELECT id::text, doc->>{key_field}, doc->>{value_field} "
            "FROM {table} WHERE doc->>{key_field} = %s"
        ).format(
            key_field=sql.Literal(self.key_field),
            value_field=sql.Literal(self.value_field),
            table=_table_identifier(self.table),
        )

    async def open(self) -> "PostgresRecordStore":
        if self._pool is None:
            try:
                self._pool = await open_pool(dsn=self._dsn_override)
            except (psycopg.Error, PoolTimeout) as exc:
                raise StoreUnavailable(f"Could not open record store pool: {exc}") from exc
        return self

    async def close(self) -> None:
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresRecordStore":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def lookup_by_key(self, key: str) -> List[Record]:
        if self._pool is None:
            raise StoreUnavailable("Record store is not open", key=key)

        try:
            async with self._pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(self._query, (key,))
                    rows = await cur.fetchall()
        except (psycopg.Error, PoolTimeout) as exc:
            log.warning(
                "Record store lookup failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            raise StoreUnavailable(f"Lookup for key '{key}' failed: {exc}", key=key) from exc

        # A document may lack the value field; its value renders as an empty string.
        return [
            Record(id=row_id, key=row_key, value=row_value if row_value is not None else "")
            for row_id, row_key, row_value in rows
        ]


__all__ = ["PostgresRecordStore"]
