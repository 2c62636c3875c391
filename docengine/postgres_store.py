"""
PostgresStore adapter for the docengine document store.

Implements the DocumentStore protocol using Postgres as the backend.
One row per document: the whole document as JSONB plus its version number,
which is what the compare-and-swap save checks.
"""

from __future__ import annotations

import json
import re

import asyncpg

from docengine.config import settings
from docengine.errors import ConcurrentModification
from docengine.store import DocumentStore
from docengine.types import Document

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PostgresStore(DocumentStore):
    """
    Postgres-based storage for documents.

    Table layout (see create_table):
    - id:         document id (primary key)
    - version:    document version counter
    - body:       Document.to_dict() as JSONB
    - updated_at: last write time
    """

    def __init__(self, pool: asyncpg.Pool, table: str | None = None):
        table = table or settings.POSTGRES_TABLE
        if not _IDENTIFIER_RE.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self.pool = pool
        self.table = table

    async def create_table(self) -> None:
        """Create the documents table if it does not exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id TEXT PRIMARY KEY,
                    version INTEGER NOT NULL DEFAULT 0,
                    body JSONB NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """
            )

    async def find_by_id(self, document_id: str) -> Document | None:
        """Fetch a document. Returns None if not found."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT body FROM {self.table} WHERE id = $1",
                document_id,
            )
            if not row:
                return None
            body = row["body"]
            if isinstance(body, str):
                body = json.loads(body)
            return Document.from_dict(body)

    async def save(self, document: Document, *, expected_version: int | None = None) -> Document:
        """
        Upsert a document.

        With expected_version, an existing row is only updated while its
        version still equals expected_version. A row that does not exist yet
        is inserted.
        """
        body = json.dumps(document.to_dict())
        async with self.pool.acquire() as conn:
            if expected_version is None:
                await conn.execute(
                    f"""
                    INSERT INTO {self.table} (id, version, body, updated_at)
                    VALUES ($1, $2, $3::jsonb, now())
                    ON CONFLICT (id)
                    DO UPDATE SET version = EXCLUDED.version, body = EXCLUDED.body, updated_at = now()
                    """,
                    document.id,
                    document.version,
                    body,
                )
                return document

            async with conn.transaction():
                status = await conn.execute(
                    f"""
                    UPDATE {self.table}
                    SET version = $2, body = $3::jsonb, updated_at = now()
                    WHERE id = $1 AND version = $4
                    """,
                    document.id,
                    document.version,
                    body,
                    expected_version,
                )
                if status == "UPDATE 0":
                    exists = await conn.fetchval(
                        f"SELECT 1 FROM {self.table} WHERE id = $1",
                        document.id,
                    )
                    if exists:
                        raise ConcurrentModification(document.id, expected_version)
                    await conn.execute(
                        f"""
                        INSERT INTO {self.table} (id, version, body, updated_at)
                        VALUES ($1, $2, $3::jsonb, now())
                        """,
                        document.id,
                        document.version,
                        body,
                    )
        return document

    async def delete(self, document_id: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"DELETE FROM {self.table} WHERE id = $1",
                document_id,
            )

    async def close(self) -> None:
        """Close the connection pool."""
        await self.pool.close()
