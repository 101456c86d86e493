"""Local persistent key-value storage backends."""

import logging
from pathlib import Path
from typing import Protocol

import aiosqlite

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class InMemoryKeyValueStorage:
    """Process-local storage. Used for anonymous sessions and tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)


class SQLiteKeyValueStorage:
    """Async SQLite-backed key-value store.

    All SQL for local persistence lives here; callers only see strings.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = str(db_path)
        self.connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL mode, execute schema."""
        self.connection = await aiosqlite.connect(self.db_path)
        schema_path = Path(__file__).parent / "schema.sql"
        await self.connection.executescript(schema_path.read_text())
        await self.connection.execute("PRAGMA journal_mode=WAL")
        await self.connection.commit()
        logger.info("Local storage initialized at %s", self.db_path)

    async def close(self) -> None:
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def __aenter__(self) -> "SQLiteKeyValueStorage":
        await self.initialize()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.close()

    async def get(self, key: str) -> str | None:
        assert self.connection is not None
        cursor = await self.connection.execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return row[0]

    async def set(self, key: str, value: str) -> None:
        assert self.connection is not None
        await self.connection.execute(
            "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, datetime('now')) "
            "ON CONFLICT(key) DO UPDATE SET "
            "value = excluded.value, updated_at = excluded.updated_at",
            (key, value),
        )
        await self.connection.commit()

    async def remove(self, key: str) -> None:
        assert self.connection is not None
        await self.connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        await self.connection.commit()
