"""consent-gate – Consent Persistence.

Key-value backends (memory, SQLite, Redis) and the ConsentStore that maps the
ConsentRecord onto two boolean keys. Storage failures never propagate: they
are logged and reported as PERSISTENCE results.
"""

from pathlib import Path
from typing import Protocol

import aiosqlite
import redis.asyncio as redis
import structlog

from consent_gate.core.errors import ErrorKind, OperationResult
from consent_gate.core.models import ConsentRecord

logger = structlog.get_logger()

DEFAULT_DB_PATH = "data/consent.db"
REDIS_KEY_PREFIX = "consent_gate:"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS consent_flags (
    key TEXT PRIMARY KEY,
    value INTEGER NOT NULL,
    updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


class KeyValueStore(Protocol):
    """Boolean key-value persistence."""

    async def get(self, key: str) -> bool | None: ...

    async def set(self, key: str, value: bool) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def close(self) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store, used in tests and when persistence is disabled."""

    def __init__(self, initial: dict[str, bool] | None = None) -> None:
        self._data: dict[str, bool] = dict(initial or {})

    async def get(self, key: str) -> bool | None:
        return self._data.get(key)

    async def set(self, key: str, value: bool) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def close(self) -> None:
        return None


class SQLiteKeyValueStore:
    """Async SQLite store with a single flags table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the schema."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()
        logger.info("store.sqlite_initialized", path=self._db_path)

    @property
    def db(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._db

    async def get(self, key: str) -> bool | None:
        async with self.db.execute("SELECT value FROM consent_flags WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        return None if row is None else bool(row[0])

    async def set(self, key: str, value: bool) -> None:
        await self.db.execute(
            """
            INSERT INTO consent_flags (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            """,
            (key, int(value)),
        )
        await self.db.commit()

    async def remove(self, key: str) -> None:
        await self.db.execute("DELETE FROM consent_flags WHERE key = ?", (key,))
        await self.db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None


class RedisKeyValueStore:
    """Redis-backed store; values are kept as '1' / '0'."""

    def __init__(self, redis_url: str = "redis://127.0.0.1:6379/0", prefix: str = REDIS_KEY_PREFIX) -> None:
        self._redis_url = redis_url
        self._prefix = prefix
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        self._client = redis.from_url(self._redis_url, decode_responses=True)
        await self._client.ping()
        logger.info("store.redis_connected", url=self._redis_url)

    @property
    def client(self) -> redis.Redis:
        if not self._client:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._client

    async def get(self, key: str) -> bool | None:
        raw = await self.client.get(self._prefix + key)
        if raw is None:
            return None
        return raw == "1"

    async def set(self, key: str, value: bool) -> None:
        await self.client.set(self._prefix + key, "1" if value else "0")

    async def remove(self, key: str) -> None:
        await self.client.delete(self._prefix + key)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


class ConsentStore:
    """Reads and writes the ConsentRecord through a KeyValueStore."""

    def __init__(
        self,
        backend: KeyValueStore,
        general_key: str = "general_consent",
        effective_key: str = "effective_permission",
    ) -> None:
        self._backend = backend
        self._general_key = general_key
        self._effective_key = effective_key

    async def load(self) -> tuple[ConsentRecord, OperationResult]:
        """Load the persisted record.

        Absent keys read as False. On a storage failure the default
        (all-false) record is returned together with the failure.
        """
        try:
            general = await self._backend.get(self._general_key)
            effective = await self._backend.get(self._effective_key)
        except Exception as exc:
            logger.error("store.load_failed", error=str(exc))
            return ConsentRecord(), OperationResult.failure(ErrorKind.PERSISTENCE, str(exc))

        record = ConsentRecord(general_consent=bool(general), effective_permission=bool(effective))
        normalized = record.normalized()
        if normalized != record:
            logger.warning("store.record_repaired", reason="effective_without_general")
        return normalized, OperationResult.success()

    async def save_general(self, granted: bool) -> OperationResult:
        return await self._write(self._general_key, granted)

    async def save_effective(self, permitted: bool) -> OperationResult:
        return await self._write(self._effective_key, permitted)

    async def clear(self) -> OperationResult:
        try:
            await self._backend.remove(self._general_key)
            await self._backend.remove(self._effective_key)
        except Exception as exc:
            logger.error("store.clear_failed", error=str(exc))
            return OperationResult.failure(ErrorKind.PERSISTENCE, str(exc))
        logger.info("store.cleared")
        return OperationResult.success()

    async def close(self) -> None:
        try:
            await self._backend.close()
        except Exception as exc:
            logger.warning("store.close_failed", error=str(exc))

    async def _write(self, key: str, value: bool) -> OperationResult:
        try:
            await self._backend.set(key, value)
        except Exception as exc:
            logger.error("store.write_failed", key=key, error=str(exc))
            return OperationResult.failure(ErrorKind.PERSISTENCE, str(exc))
        logger.debug("store.written", key=key, value=value)
        return OperationResult.success()
