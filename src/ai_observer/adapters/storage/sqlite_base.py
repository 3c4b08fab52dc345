"""Connection management for the SQLite storage adapter."""

import asyncio
import json
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite


def dumps_json(data: Any) -> str:
    """Serialize a column value as compact JSON."""
    return json.dumps(data, separators=(",", ":"), sort_keys=True)


def loads_json_map(data: str | None) -> dict[str, Any]:
    """Parse a JSON object column, returning {} on bad or empty data."""
    if not data:
        return {}
    try:
        result = json.loads(data)
    except json.JSONDecodeError:
        return {}
    return result if isinstance(result, dict) else {}


def attribute_filter(
    column: str, attributes: Mapping[str, str], exact: bool = False
) -> tuple[str, list[str | int]]:
    """Build a WHERE fragment requiring every attribute to match.

    Keys are quoted in the JSON path so dotted names like ``session.id``
    address a single key rather than a nested object. With exact, the
    stored object must also have no other keys.

    Returns:
        (sql fragment, parameters); the fragment is empty for no attributes
        unless exact is set.
    """
    clauses: list[str] = []
    params: list[str | int] = []
    for key, value in attributes.items():
        path = '$."' + key.replace('"', '\\"') + '"'
        clauses.append(f"json_extract({column}, ?) = ?")
        params.extend((path, value))
    if exact:
        clauses.append(f"(SELECT COUNT(*) FROM json_each({column})) = ?")
        params.append(len(attributes))
    return "".join(f" AND {clause}" for clause in clauses), params


class AsyncConnectionManager:
    """Manages async (aiosqlite) database connections.

    Handles schema initialization and connection lifecycle. For :memory:
    databases, maintains a persistent connection since SQLite in-memory
    databases are connection-scoped.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    @property
    def _is_memory(self) -> bool:
        return self._db_path == ":memory:"

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._is_memory:
                self._persistent_conn = await aiosqlite.connect(":memory:")
                await self._persistent_conn.executescript(self._schema)
            else:
                async with aiosqlite.connect(self._db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        await self._ensure_initialized()
        if self._is_memory:
            if self._persistent_conn is None:
                raise RuntimeError("Memory database connection not initialized")
            return self._persistent_conn
        db = await aiosqlite.connect(self._db_path)
        await db.execute("PRAGMA busy_timeout=5000")
        return db

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections.

        Closes connections for file-based databases; :memory: connections
        stay open.
        """
        db = await self._get_connection()
        try:
            yield db
        finally:
            if not self._is_memory:
                await db.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Like connection(), committing on success and rolling back on error."""
        async with self.connection() as db:
            try:
                yield db
            except BaseException:
                await db.rollback()
                raise
            await db.commit()

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False
