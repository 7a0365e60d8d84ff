"""
database.py — LeagueOps Core Database Module
---------------------------------------------
Schema initialization and the transactional Entity Store used by every
service.

Core Tables:
- meta: Schema version tracking
- teams / players / player_teams: Roster records (referenced by id only)
- tournaments: Tournament records and lifecycle status
- registrations: Team registration requests per tournament
- matches: Bracket matches with downstream links
- games: Per-map results inside a match
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

import aiosqlite

from config.settings import DB_PATH, STORE_TIMEOUT_SECONDS
from services.errors import StoreUnavailable

log = logging.getLogger(__name__)

DB_NAME = DB_PATH

SCHEMA_VERSION = 1

# Idempotency flag
_db_initialized = False

SCHEMA_STATEMENTS: tuple[str, ...] = (
    # ------------------------------------------------------------------
    # META - Schema version tracking
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS meta (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    # ------------------------------------------------------------------
    # TEAMS / PLAYERS - roster subsystem, referenced by id from the core
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS teams (
        id              TEXT PRIMARY KEY,
        name            TEXT NOT NULL,
        tag             TEXT NOT NULL,
        country         TEXT NOT NULL,
        logo_url        TEXT,
        socials         TEXT,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS players (
        id              TEXT PRIMARY KEY,
        name            TEXT NOT NULL,
        nickname        TEXT NOT NULL,
        country         TEXT NOT NULL,
        steam_id_64     TEXT,
        discord_id      TEXT,
        socials         TEXT,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS player_teams (
        player_id       TEXT NOT NULL,
        team_id         TEXT NOT NULL,
        role            TEXT,
        joined_at       TEXT NOT NULL,
        PRIMARY KEY (player_id, team_id),
        FOREIGN KEY (player_id) REFERENCES players(id) ON DELETE CASCADE,
        FOREIGN KEY (team_id) REFERENCES teams(id) ON DELETE CASCADE
    )
    """,
    # ------------------------------------------------------------------
    # TOURNAMENTS
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS tournaments (
        id                  TEXT PRIMARY KEY,
        name                TEXT NOT NULL,
        slug                TEXT NOT NULL UNIQUE,
        description         TEXT,
        game                TEXT NOT NULL,
        format              TEXT NOT NULL,
        status              TEXT NOT NULL DEFAULT 'DRAFT',
        organizer_id        TEXT NOT NULL,
        max_teams           INTEGER NOT NULL,
        min_teams           INTEGER NOT NULL,
        team_size           INTEGER NOT NULL,
        registration_start  TEXT,
        registration_end    TEXT,
        start_date          TEXT,
        end_date            TEXT,
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL,
        CHECK (min_teams >= 2 AND max_teams >= min_teams AND team_size >= 1)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tournaments_status ON tournaments(status)",
    # ------------------------------------------------------------------
    # REGISTRATIONS
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS registrations (
        id              TEXT PRIMARY KEY,
        tournament_id   TEXT NOT NULL,
        team_id         TEXT NOT NULL,
        status          TEXT NOT NULL DEFAULT 'PENDING',
        registered_by   TEXT NOT NULL,
        decided_by      TEXT,
        notes           TEXT,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL,
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_registrations_tournament ON registrations(tournament_id, status)",
    # At most one PENDING/APPROVED registration per team and tournament.
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_registrations_active
    ON registrations(tournament_id, team_id)
    WHERE status IN ('PENDING', 'APPROVED')
    """,
    # ------------------------------------------------------------------
    # MATCHES
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS matches (
        id              TEXT PRIMARY KEY,
        tournament_id   TEXT NOT NULL,
        round           INTEGER NOT NULL CHECK (round >= 1),
        position        INTEGER NOT NULL CHECK (position >= 0),
        team1_id        TEXT,
        team2_id        TEXT,
        team1_score     INTEGER NOT NULL DEFAULT 0 CHECK (team1_score >= 0),
        team2_score     INTEGER NOT NULL DEFAULT 0 CHECK (team2_score >= 0),
        winner_id       TEXT,
        status          TEXT NOT NULL DEFAULT 'PENDING',
        best_of         INTEGER NOT NULL DEFAULT 1 CHECK (best_of % 2 = 1),
        next_match_id   TEXT,
        scheduled_at    TEXT,
        started_at      TEXT,
        ended_at        TEXT,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL,
        UNIQUE (tournament_id, round, position),
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_matches_tournament ON matches(tournament_id, round)",
    # ------------------------------------------------------------------
    # GAMES - one map inside a best-of match
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS games (
        id                  TEXT PRIMARY KEY,
        match_id            TEXT NOT NULL,
        game_number         INTEGER NOT NULL CHECK (game_number >= 1),
        team1_score         INTEGER NOT NULL DEFAULT 0,
        team2_score         INTEGER NOT NULL DEFAULT 0,
        winner_id           TEXT,
        duration_minutes    INTEGER,
        map                 TEXT,
        created_at          TEXT NOT NULL,
        UNIQUE (match_id, game_number),
        FOREIGN KEY (match_id) REFERENCES matches(id) ON DELETE CASCADE
    )
    """,
)


async def create_schema(db: aiosqlite.Connection) -> None:
    """Create every core table and index on an open connection."""
    await db.execute("PRAGMA foreign_keys = ON")
    for statement in SCHEMA_STATEMENTS:
        await db.execute(statement)
    await db.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
        (str(SCHEMA_VERSION),),
    )
    await db.commit()


async def init_db_once(db_path: Optional[str] = None) -> float:
    """
    Idempotent database initialization. Safe to call multiple times.

    Returns the time taken in seconds (0 if already initialized).
    """
    global _db_initialized
    if _db_initialized:
        log.debug("Database already initialized, skipping")
        return 0.0

    start = time.perf_counter()
    await init_db(db_path)
    _db_initialized = True
    return time.perf_counter() - start


def reset_db_init_flag():
    """Reset the initialization flag (for testing only)."""
    global _db_initialized
    _db_initialized = False


async def init_db(db_path: Optional[str] = None) -> None:
    """Initialize the database file with the core schema."""
    target_db = db_path or DB_NAME

    async with aiosqlite.connect(target_db) as db:
        await create_schema(db)
        log.info("[CORE-DB] Schema initialized at %s (v%s)", target_db, SCHEMA_VERSION)


async def validate_db_connectivity(db_path: Optional[str] = None) -> bool:
    """
    Validate database connectivity.
    Returns True if connection succeeds, raises exception otherwise.
    """
    target_db = db_path or DB_NAME
    try:
        async with aiosqlite.connect(target_db) as db:
            await db.execute("SELECT 1")
        return True
    except Exception as e:
        log.error(f"[CORE-DB] Database connectivity check failed: {e}")
        raise


async def get_core_tables() -> list[str]:
    """Return list of core tables that should exist."""
    return [
        "meta",
        "teams",
        "players",
        "player_teams",
        "tournaments",
        "registrations",
        "matches",
        "games",
    ]


async def validate_schema(db_path: Optional[str] = None) -> dict:
    """
    Validate all core tables exist.
    Returns dict with table names and their existence status.
    """
    target_db = db_path or DB_NAME
    core_tables = await get_core_tables()
    result = {}

    async with aiosqlite.connect(target_db) as db:
        for table in core_tables:
            async with db.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
            ) as cursor:
                row = await cursor.fetchone()
                result[table] = row is not None

    return result


# -----------------------------------------------------------------------------
# Entity Store
# -----------------------------------------------------------------------------

_active_transaction: ContextVar[Optional["EntityStore"]] = ContextVar(
    "_active_transaction", default=None
)


class EntityStore:
    """
    Transactional access to the core tables over one aiosqlite connection.

    - Every call is bounded by ``timeout`` seconds; running out raises
      ``StoreUnavailable`` and, inside a transaction, rolls it back.
    - The connection is shared, so calls are serialized with an
      ``asyncio.Lock``. Calls made inside ``transaction()`` by the task that
      owns it reuse the held lock.
    - Writes outside a transaction are committed immediately. Connections
      handed in directly must be opened with ``isolation_level=None``.
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        timeout: float = STORE_TIMEOUT_SECONDS,
    ):
        self.conn = conn
        self.conn.row_factory = aiosqlite.Row
        self.timeout = timeout
        self._lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        db_path: Optional[str] = None,
        timeout: float = STORE_TIMEOUT_SECONDS,
        create: bool = True,
    ) -> "EntityStore":
        """Connect to ``db_path`` (default DB_NAME), creating the schema if asked."""
        # No implicit BEGIN; only transaction() opens one.
        conn = await aiosqlite.connect(db_path or DB_NAME, isolation_level=None)
        if create:
            await create_schema(conn)
        else:
            await conn.execute("PRAGMA foreign_keys = ON")
        return cls(conn, timeout=timeout)

    async def close(self) -> None:
        await self.conn.close()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return _active_transaction.get() is self

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        if self.in_transaction:
            yield
            return
        async with self._lock:
            yield

    async def _bounded(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError:
            log.error("[STORE] Call exceeded %.1fs timeout", self.timeout)
            raise StoreUnavailable(
                f"Store did not answer within {self.timeout:g}s."
            ) from None
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                log.warning(f"[STORE] Database busy: {e}")
                raise StoreUnavailable("Store is busy, try again.") from e
            raise

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["EntityStore"]:
        """
        Run a block of reads and writes atomically.

        Commits when the block exits cleanly, rolls back on any exception.
        Nested use by the same task joins the outer transaction.
        """
        if self.in_transaction:
            yield self
            return

        async with self._lock:
            token = _active_transaction.set(self)
            try:
                await self._bounded(self.conn.execute("BEGIN IMMEDIATE"))
                try:
                    yield self
                except BaseException:
                    await self.conn.rollback()
                    raise
                await self._bounded(self.conn.commit())
            finally:
                _active_transaction.reset(token)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and return the affected row count."""
        async with self._guard():
            cursor = await self._bounded(self.conn.execute(sql, tuple(params)))
            rowcount = cursor.rowcount
            await cursor.close()
            if not self.in_transaction:
                await self._bounded(self.conn.commit())
            return rowcount

    async def executemany(self, sql: str, rows: Iterable[Sequence[Any]]) -> None:
        async with self._guard():
            await self._bounded(self.conn.executemany(sql, [tuple(r) for r in rows]))
            if not self.in_transaction:
                await self._bounded(self.conn.commit())

    async def fetchone(
        self, sql: str, params: Sequence[Any] = ()
    ) -> Optional[aiosqlite.Row]:
        async with self._guard():
            cursor = await self._bounded(self.conn.execute(sql, tuple(params)))
            row = await cursor.fetchone()
            await cursor.close()
            return row

    async def fetchall(
        self, sql: str, params: Sequence[Any] = ()
    ) -> list[aiosqlite.Row]:
        async with self._guard():
            cursor = await self._bounded(self.conn.execute(sql, tuple(params)))
            rows = await cursor.fetchall()
            await cursor.close()
            return list(rows)

    async def fetchval(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """First column of the first row, or None."""
        row = await self.fetchone(sql, params)
        return row[0] if row else None
