"""
bot.py — LeagueOps Bot Entry Point
-----------------------------------
Hardened startup sequence with pre-flight checks,
lockfile handling, and clean shutdown.

The bot either owns its Entity Store (local SQLite, the default) or, when
STORE_API_URL is set, issues every command and read through the REST
store client.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

import discord
from discord.ext import commands

from config.settings import (
    DISCORD_TOKEN,
    LOG_LEVEL,
    STORE_API_TOKEN,
    STORE_API_URL,
    STORE_TIMEOUT_SECONDS,
    use_remote_store,
)
from database import (
    DB_NAME,
    EntityStore,
    init_db_once,
    validate_db_connectivity,
    validate_schema,
)

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(levelname)-5s | %(name)s: %(message)s",
)
log = logging.getLogger("league-bot")

# Lockfile path
LOCKFILE = Path(__file__).parent / "bot.lock"

# -----------------------------------------------------------------------------
# Bot Setup
# -----------------------------------------------------------------------------

intents = discord.Intents.default()
# Everything happens through slash commands; no privileged intents.
intents.presences = False
intents.members = False
intents.message_content = False


class LeagueBot(commands.Bot):
    """
    LeagueOps bot.

    Features:
    - Tournament lifecycle (create, open, close, start, cancel)
    - Team registration with approvals
    - Brackets, match scheduling and results
    """

    def __init__(self):
        super().__init__(command_prefix="!", intents=intents)
        self.store: Optional[EntityStore] = None
        self.store_client = None
        self.core = None
        self.gateway = None
        self.league_views = None
        self.cache = None
        self._startup_complete = False

    async def run_startup_checks(self) -> None:
        """
        Pre-flight checks before Discord login.
        Fails fast with clear errors if anything is missing.
        """
        print("\n" + "=" * 60)
        print(">> LeagueOps Bot — Pre-flight Checks")
        print("=" * 60)

        # 1. Validate DISCORD_TOKEN
        if not DISCORD_TOKEN:
            raise RuntimeError(
                "❌ DISCORD_TOKEN not set in environment.\n"
                "   Set it in your .env file or environment variables."
            )
        print("[✓] DISCORD_TOKEN present ............. OK")

        if use_remote_store():
            print(f"[✓] Remote Entity Store ............... {STORE_API_URL}")
            print("-" * 60 + "\n")
            return

        # 2. Validate database connectivity
        try:
            await validate_db_connectivity()
            print(f"[✓] Database connectivity ............. OK ({DB_NAME})")
        except Exception as e:
            raise RuntimeError(
                f"❌ Database connection failed: {e}\n"
                f"   Check that {DB_NAME} is accessible and not locked."
            )

        # 3. Initialize schema / create tables
        try:
            await init_db_once()
            print("[✓] Schema initialization ............. OK")
        except Exception as e:
            raise RuntimeError(f"❌ Schema initialization failed: {e}")

        # 4. Validate required tables exist
        try:
            schema_status = await validate_schema()
            missing = [t for t, exists in schema_status.items() if not exists]
            if missing:
                raise RuntimeError(f"Missing tables: {', '.join(missing)}")
            print("[✓] Core tables validated ............. OK")
        except Exception as e:
            raise RuntimeError(f"❌ Schema validation failed: {e}")

        print("-" * 60)
        print("[+] Pre-flight checks complete")
        print("-" * 60 + "\n")

    async def setup_hook(self):
        """4-phase startup sequence."""
        print("\n" + "=" * 60)
        print(">> LeagueOps Bot Startup")
        print("=" * 60)

        # Phase 1: Entity Store
        phase1_start = time.perf_counter()
        if not use_remote_store():
            self.store = await EntityStore.open(DB_NAME, timeout=STORE_TIMEOUT_SECONDS)
        phase1_elapsed = time.perf_counter() - phase1_start
        print(f"[1/4] Entity store .................... OK ({phase1_elapsed:.2f}s)")

        # Phase 2: Services, cache and views
        phase2_start = time.perf_counter()
        await self._init_services()
        phase2_elapsed = time.perf_counter() - phase2_start
        print(f"[2/4] Core services ................... OK ({phase2_elapsed:.2f}s)")

        # Phase 3: Load cogs
        phase3_start = time.perf_counter()
        await self._load_cogs()
        phase3_elapsed = time.perf_counter() - phase3_start
        print(f"[3/4] Cogs loaded ..................... OK ({phase3_elapsed:.2f}s)")

        # Phase 4: Sync commands
        phase4_start = time.perf_counter()
        synced = await self.tree.sync()
        log.info(f"Synced {len(synced)} global commands")
        phase4_elapsed = time.perf_counter() - phase4_start
        print(f"[4/4] Command sync .................... OK ({phase4_elapsed:.2f}s)")

        print("-" * 60)
        total = phase1_elapsed + phase2_elapsed + phase3_elapsed + phase4_elapsed
        print(f"[+] Startup complete in {total:.2f}s")
        print("-" * 60)

        self._startup_complete = True

    async def _init_services(self):
        """Wire the command gateway and cached views for the configured store."""
        from services.events import InvalidationBus
        from services.sync_service import LocalSource, SyncCache, TournamentViews

        if use_remote_store():
            from services.store_client import StoreClient

            bus = InvalidationBus()
            self.store_client = StoreClient(
                STORE_API_URL,
                token=STORE_API_TOKEN or None,
                bus=bus,
                timeout=STORE_TIMEOUT_SECONDS,
            )
            self.cache = SyncCache(bus)
            self.gateway = self.store_client
            self.league_views = TournamentViews(self.store_client, self.cache)
            log.info(f"[STORE-CLIENT] Using remote store at {STORE_API_URL}")
            return

        from services.core import CoreServices
        from services.gateway import LocalCommands

        self.core = CoreServices.create(self.store)
        self.cache = SyncCache(self.core.bus)
        self.gateway = LocalCommands(self.core)
        self.league_views = TournamentViews(LocalSource(self.core), self.cache)

    async def _load_cogs(self):
        cogs = [
            "cogs.tournaments",  # Tournament lifecycle
            "cogs.registration",  # Registration workflow
            "cogs.brackets",  # Brackets & results
            "cogs.teams",  # Team records
        ]

        loaded = 0
        failed = []

        for cog_path in cogs:
            try:
                print(f"    Loading {cog_path}...", end=" ")
                await self.load_extension(cog_path)
                loaded += 1
                print("OK")
                log.info(f"Loaded cog: {cog_path}")
            except Exception as e:
                failed.append(cog_path.split(".")[-1])
                print(f"FAILED: {e}")
                log.error(f"Failed to load {cog_path}: {e}", exc_info=True)

        log.info(f"Loaded {loaded}/{len(cogs)} cogs")
        if failed:
            log.warning(f"Failed cogs: {', '.join(failed)}")


bot = LeagueBot()


@bot.event
async def on_ready():
    log.info(f"Logged in as {bot.user} (ID: {bot.user.id if bot.user else 'n/a'})")
    print("\n" + "-" * 60)
    print("[+] LEAGUEOPS BOT IS FULLY ONLINE")
    print("-" * 60 + "\n")

    try:
        await bot.change_presence(activity=discord.Game(name="/tournament_list"))
    except Exception as e:
        log.warning(f"Failed to set presence: {e}")


# -----------------------------------------------------------------------------
# Shutdown
# -----------------------------------------------------------------------------


async def shutdown():
    """Graceful shutdown."""
    log.info("Shutdown: starting graceful shutdown")

    if bot.cache is not None:
        bot.cache.close()

    if bot.store_client is not None:
        try:
            await bot.store_client.close()
        except Exception:
            log.exception("Error closing store client")

    if bot.store is not None:
        try:
            await bot.store.close()
            log.info("Shutdown: database connection closed")
        except Exception:
            log.exception("Error closing database")

    try:
        await bot.close()
    except Exception:
        log.exception("Error closing bot")

    log.info("Shutdown: complete")


def cleanup_lockfile():
    """Remove lockfile if it exists."""
    if LOCKFILE.exists():
        try:
            LOCKFILE.unlink()
            log.debug("Lockfile removed")
        except Exception as e:
            log.warning(f"Could not remove lockfile: {e}")


# -----------------------------------------------------------------------------
# Main Entry
# -----------------------------------------------------------------------------


async def main():
    """Main entry point with lockfile handling and pre-flight checks."""

    if LOCKFILE.exists():
        try:
            pid = LOCKFILE.read_text().strip()
            log.warning(
                f"⚠️  Lockfile exists (PID: {pid}). "
                "Previous instance may not have shut down cleanly. Continuing anyway."
            )
        except Exception:
            log.warning("⚠️  Stale lockfile detected. Continuing anyway.")

    try:
        LOCKFILE.write_text(str(os.getpid()))
        log.debug(f"Created lockfile: {LOCKFILE}")

        # Run pre-flight checks BEFORE Discord login
        await bot.run_startup_checks()

        log.info("Starting LeagueOps bot...")
        await bot.start(DISCORD_TOKEN)

    except KeyboardInterrupt:
        log.info("Shutdown signal received (Ctrl+C)")
        await shutdown()
    except asyncio.CancelledError:
        log.info("Shutdown signal received (cancelled)")
        await shutdown()
    except Exception as e:
        log.exception(f"Fatal error: {e}")
        await shutdown()
        raise
    finally:
        cleanup_lockfile()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        cleanup_lockfile()
        print("\nBot stopped.")
