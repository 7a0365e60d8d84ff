"""
config/settings.py

Central runtime configuration read from the environment.

Values are read once at import time; ``bot.py`` calls ``load_dotenv()``
before importing anything that depends on this module, so a local .env
file works the same as real environment variables.
"""

import os


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# =============================================================================
# DISCORD
# =============================================================================
DISCORD_TOKEN: str = os.getenv("DISCORD_TOKEN", "").strip()

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


# =============================================================================
# ENTITY STORE
# =============================================================================
# Local SQLite file used when the bot is its own authoritative store.
DB_PATH: str = os.getenv("LEAGUE_DB", "league_core.db")

# Every store call must finish within this many seconds or it is treated
# as a transient failure.
STORE_TIMEOUT_SECONDS: float = _float_env("STORE_TIMEOUT_SECONDS", 5.0)

# When set, read views go through the REST store instead of local services.
STORE_API_URL: str = os.getenv("STORE_API_URL", "").strip()
STORE_API_TOKEN: str = os.getenv("STORE_API_TOKEN", "").strip()


def use_remote_store() -> bool:
    """True when views should read through the REST Entity Store."""
    return bool(STORE_API_URL)
