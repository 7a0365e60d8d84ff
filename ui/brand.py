"""
ui/brand.py — LeagueOps Brand Kit
==================================
Centralized brand constants for all UI elements.

All embeds MUST use these constants.
"""

import discord

from core_version import CORE_VERSION
from services.status_enums import MatchStatus, RegistrationStatus, TournamentStatus

FOOTER_TEXT = f"LeagueOps Core v{CORE_VERSION}"

# -----------------------------------------------------------------------------
# COLOR PALETTE
# -----------------------------------------------------------------------------

PRIMARY_BLUE = 0x2A6FDB
SUCCESS_GREEN = 0x3BA55D
WARNING_YELLOW = 0xFAA61A
ERROR_RED = 0xED4245
NEUTRAL_LIGHT = 0x99AAB5


class Colors:
    """Discord Color objects for embeds."""

    PRIMARY = discord.Color(PRIMARY_BLUE)
    SUCCESS = discord.Color(SUCCESS_GREEN)
    WARNING = discord.Color(WARNING_YELLOW)
    ERROR = discord.Color(ERROR_RED)
    MUTED = discord.Color(NEUTRAL_LIGHT)

    DEFAULT = PRIMARY
    INFO = PRIMARY


# Embed color per tournament status
STATUS_COLORS = {
    TournamentStatus.DRAFT.value: Colors.MUTED,
    TournamentStatus.OPEN.value: Colors.SUCCESS,
    TournamentStatus.CLOSED.value: Colors.WARNING,
    TournamentStatus.ONGOING.value: Colors.PRIMARY,
    TournamentStatus.COMPLETED.value: Colors.SUCCESS,
    TournamentStatus.CANCELLED.value: Colors.ERROR,
}

REGISTRATION_MARKS = {
    RegistrationStatus.PENDING.value: "⏳",
    RegistrationStatus.APPROVED.value: "✅",
    RegistrationStatus.REJECTED.value: "❌",
    RegistrationStatus.WITHDRAWN.value: "↩️",
}

MATCH_MARKS = {
    MatchStatus.PENDING.value: "⏸️",
    MatchStatus.SCHEDULED.value: "🗓️",
    MatchStatus.LIVE.value: "🔴",
    MatchStatus.COMPLETED.value: "✅",
    MatchStatus.CANCELLED.value: "🚫",
}


# -----------------------------------------------------------------------------
# EMBED HELPERS
# -----------------------------------------------------------------------------


def create_embed(
    title: str,
    description: str = None,
    color: discord.Color = None,
    include_footer: bool = True,
) -> discord.Embed:
    """
    Create a brand-compliant embed.

    Args:
        title: Embed title
        description: Short summary
        color: Embed color (defaults to PRIMARY)
        include_footer: Whether to include the standard footer
    """
    embed = discord.Embed(
        title=title,
        description=description,
        color=color or Colors.PRIMARY,
    )
    if include_footer:
        embed.set_footer(text=FOOTER_TEXT)
    return embed


def error_embed(title: str, description: str = None) -> discord.Embed:
    return create_embed(title, description, Colors.ERROR)


def success_embed(title: str, description: str = None) -> discord.Embed:
    return create_embed(title, description, Colors.SUCCESS)
