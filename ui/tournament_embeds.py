"""
Tournament and Registration Embed Builders.

Pure UI functions - no database access or business logic.
"""

from typing import List, Optional

import discord

from services.registration_service import Registration
from services.status_enums import FORMAT_LABELS, GAME_LABELS
from services.team_service import Team
from services.tournament_service import Tournament
from ui.brand import REGISTRATION_MARKS, STATUS_COLORS, Colors, create_embed

MAX_LINES = 30


def _date(value: Optional[str]) -> str:
    return value[:16].replace("T", " ") if value else "—"


def build_tournament_embed(
    tournament: Tournament,
    approved: Optional[int] = None,
) -> discord.Embed:
    """Summary card for one tournament."""
    embed = create_embed(
        f"🏆 {tournament.name}",
        tournament.description,
        STATUS_COLORS.get(tournament.status, Colors.PRIMARY),
    )
    embed.add_field(name="Status", value=tournament.status, inline=True)
    embed.add_field(name="Game", value=GAME_LABELS.get(tournament.game, tournament.game), inline=True)
    embed.add_field(
        name="Format",
        value=FORMAT_LABELS.get(tournament.format, tournament.format),
        inline=True,
    )
    teams = f"{tournament.min_teams}–{tournament.max_teams}"
    if approved is not None:
        teams = f"{approved} approved ({teams})"
    embed.add_field(name="Teams", value=teams, inline=True)
    embed.add_field(name="Team size", value=str(tournament.team_size), inline=True)
    embed.add_field(name="Slug", value=f"`{tournament.slug}`", inline=True)

    if tournament.registration_start or tournament.registration_end:
        embed.add_field(
            name="Registration",
            value=f"{_date(tournament.registration_start)} → {_date(tournament.registration_end)}",
            inline=False,
        )
    if tournament.start_date or tournament.end_date:
        embed.add_field(
            name="Dates",
            value=f"{_date(tournament.start_date)} → {_date(tournament.end_date)}",
            inline=False,
        )
    return embed


def build_tournament_list_embed(tournaments: List[Tournament]) -> discord.Embed:
    embed = create_embed("🏆 Tournaments")
    if not tournaments:
        embed.description = "No tournaments yet. Use `/tournament_create` to start one."
        return embed

    lines = [
        f"`{t.slug}` **{t.name}** · {GAME_LABELS.get(t.game, t.game)} · {t.status}"
        for t in tournaments[:MAX_LINES]
    ]
    if len(tournaments) > MAX_LINES:
        lines.append(f"…and {len(tournaments) - MAX_LINES} more")
    embed.description = "\n".join(lines)
    return embed


def build_registrations_embed(
    tournament: Tournament,
    registrations: List[Registration],
) -> discord.Embed:
    """Registration list with status marks; ids are shown for approve/reject."""
    approved = sum(1 for r in registrations if r.status == "APPROVED")
    embed = create_embed(
        f"📋 Registrations: {tournament.name}",
        f"{approved}/{tournament.max_teams} approved",
    )
    if not registrations:
        embed.description += "\n\nNo registrations yet."
        return embed

    lines = []
    for reg in registrations[:MAX_LINES]:
        team = reg.team_name or reg.team_id
        tag = f" [{reg.team_tag}]" if reg.team_tag else ""
        lines.append(
            f"{REGISTRATION_MARKS.get(reg.status, '')} **{team}**{tag} · `{reg.id[:8]}`"
        )
    if len(registrations) > MAX_LINES:
        lines.append(f"…and {len(registrations) - MAX_LINES} more")
    embed.add_field(name="Teams", value="\n".join(lines)[:1024], inline=False)
    return embed


def build_available_teams_embed(
    tournament: Tournament,
    teams: List[Team],
) -> discord.Embed:
    embed = create_embed(f"🧩 Available teams: {tournament.name}")
    if not teams:
        embed.description = "Every team is already registered."
        return embed
    lines = [f"**{t.name}** [{t.tag}] · {t.country}" for t in teams[:MAX_LINES]]
    if len(teams) > MAX_LINES:
        lines.append(f"…and {len(teams) - MAX_LINES} more")
    embed.description = "\n".join(lines)
    return embed


def build_team_list_embed(teams: List[Team]) -> discord.Embed:
    embed = create_embed("🧩 Teams")
    if not teams:
        embed.description = "No teams yet. Use `/team_create` to add one."
        return embed
    lines = [f"**{t.name}** [{t.tag}] · {t.country} · `{t.id[:8]}`" for t in teams[:MAX_LINES]]
    if len(teams) > MAX_LINES:
        lines.append(f"…and {len(teams) - MAX_LINES} more")
    embed.description = "\n".join(lines)
    return embed
