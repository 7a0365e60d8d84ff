"""
Bracket Embed Builders.

These functions build Discord embeds for bracket and match display.

NOTE: These are pure UI functions - no database access or business logic.
"""

from typing import List, Optional

import discord

from services.bracket_service import Bracket, BracketMatch
from services.match_service import Game, Match
from ui.brand import MATCH_MARKS, Colors, create_embed

TBD = "TBD"

# Discord allows 25 fields per embed
MAX_FIELDS = 25


def format_match_line(match: BracketMatch) -> str:
    """One line per match; the winner is bold with a trophy."""
    name1 = match.team1_name or (TBD if not match.team1_id else match.team1_id[:8])
    name2 = match.team2_name or (TBD if not match.team2_id else match.team2_id[:8])
    if match.winner_slot == 1:
        name1 = f"**{name1}** 🏆"
    elif match.winner_slot == 2:
        name2 = f"🏆 **{name2}**"

    mark = MATCH_MARKS.get(match.status, "")
    if match.status == "COMPLETED":
        body = f"{name1} {match.team1_score} - {match.team2_score} {name2}"
    else:
        body = f"{name1} vs {name2}"
    if match.best_of > 1:
        body += f" (Bo{match.best_of})"
    return f"{mark} `#{match.position}` {body}"


def build_bracket_embed(name: str, bracket: Bracket) -> discord.Embed:
    """
    Render the bracket as a Discord Embed, one field per round.

    Args:
        name: Tournament name.
        bracket: Bracket projection.
    """
    embed = create_embed(f"🏆 Bracket: {name}", color=Colors.PRIMARY)

    if not bracket.matches:
        embed.description = "No matches generated yet."
        return embed

    rounds = bracket.by_round()
    played = sum(1 for m in bracket.matches if m.status == "COMPLETED")
    embed.description = f"{played}/{len(bracket.matches)} matches complete"

    for rnd in rounds[:MAX_FIELDS]:
        lines = [format_match_line(m) for m in rnd.matches]
        value = "\n".join(lines)
        if len(value) > 1024:
            value = value[:1020] + "\n…"
        embed.add_field(name=rnd.name, value=value, inline=False)

    return embed


def build_match_embed(
    match: Match,
    team1_name: Optional[str],
    team2_name: Optional[str],
    games: Optional[List[Game]] = None,
) -> discord.Embed:
    """Detail card for one match and its games."""
    name1 = team1_name or TBD
    name2 = team2_name or TBD
    embed = create_embed(
        f"⚔️ Round {match.round}, Match #{match.position}",
        f"**{name1}** vs **{name2}**",
    )
    embed.add_field(name="Status", value=f"{MATCH_MARKS.get(match.status, '')} {match.status}", inline=True)
    embed.add_field(name="Format", value=f"Bo{match.best_of}", inline=True)
    if match.status == "COMPLETED":
        winner = name1 if match.winner_slot == 1 else name2
        embed.add_field(
            name="Result",
            value=f"{match.team1_score} - {match.team2_score} (🏆 {winner})",
            inline=True,
        )
    if match.scheduled_at:
        embed.add_field(name="Scheduled", value=match.scheduled_at, inline=True)

    if games:
        lines = []
        for game in games:
            winner = name1 if game.winner_id == match.team1_id else name2
            line = f"Game {game.game_number}: {game.team1_score} - {game.team2_score}, {winner}"
            if game.map:
                line += f" on {game.map}"
            if game.duration_minutes:
                line += f" ({game.duration_minutes} min)"
            lines.append(line)
        embed.add_field(name="Games", value="\n".join(lines)[:1024], inline=False)

    return embed
