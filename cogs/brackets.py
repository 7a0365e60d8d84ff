"""
cogs/brackets.py — Brackets and Match Results
==============================================
Matches are addressed by tournament slug, round and position, exactly as
the bracket embed shows them.

Commands:
- /bracket - Show the bracket
- /matches - List matches of one round
- /match_schedule - Set a match time (Admin only)
- /match_live - Mark a match live (Admin only)
- /match_cancel - Void a match (Admin only)
- /match_report - Report a final score (Admin only)
- /match_add_game - Record one game of a series (Admin only)
- /match_games - Show a match and its games
"""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from services.bracket_service import round_name
from ui.bracket_embeds import build_bracket_embed, build_match_embed, format_match_line
from ui.brand import create_embed, success_embed
from utils.interaction import handle_command_error, respond
from utils.lookup import find_match, find_team

log = logging.getLogger(__name__)


class BracketsCog(commands.Cog):
    """Bracket display and match progression."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @property
    def gateway(self):
        return self.bot.gateway

    @property
    def views(self):
        return self.bot.league_views

    async def cog_app_command_error(self, interaction: discord.Interaction, error):
        await handle_command_error(interaction, error, log)

    async def _match(self, slug: str, round: int, position: int):
        tournament = await self.views.tournament_by_slug(slug)
        match = find_match(await self.views.matches(tournament.id), round, position)
        return tournament, match

    async def _names(self, tournament_id: str) -> dict:
        bracket = await self.views.bracket(tournament_id)
        names = {}
        for m in bracket.matches:
            if m.team1_id:
                names[m.team1_id] = m.team1_name
            if m.team2_id:
                names[m.team2_id] = m.team2_name
        return names

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @app_commands.command(name="bracket", description="Show a tournament bracket")
    @app_commands.guild_only()
    async def bracket(self, interaction: discord.Interaction, slug: str):
        tournament = await self.views.tournament_by_slug(slug)
        bracket = await self.views.bracket(tournament.id)
        await respond(interaction, embed=build_bracket_embed(tournament.name, bracket), ephemeral=False)

    @app_commands.command(name="matches", description="List the matches of one round")
    @app_commands.guild_only()
    async def matches(
        self,
        interaction: discord.Interaction,
        slug: str,
        round: app_commands.Range[int, 1, 64] = 1,
    ):
        tournament = await self.views.tournament_by_slug(slug)
        bracket = await self.views.bracket(tournament.id)
        in_round = [m for m in bracket.matches if m.round == round]
        embed = create_embed(
            f"{round_name(bracket.rounds, round)}: {tournament.name}",
            "\n".join(format_match_line(m) for m in in_round) or "No matches in this round.",
        )
        await respond(interaction, embed=embed)

    @app_commands.command(name="match_games", description="Show a match and its games")
    @app_commands.guild_only()
    async def match_games(
        self,
        interaction: discord.Interaction,
        slug: str,
        round: int,
        position: int,
    ):
        tournament, match = await self._match(slug, round, position)
        names = await self._names(tournament.id)
        games = await self.views.games(match.id)
        embed = build_match_embed(
            match, names.get(match.team1_id), names.get(match.team2_id), games
        )
        await respond(interaction, embed=embed)

    # -------------------------------------------------------------------------
    # Status commands
    # -------------------------------------------------------------------------

    @app_commands.command(name="match_schedule", description="Schedule a match (Admin only)")
    @app_commands.describe(when="ISO time, e.g. 2025-06-01T18:00:00Z")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def match_schedule(
        self,
        interaction: discord.Interaction,
        slug: str,
        round: int,
        position: int,
        when: str,
    ):
        await interaction.response.defer(ephemeral=True)
        _, match = await self._match(slug, round, position)
        match = await self.gateway.schedule_match(match.id, when)
        await respond(interaction, f"🗓️ Round {round} match #{position} scheduled for {match.scheduled_at}.")

    @app_commands.command(name="match_live", description="Mark a match as live (Admin only)")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def match_live(self, interaction: discord.Interaction, slug: str, round: int, position: int):
        await interaction.response.defer(ephemeral=True)
        _, match = await self._match(slug, round, position)
        await self.gateway.start_match(match.id)
        await respond(interaction, f"🔴 Round {round} match #{position} is live.")

    @app_commands.command(name="match_cancel", description="Void a match (Admin only)")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def match_cancel(self, interaction: discord.Interaction, slug: str, round: int, position: int):
        await interaction.response.defer(ephemeral=True)
        _, match = await self._match(slug, round, position)
        await self.gateway.cancel_match(match.id)
        await respond(interaction, f"🚫 Round {round} match #{position} cancelled.")

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    @app_commands.command(name="match_report", description="Report a match result (Admin only)")
    @app_commands.describe(
        team1_score="Score of the first team",
        team2_score="Score of the second team",
        winner="Winner name, tag or id (defaults to the higher score)",
    )
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def match_report(
        self,
        interaction: discord.Interaction,
        slug: str,
        round: int,
        position: int,
        team1_score: app_commands.Range[int, 0, 999],
        team2_score: app_commands.Range[int, 0, 999],
        winner: Optional[str] = None,
    ):
        await interaction.response.defer(ephemeral=True)
        tournament, match = await self._match(slug, round, position)
        winner_id = find_team(await self.views.teams(), winner).id if winner else None

        match = await self.gateway.report_result(match.id, team1_score, team2_score, winner_id)
        names = await self._names(tournament.id)
        winner_name = names.get(match.winner_id) or match.winner_id

        embed = success_embed(
            "Result Recorded",
            f"{team1_score} - {team2_score}, 🏆 **{winner_name}**",
        )
        tournament = await self.views.tournament(tournament.id)
        if tournament.status == "COMPLETED":
            embed.add_field(name="Tournament", value=f"🏁 **{tournament.name}** is complete!", inline=False)
        await respond(interaction, embed=embed)
        log.info(
            f"[MATCH] {interaction.user} reported {slug} R{round}#{position}: "
            f"{team1_score}-{team2_score}"
        )

    @app_commands.command(name="match_add_game", description="Record one game of a series (Admin only)")
    @app_commands.describe(winner="Game winner name, tag or id", map="Map played")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def match_add_game(
        self,
        interaction: discord.Interaction,
        slug: str,
        round: int,
        position: int,
        game_number: app_commands.Range[int, 1, 9],
        team1_score: app_commands.Range[int, 0, 999],
        team2_score: app_commands.Range[int, 0, 999],
        winner: str,
        map: Optional[str] = None,
        duration_minutes: Optional[app_commands.Range[int, 0, 600]] = None,
    ):
        await interaction.response.defer(ephemeral=True)
        _, match = await self._match(slug, round, position)
        winner_team = find_team(await self.views.teams(), winner)

        game = await self.gateway.add_game(
            match.id,
            game_number,
            team1_score,
            team2_score,
            winner_team.id,
            duration_minutes=duration_minutes,
            map=map,
        )
        await respond(
            interaction,
            f"✅ Game {game.game_number} recorded: {team1_score} - {team2_score}, "
            f"won by **{winner_team.name}**.",
        )


async def setup(bot: commands.Bot):
    await bot.add_cog(BracketsCog(bot))
