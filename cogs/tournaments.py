"""
cogs/tournaments.py — Tournament Management
============================================
Admin commands driving the tournament lifecycle. Tournaments are addressed
by slug.

Commands:
- /tournament_create - Create a tournament in DRAFT
- /tournament_edit - Edit a DRAFT tournament
- /tournament_delete - Delete a DRAFT, completed or cancelled tournament
- /tournament_open - Open registration
- /tournament_close - Close registration
- /tournament_start - Build the bracket and start
- /tournament_cancel - Cancel the tournament
- /tournament_status - Show one tournament
- /tournament_list - List tournaments
"""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from services.bracket_builders import buildable_formats
from services.status_enums import (
    FORMAT_LABELS,
    GAME_LABELS,
    RegistrationStatus,
    TournamentStatus,
)
from ui.brand import success_embed
from ui.tournament_embeds import build_tournament_embed, build_tournament_list_embed
from utils.interaction import handle_command_error, respond

log = logging.getLogger(__name__)

GAME_CHOICES = [app_commands.Choice(name=label, value=value) for value, label in GAME_LABELS.items()]
# Only formats with a bracket builder can be started.
FORMAT_CHOICES = [
    app_commands.Choice(name=FORMAT_LABELS[value], value=value) for value in buildable_formats()
]
STATUS_CHOICES = [app_commands.Choice(name=s.value.title(), value=s.value) for s in TournamentStatus]


class TournamentsCog(commands.Cog):
    """Admin commands for the tournament lifecycle."""

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

    # -------------------------------------------------------------------------
    # /tournament_create
    # -------------------------------------------------------------------------

    @app_commands.command(
        name="tournament_create",
        description="Create a new tournament (Admin only)",
    )
    @app_commands.describe(
        name="Tournament name",
        game="Game",
        format="Bracket format",
        max_teams="Maximum number of teams (default 16)",
        min_teams="Minimum number of teams to start (default 2)",
        team_size="Players per team (default 5)",
        description="Short description",
    )
    @app_commands.choices(game=GAME_CHOICES, format=FORMAT_CHOICES)
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def tournament_create(
        self,
        interaction: discord.Interaction,
        name: str,
        game: app_commands.Choice[str],
        format: app_commands.Choice[str],
        max_teams: app_commands.Range[int, 2, 256] = 16,
        min_teams: app_commands.Range[int, 2, 256] = 2,
        team_size: app_commands.Range[int, 1, 20] = 5,
        description: Optional[str] = None,
    ):
        await interaction.response.defer(ephemeral=True)

        tournament = await self.gateway.create_tournament(
            name=name,
            game=game.value,
            format=format.value,
            organizer_id=str(interaction.user.id),
            description=description,
            max_teams=max_teams,
            min_teams=min_teams,
            team_size=team_size,
        )

        embed = build_tournament_embed(tournament)
        embed.title = f"✅ Tournament Created: {tournament.name}"
        embed.add_field(
            name="Next Steps",
            value=(
                f"1. `/tournament_open {tournament.slug}` to open signups\n"
                "2. Teams register with `/register`\n"
                f"3. `/tournament_close {tournament.slug}` when ready\n"
                f"4. `/tournament_start {tournament.slug}` to build the bracket"
            ),
            inline=False,
        )
        await respond(interaction, embed=embed)

        log.info(
            f"[TOURNAMENT] {interaction.user} created '{name}' ({tournament.slug}) "
            f"in guild {interaction.guild_id}"
        )

    # -------------------------------------------------------------------------
    # /tournament_edit
    # -------------------------------------------------------------------------

    @app_commands.command(
        name="tournament_edit",
        description="Edit a tournament that is still in DRAFT (Admin only)",
    )
    @app_commands.describe(slug="Tournament slug")
    @app_commands.choices(game=GAME_CHOICES, format=FORMAT_CHOICES)
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def tournament_edit(
        self,
        interaction: discord.Interaction,
        slug: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        game: Optional[app_commands.Choice[str]] = None,
        format: Optional[app_commands.Choice[str]] = None,
        max_teams: Optional[app_commands.Range[int, 2, 256]] = None,
        min_teams: Optional[app_commands.Range[int, 2, 256]] = None,
        team_size: Optional[app_commands.Range[int, 1, 20]] = None,
    ):
        await interaction.response.defer(ephemeral=True)

        tournament = await self.views.tournament_by_slug(slug)
        changes = {
            "name": name,
            "description": description,
            "game": game.value if game else None,
            "format": format.value if format else None,
            "max_teams": max_teams,
            "min_teams": min_teams,
            "team_size": team_size,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            await respond(interaction, "ℹ️ Nothing to change.")
            return

        tournament = await self.gateway.update_tournament(tournament.id, **changes)
        await respond(interaction, embed=build_tournament_embed(tournament))

    # -------------------------------------------------------------------------
    # /tournament_delete
    # -------------------------------------------------------------------------

    @app_commands.command(
        name="tournament_delete",
        description="Delete a draft, completed or cancelled tournament (Admin only)",
    )
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def tournament_delete(self, interaction: discord.Interaction, slug: str):
        await interaction.response.defer(ephemeral=True)
        tournament = await self.views.tournament_by_slug(slug)
        await self.gateway.delete_tournament(tournament.id)
        await respond(interaction, f"🗑️ Deleted **{tournament.name}**.")
        log.info(f"[TOURNAMENT] {interaction.user} deleted {tournament.id} ({slug})")

    # -------------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------------

    async def _transition(self, interaction: discord.Interaction, slug: str, action: str, done: str):
        await interaction.response.defer(ephemeral=True)
        tournament = await self.views.tournament_by_slug(slug)
        tournament = await getattr(self.gateway, f"{action}_tournament")(tournament.id)
        await respond(
            interaction,
            embed=success_embed(done, f"**{tournament.name}** is now {tournament.status}."),
        )
        log.info(f"[TOURNAMENT] {interaction.user} ran {action} on {tournament.id}")

    @app_commands.command(name="tournament_open", description="Open registration (Admin only)")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def tournament_open(self, interaction: discord.Interaction, slug: str):
        await self._transition(interaction, slug, "open", "Registration Opened")

    @app_commands.command(name="tournament_close", description="Close registration (Admin only)")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def tournament_close(self, interaction: discord.Interaction, slug: str):
        await self._transition(interaction, slug, "close", "Registration Closed")

    @app_commands.command(
        name="tournament_start",
        description="Build the bracket from approved teams and start (Admin only)",
    )
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def tournament_start(self, interaction: discord.Interaction, slug: str):
        await self._transition(interaction, slug, "start", "Tournament Started")

    @app_commands.command(name="tournament_cancel", description="Cancel a tournament (Admin only)")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def tournament_cancel(self, interaction: discord.Interaction, slug: str):
        await self._transition(interaction, slug, "cancel", "Tournament Cancelled")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @app_commands.command(name="tournament_status", description="Show a tournament")
    @app_commands.guild_only()
    async def tournament_status(self, interaction: discord.Interaction, slug: str):
        tournament = await self.views.tournament_by_slug(slug)
        registrations = await self.views.registrations(tournament.id)
        approved = sum(1 for r in registrations if r.status == RegistrationStatus.APPROVED.value)
        await respond(interaction, embed=build_tournament_embed(tournament, approved))

    @app_commands.command(name="tournament_list", description="List tournaments")
    @app_commands.choices(status=STATUS_CHOICES, game=GAME_CHOICES)
    @app_commands.guild_only()
    async def tournament_list(
        self,
        interaction: discord.Interaction,
        status: Optional[app_commands.Choice[str]] = None,
        game: Optional[app_commands.Choice[str]] = None,
    ):
        tournaments = await self.views.tournaments(
            status=status.value if status else None,
            game=game.value if game else None,
        )
        await respond(interaction, embed=build_tournament_list_embed(tournaments))


async def setup(bot: commands.Bot):
    await bot.add_cog(TournamentsCog(bot))
