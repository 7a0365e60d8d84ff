"""
cogs/registration.py — Team Registration
=========================================
Teams apply to OPEN tournaments; admins approve or reject; teams may
withdraw until the tournament starts.

Commands:
- /register - Register a team
- /registration_approve - Approve a team (Admin only)
- /registration_reject - Reject a team (Admin only)
- /withdraw - Withdraw a team
- /registrations - List a tournament's registrations
- /available_teams - Teams not yet registered
"""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from ui.brand import success_embed
from ui.tournament_embeds import build_available_teams_embed, build_registrations_embed
from utils.interaction import handle_command_error, respond
from utils.lookup import find_registration, find_team

log = logging.getLogger(__name__)


class RegistrationCog(commands.Cog):
    """Registration workflow commands."""

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

    async def _resolve(self, slug: str, team: str):
        tournament = await self.views.tournament_by_slug(slug)
        found = find_team(await self.views.teams(), team)
        return tournament, found

    # -------------------------------------------------------------------------
    # /register
    # -------------------------------------------------------------------------

    @app_commands.command(name="register", description="Register a team for a tournament")
    @app_commands.describe(
        slug="Tournament slug",
        team="Team name, tag or id",
        notes="Anything the organizers should know",
    )
    @app_commands.guild_only()
    async def register(
        self,
        interaction: discord.Interaction,
        slug: str,
        team: str,
        notes: Optional[str] = None,
    ):
        await interaction.response.defer(ephemeral=True)
        tournament, found = await self._resolve(slug, team)

        registration = await self.gateway.register(
            tournament.id, found.id, str(interaction.user.id), notes
        )
        await respond(
            interaction,
            embed=success_embed(
                "Registration Submitted",
                f"**{found.name}** is registered for **{tournament.name}** "
                f"and awaits approval ({registration.status}).",
            ),
        )
        log.info(f"[REGISTRATION] {interaction.user} registered {found.name} for {slug}")

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    async def _decide(self, interaction: discord.Interaction, slug: str, team: str, action: str):
        await interaction.response.defer(ephemeral=True)
        tournament, found = await self._resolve(slug, team)
        registrations = await self.views.registrations(tournament.id)
        registration = find_registration(registrations, found.id)

        decided = await getattr(self.gateway, f"{action}_registration")(
            registration.id, str(interaction.user.id)
        )
        await respond(
            interaction,
            embed=success_embed(
                f"Registration {decided.status.title()}",
                f"**{found.name}** in **{tournament.name}**",
            ),
        )

    @app_commands.command(name="registration_approve", description="Approve a team (Admin only)")
    @app_commands.describe(slug="Tournament slug", team="Team name, tag or id")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def registration_approve(self, interaction: discord.Interaction, slug: str, team: str):
        await self._decide(interaction, slug, team, "approve")

    @app_commands.command(name="registration_reject", description="Reject a team (Admin only)")
    @app_commands.describe(slug="Tournament slug", team="Team name, tag or id")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def registration_reject(self, interaction: discord.Interaction, slug: str, team: str):
        await self._decide(interaction, slug, team, "reject")

    # -------------------------------------------------------------------------
    # /withdraw
    # -------------------------------------------------------------------------

    @app_commands.command(name="withdraw", description="Withdraw a team before the tournament starts")
    @app_commands.describe(slug="Tournament slug", team="Team name, tag or id")
    @app_commands.guild_only()
    async def withdraw(self, interaction: discord.Interaction, slug: str, team: str):
        await interaction.response.defer(ephemeral=True)
        tournament, found = await self._resolve(slug, team)
        registrations = await self.views.registrations(tournament.id)
        registration = find_registration(registrations, found.id)

        await self.gateway.withdraw_registration(registration.id, tournament.id)
        await respond(interaction, f"↩️ **{found.name}** withdrew from **{tournament.name}**.")
        log.info(f"[REGISTRATION] {interaction.user} withdrew {found.name} from {slug}")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @app_commands.command(name="registrations", description="List a tournament's registrations")
    @app_commands.guild_only()
    async def registrations(self, interaction: discord.Interaction, slug: str):
        tournament = await self.views.tournament_by_slug(slug)
        registrations = await self.views.registrations(tournament.id)
        await respond(interaction, embed=build_registrations_embed(tournament, registrations))

    @app_commands.command(name="available_teams", description="Teams that can still register")
    @app_commands.guild_only()
    async def available_teams(self, interaction: discord.Interaction, slug: str):
        tournament = await self.views.tournament_by_slug(slug)
        teams = await self.views.available_teams(tournament.id)
        await respond(interaction, embed=build_available_teams_embed(tournament, teams))


async def setup(bot: commands.Bot):
    await bot.add_cog(RegistrationCog(bot))
