"""
cogs/teams.py — Team Records
=============================
Commands:
- /team_create - Add a team (Admin only)
- /team_list - List teams
- /team_delete - Delete a team (Admin only)
"""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from ui.brand import success_embed
from ui.tournament_embeds import build_team_list_embed
from utils.interaction import handle_command_error, respond
from utils.lookup import find_team

log = logging.getLogger(__name__)


class TeamsCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    async def cog_app_command_error(self, interaction: discord.Interaction, error):
        await handle_command_error(interaction, error, log)

    @app_commands.command(name="team_create", description="Add a team (Admin only)")
    @app_commands.describe(
        name="Team name",
        tag="Short tag, e.g. OG",
        country="Country code or name",
        logo_url="Logo image URL",
    )
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def team_create(
        self,
        interaction: discord.Interaction,
        name: str,
        tag: str,
        country: str,
        logo_url: Optional[str] = None,
    ):
        await interaction.response.defer(ephemeral=True)
        team = await self.bot.gateway.create_team(
            name=name, tag=tag, country=country, logo_url=logo_url
        )
        embed = success_embed("Team Created", f"**{team.name}** [{team.tag}] · {team.country}")
        if team.logo_url:
            embed.set_thumbnail(url=team.logo_url)
        await respond(interaction, embed=embed)

    @app_commands.command(name="team_list", description="List teams")
    @app_commands.guild_only()
    async def team_list(self, interaction: discord.Interaction):
        teams = await self.bot.league_views.teams()
        await respond(interaction, embed=build_team_list_embed(teams))

    @app_commands.command(name="team_delete", description="Delete a team (Admin only)")
    @app_commands.describe(team="Team name, tag or id")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def team_delete(self, interaction: discord.Interaction, team: str):
        await interaction.response.defer(ephemeral=True)
        found = find_team(await self.bot.league_views.teams(), team)
        await self.bot.gateway.delete_team(found.id)
        await respond(interaction, f"🗑️ Deleted **{found.name}**.")
        log.info(f"[TEAM] {interaction.user} deleted team {found.id}")


async def setup(bot: commands.Bot):
    await bot.add_cog(TeamsCog(bot))
