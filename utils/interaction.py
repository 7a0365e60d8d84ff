"""
Interaction helpers shared by the cogs.
"""

import logging
from typing import Optional

import discord
from discord import app_commands

from services.errors import CommandRejected


async def respond(
    interaction: discord.Interaction,
    content: Optional[str] = None,
    *,
    embed: Optional[discord.Embed] = None,
    ephemeral: bool = True,
) -> None:
    """Answer an interaction whether or not it was deferred."""
    kwargs = {"ephemeral": ephemeral}
    if embed is not None:
        kwargs["embed"] = embed
    if interaction.response.is_done():
        await interaction.followup.send(content, **kwargs)
    else:
        await interaction.response.send_message(content, **kwargs)


async def handle_command_error(
    interaction: discord.Interaction,
    error: app_commands.AppCommandError,
    log: logging.Logger,
) -> None:
    """
    Turn a failed slash command into an ephemeral reply.

    Rejected commands show their reason; anything else is logged with a
    traceback and reported generically.
    """
    original = getattr(error, "original", error)
    if isinstance(original, CommandRejected):
        log.info(f"[COMMAND] /{interaction.command.name if interaction.command else '?'} rejected: {original.code}")
        await respond(interaction, f"❌ {original}")
        return
    if isinstance(error, app_commands.MissingPermissions):
        await respond(interaction, "❌ You don't have permission to do that.")
        return

    log.exception("[COMMAND] Unexpected error", exc_info=original)
    await respond(interaction, "❌ Something went wrong. Please try again.")
