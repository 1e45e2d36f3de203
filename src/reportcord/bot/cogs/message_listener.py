"""Message listener Cog for Reportcord.

This cog has exactly ONE responsibility: feed guild messages into the report
service's context window. Whether a message is kept depends on the guild's
``include_context`` setting, which the service checks.
"""

import discord
from discord.ext import commands

from reportcord.datatypes.discord_datatypes import GuildID, UserID
from reportcord.report.report_service import ReportService
from reportcord.util.logger import get_logger

logger = get_logger("message_listener_cog")


def should_collect(message: discord.Message) -> bool:
    """Only human messages with text, posted in a guild, are collected."""
    if message.guild is None or message.author.bot:
        return False
    return bool(message.content)


class MessageListenerCog(commands.Cog):
    """Thin event listener that forwards messages to the context window."""

    def __init__(self, bot: discord.Bot, report_service: ReportService) -> None:
        self.bot = bot
        self._report_service = report_service
        logger.info("[MESSAGE LISTENER] Message listener cog loaded")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        if not should_collect(message):
            return

        stored = self._report_service.on_message(
            GuildID(message.guild.id),
            UserID(message.author.id),
            message.content,
            message.created_at.timestamp(),
        )
        if stored:
            logger.debug("Collected context message %s in guild %s", message.id, message.guild.id)


def setup(bot: discord.Bot, report_service: ReportService) -> None:
    """Register the MessageListenerCog with the bot."""
    bot.add_cog(MessageListenerCog(bot, report_service))
