"""
Report cog: message context commands that let members report a message.

Right-clicking a message and choosing an entry under *Apps* is how a member
reports it:
- "Report message": reply includes the classifier's reasoning
- "Report message (brief)": short reply without the reasoning

Rejections are only shown to the reporter; adjudication results are public.
"""

import discord
from discord.ext import commands

from reportcord.bot.discord_bridge import authority_of
from reportcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from reportcord.datatypes.report_datatypes import ReportOutcome, ReportState
from reportcord.report.report_service import ReportService, build_session
from reportcord.util.logger import get_logger

logger = get_logger("report_commands")

PUBLIC_STATES = {ReportState.DONE, ReportState.CACHED_RESULT}


class ReportCog(commands.Cog):
    """Member-facing report commands."""

    def __init__(self, discord_bot_instance: discord.Bot, report_service: ReportService) -> None:
        self.discord_bot_instance = discord_bot_instance
        self.report_service = report_service
        logger.info("[REPORT CMDS] Report cog loaded")

    @commands.message_command(name="Report message")
    async def report_message(self, ctx: discord.ApplicationContext, message: discord.Message):
        """Report a message and show the full reasoning."""
        await self._handle_report(ctx, message, verbose=True)

    @commands.message_command(name="Report message (brief)")
    async def report_message_brief(self, ctx: discord.ApplicationContext, message: discord.Message):
        """Report a message with a short reply."""
        await self._handle_report(ctx, message, verbose=False)

    async def _handle_report(self, ctx: discord.ApplicationContext, message: discord.Message | None, verbose: bool) -> None:
        if not ctx.guild_id:
            await ctx.respond("举报功能只能在群组中使用。", ephemeral=True)
            return

        bot_user = self.discord_bot_instance.user
        if self.report_service.bot_id is None and bot_user is not None:
            self.report_service.bot_id = UserID(bot_user.id)

        await ctx.defer(ephemeral=True)

        session = build_session(
            guild_id=GuildID(ctx.guild_id),
            channel_id=ChannelID(ctx.channel_id),
            reporter_id=UserID(ctx.author.id),
            reporter_authority=authority_of(ctx.author),
        )
        quoted_id = MessageID(message.id) if message is not None else None

        try:
            outcome = await self.report_service.report(session, quoted_id, verbose=verbose)
        except Exception as exc:
            logger.exception("[REPORT CMDS] Report by %s failed: %s", ctx.author.id, exc)
            await ctx.send_followup(f"举报处理失败：{exc}", ephemeral=True)
            return

        await self._send_outcome(ctx, outcome, message)

    async def _send_outcome(
        self,
        ctx: discord.ApplicationContext,
        outcome: ReportOutcome,
        message: discord.Message | None,
    ) -> None:
        reply = outcome.reply[:2000]
        if outcome.state not in PUBLIC_STATES or message is None:
            await ctx.send_followup(reply, ephemeral=True)
            return

        try:
            if outcome.quote:
                await message.reply(reply, mention_author=False)
            else:
                await ctx.channel.send(reply)
        except (discord.Forbidden, discord.HTTPException) as exc:
            logger.warning("[REPORT CMDS] Could not post report result publicly: %s", exc)
            await ctx.send_followup(reply, ephemeral=True)
            return
        await ctx.send_followup("举报已处理。", ephemeral=True)


def setup(discord_bot_instance: discord.Bot, report_service: ReportService) -> None:
    discord_bot_instance.add_cog(ReportCog(discord_bot_instance, report_service))
