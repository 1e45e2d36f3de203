"""
Report settings cog: the /report-config slash command.

Without options the command shows the current configuration. With options it
updates either the global defaults (``global_scope``, bot owner only) or one
guild's override. Guild changes require the Manage Server permission in the
target guild. All changes are recorded in the audit log.
"""

import discord
from discord import Option
from discord.ext import commands

from reportcord.datatypes.discord_datatypes import GuildID, UserID
from reportcord.datatypes.report_settings import (
    GuildReportConfig,
    MAX_CONTEXT_SIZE,
    MIN_CONTEXT_SIZE,
    ReportSettings,
)
from reportcord.report.audit_logger import AuditLogger
from reportcord.settings.report_settings_manager import ReportSettingsManager
from reportcord.util.logger import get_logger

logger = get_logger("report_settings_commands")


def _on_off(value: bool) -> str:
    return "开启" if value else "关闭"


def build_global_config_embed(settings: ReportSettings) -> discord.Embed:
    """Summarise the global report configuration."""
    embed = discord.Embed(title="举报功能全局配置", color=discord.Color.blurple())
    embed.add_field(name="举报功能", value=_on_off(settings.enabled), inline=True)
    embed.add_field(name="自动处理", value=_on_off(settings.auto_process), inline=True)
    embed.add_field(name="权限等级", value=str(settings.authority), inline=True)
    embed.add_field(name="可举报时限", value=f"{settings.max_report_time_minutes}分钟", inline=True)
    embed.add_field(name="失败冷却", value=f"{settings.max_report_cooldown_minutes}分钟", inline=True)
    embed.add_field(name="免限制权限等级", value=str(settings.min_authority_no_limit), inline=True)
    embed.add_field(name="单独配置的群", value=str(len(settings.guild_configs)), inline=True)
    return embed


def build_guild_config_embed(guild_id: GuildID, config: GuildReportConfig | None, settings: ReportSettings) -> discord.Embed:
    """Summarise one guild's effective report configuration."""
    embed = discord.Embed(title=f"群 {guild_id} 的举报配置", color=discord.Color.blurple())
    if config is None:
        embed.description = "本群使用全局默认配置。"
        config = GuildReportConfig(auto_process=settings.auto_process)
    embed.add_field(name="举报功能", value=_on_off(config.enabled and settings.enabled), inline=True)
    embed.add_field(name="自动处理", value=_on_off(config.auto_process), inline=True)
    embed.add_field(name="包含上下文", value=_on_off(config.include_context), inline=True)
    embed.add_field(name="上下文消息数量", value=str(config.context_size), inline=True)
    return embed


class ReportSettingsCog(commands.Cog):
    """Global and per-guild configuration of the report feature."""

    def __init__(
        self,
        discord_bot_instance: discord.Bot,
        settings_manager: ReportSettingsManager,
        audit_logger: AuditLogger,
    ) -> None:
        self.discord_bot_instance = discord_bot_instance
        self.settings_manager = settings_manager
        self.audit_logger = audit_logger
        logger.info("[REPORT SETTINGS CMDS] Report settings cog loaded")

    async def _check_permissions(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("此命令只能在群组中使用。", ephemeral=True)
            return False
        if not isinstance(ctx.user, discord.Member) or not ctx.user.guild_permissions.manage_guild:
            await ctx.respond("您需要“管理服务器”权限才能修改举报配置。", ephemeral=True)
            return False
        return True

    def _can_manage(self, guild_id: GuildID, user: discord.abc.User) -> bool:
        """Whether ``user`` holds Manage Server in ``guild_id``, a guild the bot is in."""
        guild = self.discord_bot_instance.get_guild(guild_id.to_int())
        if guild is None:
            return False
        member = guild.get_member(user.id)
        return member is not None and member.guild_permissions.manage_guild

    @commands.slash_command(
        name="report-config",
        description="查看或修改举报功能配置。",
    )
    async def report_config(
        self,
        ctx: discord.ApplicationContext,
        guild: Option(str, "目标群ID，默认为当前群。", required=False, default=None),  # type: ignore
        global_scope: Option(bool, "修改全局配置而不是群配置。", required=False, default=False),  # type: ignore
        enabled: Option(bool, "启用或禁用举报功能。", required=False, default=None),  # type: ignore
        auto_process: Option(bool, "是否自动执行处罚。", required=False, default=None),  # type: ignore
        include_context: Option(bool, "是否附带上下文消息。", required=False, default=None),  # type: ignore
        context_size: Option(int, "上下文消息数量（1-20）。", required=False, default=None),  # type: ignore
        authority: Option(int, "使用举报功能所需的权限等级（仅全局）。", required=False, default=None),  # type: ignore
    ):
        if not await self._check_permissions(ctx):
            return

        if global_scope:
            if not await self.discord_bot_instance.is_owner(ctx.user):
                await ctx.respond("只有机器人所有者才能修改全局配置。", ephemeral=True)
                return
            error = self._apply_global(ctx, enabled, auto_process, include_context, context_size, authority)
            if error:
                await ctx.respond(error, ephemeral=True)
                return
            await ctx.respond(embed=build_global_config_embed(self.settings_manager.settings), ephemeral=True)
            return

        try:
            target = GuildID(guild) if guild else GuildID(ctx.guild_id)
        except ValueError:
            await ctx.respond(f"无效的群ID：{guild}", ephemeral=True)
            return

        if target != GuildID(ctx.guild_id) and not self._can_manage(target, ctx.user):
            await ctx.respond("您需要在目标群拥有“管理服务器”权限才能修改其举报配置。", ephemeral=True)
            return

        error = self._apply_guild(ctx, target, enabled, auto_process, include_context, context_size, authority)
        if error:
            await ctx.respond(error, ephemeral=True)
            return

        embed = build_guild_config_embed(
            target, self.settings_manager.guild_config(target), self.settings_manager.settings
        )
        await ctx.respond(embed=embed, ephemeral=True)

    def _apply_global(self, ctx, enabled, auto_process, include_context, context_size, authority) -> str | None:
        if include_context is not None or context_size is not None:
            return "上下文设置只能针对单个群修改。"
        if authority is not None and authority < 0:
            return "权限等级不能为负数。"

        changes = {
            key: value
            for key, value in (("enabled", enabled), ("auto_process", auto_process), ("authority", authority))
            if value is not None
        }
        if changes:
            self.settings_manager.update_global(**changes)
            self._audit(ctx, "global", changes)
        return None

    def _apply_guild(self, ctx, target, enabled, auto_process, include_context, context_size, authority) -> str | None:
        if authority is not None:
            return "权限等级只能在全局配置中修改。"
        if context_size is not None and not MIN_CONTEXT_SIZE <= context_size <= MAX_CONTEXT_SIZE:
            return f"上下文消息数量必须在{MIN_CONTEXT_SIZE}-{MAX_CONTEXT_SIZE}之间"

        changes = {
            key: value
            for key, value in (
                ("enabled", enabled),
                ("auto_process", auto_process),
                ("include_context", include_context),
                ("context_size", context_size),
            )
            if value is not None
        }
        if changes:
            self.settings_manager.update_guild(target, **changes)
            self._audit(ctx, str(target), changes)
        return None

    def _audit(self, ctx: discord.ApplicationContext, scope: str, changes: dict) -> None:
        details = "，".join(f"{key}={value}" for key, value in changes.items())
        self.audit_logger.record(GuildID(ctx.guild_id), UserID(ctx.user.id), "report-config", scope, details)


def setup(
    discord_bot_instance: discord.Bot,
    settings_manager: ReportSettingsManager,
    audit_logger: AuditLogger,
) -> None:
    discord_bot_instance.add_cog(ReportSettingsCog(discord_bot_instance, settings_manager, audit_logger))
