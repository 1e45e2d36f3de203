"""
Discord adapters for the report pipeline.

Stateless helpers plus the concrete collaborators the report service talks to:

- :func:`authority_of` maps guild permissions onto numeric authority tiers.
- :class:`DiscordActionDispatcher` executes mute/warn/kick commands.
- :class:`DiscordMessageSource` loads the reported message.
- :class:`DiscordNotifier` posts audit notifications to a log channel.
"""

from __future__ import annotations

import datetime
import re
from typing import Any, Dict, List, Union

import discord

from reportcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from reportcord.report.interfaces import AuthorizationContext, ReportedMessage
from reportcord.storage.key_value_store import KeyValueStore
from reportcord.util.logger import get_logger

logger = get_logger("discord_bridge")

AUTHORITY_MEMBER = 1
AUTHORITY_MODERATOR = 2
AUTHORITY_ADMIN = 3

# Discord rejects timeouts longer than 28 days.
MAX_TIMEOUT_SECONDS = 28 * 24 * 60 * 60

WARNS_KEY = "warns"
BLACKLIST_KEY = "blacklist"

REQUIRED_AUTHORITY = {
    "mute": AUTHORITY_MODERATOR,
    "warn": AUTHORITY_MODERATOR,
    "kick": AUTHORITY_MODERATOR,
}

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd])\s*$", re.IGNORECASE)
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


# ==========================================
# Permission helpers
# ==========================================

def authority_of(member: Union[discord.User, discord.Member]) -> int:
    """
    Return the numeric authority tier of a member.

    Administrators and the guild owner are tier 3, members who can manage the
    guild, moderate members or kick are tier 2, and everyone else is tier 1.
    """
    if not isinstance(member, discord.Member):
        return AUTHORITY_MEMBER

    guild = getattr(member, "guild", None)
    if guild is not None and guild.owner_id == member.id:
        return AUTHORITY_ADMIN

    perms = member.guild_permissions
    if getattr(perms, "administrator", False):
        return AUTHORITY_ADMIN
    if any(getattr(perms, attr, False) for attr in ("manage_guild", "moderate_members", "kick_members")):
        return AUTHORITY_MODERATOR
    return AUTHORITY_MEMBER


def parse_duration(value: str) -> int:
    """
    Convert a coarse duration string (``30s``, ``5m``, ``2h``, ``1d``) to seconds.

    Raises:
        ValueError: The string is not a positive number followed by a unit.
    """
    match = _DURATION_PATTERN.match(value or "")
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2).lower()]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


def build_warning_embed(guild: discord.Guild, added: int, total: int) -> discord.Embed:
    """Embed sent to a member who received warnings through a report."""
    embed = discord.Embed(
        title="⚠️ 警告",
        description=f"您在 **{guild.name}** 因被举报的消息违规而收到 {added} 次警告。",
        color=discord.Color.yellow(),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="累计警告", value=str(total), inline=True)
    return embed


# ==========================================
# Action dispatcher
# ==========================================

class DiscordActionDispatcher:
    """
    Execute enforcement commands against Discord members.

    Args:
        bot: Connected bot used to resolve guilds and members.
        store: Key-value store holding the warning ledger and ban list.
    """

    def __init__(self, bot: discord.Bot, store: KeyValueStore) -> None:
        self._bot = bot
        self._store = store

    async def execute(
        self,
        action_name: str,
        args: List[str],
        options: Dict[str, Any],
        authorization: AuthorizationContext,
    ) -> Any:
        """
        Run one enforcement command.

        Args:
            action_name: ``mute``, ``warn`` or ``kick``.
            args: Positional arguments; the target user id comes first.
            options: Keyword options; ``guild_id`` is required, ``blacklist`` applies to kick.
            authorization: Context the call runs under.

        Raises:
            PermissionError: ``authorization`` does not cover the command.
            ValueError: The command or its arguments are invalid.
            LookupError: The guild or member could not be resolved.
        """
        required = REQUIRED_AUTHORITY.get(action_name)
        if required is None:
            raise ValueError(f"Unknown action: {action_name}")
        if not authorization.permits(required):
            raise PermissionError(
                f"{authorization.user_id} (authority {authorization.authority}) may not run {action_name}"
            )
        if not args:
            raise ValueError(f"{action_name} requires a target user id")

        guild = await self._resolve_guild(GuildID(options["guild_id"]))
        user_id = UserID(args[0])

        if action_name == "mute":
            return await self._mute(guild, user_id, args[1] if len(args) > 1 else "")
        if action_name == "warn":
            return await self._warn(guild, user_id, int(args[1]) if len(args) > 1 else 1)
        return await self._kick(guild, user_id, bool(options.get("blacklist", False)))

    async def _resolve_guild(self, guild_id: GuildID) -> discord.Guild:
        guild = self._bot.get_guild(guild_id.to_int())
        if guild is None:
            raise LookupError(f"Guild {guild_id} is not available")
        return guild

    @staticmethod
    async def _resolve_member(guild: discord.Guild, user_id: UserID) -> discord.Member:
        member = guild.get_member(user_id.to_int())
        if member is None:
            try:
                member = await guild.fetch_member(user_id.to_int())
            except discord.NotFound as exc:
                raise LookupError(f"Member {user_id} is not in guild {guild.id}") from exc
        return member

    async def _mute(self, guild: discord.Guild, user_id: UserID, duration: str) -> bool:
        seconds = min(parse_duration(duration), MAX_TIMEOUT_SECONDS)
        member = await self._resolve_member(guild, user_id)
        until = discord.utils.utcnow() + datetime.timedelta(seconds=seconds)
        await member.timeout(until, reason="Report: content violation")
        logger.info("[DISPATCH] Muted %s in guild %s for %ss", user_id, guild.id, seconds)
        return True

    async def _warn(self, guild: discord.Guild, user_id: UserID, count: int) -> int:
        if count <= 0:
            raise ValueError(f"Warning count must be positive, got {count}")

        member = await self._resolve_member(guild, user_id)

        warns: Dict[str, Dict[str, int]] = self._store.get(WARNS_KEY) or {}
        guild_warns = warns.setdefault(str(guild.id), {})
        total = guild_warns.get(str(user_id), 0) + count
        guild_warns[str(user_id)] = total
        self._store.set(WARNS_KEY, warns)

        try:
            await member.send(embed=build_warning_embed(guild, count, total))
        except (discord.Forbidden, discord.HTTPException) as exc:
            logger.debug("[DISPATCH] Could not DM warning to %s: %s", user_id, exc)

        logger.info("[DISPATCH] Warned %s in guild %s (%d added, %d total)", user_id, guild.id, count, total)
        return total

    async def _kick(self, guild: discord.Guild, user_id: UserID, blacklist: bool) -> bool:
        if not blacklist:
            member = await self._resolve_member(guild, user_id)
            await guild.kick(member, reason="Report: content violation")
            logger.info("[DISPATCH] Kicked %s from guild %s", user_id, guild.id)
            return True

        await guild.ban(discord.Object(id=user_id.to_int()), reason="Report: severe content violation")
        blacklist_map: Dict[str, List[str]] = self._store.get(BLACKLIST_KEY) or {}
        banned = blacklist_map.setdefault(str(guild.id), [])
        if str(user_id) not in banned:
            banned.append(str(user_id))
        self._store.set(BLACKLIST_KEY, blacklist_map)
        logger.info("[DISPATCH] Banned and blacklisted %s in guild %s", user_id, guild.id)
        return True


# ==========================================
# Platform queries and notifications
# ==========================================

class DiscordMessageSource:
    """Load reported messages through the bot's channel cache or the API."""

    def __init__(self, bot: discord.Bot) -> None:
        self._bot = bot

    async def fetch_message(
        self,
        guild_id: GuildID,
        channel_id: ChannelID,
        message_id: MessageID,
    ) -> ReportedMessage | None:
        try:
            channel = self._bot.get_channel(channel_id.to_int())
            if channel is None:
                channel = await self._bot.fetch_channel(channel_id.to_int())
            message = await channel.fetch_message(message_id.to_int())
        except (discord.NotFound, discord.Forbidden, discord.HTTPException) as exc:
            logger.warning("[DISCORD] Could not fetch message %s in channel %s: %s", message_id, channel_id, exc)
            return None

        return message_to_reported(message)


def message_to_reported(message: discord.Message) -> ReportedMessage:
    """Convert a Discord message into the pipeline's message record."""
    author = getattr(message, "author", None)
    created_at = getattr(message, "created_at", None)
    return ReportedMessage(
        message_id=MessageID(message.id),
        content=message.content or "",
        author_id=UserID(author.id) if author is not None else None,
        timestamp=created_at.timestamp() if created_at is not None else None,
    )


class DiscordNotifier:
    """
    Audit observer posting notifications to a log channel.

    Args:
        bot: Connected bot.
        channel_id: Destination channel.
    """

    def __init__(self, bot: discord.Bot, channel_id: int) -> None:
        self._bot = bot
        self._channel_id = channel_id

    async def __call__(self, message: str, kind: str) -> None:
        channel = self._bot.get_channel(self._channel_id)
        if channel is None:
            logger.warning("[NOTIFY] Notification channel %s not found, dropping %s notification", self._channel_id, kind)
            return
        await channel.send(message[:2000])
