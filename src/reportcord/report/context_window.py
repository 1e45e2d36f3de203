"""Per-guild buffer of recent messages used as classifier context."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Deque, Dict, List

from reportcord.datatypes.discord_datatypes import GuildID
from reportcord.datatypes.report_datatypes import ContextMessage
from reportcord.datatypes.report_settings import GuildReportConfig


class ContextWindow:
    """
    Bounded, per-guild window of the most recent messages.

    Each guild's buffer holds at most ``2 * context_size`` messages; older
    entries are dropped silently. Keeping twice the configured size means a
    report issued right after the size was raised still finds a full window.
    """

    def __init__(self) -> None:
        self._messages: Dict[GuildID, Deque[ContextMessage]] = defaultdict(deque)

    def append(self, guild_id: GuildID, message: ContextMessage, config: GuildReportConfig | None) -> bool:
        """
        Record a message if the guild collects context.

        Args:
            guild_id: Guild the message was posted in.
            message: The message to record.
            config: The guild's report override, or None when it has none.

        Returns:
            True if the message was stored.
        """
        if config is None or not config.include_context:
            return False

        buffer = self._messages[GuildID(guild_id)]
        buffer.append(message)

        cap = config.context_size * 2
        while len(buffer) > cap:
            buffer.popleft()
        return True

    def snapshot(self, guild_id: GuildID, size: int) -> List[ContextMessage]:
        """Return the ``size`` most recent messages, ordered oldest first by timestamp."""
        if size <= 0:
            return []
        buffer = self._messages.get(GuildID(guild_id))
        if not buffer:
            return []
        ordered = sorted(buffer, key=lambda message: message.timestamp)
        return ordered[-size:]

    def size_of(self, guild_id: GuildID) -> int:
        buffer = self._messages.get(GuildID(guild_id))
        return len(buffer) if buffer else 0

    def clear(self, guild_id: GuildID | None = None) -> None:
        if guild_id is None:
            self._messages.clear()
        else:
            self._messages.pop(GuildID(guild_id), None)
