"""Cache of already-adjudicated messages so a message is only judged once."""

from __future__ import annotations

from typing import Dict, Set, Tuple

from reportcord.datatypes.discord_datatypes import GuildID, MessageID
from reportcord.datatypes.report_datatypes import ReportedMessageRecord
from reportcord.util.logger import get_logger

logger = get_logger("deduplicator")

REPORTED_MESSAGE_TTL_SECONDS = 24 * 60 * 60


class Deduplicator:
    """
    Tracks which ``(guild_id, message_id)`` pairs have already been reported.

    Besides finished records the deduplicator holds *claims* for reports that
    are still being adjudicated. A claim is taken synchronously before the
    first suspension point, which keeps two concurrent reports of the same
    message from both reaching the classifier.

    Args:
        ttl_seconds: Age after which a finished record is considered stale.
    """

    def __init__(self, ttl_seconds: float = REPORTED_MESSAGE_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds
        self._records: Dict[Tuple[GuildID, MessageID], ReportedMessageRecord] = {}
        self._in_flight: Set[Tuple[GuildID, MessageID]] = set()

    def __len__(self) -> int:
        return len(self._records)

    @staticmethod
    def _key(guild_id: GuildID, message_id: MessageID) -> Tuple[GuildID, MessageID]:
        return GuildID(guild_id), MessageID(message_id)

    def lookup(self, guild_id: GuildID, message_id: MessageID, now: float | None = None) -> str | None:
        """
        Return the cached result summary for a message, or None.

        When ``now`` is given, records older than the TTL are ignored even if
        the sweep has not removed them yet.
        """
        record = self._records.get(self._key(guild_id, message_id))
        if record is None:
            return None
        if now is not None and now - record.decided_at > self.ttl_seconds:
            return None
        return record.result_summary

    def record(self, guild_id: GuildID, message_id: MessageID, summary: str, now: float) -> ReportedMessageRecord:
        """Store the adjudicated summary for a message and drop any claim on it."""
        key = self._key(guild_id, message_id)
        record = ReportedMessageRecord(message_id=key[1], decided_at=now, result_summary=summary)
        self._records[key] = record
        self._in_flight.discard(key)
        logger.debug("[DEDUP] Recorded message %s in guild %s: %s", message_id, guild_id, summary)
        return record

    def claim(self, guild_id: GuildID, message_id: MessageID) -> bool:
        """Mark a message as being adjudicated. Returns False if already claimed."""
        key = self._key(guild_id, message_id)
        if key in self._in_flight:
            return False
        self._in_flight.add(key)
        return True

    def release(self, guild_id: GuildID, message_id: MessageID) -> None:
        self._in_flight.discard(self._key(guild_id, message_id))

    def is_in_flight(self, guild_id: GuildID, message_id: MessageID) -> bool:
        return self._key(guild_id, message_id) in self._in_flight

    def sweep(self, now: float) -> int:
        """Remove records older than the TTL and return the count removed."""
        stale = [key for key, record in self._records.items() if now - record.decided_at > self.ttl_seconds]
        for key in stale:
            del self._records[key]
        if stale:
            logger.debug("[DEDUP] Swept %d stale reported-message records", len(stale))
        return len(stale)

    def clear(self) -> None:
        self._records.clear()
        self._in_flight.clear()
