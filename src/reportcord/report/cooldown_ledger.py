"""Per-(reporter, guild) cooldowns that bar members from reporting for a while."""

from __future__ import annotations

import math
from typing import Dict, Tuple

from reportcord.datatypes.discord_datatypes import GuildID, UserID
from reportcord.datatypes.report_datatypes import CooldownRecord
from reportcord.util.logger import get_logger

logger = get_logger("cooldown_ledger")


class CooldownLedger:
    """
    In-memory ledger of reporters who are temporarily barred from reporting.

    Records are keyed by ``(user_id, guild_id)``. Lookups treat expired records
    as absent, so correctness never depends on :meth:`sweep` having run.

    Authority exemption is not handled here: callers skip the ledger entirely
    for exempt reporters.
    """

    def __init__(self) -> None:
        self._records: Dict[Tuple[UserID, GuildID], CooldownRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def get(self, user_id: UserID, guild_id: GuildID) -> CooldownRecord | None:
        return self._records.get((UserID(user_id), GuildID(guild_id)))

    def is_blocked(self, user_id: UserID, guild_id: GuildID, now: float) -> Tuple[bool, int]:
        """
        Check whether a reporter is under an active cooldown.

        Args:
            user_id: Reporter to check.
            guild_id: Guild the report is made in.
            now: Current time as a UNIX timestamp.

        Returns:
            ``(blocked, remaining_minutes)``; remaining minutes are rounded up
            and are 0 when not blocked.
        """
        record = self.get(user_id, guild_id)
        if record is None or not record.is_active(now):
            return False, 0

        remaining_minutes = math.ceil((record.expires_at - now) / 60)
        return True, remaining_minutes

    def block(
        self,
        user_id: UserID,
        guild_id: GuildID,
        duration_minutes: float,
        reason: str,
        now: float,
    ) -> CooldownRecord:
        """Bar a reporter for ``duration_minutes``, replacing any existing record."""
        record = CooldownRecord(
            user_id=UserID(user_id),
            guild_id=GuildID(guild_id),
            created_at=now,
            expires_at=now + duration_minutes * 60,
            reason=reason,
        )
        self._records[(record.user_id, record.guild_id)] = record
        logger.info(
            "[COOLDOWN] Blocked reporter %s in guild %s for %s minutes: %s",
            user_id, guild_id, duration_minutes, reason,
        )
        return record

    def sweep(self, now: float) -> int:
        """Remove every record with ``expires_at <= now`` and return the count removed."""
        expired = [key for key, record in self._records.items() if record.expires_at <= now]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug("[COOLDOWN] Swept %d expired cooldowns", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._records.clear()
