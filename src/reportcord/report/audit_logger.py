"""
Audit trail for report outcomes.

Entries are appended to a bounded list in the key-value store under
``command_logs``. Observers (for example a moderator log channel) can
subscribe to short notifications. Neither path ever raises into the report
flow: failures are logged and dropped.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, List

from reportcord.storage.key_value_store import KeyValueStore
from reportcord.util.logger import get_logger

logger = get_logger("audit_logger")

AUDIT_LOG_KEY = "command_logs"
DEFAULT_MAX_ENTRIES = 1000

Observer = Callable[[str, str], Awaitable[Any]]


@dataclass(slots=True)
class AuditEntry:
    """One audit log line: who ran what against whom, and the outcome."""

    timestamp: float
    guild_id: str
    user_id: str
    command: str
    target: str
    details: str


class AuditLogger:
    """
    Bounded audit log with observer notifications.

    Args:
        store: Key-value store holding the log.
        max_entries: Oldest entries are trimmed once the log grows past this.
    """

    def __init__(self, store: KeyValueStore, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._store = store
        self.max_entries = max_entries
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> None:
        """Register an async callable receiving ``(message, kind)``."""
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def record(
        self,
        guild_id: Any,
        user_id: Any,
        command: str,
        target: Any,
        details: str,
        timestamp: float | None = None,
    ) -> AuditEntry | None:
        """
        Append an entry to the audit log.

        Returns the stored entry, or None if writing failed.
        """
        try:
            entry = AuditEntry(
                timestamp=timestamp if timestamp is not None else time.time(),
                guild_id=str(guild_id),
                user_id=str(user_id),
                command=command,
                target=str(target),
                details=details,
            )
            logs: List[Dict[str, Any]] = self._store.get(AUDIT_LOG_KEY) or []
            logs.append(asdict(entry))
            if len(logs) > self.max_entries:
                logs = logs[-self.max_entries:]
            self._store.set(AUDIT_LOG_KEY, logs)
            logger.debug("[AUDIT] %s by %s on %s: %s", command, user_id, target, details)
            return entry
        except Exception as exc:
            logger.error("[AUDIT] Failed to record %s entry: %s", command, exc)
            return None

    async def notify(self, message: str, kind: str = "report") -> None:
        """Push a notification to every observer; observer errors are swallowed."""
        for observer in list(self._observers):
            try:
                await observer(message, kind)
            except Exception as exc:
                logger.error("[AUDIT] Notification observer failed: %s", exc)

    def recent(self, limit: int = 20, guild_id: Any = None) -> List[AuditEntry]:
        """Return the newest ``limit`` entries, optionally for one guild, newest last."""
        logs = self._store.get(AUDIT_LOG_KEY) or []
        entries = [AuditEntry(**item) for item in logs if isinstance(item, dict)]
        if guild_id is not None:
            entries = [entry for entry in entries if entry.guild_id == str(guild_id)]
        return entries[-limit:] if limit > 0 else []
