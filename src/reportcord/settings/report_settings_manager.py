"""
Persistent global and per-guild configuration for the report feature.

Provides a simplified API for managing report settings:
- settings -> ReportSettings: Current global configuration
- guild_config(guild_id) -> GuildReportConfig | None: Per-guild override
- update_global(**kwargs) / update_guild(guild_id, **kwargs): Update fields and auto-persist
- save(): Explicit persist trigger

Settings live in the key-value store under the ``report`` key.
"""

from __future__ import annotations

import asyncio
from dataclasses import fields, replace
from typing import Any, Mapping, Set

from reportcord.datatypes.discord_datatypes import GuildID
from reportcord.datatypes.report_settings import GuildReportConfig, ReportSettings
from reportcord.storage.key_value_store import KeyValueStore
from reportcord.util.logger import get_logger

logger = get_logger("report_settings_manager")

REPORT_SETTINGS_KEY = "report"

_GLOBAL_FIELDS = {f.name for f in fields(ReportSettings)} - {"guild_configs"}
_GUILD_FIELDS = {f.name for f in fields(GuildReportConfig)}


class ReportSettingsManager:
    """
    Manager for the report feature's configuration.

    Args:
        store: Key-value store the settings are persisted in.
        defaults: Seed values used when the store holds no settings yet.
    """

    def __init__(self, store: KeyValueStore, defaults: Mapping[str, Any] | None = None) -> None:
        self._store = store
        self._defaults = dict(defaults or {})
        self._settings = ReportSettings.from_dict(self._defaults)
        self._active_persists: Set[asyncio.Task] = set()
        self._loaded = False

    async def async_init(self) -> None:
        """Load settings from the store, seeding it from the defaults on first run."""
        if self._loaded:
            return
        stored = self._store.get(REPORT_SETTINGS_KEY)
        if isinstance(stored, Mapping):
            merged = {**self._defaults, **stored}
            self._settings = ReportSettings.from_dict(merged)
            logger.info(
                "[REPORT SETTINGS] Loaded settings with %d guild overrides",
                len(self._settings.guild_configs),
            )
        else:
            self._store.set(REPORT_SETTINGS_KEY, self._settings.to_dict())
            logger.info("[REPORT SETTINGS] No stored settings found, seeded defaults")
        self._loaded = True

    # ========== Core API ==========

    @property
    def settings(self) -> ReportSettings:
        return self._settings

    def guild_config(self, guild_id: GuildID) -> GuildReportConfig | None:
        """Return the guild's override, or None when it uses the global defaults."""
        return self._settings.guild_configs.get(str(GuildID(guild_id)))

    def is_enabled_for(self, guild_id: GuildID) -> bool:
        """Reports are allowed only when enabled globally and not disabled for the guild."""
        if not self._settings.enabled:
            return False
        config = self.guild_config(guild_id)
        return config is None or config.enabled

    def auto_process_for(self, guild_id: GuildID) -> bool:
        """The guild's auto-process override, falling back to the global flag."""
        config = self.guild_config(guild_id)
        if config is not None:
            return config.auto_process
        return self._settings.auto_process

    def update_global(self, **kwargs: Any) -> ReportSettings:
        """
        Update global fields and auto-persist.

        Raises:
            ValueError: A field name is unknown.
        """
        unknown = set(kwargs) - _GLOBAL_FIELDS
        if unknown:
            raise ValueError(f"Unknown report setting(s): {', '.join(sorted(unknown))}")

        for field_name, value in kwargs.items():
            setattr(self._settings, field_name, value)
        logger.info("[REPORT SETTINGS] Updated global settings: %s", kwargs)
        self.save()
        return self._settings

    def update_guild(self, guild_id: GuildID, **kwargs: Any) -> GuildReportConfig:
        """
        Update a guild's override, creating it with defaults first, and auto-persist.

        Raises:
            ValueError: A field name is unknown or ``context_size`` is out of range.
        """
        unknown = set(kwargs) - _GUILD_FIELDS
        if unknown:
            raise ValueError(f"Unknown guild report setting(s): {', '.join(sorted(unknown))}")

        key = str(GuildID(guild_id))
        current = self._settings.guild_configs.get(key) or GuildReportConfig()
        # replace() re-runs validation, so a bad context_size leaves the stored config untouched.
        updated = replace(current, **kwargs)
        self._settings.guild_configs[key] = updated
        logger.info("[REPORT SETTINGS] Updated guild %s: %s", key, kwargs)
        self.save()
        return updated

    def save(self) -> None:
        """Write settings into the store and schedule a flush to backing storage."""
        self._store.set(REPORT_SETTINGS_KEY, self._settings.to_dict())

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[REPORT SETTINGS] No running event loop, flush deferred")
            return

        task = loop.create_task(self._store.flush())
        self._active_persists.add(task)

        def _cleanup(completed: asyncio.Task) -> None:
            self._active_persists.discard(completed)
            try:
                completed.result()
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("[REPORT SETTINGS] Failed to persist report settings")

        task.add_done_callback(_cleanup)

    # ========== Lifecycle ==========

    async def shutdown(self) -> None:
        """Await any pending persistence tasks during shutdown."""
        await asyncio.gather(*self._active_persists, return_exceptions=True)
        self._active_persists.clear()
        logger.info("[REPORT SETTINGS] Shutdown complete")
