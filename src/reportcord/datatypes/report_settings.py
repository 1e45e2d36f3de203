"""
Report feature configuration.

:class:`ReportSettings` holds the global configuration; per-guild overrides are
:class:`GuildReportConfig` entries in ``guild_configs``. Both round-trip through
plain dictionaries so they can live in the key-value store.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Mapping

from reportcord.util.logger import get_logger

logger = get_logger("report_settings")

MIN_CONTEXT_SIZE = 1
MAX_CONTEXT_SIZE = 20
DEFAULT_CONTEXT_SIZE = 5


def _known_fields(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


@dataclass(slots=True)
class GuildReportConfig:
    """Per-guild report overrides.

    Attributes:
        enabled: Whether members of this guild may report.
        auto_process: Dispatch enforcement actions automatically.
        include_context: Collect recent messages and send them with reports.
        context_size: Number of context messages sent to the classifier.
    """

    enabled: bool = True
    auto_process: bool = True
    include_context: bool = False
    context_size: int = DEFAULT_CONTEXT_SIZE

    def __post_init__(self) -> None:
        if not MIN_CONTEXT_SIZE <= int(self.context_size) <= MAX_CONTEXT_SIZE:
            raise ValueError(
                f"context_size must be between {MIN_CONTEXT_SIZE} and {MAX_CONTEXT_SIZE}, got {self.context_size}"
            )
        self.context_size = int(self.context_size)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GuildReportConfig":
        """Build from stored data, falling back to the default for an unusable ``context_size``."""
        values = _known_fields(cls, data)
        raw_size = values.get("context_size", DEFAULT_CONTEXT_SIZE)
        try:
            size = int(raw_size)
        except (TypeError, ValueError):
            size = None
        if size is None or not MIN_CONTEXT_SIZE <= size <= MAX_CONTEXT_SIZE:
            logger.warning(
                "[REPORT SETTINGS] Stored context_size %r is invalid, using %d",
                raw_size, DEFAULT_CONTEXT_SIZE,
            )
            size = DEFAULT_CONTEXT_SIZE
        values["context_size"] = size
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ReportSettings:
    """Global report configuration.

    Attributes:
        enabled: Global on/off switch for the report feature.
        authority: Minimum authority needed to invoke the report command.
        auto_process: Fallback auto-process flag for guilds without an override.
        default_prompt_template: Custom template without context ("" uses the built-in one).
        context_prompt_template: Custom template with context ("" uses the built-in one).
        max_report_time_minutes: Oldest message age a non-exempt member may report.
        max_report_cooldown_minutes: Cooldown applied when adjudication fails.
        min_authority_no_limit: Authority at which reporters skip cooldowns and age limits.
        guild_configs: Per-guild overrides keyed by guild id string.
    """

    enabled: bool = True
    authority: int = 1
    auto_process: bool = True
    default_prompt_template: str = ""
    context_prompt_template: str = ""
    max_report_time_minutes: int = 30
    max_report_cooldown_minutes: int = 60
    min_authority_no_limit: int = 2
    guild_configs: Dict[str, GuildReportConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ReportSettings":
        data = dict(data or {})
        raw_guilds = data.pop("guild_configs", None) or {}
        settings = cls(**_known_fields(cls, data))
        settings.guild_configs = {
            str(guild_id): GuildReportConfig.from_dict(config)
            for guild_id, config in raw_guilds.items()
            if isinstance(config, Mapping)
        }
        return settings

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "guild_configs"}
        data["guild_configs"] = {guild_id: config.to_dict() for guild_id, config in self.guild_configs.items()}
        return data
