from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from reportcord.configuration.ai_settings import AISettings
from reportcord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes dictionary-like
    access helpers, and resolves AI-specific settings through :class:`AISettings`.
    Uses fcntl file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache. Callers should not mutate it.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def ai_settings(self) -> AISettings:
        """Return the classifier settings wrapped in an AISettings helper."""
        return AISettings(self._section("ai_settings"))

    @property
    def report_defaults(self) -> Dict[str, Any]:
        """Seed values for the report settings used when the store is empty."""
        return dict(self._section("report"))

    @property
    def cleanup_interval(self) -> float:
        """Seconds between cleanup sweeps. Default is 600 seconds (10 minutes)."""
        return float(self._section("cleanup").get("interval_seconds", 600.0))

    @property
    def notification_channel_id(self) -> int | None:
        """Channel receiving report notifications, or None to disable them."""
        value = self._section("notifications").get("channel_id")
        return int(value) if value else None

    @property
    def database_path(self) -> Path:
        return Path(self._section("database").get("path", "./data/reportcord.db"))


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
