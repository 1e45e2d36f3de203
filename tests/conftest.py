"""
Pytest configuration and fixtures for Reportcord tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from fakes import CHANNEL, GUILD, MESSAGE, REPORTER, TARGET  # noqa: E402
from reportcord.report.audit_logger import AuditLogger  # noqa: E402
from reportcord.report.interfaces import ReportedMessage, ReportSession  # noqa: E402
from reportcord.settings.report_settings_manager import ReportSettingsManager  # noqa: E402
from reportcord.storage.key_value_store import KeyValueStore  # noqa: E402


@pytest.fixture
def store():
    return KeyValueStore()


@pytest.fixture
def audit_logger(store):
    return AuditLogger(store)


@pytest.fixture
def settings_manager(store):
    return ReportSettingsManager(store)


@pytest.fixture
def session():
    return ReportSession(guild_id=GUILD, channel_id=CHANNEL, reporter_id=REPORTER, reporter_authority=1)


@pytest.fixture
def reported_message():
    return ReportedMessage(message_id=MESSAGE, content="你真是个废物", author_id=TARGET, timestamp=1_000_000.0)
