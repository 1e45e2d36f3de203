"""Tests for the reporter cooldown ledger."""

from fakes import GUILD, REPORTER
from reportcord.datatypes.discord_datatypes import GuildID, UserID
from reportcord.report.cooldown_ledger import CooldownLedger

NOW = 1_000_000.0


def test_unknown_reporter_is_not_blocked():
    ledger = CooldownLedger()
    assert ledger.is_blocked(REPORTER, GUILD, NOW) == (False, 0)


def test_block_reports_remaining_minutes_rounded_up():
    ledger = CooldownLedger()
    ledger.block(REPORTER, GUILD, 60, "abuse", NOW)

    assert ledger.is_blocked(REPORTER, GUILD, NOW) == (True, 60)
    assert ledger.is_blocked(REPORTER, GUILD, NOW + 30 * 60) == (True, 30)
    assert ledger.is_blocked(REPORTER, GUILD, NOW + 59 * 60 + 1) == (True, 1)


def test_block_expires_at_boundary():
    ledger = CooldownLedger()
    ledger.block(REPORTER, GUILD, 10, "abuse", NOW)
    assert ledger.is_blocked(REPORTER, GUILD, NOW + 600) == (False, 0)


def test_cooldown_is_scoped_to_guild():
    ledger = CooldownLedger()
    ledger.block(REPORTER, GUILD, 10, "abuse", NOW)
    assert ledger.is_blocked(REPORTER, GuildID(1), NOW) == (False, 0)
    assert ledger.is_blocked(UserID(1), GUILD, NOW) == (False, 0)


def test_ids_are_normalised():
    ledger = CooldownLedger()
    ledger.block("3000", 1000, 10, "abuse", NOW)
    assert ledger.is_blocked(REPORTER, GUILD, NOW)[0] is True
    assert ledger.get(3000, "1000").reason == "abuse"


def test_block_replaces_existing_record():
    ledger = CooldownLedger()
    ledger.block(REPORTER, GUILD, 60, "first", NOW)
    ledger.block(REPORTER, GUILD, 5, "second", NOW)
    assert len(ledger) == 1
    assert ledger.is_blocked(REPORTER, GUILD, NOW) == (True, 5)


def test_sweep_removes_only_expired_records():
    ledger = CooldownLedger()
    ledger.block(REPORTER, GUILD, 10, "short", NOW)
    ledger.block(UserID(1), GUILD, 120, "long", NOW)

    assert ledger.sweep(NOW + 600) == 1
    assert len(ledger) == 1
    assert ledger.get(UserID(1), GUILD) is not None
    assert ledger.sweep(NOW + 600) == 0
