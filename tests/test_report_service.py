"""End-to-end tests of the report state machine with fake collaborators."""

import json

import pytest

from fakes import BOT, CHANNEL, GUILD, MESSAGE, REPORTER, FakeClassifier, FakeDispatcher, FakeMessageSource
from reportcord.datatypes.discord_datatypes import MessageID, UserID
from reportcord.datatypes.report_datatypes import ReportState
from reportcord.report.audit_logger import AUDIT_LOG_KEY
from reportcord.report.enforcement_executor import EnforcementExecutor
from reportcord.report.interfaces import ReportedMessage, ReportSession
from reportcord.report.report_service import PARSE_FAILURE_REPLY, ReportService, build_session

POSTED_AT = 1_000_000.0

MUTE_AND_WARN = json.dumps(
    {
        "level": 2,
        "reason": "人身攻击",
        "actions": [{"type": "mute", "seconds": 1800}, {"type": "warn", "count": 1}],
    },
    ensure_ascii=False,
)
NOT_VIOLATING_WITH_PENALTY = json.dumps(
    {
        "level": 0,
        "reason": "正常交流",
        "actions": [],
        "reporterPenalty": {"shouldLimit": True, "durationMinutes": 60, "reason": "abuse"},
    },
    ensure_ascii=False,
)


class Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return Clock(POSTED_AT + 60)


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def source(reported_message):
    return FakeMessageSource({MESSAGE: reported_message})


def make_service(settings_manager, audit_logger, dispatcher, source, clock, *responses):
    return ReportService(
        settings_manager=settings_manager,
        classifier=FakeClassifier(*responses),
        message_source=source,
        executor=EnforcementExecutor(dispatcher, audit_logger),
        audit_logger=audit_logger,
        bot_id=BOT,
        clock=clock,
    )


def _session(authority: int = 1) -> ReportSession:
    return build_session(GUILD, CHANNEL, REPORTER, authority)


def _audit_commands(store):
    return [entry["command"] for entry in store.get(AUDIT_LOG_KEY, [])]


# ---------------------------------------------------------------------------
# Adjudication scenarios
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_violation_dispatches_mute_and_warn(settings_manager, audit_logger, dispatcher, source, clock, store):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)

    outcome = await service.report(_session(), MESSAGE)

    assert outcome.state is ReportState.DONE
    assert [(name, args) for name, args, _, _ in dispatcher.calls] == [("mute", ["4000", "30m"]), ("warn", ["4000", "1"])]
    assert "禁言1800秒" in outcome.reply
    assert "警告1次" in outcome.reply
    assert outcome.summary == "已处理(中度违规)"
    assert _audit_commands(store) == ["report-handle", "report"]


@pytest.mark.asyncio
async def test_malformed_response_cools_down_reporter(settings_manager, audit_logger, dispatcher, source, clock, store):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, "Sorry, I can't help with that.")

    outcome = await service.report(_session(), MESSAGE)

    assert outcome.state is ReportState.PARSE_FAILED
    assert outcome.reply == PARSE_FAILURE_REPLY
    assert dispatcher.calls == []
    assert service.cooldowns.is_blocked(REPORTER, GUILD, clock.now) == (True, 60)
    assert _audit_commands(store) == ["report-banned"]
    assert service.deduplicator.lookup(GUILD, MESSAGE) is None


@pytest.mark.asyncio
async def test_repeat_report_returns_cached_result(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)
    await service.report(_session(), MESSAGE)

    second = await service.report(build_session(GUILD, CHANNEL, UserID(7777), 1), MESSAGE)

    assert second.state is ReportState.CACHED_RESULT
    assert second.reply == "该消息已被举报过，处理结果: 已处理(中度违规)"
    assert len(service.classifier.prompts) == 1
    assert len(dispatcher.calls) == 2


@pytest.mark.asyncio
async def test_classifier_penalty_cools_down_reporter(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, NOT_VIOLATING_WITH_PENALTY)

    outcome = await service.report(_session(), MESSAGE)

    assert outcome.state is ReportState.DONE
    assert dispatcher.calls == []
    assert "您因abuse，已被暂时限制举报功能60分钟。" in outcome.reply
    assert "AI判断理由：正常交流" in outcome.reply
    assert service.cooldowns.is_blocked(REPORTER, GUILD, clock.now) == (True, 60)
    assert service.deduplicator.lookup(GUILD, MESSAGE) == "未违规"


@pytest.mark.asyncio
async def test_penalty_defaults_when_classifier_omits_details(settings_manager, audit_logger, dispatcher, source, clock):
    response = '{"level": 0, "reason": "无", "actions": [], "reporterPenalty": {"shouldLimit": true}}'
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, response)

    outcome = await service.report(_session(), MESSAGE)

    assert "您因滥用举报功能，已被暂时限制举报功能60分钟。" in outcome.reply


class SlowClassifier(FakeClassifier):
    """Advances the clock while classifying, like a slow model endpoint."""

    def __init__(self, clock, delay, *responses):
        super().__init__(*responses)
        self.clock = clock
        self.delay = delay

    async def classify(self, prompt):
        self.clock.now += self.delay
        return await super().classify(prompt)


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [NOT_VIOLATING_WITH_PENALTY, "not json at all", RuntimeError("timeout")])
async def test_cooldown_starts_after_slow_classification(settings_manager, audit_logger, dispatcher, source, clock, response):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock)
    service.classifier = SlowClassifier(clock, 10 * 60, response)
    started = clock.now

    await service.report(_session(), MESSAGE)

    record = service.cooldowns.get(REPORTER, GUILD)
    assert record.created_at == started + 10 * 60
    assert service.cooldowns.is_blocked(REPORTER, GUILD, started + 69 * 60) == (True, 1)


@pytest.mark.asyncio
async def test_dedup_record_is_stamped_after_classification(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock)
    service.classifier = SlowClassifier(clock, 5 * 60, MUTE_AND_WARN)
    started = clock.now

    await service.report(_session(), MESSAGE)

    assert service.deduplicator.sweep(started + 24 * 60 * 60 + 1) == 0
    assert service.deduplicator.sweep(started + 5 * 60 + 24 * 60 * 60 + 1) == 1


# ---------------------------------------------------------------------------
# Cooldown and exemption
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_blocked_reporter_sees_consistent_remaining_time(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, NOT_VIOLATING_WITH_PENALTY)
    await service.report(_session(), MESSAGE)

    clock.now += 30 * 60
    outcome = await service.report(_session(), MessageID(6000))

    assert outcome.state is ReportState.BLOCKED
    assert outcome.reply == "您由于举报不当已被暂时限制使用举报功能，请在30分钟后再试。"
    assert len(service.classifier.prompts) == 1


@pytest.mark.asyncio
async def test_exempt_reporter_is_never_cooled_down(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, "garbage")

    outcome = await service.report(_session(authority=2), MESSAGE)
    assert outcome.state is ReportState.PARSE_FAILED
    assert len(service.cooldowns) == 0

    service.classifier.responses = [NOT_VIOLATING_WITH_PENALTY]
    outcome = await service.report(_session(authority=2), MESSAGE)
    assert outcome.state is ReportState.DONE
    assert "限制举报功能" not in outcome.reply
    assert len(service.cooldowns) == 0


@pytest.mark.asyncio
async def test_exempt_reporter_bypasses_existing_cooldown(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)
    service.cooldowns.block(REPORTER, GUILD, 60, "earlier", clock.now)

    assert (await service.report(_session(authority=1), MESSAGE)).state is ReportState.BLOCKED
    assert (await service.report(_session(authority=3), MESSAGE)).state is ReportState.DONE


@pytest.mark.asyncio
async def test_classifier_exception_cools_down_reporter(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, RuntimeError("timeout"))

    outcome = await service.report(_session(), MESSAGE)

    assert outcome.state is ReportState.PARSE_FAILED
    assert outcome.reply == "举报处理失败：timeout"
    assert service.cooldowns.is_blocked(REPORTER, GUILD, clock.now)[0] is True
    assert not service.deduplicator.is_in_flight(GUILD, MESSAGE)


# ---------------------------------------------------------------------------
# Rejections before classification
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_missing_quote_is_rejected(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)
    outcome = await service.report(_session(), None)
    assert outcome.state is ReportState.REJECTED
    assert outcome.reply == "请回复需要举报的消息。"


@pytest.mark.asyncio
async def test_unfetchable_message_is_rejected(settings_manager, audit_logger, dispatcher, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, FakeMessageSource(), clock, MUTE_AND_WARN)
    outcome = await service.report(_session(), MESSAGE)
    assert outcome.reply == "无法获取被举报的消息内容。"
    assert service.classifier.prompts == []


@pytest.mark.parametrize(
    "author, reply",
    [
        (None, "无法确定被举报消息的发送者。"),
        (REPORTER, "不能举报自己的消息"),
        (BOT, "不能举报本机器人的消息"),
    ],
)
@pytest.mark.asyncio
async def test_invalid_targets_are_rejected(settings_manager, audit_logger, dispatcher, clock, author, reply):
    message = ReportedMessage(message_id=MESSAGE, content="hello", author_id=author, timestamp=POSTED_AT)
    service = make_service(settings_manager, audit_logger, dispatcher, FakeMessageSource({MESSAGE: message}), clock, MUTE_AND_WARN)

    outcome = await service.report(_session(), MESSAGE)

    assert outcome.state is ReportState.REJECTED
    assert outcome.reply == reply
    assert service.classifier.prompts == []
    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_old_messages_rejected_unless_exempt(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)
    clock.now = POSTED_AT + 31 * 60

    outcome = await service.report(_session(), MESSAGE)
    assert outcome.reply == "只能举报30分钟内的消息，此消息已超时。"

    assert (await service.report(_session(authority=2), MESSAGE)).state is ReportState.DONE


@pytest.mark.asyncio
async def test_disabled_feature_is_rejected(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)

    settings_manager.update_guild(GUILD, enabled=False)
    assert (await service.report(_session(), MESSAGE)).reply == "本群的举报功能已被禁用"

    settings_manager.update_global(enabled=False)
    assert (await service.report(_session(), MESSAGE)).reply == "举报功能已被禁用"
    await settings_manager.shutdown()


@pytest.mark.asyncio
async def test_authority_gate(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)
    settings_manager.settings.authority = 2

    outcome = await service.report(_session(authority=1), MESSAGE)
    assert outcome.state is ReportState.REJECTED
    assert outcome.reply == "您没有使用举报功能的权限。"


@pytest.mark.asyncio
async def test_message_in_flight_is_not_classified_twice(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)
    service.deduplicator.claim(GUILD, MESSAGE)

    outcome = await service.report(_session(), MESSAGE)

    assert outcome.state is ReportState.REJECTED
    assert service.classifier.prompts == []


# ---------------------------------------------------------------------------
# Settings that shape the flow
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_auto_process_off_skips_dispatch(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)
    settings_manager.update_guild(GUILD, auto_process=False)

    outcome = await service.report(_session(), MESSAGE)

    assert dispatcher.calls == []
    assert "自动处理功能已禁用，请管理员手动处理" in outcome.reply
    await settings_manager.shutdown()


@pytest.mark.asyncio
async def test_context_is_included_when_enabled(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)
    settings_manager.update_guild(GUILD, include_context=True, context_size=2)

    for i, text in enumerate(["第一条", "第二条", "第三条"]):
        assert service.on_message(GUILD, UserID(10 + i), text, POSTED_AT + i)

    await service.report(_session(), MESSAGE)

    prompt = service.classifier.prompts[0]
    assert "第一条" not in prompt
    assert "消息1 [用户11]: 第二条" in prompt
    assert "消息2 [用户12]: 第三条" in prompt
    assert "你真是个废物" in prompt
    await settings_manager.shutdown()


@pytest.mark.asyncio
async def test_context_not_collected_by_default(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)

    assert service.on_message(GUILD, UserID(10), "hello", POSTED_AT) is False
    await service.report(_session(), MESSAGE)
    assert "消息1 [用户10]" not in service.classifier.prompts[0]


@pytest.mark.asyncio
async def test_verbose_flag_controls_reply_detail(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, MUTE_AND_WARN)

    outcome = await service.report(_session(), MESSAGE, verbose=False)

    assert outcome.reply == "已对用户 4000 执行：禁言1800秒、警告1次，中度违规。"


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sweep_expires_cooldowns_and_records(settings_manager, audit_logger, dispatcher, source, clock):
    service = make_service(settings_manager, audit_logger, dispatcher, source, clock, NOT_VIOLATING_WITH_PENALTY)
    await service.report(_session(), MESSAGE)
    start = clock.now

    assert service.sweep(start + 61 * 60) == (1, 0)
    assert service.sweep(start + 24 * 3600 + 1) == (0, 1)
    assert service.deduplicator.lookup(GUILD, MESSAGE) is None


def test_build_session_normalises_ids():
    session = build_session("1000", 2000, "3000", 1, invoking_message_id="42")
    assert session.guild_id == GUILD
    assert session.reporter_id == REPORTER
    assert session.invoking_message_id == MessageID(42)
    assert session.authorization().authority == 1
