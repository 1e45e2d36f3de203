"""
Coordinator for member reports.

:class:`ReportService` owns the in-memory report state (cooldowns, adjudicated
messages and context windows) and runs a single report from the eligibility
checks through classification and enforcement to the reply text. The state
is process-lifetime only and starts empty after a restart.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Tuple

from reportcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from reportcord.datatypes.report_datatypes import (
    ContextMessage,
    ReportOutcome,
    ReportState,
    ViolationAssessment,
)
from reportcord.report.audit_logger import AuditLogger
from reportcord.report.context_window import ContextWindow
from reportcord.report.cooldown_ledger import CooldownLedger
from reportcord.report.deduplicator import Deduplicator
from reportcord.report.enforcement_executor import EnforcementExecutor, shorten
from reportcord.report.errors import ResponseParseError
from reportcord.report.interfaces import Classifier, MessageSource, ReportedMessage, ReportSession
from reportcord.report.prompt_builder import PromptBuilder
from reportcord.report.response_parser import parse_assessment
from reportcord.settings.report_settings_manager import ReportSettingsManager
from reportcord.util.logger import get_logger

logger = get_logger("report_service")

DEFAULT_PENALTY_MINUTES = 60
DEFAULT_PENALTY_REASON = "滥用举报功能"
PARSE_FAILURE_REPLY = "举报处理失败：AI判断结果格式有误，请重试或联系管理员手动处理。"


def _reject(reply: str) -> ReportOutcome:
    return ReportOutcome(state=ReportState.REJECTED, reply=reply)


class ReportService:
    """
    Runs the report state machine.

    Args:
        settings_manager: Global and per-guild report configuration.
        classifier: Content classification backend.
        message_source: Loads the reported message from the platform.
        executor: Applies the classifier's actions.
        audit_logger: Receives report, penalty and failure entries.
        bot_id: The bot's own user id; its messages cannot be reported.
        clock: Returns the current UNIX time.
    """

    def __init__(
        self,
        settings_manager: ReportSettingsManager,
        classifier: Classifier,
        message_source: MessageSource,
        executor: EnforcementExecutor,
        audit_logger: AuditLogger,
        bot_id: UserID | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings_manager = settings_manager
        self.classifier = classifier
        self.message_source = message_source
        self.executor = executor
        self.audit = audit_logger
        self.bot_id = UserID(bot_id) if bot_id is not None else None
        self.clock = clock

        self.cooldowns = CooldownLedger()
        self.deduplicator = Deduplicator()
        self.context_window = ContextWindow()

    # ========== Context collection ==========

    def on_message(self, guild_id: GuildID, user_id: UserID, content: str, timestamp: float | None = None) -> bool:
        """Feed a guild message into the context window. Returns True if it was kept."""
        if not content:
            return False
        message = ContextMessage(
            user_id=UserID(user_id),
            content=content,
            timestamp=timestamp if timestamp is not None else self.clock(),
        )
        return self.context_window.append(guild_id, message, self.settings_manager.guild_config(guild_id))

    # ========== Maintenance ==========

    def sweep(self, now: float | None = None) -> Tuple[int, int]:
        """Purge expired cooldowns and stale adjudication records.

        Returns:
            ``(cooldowns_removed, records_removed)``
        """
        now = self.clock() if now is None else now
        cooldowns_removed = self.cooldowns.sweep(now)
        records_removed = self.deduplicator.sweep(now)
        if cooldowns_removed or records_removed:
            logger.info(
                "[REPORT] Cleanup removed %d cooldowns and %d reported-message records",
                cooldowns_removed, records_removed,
            )
        return cooldowns_removed, records_removed

    # ========== Report flow ==========

    async def report(
        self,
        session: ReportSession,
        quoted_message_id: Optional[MessageID],
        verbose: bool = True,
    ) -> ReportOutcome:
        """
        Handle one report invocation.

        Args:
            session: Who reported, where, and with what authority.
            quoted_message_id: The message being reported, or None if none was quoted.
            verbose: Include the classifier's reasoning in the reply.

        Returns:
            The terminal state and the reply to show the reporter.
        """
        settings = self.settings_manager.settings
        guild_id = session.guild_id
        now = self.clock()

        if not settings.enabled:
            return _reject("举报功能已被禁用")
        if not self.settings_manager.is_enabled_for(guild_id):
            return _reject("本群的举报功能已被禁用")
        if session.reporter_authority < settings.authority:
            return _reject("您没有使用举报功能的权限。")

        exempt = session.reporter_authority >= settings.min_authority_no_limit
        if not exempt:
            blocked, remaining = self.cooldowns.is_blocked(session.reporter_id, guild_id, now)
            if blocked:
                logger.debug("[REPORT] Reporter %s is on cooldown for %d more minutes", session.reporter_id, remaining)
                return ReportOutcome(
                    state=ReportState.BLOCKED,
                    reply=f"您由于举报不当已被暂时限制使用举报功能，请在{remaining}分钟后再试。",
                )

        if quoted_message_id is None:
            return _reject("请回复需要举报的消息。")
        message_id = MessageID(quoted_message_id)

        cached = self.deduplicator.lookup(guild_id, message_id, now)
        if cached is not None:
            return ReportOutcome(
                state=ReportState.CACHED_RESULT,
                reply=f"该消息已被举报过，处理结果: {cached}",
                summary=cached,
            )
        if not self.deduplicator.claim(guild_id, message_id):
            return _reject("该消息正在处理中，请稍后再试。")

        try:
            return await self._adjudicate(session, message_id, verbose, exempt, now)
        finally:
            self.deduplicator.release(guild_id, message_id)

    async def _adjudicate(
        self,
        session: ReportSession,
        message_id: MessageID,
        verbose: bool,
        exempt: bool,
        now: float,
    ) -> ReportOutcome:
        settings = self.settings_manager.settings
        guild_id = session.guild_id

        reported = await self.message_source.fetch_message(guild_id, session.channel_id, message_id)
        if reported is None or not reported.content:
            return _reject("无法获取被举报的消息内容。")

        rejection = self._validate_target(session, reported, exempt, now)
        if rejection is not None:
            return rejection

        prompt = self._build_prompt(guild_id, reported.content)

        try:
            raw_response = await self.classifier.classify(prompt)
            assessment = parse_assessment(raw_response)
        except ResponseParseError as exc:
            logger.warning("[REPORT] Could not parse classifier response for message %s: %s", message_id, exc)
            self._penalise_failure(session, exempt, self.clock(), "AI判断结果格式错误")
            return ReportOutcome(state=ReportState.PARSE_FAILED, reply=PARSE_FAILURE_REPLY)
        except Exception as exc:
            logger.error("[REPORT] Classification failed for message %s: %s", message_id, exc)
            self._penalise_failure(session, exempt, self.clock(), f"举报处理出错: {exc}")
            return ReportOutcome(state=ReportState.PARSE_FAILED, reply=f"举报处理失败：{exc}")

        # Cooldowns and the dedup record start when classification finishes.
        now = self.clock()
        target_id = reported.author_id
        label = assessment.level.label
        result_text = f"已处理({label}违规)" if assessment.is_violation else "未违规"
        self.deduplicator.record(guild_id, message_id, result_text, now)

        enforcement = await self.executor.execute(
            assessment,
            session,
            target_id,
            auto_process=self.settings_manager.auto_process_for(guild_id),
            verbose=verbose,
            content=reported.content,
        )

        summary = enforcement.summary
        penalty_text = self._apply_reporter_penalty(session, assessment, exempt, now)
        if penalty_text:
            summary += penalty_text

        self.audit.record(
            guild_id, session.reporter_id, "report", target_id,
            f"举报消息 {message_id}：{label}违规，内容: {shorten(reported.content)}",
        )
        logger.info(
            "[REPORT] Reporter %s reported message %s by %s in guild %s: level %d, %d actions",
            session.reporter_id, message_id, target_id, guild_id, assessment.level, len(enforcement.outcomes),
        )
        return ReportOutcome(
            state=ReportState.DONE,
            reply=summary,
            summary=result_text,
            assessment=assessment,
            enforcement=enforcement,
        )

    def _validate_target(
        self,
        session: ReportSession,
        reported: ReportedMessage,
        exempt: bool,
        now: float,
    ) -> ReportOutcome | None:
        if reported.author_id is None:
            return _reject("无法确定被举报消息的发送者。")
        if reported.author_id == session.reporter_id:
            return _reject("不能举报自己的消息")
        if self.bot_id is not None and reported.author_id == self.bot_id:
            return _reject("不能举报本机器人的消息")

        max_minutes = self.settings_manager.settings.max_report_time_minutes
        if not exempt and reported.timestamp is not None and now - reported.timestamp > max_minutes * 60:
            return _reject(f"只能举报{max_minutes}分钟内的消息，此消息已超时。")
        return None

    def _build_prompt(self, guild_id: GuildID, content: str) -> str:
        settings = self.settings_manager.settings
        builder = PromptBuilder(settings.default_prompt_template, settings.context_prompt_template)

        config = self.settings_manager.guild_config(guild_id)
        if config is not None and config.include_context:
            context = self.context_window.snapshot(guild_id, config.context_size)
            if context:
                return builder.build(content, context)
        return builder.build(content)

    def _penalise_failure(self, session: ReportSession, exempt: bool, now: float, reason: str) -> None:
        if exempt:
            return
        duration = self.settings_manager.settings.max_report_cooldown_minutes
        self.cooldowns.block(session.reporter_id, session.guild_id, duration, reason, now)
        self.audit.record(
            session.guild_id, session.reporter_id, "report-banned", session.reporter_id,
            f"{reason}，限制举报{duration}分钟",
        )

    def _apply_reporter_penalty(
        self,
        session: ReportSession,
        assessment: ViolationAssessment,
        exempt: bool,
        now: float,
    ) -> str:
        """Apply a classifier-requested cooldown to the reporter and return the reply suffix."""
        penalty = assessment.reporter_penalty
        if penalty is None or not penalty.should_limit or exempt:
            return ""

        duration = penalty.duration_minutes or DEFAULT_PENALTY_MINUTES
        reason = penalty.reason or DEFAULT_PENALTY_REASON
        self.cooldowns.block(session.reporter_id, session.guild_id, duration, reason, now)
        self.audit.record(
            session.guild_id, session.reporter_id, "report-banned", session.reporter_id,
            f"{reason}，限制举报{duration}分钟",
        )
        return f"\nAI判断理由：{assessment.reason}\n您因{reason}，已被暂时限制举报功能{duration}分钟。"


def build_session(
    guild_id: GuildID,
    channel_id: ChannelID,
    reporter_id: UserID,
    reporter_authority: int,
    invoking_message_id: MessageID | None = None,
) -> ReportSession:
    """Convenience constructor that normalises raw ids into snowflake wrappers."""
    return ReportSession(
        guild_id=GuildID(guild_id),
        channel_id=ChannelID(channel_id),
        reporter_id=UserID(reporter_id),
        reporter_authority=reporter_authority,
        invoking_message_id=MessageID(invoking_message_id) if invoking_message_id is not None else None,
    )
