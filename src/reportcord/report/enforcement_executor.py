"""
Maps a classifier assessment onto enforcement commands.

Each action is dispatched on its own: a failing action is recorded and the
remaining ones still run. Dispatch happens under an elevated authorization
context so the enforcement commands are not refused because of the
*reporter's* own permission tier.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from reportcord.datatypes.discord_datatypes import GuildID, UserID
from reportcord.datatypes.report_datatypes import (
    ActionOutcome,
    EnforcementResult,
    ExpelAction,
    ExpelAndBanAction,
    MuteAction,
    ViolationAction,
    ViolationAssessment,
    ViolationLevel,
    WarnAction,
)
from reportcord.report.audit_logger import AuditLogger
from reportcord.report.errors import DispatchError
from reportcord.report.interfaces import ActionDispatcher, AuthorizationContext, ReportSession, elevated
from reportcord.util.logger import get_logger

logger = get_logger("enforcement_executor")

SHORT_CONTENT_LENGTH = 30


def format_mute_duration(seconds: int) -> str:
    """Convert seconds into the coarse duration string the mute command accepts."""
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


def to_dispatch_call(
    action: ViolationAction,
    target_id: UserID,
    guild_id: GuildID,
) -> Tuple[str, List[str], Dict[str, Any]]:
    """Translate a violation action into ``(action_name, args, options)`` for the dispatcher."""
    target = str(target_id)
    options: Dict[str, Any] = {"guild_id": str(guild_id)}
    if isinstance(action, MuteAction):
        return "mute", [target, format_mute_duration(action.seconds)], options
    if isinstance(action, WarnAction):
        return "warn", [target, str(action.count)], options
    if isinstance(action, ExpelAction):
        return "kick", [target], {**options, "blacklist": False}
    if isinstance(action, ExpelAndBanAction):
        return "kick", [target], {**options, "blacklist": True}
    raise TypeError(f"Unsupported violation action: {action!r}")


def collapse_critical(assessment: ViolationAssessment) -> Tuple[ViolationAction, ...]:
    """
    Return the action list to execute.

    A level-4 assessment that includes an expel-and-ban entry runs only that
    entry; lesser penalties are pointless once the member is banned.
    """
    if assessment.level == ViolationLevel.CRITICAL:
        bans = [action for action in assessment.actions if isinstance(action, ExpelAndBanAction)]
        if bans:
            return (bans[0],)
    return assessment.actions


def shorten(content: str, limit: int = SHORT_CONTENT_LENGTH) -> str:
    return content if len(content) <= limit else content[:limit] + "..."


class EnforcementExecutor:
    """
    Dispatches an assessment's actions against the reported member.

    Args:
        dispatcher: Executes the concrete mute/warn/kick commands.
        audit_logger: Receives handling and failure entries plus notifications.
    """

    def __init__(self, dispatcher: ActionDispatcher, audit_logger: AuditLogger) -> None:
        self._dispatcher = dispatcher
        self._audit = audit_logger

    async def execute(
        self,
        assessment: ViolationAssessment,
        session: ReportSession,
        target_id: UserID,
        *,
        auto_process: bool,
        verbose: bool = True,
        content: str = "",
    ) -> EnforcementResult:
        """
        Apply an assessment and describe what happened.

        Args:
            assessment: Decoded classifier verdict.
            session: The report invocation (guild, reporter, authority).
            target_id: Author of the reported message.
            auto_process: Whether the guild allows automatic enforcement.
            verbose: Include the classifier's reason in the summary.
            content: Reported text, used in audit entries.

        Returns:
            Summary text plus the per-action outcomes.
        """
        label = assessment.level.label

        if assessment.level == ViolationLevel.NONE:
            summary = (
                f"AI判断结果：该消息未违规\n理由：{assessment.reason}"
                if verbose
                else "该消息未被判定为违规内容。"
            )
            return EnforcementResult(summary=summary)

        if not auto_process:
            summary = (
                f"AI判断结果：{label}违规\n理由：{assessment.reason}\n操作：自动处理功能已禁用，请管理员手动处理"
                if verbose
                else f"该消息被判定为{label}违规，请管理员手动处理。"
            )
            self._audit.record(session.guild_id, session.reporter_id, "report-no-action", target_id, f"{label}违规，管理员待处理")
            return EnforcementResult(summary=summary)

        actions = collapse_critical(assessment)
        if len(actions) != len(assessment.actions):
            logger.info(
                "[ENFORCE] Collapsed %d level-4 actions to a single expel-and-ban for %s",
                len(assessment.actions), target_id,
            )

        outcomes: List[ActionOutcome] = []
        with elevated(session.authorization()) as authorization:
            for action in actions:
                outcomes.append(await self._dispatch(action, target_id, session.guild_id, authorization))

        result = EnforcementResult(summary="", outcomes=outcomes)
        if not outcomes:
            result.summary = (
                f"AI判断结果：{label}违规\n理由：{assessment.reason}\n操作：无需处理"
                if verbose
                else f"该消息被判定为{label}违规，无需处理。"
            )
        elif result.all_failed:
            errors = "；".join(o.error or "未知错误" for o in outcomes)
            result.summary = f"AI已判定该消息{label}违规，但自动处理失败：{errors}\n请联系管理员手动处理。"
            await self._report_failure(session, target_id, label, errors)
            return result
        else:
            action_text = "、".join(outcome.describe() for outcome in outcomes)
            result.summary = (
                f"AI判断结果：{label}违规\n理由：{assessment.reason}\n操作：{action_text}"
                if verbose
                else f"已对用户 {target_id} 执行：{action_text}，{label}违规。"
            )

        await self._report_handled(session, target_id, label, outcomes, content)
        return result

    async def _dispatch(
        self,
        action: ViolationAction,
        target_id: UserID,
        guild_id: GuildID,
        authorization: AuthorizationContext,
    ) -> ActionOutcome:
        action_name, args, options = to_dispatch_call(action, target_id, guild_id)
        try:
            result = await self._dispatcher.execute(action_name, args, options, authorization)
            if not result:
                raise DispatchError(f"{action_name} returned no result")
            logger.debug("[ENFORCE] %s %s -> %r", action_name, args, result)
            return ActionOutcome(action=action, succeeded=True)
        except Exception as exc:
            logger.error("[ENFORCE] Action %s failed for %s: %s", action.kind, target_id, exc)
            return ActionOutcome(action=action, succeeded=False, error=str(exc) or type(exc).__name__)

    async def _report_handled(
        self,
        session: ReportSession,
        target_id: UserID,
        label: str,
        outcomes: List[ActionOutcome],
        content: str,
    ) -> None:
        action_text = "、".join(o.describe() for o in outcomes) if outcomes else "无操作"
        short_content = shorten(content)
        self._audit.record(
            session.guild_id, session.reporter_id, "report-handle", target_id,
            f"{label}违规，处理: {action_text}，内容: {short_content}",
        )
        await self._audit.notify(
            f"[举报] 群{session.guild_id} 用户 {target_id} - {label}违规\n内容: {short_content}\n处理: {action_text}",
            "warning",
        )

    async def _report_failure(self, session: ReportSession, target_id: UserID, label: str, errors: str) -> None:
        logger.error("[ENFORCE] All actions failed for %s in guild %s: %s", target_id, session.guild_id, errors)
        self._audit.record(
            session.guild_id, session.reporter_id, "report-error", target_id,
            f"{label}违规处理失败: {errors[:50]}",
        )
        await self._audit.notify(
            f"[举报失败] 用户 {target_id} - {label}违规\n错误: {errors[:50]}",
            "warning",
        )
