"""Decoding and validation of the classifier's raw response text."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

import jsonschema
from jsonschema import ValidationError

from reportcord.datatypes.report_datatypes import (
    ExpelAction,
    ExpelAndBanAction,
    MuteAction,
    ReporterPenalty,
    ViolationAction,
    ViolationAssessment,
    ViolationLevel,
    WarnAction,
)
from reportcord.report.errors import ResponseParseError
from reportcord.util.logger import get_logger

logger = get_logger("response_parser")

_EMBEDDED_OBJECT = re.compile(r"\{[\s\S]*\}")

ASSESSMENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "level": {"type": "integer", "minimum": 0, "maximum": 4},
        "reason": {"type": "string"},
        "actions": {"type": "array"},
        "reporterPenalty": {
            "type": ["object", "null"],
            "properties": {
                "shouldLimit": {"type": "boolean"},
                "durationMinutes": {"type": ["number", "null"]},
                "reason": {"type": ["string", "null"]},
            },
        },
    },
    "required": ["level", "reason", "actions"],
}


def _extract_json_payload(raw: str) -> Any:
    """
    Extract the JSON object from the classifier's text.

    The whole trimmed response is tried first; otherwise the span from the
    first ``{`` to the last ``}`` is decoded.
    """
    text = raw.strip()
    if text.startswith("{") and text.endswith("}"):
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            logger.debug("[PARSE] Whole response is not valid JSON (%s), trying embedded match", exc)

    match = _EMBEDDED_OBJECT.search(text)
    if match is None:
        raise ResponseParseError("No JSON object found in classifier response", raw)

    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Embedded JSON object is invalid: {exc}", raw) from exc


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_action(item: Any) -> ViolationAction | None:
    """
    Convert one raw action entry into a :data:`ViolationAction`.

    Returns None for unknown action types and for known types whose
    parameters are missing or not positive.
    """
    if not isinstance(item, dict):
        logger.warning("[PARSE] Skipping non-object action entry: %r", item)
        return None

    action_type = str(item.get("type", "")).strip().lower()

    if action_type == "mute":
        seconds = _positive_int(item.get("seconds", item.get("time")))
        if seconds is None:
            logger.warning("[PARSE] Skipping mute action without a positive duration: %r", item)
            return None
        return MuteAction(seconds=seconds)

    if action_type == "warn":
        count = _positive_int(item.get("count"))
        if count is None:
            logger.warning("[PARSE] Skipping warn action without a positive count: %r", item)
            return None
        return WarnAction(count=count)

    if action_type == "expel":
        return ExpelAction()

    if action_type == "expel_and_ban":
        return ExpelAndBanAction()

    logger.warning("[PARSE] Unknown action type %r, skipping", action_type)
    return None


def _parse_penalty(raw: Any) -> ReporterPenalty | None:
    if not isinstance(raw, dict):
        return None

    should_limit = bool(raw.get("shouldLimit", False))
    duration = _positive_int(raw.get("durationMinutes", raw.get("duration")))
    reason = raw.get("reason")
    return ReporterPenalty(
        should_limit=should_limit,
        duration_minutes=duration if should_limit else None,
        reason=str(reason) if reason else None,
    )


def parse_assessment(raw_text: str) -> ViolationAssessment:
    """
    Decode the classifier's raw response into a :class:`ViolationAssessment`.

    Args:
        raw_text: Text returned by the classifier.

    Returns:
        The decoded assessment.

    Raises:
        ResponseParseError: No JSON object was found, a required field is
            missing, or ``actions`` is not a list.
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise ResponseParseError("Classifier returned an empty response", raw_text or "")

    logger.debug("[PARSE] Parsing classifier response (%d chars)", len(raw_text))
    payload = _extract_json_payload(raw_text)

    if not isinstance(payload, dict):
        raise ResponseParseError(f"Payload is not an object, got {type(payload).__name__}", raw_text)

    # Older prompts used the singular key.
    if "actions" not in payload and "action" in payload:
        payload["actions"] = payload.pop("action")

    try:
        jsonschema.validate(instance=payload, schema=ASSESSMENT_SCHEMA)
    except ValidationError as exc:
        raise ResponseParseError(f"Schema validation failed: {exc.message}", raw_text) from exc

    actions: List[ViolationAction] = []
    for item in payload["actions"]:
        action = parse_action(item)
        if action is not None:
            actions.append(action)

    assessment = ViolationAssessment(
        level=ViolationLevel(int(payload["level"])),
        reason=payload["reason"],
        actions=tuple(actions),
        reporter_penalty=_parse_penalty(payload.get("reporterPenalty")),
    )
    logger.debug(
        "[PARSE] Level %d with %d actions (%d raw entries)",
        assessment.level, len(assessment.actions), len(payload["actions"]),
    )
    return assessment
