"""
Normalises raw webhook payloads into canonical `AlarmRecord`s.

The UniFi webhook posts ``{"alarm": {...}, "timestamp": <epoch ms>}``. The
envelope timestamp is authoritative and overwrites anything inside the
nested alarm object.
"""

import json
import logging
from typing import Any

import pydantic

from .exceptions import InvalidAlarmError, MissingBodyError, MissingTriggersError
from .schemas import AlarmRecord
from .security import validate_key_component

logger = logging.getLogger(__name__)


def _load_body(raw: str | bytes | dict | None) -> dict[str, Any]:
    if raw is None or raw == "" or raw == b"":
        raise MissingBodyError()
    if isinstance(raw, dict):
        return raw
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MissingBodyError(context={"parse_error": str(e)}) from e
    if not isinstance(payload, dict):
        raise MissingBodyError(context={"payload_type": type(payload).__name__})
    return payload


def _coerce_timestamp(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise InvalidAlarmError("timestamp must be epoch milliseconds")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidAlarmError("timestamp must be epoch milliseconds") from e


def validate_alarm(alarm: Any, timestamp: int) -> AlarmRecord:
    """
    Validates an alarm object and stamps it with the envelope timestamp.

    Raises:
        MissingBodyError: `alarm` is not an object.
        MissingTriggersError: `triggers` is absent or empty.
        InvalidAlarmError: the object does not match the alarm shape.
        UnsafeKeyComponentError: the first trigger's identifiers cannot be
            embedded in an object key.
    """
    if not isinstance(alarm, dict):
        raise MissingBodyError()

    triggers = alarm.get("triggers")
    if not triggers:
        raise MissingTriggersError()

    try:
        record = AlarmRecord.model_validate({**alarm, "timestamp": timestamp})
    except pydantic.ValidationError as e:
        logger.warning(
            "Alarm object failed validation.",
            extra={"validation_errors": e.errors(include_url=False, include_input=False)},
        )
        raise InvalidAlarmError(
            context={"errors": e.errors(include_url=False, include_input=False)}
        ) from e

    trigger = record.primary_trigger
    validate_key_component("eventId", trigger.event_id)
    validate_key_component("device", trigger.device)
    return record


def validate_webhook(raw: str | bytes | dict | None) -> AlarmRecord:
    """Parses and validates a webhook body into an `AlarmRecord`."""
    payload = _load_body(raw)
    alarm = payload.get("alarm")
    if alarm is None:
        raise MissingBodyError()
    return validate_alarm(alarm, _coerce_timestamp(payload.get("timestamp")))


def parse_alarm_message(body: str) -> AlarmRecord:
    """Parses a delay-queue message body, which is a serialised `AlarmRecord`."""
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidAlarmError("Queue message body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise InvalidAlarmError("Queue message body is not a JSON object")
    return validate_alarm(payload, _coerce_timestamp(payload.get("timestamp")))
