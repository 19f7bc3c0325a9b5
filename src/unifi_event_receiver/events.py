"""
Classifies raw Lambda invocation payloads by their structure.

One function serves the webhook/query API, the delay-queue consumer and a
scheduled keep-warm rule, so every invocation is first tagged with its
source and wrapped in the matching powertools event class.
"""

import enum
from dataclasses import dataclass
from typing import Any

from aws_lambda_powertools.utilities.data_classes import (
    APIGatewayProxyEvent,
    EventBridgeEvent,
    SQSEvent,
)
from aws_lambda_powertools.utilities.data_classes.common import DictWrapper

from .exceptions import UnsupportedEventError


class EventKind(enum.Enum):
    SCHEDULED_PING = "ScheduledPing"
    QUEUE_BATCH = "QueueBatch"
    HTTP_REQUEST = "HttpRequest"


@dataclass(frozen=True, slots=True)
class ClassifiedEvent:
    kind: EventKind
    event: DictWrapper


def _is_queue_batch(raw: dict[str, Any]) -> bool:
    records = raw.get("Records")
    if not isinstance(records, list) or not records:
        return False
    return all(
        isinstance(record, dict) and record.get("eventSource") == "aws:sqs"
        for record in records
    )


def classify_event(raw: Any) -> ClassifiedEvent:
    """
    Raises:
        UnsupportedEventError: the payload matches no known source.
    """
    if not isinstance(raw, dict):
        raise UnsupportedEventError([])

    if raw.get("source") == "aws.events":
        return ClassifiedEvent(EventKind.SCHEDULED_PING, EventBridgeEvent(raw))
    if _is_queue_batch(raw):
        return ClassifiedEvent(EventKind.QUEUE_BATCH, SQSEvent(raw))
    if "httpMethod" in raw and "path" in raw:
        return ClassifiedEvent(EventKind.HTTP_REQUEST, APIGatewayProxyEvent(raw))

    raise UnsupportedEventError(sorted(raw))
