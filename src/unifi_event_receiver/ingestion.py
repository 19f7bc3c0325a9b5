import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from .clients import SqsClient
from .schemas import AlarmRecord, IngestAck, MessageAttributeDict

logger = logging.getLogger(__name__)

QUEUED_MESSAGE = "Alarm event has been queued for processing"


def message_attributes(alarm: AlarmRecord) -> dict[str, MessageAttributeDict]:
    """Attributes that let an operator triage a dead-lettered message without parsing it."""
    trigger = alarm.primary_trigger
    return {
        "EventId": {"DataType": "String", "StringValue": trigger.event_id},
        "Device": {"DataType": "String", "StringValue": trigger.device},
        "Timestamp": {"DataType": "Number", "StringValue": str(alarm.timestamp)},
    }


class AlarmIngestionService:
    """
    Queues validated alarms for delayed processing.

    Video clips are not available from the console for a while after the
    alarm fires, so the webhook is acknowledged as soon as the alarm is on
    the delay queue.
    """

    def __init__(
        self,
        sqs: SqsClient,
        queue_url: str,
        delay_seconds: int,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._sqs = sqs
        self._queue_url = queue_url
        self._delay_seconds = delay_seconds
        self._clock = clock

    def ingest(self, alarm: AlarmRecord) -> IngestAck:
        """
        Enqueues `alarm` with the configured delay.

        Raises:
            QueueError: the message could not be sent.
        """
        trigger = alarm.primary_trigger
        message_id = self._sqs.send_message(
            self._queue_url,
            alarm.to_json(),
            delay_seconds=self._delay_seconds,
            attributes=message_attributes(alarm),
        )

        eta = self._clock() + timedelta(seconds=self._delay_seconds)
        logger.info(
            "Alarm queued for delayed processing",
            extra={
                "event_id": trigger.event_id,
                "device": trigger.device,
                "message_id": message_id,
                "delay_seconds": self._delay_seconds,
            },
        )
        return {
            "msg": QUEUED_MESSAGE,
            "eventId": trigger.event_id,
            "device": trigger.device,
            "processingDelay": self._delay_seconds,
            "messageId": message_id,
            "estimatedProcessingTime": eta.astimezone(timezone.utc).strftime(
                "%Y-%m-%d %H:%M:%S UTC"
            ),
        }
