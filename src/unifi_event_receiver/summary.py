import logging

from .clients import S3Client, SqsClient
from .exceptions import QueueError, StorageError
from .keys import StorageKeyPair
from .schemas import AlarmRecord, SummaryEvent

logger = logging.getLogger(__name__)


class SummaryPublisher:
    """
    Hands processed alarms to the downstream summary consumer.

    Publishing is best effort: the alarm is already stored when this runs,
    so a failure here is logged and never causes the alarm to be reprocessed.
    """

    def __init__(
        self,
        sqs: SqsClient,
        store: S3Client,
        queue_url: str,
        presigned_url_seconds: int,
    ):
        self._sqs = sqs
        self._store = store
        self._queue_url = queue_url
        self._presigned_url_seconds = presigned_url_seconds

    def build(self, alarm: AlarmRecord, keys: StorageKeyPair, video_stored: bool) -> SummaryEvent:
        trigger = alarm.primary_trigger

        presigned_url = None
        if video_stored:
            try:
                presigned_url = self._store.generate_presigned_url(
                    keys.video_key,
                    self._presigned_url_seconds,
                    download_filename=trigger.original_file_name,
                )
            except StorageError as e:
                logger.warning(
                    "Could not sign video URL for summary event",
                    extra={"video_key": keys.video_key, "error": e.to_dict()},
                )

        metadata: dict[str, str] = {}
        if trigger.thumbnail:
            metadata["thumbnail"] = trigger.thumbnail
        if trigger.original_file_name:
            metadata["originalFileName"] = trigger.original_file_name

        return SummaryEvent(
            event_id=trigger.event_id,
            device=trigger.device,
            timestamp=alarm.timestamp,
            alarm_s3_key=keys.metadata_key,
            video_s3_key=keys.video_key if video_stored else None,
            presigned_video_url=presigned_url,
            alarm_name=alarm.name,
            device_name=trigger.device_name,
            event_type=trigger.key,
            event_path=alarm.event_path,
            event_local_link=alarm.event_local_link,
            metadata=metadata,
        )

    def publish(self, alarm: AlarmRecord, keys: StorageKeyPair, video_stored: bool) -> bool:
        """Returns True when the summary event was sent."""
        event = self.build(alarm, keys, video_stored)
        try:
            self._sqs.send_message(self._queue_url, event.model_dump_json(by_alias=True))
        except QueueError as e:
            logger.warning(
                "Failed to publish summary event",
                extra={"event_id": event.event_id, "error": e.to_dict()},
            )
            return False

        logger.info("Summary event published", extra={"event_id": event.event_id})
        return True
