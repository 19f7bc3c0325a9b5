# src/unifi_event_receiver/processor.py

"""
Second phase of alarm handling: runs when the delay queue releases an alarm.

Every write goes to a key derived from the alarm's own identifiers, so
processing the same message twice leaves the store exactly as processing it
once. Failures that may heal on their own (credentials, the console, S3) are
raised so the queue redelivers the message and eventually dead-letters it.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import tzinfo

from .acquisition import VideoAcquirer
from .clients import VIDEO_CONTENT_TYPE, S3Client
from .credentials import CredentialsProvider
from .devices import DeviceRegistry
from .exceptions import AcquisitionAuthError, ConfigurationError, StorageError
from .keys import StorageKeyPair, derive_keys, file_name, format_event_date, thumbnail_key
from .schemas import AlarmRecord
from .summary import SummaryPublisher

logger = logging.getLogger(__name__)

THUMBNAIL_CONTENT_TYPE = "image/jpeg"


@dataclass(slots=True)
class ProcessingResult:
    keys: StorageKeyPair
    video_stored: bool = False
    thumbnail_stored: bool = False
    summary_published: bool = False


def decode_thumbnail(thumbnail: str) -> bytes:
    """Decodes a base64 thumbnail, with or without a ``data:`` URL header."""
    if thumbnail.startswith("data:"):
        _, _, thumbnail = thumbnail.partition(",")
    return base64.b64decode(thumbnail, validate=True)


class AlarmProcessor:
    def __init__(
        self,
        store: S3Client,
        credentials: CredentialsProvider,
        devices: DeviceRegistry,
        acquirer: VideoAcquirer | None = None,
        summary: SummaryPublisher | None = None,
        download_timeout_seconds: float = 100,
        tz: tzinfo | None = None,
    ):
        self._store = store
        self._credentials = credentials
        self._devices = devices
        self._acquirer = acquirer
        self._summary = summary
        self._download_timeout_seconds = download_timeout_seconds
        self._tz = tz

    def enrich(self, alarm: AlarmRecord, keys: StorageKeyPair) -> None:
        """Fills in the trigger fields derived during processing."""
        trigger = alarm.primary_trigger
        trigger.date = format_event_date(alarm.timestamp, self._tz)
        trigger.device_name = self._devices.device_name(trigger.device)
        trigger.event_key = file_name(keys.metadata_key)
        trigger.video_key = keys.video_key

    def process(self, alarm: AlarmRecord) -> ProcessingResult:
        """
        Stores the alarm record and, when the alarm points at a clip, the video.

        Raises:
            CredentialsError: the console credentials could not be loaded.
            AcquisitionError: the clip could not be downloaded.
            StorageError: an object could not be written.
            ConfigurationError: a clip is referenced but no acquirer is configured.
        """
        trigger = alarm.primary_trigger
        credentials = self._credentials.get()

        keys = derive_keys(trigger.event_id, trigger.device, alarm.timestamp, self._tz)
        self.enrich(alarm, keys)
        if alarm.event_path:
            alarm.event_local_link = credentials.base_url + alarm.event_path

        log_extra = {"event_id": trigger.event_id, "device": trigger.device, "metadata_key": keys.metadata_key}
        self._store.put_json(keys.metadata_key, alarm.to_json())
        logger.info("Alarm metadata stored", extra=log_extra)

        result = ProcessingResult(keys=keys)
        if trigger.thumbnail:
            result.thumbnail_stored = self._store_thumbnail(alarm)

        if alarm.event_path:
            self._store_video(alarm, keys, credentials)
            result.video_stored = True
        else:
            logger.info("Alarm has no event path; skipping video download", extra=log_extra)

        if self._summary is not None:
            result.summary_published = self._summary.publish(alarm, keys, result.video_stored)

        return result

    def _store_video(self, alarm: AlarmRecord, keys: StorageKeyPair, credentials) -> None:
        trigger = alarm.primary_trigger
        if self._acquirer is None:
            raise ConfigurationError(
                "Alarm references a clip but VIDEO_ACQUIRER_FACTORY is not configured"
            )

        try:
            video = self._acquirer.fetch(
                alarm.event_local_link, credentials, self._download_timeout_seconds
            )
        except AcquisitionAuthError:
            # The secret may have rotated; the redelivered message refetches it.
            self._credentials.invalidate()
            raise

        self._store.put_bytes(keys.video_key, video.data, VIDEO_CONTENT_TYPE)
        logger.info(
            "Video stored",
            extra={"event_id": trigger.event_id, "video_key": keys.video_key, "size": len(video.data)},
        )

        trigger.original_file_name = video.filename
        self._store.put_json(keys.metadata_key, alarm.to_json())

    def _store_thumbnail(self, alarm: AlarmRecord) -> bool:
        trigger = alarm.primary_trigger
        key = thumbnail_key(trigger.event_id, trigger.device, alarm.timestamp, self._tz)
        try:
            self._store.put_bytes(key, decode_thumbnail(trigger.thumbnail or ""), THUMBNAIL_CONTENT_TYPE)
        except (binascii.Error, ValueError) as e:
            logger.warning(
                "Thumbnail is not valid base64; skipping",
                extra={"event_id": trigger.event_id, "error": str(e)},
            )
            return False
        except StorageError as e:
            logger.warning(
                "Failed to store thumbnail",
                extra={"event_id": trigger.event_id, "thumbnail_key": key, "error": e.to_dict()},
            )
            return False
        return True
