# src/unifi_event_receiver/finders.py

"""
Query-side lookups over the day-partitioned bucket.

Objects are only ever listed one day folder at a time, walking backwards
from today, so a lookup costs O(days since the event) listings instead of a
scan of the whole bucket.
"""

import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

from .clients import S3Client
from .exceptions import NotFoundError, StorageError, VideoNotAvailableError
from .keys import (
    METADATA_EXTENSION,
    VIDEO_EXTENSION,
    day_folder_for_date,
    event_prefix,
    extract_timestamp,
    file_name,
    format_display_date,
    metadata_key_for,
    video_key_for,
)
from .security import validate_key_component

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class VideoLookup:
    """A located video together with its signed download URL."""

    video_key: str
    metadata_key: str
    timestamp: int
    download_url: str
    filename: str
    expires_at: datetime
    event_data: dict[str, Any] | None = None
    # The metadata object exactly as stored, for callers that need the raw bytes.
    metadata_json: str | None = None


class _DayFolderSearch:
    def __init__(
        self,
        store: S3Client,
        horizon_days: int,
        url_ttl_seconds: int = 3600,
        tz: tzinfo | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._horizon_days = horizon_days
        self._url_ttl_seconds = url_ttl_seconds
        self._tz = tz
        self._now = now

    def day_folders(self) -> Iterator[str]:
        """Yields day folders from today backwards, `horizon_days` in total."""
        today = self._now().astimezone(self._tz).date()
        for offset in range(self._horizon_days):
            yield day_folder_for_date(today - timedelta(days=offset))

    def _read_metadata(self, metadata_key: str) -> tuple[str, dict[str, Any]] | None:
        try:
            raw = self._store.get_text(metadata_key)
        except StorageError as e:
            logger.warning(
                "Could not read event metadata",
                extra={"metadata_key": metadata_key, "error": e.to_dict()},
            )
            return None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Event metadata is not valid JSON", extra={"metadata_key": metadata_key})
            return raw, {}
        return raw, parsed if isinstance(parsed, dict) else {}

    def _sign(
        self,
        video_key: str,
        metadata_key: str,
        timestamp: int,
        metadata: tuple[str, dict[str, Any]] | None,
    ) -> VideoLookup:
        raw, event_data = metadata if metadata else (None, None)
        filename = _original_file_name(event_data) or file_name(video_key)
        url = self._store.generate_presigned_url(
            video_key, self._url_ttl_seconds, download_filename=filename
        )
        return VideoLookup(
            video_key=video_key,
            metadata_key=metadata_key,
            timestamp=timestamp,
            download_url=url,
            filename=filename,
            expires_at=self._now() + timedelta(seconds=self._url_ttl_seconds),
            event_data=event_data,
            metadata_json=raw,
        )


def _original_file_name(event_data: dict[str, Any] | None) -> str | None:
    if not event_data:
        return None
    triggers = event_data.get("triggers")
    if not isinstance(triggers, list) or not triggers or not isinstance(triggers[0], dict):
        return None
    name = triggers[0].get("originalFileName")
    return name if isinstance(name, str) and name else None


class LatestVideoFinder(_DayFolderSearch):
    """Finds the most recent stored video."""

    def find_latest(self) -> VideoLookup:
        """
        Returns the newest video of the most recent day folder that has one.

        Raises:
            NotFoundError: no video within the search horizon.
        """
        for folder in self.day_folders():
            latest_key, latest_ts = None, -1
            for key in self._store.list_keys(f"{folder}/"):
                if not key.endswith(VIDEO_EXTENSION):
                    continue
                ts = extract_timestamp(key)
                if ts is not None and ts > latest_ts:
                    latest_key, latest_ts = key, ts

            if latest_key is not None:
                logger.info(
                    "Latest video found",
                    extra={"video_key": latest_key, "day_folder": folder},
                )
                metadata_key = metadata_key_for(latest_key)
                # The video alone is still a useful answer.
                metadata = self._read_metadata(metadata_key)
                return self._sign(latest_key, metadata_key, latest_ts, metadata)

        raise NotFoundError(f"No videos found in the last {self._horizon_days} days")


class EventVideoFinder(_DayFolderSearch):
    """Finds the video belonging to one event id."""

    def find_by_event_id(self, event_id: str) -> VideoLookup:
        """
        Raises:
            UnsafeKeyComponentError: `event_id` cannot appear in a key.
            NotFoundError: no metadata for the event within the horizon.
            VideoNotAvailableError: the metadata exists but its video does not.
        """
        validate_key_component("eventId", event_id)

        for folder in self.day_folders():
            metadata_key = next(
                (
                    key
                    for key in self._store.list_keys(event_prefix(folder, event_id))
                    if key.endswith(METADATA_EXTENSION)
                ),
                None,
            )
            if metadata_key is None:
                continue

            video_key = video_key_for(metadata_key)
            if not self._store.object_exists(video_key):
                raise VideoNotAvailableError(event_id, video_key)

            metadata = self._read_metadata(metadata_key)
            timestamp = extract_timestamp(metadata_key)
            if timestamp is None and metadata:
                timestamp = int(metadata[1].get("timestamp") or 0)
            logger.info(
                "Event video found",
                extra={"event_id": event_id, "video_key": video_key, "day_folder": folder},
            )
            return self._sign(video_key, metadata_key, timestamp or 0, metadata)

        raise NotFoundError(
            f"No event found for eventId {event_id} in the last {self._horizon_days} days"
        )


def lookup_response(
    lookup: VideoLookup, event_id: str | None = None, tz: tzinfo | None = None
) -> dict[str, Any]:
    """JSON body returned by the query routes."""
    body: dict[str, Any] = {
        "downloadUrl": lookup.download_url,
        "filename": lookup.filename,
        "videoKey": lookup.video_key,
        "eventKey": lookup.metadata_key,
    }
    if event_id is not None:
        body["eventId"] = event_id
    expires_at = lookup.expires_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    body.update(
        {
            "timestamp": lookup.timestamp,
            "eventDate": format_display_date(lookup.timestamp, tz),
            "expiresAt": expires_at,
            "eventData": lookup.event_data,
            "message": "Use the downloadUrl to download the video file directly. "
            f"URL expires at {expires_at}.",
        }
    )
    return body
