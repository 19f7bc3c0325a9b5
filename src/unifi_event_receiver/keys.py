"""
Deterministic object key scheme for alarm artifacts.

Every artifact of one alarm shares a stem, ``{eventId}_{device}_{timestamp}``,
inside a day folder ``YYYY-MM-DD``:

    2023-11-14/evt1_AA:BB_1700000000000.json   metadata
    2023-11-14/evt1_AA:BB_1700000000000.mp4    video
    2023-11-14/evt1_AA:BB_1700000000000.jpg    thumbnail

The day folder is computed in one configured timezone (``None`` meaning the
server's local time). All functions here are pure.
"""

from datetime import date, datetime, tzinfo
from typing import NamedTuple

METADATA_EXTENSION = ".json"
VIDEO_EXTENSION = ".mp4"
THUMBNAIL_EXTENSION = ".jpg"

DAY_FOLDER_FORMAT = "%Y-%m-%d"


class StorageKeyPair(NamedTuple):
    metadata_key: str
    video_key: str


def event_datetime(timestamp_ms: int, tz: tzinfo | None = None) -> datetime:
    """Converts epoch milliseconds to a datetime in the configured zone."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz)


def day_folder_for_date(day: date) -> str:
    return day.strftime(DAY_FOLDER_FORMAT)


def day_folder(timestamp_ms: int, tz: tzinfo | None = None) -> str:
    return day_folder_for_date(event_datetime(timestamp_ms, tz).date())


def key_stem(event_id: str, device: str, timestamp_ms: int) -> str:
    return f"{event_id}_{device}_{timestamp_ms}"


def derive_keys(
    event_id: str, device: str, timestamp_ms: int, tz: tzinfo | None = None
) -> StorageKeyPair:
    """Maps an event's immutable attributes to its metadata and video keys."""
    prefix = f"{day_folder(timestamp_ms, tz)}/{key_stem(event_id, device, timestamp_ms)}"
    return StorageKeyPair(
        metadata_key=prefix + METADATA_EXTENSION,
        video_key=prefix + VIDEO_EXTENSION,
    )


def thumbnail_key(
    event_id: str, device: str, timestamp_ms: int, tz: tzinfo | None = None
) -> str:
    stem = key_stem(event_id, device, timestamp_ms)
    return f"{day_folder(timestamp_ms, tz)}/{stem}{THUMBNAIL_EXTENSION}"


def event_prefix(folder: str, event_id: str) -> str:
    """Listing prefix matching every artifact of one event within a day folder."""
    return f"{folder}/{event_id}_"


def video_key_for(metadata_key: str) -> str:
    return _swap_extension(metadata_key, METADATA_EXTENSION, VIDEO_EXTENSION)


def metadata_key_for(video_key: str) -> str:
    return _swap_extension(video_key, VIDEO_EXTENSION, METADATA_EXTENSION)


def _swap_extension(key: str, old: str, new: str) -> str:
    if not key.endswith(old):
        raise ValueError(f"Key '{key}' does not end with '{old}'")
    return key[: -len(old)] + new


def extract_timestamp(key: str) -> int | None:
    """
    Returns the epoch-millisecond suffix of a key's file name, or None when the
    name does not follow the scheme. Device identifiers may themselves contain
    underscores, so the timestamp is taken after the last one.
    """
    file_name = key.rsplit("/", 1)[-1]
    stem, dot, _ = file_name.rpartition(".")
    if not dot:
        return None
    _, underscore, suffix = stem.rpartition("_")
    if not underscore or not suffix.isdigit():
        return None
    return int(suffix)


def file_name(key: str) -> str:
    return key.rsplit("/", 1)[-1]


def format_event_date(timestamp_ms: int, tz: tzinfo | None = None) -> str:
    """ISO-8601 local date-time without offset, as stored on the trigger."""
    return event_datetime(timestamp_ms, tz).strftime("%Y-%m-%dT%H:%M:%S")


def format_display_date(timestamp_ms: int, tz: tzinfo | None = None) -> str:
    return event_datetime(timestamp_ms, tz).strftime("%Y-%m-%d %H:%M:%S")
