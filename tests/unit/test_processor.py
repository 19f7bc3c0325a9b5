# tests/unit/test_processor.py

import base64
import json
from datetime import timezone

import pytest

from conftest import FakeAcquirer
from unifi_event_receiver.devices import DeviceRegistry
from unifi_event_receiver.exceptions import (
    AcquisitionAuthError,
    AcquisitionTimeoutError,
    ConfigurationError,
    CredentialsError,
)
from unifi_event_receiver.processor import AlarmProcessor, decode_thumbnail
from unifi_event_receiver.summary import SummaryPublisher
from unifi_event_receiver.validation import validate_webhook

METADATA_KEY = "2023-11-14/evt1_AA:BB_1700000000000.json"
VIDEO_KEY = "2023-11-14/evt1_AA:BB_1700000000000.mp4"
THUMBNAIL_KEY = "2023-11-14/evt1_AA:BB_1700000000000.jpg"
EVENT_PATH = "/protect/events/event/evt1"


@pytest.fixture
def devices() -> DeviceRegistry:
    return DeviceRegistry.from_json(
        json.dumps({"devices": [{"deviceName": "Driveway", "deviceMac": "AA:BB"}]})
    )


@pytest.fixture
def make_processor(store, credentials, devices, acquirer):
    def _make(**overrides) -> AlarmProcessor:
        kwargs = {
            "store": store,
            "credentials": credentials,
            "devices": devices,
            "acquirer": acquirer,
            "download_timeout_seconds": 30,
            "tz": timezone.utc,
        }
        kwargs.update(overrides)
        return AlarmProcessor(**kwargs)

    return _make


def stored_json(store, key) -> dict:
    return json.loads(store.objects[key][0])


def test_alarm_without_event_path_stores_only_metadata(make_processor, store, acquirer, alarm_payload):
    # Arrange
    alarm = validate_webhook(alarm_payload)

    # Act
    result = make_processor().process(alarm)

    # Assert
    assert list(store.objects) == [METADATA_KEY]
    assert result.keys.metadata_key == METADATA_KEY
    assert result.video_stored is False
    assert acquirer.calls == []

    trigger = stored_json(store, METADATA_KEY)["triggers"][0]
    assert trigger["deviceName"] == "Driveway"
    assert trigger["date"] == "2023-11-14T22:13:20"
    assert trigger["eventKey"] == "evt1_AA:BB_1700000000000.json"
    assert trigger["videoKey"] == VIDEO_KEY


def test_alarm_with_event_path_stores_video(make_processor, store, acquirer, alarm_payload):
    # Arrange
    alarm_payload["alarm"]["eventPath"] = EVENT_PATH
    alarm = validate_webhook(alarm_payload)

    # Act
    result = make_processor().process(alarm)

    # Assert
    assert result.video_stored is True
    assert acquirer.calls == [("https://unifi.example.com" + EVENT_PATH, 30)]
    assert store.objects[VIDEO_KEY] == (acquirer.data, "video/mp4")

    record = stored_json(store, METADATA_KEY)
    assert record["eventLocalLink"] == "https://unifi.example.com" + EVENT_PATH
    assert record["triggers"][0]["originalFileName"] == "clip.mp4"


def test_replaying_an_alarm_is_idempotent(make_processor, store, alarm_payload):
    alarm_payload["alarm"]["eventPath"] = EVENT_PATH
    processor = make_processor()

    processor.process(validate_webhook(alarm_payload))
    first = dict(store.objects)
    processor.process(validate_webhook(alarm_payload))

    assert store.objects == first
    assert sorted(store.objects) == [METADATA_KEY, VIDEO_KEY]


def test_credentials_failure_writes_nothing(make_processor, store, secrets_provider, alarm_payload):
    secrets_provider.get.return_value = {"hostname": "unifi.example.com"}

    with pytest.raises(CredentialsError):
        make_processor().process(validate_webhook(alarm_payload))

    assert store.objects == {}


def test_acquisition_timeout_propagates_after_metadata_written(make_processor, store, alarm_payload):
    # Arrange
    alarm_payload["alarm"]["eventPath"] = EVENT_PATH
    failing = FakeAcquirer(error=AcquisitionTimeoutError("https://unifi.example.com", 30))

    # Act & Assert
    with pytest.raises(AcquisitionTimeoutError):
        make_processor(acquirer=failing).process(validate_webhook(alarm_payload))

    assert list(store.objects) == [METADATA_KEY]


def test_auth_failure_invalidates_cached_credentials(
    make_processor, secrets_provider, alarm_payload
):
    alarm_payload["alarm"]["eventPath"] = EVENT_PATH
    processor = make_processor(acquirer=FakeAcquirer(error=AcquisitionAuthError("u")))

    with pytest.raises(AcquisitionAuthError):
        processor.process(validate_webhook(alarm_payload))
    with pytest.raises(AcquisitionAuthError):
        processor.process(validate_webhook(alarm_payload))

    assert secrets_provider.get.call_count == 2


def test_event_path_without_acquirer_is_a_configuration_error(make_processor, alarm_payload):
    alarm_payload["alarm"]["eventPath"] = EVENT_PATH

    with pytest.raises(ConfigurationError):
        make_processor(acquirer=None).process(validate_webhook(alarm_payload))


def test_thumbnail_is_stored(make_processor, store, alarm_payload):
    image = b"\xff\xd8\xff\xe0jpeg"
    alarm_payload["alarm"]["triggers"][0]["thumbnail"] = (
        "data:image/jpeg;base64," + base64.b64encode(image).decode()
    )

    result = make_processor().process(validate_webhook(alarm_payload))

    assert result.thumbnail_stored is True
    assert store.objects[THUMBNAIL_KEY] == (image, "image/jpeg")


def test_invalid_thumbnail_is_not_fatal(make_processor, store, alarm_payload):
    alarm_payload["alarm"]["triggers"][0]["thumbnail"] = "not base64!"

    result = make_processor().process(validate_webhook(alarm_payload))

    assert result.thumbnail_stored is False
    assert THUMBNAIL_KEY not in store.objects
    assert METADATA_KEY in store.objects


def test_decode_thumbnail_accepts_plain_base64():
    assert decode_thumbnail(base64.b64encode(b"abc").decode()) == b"abc"


def test_summary_event_is_published(make_processor, store, sqs, alarm_payload):
    # Arrange
    alarm_payload["alarm"]["eventPath"] = EVENT_PATH
    summary = SummaryPublisher(sqs, store, "https://sqs.test/summary", presigned_url_seconds=600)

    # Act
    result = make_processor(summary=summary).process(validate_webhook(alarm_payload))

    # Assert
    assert result.summary_published is True
    event = json.loads(sqs.messages[0]["body"])
    assert sqs.messages[0]["queue_url"] == "https://sqs.test/summary"
    assert event["EventId"] == "evt1"
    assert event["AlarmS3Key"] == METADATA_KEY
    assert event["VideoS3Key"] == VIDEO_KEY
    assert event["PresignedVideoUrl"] == (
        f"https://signed.example/{VIDEO_KEY}?expires=600&filename=clip.mp4"
    )
    assert event["DeviceName"] == "Driveway"
    assert event["EventType"] == "motion"
    assert event["Metadata"] == {"originalFileName": "clip.mp4"}


def test_summary_without_video_has_no_url(make_processor, store, sqs, alarm_payload):
    summary = SummaryPublisher(sqs, store, "https://sqs.test/summary", presigned_url_seconds=600)

    make_processor(summary=summary).process(validate_webhook(alarm_payload))

    event = json.loads(sqs.messages[0]["body"])
    assert event["VideoS3Key"] is None
    assert event["PresignedVideoUrl"] is None
    assert "generate_presigned_url" not in store.calls
