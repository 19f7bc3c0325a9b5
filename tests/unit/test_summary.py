# tests/unit/test_summary.py

import json

from unifi_event_receiver.exceptions import QueueError, S3TimeoutError
from unifi_event_receiver.keys import derive_keys
from unifi_event_receiver.summary import SummaryPublisher
from unifi_event_receiver.validation import validate_webhook

SUMMARY_QUEUE = "https://sqs.test/summary"


class FailingSqs:
    def send_message(self, *args, **kwargs):
        raise QueueError(SUMMARY_QUEUE, "unavailable")


def test_build_uses_pascal_case_on_the_wire(sqs, store, alarm_payload):
    # Arrange
    alarm_payload["alarm"]["triggers"][0]["thumbnail"] = "aGVsbG8="
    alarm = validate_webhook(alarm_payload)
    keys = derive_keys("evt1", "AA:BB", alarm.timestamp)
    publisher = SummaryPublisher(sqs, store, SUMMARY_QUEUE, presigned_url_seconds=60)

    # Act
    published = publisher.publish(alarm, keys, video_stored=False)

    # Assert
    assert published is True
    event = json.loads(sqs.messages[0]["body"])
    assert event["EventId"] == "evt1"
    assert event["Device"] == "AA:BB"
    assert event["Timestamp"] == 1700000000000
    assert event["AlarmName"] == "Driveway motion"
    assert event["Metadata"] == {"thumbnail": "aGVsbG8="}
    assert sqs.messages[0]["delay_seconds"] == 0


def test_publish_failure_is_reported_not_raised(store, alarm_payload):
    alarm = validate_webhook(alarm_payload)
    publisher = SummaryPublisher(FailingSqs(), store, SUMMARY_QUEUE, presigned_url_seconds=60)

    assert publisher.publish(alarm, derive_keys("evt1", "AA:BB", alarm.timestamp), True) is False


def test_signing_failure_leaves_url_empty(sqs, store, alarm_payload, mocker):
    alarm = validate_webhook(alarm_payload)
    mocker.patch.object(
        store, "generate_presigned_url", side_effect=S3TimeoutError("generate_presigned_url")
    )
    publisher = SummaryPublisher(sqs, store, SUMMARY_QUEUE, presigned_url_seconds=60)

    event = publisher.build(alarm, derive_keys("evt1", "AA:BB", alarm.timestamp), video_stored=True)

    assert event.presigned_video_url is None
    assert event.video_s3_key is not None
