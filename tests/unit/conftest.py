"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import json
import os
import types
import uuid
from unittest.mock import MagicMock

import pytest

from unifi_event_receiver.acquisition import AcquiredVideo
from unifi_event_receiver.config import get_config
from unifi_event_receiver.credentials import CredentialsProvider
from unifi_event_receiver.exceptions import S3ObjectNotFoundError

# Powertools reads these when app.py is imported during collection.
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "unifi-event-receiver-test")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "UnifiEventReceiver")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

SECRET = {
    "hostname": "unifi.example.com",
    "username": "viewer",
    "password": "hunter2",
    "apikey": "key-123",
}


@pytest.fixture(scope="session", autouse=True)
def _env_vars():
    """
    Ensures a deterministic environment for every test run.
    Overwrite *only* the variables needed by the handler.
    """
    original = os.environ.copy()
    os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
    yield
    os.environ.clear()
    os.environ.update(original)


@pytest.fixture
def app_env(monkeypatch):
    """A complete, valid configuration environment."""
    monkeypatch.setenv("STORAGE_BUCKET", "alarm-bucket")
    monkeypatch.setenv("ALARM_PROCESSING_QUEUE_URL", "https://sqs.test/alarm-queue")
    monkeypatch.setenv("UNIFI_CREDENTIALS_SECRET_ARN", "arn:aws:secretsmanager:us-east-1:0:secret:unifi")
    monkeypatch.setenv("SERVICE_NAME", "unifi-event-receiver-test")
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("EVENT_TIMEZONE", "UTC")
    for name in (
        "SUMMARY_EVENT_QUEUE_URL",
        "VIDEO_ACQUIRER_FACTORY",
        "API_PATH_PREFIXES",
        "DEVICE_METADATA",
        "PROCESSING_DELAY_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield monkeypatch
    get_config.cache_clear()


# ---------- In-memory collaborators ---------- #
class FakeStore:
    """Dict-backed stand-in for the S3Client wrapper."""

    def __init__(self, bucket: str = "alarm-bucket"):
        self.bucket = bucket
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.calls: list[str] = []

    def put_json(self, key: str, body: str) -> None:
        self.calls.append("put_json")
        self.objects[key] = (body.encode("utf-8"), "application/json")

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self.calls.append("put_bytes")
        self.objects[key] = (data, content_type)

    def get_text(self, key: str) -> str:
        self.calls.append("get_text")
        if key not in self.objects:
            raise S3ObjectNotFoundError(self.bucket, key)
        return self.objects[key][0].decode("utf-8")

    def object_exists(self, key: str) -> bool:
        self.calls.append("object_exists")
        return key in self.objects

    def list_keys(self, prefix: str):
        self.calls.append("list_keys")
        return iter(sorted(k for k in self.objects if k.startswith(prefix)))

    def generate_presigned_url(self, key, expires_in, download_filename=None):
        self.calls.append("generate_presigned_url")
        return f"https://signed.example/{key}?expires={expires_in}&filename={download_filename}"

    def put_text(self, key: str, body: str) -> None:
        """Test helper that seeds an object without recording a call."""
        self.objects[key] = (body.encode("utf-8"), "application/json")


class FakeSqs:
    def __init__(self):
        self.messages: list[dict] = []

    def send_message(self, queue_url, body, delay_seconds=0, attributes=None) -> str:
        message_id = f"msg-{len(self.messages) + 1}"
        self.messages.append(
            {
                "queue_url": queue_url,
                "body": body,
                "delay_seconds": delay_seconds,
                "attributes": attributes,
                "message_id": message_id,
            }
        )
        return message_id


class FakeAcquirer:
    def __init__(self, data: bytes = b"\x00\x00\x00\x18ftypmp42", filename: str = "clip.mp4", error=None):
        self.data = data
        self.filename = filename
        self.error = error
        self.calls: list[tuple[str, float]] = []

    def fetch(self, url, credentials, timeout_seconds):
        self.calls.append((url, timeout_seconds))
        if self.error is not None:
            raise self.error
        return AcquiredVideo(data=self.data, filename=self.filename)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sqs() -> FakeSqs:
    return FakeSqs()


@pytest.fixture
def acquirer() -> FakeAcquirer:
    return FakeAcquirer()


@pytest.fixture
def secrets_provider() -> MagicMock:
    provider = MagicMock()
    provider.get.return_value = dict(SECRET)
    return provider


@pytest.fixture
def credentials(secrets_provider) -> CredentialsProvider:
    return CredentialsProvider("unifi-secret", secrets_provider=secrets_provider)


# ---------- Minimal, realistic dummy events ---------- #
@pytest.fixture
def alarm_payload() -> dict:
    """The webhook body from the documented example."""
    return {
        "alarm": {
            "name": "Driveway motion",
            "sources": [{"device": "AA:BB", "type": "include"}],
            "conditions": [{"condition": {"type": "is", "source": "motion"}}],
            "triggers": [{"key": "motion", "device": "AA:BB", "eventId": "evt1"}],
        },
        "timestamp": 1700000000000,
    }


def make_api_event(method: str, path: str, body=None, query: dict | None = None) -> dict:
    """An API Gateway REST (v1) proxy event."""
    return {
        "resource": path,
        "path": path,
        "httpMethod": method,
        "headers": {"Content-Type": "application/json"},
        "multiValueHeaders": {"Content-Type": ["application/json"]},
        "queryStringParameters": query,
        "multiValueQueryStringParameters": (
            {k: [v] for k, v in query.items()} if query else None
        ),
        "pathParameters": None,
        "stageVariables": None,
        "requestContext": {
            "requestId": "req-" + uuid.uuid4().hex,
            "stage": "test",
            "httpMethod": method,
            "path": path,
            "resourcePath": path,
            "identity": {"sourceIp": "127.0.0.1"},
        },
        "body": body if body is None or isinstance(body, str) else json.dumps(body),
        "isBase64Encoded": False,
    }


def make_sqs_event(*bodies: str) -> dict:
    """One SQS record per body, as delivered by the delay queue."""
    return {
        "Records": [
            {
                "messageId": str(uuid.uuid4()),
                "receiptHandle": "ignore",
                "body": body,
                "attributes": {"ApproximateReceiveCount": "1"},
                "messageAttributes": {},
                "md5OfBody": "dummy",
                "eventSource": "aws:sqs",
                "eventSourceARN": "arn:aws:sqs:us-east-1:000000000000:alarm-queue",
                "awsRegion": "us-east-1",
            }
            for body in bodies
        ]
    }


@pytest.fixture
def scheduled_event() -> dict:
    return {
        "version": "0",
        "id": str(uuid.uuid4()),
        "detail-type": "Scheduled Event",
        "source": "aws.events",
        "account": "000000000000",
        "time": "2023-11-14T22:13:20Z",
        "region": "us-east-1",
        "resources": ["arn:aws:events:us-east-1:000000000000:rule/keep-warm"],
        "detail": {},
    }


@pytest.fixture
def lambda_context():
    """A *very* small stand-in for the LambdaContext object."""
    return types.SimpleNamespace(
        function_name="unifi-event-receiver",
        function_version="$LATEST",
        memory_limit_in_mb=512,
        aws_request_id="req-" + uuid.uuid4().hex,
        invoked_function_arn="arn:aws:lambda:us-east-1:000000000000:function:unifi-event-receiver",
        get_remaining_time_in_millis=lambda: 30000,
    )


@pytest.fixture
def api_event():
    return make_api_event


@pytest.fixture
def sqs_batch():
    return make_sqs_event
