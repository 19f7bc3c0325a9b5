# src/unifi_event_receiver/clients.py

"""
Client wrappers for interacting with AWS services (S3 and SQS).

These classes provide a clean, abstracted interface over raw boto3 clients,
making the service logic easier to read, test, and maintain. Every botocore
failure is translated into one of the service's own exceptions so callers can
decide between retrying and failing fast without knowing AWS error codes.
"""

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, NoReturn

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .exceptions import (
    QueueError,
    S3AccessDeniedError,
    S3ObjectNotFoundError,
    S3ThrottlingError,
    S3TimeoutError,
    StorageWriteError,
)
from .schemas import MessageAttributeDict

if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client as S3ClientType
    from mypy_boto3_sqs.client import SQSClient as SQSClientType

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
VIDEO_CONTENT_TYPE = "video/mp4"

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
_ACCESS_DENIED_CODES = {"AccessDenied", "403", "Forbidden"}
_THROTTLING_CODES = {"Throttling", "ThrottlingException", "RequestLimitExceeded", "SlowDown"}
_TIMEOUT_CODES = {"RequestTimeout", "RequestTimeoutException"}


def _raise_s3_error(e: ClientError, operation: str, bucket: str, key: str | None) -> NoReturn:
    """Maps a botocore ClientError onto the service's storage exceptions."""
    error_code = e.response.get("Error", {}).get("Code", "Unknown")
    error_message = e.response.get("Error", {}).get("Message", str(e))
    context = {
        "bucket": bucket,
        "key": key,
        "aws_error_code": error_code,
        "aws_error_message": error_message,
    }

    if error_code in _NOT_FOUND_CODES:
        raise S3ObjectNotFoundError(bucket=bucket, key=key or "", context=context) from e
    if error_code in _ACCESS_DENIED_CODES:
        raise S3AccessDeniedError(bucket=bucket, key=key or "", context=context) from e
    if error_code in _THROTTLING_CODES:
        raise S3ThrottlingError(operation, context=context) from e
    if error_code in _TIMEOUT_CODES:
        raise S3TimeoutError(operation, context=context) from e
    raise StorageWriteError(operation, error_message, context=context) from e


class S3Client:
    """
    A wrapper for the S3 operations the service needs against a single bucket.
    """

    def __init__(self, s3_client: "S3ClientType", bucket: str):
        """
        Initializes the S3Client.

        Args:
            s3_client: A typed boto3 S3 client.
            bucket: The bucket holding alarm metadata, videos and thumbnails.
        """
        self._client = s3_client
        self.bucket = bucket

    def put_json(self, key: str, body: str) -> None:
        """Writes a JSON document, replacing any existing object at `key`."""
        self.put_bytes(key, body.encode("utf-8"), JSON_CONTENT_TYPE)

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        logger.info(
            "Uploading object",
            extra={"bucket": self.bucket, "key": key, "content_type": content_type, "size": len(data)},
        )
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
            )
        except ClientError as e:
            _raise_s3_error(e, "put_object", self.bucket, key)
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise S3TimeoutError(
                "put_object", context={"bucket": self.bucket, "key": key, "connection_error": str(e)}
            ) from e
        logger.debug("Upload (PUT) completed successfully", extra={"bucket": self.bucket, "key": key})

    def get_text(self, key: str) -> str:
        """
        Reads an object's body as UTF-8 text.
        Raises S3ObjectNotFoundError when the key does not exist.
        """
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read().decode("utf-8")
        except ClientError as e:
            _raise_s3_error(e, "get_object", self.bucket, key)
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise S3TimeoutError(
                "get_object", context={"bucket": self.bucket, "key": key, "connection_error": str(e)}
            ) from e

    def object_exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code in _NOT_FOUND_CODES:
                return False
            _raise_s3_error(e, "head_object", self.bucket, key)
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise S3TimeoutError(
                "head_object", context={"bucket": self.bucket, "key": key, "connection_error": str(e)}
            ) from e
        return True

    def list_keys(self, prefix: str) -> Iterator[str]:
        """Yields every key under `prefix`, following continuation tokens."""
        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield obj["Key"]
        except ClientError as e:
            _raise_s3_error(e, "list_objects_v2", self.bucket, prefix)
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise S3TimeoutError(
                "list_objects_v2",
                context={"bucket": self.bucket, "prefix": prefix, "connection_error": str(e)},
            ) from e

    def generate_presigned_url(
        self, key: str, expires_in: int, download_filename: str | None = None
    ) -> str:
        """
        Creates a time-limited GET URL for `key`. When `download_filename` is
        given, browsers save the object under that name.
        """
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if download_filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{download_filename}"'
        try:
            return self._client.generate_presigned_url(
                "get_object", Params=params, ExpiresIn=expires_in
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageWriteError(
                "generate_presigned_url", str(e), context={"bucket": self.bucket, "key": key}
            ) from e


class SqsClient:
    """A wrapper for sending messages to SQS queues."""

    def __init__(self, sqs_client: "SQSClientType"):
        self._client = sqs_client

    def send_message(
        self,
        queue_url: str,
        body: str,
        delay_seconds: int = 0,
        attributes: dict[str, MessageAttributeDict] | None = None,
    ) -> str:
        """Sends one message and returns the queue-assigned message id."""
        kwargs: dict[str, Any] = {
            "QueueUrl": queue_url,
            "MessageBody": body,
            "DelaySeconds": delay_seconds,
        }
        if attributes:
            kwargs["MessageAttributes"] = attributes
        try:
            response = self._client.send_message(**kwargs)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            error_message = e.response.get("Error", {}).get("Message", str(e))
            raise QueueError(
                queue_url,
                error_message,
                context={"aws_error_code": error_code},
            ) from e
        except BotoCoreError as e:
            raise QueueError(queue_url, str(e)) from e

        message_id = response["MessageId"]
        logger.debug(
            "Message sent",
            extra={"queue_url": queue_url, "message_id": message_id, "delay_seconds": delay_seconds},
        )
        return message_id
