# src/unifi_event_receiver/exceptions.py

"""
Shared custom exceptions for the UniFi Event Receiver service.

Every module raises from this one hierarchy, so the queue consumer and the
HTTP routes pick a retry policy or status code from the type alone.

Exception Hierarchy:
- EventReceiverError (base)
  - RetryableError (redelivered by the queue, eventually dead-lettered)
    - CredentialsError
    - QueueError
    - AcquisitionError
      - AcquisitionTimeoutError
      - AcquisitionAuthError
    - S3ThrottlingError
    - S3TimeoutError
    - StorageWriteError
  - NonRetryableError (should not be retried)
    - ValidationError
      - MissingBodyError
      - MissingTriggersError
      - InvalidAlarmError
      - UnsafeKeyComponentError
    - ConfigurationError
    - RouteNotFoundError
    - UnsupportedEventError
    - S3AccessDeniedError
    - S3ObjectNotFoundError
    - NotFoundError
      - VideoNotAvailableError
"""

from typing import Any, Dict, Optional


class EventReceiverError(Exception):
    """Base exception for all UniFi Event Receiver errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for the `error` key of log records."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "retryable": isinstance(self, RetryableError),
        }


class RetryableError(EventReceiverError):
    """Transient failure; the queue redelivers the message."""
    pass


class NonRetryableError(EventReceiverError):
    """Permanent failure; retrying cannot succeed."""
    pass


# === Input Errors ===

class ValidationError(NonRetryableError):
    """Base class for validation errors. Always surfaced to callers as a 400."""
    pass


class MissingBodyError(ValidationError):
    """Raised when a webhook payload has no body or no `alarm` object."""

    def __init__(self, message: str = "you must have a valid body object in your request", **kwargs):
        kwargs.setdefault("error_code", "MISSING_BODY")
        super().__init__(message, **kwargs)


class MissingTriggersError(ValidationError):
    """Raised when an alarm carries no triggers."""

    def __init__(self, message: str = "you must have triggers in your payload", **kwargs):
        kwargs.setdefault("error_code", "MISSING_TRIGGERS")
        super().__init__(message, **kwargs)


class InvalidAlarmError(ValidationError):
    """Raised when an alarm object does not match the expected shape."""

    def __init__(self, message: str = "Invalid alarm object format", **kwargs):
        kwargs.setdefault("error_code", "INVALID_ALARM")
        super().__init__(message, **kwargs)


class UnsafeKeyComponentError(ValidationError):
    """Raised when an identifier cannot be embedded safely in an object key."""

    def __init__(self, field: str, value: Any, reason: str, **kwargs):
        message = f"Unsafe value for '{field}': {reason}"
        context = {"field": field, "value": repr(value), "reason": reason}
        kwargs.setdefault("error_code", "UNSAFE_KEY_COMPONENT")
        super().__init__(message, context=context, **kwargs)


# === Configuration / Routing Errors ===

class ConfigurationError(NonRetryableError):
    """Deployment settings are missing or wrong; needs an operator."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


class RouteNotFoundError(NonRetryableError):
    """Raised when an HTTP request matches no known route."""

    def __init__(self, method: str, path: str, **kwargs):
        message = f"Route not found: please provide a valid route. Route: {path}, Method: {method}"
        context = {"method": method, "path": path}
        super().__init__(message, error_code="ROUTE_NOT_FOUND", context=context, **kwargs)


class UnsupportedEventError(NonRetryableError):
    """Raised when an invocation payload is not a recognised event source."""

    def __init__(self, keys: list[str], **kwargs):
        message = "Unsupported invocation event"
        context = {"top_level_keys": keys}
        super().__init__(message, error_code="UNSUPPORTED_EVENT", context=context, **kwargs)


# === Upstream Errors ===

class CredentialsError(RetryableError):
    """Raised when the UniFi credentials cannot be fetched or are incomplete."""

    def __init__(self, reason: str, **kwargs):
        message = f"Unable to obtain UniFi credentials: {reason}"
        context = {"reason": reason}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="CREDENTIALS_ERROR", context=context, **kwargs)


class QueueError(RetryableError):
    """Raised when a message cannot be sent to a queue."""

    def __init__(self, queue_url: str, reason: str, **kwargs):
        message = f"Failed to send message to queue: {reason}"
        context = {"queue_url": queue_url, "reason": reason}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="QUEUE_SEND_FAILED", context=context, **kwargs)


class AcquisitionError(RetryableError):
    """Base class for failures fetching a clip from the video system."""
    pass


class AcquisitionTimeoutError(AcquisitionError):
    """Raised when no finished video file appears within the poll budget."""

    def __init__(self, url: str, timeout_seconds: float, **kwargs):
        message = f"No video file was downloaded within {timeout_seconds}s"
        context = {"url": url, "timeout_seconds": timeout_seconds}
        super().__init__(message, error_code="ACQUISITION_TIMEOUT", context=context, **kwargs)


class AcquisitionAuthError(AcquisitionError):
    """Raised when the video system rejects the supplied credentials."""

    def __init__(self, url: str, reason: str = "authentication failed", **kwargs):
        message = f"Authentication against the video system failed: {reason}"
        context = {"url": url, "reason": reason}
        super().__init__(message, error_code="ACQUISITION_AUTH_FAILED", context=context, **kwargs)


# === S3 / Storage Errors ===

class StorageError(EventReceiverError):
    """Base class for object store errors."""
    pass


class S3ObjectNotFoundError(StorageError, NonRetryableError):
    """The key does not exist in the bucket."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"S3 object not found: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="S3_OBJECT_NOT_FOUND", context=context, **kwargs)


class S3AccessDeniedError(StorageError, NonRetryableError):
    """The function role may not read or write the key."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"Access denied to S3 object: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="S3_ACCESS_DENIED", context=context, **kwargs)


class S3ThrottlingError(StorageError, RetryableError):
    """S3 asked the caller to slow down."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation throttled: {operation}"
        context = {"operation": operation}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="S3_THROTTLING", context=context, **kwargs)


class S3TimeoutError(StorageError, RetryableError):
    """Raised when S3 operations time out or the endpoint is unreachable."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation timed out: {operation}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context.update({"operation": operation})
        super().__init__(message, error_code="S3_TIMEOUT", context=context, **kwargs)


class StorageWriteError(StorageError, RetryableError):
    """Raised for any other S3 client failure."""

    def __init__(self, operation: str, reason: str, **kwargs):
        message = f"S3 {operation} failed: {reason}"
        context = {"operation": operation, "reason": reason}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="S3_CLIENT_ERROR", context=context, **kwargs)


# === Query Errors ===

class NotFoundError(NonRetryableError):
    """Raised when a queried event or video does not exist."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "NOT_FOUND")
        super().__init__(message, **kwargs)


class VideoNotAvailableError(NotFoundError):
    """Raised when an event's metadata exists but its video never arrived."""

    def __init__(self, event_id: str, video_key: str, **kwargs):
        message = (
            f"Video file for event {event_id} is not available. The video may have "
            "been removed by the retention policy or the download may have failed "
            "during event processing."
        )
        super().__init__(
            message,
            error_code="VIDEO_NOT_AVAILABLE",
            context={"event_id": event_id, "video_key": video_key},
            **kwargs,
        )


# === Helpers ===

def is_retryable_error(error: Exception) -> bool:
    """True when redelivering the message may succeed."""
    return isinstance(error, RetryableError)


def get_error_context(error: Exception) -> Dict[str, Any]:
    """`to_dict()` for service errors, a minimal equivalent for anything else."""
    if isinstance(error, EventReceiverError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "message": str(error),
            "retryable": False,
        }


def http_status_for(error: Exception) -> int:
    """Maps an error to the HTTP status used on synchronous paths."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, (NotFoundError, RouteNotFoundError)):
        return 404
    return 500
