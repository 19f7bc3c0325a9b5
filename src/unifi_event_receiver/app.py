# src/unifi_event_receiver/app.py

"""
Main AWS Lambda handler for the UniFi Event Receiver service.

A single function serves three event sources:
- API Gateway requests: the alarm webhook and the video lookup routes.
- Batches from the alarm delay queue: the delayed processing phase that
  stores the alarm record and downloads its clip.
- A scheduled EventBridge rule that keeps the function warm.

Queue batches use the Powertools BatchProcessor so that one failing alarm is
reported in `batchItemFailures` and redelivered without affecting the rest of
the batch.
"""

import os
from functools import cached_property
from typing import Any

import boto3
from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers
from aws_lambda_powertools.event_handler import APIGatewayRestResolver
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.batch import (
    BatchProcessor,
    EventType,
    process_partial_response,
)
from aws_lambda_powertools.utilities.data_classes.sqs_event import SQSRecord
from aws_lambda_powertools.utilities.typing import LambdaContext

from .acquisition import BrowserVideoAcquirer, VideoAcquirer, load_browser_driver
from .clients import S3Client, SqsClient
from .config import AppConfig, get_config
from .credentials import CredentialsProvider
from .devices import DeviceRegistry
from .events import EventKind, classify_event
from .exceptions import (
    AcquisitionError,
    NonRetryableError,
    ValidationError,
    get_error_context,
    is_retryable_error,
)
from .finders import EventVideoFinder, LatestVideoFinder
from .ingestion import AlarmIngestionService
from .processor import AlarmProcessor
from .router import build_resolver
from .summary import SummaryPublisher
from .validation import parse_alarm_message

# Service name is read directly so that importing this module does not
# require the full configuration to be present.
SERVICE_NAME = os.getenv("SERVICE_NAME")

logger = Logger(service=SERVICE_NAME)
tracer = Tracer(service=SERVICE_NAME)
metrics = Metrics(namespace="UnifiEventReceiver", service=SERVICE_NAME)

# Library modules log through logging.getLogger(__name__); give them the same
# JSON formatting and handler.
copy_config_to_registered_loggers(source_logger=logger, include={"unifi_event_receiver"})

PING_RESPONSE = {"msg": "No action taken on request."}


###############################################################################
# Dependencies
###############################################################################


class Dependencies:
    """
    A container for managing and lazy-loading dependencies like AWS clients.
    This pattern makes mocking for tests straightforward: assign any attribute
    before first use to replace it.
    """

    def __init__(self, config: AppConfig):
        self.config = config

    @cached_property
    def store(self) -> S3Client:  # pragma: no cover
        return S3Client(boto3.client("s3"), self.config.storage_bucket)

    @cached_property
    def sqs(self) -> SqsClient:  # pragma: no cover
        return SqsClient(boto3.client("sqs"))

    @cached_property
    def credentials(self) -> CredentialsProvider:
        return CredentialsProvider(
            self.config.credentials_secret_arn,
            ttl_seconds=self.config.credentials_cache_ttl_seconds,
        )

    @cached_property
    def devices(self) -> DeviceRegistry:
        return DeviceRegistry.from_json(
            self.config.device_metadata, self.config.device_name_prefix
        )

    @cached_property
    def acquirer(self) -> VideoAcquirer | None:
        if not self.config.video_acquirer_factory:
            return None
        return BrowserVideoAcquirer(
            load_browser_driver(self.config.video_acquirer_factory),
            download_directory=self.config.download_directory,
            poll_interval_seconds=self.config.download_poll_interval_seconds,
        )

    @cached_property
    def summary(self) -> SummaryPublisher | None:
        if not self.config.summary_enabled:
            return None
        return SummaryPublisher(
            self.sqs,
            self.store,
            self.config.summary_queue_url,
            self.config.summary_presigned_url_seconds,
        )

    @cached_property
    def ingestion(self) -> AlarmIngestionService:
        return AlarmIngestionService(
            self.sqs, self.config.alarm_queue_url, self.config.processing_delay_seconds
        )

    @cached_property
    def processor(self) -> AlarmProcessor:
        return AlarmProcessor(
            store=self.store,
            credentials=self.credentials,
            devices=self.devices,
            acquirer=self.acquirer,
            summary=self.summary,
            download_timeout_seconds=self.config.download_timeout_seconds,
            tz=self.config.tz,
        )

    @cached_property
    def latest_finder(self) -> LatestVideoFinder:
        return LatestVideoFinder(
            self.store,
            self.config.latest_video_search_days,
            url_ttl_seconds=self.config.presigned_url_ttl_seconds,
            tz=self.config.tz,
        )

    @cached_property
    def event_finder(self) -> EventVideoFinder:
        return EventVideoFinder(
            self.store,
            self.config.event_search_days,
            url_ttl_seconds=self.config.presigned_url_ttl_seconds,
            tz=self.config.tz,
        )

    @cached_property
    def resolver(self) -> APIGatewayRestResolver:
        return build_resolver(self, metrics)


# Process-wide so warm invocations reuse clients and cached credentials.
_dependencies: Dependencies | None = None


def get_dependencies() -> Dependencies:
    global _dependencies
    if _dependencies is None:
        config = get_config()
        logger.setLevel(config.log_level)
        _dependencies = Dependencies(config)
    return _dependencies


###############################################################################
# Queue consumer
###############################################################################

processor = BatchProcessor(
    event_type=EventType.SQS,
    raise_on_entire_batch_failure=False,
)


@tracer.capture_method(capture_response=False)
def record_handler(record: SQSRecord) -> None:
    """
    Processes one delayed alarm.

    Malformed messages and other non-retryable failures (missing
    configuration, denied bucket access) are logged and acknowledged since
    redelivery cannot fix them. Retryable and unexpected failures are raised
    so the message is redelivered and eventually dead-lettered.
    """
    deps = get_dependencies()
    try:
        alarm = parse_alarm_message(record.body)
    except ValidationError as e:
        metrics.add_metric(name="MalformedQueueMessages", unit=MetricUnit.Count, value=1)
        logger.warning(
            "Dropping malformed queue message",
            extra={"message_id": record.message_id, "error": e.to_dict()},
        )
        return

    logger.append_keys(event_id=alarm.primary_trigger.event_id)
    try:
        result = deps.processor.process(alarm)
    except AcquisitionError as e:
        metrics.add_metric(name="VideoAcquisitionFailures", unit=MetricUnit.Count, value=1)
        logger.warning(
            "Video acquisition failed; message will be retried",
            extra={"message_id": record.message_id, "error": e.to_dict()},
        )
        raise
    except NonRetryableError as e:
        metrics.add_metric(name="NonRetryableErrors", unit=MetricUnit.Count, value=1)
        logger.error(
            f"Non-retryable error, acknowledging message: {e}",
            extra={"message_id": record.message_id, "error": get_error_context(e)},
        )
        return
    except Exception as e:
        if is_retryable_error(e):
            metrics.add_metric(name="RetryableErrors", unit=MetricUnit.Count, value=1)
            logger.warning(
                f"Retryable error, message will be retried: {e}",
                extra={"message_id": record.message_id, "error": get_error_context(e)},
            )
        raise
    finally:
        logger.remove_keys(["event_id"])

    metrics.add_metric(name="AlarmsProcessed", unit=MetricUnit.Count, value=1)
    if result.video_stored:
        metrics.add_metric(name="VideosStored", unit=MetricUnit.Count, value=1)
    if result.thumbnail_stored:
        metrics.add_metric(name="ThumbnailsStored", unit=MetricUnit.Count, value=1)
    if result.summary_published:
        metrics.add_metric(name="SummaryEventsPublished", unit=MetricUnit.Count, value=1)


###############################################################################
# Lambda Entry-Point
###############################################################################


@logger.inject_lambda_context(log_event=False)
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Dispatches an invocation to the ping, queue or HTTP path."""
    deps = get_dependencies()
    metrics.add_dimension(name="environment", value=deps.config.environment)

    classified = classify_event(event)
    logger.debug("Invocation classified", extra={"kind": classified.kind.value})

    if classified.kind is EventKind.SCHEDULED_PING:
        return PING_RESPONSE

    if classified.kind is EventKind.QUEUE_BATCH:
        response = process_partial_response(
            event=event,
            record_handler=record_handler,
            processor=processor,
            context=context,
        )
        logger.info(
            "Batch finished",
            extra={
                "record_count": len(event["Records"]),
                "failure_count": len(response["batchItemFailures"]),
            },
        )
        return response

    return deps.resolver.resolve(event, context)
