# src/unifi_event_receiver/router.py

"""
HTTP routes served through API Gateway.

    POST /alarmevent         webhook from UniFi Protect, queues the alarm
    GET  /latestvideo        signed URL for the most recent video
    GET  /?eventId=<id>      signed URL for one event's video

Stage prefixes (e.g. ``/dev``) listed in API_PATH_PREFIXES are stripped
before matching. CORS preflight requests are answered by the resolver.
"""

import json
import logging
from typing import TYPE_CHECKING

from aws_lambda_powertools.event_handler import (
    APIGatewayRestResolver,
    CORSConfig,
    Response,
    content_types,
)
from aws_lambda_powertools.event_handler.exceptions import NotFoundError as RouteMissing
from aws_lambda_powertools.metrics import Metrics, MetricUnit

from .exceptions import (
    EventReceiverError,
    RouteNotFoundError,
    ValidationError,
    http_status_for,
)
from .finders import lookup_response
from .validation import validate_webhook

if TYPE_CHECKING:
    from .app import Dependencies

logger = logging.getLogger(__name__)


def _json_response(status_code: int, body: dict) -> Response:
    return Response(
        status_code=status_code,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(body),
    )


def build_resolver(deps: "Dependencies", metrics: Metrics) -> APIGatewayRestResolver:
    config = deps.config
    api = APIGatewayRestResolver(
        cors=CORSConfig(allow_origin="*", max_age=300),
        strip_prefixes=list(config.api_path_prefixes) or None,
    )

    @api.post("/alarmevent")
    def receive_alarm():
        alarm = validate_webhook(api.current_event.body)
        ack = deps.ingestion.ingest(alarm)
        metrics.add_metric(name="AlarmsQueued", unit=MetricUnit.Count, value=1)
        return ack

    @api.get("/latestvideo")
    def latest_video():
        lookup = deps.latest_finder.find_latest()
        return lookup_response(lookup, tz=config.tz)

    @api.get("/")
    def event_video():
        event_id = api.current_event.get_query_string_value("eventId")
        if not event_id:
            raise ValidationError(
                "eventId query parameter is required", error_code="MISSING_EVENT_ID"
            )
        lookup = deps.event_finder.find_by_event_id(event_id)
        return lookup_response(lookup, event_id=event_id, tz=config.tz)

    @api.not_found
    def route_not_found(exc: RouteMissing) -> Response:
        error = RouteNotFoundError(api.current_event.http_method, api.current_event.path)
        logger.warning("No route matched request", extra={"error": error.to_dict()})
        return _json_response(404, {"msg": error.message})

    @api.exception_handler(EventReceiverError)
    def handle_service_error(error: EventReceiverError) -> Response:
        status = http_status_for(error)
        log = logger.warning if status < 500 else logger.error
        log("Request failed", extra={"error": error.to_dict(), "status_code": status})
        return _json_response(status, {"msg": error.message})

    @api.exception_handler(Exception)
    def handle_unexpected_error(error: Exception) -> Response:
        logger.exception("Unexpected error while handling request")
        return _json_response(500, {"msg": f"Internal server error: {type(error).__name__}"})

    return api
