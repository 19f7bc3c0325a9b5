import logging
import os
from dataclasses import dataclass
from datetime import tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# SQS rejects DelaySeconds above 15 minutes.
MAX_SQS_DELAY_SECONDS = 900


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Deployment settings, read once from the Lambda environment."""

    # --- Required Variables ---
    storage_bucket: str
    alarm_queue_url: str
    credentials_secret_arn: str
    service_name: str
    environment: str

    # --- Optional (defaults applied in load_from_env) ---
    summary_queue_url: str | None
    processing_delay_seconds: int
    latest_video_search_days: int
    event_search_days: int
    presigned_url_ttl_seconds: int
    summary_presigned_url_hours: int
    download_directory: str
    download_timeout_seconds: int
    download_poll_interval_seconds: float
    credentials_cache_ttl_seconds: int
    event_timezone: str | None
    device_metadata: str | None
    device_name_prefix: str | None
    api_path_prefixes: tuple[str, ...]
    video_acquirer_factory: str | None
    log_level: str

    # --- Derived ---
    @property
    def tz(self) -> tzinfo | None:
        """The single timezone used for day folders; None means server local time."""
        if not self.event_timezone:
            return None
        return ZoneInfo(self.event_timezone)

    @property
    def summary_presigned_url_seconds(self) -> int:
        return self.summary_presigned_url_hours * 3600

    @property
    def summary_enabled(self) -> bool:
        return bool(self.summary_queue_url)

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Reads and type-checks every setting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            # required
            storage_bucket = os.environ["STORAGE_BUCKET"]
            alarm_queue_url = os.environ["ALARM_PROCESSING_QUEUE_URL"]
            credentials_secret_arn = os.environ["UNIFI_CREDENTIALS_SECRET_ARN"]
            service_name = os.environ["SERVICE_NAME"]
            environment = os.environ["ENVIRONMENT"]

            summary_queue_url = os.getenv("SUMMARY_EVENT_QUEUE_URL") or None

            # numeric settings, range checked
            processing_delay_seconds = int(os.getenv("PROCESSING_DELAY_SECONDS", "120"))
            if not 0 <= processing_delay_seconds <= MAX_SQS_DELAY_SECONDS:
                raise ValueError(
                    f"PROCESSING_DELAY_SECONDS must be between 0 and {MAX_SQS_DELAY_SECONDS}."
                )

            latest_video_search_days = int(os.getenv("LATEST_VIDEO_SEARCH_DAYS", "30"))
            if latest_video_search_days <= 0:
                raise ValueError("LATEST_VIDEO_SEARCH_DAYS must be a positive integer.")

            event_search_days = int(os.getenv("EVENT_SEARCH_DAYS", "90"))
            if event_search_days <= 0:
                raise ValueError("EVENT_SEARCH_DAYS must be a positive integer.")

            presigned_url_ttl_seconds = int(os.getenv("PRESIGNED_URL_TTL_SECONDS", "3600"))
            if presigned_url_ttl_seconds <= 0:
                raise ValueError("PRESIGNED_URL_TTL_SECONDS must be a positive integer.")

            summary_presigned_url_hours = int(os.getenv("SUMMARY_PRESIGNED_URL_HOURS", "24"))
            if summary_presigned_url_hours <= 0:
                raise ValueError("SUMMARY_PRESIGNED_URL_HOURS must be a positive integer.")

            download_directory = os.getenv("DOWNLOAD_DIRECTORY", "/tmp")

            download_timeout_seconds = int(os.getenv("DOWNLOAD_TIMEOUT_SECONDS", "100"))
            if download_timeout_seconds <= 0:
                raise ValueError("DOWNLOAD_TIMEOUT_SECONDS must be a positive integer.")

            download_poll_interval_seconds = float(
                os.getenv("DOWNLOAD_POLL_INTERVAL_SECONDS", "1.0")
            )
            if download_poll_interval_seconds <= 0:
                raise ValueError("DOWNLOAD_POLL_INTERVAL_SECONDS must be positive.")

            credentials_cache_ttl_seconds = int(
                os.getenv("CREDENTIALS_CACHE_TTL_SECONDS", "0")
            )
            if credentials_cache_ttl_seconds < 0:
                raise ValueError(
                    "CREDENTIALS_CACHE_TTL_SECONDS must be a non-negative integer."
                )

            event_timezone = os.getenv("EVENT_TIMEZONE") or None
            if event_timezone:
                try:
                    ZoneInfo(event_timezone)
                except (ZoneInfoNotFoundError, ValueError) as e:
                    raise ValueError(f"EVENT_TIMEZONE '{event_timezone}' is not a known zone") from e

            device_metadata = os.getenv("DEVICE_METADATA") or None
            device_name_prefix = os.getenv("DEVICE_NAME_PREFIX") or None

            api_path_prefixes = tuple(
                "/" + prefix.strip().strip("/")
                for prefix in os.getenv("API_PATH_PREFIXES", "").split(",")
                if prefix.strip().strip("/")
            )

            video_acquirer_factory = os.getenv("VIDEO_ACQUIRER_FACTORY") or None
            if video_acquirer_factory and ":" not in video_acquirer_factory:
                raise ValueError("VIDEO_ACQUIRER_FACTORY must look like 'module:callable'.")

            # log level
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

        except KeyError as e:
            raise ConfigurationError(
                f"Missing required environment variable: {e.args[0]}"
            ) from e
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            storage_bucket=storage_bucket,
            alarm_queue_url=alarm_queue_url,
            credentials_secret_arn=credentials_secret_arn,
            service_name=service_name,
            environment=environment,
            summary_queue_url=summary_queue_url,
            processing_delay_seconds=processing_delay_seconds,
            latest_video_search_days=latest_video_search_days,
            event_search_days=event_search_days,
            presigned_url_ttl_seconds=presigned_url_ttl_seconds,
            summary_presigned_url_hours=summary_presigned_url_hours,
            download_directory=download_directory,
            download_timeout_seconds=download_timeout_seconds,
            download_poll_interval_seconds=download_poll_interval_seconds,
            credentials_cache_ttl_seconds=credentials_cache_ttl_seconds,
            event_timezone=event_timezone,
            device_metadata=device_metadata,
            device_name_prefix=device_name_prefix,
            api_path_prefixes=api_path_prefixes,
            video_acquirer_factory=video_acquirer_factory,
            log_level=log_level,
        )


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Returns the process-wide `AppConfig`, loading it on first call rather than at import."""
    logger.info("Loading configuration from environment")
    return AppConfig.load_from_env()
