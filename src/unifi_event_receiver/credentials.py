import logging
import threading
import time
from collections.abc import Callable

import pydantic
from aws_lambda_powertools.utilities.parameters import SecretsProvider
from aws_lambda_powertools.utilities.parameters.exceptions import (
    GetParameterError,
    TransformParameterError,
)

from .exceptions import CredentialsError
from .schemas import UnifiCredentials

logger = logging.getLogger(__name__)


class CredentialsProvider:
    """
    Lazily fetches and caches the UniFi console credentials.

    The secret is read on first use and then reused for `ttl_seconds`
    (0 keeps it for the lifetime of the process). `invalidate()` forces the
    next call to refetch, e.g. after the console rejects a login. Safe to
    share between threads.
    """

    def __init__(
        self,
        secret_id: str,
        secrets_provider: SecretsProvider | None = None,
        ttl_seconds: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._secret_id = secret_id
        self._provider = secrets_provider
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: UnifiCredentials | None = None
        self._fetched_at = 0.0

    def _is_fresh(self) -> bool:
        if self._cached is None:
            return False
        if self._ttl_seconds == 0:
            return True
        return self._clock() - self._fetched_at < self._ttl_seconds

    def get(self) -> UnifiCredentials:
        with self._lock:
            if self._is_fresh():
                return self._cached  # type: ignore[return-value]
            self._cached = self._fetch()
            self._fetched_at = self._clock()
            return self._cached

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
            self._fetched_at = 0.0
        logger.info("Cached UniFi credentials invalidated.")

    def _fetch(self) -> UnifiCredentials:
        if self._provider is None:
            self._provider = SecretsProvider()

        logger.info("Fetching UniFi credentials.", extra={"secret_id": self._secret_id})
        try:
            payload = self._provider.get(self._secret_id, transform="json", force_fetch=True)
        except TransformParameterError as e:
            raise CredentialsError("secret is not valid JSON") from e
        except GetParameterError as e:
            raise CredentialsError("secret could not be retrieved", context={"error": str(e)}) from e

        if not isinstance(payload, dict):
            raise CredentialsError("secret is not a JSON object")

        try:
            return UnifiCredentials.model_validate(payload)
        except pydantic.ValidationError as e:
            missing = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise CredentialsError(
                "secret is missing required fields", context={"fields": missing}
            ) from e
