"""
Fetching event clips from the UniFi Protect web UI.

The console only exposes clip export through its browser UI, so acquisition
is a browser session that logs in, opens the event page and triggers the
export, followed by a wait for the file to land in a download directory.
Driving the browser itself is delegated to a `BrowserDriver` chosen at deploy
time (see `load_browser_driver`); this module owns the session lifecycle and
the download wait.
"""

import importlib
import logging
import math
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import NamedTuple, Protocol

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from .exceptions import (
    AcquisitionAuthError,
    AcquisitionError,
    AcquisitionTimeoutError,
    ConfigurationError,
)
from .keys import VIDEO_EXTENSION
from .schemas import UnifiCredentials

logger = logging.getLogger(__name__)

# Suffixes browsers use while a download is still being written.
PARTIAL_DOWNLOAD_SUFFIXES = (".crdownload", ".tmp", ".part")


class AcquiredVideo(NamedTuple):
    data: bytes
    filename: str


class VideoAcquirer(Protocol):
    def fetch(
        self, url: str, credentials: UnifiCredentials, timeout_seconds: float
    ) -> AcquiredVideo:
        """Returns the clip bytes for `url` or raises an AcquisitionError."""
        ...


class BrowserSession(Protocol):
    def login(self, base_url: str, username: str, password: str) -> bool:
        """Signs in to the console; False when the credentials are rejected."""
        ...

    def start_download(self, url: str) -> None:
        """Opens the event page and triggers the clip export."""
        ...

    def close(self) -> None: ...


class BrowserDriver(Protocol):
    def new_session(self, download_directory: str) -> BrowserSession: ...


class DownloadWatcher:
    """
    Polls a directory until a finished download appears.

    A file counts as finished when it is an .mp4 with a final (non-partial)
    name, was not present before the download started, and its size is
    non-zero and unchanged between two consecutive polls.
    """

    def __init__(
        self,
        directory: Path,
        poll_interval_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.directory = directory
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep

    def snapshot(self) -> set[str]:
        return {p.name for p in self.directory.iterdir() if p.is_file()}

    def _candidates(self, baseline: set[str]) -> list[Path]:
        found = []
        for path in self.directory.iterdir():
            if path.name in baseline or path.name.startswith("."):
                continue
            if path.name.endswith(PARTIAL_DOWNLOAD_SUFFIXES) or not path.is_file():
                continue
            if path.suffix.lower() != VIDEO_EXTENSION:
                continue
            found.append(path)
        return found

    def wait_for_file(self, baseline: set[str], timeout_seconds: float, url: str = "") -> Path:
        """
        Blocks until a finished download appears.

        Raises:
            AcquisitionTimeoutError: nothing finished within `timeout_seconds`.
        """
        last_sizes: dict[str, int] = {}

        def poll() -> Path | None:
            for path in self._candidates(baseline):
                try:
                    size = path.stat().st_size
                except FileNotFoundError:
                    # Renamed away by the browser between listing and stat.
                    continue
                previous = last_sizes.get(path.name)
                last_sizes[path.name] = size
                if size > 0 and previous == size:
                    return path
            return None

        def log_wait(retry_state: RetryCallState) -> None:
            logger.debug(
                "Waiting for download to finish",
                extra={"attempt": retry_state.attempt_number, "pending": dict(last_sizes)},
            )

        max_attempts = math.ceil(timeout_seconds / self.poll_interval_seconds) + 1
        retrying = Retrying(
            retry=retry_if_result(lambda result: result is None),
            wait=wait_fixed(self.poll_interval_seconds),
            stop=stop_after_attempt(max_attempts) | stop_after_delay(timeout_seconds),
            sleep=self._sleep,
            before_sleep=log_wait,
        )
        try:
            return retrying(poll)
        except RetryError as e:
            raise AcquisitionTimeoutError(url, timeout_seconds) from e


class BrowserVideoAcquirer:
    """`VideoAcquirer` that exports clips through a browser session."""

    def __init__(
        self,
        driver: BrowserDriver,
        download_directory: str = "/tmp",
        poll_interval_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._driver = driver
        self._download_directory = download_directory
        self._poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep

    def fetch(
        self, url: str, credentials: UnifiCredentials, timeout_seconds: float
    ) -> AcquiredVideo:
        # A private directory per fetch keeps concurrent downloads apart and
        # guarantees the file is removed once read.
        with tempfile.TemporaryDirectory(
            prefix="unifi-download-", dir=self._download_directory
        ) as tmp:
            watcher = DownloadWatcher(Path(tmp), self._poll_interval_seconds, self._sleep)
            baseline = watcher.snapshot()

            logger.info("Starting clip export", extra={"url": url, "download_directory": tmp})
            session: BrowserSession | None = None
            try:
                session = self._driver.new_session(tmp)
                if not session.login(
                    credentials.base_url,
                    credentials.username,
                    credentials.password.get_secret_value(),
                ):
                    raise AcquisitionAuthError(url)
                session.start_download(url)
                path = watcher.wait_for_file(baseline, timeout_seconds, url=url)
                data = path.read_bytes()
            except AcquisitionError:
                raise
            except Exception as e:
                raise AcquisitionError(
                    f"Browser session failed: {e}",
                    error_code="ACQUISITION_FAILED",
                    context={"url": url, "error_type": type(e).__name__},
                ) from e
            finally:
                if session is not None:
                    session.close()

        logger.info(
            "Clip downloaded",
            extra={"url": url, "file_name": path.name, "size": len(data)},
        )
        return AcquiredVideo(data=data, filename=path.name)


def load_browser_driver(factory_path: str) -> BrowserDriver:
    """Imports and calls a ``module:callable`` that builds the browser driver."""
    module_name, _, attribute = factory_path.partition(":")
    try:
        factory = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError, ValueError) as e:
        raise ConfigurationError(
            f"Cannot load video acquirer factory '{factory_path}': {e}"
        ) from e
    if not callable(factory):
        raise ConfigurationError(f"Video acquirer factory '{factory_path}' is not callable")
    return factory()
