"""Streaming archive download with throttled progress reporting."""

import logging
import os
import ssl
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import httpx
import truststore

from .errors import DownloadError

logger = logging.getLogger(__name__)

ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

DOWNLOAD_TIMEOUT = 300.0
PROGRESS_INTERVAL = 0.2
CHUNK_SIZE = 8192

ProgressCallback = Callable[[int, int, int], None]


def _github_token(cli_token: Optional[str] = None) -> Optional[str]:
    """Return sanitized GitHub token (cli arg takes precedence) or None."""
    return ((cli_token or os.getenv("GH_TOKEN") or os.getenv("GITHUB_TOKEN") or "").strip()) or None


def auth_headers(cli_token: Optional[str] = None) -> dict:
    """Return Authorization header dict only when a non-empty token exists."""
    token = _github_token(cli_token)
    return {"Authorization": f"Bearer {token}"} if token else {}


def make_client(skip_tls: bool = False) -> httpx.Client:
    return httpx.Client(verify=False if skip_tls else ssl_context)


@dataclass
class DownloadProgress:
    """Byte counters for one download.

    ``sample`` returns a percentage only when the sampling interval has
    elapsed and the whole percent has strictly grown since the last report.
    """

    total_bytes: int
    interval: float = PROGRESS_INTERVAL
    clock: Callable[[], float] = time.monotonic
    bytes_received: int = 0
    last_reported_percent: int = -1
    _last_sample: Optional[float] = field(default=None, repr=False)

    def advance(self, n: int) -> None:
        self.bytes_received += n

    @property
    def percent(self) -> Optional[int]:
        if self.total_bytes <= 0:
            return None
        return min(100, self.bytes_received * 100 // self.total_bytes)

    def sample(self, force: bool = False) -> Optional[int]:
        now = self.clock()
        if not force and self._last_sample is not None and now - self._last_sample < self.interval:
            return None
        self._last_sample = now
        percent = self.percent
        if percent is None or percent <= self.last_reported_percent:
            return None
        self.last_reported_percent = percent
        return percent


def download(
    url: str,
    destination: Path,
    *,
    client: Optional[httpx.Client] = None,
    on_progress: Optional[ProgressCallback] = None,
    timeout: float = DOWNLOAD_TIMEOUT,
    interval: float = PROGRESS_INTERVAL,
    headers: Optional[dict] = None,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Stream ``url`` into ``destination`` and return the number of bytes written.

    Partial files are left in place on failure. An empty payload is not an
    error here; callers check the size.
    """
    if client is None:
        with make_client() as owned:
            return download(
                url, destination, client=owned, on_progress=on_progress, timeout=timeout,
                interval=interval, headers=headers, clock=clock,
            )

    logger.debug("GET %s -> %s", url, destination)
    try:
        with client.stream("GET", url, timeout=timeout, follow_redirects=True, headers=headers or {}) as response:
            if not response.is_success:
                raise DownloadError(f"Download failed with HTTP {response.status_code} for {url}")
            total = int(response.headers.get("content-length", 0) or 0)
            progress = DownloadProgress(total, interval=interval, clock=clock)
            with open(destination, "wb") as f:
                for chunk in response.iter_bytes(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
                    progress.advance(len(chunk))
                    if on_progress:
                        percent = progress.sample()
                        if percent is not None:
                            on_progress(percent, progress.bytes_received, total)
            if on_progress:
                percent = progress.sample(force=True)
                if percent is not None:
                    on_progress(percent, progress.bytes_received, total)
    except DownloadError:
        raise
    except httpx.TimeoutException as e:
        raise DownloadError(f"Timed out after {timeout:.0f}s downloading {url}: {e}") from e
    except httpx.HTTPError as e:
        raise DownloadError(f"Error downloading {url}: {e}") from e
    except OSError as e:
        raise DownloadError(f"Could not write {destination}: {e}") from e

    logger.debug("received %d bytes (declared %d)", progress.bytes_received, total)
    return progress.bytes_received
