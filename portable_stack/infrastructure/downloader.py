"""HTTP implementation of the Downloader port."""

import asyncio
import contextlib
import os
from pathlib import Path
from typing import AsyncGenerator, Generator

import httpx
from tqdm import tqdm

from ..application.domain import (
    Downloader,
    DownloadStatistics,
    FetchFailed,
    FetchOutcome,
    FetchSucceeded,
    Stopwatch,
)
from ..application.exceptions import DownloadError

from .base_client import BaseClient
from .decorators import (
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    download_retrying,
)

# Anything at or below this size is an error page or a truncated body,
# whatever minimum the caller asks for.
MIN_ARTIFACT_BYTES = 1000


class HttpDownloader(BaseClient, Downloader):
    """A downloader that fetches files via HTTP atomically, with retries."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str,
        timeout: float,
        chunk_size: int,
        statistics: DownloadStatistics,
        attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        show_progress: bool = True,
    ):
        """Initializes the downloader adapter."""
        super().__init__(client, user_agent, timeout)
        self.chunk_size = chunk_size
        self.statistics = statistics
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.show_progress = show_progress

    @contextlib.contextmanager
    def _atomic_target(self, destination: Path) -> Generator[Path, None, None]:
        """Provides a fresh temporary '.tmp' path and ensures cleanup."""
        part_path = destination.with_name(destination.name + ".tmp")
        destination.parent.mkdir(parents=True, exist_ok=True)
        part_path.unlink(missing_ok=True)
        try:
            yield part_path
        finally:
            part_path.unlink(missing_ok=True)

    async def _stream_chunks(
        self, response: httpx.Response, target_file: Path,
    ) -> AsyncGenerator[int, None]:
        """Produce byte chunks from a response and write them to a file."""
        with open(target_file, "wb") as f:
            async for chunk in response.aiter_bytes(self.chunk_size):
                await asyncio.to_thread(f.write, chunk)
                yield len(chunk)

    async def _consume_stream_with_progress(
        self,
        stream: AsyncGenerator[int, None],
        total_size: int,
        desc: str,
    ):
        """Consume the byte stream to update a TQDM progress bar."""

        with tqdm(
            total=total_size or None,
            unit="B",
            unit_scale=True,
            desc=desc,
            leave=False,
            disable=not self.show_progress,
        ) as progress_bar:
            async for progress in stream:
                progress_bar.update(progress)

    async def _stream_from_network(self, url: str, target_file: Path, desc: str):
        """Manage the network request and the streaming process."""
        async with self.client.stream(
            "GET",
            url,
            headers=self.headers,
            timeout=self.timeout,
            follow_redirects=True,
        ) as response:
            response.raise_for_status()
            total = int(response.headers.get("Content-Length", 0) or 0)
            stream = self._stream_chunks(response, target_file)
            await self._consume_stream_with_progress(stream, total, desc)

    async def _execute_atomic_download(
        self, url: str, destination: Path, desc: str
    ) -> int:
        """Run one attempt: stream to the temp path, check it, then promote it."""
        with self._atomic_target(destination) as part_path:
            await self._stream_from_network(url, part_path, desc)

            if not part_path.is_file():
                raise DownloadError(f"No data was written for {url}")
            size = part_path.stat().st_size
            if size <= MIN_ARTIFACT_BYTES:
                raise DownloadError(
                    f"Downloaded only {size} bytes from {url}, "
                    f"expected more than {MIN_ARTIFACT_BYTES}"
                )

            os.replace(part_path, destination)
        return size

    async def download(
        self, url: str, destination: Path, description: str
    ) -> FetchOutcome:
        """
        Download one URL to a final path, retrying transient failures.

        This is the public method that fulfills the Downloader port contract.
        Each attempt starts from an empty temp file next to the destination;
        the destination only ever appears fully written.

        Args:
            url: The URL to fetch.
            destination: The final desired path for the file.
            description: A short label for logs and the progress bar.

        Returns:
            FetchSucceeded with size and elapsed time, or FetchFailed with the
            last error once every attempt is used up.
        """

        self.statistics.record_attempt()
        stopwatch = Stopwatch()
        self.logger.info(f"Downloading {description} from {url}...")

        try:
            async for attempt in download_retrying(self.attempts, self.retry_delay):
                with attempt:
                    size = await self._execute_atomic_download(
                        url, destination, description
                    )
        except (httpx.HTTPError, httpx.InvalidURL, DownloadError) as e:
            self.statistics.record_failure()
            reason = f"{type(e).__name__}: {e}"
            self.logger.warning(f"Giving up on {url}: {reason}")
            return FetchFailed(reason=reason)

        elapsed = stopwatch.elapsed
        self.statistics.record_success(size, elapsed)
        self.logger.info(
            f"Finished downloading {destination.name} ({size:,} bytes, {elapsed:.1f}s)"
        )
        return FetchSucceeded(path=destination, bytes=size, duration=elapsed)
