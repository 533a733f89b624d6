"""HTTP implementation of the Prober port."""

import httpx

from ..application.domain import ProbeResult, Prober

from .base_client import BaseClient


class HttpProber(BaseClient, Prober):
    """Checks that a URL exists, and how large it claims to be, without a body."""

    async def probe(self, url: str) -> ProbeResult:
        """
        Issue a HEAD request, following redirects.

        Transport errors become an inaccessible result instead of an
        exception; a 4xx/5xx status code is kept for diagnostics.

        Args:
            url: The candidate URL.

        Returns:
            A ProbeResult with the final status and declared content length
            (-1 when the server does not declare one).
        """

        try:
            response = await self.client.head(
                url,
                headers=self.headers,
                timeout=self.timeout,
                follow_redirects=True,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.logger.debug(f"Probe of {url} failed: {type(e).__name__}: {e}")
            return ProbeResult(url=url, accessible=False, error=str(e) or type(e).__name__)

        try:
            length = int(response.headers.get("Content-Length", -1))
        except ValueError:
            length = -1

        accessible = 200 <= response.status_code < 400
        self.logger.debug(
            f"Probe of {url}: HTTP {response.status_code}, length {length}"
        )
        return ProbeResult(
            url=url,
            accessible=accessible,
            status_code=response.status_code,
            content_length=length,
        )
