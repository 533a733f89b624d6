"""
HTTP implementations of the DiscoveryStrategy port, one per upstream.

Each strategy owns the URL shapes and the filename pattern of exactly one
upstream, so a changed download page only ever touches one class here.
"""

import re
from typing import Any, List, Optional, Sequence
from urllib.parse import urljoin

import httpx

from ..application.domain import Candidate, DiscoveryStrategy
from ..application.exceptions import DiscoveryError
from ..application.versions import dedupe, in_series, parse_version, sort_freshest_first

from .api_models import (
    ComposerVersions,
    GitHubRelease,
    GitHubReleaseList,
    PhpReleaseIndex,
)
from .base_client import BaseClient


def scrape_index(
    html: str, pattern: str, base_url: str, series: Optional[str] = None
) -> List[str]:
    """
    Pulls matching filenames out of an HTML listing as absolute URLs.

    The pattern may capture the link target in a group named 'file'; otherwise
    the whole match is used. Relative names are qualified against the page's
    own URL, repeats are dropped, and the result is ordered freshest first.
    """
    regex = re.compile(pattern)
    urls = []
    for match in regex.finditer(html):
        name = match.group("file") if "file" in regex.groupindex else match.group(0)
        if not in_series(parse_version(_filename(name)), series):
            continue
        urls.append(urljoin(base_url, name))
    return sort_freshest_first(dedupe(urls), name=_filename)


def _filename(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1]


class HttpStrategy(BaseClient, DiscoveryStrategy):
    """Shared request helpers for the concrete upstream strategies."""

    async def _get(self, url: str, **kwargs) -> httpx.Response:
        """GET a listing; any transport or status failure becomes a DiscoveryError."""
        headers = {**self.headers, **kwargs.pop("headers", {})}
        try:
            response = await self.client.get(
                url,
                headers=headers,
                timeout=self.timeout,
                follow_redirects=True,
                **kwargs,
            )
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DiscoveryError(f"{url}: {type(e).__name__}: {e}") from e
        return response

    async def _get_text(self, url: str) -> str:
        return (await self._get(url)).text

    async def _get_json(self, url: str, **kwargs) -> Any:
        response = await self._get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise DiscoveryError(f"{url} did not return JSON: {e}") from e


class ApacheLoungeSource(HttpStrategy):
    """Web server builds listed on the Apache Lounge download page."""

    component_key = "apache"

    def __init__(self, client, user_agent, timeout, index_url: str, pattern: str):
        super().__init__(client, user_agent, timeout)
        self.index_url = index_url
        self.pattern = pattern

    async def primary(self) -> List[Candidate]:
        html = await self._get_text(self.index_url)
        return [Candidate(url) for url in scrape_index(html, self.pattern, self.index_url)]


class PhpWindowsSource(HttpStrategy):
    """
    Runtime builds from windows.php.net.

    The releases.json document only names the newest patch of each supported
    series, so a series that has dropped out of it is found by scraping the
    release and archive listings instead.
    """

    component_key = "php"

    def __init__(
        self,
        client,
        user_agent,
        timeout,
        releases_url: str,
        index_urls: Sequence[str],
        pattern: str,
        build_variant: str,
        series: Optional[str] = None,
    ):
        super().__init__(client, user_agent, timeout)
        self.releases_url = releases_url
        self.index_urls = list(index_urls)
        self.pattern = pattern
        self.build_variant = build_variant
        self.series = series

    async def primary(self) -> List[Candidate]:
        index = PhpReleaseIndex.validate_python(await self._get_json(self.releases_url))
        base_url = self.index_urls[0] if self.index_urls else self.releases_url

        candidates = []
        for release in sort_freshest_first(index.values(), name=lambda r: r.version):
            if not in_series(parse_version(release.version), self.series):
                continue
            build = release.build(self.build_variant)
            if build is None or build.zip is None:
                continue
            candidates.append(
                Candidate(urljoin(base_url, build.zip.path), sha256=build.zip.sha256)
            )
        return candidates

    async def secondary(self) -> List[Candidate]:
        urls = []
        for index_url in self.index_urls:
            html = await self._get_text(index_url)
            urls.extend(scrape_index(html, self.pattern, index_url, self.series))
        # Both listings are merged before ordering; archives hold the older patches.
        return [
            Candidate(url) for url in sort_freshest_first(dedupe(urls), name=_filename)
        ]


class MariaDbArchiveSource(HttpStrategy):
    """
    Database engine builds from the MariaDB archive.

    The archive root lists one directory per release; the zip inside follows a
    fixed naming template, so the version captured from the directory name is
    substituted into it.
    """

    component_key = "mariadb"

    def __init__(
        self,
        client,
        user_agent,
        timeout,
        index_url: str,
        pattern: str,
        file_template: str,
        series: Optional[str] = None,
        limit: int = 5,
    ):
        super().__init__(client, user_agent, timeout)
        self.index_url = index_url
        self.pattern = re.compile(pattern)
        self.file_template = file_template
        self.series = series
        self.limit = limit

    async def primary(self) -> List[Candidate]:
        html = await self._get_text(self.index_url)
        if "version" not in self.pattern.groupindex:
            raise DiscoveryError("The MariaDB pattern needs a 'version' group")

        versions = dedupe(
            match.group("version") for match in self.pattern.finditer(html)
        )
        versions = [v for v in versions if in_series(parse_version(v), self.series)]
        versions = sort_freshest_first(versions)[: self.limit]
        return [
            Candidate(urljoin(self.index_url, self.file_template.format(version=v)))
            for v in versions
        ]


class ComposerSource(HttpStrategy):
    """Dependency manager phar files listed by getcomposer.org/versions."""

    component_key = "composer"

    def __init__(self, client, user_agent, timeout, versions_url: str, base_url: str):
        super().__init__(client, user_agent, timeout)
        self.versions_url = versions_url
        self.base_url = base_url

    async def primary(self) -> List[Candidate]:
        versions = ComposerVersions.model_validate(await self._get_json(self.versions_url))
        return [
            Candidate(urljoin(self.base_url, entry.path)) for entry in versions.stable
        ]


class GitForWindowsSource(HttpStrategy):
    """
    Version-control client from the GitHub releases of git-for-windows.

    'releases/latest' sometimes carries no portable asset (for example while
    a release is still uploading), so the secondary tier lists several recent
    releases and applies the same pattern to each, newest first.
    """

    component_key = "git"

    def __init__(
        self,
        client,
        user_agent,
        timeout,
        api_url: str,
        asset_pattern: str,
        widen_count: int = 5,
    ):
        super().__init__(client, user_agent, timeout)
        self.api_url = api_url.rstrip("/")
        self.asset_pattern = re.compile(asset_pattern)
        self.widen_count = widen_count

    @property
    def headers(self):
        return {**super().headers, "Accept": "application/vnd.github+json"}

    def _matching_assets(self, release: GitHubRelease) -> List[Candidate]:
        return [
            Candidate(asset.browser_download_url)
            for asset in release.assets
            if self.asset_pattern.search(asset.name)
        ]

    async def primary(self) -> List[Candidate]:
        release = GitHubRelease.model_validate(
            await self._get_json(f"{self.api_url}/releases/latest")
        )
        return self._matching_assets(release)

    async def secondary(self) -> List[Candidate]:
        releases = GitHubReleaseList.validate_python(
            await self._get_json(
                f"{self.api_url}/releases", params={"per_page": self.widen_count}
            )
        )
        candidates = []
        for release in releases:
            if release.draft or release.prerelease:
                continue
            candidates.extend(self._matching_assets(release))
        return candidates


STRATEGIES = {
    strategy.component_key: strategy
    for strategy in (
        ApacheLoungeSource,
        PhpWindowsSource,
        MariaDbArchiveSource,
        ComposerSource,
        GitForWindowsSource,
    )
}
