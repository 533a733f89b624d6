from typing import List

import httpx
import pytest

from portable_stack.application.discovery import SourceDiscoverer
from portable_stack.application.domain import Candidate, DiscoveryStrategy
from portable_stack.application.exceptions import ConfigurationError, DiscoveryError
from portable_stack.infrastructure.location_cache import JsonLocationCache
from portable_stack.infrastructure.prober import HttpProber
from portable_stack.infrastructure.sources import GitForWindowsSource, PhpWindowsSource

from conftest import FakeProber, make_component

AGENT = "portable-stack-tests/1.0"


class ScriptedStrategy(DiscoveryStrategy):
    def __init__(self, primary=None, secondary=None):
        self._primary = primary
        self._secondary = secondary
        self.calls: List[str] = []

    async def _answer(self, tier, value):
        self.calls.append(tier)
        if isinstance(value, Exception):
            raise value
        return [Candidate(url) for url in value or []]

    async def primary(self):
        return await self._answer("primary", self._primary)

    async def secondary(self):
        return await self._answer("secondary", self._secondary)


@pytest.fixture
def cache(tmp_path):
    return JsonLocationCache(tmp_path / "url-cache.json")


async def test_latest_release_with_one_asset_is_cached(client, router, cache):
    api = "https://api.example.org/repos/git-for-windows/git"
    asset_url = "https://github.example.org/dl/PortableGit-2.46.0-64-bit.7z.exe"
    router.add(
        "GET",
        f"{api}/releases/latest",
        httpx.Response(
            200,
            json={
                "tag_name": "v2.46.0.windows.1",
                "assets": [
                    {"name": "PortableGit-2.46.0-64-bit.7z.exe", "browser_download_url": asset_url}
                ],
            },
        ),
    )
    router.add("HEAD", asset_url, httpx.Response(200, headers={"Content-Length": "60000000"}))
    component = make_component("git", marker="cmd/git.exe", min_size=40_000_000)
    source = GitForWindowsSource(
        client, AGENT, 5, api_url=api, asset_pattern=r"^PortableGit-.*-64-bit\.7z\.exe$"
    )
    discoverer = SourceDiscoverer({"git": source}, cache, HttpProber(client, AGENT, 5))

    candidates = await discoverer.discover(component)

    assert [c.url for c in candidates] == [asset_url]
    assert cache.get("git") == asset_url


async def test_unreachable_api_falls_back_to_html_index(client, router, cache):
    router.add(
        "GET",
        "https://php.example.org/releases/releases.json",
        httpx.ConnectError("unreachable"),
    )
    router.add(
        "GET",
        "https://php.example.org/releases/",
        httpx.Response(
            200,
            text='<a href="php-1.2.0-Win32-vs16-x64.zip"></a>'
            '<a href="php-1.3.5-Win32-vs16-x64.zip"></a>'
            '<a href="php-1.3.1-Win32-vs16-x64.zip"></a>',
        ),
    )
    source = PhpWindowsSource(
        client,
        AGENT,
        5,
        releases_url="https://php.example.org/releases/releases.json",
        index_urls=["https://php.example.org/releases/"],
        pattern=r"(?P<file>php-\d+\.\d+\.\d+-Win32-vs16-x64\.zip)",
        build_variant="ts-vs16-x64",
    )
    discoverer = SourceDiscoverer({"php": source}, cache, HttpProber(client, AGENT, 5))

    candidates = await discoverer.discover(make_component("php", marker="php.exe"))

    assert [c.filename for c in candidates] == [
        "php-1.3.5-Win32-vs16-x64.zip",
        "php-1.3.1-Win32-vs16-x64.zip",
        "php-1.2.0-Win32-vs16-x64.zip",
    ]
    # Nothing answered the probes, so nothing is remembered.
    assert cache.get("php") is None


async def test_cache_hit_short_circuits_every_tier(cache):
    cache.put("apache", "https://cached.example.org/httpd.zip")
    strategy = ScriptedStrategy(primary=["https://new.example.org/httpd.zip"])
    prober = FakeProber()
    discoverer = SourceDiscoverer({"apache": strategy}, cache, prober)

    candidates = await discoverer.discover(make_component("apache"))

    assert candidates == [Candidate("https://cached.example.org/httpd.zip")]
    assert strategy.calls == []
    assert prober.probed == []


async def test_secondary_only_runs_when_primary_is_empty(cache):
    strategy = ScriptedStrategy(primary=[], secondary=["https://wide.example.org/a-1.0.0.zip"])
    discoverer = SourceDiscoverer({"apache": strategy}, cache, FakeProber())

    candidates = await discoverer.discover(make_component("apache"))

    assert strategy.calls == ["primary", "secondary"]
    assert [c.url for c in candidates] == ["https://wide.example.org/a-1.0.0.zip"]


async def test_failing_tiers_fall_back_to_configured_urls(cache):
    strategy = ScriptedStrategy(
        primary=DiscoveryError("HTTP 500"), secondary=ValueError("bad document")
    )
    component = make_component(
        "apache",
        fallback_urls=("https://fb.example.org/one.zip", "https://fb.example.org/two.zip"),
    )
    prober = FakeProber().ok("https://fb.example.org/two.zip", 2_000_000)
    discoverer = SourceDiscoverer({"apache": strategy}, cache, prober)

    candidates = await discoverer.discover(component)

    assert [c.url for c in candidates] == [
        "https://fb.example.org/one.zip",
        "https://fb.example.org/two.zip",
    ]
    assert cache.get("apache") == "https://fb.example.org/two.zip"


async def test_component_without_strategy_uses_fallbacks(cache):
    discoverer = SourceDiscoverer({}, cache, FakeProber())

    candidates = await discoverer.discover(make_component("composer"))

    assert [c.url for c in candidates] == ["https://fallback.example.org/composer-1.0.0.zip"]


async def test_no_location_at_all_is_a_configuration_error(cache):
    discoverer = SourceDiscoverer({}, cache, FakeProber())

    with pytest.raises(ConfigurationError):
        await discoverer.discover(make_component("composer", fallback_urls=()))


async def test_duplicate_urls_are_dropped(cache):
    strategy = ScriptedStrategy(
        primary=["https://a.example.org/x-2.0.0.zip", "https://a.example.org/x-2.0.0.zip"]
    )
    discoverer = SourceDiscoverer({"apache": strategy}, cache, FakeProber())

    candidates = await discoverer.discover(make_component("apache"))

    assert len(candidates) == 1


async def test_undersized_candidate_is_not_cached(cache):
    strategy = ScriptedStrategy(primary=["https://a.example.org/x-2.0.0.zip"])
    prober = FakeProber().ok("https://a.example.org/x-2.0.0.zip", 10)
    discoverer = SourceDiscoverer({"apache": strategy}, cache, prober)

    await discoverer.discover(make_component("apache", min_size=5000))

    assert cache.get("apache") is None
