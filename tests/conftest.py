import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import httpx
import pytest

from portable_stack.application.domain import (
    Component,
    Downloader,
    FetchFailed,
    FetchSucceeded,
    ParameterSet,
    Prober,
    ProbeResult,
    ProcessResult,
    ProcessRunner,
)


class FakeRunner(ProcessRunner):
    """Records invocations and answers from a scripted list of results."""

    def __init__(self, results: Optional[List[ProcessResult]] = None, on_run=None):
        self.calls = []
        self.results = list(results or [])
        self.on_run = on_run

    async def run(self, executable, args=(), cwd=None, timeout=300):
        self.calls.append((Path(executable), list(args)))
        if self.on_run is not None:
            outcome = self.on_run(Path(executable), list(args))
            if outcome is not None:
                return outcome
        if self.results:
            return self.results.pop(0)
        return ProcessResult(success=True, exit_code=0)


class Router:
    """A tiny request router for httpx.MockTransport."""

    def __init__(self):
        self.routes: Dict[tuple, object] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, response):
        self.routes[(method, url)] = response

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        route = self.routes.get((request.method, url))
        if route is None:
            route = self.routes.get((request.method, url.split("?")[0]))
        if route is None:
            return httpx.Response(404)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        # Responses are single use; hand out a copy each time.
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def methods(self) -> List[str]:
        return [request.method for request in self.requests]


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
async def client(router):
    async with httpx.AsyncClient(transport=httpx.MockTransport(router)) as http_client:
        yield http_client


@pytest.fixture
def params(tmp_path) -> ParameterSet:
    return ParameterSet.create(
        root=tmp_path / "stack",
        app_port=9090,
        db_port=4400,
        db_name="shop",
        db_user="shop_user",
        db_password="s3cret",
    )


def make_component(key: str = "apache", **overrides) -> Component:
    values = dict(
        key=key,
        name=key.title(),
        marker="bin/httpd.exe",
        min_size=1000,
        page_url=f"https://example.org/{key}/download",
        manual_pattern=f"{key}-*.zip",
        strip=True,
        fallback_urls=(f"https://fallback.example.org/{key}-1.0.0.zip",),
    )
    values.update(overrides)
    return Component(**values)


def build_zip(path: Path, entries: Dict[str, bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


def tree(root: Path) -> Sequence[str]:
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*"))


class FakeProber(Prober):
    """Answers probes from a url -> ProbeResult mapping; unknown URLs are 404."""

    def __init__(self, results: Optional[Dict[str, ProbeResult]] = None):
        self.results = dict(results or {})
        self.probed: List[str] = []

    def ok(self, url: str, length: int = -1) -> "FakeProber":
        self.results[url] = ProbeResult(url, True, 200, length)
        return self

    async def probe(self, url):
        self.probed.append(url)
        return self.results.get(url, ProbeResult(url, False, 404))


class FakeDownloader(Downloader):
    """Writes scripted payloads; a URL without a payload fails."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None):
        self.payloads = dict(payloads or {})
        self.fetched: List[str] = []

    async def download(self, url, destination, description):
        self.fetched.append(url)
        if url not in self.payloads:
            return FetchFailed(reason="HTTPStatusError: 404")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.payloads[url])
        return FetchSucceeded(destination, len(self.payloads[url]), 0.01)
