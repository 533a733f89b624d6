import contextlib

import pytest

from portable_stack.application.domain import (
    Acquired,
    Candidate,
    DownloadStatistics,
    NeedsManualIntervention,
    ProcessResult,
)
from portable_stack.application.exceptions import (
    AcquisitionError,
    ConfigurationError,
    InfrastructureError,
    VerificationError,
)
from portable_stack.application.service import (
    ComponentPipeline,
    ComponentStatus,
    InstallerService,
)
from portable_stack.infrastructure.archives import ArchiveNormalizer

from conftest import FakeRunner, build_zip, make_component


class FakeDiscoverer:
    def __init__(self):
        self.discovered = []

    async def discover(self, component):
        self.discovered.append(component.key)
        return [Candidate(url) for url in component.fallback_urls]


class FakeOrchestrator:
    def __init__(self, outcomes):
        self.outcomes = outcomes

    async def acquire(self, component, candidates):
        return self.outcomes[component.key]


def manual_request(component, layout):
    return NeedsManualIntervention(
        component=component,
        page_url=component.page_url,
        downloads_dir=layout.downloads_dir,
        watch_dir=layout.root / "watch",
        pattern=component.manual_pattern,
        min_size=component.min_size,
        tried=component.fallback_urls,
    )


@pytest.fixture
def apache():
    return make_component("apache", marker="bin/httpd.exe", strip=True)


@pytest.fixture
def apache_zip(tmp_path):
    return build_zip(
        tmp_path / "httpd-2.4.62-win64-VS17.zip",
        {"Apache24/bin/httpd.exe": b"MZ", "Apache24/conf/httpd.conf": b"# stock"},
    )


def pipeline_for(params, outcomes, handler=None):
    return ComponentPipeline(
        FakeDiscoverer(),
        FakeOrchestrator(outcomes),
        ArchiveNormalizer(FakeRunner()),
        params.layout,
        intervention_handler=handler,
    )


async def test_installed_marker_skips_the_component(params, apache):
    marker = apache.marker_path(params.layout)
    marker.parent.mkdir(parents=True)
    marker.write_bytes(b"MZ")
    pipeline = pipeline_for(params, {})

    status = await pipeline.run(apache)

    assert status is ComponentStatus.ALREADY_INSTALLED
    assert pipeline.discoverer.discovered == []


async def test_pipeline_installs_and_verifies(params, apache, apache_zip):
    pipeline = pipeline_for(params, {"apache": Acquired(apache, apache_zip)})

    status = await pipeline.run(apache)

    assert status is ComponentStatus.INSTALLED
    assert (params.layout.apache_dir / "bin" / "httpd.exe").is_file()
    assert (params.layout.apache_dir / "conf" / "httpd.conf").is_file()


async def test_misplaced_layout_is_hoisted(params, tmp_path):
    component = make_component("apache", marker="bin/httpd.exe", strip=True)
    archive = build_zip(
        tmp_path / "httpd.zip",
        {"Apache24/bin/httpd.exe": b"MZ", "ReadMe.txt": b"read me"},
    )
    pipeline = pipeline_for(params, {"apache": Acquired(component, archive)})

    status = await pipeline.run(component)

    assert status is ComponentStatus.INSTALLED
    assert component.is_installed(params.layout)
    assert not (params.layout.apache_dir / "Apache24").exists()


async def test_missing_marker_fails_verification(params, tmp_path, apache):
    archive = build_zip(tmp_path / "httpd.zip", {"docs/readme.txt": b"no binaries"})
    pipeline = pipeline_for(params, {"apache": Acquired(apache, archive)})

    with pytest.raises(VerificationError, match="bin"):
        await pipeline.run(apache)


@pytest.mark.parametrize("downloaded", ["composer-stable.phar", "composer (1).phar"])
async def test_raw_artifact_is_installed_under_the_marker_name(params, tmp_path, downloaded):
    composer = make_component(
        "composer", marker="composer.phar", strip=False, manual_pattern="composer*.phar"
    )
    artifact = tmp_path / downloaded
    artifact.write_bytes(b"<?php // composer")
    pipeline = pipeline_for(params, {"composer": Acquired(composer, artifact)})

    status = await pipeline.run(composer)

    assert status is ComponentStatus.INSTALLED
    assert composer.marker_path(params.layout).read_bytes() == b"<?php // composer"
    assert not (composer.install_dir(params.layout) / downloaded).exists()


async def test_manual_intervention_uses_the_handler(params, apache, apache_zip):
    requests = []

    async def handler(request):
        requests.append(request)
        return apache_zip

    outcomes = {"apache": manual_request(apache, params.layout)}
    pipeline = pipeline_for(params, outcomes, handler)

    status = await pipeline.run(apache)

    assert status is ComponentStatus.INSTALLED
    assert requests == [outcomes["apache"]]


async def test_manual_intervention_without_handler_fails(params, apache):
    pipeline = pipeline_for(params, {"apache": manual_request(apache, params.layout)})

    with pytest.raises(AcquisitionError, match="Automatic download"):
        await pipeline.run(apache)


async def test_abandoned_manual_intervention_fails(params, apache):
    async def handler(request):
        return None

    pipeline = pipeline_for(params, {"apache": manual_request(apache, params.layout)}, handler)

    with pytest.raises(AcquisitionError, match="abandoned"):
        await pipeline.run(apache)


class FakePipeline:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.ran = []

    async def run(self, component):
        self.ran.append(component.key)
        if component.key in self.failing:
            raise AcquisitionError(f"{component.key} is unavailable")
        return ComponentStatus.INSTALLED


class FakeSynthesizer:
    def __init__(self):
        self.written = False

    def write_all(self):
        self.written = True
        return []


class FakeBootstrapper:
    def __init__(self, params, init_ok=True, credentials_ok=True):
        self.layout = params.layout
        self.init_ok = init_ok
        self.credentials_ok = credentials_ok
        self.steps = []

    def executable(self, program):
        return self.layout.mariadb_dir / "bin" / program

    async def initialize(self):
        self.steps.append("initialize")
        return ProcessResult(success=self.init_ok, exit_code=0 if self.init_ok else 1)

    async def apply_credentials(self):
        self.steps.append("credentials")
        return ProcessResult(success=self.credentials_ok, exit_code=0)


def server_factory_for(bootstrapper):
    @contextlib.asynccontextmanager
    async def server(_):
        bootstrapper.steps.append("start")
        yield
        bootstrapper.steps.append("stop")

    return server


COMPONENTS = [make_component(key) for key in ("apache", "php", "mariadb")]


def service_for(params, pipeline, bootstrapper, failure_handler=None):
    return InstallerService(
        pipeline=pipeline,
        components=COMPONENTS,
        synthesizer=FakeSynthesizer(),
        bootstrapper=bootstrapper,
        server_factory=server_factory_for(bootstrapper),
        statistics=DownloadStatistics(),
        failure_handler=failure_handler,
    )


async def test_full_run_prepares_the_database(params):
    bootstrapper = FakeBootstrapper(params)
    pipeline = FakePipeline()
    service = service_for(params, pipeline, bootstrapper)

    report = await service.run()

    assert pipeline.ran == ["apache", "php", "mariadb"]
    assert service.synthesizer.written
    assert bootstrapper.steps == ["initialize", "start", "credentials", "stop"]
    assert report.succeeded
    assert report.database_ready


async def test_selected_components_keep_install_order(params):
    pipeline = FakePipeline()
    service = service_for(params, pipeline, FakeBootstrapper(params))

    report = await service.run(component_keys=["php", "apache"])

    assert pipeline.ran == ["apache", "php"]
    assert not report.database_ready


def test_unknown_component_is_rejected(params):
    service = service_for(params, FakePipeline(), FakeBootstrapper(params))

    with pytest.raises(ConfigurationError, match="nginx"):
        service.select(["nginx"])


async def test_skip_database(params):
    bootstrapper = FakeBootstrapper(params)
    service = service_for(params, FakePipeline(), bootstrapper)

    report = await service.run(skip_database=True)

    assert bootstrapper.steps == []
    assert not report.database_ready


async def test_failure_without_handler_aborts(params):
    pipeline = FakePipeline(failing=["php"])
    service = service_for(params, pipeline, FakeBootstrapper(params))

    with pytest.raises(AcquisitionError, match="aborted"):
        await service.run()
    assert pipeline.ran == ["apache", "php"]
    assert not service.synthesizer.written


async def test_operator_may_continue_past_a_failure(params):
    asked = []

    async def keep_going(component, reason):
        asked.append((component.key, reason))
        return True

    pipeline = FakePipeline(failing=["php"])
    service = service_for(params, pipeline, FakeBootstrapper(params), keep_going)

    report = await service.run()

    assert asked == [("php", "php is unavailable")]
    assert pipeline.ran == ["apache", "php", "mariadb"]
    assert report.statuses["php"] is ComponentStatus.FAILED
    assert not report.succeeded
    assert report.database_ready


async def test_database_initialization_failure_is_reported(params):
    bootstrapper = FakeBootstrapper(params, init_ok=False)
    service = service_for(params, FakePipeline(), bootstrapper)

    with pytest.raises(InfrastructureError, match="could not be initialized"):
        await service.run()
    assert bootstrapper.steps == ["initialize"]
