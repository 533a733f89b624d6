"""
The core application services, containing the installation business logic.

This module defines the per-component pipeline (ComponentPipeline) that takes
one component from discovery to a verified install directory, and the main
orchestrator (InstallerService) that runs the pipelines one after another and
then produces the configuration and the database.
"""

import dataclasses
import enum
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from .acquisition import FallbackOrchestrator
from .discovery import SourceDiscoverer
from .domain import (
    Acquired,
    ArchiveExtractor,
    Component,
    DownloadStatistics,
    NeedsManualIntervention,
    StackLayout,
)
from .exceptions import (
    AcquisitionError,
    ConfigurationError,
    ExtractionError,
    InfrastructureError,
    VerificationError,
)

logger = logging.getLogger(__name__)

InterventionHandler = Callable[[NeedsManualIntervention], Awaitable[Optional[Path]]]
FailureHandler = Callable[[Component, str], Awaitable[bool]]


class ComponentStatus(enum.Enum):
    ALREADY_INSTALLED = "already installed"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclasses.dataclass
class InstallReport:
    """What happened during one installer run."""

    statuses: Dict[str, ComponentStatus] = dataclasses.field(default_factory=dict)
    failures: Dict[str, str] = dataclasses.field(default_factory=dict)
    artifacts: List[Path] = dataclasses.field(default_factory=list)
    database_ready: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.failures


class ComponentPipeline:
    """Encapsulates the full acquisition pipeline for a single component."""

    def __init__(
        self,
        discoverer: SourceDiscoverer,
        orchestrator: FallbackOrchestrator,
        extractor: ArchiveExtractor,
        layout: StackLayout,
        intervention_handler: Optional[InterventionHandler] = None,
    ):
        """Initializes the pipeline with necessary dependencies (ports)."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.discoverer = discoverer
        self.orchestrator = orchestrator
        self.extractor = extractor
        self.layout = layout
        self.intervention_handler = intervention_handler

    async def _resolve_manually(self, request: NeedsManualIntervention) -> Acquired:
        if self.intervention_handler is None:
            raise AcquisitionError(request.instructions)
        artifact = await self.intervention_handler(request)
        if artifact is None:
            raise AcquisitionError(
                f"{request.component.name} was abandoned by the operator. "
                f"To retry later, place the file in {request.downloads_dir} "
                f"and run the installer again."
            )
        return Acquired(request.component, artifact)

    async def _install(self, acquired: Acquired):
        """Extracts the artifact and checks the marker, with one corrective pass."""
        component = acquired.component
        destination = component.install_dir(self.layout)
        await self.extractor.extract(
            acquired.artifact, destination, component.strip, raw_name=component.marker
        )

        if component.is_installed(self.layout):
            return
        self.logger.warning(
            f"{component.marker} not found after extracting {acquired.artifact.name}, "
            f"looking for it in a nested folder"
        )
        if self.extractor.hoist(destination, component.marker) and component.is_installed(
            self.layout
        ):
            return
        raise VerificationError(
            f"{component.name} was extracted but {component.marker_path(self.layout)} "
            f"is missing. Extract {acquired.artifact} manually so that this file "
            f"exists, then run the installer again."
        )

    async def run(self, component: Component) -> ComponentStatus:
        """Executes the sequential steps for installing one component.

        Args:
            component: The component to install.

        Returns:
            ALREADY_INSTALLED when its marker file exists, INSTALLED otherwise.

        Raises:
            AcquisitionError: If no artifact could be obtained.
            VerificationError: If the extracted layout lacks the marker file.
            ExtractionError: If the artifact could not be extracted.
        """

        if component.is_installed(self.layout):
            self.logger.info(f"{component.name} is already installed, skipping")
            return ComponentStatus.ALREADY_INSTALLED

        self.logger.info(f"Starting pipeline for {component.name}...")

        # Step 1: Discover (Component -> candidates)
        candidates = await self.discoverer.discover(component)

        # Step 2: Acquire (candidates -> artifact on disk, or the operator)
        outcome = await self.orchestrator.acquire(component, candidates)
        if isinstance(outcome, NeedsManualIntervention):
            outcome = await self._resolve_manually(outcome)

        # Step 3: Normalize (artifact -> canonical install directory)
        await self._install(outcome)

        self.logger.info(f"Successfully installed {component.name}")
        return ComponentStatus.INSTALLED


class InstallerService:
    """Orchestrates a full installation by running pipelines in order."""

    def __init__(
        self,
        pipeline: ComponentPipeline,
        components: Sequence[Component],
        synthesizer,
        bootstrapper,
        server_factory,
        statistics: DownloadStatistics,
        failure_handler: Optional[FailureHandler] = None,
    ):
        """Initializes the service with the pipeline and post-install steps."""
        self.pipeline = pipeline
        self.components = list(components)
        self.synthesizer = synthesizer
        self.bootstrapper = bootstrapper
        self.server_factory = server_factory
        self.statistics = statistics
        self.failure_handler = failure_handler

    def select(self, keys: Optional[Sequence[str]]) -> List[Component]:
        if not keys:
            return list(self.components)
        known = {component.key: component for component in self.components}
        unknown = [key for key in keys if key not in known]
        if unknown:
            raise ConfigurationError(
                f"Unknown component(s) {', '.join(unknown)}; "
                f"choose from {', '.join(known)}"
            )
        return [component for component in self.components if component.key in keys]

    async def _install_components(self, components: List[Component], report: InstallReport):
        with logging_redirect_tqdm():
            for component in tqdm(components, desc="Components", unit="component"):
                try:
                    report.statuses[component.key] = await self.pipeline.run(component)
                except (AcquisitionError, VerificationError, ExtractionError) as e:
                    logger.error(f"{component.name} could not be installed: {e}")
                    report.statuses[component.key] = ComponentStatus.FAILED
                    report.failures[component.key] = str(e)
                    if self.failure_handler is None or not await self.failure_handler(
                        component, str(e)
                    ):
                        raise AcquisitionError(
                            f"Installation aborted after {component.name} failed"
                        ) from e

    async def _prepare_database(self, report: InstallReport):
        init = await self.bootstrapper.initialize()
        if not init.success:
            raise InfrastructureError(
                f"The database could not be initialized ({init.message}). "
                f"Run {self.bootstrapper.executable('mariadb-install-db')} "
                f"--datadir={self.bootstrapper.layout.data_dir} manually and retry."
            )
        async with self.server_factory(self.bootstrapper):
            result = await self.bootstrapper.apply_credentials()
        if not result.success:
            raise InfrastructureError(
                f"Creating the application database failed ({result.message}): "
                f"{result.stderr.strip()}"
            )
        report.database_ready = True

    async def run(
        self, component_keys: Optional[Sequence[str]] = None, skip_database: bool = False
    ) -> InstallReport:
        """Installs the requested components, then configures the stack."""

        components = self.select(component_keys)
        logger.info(
            f"Starting installer. Components: {[c.key for c in components]}"
        )

        report = InstallReport()
        try:
            await self._install_components(components, report)

            report.artifacts = self.synthesizer.write_all()

            database_installed = report.statuses.get("mariadb") in (
                ComponentStatus.INSTALLED,
                ComponentStatus.ALREADY_INSTALLED,
            )
            if skip_database:
                logger.info("Skipping database initialization as requested")
            elif database_installed:
                await self._prepare_database(report)
        finally:
            logger.info(self.statistics.summary())

        logger.info("All installation steps completed.")
        return report
