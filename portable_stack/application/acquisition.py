"""
The Fallback Orchestrator: walks a candidate list until one artifact is on disk.

Candidates are tried strictly in order. A candidate is only passed over when
its reachability probe fails or its downloaded file fails verification. When
the list is exhausted the result is a NeedsManualIntervention outcome rather
than a blocking prompt, so the caller decides how to involve the operator.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .domain import (
    Acquired,
    AcquisitionOutcome,
    Candidate,
    Component,
    Downloader,
    FetchFailed,
    Hasher,
    NeedsManualIntervention,
    Prober,
)

# HEAD is not implemented everywhere; these statuses say nothing about the file.
_PROBE_INCONCLUSIVE = (405, 501)


class FallbackOrchestrator:
    """Drives probing and fetching across one component's candidates."""

    def __init__(
        self,
        prober: Prober,
        downloader: Downloader,
        hasher: Hasher,
        downloads_dir: Path,
        watch_dir: Path,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.prober = prober
        self.downloader = downloader
        self.hasher = hasher
        self.downloads_dir = Path(downloads_dir)
        self.watch_dir = Path(watch_dir)

    def artifact_path(self, component: Component, candidate: Candidate) -> Path:
        return self.downloads_dir / (candidate.filename or f"{component.key}.download")

    async def _verify(
        self, component: Component, candidate: Candidate, path: Path
    ) -> Optional[str]:
        """Returns why the artifact is unacceptable, or None when it passes."""
        size = path.stat().st_size
        if size < component.min_size:
            return f"{size:,} bytes is below the minimum of {component.min_size:,}"
        if candidate.sha256:
            digest = await self.hasher.sha256(path)
            if digest.lower() != candidate.sha256.lower():
                return f"checksum {digest} does not match {candidate.sha256}"
        return None

    async def _reuse_existing(
        self, component: Component, candidate: Candidate
    ) -> Optional[Path]:
        path = self.artifact_path(component, candidate)
        if not path.is_file():
            return None
        problem = await self._verify(component, candidate, path)
        if problem:
            self.logger.info(f"Ignoring existing {path.name}: {problem}")
            return None
        return path

    async def acquire(
        self, component: Component, candidates: Sequence[Candidate]
    ) -> AcquisitionOutcome:
        """
        Get one verified artifact for the component onto disk.

        Args:
            component: The component being installed.
            candidates: Download locations in priority order.

        Returns:
            Acquired with the artifact path, or NeedsManualIntervention once
            every candidate has been tried.
        """

        tried: List[str] = []
        for candidate in candidates:
            existing = await self._reuse_existing(component, candidate)
            if existing is not None:
                self.logger.info(f"Reusing previously downloaded {existing.name}")
                return Acquired(component, existing, candidate.url)

            tried.append(candidate.url)
            probe = await self.prober.probe(candidate.url)
            if not probe.accessible and probe.status_code not in _PROBE_INCONCLUSIVE:
                self.logger.warning(
                    f"Skipping {candidate.url}: "
                    f"{probe.error or f'HTTP {probe.status_code}'}"
                )
                continue

            destination = self.artifact_path(component, candidate)
            outcome = await self.downloader.download(
                candidate.url, destination, component.name
            )
            if isinstance(outcome, FetchFailed):
                continue

            problem = await self._verify(component, candidate, destination)
            if problem:
                self.logger.warning(f"Discarding {destination.name}: {problem}")
                destination.unlink(missing_ok=True)
                continue

            return Acquired(component, destination, candidate.url)

        self.logger.error(
            f"All {len(tried)} download location(s) for {component.name} failed"
        )
        return NeedsManualIntervention(
            component=component,
            page_url=component.page_url,
            downloads_dir=self.downloads_dir,
            watch_dir=self.watch_dir,
            pattern=component.manual_pattern,
            min_size=component.min_size,
            tried=tuple(tried),
        )
