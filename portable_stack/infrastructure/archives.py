"""
Extraction and layout normalization of downloaded artifacts.

Upstreams wrap their files differently: some zips hold one versioned folder,
some a folder plus loose readme files, some nothing at all. Everything ends up
with the component's own top level (bin/, lib/, ...) directly inside its
install directory.
"""

import asyncio
import logging
import shutil
import uuid
import zipfile
from pathlib import Path, PurePosixPath
from typing import Optional

from ..application.domain import ArchiveExtractor, ArchiveKind, ProcessRunner
from ..application.exceptions import ExtractionError


def move_contents(source: Path, destination: Path):
    """Moves every entry of source into destination, merging directories."""
    destination.mkdir(parents=True, exist_ok=True)
    for item in list(source.iterdir()):
        target = destination / item.name
        if target.is_dir() and item.is_dir():
            move_contents(item, target)
            item.rmdir()
            continue
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()
        shutil.move(str(item), str(target))


def single_subdirectory(directory: Path) -> Optional[Path]:
    """Returns the only entry of a directory if it is a directory, else None."""
    entries = list(directory.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return None


class ArchiveNormalizer(ArchiveExtractor):
    """Extracts zip, self-extracting and plain artifacts into a canonical layout."""

    def __init__(self, runner: ProcessRunner, sfx_timeout: float = 600):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.runner = runner
        self.sfx_timeout = sfx_timeout

    def _scratch_dir(self, destination: Path) -> Path:
        return destination.parent / f".{destination.name}.extract-{uuid.uuid4().hex[:8]}"

    def _unzip(self, archive: Path, target: Path):
        try:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(target)
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            raise ExtractionError(f"{archive.name}: {e}") from e

    def _unzip_stripped(self, archive: Path, destination: Path):
        """Extracts via a scratch directory and drops one wrapping folder, if any."""
        scratch = self._scratch_dir(destination)
        try:
            self._unzip(archive, scratch)
            wrapper = single_subdirectory(scratch)
            if wrapper is not None:
                self.logger.debug(f"Stripping wrapper folder {wrapper.name}")
                move_contents(wrapper, destination)
            else:
                move_contents(scratch, destination)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    async def _run_self_extractor(self, archive: Path, destination: Path):
        result = await self.runner.run(
            archive,
            [f"-o{destination}", "-y"],
            cwd=destination.parent,
            timeout=self.sfx_timeout,
        )
        if not result.success:
            raise ExtractionError(
                f"{archive.name} failed to self-extract: {result.message} "
                f"{result.stderr.strip()}".strip()
            )

    async def extract(
        self,
        archive: Path,
        destination: Path,
        strip: bool = False,
        raw_name: Optional[str] = None,
    ):
        """
        Extract an artifact into its install directory.

        Args:
            archive: The downloaded file.
            destination: The component's install directory.
            strip: Drop a single wrapping top-level folder. When the archive
                   has several top-level entries nothing is stripped.
            raw_name: Where a raw artifact lands, relative to the destination.
                      Defaults to the artifact's own file name.

        Raises:
            ExtractionError: If the archive is corrupt or the self-extractor
                             exits with a non-zero code.
        """

        kind = ArchiveKind.from_filename(archive.name)
        destination.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Extracting {archive.name} into {destination} ({kind.value})")

        if kind is ArchiveKind.ZIP:
            if strip:
                await asyncio.to_thread(self._unzip_stripped, archive, destination)
            else:
                await asyncio.to_thread(self._unzip, archive, destination)
        elif kind is ArchiveKind.SELF_EXTRACTING:
            await self._run_self_extractor(archive, destination)
        else:
            target = destination.joinpath(*PurePosixPath(raw_name or archive.name).parts)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(archive, target)

    def hoist(self, destination: Path, marker: str) -> bool:
        """
        Corrective pass for an unexpected layout.

        Searches below the destination for the shallowest directory that holds
        the marker at its expected relative path and moves that directory's
        contents up, exactly like stripping a single wrapper folder.

        Returns:
            True if a directory was hoisted.
        """

        relative = PurePosixPath(marker)
        found = None
        for candidate in sorted(destination.rglob(relative.name), key=lambda p: len(p.parts)):
            root = candidate
            for _ in relative.parts:
                root = root.parent
            if root != destination and root.joinpath(*relative.parts) == candidate:
                found = root
                break

        if found is None:
            self.logger.debug(f"No directory below {destination} contains {marker}")
            return False

        self.logger.info(f"Hoisting {found.relative_to(destination)} into {destination}")
        # Rename first so an entry named like the wrapper cannot collide.
        staging = destination / f".hoist-{uuid.uuid4().hex[:8]}"
        found.rename(staging)
        move_contents(staging, destination)
        staging.rmdir()

        parent = found.parent
        while parent != destination and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
        return True
