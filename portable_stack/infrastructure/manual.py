"""Operator-assisted acquisition through a watched downloads folder."""

import logging
import shutil
from pathlib import Path
from typing import Iterable, Optional

from ..application.domain import NeedsManualIntervention


def default_watch_dir() -> Path:
    """The per-user downloads folder a browser saves into by default."""
    return Path.home() / "Downloads"


class WatchedFolder:
    """Finds an artifact the operator downloaded by hand and copies it in."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def _matches(self, folders: Iterable[Path], pattern: str, min_size: int):
        for folder in folders:
            if not folder.is_dir():
                continue
            for path in folder.glob(pattern):
                if path.is_file() and path.stat().st_size >= min_size:
                    yield path

    def locate(self, request: NeedsManualIntervention) -> Optional[Path]:
        """
        Look for a matching file in the project downloads folder and the
        watched folder.

        Args:
            request: The intervention describing the expected file.

        Returns:
            The most recently modified match at or above the minimum size,
            or None.
        """

        matches = list(
            self._matches(
                (request.downloads_dir, request.watch_dir),
                request.pattern,
                request.min_size,
            )
        )
        if not matches:
            self.logger.debug(
                f"No '{request.pattern}' in {request.downloads_dir} or {request.watch_dir}"
            )
            return None
        return max(matches, key=lambda path: path.stat().st_mtime)

    def adopt(self, found: Path, request: NeedsManualIntervention) -> Path:
        """Copies a located file into the project downloads folder."""
        target = request.downloads_dir / found.name
        if found.resolve() == target.resolve():
            return target
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(found, target)
        self.logger.info(f"Copied {found} to {target}")
        return target
