"""JSON file implementation of the LocationCache port."""

import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from ..application.domain import LocationCache
from .api_models import LocationCacheDocument


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JsonLocationCache(LocationCache):
    """
    A time-boxed mapping from component key to a last-known-good URL.

    The whole file shares one timestamp. Once it is older than the freshness
    window every entry is ignored, whatever its content.
    """

    def __init__(
        self,
        path: Path,
        max_age: timedelta = timedelta(hours=24),
        bypass: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.path = Path(path)
        self.max_age = max_age
        self.bypass = bypass
        self.clock = clock

    def _load(self) -> Optional[LocationCacheDocument]:
        """Reads the cache file. Absence or corruption means an empty cache."""
        if not self.path.is_file():
            return None
        try:
            return LocationCacheDocument.model_validate_json(
                self.path.read_text(encoding="utf-8-sig")
            )
        except (OSError, ValueError) as e:
            self.logger.debug(f"Ignoring unreadable cache {self.path}: {e}")
            return None

    def _is_fresh(self, document: LocationCacheDocument) -> bool:
        timestamp = document.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.astimezone()
        age = self.clock() - timestamp
        # A timestamp from the future is not trusted either.
        return timedelta(0) <= age < self.max_age

    def _fresh_document(self) -> Optional[LocationCacheDocument]:
        document = self._load()
        if document is None:
            return None
        if not self._is_fresh(document):
            self.logger.debug(f"Cache {self.path} is stale, ignoring all entries")
            return None
        return document

    def get(self, key: str) -> Optional[str]:
        if self.bypass:
            return None
        document = self._fresh_document()
        if document is None:
            return None
        return document.urls.get(key)

    def put(self, key: str, url: str):
        """
        Records a proven-good URL.

        A fresh cache keeps its timestamp, so adding an entry never extends the
        life of the others. A stale or missing cache is started over.
        """
        document = self._fresh_document()
        if document is None:
            document = LocationCacheDocument(timestamp=self.clock(), urls={})
        document.urls[key] = url
        self._write(document)
        self.logger.debug(f"Cached {key} -> {url}")

    def _write(self, document: LocationCacheDocument):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        part_path = self.path.with_suffix(self.path.suffix + ".part")
        part_path.write_text(
            document.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
        )
        os.replace(part_path, self.path)
