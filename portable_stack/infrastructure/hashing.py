"""Checksum adapter used to verify downloaded artifacts against published digests."""

import asyncio
import hashlib
import logging
from pathlib import Path

from ..application.domain import Hasher
from ..application.exceptions import ConfigurationError


class Sha256Hasher(Hasher):
    """Computes SHA-256 digests in a worker thread, block by block."""

    def __init__(self, chunk_size: int = 65536):
        if chunk_size <= 0:
            raise ConfigurationError(f"Hash block size must be positive, got {chunk_size}")
        self.logger = logging.getLogger(self.__class__.__name__)
        self.chunk_size = chunk_size

    def _digest(self, path: Path) -> str:
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            while block := f.read(self.chunk_size):
                digest.update(block)
        return digest.hexdigest()

    async def sha256(self, path: Path) -> str:
        self.logger.debug(f"Hashing {path.name} ({path.stat().st_size:,} bytes)")
        digest = await asyncio.to_thread(self._digest, path)
        self.logger.info(f"{path.name}: sha256 {digest}")
        return digest
