"""
This module defines the core domain models for the application.

These classes represent the pure, technology-agnostic entities and data
structures that the installer's business logic operates on, together with the
ports (abstract interfaces) the infrastructure layer implements.
"""

import base64
import dataclasses
import enum
import re
import secrets
import time
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple, Union

from .exceptions import ConfigurationError

APP_SECRET_PREFIX = "base64:"
APP_SECRET_BYTES = 32

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]{1,64}$")

# dotenv readers expand ${...} and decode backslashes in every quoting style.
ENV_UNSAFE_RE = re.compile(r"\\|\$\{|[\x00-\x1f\x7f]")


def generate_app_secret() -> str:
    """Return a fresh application secret from a cryptographically secure source."""
    raw = secrets.token_bytes(APP_SECRET_BYTES)
    return APP_SECRET_PREFIX + base64.b64encode(raw).decode("ascii")


# --- Domain Models ---

class ArchiveKind(enum.Enum):
    """How a downloaded artifact is turned into an installed directory."""

    ZIP = "zip"
    SELF_EXTRACTING = "sfx"
    RAW = "raw"

    @classmethod
    def from_filename(cls, filename: str) -> "ArchiveKind":
        name = filename.lower()
        if name.endswith(".zip"):
            return cls.ZIP
        if name.endswith(".exe"):
            return cls.SELF_EXTRACTING
        return cls.RAW


@dataclasses.dataclass(frozen=True)
class StackLayout:
    """
    The immutable path table of one installation, derived from its root.

    Every collaborator that needs a location receives this object instead of
    consulting shared state, so all generated files agree on their paths.
    """

    root: Path

    COMPONENT_DIRS = {
        "apache": "apache",
        "php": "php",
        "mariadb": "mariadb",
        "composer": "composer",
        "git": "git",
    }

    def component_dir(self, key: str) -> Path:
        try:
            return self.root / self.COMPONENT_DIRS[key]
        except KeyError:
            raise ConfigurationError(f"Unknown component '{key}'") from None

    @property
    def apache_dir(self) -> Path:
        return self.component_dir("apache")

    @property
    def php_dir(self) -> Path:
        return self.component_dir("php")

    @property
    def mariadb_dir(self) -> Path:
        return self.component_dir("mariadb")

    @property
    def data_dir(self) -> Path:
        return self.mariadb_dir / "data"

    @property
    def app_dir(self) -> Path:
        return self.root / "app"

    @property
    def document_root(self) -> Path:
        return self.app_dir / "public"

    @property
    def downloads_dir(self) -> Path:
        return self.root / "downloads"

    @property
    def tmp_dir(self) -> Path:
        return self.root / "tmp"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def httpd_conf(self) -> Path:
        return self.apache_dir / "conf" / "httpd.conf"

    @property
    def my_ini(self) -> Path:
        return self.mariadb_dir / "my.ini"

    @property
    def php_ini(self) -> Path:
        return self.php_dir / "php.ini"

    @property
    def env_file(self) -> Path:
        return self.app_dir / ".env"


@dataclasses.dataclass(frozen=True)
class ParameterSet:
    """
    The single authoritative source of every value embedded in generated
    configuration: root path, ports, database credentials and app secret.
    """

    root: Path
    app_port: int
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    app_secret: str

    def __post_init__(self):
        for label, port in (("app port", self.app_port), ("db port", self.db_port)):
            if not 1 <= port <= 65535:
                raise ConfigurationError(f"The {label} {port} is out of range")
        if self.app_port == self.db_port:
            raise ConfigurationError(
                f"The app port and db port must differ (both {self.app_port})"
            )
        for label, value in (("db name", self.db_name), ("db user", self.db_user)):
            if not _IDENTIFIER_RE.match(value):
                raise ConfigurationError(
                    f"The {label} '{value}' must match {_IDENTIFIER_RE.pattern}"
                )
        if ENV_UNSAFE_RE.search(self.db_password):
            raise ConfigurationError(
                "The db password must not contain backslashes, control characters or '${'"
            )
        if not self.app_secret.startswith(APP_SECRET_PREFIX):
            raise ConfigurationError("The app secret is missing its prefix")

    @classmethod
    def create(
        cls,
        root,
        app_port: int,
        db_port: int,
        db_name: str,
        db_user: str,
        db_password: str,
        app_secret: Optional[str] = None,
    ) -> "ParameterSet":
        """Builds a parameter set, generating the app secret when none is kept."""
        return cls(
            root=Path(root),
            app_port=int(app_port),
            db_port=int(db_port),
            db_name=db_name,
            db_user=db_user,
            db_password=db_password,
            app_secret=app_secret or generate_app_secret(),
        )

    @property
    def layout(self) -> StackLayout:
        return StackLayout(self.root)

    @property
    def app_url(self) -> str:
        return f"http://localhost:{self.app_port}"


@dataclasses.dataclass(frozen=True)
class Component:
    """A third-party binary dependency acquired and installed as a unit."""

    key: str
    name: str
    marker: str
    min_size: int
    page_url: str
    manual_pattern: str
    strip: bool = False
    fallback_urls: Tuple[str, ...] = ()

    def install_dir(self, layout: StackLayout) -> Path:
        return layout.component_dir(self.key)

    def marker_path(self, layout: StackLayout) -> Path:
        return self.install_dir(layout).joinpath(*PurePosixPath(self.marker).parts)

    def is_installed(self, layout: StackLayout) -> bool:
        return self.marker_path(layout).is_file()


@dataclasses.dataclass(frozen=True)
class Candidate:
    """One possible download location for a component's artifact."""

    url: str
    sha256: Optional[str] = None

    @property
    def filename(self) -> str:
        return unquote(PurePosixPath(urlparse(self.url).path).name)


@dataclasses.dataclass(frozen=True)
class ProbeResult:
    """The outcome of a body-less existence check against a URL."""

    url: str
    accessible: bool
    status_code: Optional[int] = None
    content_length: int = -1
    error: Optional[str] = None

    def satisfies(self, min_size: Optional[int]) -> bool:
        """An unknown length (-1) is optimistically acceptable."""
        if not self.accessible:
            return False
        if not min_size or self.content_length < 0:
            return True
        return self.content_length >= min_size


@dataclasses.dataclass(frozen=True)
class FetchSucceeded:
    path: Path
    bytes: int
    duration: float


@dataclasses.dataclass(frozen=True)
class FetchFailed:
    reason: str


FetchOutcome = Union[FetchSucceeded, FetchFailed]


@dataclasses.dataclass(frozen=True)
class Acquired:
    """A component artifact sits on disk and is ready for extraction."""

    component: Component
    artifact: Path
    source_url: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class NeedsManualIntervention:
    """
    Every candidate failed; the operator has to fetch the artifact by hand.

    The caller decides how to present this and how long to wait.
    """

    component: Component
    page_url: str
    downloads_dir: Path
    watch_dir: Path
    pattern: str
    min_size: int
    tried: Tuple[str, ...] = ()

    @property
    def instructions(self) -> str:
        return (
            f"Automatic download of {self.component.name} failed "
            f"({len(self.tried)} location(s) tried).\n"
            f"  1. Open {self.page_url}\n"
            f"  2. Download a file matching '{self.pattern}' "
            f"(at least {self.min_size:,} bytes)\n"
            f"  3. Save it to {self.watch_dir} or copy it into {self.downloads_dir}"
        )


AcquisitionOutcome = Union[Acquired, NeedsManualIntervention]


@dataclasses.dataclass(frozen=True)
class ProcessResult:
    """Structured result of running an external executable."""

    success: bool
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    message: str = ""

    @classmethod
    def failure(cls, message: str, timed_out: bool = False) -> "ProcessResult":
        return cls(success=False, message=message, timed_out=timed_out)

    def output_contains(self, pattern: str) -> bool:
        """Searches both captured streams for a success phrase or regex."""
        return bool(re.search(pattern, self.stdout + "\n" + self.stderr))


@dataclasses.dataclass
class DownloadStatistics:
    """Process-lifetime aggregate of download attempts. Never persisted."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    total_bytes: int = 0
    total_seconds: float = 0.0

    def record_attempt(self):
        self.attempted += 1

    def record_success(self, size: int, seconds: float):
        self.succeeded += 1
        self.total_bytes += size
        self.total_seconds += seconds

    def record_failure(self):
        self.failed += 1

    def summary(self) -> str:
        rate = self.total_bytes / self.total_seconds if self.total_seconds else 0.0
        return (
            f"downloads: {self.attempted} attempted, {self.succeeded} succeeded, "
            f"{self.failed} failed, {self.total_bytes / 1_048_576:.1f} MiB in "
            f"{self.total_seconds:.1f}s ({rate / 1_048_576:.2f} MiB/s)"
        )


class Stopwatch:
    """Measures elapsed wall time with a monotonic clock."""

    def __init__(self):
        self.started = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started


# --- Ports (Interfaces) ---

class DiscoveryStrategy(ABC):
    """A port for one upstream's way of listing download locations."""

    component_key: str

    @abstractmethod
    async def primary(self) -> List[Candidate]:
        """Queries the upstream's main release listing."""
        pass

    async def secondary(self) -> List[Candidate]:
        """Widens the query when the primary tier can come back empty."""
        return []


class LocationCache(ABC):
    """A port for the time-boxed store of proven-good download URLs."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def put(self, key: str, url: str):
        pass


class Prober(ABC):
    """A port for body-less reachability checks."""

    @abstractmethod
    async def probe(self, url: str) -> ProbeResult:
        pass

    async def find_working_url(
        self, urls: Sequence[str], min_size: Optional[int] = None
    ) -> Optional[str]:
        """Returns the first accessible URL whose declared size is acceptable."""
        for url in urls:
            result = await self.probe(url)
            if result.satisfies(min_size):
                return url
        return None


class Downloader(ABC):
    """A port for a resilient single-URL file downloader."""

    @abstractmethod
    async def download(
        self, url: str, destination: Path, description: str
    ) -> FetchOutcome:
        pass


class Hasher(ABC):
    """A port for hashing file contents."""

    @abstractmethod
    async def sha256(self, path: Path) -> str:
        """Returns the lowercase hex SHA-256 digest of a file."""
        pass


class ArchiveExtractor(ABC):
    """A port for turning a downloaded artifact into an installed directory."""

    @abstractmethod
    async def extract(
        self,
        archive: Path,
        destination: Path,
        strip: bool = False,
        raw_name: Optional[str] = None,
    ):
        """
        Extracts so the destination directly holds the component's layout.

        A raw artifact is copied to raw_name, a path relative to the
        destination, or under its own name when none is given.
        """
        pass

    @abstractmethod
    def hoist(self, destination: Path, marker: str) -> bool:
        """Moves a nested directory containing the marker up into the destination."""
        pass


class ProcessRunner(ABC):
    """A port for running external executables. Implementations never raise."""

    @abstractmethod
    async def run(
        self,
        executable: Path,
        args: Sequence[str] = (),
        cwd: Optional[Path] = None,
        timeout: float = 300,
    ) -> ProcessResult:
        pass
