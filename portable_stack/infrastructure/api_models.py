"""
Pydantic models for validating upstream release documents and the resolved
location cache file.

These models serve as a strict contract for the expected JSON data, ensuring
that any deviation from this structure is caught at the infrastructure layer
before being passed to the application core. A validation failure inside a
discovery strategy is a discovery degradation, never a fatal error.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# --- GitHub releases API ---

class GitHubAsset(BaseModel):
    """A single downloadable file attached to a GitHub release."""

    name: str
    browser_download_url: str
    size: Optional[int] = None


class GitHubRelease(BaseModel):
    """
    Represents one release from the GitHub REST API.

    Drafts and prereleases are kept here and filtered by the strategy, since
    the widened listing returns them alongside stable releases.
    """

    tag_name: str
    draft: bool = False
    prerelease: bool = False
    assets: List[GitHubAsset] = []


GitHubReleaseList = TypeAdapter(List[GitHubRelease])


# --- Composer versions document ---

class ComposerVersion(BaseModel):
    """One entry of a channel in getcomposer.org/versions."""

    path: str
    version: str


class ComposerVersions(BaseModel):
    """Represents the top-level channel mapping. Only 'stable' is consumed."""

    stable: List[ComposerVersion] = []


# --- windows.php.net releases.json ---

class PhpReleaseFile(BaseModel):
    """A build file as listed in releases.json, with its published digest."""

    path: str
    sha256: Optional[str] = None


class PhpBuild(BaseModel):
    """One build variant (e.g. 'ts-vs16-x64') of a PHP release."""

    zip: Optional[PhpReleaseFile] = None


class PhpRelease(BaseModel):
    """
    The newest release of one PHP series.

    Build variants are dynamic keys next to 'version', so extra fields are kept
    and validated on demand.
    """

    model_config = ConfigDict(extra="allow")

    version: str

    def build(self, variant: str) -> Optional[PhpBuild]:
        raw = (self.model_extra or {}).get(variant)
        if not isinstance(raw, dict):
            return None
        return PhpBuild.model_validate(raw)


PhpReleaseIndex = TypeAdapter(Dict[str, PhpRelease])


# --- Resolved location cache ---

class LocationCacheDocument(BaseModel):
    """The on-disk JSON shape: one shared timestamp and a flat URL mapping."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime = Field(alias="Timestamp")
    urls: Dict[str, str] = Field(alias="Urls", default_factory=dict)
