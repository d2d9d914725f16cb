"""Settings for omni-release.

Provides the SyncSettings and InstallSettings dataclasses. Settings are
built once at startup from CLI arguments and the environment and are not
mutated afterwards.
"""

import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Mapping, Optional

from omni_release.config.paths import DEFAULT_STORE_FILE


DEFAULT_OWNER = "xaf"
DEFAULT_REPO = "omni"
DEFAULT_CRATE = "omnicli"
DEFAULT_WORKFLOW = ".github/workflows/build.yaml"

BUILD_FROM_SOURCE_ENV = "HOMEBREW_BUILD_FROM_SOURCE"


@dataclass(frozen=True)
class SyncSettings:
    """Settings for one release synchronization run."""

    owner: str = DEFAULT_OWNER
    repo: str = DEFAULT_REPO
    crate: str = DEFAULT_CRATE
    output_path: Optional[Path] = None
    legacy_path: Optional[Path] = None
    from_scratch: bool = False
    token: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert settings to dictionary, without the token."""
        data = asdict(self)
        data.pop("token")
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SyncSettings":
        """Create settings from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        for key in ("output_path", "legacy_path"):
            if filtered.get(key) is not None:
                filtered[key] = Path(filtered[key])
        return cls(**filtered)


@dataclass(frozen=True)
class InstallSettings:
    """Settings for one formula install attempt."""

    owner: str = DEFAULT_OWNER
    repo: str = DEFAULT_REPO
    workflow: str = DEFAULT_WORKFLOW
    store_path: Path = DEFAULT_STORE_FILE
    version: Optional[str] = None
    build_from_source: bool = False
    token: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "InstallSettings":
        """Create settings from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        if filtered.get("store_path") is not None:
            filtered["store_path"] = Path(filtered["store_path"])
        return cls(**filtered)


def build_from_source_requested(environ: Optional[Mapping[str, str]] = None) -> bool:
    """True if the package manager asked for a source build."""
    environ = os.environ if environ is None else environ
    return environ.get(BUILD_FROM_SOURCE_ENV) == "1"
