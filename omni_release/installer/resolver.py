"""Install plan resolution.

Picks the version to install from the version store and decides between a
prebuilt binary for the host platform and a build from the tagged source.
"""

import logging
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from omni_release.config.settings import DEFAULT_OWNER, DEFAULT_REPO
from omni_release.updater.release import VersionRecord
from omni_release.updater.store import VersionStore

logger = logging.getLogger("omni_release.resolver")


# platform.machine() spellings mapped to the ones used in asset names
ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "arm64",
    "armv8": "arm64",
}

SOURCE_BUILD_REQUIREMENTS = ("rust",)


class InstallError(Exception):
    """Raised when no installable artifact can be resolved or installed."""
    pass


@dataclass(frozen=True)
class BinaryPlan:
    """Install a prebuilt binary."""
    version: str
    tag: str
    url: str
    sha256: str
    os: str
    arch: str


@dataclass(frozen=True)
class SourcePlan:
    """Build from a tagged source checkout, or from a pinned source archive."""
    version: str
    git_url: Optional[str]
    tag: str
    revision: Optional[str]
    requires: Tuple[str, ...] = SOURCE_BUILD_REQUIREMENTS
    url: Optional[str] = None
    sha256: Optional[str] = None


InstallPlan = Union[BinaryPlan, SourcePlan]


def host_platform() -> Tuple[str, str]:
    """Operating system and architecture of the running host."""
    os_name = platform.system().lower()
    machine = platform.machine().lower()
    return os_name, ARCH_ALIASES.get(machine, machine)


def select_record(records: Sequence[VersionRecord], version: Optional[str] = None) -> VersionRecord:
    """
    Pick the record to install.

    Args:
        records: Stored records, newest first
        version: Explicit version (with or without a leading 'v'), or None for the newest

    Returns:
        The matching record

    Raises:
        InstallError: If the store is empty or the version is unknown
    """
    if not records:
        raise InstallError("version is not set: the version store is empty")
    if version is None:
        return records[0]

    wanted = version[1:] if version.startswith("v") else version
    for record in records:
        if record.version == wanted:
            return record
    raise InstallError(f"Version {wanted} is not available")


def plan_for_record(
    record: VersionRecord,
    build_from_source: bool = False,
    os_name: Optional[str] = None,
    arch: Optional[str] = None,
    owner: str = DEFAULT_OWNER,
    repo: str = DEFAULT_REPO,
) -> InstallPlan:
    """
    Decide how to install a record on a platform.

    Raises:
        InstallError: If a source build is needed but neither a revision nor
            a pinned source archive is known
    """
    if os_name is None or arch is None:
        host_os, host_arch = host_platform()
        os_name = os_name or host_os
        arch = arch or host_arch

    if not build_from_source:
        binary = record.find_binary(os_name, arch)
        if binary:
            logger.info(f"Using prebuilt binary for {os_name}/{arch}: {binary.url}")
            return BinaryPlan(
                version=record.version,
                tag=record.build.tag,
                url=binary.url,
                sha256=binary.checksum,
                os=binary.os,
                arch=binary.arch,
            )
        logger.info(f"No prebuilt binary for {os_name}/{arch}, building from source")

    build = record.build
    if build.has_revision:
        return SourcePlan(
            version=record.version,
            git_url=f"https://github.com/{owner}/{repo}.git",
            tag=build.tag,
            revision=build.revision,
        )
    if build.has_archive:
        logger.info(f"No build revision for version {record.version}, using source archive {build.url}")
        return SourcePlan(
            version=record.version,
            git_url=None,
            tag=build.tag,
            revision=None,
            url=build.url,
            sha256=build.sha256,
        )
    raise InstallError(f"No build revision or URL/SHA256 available for version {record.version}")


def resolve_install(
    store_path: Path,
    version: Optional[str] = None,
    build_from_source: bool = False,
    os_name: Optional[str] = None,
    arch: Optional[str] = None,
    owner: str = DEFAULT_OWNER,
    repo: str = DEFAULT_REPO,
) -> InstallPlan:
    """
    Resolve what to install from the version store.

    Accepts both the version store and the legacy single-version file.

    Args:
        store_path: Version store file
        version: Explicit version to install, or None for the newest
        build_from_source: Skip prebuilt binaries
        os_name: Target OS (default: host)
        arch: Target architecture (default: host)
        owner: Repository owner, for the source checkout URL
        repo: Repository name, for the source checkout URL

    Returns:
        BinaryPlan or SourcePlan

    Raises:
        InstallError: If nothing installable can be resolved
    """
    records = VersionStore().load(store_path)
    record = select_record(records, version)
    return plan_for_record(
        record,
        build_from_source=build_from_source,
        os_name=os_name,
        arch=arch,
        owner=owner,
        repo=repo,
    )
