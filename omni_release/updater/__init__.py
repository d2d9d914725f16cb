"""Updater module for release synchronization.

This module keeps the formula's version store up to date:
- GitHubClient: GitHub API integration for release listing
- RegistryClient: crates.io lookup of yanked versions
- resolve_binaries: Platform binary and checksum matching
- parse_release_notes: Release notes markdown parser
- VersionStore / merge: Version store persistence
- ReleaseSynchronizer: The synchronization pipeline
"""

from .release import (
    BinaryAsset,
    BuildInfo,
    ChangeEntry,
    ReleaseDataError,
    ReleaseNotes,
    ReleaseSummary,
    VersionRecord,
)
from .github_client import (
    GitHubClient,
    GitHubRelease,
    ReleaseAsset,
    GitHubError,
    GitHubConnectionError,
    GitHubRateLimitError,
    GitHubNotFoundError,
    GitHubRedirectError,
    GitHubResponseError,
)
from .registry_client import RegistryClient, RegistryError
from .assets import resolve_binaries
from .notes import parse_release_notes
from .store import StoreError, VersionStore, merge
from .sync import ReleaseSynchronizer

__all__ = [
    # Release models
    "BinaryAsset",
    "BuildInfo",
    "ChangeEntry",
    "ReleaseDataError",
    "ReleaseNotes",
    "ReleaseSummary",
    "VersionRecord",
    # GitHub client
    "GitHubClient",
    "GitHubRelease",
    "ReleaseAsset",
    "GitHubError",
    "GitHubConnectionError",
    "GitHubRateLimitError",
    "GitHubNotFoundError",
    "GitHubRedirectError",
    "GitHubResponseError",
    # Registry
    "RegistryClient",
    "RegistryError",
    # Pipeline
    "resolve_binaries",
    "parse_release_notes",
    "StoreError",
    "VersionStore",
    "merge",
    "ReleaseSynchronizer",
]
