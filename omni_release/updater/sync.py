"""Release synchronization pipeline.

Fetches the releases not yet in the version store, turns each one into a
VersionRecord and merges them into the store.
"""

import logging
from typing import List, Optional

from omni_release.config.settings import SyncSettings
from omni_release.updater.assets import resolve_binaries
from omni_release.updater.github_client import GitHubClient, GitHubRelease
from omni_release.updater.notes import parse_release_notes
from omni_release.updater.registry_client import RegistryClient
from omni_release.updater.release import (
    BuildInfo,
    ReleaseDataError,
    ReleaseSummary,
    VersionRecord,
)
from omni_release.updater.store import VersionStore, merge

logger = logging.getLogger("omni_release.sync")


class ReleaseSynchronizer:
    """Keeps the version store in line with the upstream releases."""

    def __init__(
        self,
        github: GitHubClient,
        registry: RegistryClient,
        store: Optional[VersionStore] = None,
    ):
        """
        Initialize the synchronizer.

        Args:
            github: Client for the upstream repository
            registry: Client for the package registry
            store: Store reader/writer (default: VersionStore())
        """
        self._github = github
        self._registry = registry
        self._store = store or VersionStore()

    def build_record(self, owner: str, repo: str, release: GitHubRelease) -> Optional[VersionRecord]:
        """
        Turn a release into a VersionRecord.

        Args:
            owner: Repository owner
            repo: Repository name
            release: Release to convert

        Returns:
            VersionRecord, or None if the release offers nothing installable

        Raises:
            ReleaseDataError: If the release has no tag
            GitHubError: If checksums or the tag revision cannot be fetched
        """
        if not release.tag_name or not release.version:
            raise ReleaseDataError(f"Release {release.name!r} is missing 'tag_name'")

        logger.info(f"Processing release: {release.name} ({release.tag_name})")

        binaries = resolve_binaries(release.assets, self._github.download_text)
        if not binaries:
            logger.info(f"No binaries found for release {release.tag_name}")

        revision = self._github.get_tag_revision(owner, repo, release.tag_name)

        record = VersionRecord(
            version=release.version,
            build=BuildInfo(tag=release.tag_name, revision=revision),
            binaries=tuple(binaries.values()),
            published_at=release.published_at,
            notes=parse_release_notes(release.release_notes),
        )
        if not record.is_installable:
            logger.warning(
                f"Release {release.tag_name} has no binaries and no build revision, skipping"
            )
            return None
        return record

    def run(self, settings: SyncSettings) -> ReleaseSummary:
        """
        Synchronize the version store.

        Args:
            settings: Run settings

        Returns:
            ReleaseSummary with the new records and the final store

        Raises:
            GitHubError: On transport or response errors
            RegistryError: If yanked versions cannot be fetched
            ReleaseDataError: If a release lacks required data
            StoreError: If the final store is empty or cannot be written
        """
        existing: List[VersionRecord] = []
        if settings.output_path and not settings.from_scratch:
            existing = self._store.load(settings.output_path)

        # Without stored data, every release is new
        from_scratch = settings.from_scratch or not existing

        releases = self._github.fetch_releases(
            settings.owner,
            settings.repo,
            known_versions={r.version for r in existing},
            from_scratch=from_scratch,
        )

        yanked = self._registry.get_yanked_versions(settings.crate)

        new_records = []
        for release in releases:
            if release.version in yanked:
                logger.info(f"Version {release.version} is yanked, skipping")
                continue
            record = self.build_record(settings.owner, settings.repo, release)
            if record is not None:
                new_records.append(record)

        logger.info(f"Discovered {len(new_records)} new versions")
        records = merge(existing, new_records, yanked)

        if settings.output_path:
            self._store.persist(records, settings.output_path, legacy_path=settings.legacy_path)
        elif settings.legacy_path:
            self._store.persist_legacy(records, settings.legacy_path)

        return ReleaseSummary(
            new_records=new_records,
            records=records,
            yanked=frozenset(yanked),
        )
