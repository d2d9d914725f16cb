"""Version store persistence for omni-release.

The store is a JSON array of version records, newest first, with unique
versions. It is read tolerantly (a missing or corrupt file is an empty
store) and written wholesale.
"""

import json
import logging
import os
from pathlib import Path
from typing import Collection, Iterable, List, Optional, Sequence, Tuple

from omni_release.updater.notes import parse_release_notes
from omni_release.updater.release import ReleaseDataError, VersionRecord

logger = logging.getLogger("omni_release.store")


class StoreError(Exception):
    """Raised when the version store cannot be merged or written."""
    pass


def merge(
    existing: Sequence[VersionRecord],
    new_records: Sequence[VersionRecord],
    yanked: Collection[str] = (),
) -> List[VersionRecord]:
    """
    Prepend newly discovered records to the existing ones.

    New records keep their relative order and come before every existing
    record. Yanked versions are dropped from both sides, and a new record
    whose version is already stored is ignored.

    Args:
        existing: Records currently stored, newest first
        new_records: Newly discovered records, newest first
        yanked: Versions yanked from the registry

    Returns:
        Merged records, newest first

    Raises:
        StoreError: If nothing is left after merging
    """
    yanked = set(yanked)
    kept = [r for r in existing if r.version not in yanked]

    seen = {r.version for r in kept}
    block: List[VersionRecord] = []
    for record in new_records:
        if record.version in yanked:
            logger.info(f"Skipping yanked version {record.version}")
            continue
        if record.version in seen:
            logger.debug(f"Version {record.version} already stored, skipping")
            continue
        seen.add(record.version)
        block.append(record)

    dropped = len(existing) - len(kept)
    if dropped:
        logger.info(f"Dropped {dropped} yanked versions from the store")

    merged = block + kept
    if not merged:
        raise StoreError("No versions left to store")
    return merged


class VersionStore:
    """Reads and writes the version store files."""

    def load(self, path: Path) -> List[VersionRecord]:
        """
        Load stored records.

        Args:
            path: Store file

        Returns:
            Stored records, newest first (empty if missing or unreadable)
        """
        if not path.exists():
            logger.warning(f"Store file {path} does not exist, starting empty")
            return []

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"Failed to read store file {path}, starting empty: {e}")
            return []

        try:
            records = list(self._decode(data))
        except (ReleaseDataError, TypeError, ValueError, AttributeError, KeyError) as e:
            logger.warning(f"Malformed store file {path}, starting empty: {e}")
            return []

        unique = []
        seen = set()
        for record in records:
            if record.version in seen:
                logger.warning(f"Duplicate version {record.version} in {path}, keeping the first")
                continue
            seen.add(record.version)
            unique.append(record)

        logger.info(f"Loaded {len(unique)} versions from {path}")
        return unique

    def _decode(self, data) -> Iterable[VersionRecord]:
        if isinstance(data, list):
            for item in data:
                yield VersionRecord.from_dict(self._upgrade_notes(item))
        elif isinstance(data, dict) and "versions" in data:
            # {"versions": [...], "data": {version: {...}}} layout
            for version in data["versions"]:
                item = self._upgrade_notes(data["data"][version])
                yield VersionRecord.from_dict(item, version=version)
        elif isinstance(data, dict) and "version" in data:
            # Legacy file holding the latest version only
            yield VersionRecord.from_dict(self._upgrade_notes(data))
        else:
            raise ValueError("unrecognized store layout")

    @staticmethod
    def _upgrade_notes(item: dict) -> dict:
        """Replace raw markdown notes with their structured form."""
        if isinstance(item.get("notes"), str):
            notes = parse_release_notes(item["notes"])
            item = dict(item, notes=notes.to_dict() if notes else None)
        return item

    def persist(
        self,
        records: Sequence[VersionRecord],
        path: Path,
        legacy_path: Optional[Path] = None,
    ) -> None:
        """
        Write the whole store, and the legacy file along with it.

        Both files are written to temporary files first and only replace the
        existing ones once every payload is on disk, so a failed write leaves
        both files as they were.

        Args:
            records: Records to store, newest first
            path: Store file
            legacy_path: Legacy file to update along with the store

        Raises:
            StoreError: If there is nothing to write or the write fails
        """
        if not records:
            raise StoreError("Refusing to write an empty version store")
        files = [(path, [r.to_dict() for r in records])]
        if legacy_path:
            files.append((legacy_path, records[0].to_legacy_dict()))
        self._write_files(files)
        logger.info(f"Data written to {path}")
        if legacy_path:
            logger.info(f"Legacy data written to {legacy_path}")

    def persist_legacy(self, records: Sequence[VersionRecord], path: Path) -> None:
        """
        Write the newest record alone, for older formula versions.

        Args:
            records: Records, newest first
            path: Legacy file

        Raises:
            StoreError: If there is nothing to write or the write fails
        """
        if not records:
            raise StoreError("Refusing to write an empty legacy file")
        self._write_files([(path, records[0].to_legacy_dict())])
        logger.info(f"Legacy data written to {path}")

    @staticmethod
    def _write_files(files: Sequence[Tuple[Path, object]]) -> None:
        staged: List[Tuple[Path, Path]] = []
        path = None
        try:
            for path, data in files:
                path.parent.mkdir(parents=True, exist_ok=True)
                temp = path.with_name(f".{path.name}.tmp")
                staged.append((temp, path))
                with open(temp, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                    f.write("\n")
            for temp, path in staged:
                os.replace(temp, path)
        except OSError as e:
            for temp, _ in staged:
                temp.unlink(missing_ok=True)
            raise StoreError(f"Error writing {path}: {e}")


def dumps(records: Sequence[VersionRecord]) -> str:
    """Pretty-printed JSON for a list of records."""
    return json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False)
