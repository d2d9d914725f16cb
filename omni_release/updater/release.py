"""Release data models for omni-release.

Defines the records persisted in the version store: VersionRecord,
BuildInfo, BinaryAsset, ReleaseNotes and ChangeEntry.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple


CATEGORIES = ("features", "fixes", "breaking")


class ReleaseDataError(Exception):
    """Raised when a release or stored record lacks a required field."""
    pass


def strip_tag_prefix(tag: str) -> str:
    """Version string for a tag, without its leading 'v'."""
    return tag[1:] if tag.startswith("v") else tag


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by the GitHub API."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a timestamp the way the GitHub API does."""
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ChangeEntry:
    """One structured line of release notes."""
    summary: str
    commit: Optional[str] = None
    link: Optional[str] = None
    scope: Optional[str] = None
    author: Optional[str] = None
    emoji: Optional[str] = None
    pr: Optional[int] = None
    issues: FrozenSet[int] = frozenset()
    cause: Optional[str] = None

    def to_dict(self) -> dict:
        """Sparse dictionary: fields that were not parsed are left out."""
        data = {}
        for key in ("commit", "link", "scope", "author", "emoji", "pr"):
            value = getattr(self, key)
            if value is not None and value != "":
                data[key] = value
        data["summary"] = self.summary
        if self.issues:
            data["issues"] = sorted(self.issues)
        if self.cause:
            data["cause"] = self.cause
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeEntry":
        """Create a ChangeEntry from its stored form."""
        pr = data.get("pr")
        return cls(
            summary=data.get("summary", ""),
            commit=data.get("commit"),
            link=data.get("link"),
            scope=data.get("scope"),
            author=data.get("author"),
            emoji=data.get("emoji"),
            pr=int(pr) if pr is not None else None,
            issues=frozenset(int(i) for i in data.get("issues", [])),
            cause=data.get("cause"),
        )


@dataclass(frozen=True)
class ReleaseNotes:
    """Release notes grouped by category, empty categories omitted."""
    categories: Dict[str, Tuple[ChangeEntry, ...]] = field(default_factory=dict)

    def __getitem__(self, category: str) -> Tuple[ChangeEntry, ...]:
        return self.categories[category]

    def __contains__(self, category: object) -> bool:
        return category in self.categories

    @property
    def is_empty(self) -> bool:
        return not any(self.categories.values())

    def to_dict(self) -> dict:
        return {
            category: [entry.to_dict() for entry in self.categories[category]]
            for category in CATEGORIES
            if self.categories.get(category)
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReleaseNotes":
        return cls(categories={
            category: tuple(ChangeEntry.from_dict(e) for e in data[category])
            for category in CATEGORIES
            if data.get(category)
        })


@dataclass(frozen=True)
class BinaryAsset:
    """One platform-specific prebuilt artifact."""
    os: str
    arch: str
    url: str
    checksum: str

    def matches(self, os_name: str, arch: str) -> bool:
        """True if this binary runs on the given platform.

        A binary without an os or arch runs anywhere.
        """
        return (not self.os or self.os == os_name) and (not self.arch or self.arch == arch)

    def to_dict(self) -> dict:
        return {
            "os": self.os,
            "arch": self.arch,
            "url": self.url,
            "sha256": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BinaryAsset":
        return cls(
            os=data.get("os", ""),
            arch=data.get("arch", ""),
            url=data.get("url", ""),
            checksum=data.get("sha256") or data.get("checksum", ""),
        )


@dataclass(frozen=True)
class BuildInfo:
    """
    Source information for a release.

    A release is built either from its tag checked out at a known revision,
    or from a source archive pinned by its SHA-256.
    """
    tag: str
    revision: Optional[str] = None
    url: Optional[str] = None
    sha256: Optional[str] = None

    @property
    def has_revision(self) -> bool:
        return bool(self.tag and self.revision)

    @property
    def has_archive(self) -> bool:
        return bool(self.url and self.sha256)

    @property
    def is_buildable(self) -> bool:
        return self.has_revision or self.has_archive

    def to_dict(self) -> dict:
        data = {"tag": self.tag, "revision": self.revision}
        if self.url:
            data["url"] = self.url
        if self.sha256:
            data["sha256"] = self.sha256
        return data


@dataclass(frozen=True)
class VersionRecord:
    """A published version of omni, keyed by its version string."""
    version: str
    build: BuildInfo
    binaries: Tuple[BinaryAsset, ...] = ()
    published_at: Optional[datetime] = None
    notes: Optional[ReleaseNotes] = None

    @property
    def is_installable(self) -> bool:
        """True if the record offers a prebuilt binary or a source build."""
        return bool(self.binaries) or self.build.is_buildable

    def find_binary(self, os_name: str, arch: str) -> Optional[BinaryAsset]:
        """Get the first binary built for the given platform."""
        for binary in self.binaries:
            if binary.matches(os_name, arch):
                return binary
        return None

    def to_dict(self) -> dict:
        data = {
            "version": self.version,
            "published_at": format_timestamp(self.published_at),
            "build": self.build.to_dict(),
            "binaries": [b.to_dict() for b in self.binaries],
        }
        if self.notes is not None and not self.notes.is_empty:
            data["notes"] = self.notes.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict, version: Optional[str] = None) -> "VersionRecord":
        """
        Create a VersionRecord from its stored form.

        Args:
            data: Stored record
            version: Version to use when the record does not carry one

        Returns:
            VersionRecord instance

        Raises:
            ReleaseDataError: If the version or build tag is missing
        """
        version = data.get("version") or version
        if not version:
            raise ReleaseDataError("Stored record is missing 'version'")

        build = data.get("build") or {}
        if not build.get("tag"):
            raise ReleaseDataError(f"Stored record {version} is missing 'build.tag'")

        notes = data.get("notes")
        return cls(
            version=version,
            build=BuildInfo(
                tag=build["tag"],
                revision=build.get("revision"),
                url=build.get("url"),
                sha256=build.get("sha256"),
            ),
            binaries=tuple(BinaryAsset.from_dict(b) for b in data.get("binaries") or []),
            published_at=parse_timestamp(data.get("published_at")),
            notes=ReleaseNotes.from_dict(notes) if isinstance(notes, dict) else None,
        )

    def to_legacy_dict(self) -> dict:
        """Flattened form written to the legacy single-version file."""
        data = self.to_dict()
        version = data.pop("version")
        data["version"] = version
        return data


@dataclass
class ReleaseSummary:
    """Outcome of a synchronization run."""
    new_records: List[VersionRecord]
    records: List[VersionRecord]
    yanked: FrozenSet[str] = frozenset()

    @property
    def latest(self) -> Optional[VersionRecord]:
        return self.records[0] if self.records else None
