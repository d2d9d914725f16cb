"""Unit tests for install plan resolution."""

import pytest
from unittest.mock import patch

from omni_release.installer.resolver import (
    BinaryPlan,
    InstallError,
    SourcePlan,
    host_platform,
    plan_for_record,
    resolve_install,
    select_record,
)
from omni_release.updater.release import BinaryAsset, BuildInfo, VersionRecord
from omni_release.updater.store import VersionStore


def make_record(version: str, platforms=(("linux", "x86_64"), ("darwin", "arm64")), revision="abc123"):
    """Create a VersionRecord with one binary per platform."""
    return VersionRecord(
        version=version,
        build=BuildInfo(tag=f"v{version}", revision=revision),
        binaries=tuple(
            BinaryAsset(
                os=os_name,
                arch=arch,
                url=f"https://example.com/omni-{version}-{arch}-{os_name}.tar.gz",
                checksum=f"sum-{arch}-{os_name}",
            )
            for os_name, arch in platforms
        ),
    )


RECORDS = [make_record("1.2.0"), make_record("1.1.0")]


class TestHostPlatform:
    """Tests for host_platform."""

    @pytest.mark.parametrize("machine,arch", [
        ("x86_64", "x86_64"),
        ("AMD64", "x86_64"),
        ("aarch64", "arm64"),
        ("arm64", "arm64"),
        ("riscv64", "riscv64"),
    ])
    def test_arch_normalization(self, machine, arch):
        """Test machine names are mapped to asset architectures."""
        with patch("omni_release.installer.resolver.platform.system", return_value="Linux"), \
                patch("omni_release.installer.resolver.platform.machine", return_value=machine):
            assert host_platform() == ("linux", arch)


class TestSelectRecord:
    """Tests for select_record."""

    def test_newest_by_default(self):
        """Test the first record is the default."""
        assert select_record(RECORDS).version == "1.2.0"

    def test_explicit_version(self):
        """Test a version is accepted with or without its 'v'."""
        assert select_record(RECORDS, "1.1.0").version == "1.1.0"
        assert select_record(RECORDS, "v1.1.0").version == "1.1.0"

    def test_unknown_version(self):
        """Test an unknown version is an error."""
        with pytest.raises(InstallError, match="1.0.0"):
            select_record(RECORDS, "1.0.0")

    def test_empty_store(self):
        """Test an empty store is an error."""
        with pytest.raises(InstallError, match="version is not set"):
            select_record([])


class TestPlanForRecord:
    """Tests for plan_for_record."""

    def test_matching_binary(self):
        """Test a prebuilt binary is used when one matches."""
        plan = plan_for_record(RECORDS[0], os_name="darwin", arch="arm64")

        assert plan == BinaryPlan(
            version="1.2.0",
            tag="v1.2.0",
            url="https://example.com/omni-1.2.0-arm64-darwin.tar.gz",
            sha256="sum-arm64-darwin",
            os="darwin",
            arch="arm64",
        )

    def test_no_matching_binary(self):
        """Test other platforms build from source."""
        plan = plan_for_record(RECORDS[0], os_name="linux", arch="arm64")

        assert plan == SourcePlan(
            version="1.2.0",
            git_url="https://github.com/xaf/omni.git",
            tag="v1.2.0",
            revision="abc123",
        )
        assert plan.requires == ("rust",)

    def test_build_from_source_requested(self):
        """Test a source build skips matching binaries."""
        plan = plan_for_record(RECORDS[0], build_from_source=True, os_name="linux", arch="x86_64")
        assert isinstance(plan, SourcePlan)

    def test_source_build_without_revision(self):
        """Test a source build needs a revision or a pinned archive."""
        record = make_record("1.2.0", platforms=(), revision=None)

        with pytest.raises(InstallError, match="No build revision or URL/SHA256"):
            plan_for_record(record, os_name="linux", arch="x86_64")

    def test_source_archive(self):
        """Test a pinned source archive is used without a revision."""
        record = VersionRecord(
            version="1.2.0",
            build=BuildInfo(
                tag="v1.2.0",
                url="https://github.com/xaf/omni/archive/refs/tags/v1.2.0.tar.gz",
                sha256="ab" * 32,
            ),
        )

        plan = plan_for_record(record, os_name="linux", arch="x86_64")

        assert plan == SourcePlan(
            version="1.2.0",
            git_url=None,
            tag="v1.2.0",
            revision=None,
            url="https://github.com/xaf/omni/archive/refs/tags/v1.2.0.tar.gz",
            sha256="ab" * 32,
        )

    def test_revision_preferred_over_archive(self):
        """Test the tagged checkout wins when both are known."""
        record = VersionRecord(
            version="1.2.0",
            build=BuildInfo(tag="v1.2.0", revision="abc123", url="https://example.com/src.tar.gz", sha256="ff"),
        )

        plan = plan_for_record(record, os_name="linux", arch="x86_64")

        assert plan.revision == "abc123"
        assert plan.url is None

    def test_archive_needs_checksum(self):
        """Test an archive URL without its SHA-256 is not buildable."""
        record = VersionRecord(
            version="1.2.0",
            build=BuildInfo(tag="v1.2.0", url="https://example.com/src.tar.gz"),
        )

        with pytest.raises(InstallError, match="URL/SHA256"):
            plan_for_record(record, os_name="linux", arch="x86_64")

    def test_custom_repository(self):
        """Test the checkout URL follows the repository."""
        plan = plan_for_record(
            RECORDS[0], build_from_source=True, os_name="linux", arch="x86_64",
            owner="someone", repo="fork",
        )
        assert plan.git_url == "https://github.com/someone/fork.git"

    def test_host_platform_default(self):
        """Test the host platform is used when none is given."""
        with patch("omni_release.installer.resolver.host_platform", return_value=("linux", "x86_64")):
            plan = plan_for_record(RECORDS[0])

        assert isinstance(plan, BinaryPlan)
        assert plan.os == "linux"


class TestResolveInstall:
    """Tests for resolve_install."""

    def test_from_store(self, store_file):
        """Test resolution from a version store file."""
        VersionStore().persist(RECORDS, store_file)

        plan = resolve_install(store_file, version="1.1.0", os_name="linux", arch="x86_64")

        assert isinstance(plan, BinaryPlan)
        assert plan.version == "1.1.0"
        assert plan.sha256 == "sum-x86_64-linux"

    def test_from_legacy_file(self, tmp_path):
        """Test resolution from the legacy single-version file."""
        legacy = tmp_path / "omni.json"
        VersionStore().persist_legacy(RECORDS, legacy)

        plan = resolve_install(legacy, os_name="darwin", arch="arm64")

        assert plan.version == "1.2.0"

    def test_missing_store(self, store_file):
        """Test a missing store cannot resolve a version."""
        with pytest.raises(InstallError, match="version is not set"):
            resolve_install(store_file, os_name="linux", arch="x86_64")
