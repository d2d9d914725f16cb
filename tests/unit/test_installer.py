"""Unit tests for artifact download and installation."""

import io
import os
import shutil
import tarfile
import pytest
from unittest.mock import MagicMock

from omni_release.installer.downloader import (
    ArtifactInstaller,
    ChecksumMismatchError,
    extract_binary,
    sha256_file,
    verify_checksum,
)
from omni_release.installer.resolver import BinaryPlan, InstallError, SourcePlan
from omni_release.installer.verifier import SignatureVerificationError, VerificationResult

from conftest import DOWNLOAD_BASE


def make_plan(sha256: str) -> BinaryPlan:
    """Create a BinaryPlan for the test tarball."""
    return BinaryPlan(
        version="1.2.3",
        tag="v1.2.3",
        url=f"{DOWNLOAD_BASE}/v1.2.3/omni-1.2.3-x86_64-linux.tar.gz",
        sha256=sha256,
        os="linux",
        arch="x86_64",
    )


class TestChecksum:
    """Tests for checksum helpers."""

    def test_sha256_file(self, tmp_path):
        """Test the digest of a known content."""
        path = tmp_path / "file"
        path.write_bytes(b"hello\n")

        assert sha256_file(path) == "5891b5b522d5df086d0ff0b110fbd9d21bb4fc7163af34d08286a2e846f6be03"

    def test_matching_checksum(self, omni_tarball):
        """Test a matching digest passes, whatever its case."""
        verify_checksum(omni_tarball, sha256_file(omni_tarball).upper())

    def test_mismatching_checksum(self, omni_tarball):
        """Test a different digest is an error."""
        with pytest.raises(ChecksumMismatchError) as exc_info:
            verify_checksum(omni_tarball, "0" * 64)

        assert exc_info.value.expected == "0" * 64
        assert isinstance(exc_info.value, InstallError)


class TestExtractBinary:
    """Tests for extract_binary."""

    def test_extracts_nested_binary(self, omni_tarball, tmp_path):
        """Test the binary is found in a subdirectory and made executable."""
        bin_dir = tmp_path / "bin"

        target = extract_binary(omni_tarball, bin_dir)

        assert target == bin_dir / "omni"
        assert target.read_bytes().startswith(b"#!/bin/sh")
        assert os.access(target, os.X_OK)

    def test_missing_binary(self, tmp_path):
        """Test an archive without the binary is an error."""
        archive = tmp_path / "empty.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("README.md")
            info.size = 2
            tar.addfile(info, io.BytesIO(b"hi"))

        with pytest.raises(InstallError, match="not found"):
            extract_binary(archive, tmp_path / "bin")

    def test_unsafe_member_ignored(self, tmp_path):
        """Test members escaping the archive are never extracted."""
        archive = tmp_path / "evil.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("../omni")
            info.size = 4
            tar.addfile(info, io.BytesIO(b"evil"))

        with pytest.raises(InstallError):
            extract_binary(archive, tmp_path / "bin")

    def test_corrupt_archive(self, tmp_path):
        """Test an unreadable archive is an error."""
        archive = tmp_path / "broken.tar.gz"
        archive.write_bytes(b"not a tarball")

        with pytest.raises(InstallError, match="Unable to extract"):
            extract_binary(archive, tmp_path / "bin")


class TestArtifactInstaller:
    """Tests for ArtifactInstaller.install."""

    @pytest.fixture
    def client(self, omni_tarball):
        """Mock client downloading the test tarball."""
        client = MagicMock()

        def download(url, destination, callback=None):
            shutil.copyfile(omni_tarball, destination)
            return destination

        client.download_file.side_effect = download
        return client

    @pytest.fixture
    def verifier(self):
        """Mock verifier accepting every artifact."""
        verifier = MagicMock()
        verifier.verify.return_value = VerificationResult.VERIFIED
        return verifier

    def test_install(self, client, verifier, omni_tarball, tmp_path):
        """Test download, checks and extraction."""
        plan = make_plan(sha256_file(omni_tarball))

        target = ArtifactInstaller(client, verifier).install(plan, tmp_path / "bin")

        assert target == tmp_path / "bin" / "omni"
        assert client.download_file.call_args[0][0] == plan.url
        _, url, tag = verifier.verify.call_args[0]
        assert url == plan.url
        assert tag == "v1.2.3"

    def test_checksum_mismatch(self, client, verifier, tmp_path):
        """Test nothing is verified or installed on a checksum mismatch."""
        with pytest.raises(ChecksumMismatchError):
            ArtifactInstaller(client, verifier).install(make_plan("0" * 64), tmp_path / "bin")

        verifier.verify.assert_not_called()
        assert not (tmp_path / "bin" / "omni").exists()

    def test_signature_rejected(self, client, verifier, omni_tarball, tmp_path):
        """Test nothing is installed when the signature is rejected."""
        verifier.verify.side_effect = SignatureVerificationError("rejected")

        with pytest.raises(SignatureVerificationError):
            ArtifactInstaller(client, verifier).install(make_plan(sha256_file(omni_tarball)), tmp_path / "bin")

        assert not (tmp_path / "bin" / "omni").exists()

    def test_unverified_install(self, client, verifier, omni_tarball, tmp_path):
        """Test a skipped verification still installs."""
        verifier.verify.return_value = VerificationResult.SKIPPED

        target = ArtifactInstaller(client, verifier).install(make_plan(sha256_file(omni_tarball)), tmp_path / "bin")

        assert target.exists()

    def test_source_plan(self, client, verifier, tmp_path):
        """Test source plans are not installed here."""
        plan = SourcePlan(version="1.2.3", git_url="https://github.com/xaf/omni.git", tag="v1.2.3", revision="abc")

        with pytest.raises(InstallError, match="built from source"):
            ArtifactInstaller(client, verifier).install(plan, tmp_path / "bin")

        client.download_file.assert_not_called()

    def test_source_archive_plan(self, client, verifier, tmp_path):
        """Test the refusal names the source archive when there is no checkout."""
        plan = SourcePlan(
            version="1.2.3", git_url=None, tag="v1.2.3", revision=None,
            url="https://example.com/src.tar.gz", sha256="ff",
        )

        with pytest.raises(InstallError, match="https://example.com/src.tar.gz"):
            ArtifactInstaller(client, verifier).install(plan, tmp_path / "bin")
