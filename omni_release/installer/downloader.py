"""Artifact download and installation.

Downloads the prebuilt tarball picked by the resolver, checks its
checksum and signature, and installs the binary it contains.
"""

import hashlib
import logging
import os
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Optional

from omni_release.config.paths import BINARY_NAME
from omni_release.installer.resolver import BinaryPlan, InstallError, InstallPlan, SourcePlan
from omni_release.installer.verifier import SignatureVerifier, VerificationResult
from omni_release.updater.github_client import GitHubClient

logger = logging.getLogger("omni_release.downloader")


class ChecksumMismatchError(InstallError):
    """Raised when a downloaded artifact does not match its checksum."""

    def __init__(self, name: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checksum mismatch for {name}: expected {expected}, got {actual}")


def sha256_file(path: Path) -> str:
    """Hex SHA-256 digest of a file."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_checksum(path: Path, expected: str) -> None:
    """
    Check a file against its expected SHA-256 digest.

    Raises:
        ChecksumMismatchError: If the digests differ
    """
    actual = sha256_file(path)
    if actual.lower() != expected.lower():
        raise ChecksumMismatchError(path.name, expected, actual)
    logger.debug(f"Checksum of {path.name} matches {expected}")


def extract_binary(archive: Path, bin_dir: Path, name: str = BINARY_NAME) -> Path:
    """
    Extract the executable from a release tarball.

    The binary may sit in a subdirectory of the archive.

    Args:
        archive: Downloaded .tar.gz file
        bin_dir: Directory to install the binary into
        name: File name of the binary

    Returns:
        Path of the installed binary

    Raises:
        InstallError: If the archive is unreadable or lacks the binary
    """
    target = bin_dir / name

    try:
        with tarfile.open(archive, "r:gz") as tar:
            member = None
            for candidate in tar.getmembers():
                path = PurePosixPath(candidate.name)
                if path.is_absolute() or ".." in path.parts:
                    logger.warning(f"Ignoring unsafe archive member: {candidate.name}")
                    continue
                if candidate.isfile() and path.name == name:
                    member = candidate
                    break

            if member is None:
                raise InstallError(f"{name} not found in {archive.name}")

            logger.debug(f"Extracting {member.name} -> {target}")
            source = tar.extractfile(member)
            bin_dir.mkdir(parents=True, exist_ok=True)
            with source, open(target, "wb") as dst:
                dst.write(source.read())
    except (tarfile.TarError, OSError) as e:
        raise InstallError(f"Unable to extract {archive.name}: {e}")

    os.chmod(target, 0o755)
    logger.info(f"Installed {name} to {target}")
    return target


class ArtifactInstaller:
    """Installs the artifact described by an install plan."""

    def __init__(self, client: GitHubClient, verifier: Optional[SignatureVerifier] = None):
        """
        Initialize the installer.

        Args:
            client: Client used for downloads
            verifier: Signature verifier (default: one using the same client)
        """
        self._client = client
        self._verifier = verifier or SignatureVerifier(client)

    def install(self, plan: InstallPlan, bin_dir: Path) -> Path:
        """
        Download, verify and install a prebuilt binary.

        Args:
            plan: Plan from the resolver
            bin_dir: Directory to install the binary into

        Returns:
            Path of the installed binary

        Raises:
            InstallError: For source plans, bad archives and checksum mismatches
            SignatureVerificationError: If the signature is rejected
            GitHubError: If the download fails
        """
        if isinstance(plan, SourcePlan):
            source = f"{plan.git_url} at {plan.tag}" if plan.git_url else plan.url
            raise InstallError(
                f"Version {plan.version} must be built from source "
                f"({source}, requires {', '.join(plan.requires)})"
            )
        if not isinstance(plan, BinaryPlan):
            raise InstallError(f"Unsupported install plan: {plan!r}")

        with tempfile.TemporaryDirectory(prefix="omni-install-") as tmp:
            archive = Path(tmp) / PurePosixPath(plan.url).name
            self._client.download_file(plan.url, archive)

            verify_checksum(archive, plan.sha256)

            result = self._verifier.verify(archive, plan.url, plan.tag)
            if result is VerificationResult.SKIPPED:
                logger.warning(f"Installing {plan.version} without signature verification")

            return extract_binary(archive, bin_dir)
