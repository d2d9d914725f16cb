"""Installer module for the omni formula.

This module handles the install side of the formula:
- resolve_install: Version and platform artifact selection
- SignatureVerifier: Keyless signature verification (cosign or openssl)
- ArtifactInstaller: Download, checksum check and binary installation
"""

from .resolver import (
    BinaryPlan,
    InstallError,
    InstallPlan,
    SourcePlan,
    host_platform,
    resolve_install,
)
from .verifier import (
    CosignBackend,
    ExpectedIdentity,
    OpenSSLBackend,
    SignatureBackend,
    SignatureVerificationError,
    SignatureVerifier,
    VerificationResult,
    select_backend,
)
from .downloader import ArtifactInstaller, ChecksumMismatchError

__all__ = [
    # Resolver
    "BinaryPlan",
    "InstallError",
    "InstallPlan",
    "SourcePlan",
    "host_platform",
    "resolve_install",
    # Verifier
    "CosignBackend",
    "ExpectedIdentity",
    "OpenSSLBackend",
    "SignatureBackend",
    "SignatureVerificationError",
    "SignatureVerifier",
    "VerificationResult",
    "select_backend",
    # Installer
    "ArtifactInstaller",
    "ChecksumMismatchError",
]
