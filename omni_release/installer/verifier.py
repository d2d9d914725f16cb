"""Keyless signature verification of release artifacts.

Release tarballs are signed in CI with a short-lived certificate issued
for the release workflow. Each tarball ``<name>.tar.gz`` is published
next to ``<name>.sig`` (base64 signature) and ``<name>.pem`` (base64
encoded PEM certificate).

Two interchangeable backends can check them:
- CosignBackend: ``cosign verify-blob`` checks everything at once
- OpenSSLBackend: certificate claims are read from ``openssl x509 -text``
  output and compared here, then ``openssl dgst`` checks the signature

The backend is picked once. A missing backend or missing signature files
leave the artifact unverified with a warning. Once a backend runs, any
failure is fatal and no other backend is tried.
"""

import base64
import binascii
import logging
import re
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from omni_release.config.settings import DEFAULT_OWNER, DEFAULT_REPO, DEFAULT_WORKFLOW
from omni_release.updater.github_client import GitHubClient, GitHubError

logger = logging.getLogger("omni_release.verifier")


OIDC_ISSUER = "https://token.actions.githubusercontent.com"

# Fulcio certificate extensions
OID_ISSUER = "1.3.6.1.4.1.57264.1.1"
OID_REPOSITORY = "1.3.6.1.4.1.57264.1.5"
OID_REF = "1.3.6.1.4.1.57264.1.6"
OID_IDENTITY = "1.3.6.1.4.1.57264.1.9"

CLAIM_OIDS = {
    OID_ISSUER: "issuer",
    OID_REPOSITORY: "repository",
    OID_REF: "ref",
    OID_IDENTITY: "identity",
}

# Extensions holding a DER string rather than the raw value
DER_ENCODED_OIDS = frozenset({OID_IDENTITY})

# openssl prints extension values this much deeper than their header
VALUE_INDENT = 4

ARTIFACT_SUFFIX = ".tar.gz"
SIGNATURE_SUFFIX = ".sig"
CERTIFICATE_SUFFIX = ".pem"

EXTENSION_HEADER = re.compile(r"^(?P<indent>\s*)(?P<oid>\d+(?:\.\d+)+):\s*(?:critical)?\s*$")


class SignatureVerificationError(Exception):
    """Raised when a signature or its certificate does not check out."""
    pass


class VerificationResult(Enum):
    """Outcome of a verification attempt."""
    VERIFIED = "verified"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ExpectedIdentity:
    """Identity the signing certificate must have been issued to."""
    owner: str
    repo: str
    workflow: str
    tag: str
    issuer: str = OIDC_ISSUER

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def ref(self) -> str:
        return f"refs/tags/{self.tag}"

    @property
    def identity_regexp(self) -> str:
        """Regular expression for the certificate identity, owner matched case-insensitively."""
        return (
            rf"^https://github\.com/(?i:{re.escape(self.owner)})/{re.escape(self.repo)}/"
            rf"{re.escape(self.workflow)}@{re.escape(self.ref)}$"
        )


def signature_urls(artifact_url: str) -> Tuple[str, str]:
    """Signature and certificate URLs published next to an artifact."""
    base = artifact_url
    if base.endswith(ARTIFACT_SUFFIX):
        base = base[:-len(ARTIFACT_SUFFIX)]
    return base + SIGNATURE_SUFFIX, base + CERTIFICATE_SUFFIX


def decode_transport(data: bytes, what: str) -> bytes:
    """
    Undo the base64 transport encoding of a signature or certificate.

    PEM content that is not base64 wrapped is returned unchanged.

    Raises:
        SignatureVerificationError: If the data is not valid base64
    """
    if data.lstrip().startswith(b"-----BEGIN"):
        return data
    try:
        return base64.b64decode(b"".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureVerificationError(f"Invalid base64 {what}: {e}")


def der_string_content(printed: str) -> str:
    """
    Strip the DER header from a string printed one character per byte.

    The header is a tag byte and a length: one byte below 0x80, else 0x81
    or 0x82 followed by one or two length bytes. Header bytes print as
    any character, so the header is sized from the value length.
    """
    if len(printed) - 2 < 0x80:
        header = 2
    elif len(printed) - 3 <= 0xff:
        header = 3
    else:
        header = 4
    return printed[header:]


def parse_certificate_claims(text: str) -> Dict[str, str]:
    """
    Extract the signing claims from ``openssl x509 -text`` output.

    The issuer, repository and ref extensions hold the raw value. The
    identity extension holds a DER UTF8String, printed with its tag and
    length bytes in front of the value.

    Args:
        text: Certificate dump

    Returns:
        Mapping of claim name (issuer, repository, ref, identity) to value,
        for the claims present in the dump
    """
    claims: Dict[str, str] = {}
    pending: Optional[Tuple[str, int]] = None

    for line in text.splitlines():
        if pending is not None:
            if not line.strip():
                continue
            oid, indent = pending
            pending = None

            # The length byte may print as a space, so only the indentation is cut
            if line[:indent].strip() == "" and len(line) > indent:
                value = line[indent:].rstrip("\r\n")
            else:
                value = line.strip()
            if oid in DER_ENCODED_OIDS:
                value = der_string_content(value)
            claims[CLAIM_OIDS[oid]] = value
            continue

        header = EXTENSION_HEADER.match(line)
        if header and header["oid"] in CLAIM_OIDS:
            pending = (header["oid"], len(header["indent"]) + VALUE_INDENT)

    return claims


def check_claims(claims: Dict[str, str], expected: ExpectedIdentity) -> None:
    """
    Compare certificate claims with the expected identity.

    Raises:
        SignatureVerificationError: If a claim is missing or differs
    """
    for name in CLAIM_OIDS.values():
        if name not in claims:
            raise SignatureVerificationError(f"Certificate has no {name} claim")

    if claims["issuer"] != expected.issuer:
        raise SignatureVerificationError(
            f"Certificate issuer {claims['issuer']!r} does not match {expected.issuer!r}"
        )
    if claims["repository"].lower() != expected.repository.lower():
        raise SignatureVerificationError(
            f"Certificate repository {claims['repository']!r} does not match {expected.repository!r}"
        )
    if claims["ref"] != expected.ref:
        raise SignatureVerificationError(
            f"Certificate ref {claims['ref']!r} does not match {expected.ref!r}"
        )
    if not re.match(expected.identity_regexp, claims["identity"]):
        raise SignatureVerificationError(
            f"Certificate identity {claims['identity']!r} does not match the release workflow"
        )


def _run(cmd: List[str]) -> subprocess.CompletedProcess:
    """Run a verification tool, capturing its output."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        return subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as e:
        raise SignatureVerificationError(f"Unable to run {cmd[0]}: {e}")


class SignatureBackend(ABC):
    """A tool able to verify a blob signature against its certificate."""

    name = ""

    def __init__(self, executable: str):
        self.executable = executable

    @abstractmethod
    def verify(
        self,
        artifact: Path,
        signature: Path,
        certificate: Path,
        expected: ExpectedIdentity,
    ) -> None:
        """
        Verify an artifact.

        Raises:
            SignatureVerificationError: If verification fails
        """


class CosignBackend(SignatureBackend):
    """Verification through ``cosign verify-blob``."""

    name = "cosign"

    def verify(self, artifact, signature, certificate, expected):
        result = _run([
            self.executable, "verify-blob",
            "--certificate", str(certificate),
            "--signature", str(signature),
            "--certificate-identity-regexp", expected.identity_regexp,
            "--certificate-oidc-issuer", expected.issuer,
            str(artifact),
        ])
        if result.returncode != 0:
            raise SignatureVerificationError(
                f"cosign rejected {artifact.name}: {result.stderr.strip()}"
            )


class OpenSSLBackend(SignatureBackend):
    """Verification through ``openssl``, with the claims checked here."""

    name = "openssl"

    def _openssl(self, *args: str) -> str:
        result = _run([self.executable, *args])
        if result.returncode != 0:
            raise SignatureVerificationError(
                f"openssl {args[0]} failed: {result.stderr.strip()}"
            )
        return result.stdout

    def verify(self, artifact, signature, certificate, expected):
        with tempfile.TemporaryDirectory(prefix="omni-verify-") as tmp:
            work = Path(tmp)

            cert_pem = work / "certificate.pem"
            cert_pem.write_bytes(decode_transport(certificate.read_bytes(), "certificate"))

            claims = parse_certificate_claims(
                self._openssl("x509", "-in", str(cert_pem), "-noout", "-text")
            )
            check_claims(claims, expected)

            public_key = work / "public_key.pem"
            public_key.write_text(
                self._openssl("x509", "-in", str(cert_pem), "-pubkey", "-noout")
            )

            raw_signature = work / "signature.bin"
            raw_signature.write_bytes(decode_transport(signature.read_bytes(), "signature"))

            self._openssl(
                "dgst", "-sha256",
                "-verify", str(public_key),
                "-signature", str(raw_signature),
                str(artifact),
            )


BACKENDS = (CosignBackend, OpenSSLBackend)


def select_backend(which: Optional[Callable[[str], Optional[str]]] = None) -> Optional[SignatureBackend]:
    """
    Pick the verification backend, preferring cosign.

    Args:
        which: Executable lookup (default: shutil.which)

    Returns:
        A backend, or None if no tool is installed
    """
    which = which or shutil.which
    for backend in BACKENDS:
        executable = which(backend.name)
        if executable:
            logger.debug(f"Using {backend.name} at {executable} for signature verification")
            return backend(executable)
    return None


_AUTO = object()


class SignatureVerifier:
    """Gates installation on the signature of a downloaded artifact."""

    def __init__(
        self,
        client: GitHubClient,
        backend=_AUTO,
        owner: str = DEFAULT_OWNER,
        repo: str = DEFAULT_REPO,
        workflow: str = DEFAULT_WORKFLOW,
    ):
        """
        Initialize the verifier.

        Args:
            client: Client used to download signatures and certificates
            backend: Backend to use, None for none (default: select_backend())
            owner: Repository owner the certificate must name
            repo: Repository name the certificate must name
            workflow: Workflow path the certificate identity must name
        """
        self._client = client
        self._backend: Optional[SignatureBackend] = (
            select_backend() if backend is _AUTO else backend
        )
        self._owner = owner
        self._repo = repo
        self._workflow = workflow

    @property
    def backend(self) -> Optional[SignatureBackend]:
        return self._backend

    def verify(self, artifact: Path, artifact_url: str, tag: str) -> VerificationResult:
        """
        Verify a downloaded artifact.

        Args:
            artifact: Downloaded artifact
            artifact_url: URL the artifact was downloaded from
            tag: Release tag the artifact belongs to (e.g., "v1.2.3")

        Returns:
            VERIFIED, or SKIPPED if verification could not be attempted

        Raises:
            SignatureVerificationError: If the signature or certificate is rejected
        """
        if self._backend is None:
            logger.warning(
                "Neither cosign nor openssl is available, skipping signature verification"
            )
            return VerificationResult.SKIPPED

        signature_url, certificate_url = signature_urls(artifact_url)

        with tempfile.TemporaryDirectory(prefix="omni-signature-") as tmp:
            signature = Path(tmp) / "artifact.sig"
            certificate = Path(tmp) / "artifact.pem"
            try:
                self._client.download_file(signature_url, signature)
                self._client.download_file(certificate_url, certificate)
            except GitHubError as e:
                logger.warning(f"Unable to download signature files, skipping verification: {e}")
                return VerificationResult.SKIPPED

            expected = ExpectedIdentity(
                owner=self._owner,
                repo=self._repo,
                workflow=self._workflow,
                tag=tag,
            )
            logger.info(f"Verifying signature of {artifact.name} with {self._backend.name}")
            self._backend.verify(artifact, signature, certificate, expected)

        logger.info(f"Signature of {artifact.name} verified")
        return VerificationResult.VERIFIED
