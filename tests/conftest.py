"""Pytest configuration and shared fixtures for omni-release tests."""

import base64
import io
import tarfile
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import MagicMock

import pytest


# Test constants
TEST_OWNER = "xaf"
TEST_REPO = "omni"
DOWNLOAD_BASE = "https://github.com/XaF/omni/releases/download"


def release_payload(
    tag: str,
    assets: Optional[List[dict]] = None,
    draft: bool = False,
    body: str = "",
    published_at: str = "2024-01-15T10:30:00Z",
) -> dict:
    """Build a release object as returned by the GitHub releases API."""
    return {
        "tag_name": tag,
        "name": f"Release {tag}",
        "published_at": published_at,
        "body": body,
        "html_url": f"https://github.com/XaF/omni/releases/tag/{tag}",
        "prerelease": False,
        "draft": draft,
        "assets": assets or [],
    }


def asset_payload(name: str, tag: str = "v1.2.3") -> dict:
    """Build a release asset object as returned by the GitHub API."""
    return {
        "name": name,
        "browser_download_url": f"{DOWNLOAD_BASE}/{tag}/{name}",
        "size": 1024,
        "content_type": "application/octet-stream",
    }


def binary_assets(version: str, platforms=(("x86_64", "linux"), ("arm64", "darwin"))) -> List[dict]:
    """Tarball and checksum assets for every platform of a version."""
    assets = []
    for arch, os_name in platforms:
        stem = f"omni-{version}-{arch}-{os_name}"
        assets.append(asset_payload(f"{stem}.tar.gz", tag=f"v{version}"))
        assets.append(asset_payload(f"{stem}.sha256", tag=f"v{version}"))
    return assets


@pytest.fixture
def make_response() -> Callable[..., MagicMock]:
    """Provide a factory for mocked requests responses."""
    def _make(status_code: int = 200, json_data=None, text: str = "", headers=None):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = json_data
        response.text = text
        response.headers = headers or {}
        return response
    return _make


@pytest.fixture
def store_file(tmp_path: Path) -> Path:
    """Provide a temporary version store path for testing."""
    return tmp_path / "resources" / "omni-versions.json"


@pytest.fixture
def omni_tarball(tmp_path: Path) -> Path:
    """Create a release tarball holding a mock omni binary."""
    archive = tmp_path / "omni-1.2.3-x86_64-linux.tar.gz"
    content = b"#!/bin/sh\necho omni version 1.2.3\n"
    with tarfile.open(archive, "w:gz") as tar:
        info = tarfile.TarInfo("omni-1.2.3/omni")
        info.size = len(content)
        tar.addfile(info, io.BytesIO(content))
    return archive


@pytest.fixture
def encoded_certificate() -> bytes:
    """A certificate in its base64 transport encoding."""
    pem = b"-----BEGIN CERTIFICATE-----\nMIIBfake\n-----END CERTIFICATE-----\n"
    return base64.b64encode(pem)


@pytest.fixture
def encoded_signature() -> bytes:
    """A signature in its base64 transport encoding."""
    return base64.b64encode(b"\x30\x45raw-signature")
