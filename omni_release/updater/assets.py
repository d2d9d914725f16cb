"""Matching of release assets to platform binaries.

Release assets are named ``<tool>-<version>-<arch>-<os>.tar.gz`` with a
sibling ``.sha256`` file holding the tarball checksum.
"""

import logging
import re
from typing import Callable, Dict, Iterable, Optional, Pattern

from omni_release.config.paths import BINARY_NAME
from omni_release.updater.github_client import ReleaseAsset
from omni_release.updater.release import BinaryAsset

logger = logging.getLogger("omni_release.assets")


def asset_pattern(tool: str = BINARY_NAME) -> Pattern:
    """Regular expression matching the release assets of a tool."""
    return re.compile(
        rf"^(?P<asset>{re.escape(tool)}-(?P<version>.+)-(?P<arch>[^-]+)-(?P<os>[^-]+))"
        r"\.(?P<type>sha256|tar\.gz)$"
    )


ASSET_PATTERN = asset_pattern()


def parse_checksum(text: str) -> Optional[str]:
    """First whitespace-delimited token of a checksum file, if any."""
    tokens = text.split()
    return tokens[0] if tokens else None


def resolve_binaries(
    assets: Iterable[ReleaseAsset],
    fetch_checksum: Callable[[str], str],
    pattern: Pattern = ASSET_PATTERN,
) -> Dict[str, BinaryAsset]:
    """
    Merge tarball and checksum assets into one BinaryAsset per platform.

    Args:
        assets: Assets attached to a release
        fetch_checksum: Callable downloading a checksum file's contents
        pattern: Asset name pattern (default: omni assets)

    Returns:
        Mapping of asset key (name without extension) to BinaryAsset,
        in the order the keys were first seen
    """
    partial: Dict[str, dict] = {}

    for asset in assets:
        match = pattern.match(asset.name)
        if not match:
            continue

        entry = partial.setdefault(match["asset"], {
            "os": match["os"],
            "arch": match["arch"],
        })

        if match["type"] == "sha256":
            checksum = parse_checksum(fetch_checksum(asset.download_url))
            if checksum:
                entry["checksum"] = checksum
        else:
            entry["url"] = asset.download_url

    binaries: Dict[str, BinaryAsset] = {}
    for key, entry in partial.items():
        if not entry.get("url") or not entry.get("checksum"):
            logger.warning(f"Ignoring incomplete asset {key} (needs both tarball and checksum)")
            continue
        binaries[key] = BinaryAsset(
            os=entry["os"],
            arch=entry["arch"],
            url=entry["url"],
            checksum=entry["checksum"],
        )

    return binaries
