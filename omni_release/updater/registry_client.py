"""crates.io registry client.

Only used to learn which published versions were yanked, so they can be
dropped from the version store.
"""

import logging
from typing import Set

import requests

from omni_release.updater.github_client import MAX_REDIRECTS, REQUEST_TIMEOUT, USER_AGENT

logger = logging.getLogger("omni_release.registry_client")


REGISTRY_API_BASE = "https://crates.io/api/v1"


class RegistryError(Exception):
    """Raised when the registry cannot be queried."""
    pass


class RegistryClient:
    """Client for the crates.io versions endpoint."""

    def __init__(self, timeout: int = REQUEST_TIMEOUT):
        self._timeout = timeout
        self._session = requests.Session()
        self._session.max_redirects = MAX_REDIRECTS
        # crates.io rejects requests without a User-Agent
        self._session.headers.update({
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        })

    def get_yanked_versions(self, crate: str) -> Set[str]:
        """
        Get the yanked versions of a crate.

        Args:
            crate: Crate name on the registry

        Returns:
            Set of yanked version strings (empty if the crate is unknown)

        Raises:
            RegistryError: On transport errors or unexpected payloads
        """
        url = f"{REGISTRY_API_BASE}/crates/{crate}/versions"
        logger.info(f"Fetching yanked versions for crate {crate}")

        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.exceptions.TooManyRedirects:
            raise RegistryError(f"Too many redirects (more than {MAX_REDIRECTS}) for {url}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Registry request error: {e}")
            raise RegistryError(f"Request to {url} failed: {e}")

        if response.status_code == 404:
            logger.warning(f"Crate {crate} not found on the registry, assuming no yanked versions")
            return set()
        if not 200 <= response.status_code < 300:
            raise RegistryError(f"Registry error {response.status_code}: {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"Invalid JSON in response from {url}: {e}")

        versions = data.get("versions") if isinstance(data, dict) else None
        if not isinstance(versions, list):
            raise RegistryError(f"Unexpected payload from {url}: no 'versions' list")
        if not all(isinstance(v, dict) for v in versions):
            raise RegistryError(f"Unexpected payload from {url}: versions must be objects")

        yanked = {v["num"] for v in versions if v.get("yanked") and v.get("num")}
        logger.info(f"Found {len(yanked)} yanked versions for crate {crate}")
        return yanked

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self) -> "RegistryClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
