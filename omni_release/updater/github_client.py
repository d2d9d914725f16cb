"""GitHub API client for omni releases.

Fetches release listings, tag revisions and release assets from the
upstream repository.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Collection, List, Optional
from urllib.parse import urlparse

import requests

from omni_release.updater.release import parse_timestamp, strip_tag_prefix

logger = logging.getLogger("omni_release.github_client")


# GitHub API constants
GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_HOST = "api.github.com"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "OmniVersionsFetcher/1.0"

# Releases per listing page; a shorter page is the last one
PER_PAGE = 100

# Redirect hops allowed before giving up
MAX_REDIRECTS = 5

# Request timeout in seconds
REQUEST_TIMEOUT = 30


class GitHubError(Exception):
    """Base exception for GitHub API errors."""
    pass


class GitHubConnectionError(GitHubError):
    """Raised when unable to connect to GitHub."""
    pass


class GitHubRateLimitError(GitHubError):
    """Raised when GitHub rate limit is exceeded."""
    pass


class GitHubNotFoundError(GitHubError):
    """Raised when repository, release or tag is not found."""
    pass


class GitHubRedirectError(GitHubError):
    """Raised when a request is redirected more than MAX_REDIRECTS times."""
    pass


class GitHubResponseError(GitHubError):
    """Raised when a response body cannot be decoded as expected."""
    pass


@dataclass
class ReleaseAsset:
    """Represents a downloadable asset from a GitHub release."""
    name: str
    download_url: str

    @classmethod
    def from_api_response(cls, data: dict) -> "ReleaseAsset":
        """Create ReleaseAsset from GitHub API response."""
        return cls(
            name=data.get("name", ""),
            download_url=data.get("browser_download_url", ""),
        )


@dataclass
class GitHubRelease:
    """Represents a GitHub release with its assets."""
    tag_name: str
    name: str
    published_at: Optional[datetime]
    body: str
    assets: List[ReleaseAsset]
    draft: bool

    @property
    def version(self) -> str:
        """Version string from tag name, without the leading 'v'."""
        return strip_tag_prefix(self.tag_name)

    @property
    def release_notes(self) -> str:
        """Get release notes (body)."""
        return self.body

    @classmethod
    def from_api_response(cls, data: dict) -> "GitHubRelease":
        """Create GitHubRelease from GitHub API response."""
        raw_assets = data.get("assets") or []
        if not isinstance(raw_assets, list) or not all(isinstance(a, dict) for a in raw_assets):
            raise GitHubResponseError(
                f"Expected a list of asset objects for release {data.get('tag_name')!r}"
            )
        assets = [ReleaseAsset.from_api_response(a) for a in raw_assets]
        tag_name = data.get("tag_name") or ""
        if not isinstance(tag_name, str):
            raise GitHubResponseError(f"Expected a string tag_name, got {tag_name!r}")

        return cls(
            tag_name=tag_name,
            name=data.get("name") or "",
            published_at=parse_timestamp(data.get("published_at")),
            body=data.get("body") or "",
            assets=assets,
            draft=data.get("draft", False),
        )


class GitHubClient:
    """Client for interacting with the GitHub API for omni releases."""

    def __init__(self, token: Optional[str] = None, timeout: int = REQUEST_TIMEOUT):
        """
        Initialize GitHub client.

        Args:
            token: Optional bearer token, only sent to the API host
            timeout: Request timeout in seconds
        """
        self._token = token
        self._timeout = timeout
        self._session = requests.Session()
        self._session.max_redirects = MAX_REDIRECTS
        self._session.headers.update({
            "User-Agent": USER_AGENT,
        })

    def _headers_for(self, url: str) -> dict:
        """Extra headers for a request, API headers only for the API host."""
        if urlparse(url).hostname != GITHUB_API_HOST:
            return {}
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _make_request(self, url: str, stream: bool = False) -> requests.Response:
        """
        Make a GET request, following up to MAX_REDIRECTS redirects.

        Args:
            url: Full URL to request
            stream: Whether to stream the response body

        Returns:
            The successful response

        Raises:
            GitHubConnectionError: If unable to connect
            GitHubRateLimitError: If rate limit exceeded
            GitHubNotFoundError: If resource not found
            GitHubRedirectError: If redirected too many times
            GitHubError: For other errors
        """
        try:
            logger.debug(f"Making request to: {url}")
            response = self._session.get(
                url,
                headers=self._headers_for(url),
                timeout=self._timeout,
                allow_redirects=True,
                stream=stream,
            )
        except requests.exceptions.TooManyRedirects:
            logger.error(f"Too many redirects for {url}")
            raise GitHubRedirectError(
                f"Too many redirects (more than {MAX_REDIRECTS}) for {url}"
            )
        except requests.exceptions.Timeout:
            logger.error("GitHub request timed out")
            raise GitHubConnectionError("Request timed out connecting to GitHub")
        except requests.exceptions.ConnectionError as e:
            logger.error(f"GitHub connection error: {e}")
            raise GitHubConnectionError(
                "Unable to connect to GitHub. Check your internet connection."
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"GitHub request error: {e}")
            raise GitHubError(f"Request failed: {e}")

        if 200 <= response.status_code < 300:
            return response
        elif response.status_code == 404:
            raise GitHubNotFoundError(f"Resource not found: {url}")
        elif response.status_code in (403, 429):
            if response.status_code == 429 or "rate limit" in response.text.lower():
                raise GitHubRateLimitError("GitHub API rate limit exceeded")
            raise GitHubError(f"Access denied: {response.text}")
        else:
            raise GitHubError(
                f"GitHub API error {response.status_code}: {response.text}"
            )

    def _get_json(self, url: str):
        """GET a URL and decode its JSON body."""
        response = self._make_request(url)
        try:
            return response.json()
        except ValueError as e:
            raise GitHubResponseError(f"Invalid JSON in response from {url}: {e}")

    def fetch_releases(
        self,
        owner: str,
        repo: str,
        known_versions: Collection[str] = (),
        from_scratch: bool = False,
    ) -> List[GitHubRelease]:
        """
        Page through the releases of a repository, newest first.

        Pagination stops on a page with fewer than PER_PAGE entries, or,
        unless ``from_scratch``, at the first release whose version is
        already known; only the releases newer than it are kept.

        Args:
            owner: Repository owner
            repo: Repository name
            known_versions: Versions (without 'v') already in the store
            from_scratch: Ignore known versions and fetch everything

        Returns:
            Non-draft releases not yet known, newest first

        Raises:
            GitHubResponseError: If a page is not a JSON array
            GitHubError: For transport errors
        """
        known = set(known_versions)
        releases: List[GitHubRelease] = []
        page = 0
        might_have_more = True

        while might_have_more:
            page += 1
            url = (
                f"{GITHUB_API_BASE}/repos/{owner}/{repo}/releases"
                f"?per_page={PER_PAGE}&page={page}"
            )
            logger.info(f"Fetching page {page} of releases for {owner}/{repo}")

            data = self._get_json(url)
            if not isinstance(data, list):
                raise GitHubResponseError(
                    f"Expected a list of releases on page {page}, got {type(data).__name__}"
                )

            for entry in data:
                if not isinstance(entry, dict):
                    raise GitHubResponseError(
                        f"Expected release objects on page {page}, got {type(entry).__name__}"
                    )

            logger.info(f"Found {len(data)} releases on page {page}")
            might_have_more = len(data) == PER_PAGE

            page_releases = [
                GitHubRelease.from_api_response(r)
                for r in data
                if not r.get("draft", False)  # Skip drafts
            ]

            if not from_scratch and known:
                for index, release in enumerate(page_releases):
                    if release.version in known:
                        logger.info(f"Reached known version {release.version}, stopping")
                        page_releases = page_releases[:index]
                        might_have_more = False
                        break

            releases.extend(page_releases)

        logger.info(f"Found {len(releases)} new releases")
        return releases

    def get_tag_revision(self, owner: str, repo: str, tag: str) -> Optional[str]:
        """
        Get the commit a tag points to.

        Annotated tags are dereferenced to their target commit.

        Args:
            owner: Repository owner
            repo: Repository name
            tag: Tag name (e.g., "v1.2.3")

        Returns:
            Commit sha, or None if the reference carries none

        Raises:
            GitHubNotFoundError: If the tag does not exist
            GitHubError: For other errors
        """
        url = f"{GITHUB_API_BASE}/repos/{owner}/{repo}/git/refs/tags/{tag}"
        data = self._get_json(url)
        if not isinstance(data, dict):
            raise GitHubResponseError(f"Expected an object for tag {tag}")

        target = self._ref_target(data, tag)
        if target.get("type") == "tag" and target.get("url"):
            tag_object = self._get_json(target["url"])
            if not isinstance(tag_object, dict):
                raise GitHubResponseError(f"Expected an object for tag object of {tag}")
            target = self._ref_target(tag_object, tag) or target

        revision = target.get("sha")
        logger.debug(f"Tag {tag} points to {revision}")
        return revision

    @staticmethod
    def _ref_target(data: dict, tag: str) -> dict:
        """The object a reference or tag object points to."""
        target = data.get("object") or {}
        if not isinstance(target, dict):
            raise GitHubResponseError(f"Expected an object as the target of {tag}")
        return target

    def download_text(self, url: str) -> str:
        """
        Download a small text file, such as a checksum file.

        Args:
            url: URL to download

        Returns:
            Decoded body

        Raises:
            GitHubError: If the download fails
        """
        logger.debug(f"Downloading text from {url}")
        return self._make_request(url).text

    def download_file(
        self,
        url: str,
        destination: Path,
        callback: Optional[Callable[[int, int], None]] = None
    ) -> Path:
        """
        Download a file to disk.

        Args:
            url: URL to download
            destination: File path to write
            callback: Optional progress callback(bytes_downloaded, total_bytes)

        Returns:
            The destination path

        Raises:
            GitHubError: If the download fails
        """
        logger.info(f"Downloading {url}")
        response = self._make_request(url, stream=True)

        total_size = int(response.headers.get("content-length", 0) or 0)
        downloaded = 0

        try:
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
                        downloaded += len(chunk)
                        if callback:
                            callback(downloaded, total_size)
        except requests.exceptions.RequestException as e:
            raise GitHubConnectionError(f"Download failed: {e}")

        logger.info(f"Downloaded {downloaded} bytes to {destination}")
        return destination

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self) -> "GitHubClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
