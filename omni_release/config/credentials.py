"""GitHub token lookup for omni-release.

Tokens are read from the environment first (``GITHUB_TOKEN`` then
``GH_TOKEN``), falling back to the system keyring (macOS Keychain,
Windows Credential Manager, Linux Secret Service).
"""

import os
from typing import Mapping, Optional

import keyring
from keyring.errors import KeyringError


TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


class TokenProvider:
    """Resolves the bearer token used against the GitHub API."""

    SERVICE_NAME = "omni-release"
    KEY_NAME = "github-token"

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the token provider.

        Args:
            environ: Environment mapping (default: os.environ)
        """
        self._environ = os.environ if environ is None else environ

    def get_token(self) -> Optional[str]:
        """
        Resolve the GitHub token.

        Returns:
            Token string or None if none is configured
        """
        for name in TOKEN_ENV_VARS:
            token = self._environ.get(name)
            if token:
                return token
        try:
            return keyring.get_password(self.SERVICE_NAME, self.KEY_NAME) or None
        except KeyringError:
            return None
