"""Command-line entry point for omni-release.

Subcommands:
- sync: Refresh the formula's version store from the GitHub releases
- install: Resolve, download, verify and install omni for this host
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from .config.credentials import TokenProvider
from .config.paths import DEFAULT_STORE_FILE, get_default_bin_dir
from .config.settings import (
    DEFAULT_CRATE,
    DEFAULT_OWNER,
    DEFAULT_REPO,
    DEFAULT_WORKFLOW,
    InstallSettings,
    SyncSettings,
    build_from_source_requested,
)
from .installer.downloader import ArtifactInstaller
from .installer.resolver import InstallError, resolve_install
from .installer.verifier import SignatureVerificationError, SignatureVerifier
from .updater.github_client import GitHubClient, GitHubError
from .updater.registry_client import RegistryClient, RegistryError
from .updater.release import ReleaseDataError
from .updater.store import StoreError, dumps
from .updater.sync import ReleaseSynchronizer
from .utils.logging import setup_logging, get_logger

FATAL_ERRORS = (
    GitHubError,
    RegistryError,
    ReleaseDataError,
    StoreError,
    InstallError,
    SignatureVerificationError,
)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog="omni-release",
        description="Release metadata and installation tooling for the omni formula",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Synchronize the version store with GitHub releases")
    sync.add_argument("-o", "--owner", default=DEFAULT_OWNER,
                      help=f"GitHub repository owner (default: {DEFAULT_OWNER})")
    sync.add_argument("-r", "--repo", default=DEFAULT_REPO,
                      help=f"GitHub repository name (default: {DEFAULT_REPO})")
    sync.add_argument("--crate", default=DEFAULT_CRATE,
                      help=f"crates.io crate used to find yanked versions (default: {DEFAULT_CRATE})")
    sync.add_argument("--write", dest="output_path", type=Path, metavar="FILE",
                      help="Write the version store to a file")
    sync.add_argument("--legacy", dest="legacy_path", type=Path, metavar="FILE",
                      help="Write the latest version to a legacy file (for compatibility)")
    sync.add_argument("--from-scratch", action=argparse.BooleanOptionalAction, default=False,
                      help="Fetch all releases from scratch (default: false)")
    sync.set_defaults(handler=run_sync)

    install = subparsers.add_parser("install", help="Install omni for this platform")
    install.add_argument("-o", "--owner", default=DEFAULT_OWNER,
                         help=f"GitHub repository owner (default: {DEFAULT_OWNER})")
    install.add_argument("-r", "--repo", default=DEFAULT_REPO,
                         help=f"GitHub repository name (default: {DEFAULT_REPO})")
    install.add_argument("--workflow", default=DEFAULT_WORKFLOW,
                         help="Workflow path the signing certificate must name")
    install.add_argument("--store", dest="store_path", type=Path, default=DEFAULT_STORE_FILE,
                         help=f"Version store or legacy file (default: {DEFAULT_STORE_FILE})")
    install.add_argument("--version", help="Version to install (default: newest)")
    install.add_argument("--build-from-source", action="store_true",
                         help="Ignore prebuilt binaries")
    install.add_argument("--bin-dir", type=Path, default=None,
                         help="Directory to install the binary into")
    install.add_argument("--dry-run", action="store_true",
                         help="Print the install plan without installing")
    install.set_defaults(handler=run_install)

    return parser


def run_sync(args: argparse.Namespace, token: Optional[str]) -> int:
    """Run the sync subcommand."""
    settings = SyncSettings.from_dict(dict(vars(args), token=token))
    logger = get_logger("omni_release.main")
    logger.debug(f"Sync settings: {settings.to_dict()}")

    with GitHubClient(token=token) as github, RegistryClient() as registry:
        summary = ReleaseSynchronizer(github, registry).run(settings)

    logger.info(
        f"{len(summary.new_records)} new versions, {len(summary.records)} stored, "
        f"latest is {summary.latest.version}"
    )
    print(dumps(summary.records))
    return 0


def run_install(args: argparse.Namespace, token: Optional[str]) -> int:
    """Run the install subcommand."""
    settings = InstallSettings.from_dict(dict(
        vars(args),
        token=token,
        build_from_source=args.build_from_source or build_from_source_requested(),
    ))

    plan = resolve_install(
        settings.store_path,
        version=settings.version,
        build_from_source=settings.build_from_source,
        owner=settings.owner,
        repo=settings.repo,
    )

    if args.dry_run:
        print(json.dumps(dict(asdict(plan), kind=type(plan).__name__), indent=2))
        return 0

    bin_dir = args.bin_dir or get_default_bin_dir()
    with GitHubClient(token=settings.token) as client:
        verifier = SignatureVerifier(
            client,
            owner=settings.owner,
            repo=settings.repo,
            workflow=settings.workflow,
        )
        installed = ArtifactInstaller(client, verifier).install(plan, bin_dir)

    print(installed)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Application entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code (0 for success)
    """
    args = build_parser().parse_args(argv)
    logger = setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file,
    )

    token = TokenProvider().get_token()
    try:
        return args.handler(args, token)
    except FATAL_ERRORS as e:
        logger.error(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
