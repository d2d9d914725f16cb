"""Configuration module for omni-release.

This module handles settings and credentials:
- SyncSettings / InstallSettings: Settings dataclasses
- TokenProvider: GitHub token lookup (environment, then keyring)
- Paths: Formula resource paths and the install directory
"""
