"""Utility module for omni-release.

This module provides cross-cutting utilities:
- Logging: Configured logging with secret redaction
"""
