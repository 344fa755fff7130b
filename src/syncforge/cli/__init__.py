"""
SyncForge CLI Module.

Provides command-line interface for SyncForge operations.
"""

from syncforge.cli.main import main, cli

__all__ = ["main", "cli"]
