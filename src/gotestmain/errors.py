"""Shared exception base for the harness generator.

Each module defines its own specific errors under this base so the CLI can
report any generation failure with a single handler.
"""


class GeneratorError(Exception):
    """Base exception for every run-aborting generator error."""
