"""Fatal error types for docgov runs.

Validators report defects as findings; these exceptions are reserved for the
cases where no meaningful report can be produced.
"""

from __future__ import annotations

from pathlib import Path


class GovernanceError(RuntimeError):
    """Base class for errors that abort a governance run."""


class ConfigError(GovernanceError, ValueError):
    """Raised for malformed configuration or invalid overrides."""

    def __init__(self, message: str, *, source: Path | str | None = None):
        self.source = None if source is None else str(source)
        if self.source:
            message = f"{self.source}: {message}"
        super().__init__(message)


class DocumentReadError(GovernanceError):
    """Raised when a file that exists cannot be read to completion."""

    def __init__(self, path: Path | str, cause: BaseException):
        self.path = str(path)
        self.cause = cause
        super().__init__(f"failed to read {self.path}: {cause}")
