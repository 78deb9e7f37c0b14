"""Error types raised while launching the engine and reading its trace."""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class CogRunError(RuntimeError):
    """Base class for engine run failures."""


class ConfigurationError(CogRunError):
    """The engine cannot be run on this machine with the current setup."""


class UnsupportedArchitectureError(ConfigurationError):
    """Raised for a macOS CPU that is neither Apple silicon nor Intel."""


class EngineNotFoundError(ConfigurationError):
    """Raised when an engine directory, executable or memory image is missing."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class LaunchFailure(CogRunError):
    """The operating system refused to spawn the engine process."""


class TraceParseError(CogRunError, ValueError):
    """A trace line does not match any known task-time format."""

    def __init__(self, message: str, line: Optional[str] = None) -> None:
        super().__init__(message)
        self.line = line


__all__ = [
    "CogRunError",
    "ConfigurationError",
    "UnsupportedArchitectureError",
    "EngineNotFoundError",
    "LaunchFailure",
    "TraceParseError",
]
