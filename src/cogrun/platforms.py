"""Platform detection and engine profile resolution."""
from __future__ import annotations

import logging
import platform
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import EngineNotFoundError, UnsupportedArchitectureError

LOGGER = logging.getLogger(__name__)

WINDOWS = "windows"
MACOS = "macos"
LINUX = "linux"

WINDOWS_EXECUTABLE = "lisp.exe"
UNIX_EXECUTABLE = "lisp.run"

PROFILE_WINDOWS = "win"
PROFILE_MAC_ARM64 = "mac-arm64"
PROFILE_MAC_INTEL = "mac-intel"
PROFILE_LINUX = "linux"

ENGINE_DIR_PREFIX = "clisp-"

_ARM_MACHINES = {"arm64", "aarch64"}
_INTEL_MACHINES = {"x86_64", "amd64", "i386", "i686"}

PathExists = Callable[[Path], bool]


def path_exists(path: Path) -> bool:
    return path.exists()


@dataclass(frozen=True)
class EnvironmentDescriptor:
    os_family: str
    is_apple_silicon: bool = False
    is_intel: bool = False


@dataclass(frozen=True)
class PlatformProfile:
    """Resolved engine location for one run."""

    os_family: str
    profile: str
    executable_name: str
    engine_dir: Path
    fell_back: bool = False

    @property
    def executable(self) -> Path:
        return self.engine_dir / self.executable_name

    @property
    def is_windows(self) -> bool:
        return self.os_family == WINDOWS


def engine_directory(engine_root: Path, profile: str) -> Path:
    return Path(engine_root) / f"{ENGINE_DIR_PREFIX}{profile}"


def _running_under_translation() -> bool:
    """Report whether an Intel Python is being translated on an Apple silicon Mac."""
    try:
        completed = subprocess.run(
            ["sysctl", "-n", "sysctl.proc_translated"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        LOGGER.debug("sysctl unavailable; assuming native execution")
        return False
    return completed.stdout.strip() == "1"


def probe_environment(
    system: Optional[str] = None,
    machine: Optional[str] = None,
) -> EnvironmentDescriptor:
    """Describe the host OS family and CPU."""
    system = (system if system is not None else platform.system()).lower()
    machine = (machine if machine is not None else platform.machine()).lower()

    if system.startswith("win"):
        return EnvironmentDescriptor(WINDOWS, is_intel=machine in _INTEL_MACHINES)
    if system == "darwin":
        if machine in _ARM_MACHINES:
            return EnvironmentDescriptor(MACOS, is_apple_silicon=True)
        if machine in _INTEL_MACHINES:
            if _running_under_translation():
                return EnvironmentDescriptor(MACOS, is_apple_silicon=True)
            return EnvironmentDescriptor(MACOS, is_intel=True)
        return EnvironmentDescriptor(MACOS)
    return EnvironmentDescriptor(
        LINUX,
        is_apple_silicon=False,
        is_intel=machine in _INTEL_MACHINES,
    )


def resolve_profile(
    environment: EnvironmentDescriptor,
    engine_root: Path = Path("."),
    exists: PathExists = path_exists,
) -> PlatformProfile:
    """Pick the engine build for ``environment``.

    Apple silicon falls back to the Intel build when no native build is
    installed. Raises :class:`UnsupportedArchitectureError` for an unknown
    Mac CPU and :class:`EngineNotFoundError` when the engine directory is
    missing.
    """
    fell_back = False
    if environment.os_family == WINDOWS:
        executable, profile = WINDOWS_EXECUTABLE, PROFILE_WINDOWS
    elif environment.os_family == MACOS:
        executable = UNIX_EXECUTABLE
        if environment.is_apple_silicon:
            profile = PROFILE_MAC_ARM64
        elif environment.is_intel:
            profile = PROFILE_MAC_INTEL
        else:
            raise UnsupportedArchitectureError("Unsupported Mac architecture")
    else:
        executable, profile = UNIX_EXECUTABLE, PROFILE_LINUX

    engine_dir = engine_directory(engine_root, profile)

    if profile == PROFILE_MAC_ARM64 and not exists(engine_dir):
        LOGGER.warning(
            "Apple silicon native engine not found at %s; falling back to the Intel build under Rosetta 2",
            engine_dir,
        )
        profile = PROFILE_MAC_INTEL
        engine_dir = engine_directory(engine_root, profile)
        fell_back = True

    if not exists(engine_dir):
        raise EngineNotFoundError(
            f"Engine runtime not found for platform {profile}: {engine_dir}",
            engine_dir,
        )

    return PlatformProfile(
        os_family=environment.os_family,
        profile=profile,
        executable_name=executable,
        engine_dir=engine_dir,
        fell_back=fell_back,
    )


__all__ = [
    "EnvironmentDescriptor",
    "PlatformProfile",
    "PathExists",
    "path_exists",
    "engine_directory",
    "probe_environment",
    "resolve_profile",
    "WINDOWS",
    "MACOS",
    "LINUX",
]
