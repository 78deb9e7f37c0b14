"""Engine launcher: builds the engine command line and runs it."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .config import EngineConfig
from .errors import CogRunError, EngineNotFoundError
from .platforms import (
    EnvironmentDescriptor,
    PathExists,
    PlatformProfile,
    path_exists,
    probe_environment,
    resolve_profile,
)
from .process import CANCELED, BackgroundRun, CancelToken, ProcessRunner, RunOutcome

LOGGER = logging.getLogger(__name__)

QUIET_FLAG = "-q"
ENCODING_FLAG = "-E"
# Some machines fail to start the engine with its default UTF-8 encoding.
LEGACY_ENCODING = "ISO-8859-1"
MEMORY_IMAGE_FLAG = "-M"
LOAD_FLAG = "-i"
EXECUTE_FLAG = "-x"

PathLike = Union[str, Path]


@dataclass
class RunRequest:
    """Everything one engine run needs from its caller."""

    initial_command: str
    files_to_load: Sequence[PathLike] = ()
    memory_image: Optional[str] = None
    stdout_lines: List[str] = field(default_factory=list)
    stderr_lines: List[str] = field(default_factory=list)
    on_trace: Optional[Callable[[str], None]] = None
    cancel_token: CancelToken = field(default_factory=CancelToken)

    def cancel(self) -> None:
        self.cancel_token.cancel()


def build_command(
    profile: PlatformProfile,
    memory_image: str,
    files_to_load: Optional[Sequence[PathLike]],
    initial_command: str,
    exists: PathExists = path_exists,
) -> List[str]:
    """Return the engine argument vector in the order the engine expects."""
    executable = profile.executable
    if not exists(executable):
        raise EngineNotFoundError(f"Engine executable not found: {executable.absolute()}", executable)

    image = profile.engine_dir / memory_image
    if not exists(image):
        raise EngineNotFoundError(f"Engine memory image not found: {image.absolute()}", image)

    command = [
        str(executable.absolute()),
        QUIET_FLAG,
        ENCODING_FLAG,
        LEGACY_ENCODING,
        MEMORY_IMAGE_FLAG,
        str(image.absolute()),
    ]
    for path in files_to_load or ():
        command.extend([LOAD_FLAG, str(path)])
    command.extend([EXECUTE_FLAG, initial_command])
    return command


def quote_arguments(tokens: Sequence[str]) -> List[str]:
    """Wrap tokens containing a space in double quotes for the Windows command line."""
    return [f'"{token}"' if " " in token else token for token in tokens]


class EngineLauncher:
    """Resolves the engine for this machine and runs model requests on it."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        runner: Optional[ProcessRunner] = None,
        environment: Optional[EnvironmentDescriptor] = None,
        exists: Optional[PathExists] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.runner = runner or ProcessRunner(
            poll_interval=self.config.poll_interval_seconds,
            terminate_grace=self.config.terminate_grace_seconds,
        )
        self.environment = environment
        self.exists = exists or path_exists

    def resolve_profile(self) -> PlatformProfile:
        environment = self.environment or probe_environment()
        return resolve_profile(environment, self.config.engine_root, self.exists)

    def prepare(self, request: RunRequest, profile: Optional[PlatformProfile] = None) -> List[str]:
        """Return the command tokens for ``request``, quoted when running on Windows."""
        profile = profile or self.resolve_profile()
        command = build_command(
            profile,
            request.memory_image or self.config.memory_image,
            request.files_to_load,
            request.initial_command,
            self.exists,
        )
        if profile.is_windows:
            command = quote_arguments(command)
        for token in command:
            LOGGER.debug("engine argument: %s", token)
        return command

    def execute(self, request: RunRequest, stdout_observer: Optional[Callable[[str], None]] = None) -> RunOutcome:
        """Run ``request`` to completion on the calling thread.

        ``stdout_observer`` sees engine stdout lines only, alongside the request sinks.
        """
        profile = self.resolve_profile()
        command = self.prepare(request, profile)
        LOGGER.info("Launching %s engine from %s", profile.profile, profile.engine_dir)
        return self.runner.run(
            command,
            self._sink(request, request.stdout_lines, stdout_observer),
            self._sink(request, request.stderr_lines),
            request.cancel_token,
            preformatted=profile.is_windows,
            cwd=self.config.working_directory,
        )

    def start(self, request: RunRequest, stdout_observer: Optional[Callable[[str], None]] = None) -> BackgroundRun:
        """Run ``request`` on a worker thread; configuration errors raise immediately."""
        profile = self.resolve_profile()
        command = self.prepare(request, profile)
        LOGGER.info("Launching %s engine in the background", profile.profile)
        return self.runner.start(
            command,
            self._sink(request, request.stdout_lines, stdout_observer),
            self._sink(request, request.stderr_lines),
            request.cancel_token,
            preformatted=profile.is_windows,
            cwd=self.config.working_directory,
        )

    @staticmethod
    def _sink(
        request: RunRequest,
        lines: List[str],
        observer: Optional[Callable[[str], None]] = None,
    ) -> Callable[[str], None]:
        def _receive(line: str) -> None:
            lines.append(line)
            if observer is not None:
                observer(line)
            if request.on_trace is not None:
                request.on_trace(line)

        return _receive


def exec_lisp(
    memory_image: str,
    files_to_load: Optional[Sequence[PathLike]],
    initial_command: str,
    stdout_lines: Optional[List[str]] = None,
    stderr_lines: Optional[List[str]] = None,
    on_trace: Optional[Callable[[str], None]] = None,
    cancel_token: Optional[CancelToken] = None,
    *,
    launcher: Optional[EngineLauncher] = None,
) -> Union[int, str]:
    """One-shot engine run returning the exit code, or :data:`CANCELED`."""
    request = RunRequest(
        initial_command=initial_command,
        files_to_load=list(files_to_load or ()),
        memory_image=memory_image,
        stdout_lines=stdout_lines if stdout_lines is not None else [],
        stderr_lines=stderr_lines if stderr_lines is not None else [],
        on_trace=on_trace,
        cancel_token=cancel_token or CancelToken(),
    )
    outcome = (launcher or EngineLauncher()).execute(request)
    if outcome.canceled:
        return CANCELED
    if outcome.exit_code is None:
        raise CogRunError(f"Engine run ended with status {outcome.status!r} and no exit code")
    return outcome.exit_code


__all__ = [
    "EngineLauncher",
    "RunRequest",
    "build_command",
    "exec_lisp",
    "quote_arguments",
    "QUIET_FLAG",
    "ENCODING_FLAG",
    "LEGACY_ENCODING",
    "MEMORY_IMAGE_FLAG",
    "LOAD_FLAG",
    "EXECUTE_FLAG",
]
