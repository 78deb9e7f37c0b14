"""Child process execution with streamed output and cooperative cancellation."""
from __future__ import annotations

import logging
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, List, Optional, Sequence

from .errors import LaunchFailure

LOGGER = logging.getLogger(__name__)

# Matches the encoding the engine is told to use on its command line.
STREAM_ENCODING = "ISO-8859-1"

EXITED = "exited"
CANCELED = "canceled"

LineCallback = Callable[[str], None]


class CancelToken:
    """One-way flag shared between the caller and the process runner."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_canceled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


@dataclass(frozen=True)
class RunOutcome:
    status: str
    exit_code: Optional[int] = None

    @property
    def canceled(self) -> bool:
        return self.status == CANCELED

    @property
    def succeeded(self) -> bool:
        return self.status == EXITED and self.exit_code == 0


def _ignore_line(line: str) -> None:
    return None


def _pump(stream: IO[str], callback: LineCallback, errors: List[BaseException]) -> None:
    # A failing callback must not close the pipe; keep draining so the child can finish.
    with stream:
        for raw in stream:
            if errors:
                continue
            try:
                callback(raw.rstrip("\r\n"))
            except Exception as exc:
                LOGGER.exception("Output callback failed; discarding further lines")
                errors.append(exc)


class ProcessRunner:
    """Runs one child process at a time per call, streaming its output lines."""

    def __init__(self, poll_interval: float = 0.1, terminate_grace: float = 5.0) -> None:
        self.poll_interval = poll_interval
        self.terminate_grace = terminate_grace

    def run(
        self,
        command: Sequence[str],
        on_stdout: Optional[LineCallback] = None,
        on_stderr: Optional[LineCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        *,
        preformatted: bool = False,
        cwd: Optional[Path] = None,
    ) -> RunOutcome:
        """Execute ``command`` and block until it exits or is canceled.

        Lines are delivered to the callbacks from reader threads as soon as
        the child writes them. With ``preformatted`` the tokens are already
        quoted for the OS and are joined into one command line. An exception
        raised by a callback stops line delivery, lets the child run to its
        end, and is re-raised here once the output is drained.
        """
        token = cancel_token or CancelToken()
        if token.is_canceled:
            LOGGER.info("Run canceled before launch")
            return RunOutcome(CANCELED)

        args = " ".join(command) if preformatted else list(command)
        LOGGER.debug("Spawning %s", args)
        try:
            process = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                cwd=str(cwd) if cwd else None,
                encoding=STREAM_ENCODING,
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise LaunchFailure(f"Unable to start {command[0] if command else '<empty command>'}: {exc}") from exc

        callback_errors: List[BaseException] = []
        readers: List[threading.Thread] = [
            threading.Thread(target=_pump, args=(process.stdout, on_stdout or _ignore_line, callback_errors), daemon=True),
            threading.Thread(target=_pump, args=(process.stderr, on_stderr or _ignore_line, callback_errors), daemon=True),
        ]
        for reader in readers:
            reader.start()

        canceled = False
        try:
            while process.poll() is None:
                if token.wait(self.poll_interval):
                    canceled = True
                    self._stop(process)
                    break
        except KeyboardInterrupt:
            LOGGER.info("Interrupted; canceling child %s", process.pid)
            token.cancel()
            canceled = True
            self._stop(process)

        process.wait()
        for reader in readers:
            reader.join()

        if callback_errors:
            raise callback_errors[0]
        if canceled:
            LOGGER.info("Run canceled; child %s stopped", process.pid)
            return RunOutcome(CANCELED)
        LOGGER.info("Child %s exited with code %s", process.pid, process.returncode)
        return RunOutcome(EXITED, process.returncode)

    def start(
        self,
        command: Sequence[str],
        on_stdout: Optional[LineCallback] = None,
        on_stderr: Optional[LineCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        *,
        preformatted: bool = False,
        cwd: Optional[Path] = None,
    ) -> "BackgroundRun":
        """Run ``command`` on a worker thread and return a handle to it."""
        token = cancel_token or CancelToken()
        handle = BackgroundRun(
            lambda: self.run(
                command,
                on_stdout,
                on_stderr,
                token,
                preformatted=preformatted,
                cwd=cwd,
            ),
            token,
        )
        handle.thread.start()
        return handle

    def _stop(self, process: subprocess.Popen) -> None:
        LOGGER.debug("Terminating child %s", process.pid)
        process.terminate()
        try:
            process.wait(timeout=self.terminate_grace)
        except subprocess.TimeoutExpired:
            LOGGER.warning("Child %s ignored terminate; killing it", process.pid)
            process.kill()


class BackgroundRun:
    """Handle for a run executing on a worker thread."""

    def __init__(self, target: Callable[[], RunOutcome], cancel_token: CancelToken) -> None:
        self.cancel_token = cancel_token
        self.outcome: Optional[RunOutcome] = None
        self.error: Optional[BaseException] = None
        self.thread = threading.Thread(target=self._work, args=(target,), daemon=True)

    def _work(self, target: Callable[[], RunOutcome]) -> None:
        try:
            self.outcome = target()
        except Exception as exc:
            self.error = exc

    def cancel(self) -> None:
        self.cancel_token.cancel()

    @property
    def done(self) -> bool:
        return not self.thread.is_alive()

    def wait(self, timeout: Optional[float] = None) -> Optional[RunOutcome]:
        """Block until the run finishes; re-raise any error from the worker.

        Returns ``None`` if ``timeout`` elapses first.
        """
        self.thread.join(timeout)
        if self.thread.is_alive():
            return None
        if self.error is not None:
            raise self.error
        return self.outcome


__all__ = [
    "BackgroundRun",
    "CancelToken",
    "ProcessRunner",
    "RunOutcome",
    "CANCELED",
    "EXITED",
    "STREAM_ENCODING",
]
