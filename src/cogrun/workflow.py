"""High-level orchestration: run a model and read its predicted task time."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import TraceParseError
from .launcher import EngineLauncher, RunRequest
from .process import BackgroundRun, RunOutcome
from .trace import TraceScanner

LOGGER = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
CANCELED = "canceled"
ENGINE_FAILED = "engine_failed"
UNPARSED = "unparsed"


@dataclass
class PredictionResult:
    status: str
    exit_code: Optional[int] = None
    task_time: Optional[float] = None
    parse_error: Optional[str] = None
    stdout_lines: List[str] = field(default_factory=list)
    stderr_lines: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    def summary(self) -> dict:
        return {
            "status": self.status,
            "exit_code": self.exit_code,
            "task_time": self.task_time,
            "parse_error": self.parse_error,
            "stdout_line_count": len(self.stdout_lines),
            "stderr_line_count": len(self.stderr_lines),
        }


class TaskTimePredictor:
    """Coordinates the engine run and the trace interpreter."""

    def __init__(self, launcher: Optional[EngineLauncher] = None) -> None:
        self.launcher = launcher or EngineLauncher()

    def predict(self, request: RunRequest) -> PredictionResult:
        # Only stdout carries the completion report; stderr never feeds the scanner.
        scanner = TraceScanner()
        outcome = self.launcher.execute(request, stdout_observer=scanner.feed)
        return self._interpret(outcome, scanner, request)

    def start(self, request: RunRequest) -> "PredictionRun":
        """Run ``request`` on a worker thread; the timing is read as lines stream in."""
        scanner = TraceScanner()
        handle = self.launcher.start(request, stdout_observer=scanner.feed)
        return PredictionRun(self, handle, scanner, request)

    def _interpret(self, outcome: RunOutcome, scanner: TraceScanner, request: RunRequest) -> PredictionResult:
        result = PredictionResult(
            status=SUCCEEDED,
            exit_code=outcome.exit_code,
            stdout_lines=request.stdout_lines,
            stderr_lines=request.stderr_lines,
        )
        if outcome.canceled:
            LOGGER.info("Model run canceled")
            result.status = CANCELED
            return result
        if outcome.exit_code != 0:
            LOGGER.error("Engine exited with code %s", outcome.exit_code)
            result.status = ENGINE_FAILED
            return result

        try:
            result.task_time = scanner.result()
        except TraceParseError as exc:
            LOGGER.warning("Engine finished but no task time was recognized: %s", exc)
            result.status = UNPARSED
            result.parse_error = str(exc)
            return result

        LOGGER.info("Predicted task time %.3f s", result.task_time)
        return result


class PredictionRun:
    """Handle for a prediction running in the background."""

    def __init__(
        self,
        predictor: TaskTimePredictor,
        handle: BackgroundRun,
        scanner: TraceScanner,
        request: RunRequest,
    ) -> None:
        self._predictor = predictor
        self._handle = handle
        self.scanner = scanner
        self.request = request

    @property
    def task_time(self) -> Optional[float]:
        """Latest task time seen on stdout so far, if any."""
        return self.scanner.task_time

    @property
    def done(self) -> bool:
        return self._handle.done

    def cancel(self) -> None:
        self._handle.cancel()

    def wait(self, timeout: Optional[float] = None) -> Optional[PredictionResult]:
        """Block until the run finishes; ``None`` if ``timeout`` elapses first."""
        outcome = self._handle.wait(timeout)
        if outcome is None:
            return None
        return self._predictor._interpret(outcome, self.scanner, self.request)


__all__ = [
    "PredictionResult",
    "PredictionRun",
    "TaskTimePredictor",
    "SUCCEEDED",
    "CANCELED",
    "ENGINE_FAILED",
    "UNPARSED",
]
