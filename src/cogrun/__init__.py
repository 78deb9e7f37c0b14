"""Launch the LISP cognitive-model engine and read predicted task times from its trace."""

from .config import EngineConfig
from .errors import (
    CogRunError,
    ConfigurationError,
    EngineNotFoundError,
    LaunchFailure,
    TraceParseError,
    UnsupportedArchitectureError,
)
from .launcher import EngineLauncher, RunRequest, build_command, exec_lisp, quote_arguments
from .platforms import EnvironmentDescriptor, PlatformProfile, probe_environment, resolve_profile
from .process import BackgroundRun, CancelToken, ProcessRunner, RunOutcome
from .trace import TraceScanner, find_task_time, parse_task_time
from .workflow import PredictionResult, PredictionRun, TaskTimePredictor

__all__ = [
    "EngineConfig",
    "CogRunError",
    "ConfigurationError",
    "EngineNotFoundError",
    "LaunchFailure",
    "TraceParseError",
    "UnsupportedArchitectureError",
    "EngineLauncher",
    "RunRequest",
    "build_command",
    "exec_lisp",
    "quote_arguments",
    "EnvironmentDescriptor",
    "PlatformProfile",
    "probe_environment",
    "resolve_profile",
    "BackgroundRun",
    "CancelToken",
    "ProcessRunner",
    "RunOutcome",
    "TraceScanner",
    "find_task_time",
    "parse_task_time",
    "PredictionResult",
    "PredictionRun",
    "TaskTimePredictor",
]
