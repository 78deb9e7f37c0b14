"""Command line entry point for running models and reading traces."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from .config import DEFAULT_CONFIG_PATH, EngineConfig
from .errors import CogRunError, ConfigurationError, TraceParseError
from .launcher import EngineLauncher, RunRequest
from .trace import find_task_time
from .workflow import CANCELED, SUCCEEDED, TaskTimePredictor

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELED = 130

DEFAULT_COMMAND = "(run-model)"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run cognitive models on the bundled LISP engine")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a model and report the predicted task time")
    run.add_argument("--config", type=Path, help=f"JSON/YAML config file (default: {DEFAULT_CONFIG_PATH} if present)")
    run.add_argument("--engine-root", type=Path, help="Directory holding the clisp-<platform> engine builds")
    run.add_argument("--image", help="Memory image name inside the engine directory")
    run.add_argument("-i", "--load", dest="loads", action="append", default=[], help="Source file to preload (repeatable)")
    run.add_argument("-x", "--execute", default=DEFAULT_COMMAND, help="Initial command for the engine")
    run.add_argument("--quiet-trace", action="store_true", help="Do not echo engine output")
    run.add_argument("files", nargs="*", help="Additional files to preload")

    parse = sub.add_parser("parse", help="Read a saved trace and print the task time")
    parse.add_argument("trace_file", type=Path)
    return parser.parse_args(_strip_process_serial(argv))


def _strip_process_serial(argv: Optional[Sequence[str]]) -> List[str]:
    # macOS Finder launches add "-psn_0_12345"; it carries nothing we use.
    args = list(sys.argv[1:] if argv is None else argv)
    return [arg for arg in args if not arg.startswith("-psn")]


def _load_config(args: argparse.Namespace) -> EngineConfig:
    if args.config:
        config = EngineConfig.load(args.config)
    elif DEFAULT_CONFIG_PATH.exists():
        config = EngineConfig.load(DEFAULT_CONFIG_PATH)
    else:
        config = EngineConfig.from_env()
    if args.engine_root:
        config.engine_root = args.engine_root
    if args.image:
        config.memory_image = args.image
    return config


def _run(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except (ConfigurationError, FileNotFoundError) as exc:
        LOGGER.error("%s", exc)
        return EXIT_CONFIG

    request = RunRequest(
        initial_command=args.execute,
        files_to_load=[Path(p) for p in [*args.loads, *args.files]],
        on_trace=None if args.quiet_trace else (lambda line: print(line, flush=True)),
    )
    predictor = TaskTimePredictor(EngineLauncher(config))
    try:
        result = predictor.predict(request)
    except CogRunError as exc:
        LOGGER.error("%s", exc)
        return EXIT_CONFIG

    print(json.dumps(result.summary(), indent=2))
    if result.status == SUCCEEDED:
        return EXIT_OK
    if result.status == CANCELED:
        return EXIT_CANCELED
    return EXIT_FAILED


def _parse(args: argparse.Namespace) -> int:
    try:
        text = args.trace_file.read_text(encoding="latin-1")
    except OSError as exc:
        LOGGER.error("Unable to read %s: %s", args.trace_file, exc)
        return EXIT_CONFIG
    try:
        seconds = find_task_time(text.splitlines())
    except TraceParseError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_FAILED
    print(repr(seconds))
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.verbose)
    if args.command == "parse":
        return _parse(args)
    return _run(args)


if __name__ == "__main__":
    raise SystemExit(main())
