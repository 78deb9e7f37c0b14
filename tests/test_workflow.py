from __future__ import annotations

import pytest

from cogrun.config import EngineConfig
from cogrun.errors import EngineNotFoundError
from cogrun.launcher import EngineLauncher, RunRequest
from cogrun.process import CANCELED as RUN_CANCELED, RunOutcome
from cogrun.workflow import CANCELED, ENGINE_FAILED, SUCCEEDED, UNPARSED, TaskTimePredictor

COMPLETION = "      1.300   ------                 Stopped because no events left to process"


def _predictor(engine_config, linux_env, runner) -> TaskTimePredictor:
    return TaskTimePredictor(EngineLauncher(engine_config, runner=runner, environment=linux_env))


def test_predict_success(engine_config, linux_env, runner_factory) -> None:
    runner = runner_factory(stdout=["     0.050   PROCEDURAL   CONFLICT-RESOLUTION", COMPLETION])
    seen = []
    request = RunRequest(initial_command="(run)", on_trace=seen.append)

    result = _predictor(engine_config, linux_env, runner).predict(request)

    assert result.status == SUCCEEDED
    assert result.succeeded
    assert result.task_time == pytest.approx(1.3)
    assert result.exit_code == 0
    assert len(seen) == 2
    assert request.on_trace == seen.append


def test_predict_unparsed_is_not_an_engine_failure(engine_config, linux_env, runner_factory) -> None:
    bad = "garbage ------ Stopped because no events left to process"
    runner = runner_factory(stdout=[bad])

    result = _predictor(engine_config, linux_env, runner).predict(RunRequest(initial_command="(run)"))

    assert result.status == UNPARSED
    assert result.exit_code == 0
    assert result.task_time is None
    assert "garbage" in result.parse_error


def test_predict_engine_failure(engine_config, linux_env, runner_factory) -> None:
    runner = runner_factory(stdout=[COMPLETION], stderr=["*** - EVAL: undefined function"], outcome=RunOutcome("exited", 1))

    result = _predictor(engine_config, linux_env, runner).predict(RunRequest(initial_command="(run)"))

    assert result.status == ENGINE_FAILED
    assert result.exit_code == 1
    assert result.task_time is None
    assert result.stderr_lines == ["*** - EVAL: undefined function"]


def test_predict_canceled(engine_config, linux_env, runner_factory) -> None:
    runner = runner_factory(outcome=RunOutcome(RUN_CANCELED))
    result = _predictor(engine_config, linux_env, runner).predict(RunRequest(initial_command="(run)"))
    assert result.status == CANCELED
    assert result.exit_code is None


def test_predict_propagates_configuration_errors(tmp_path, linux_env, runner_factory) -> None:
    predictor = TaskTimePredictor(EngineLauncher(EngineConfig(engine_root=tmp_path), runner=runner_factory(), environment=linux_env))
    with pytest.raises(EngineNotFoundError):
        predictor.predict(RunRequest(initial_command="(run)"))


def test_summary_counts_lines(engine_config, linux_env, runner_factory) -> None:
    runner = runner_factory(stdout=["1.300"], stderr=["note"])
    summary = _predictor(engine_config, linux_env, runner).predict(RunRequest(initial_command="(run)")).summary()
    assert summary == {
        "status": SUCCEEDED,
        "exit_code": 0,
        "task_time": pytest.approx(1.3),
        "parse_error": None,
        "stdout_line_count": 1,
        "stderr_line_count": 1,
    }


def test_predict_with_fake_engine(engine_config, linux_env, fake_engine) -> None:
    fake_engine("print('; Loading model')\nprint('   2.500   ------   Stopped because no events left to process   ')")
    result = TaskTimePredictor(EngineLauncher(engine_config, environment=linux_env)).predict(
        RunRequest(initial_command="(run)")
    )
    assert result.status == SUCCEEDED
    assert result.task_time == pytest.approx(2.5)


def test_stderr_numbers_never_replace_the_task_time(engine_config, linux_env, runner_factory) -> None:
    runner = runner_factory(stdout=[COMPLETION], stderr=["0", "  9.000  ------  "])
    result = _predictor(engine_config, linux_env, runner).predict(RunRequest(initial_command="(run)"))
    assert result.status == SUCCEEDED
    assert result.task_time == pytest.approx(1.3)
    assert result.stderr_lines == ["0", "  9.000  ------  "]


def test_stderr_only_timing_is_unparsed(engine_config, linux_env, runner_factory) -> None:
    runner = runner_factory(stderr=["1.300"])
    result = _predictor(engine_config, linux_env, runner).predict(RunRequest(initial_command="(run)"))
    assert result.status == UNPARSED


def test_fake_engine_stderr_number_after_completion(engine_config, linux_env, fake_engine) -> None:
    fake_engine(
        "print('      1.300   ------   Stopped because no events left to process', flush=True)\n"
        "print('0', file=sys.stderr, flush=True)"
    )
    result = TaskTimePredictor(EngineLauncher(engine_config, environment=linux_env)).predict(
        RunRequest(initial_command="(run)")
    )
    assert result.status == SUCCEEDED
    assert result.task_time == pytest.approx(1.3)
    assert result.stderr_lines == ["0"]


def test_background_prediction(engine_config, linux_env, fake_engine) -> None:
    fake_engine("print('; Loading model')\nprint('  0.750   ------   Stopped because no events left to process')")
    run = TaskTimePredictor(EngineLauncher(engine_config, environment=linux_env)).start(
        RunRequest(initial_command="(run)")
    )
    result = run.wait(15)
    assert result is not None
    assert run.done
    assert result.status == SUCCEEDED
    assert result.task_time == pytest.approx(0.75)
    assert run.task_time == pytest.approx(0.75)


def test_background_prediction_cancel(engine_config, linux_env, fake_engine) -> None:
    fake_engine("import time\nprint('started', flush=True)\ntime.sleep(30)")
    run = TaskTimePredictor(EngineLauncher(engine_config, environment=linux_env)).start(
        RunRequest(initial_command="(run)")
    )
    run.cancel()
    result = run.wait(15)
    assert result is not None
    assert result.status == CANCELED
    assert result.task_time is None
