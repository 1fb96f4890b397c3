"""End-to-end runs of the loop controller against scripted collaborators."""

from __future__ import annotations

import json
import signal
from decimal import Decimal

import pytest

from continuous_opencode.config import RunConfig
from continuous_opencode.controller import LoopController
from continuous_opencode.errors import ConfigError
from continuous_opencode.notes import NOTES_TEMPLATE
from continuous_opencode.policy import StopReason

SIGNAL = "CONTINUOUS_OPENCODE_PROJECT_COMPLETE"


class FakeProcess:
    pid = 4242
    returncode = None

    def __init__(self):
        self.terminated = False

    def poll(self):
        return 0 if self.terminated else None

    def terminate(self):
        self.terminated = True

    def wait(self, timeout=None):
        return 0

    def kill(self):
        self.terminated = True


class FakePopen:
    def __init__(self):
        self.launched = []
        self.processes = []

    def __call__(self, argv, **kwargs):
        self.launched.append((list(argv), kwargs))
        proc = FakeProcess()
        self.processes.append(proc)
        return proc


@pytest.fixture
def popen():
    return FakePopen()


@pytest.fixture
def local_runner(fake_runner):
    """No origin remote: the run stays local-only."""
    fake_runner.on("git", "remote", "get-url", returncode=2, stderr="No such remote 'origin'")
    return fake_runner


def make_controller(config, runner, popen, cwd, clock=None) -> LoopController:
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    return LoopController(
        config,
        cwd=cwd,
        run=runner,
        popen=popen,
        sleep=lambda s: None,
        check_dependencies=lambda: None,
        **kwargs,
    )


def test_single_iteration_with_commits_disabled(local_runner, popen, tmp_path, capsys):
    config = RunConfig(prompt="add tests", max_runs=1, disable_commits=True)
    controller = make_controller(config, local_runner, popen, tmp_path)

    assert controller.run() == 0

    assert len(local_runner.commands("opencode", "run")) == 1
    assert local_runner.commands("git") == [["git", "remote", "get-url", "origin"]]
    assert local_runner.commands("gh") == []
    assert popen.launched == []
    assert controller.stop is StopReason.MAX_RUNS

    out = capsys.readouterr().out
    assert "🎉 Done with 1 iterations in 0 minutes" in out
    assert "💰 Total cost: $0.000" in out


def test_no_changes_threshold_stops_early(local_runner, popen, tmp_path):
    config = RunConfig(prompt="add tests", max_runs=100, no_changes_threshold=2)
    controller = make_controller(config, local_runner, popen, tmp_path)

    controller.run()

    assert controller.state.iteration == 2
    assert len(controller.results) == 2
    assert controller.stop is StopReason.NO_CHANGES
    assert len(local_runner.commands("opencode", "run")) == 2


def test_completion_threshold_stops_run(local_runner, popen, tmp_path, capsys):
    local_runner.on("opencode", "run", stdout=f"done {SIGNAL}")
    config = RunConfig(
        prompt="add tests", max_runs=10, completion_threshold=2, no_changes_threshold=0
    )
    controller = make_controller(config, local_runner, popen, tmp_path)

    controller.run()

    assert controller.state.iteration == 2
    assert controller.stop is StopReason.COMPLETED
    assert "🎉 Project completion threshold reached!" in capsys.readouterr().out


def test_cost_ceiling_stops_run(local_runner, popen, tmp_path):
    local_runner.on("opencode", "stats", stdout=json.dumps({"totalCostUsd": 1.25}))
    config = RunConfig(prompt="add tests", max_cost=Decimal("1.00"), no_changes_threshold=0)
    controller = make_controller(config, local_runner, popen, tmp_path)

    controller.run()

    assert controller.state.iteration == 1
    assert controller.state.total_cost_cents == 125
    assert controller.stop is StopReason.MAX_COST


def test_duration_ceiling_stops_run(local_runner, popen, tmp_path):
    ticks = iter(range(0, 10_000, 40))
    config = RunConfig(prompt="add tests", max_duration=100, no_changes_threshold=0)
    controller = make_controller(
        config, local_runner, popen, tmp_path, clock=lambda: float(next(ticks))
    )

    controller.run()

    assert controller.stop is StopReason.MAX_DURATION
    assert 1 <= controller.state.iteration <= 3


def test_no_limits_refused_without_side_effects(fake_runner, popen, tmp_path):
    controller = make_controller(RunConfig(prompt="add tests"), fake_runner, popen, tmp_path)

    with pytest.raises(ConfigError, match="max-runs"):
        controller.run()

    assert fake_runner.calls == []
    assert popen.launched == []
    assert not (tmp_path / "AGENTS.md").exists()


def test_missing_dependency_checked_before_anything_runs(fake_runner, popen, tmp_path):
    from continuous_opencode.errors import MissingDependencyError

    def missing():
        raise MissingDependencyError("gh", "install it")

    controller = LoopController(
        RunConfig(prompt="x", max_runs=1),
        cwd=tmp_path,
        run=fake_runner,
        popen=popen,
        check_dependencies=missing,
    )
    with pytest.raises(MissingDependencyError):
        controller.run()
    assert fake_runner.calls == []


def test_server_started_once_and_stopped(local_runner, popen, tmp_path, capsys):
    config = RunConfig(prompt="add tests", max_runs=2, no_changes_threshold=0)
    controller = make_controller(config, local_runner, popen, tmp_path)

    controller.run()

    assert len(popen.launched) == 1
    argv, kwargs = popen.launched[0]
    assert argv == ["opencode", "serve", "--port", "4096"]
    assert kwargs["start_new_session"] is True
    assert popen.processes[0].terminated is True

    runs = local_runner.commands("opencode", "run")
    assert all(r[2:4] == ["--attach", "http://localhost:4096"] for r in runs)
    assert "Server: http://localhost:4096" in capsys.readouterr().out


def test_server_stopped_when_interrupted(local_runner, popen, tmp_path, capsys):
    def interrupt(argv):
        raise KeyboardInterrupt

    local_runner.on("opencode", "run", handler=interrupt)
    config = RunConfig(prompt="add tests", max_runs=5)
    controller = make_controller(config, local_runner, popen, tmp_path)

    with pytest.raises(KeyboardInterrupt):
        controller.run()

    assert popen.processes[0].terminated is True
    assert "🎉 Done with 1 iterations" in capsys.readouterr().out


def test_sigterm_handler_restored(local_runner, popen, tmp_path):
    before = signal.getsignal(signal.SIGTERM)
    config = RunConfig(prompt="add tests", max_runs=1, disable_commits=True)

    make_controller(config, local_runner, popen, tmp_path).run()

    assert signal.getsignal(signal.SIGTERM) == before


def test_notes_file_bootstrapped(local_runner, popen, tmp_path):
    config = RunConfig(prompt="add tests", max_runs=1, disable_commits=True)
    make_controller(config, local_runner, popen, tmp_path).run()

    assert (tmp_path / "AGENTS.md").read_text(encoding="utf-8") == NOTES_TEMPLATE


def test_existing_notes_file_untouched(local_runner, popen, tmp_path):
    (tmp_path / "NOTES.md").write_text("my notes\n", encoding="utf-8")
    config = RunConfig(prompt="add tests", max_runs=1, disable_commits=True, notes_file="NOTES.md")

    make_controller(config, local_runner, popen, tmp_path).run()

    assert (tmp_path / "NOTES.md").read_text(encoding="utf-8") == "my notes\n"
    assert not (tmp_path / "AGENTS.md").exists()
