"""Shared fixtures: real temporary git repositories and a scripted command runner."""

from __future__ import annotations

import subprocess
from typing import Callable, List, Tuple, Union

import pytest

from continuous_opencode.subprocess_helper import SubprocessResult


def _git(repo_path, *args: str) -> None:
    subprocess.run(
        ["git", *args],
        cwd=str(repo_path),
        check=True,
        capture_output=True,
    )


@pytest.fixture
def temp_git_repo(tmp_path):
    """Create a temporary git repository on ``main`` with one commit."""
    repo_path = tmp_path / "test_repo"
    repo_path.mkdir()

    _git(repo_path, "init")
    _git(repo_path, "symbolic-ref", "HEAD", "refs/heads/main")

    # Configure git user for commits
    _git(repo_path, "config", "user.email", "test@example.com")
    _git(repo_path, "config", "user.name", "Test User")

    # Disable GPG signing to avoid keychain prompts in tests
    _git(repo_path, "config", "commit.gpgsign", "false")

    test_file = repo_path / "test.txt"
    test_file.write_text("initial content")
    _git(repo_path, "add", "test.txt")
    _git(repo_path, "commit", "-m", "Initial commit")

    return repo_path


Response = Union[SubprocessResult, Callable[[List[str]], SubprocessResult]]


class FakeRunner:
    """Stands in for ``run_subprocess``: records argv, answers from rules.

    Rules match on an argv prefix; the most recently added matching rule
    wins. Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self._rules: List[Tuple[Tuple[str, ...], Response]] = []

    def on(self, *prefix: str, stdout: str = "", stderr: str = "", returncode: int = 0,
           handler: Callable[[List[str]], SubprocessResult] = None) -> "FakeRunner":
        response: Response = handler or SubprocessResult(
            returncode=returncode, stdout=stdout, stderr=stderr
        )
        self._rules.append((tuple(prefix), response))
        return self

    def __call__(self, argv, cwd=None, **kwargs) -> SubprocessResult:
        argv = list(argv)
        self.calls.append(argv)
        for prefix, response in reversed(self._rules):
            if tuple(argv[: len(prefix)]) == prefix:
                if isinstance(response, SubprocessResult):
                    return response
                return response(argv)
        return SubprocessResult(returncode=0, stdout="", stderr="")

    def commands(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture(autouse=True)
def reset_output_config(monkeypatch):
    """Every test starts from the default verbosity."""
    import continuous_opencode.output as output_module

    monkeypatch.delenv("CONTINUOUS_OPENCODE_VERBOSITY", raising=False)
    monkeypatch.delenv("CONTINUOUS_OPENCODE_CONFIG", raising=False)
    original = output_module._output_config
    output_module._output_config = None
    yield
    output_module._output_config = original
