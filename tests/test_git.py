"""Git wrapper against a real temporary repository."""

from __future__ import annotations

import re
import subprocess
from datetime import datetime

from continuous_opencode.git import Git, generate_branch_name


def _log_messages(repo) -> str:
    return subprocess.run(
        ["git", "log", "-1", "--format=%B"], cwd=str(repo), capture_output=True, text=True, check=True
    ).stdout


def test_generate_branch_name_format():
    name = generate_branch_name("continuous-opencode/", 3, now=datetime(2024, 5, 6, 7, 8, 9), token="deadbeef")
    assert name == "continuous-opencode/iteration-3/2024-05-06-070809-deadbeef"


def test_generate_branch_name_random_suffix():
    name = generate_branch_name("p/", 1)
    assert re.fullmatch(r"p/iteration-1/\d{4}-\d{2}-\d{2}-\d{6}-[0-9a-f]{8}", name)
    assert generate_branch_name("p/", 1) != name


def test_clean_repo_has_no_changes(temp_git_repo):
    assert Git(temp_git_repo).has_changes() is False


def test_untracked_and_modified_files_are_changes(temp_git_repo):
    (temp_git_repo / "test.txt").write_text("changed")
    (temp_git_repo / "new.py").write_text("print('hi')\n")

    lines = Git(temp_git_repo).status_lines()

    assert len(lines) == 2


def test_pr_record_ignored(temp_git_repo):
    (temp_git_repo / ".continuous-opencode-pr").write_text("12\n")
    assert Git(temp_git_repo).has_changes() is False


def test_commit_all_excludes_pr_record(temp_git_repo):
    (temp_git_repo / "new.py").write_text("x = 1\n")
    (temp_git_repo / ".continuous-opencode-pr").write_text("12\n")
    git = Git(temp_git_repo)

    result = git.commit_all("OpenCode iteration 1", "Prompt: add tests")

    assert result.success
    assert _log_messages(temp_git_repo).startswith("OpenCode iteration 1\n\nPrompt: add tests")
    tracked = subprocess.run(
        ["git", "ls-files"], cwd=str(temp_git_repo), capture_output=True, text=True, check=True
    ).stdout.split()
    assert "new.py" in tracked
    assert ".continuous-opencode-pr" not in tracked


def test_branch_lifecycle(temp_git_repo):
    git = Git(temp_git_repo)

    assert git.create_and_checkout("continuous-opencode/iteration-1/x").success
    assert git.checkout_default_branch() == "main"
    assert git.delete_branch("continuous-opencode/iteration-1/x").success


def test_checkout_default_branch_none_found(temp_git_repo):
    assert Git(temp_git_repo).checkout_default_branch(["trunk", "develop"]) is None


def test_remote_url(temp_git_repo):
    git = Git(temp_git_repo)
    assert git.remote_url() == ""

    subprocess.run(
        ["git", "remote", "add", "origin", "git@github.com:acme/widgets.git"],
        cwd=str(temp_git_repo),
        check=True,
        capture_output=True,
    )
    assert git.remote_url() == "git@github.com:acme/widgets.git"


def test_status_failure_outside_repo(tmp_path):
    assert Git(tmp_path).status_lines() == []
