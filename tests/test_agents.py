from __future__ import annotations

from pathlib import Path

from continuous_opencode.agents import OpenCodeAgent, build_iteration_prompt


def test_iteration_prompt_wraps_user_task():
    prompt = build_iteration_prompt("add tests", "AGENTS.md", "DONE_PHRASE")

    assert prompt.startswith("This is part of a continuous development loop with OpenCode.")
    assert "meaningful progress on one thing" in prompt
    assert "Leave clear notes in AGENTS.md" in prompt
    assert "DONE_PHRASE" in prompt
    assert prompt.endswith("add tests")


def test_run_argv_cold():
    agent = OpenCodeAgent(extra_args=["--model", "m"])
    assert agent.run_argv("p") == ["opencode", "run", "--model", "m", "--", "p"]


def test_run_argv_attached_with_share():
    agent = OpenCodeAgent()
    assert agent.run_argv("p", server_url="http://localhost:4096", share=True) == [
        "opencode", "run", "--attach", "http://localhost:4096", "--share", "--", "p",
    ]


def test_share_needs_a_server():
    assert "--share" not in OpenCodeAgent().run_argv("p", share=True)


def test_prompt_starting_with_dash_stays_positional():
    argv = OpenCodeAgent().run_argv("--not-a-flag")
    assert argv[-2:] == ["--", "--not-a-flag"]


def test_serve_and_stats_argv():
    agent = OpenCodeAgent()
    assert agent.serve_argv(4096) == ["opencode", "serve", "--port", "4096"]
    assert agent.stats_argv(Path("/proj")) == [
        "opencode", "stats", "--project", "/proj", "--format", "json",
    ]


def test_invoke_captures_combined_output(fake_runner):
    fake_runner.on("opencode", "run", stdout="hello\n", stderr="warning\n", returncode=1)
    run = OpenCodeAgent(run=fake_runner).invoke("p")
    assert run.output == "hello\nwarning\n"
    assert run.ok is False


def test_invoke_missing_binary_is_failed_run():
    def runner(argv, cwd=None, **kwargs):
        raise RuntimeError("Command not found: opencode")

    run = OpenCodeAgent(run=runner).invoke("p")
    assert run.returncode == 127
    assert "Command not found" in run.output


def test_query_stats_failure_is_empty(fake_runner):
    fake_runner.on("opencode", "stats", returncode=1, stdout='{"totalCostUsd": 3}')
    assert OpenCodeAgent(run=fake_runner).query_stats(Path(".")) == ""
