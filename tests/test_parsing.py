from __future__ import annotations

from continuous_opencode.parsing import (
    contains_completion_signal,
    extract_pr_number,
    extract_share_link,
)

SIGNAL = "CONTINUOUS_OPENCODE_PROJECT_COMPLETE"


def test_completion_signal_anywhere_in_output():
    output = f"Did the work.\nAll done: {SIGNAL}\n"
    assert contains_completion_signal(output, SIGNAL)


def test_completion_signal_absent():
    assert not contains_completion_signal("still going", SIGNAL)
    assert not contains_completion_signal("", SIGNAL)


def test_empty_signal_never_matches():
    assert not contains_completion_signal("anything", "")


def test_share_link_first_match():
    output = "Share: https://opncd.ai/s/AbC123 and https://opncd.ai/s/zzz"
    assert extract_share_link(output) == "https://opncd.ai/s/AbC123"


def test_share_link_missing():
    assert extract_share_link("no link here") == ""
    assert extract_share_link(None) == ""


def test_pr_number_from_url():
    output = "Creating pull request for feature into main\n\nhttps://github.com/acme/widgets/pull/42\n"
    assert extract_pr_number(output) == "42"


def test_pr_number_from_trailing_digits():
    assert extract_pr_number("created 17") == "17"


def test_pr_number_missing():
    assert extract_pr_number("") is None
    assert extract_pr_number("something went wrong") is None
