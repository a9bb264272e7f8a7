"""
Tests for the command line front end (argument handling only).
"""

import pytest

from leadcrawler.__main__ import _required_fields, build_parser, print_summary, run_cli_with_args
from leadcrawler.models import JobOutcome, JobState


class TestArguments:

    def test_defaults(self):
        args = build_parser().parse_args(["https://biz.example"])
        assert args.urls == ["https://biz.example"]
        assert args.mode == "default"
        assert args.headless is True
        assert not args.no_relay

    def test_headed_and_flags(self):
        args = build_parser().parse_args([
            "a.example", "--headed", "--no-relay", "--mode", "social", "--max-depth", "2",
        ])
        assert args.headless is False
        assert args.no_relay
        assert args.mode == "social"
        assert args.max_depth == 2

    def test_unknown_mode_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["a.example", "--mode", "turbo"])

    def test_required_fields_split_and_deduped(self):
        args = build_parser().parse_args(["a.example", "--require", "email,phone", "--require", "phone"])
        assert _required_fields(args.require) == ["email", "phone"]


class TestValidation:

    def test_no_seeds(self):
        with pytest.raises(SystemExit) as exc:
            run_cli_with_args(["mailto:a@b.com"])
        assert exc.value.code == 2

    def test_unknown_required_field(self):
        with pytest.raises(SystemExit) as exc:
            run_cli_with_args(["biz.example", "--require", "fax"])
        assert exc.value.code == 2


def test_print_summary(capsys):
    outcome = JobOutcome(
        job_id="j1",
        state=JobState.FAILED,
        progress={"success_count": 2, "total": 5, "rotations": 3},
        location="/tmp/j1.json",
        error="PoolExhausted: empty",
    )
    print_summary(outcome)
    out = capsys.readouterr().out
    assert "JOB FAILED" in out
    assert "2/5" in out
    assert "Relay rotations:     3" in out
    assert "PoolExhausted: empty" in out
