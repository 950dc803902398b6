"""Tests for the command-line entry point."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from soanm.__main__ import _log_level, build_parser, enroll, main, sponsor
from soanm.channel import loopback_pair
from soanm.config import SessionConfig
from soanm.errors import ChannelError

# ── Parsing ───────────────────────────────────────────────────────


class TestParser:
    def test_sponsor_defaults(self):
        args = build_parser().parse_args(["sponsor"])
        assert args.command == "sponsor"
        assert args.path == "."
        assert args.starting_stage == 0
        assert args.passphrase_length is None

    def test_sponsor_options(self):
        args = build_parser().parse_args(
            ["sponsor", "provision", "--starting-stage", "2", "-p", "3"]
        )
        assert args.path == "provision"
        assert args.starting_stage == 2
        assert args.passphrase_length == 3

    def test_negative_starting_stage_rejected(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sponsor", "-s", "-1"])
        assert "must be 0 or greater" in capsys.readouterr().err

    def test_starting_stage_help(self, capsys, monkeypatch):
        monkeypatch.setenv("COLUMNS", "200")
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sponsor", "--help"])
        assert "Skip the first N sponsor stages entirely" in capsys.readouterr().out

    def test_enroll_requires_code(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["enroll"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_verbosity_counts(self):
        args = build_parser().parse_args(["-vv", "enroll", "7-a-b"])
        assert args.verbose == 2
        assert args.code == "7-a-b"

    def test_log_levels(self):
        assert _log_level(0, 0) == logging.WARNING
        assert _log_level(1, 0) == logging.INFO
        assert _log_level(5, 0) == logging.DEBUG
        assert _log_level(0, 1) == logging.ERROR
        assert _log_level(0, 9) == logging.CRITICAL


# ── main() ────────────────────────────────────────────────────────


class TestMain:
    def test_sponsor_dispatch(self, tmp_path):
        with patch("soanm.__main__.sponsor", new=AsyncMock()) as run:
            main(["--relay-url", "ws://lan:4000/v1", "sponsor", str(tmp_path), "-s", "1", "-p", "2"])
        base_dir, starting_stage, config = run.call_args[0]
        assert base_dir == Path(tmp_path)
        assert starting_stage == 1
        assert config.relay_url == "ws://lan:4000/v1"
        assert config.passphrase_length == 2

    def test_enroll_dispatch(self):
        with patch("soanm.__main__.enroll", new=AsyncMock()) as run:
            main(["enroll", "7-crossover-clockwork"])
        assert run.call_args[0][0] == "7-crossover-clockwork"

    def test_config_file(self, tmp_path):
        path = tmp_path / "config.json"
        SessionConfig(app_id="example.org/provision").save(path)
        with patch("soanm.__main__.enroll", new=AsyncMock()) as run:
            main(["--config", str(path), "enroll", "1-x"])
        assert run.call_args[0][1].app_id == "example.org/provision"

    def test_error_exits_nonzero(self, capsys):
        failing = AsyncMock(side_effect=ChannelError("WrongPasswordError"))
        with patch("soanm.__main__.enroll", new=failing):
            with pytest.raises(SystemExit) as exc_info:
                main(["enroll", "1-wrong"])
        assert exc_info.value.code == 1
        assert "Error: ChannelError('WrongPasswordError')" in capsys.readouterr().err

    def test_io_error_exits_nonzero(self, capsys):
        failing = AsyncMock(side_effect=FileNotFoundError(2, "No such file", "results/s0"))
        with patch("soanm.__main__.sponsor", new=failing):
            with pytest.raises(SystemExit) as exc_info:
                main(["sponsor"])
        assert exc_info.value.code == 1
        assert "FileNotFoundError" in capsys.readouterr().err


# ── Session wiring ────────────────────────────────────────────────


class TestSession:
    @pytest.mark.asyncio
    async def test_sponsor_and_enroll_over_loopback(self, two_stage_tree, capsys):
        sponsor_end, enrollee_end = loopback_pair()
        pending = MagicMock()
        pending.wait = AsyncMock(return_value=sponsor_end)
        config = SessionConfig(passphrase_length=2)

        with patch("soanm.__main__.connect_without_code",
                   new=AsyncMock(return_value=("7-guitarist-revenge", pending))) as allocate, \
             patch("soanm.__main__.connect_with_code",
                   new=AsyncMock(return_value=enrollee_end)) as join:
            await asyncio.wait_for(
                asyncio.gather(
                    sponsor(two_stage_tree, 0, config),
                    enroll("7-guitarist-revenge", config),
                ),
                timeout=10,
            )

        assert allocate.call_args[0][0] == 2
        assert join.call_args[0][0] == "7-guitarist-revenge"
        assert "soanm enroll 7-guitarist-revenge" in capsys.readouterr().err
        assert (two_stage_tree / "results" / "s1").read_bytes() == b"B"
        assert sponsor_end.closed and enrollee_end.closed
