"""Tests for the command-line interface."""

import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from steam_depot_index.catalog.cursor import SyncMode
from steam_depot_index.cli import UsageError, main, parse_args
from steam_depot_index.errors import PicsConnectionError


class TestParseArgs:
    """Tests for argument parsing."""

    def test_no_arguments_is_auto(self) -> None:
        assert parse_args([]) == (SyncMode.AUTO, None)

    def test_incremental(self) -> None:
        assert parse_args(["--incremental"]) == (SyncMode.INCREMENTAL, None)

    def test_full_with_output(self) -> None:
        mode, output = parse_args(["--full", "--output", "out/index.json"])

        assert mode == SyncMode.FULL
        assert output == Path("out/index.json")

    def test_both_modes_rejected(self) -> None:
        with pytest.raises(UsageError, match="both"):
            parse_args(["--incremental", "--full"])

    def test_output_requires_value(self) -> None:
        with pytest.raises(UsageError):
            parse_args(["--output"])

    def test_unknown_argument(self) -> None:
        with pytest.raises(UsageError, match="--fast"):
            parse_args(["--fast"])


class TestMain:
    """Tests for the entry point exit codes."""

    def test_conflicting_modes_exit_1(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--incremental", "--full"])

        assert exc_info.value.code == 1

    def test_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--help"])

        assert "--incremental" in capsys.readouterr().out

    def test_success(self) -> None:
        with patch("steam_depot_index.cli.cmd_sync", new=AsyncMock()) as cmd_sync:
            main(["--full", "--output", "x.json"])

        cmd_sync.assert_awaited_once_with(SyncMode.FULL, Path("x.json"))

    def test_failure_prints_json_and_exits_1(self, capsys: pytest.CaptureFixture[str]) -> None:
        error = PicsConnectionError("Could not connect to any Steam CM server")
        with (
            patch("steam_depot_index.cli.cmd_sync", new=AsyncMock(side_effect=error)),
            pytest.raises(SystemExit) as exc_info,
        ):
            main([])

        assert exc_info.value.code == 1
        output = json.loads(capsys.readouterr().out)
        assert output["success"] is False
        assert output["command"] == "sync"
        assert "Steam CM" in output["error"]

    def test_interrupt_exits_130(self) -> None:
        def interrupted(coro: Coroutine[Any, Any, None]) -> None:
            coro.close()
            raise KeyboardInterrupt

        with (
            patch("steam_depot_index.cli.asyncio.run", side_effect=interrupted),
            pytest.raises(SystemExit) as exc_info,
        ):
            main(["--incremental"])

        assert exc_info.value.code == 130
