"""Tests for the command-line entry point."""

from unittest.mock import AsyncMock, patch

import pytest

from virtuals.main import main


def test_preview_prints_round(capsys):
    main(["preview", "--round", "4", "--count", "2"])

    out = capsys.readouterr().out
    assert "vmt-4-0-regional-" in out
    assert "vmt-4-1-national" in out
    assert "Match Winner:" in out
    assert out.count("*") == 2


def test_duel_prints_players_and_odds(capsys):
    main(["duel", "--seed", "42"])

    out = capsys.readouterr().out
    assert out.startswith("qdt-42")
    assert "winner:" in out
    assert "Total Match Score:" in out


def test_boot_failure_exits():
    with patch("virtuals.main.get_pool", AsyncMock(side_effect=RuntimeError("no database"))):
        with pytest.raises(SystemExit) as exc:
            main([])

    assert exc.value.code == 1
