"""Tests for the management CLI."""

from unittest.mock import AsyncMock, patch

import pytest

import cli
from services.events_service import EventNotFoundError
from services.generation_service import NoTemplatesError

pytestmark = pytest.mark.unit


class TestGenerateCommand:
    def test_passes_arguments(self, tmp_path):
        roster = tmp_path / "roster.csv"
        roster.write_text("Email,Name,Category\n")

        with patch("cli._generate", AsyncMock(return_value=0)) as generate:
            exit_code = cli.main(["generate", "7", str(roster), "--format", "png"])

        assert exit_code == 0
        generate.assert_awaited_once_with(7, roster, "png")

    def test_partial_failure_exit_code_is_forwarded(self, tmp_path):
        with patch("cli._generate", AsyncMock(return_value=2)):
            assert cli.main(["generate", "7", str(tmp_path / "r.csv")]) == 2

    @pytest.mark.parametrize("error", [EventNotFoundError(7), NoTemplatesError(7)])
    def test_fatal_errors_exit_1(self, tmp_path, error):
        with patch("cli._generate", AsyncMock(side_effect=error)):
            assert cli.main(["generate", "7", str(tmp_path / "r.csv")]) == 1

    def test_rejects_unknown_format(self, tmp_path):
        with pytest.raises(SystemExit):
            cli.main(["generate", "7", str(tmp_path / "r.csv"), "--format", "gif"])


class TestMigrateCommand:
    def test_upgrade_defaults_to_head(self):
        with patch("alembic.command.upgrade") as upgrade:
            assert cli.main(["migrate"]) == 0

        assert upgrade.call_args.args[1] == "head"


def test_no_command_prints_help():
    assert cli.main([]) == 1
