"""Tests for the command line entry point."""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from batch import BatchOutcome, ExitCode
from main import cli, run
from options import BatchOptions, Direction, Visibility


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_no_inputs_prints_help(runner) -> None:
    result = runner.invoke(cli, [])
    assert result.exit_code == ExitCode.NO_INPUTS
    assert "--mods" in result.output


def test_arguments_become_options(runner) -> None:
    with patch("main.run", return_value=ExitCode.OK) as run_mock, patch(
        "main.configure_logging"
    ):
        result = runner.invoke(
            cli,
            [
                "-m", "ModA", "-m", "Mod*", "--tags", "Mod;Block", "--dev",
                "--visibility", "private", "--upload", "--exclude", "bak",
                "--game", "medieval-engineers",
            ],
        )

    assert result.exit_code == 0, result.output
    _, options, game = run_mock.call_args.args
    assert options.mods == ("ModA", "Mod*")
    assert options.tags == ("Mod", "Block")
    assert options.visibility is Visibility.PRIVATE
    assert options.upload and options.development
    assert options.direction is Direction.UPLOAD
    assert game == "medieval-engineers"


def test_batch_failure_exit_code(runner) -> None:
    with patch("main.run", return_value=ExitCode.BATCH_FAILED), patch("main.configure_logging"):
        result = runner.invoke(cli, ["--download", "-b", "111"])
    assert result.exit_code == ExitCode.BATCH_FAILED


def test_run_unknown_game_is_init_failure(config) -> None:
    assert run(config, BatchOptions.create(mods=["x"]), "portal") == ExitCode.INIT_FAILED


def test_run_download_without_steamcmd(config) -> None:
    engine = MagicMock()
    engine.is_available.return_value = False
    with patch("main.SteamWorkshopEngine", return_value=engine), patch("main.run_batch") as batch:
        code = run(
            config,
            BatchOptions.create(direction=Direction.DOWNLOAD, mods=["1"]),
            "space-engineers",
        )
    assert code == ExitCode.SESSION_UNAVAILABLE
    batch.assert_not_called()


def test_run_upload_without_steamcmd_is_dry_run(config) -> None:
    engine = MagicMock()
    engine.is_available.return_value = False
    with patch("main.SteamWorkshopEngine", return_value=engine), patch(
        "main.run_batch", return_value=BatchOutcome(True)
    ) as batch:
        code = run(config, BatchOptions.create(mods=["x"], upload=True), "space-engineers")
    assert code == ExitCode.OK
    options = batch.call_args.args[1]
    assert options.dry_run is True
    assert options.upload is False
