"""Tests for SteamCMD invocation and output parsing."""

from pathlib import Path
from unittest.mock import patch

import pytest

from steamcmd import (
    SteamCmdRun,
    _extract_steamcmd_error,
    build_item,
    download_items,
    read_published_id,
    run_steamcmd,
    write_item_vdf,
)


@pytest.fixture
def steamcmd_path(tmp_path: Path) -> Path:
    path = tmp_path / "steamcmd.sh"
    path.write_text("#!/bin/sh\n")
    return path


def test_run_steamcmd_streams_lines(steamcmd_path) -> None:
    seen = []
    with patch("steamcmd.subprocess.Popen") as popen:
        process = popen.return_value.__enter__.return_value
        process.stdout = iter(["\x1b[0mLoading\n", "\n", "Done\n"])
        process.wait.return_value = 0
        run = run_steamcmd(steamcmd_path, ["+login", "anonymous"], seen.append)

    assert run.lines == ["Loading", "Done"]
    assert seen == ["Loading", "Done"]
    cmd = popen.call_args.args[0]
    assert cmd[0] == str(steamcmd_path)
    assert cmd[-1] == "+quit"


def test_download_items_parses_each_item(steamcmd_path, tmp_path) -> None:
    output = SteamCmdRun(
        returncode=0,
        lines=[
            "Success. Downloaded item 111 to \"/steam/content/244850/111\" (100 bytes)",
            "ERROR! Download item 222 failed (Failure).",
        ],
    )
    with patch("steamcmd.run_steamcmd", return_value=output) as run:
        results = download_items(steamcmd_path, tmp_path / "steam", 244850, [111, 222, 333])

    commands = run.call_args.args[1]
    assert commands.count("+workshop_download_item") == 3
    assert results[111].ok
    assert not results[222].ok
    assert results[222].retryable
    assert "222" in results[222].reason
    assert not results[333].ok


def test_download_items_without_binary(tmp_path) -> None:
    results = download_items(tmp_path / "missing.sh", tmp_path, 244850, [1])
    assert not results[1].ok
    assert "not found" in results[1].reason


def test_vdf_round_trip(tmp_path) -> None:
    path = write_item_vdf(
        tmp_path / "item.vdf",
        {"appid": 244850, "publishedfileid": 0, "title": 'My "Mod"', "description": None},
    )
    text = path.read_text()
    assert '"title"\t\t"My \\"Mod\\""' in text
    assert "description" not in text
    assert read_published_id(path) == 0

    path.write_text(text.replace('"publishedfileid"\t\t"0"', '"publishedfileid"\t\t"987"'))
    assert read_published_id(path) == 987


def test_build_item_requires_login(steamcmd_path, tmp_path) -> None:
    vdf = write_item_vdf(tmp_path / "item.vdf", {"appid": 1})
    with patch("steamcmd.run_steamcmd") as run:
        result = build_item(steamcmd_path, vdf, login="anonymous")
    assert not result.ok
    run.assert_not_called()


def test_build_item_reads_published_id_from_output(steamcmd_path, tmp_path) -> None:
    vdf = write_item_vdf(tmp_path / "item.vdf", {"appid": 1, "publishedfileid": 0})
    output = SteamCmdRun(returncode=0, lines=["Uploading content...", "PublishFileID : 5550"])
    with patch("steamcmd.run_steamcmd", return_value=output):
        result = build_item(steamcmd_path, vdf, login="publisher")
    assert result.ok
    assert result.published_id == 5550


def test_build_item_failure(steamcmd_path, tmp_path) -> None:
    vdf = write_item_vdf(tmp_path / "item.vdf", {"appid": 1})
    output = SteamCmdRun(returncode=5, lines=["ERROR! Failed to update workshop item (Access Denied)."])
    with patch("steamcmd.run_steamcmd", return_value=output):
        result = build_item(steamcmd_path, vdf, login="publisher")
    assert not result.ok
    assert "Access Denied" in result.reason


def test_extract_error_ignores_noise() -> None:
    assert _extract_steamcmd_error("Loading...\nall good") is None
    assert _extract_steamcmd_error("x\r\x1b[1mERROR!  Timeout\n") == "ERROR! Timeout"
