"""Tests for turning user supplied fragments into item directories."""

import logging
from pathlib import Path

from content_types import DOWNLOAD_PREFIX, ContentType
from path_resolver import glob_directories, make_absolute, resolve_paths


def _mods_dir(tmp_path: Path) -> Path:
    mods = tmp_path / "Mods"
    for name in ("ModA", "ModC", ".vs", f"{DOWNLOAD_PREFIX}Old", "Other"):
        (mods / name).mkdir(parents=True)
    (mods / "ModFile").write_text("not a directory")
    return mods


class TestMakeAbsolute:
    def test_absolute_fragment_unchanged(self, tmp_path: Path) -> None:
        target = tmp_path / "elsewhere" / "MyMod"
        assert make_absolute([str(target)], tmp_path / "Mods") == [target]

    def test_relative_fragment_anchored_at_type_dir(self, tmp_path: Path) -> None:
        type_dir = tmp_path / "Mods"
        assert make_absolute(["Mod*"], type_dir) == [type_dir / "Mod*"]

    def test_none_is_empty(self, tmp_path: Path) -> None:
        assert make_absolute(None, tmp_path) == []


class TestGlobDirectories:
    def test_pattern_matches_directories_only(self, tmp_path: Path) -> None:
        mods = _mods_dir(tmp_path)
        names = [path.name for path in glob_directories(mods / "Mod*")]
        assert names == ["ModA", "ModC"]

    def test_missing_parent(self, tmp_path: Path) -> None:
        assert glob_directories(tmp_path / "nope" / "*") == []

    def test_exact_name(self, tmp_path: Path) -> None:
        mods = _mods_dir(tmp_path)
        assert glob_directories(mods / "Other") == [mods / "Other"]
        assert glob_directories(mods / "Missing") == []


class TestResolvePaths:
    def test_wildcard_skips_hidden_and_downloaded(self, tmp_path: Path) -> None:
        mods = _mods_dir(tmp_path)
        resolved = resolve_paths(ContentType.MOD, ["*"], mods)
        assert [path.name for path in resolved] == ["ModA", "ModC", "Other"]
        assert all(path.is_absolute() for path in resolved)

    def test_missing_directory_logged_and_skipped(self, tmp_path: Path, caplog) -> None:
        mods = _mods_dir(tmp_path)
        with caplog.at_level(logging.WARNING):
            resolved = resolve_paths(ContentType.MOD, ["ModA", "ModB"], mods)
        assert resolved == [mods / "ModA"]
        assert "Directory not found, skipping" in caplog.text
        assert "ModB" in caplog.text

    def test_absolute_path_resolves_to_itself(self, tmp_path: Path) -> None:
        item = tmp_path / "work" / "Blueprint One"
        item.mkdir(parents=True)
        resolved = resolve_paths(ContentType.BLUEPRINT, [str(item)], tmp_path / "Blueprints")
        assert resolved == [item]

    def test_bracketed_directory_name_is_literal(self, tmp_path: Path) -> None:
        item = tmp_path / "work" / "[DX11] Ship"
        item.mkdir(parents=True)
        (tmp_path / "work" / "D Ship").mkdir()
        resolved = resolve_paths(ContentType.BLUEPRINT, [str(item)], tmp_path / "Blueprints")
        assert resolved == [item]

    def test_wildcard_with_brackets(self, tmp_path: Path) -> None:
        work = tmp_path / "work"
        for name in ("[DX11] Ship", "[DX11] Rover", "D Ship"):
            (work / name).mkdir(parents=True)
        resolved = resolve_paths(ContentType.BLUEPRINT, [str(work / "[DX11]*")], tmp_path)
        assert [path.name for path in resolved] == ["[DX11] Rover", "[DX11] Ship"]

    def test_duplicates_removed_in_order(self, tmp_path: Path) -> None:
        mods = _mods_dir(tmp_path)
        resolved = resolve_paths(ContentType.MOD, ["ModC", "Mod*", str(mods / "ModA")], mods)
        assert [path.name for path in resolved] == ["ModC", "ModA"]
