"""Shared fixtures."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from config import Config
from content_types import GAME_PROFILES, GameProfile
from workshop_details import ItemDetails


@pytest.fixture
def config(tmp_path: Path) -> Config:
    steamcmd = tmp_path / "steamcmd" / "steamcmd.sh"
    steamcmd.parent.mkdir(parents=True)
    steamcmd.write_text("#!/bin/sh\n")
    return Config(
        game="space-engineers",
        data_root=tmp_path / "data",
        steamcmd_path=steamcmd,
        steam_root=tmp_path / "steam",
        steam_login="publisher",
        web_api_key="",
        timeout=5,
        http_retries=0,
        http_retry_backoff=0.0,
        poll_interval=0.01,
        log_level="DEBUG",
        log_file="",
        proxy_pool=[],
        details_concurrency=1,
    )


@pytest.fixture
def se_profile() -> GameProfile:
    return GAME_PROFILES["space-engineers"]


@pytest.fixture
def me_profile() -> GameProfile:
    return GAME_PROFILES["medieval-engineers"]


@pytest.fixture
def engine() -> MagicMock:
    """Engine double whose operations all succeed."""
    fake = MagicMock()
    fake.is_available.return_value = True
    fake.validate.return_value = True
    fake.publish.return_value = True
    fake.update_preview_or_tags.return_value = True
    fake.download_mods.return_value = True
    fake.download_item.return_value = True
    fake.get_items.return_value = []
    fake.get_collection_members.return_value = []
    fake.run_callbacks.return_value = 0
    return fake


def make_details(item_id: int, title: str = "", tags=()) -> ItemDetails:
    return ItemDetails(publishedfileid=item_id, title=title or f"Item {item_id}", tags=list(tags))


def make_item_dir(parent: Path, name: str, files: dict[str, str] | None = None) -> Path:
    path = parent / name
    path.mkdir(parents=True, exist_ok=True)
    for rel_path, content in (files or {"data.txt": "content"}).items():
        target = path / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return path
