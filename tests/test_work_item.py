"""Tests for local item metadata."""

import json
from pathlib import Path

from conftest import make_details, make_item_dir
from content_types import SIDECAR_NAME, ContentType
from work_item import WorkItem

BLUEPRINT = """<?xml version="1.0"?>
<Definitions xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <ShipBlueprints>
    <ShipBlueprint>
      <Id Type="MyObjectBuilder_ShipBlueprintDefinition" Subtype="Miner" />
      <DisplayName> Small Miner </DisplayName>
    </ShipBlueprint>
  </ShipBlueprints>
</Definitions>
"""


def test_title_falls_back_to_directory_name(tmp_path: Path) -> None:
    path = make_item_dir(tmp_path, "Plain Mod")
    item = WorkItem.from_path(ContentType.MOD, path)
    assert item.title == "Plain Mod"
    assert item.remote_id == 0
    assert not item.is_published
    assert item.local_path == path.resolve()


def test_title_read_from_definition(tmp_path: Path) -> None:
    path = make_item_dir(tmp_path, "bp-dir", {"bp.sbc": BLUEPRINT})
    assert WorkItem.from_path(ContentType.BLUEPRINT, path).title == "Small Miner"


def test_sidecar_wins_over_definition(tmp_path: Path) -> None:
    path = make_item_dir(tmp_path, "bp-dir", {"bp.sbc": BLUEPRINT})
    (path / SIDECAR_NAME).write_text(
        json.dumps({"publishedfileid": "321", "title": "Miner Mk2", "tags": ["Ship", ""]})
    )
    item = WorkItem.from_path(ContentType.BLUEPRINT, path)
    assert item.title == "Miner Mk2"
    assert item.remote_id == 321
    assert item.tags == ["Ship"]


def test_broken_definition_ignored(tmp_path: Path) -> None:
    path = make_item_dir(tmp_path, "World A", {"Sandbox.sbc": "<MyObjectBuilder_Checkpoint>"})
    assert WorkItem.from_path(ContentType.WORLD, path).title == "World A"


def test_record_upload_writes_sidecar(tmp_path: Path) -> None:
    path = make_item_dir(tmp_path, "Mod")
    item = WorkItem.from_path(ContentType.MOD, path)
    item.record_upload(777, "abc123")

    data = json.loads((path / SIDECAR_NAME).read_text())
    assert data["publishedfileid"] == 777
    assert data["title"] == "Mod"
    assert data["content_hash"] == "abc123"
    assert "uploaded_at" in data

    reloaded = WorkItem.from_path(ContentType.MOD, path)
    assert reloaded.remote_id == 777
    assert reloaded.recorded_hash == "abc123"


def test_merged_tags_keeps_order_without_duplicates() -> None:
    item = WorkItem(ContentType.MOD, "x", tags=["Block", "Mod"])
    assert item.merged_tags(("Mod", "development")) == ["Block", "Mod", "development"]


def test_from_details() -> None:
    item = WorkItem.from_details(ContentType.WORLD, make_details(9, "", ["World"]))
    assert item.title == "Item 9"
    assert item.remote_id == 9
    assert item.local_path is None
    assert item.sidecar_path is None
