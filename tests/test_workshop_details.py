"""Tests for the Steam Web API details loader with the transport patched out."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from content_types import ContentType
from downloader import DownloadPipeline
from errors import CollectionError, ItemFetchError
from options import BatchOptions, Direction
from workshop_details import COLLECTION_DETAILS_URL, ItemDetails, WorkshopDetailsLoader


def _details_payload(*entries):
    return {"response": {"publishedfiledetails": list(entries)}}


def test_from_api_normalises_tags() -> None:
    details = ItemDetails.from_api(
        {
            "publishedfileid": "12",
            "result": 1,
            "title": "Thing",
            "tags": [{"tag": "Mod"}, {"tag": "Mod"}, {"tag": " Block "}],
        }
    )
    assert details.publishedfileid == 12
    assert details.tags == ["Mod", "Block"]
    assert details.has_tag("mod")


def test_load_items_keeps_order_and_drops_missing() -> None:
    payload = _details_payload(
        {"publishedfileid": "2", "result": 1, "title": "Two"},
        {"publishedfileid": "9", "result": 9},
        {"publishedfileid": "1", "result": 1, "title": "One"},
    )
    loader = WorkshopDetailsLoader(5)
    with patch.object(WorkshopDetailsLoader, "_post_json", new=AsyncMock(return_value=payload)):
        items = loader.load_items([1, 9, 2])
    assert [item.title for item in items] == ["One", "Two"]


def test_load_items_chunks_requests() -> None:
    loader = WorkshopDetailsLoader(5, concurrency=2)
    post = AsyncMock(return_value=_details_payload())
    with patch.object(WorkshopDetailsLoader, "_post_json", new=post):
        assert loader.load_items(range(1, 251)) == []
    assert post.await_count == 3
    counts = sorted(int(call.args[2]["itemcount"]) for call in post.await_args_list)
    assert counts == [50, 100, 100]


def test_collection_members_resolved() -> None:
    async def fake_post(self, session, url, form):
        if url == COLLECTION_DETAILS_URL:
            return {
                "response": {
                    "collectiondetails": [
                        {
                            "result": 1,
                            "children": [{"publishedfileid": "5"}, {"publishedfileid": "6"}],
                        }
                    ]
                }
            }
        return _details_payload(
            {"publishedfileid": "5", "result": 1, "tags": [{"tag": "Mod"}]},
            {"publishedfileid": "6", "result": 1, "tags": [{"tag": "World"}]},
        )

    with patch.object(WorkshopDetailsLoader, "_post_json", new=fake_post):
        members = WorkshopDetailsLoader(5).load_collection_members([77])
    assert [member.publishedfileid for member in members] == [5, 6]


def test_missing_collection_raises() -> None:
    payload = {"response": {"collectiondetails": [{"result": 9}]}}
    with patch.object(WorkshopDetailsLoader, "_post_json", new=AsyncMock(return_value=payload)):
        with pytest.raises(CollectionError):
            WorkshopDetailsLoader(5).load_collection_members([77])


def _session_returning(status: int, **json_kwargs) -> MagicMock:
    session = MagicMock()
    response = session.post.return_value.__aenter__.return_value
    response.status = status
    response.headers = {}
    response.json = AsyncMock(**json_kwargs)
    return session


def test_html_body_becomes_fetch_error() -> None:
    loader = WorkshopDetailsLoader(5)
    session = _session_returning(200, side_effect=ValueError("Expecting value: line 1 column 1"))
    with pytest.raises(ItemFetchError, match="non-JSON"):
        asyncio.run(loader._post_json(session, COLLECTION_DETAILS_URL, {}))


def test_html_body_means_no_items_for_download(engine, se_profile, tmp_path) -> None:
    loader = WorkshopDetailsLoader(5)
    engine.get_items.side_effect = loader.load_items
    session = _session_returning(200, side_effect=ValueError("Expecting value"))
    with patch("workshop_details.aiohttp.ClientSession") as client_session:
        client_session.return_value.__aenter__.return_value = session
        ok = DownloadPipeline(
            engine, BatchOptions.create(direction=Direction.DOWNLOAD), se_profile
        ).run(ContentType.MOD, ["1"], tmp_path)
    assert ok is True
    engine.download_mods.assert_not_called()
