import pytest

from content_types import DEVELOPMENT_TAG, ContentType
from options import BatchOptions, Direction, Visibility, split_tags


@pytest.mark.parametrize(
    "raw, expected",
    [
        (["Mod,Block;Weapon"], ("Mod", "Block", "Weapon")),
        (["Mod", "Block"], ("Mod", "Block")),
        (["Mod, ,Mod"], ("Mod",)),
        ([], ()),
        (None, ()),
    ],
)
def test_split_tags(raw, expected) -> None:
    assert split_tags(raw) == expected


def test_development_adds_tag_once() -> None:
    options = BatchOptions.create(tags=["Mod"], development=True)
    assert options.effective_tags() == ("Mod", DEVELOPMENT_TAG)
    assert BatchOptions.create(tags=[DEVELOPMENT_TAG], development=True).effective_tags() == (
        DEVELOPMENT_TAG,
    )


def test_empty_path_lists_become_none() -> None:
    options = BatchOptions.create(mods=[], blueprints=["a"])
    assert options.mods is None
    assert options.paths_for(ContentType.BLUEPRINT) == ("a",)
    assert options.has_inputs()
    assert not BatchOptions.create(mods=[]).has_inputs()


def test_collections_count_as_input() -> None:
    options = BatchOptions.create(direction=Direction.DOWNLOAD, collections=["1"])
    assert options.has_inputs()
    assert options.is_download


def test_with_paths_returns_copy() -> None:
    options = BatchOptions.create(worlds=["a"])
    changed = options.with_paths(ContentType.WORLD, ["b", "c"])
    assert changed.worlds == ("b", "c")
    assert options.worlds == ("a",)


@pytest.mark.parametrize(
    "value, expected",
    [("private", Visibility.PRIVATE), ("3", Visibility.UNLISTED), (1, Visibility.FRIENDS), (None, None)],
)
def test_visibility_parse(value, expected) -> None:
    assert Visibility.parse(value) is expected
