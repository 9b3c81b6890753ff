from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from config import default_data_root

# Leaf prefix of directories created by a download; they are never re-uploaded.
DOWNLOAD_PREFIX = "[_WST_]"
SIDECAR_NAME = "workshop.json"
DEVELOPMENT_TAG = "development"


class ContentType(str, Enum):
    MOD = "Mod"
    BLUEPRINT = "Blueprint"
    INGAME_SCRIPT = "IngameScript"
    WORLD = "World"
    SCENARIO = "Scenario"

    @property
    def layout(self) -> "ContentTypeLayout":
        return CONTENT_TYPES[self]

    @property
    def tag(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


class FetchStrategy(str, Enum):
    BATCH = "batch"
    PER_ITEM = "per_item"


@dataclass(frozen=True)
class ContentTypeLayout:
    directory: str
    fetch: FetchStrategy
    instantiate: bool
    required_file: Optional[str]
    title_file: Optional[str] = None
    title_element: Optional[str] = None


CONTENT_TYPES: Dict[ContentType, ContentTypeLayout] = {
    ContentType.MOD: ContentTypeLayout(
        directory="Mods",
        fetch=FetchStrategy.BATCH,
        instantiate=False,
        required_file=None,
    ),
    ContentType.BLUEPRINT: ContentTypeLayout(
        directory="Blueprints/local",
        fetch=FetchStrategy.PER_ITEM,
        instantiate=False,
        required_file="bp.sbc",
        title_file="bp.sbc",
        title_element="DisplayName",
    ),
    ContentType.INGAME_SCRIPT: ContentTypeLayout(
        directory="IngameScripts/local",
        fetch=FetchStrategy.PER_ITEM,
        instantiate=False,
        required_file="Script.cs",
    ),
    ContentType.WORLD: ContentTypeLayout(
        directory="Saves",
        fetch=FetchStrategy.PER_ITEM,
        instantiate=True,
        required_file="Sandbox.sbc",
        title_file="Sandbox.sbc",
        title_element="SessionName",
    ),
    ContentType.SCENARIO: ContentTypeLayout(
        directory="Scenarios",
        fetch=FetchStrategy.PER_ITEM,
        instantiate=True,
        required_file="Sandbox.sbc",
        title_file="Sandbox.sbc",
        title_element="SessionName",
    ),
}


@dataclass(frozen=True)
class GameProfile:
    name: str
    app_id: int
    data_dir_name: str
    upload_types: FrozenSet[ContentType]
    download_types: FrozenSet[ContentType]

    def can_upload(self, content_type: ContentType) -> bool:
        return content_type in self.upload_types

    def can_download(self, content_type: ContentType) -> bool:
        return content_type in self.download_types


GAME_PROFILES: Dict[str, GameProfile] = {
    "space-engineers": GameProfile(
        name="space-engineers",
        app_id=244850,
        data_dir_name="SpaceEngineers",
        upload_types=frozenset(ContentType),
        download_types=frozenset(ContentType),
    ),
    "medieval-engineers": GameProfile(
        name="medieval-engineers",
        app_id=333950,
        data_dir_name="MedievalEngineers",
        upload_types=frozenset(
            {
                ContentType.MOD,
                ContentType.BLUEPRINT,
                ContentType.WORLD,
                ContentType.SCENARIO,
            }
        ),
        download_types=frozenset({ContentType.MOD, ContentType.BLUEPRINT}),
    ),
}


def get_profile(name: str) -> GameProfile:
    try:
        return GAME_PROFILES[name.strip().lower()]
    except KeyError:
        known = ", ".join(sorted(GAME_PROFILES))
        raise ValueError(f"Unknown game {name!r} (expected one of: {known})") from None


def type_directory(
    content_type: ContentType,
    data_root: Path | None,
    profile: GameProfile | None = None,
) -> Path:
    if data_root is None:
        profile = profile or GAME_PROFILES["space-engineers"]
        data_root = default_data_root(profile.data_dir_name)
    return Path(data_root) / content_type.layout.directory
