from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import Iterable, Optional, Tuple

from content_types import DEVELOPMENT_TAG, ContentType

PathList = Optional[Tuple[str, ...]]


class Direction(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


class Visibility(IntEnum):
    PUBLIC = 0
    FRIENDS = 1
    PRIVATE = 2
    UNLISTED = 3

    @classmethod
    def parse(cls, value: "str | int | Visibility | None") -> Optional["Visibility"]:
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        if isinstance(value, int) or str(value).isdigit():
            return cls(int(value))
        return cls[str(value).strip().upper()]


_FIELD_BY_TYPE = {
    ContentType.MOD: "mods",
    ContentType.BLUEPRINT: "blueprints",
    ContentType.INGAME_SCRIPT: "scripts",
    ContentType.WORLD: "worlds",
    ContentType.SCENARIO: "scenarios",
}


def split_tags(tags: Iterable[str] | None) -> Tuple[str, ...]:
    """A single combined argument is split on ``,`` and ``;``."""
    values = [tag for tag in tags or [] if tag is not None]
    if len(values) == 1:
        values = re.split(r"[,;]", values[0])
    result: list[str] = []
    for value in values:
        value = value.strip()
        if value and value not in result:
            result.append(value)
    return tuple(result)


def _as_tuple(values: Iterable[str] | None) -> PathList:
    if values is None:
        return None
    return tuple(str(value) for value in values)


@dataclass(frozen=True)
class BatchOptions:
    direction: Direction = Direction.UPLOAD
    mods: PathList = None
    blueprints: PathList = None
    scripts: PathList = None
    worlds: PathList = None
    scenarios: PathList = None
    collections: PathList = None
    tags: Tuple[str, ...] = ()
    exclude_extensions: Tuple[str, ...] = ()
    compile: bool = False
    dry_run: bool = False
    development: bool = False
    visibility: Optional[Visibility] = None
    force: bool = False
    thumbnail: Optional[Path] = None
    update_only: bool = False
    extract: bool = False
    upload: bool = False

    @classmethod
    def create(cls, **kwargs) -> "BatchOptions":
        for name in (*_FIELD_BY_TYPE.values(), "collections"):
            if name in kwargs:
                kwargs[name] = _as_tuple(kwargs[name]) or None
        if "tags" in kwargs:
            kwargs["tags"] = split_tags(kwargs["tags"])
        if "exclude_extensions" in kwargs:
            kwargs["exclude_extensions"] = tuple(kwargs["exclude_extensions"] or ())
        if "visibility" in kwargs:
            kwargs["visibility"] = Visibility.parse(kwargs["visibility"])
        if kwargs.get("thumbnail"):
            kwargs["thumbnail"] = Path(kwargs["thumbnail"])
        else:
            kwargs.pop("thumbnail", None)
        return cls(**kwargs)

    @property
    def is_download(self) -> bool:
        return self.direction == Direction.DOWNLOAD

    def paths_for(self, content_type: ContentType) -> PathList:
        return getattr(self, _FIELD_BY_TYPE[content_type])

    def with_paths(self, content_type: ContentType, values: Iterable[str] | None) -> "BatchOptions":
        return dataclasses.replace(self, **{_FIELD_BY_TYPE[content_type]: _as_tuple(values)})

    def replace(self, **changes) -> "BatchOptions":
        return dataclasses.replace(self, **changes)

    def has_inputs(self) -> bool:
        if self.collections:
            return True
        return any(self.paths_for(content_type) for content_type in ContentType)

    def effective_tags(self) -> Tuple[str, ...]:
        tags = list(self.tags)
        if self.development and DEVELOPMENT_TAG not in tags:
            tags.append(DEVELOPMENT_TAG)
        return tuple(tags)
