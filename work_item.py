from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from content_types import SIDECAR_NAME, ContentType
from utils import load_json, save_json
from workshop_details import ItemDetails


def _declared_title(content_type: ContentType, path: Path) -> str:
    layout = content_type.layout
    if not layout.title_file or not layout.title_element:
        return ""
    definition = path / layout.title_file
    if not definition.is_file():
        return ""
    try:
        root = ET.parse(definition).getroot()
    except (ET.ParseError, OSError) as exc:
        logging.debug("Cannot read title from %s: %s", definition, exc)
        return ""
    for node in root.iter():
        # Definition files may carry an XML namespace.
        if node.tag.rsplit("}", 1)[-1] == layout.title_element and node.text:
            return node.text.strip()
    return ""


@dataclass
class WorkItem:
    """One content item being processed, either a local directory or a remote id."""

    content_type: ContentType
    title: str
    local_path: Optional[Path] = None
    remote_id: int = 0
    tags: List[str] = field(default_factory=list)
    description: str = ""
    preview_url: str = ""
    recorded_hash: str = ""

    @classmethod
    def from_path(cls, content_type: ContentType, path: Path | str) -> "WorkItem":
        local_path = Path(path).resolve()
        sidecar = load_json(local_path / SIDECAR_NAME)
        title = str(sidecar.get("title") or "").strip()
        if not title:
            title = _declared_title(content_type, local_path) or local_path.name
        try:
            remote_id = int(sidecar.get("publishedfileid") or 0)
        except (TypeError, ValueError):
            logging.warning("Invalid publishedfileid in %s", local_path / SIDECAR_NAME)
            remote_id = 0
        tags = [str(tag) for tag in sidecar.get("tags") or [] if str(tag).strip()]
        return cls(
            content_type=content_type,
            title=title,
            local_path=local_path,
            remote_id=remote_id,
            tags=tags,
            description=str(sidecar.get("description") or ""),
            recorded_hash=str(sidecar.get("content_hash") or ""),
        )

    @classmethod
    def from_details(cls, content_type: ContentType, details: ItemDetails) -> "WorkItem":
        return cls(
            content_type=content_type,
            title=details.title or str(details.publishedfileid),
            remote_id=int(details.publishedfileid),
            tags=list(details.tags),
            description=details.description,
            preview_url=details.preview_url,
        )

    @property
    def is_published(self) -> bool:
        return self.remote_id > 0

    @property
    def sidecar_path(self) -> Optional[Path]:
        if self.local_path is None:
            return None
        return self.local_path / SIDECAR_NAME

    def merged_tags(self, extra: tuple[str, ...] | list[str]) -> List[str]:
        tags = list(self.tags)
        for tag in extra:
            if tag not in tags:
                tags.append(tag)
        return tags

    def record_upload(self, remote_id: int, content_hash: str = "") -> None:
        self.remote_id = int(remote_id)
        if content_hash:
            self.recorded_hash = content_hash
        sidecar_path = self.sidecar_path
        if sidecar_path is None:
            return
        data = load_json(sidecar_path)
        data["publishedfileid"] = self.remote_id
        data.setdefault("title", self.title)
        if self.recorded_hash:
            data["content_hash"] = self.recorded_hash
        data["uploaded_at"] = datetime.now(timezone.utc).isoformat(timespec="seconds")
        save_json(sidecar_path, data)

    def __str__(self) -> str:
        return self.title
