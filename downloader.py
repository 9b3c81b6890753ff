from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Sequence, Set

from content_types import ContentType, FetchStrategy, GameProfile
from engine import ContentEngine
from errors import ItemFetchError, UnsupportedContentType
from options import BatchOptions
from telemetry import start_span
from workshop_details import ItemDetails


def parse_item_ids(values: Iterable[str]) -> List[int]:
    ids: List[int] = []
    for value in values:
        try:
            item_id = int(str(value).strip())
        except ValueError:
            logging.warning("Invalid workshop id, skipping: %s", value)
            continue
        if item_id <= 0:
            logging.warning("Invalid workshop id, skipping: %s", value)
            continue
        if item_id not in ids:
            ids.append(item_id)
    return ids


class DownloadPipeline:
    def __init__(
        self,
        engine: ContentEngine,
        options: BatchOptions,
        profile: GameProfile,
    ) -> None:
        self.engine = engine
        self.options = options
        self.profile = profile

    def run(self, content_type: ContentType, values: Sequence[str], destination: Path) -> bool:
        if not values:
            return True
        if not self.profile.can_download(content_type):
            raise UnsupportedContentType(content_type, self.profile.name)

        logging.info("Processing %ss...", content_type)
        item_ids = parse_item_ids(values)
        if not item_ids:
            logging.info("No valid %s ids to process", content_type)
            return True
        try:
            items = self.engine.get_items(item_ids)
        except ItemFetchError as exc:
            logging.warning("No %s items to process: %s", content_type, exc)
            return True
        if not items:
            logging.info("No %s items found", content_type)
            return True

        with start_span(
            "download.type",
            {"workshop.type": content_type.value, "workshop.items": len(items)},
        ) as span:
            succeeded = self._fetch(content_type, items, destination)
            span.set_attribute("workshop.succeeded", len(succeeded))

        if not succeeded:
            logging.error("Download FAILED!")
            return False

        logging.info("Download success!")
        success = True
        for item in items:
            logging.info(
                "%s '%s' tags: %s", item.publishedfileid, item.title, ", ".join(item.tags)
            )
            if self.options.extract and item.publishedfileid in succeeded:
                if not self._extract_one(content_type, item, destination):
                    logging.error("Extraction of %s FAILED!", item.publishedfileid)
                    success = False
            logging.info("")
        return success

    def _extract_one(self, content_type: ContentType, item: ItemDetails, destination: Path) -> bool:
        try:
            return self.engine.extract(item, content_type, destination) is not None
        except Exception:
            logging.exception("Extraction of %s raised", item.publishedfileid)
            return False

    def _fetch(
        self, content_type: ContentType, items: List[ItemDetails], destination: Path
    ) -> Set[int]:
        """Return the ids fetched successfully; empty means the type failed."""
        layout = content_type.layout
        if layout.fetch == FetchStrategy.BATCH:
            if not self.engine.download_mods(items):
                return set()
            return {item.publishedfileid for item in items}

        succeeded: Set[int] = set()
        for item in items:
            try:
                ok = self._fetch_one(content_type, item, destination)
            except Exception:
                logging.exception("Download of %s raised", item.publishedfileid)
                ok = False
            if not ok:
                logging.error("Download of %s FAILED!", item.publishedfileid)
                continue
            succeeded.add(item.publishedfileid)
        return succeeded

    def _fetch_one(self, content_type: ContentType, item: ItemDetails, destination: Path) -> bool:
        if not content_type.layout.instantiate:
            return self.engine.download_item(item)
        path = self.engine.create_world_instance(item, content_type, destination)
        if path is None:
            return False
        logging.info("Downloaded '%s' to %s", item.title, path)
        return True
