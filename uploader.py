from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from content_types import ContentType
from engine import ContentEngine
from options import BatchOptions
from telemetry import start_span
from work_item import WorkItem


class UploadPipeline:
    """Validate and publish every resolved directory of one content type.

    A failing item marks the run as failed but never stops the loop; the
    return value is True only if every processed item succeeded.
    """

    def __init__(self, engine: ContentEngine, options: BatchOptions) -> None:
        self.engine = engine
        self.options = options

    def run(self, content_type: ContentType, paths: Iterable[Path]) -> bool:
        success = True
        for path in paths:
            if not self._process(content_type, path):
                success = False
        return success

    def _process(self, content_type: ContentType, path: Path) -> bool:
        item = WorkItem.from_path(content_type, path)
        if self.options.update_only and not item.is_published:
            logging.info("--update-only passed, skipping: %s", item.title)
            return True

        with start_span(
            "upload.item",
            {
                "workshop.type": content_type.value,
                "workshop.item_id": item.remote_id or None,
                "workshop.dry_run": self.options.dry_run,
            },
        ) as span:
            logging.info("Processing %s: %s", content_type, item.title)
            ok = self._compile_and_publish(content_type, item)
            span.set_attribute("workshop.success", ok)
            logging.info("")
            return ok

    def _compile_and_publish(self, content_type: ContentType, item: WorkItem) -> bool:
        if self.options.compile and not self._run_step(self.engine.validate, item):
            logging.error("Skipping %s: %s", content_type, item.title)
            return False

        if self.options.upload:
            if self._run_step(self.engine.publish, item):
                logging.info("Complete: %s", item.title)
                return True
            logging.error("Error occurred: %s", item.title)
            return False

        logging.info("Not uploading: %s", item.title)
        if not self._run_step(self.engine.update_preview_or_tags, item):
            logging.error("Error occurred: %s", item.title)
            return False
        logging.info("Complete: %s", item.title)
        return True

    def _run_step(self, step, item: WorkItem) -> bool:
        try:
            return bool(step(item, self.options))
        except Exception:
            logging.exception(
                "%s failed for %s", getattr(step, "__name__", "step"), item.title
            )
            return False
