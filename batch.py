from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from collection_expander import expand_collections, fetch_collection_members
from content_types import ContentType, GameProfile, type_directory
from downloader import DownloadPipeline
from engine import ContentEngine
from errors import UnsupportedContentType
from options import BatchOptions
from path_resolver import resolve_paths
from telemetry import start_span
from uploader import UploadPipeline


class ExitCode(IntEnum):
    OK = 0
    NO_INPUTS = 1
    INIT_FAILED = 2
    SESSION_UNAVAILABLE = 3
    BATCH_FAULT = 4
    UNSUPPORTED_TYPE = 5
    BATCH_FAILED = -1


@dataclass
class BatchOutcome:
    success: bool
    results: List[Tuple[ContentType, bool]] = field(default_factory=list)
    fault: Optional[BaseException] = None
    unsupported: Optional[UnsupportedContentType] = None

    def exit_code(self) -> ExitCode:
        if self.unsupported is not None:
            return ExitCode.UNSUPPORTED_TYPE
        if self.fault is not None:
            return ExitCode.BATCH_FAULT
        if not self.success:
            return ExitCode.BATCH_FAILED
        return ExitCode.OK


class BatchDriver:
    def __init__(
        self,
        engine: ContentEngine,
        profile: GameProfile,
        data_root: Path | None = None,
    ) -> None:
        self.engine = engine
        self.profile = profile
        self.data_root = data_root
        self.results: List[Tuple[ContentType, bool]] = []

    def type_dir(self, content_type: ContentType) -> Path:
        return type_directory(content_type, self.data_root, self.profile)

    def run(self, options: BatchOptions) -> bool:
        self.results = []
        with start_span(
            "batch.run",
            {"workshop.direction": options.direction.value, "workshop.game": self.profile.name},
        ):
            if options.is_download:
                return self.download(options)
            return self.upload(options)

    def upload(self, options: BatchOptions) -> bool:
        logging.info("Beginning batch workshop upload...")
        logging.info("")
        pipeline = UploadPipeline(self.engine, options)
        success = True
        for content_type in ContentType:
            fragments = options.paths_for(content_type)
            if not fragments:
                continue
            if not self.profile.can_upload(content_type):
                logging.error(
                    "Uploading of %s is not supported for %s", content_type, self.profile.name
                )
                self._record(content_type, False)
                success = False
                continue
            paths = resolve_paths(content_type, fragments, self.type_dir(content_type))
            with start_span("upload.type", {"workshop.type": content_type.value}):
                ok = pipeline.run(content_type, paths)
            self._record(content_type, ok)
            if not ok:
                success = False
        logging.info("Batch workshop upload complete!")
        return success

    def download(self, options: BatchOptions) -> bool:
        logging.info("Beginning batch workshop download...")
        logging.info("")
        if options.collections:
            members = fetch_collection_members(self.engine, options.collections)
            options = expand_collections(options, members)

        pipeline = DownloadPipeline(self.engine, options, self.profile)
        success = True
        for content_type in ContentType:
            values = options.paths_for(content_type)
            if not values:
                continue
            ok = pipeline.run(content_type, values, self.type_dir(content_type))
            self._record(content_type, ok)
            if not ok:
                success = False
        logging.info("Batch workshop download complete!")
        return success

    def _record(self, content_type: ContentType, ok: bool) -> None:
        self.results.append((content_type, ok))


def run_batch(
    driver: BatchDriver,
    options: BatchOptions,
    *,
    poll_interval: float = 0.5,
    pump: Callable[[], object] | None = None,
) -> BatchOutcome:
    """Run the batch on a worker thread while this thread services ``pump``."""
    pump = pump or driver.engine.run_callbacks
    logging.info("")
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="workshop-batch") as executor:
        future = executor.submit(driver.run, options)
        while not future.done():
            done, _ = wait([future], timeout=poll_interval)
            if not done:
                pump()
        pump()

    try:
        success = bool(future.result())
    except UnsupportedContentType as exc:
        logging.error("%s", exc)
        return BatchOutcome(False, list(driver.results), unsupported=exc)
    except Exception as exc:
        logging.exception("An exception occurred: %s", exc)
        return BatchOutcome(False, list(driver.results), fault=exc)
    return BatchOutcome(success, list(driver.results))
