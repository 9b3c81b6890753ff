from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import xml.etree.ElementTree as ET
import zipfile
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, List, Optional, Protocol, Sequence, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from config import Config
from content_types import DOWNLOAD_PREFIX, SIDECAR_NAME, ContentType, GameProfile
from errors import PublishError
from options import BatchOptions
from steam_api import SteamClient
from steamcmd import build_item, download_items, workshop_content_path, write_item_vdf
from utils import (
    copy_files,
    copy_tree,
    download_url_to_file,
    ensure_dir,
    has_files,
    hash_files,
    iter_content_files,
    sanitize_name,
    save_json,
    unzip_to_directory,
)
from work_item import WorkItem
from workshop_details import ItemDetails, WorkshopDetailsLoader

MAX_PREVIEW_BYTES = 1024 * 1024
THUMBNAIL_NAMES = ("thumb.png", "thumb.jpg", "thumb.jpeg")
LEGACY_ARCHIVE_SUFFIXES = {".zip", ".sbm", ".sbb", ".sbs"}


class ContentEngine(Protocol):
    def is_available(self) -> bool: ...

    def validate(self, item: WorkItem, options: BatchOptions) -> bool: ...

    def get_items(self, item_ids: Sequence[int]) -> List[ItemDetails]: ...

    def get_collection_members(self, collection_ids: Sequence[int]) -> List[ItemDetails]: ...

    def publish(self, item: WorkItem, options: BatchOptions) -> bool: ...

    def update_preview_or_tags(self, item: WorkItem, options: BatchOptions) -> bool: ...

    def download_mods(self, items: Sequence[ItemDetails]) -> bool: ...

    def download_item(self, item: ItemDetails) -> bool: ...

    def create_world_instance(
        self, item: ItemDetails, content_type: ContentType, destination: Path
    ) -> Optional[Path]: ...

    def extract(
        self, item: ItemDetails, content_type: ContentType, destination: Path
    ) -> Optional[Path]: ...

    def run_callbacks(self) -> int: ...


class CallbackPump:
    """Callbacks posted from the batch worker and run on the polling thread."""

    def __init__(self) -> None:
        self._queue: Deque[Tuple[Callable[..., Any], tuple]] = deque()
        self._lock = threading.Lock()

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        with self._lock:
            self._queue.append((callback, args))

    def run_callbacks(self) -> int:
        with self._lock:
            pending = list(self._queue)
            self._queue.clear()
        for callback, args in pending:
            callback(*args)
        return len(pending)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)


def find_thumbnail(item: WorkItem, options: BatchOptions) -> Optional[Path]:
    if options.thumbnail:
        return Path(options.thumbnail)
    if item.local_path is None:
        return None
    for name in THUMBNAIL_NAMES:
        candidate = item.local_path / name
        if candidate.is_file():
            return candidate
    return None


def prepare_thumbnail(source: Path, work_dir: Path) -> Optional[Path]:
    """Return a preview image Steam accepts, re-encoding oversized files."""
    try:
        with Image.open(source) as image:
            image.verify()
    except (OSError, UnidentifiedImageError) as exc:
        logging.error("Thumbnail %s is not a valid image: %s", source, exc)
        return None
    if source.stat().st_size <= MAX_PREVIEW_BYTES:
        return source
    ensure_dir(work_dir)
    target = work_dir / "preview.jpg"
    with Image.open(source) as image:
        image = ImageOps.exif_transpose(image).convert("RGB")
        for max_side, quality in ((1024, 90), (1024, 75), (768, 75), (512, 70)):
            candidate = image.copy()
            candidate.thumbnail((max_side, max_side))
            candidate.save(target, "JPEG", quality=quality, optimize=True)
            if target.stat().st_size <= MAX_PREVIEW_BYTES:
                logging.info(
                    "Thumbnail %s re-encoded to %s bytes", source.name, target.stat().st_size
                )
                return target
    logging.error("Thumbnail %s could not be reduced below 1 MiB", source)
    return None


def _is_legacy_archive(files: List[Path]) -> bool:
    if len(files) != 1:
        return False
    path = files[0]
    return path.suffix.lower() in LEGACY_ARCHIVE_SUFFIXES and zipfile.is_zipfile(path)


def _unique_directory(parent: Path, name: str) -> Path:
    candidate = parent / name
    index = 1
    while candidate.exists():
        index += 1
        candidate = parent / f"{name} ({index})"
    return candidate


class SteamWorkshopEngine:
    def __init__(
        self,
        config: Config,
        profile: GameProfile,
        *,
        loader: WorkshopDetailsLoader | None = None,
        client: SteamClient | None = None,
        pump: CallbackPump | None = None,
    ) -> None:
        self.config = config
        self.profile = profile
        self.loader = loader or WorkshopDetailsLoader(
            config.timeout, proxies=config.proxy_pool, concurrency=config.details_concurrency
        )
        self.client = client or SteamClient(
            config.web_api_key, proxies=config.proxy_pool, timeout=config.timeout
        )
        self.pump = pump or CallbackPump()

    def is_available(self) -> bool:
        return self.config.steamcmd_path.exists()

    def run_callbacks(self) -> int:
        return self.pump.run_callbacks()

    def _on_steamcmd_line(self, line: str) -> None:
        self.pump.post(logging.debug, "SteamCMD: %s", line)

    def _content_files(self, item: WorkItem, options: BatchOptions) -> List[Path]:
        if item.local_path is None:
            raise PublishError(f"{item.title} has no local directory")
        return iter_content_files(
            item.local_path,
            options.exclude_extensions,
            exclude_names=(SIDECAR_NAME,),
        )

    def validate(self, item: WorkItem, options: BatchOptions) -> bool:
        if item.local_path is None or not item.local_path.is_dir():
            logging.error("%s is not a directory", item.local_path)
            return False
        files = self._content_files(item, options)
        if not files:
            logging.error("No content to upload in %s", item.local_path)
            return False
        required = item.content_type.layout.required_file
        if required and not (item.local_path / required).is_file():
            logging.error("%s is missing %s", item.title, required)
            return False
        ok = True
        for path in files:
            if path.suffix.lower() != ".sbc":
                continue
            try:
                ET.parse(path)
            except ET.ParseError as exc:
                logging.error("Invalid definition %s: %s", path, exc)
                ok = False
        if ok:
            logging.info("Validated %s file(s) for %s", len(files), item.title)
        return ok

    def get_items(self, item_ids: Sequence[int]) -> List[ItemDetails]:
        return self.loader.load_items(item_ids)

    def get_collection_members(self, collection_ids: Sequence[int]) -> List[ItemDetails]:
        return self.loader.load_collection_members(collection_ids)

    def _item_fields(
        self, item: WorkItem, options: BatchOptions, preview: Optional[Path]
    ) -> dict:
        fields: dict = {
            "appid": self.profile.app_id,
            "publishedfileid": item.remote_id,
            "previewfile": str(preview) if preview else None,
            "title": item.title,
            "description": item.description or None,
        }
        if options.visibility is not None:
            fields["visibility"] = int(options.visibility)
        return fields

    def _apply_tags(self, item: WorkItem, tags: List[str]) -> bool:
        if not tags:
            return True
        if not self.client.has_key:
            logging.warning(
                "Tags for %s not applied: STEAM_WEB_API_KEY is not set", item.title
            )
            return True
        try:
            self.client.update_tags(item.remote_id, tags)
        except PublishError as exc:
            logging.error("%s", exc)
            return False
        return True

    def publish(self, item: WorkItem, options: BatchOptions) -> bool:
        files = self._content_files(item, options)
        content_hash = hash_files(item.local_path, files)
        if item.is_published and not options.force and content_hash == item.recorded_hash:
            logging.info("Content of %s unchanged since last upload", item.title)
            return self.update_preview_or_tags(item, options)
        tags = item.merged_tags(options.effective_tags())
        if options.dry_run:
            logging.info(
                "DRY-RUN; publish skipped: %s (%s files, tags: %s)",
                item.title,
                len(files),
                ", ".join(tags) or "-",
            )
            return True
        with tempfile.TemporaryDirectory(prefix="wst-") as temp_dir:
            staging = Path(temp_dir)
            copied = copy_files(item.local_path, files, staging / "content")
            preview = None
            thumbnail = find_thumbnail(item, options)
            if thumbnail is not None:
                preview = prepare_thumbnail(thumbnail, staging / "preview")
            fields = self._item_fields(item, options, preview)
            fields["contentfolder"] = str(staging / "content")
            fields["changenote"] = f"Uploaded {copied} file(s)"
            vdf_path = write_item_vdf(staging / "item.vdf", fields)
            logging.info(
                "Publishing %s (%s, %s files)",
                item.title,
                f"update {item.remote_id}" if item.is_published else "new item",
                copied,
            )
            result = build_item(
                self.config.steamcmd_path,
                vdf_path,
                login=self.config.steam_login,
                on_line=self._on_steamcmd_line,
            )
        if not result.ok:
            logging.error("Publish of %s failed: %s", item.title, result.reason)
            return False
        created = not item.is_published
        item.record_upload(result.published_id, content_hash)
        logging.info(
            "%s workshop item %s for %s",
            "Created" if created else "Updated",
            item.remote_id,
            item.title,
        )
        return self._apply_tags(item, tags)

    def update_preview_or_tags(self, item: WorkItem, options: BatchOptions) -> bool:
        if not item.is_published:
            logging.info("%s is not published yet, nothing to update", item.title)
            return True
        requested = options.effective_tags()
        tags = item.merged_tags(requested) if requested else []
        thumbnail = find_thumbnail(item, options) if options.thumbnail else None
        if thumbnail is None and not tags:
            return True
        if options.dry_run:
            logging.info("DRY-RUN; metadata update skipped: %s", item.title)
            return True
        if thumbnail is not None:
            with tempfile.TemporaryDirectory(prefix="wst-") as temp_dir:
                staging = Path(temp_dir)
                preview = prepare_thumbnail(thumbnail, staging / "preview")
                if preview is None:
                    return False
                fields = self._item_fields(item, options, preview)
                fields["changenote"] = "Preview update"
                vdf_path = write_item_vdf(staging / "item.vdf", fields)
                result = build_item(
                    self.config.steamcmd_path,
                    vdf_path,
                    login=self.config.steam_login,
                    on_line=self._on_steamcmd_line,
                )
            if not result.ok:
                logging.error("Preview update of %s failed: %s", item.title, result.reason)
                return False
            logging.info("Updated preview of %s", item.title)
        return self._apply_tags(item, tags)

    def _download(self, items: Sequence[ItemDetails]) -> dict:
        results = self._run_download([item.publishedfileid for item in items])
        retry_ids = [wid for wid, result in results.items() if not result.ok and result.retryable]
        if retry_ids:
            logging.warning("Retrying SteamCMD download of %s", ", ".join(map(str, retry_ids)))
            results.update(self._run_download(retry_ids))
        return results

    def _run_download(self, workshop_ids: List[int]) -> dict:
        return download_items(
            self.config.steamcmd_path,
            self.config.steam_root,
            self.profile.app_id,
            workshop_ids,
            login=self.config.steam_login or "anonymous",
            on_line=self._on_steamcmd_line,
        )

    def _content_path(self, item: ItemDetails) -> Path:
        return workshop_content_path(
            self.config.steam_root, self.profile.app_id, item.publishedfileid
        )

    def _downloaded(self, item: ItemDetails, ok: bool) -> bool:
        if not ok:
            return False
        if not has_files(self._content_path(item)):
            logging.error(
                "SteamCMD finished but no files found for %s at %s",
                item.publishedfileid,
                self._content_path(item),
            )
            return False
        return True

    def download_mods(self, items: Sequence[ItemDetails]) -> bool:
        results = self._download(items)
        success = True
        for item in items:
            result = results.get(item.publishedfileid)
            if not self._downloaded(item, bool(result and result.ok)):
                success = False
        return success

    def download_item(self, item: ItemDetails) -> bool:
        result = self._download([item]).get(item.publishedfileid)
        return self._downloaded(item, bool(result and result.ok))

    def _materialize(self, item: ItemDetails, target: Path) -> int:
        source = self._content_path(item)
        files = [path for path in source.rglob("*") if path.is_file()]
        if _is_legacy_archive(files):
            return unzip_to_directory(files[0], target)
        return copy_tree(source, target)

    def create_world_instance(
        self, item: ItemDetails, content_type: ContentType, destination: Path
    ) -> Optional[Path]:
        if not self.download_item(item):
            return None
        ensure_dir(destination)
        target = _unique_directory(destination, sanitize_name(item.title, str(item.publishedfileid)))
        count = self._materialize(item, target)
        if not (target / "Sandbox.sbc").is_file():
            logging.warning("%s %s has no Sandbox.sbc", content_type, item.publishedfileid)
        logging.debug("Instantiated %s file(s) into %s", count, target)
        return target

    def extract(
        self, item: ItemDetails, content_type: ContentType, destination: Path
    ) -> Optional[Path]:
        if not has_files(self._content_path(item)):
            logging.error("Nothing to extract for %s", item.publishedfileid)
            return None
        name = sanitize_name(item.title, str(item.publishedfileid))
        target = destination / f"{DOWNLOAD_PREFIX}{name}"
        if target.exists():
            shutil.rmtree(target)
        count = self._materialize(item, target)
        if item.preview_url:
            download_url_to_file(item.preview_url, target, "thumb", self.config.timeout)
        save_json(
            target / SIDECAR_NAME,
            {
                "publishedfileid": item.publishedfileid,
                "title": item.title,
                "tags": list(item.tags),
            },
        )
        logging.info("Extracted %s file(s) of %s to %s", count, content_type, target)
        return target
