import hashlib
import json
import logging
import mimetypes
import os
import random
import re
import shutil
import time
import zipfile
from pathlib import Path
from typing import Any, Dict, Iterable, List

import requests

_DOWNLOAD_HTTP_RETRIES = 0
_DOWNLOAD_HTTP_BACKOFF = 0.0
_DOWNLOAD_RETRY_STATUSES = {429, 500, 502, 503, 504}
_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def set_download_request_policy(retries: int, backoff: float) -> None:
    global _DOWNLOAD_HTTP_RETRIES, _DOWNLOAD_HTTP_BACKOFF
    _DOWNLOAD_HTTP_RETRIES = max(0, int(retries))
    _DOWNLOAD_HTTP_BACKOFF = max(0.0, float(backoff))


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def has_files(path: Path) -> bool:
    if not path.exists() or not path.is_dir():
        return False
    return any(path.iterdir())


def sanitize_name(name: str, fallback: str = "item") -> str:
    value = _INVALID_NAME_CHARS.sub("_", name or "")
    value = re.sub(r"\s+", " ", value).strip().rstrip(".")
    return value or fallback


def normalize_extensions(values: Iterable[str] | None) -> set[str]:
    result: set[str] = set()
    for value in values or []:
        for part in re.split(r"[,;\s]+", value):
            part = part.strip().lower()
            if not part:
                continue
            result.add(part if part.startswith(".") else f".{part}")
    return result


def iter_content_files(
    source_dir: Path,
    exclude_extensions: Iterable[str] | None = None,
    exclude_names: Iterable[str] | None = None,
) -> List[Path]:
    """List files below ``source_dir`` that belong to an upload.

    Hidden files and directories are skipped, as are files whose extension
    is excluded and any top-level name in ``exclude_names``.
    """
    excluded_ext = normalize_extensions(exclude_extensions)
    excluded_names = {name.lower() for name in exclude_names or []}
    files: List[Path] = []
    for root, dirs, names in os.walk(source_dir):
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        root_path = Path(root)
        for name in sorted(names):
            if name.startswith("."):
                continue
            full_path = root_path / name
            if root_path == source_dir and name.lower() in excluded_names:
                continue
            if full_path.suffix.lower() in excluded_ext:
                continue
            files.append(full_path)
    return files


def hash_files(source_dir: Path, files: Iterable[Path]) -> str:
    hasher = hashlib.sha256()
    for path in files:
        rel_path = path.relative_to(source_dir).as_posix()
        hasher.update(rel_path.encode("utf-8"))
        hasher.update(b"\0")
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(1024 * 1024), b""):
                hasher.update(chunk)
        hasher.update(b"\0")
    return hasher.hexdigest()


def copy_files(source_dir: Path, files: Iterable[Path], dest_dir: Path) -> int:
    if dest_dir.exists():
        shutil.rmtree(dest_dir)
    ensure_dir(dest_dir)
    count = 0
    for path in files:
        target = dest_dir / path.relative_to(source_dir)
        ensure_dir(target.parent)
        shutil.copy2(path, target)
        count += 1
    return count


def unzip_to_directory(archive_path: Path, dest_dir: Path) -> int:
    ensure_dir(dest_dir)
    root = dest_dir.resolve()
    count = 0
    with zipfile.ZipFile(archive_path) as archive:
        for member in archive.infolist():
            target = (dest_dir / member.filename).resolve()
            if root != target and root not in target.parents:
                logging.warning(
                    "Skipping archive entry outside destination: %s", member.filename
                )
                continue
            if member.is_dir():
                ensure_dir(target)
                continue
            ensure_dir(target.parent)
            with archive.open(member) as src, target.open("wb") as dst:
                shutil.copyfileobj(src, dst)
            count += 1
    return count


def copy_tree(source_dir: Path, dest_dir: Path) -> int:
    ensure_dir(dest_dir)
    count = 0
    for root, _, files in os.walk(source_dir):
        for name in files:
            full_path = Path(root) / name
            target = dest_dir / full_path.relative_to(source_dir)
            ensure_dir(target.parent)
            shutil.copy2(full_path, target)
            count += 1
    return count


def _extension_from_headers(headers: Dict[str, str]) -> str:
    content_type = headers.get("content-type", "").split(";")[0].strip().lower()
    if not content_type:
        return ""
    ext = mimetypes.guess_extension(content_type) or ""
    if ext == ".jpe":
        ext = ".jpg"
    return ext


def _sleep_download_backoff(attempt: int, exc: Exception) -> None:
    if _DOWNLOAD_HTTP_BACKOFF <= 0:
        return
    delay = _DOWNLOAD_HTTP_BACKOFF * (2 ** (attempt - 1))
    delay += random.uniform(0.0, _DOWNLOAD_HTTP_BACKOFF)
    logging.warning(
        "Download retry %s/%s after error: %s (sleep %.1fs)",
        attempt,
        _DOWNLOAD_HTTP_RETRIES,
        exc,
        delay,
    )
    time.sleep(delay)


def download_url_to_file(url: str, dest_dir: Path, basename: str, timeout: int) -> Path | None:
    ensure_dir(dest_dir)
    attempts = _DOWNLOAD_HTTP_RETRIES + 1
    last_exc: Exception | None = None
    for attempt in range(1, attempts + 1):
        response = None
        temp_path: Path | None = None
        try:
            response = requests.get(url, stream=True, timeout=timeout)
            if response.status_code in _DOWNLOAD_RETRY_STATUSES and attempt < attempts:
                _sleep_download_backoff(
                    attempt,
                    RuntimeError(f"HTTP {response.status_code}"),
                )
                continue
            if response.status_code != 200:
                logging.warning(
                    "Failed to download %s: %s",
                    url,
                    response.status_code,
                )
                return None
            ext = _extension_from_headers(response.headers) or ".bin"
            path = dest_dir / f"{basename}{ext}"
            temp_path = path.with_suffix(f"{path.suffix}.part")
            with temp_path.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=1024 * 1024):
                    if chunk:
                        handle.write(chunk)
            temp_path.replace(path)
            return path
        except requests.RequestException as exc:
            last_exc = exc
            if attempt >= attempts:
                logging.warning("Failed to download %s: %s", url, exc)
                return None
            _sleep_download_backoff(attempt, exc)
            continue
        finally:
            if response is not None:
                response.close()
            if temp_path and temp_path.exists():
                try:
                    temp_path.unlink()
                except FileNotFoundError:
                    pass
    if last_exc:
        logging.warning("Failed to download %s: %s", url, last_exc)
    return None


def load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as exc:
        logging.warning("Ignoring unreadable %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def save_json(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    with temp_path.open("w", encoding="utf-8") as handle:
        json.dump(data, handle, ensure_ascii=True, indent=2, sort_keys=True)
    temp_path.replace(path)
