import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, List

from content_types import DOWNLOAD_PREFIX, ContentType


def _is_ignored(name: str) -> bool:
    # Tooling directories (".vs", ".git") and earlier downloads are never uploaded.
    return name.startswith(".") or name.startswith(DOWNLOAD_PREFIX)


def make_absolute(fragments: Iterable[str] | None, type_dir: Path) -> List[Path]:
    """Anchor fragments that are neither existing directories nor rooted
    at the content type's default directory."""
    result: List[Path] = []
    for fragment in fragments or []:
        candidate = Path(fragment).expanduser()
        if not candidate.is_dir() and not candidate.is_absolute():
            candidate = type_dir / fragment
        result.append(candidate)
    return result


def glob_directories(pattern_path: Path) -> List[Path]:
    """Match directories one level deep; only ``*`` and ``?`` are wildcards."""
    if pattern_path.is_dir():
        return [pattern_path]
    parent = pattern_path.parent
    pattern = pattern_path.name
    if not parent.is_dir() or not any(ch in pattern for ch in "*?"):
        return []
    # "[DX11] Ship" is a literal name, not a character class.
    pattern = pattern.replace("[", "[[]")
    return sorted(
        entry
        for entry in parent.iterdir()
        if entry.is_dir() and fnmatch.fnmatch(entry.name, pattern)
    )


def resolve_paths(
    content_type: ContentType,
    fragments: Iterable[str] | None,
    type_dir: Path,
) -> List[Path]:
    """Expand user supplied fragments into existing, absolute item directories."""
    resolved: List[Path] = []
    seen: set[Path] = set()
    for pattern_path in make_absolute(fragments, type_dir):
        matches = glob_directories(pattern_path)
        if not matches:
            logging.warning("Directory not found, skipping: %s", pattern_path)
            continue
        for match in matches:
            if _is_ignored(match.name):
                logging.debug("Ignoring %s directory %s", content_type, match)
                continue
            absolute = Path(os.path.abspath(match))
            if absolute in seen:
                continue
            seen.add(absolute)
            resolved.append(absolute)
    return resolved
