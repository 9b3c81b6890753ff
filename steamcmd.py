import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping

from utils import ensure_dir

LineCallback = Callable[[str], None]


@dataclass(frozen=True)
class SteamCmdResult:
    ok: bool
    reason: str | None = None
    retryable: bool = False
    published_id: int = 0


@dataclass
class SteamCmdRun:
    returncode: int
    lines: List[str] = field(default_factory=list)

    @property
    def output(self) -> str:
        return "\n".join(self.lines)


_ANSI_RE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")
_DOWNLOAD_OK_RE = re.compile(r"Success\.\s+Downloaded item\s+(\d+)", re.IGNORECASE)
_DOWNLOAD_ERR_RE = re.compile(
    r"(ERROR!\s+Download item\s+(\d+)\s+failed\s+\([^)]+\)\.?)", re.IGNORECASE
)
_PUBLISHED_ID_RE = re.compile(r"PublishFileID\s*[:=]?\s*(\d+)", re.IGNORECASE)
_VDF_ID_RE = re.compile(r'"publishedfileid"\s+"(\d+)"', re.IGNORECASE)


def _strip_ansi(value: str) -> str:
    return _ANSI_RE.sub("", value)


def _extract_steamcmd_error(output: str) -> str | None:
    cleaned = _strip_ansi(output or "").replace("\r", "\n")
    for raw_line in cleaned.splitlines():
        line = raw_line.strip()
        if "ERROR!" in line or line.startswith("FAILED"):
            return " ".join(line.split())
    return None


def _is_retryable_reason(reason: str | None, returncode: int) -> bool:
    if reason:
        normalized = reason.lower()
        if "failed (failure)" in normalized:
            return True
        if "timeout" in normalized:
            return True
    return returncode != 0


def _read_tail_lines(path: Path, max_bytes: int = 256 * 1024) -> list[str]:
    if not path.exists() or not path.is_file():
        return []
    try:
        with path.open("rb") as fh:
            fh.seek(0, 2)
            size = fh.tell()
            fh.seek(max(0, size - max_bytes))
            data = fh.read().decode("utf-8", errors="ignore")
    except OSError:
        return []
    return [line.strip() for line in data.splitlines() if line.strip()]


def collect_diagnostics(steam_root: Path, workshop_id: int) -> str | None:
    wid = str(workshop_id)
    lines = _read_tail_lines(steam_root / "logs" / "workshop_log.txt")
    details = [
        line
        for line in lines[-400:]
        if f"Download item {wid} result :" in line or "Update canceled:" in line
    ]
    if not details:
        return None
    return " | ".join(details[-3:])


def run_steamcmd(
    steamcmd_path: Path,
    commands: List[str],
    on_line: LineCallback | None = None,
) -> SteamCmdRun:
    cmd = [str(steamcmd_path), *commands, "+quit"]
    logging.debug("SteamCMD: %s", " ".join(cmd))
    run = SteamCmdRun(returncode=0)
    with subprocess.Popen(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
    ) as process:
        for raw_line in process.stdout or ():
            line = _strip_ansi(raw_line).rstrip()
            if not line:
                continue
            run.lines.append(line)
            if on_line is not None:
                on_line(line)
        run.returncode = process.wait()
    return run


def workshop_content_path(steam_root: Path, app_id: int, workshop_id: int) -> Path:
    return (
        steam_root
        / "steamapps"
        / "workshop"
        / "content"
        / str(app_id)
        / str(workshop_id)
    )


def download_items(
    steamcmd_path: Path,
    steam_root: Path,
    app_id: int,
    workshop_ids: Iterable[int],
    *,
    login: str = "anonymous",
    on_line: LineCallback | None = None,
) -> Dict[int, SteamCmdResult]:
    """Download several workshop items with a single SteamCMD process."""
    ids = [int(wid) for wid in workshop_ids]
    if not ids:
        return {}
    if not steamcmd_path.exists():
        logging.error("steamcmd not found at %s", steamcmd_path)
        reason = f"steamcmd not found at {steamcmd_path}"
        return {wid: SteamCmdResult(False, reason) for wid in ids}
    ensure_dir(steam_root)
    commands = ["+force_install_dir", str(steam_root), "+login", login or "anonymous"]
    for wid in ids:
        commands += ["+workshop_download_item", str(app_id), str(wid), "validate"]
    logging.info("SteamCMD download: app_id=%s items=%s", app_id, len(ids))
    run = run_steamcmd(steamcmd_path, commands, on_line)

    succeeded: set[int] = set()
    failed: Dict[int, str] = {}
    for line in run.lines:
        ok_match = _DOWNLOAD_OK_RE.search(line)
        if ok_match:
            succeeded.add(int(ok_match.group(1)))
            continue
        err_match = _DOWNLOAD_ERR_RE.search(line)
        if err_match:
            failed[int(err_match.group(2))] = " ".join(err_match.group(1).split())

    results: Dict[int, SteamCmdResult] = {}
    for wid in ids:
        if wid in succeeded and wid not in failed:
            results[wid] = SteamCmdResult(True)
            continue
        reason = failed.get(wid)
        if reason is None:
            reason = _extract_steamcmd_error(run.output) or (
                f"steamcmd exit code {run.returncode}"
                if run.returncode != 0
                else "no download confirmation"
            )
        logging.error("SteamCMD failed for workshop %s: %s", wid, reason)
        diagnostics = collect_diagnostics(steam_root, wid)
        if diagnostics:
            logging.error("SteamCMD diagnostics for workshop %s: %s", wid, diagnostics)
        results[wid] = SteamCmdResult(
            False,
            reason,
            retryable=_is_retryable_reason(reason, run.returncode),
        )
    return results


def _vdf_escape(value: object) -> str:
    text = str(value)
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def write_item_vdf(path: Path, fields: Mapping[str, object]) -> Path:
    ensure_dir(path.parent)
    lines = ['"workshopitem"', "{"]
    for key, value in fields.items():
        if value is None or value == "":
            continue
        lines.append(f'\t"{key}"\t\t"{_vdf_escape(value)}"')
    lines.append("}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def read_published_id(vdf_path: Path) -> int:
    try:
        text = vdf_path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return 0
    match = _VDF_ID_RE.search(text)
    return int(match.group(1)) if match else 0


def build_item(
    steamcmd_path: Path,
    vdf_path: Path,
    *,
    login: str,
    on_line: LineCallback | None = None,
) -> SteamCmdResult:
    """Create or update a workshop item described by ``vdf_path``."""
    if not steamcmd_path.exists():
        logging.error("steamcmd not found at %s", steamcmd_path)
        return SteamCmdResult(False, f"steamcmd not found at {steamcmd_path}")
    if not login or login == "anonymous":
        return SteamCmdResult(False, "publishing requires STEAM_LOGIN")
    run = run_steamcmd(
        steamcmd_path,
        ["+login", login, "+workshop_build_item", str(vdf_path.resolve())],
        on_line,
    )
    parsed_error = _extract_steamcmd_error(run.output)
    if run.returncode != 0 or parsed_error:
        reason = parsed_error or f"steamcmd exit code {run.returncode}"
        logging.error("SteamCMD publish failed for %s: %s", vdf_path, reason)
        tail = "\n".join(run.lines[-20:])
        if tail:
            logging.error("SteamCMD output tail:\n%s", tail)
        return SteamCmdResult(
            False, reason, retryable=_is_retryable_reason(reason, run.returncode)
        )
    published_id = read_published_id(vdf_path)
    if not published_id:
        for line in run.lines:
            match = _PUBLISHED_ID_RE.search(line)
            if match:
                published_id = int(match.group(1))
    if not published_id:
        return SteamCmdResult(False, "SteamCMD did not report a published file id")
    return SteamCmdResult(True, published_id=published_id)
