from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse
import random

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


def clean_proxy_list(values: Iterable[str] | None) -> list[str]:
    cleaned: list[str] = []
    for proxy in values or []:
        value = proxy.strip()
        if not value:
            continue
        if value.lower() in {"none", "off", "direct"}:
            continue
        cleaned.append(value)
    return cleaned


class ProxyPool:
    def __init__(self, proxies: Iterable[str] | None = None) -> None:
        self._proxies = clean_proxy_list(proxies)
        self._index = 0

    def next(self) -> str | None:
        if not self._proxies:
            return None
        proxy = self._proxies[self._index % len(self._proxies)]
        self._index += 1
        return proxy

    def __len__(self) -> int:
        return len(self._proxies)


@dataclass
class RetryPolicy:
    retries: int = 0
    backoff: float = 0.0
    retry_statuses: set[int] = field(default_factory=lambda: set(DEFAULT_RETRY_STATUSES))

    def __post_init__(self) -> None:
        self.retries = max(0, int(self.retries))
        self.backoff = max(0.0, float(self.backoff))
        if not self.retry_statuses:
            self.retry_statuses = set(DEFAULT_RETRY_STATUSES)

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def should_retry(self, status: int, attempt: int) -> bool:
        return status in self.retry_statuses and attempt < self.attempts

    def delay_for_attempt(self, attempt: int) -> float:
        if self.backoff <= 0:
            return 0.0
        delay = self.backoff * (2 ** (attempt - 1))
        delay += random.uniform(0.0, self.backoff)
        return delay


def retry_after_seconds(headers: Mapping[str, Any] | None) -> float:
    if not headers:
        return 0.0
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if not raw:
        return 0.0
    try:
        return max(0.0, float(raw))
    except (TypeError, ValueError):
        return 0.0


def mask_proxy(proxy: str | None) -> str:
    if not proxy:
        return "-"
    try:
        parsed = urlparse(proxy)
    except ValueError:
        return proxy
    if parsed.scheme and parsed.netloc:
        host = parsed.hostname or ""
        port = f":{parsed.port}" if parsed.port else ""
        if parsed.username:
            return f"{parsed.scheme}://{parsed.username}:***@{host}{port}"
        return f"{parsed.scheme}://{host}{port}"
    return proxy


def indexed_form(prefix: str, values: Iterable[Any]) -> dict[str, str]:
    """Build Steam Web API style ``prefix[0]=..., prefix[1]=...`` fields."""
    return {f"{prefix}[{idx}]": str(value) for idx, value in enumerate(values)}
