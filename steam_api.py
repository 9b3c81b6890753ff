from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List
from urllib.parse import urlparse

import requests

from errors import PublishError
from http_utils import ProxyPool, RetryPolicy, indexed_form, mask_proxy, retry_after_seconds

UPDATE_TAGS_URL = "https://api.steampowered.com/IPublishedFileService/UpdateTags/v1/"


class SteamClient:
    """Blocking client for the publisher side of the Steam Web API."""

    def __init__(
        self,
        api_key: str = "",
        *,
        policy: RetryPolicy | None = None,
        proxies: List[str] | None = None,
        timeout: int = 60,
    ) -> None:
        self.api_key = api_key
        self.policy = policy or RetryPolicy(retries=2, backoff=1.0)
        self.proxy_pool = ProxyPool(proxies)
        self.timeout = int(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "workshop-tool/1.0"})

    @property
    def has_key(self) -> bool:
        return bool(self.api_key)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        endpoint = self._endpoint_key(method, url)
        last_exc: Exception | None = None
        for attempt in range(1, self.policy.attempts + 1):
            proxy = self.proxy_pool.next()
            if proxy:
                kwargs = dict(kwargs)
                kwargs["proxies"] = {"http": proxy, "https": proxy}
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as exc:
                last_exc = exc
                logging.warning(
                    "Steam %s failed via %s: %s", endpoint, mask_proxy(proxy), exc
                )
                if attempt >= self.policy.attempts:
                    raise
                self._sleep_backoff(attempt, exc)
                continue

            if self.policy.should_retry(response.status_code, attempt):
                self._sleep_backoff(
                    attempt,
                    RuntimeError(f"HTTP {response.status_code}"),
                    retry_after_seconds(response.headers),
                )
                continue
            return response

        if last_exc:
            raise last_exc
        raise requests.RequestException(f"Steam {endpoint} gave no response")

    def update_tags(
        self,
        published_id: int,
        add_tags: Iterable[str],
        remove_tags: Iterable[str] = (),
    ) -> None:
        if not self.api_key:
            raise PublishError("Updating tags requires STEAM_WEB_API_KEY")
        form: Dict[str, str] = {
            "key": self.api_key,
            "publishedfileid": str(int(published_id)),
            **indexed_form("add_tags", add_tags),
            **indexed_form("remove_tags", remove_tags),
        }
        try:
            response = self.request("post", UPDATE_TAGS_URL, data=form)
        except requests.RequestException as exc:
            raise PublishError(f"Tag update for {published_id} failed: {exc}") from exc
        if response.status_code >= 400:
            raise PublishError(
                f"Tag update for {published_id} failed: "
                f"{response.status_code} {response.text[:200]}"
            )
        logging.info("Updated tags for %s", published_id)

    @staticmethod
    def _endpoint_key(method: str, url: str) -> str:
        parsed = urlparse(url)
        return f"{method.upper()} {parsed.netloc}{parsed.path}"

    def _sleep_backoff(self, attempt: int, exc: Exception, retry_after: float = 0.0) -> None:
        delay = max(retry_after, self.policy.delay_for_attempt(attempt))
        if delay <= 0:
            return
        logging.warning(
            "Steam retry %s/%s after error: %s (sleep %.1fs)",
            attempt,
            self.policy.retries,
            exc,
            delay,
        )
        time.sleep(delay)
