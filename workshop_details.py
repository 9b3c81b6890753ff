from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

import aiohttp

from errors import CollectionError, ItemFetchError
from http_utils import ProxyPool, RetryPolicy, indexed_form, mask_proxy, retry_after_seconds

STEAM_API_BASE = "https://api.steampowered.com"
PUBLISHED_FILE_DETAILS_URL = (
    f"{STEAM_API_BASE}/ISteamRemoteStorage/GetPublishedFileDetails/v1/"
)
COLLECTION_DETAILS_URL = f"{STEAM_API_BASE}/ISteamRemoteStorage/GetCollectionDetails/v1/"
DETAILS_CHUNK_SIZE = 100
RESULT_OK = 1


@dataclass
class ItemDetails:
    publishedfileid: int
    title: str = ""
    tags: List[str] = field(default_factory=list)
    description: str = ""
    preview_url: str = ""
    file_url: str = ""
    filename: str = ""
    consumer_app_id: int = 0
    time_updated: int = 0
    result: int = RESULT_OK

    @classmethod
    def from_api(cls, entry: Dict[str, Any]) -> "ItemDetails":
        tags: List[str] = []
        for tag in entry.get("tags") or []:
            value = tag.get("tag") if isinstance(tag, dict) else tag
            value = str(value or "").strip()
            if value and value not in tags:
                tags.append(value)
        return cls(
            publishedfileid=int(entry.get("publishedfileid") or 0),
            title=str(entry.get("title") or ""),
            tags=tags,
            description=str(entry.get("description") or ""),
            preview_url=str(entry.get("preview_url") or ""),
            file_url=str(entry.get("file_url") or ""),
            filename=str(entry.get("filename") or ""),
            consumer_app_id=int(entry.get("consumer_app_id") or 0),
            time_updated=int(entry.get("time_updated") or 0),
            result=int(entry.get("result") or 0),
        )

    def has_tag(self, tag: str) -> bool:
        wanted = tag.casefold()
        return any(value.casefold() == wanted for value in self.tags)


def _chunks(values: List[int], size: int) -> Iterable[List[int]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


class WorkshopDetailsLoader:
    def __init__(
        self,
        timeout: int,
        *,
        policy: RetryPolicy | None = None,
        proxies: List[str] | None = None,
        concurrency: int = 4,
    ) -> None:
        self.timeout = int(timeout)
        self.policy = policy or RetryPolicy(retries=2, backoff=1.0)
        self.proxy_pool = ProxyPool(proxies)
        self.concurrency = max(1, int(concurrency))

    def load_items(self, item_ids: Iterable[int]) -> List[ItemDetails]:
        """Fetch details for ``item_ids`` in one blocking call.

        Items the service reports as missing are dropped with a warning;
        transport failures raise :class:`ItemFetchError`.
        """
        ids = [int(value) for value in item_ids]
        if not ids:
            return []
        logging.info("Workshop details load: items=%s", len(ids))
        return asyncio.run(self._load_items(ids))

    def load_collection_members(self, collection_ids: Iterable[int]) -> List[ItemDetails]:
        ids = [int(value) for value in collection_ids]
        if not ids:
            return []
        try:
            return asyncio.run(self._load_collection_members(ids))
        except ItemFetchError as exc:
            raise CollectionError(f"Collection lookup failed: {exc}") from exc

    async def _load_items(self, ids: List[int]) -> List[ItemDetails]:
        timeout_cfg = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout_cfg) as session:
            return await self._fetch_details(session, ids)

    async def _fetch_details(
        self, session: aiohttp.ClientSession, ids: List[int]
    ) -> List[ItemDetails]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch_chunk(chunk: List[int]) -> List[Dict[str, Any]]:
            form = {"itemcount": str(len(chunk)), **indexed_form("publishedfileids", chunk)}
            async with semaphore:
                payload = await self._post_json(session, PUBLISHED_FILE_DETAILS_URL, form)
            response = payload.get("response") or {}
            return list(response.get("publishedfiledetails") or [])

        chunks = list(_chunks(ids, DETAILS_CHUNK_SIZE))
        raw_results = await asyncio.gather(*(fetch_chunk(chunk) for chunk in chunks))
        by_id: Dict[int, ItemDetails] = {}
        for entries in raw_results:
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                details = ItemDetails.from_api(entry)
                if details.result != RESULT_OK:
                    logging.warning(
                        "Workshop item %s unavailable (result=%s)",
                        details.publishedfileid,
                        details.result,
                    )
                    continue
                by_id[details.publishedfileid] = details
        return [by_id[item_id] for item_id in ids if item_id in by_id]

    async def _load_collection_members(self, collection_ids: List[int]) -> List[ItemDetails]:
        timeout_cfg = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout_cfg) as session:
            member_ids: List[int] = []
            for collection_id in collection_ids:
                form = {"collectioncount": "1", **indexed_form("publishedfileids", [collection_id])}
                payload = await self._post_json(session, COLLECTION_DETAILS_URL, form)
                response = payload.get("response") or {}
                details = response.get("collectiondetails") or []
                if not details or int(details[0].get("result") or 0) != RESULT_OK:
                    raise CollectionError(f"Collection {collection_id} not found")
                children = details[0].get("children") or []
                logging.info(
                    "Collection %s: %s members", collection_id, len(children)
                )
                for child in children:
                    child_id = int(child.get("publishedfileid") or 0)
                    if child_id and child_id not in member_ids:
                        member_ids.append(child_id)
            if not member_ids:
                return []
            return await self._fetch_details(session, member_ids)

    async def _post_json(
        self, session: aiohttp.ClientSession, url: str, form: Dict[str, str]
    ) -> Dict[str, Any]:
        last_exc: Exception | None = None
        for attempt in range(1, self.policy.attempts + 1):
            proxy = self.proxy_pool.next()
            try:
                async with session.post(url, data=form, proxy=proxy) as response:
                    if self.policy.should_retry(response.status, attempt):
                        await self._sleep_backoff(
                            attempt,
                            RuntimeError(f"HTTP {response.status}"),
                            retry_after_seconds(response.headers),
                        )
                        continue
                    if response.status != 200:
                        raise ItemFetchError(f"{url} returned HTTP {response.status}")
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError as exc:
                        raise ItemFetchError(f"{url} returned a non-JSON body: {exc}") from exc
                    if not isinstance(payload, dict):
                        raise ItemFetchError(f"{url} returned an unexpected payload")
                    return payload
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_exc = exc
                if attempt >= self.policy.attempts:
                    logging.warning(
                        "Steam API request failed via %s: %s", mask_proxy(proxy), exc
                    )
                    break
                await self._sleep_backoff(attempt, exc)
        raise ItemFetchError(f"{url} failed: {last_exc or 'retries exhausted'}")

    async def _sleep_backoff(
        self, attempt: int, exc: Exception, retry_after: float = 0.0
    ) -> None:
        delay = max(retry_after, self.policy.delay_for_attempt(attempt))
        if delay <= 0:
            return
        logging.warning(
            "Steam API retry %s/%s after error: %s (sleep %.1fs)",
            attempt,
            self.policy.retries,
            exc,
            delay,
        )
        await asyncio.sleep(delay)
