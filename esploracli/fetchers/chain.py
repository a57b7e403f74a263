"""
Chain state and block transaction reads against an Esplora API.

Endpoints:
  GET {base}/blocks/tip/height        → text integer
  GET {base}/blocks/tip/hash          → text hash
  GET {base}/block/{hash}             → JSON block object
  GET {base}/block/{hash}/txs         → JSON array, first PAGE_SIZE txs
  GET {base}/block/{hash}/txs/{start} → JSON array, start % PAGE_SIZE == 0

Esplora answers HTTP 400 for a start index that is not a multiple of 25,
so the pager always advances by exactly PAGE_SIZE. A page shorter than
PAGE_SIZE (including an empty one) is the last page.
"""

from __future__ import annotations

import asyncio

from esploracli.events import EventSink, NullEventSink
from esploracli.exceptions import InvalidResponseError
from esploracli.fetchers.base import ResilientFetcher, Sleeper
from esploracli.fetchers.parse import (
    parse_block_meta,
    parse_json,
    parse_transaction_page,
)
from esploracli.models import BlockMeta, Transaction

PAGE_SIZE = 25

# Politeness delay between block tx pages
DEFAULT_PAGE_DELAY_MS = 50


class ChainStateReader:
    """Tip height, tip hash and block metadata. Retries are the fetcher's job."""

    def __init__(
        self,
        base_url: str,
        fetcher: ResilientFetcher,
        sink: EventSink | None = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._fetcher = fetcher
        self._sink = sink or NullEventSink()

    async def get_tip_height(self) -> int:
        url = f"{self._base}/blocks/tip/height"
        resp = await self._fetcher.fetch(url)
        text = resp.text.strip()
        # str.isdigit() alone accepts non-ASCII digits
        if not (text.isascii() and text.isdigit()):
            raise InvalidResponseError(
                f"Invalid tip height response: {text[:100]!r}",
                details={"url": url},
            )
        height = int(text)
        self._sink.emit({"type": "tip_height", "level": "info", "height": height})
        return height

    async def get_tip_hash(self) -> str:
        url = f"{self._base}/blocks/tip/hash"
        resp = await self._fetcher.fetch(url)
        tip_hash = resp.text.strip()
        if not tip_hash:
            raise InvalidResponseError("Empty tip hash", details={"url": url})
        self._sink.emit({"type": "tip_hash", "level": "info", "hash": tip_hash})
        return tip_hash

    async def get_block_meta(self, block_hash: str) -> BlockMeta:
        url = f"{self._base}/block/{block_hash}"
        resp = await self._fetcher.fetch(url)
        meta = parse_block_meta(parse_json(resp, url))
        self._sink.emit({"type": "block_meta", "level": "info", **meta.to_dict()})
        return meta


class BlockTransactionPager:
    """Collect every transaction of a block, one PAGE_SIZE page at a time."""

    def __init__(
        self,
        base_url: str,
        fetcher: ResilientFetcher,
        sink: EventSink | None = None,
        page_delay_ms: int = DEFAULT_PAGE_DELAY_MS,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._fetcher = fetcher
        self._sink = sink or NullEventSink()
        self._page_delay_ms = page_delay_ms
        self._sleep = sleep

    async def get_block_transactions(self, block_hash: str) -> list[Transaction]:
        """
        Fetch all transactions of `block_hash` in upstream order.

        Always starts from offset 0; a partially read block is never resumed.
        Pages are requested strictly one after another because the length of
        each page decides whether another one exists.
        """
        all_txs: list[Transaction] = []
        start = 0
        url = f"{self._base}/block/{block_hash}/txs"

        while True:
            resp = await self._fetcher.fetch(url)
            page = parse_transaction_page(parse_json(resp, url), "block txs")
            all_txs.extend(page)
            self._sink.emit({
                "type": "tx_page",
                "level": "info",
                "hash": block_hash,
                "start": start,
                "page_len": len(page),
                "total": len(all_txs),
            })

            if len(page) < PAGE_SIZE:
                break

            start += PAGE_SIZE
            url = f"{self._base}/block/{block_hash}/txs/{start}"
            if self._page_delay_ms > 0:
                await self._sleep(self._page_delay_ms / 1000)

        self._sink.emit({
            "type": "block_txs_complete",
            "level": "info",
            "hash": block_hash,
            "total": len(all_txs),
        })
        return all_txs
