"""
Fetcher layer for esploracli.

Provides EsploraClient, which owns one httpx.AsyncClient and wires the
components that share it:

    ResilientFetcher          — retry/backoff/timeout for every GET
    ChainStateReader          — tip height, tip hash, block meta
    BlockTransactionPager     — all transactions of a block
    AddressPaymentAggregator  — incoming payments for an address

Usage:
    from esploracli.fetchers import get_client
    async with get_client(config, sink) as client:
        height = await client.chain.get_tip_height()
        report = await client.payments.get_payments(address)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx

from esploracli.events import EventSink, NullEventSink
from esploracli.fetchers.address import AddressPaymentAggregator
from esploracli.fetchers.base import ResilientFetcher, RetryPolicy, Sleeper
from esploracli.fetchers.chain import (
    DEFAULT_PAGE_DELAY_MS,
    BlockTransactionPager,
    ChainStateReader,
)

if TYPE_CHECKING:
    from esploracli.config import EsploraConfig

USER_AGENT = "esploracli"


class EsploraClient:
    """All read components for one Esplora base URL."""

    def __init__(
        self,
        base_url: str,
        policy: RetryPolicy | None = None,
        sink: EventSink | None = None,
        page_delay_ms: int = DEFAULT_PAGE_DELAY_MS,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        policy = policy or RetryPolicy()
        sink = sink or NullEventSink()
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=policy.timeout_seconds,
            headers={"User-Agent": USER_AGENT},
        )
        self.fetcher = ResilientFetcher(self._client, policy, sink, sleep=sleep)
        self.chain = ChainStateReader(self.base_url, self.fetcher, sink)
        self.pager = BlockTransactionPager(
            self.base_url, self.fetcher, sink, page_delay_ms=page_delay_ms, sleep=sleep
        )
        self.payments = AddressPaymentAggregator(self.base_url, self.fetcher, self.chain, sink)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> EsploraClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def get_client(config: EsploraConfig, sink: EventSink | None = None) -> EsploraClient:
    """
    Factory: build an EsploraClient from a validated config.

    Args:
        config: EsploraConfig (already validated by load_config)
        sink: Where progress events go; discarded if None

    Returns:
        EsploraClient bound to config.api.base_url
    """
    return EsploraClient(
        base_url=config.api.base_url,
        policy=config.retry.to_policy(),
        sink=sink,
        page_delay_ms=config.pager.page_delay_ms,
    )


__all__ = [
    "AddressPaymentAggregator",
    "BlockTransactionPager",
    "ChainStateReader",
    "EsploraClient",
    "ResilientFetcher",
    "RetryPolicy",
    "get_client",
]
