"""
Incoming payments for an address — Esplora confirmed + mempool views.

Design decisions:
- Confirmed history is read from GET /address/{addr}/txs, first page only.
  Some Esplora deployments do not support /txs/chain/{last_seen} for
  addresses, so the most recent page is treated as complete coverage.
- Mempool transactions come from GET /address/{addr}/txs/mempool. This
  endpoint is optional per deployment: any failure there is downgraded to
  an empty list. It is the only place where an error is swallowed.
- On a txid present in both views the mempool entry wins. A transaction can
  move into or out of the mempool between the two reads.
- Only outputs paying the address (exact, case-sensitive match) count.
  Inputs are ignored: this reports what was received, not net flow.
"""

from __future__ import annotations

import asyncio

from esploracli.events import EventSink, NullEventSink
from esploracli.exceptions import (
    FetchError,
    InvalidResponseError,
    UnsupportedEndpointError,
)
from esploracli.fetchers.base import ResilientFetcher
from esploracli.fetchers.chain import ChainStateReader
from esploracli.fetchers.parse import parse_json, parse_transaction_page
from esploracli.models import Payment, PaymentReport, Transaction


def incoming_amount(address: str, tx: Transaction) -> int:
    """Sum of output values paid to `address` in `tx`, in satoshis."""
    return sum(o.value for o in tx.outputs if o.address is not None and o.address == address)


def confirmations(tx: Transaction, tip_height: int) -> int:
    """
    Blocks including and after the one containing `tx`, as of `tip_height`.

    1 for a transaction in the tip block, 0 for mempool transactions. The tip
    is read concurrently with the history, so a confirmed block can briefly
    be ahead of it; that clamps to 0 rather than going negative.
    """
    if not tx.status.confirmed or tx.status.block_height is None:
        return 0
    return max(tip_height - tx.status.block_height + 1, 0)


def build_payments(
    address: str,
    tip_height: int,
    confirmed: list[Transaction],
    mempool: list[Transaction],
) -> list[Payment]:
    """
    Merge both views, keep genuine incoming payments, sort them.

    Ordering: confirmations descending, then amount descending. Full ties keep
    merge order (confirmed first, then mempool-only).
    """
    merged: dict[str, Transaction] = {}
    for tx in confirmed:
        merged[tx.txid] = tx
    for tx in mempool:
        merged[tx.txid] = tx

    payments: list[Payment] = []
    for txid, tx in merged.items():
        amount = incoming_amount(address, tx)
        if amount <= 0:
            continue
        payments.append(
            Payment(txid=txid, amount_sats=amount, confirmations=confirmations(tx, tip_height))
        )

    payments.sort(key=lambda p: (p.confirmations, p.amount_sats), reverse=True)
    return payments


class AddressPaymentAggregator:
    """
    Answer "what has this address received, and how settled is it?".

    Tip height, confirmed history and mempool are fetched concurrently.
    """

    def __init__(
        self,
        base_url: str,
        fetcher: ResilientFetcher,
        chain: ChainStateReader,
        sink: EventSink | None = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._fetcher = fetcher
        self._chain = chain
        self._sink = sink or NullEventSink()

    async def get_payments(self, address: str) -> PaymentReport:
        tip_task = asyncio.create_task(self._chain.get_tip_height())
        confirmed_task = asyncio.create_task(self.get_address_transactions(address))
        mempool_task = asyncio.create_task(self._mempool_or_empty(address))

        tasks = (tip_task, confirmed_task, mempool_task)
        try:
            tip_height, confirmed, mempool = await asyncio.gather(*tasks)
        except BaseException:
            # One fetch failed: the others' results are useless now
            for task in tasks:
                task.cancel()
            # Collect sibling failures so none go unretrieved
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        payments = build_payments(address, tip_height, confirmed, mempool)
        self._sink.emit({
            "type": "payments_aggregated",
            "level": "info",
            "address": address,
            "tip_height": tip_height,
            "payments_count": len(payments),
        })
        return PaymentReport(address=address, tip_height=tip_height, payments=payments)

    async def get_address_transactions(self, address: str) -> list[Transaction]:
        """First page of the address's transaction history (newest first)."""
        url = f"{self._base}/address/{address}/txs"
        resp = await self._fetcher.fetch(url)
        txs = parse_transaction_page(parse_json(resp, url), "address txs")
        self._sink.emit({
            "type": "address_txs",
            "level": "info",
            "address": address,
            "page_len": len(txs),
        })
        return txs

    async def get_mempool_transactions(self, address: str) -> list[Transaction]:
        """
        Unconfirmed transactions touching `address`.

        Raises:
            UnsupportedEndpointError: the endpoint failed or answered with
                something other than a transaction list.
        """
        url = f"{self._base}/address/{address}/txs/mempool"
        try:
            resp = await self._fetcher.fetch(url)
            txs = parse_transaction_page(parse_json(resp, url), "mempool txs")
        except (FetchError, InvalidResponseError) as e:
            raise UnsupportedEndpointError(
                f"Mempool endpoint unavailable for {address}: {e}",
                details={"url": url, "cause": e.to_dict()},
            ) from e
        self._sink.emit({
            "type": "mempool_txs",
            "level": "info",
            "address": address,
            "page_len": len(txs),
        })
        return txs

    async def _mempool_or_empty(self, address: str) -> list[Transaction]:
        try:
            return await self.get_mempool_transactions(address)
        except UnsupportedEndpointError as e:
            self._sink.emit({
                "type": "mempool_unavailable",
                "level": "warn",
                "address": address,
                "error": e.message,
            })
            return []
