"""
Shared data models for esploracli.

These dataclasses are the canonical data shapes used across all modules:
fetchers produce them, snapshot/payment flows combine them, output renders them.
All of them live for one invocation only; nothing is cached or persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

SATOSHIS_PER_BTC = Decimal(100_000_000)


def sats_to_btc(sats: int) -> str:
    """Render satoshis as a fixed 8-decimal BTC string: 700 → '0.00000700'."""
    return format(Decimal(sats) / SATOSHIS_PER_BTC, ".8f")


@dataclass
class FetchAttempt:
    """One HTTP attempt inside a retry sequence. Only used for progress events."""

    url: str
    attempt: int            # 1-based
    outcome: str            # "success" | "timeout" | "transport_error" | "http_error"
    status_code: int | None = None
    error: str | None = None

    def to_event(self) -> dict:
        return {
            "type": "fetch_attempt",
            "level": "info" if self.outcome == "success" else "warn",
            "url": self.url,
            "attempt": self.attempt,
            "outcome": self.outcome,
            "status_code": self.status_code,
            "error": self.error,
        }


@dataclass(frozen=True)
class BlockMeta:
    """Narrowed block header as returned by GET /block/{hash}."""

    id: str
    height: int
    timestamp: int          # Unix seconds
    tx_count: int           # Declared by upstream; may differ from paginated total
    size: int               # Bytes

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "height": self.height,
            "timestamp": self.timestamp,
            "tx_count": self.tx_count,
            "size": self.size,
        }


@dataclass(frozen=True)
class TxOutput:
    """A transaction output. Some output scripts have no address."""

    value: int              # Satoshis
    address: str | None = None

    def to_dict(self) -> dict:
        return {"scriptpubkey_address": self.address, "value": self.value}


@dataclass(frozen=True)
class TxStatus:
    confirmed: bool
    block_height: int | None = None

    def to_dict(self) -> dict:
        return {"confirmed": self.confirmed, "block_height": self.block_height}


@dataclass
class Transaction:
    """A transaction narrowed to what payment aggregation and block reads need."""

    txid: str
    outputs: list[TxOutput] = field(default_factory=list)
    status: TxStatus = field(default_factory=lambda: TxStatus(confirmed=False))

    def to_dict(self) -> dict:
        return {
            "txid": self.txid,
            "vout": [o.to_dict() for o in self.outputs],
            "status": self.status.to_dict(),
        }


@dataclass
class Payment:
    """Incoming value for one address in one transaction. Derived, never fetched."""

    txid: str
    amount_sats: int
    confirmations: int      # 0 for mempool transactions

    @property
    def amount_btc(self) -> str:
        return sats_to_btc(self.amount_sats)

    def to_dict(self) -> dict:
        return {
            "txid": self.txid,
            "amount_sats": self.amount_sats,
            "amount_btc": self.amount_btc,
            "confirmations": self.confirmations,
        }


@dataclass
class ChainSnapshot:
    """Result of the chain-read flow: the tip block and all of its transactions."""

    height: int
    hash: str
    meta: BlockMeta
    txs: list[Transaction]

    def to_dict(self) -> dict:
        return {
            "height": self.height,
            "hash": self.hash,
            "meta": self.meta.to_dict(),
            "txs": [t.to_dict() for t in self.txs],
        }


@dataclass
class BlockSnapshot:
    """A specific block (by hash) and all of its transactions."""

    hash: str
    meta: BlockMeta
    txs: list[Transaction]

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "meta": self.meta.to_dict(),
            "txs": [t.to_dict() for t in self.txs],
        }


@dataclass
class PaymentReport:
    """Result of the payment flow for one address."""

    address: str
    tip_height: int
    payments: list[Payment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "tip_height": self.tip_height,
            "payments": [p.to_dict() for p in self.payments],
        }
