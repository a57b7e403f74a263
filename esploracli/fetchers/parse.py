"""Strict parsing of Esplora JSON into esploracli models.

Upstream objects carry many more fields than we need; only the fields below
are read and everything else is dropped. Integers must be real JSON integers
(not floats, not booleans, not strings) and non-negative. Anything else raises
InvalidResponseError instead of being coerced.
"""

from __future__ import annotations

from typing import Any

import httpx

from esploracli.exceptions import InvalidResponseError, UnexpectedShapeError
from esploracli.models import BlockMeta, Transaction, TxOutput, TxStatus


def parse_json(resp: httpx.Response, url: str) -> Any:
    """Decode a response body as JSON or raise InvalidResponseError."""
    try:
        return resp.json()
    except ValueError as e:
        raise InvalidResponseError(
            f"Response from {url} is not JSON: {e}",
            details={"url": url},
        ) from e


def parse_block_meta(raw: Any) -> BlockMeta:
    """Narrow a /block/{hash} document to id, height, timestamp, tx_count, size."""
    if not isinstance(raw, dict):
        raise InvalidResponseError(
            f"Block response must be an object, got {type(raw).__name__}"
        )
    return BlockMeta(
        id=_require_str(raw, "id", "block"),
        height=_require_int(raw, "height", "block"),
        timestamp=_require_int(raw, "timestamp", "block"),
        tx_count=_require_int(raw, "tx_count", "block"),
        size=_require_int(raw, "size", "block"),
    )


def parse_transaction(raw: Any) -> Transaction:
    """Parse one Esplora transaction object (txid, vout, status)."""
    if not isinstance(raw, dict):
        raise InvalidResponseError(
            f"Transaction must be an object, got {type(raw).__name__}"
        )
    txid = _require_str(raw, "txid", "transaction")
    where = f"transaction {txid}"

    vout = raw.get("vout", [])
    if not isinstance(vout, list):
        raise InvalidResponseError(f"{where}: vout must be a list")

    outputs: list[TxOutput] = []
    for i, out in enumerate(vout):
        if not isinstance(out, dict):
            raise InvalidResponseError(f"{where}: vout[{i}] must be an object")
        address = out.get("scriptpubkey_address")
        if address is not None and not isinstance(address, str):
            raise InvalidResponseError(f"{where}: vout[{i}].scriptpubkey_address must be a string")
        outputs.append(
            TxOutput(value=_require_int(out, "value", f"{where} vout[{i}]"), address=address)
        )

    return Transaction(txid=txid, outputs=outputs, status=_parse_status(raw.get("status"), where))


def parse_transaction_page(raw: Any, what: str) -> list[Transaction]:
    """A transaction page must be a JSON array; anything else is UnexpectedShapeError."""
    if not isinstance(raw, list):
        raise UnexpectedShapeError(
            f"Unexpected {what} response: expected a list, got {type(raw).__name__}",
            details={"what": what},
        )
    return [parse_transaction(item) for item in raw]


# ──────────────────────────────────────────────────────────────
# Private helpers
# ──────────────────────────────────────────────────────────────


def _parse_status(raw: Any, where: str) -> TxStatus:
    if raw is None:
        return TxStatus(confirmed=False)
    if not isinstance(raw, dict):
        raise InvalidResponseError(f"{where}: status must be an object")
    confirmed = raw.get("confirmed", False)
    if not isinstance(confirmed, bool):
        raise InvalidResponseError(f"{where}: status.confirmed must be a boolean")
    block_height = None
    if raw.get("block_height") is not None:
        block_height = _require_int(raw, "block_height", f"{where} status")
    return TxStatus(confirmed=confirmed, block_height=block_height)


def _require_str(raw: dict[str, Any], key: str, where: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidResponseError(f"{where}: {key!r} must be a non-empty string, got {value!r}")
    return value


def _require_int(raw: dict[str, Any], key: str, where: str) -> int:
    value = raw.get(key)
    # bool is a subclass of int
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidResponseError(f"{where}: {key!r} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidResponseError(f"{where}: {key!r} must be non-negative, got {value}")
    return value
