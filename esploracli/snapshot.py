"""Chain-read flows: the tip block (or a given block) with all its transactions.

Steps for `read_tip_block`:
1. Tip height
2. Tip hash
3. Block meta for that hash
4. Every transaction of that block (paginated)
5. Cross-check the paginated total against meta.tx_count

A count mismatch is only reported as a `tx_count_mismatch` warning event.
Declared counts and paginated totals can legitimately diverge (reorgs,
the tip moving between step 1 and step 2), so it never fails the read.
"""

from __future__ import annotations

from esploracli.events import EventSink, NullEventSink
from esploracli.fetchers import EsploraClient
from esploracli.models import BlockMeta, BlockSnapshot, ChainSnapshot, Transaction


async def read_tip_block(client: EsploraClient, sink: EventSink | None = None) -> ChainSnapshot:
    """Read the current tip and all of its transactions."""
    sink = sink or NullEventSink()

    height = await client.chain.get_tip_height()
    tip_hash = await client.chain.get_tip_hash()
    meta = await client.chain.get_block_meta(tip_hash)
    txs = await client.pager.get_block_transactions(tip_hash)

    check_tx_count(meta, txs, sink)
    return ChainSnapshot(height=height, hash=tip_hash, meta=meta, txs=txs)


async def read_block(
    client: EsploraClient, block_hash: str, sink: EventSink | None = None
) -> BlockSnapshot:
    """Read one block by hash and all of its transactions."""
    sink = sink or NullEventSink()

    meta = await client.chain.get_block_meta(block_hash)
    txs = await client.pager.get_block_transactions(block_hash)

    check_tx_count(meta, txs, sink)
    return BlockSnapshot(hash=block_hash, meta=meta, txs=txs)


def check_tx_count(meta: BlockMeta, txs: list[Transaction], sink: EventSink) -> bool:
    """Return True if counts agree; emit a warning event otherwise."""
    if meta.tx_count == len(txs):
        return True
    sink.emit({
        "type": "tx_count_mismatch",
        "level": "warn",
        "hash": meta.id,
        "expected": meta.tx_count,
        "received": len(txs),
    })
    return False
