"""Library usage example for esploracli.

Reads the current tip block and every one of its transactions without going
through the CLI, printing progress events to stderr as they happen.
"""

import asyncio

from esploracli.config import load_config
from esploracli.events import JsonlEventSink
from esploracli.fetchers import get_client
from esploracli.snapshot import read_tip_block


async def main():
    """Fetch the tip snapshot and summarise it."""
    config = load_config()
    sink = JsonlEventSink()

    async with get_client(config, sink) as client:
        snapshot = await read_tip_block(client, sink)

    print(f"Tip {snapshot.height} ({snapshot.hash})")
    print(f"Declared txs: {snapshot.meta.tx_count}, fetched: {len(snapshot.txs)}")

    paid = sum(out.value for tx in snapshot.txs for out in tx.outputs)
    print(f"Total output value: {paid:,} sats")


if __name__ == "__main__":
    asyncio.run(main())
