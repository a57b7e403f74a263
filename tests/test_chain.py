"""Tests for esploracli/fetchers/chain.py and esploracli/snapshot.py."""

from __future__ import annotations

import httpx
import pytest
import respx

from conftest import BASE, make_page, make_raw_block
from esploracli.exceptions import (
    ExhaustedRetriesError,
    InvalidResponseError,
    UnexpectedShapeError,
)
from esploracli.fetchers.chain import PAGE_SIZE
from esploracli.models import BlockMeta
from esploracli.snapshot import check_tx_count, read_block, read_tip_block

BLOCK = "0000000000000abc"


def mock_block_pages(block_hash: str, sizes: list[int], router=respx) -> list[respx.Route]:
    """Register one route per page: /txs, /txs/25, /txs/50, ..."""
    routes = []
    for i, size in enumerate(sizes):
        path = f"{BASE}/block/{block_hash}/txs" + (f"/{i * PAGE_SIZE}" if i else "")
        routes.append(
            router.get(path).mock(return_value=httpx.Response(200, json=make_page(f"p{i}", size)))
        )
    return routes


# ── ChainStateReader ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
@respx.mock
async def test_get_tip_height(make_client, sink) -> None:
    respx.get(f"{BASE}/blocks/tip/height").mock(return_value=httpx.Response(200, text="2500123\n"))

    async with make_client() as client:
        height = await client.chain.get_tip_height()

    assert height == 2_500_123
    assert sink.of_type("tip_height")[0]["height"] == 2_500_123


@pytest.mark.parametrize("body", ["", "abc", "12.5", "-3", "1_000", "<html>oops</html>"])
@pytest.mark.asyncio
@respx.mock
async def test_get_tip_height_invalid(make_client, body: str) -> None:
    route = respx.get(f"{BASE}/blocks/tip/height").mock(return_value=httpx.Response(200, text=body))

    async with make_client() as client:
        with pytest.raises(InvalidResponseError):
            await client.chain.get_tip_height()

    # Shape errors are never retried
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_get_tip_hash_trims(make_client) -> None:
    respx.get(f"{BASE}/blocks/tip/hash").mock(return_value=httpx.Response(200, text="  abc123\n"))

    async with make_client() as client:
        assert await client.chain.get_tip_hash() == "abc123"


@pytest.mark.asyncio
@respx.mock
async def test_get_tip_hash_empty(make_client) -> None:
    respx.get(f"{BASE}/blocks/tip/hash").mock(return_value=httpx.Response(200, text="   \n"))

    async with make_client() as client:
        with pytest.raises(InvalidResponseError):
            await client.chain.get_tip_hash()


@pytest.mark.asyncio
@respx.mock
async def test_get_tip_hash_propagates_exhausted_retries(make_client, sleeper) -> None:
    respx.get(f"{BASE}/blocks/tip/hash").mock(return_value=httpx.Response(503))

    async with make_client(max_attempts=3) as client:
        with pytest.raises(ExhaustedRetriesError):
            await client.chain.get_tip_hash()

    assert sleeper.calls == [0.2, 0.4]


@pytest.mark.asyncio
@respx.mock
async def test_get_block_meta_narrows_fields(make_client) -> None:
    respx.get(f"{BASE}/block/{BLOCK}").mock(
        return_value=httpx.Response(200, json=make_raw_block(BLOCK, height=77, tx_count=3))
    )

    async with make_client() as client:
        meta = await client.chain.get_block_meta(BLOCK)

    assert meta == BlockMeta(id=BLOCK, height=77, timestamp=1_700_000_000, tx_count=3, size=12_345)
    assert set(meta.to_dict()) == {"id", "height", "timestamp", "tx_count", "size"}


@pytest.mark.asyncio
@respx.mock
async def test_get_block_meta_twice_is_identical(make_client) -> None:
    """No caching, but no drift either for an unchanged upstream."""
    route = respx.get(f"{BASE}/block/{BLOCK}").mock(
        return_value=httpx.Response(200, json=make_raw_block(BLOCK))
    )

    async with make_client() as client:
        first = await client.chain.get_block_meta(BLOCK)
        second = await client.chain.get_block_meta(BLOCK)

    assert first == second
    assert first.to_dict() == second.to_dict()
    assert route.call_count == 2


@pytest.mark.asyncio
@respx.mock
async def test_get_block_meta_not_json(make_client) -> None:
    respx.get(f"{BASE}/block/{BLOCK}").mock(return_value=httpx.Response(200, text="Block not found"))

    async with make_client() as client:
        with pytest.raises(InvalidResponseError):
            await client.chain.get_block_meta(BLOCK)


@pytest.mark.asyncio
@respx.mock
async def test_get_block_meta_bad_field(make_client) -> None:
    raw = make_raw_block(BLOCK)
    raw["tx_count"] = "ten"
    respx.get(f"{BASE}/block/{BLOCK}").mock(return_value=httpx.Response(200, json=raw))

    async with make_client() as client:
        with pytest.raises(InvalidResponseError):
            await client.chain.get_block_meta(BLOCK)


# ── BlockTransactionPager ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_pager_four_pages_yields_85(make_client, sleeper) -> None:
    """Pages [25, 25, 25, 10] stop after the 4th page."""
    with respx.mock(assert_all_called=False) as mock:
        routes = mock_block_pages(BLOCK, [25, 25, 25, 10], router=mock)
        extra = mock.get(f"{BASE}/block/{BLOCK}/txs/100").mock(
            return_value=httpx.Response(200, json=[])
        )

        async with make_client(page_delay_ms=50) as client:
            txs = await client.pager.get_block_transactions(BLOCK)

    assert len(txs) == 85
    assert all(r.call_count == 1 for r in routes)
    assert extra.call_count == 0
    # Politeness delay between pages only
    assert sleeper.calls == [0.05, 0.05, 0.05]


@pytest.mark.asyncio
@respx.mock
async def test_pager_preserves_order_without_duplicates(make_client) -> None:
    mock_block_pages(BLOCK, [25, 25, 3])

    async with make_client() as client:
        txs = await client.pager.get_block_transactions(BLOCK)

    txids = [t.txid for t in txs]
    expected = (
        [f"p0_{i:04d}" for i in range(25)]
        + [f"p1_{i:04d}" for i in range(25)]
        + [f"p2_{i:04d}" for i in range(3)]
    )
    assert txids == expected
    assert len(set(txids)) == len(txids)


@pytest.mark.asyncio
@respx.mock
async def test_pager_single_short_page(make_client, sleeper) -> None:
    (route,) = mock_block_pages(BLOCK, [7])

    async with make_client() as client:
        txs = await client.pager.get_block_transactions(BLOCK)

    assert len(txs) == 7
    assert route.call_count == 1
    assert sleeper.calls == []


@pytest.mark.asyncio
@respx.mock
async def test_pager_trailing_empty_page_terminates(make_client, sink) -> None:
    """A block with exactly 100 txs ends on an empty 5th page."""
    mock_block_pages(BLOCK, [25, 25, 25, 25, 0])

    async with make_client() as client:
        txs = await client.pager.get_block_transactions(BLOCK)

    assert len(txs) == 100
    pages = sink.of_type("tx_page")
    assert [p["start"] for p in pages] == [0, 25, 50, 75, 100]
    assert pages[-1]["page_len"] == 0
    assert sink.of_type("block_txs_complete")[0]["total"] == 100


@pytest.mark.asyncio
@respx.mock
async def test_pager_non_list_page_raises(make_client) -> None:
    respx.get(f"{BASE}/block/{BLOCK}/txs").mock(
        return_value=httpx.Response(200, json={"error": "unexpected"})
    )

    async with make_client() as client:
        with pytest.raises(UnexpectedShapeError):
            await client.pager.get_block_transactions(BLOCK)


@pytest.mark.asyncio
@respx.mock
async def test_pager_failure_mid_sequence_propagates(make_client) -> None:
    mock_block_pages(BLOCK, [25])
    respx.get(f"{BASE}/block/{BLOCK}/txs/25").mock(return_value=httpx.Response(400, text="bad start"))

    async with make_client(max_attempts=2) as client:
        with pytest.raises(ExhaustedRetriesError):
            await client.pager.get_block_transactions(BLOCK)


@pytest.mark.asyncio
@respx.mock
async def test_pager_restarts_from_zero_each_call(make_client) -> None:
    (first, second) = mock_block_pages(BLOCK, [25, 1])

    async with make_client(page_delay_ms=0) as client:
        await client.pager.get_block_transactions(BLOCK)
        await client.pager.get_block_transactions(BLOCK)

    assert first.call_count == 2
    assert second.call_count == 2


# ── snapshot flows ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
@respx.mock
async def test_read_tip_block(make_client, sink) -> None:
    respx.get(f"{BASE}/blocks/tip/height").mock(return_value=httpx.Response(200, text="2500000"))
    respx.get(f"{BASE}/blocks/tip/hash").mock(return_value=httpx.Response(200, text=BLOCK))
    respx.get(f"{BASE}/block/{BLOCK}").mock(
        return_value=httpx.Response(200, json=make_raw_block(BLOCK, tx_count=30))
    )
    mock_block_pages(BLOCK, [25, 5])

    async with make_client() as client:
        snap = await read_tip_block(client, sink)

    assert snap.height == 2_500_000
    assert snap.hash == BLOCK
    assert snap.meta.tx_count == 30
    assert len(snap.txs) == 30
    assert sink.of_type("tx_count_mismatch") == []

    d = snap.to_dict()
    assert set(d) == {"height", "hash", "meta", "txs"}
    assert d["txs"][0]["txid"] == "p0_0000"


@pytest.mark.asyncio
@respx.mock
async def test_read_block_count_mismatch_is_only_a_warning(make_client, sink) -> None:
    respx.get(f"{BASE}/block/{BLOCK}").mock(
        return_value=httpx.Response(200, json=make_raw_block(BLOCK, tx_count=12))
    )
    mock_block_pages(BLOCK, [10])

    async with make_client() as client:
        snap = await read_block(client, BLOCK, sink)

    assert len(snap.txs) == 10
    (warning,) = sink.of_type("tx_count_mismatch")
    assert warning["level"] == "warn"
    assert warning["expected"] == 12
    assert warning["received"] == 10


def test_check_tx_count(sink) -> None:
    meta = BlockMeta(id="h", height=1, timestamp=0, tx_count=0, size=0)
    assert check_tx_count(meta, [], sink) is True
    assert sink.events == []
