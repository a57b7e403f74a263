"""Pytest fixtures shared across all esploracli tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from esploracli.config import APIConfig, EsploraConfig, OutputConfig, PagerConfig, RetryConfig
from esploracli.fetchers import EsploraClient
from esploracli.fetchers.base import RetryPolicy

BASE = "https://esplora.test/testnet/api"

ADDR_A = "tb1qpaymentaddressaaaaaaaaaaaaaaaaaaaaaaaa"
ADDR_B = "tb1qotheraddressbbbbbbbbbbbbbbbbbbbbbbbbbb"


# ── Test doubles ──────────────────────────────────────────────────────────────


class RecordingSink:
    """EventSink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def emit(self, event: dict[str, Any]) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e["type"] == event_type]


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records durations (seconds)."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(sink: RecordingSink, sleeper: SleepRecorder) -> Callable[..., EsploraClient]:
    """Factory for EsploraClient wired to the recording sink and sleeper."""

    def _make(
        max_attempts: int = 3,
        backoff_base_ms: int = 200,
        timeout_ms: int = 1_000,
        page_delay_ms: int = 50,
    ) -> EsploraClient:
        return EsploraClient(
            BASE,
            policy=RetryPolicy(
                max_attempts=max_attempts,
                timeout_ms=timeout_ms,
                backoff_base_ms=backoff_base_ms,
            ),
            sink=sink,
            page_delay_ms=page_delay_ms,
            sleep=sleeper,
        )

    return _make


# ── Config fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def sample_config() -> EsploraConfig:
    """Minimal valid EsploraConfig pointing at the mocked API."""
    return EsploraConfig(
        api=APIConfig(base_url=BASE, network="testnet"),
        retry=RetryConfig(max_attempts=1, timeout_ms=1_000, backoff_base_ms=0),
        pager=PagerConfig(page_delay_ms=0),
        output=OutputConfig(default_format="json", color=False),
    )


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep the developer's environment and ~/.esploracli out of tests."""
    for var in (
        "ESPLORA_API",
        "ESPLORACLI_API_URL",
        "ESPLORACLI_NETWORK",
        "ESPLORACLI_MAX_ATTEMPTS",
        "ESPLORACLI_TIMEOUT_MS",
        "ESPLORACLI_BACKOFF_BASE_MS",
        "ESPLORACLI_PAGE_DELAY_MS",
        "ESPLORACLI_OUTPUT_FORMAT",
        "ESPLORACLI_NO_COLOR",
        "ESPLORACLI_CONFIG",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("ESPLORACLI_CONFIG_PATH", str(tmp_path / "default_config.toml"))


# ── Raw API payload builders ──────────────────────────────────────────────────


def make_raw_tx(
    txid: str,
    outputs: list[tuple[str | None, int]] | None = None,
    block_height: int | None = None,
) -> dict[str, Any]:
    """Esplora transaction JSON; confirmed iff block_height is given."""
    vout = []
    for address, value in outputs or []:
        out: dict[str, Any] = {
            "scriptpubkey": "0014deadbeef",
            "scriptpubkey_type": "v0_p2wpkh",
            "value": value,
        }
        if address is not None:
            out["scriptpubkey_address"] = address
        vout.append(out)

    status: dict[str, Any] = {"confirmed": block_height is not None}
    if block_height is not None:
        status["block_height"] = block_height
        status["block_hash"] = f"hash_{block_height}"
        status["block_time"] = 1_700_000_000 + block_height

    return {
        "txid": txid,
        "version": 2,
        "locktime": 0,
        "vin": [],
        "vout": vout,
        "size": 222,
        "weight": 561,
        "fee": 141,
        "status": status,
    }


def make_raw_block(
    block_hash: str = "00000000abc",
    height: int = 2_500_000,
    tx_count: int = 10,
) -> dict[str, Any]:
    """Esplora /block/{hash} JSON including fields esploracli ignores."""
    return {
        "id": block_hash,
        "height": height,
        "version": 536870912,
        "timestamp": 1_700_000_000,
        "tx_count": tx_count,
        "size": 12_345,
        "weight": 40_000,
        "merkle_root": "ab" * 32,
        "previousblockhash": "cd" * 32,
        "mediantime": 1_699_999_000,
        "nonce": 42,
        "bits": 486604799,
        "difficulty": 1,
    }


def make_page(prefix: str, count: int) -> list[dict[str, Any]]:
    return [make_raw_tx(f"{prefix}_{i:04d}", [(ADDR_B, 1_000 + i)], 100) for i in range(count)]
