"""Output format routing for esploracli.

Converts result dicts to the requested format: json, table, csv.

Design rules:
- JSON: 2-space indent, key order as produced by the models, utf-8
- Table: Rich-formatted; confirmed payments green, mempool payments yellow
- CSV: RFC 4180, header row always present

All functions return strings. The caller writes to stdout.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from esploracli.models import sats_to_btc

VALID_FORMATS = {"json", "table", "csv"}

PAYMENT_CSV_HEADERS = ["txid", "amount_sats", "amount_btc", "confirmations"]
TX_CSV_HEADERS = ["txid", "outputs", "output_sats", "confirmed", "block_height"]


def format_output(data: Any, fmt: str, color: bool = True) -> str:
    """
    Format data for stdout output.

    Args:
        data: Result dict (ChainSnapshot/BlockSnapshot/PaymentReport.to_dict()),
              list, or any JSON-serialisable value.
        fmt: "json" | "table" | "csv"
        color: Allow ANSI styling in table output.

    Returns:
        Formatted string ready to write to stdout.

    Raises:
        ValueError: If fmt is not a recognised format.
    """
    fmt = fmt.lower()
    if fmt not in VALID_FORMATS:
        raise ValueError(f"Unknown format {fmt!r}. Valid: {sorted(VALID_FORMATS)}")

    if fmt == "table":
        return format_table(data, color=color)
    elif fmt == "csv":
        return format_csv(data)

    return format_json(data)


# ── JSON ─────────────────────────────────────────────────────────────────────


def format_json(data: Any) -> str:
    """Pretty-print data as JSON (2-space indent)."""
    return json.dumps(data, indent=2, ensure_ascii=False)


# ── Table ────────────────────────────────────────────────────────────────────


def format_table(data: Any, color: bool = True) -> str:
    """
    Format as a Rich terminal table.

    Handles:
    - Payment reports (dict with 'payments')
    - Chain / block snapshots (dict with 'meta' and 'txs')
    - Generic dict fallback
    """
    buf = io.StringIO()
    console = Console(
        file=buf,
        highlight=False,
        markup=True,
        width=120,
        no_color=not color,
    )

    if isinstance(data, dict) and "payments" in data:
        _render_payments_table(console, data)
    elif isinstance(data, dict) and "meta" in data and "txs" in data:
        _render_block_table(console, data)
    else:
        console.print_json(json.dumps(data))

    return buf.getvalue()


def _short(value: str, head: int = 10, tail: int = 6) -> str:
    if len(value) > head + tail + 2:
        return f"{value[:head]}…{value[-tail:]}"
    return value


def _confirmations_color(confirmations: int) -> str:
    if confirmations >= 6:
        return "green"
    elif confirmations > 0:
        return "cyan"
    return "yellow"


def _render_payments_table(console: Console, data: dict[str, Any]) -> None:
    table = Table(
        title=f"Incoming payments — {data.get('address', '')}",
        show_header=True,
        header_style="bold blue",
    )
    table.add_column("TxID", style="cyan", no_wrap=True)
    table.add_column("Sats", justify="right")
    table.add_column("BTC", justify="right")
    table.add_column("Confirmations", justify="right")

    total = 0
    for p in data.get("payments", []):
        confs = p.get("confirmations", 0)
        total += p.get("amount_sats", 0)
        table.add_row(
            _short(p.get("txid", "")),
            f"{p.get('amount_sats', 0):,}",
            p.get("amount_btc", ""),
            Text(str(confs) if confs else "mempool", style=_confirmations_color(confs)),
        )

    console.print(table)
    console.print(
        f"Tip height: [bold]{data.get('tip_height', 0)}[/bold]  "
        f"Payments: [bold]{len(data.get('payments', []))}[/bold]  "
        f"Total: [bold green]{sats_to_btc(total)} BTC[/bold green]"
    )


def _render_block_table(console: Console, data: dict[str, Any]) -> None:
    meta = data.get("meta", {})
    txs = data.get("txs", [])

    table = Table(
        title=f"Block {meta.get('height', '?')} — {_short(data.get('hash', ''))}",
        show_header=True,
        header_style="bold blue",
    )
    table.add_column("#", justify="right")
    table.add_column("TxID", style="cyan", no_wrap=True)
    table.add_column("Outputs", justify="right")
    table.add_column("Output Sats", justify="right")

    for i, tx in enumerate(txs):
        row = _tx_row(tx)
        table.add_row(
            str(i),
            _short(row["txid"]),
            str(row["outputs"]),
            f"{row['output_sats']:,}",
        )

    console.print(table)
    fetched_style = "bold" if meta.get("tx_count") == len(txs) else "bold red"
    console.print(
        f"Declared txs: [bold]{meta.get('tx_count', 0)}[/bold]  "
        f"Fetched: [{fetched_style}]{len(txs)}[/{fetched_style}]  "
        f"Size: [bold]{meta.get('size', 0):,}[/bold] bytes"
    )


# ── CSV ──────────────────────────────────────────────────────────────────────


def format_csv(data: Any) -> str:
    """
    Format as CSV with a header row.

    Payment reports → one row per payment.
    Snapshots → one row per transaction (txid, outputs, output_sats,
    confirmed, block_height).
    """
    buf = io.StringIO()
    writer = csv.writer(buf)

    rows: list[dict[str, Any]] = []
    headers: list[str] = []

    if isinstance(data, dict):
        if isinstance(data.get("payments"), list):
            rows = data["payments"]
            headers = PAYMENT_CSV_HEADERS
        elif isinstance(data.get("txs"), list):
            rows = [_tx_row(tx) for tx in data["txs"]]
            headers = TX_CSV_HEADERS
    elif isinstance(data, list) and data and isinstance(data[0], dict):
        rows = data
        headers = list(rows[0].keys())

    if not headers:
        writer.writerow(["value"])
        writer.writerow([json.dumps(data)])
        return buf.getvalue()

    writer.writerow(headers)
    for row in rows:
        writer.writerow([row.get(h, "") for h in headers])

    return buf.getvalue()


def _tx_row(tx: dict[str, Any]) -> dict[str, Any]:
    """Summarise one serialised transaction for table/CSV rows."""
    vout = tx.get("vout", [])
    status = tx.get("status", {})
    return {
        "txid": tx.get("txid", ""),
        "outputs": len(vout),
        "output_sats": sum(o.get("value", 0) for o in vout),
        "confirmed": status.get("confirmed", False),
        "block_height": status.get("block_height"),
    }
