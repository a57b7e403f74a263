"""Click CLI entry point for esploracli.

All commands are thin orchestration wrappers — business logic lives in
config, fetchers, snapshot and output modules.

stdout carries only the result object. Progress events (JSONL) and error
objects go to stderr.

Exit codes:
  0 — success
  1 — unexpected error
  2 — upstream HTTP error (after retries)
  3 — network error: timeout, connection failure (after retries)
  4 — invalid upstream response
  5 — config error
"""

from __future__ import annotations

import asyncio
import json
import shutil
import sys
from typing import Any

import click

from esploracli import __version__
from esploracli.config import (
    VALID_FORMATS,
    EsploraConfig,
    load_config,
    load_file_config,
    resolve_config_path,
    save_config,
    validate_config,
)
from esploracli.events import EventSink, JsonlEventSink, NullEventSink
from esploracli.exceptions import ConfigInvalidError, EsploraError
from esploracli.fetchers import get_client
from esploracli.output import format_output
from esploracli.snapshot import read_block, read_tip_block

FORMAT_CHOICES = sorted(VALID_FORMATS)


# ── Error handler ─────────────────────────────────────────────────────────────


def _output_error(err: EsploraError | Exception) -> None:
    """Write error JSON to stderr and exit with the error's code."""
    if isinstance(err, EsploraError):
        payload = err.to_dict()
        exit_code = err.exit_code
    else:
        payload = {"error": "unknown_error", "message": str(err), "details": {}}
        exit_code = 1
    sys.stderr.write(json.dumps(payload) + "\n")
    sys.stderr.flush()
    sys.exit(exit_code)


def _require_config(ctx: click.Context) -> EsploraConfig:
    """Return the loaded config, or fail if it did not validate."""
    error = ctx.obj.get("config_error")
    if error is not None:
        _output_error(error)
    return ctx.obj["config"]


def _sink(ctx: click.Context) -> EventSink:
    return NullEventSink() if ctx.obj.get("quiet") else JsonlEventSink()


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    envvar="ESPLORACLI_CONFIG",
    default=None,
    help="Config file path (default: ~/.esploracli/config.toml)",
)
@click.option(
    "--api-url",
    "api_url",
    default=None,
    help="Esplora API base URL (overrides config and environment)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(FORMAT_CHOICES),
    default=None,
    help="Output format (overrides config default)",
)
@click.option("--quiet", "-q", is_flag=True, help="Do not write progress events to stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    api_url: str | None,
    output_format: str | None,
    quiet: bool,
) -> None:
    """esploracli — resilient Esplora block-explorer client."""
    ctx.ensure_object(dict)
    config_error: EsploraError | None = None
    try:
        config = load_config(config_path)
        if api_url is not None:
            config.api.base_url = api_url
            validate_config(config)
    except EsploraError as e:
        # Keep defaults so `config init` still works; data commands refuse to run
        config = EsploraConfig()
        config_error = e

    ctx.obj["config"] = config
    ctx.obj["config_error"] = config_error
    ctx.obj["format"] = output_format or config.output.default_format
    ctx.obj["config_path"] = config_path
    ctx.obj["quiet"] = quiet


# ── Chain commands ────────────────────────────────────────────────────────────


@cli.command("tip")
@click.option("--format", "fmt", type=click.Choice(FORMAT_CHOICES), default=None)
@click.pass_context
def tip_command(ctx: click.Context, fmt: str | None) -> None:
    """Fetch the tip height, hash, block meta and all tip block transactions."""
    config = _require_config(ctx)
    fmt = fmt or ctx.obj.get("format", "json")
    sink = _sink(ctx)

    async def _run() -> dict[str, Any]:
        sink.emit({"type": "starting", "level": "info", "api_base": config.api.base_url})
        async with get_client(config, sink) as client:
            snapshot = await read_tip_block(client, sink)
        sink.emit({
            "type": "done",
            "level": "info",
            "height": snapshot.height,
            "hash": snapshot.hash,
            "tx_count": len(snapshot.txs),
        })
        return snapshot.to_dict()

    try:
        result = asyncio.run(_run())
        click.echo(format_output(result, fmt, color=config.output.color))
    except EsploraError as e:
        _output_error(e)


@cli.command("block")
@click.argument("block_hash")
@click.option("--format", "fmt", type=click.Choice(FORMAT_CHOICES), default=None)
@click.pass_context
def block_command(ctx: click.Context, block_hash: str, fmt: str | None) -> None:
    """Fetch block meta and all transactions for BLOCK_HASH."""
    config = _require_config(ctx)
    fmt = fmt or ctx.obj.get("format", "json")
    sink = _sink(ctx)

    async def _run() -> dict[str, Any]:
        async with get_client(config, sink) as client:
            snapshot = await read_block(client, block_hash, sink)
        sink.emit({
            "type": "done",
            "level": "info",
            "hash": snapshot.hash,
            "tx_count": len(snapshot.txs),
        })
        return snapshot.to_dict()

    try:
        result = asyncio.run(_run())
        click.echo(format_output(result, fmt, color=config.output.color))
    except EsploraError as e:
        _output_error(e)


# ── Payment command ───────────────────────────────────────────────────────────


@cli.command("payments")
@click.argument("address")
@click.option("--format", "fmt", type=click.Choice(FORMAT_CHOICES), default=None)
@click.pass_context
def payments_command(ctx: click.Context, address: str, fmt: str | None) -> None:
    """List incoming payments to ADDRESS with confirmation counts."""
    config = _require_config(ctx)
    fmt = fmt or ctx.obj.get("format", "json")
    sink = _sink(ctx)

    async def _run() -> dict[str, Any]:
        sink.emit({
            "type": "starting",
            "level": "info",
            "address": address,
            "api_base": config.api.base_url,
        })
        async with get_client(config, sink) as client:
            report = await client.payments.get_payments(address)
        sink.emit({
            "type": "done",
            "level": "info",
            "address": address,
            "payments_count": len(report.payments),
        })
        return report.to_dict()

    try:
        result = asyncio.run(_run())
        click.echo(format_output(result, fmt, color=config.output.color))
    except EsploraError as e:
        _output_error(e)


# ── Config commands ───────────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Manage esploracli configuration."""


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing config")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Initialize default config at ~/.esploracli/config.toml."""
    config_path = resolve_config_path(ctx.obj.get("config_path"))

    if config_path.exists() and not force:
        click.echo(
            json.dumps(
                {
                    "status": "already_exists",
                    "config_path": str(config_path),
                    "hint": "Use --force to reinitialize",
                }
            )
        )
        return

    status = "initialized"
    backup = None

    if config_path.exists() and force:
        backup = str(config_path) + ".bak"
        shutil.copy2(config_path, backup)
        status = "reinitialized"

    save_config(EsploraConfig(), str(config_path))

    result: dict[str, Any] = {
        "status": status,
        "config_path": str(config_path),
    }
    if backup:
        result["backup"] = backup
    click.echo(json.dumps(result))


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a config value by dotted key path (e.g. retry.max_attempts)."""
    config_path = ctx.obj.get("config_path")
    # Edit the file as written: environment overrides and the defaults used
    # after a failed load must not be persisted
    try:
        config = load_file_config(config_path)
    except ConfigInvalidError as e:
        _output_error(e)

    parts = key.split(".", 1)
    if len(parts) != 2:
        _output_error(
            EsploraError(f"Key must be in form section.key, got: {key!r}")
        )

    section_name, field_name = parts
    section = getattr(config, section_name, None)
    if section is None or not hasattr(section, field_name):
        _output_error(ConfigInvalidError(f"Unknown config key: {key!r}"))

    # Type-coerce
    current = getattr(section, field_name)
    try:
        if isinstance(current, bool):
            typed_value: Any = value.lower() in ("1", "true", "yes")
        elif isinstance(current, int):
            typed_value = int(value)
        else:
            typed_value = value
        setattr(section, field_name, typed_value)
        validate_config(config)
    except ValueError as e:
        _output_error(ConfigInvalidError(f"Invalid value for {key}: {e}"))
    except ConfigInvalidError as e:
        _output_error(e)

    save_config(config, config_path)
    click.echo(json.dumps({"status": "updated", "key": key, "value": typed_value}))


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration."""
    config: EsploraConfig = ctx.obj["config"]
    config_path = resolve_config_path(ctx.obj.get("config_path"))
    error = ctx.obj.get("config_error")

    result: dict[str, Any] = {
        "config_path": str(config_path),
        "valid": error is None,
        "api": {
            "base_url": config.api.base_url,
            "network": config.api.network,
        },
        "retry": {
            "max_attempts": config.retry.max_attempts,
            "timeout_ms": config.retry.timeout_ms,
            "backoff_base_ms": config.retry.backoff_base_ms,
        },
        "pager": {
            "page_delay_ms": config.pager.page_delay_ms,
        },
        "output": {
            "default_format": config.output.default_format,
            "color": config.output.color,
        },
    }
    if error is not None:
        result["error"] = error.to_dict()

    click.echo(format_output(result, "json"))


if __name__ == "__main__":
    cli()
