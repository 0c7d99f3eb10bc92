from __future__ import annotations

import asyncio
import json
from typing import Optional

import typer

from . import KafkaKeyValue
from .errors import RetryExhausted

app = typer.Typer(help="kkv_client operational CLI")

# ---------------------------
# Common options
# ---------------------------


def cache_host_opt() -> str:
    return typer.Option(..., "--cache-host", envvar="KKV_CACHE_HOST", help="cache-kkv base URL")


def pixy_host_opt() -> str:
    return typer.Option(..., "--pixy-host", envvar="KKV_PIXY_HOST", help="pixy write proxy base URL")


def topic_opt() -> str:
    return typer.Option(..., "--topic", envvar="KKV_TOPIC_NAME", help="Topic name")


def gzip_opt() -> bool:
    return typer.Option(False, "--gzip", envvar="KKV_GZIP", help="Values are gzipped JSON")


def _client(cache_host: str, pixy_host: str, topic: str, gzip: bool, **settings) -> KafkaKeyValue:
    """Build a client; ``settings`` left as None keep their KKVSettings defaults."""
    cfg = {"cache_host": cache_host, "pixy_host": pixy_host, "topic_name": topic, "gzip": gzip}
    cfg.update({k: v for k, v in settings.items() if v is not None})
    return KafkaKeyValue(cfg)


# ---------------------------
# Commands
# ---------------------------


@app.command("ping")
def ping(
    cache_host: str = cache_host_opt(),
    pixy_host: str = pixy_host_opt(),
    topic: str = topic_opt(),
):
    async def _run():
        async with _client(cache_host, pixy_host, topic, False) as kkv:
            return await kkv.health()

    ok = asyncio.run(_run())
    typer.echo(json.dumps({"ok": ok}, indent=2))
    if not ok:
        raise typer.Exit(code=1)


@app.command("get")
def get(
    key: str = typer.Argument(..., help="Key to read"),
    cache_host: str = cache_host_opt(),
    pixy_host: str = pixy_host_opt(),
    topic: str = topic_opt(),
    gzip: bool = gzip_opt(),
):
    async def _run():
        async with _client(cache_host, pixy_host, topic, gzip) as kkv:
            return await kkv.get(key)

    value = asyncio.run(_run())
    if value is None:
        typer.echo(f"key not found: {key}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(value, default=str))


@app.command("put")
def put(
    key: str = typer.Argument(..., help="Key to write"),
    value: str = typer.Argument(..., help="JSON value"),
    interval_ms: Optional[int] = typer.Option(
        None, "--interval-ms", envvar="KKV_PUT_INTERVAL_MS", help="Wait between attempts"
    ),
    n_retries: Optional[int] = typer.Option(
        None, "--n-retries", envvar="KKV_PUT_N_RETRIES", help="Attempts after the first"
    ),
    cache_host: str = cache_host_opt(),
    pixy_host: str = pixy_host_opt(),
    topic: str = topic_opt(),
    gzip: bool = gzip_opt(),
):
    try:
        doc = json.loads(value)
    except json.JSONDecodeError as exc:
        typer.echo(f"value is not valid JSON: {exc}", err=True)
        raise typer.Exit(code=2)

    async def _run():
        async with _client(
            cache_host,
            pixy_host,
            topic,
            gzip,
            put_interval_ms=interval_ms,
            put_n_retries=n_retries,
        ) as kkv:
            return await kkv.put(key, doc)

    try:
        offset = asyncio.run(_run())
    except RetryExhausted as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"key": key, "offset": offset}))


@app.command("stream")
def stream(
    cache_host: str = cache_host_opt(),
    pixy_host: str = pixy_host_opt(),
    topic: str = topic_opt(),
):
    """Dump all current values of the topic as NDJSON."""

    def _emit(record) -> None:
        typer.echo(json.dumps(record, default=str))

    async def _run():
        async with _client(cache_host, pixy_host, topic, False) as kkv:
            return await kkv.stream_values(_emit)

    n = asyncio.run(_run())
    typer.echo(f"streamed {n} values", err=True)


def main(argv: Optional[list[str]] = None) -> None:
    app(args=argv)


if __name__ == "__main__":
    main()
