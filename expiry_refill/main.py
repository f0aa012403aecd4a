from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import typer

from expiry_refill.adapters.postgres_store import PostgresRecordStore
from expiry_refill.adapters.redis_sink import RedisCacheSink
from expiry_refill.adapters.redis_source import RedisNotificationSource
from expiry_refill.config import Settings, get_settings
from expiry_refill.domain.models import ExpirationEvent, Found
from expiry_refill.errors import RefillError
from expiry_refill.infrastructure.redis_factory import (
    build_redis_url,
    connect_redis,
    create_redis_client,
)
from expiry_refill.runner import RefillSummary, run_refill
from expiry_refill.utils.logging import configure_logging
from expiry_refill.worker import RefillWorker

app = typer.Typer(help="Expiry Refill CLI: write expired cache keys back from the record store.")

_CLI_CHANNEL = "cli"


def _redacted(url: str) -> str:
    if "@" not in url:
        return url
    scheme, rest = url.split("://", 1)
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


async def _serve(
    settings: Settings,
    max_events: Optional[int],
    max_in_flight: int,
    configure_notifications: bool,
) -> RefillSummary:
    redis_client = await connect_redis(build_redis_url(settings))
    try:
        async with PostgresRecordStore() as store:
            worker = RefillWorker(
                store=store,
                sink=RedisCacheSink(redis_client),
                sentinel=settings.not_found_sentinel,
                timeout=settings.refill_timeout,
            )
            source = RedisNotificationSource(
                redis_client,
                channel=settings.expired_channel,
                configure_notifications=configure_notifications,
            )
            return await run_refill(
                source,
                worker,
                max_in_flight=max_in_flight,
                max_events=max_events,
                max_redeliveries=settings.max_redeliveries,
            )
    finally:
        await redis_client.aclose()


async def _refill_once(settings: Settings, key: str, dry_run: bool) -> Dict[str, Any]:
    redis_client = create_redis_client(build_redis_url(settings))
    try:
        async with PostgresRecordStore() as store:
            worker = RefillWorker(
                store=store,
                sink=RedisCacheSink(redis_client),
                sentinel=settings.not_found_sentinel,
                timeout=settings.refill_timeout,
            )
            event = ExpirationEvent(channel=_CLI_CHANNEL, key=key)
            if dry_run:
                outcome = await worker.handle_expiration(event)
            else:
                outcome = await worker.refill(event)
            cache_key, cache_value = worker.materialize(outcome)
    finally:
        await redis_client.aclose()

    return {
        "key": cache_key,
        "value": cache_value,
        "found": isinstance(outcome, Found),
        "written": not dry_run,
    }


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"REDIS={_redacted(build_redis_url(settings))} channel={settings.expired_channel} | "
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"table={settings.store_table} key={settings.store_key_field} "
        f"value={settings.store_value_field} | "
        f"sentinel={settings.not_found_sentinel!r} timeout={settings.refill_timeout} "
        f"in_flight={settings.max_in_flight} redeliveries={settings.max_redeliveries}"
    )


@app.command()
def run(
    max_events: Optional[int] = typer.Option(
        None,
        "--max-events",
        "-n",
        help="Stop after this many expiration events (default: run until interrupted).",
    ),
    max_in_flight: Optional[int] = typer.Option(
        None,
        "--max-in-flight",
        "-c",
        help="Override the number of concurrent refills (default from settings).",
    ),
    configure_notifications: Optional[bool] = typer.Option(
        None,
        "--configure-notifications/--no-configure-notifications",
        help="Enable expired-key notifications on the Redis server before subscribing.",
    ),
) -> None:
    """
    Subscribe to expiration events and refill keys until interrupted.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    in_flight = max_in_flight or settings.max_in_flight
    configure = (
        settings.configure_notifications
        if configure_notifications is None
        else configure_notifications
    )

    typer.echo(
        f"Listening on channel='{settings.expired_channel}' "
        f"(in_flight={in_flight}, max_events={max_events or 'unbounded'})."
    )
    summary = asyncio.run(_serve(settings, max_events, in_flight, configure))
    typer.echo(json.dumps(summary, indent=2))


@app.command()
def refill(
    key: str = typer.Argument(..., help="Cache key to refill."),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Look the key up without writing to the cache.",
    ),
) -> None:
    """
    Refill a single key as if it had just expired, and print the outcome.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    try:
        result = asyncio.run(_refill_once(settings, key, dry_run))
    except RefillError as exc:
        typer.echo(f"Refill failed ({type(exc).__name__}): {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result, indent=2))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
