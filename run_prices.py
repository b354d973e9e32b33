#!/usr/bin/env python3
"""
run_prices.py - CLI entrypoint for price-curve sampling.

Usage:
    python run_prices.py --token 0x... --pool 0x... --block 17000000
    python run_prices.py -t 0x... -p 0x... -b 17000000 -b 17000100 -o curve.jsonl

Writes one JSON object per (token, block) row.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click

from chains.providers import RPCProvider
from config import AppConfig, load_simulation_config
from core.exceptions import PriceFetcherError
from core.logging import get_logger, log_error, set_global_context, setup_logging
from pricing.price_fetcher import PriceFetcher
from pricing.sampler import PriceCurveSampler, PriceRow
from simulation.abi import normalize_address

logger = get_logger("prices.cli")


def _address(ctx: click.Context, param: click.Parameter, value: str) -> str:
    try:
        return normalize_address(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


async def run_sampling(
    config: AppConfig,
    token: str,
    pool: str,
    blocks: list[int],
) -> tuple[list[PriceRow], dict, dict]:
    """Sample one token; returns rows, sampler stats and RPC stats."""
    async with RPCProvider(
        list(config.rpc.urls),
        timeout_seconds=config.rpc.timeout_seconds,
        max_connections=config.rpc.max_connections,
    ) as provider:
        fetcher = PriceFetcher(provider, config.simulation)
        sampler = PriceCurveSampler(fetcher, config.sampler)
        rows = await sampler.sample_token(token, pool, blocks)
        return rows, sampler.stats.to_dict(), provider.get_stats_summary()


@click.command()
@click.option("--token", "-t", required=True, callback=_address, help="Token address")
@click.option("--pool", "-p", required=True, callback=_address, help="WETH/token pool address")
@click.option(
    "--block",
    "-b",
    "blocks",
    required=True,
    multiple=True,
    type=int,
    help="Block height (repeatable)",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to simulation.yaml",
)
@click.option(
    "--output",
    "-o",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON lines output file (default: stdout)",
)
@click.option(
    "--log-level",
    "-l",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level (default: from config)",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON log format",
)
def main(
    token: str,
    pool: str,
    blocks: tuple[int, ...],
    config_path: Optional[Path],
    output: Optional[Path],
    log_level: Optional[str],
    json_logs: bool,
) -> None:
    """
    Sample historical buy/sell price curves for one token.

    Simulates swaps through debug_traceCall; nothing is sent on chain.
    """
    try:
        config = load_simulation_config(config_path)
    except PriceFetcherError as e:
        raise click.ClickException(str(e))

    setup_logging(level=log_level or config.log_level, json_output=json_logs)
    set_global_context(service="price-sampler")

    logger.info(
        "Starting price sampling",
        extra={"context": {"token": token, "pool": pool, "blocks": len(blocks)}},
    )

    try:
        rows, stats, rpc_stats = asyncio.run(run_sampling(config, token, pool, list(blocks)))
    except PriceFetcherError as e:
        log_error(logger, e.code.value, f"Price sampling aborted: {e.message}", **e.details)
        sys.exit(1)

    lines = [json.dumps(row.to_dict()) for row in rows]
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text("\n".join(lines) + "\n", encoding="utf-8")
    else:
        for line in lines:
            click.echo(line)

    logger.info("Price sampling done", extra={"context": {**stats, "rpc": rpc_stats}})


if __name__ == "__main__":
    main()
