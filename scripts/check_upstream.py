#!/usr/bin/env python3
"""
Check Upstream - Verify the Twelve Data client and a one-off snapshot build.

Uses the in-memory KV store, so nothing is written to Redis and baselines
bootstrapped here are discarded at exit. Each run spends 2 credits per symbol.
"""

import asyncio
import json
import logging
import sys

from mcm_snapshot.clients.base_client import FetchError
from mcm_snapshot.clients.twelvedata_client import TwelveDataClient
from mcm_snapshot.config import get_settings
from mcm_snapshot.services.session_service import parse_symbols
from mcm_snapshot.services.snapshot_service import SnapshotService
from mcm_snapshot.storage.kv_store import MemoryKVStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
log = logging.getLogger(__name__)


async def check_client(client: TwelveDataClient, symbols) -> dict:
    """Fetch quote + series per symbol and report what came back"""
    print("\n" + "=" * 80)
    print("TESTING TWELVE DATA CLIENT")
    print("=" * 80)

    results = {"success": 0, "failed": 0, "errors": []}
    for symbol in symbols:
        print(f"\n📊 Testing {symbol}...")
        quote, series = await client.fetch_symbol(symbol)
        if isinstance(quote, FetchError):
            print(f"  ❌ Quote failed: {quote.reason}")
        else:
            print(f"  ✅ Quote: last={quote.last} prev_close={quote.prev_close} asof={quote.asof_market}")
        if isinstance(series, FetchError):
            print(f"  ❌ Series failed: {series.reason}")
        else:
            print(f"  ✅ Series: {len(series.values)} candles")

        if isinstance(quote, FetchError) and isinstance(series, FetchError):
            results["failed"] += 1
            results["errors"].append(f"{symbol}: {quote.reason}; {series.reason}")
        else:
            results["success"] += 1

    print(f"\n📊 Client Results:")
    print(f"  Success: {results['success']}/{len(symbols)}")
    if results["errors"]:
        print(f"  Errors: {results['errors']}")
    return results


async def check_snapshot(client: TwelveDataClient, symbols) -> None:
    """Build one snapshot end-to-end and print it"""
    print("\n" + "=" * 80)
    print("BUILDING SNAPSHOT (memory store)")
    print("=" * 80)

    service = SnapshotService(client, MemoryKVStore(), settings=get_settings())
    text, _ = await service.get_snapshot_json(symbols)
    print(json.dumps(json.loads(text), indent=2))


async def run(symbols) -> int:
    settings = get_settings()
    if not settings.twelvedata_api_key:
        log.error("❌ TWELVEDATA_API_KEY is not set")
        return 1

    client = TwelveDataClient(
        api_key=settings.twelvedata_api_key,
        base_url=settings.twelvedata_base_url,
        timeout=settings.upstream_timeout_seconds,
    )
    try:
        results = await check_client(client, symbols)
        if results["success"]:
            await check_snapshot(client, symbols)
    finally:
        await client.close()
    return 0 if results["success"] else 1


def main():
    """Main check function"""
    import argparse

    parser = argparse.ArgumentParser(description='Check the Twelve Data upstream and build one snapshot')
    parser.add_argument('--symbols', default=None, help='Comma-separated symbols (default: tracked basket)')
    args = parser.parse_args()

    symbols = parse_symbols(args.symbols) if args.symbols else get_settings().default_symbols
    return asyncio.run(run(symbols))


if __name__ == "__main__":
    sys.exit(main())
