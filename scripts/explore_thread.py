#!/usr/bin/env python3
"""Explore the reply/quote graph around a set of Nostr notes.

Seeds are either the latest text notes of an author or explicit event ids.
The traversal runs until the queue drains (or --timeout elapses), then a
summary is printed and, optionally, the graph is written as node-link JSON.

Usage:
    uv run python scripts/explore_thread.py --author <pubkey>
    uv run python scripts/explore_thread.py --event-id <id> <id> --max-depth 3
    uv run python scripts/explore_thread.py --author <pubkey> --output graph.json
    uv run python scripts/explore_thread.py --author <pubkey> --relay https://gw.example
"""

import argparse
import asyncio
import json
from pathlib import Path

import structlog
from dotenv import load_dotenv

from xanadu.graph import EventLoader, GraphStore
from xanadu.ingestion import TEXT_NOTE_KIND, EventFilter, create_relay_client

load_dotenv()

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)
logger = structlog.get_logger()


async def explore(
    author: str | None,
    event_ids: list[str],
    limit: int,
    max_depth: int | None,
    max_nodes: int | None,
    relays: list[str] | None,
    timeout: float,
    output: Path | None,
) -> dict[str, int]:
    """Seed, traverse and report."""
    async with create_relay_client(relay_urls=relays) as client:
        if event_ids:
            seeds = await client.fetch_by_ids(event_ids)
        else:
            seeds = await client.fetch_by_filter(
                EventFilter(kinds=[TEXT_NOTE_KIND], authors=[author], limit=limit)
            )

        if not seeds:
            logger.warning("no_seed_events_found", author=author, event_ids=len(event_ids))
            return {}

        loader = EventLoader(client, max_depth=max_depth, max_nodes=max_nodes)
        await loader.load_initial_events(seeds)
        try:
            await loader.wait_until_idle(timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("traversal_timed_out", timeout=timeout, queued=loader.queue_size)
            loader.cancel()

        store: GraphStore = loader.store
        stats = store.stats()

        print("\n" + "=" * 60)
        print("Xanadu Graph Summary")
        print("=" * 60)
        print(f"Seed events:            {len(seeds):,}")
        print(f"Events:                 {stats['nodes']:,}")
        print(f"Expanded:               {stats['processed']:,}")
        print(f"Connections:            {stats['edges']:,}")
        print(f"  replies:              {stats['reply_edges']:,}")
        print(f"  quotes:               {stats['quote_edges']:,}")
        print(f"Missing events:         {stats['dangling']:,}")
        print("-" * 60)
        print(f"Batches:                {loader.stats.batches:,}")
        print(f"Fetches:                {loader.stats.fetches:,}")
        print(f"Failed fetches:         {loader.stats.fetch_failures:,}")
        print(
            f"Missing retried:        {loader.stats.missing_found:,}"
            f" / {loader.stats.missing_requested:,} found"
        )
        print("=" * 60 + "\n")

        if output:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(json.dumps(store.to_dict(), indent=2))
            logger.info("wrote_graph", path=str(output))

        return stats


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Discover the reply/quote graph around Nostr notes"
    )
    seed_group = parser.add_mutually_exclusive_group(required=True)
    seed_group.add_argument(
        "--author",
        help="Seed from the latest text notes of this pubkey (hex)",
    )
    seed_group.add_argument(
        "--event-id",
        nargs="+",
        default=[],
        help="Seed from these event ids",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of author notes to seed with",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Maximum hops from a seed (default: XANADU_MAX_DEPTH)",
    )
    parser.add_argument(
        "--max-nodes",
        type=int,
        default=None,
        help="Maximum graph size (default: XANADU_MAX_NODES)",
    )
    parser.add_argument(
        "--relay",
        action="append",
        default=None,
        help="Relay gateway URL; repeat for several (default: XANADU_RELAY_URLS)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=120.0,
        help="Seconds to wait for the traversal to finish",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the graph as node-link JSON to this file",
    )
    args = parser.parse_args()

    asyncio.run(
        explore(
            author=args.author,
            event_ids=args.event_id,
            limit=args.limit,
            max_depth=args.max_depth,
            max_nodes=args.max_nodes,
            relays=args.relay,
            timeout=args.timeout,
            output=args.output,
        )
    )


if __name__ == "__main__":
    main()
