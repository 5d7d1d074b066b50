#!/usr/bin/env python3
"""
Auction mirror listener.

Usage:
    python -m auction_mirror.indexer [--config config.yaml]
    python -m auction_mirror.indexer --create-schema
    python -m auction_mirror.indexer --prune-only
    python -m auction_mirror.indexer --status
"""

import argparse
import asyncio
import logging
import sys

from ..config import Settings, load_settings, setup_logging
from ..context import build_context
from ..errors import AuctionMirrorError
from .status import print_status

logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace, settings: Settings) -> None:
    context = build_context(settings)
    try:
        if args.create_schema:
            await context.database.create_schema()
            return

        if args.status:
            print_status(await context.store.find_all_auctions())
            return

        if args.prune_only:
            pruned = await context.reconciler.prune_outdated_auctions()
            logger.info(f"Prune complete: {pruned} auctions closed")
            return

        await context.run_listener()
    finally:
        await context.close()


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='NFT Auction Event Listener')
    parser.add_argument('--config', '-c',
                        help='Path to YAML config file (overlays environment)',
                        default=None)
    parser.add_argument('--create-schema', action='store_true', dest='create_schema',
                        help='Create the nft, auctions and user tables and exit')
    parser.add_argument('--prune-only', action='store_true', dest='prune_only',
                        help='Close overdue active auctions and exit')
    parser.add_argument('--status', action='store_true',
                        help='Print stored auctions and exit')

    args = parser.parse_args()
    try:
        settings = load_settings(args.config)
    except (AuctionMirrorError, OSError) as e:
        setup_logging()
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)
    setup_logging(settings.log_level)

    try:
        asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("🛑 Listener stopped by user")
    except AuctionMirrorError as e:
        logger.error(f"Failed to start listener: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
