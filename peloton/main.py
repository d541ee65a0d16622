"""
Main CLI entry point for the peloton auction bidding engine.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import pandas as pd

from . import config
from .bidding.budget import budget_frame, budget_summary
from .bidding.cache import FileSnapshotCache, MemorySnapshotCache
from .bidding.errors import BiddingError
from .bidding.finalize import finalize_auction
from .bidding.http_store import HttpBiddingStore
from .bidding.lifecycle import BidLifecycleManager
from .bidding.pricing import listing_frame
from .bidding.reconciler import SnapshotReconciler
from .bidding.store import FinalizingStore, JsonFileStore


def setup_logging(verbose: bool = False):
    """
    Configure logging for the application.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL)
    logging.basicConfig(
        level=level,
        format=config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Peloton Auction Bidding Engine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the rider listing of a game
  python -m peloton.main --game-id tdf-2026 --user-id alice

  # Search riders priced between 100 and 500
  python -m peloton.main --game-id tdf-2026 --user-id alice --search visma --min-price 100 --max-price 500

  # Bid 40 on a rider
  python -m peloton.main --game-id tdf-2026 --user-id alice --bid tadej-pogacar --amount 40

  # Cancel a bid, or every active bid
  python -m peloton.main --game-id tdf-2026 --user-id alice --cancel 3f2a...
  python -m peloton.main --game-id tdf-2026 --user-id alice --reset

  # Finalize the first auction period (admin)
  python -m peloton.main --game-id tdf-2026 --user-id admin --admin --finalize --period "Round 1"
        """
    )

    parser.add_argument(
        '--game-id',
        type=str,
        required=True,
        help='Game to work on'
    )

    parser.add_argument(
        '--user-id',
        type=str,
        required=True,
        help='Acting user'
    )

    parser.add_argument(
        '--admin',
        action='store_true',
        help='Act as a game admin (sees all bids, may finalize)'
    )

    parser.add_argument(
        '--store-dir',
        type=str,
        default=config.STORE_DIR,
        help=f'JSON store directory (default: {config.STORE_DIR})'
    )

    parser.add_argument(
        '--store-url',
        type=str,
        default=None,
        help='Use the platform HTTP API at this URL instead of the JSON store'
    )

    parser.add_argument(
        '--no-cache',
        action='store_true',
        help='Keep snapshots in memory only instead of the cache directory'
    )

    # Listing
    parser.add_argument('--search', type=str, default=None, help='Filter riders by name or team')
    parser.add_argument('--min-price', type=float, default=None, help='Minimum effective bid')
    parser.add_argument('--max-price', type=float, default=None, help='Maximum effective bid')
    parser.add_argument('--limit', type=int, default=50, help='Riders to show (default: 50)')
    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Write the full filtered listing to this CSV file'
    )

    # Actions
    actions = parser.add_mutually_exclusive_group()
    actions.add_argument('--bid', type=str, metavar='RIDER_ID', help='Place a bid on a rider')
    actions.add_argument('--cancel', type=str, metavar='BID_ID', help='Cancel one of your bids')
    actions.add_argument('--reset', action='store_true', help='Cancel all your active bids')
    actions.add_argument('--budget', action='store_true', help='Show your budget breakdown')
    actions.add_argument('--finalize', action='store_true', help='Finalize open bids (admin)')

    parser.add_argument(
        '--amount',
        type=float,
        default=None,
        help='Bid amount (ignored in selection games)'
    )

    parser.add_argument(
        '--period',
        type=str,
        default=None,
        help='Auction period to finalize'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser.parse_args(argv)


def build_store(args):
    if args.store_url:
        return HttpBiddingStore(base_url=args.store_url)
    return JsonFileStore(Path(args.store_dir))


def build_cache(args):
    if args.no_cache:
        return MemorySnapshotCache()
    return FileSnapshotCache(Path(config.CACHE_DIR))


def print_listing(view, args):
    df = listing_frame(view.riders, search=args.search, min_price=args.min_price, max_price=args.max_price)

    if args.output:
        df.to_csv(args.output, index=False)
        print(f"Wrote {len(df)} riders to {args.output}")

    columns = ['rider_id', 'name', 'team', 'rank', 'effective_min_bid', 'my_bid', 'my_bid_status']
    if view.game.is_bidding_mode:
        columns += ['is_sold', 'sold_to']
    if view.is_admin and view.game.is_bidding_mode:
        columns += ['highest_bid', 'highest_bidder']

    with pd.option_context('display.max_rows', None, 'display.width', 200):
        print(df[columns].head(args.limit).to_string(index=False))
    print(f"\n{len(df)} of {len(view.riders)} riders")


def print_budget(view):
    summary = budget_summary(view.participant, view.game, view.my_bids)
    print(f"Budget:    {summary['budget']:.0f}")
    print(f"Reserved:  {summary['reserved']:.0f}")
    print(f"Won:       {summary['won']:.0f}")
    print(f"Remaining: {summary['remaining']:.0f}")
    print(f"Riders:    {summary['riders']}")

    df = budget_frame(view.my_bids)
    if not df.empty:
        print()
        print(df.to_string(index=False))


async def run(args) -> int:
    """Run one CLI action. Returns the process exit code."""
    logger = logging.getLogger(__name__)
    store = build_store(args)

    try:
        if args.finalize:
            if not args.admin:
                logger.error("--finalize requires --admin")
                return 1
            if not isinstance(store, FinalizingStore):
                logger.error("--finalize needs the JSON store; the platform API finalizes on its own")
                return 1
            result = await finalize_auction(store, args.game_id, args.period)
            print(
                f"Finalized {result.total_riders} riders: "
                f"{result.winners_assigned} won, {result.losers} lost"
            )
            for error in result.errors:
                print(f"  ! {error}")
            build_cache(args).invalidate(args.game_id)
            return 0 if not result.errors else 1

        reconciler = SnapshotReconciler(
            store, build_cache(args), args.game_id, args.user_id, is_admin=args.admin
        )
        manager = BidLifecycleManager(reconciler)
        view = await reconciler.load()

        if args.bid:
            bid = await manager.place_bid(args.bid, args.amount)
            print(f"Bid {bid.id}: {bid.rider_name or bid.rider_name_id} for {bid.amount:.0f}")
        elif args.cancel:
            bid = await manager.cancel_bid(args.cancel)
            print(f"Cancelled bid {bid.id} on {bid.rider_name or bid.rider_name_id}")
        elif args.reset:
            result = await manager.reset_all_active_bids()
            print(f"Cancelled {len(result.cancelled)} bid(s)")
            for bid_id, reason in result.failed.items():
                print(f"  ! {bid_id}: {reason}")
            if not result.ok:
                return 1
        elif args.budget:
            print_budget(view)
        else:
            print_listing(view, args)

        return 0

    except BiddingError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        if isinstance(store, HttpBiddingStore):
            store.close()


def main(argv=None):
    """Main execution function."""
    # Parse arguments
    args = parse_arguments(argv)

    # Setup logging
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        exit_code = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        exit_code = 130
    except Exception as e:
        logger.exception(f"Error during execution: {e}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == '__main__':
    main()
