"""
Auction finalization.

Converts open (active/outbid) bids into terminal won/lost states and
commits each winner's spent budget. In selection modes every bid wins,
since several participants may select the same rider. In auction mode the
highest bid on each rider wins; equal amounts go to the earliest bid.

Finalization is idempotent: it only looks at open bids, so running it a
second time finds nothing left to do.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .errors import BiddingError, ValidationRejected
from .models import Bid, BidStatus, Game
from .store import BiddingStore, FinalizingStore

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class FinalizeResult:
    """Summary of one finalization run."""

    game_id: str
    period_name: Optional[str] = None
    total_riders: int = 0
    winners_assigned: int = 0
    losers: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def nothing_to_do(self) -> bool:
        return self.total_riders == 0

    def to_dict(self) -> dict:
        return {
            'game_id': self.game_id,
            'period_name': self.period_name,
            'total_riders': self.total_riders,
            'winners_assigned': self.winners_assigned,
            'losers': self.losers,
            'errors': list(self.errors),
        }


def bids_to_finalize(bids: List[Bid], game: Game, period_name: Optional[str] = None) -> List[Bid]:
    """
    Select the open bids a finalization run should process.

    Args:
        bids: Every bid of the game
        game: Game being finalized
        period_name: Auction period; required when the game has periods

    Returns:
        Open bids, restricted to bids placed at or after the period start

    Raises:
        ValidationRejected: Period missing or unknown
    """
    open_bids = [b for b in bids if b.is_open]

    periods = game.config.auction_periods
    if not periods:
        return open_bids

    if not period_name:
        raise ValidationRejected("Auction period name is required for games with auction periods")

    period = next((p for p in periods if p.name == period_name), None)
    if period is None:
        raise ValidationRejected(f'Auction period "{period_name}" not found')

    logger.info(f"Finalizing period '{period_name}' from {period.start_date.isoformat()}")
    return [b for b in open_bids if b.bid_at is not None and b.bid_at >= period.start_date]


def pick_winners(bids: List[Bid], game: Game) -> Dict[str, List[Bid]]:
    """
    Decide winners per rider.

    Returns:
        Dict mapping rider id to its bids, winner(s) first. In selection
        modes every bid is a winner; in auction mode only the first one.
    """
    by_rider: Dict[str, List[Bid]] = defaultdict(list)
    for bid in bids:
        by_rider[bid.rider_name_id].append(bid)

    if not game.is_selection_mode:
        for rider_bids in by_rider.values():
            rider_bids.sort(key=lambda b: (-b.amount, b.bid_at or _EPOCH))

    return dict(by_rider)


async def finalize_auction(
    store: BiddingStore,
    game_id: str,
    period_name: Optional[str] = None
) -> FinalizeResult:
    """
    Finalize a game's open bids.

    Args:
        store: Store holding the game; must be a FinalizingStore
        game_id: Game to finalize
        period_name: Auction period to finalize, for games with periods

    Returns:
        FinalizeResult with counts and per-participant errors

    Raises:
        NotImplementedError: The store finalizes on its own backend
    """
    if not isinstance(store, FinalizingStore):
        raise NotImplementedError(f"{type(store).__name__} does not support local finalization")

    game = await store.get_game(game_id)
    all_bids = await store.list_bids(game_id)
    to_process = bids_to_finalize(all_bids, game, period_name)

    result = FinalizeResult(game_id=game_id, period_name=period_name)
    if not to_process:
        logger.info(f"No open bids to finalize in {game_id}")
        return result

    by_rider = pick_winners(to_process, game)
    result.total_riders = len(by_rider)

    wins_by_user: Dict[str, List[Bid]] = defaultdict(list)
    for rider_id, rider_bids in by_rider.items():
        winners = rider_bids if game.is_selection_mode else rider_bids[:1]
        losers = [] if game.is_selection_mode else rider_bids[1:]

        for bid in winners:
            await store.update_bid_status(game_id, bid.id, BidStatus.WON)
            wins_by_user[bid.user_id].append(bid)
        for bid in losers:
            await store.update_bid_status(game_id, bid.id, BidStatus.LOST)
            result.losers += 1

        logger.debug(f"{rider_id}: {len(winners)} winner(s), {len(losers)} loser(s)")

    for user_id, wins in wins_by_user.items():
        try:
            await store.record_acquisitions(game_id, user_id, wins)
            result.winners_assigned += len(wins)
        except BiddingError as e:
            message = f"Failed to update participant {user_id}: {e}"
            logger.error(message)
            result.errors.append(message)

    await store.complete_finalization(game_id, period_name)

    logger.info(
        f"Finalized {game_id}: {result.total_riders} riders, "
        f"{result.winners_assigned} won, {result.losers} lost"
    )
    return result
