"""
Budget ledger for participants.

While bidding is open, a participant's budget is reserved by every active or
outbid bid and consumed by bids already won in an earlier auction period.
Once the game is finalized, Participant.spent_budget is the only source of
truth: bid statuses may have been rewritten during finalization.
"""

import logging
from typing import Iterable, Optional

import pandas as pd

from .. import config
from .models import Bid, BidStatus, Game, GameMode, Participant

logger = logging.getLogger(__name__)


def is_auction_closed(game: Game) -> bool:
    """True once bidding is over and spent_budget has been committed."""
    if game.status.value in config.CLOSED_GAME_STATUSES:
        return True
    return game.config.auction_status in config.CLOSED_AUCTION_STATUSES


def is_budget_constrained(game: Game) -> bool:
    """Marginal gains has no monetary budget."""
    return game.mode != GameMode.MARGINAL_GAINS


def reserved_amount(bids: Iterable[Bid], exclude_rider_id: Optional[str] = None) -> float:
    """Sum of active/outbid bids, optionally ignoring one rider."""
    return sum(
        b.amount for b in bids
        if b.is_open and (exclude_rider_id is None or b.rider_name_id != exclude_rider_id)
    )


def won_amount(bids: Iterable[Bid]) -> float:
    return sum(b.amount for b in bids if b.status == BidStatus.WON)


def remaining_budget(
    participant: Participant,
    game: Game,
    my_bids: Iterable[Bid],
    exclude_rider_id: Optional[str] = None
) -> float:
    """
    Compute a participant's remaining spendable budget.

    Args:
        participant: Participant whose budget is computed
        game: Game providing the total budget and finalization state
        my_bids: The participant's own bids
        exclude_rider_id: Rider whose existing reservation is ignored
                          (used when re-validating an adjusted bid)

    Returns:
        Remaining budget; may be negative if the store holds inconsistent data
    """
    budget = float(game.config.budget or 0)

    if is_auction_closed(game):
        return budget - float(participant.spent_budget or 0)

    my_bids = list(my_bids)
    return budget - reserved_amount(my_bids, exclude_rider_id) - won_amount(my_bids)


def budget_summary(participant: Participant, game: Game, my_bids: Iterable[Bid]) -> dict:
    """
    Summarize a participant's budget position.

    Returns:
        Dict with budget, reserved, won, remaining, riders and constrained flag
    """
    my_bids = list(my_bids)
    summary = {
        'budget': float(game.config.budget or 0),
        'reserved': reserved_amount(my_bids),
        'won': won_amount(my_bids),
        'remaining': remaining_budget(participant, game, my_bids),
        'riders': len({b.rider_name_id for b in my_bids if b.is_open}),
        'constrained': is_budget_constrained(game),
    }

    logger.debug(
        f"Budget for {participant.id} in {game.id}: "
        f"{summary['remaining']:.1f} of {summary['budget']:.1f} remaining"
    )
    return summary


def budget_frame(my_bids: Iterable[Bid]) -> pd.DataFrame:
    """
    Per-rider breakdown of what holds or consumes the budget.

    Returns:
        DataFrame with rider_name_id, rider_name, status, amount, sorted by amount
    """
    records = [
        {
            'rider_name_id': b.rider_name_id,
            'rider_name': b.rider_name,
            'status': b.status.value,
            'amount': b.amount,
        }
        for b in my_bids
        if b.is_open or b.status == BidStatus.WON
    ]
    df = pd.DataFrame(records, columns=['rider_name_id', 'rider_name', 'status', 'amount'])
    if df.empty:
        return df
    return df.sort_values('amount', ascending=False).reset_index(drop=True)
