"""
Rider pricing per game mode.

The effective minimum bid is the price floor (auction) or fixed price
(selection modes) a rider can be acquired for.
"""

import logging
from typing import Iterable, List, Optional

import pandas as pd

from .. import config
from .models import Game, GameMode, Rider

logger = logging.getLogger(__name__)


def effective_minimum_bid(rider: Rider, game: Game) -> float:
    """
    Compute a rider's effective minimum bid for a game.

    Rules, in priority order:
    1. Full-grid: the admin-assigned value from config.rider_values, or 0
       when the rider has not been offered yet
    2. Points above config.max_minimum_bid are capped at that value
    3. Selection modes never price a rider at 0 (minimum is 1)
    4. Otherwise the rider's ranking points

    Args:
        rider: Rider to price
        game: Game whose mode and config apply

    Returns:
        Non-negative minimum bid
    """
    if game.mode == GameMode.FULL_GRID:
        value = game.config.rider_values.get(rider.rider_id, 0)
        return max(float(value or 0), 0.0)

    points = max(float(rider.points or 0), 0.0)

    max_minimum_bid = game.config.max_minimum_bid
    if max_minimum_bid and points > max_minimum_bid:
        return float(max_minimum_bid)

    if game.has_neo_pro_rules and points == 0:
        return float(config.SELECTION_MIN_PRICE)

    return points


def is_listed(rider: Rider, game: Game) -> bool:
    """
    Whether a rider should appear in the game's rider listing.

    Full-grid riders without an assigned value are hidden entirely, as are
    retired riders and riders outside the game's eligible list (if any).
    """
    if rider.retired:
        return False
    if game.eligible_riders and rider.rider_id not in game.eligible_riders:
        return False
    if game.mode == GameMode.FULL_GRID and effective_minimum_bid(rider, game) == 0:
        return False
    return True


def listed_riders(riders: Iterable[Rider], game: Game) -> List[Rider]:
    """Filter a reference rider list down to the riders offered in a game."""
    riders = list(riders)
    listed = [r for r in riders if is_listed(r, game)]

    logger.debug(
        f"Listed {len(listed)} of {len(riders)} riders for game {game.id} ({game.mode.value})"
    )
    return listed


def listing_frame(
    views,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None
) -> pd.DataFrame:
    """
    Build a filtered rider listing table.

    Args:
        views: Iterable of RiderView objects
        search: Optional case-insensitive substring on rider name or team
        min_price: Optional lower bound on effective minimum bid
        max_price: Optional upper bound on effective minimum bid

    Returns:
        DataFrame sorted by effective minimum bid (highest first), then name
    """
    columns = [
        'rider_id', 'name', 'team', 'rank', 'points', 'effective_min_bid',
        'is_sold', 'sold_to', 'my_bid', 'my_bid_status', 'highest_bid', 'highest_bidder'
    ]
    records = [
        {
            'rider_id': v.rider.rider_id,
            'name': v.rider.name,
            'team': v.rider.team,
            'rank': v.rider.rank,
            'points': v.rider.points,
            'effective_min_bid': v.effective_min_bid,
            'is_sold': v.is_sold,
            'sold_to': v.sold_to,
            'my_bid': v.my_bid,
            'my_bid_status': v.my_bid_status.value if v.my_bid_status else None,
            'highest_bid': v.highest_bid,
            'highest_bidder': v.highest_bidder,
        }
        for v in views
    ]
    df = pd.DataFrame(records, columns=columns)
    if df.empty:
        return df

    if search:
        needle = search.lower()
        mask = (
            df['name'].str.lower().str.contains(needle, regex=False)
            | df['team'].str.lower().str.contains(needle, regex=False)
        )
        df = df[mask]
    if min_price is not None:
        df = df[df['effective_min_bid'] >= min_price]
    if max_price is not None:
        df = df[df['effective_min_bid'] <= max_price]

    return df.sort_values(
        ['effective_min_bid', 'name'], ascending=[False, True]
    ).reset_index(drop=True)
