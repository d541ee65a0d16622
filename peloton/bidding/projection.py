"""
In-memory rider/bid projection shown to a participant.

The projection is always rebuilt as a whole (a new AuctionView with a new
rider list) instead of being patched field by field, so a rider can never
be shown as both sold and biddable.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

from .eligibility import held_rider_ids
from .models import Bid, BidStatus, Game, Participant, Rider, SoldRider
from .pricing import effective_minimum_bid, listed_riders

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiderView:
    """A rider annotated with pricing and bid state for one viewer."""

    rider: Rider
    effective_min_bid: float
    is_sold: bool = False
    sold_to: Optional[str] = None
    price_paid: Optional[float] = None
    my_bid: Optional[float] = None
    my_bid_status: Optional[BidStatus] = None
    my_bid_id: Optional[str] = None
    highest_bid: Optional[float] = None
    highest_bidder: Optional[str] = None

    @property
    def rider_id(self) -> str:
        return self.rider.rider_id


@dataclass(frozen=True)
class AuctionView:
    """Consistent view of one game for one viewer."""

    game: Game
    participant: Participant
    user_id: str
    is_admin: bool
    riders: List[RiderView]
    all_bids: List[Bid]
    sold_riders: Dict[str, SoldRider] = field(default_factory=dict)
    reference_riders: List[Rider] = field(default_factory=list)

    @property
    def my_bids(self) -> List[Bid]:
        """The viewer's bids, cancelled ones left out."""
        return [
            b for b in self.all_bids
            if b.user_id == self.user_id and b.status != BidStatus.CANCELLED
        ]

    def find_own_bid(self, bid_id: str) -> Optional[Bid]:
        """Look up one of the viewer's bids by id, whatever its status."""
        return next(
            (b for b in self.all_bids if b.id == bid_id and b.user_id == self.user_id), None
        )

    @property
    def read_only(self) -> bool:
        """Admins without a participant record may look but not bid."""
        return self.participant.is_placeholder

    def rider(self, rider_id: str) -> Optional[RiderView]:
        for view in self.riders:
            if view.rider_id == rider_id:
                return view
        return None

    def held_rider_count(self) -> int:
        return len(held_rider_ids(self.my_bids))


def highest_active_bid(bids: Iterable[Bid], rider_id: str) -> Optional[Bid]:
    """
    Highest active bid on a rider.

    Ties keep the first bid encountered, so the result is stable for a
    given bid ordering.
    """
    highest = None
    for bid in bids:
        if bid.rider_name_id != rider_id or bid.status != BidStatus.ACTIVE:
            continue
        if highest is None or bid.amount > highest.amount:
            highest = bid
    return highest


def latest_open_bid(bids: Iterable[Bid], rider_id: str) -> Optional[Bid]:
    """The viewer's own bid on a rider, preferring non-terminal bids."""
    candidates = [b for b in bids if b.rider_name_id == rider_id and b.status != BidStatus.CANCELLED]
    open_bids = [b for b in candidates if b.is_open]
    if open_bids:
        return open_bids[-1]
    return candidates[-1] if candidates else None


def annotate_rider(
    rider: Rider,
    game: Game,
    my_bids: List[Bid],
    all_bids: List[Bid],
    sold_riders: Dict[str, SoldRider],
    is_admin: bool
) -> RiderView:
    """Derive every annotation for a single rider from scratch."""
    rider_id = rider.rider_id
    my_bid = latest_open_bid(my_bids, rider_id)

    # Sold state only means something when riders compete in an auction
    sold = sold_riders.get(rider_id) if game.is_bidding_mode else None

    highest_bid = None
    highest_bidder = None
    if is_admin and game.is_bidding_mode:
        highest = highest_active_bid(all_bids, rider_id)
        if highest is not None:
            highest_bid = highest.amount
            highest_bidder = highest.playername or None
    elif my_bid is not None and my_bid.status == BidStatus.ACTIVE:
        # Regular users only ever see their own standing bid
        highest_bid = my_bid.amount

    return RiderView(
        rider=rider,
        effective_min_bid=effective_minimum_bid(rider, game),
        is_sold=sold is not None,
        sold_to=sold.owner_name if sold else None,
        price_paid=sold.price_paid if sold else None,
        my_bid=my_bid.amount if my_bid else None,
        my_bid_status=my_bid.status if my_bid else None,
        my_bid_id=my_bid.id if my_bid else None,
        highest_bid=highest_bid,
        highest_bidder=highest_bidder,
    )


def project_riders(
    riders: Iterable[Rider],
    game: Game,
    my_bids: List[Bid],
    all_bids: List[Bid],
    sold_riders: Dict[str, SoldRider],
    is_admin: bool
) -> List[RiderView]:
    """
    Annotate every listed rider with pricing, sold state and bid state.

    Args:
        riders: Reference rider data
        game: Game (mode and config drive pricing and listing)
        my_bids: Viewer's own bids
        all_bids: Every bid the viewer may see (all bids for admins)
        sold_riders: Sold-rider index keyed by rider id
        is_admin: Whether highest bidder names may be shown

    Returns:
        List of RiderView for riders offered in this game
    """
    views = [
        annotate_rider(rider, game, my_bids, all_bids, sold_riders, is_admin)
        for rider in listed_riders(riders, game)
    ]
    logger.debug(f"Projected {len(views)} riders for game {game.id}")
    return views


def build_view(
    game: Game,
    participant: Participant,
    user_id: str,
    is_admin: bool,
    riders: List[Rider],
    all_bids: List[Bid],
    sold_riders: Dict[str, SoldRider]
) -> AuctionView:
    """Build a complete AuctionView from raw state."""
    my_bids = [b for b in all_bids if b.user_id == user_id]
    return AuctionView(
        game=game,
        participant=participant,
        user_id=user_id,
        is_admin=is_admin,
        riders=project_riders(riders, game, my_bids, all_bids, sold_riders, is_admin),
        all_bids=list(all_bids),
        sold_riders=dict(sold_riders),
        reference_riders=list(riders),
    )


def with_bids(view: AuctionView, all_bids: List[Bid], rider_ids: Iterable[str]) -> AuctionView:
    """
    Return a new view carrying an updated bid list.

    Only riders in `rider_ids` are re-annotated; every other RiderView is
    reused as is. The rider list itself is always a new list.
    """
    touched = set(rider_ids)
    my_bids = [b for b in all_bids if b.user_id == view.user_id]
    riders = [
        annotate_rider(v.rider, view.game, my_bids, all_bids, view.sold_riders, view.is_admin)
        if v.rider_id in touched else v
        for v in view.riders
    ]
    return replace(view, riders=riders, all_bids=list(all_bids))
