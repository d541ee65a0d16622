"""
Eligibility checks for placing a bid or selecting a rider.

validate_placement() runs every rule in a fixed order and raises
ValidationRejected with a user-facing reason on the first failure:

1. Rider already sold (bidding games only)
2. Top-200 restriction of the current auction period
3. Minimum / positive amount (auction mode)
4. One rider per team (full-grid)
5. Roster size cap
6. Remaining budget (not in marginal-gains)
7. Neo-professional quota (worldtour-manager / marginal-gains)
"""

import logging
import math
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from .. import config
from .budget import is_budget_constrained, remaining_budget
from .errors import ValidationRejected
from .models import Bid, BidStatus, Game, GameMode, Participant, Rider, SoldRider
from .pricing import effective_minimum_bid

logger = logging.getLogger(__name__)


def format_amount(value: float) -> str:
    """Render whole amounts without decimals ('40', not '40.0')."""
    value = float(value)
    return str(int(value)) if value.is_integer() else f"{value:.1f}"


def is_top200_active(game: Game, now: Optional[datetime] = None) -> bool:
    """
    Whether the top-200-only restriction applies right now.

    Only the period's time window is considered. The period's status field
    is ignored so a manual status edit cannot switch the restriction on or
    off out of sync with the schedule.
    """
    now = now or datetime.now(timezone.utc)
    for period in game.config.auction_periods:
        if period.start_date and period.end_date and period.contains(now):
            return period.top200_only
    return False


def is_neo_pro_age(rider: Rider, game: Game) -> bool:
    """Rider is young enough to count as a neo-professional."""
    age = rider.age_in(game.season_year())
    return age is not None and age <= game.config.max_neo_pro_age


def qualifies_as_neo_pro(rider: Rider, game: Game) -> bool:
    """Rider is under the neo-pro age cap and at or below the points cap."""
    if not game.has_neo_pro_rules:
        return False
    return is_neo_pro_age(rider, game) and rider.points <= game.config.max_neo_pro_points


def held_rider_ids(bids: Iterable[Bid]) -> Set[str]:
    """Distinct riders the participant currently holds an active/outbid bid on."""
    return {b.rider_name_id for b in bids if b.is_open}


def validate_placement(
    rider: Rider,
    amount: float,
    game: Game,
    participant: Participant,
    my_bids: List[Bid],
    available_riders: Iterable[Rider],
    top200_active: bool,
    sold: Optional[SoldRider] = None
) -> None:
    """
    Check whether a participant may place a bid of `amount` on `rider`.

    Args:
        rider: Rider being bid on or selected
        amount: Bid amount (selection modes pass the effective minimum bid)
        game: Game the bid belongs to
        participant: Bidding participant
        my_bids: The participant's own bids
        available_riders: Reference riders, used to classify held riders
        top200_active: Result of is_top200_active() for the current moment
        sold: Ownership record if the rider is already sold

    Raises:
        ValidationRejected: With the reason of the first failing rule
    """
    rider_id = rider.rider_id

    # 1. Already sold
    if sold is not None and game.is_bidding_mode:
        _reject(f"{rider.name} is already sold to {sold.owner_name}")

    # 2. Top-200 restriction
    if top200_active and (rider.rank is None or rider.rank > config.TOP_RANK_LIMIT):
        _reject(
            f"Only riders in the top {config.TOP_RANK_LIMIT} of the ranking "
            f"can be chosen in this auction period"
        )

    # 3. Amount
    minimum = effective_minimum_bid(rider, game)
    if not game.is_selection_mode:
        if amount is None or not math.isfinite(amount) or amount < minimum:
            _reject(f"Bid must be at least {format_amount(minimum)}")
        if amount <= 0:
            _reject("Please enter a valid bid amount")

    # 4. One rider per team
    if game.mode == GameMode.FULL_GRID and rider.team:
        for bid in my_bids:
            if (
                bid.status in (BidStatus.ACTIVE, BidStatus.WON)
                and bid.rider_name_id != rider_id
                and bid.rider_team == rider.team
            ):
                _reject(
                    f"You already selected {bid.rider_name or bid.rider_name_id} "
                    f"from {rider.team}. Only one rider per team is allowed."
                )

    # 5. Roster cap
    held = held_rider_ids(my_bids)
    adjusting = rider_id in held
    cap = game.config.roster_cap
    if cap and not adjusting and len(held) >= cap:
        _reject(f"Maximum number of riders reached ({cap}). Cancel a bid to place a new one.")

    # 6. Budget
    if is_budget_constrained(game):
        available = remaining_budget(participant, game, my_bids, exclude_rider_id=rider_id)
        if amount > available:
            _reject(
                f"Insufficient budget. Available: {format_amount(available)}, "
                f"Attempted: {format_amount(amount)}"
            )

    # 7. Neo-professional quota
    if game.has_neo_pro_rules:
        _check_neo_pro_quota(rider, game, held - {rider_id}, available_riders)

    logger.debug(f"Placement of {format_amount(amount)} on {rider_id} passed all checks")


def _check_neo_pro_quota(
    rider: Rider,
    game: Game,
    other_held: Set[str],
    available_riders: Iterable[Rider]
) -> None:
    cfg = game.config
    if len(other_held) < cfg.min_riders or qualifies_as_neo_pro(rider, game):
        return

    riders_by_id: Dict[str, Rider] = {r.rider_id: r for r in available_riders}
    held_neo_pros = sum(
        1 for rid in other_held
        if rid in riders_by_id and qualifies_as_neo_pro(riders_by_id[rid], game)
    )
    if held_neo_pros > 0:
        return

    if is_neo_pro_age(rider, game):
        _reject(
            f"{rider.name} has {format_amount(rider.points)} points; a neo-professional "
            f"may have at most {format_amount(cfg.max_neo_pro_points)} points"
        )

    _reject(
        f"From rider {cfg.min_riders + 1} onward your team must include at least one "
        f"neo-professional (age {cfg.max_neo_pro_age} or younger, at most "
        f"{format_amount(cfg.max_neo_pro_points)} points)"
    )


def _reject(reason: str) -> None:
    logger.warning(f"Placement rejected: {reason}")
    raise ValidationRejected(reason)
