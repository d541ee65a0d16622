"""
API serializers for the auction endpoints.

Transforms AuctionView, Bid and finalization results into response models.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .budget import budget_summary
from .finalize import FinalizeResult
from .lifecycle import ResetResult
from .models import Bid, BidStatus
from .pricing import listing_frame
from .projection import AuctionView, RiderView


# ========== Requests ==========

class ViewerRequest(BaseModel):
    """Identifies who is acting. Authentication happens upstream."""
    user_id: str
    is_admin: bool = False


class PlaceBidRequest(ViewerRequest):
    rider_id: str = Field(description="Rider nameID")
    amount: Optional[float] = Field(None, description="Bid amount; ignored in selection modes")


class CancelBidRequest(ViewerRequest):
    bid_id: str


class FinalizeRequest(ViewerRequest):
    period_name: Optional[str] = Field(None, description="Auction period to finalize")


# ========== Responses ==========

class BidResponse(BaseModel):
    """A single bid."""
    id: str
    rider_id: str
    rider_name: str
    rider_team: str
    amount: float
    status: str
    bid_at: Optional[str] = Field(None, description="ISO-8601 timestamp")


class RiderResponse(BaseModel):
    """A listed rider with pricing and bid state."""
    rider_id: str
    name: str
    team: str
    rank: Optional[int]
    points: float
    effective_min_bid: float
    is_sold: bool
    sold_to: Optional[str]
    price_paid: Optional[float]
    my_bid: Optional[float]
    my_bid_status: Optional[str]
    my_bid_id: Optional[str]
    highest_bid: Optional[float]
    highest_bidder: Optional[str] = Field(None, description="Only shown to admins in auction mode")


class BudgetResponse(BaseModel):
    budget: float
    reserved: float
    won: float
    remaining: float
    riders: int
    constrained: bool


class AuctionViewResponse(BaseModel):
    """Response for GET /games/{game_id}/auction."""
    game_id: str
    game_name: str
    mode: str
    status: str
    read_only: bool
    updated_at: str = Field(description="ISO-8601 timestamp")
    budget: BudgetResponse
    my_bids: List[BidResponse]
    riders: List[RiderResponse]


class ResetResponse(BaseModel):
    ok: bool
    cancelled: List[BidResponse]
    failed: Dict[str, str] = Field(description="Bid id → failure reason")


class FinalizeResponse(BaseModel):
    game_id: str
    period_name: Optional[str]
    total_riders: int
    winners_assigned: int
    losers: int
    errors: List[str]


# ========== Serializer Functions ==========

def serialize_bid(bid: Bid) -> BidResponse:
    return BidResponse(
        id=bid.id,
        rider_id=bid.rider_name_id,
        rider_name=bid.rider_name,
        rider_team=bid.rider_team,
        amount=bid.amount,
        status=bid.status.value,
        bid_at=bid.bid_at.isoformat() if bid.bid_at else None,
    )


def serialize_rider(view: RiderView) -> RiderResponse:
    rider = view.rider
    return RiderResponse(
        rider_id=rider.rider_id,
        name=rider.name,
        team=rider.team,
        rank=rider.rank,
        points=rider.points,
        effective_min_bid=view.effective_min_bid,
        is_sold=view.is_sold,
        sold_to=view.sold_to,
        price_paid=view.price_paid,
        my_bid=view.my_bid,
        my_bid_status=view.my_bid_status.value if view.my_bid_status else None,
        my_bid_id=view.my_bid_id,
        highest_bid=view.highest_bid,
        highest_bidder=view.highest_bidder,
    )


def serialize_auction_view(
    view: AuctionView,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    limit: Optional[int] = None
) -> AuctionViewResponse:
    """
    Transform an AuctionView to the response format.

    Args:
        view: Current view of the game
        search: Optional rider name / team filter
        min_price: Optional minimum effective bid filter
        max_price: Optional maximum effective bid filter
        limit: Optional limit on number of riders

    Returns:
        AuctionViewResponse with riders sorted by price (highest first)
    """
    df = listing_frame(view.riders, search=search, min_price=min_price, max_price=max_price)
    ordered_ids = df['rider_id'].tolist() if not df.empty else []
    if limit is not None:
        ordered_ids = ordered_ids[:limit]

    by_id = {v.rider_id: v for v in view.riders}
    riders = [serialize_rider(by_id[rider_id]) for rider_id in ordered_ids]

    my_bids = [b for b in view.my_bids if b.is_open or b.status == BidStatus.WON]

    return AuctionViewResponse(
        game_id=view.game.id,
        game_name=view.game.name,
        mode=view.game.mode.value,
        status=view.game.status.value,
        read_only=view.read_only,
        updated_at=datetime.now(timezone.utc).isoformat(),
        budget=BudgetResponse(**budget_summary(view.participant, view.game, view.my_bids)),
        my_bids=[serialize_bid(b) for b in my_bids],
        riders=riders,
    )


def serialize_reset(result: ResetResult) -> ResetResponse:
    return ResetResponse(
        ok=result.ok,
        cancelled=[serialize_bid(b) for b in result.cancelled],
        failed=dict(result.failed),
    )


def serialize_finalize(result: FinalizeResult) -> FinalizeResponse:
    return FinalizeResponse(**result.to_dict())
