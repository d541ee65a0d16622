"""
Bid placement, cancellation and reset for one participant.

Local state is only changed after the store confirms a mutation, and the
view is always replaced as a whole. Every successful mutation invalidates
the game's cached snapshot and notifies other clients.
"""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set

from .eligibility import format_amount, is_top200_active, validate_placement
from .errors import BiddingError, StaleDataConflict, TransportFailure, ValidationRejected
from .models import Bid, BidStatus
from .projection import AuctionView, with_bids
from .reconciler import SnapshotReconciler

logger = logging.getLogger(__name__)


@dataclass
class ResetResult:
    """Outcome of a reset: which bids were cancelled and which failed."""

    cancelled: List[Bid] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)   # bid id → reason

    @property
    def ok(self) -> bool:
        return not self.failed


class BidLifecycleManager:
    """
    Places and cancels bids on behalf of the reconciler's viewer.

    Only one request per rider (placement) or per bid (cancellation) may be
    in flight at a time; a second one is rejected immediately.
    """

    def __init__(self, reconciler: SnapshotReconciler):
        """
        Initialize lifecycle manager.

        Args:
            reconciler: Reconciler owning the current view, store and cache
        """
        self.reconciler = reconciler
        self.store = reconciler.store
        self._in_flight: Set[str] = set()

    @property
    def view(self) -> AuctionView:
        if self.reconciler.view is None:
            raise StaleDataConflict("Auction data is not loaded yet")
        return self.reconciler.view

    @contextmanager
    def _guard(self, key: str):
        if key in self._in_flight:
            raise ValidationRejected("A request for this rider is already in progress")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    def is_in_flight(self, rider_id: Optional[str] = None, bid_id: Optional[str] = None) -> bool:
        """Whether the control for a rider or bid should be disabled."""
        return f"rider:{rider_id}" in self._in_flight or f"bid:{bid_id}" in self._in_flight

    async def place_bid(self, rider_id: str, amount: Optional[float] = None) -> Bid:
        """
        Place (or replace) the viewer's bid on a rider.

        In selection modes the amount is always the rider's effective
        minimum bid and any entered amount is ignored.

        Args:
            rider_id: Rider to bid on
            amount: Bid amount (auction mode only)

        Returns:
            The bid as created by the store

        Raises:
            ValidationRejected: A game rule was broken
            StaleDataConflict: Rider no longer available; the view is reloaded
            TransportFailure: The store call failed; nothing changed locally
        """
        view = self.view
        if view.read_only:
            raise ValidationRejected("Join this game to place bids")

        rider_view = view.rider(rider_id)
        if rider_view is None:
            raise StaleDataConflict(f"Rider {rider_id} is not available in this game")

        with self._guard(f"rider:{rider_id}"):
            game = view.game
            rider = rider_view.rider
            if game.is_selection_mode:
                amount = rider_view.effective_min_bid

            validate_placement(
                rider=rider,
                amount=amount,
                game=game,
                participant=view.participant,
                my_bids=view.my_bids,
                available_riders=view.reference_riders,
                top200_active=is_top200_active(game),
                sold=view.sold_riders.get(rider_id),
            )

            fields = {
                'game_id': game.id,
                'user_id': view.user_id,
                'participant_id': view.participant.id,
                'playername': view.participant.playername,
                'rider_name_id': rider_id,
                'amount': float(amount),
                'rider_name': rider.name,
                'rider_team': rider.team,
                'jersey_image': rider.jersey_image,
            }
            bid = await self._call_store(self.store.create_bid(fields), f"place bid on {rider.name}")

            # The view may have been reloaded while the request was pending
            view = self.view
            all_bids = [
                replace(b, status=BidStatus.CANCELLED)
                if b.user_id == view.user_id and b.rider_name_id == rider_id and b.is_open else b
                for b in view.all_bids
            ]
            all_bids.append(bid)
            self.reconciler.replace_view(with_bids(view, all_bids, [rider_id]))
            self.reconciler.invalidate()

        logger.info(f"Placed bid {bid.id}: {view.user_id} → {rider.name} ({format_amount(bid.amount)})")
        return bid

    async def cancel_bid(self, bid_id: str) -> Bid:
        """
        Cancel one of the viewer's active or outbid bids.

        Returns:
            The cancelled bid

        Raises:
            ValidationRejected: Bid unknown, not the viewer's, or already closed
            TransportFailure: The store call failed; nothing changed locally
        """
        bid = self._cancellable_bid(bid_id)

        with self._guard(f"bid:{bid_id}"):
            await self._call_store(
                self.store.cancel_bid(bid_id, bid.game_id or self.view.game.id, self.view.user_id),
                f"cancel bid {bid_id}"
            )
            cancelled = replace(bid, status=BidStatus.CANCELLED)
            self._apply_cancellations([cancelled])

        logger.info(f"Cancelled bid {bid_id} on {bid.rider_name or bid.rider_name_id}")
        return cancelled

    def _cancellable_bid(self, bid_id: str) -> Bid:
        bid = self.view.find_own_bid(bid_id)
        if bid is None:
            raise ValidationRejected("Bid not found")
        if not bid.is_open:
            raise ValidationRejected(
                f"Cannot cancel a {bid.status.value} bid. "
                f"Only active or outbid bids can be cancelled."
            )
        return bid

    async def reset_all_active_bids(self) -> ResetResult:
        """
        Cancel every active bid of the viewer in one parallel batch.

        Outbid bids are left untouched. Failures of individual cancellations
        do not stop the others; only successful ones change local state.

        Returns:
            ResetResult listing cancelled and failed bids
        """
        view = self.view
        targets = [b for b in view.my_bids if b.status == BidStatus.ACTIVE]
        result = ResetResult()

        if not targets:
            logger.info(f"No active bids to reset for {view.user_id} in {view.game.id}")
            return result

        logger.info(f"Resetting {len(targets)} active bid(s) for {view.user_id} in {view.game.id}")
        outcomes = await asyncio.gather(
            *(self._cancel_for_reset(bid) for bid in targets),
            return_exceptions=True
        )

        stale = False
        for bid, outcome in zip(targets, outcomes):
            if isinstance(outcome, Exception):
                result.failed[bid.id] = str(outcome)
                stale = stale or isinstance(outcome, StaleDataConflict)
                logger.error(f"Failed to cancel bid {bid.id} during reset: {outcome}")
            else:
                result.cancelled.append(outcome)

        if result.cancelled:
            self._apply_cancellations(result.cancelled)
        if stale:
            await self._refresh()

        logger.info(
            f"Reset finished: {len(result.cancelled)} cancelled, {len(result.failed)} failed"
        )
        return result

    async def _cancel_for_reset(self, bid: Bid) -> Bid:
        key = f"bid:{bid.id}"
        if key in self._in_flight:
            raise ValidationRejected("A request for this bid is already in progress")

        self._in_flight.add(key)
        try:
            await self._wrap_transport(
                self.store.cancel_bid(bid.id, bid.game_id or self.view.game.id, self.view.user_id),
                f"cancel bid {bid.id}"
            )
        finally:
            self._in_flight.discard(key)
        return replace(bid, status=BidStatus.CANCELLED)

    def _apply_cancellations(self, cancelled: List[Bid]) -> None:
        by_id = {b.id: b for b in cancelled}
        view = self.view
        all_bids = [by_id.get(b.id, b) for b in view.all_bids]
        self.reconciler.replace_view(
            with_bids(view, all_bids, {b.rider_name_id for b in cancelled})
        )
        self.reconciler.invalidate()

    async def _call_store(self, awaitable, action: str):
        try:
            return await self._wrap_transport(awaitable, action)
        except StaleDataConflict:
            await self._refresh()
            raise

    async def _wrap_transport(self, awaitable, action: str):
        try:
            return await awaitable
        except BiddingError:
            raise
        except Exception as e:
            logger.error(f"Could not {action}: {e}")
            raise TransportFailure(f"Could not {action}. Please try again.") from e

    async def _refresh(self) -> None:
        logger.warning(f"Stale data in {self.reconciler.game_id}; reloading")
        self.reconciler.invalidate()
        await self.reconciler.load(skip_cache=True)
