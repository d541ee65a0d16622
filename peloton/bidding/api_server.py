"""
FastAPI server for the auction page.

Provides HTTP endpoints to view a game's rider listing and to place, cancel
and reset bids. Each (game, user, admin flag) combination keeps its own
SnapshotReconciler and BidLifecycleManager for the lifetime of the app.

Run with: uvicorn peloton.bidding.api_server:app
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .. import config
from .api_serializers import (
    AuctionViewResponse,
    BidResponse,
    CancelBidRequest,
    FinalizeRequest,
    FinalizeResponse,
    PlaceBidRequest,
    ResetResponse,
    ViewerRequest,
    serialize_auction_view,
    serialize_bid,
    serialize_finalize,
    serialize_reset,
)
from .cache import InvalidationChannel, MemorySnapshotCache, SnapshotCache
from .errors import (
    BiddingError,
    NotParticipantError,
    StaleDataConflict,
    TransportFailure,
    ValidationRejected,
)
from .finalize import finalize_auction
from .lifecycle import BidLifecycleManager
from .reconciler import SnapshotReconciler
from .store import BiddingStore, JsonFileStore

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str, bool]


class AuctionSessions:
    """Keeps one reconciler/lifecycle pair per viewer of a game."""

    def __init__(
        self,
        store: Optional[BiddingStore] = None,
        cache: Optional[SnapshotCache] = None,
        channel: Optional[InvalidationChannel] = None
    ):
        self._store = store
        self.cache = cache or MemorySnapshotCache()
        self.channel = channel or InvalidationChannel()
        self._sessions: Dict[SessionKey, BidLifecycleManager] = {}

    @property
    def store(self) -> BiddingStore:
        if self._store is None:
            self._store = JsonFileStore(Path(config.STORE_DIR))
            logger.info(f"Using JSON store at {config.STORE_DIR}")
        return self._store

    def get(self, game_id: str, user_id: str, is_admin: bool, fresh: bool = False) -> BidLifecycleManager:
        """
        Get (or start) the session of one viewer.

        Args:
            fresh: Start a new session, as on a fresh page entry
        """
        key = (game_id, user_id, is_admin)
        if fresh or key not in self._sessions:
            reconciler = SnapshotReconciler(
                self.store, self.cache, game_id, user_id,
                is_admin=is_admin, channel=self.channel
            )
            self._sessions[key] = BidLifecycleManager(reconciler)
            logger.debug(f"Started session for {user_id} in {game_id} (admin={is_admin})")
        return self._sessions[key]

    def invalidate_game(self, game_id: str) -> None:
        self.cache.invalidate(game_id)
        self.channel.publish(game_id)

    def __len__(self) -> int:
        return len(self._sessions)


def _to_http_error(e: BiddingError) -> HTTPException:
    if isinstance(e, NotParticipantError):
        return HTTPException(status_code=403, detail=e.reason)
    if isinstance(e, ValidationRejected):
        return HTTPException(status_code=400, detail=e.reason)
    if isinstance(e, StaleDataConflict):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, TransportFailure):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def create_app(
    store: Optional[BiddingStore] = None,
    cache: Optional[SnapshotCache] = None,
    channel: Optional[InvalidationChannel] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        store: Bidding store (defaults to a JsonFileStore at config.STORE_DIR)
        cache: Snapshot cache (defaults to an in-memory cache)
        channel: Invalidation channel shared by every session

    Returns:
        Configured FastAPI app; its sessions are at app.state.sessions
    """
    app = FastAPI(
        title="Peloton Auction API",
        description="Rider auction and selection bidding",
        version="1.0.0"
    )

    # CORS middleware for web UI access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    sessions = AuctionSessions(store, cache, channel)
    app.state.sessions = sessions

    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint.

        Returns:
            Status OK if server is running
        """
        return {
            "status": "ok",
            "service": "Peloton Auction API",
            "version": "1.0.0"
        }

    @app.get("/games/{game_id}/auction", response_model=AuctionViewResponse)
    async def get_auction(
        game_id: str,
        user_id: str,
        is_admin: bool = False,
        fresh: bool = Query(False, description="Start over as on a new page entry"),
        search: Optional[str] = Query(None, description="Filter by rider name or team"),
        min_price: Optional[float] = Query(None, ge=0),
        max_price: Optional[float] = Query(None, ge=0),
        limit: Optional[int] = Query(None, ge=1)
    ):
        """
        Get the rider listing and budget of one viewer.

        Raises:
            403 Forbidden: User has not joined the game
            502 Bad Gateway: Store unavailable
        """
        try:
            manager = sessions.get(game_id, user_id, is_admin, fresh=fresh)
            view = await manager.reconciler.load()
            return serialize_auction_view(
                view, search=search, min_price=min_price, max_price=max_price, limit=limit
            )
        except BiddingError as e:
            logger.warning(f"Cannot load auction {game_id} for {user_id}: {e}")
            raise _to_http_error(e)

    @app.post("/games/{game_id}/bids/place", response_model=BidResponse)
    async def place_bid(game_id: str, request: PlaceBidRequest):
        """
        Place or replace a bid.

        Raises:
            400 Bad Request: Bid breaks a game rule (message shown verbatim)
            409 Conflict: Rider sold or re-priced; reload the listing
            502 Bad Gateway: Store unavailable, nothing was saved
        """
        try:
            manager = sessions.get(game_id, request.user_id, request.is_admin)
            await manager.reconciler.load()
            bid = await manager.place_bid(request.rider_id, request.amount)
            return serialize_bid(bid)
        except BiddingError as e:
            raise _to_http_error(e)

    @app.post("/games/{game_id}/bids/cancel", response_model=BidResponse)
    async def cancel_bid(game_id: str, request: CancelBidRequest):
        """
        Cancel an active or outbid bid.

        Raises:
            400 Bad Request: Bid unknown or already closed
            502 Bad Gateway: Store unavailable, nothing was cancelled
        """
        try:
            manager = sessions.get(game_id, request.user_id, request.is_admin)
            if manager.reconciler.view is None:
                await manager.reconciler.load()
            bid = await manager.cancel_bid(request.bid_id)
            return serialize_bid(bid)
        except BiddingError as e:
            raise _to_http_error(e)

    @app.post("/games/{game_id}/bids/reset", response_model=ResetResponse)
    async def reset_bids(game_id: str, request: ViewerRequest):
        """
        Cancel every active bid of the viewer. Outbid bids are kept.

        Partial failures are reported in the response body, not as an
        error status.
        """
        try:
            manager = sessions.get(game_id, request.user_id, request.is_admin)
            await manager.reconciler.load()
            result = await manager.reset_all_active_bids()
            return serialize_reset(result)
        except BiddingError as e:
            raise _to_http_error(e)

    @app.post("/games/{game_id}/finalize", response_model=FinalizeResponse)
    async def finalize(game_id: str, request: FinalizeRequest):
        """
        Finalize open bids into won/lost (admins only).

        Raises:
            403 Forbidden: Caller is not an admin
            400 Bad Request: Period missing or unknown
            501 Not Implemented: Store cannot finalize locally
        """
        if not request.is_admin:
            raise HTTPException(status_code=403, detail="Only admins can finalize an auction")

        try:
            result = await finalize_auction(sessions.store, game_id, request.period_name)
        except NotImplementedError as e:
            raise HTTPException(status_code=501, detail=str(e))
        except BiddingError as e:
            raise _to_http_error(e)

        sessions.invalidate_game(game_id)
        return serialize_finalize(result)

    logger.info("Peloton Auction API initialized")
    return app


app = create_app()
