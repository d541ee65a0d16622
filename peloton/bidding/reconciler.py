"""
Snapshot reconciliation between cache and store.

The SnapshotReconciler owns the current AuctionView of one viewer of one
game. It loads from cache when it can, from the store when it must, always
re-derives rider annotations, and reloads when another client signals a
change on the invalidation channel.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional

from .. import config
from .cache import InvalidationChannel, SnapshotCache
from .errors import BiddingError, NotParticipantError
from .models import Game, Participant, Rider, Snapshot
from .projection import AuctionView, build_view
from .rider_matcher import build_sold_index
from .store import BiddingStore

logger = logging.getLogger(__name__)


class SnapshotReconciler:
    """Loads and keeps current one viewer's view of a game."""

    def __init__(
        self,
        store: BiddingStore,
        cache: SnapshotCache,
        game_id: str,
        user_id: str,
        is_admin: bool = False,
        channel: Optional[InvalidationChannel] = None,
        poll_interval: float = config.INVALIDATION_POLL_INTERVAL
    ):
        """
        Initialize reconciler.

        Args:
            store: External store
            cache: Snapshot cache (lifecycle owned by the caller)
            game_id: Game being viewed
            user_id: Viewing user
            is_admin: Admins see all bids and may view without joining
            channel: Optional invalidation channel to watch
            poll_interval: Seconds between shutdown checks while watching
        """
        self.store = store
        self.cache = cache
        self.game_id = game_id
        self.user_id = user_id
        self.is_admin = is_admin
        self.channel = channel
        self.poll_interval = poll_interval

        # Identifies this client on the channel so it ignores its own signals
        self.client_id = uuid.uuid4().hex

        self.view: Optional[AuctionView] = None
        self._riders_by_year: Dict[int, List[Rider]] = {}
        self._entered = False
        self._stop: Optional[asyncio.Event] = None
        self.reload_count = 0

    def enter(self) -> None:
        """
        Proactively invalidate the game's cache once per page entry.

        A fresh entry must never show bid state left over from an earlier
        session.
        """
        if not self._entered:
            self.cache.invalidate(self.game_id)
            self._entered = True
            logger.info(f"Entered game {self.game_id} as {self.user_id}; cache invalidated")

    def invalidate(self) -> None:
        """Drop the cached snapshot and tell other clients to reload."""
        self.cache.invalidate(self.game_id)
        if self.channel is not None:
            self.channel.publish(self.game_id, origin=self.client_id)

    def replace_view(self, view: AuctionView) -> None:
        """Swap in a new view in one step."""
        self.view = view

    async def load(self, skip_cache: bool = False) -> AuctionView:
        """
        Load a consistent view of the game.

        Args:
            skip_cache: Ignore any cached snapshot and read from the store

        Returns:
            Freshly projected AuctionView (also stored in self.view)

        Raises:
            NotParticipantError: Non-admin user has not joined the game
        """
        self.enter()

        snapshot = None
        riders_ready = bool(self._riders_by_year)
        if not skip_cache and riders_ready:
            snapshot = self._usable_cached_snapshot()

        if snapshot is None:
            snapshot = await self._fetch_snapshot()
            self.cache.set(self.game_id, snapshot)
            source = 'store'
        else:
            source = 'cache'

        riders = await self._riders_for(snapshot.game)
        sold_index = build_sold_index(snapshot.sold_riders, riders)

        # Derived fields are always recomputed: config (e.g. rider values)
        # can change independently of bids
        view = build_view(
            game=snapshot.game,
            participant=snapshot.participant,
            user_id=self.user_id,
            is_admin=self.is_admin,
            riders=riders,
            all_bids=snapshot.all_bids,
            sold_riders=sold_index,
        )
        self.replace_view(view)
        self.reload_count += 1

        logger.info(
            f"Loaded game {self.game_id} from {source}: {len(view.riders)} riders, "
            f"{len(view.my_bids)} own bid(s), {len(sold_index)} sold"
        )
        return view

    def _usable_cached_snapshot(self) -> Optional[Snapshot]:
        snapshot = self.cache.get(self.game_id)
        if snapshot is None:
            return None
        if snapshot.user_id != self.user_id or snapshot.is_admin != self.is_admin:
            logger.debug(f"Cached snapshot for {self.game_id} belongs to another viewer")
            return None
        return snapshot

    async def _fetch_snapshot(self) -> Snapshot:
        game = await self.store.get_game(self.game_id)
        participant = await self._resolve_participant(game)

        if self.is_admin:
            all_bids = await self.store.list_bids(self.game_id)
        else:
            all_bids = await self.store.list_bids(self.game_id, user_id=self.user_id)

        sold_riders = await self.store.list_sold_riders(self.game_id) if game.is_bidding_mode else []

        return Snapshot(
            game=game,
            participant=participant,
            user_id=self.user_id,
            is_admin=self.is_admin,
            all_bids=all_bids,
            sold_riders=sold_riders,
        )

    async def _resolve_participant(self, game: Game) -> Participant:
        participant = await self.store.get_participant(self.game_id, self.user_id)
        if participant is not None:
            return participant

        if not self.is_admin:
            raise NotParticipantError("You must join this game before participating in the auction")

        logger.info(f"Admin {self.user_id} viewing {self.game_id} without a participant record")
        return Participant.placeholder(game, self.user_id)

    async def _riders_for(self, game: Game) -> List[Rider]:
        year = game.season_year()
        if year not in self._riders_by_year:
            self._riders_by_year[year] = await self.store.list_riders(year)
            logger.debug(f"Loaded {len(self._riders_by_year[year])} reference riders for {year}")
        return self._riders_by_year[year]

    async def watch(self) -> None:
        """
        Reload whenever another client invalidates this game.

        Runs until stop() is called. Signals published by this reconciler
        itself are ignored. A failed reload keeps the previous view and the
        watcher waits for the next signal.
        """
        if self.channel is None:
            raise RuntimeError("No invalidation channel to watch")

        self._stop = asyncio.Event()
        queue = self.channel.subscribe()
        logger.info(f"Watching game {self.game_id} for invalidations")

        try:
            while not self._stop.is_set():
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    continue

                if message.game_id != self.game_id or message.origin == self.client_id:
                    continue

                logger.info(f"Game {self.game_id} changed elsewhere; reloading")
                try:
                    await self.load(skip_cache=True)
                except BiddingError as e:
                    logger.warning(f"Reload of {self.game_id} failed, keeping previous view: {e}")
        finally:
            self.channel.unsubscribe(queue)

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
