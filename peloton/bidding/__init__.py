"""
Auction and selection bidding engine for fantasy cycling games.

This package prices riders per game mode, validates and places bids against
an external store, tracks participants' budgets, and keeps a consistent
per-viewer snapshot of every game in sync across clients.
"""

from .cache import FileSnapshotCache, InvalidationChannel, MemorySnapshotCache, SnapshotCache
from .errors import (
    BiddingError,
    NotParticipantError,
    StaleDataConflict,
    TransportFailure,
    ValidationRejected,
)
from .finalize import FinalizeResult, finalize_auction
from .http_store import HttpBiddingStore
from .lifecycle import BidLifecycleManager, ResetResult
from .models import Bid, BidStatus, Game, GameMode, GameStatus, Participant, Rider, SoldRider
from .projection import AuctionView, RiderView
from .reconciler import SnapshotReconciler
from .store import BiddingStore, FinalizingStore, JsonFileStore

__all__ = [
    'Bid',
    'BidStatus',
    'Game',
    'GameMode',
    'GameStatus',
    'Participant',
    'Rider',
    'SoldRider',
    'AuctionView',
    'RiderView',
    'BiddingStore',
    'FinalizingStore',
    'JsonFileStore',
    'HttpBiddingStore',
    'SnapshotCache',
    'MemorySnapshotCache',
    'FileSnapshotCache',
    'InvalidationChannel',
    'SnapshotReconciler',
    'BidLifecycleManager',
    'ResetResult',
    'FinalizeResult',
    'finalize_auction',
    'BiddingError',
    'ValidationRejected',
    'NotParticipantError',
    'StaleDataConflict',
    'TransportFailure',
]
