"""Shared fixtures and factories for the bidding engine tests."""

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from peloton.bidding.cache import InvalidationChannel, MemorySnapshotCache
from peloton.bidding.errors import StaleDataConflict, ValidationRejected
from peloton.bidding.models import (
    AuctionConfig,
    AuctionPeriod,
    Bid,
    BidStatus,
    FullGridConfig,
    Game,
    GameMode,
    GameStatus,
    MarginalGainsConfig,
    Participant,
    Rider,
    SoldRider,
    WorldTourManagerConfig,
)
from peloton.bidding.store import BiddingStore

YEAR = 2026

_ids = itertools.count(1)


def make_rider(name_id: str, points: float = 100, rank: Optional[int] = 50, team: str = 'Team A',
               birth_year: Optional[int] = 1995, **kwargs) -> Rider:
    name = kwargs.pop('name', name_id.replace('-', ' ').title())
    return Rider(name_id=name_id, name=name, points=points, rank=rank, team=team,
                 birth_year=birth_year, **kwargs)


def make_game(mode: GameMode = GameMode.AUCTION, status: GameStatus = GameStatus.BIDDING,
              game_id: str = 'g1', **config_kwargs) -> Game:
    config_types = {
        GameMode.AUCTION: AuctionConfig,
        GameMode.WORLDTOUR_MANAGER: WorldTourManagerConfig,
        GameMode.MARGINAL_GAINS: MarginalGainsConfig,
        GameMode.FULL_GRID: FullGridConfig,
    }
    config_kwargs.setdefault('budget', 100)
    return Game(
        id=game_id,
        name=f'Game {game_id}',
        mode=mode,
        status=status,
        config=config_types[mode](**config_kwargs),
        year=YEAR,
    )


def make_participant(user_id: str = 'u1', game_id: str = 'g1', **kwargs) -> Participant:
    return Participant(id=f'p-{user_id}', game_id=game_id, user_id=user_id,
                       playername=kwargs.pop('playername', user_id.upper()), **kwargs)


def make_bid(rider_id: str, amount: float, user_id: str = 'u1', status: BidStatus = BidStatus.ACTIVE,
             game_id: str = 'g1', bid_at: Optional[datetime] = None, **kwargs) -> Bid:
    return Bid(
        id=kwargs.pop('id', f'b{next(_ids)}'),
        game_id=game_id,
        user_id=user_id,
        rider_name_id=rider_id,
        amount=amount,
        status=status,
        playername=kwargs.pop('playername', user_id.upper()),
        bid_at=bid_at or datetime(YEAR, 3, 1, tzinfo=timezone.utc),
        **kwargs,
    )


def top200_period(now: Optional[datetime] = None, top200_only: bool = True) -> AuctionPeriod:
    now = now or datetime.now(timezone.utc)
    return AuctionPeriod(
        name='Round 1',
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=1),
        top200_only=top200_only,
    )


class FakeStore(BiddingStore):
    """In-memory store with failure injection."""

    def __init__(self, game: Game, participants: List[Participant] = (), riders: List[Rider] = (),
                 bids: List[Bid] = (), sold: List[SoldRider] = ()):
        self.game = game
        self.participants: Dict[str, Participant] = {p.user_id: p for p in participants}
        self.riders = list(riders)
        self.bids: List[Bid] = list(bids)
        self.sold = list(sold)
        self.calls: List[str] = []
        self.fail_create: Optional[Exception] = None
        self.fail_cancel: Dict[str, Exception] = {}

    async def get_game(self, game_id):
        self.calls.append('get_game')
        return self.game

    async def get_participant(self, game_id, user_id):
        self.calls.append('get_participant')
        return self.participants.get(user_id)

    async def list_bids(self, game_id, user_id=None):
        self.calls.append('list_bids')
        return [replace(b) for b in self.bids if user_id is None or b.user_id == user_id]

    async def list_sold_riders(self, game_id):
        self.calls.append('list_sold_riders')
        return list(self.sold)

    async def list_riders(self, year):
        self.calls.append('list_riders')
        return list(self.riders)

    async def create_bid(self, fields):
        self.calls.append('create_bid')
        if self.fail_create is not None:
            raise self.fail_create
        await asyncio.sleep(0)
        for bid in self.bids:
            if (bid.user_id == fields['user_id'] and bid.rider_name_id == fields['rider_name_id']
                    and bid.is_open):
                bid.status = BidStatus.CANCELLED
        bid = make_bid(fields['rider_name_id'], fields['amount'], user_id=fields['user_id'],
                       game_id=fields['game_id'], rider_name=fields.get('rider_name', ''),
                       rider_team=fields.get('rider_team', ''))
        self.bids.append(bid)
        return replace(bid)

    async def cancel_bid(self, bid_id, game_id, user_id):
        self.calls.append('cancel_bid')
        await asyncio.sleep(0)
        if bid_id in self.fail_cancel:
            raise self.fail_cancel[bid_id]
        bid = next((b for b in self.bids if b.id == bid_id), None)
        if bid is None:
            raise ValidationRejected("Bid not found")
        if not bid.is_open:
            raise ValidationRejected(f"Cannot cancel a {bid.status.value} bid.")
        bid.status = BidStatus.CANCELLED

    def sell(self, rider_id: str, owner: str, price: float) -> None:
        self.sold.append(SoldRider(rider_id, owner, price))

    def reject_creates_as_stale(self, message: str = 'Rider was sold') -> None:
        self.fail_create = StaleDataConflict(message)


@pytest.fixture
def riders():
    return [
        make_rider('tadej-pogacar', points=5000, rank=1, team='UAE'),
        make_rider('jonas-vingegaard', points=4000, rank=2, team='Visma'),
        make_rider('wout-van-aert', points=40, rank=150, team='Visma'),
        make_rider('young-gun', points=120, rank=180, team='Lotto', birth_year=YEAR - 20),
        make_rider('deep-domestique', points=10, rank=250, team='Lotto'),
    ]


@pytest.fixture
def cache():
    return MemorySnapshotCache()


@pytest.fixture
def channel():
    return InvalidationChannel()
