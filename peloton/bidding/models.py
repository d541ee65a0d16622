"""
Core data structures for games, participants, riders and bids.

These dataclasses represent the state a participant sees while bidding on or
selecting riders. Game configuration is a tagged union keyed by game mode:
each mode has its own config class carrying only the fields it uses.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Type

from .. import config


class GameMode(str, Enum):
    AUCTION = 'auction'
    WORLDTOUR_MANAGER = 'worldtour-manager'
    MARGINAL_GAINS = 'marginal-gains'
    FULL_GRID = 'full-grid'

    @classmethod
    def parse(cls, value) -> 'GameMode':
        """Parse a mode name, accepting the legacy 'auctioneer' alias."""
        if isinstance(value, cls):
            return value
        if value == 'auctioneer':
            return cls.AUCTION
        return cls(value)


class GameStatus(str, Enum):
    DRAFT = 'draft'
    REGISTRATION = 'registration'
    BIDDING = 'bidding'
    ACTIVE = 'active'
    FINISHED = 'finished'


class BidStatus(str, Enum):
    ACTIVE = 'active'
    OUTBID = 'outbid'
    WON = 'won'
    LOST = 'lost'
    CANCELLED = 'cancelled'


# Statuses that still hold a budget reservation
OPEN_BID_STATUSES = (BidStatus.ACTIVE, BidStatus.OUTBID)

SELECTION_MODES = (GameMode.WORLDTOUR_MANAGER, GameMode.MARGINAL_GAINS, GameMode.FULL_GRID)
NEO_PRO_MODES = (GameMode.WORLDTOUR_MANAGER, GameMode.MARGINAL_GAINS)


def parse_datetime(value) -> Optional[datetime]:
    """
    Parse a timestamp from the store into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (including a trailing 'Z'),
    epoch milliseconds and Firestore-style {'_seconds': ...} dicts.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, dict) and '_seconds' in value:
        parsed = datetime.fromtimestamp(value['_seconds'], tz=timezone.utc)
    else:
        text = str(value)
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def _pick(data: dict, name: str, default=None):
    """Read a field by snake_case name, falling back to its camelCase form."""
    if name in data:
        return data[name]
    return data.get(_camel(name), default)


@dataclass
class AuctionPeriod:
    """A time-boxed bidding window."""

    name: str
    start_date: datetime
    end_date: datetime
    status: str = 'pending'
    top200_only: bool = False

    def contains(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'start_date': _format_datetime(self.start_date),
            'end_date': _format_datetime(self.end_date),
            'status': self.status,
            'top200_only': self.top200_only,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionPeriod':
        return cls(
            name=data.get('name', ''),
            start_date=parse_datetime(_pick(data, 'start_date')),
            end_date=parse_datetime(_pick(data, 'end_date')),
            status=data.get('status', 'pending'),
            top200_only=bool(_pick(data, 'top200_only', False)),
        )


@dataclass
class GameConfigBase:
    """Fields shared by every game mode's configuration."""

    mode: ClassVar[GameMode]

    budget: float = 0.0
    max_riders: Optional[int] = None
    auction_status: Optional[str] = None
    auction_periods: List[AuctionPeriod] = field(default_factory=list)

    @property
    def roster_cap(self) -> Optional[int]:
        return self.max_riders

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['auction_periods'] = [p.to_dict() for p in self.auction_periods]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'GameConfigBase':
        kwargs = {}
        for f in fields(cls):
            if f.name == 'auction_periods':
                continue
            value = _pick(data, f.name)
            if value is not None:
                kwargs[f.name] = value
        kwargs['auction_periods'] = [
            AuctionPeriod.from_dict(p) for p in (_pick(data, 'auction_periods') or [])
        ]
        return cls(**kwargs)


@dataclass
class AuctionConfig(GameConfigBase):
    mode: ClassVar[GameMode] = GameMode.AUCTION

    max_minimum_bid: Optional[float] = None


@dataclass
class WorldTourManagerConfig(GameConfigBase):
    mode: ClassVar[GameMode] = GameMode.WORLDTOUR_MANAGER

    min_riders: int = config.DEFAULT_MIN_RIDERS
    max_neo_pro_age: int = config.DEFAULT_MAX_NEO_PRO_AGE
    max_neo_pro_points: float = config.DEFAULT_MAX_NEO_PRO_POINTS
    max_minimum_bid: Optional[float] = None


@dataclass
class MarginalGainsConfig(WorldTourManagerConfig):
    """Points-based selection; 'budget' is ignored by the ledger."""

    mode: ClassVar[GameMode] = GameMode.MARGINAL_GAINS


@dataclass
class FullGridConfig(GameConfigBase):
    mode: ClassVar[GameMode] = GameMode.FULL_GRID

    team_size: Optional[int] = None
    rider_values: Dict[str, float] = field(default_factory=dict)

    @property
    def roster_cap(self) -> Optional[int]:
        return self.max_riders or self.team_size


CONFIG_TYPES: Dict[GameMode, Type[GameConfigBase]] = {
    GameMode.AUCTION: AuctionConfig,
    GameMode.WORLDTOUR_MANAGER: WorldTourManagerConfig,
    GameMode.MARGINAL_GAINS: MarginalGainsConfig,
    GameMode.FULL_GRID: FullGridConfig,
}


def parse_game_config(mode, data: Optional[dict]) -> GameConfigBase:
    """Build the config variant for a game mode from a raw config dict."""
    config_type = CONFIG_TYPES[GameMode.parse(mode)]
    return config_type.from_dict(data or {})


@dataclass
class Game:
    """A competition instance."""

    id: str
    name: str
    mode: GameMode
    status: GameStatus
    config: GameConfigBase
    year: Optional[int] = None
    eligible_riders: List[str] = field(default_factory=list)

    @property
    def is_selection_mode(self) -> bool:
        return self.mode in SELECTION_MODES

    @property
    def is_bidding_mode(self) -> bool:
        return self.mode == GameMode.AUCTION

    @property
    def has_neo_pro_rules(self) -> bool:
        return self.mode in NEO_PRO_MODES

    def season_year(self) -> int:
        return self.year or config.PLAYING_YEAR

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'mode': self.mode.value,
            'status': self.status.value,
            'config': self.config.to_dict(),
            'year': self.year,
            'eligible_riders': list(self.eligible_riders),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Game':
        mode = GameMode.parse(data.get('mode') or data.get('gameType'))
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            mode=mode,
            status=GameStatus(data.get('status', GameStatus.DRAFT.value)),
            config=parse_game_config(mode, data.get('config')),
            year=data.get('year'),
            eligible_riders=list(_pick(data, 'eligible_riders') or []),
        )


@dataclass
class Participant:
    """One user's membership in a game."""

    id: str
    game_id: str
    user_id: str
    playername: str = ''
    spent_budget: float = 0.0     # Authoritative only after finalization
    roster_size: int = 0
    roster_complete: bool = False
    division: Optional[str] = None

    @classmethod
    def placeholder(cls, game: Game, user_id: str) -> 'Participant':
        """Zero-spend stand-in for admins viewing a game they have not joined."""
        return cls(id='admin-view', game_id=game.id, user_id=user_id)

    @property
    def is_placeholder(self) -> bool:
        return self.id == 'admin-view'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'playername': self.playername,
            'spent_budget': self.spent_budget,
            'roster_size': self.roster_size,
            'roster_complete': self.roster_complete,
            'division': self.division,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Participant':
        return cls(
            id=data['id'],
            game_id=_pick(data, 'game_id', ''),
            user_id=_pick(data, 'user_id', ''),
            playername=data.get('playername', ''),
            spent_budget=float(_pick(data, 'spent_budget', 0) or 0),
            roster_size=int(_pick(data, 'roster_size', 0) or 0),
            roster_complete=bool(_pick(data, 'roster_complete', False)),
            division=data.get('division'),
        )


@dataclass
class Rider:
    """A professional cyclist. Read-only from the engine's point of view."""

    name_id: Optional[str] = None
    id: Optional[str] = None
    name: str = ''
    points: float = 0.0
    rank: Optional[int] = None
    team: str = ''
    birth_year: Optional[int] = None
    date_of_birth: Optional[str] = None
    age: Optional[int] = None
    retired: bool = False
    jersey_image: Optional[str] = None

    @property
    def rider_id(self) -> str:
        return self.name_id or self.id or ''

    def age_in(self, year: int) -> Optional[int]:
        """Age the rider turns in the given season."""
        if self.birth_year:
            return year - int(self.birth_year)
        if self.date_of_birth:
            return year - int(str(self.date_of_birth)[:4])
        return self.age

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> 'Rider':
        team = data.get('team') or ''
        if isinstance(team, dict):
            team = team.get('name', '')
        return cls(
            name_id=data.get('name_id') or data.get('nameID'),
            id=data.get('id'),
            name=data.get('name', ''),
            points=float(data.get('points') or 0),
            rank=data.get('rank'),
            team=team,
            birth_year=_pick(data, 'birth_year'),
            date_of_birth=_pick(data, 'date_of_birth'),
            age=data.get('age'),
            retired=bool(data.get('retired', False)),
            jersey_image=_pick(data, 'jersey_image'),
        )


@dataclass
class Bid:
    """A participant's bid on (or selection of) a rider."""

    id: str
    game_id: str
    user_id: str
    rider_name_id: str
    amount: float
    status: BidStatus = BidStatus.ACTIVE
    participant_id: Optional[str] = None
    playername: str = ''
    bid_at: Optional[datetime] = None

    # Denormalized rider info for display
    rider_name: str = ''
    rider_team: str = ''
    jersey_image: Optional[str] = None

    @property
    def is_open(self) -> bool:
        """Active or outbid bids still hold a budget reservation."""
        return self.status in OPEN_BID_STATUSES

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'rider_name_id': self.rider_name_id,
            'amount': self.amount,
            'status': self.status.value,
            'participant_id': self.participant_id,
            'playername': self.playername,
            'bid_at': _format_datetime(self.bid_at),
            'rider_name': self.rider_name,
            'rider_team': self.rider_team,
            'jersey_image': self.jersey_image,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Bid':
        return cls(
            id=data['id'],
            game_id=_pick(data, 'game_id', ''),
            user_id=_pick(data, 'user_id', ''),
            rider_name_id=_pick(data, 'rider_name_id', ''),
            amount=float(data.get('amount') or 0),
            status=BidStatus(data.get('status', BidStatus.ACTIVE.value)),
            participant_id=_pick(data, 'participant_id'),
            playername=data.get('playername', ''),
            bid_at=parse_datetime(_pick(data, 'bid_at')),
            rider_name=_pick(data, 'rider_name', ''),
            rider_team=_pick(data, 'rider_team', ''),
            jersey_image=_pick(data, 'jersey_image'),
        )


@dataclass
class SoldRider:
    """A finalized ownership record."""

    rider_name_id: str
    owner_name: str
    price_paid: float
    rider_name: str = ''          # Some ownership records carry only a name

    def to_dict(self) -> dict:
        return {
            'rider_name_id': self.rider_name_id,
            'owner_name': self.owner_name,
            'price_paid': self.price_paid,
            'rider_name': self.rider_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SoldRider':
        return cls(
            rider_name_id=_pick(data, 'rider_name_id', '') or '',
            owner_name=_pick(data, 'owner_name', '') or data.get('playername', ''),
            price_paid=float(_pick(data, 'price_paid', 0) or 0),
            rider_name=_pick(data, 'rider_name', '') or '',
        )


@dataclass
class Snapshot:
    """Cacheable bid state for one viewer of one game (riders excluded)."""

    game: Game
    participant: Participant
    user_id: str
    is_admin: bool
    all_bids: List[Bid] = field(default_factory=list)
    sold_riders: List[SoldRider] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def my_bids(self) -> List[Bid]:
        return [b for b in self.all_bids if b.user_id == self.user_id]

    def to_dict(self) -> dict:
        return {
            'game': self.game.to_dict(),
            'participant': self.participant.to_dict(),
            'user_id': self.user_id,
            'is_admin': self.is_admin,
            'all_bids': [b.to_dict() for b in self.all_bids],
            'sold_riders': [s.to_dict() for s in self.sold_riders],
            'created_at': _format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Snapshot':
        return cls(
            game=Game.from_dict(data['game']),
            participant=Participant.from_dict(data['participant']),
            user_id=data['user_id'],
            is_admin=bool(data.get('is_admin', False)),
            all_bids=[Bid.from_dict(b) for b in data.get('all_bids', [])],
            sold_riders=[SoldRider.from_dict(s) for s in data.get('sold_riders', [])],
            created_at=parse_datetime(data.get('created_at')) or datetime.now(timezone.utc),
        )
