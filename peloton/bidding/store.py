"""
External store interface and a JSON-file implementation.

The engine treats the store as a black box. JsonFileStore keeps one JSON
document per game (game, participants, bids, sold riders) plus one rider
file per season, and writes every document atomically (temp file + rename).
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import StaleDataConflict, ValidationRejected
from .models import (
    Bid,
    BidStatus,
    Game,
    GameStatus,
    Participant,
    Rider,
    SoldRider,
)
from .pricing import effective_minimum_bid

logger = logging.getLogger(__name__)


class BiddingStore(ABC):
    """Asynchronous persistence collaborator used by the engine."""

    @abstractmethod
    async def get_game(self, game_id: str) -> Game:
        """Load a game. Raises ValidationRejected if it does not exist."""

    @abstractmethod
    async def get_participant(self, game_id: str, user_id: str) -> Optional[Participant]:
        """Load a user's participant record, or None if they have not joined."""

    @abstractmethod
    async def list_bids(self, game_id: str, user_id: Optional[str] = None) -> List[Bid]:
        """List bids of a game, optionally only one user's."""

    @abstractmethod
    async def list_sold_riders(self, game_id: str) -> List[SoldRider]:
        """List finalized ownership records of a game."""

    @abstractmethod
    async def list_riders(self, year: int) -> List[Rider]:
        """Load reference rider data for a season."""

    @abstractmethod
    async def create_bid(self, fields: dict) -> Bid:
        """
        Create a bid, replacing the user's open bid on the same rider.

        Args:
            fields: game_id, user_id, rider_name_id, amount and optional
                    participant_id, playername, rider_name, rider_team,
                    jersey_image
        """

    @abstractmethod
    async def cancel_bid(self, bid_id: str, game_id: str, user_id: str) -> None:
        """Cancel an active or outbid bid owned by user_id."""


class FinalizingStore(BiddingStore):
    """
    A store the engine can finalize auctions against.

    Stores whose backend finalizes on its own (e.g. the platform API) only
    implement BiddingStore; finalize_auction() refuses those.
    """

    @abstractmethod
    async def update_bid_status(self, game_id: str, bid_id: str, status: BidStatus) -> None:
        """Set a bid's status (won/lost)."""

    @abstractmethod
    async def record_acquisitions(self, game_id: str, user_id: str, bids: List[Bid]) -> None:
        """Commit won bids to the participant's roster and spent budget."""

    @abstractmethod
    async def complete_finalization(self, game_id: str, period_name: Optional[str] = None) -> None:
        """Mark the period (or whole auction) finalized."""


def is_bidding_open(game: Game) -> bool:
    return game.status == GameStatus.BIDDING or game.config.auction_status == 'active'


class JsonFileStore(FinalizingStore):
    """File-backed store for local games, tests and the CLI."""

    def __init__(self, root_dir: Path):
        """
        Initialize store.

        Args:
            root_dir: Directory holding games/ and riders/ subdirectories
        """
        self.root_dir = Path(root_dir)
        self.games_dir = self.root_dir / 'games'
        self.riders_dir = self.root_dir / 'riders'
        self.games_dir.mkdir(parents=True, exist_ok=True)
        self.riders_dir.mkdir(parents=True, exist_ok=True)
        self._lock: Optional[asyncio.Lock] = None

    # ===== File helpers =====

    def _game_path(self, game_id: str) -> Path:
        return self.games_dir / f"{game_id}.json"

    def _riders_path(self, year: int) -> Path:
        return self.riders_dir / f"riders_{year}.json"

    def _lock_for_writes(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _read(self, path: Path):
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _write(self, path: Path, data) -> None:
        temp_path = path.with_suffix('.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        temp_path.replace(path)

    def _load_document(self, game_id: str) -> dict:
        path = self._game_path(game_id)
        if not path.exists():
            raise ValidationRejected(f"Game {game_id} not found")
        return self._read(path)

    # ===== Seeding =====

    def save_game(self, game: Game) -> None:
        """Create or overwrite a game, keeping its existing bids and members."""
        path = self._game_path(game.id)
        document = self._read(path) if path.exists() else {
            'participants': [], 'bids': [], 'sold_riders': []
        }
        document['game'] = game.to_dict()
        self._write(path, document)
        logger.info(f"Saved game {game.id} ({game.mode.value}, {game.status.value})")

    def add_participant(self, participant: Participant) -> None:
        document = self._load_document(participant.game_id)
        document['participants'] = [
            p for p in document['participants'] if p['user_id'] != participant.user_id
        ] + [participant.to_dict()]
        self._write(self._game_path(participant.game_id), document)
        logger.info(f"User {participant.user_id} joined game {participant.game_id}")

    def save_riders(self, year: int, riders: Iterable[Rider]) -> None:
        riders = [r.to_dict() for r in riders]
        self._write(self._riders_path(year), riders)
        logger.info(f"Saved {len(riders)} riders for {year}")

    # ===== BiddingStore =====

    async def get_game(self, game_id: str) -> Game:
        return Game.from_dict(self._load_document(game_id)['game'])

    async def get_participant(self, game_id: str, user_id: str) -> Optional[Participant]:
        for data in self._load_document(game_id)['participants']:
            if data['user_id'] == user_id:
                return Participant.from_dict(data)
        return None

    async def list_bids(self, game_id: str, user_id: Optional[str] = None) -> List[Bid]:
        bids = [Bid.from_dict(b) for b in self._load_document(game_id)['bids']]
        if user_id is not None:
            bids = [b for b in bids if b.user_id == user_id]
        return bids

    async def list_sold_riders(self, game_id: str) -> List[SoldRider]:
        return [SoldRider.from_dict(s) for s in self._load_document(game_id)['sold_riders']]

    async def list_riders(self, year: int) -> List[Rider]:
        path = self._riders_path(year)
        if not path.exists():
            logger.warning(f"No rider data for {year}: {path}")
            return []
        return [Rider.from_dict(r) for r in self._read(path)]

    async def create_bid(self, fields: dict) -> Bid:
        game_id = fields['game_id']
        user_id = fields['user_id']
        rider_id = fields['rider_name_id']
        amount = float(fields['amount'])

        async with self._lock_for_writes():
            document = self._load_document(game_id)
            game = Game.from_dict(document['game'])

            if not is_bidding_open(game):
                raise StaleDataConflict(f"Bidding is closed for {game.name or game.id}")

            if game.is_bidding_mode:
                for sold in document['sold_riders']:
                    if sold['rider_name_id'] == rider_id:
                        raise StaleDataConflict(
                            f"{fields.get('rider_name') or rider_id} was already sold "
                            f"to {sold['owner_name']}"
                        )

            if game.is_selection_mode:
                price = self._current_price(game, rider_id)
                if price != amount:
                    raise StaleDataConflict(
                        f"The price of {fields.get('rider_name') or rider_id} changed "
                        f"from {amount:g} to {price:g}"
                    )

            highest_other = None
            for data in document['bids']:
                if data['rider_name_id'] != rider_id:
                    continue
                if data['user_id'] == user_id and data['status'] in ('active', 'outbid'):
                    data['status'] = BidStatus.CANCELLED.value
                    logger.debug(f"Replaced bid {data['id']} of {user_id} on {rider_id}")
                elif data['status'] == 'active' and data['user_id'] != user_id:
                    if highest_other is None or data['amount'] > highest_other['amount']:
                        highest_other = data

            if game.is_bidding_mode and highest_other and amount > highest_other['amount']:
                highest_other['status'] = BidStatus.OUTBID.value
                logger.info(f"Bid {highest_other['id']} on {rider_id} is now outbid")

            bid = Bid(
                id=uuid.uuid4().hex,
                game_id=game_id,
                user_id=user_id,
                rider_name_id=rider_id,
                amount=amount,
                status=BidStatus.ACTIVE,
                participant_id=fields.get('participant_id'),
                playername=fields.get('playername', ''),
                bid_at=datetime.now(timezone.utc),
                rider_name=fields.get('rider_name', ''),
                rider_team=fields.get('rider_team', ''),
                jersey_image=fields.get('jersey_image'),
            )
            document['bids'].append(bid.to_dict())
            self._write(self._game_path(game_id), document)

        logger.info(f"Created bid {bid.id}: {user_id} → {rider_id} ({amount})")
        return bid

    def _current_price(self, game: Game, rider_id: str) -> float:
        path = self._riders_path(game.season_year())
        rider = Rider(name_id=rider_id)
        if path.exists():
            for data in self._read(path):
                candidate = Rider.from_dict(data)
                if candidate.rider_id == rider_id:
                    rider = candidate
                    break
        return effective_minimum_bid(rider, game)

    async def cancel_bid(self, bid_id: str, game_id: str, user_id: str) -> None:
        async with self._lock_for_writes():
            document = self._load_document(game_id)
            data = next((b for b in document['bids'] if b['id'] == bid_id), None)

            if data is None:
                raise ValidationRejected("Bid not found")
            if data['user_id'] != user_id:
                raise ValidationRejected("You can only cancel your own bids")
            if data['status'] not in ('active', 'outbid'):
                raise ValidationRejected(
                    f"Cannot cancel a {data['status']} bid. "
                    f"Only active or outbid bids can be cancelled."
                )

            data['status'] = BidStatus.CANCELLED.value
            self._write(self._game_path(game_id), document)

        logger.info(f"Cancelled bid {bid_id} of {user_id}")

    async def update_bid_status(self, game_id: str, bid_id: str, status: BidStatus) -> None:
        async with self._lock_for_writes():
            document = self._load_document(game_id)
            for data in document['bids']:
                if data['id'] == bid_id:
                    data['status'] = BidStatus(status).value
                    break
            else:
                raise ValidationRejected("Bid not found")
            self._write(self._game_path(game_id), document)

    async def record_acquisitions(self, game_id: str, user_id: str, bids: List[Bid]) -> None:
        async with self._lock_for_writes():
            document = self._load_document(game_id)
            game = Game.from_dict(document['game'])

            participant = next(
                (p for p in document['participants'] if p['user_id'] == user_id), None
            )
            if participant is None:
                logger.error(f"No participant for {user_id} in {game_id}; wins not recorded")
                return

            # Recomputed from every won bid so finalizing several periods never double counts
            total = sum(
                float(b['amount']) for b in document['bids']
                if b['user_id'] == user_id and b['status'] == BidStatus.WON.value
            )
            participant['spent_budget'] = total
            participant['roster_size'] = int(participant.get('roster_size', 0)) + len(bids)
            cap = game.config.roster_cap
            participant['roster_complete'] = bool(cap and participant['roster_size'] >= cap)

            if game.is_bidding_mode:
                owner = participant.get('playername') or user_id
                document['sold_riders'].extend(
                    SoldRider(b.rider_name_id, owner, b.amount, b.rider_name).to_dict()
                    for b in bids
                )

            self._write(self._game_path(game_id), document)

        logger.info(f"Recorded {len(bids)} acquisition(s) for {user_id} in {game_id} (spent {total})")

    async def complete_finalization(self, game_id: str, period_name: Optional[str] = None) -> None:
        async with self._lock_for_writes():
            document = self._load_document(game_id)
            game_data = document['game']
            game_data['status'] = GameStatus.ACTIVE.value
            game_data['finalized_at'] = datetime.now(timezone.utc).isoformat()

            cfg = game_data.setdefault('config', {})
            periods = cfg.get('auction_periods') or []
            if period_name is not None:
                for period in periods:
                    if period.get('name') == period_name:
                        period['status'] = 'finalized'
            if not periods or all(p.get('status') == 'finalized' for p in periods):
                cfg['auction_status'] = 'finalized'

            self._write(self._game_path(game_id), document)

        logger.info(f"Finalized {game_id}" + (f" period '{period_name}'" if period_name else ''))

    def document(self, game_id: str) -> Dict:
        """Raw game document (for inspection and tests)."""
        return self._load_document(game_id)
