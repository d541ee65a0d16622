"""Tests for auction finalization."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from conftest import YEAR, make_bid, make_game, make_participant, make_rider

from peloton.bidding.errors import ValidationRejected
from peloton.bidding.finalize import finalize_auction, pick_winners
from peloton.bidding.http_store import HttpBiddingStore
from peloton.bidding.models import AuctionPeriod, BidStatus, GameMode, GameStatus
from peloton.bidding.store import JsonFileStore

T0 = datetime(YEAR, 3, 1, tzinfo=timezone.utc)


def seed(tmp_path, game, bids):
    store = JsonFileStore(tmp_path)
    store.save_game(game)
    for user_id in ('u1', 'u2', 'u3'):
        store.add_participant(make_participant(user_id))
    store.save_riders(YEAR, [make_rider('r'), make_rider('s')])

    document = store.document(game.id)
    document['bids'] = [b.to_dict() for b in bids]
    store._write(store._game_path(game.id), document)
    return store


def statuses(store):
    return {b.id: b.status for b in asyncio.run(store.list_bids('g1'))}


def test_auction_highest_bid_wins_and_ties_go_to_earliest(tmp_path):
    bids = [
        make_bid('r', 30, user_id='u1', id='late', bid_at=T0 + timedelta(hours=2)),
        make_bid('r', 30, user_id='u2', id='early', bid_at=T0 + timedelta(hours=1)),
        make_bid('r', 20, user_id='u3', id='low', status=BidStatus.OUTBID),
        make_bid('s', 5, user_id='u1', id='only'),
        make_bid('s', 50, user_id='u2', id='gone', status=BidStatus.CANCELLED),
    ]
    store = seed(tmp_path, make_game(GameMode.AUCTION, budget=100), bids)

    result = asyncio.run(finalize_auction(store, 'g1'))

    assert result.total_riders == 2
    assert result.winners_assigned == 2
    assert result.losers == 2
    assert statuses(store) == {
        'late': BidStatus.LOST,
        'early': BidStatus.WON,
        'low': BidStatus.LOST,
        'only': BidStatus.WON,
        'gone': BidStatus.CANCELLED,
    }

    u2 = asyncio.run(store.get_participant('g1', 'u2'))
    assert u2.spent_budget == 30
    sold = {s.rider_name_id: s.owner_name for s in asyncio.run(store.list_sold_riders('g1'))}
    assert sold == {'r': 'U2', 's': 'U1'}

    game = asyncio.run(store.get_game('g1'))
    assert game.status == GameStatus.ACTIVE
    assert game.config.auction_status == 'finalized'


def test_selection_mode_everyone_wins(tmp_path):
    bids = [make_bid('r', 10, user_id='u1'), make_bid('r', 10, user_id='u2')]
    store = seed(tmp_path, make_game(GameMode.WORLDTOUR_MANAGER, budget=100), bids)

    result = asyncio.run(finalize_auction(store, 'g1'))

    assert result.winners_assigned == 2
    assert result.losers == 0
    assert set(statuses(store).values()) == {BidStatus.WON}
    assert asyncio.run(store.list_sold_riders('g1')) == []


def test_second_run_has_nothing_to_do(tmp_path):
    store = seed(tmp_path, make_game(GameMode.AUCTION), [make_bid('r', 10)])
    asyncio.run(finalize_auction(store, 'g1'))
    before = store.document('g1')['participants']

    result = asyncio.run(finalize_auction(store, 'g1'))

    assert result.nothing_to_do
    assert store.document('g1')['participants'] == before


def test_periods_require_a_known_period_name(tmp_path):
    period = AuctionPeriod('Round 1', T0, T0 + timedelta(days=7))
    store = seed(tmp_path, make_game(GameMode.AUCTION, auction_periods=[period]), [make_bid('r', 10)])

    with pytest.raises(ValidationRejected, match='required'):
        asyncio.run(finalize_auction(store, 'g1'))
    with pytest.raises(ValidationRejected, match='not found'):
        asyncio.run(finalize_auction(store, 'g1', 'Round 9'))


def test_period_only_processes_bids_since_its_start(tmp_path):
    first = AuctionPeriod('Round 1', T0, T0 + timedelta(days=7), status='finalized')
    second = AuctionPeriod('Round 2', T0 + timedelta(days=10), T0 + timedelta(days=17))
    bids = [
        make_bid('r', 10, id='old', bid_at=T0 + timedelta(days=1)),
        make_bid('s', 20, id='new', bid_at=T0 + timedelta(days=11)),
    ]
    game = make_game(GameMode.AUCTION, auction_periods=[first, second])
    store = seed(tmp_path, game, bids)

    result = asyncio.run(finalize_auction(store, 'g1', 'Round 2'))

    assert result.total_riders == 1
    assert statuses(store) == {'old': BidStatus.ACTIVE, 'new': BidStatus.WON}
    game = asyncio.run(store.get_game('g1'))
    assert [p.status for p in game.config.auction_periods] == ['finalized', 'finalized']
    assert game.config.auction_status == 'finalized'


def test_pick_winners_orders_auction_bids():
    game = make_game(GameMode.AUCTION)
    bids = [
        make_bid('r', 5, id='a'),
        make_bid('r', 9, id='b', bid_at=T0 + timedelta(minutes=5)),
        make_bid('r', 9, id='c', bid_at=T0),
    ]
    assert [b.id for b in pick_winners(bids, game)['r']] == ['c', 'b', 'a']


def test_store_without_finalization_support_is_refused():
    session = MagicMock()
    session.headers = {}
    store = HttpBiddingStore(base_url='https://example.test/api/', session=session)

    with pytest.raises(NotImplementedError, match='HttpBiddingStore'):
        asyncio.run(finalize_auction(store, 'g1'))
    session.request.assert_not_called()
