"""Tests for the JSON file store."""

import asyncio

import pytest
from conftest import YEAR, make_game, make_participant, make_rider

from peloton.bidding.errors import StaleDataConflict, ValidationRejected
from peloton.bidding.models import BidStatus, GameMode, GameStatus, SoldRider
from peloton.bidding.store import JsonFileStore


def bid_fields(rider_id, amount, user_id='u1'):
    return {'game_id': 'g1', 'user_id': user_id, 'rider_name_id': rider_id, 'amount': amount,
            'rider_name': rider_id.title(), 'playername': user_id.upper()}


@pytest.fixture
def store(tmp_path):
    store = JsonFileStore(tmp_path)
    store.save_game(make_game(GameMode.AUCTION, budget=100, max_riders=3))
    store.add_participant(make_participant('u1'))
    store.add_participant(make_participant('u2'))
    store.save_riders(YEAR, [make_rider('r', points=10), make_rider('s', points=5)])
    return store


def test_reads_back_seeded_data(store):
    game = asyncio.run(store.get_game('g1'))
    assert game.mode == GameMode.AUCTION
    assert game.config.max_riders == 3
    assert asyncio.run(store.get_participant('g1', 'u2')).playername == 'U2'
    assert asyncio.run(store.get_participant('g1', 'nobody')) is None
    assert [r.rider_id for r in asyncio.run(store.list_riders(YEAR))] == ['r', 's']
    assert asyncio.run(store.list_riders(1999)) == []


def test_unknown_game_is_rejected(store):
    with pytest.raises(ValidationRejected, match='Game nope not found'):
        asyncio.run(store.get_game('nope'))


def test_create_bid_replaces_own_open_bid(store):
    first = asyncio.run(store.create_bid(bid_fields('r', 10)))
    second = asyncio.run(store.create_bid(bid_fields('r', 15)))

    bids = {b.id: b for b in asyncio.run(store.list_bids('g1'))}
    assert bids[first.id].status == BidStatus.CANCELLED
    assert bids[second.id].status == BidStatus.ACTIVE
    assert second.bid_at is not None


def test_higher_bid_outbids_other_user(store):
    low = asyncio.run(store.create_bid(bid_fields('r', 10, user_id='u2')))
    asyncio.run(store.create_bid(bid_fields('r', 12)))

    statuses = {b.id: b.status for b in asyncio.run(store.list_bids('g1'))}
    assert statuses[low.id] == BidStatus.OUTBID
    assert len(asyncio.run(store.list_bids('g1', user_id='u2'))) == 1


def test_create_bid_on_sold_rider_conflicts(store):
    document = store.document('g1')
    document['sold_riders'].append(SoldRider('r', 'U2', 30).to_dict())
    store._write(store._game_path('g1'), document)

    with pytest.raises(StaleDataConflict, match='already sold'):
        asyncio.run(store.create_bid(bid_fields('r', 40)))


def test_create_bid_when_closed_conflicts(store):
    store.save_game(make_game(GameMode.AUCTION, status=GameStatus.ACTIVE))
    with pytest.raises(StaleDataConflict, match='closed'):
        asyncio.run(store.create_bid(bid_fields('r', 10)))


def test_cancel_bid_rules(store):
    bid = asyncio.run(store.create_bid(bid_fields('r', 10)))

    with pytest.raises(ValidationRejected, match='own bids'):
        asyncio.run(store.cancel_bid(bid.id, 'g1', 'u2'))

    asyncio.run(store.cancel_bid(bid.id, 'g1', 'u1'))
    with pytest.raises(ValidationRejected, match='Cannot cancel a cancelled bid'):
        asyncio.run(store.cancel_bid(bid.id, 'g1', 'u1'))

    with pytest.raises(ValidationRejected, match='Bid not found'):
        asyncio.run(store.cancel_bid('missing', 'g1', 'u1'))


def test_record_acquisitions_commits_spent_budget(store):
    bid = asyncio.run(store.create_bid(bid_fields('r', 10)))
    asyncio.run(store.update_bid_status('g1', bid.id, BidStatus.WON))
    bid.status = BidStatus.WON
    asyncio.run(store.record_acquisitions('g1', 'u1', [bid]))

    participant = asyncio.run(store.get_participant('g1', 'u1'))
    assert participant.spent_budget == 10
    assert participant.roster_size == 1
    assert not participant.roster_complete
    sold = asyncio.run(store.list_sold_riders('g1'))
    assert [(s.rider_name_id, s.owner_name, s.price_paid) for s in sold] == [('r', 'U1', 10)]


def test_save_game_keeps_bids_and_participants(store):
    asyncio.run(store.create_bid(bid_fields('r', 10)))
    store.save_game(make_game(GameMode.AUCTION, budget=200))

    document = store.document('g1')
    assert len(document['bids']) == 1
    assert len(document['participants']) == 2
    assert document['game']['config']['budget'] == 200


def test_selection_bid_at_outdated_price_is_stale(tmp_path):
    store = JsonFileStore(tmp_path)
    store.save_game(make_game(GameMode.FULL_GRID, budget=1000, rider_values={'a': 500}))
    store.add_participant(make_participant('u1'))
    store.save_riders(YEAR, [make_rider('a', points=3)])

    store.save_game(make_game(GameMode.FULL_GRID, budget=1000, rider_values={'a': 900}))
    with pytest.raises(StaleDataConflict, match='changed from 500 to 900'):
        asyncio.run(store.create_bid(bid_fields('a', 500)))
    assert asyncio.run(store.list_bids('g1')) == []

    bid = asyncio.run(store.create_bid(bid_fields('a', 900)))
    assert bid.amount == 900


def test_points_priced_selection_checks_current_points(tmp_path):
    store = JsonFileStore(tmp_path)
    store.save_game(make_game(GameMode.WORLDTOUR_MANAGER, budget=100))
    store.add_participant(make_participant('u1'))
    store.save_riders(YEAR, [make_rider('r', points=12)])

    with pytest.raises(StaleDataConflict):
        asyncio.run(store.create_bid(bid_fields('r', 10)))
    assert asyncio.run(store.create_bid(bid_fields('r', 12))).amount == 12
