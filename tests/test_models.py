"""Tests for model parsing."""

from datetime import datetime, timezone

import pytest

from peloton.bidding.models import (
    FullGridConfig,
    Game,
    GameMode,
    MarginalGainsConfig,
    Rider,
    SoldRider,
    parse_datetime,
)


@pytest.mark.parametrize('value', [
    '2026-03-01T10:00:00Z',
    '2026-03-01T10:00:00+00:00',
    datetime(2026, 3, 1, 10, 0),
    1772359200000,
    {'_seconds': 1772359200},
])
def test_parse_datetime_accepts_store_formats(value):
    assert parse_datetime(value) == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_parse_datetime_empty():
    assert parse_datetime(None) is None
    assert parse_datetime('') is None


def test_game_config_is_picked_by_mode():
    game = Game.from_dict({
        'id': 'g1',
        'gameType': 'full-grid',
        'status': 'bidding',
        'config': {'budget': 1000, 'teamSize': 8, 'riderValues': {'a': 50}},
    })
    assert isinstance(game.config, FullGridConfig)
    assert game.config.roster_cap == 8
    assert game.config.rider_values == {'a': 50}
    assert game.is_selection_mode
    assert not game.has_neo_pro_rules


def test_marginal_gains_defaults():
    game = Game.from_dict({'id': 'g2', 'mode': 'marginal-gains', 'config': {}})
    assert isinstance(game.config, MarginalGainsConfig)
    assert game.config.min_riders == 27
    assert game.config.max_neo_pro_age == 21
    assert game.config.max_neo_pro_points == 250


def test_legacy_auction_name():
    assert GameMode.parse('auctioneer') == GameMode.AUCTION


def test_rider_id_and_age():
    rider = Rider.from_dict({'id': 'doc-1', 'name': 'X', 'team': {'name': 'UAE'},
                             'dateOfBirth': '2005-06-01'})
    assert rider.rider_id == 'doc-1'
    assert rider.team == 'UAE'
    assert rider.age_in(2026) == 21

    rider = Rider.from_dict({'nameID': 'x-y', 'id': 'doc-2', 'birthYear': 2000})
    assert rider.rider_id == 'x-y'
    assert rider.age_in(2026) == 26


def test_sold_rider_owner_falls_back_to_playername():
    sold = SoldRider.from_dict({'riderNameId': 'r', 'playername': 'Alice', 'pricePaid': 12})
    assert sold.owner_name == 'Alice'
    assert sold.price_paid == 12
