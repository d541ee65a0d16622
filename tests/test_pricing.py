"""Tests for rider pricing and listing."""

from conftest import make_game, make_participant, make_rider

from peloton.bidding.models import GameMode
from peloton.bidding.pricing import effective_minimum_bid, is_listed, listed_riders, listing_frame
from peloton.bidding.projection import build_view


def test_auction_price_is_points():
    game = make_game(GameMode.AUCTION)
    assert effective_minimum_bid(make_rider('r', points=40), game) == 40


def test_max_minimum_bid_caps_points():
    game = make_game(GameMode.AUCTION, max_minimum_bid=500)
    assert effective_minimum_bid(make_rider('r', points=5000), game) == 500
    assert effective_minimum_bid(make_rider('r', points=300), game) == 300


def test_zero_point_riders_cost_one_in_selection_modes():
    for mode in (GameMode.WORLDTOUR_MANAGER, GameMode.MARGINAL_GAINS):
        assert effective_minimum_bid(make_rider('r', points=0), make_game(mode)) == 1


def test_zero_point_riders_are_free_in_auction():
    assert effective_minimum_bid(make_rider('r', points=0), make_game(GameMode.AUCTION)) == 0


def test_negative_points_never_give_negative_price():
    assert effective_minimum_bid(make_rider('r', points=-20), make_game(GameMode.AUCTION)) == 0


def test_full_grid_uses_admin_assigned_value():
    game = make_game(GameMode.FULL_GRID, rider_values={'rider-a': 500})
    assert effective_minimum_bid(make_rider('rider-a', points=10), game) == 500
    assert effective_minimum_bid(make_rider('rider-b', points=10), game) == 0


def test_full_grid_riders_without_value_are_not_listed():
    game = make_game(GameMode.FULL_GRID, rider_values={'rider-a': 0, 'rider-b': 5})
    listed = listed_riders([make_rider('rider-a'), make_rider('rider-b')], game)
    assert [r.rider_id for r in listed] == ['rider-b']


def test_retired_and_ineligible_riders_are_hidden():
    game = make_game(GameMode.AUCTION)
    game.eligible_riders = ['kept']
    assert not is_listed(make_rider('gone', retired=True), game)
    assert not is_listed(make_rider('other'), game)
    assert is_listed(make_rider('kept'), game)


def test_listing_frame_filters_and_sorts(riders):
    game = make_game(GameMode.AUCTION)
    view = build_view(game, make_participant(), 'u1', False, riders, [], {})

    df = listing_frame(view.riders)
    assert df['rider_id'].tolist()[:2] == ['tadej-pogacar', 'jonas-vingegaard']

    visma = listing_frame(view.riders, search='visma')
    assert set(visma['rider_id']) == {'jonas-vingegaard', 'wout-van-aert'}

    cheap = listing_frame(view.riders, min_price=20, max_price=200)
    assert cheap['rider_id'].tolist() == ['young-gun', 'wout-van-aert']


def test_listing_frame_empty():
    df = listing_frame([])
    assert df.empty
    assert 'effective_min_bid' in df.columns
