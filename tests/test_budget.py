"""Tests for the budget ledger."""

from conftest import make_bid, make_game, make_participant

from peloton.bidding.budget import (
    budget_frame,
    budget_summary,
    is_auction_closed,
    remaining_budget,
)
from peloton.bidding.models import BidStatus, GameMode, GameStatus


def test_open_and_won_bids_reduce_budget():
    game = make_game(GameMode.AUCTION, budget=100)
    bids = [
        make_bid('a', 30),
        make_bid('b', 20, status=BidStatus.OUTBID),
        make_bid('c', 10, status=BidStatus.WON),
        make_bid('d', 15, status=BidStatus.LOST),
        make_bid('e', 25, status=BidStatus.CANCELLED),
    ]
    assert remaining_budget(make_participant(), game, bids) == 40


def test_excluding_a_rider_frees_its_reservation():
    game = make_game(GameMode.AUCTION, budget=100)
    bids = [make_bid('a', 30), make_bid('b', 20)]
    assert remaining_budget(make_participant(), game, bids, exclude_rider_id='a') == 80


def test_closed_game_uses_spent_budget():
    game = make_game(GameMode.AUCTION, status=GameStatus.ACTIVE, budget=100)
    participant = make_participant(spent_budget=70)
    # Bid statuses are ignored once the game is finalized
    bids = [make_bid('a', 30, status=BidStatus.WON), make_bid('b', 50)]
    assert remaining_budget(participant, game, bids) == 30


def test_finalized_auction_status_closes_budget():
    game = make_game(GameMode.AUCTION, budget=100, auction_status='finalized')
    assert is_auction_closed(game)
    assert remaining_budget(make_participant(spent_budget=25), game, [make_bid('a', 60)]) == 75


def test_budget_summary():
    game = make_game(GameMode.WORLDTOUR_MANAGER, budget=100)
    bids = [make_bid('a', 30), make_bid('a', 5, status=BidStatus.CANCELLED), make_bid('b', 10, status=BidStatus.WON)]
    summary = budget_summary(make_participant(), game, bids)
    assert summary == {
        'budget': 100.0,
        'reserved': 30,
        'won': 10,
        'remaining': 60,
        'riders': 1,
        'constrained': True,
    }


def test_marginal_gains_is_not_constrained():
    game = make_game(GameMode.MARGINAL_GAINS)
    assert budget_summary(make_participant(), game, [])['constrained'] is False


def test_budget_frame_lists_reservations_and_wins():
    bids = [
        make_bid('a', 10),
        make_bid('b', 40, status=BidStatus.WON),
        make_bid('c', 99, status=BidStatus.CANCELLED),
    ]
    df = budget_frame(bids)
    assert df['rider_name_id'].tolist() == ['b', 'a']
    assert df['amount'].sum() == 50
