from decimal import Decimal

import pytest

from bingo import db
from bingo.errors import (
    AlreadyClaimed,
    AlreadyPaid,
    InsufficientBalance,
    NotAuthorized,
    NotFound,
    NotWinner,
    StateConflict,
    ValidationError,
)
from bingo.models import BingoCard, Game, GameParticipant, Transaction, User
from bingo.services.games import ledger


def _reload(model, ident):
    db.session.expire_all()
    return db.session.get(model, ident)


def test_insufficient_balance_changes_nothing(make_room, make_user, seat):
    poor = make_user(balance='5.00')
    room = make_room(entry_cost='10.00')
    game_id = seat(room, [poor])

    with pytest.raises(InsufficientBalance) as exc:
        ledger.purchase_entry(game_id, poor.id)
    assert exc.value.details == {'balance': 5.0, 'required': 10.0}

    assert _reload(User, poor.id).balance == Decimal('5.00')
    assert _reload(Game, game_id).prize_pool == Decimal('0')
    assert GameParticipant.query.filter_by(game_id=game_id, user_id=poor.id).one().paid_entry is False
    assert BingoCard.query.filter_by(game_id=game_id).count() == 0
    assert Transaction.query.count() == 0


def test_purchase_debits_credits_and_deals_card(make_room, make_user, seat):
    user = make_user(balance='25.00')
    game_id = seat(make_room(entry_cost='10.00'), [user])

    receipt = ledger.purchase_entry(game_id, user.id)

    assert receipt.new_balance == Decimal('15.00')
    assert receipt.prize_pool == Decimal('10.00')
    assert _reload(User, user.id).balance == Decimal('15.00')
    card = BingoCard.query.filter_by(game_id=game_id, user_id=user.id).one()
    assert card.id == receipt.card_id and len(card.grid) == 5
    tx = Transaction.query.filter_by(user_id=user.id).one()
    assert (tx.type, tx.amount, tx.balance_after) == ('entry_fee', Decimal('10.00'), Decimal('15.00'))


def test_second_purchase_never_charges_twice(make_room, make_user, seat):
    user = make_user(balance='50.00')
    game_id = seat(make_room(), [user])
    ledger.purchase_entry(game_id, user.id)

    with pytest.raises(AlreadyPaid) as exc:
        ledger.purchase_entry(game_id, user.id)
    assert exc.value.details['balance'] == 40.0

    assert _reload(User, user.id).balance == Decimal('40.00')
    assert _reload(Game, game_id).prize_pool == Decimal('10.00')
    assert Transaction.query.filter_by(user_id=user.id).count() == 1
    assert BingoCard.query.filter_by(game_id=game_id, user_id=user.id).count() == 1


def test_purchase_requires_participant(make_room, make_user, seat):
    joined, stranger = make_user(), make_user()
    game_id = seat(make_room(), [joined])
    with pytest.raises(NotFound):
        ledger.purchase_entry(game_id, stranger.id)
    with pytest.raises(NotFound):
        ledger.purchase_entry(9999, joined.id)


def test_finished_game_rejects_purchase(make_room, make_user, seat):
    user = make_user()
    game_id = seat(make_room(), [user])
    ledger.finish_without_winner(game_id)
    with pytest.raises(StateConflict):
        ledger.purchase_entry(game_id, user.id)


def test_claim_prize_pays_once(started_game, players):
    winner, other = players[0], players[1]
    ledger.finish_with_winner(started_game, winner.id, 'horizontal_line')

    with pytest.raises(NotWinner):
        ledger.claim_prize(started_game, other.id)

    receipt = ledger.claim_prize(started_game, winner.id)
    assert receipt.prize_amount == Decimal('30.00')
    assert receipt.new_balance == Decimal('120.00')

    with pytest.raises(AlreadyClaimed):
        ledger.claim_prize(started_game, winner.id)
    assert _reload(User, winner.id).balance == Decimal('120.00')
    assert _reload(Game, started_game).prize_pool == Decimal('0')


def test_finish_settles_exactly_once(started_game, players):
    winner = players[0]
    ledger.finish_with_winner(started_game, winner.id, 'horizontal_line')
    with pytest.raises(StateConflict):
        ledger.finish_with_winner(started_game, players[1].id)
    with pytest.raises(StateConflict):
        ledger.finish_without_winner(started_game)

    db.session.expire_all()
    game = db.session.get(Game, started_game)
    assert (game.status, game.winner_id, game.win_pattern) == ('finished', winner.id, 'horizontal_line')
    assert game.finished_at is not None
    assert db.session.get(User, winner.id).wins == 1
    assert db.session.get(User, winner.id).points == 10
    assert [db.session.get(User, p.id).games_played for p in players] == [1, 1, 1]


def test_waiting_game_cannot_have_a_winner(make_room, players, seat):
    game_id = seat(make_room(), players)
    with pytest.raises(StateConflict):
        ledger.finish_with_winner(game_id, players[0].id)
    assert _reload(Game, game_id).status == 'waiting'


def test_admin_add_balance(admin, make_user):
    user = make_user(balance='0.00')
    with pytest.raises(NotAuthorized):
        ledger.admin_add_balance(user, user.id, '10')
    for bad in (0, '-5', 'abc', None):
        with pytest.raises(ValidationError):
            ledger.admin_add_balance(admin, user.id, bad)
    with pytest.raises(NotFound):
        ledger.admin_add_balance(admin, 9999, '10')

    receipt = ledger.admin_add_balance(admin, user.id, '12.50')
    assert receipt.new_balance == Decimal('12.50')
    tx = Transaction.query.filter_by(user_id=user.id).one()
    assert (tx.type, tx.amount) == ('deposit', Decimal('12.50'))


def test_refund_after_no_winner(admin, started_game, players):
    ledger.finish_without_winner(started_game)
    with pytest.raises(NotAuthorized):
        ledger.refund_entries(players[0], started_game)

    receipt = ledger.refund_entries(admin, started_game)
    assert receipt.total == Decimal('30.00')
    assert sorted(r['user_id'] for r in receipt.refunds) == sorted(p.id for p in players)
    assert all(_reload(User, p.id).balance == Decimal('100.00') for p in players)

    with pytest.raises(AlreadyClaimed):
        ledger.refund_entries(admin, started_game)


def test_refund_rejected_when_game_has_winner(admin, started_game, players):
    ledger.finish_with_winner(started_game, players[0].id)
    with pytest.raises(StateConflict):
        ledger.refund_entries(admin, started_game)


def test_audit_balances_match_history(admin, started_game, players):
    ledger.admin_add_balance(admin, players[1].id, '7.25')
    ledger.finish_with_winner(started_game, players[0].id)
    ledger.claim_prize(started_game, players[0].id)

    for player in players:
        assert ledger.audit_user(player.id) == Decimal('0')
    assert ledger.audit_all() == []


def test_audit_reports_direct_balance_writes(make_user):
    user = make_user(balance='10.00')
    User.query.filter_by(id=user.id).update({User.balance: Decimal('99.00')})
    db.session.commit()
    assert ledger.audit_user(user.id) == Decimal('89.00')
    assert ledger.audit_all() == [(user.id, Decimal('89.00'))]
