"""Money movements: entry purchase, prize payout, deposits, refunds and settlement.

Every public operation here is a single unit of work (``@transactional``):
rows are read ``FOR UPDATE`` and the balance/prize-pool mutations are
conditional updates, so a concurrent caller either sees the effect or the
conflict, never half of it. Each balance change writes exactly one
``Transaction`` row.
"""
import json
from dataclasses import dataclass, asdict, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from flask import current_app
from sqlalchemy import func

from bingo import db
from bingo.auth import ensure_admin
from bingo.database import transactional
from bingo.errors import (
    AlreadyClaimed,
    AlreadyPaid,
    InsufficientBalance,
    NotFound,
    NotWinner,
    StateConflict,
    ValidationError,
)
from bingo.models import (
    OPEN_STATUSES,
    BingoCard,
    Game,
    GameParticipant,
    Transaction,
    User,
    utcnow,
)
from .cards import generate_card

CENT = Decimal('0.01')


def to_amount(value) -> Decimal:
    """Parse a money amount, rounded to cents."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT)


class _Receipt:
    def to_dict(self):
        return {k: float(v) if isinstance(v, Decimal) else v for k, v in asdict(self).items()}


@dataclass
class EntryReceipt(_Receipt):
    game_id: int
    user_id: int
    amount: Decimal
    new_balance: Decimal
    prize_pool: Decimal
    card_id: int


@dataclass
class PrizeReceipt(_Receipt):
    game_id: int
    user_id: int
    prize_amount: Decimal
    new_balance: Decimal


@dataclass
class DepositReceipt(_Receipt):
    user_id: int
    amount_added: Decimal
    new_balance: Decimal


@dataclass
class RefundReceipt(_Receipt):
    game_id: int
    total: Decimal
    refunds: List[dict] = field(default_factory=list)

    def to_dict(self):
        return {
            'game_id': self.game_id,
            'total': float(self.total),
            'refunds': [{'user_id': r['user_id'], 'amount': float(r['amount'])} for r in self.refunds],
        }


# ---- row helpers (must run inside a transactional operation) ----

def _locked_game(game_id) -> Game:
    game = Game.query.filter_by(id=game_id).with_for_update().first()
    if game is None:
        raise NotFound('Game', game_id)
    return game


def _balance_of(user_id) -> Decimal:
    return db.session.query(User.balance).filter(User.id == user_id).scalar()


def _credit(user_id, amount: Decimal) -> None:
    updated = User.query.filter(User.id == user_id).update(
        {User.balance: User.balance + amount}, synchronize_session=False)
    if updated != 1:
        raise NotFound('User', user_id)


def _debit(user_id, amount: Decimal) -> None:
    updated = User.query.filter(User.id == user_id, User.balance >= amount).update(
        {User.balance: User.balance - amount}, synchronize_session=False)
    if updated != 1:
        balance = _balance_of(user_id)
        if balance is None:
            raise NotFound('User', user_id)
        raise InsufficientBalance(balance=float(balance), required=float(amount))


def _record(user_id, game_id, kind: str, amount: Decimal, description: str) -> Transaction:
    tx = Transaction(
        user_id=user_id,
        game_id=game_id,
        type=kind,
        amount=amount,
        balance_after=_balance_of(user_id),
        description=description,
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def _close(game_id, values=None) -> None:
    """Flip an open game to finished; only one caller can ever win this."""
    values = dict(values or {})
    values.update({Game.status: 'finished', Game.finished_at: utcnow()})
    updated = Game.query.filter(Game.id == game_id, Game.status.in_(OPEN_STATUSES)).update(
        values, synchronize_session=False)
    if updated != 1:
        raise StateConflict(f"Game {game_id} is already finished")


def _count_game_played(game_id) -> None:
    user_ids = [uid for (uid,) in db.session.query(GameParticipant.user_id).filter_by(game_id=game_id)]
    if user_ids:
        User.query.filter(User.id.in_(user_ids)).update(
            {User.games_played: User.games_played + 1}, synchronize_session=False)


# ---- operations ----

@transactional
def purchase_entry(game_id, user_id, rng=None) -> EntryReceipt:
    """Debit the entry fee, grow the prize pool, mark the participant paid and deal a card."""
    game = _locked_game(game_id)
    if not game.is_open:
        raise StateConflict(f"Game {game_id} is already finished")
    participant = GameParticipant.query.filter_by(game_id=game_id, user_id=user_id).with_for_update().first()
    if participant is None:
        raise NotFound('Participant', user_id)
    if participant.paid_entry:
        raise AlreadyPaid(balance=float(_balance_of(user_id)))

    cost = game.entry_cost
    flipped = GameParticipant.query.filter_by(id=participant.id, paid_entry=False).update(
        {GameParticipant.paid_entry: True}, synchronize_session=False)
    if flipped != 1:
        raise AlreadyPaid(balance=float(_balance_of(user_id)))
    _debit(user_id, cost)
    grown = Game.query.filter(Game.id == game_id, Game.status.in_(OPEN_STATUSES)).update(
        {Game.prize_pool: Game.prize_pool + cost}, synchronize_session=False)
    if grown != 1:
        raise StateConflict(f"Game {game_id} is already finished")
    tx = _record(user_id, game_id, 'entry_fee', cost, f"Entry fee for game {game_id}")

    card = BingoCard(game_id=game_id, user_id=user_id, numbers=json.dumps(generate_card(rng)), marked_numbers='[]')
    db.session.add(card)
    db.session.flush()

    pool = db.session.query(Game.prize_pool).filter(Game.id == game_id).scalar()
    current_app.logger.info(f"[ledger] entry game={game_id} user={user_id} amount={cost} balance={tx.balance_after}")
    return EntryReceipt(game_id=game_id, user_id=user_id, amount=cost, new_balance=tx.balance_after,
                        prize_pool=pool, card_id=card.id)


@transactional
def claim_prize(game_id, user_id) -> PrizeReceipt:
    """Pay the whole prize pool to the recorded winner, once."""
    game = _locked_game(game_id)
    if game.winner_id is None or game.winner_id != user_id:
        raise NotWinner()
    prize = game.prize_pool
    if prize is None or prize <= 0:
        raise AlreadyClaimed()
    emptied = Game.query.filter(Game.id == game_id, Game.winner_id == user_id, Game.prize_pool > 0).update(
        {Game.prize_pool: Decimal('0')}, synchronize_session=False)
    if emptied != 1:
        raise AlreadyClaimed()
    _credit(user_id, prize)
    tx = _record(user_id, game_id, 'prize_win', prize, f"Prize for game {game_id}")
    current_app.logger.info(f"[ledger] prize game={game_id} user={user_id} amount={prize} balance={tx.balance_after}")
    return PrizeReceipt(game_id=game_id, user_id=user_id, prize_amount=prize, new_balance=tx.balance_after)


@transactional
def finish_with_winner(game_id, winner_id, pattern: Optional[str] = None) -> Game:
    """Settle an in-progress game in favour of ``winner_id``."""
    game = _locked_game(game_id)
    if game.status == 'waiting':
        raise StateConflict(f"Game {game_id} has not started; it cannot have a winner")
    if not GameParticipant.query.filter_by(game_id=game_id, user_id=winner_id).first():
        raise NotFound('Participant', winner_id)
    _close(game_id, {Game.winner_id: winner_id, Game.win_pattern: pattern or game.pattern_type})
    win_points = int(current_app.config.get('WIN_POINTS', 10))
    User.query.filter(User.id == winner_id).update(
        {User.wins: User.wins + 1, User.points: User.points + win_points}, synchronize_session=False)
    _count_game_played(game_id)
    current_app.logger.info(f"[finish] game={game_id} winner={winner_id} pattern={pattern or game.pattern_type}")
    return game


@transactional
def finish_without_winner(game_id) -> Game:
    game = _locked_game(game_id)
    _close(game_id)
    _count_game_played(game_id)
    current_app.logger.info(f"[finish] game={game_id} winner=none")
    return game


@transactional
def admin_add_balance(admin, user_id, amount) -> DepositReceipt:
    ensure_admin(admin)
    amount = to_amount(amount)
    if amount <= 0:
        raise ValidationError('Amount must be greater than zero')
    _credit(user_id, amount)
    tx = _record(user_id, None, 'deposit', amount, f"Deposit by admin {admin.id}")
    current_app.logger.info(f"[ledger] deposit user={user_id} amount={amount} by={admin.id} balance={tx.balance_after}")
    return DepositReceipt(user_id=user_id, amount_added=amount, new_balance=tx.balance_after)


@transactional
def refund_entries(admin, game_id) -> RefundReceipt:
    """Return entry fees of a game that ended without a winner."""
    ensure_admin(admin)
    game = _locked_game(game_id)
    if game.status != 'finished' or game.winner_id is not None:
        raise StateConflict('Only games finished without a winner can be refunded')
    if game.prize_pool is None or game.prize_pool <= 0:
        raise AlreadyClaimed('Entries already refunded')
    emptied = Game.query.filter(Game.id == game_id, Game.winner_id.is_(None), Game.prize_pool > 0).update(
        {Game.prize_pool: Decimal('0')}, synchronize_session=False)
    if emptied != 1:
        raise AlreadyClaimed('Entries already refunded')

    fees = (
        db.session.query(Transaction.user_id, func.sum(Transaction.amount))
        .filter(Transaction.game_id == game_id, Transaction.type == 'entry_fee')
        .group_by(Transaction.user_id)
        .order_by(Transaction.user_id)
        .all()
    )
    receipt = RefundReceipt(game_id=game_id, total=Decimal('0'))
    for user_id, paid in fees:
        paid = Decimal(paid).quantize(CENT)
        _credit(user_id, paid)
        _record(user_id, game_id, 'refund', paid, f"Refund for game {game_id}")
        receipt.refunds.append({'user_id': user_id, 'amount': paid})
        receipt.total += paid
    current_app.logger.info(f"[ledger] refund game={game_id} total={receipt.total} users={len(receipt.refunds)}")
    return receipt


def audit_user(user_id) -> Decimal:
    """Balance minus what the transaction history says it should be (0 when consistent)."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound('User', user_id)
    history = sum((tx.signed_amount for tx in Transaction.query.filter_by(user_id=user_id)), Decimal('0'))
    return (user.balance - user.starting_balance - history).quantize(CENT)


def audit_all() -> List[Tuple[int, Decimal]]:
    mismatches = []
    for (user_id,) in db.session.query(User.id).order_by(User.id):
        discrepancy = audit_user(user_id)
        if discrepancy != 0:
            mismatches.append((user_id, discrepancy))
    return mismatches
