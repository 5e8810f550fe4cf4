from flask import Blueprint
from flask_login import current_user, login_required

from bingo.api import body, ok
from bingo.services.games import sessions

games = Blueprint('games', __name__)


@games.route('/rooms', methods=['GET'])
def list_rooms():
    return ok(sessions.lobby_rooms())


@games.route('/open', methods=['GET'])
def list_open_games():
    return ok(sessions.open_games())


@games.route('/rooms/<int:room_id>/join', methods=['POST'])
@login_required
def join_room(room_id):
    participant = sessions.join_room(current_user, room_id)
    return ok({
        'participant': participant.to_dict(),
        'game': sessions.game_state(participant.game_id, viewer=current_user),
    }, 201)


@games.route('/<int:game_id>/state', methods=['GET'])
def get_game_state(game_id):
    viewer = current_user if current_user.is_authenticated else None
    return ok(sessions.game_state(game_id, viewer=viewer))


@games.route('/<int:game_id>/called', methods=['GET'])
def get_called_numbers(game_id):
    return ok(sessions.game_state(game_id)['called_numbers'])


@games.route('/<int:game_id>/entry', methods=['POST'])
@login_required
def purchase_entry(game_id):
    receipt = sessions.purchase_entry(current_user, game_id)
    return ok(receipt.to_dict(), 201)


@games.route('/<int:game_id>/card', methods=['GET'])
@login_required
def get_card(game_id):
    return ok(sessions.game_state(game_id, viewer=current_user)['card'])


@games.route('/<int:game_id>/mark', methods=['POST'])
@login_required
def mark_number(game_id):
    card = sessions.mark_number(current_user, game_id, body().get('number'))
    return ok(card.to_dict())


@games.route('/<int:game_id>/bingo', methods=['POST'])
@login_required
def claim_bingo(game_id):
    game = sessions.claim_bingo(current_user, game_id)
    return ok(game.to_dict())


@games.route('/<int:game_id>/prize', methods=['POST'])
@login_required
def claim_prize(game_id):
    receipt = sessions.claim_prize(current_user, game_id)
    return ok(receipt.to_dict())
