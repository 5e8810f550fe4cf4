from flask import Blueprint
from flask_login import current_user

from bingo.api import body, ok
from bingo.auth import admin_required
from bingo.services import accounts, catalog
from bingo.services.games import ledger, sessions

admin = Blueprint('admin', __name__)


# ---- game modes ----

@admin.route('/modes', methods=['GET'])
@admin_required
def list_modes():
    return ok([m.to_dict() for m in catalog.list_modes()])


@admin.route('/modes', methods=['POST'])
@admin_required
def create_mode():
    return ok(catalog.create_mode(current_user, body()).to_dict(), 201)


@admin.route('/modes/<int:mode_id>', methods=['PUT'])
@admin_required
def update_mode(mode_id):
    return ok(catalog.update_mode(current_user, mode_id, body()).to_dict())


@admin.route('/modes/<int:mode_id>', methods=['DELETE'])
@admin_required
def delete_mode(mode_id):
    catalog.delete_mode(current_user, mode_id)
    return ok({'deleted': mode_id})


# ---- rooms ----

@admin.route('/rooms', methods=['GET'])
@admin_required
def list_rooms():
    return ok([r.to_dict() for r in catalog.list_rooms()])


@admin.route('/rooms', methods=['POST'])
@admin_required
def create_room():
    return ok(catalog.create_room(current_user, body()).to_dict(), 201)


@admin.route('/rooms/<int:room_id>', methods=['PUT'])
@admin_required
def update_room(room_id):
    return ok(catalog.update_room(current_user, room_id, body()).to_dict())


@admin.route('/rooms/<int:room_id>', methods=['DELETE'])
@admin_required
def delete_room(room_id):
    catalog.delete_room(current_user, room_id)
    return ok({'deleted': room_id})


# ---- games ----

@admin.route('/games', methods=['GET'])
@admin_required
def list_open_games():
    return ok(sessions.open_games())


@admin.route('/games/<int:game_id>/start', methods=['POST'])
@admin_required
def start_game(game_id):
    return ok(sessions.start_game(current_user, game_id).to_dict())


@admin.route('/games/<int:game_id>/pause', methods=['POST'])
@admin_required
def pause_game(game_id):
    return ok(sessions.pause(current_user, game_id))


@admin.route('/games/<int:game_id>/resume', methods=['POST'])
@admin_required
def resume_game(game_id):
    return ok(sessions.resume(current_user, game_id))


@admin.route('/games/<int:game_id>/draw', methods=['POST'])
@admin_required
def draw_number(game_id):
    return ok(sessions.draw_now(current_user, game_id).to_dict(), 201)


@admin.route('/games/<int:game_id>/finish', methods=['POST'])
@admin_required
def finish_game(game_id):
    winner_id = body().get('winner_id')
    return ok(sessions.force_finish(current_user, game_id, winner_id).to_dict())


@admin.route('/games/<int:game_id>/refund', methods=['POST'])
@admin_required
def refund_game(game_id):
    return ok(sessions.refund(current_user, game_id).to_dict())


# ---- users ----

@admin.route('/users', methods=['GET'])
@admin_required
def list_users():
    return ok([u.to_dict() for u in accounts.list_users()])


@admin.route('/users/<int:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    data = body()
    user = accounts.admin_update_profile(
        current_user, user_id,
        full_name=data.get('full_name'),
        phone=data.get('phone'),
        role=data.get('role'),
    )
    return ok(user.to_dict())


@admin.route('/users/<int:user_id>/balance', methods=['POST'])
@admin_required
def add_balance(user_id):
    receipt = ledger.admin_add_balance(current_user, user_id, body().get('amount'))
    return ok(receipt.to_dict(), 201)


@admin.route('/users/<int:user_id>/audit', methods=['GET'])
@admin_required
def audit_user(user_id):
    discrepancy = ledger.audit_user(user_id)
    return ok({'user_id': user_id, 'discrepancy': float(discrepancy), 'consistent': discrepancy == 0})
