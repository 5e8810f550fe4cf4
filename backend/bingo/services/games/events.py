"""Change notifications pushed to Socket.IO rooms.

Game status and current-ball changes go to ``room:<room_id>``; participant
changes and called numbers go to ``game:<game_id>``. The engine only
publishes into the feed, it never reads from it.
"""
from bingo import socketio

NAMESPACE = '/ws'


def room_channel(room_id) -> str:
    return f"room:{room_id}"


def game_channel(game_id) -> str:
    return f"game:{game_id}"


def publish_game(game) -> None:
    socketio.emit('game_update', game.to_dict(include_players=False), to=room_channel(game.room_id), namespace=NAMESPACE)


def publish_participants(game) -> None:
    payload = {
        'game_id': game.id,
        'participants': [p.to_dict() for p in game.participants],
    }
    socketio.emit('participants_update', payload, to=game_channel(game.id), namespace=NAMESPACE)


def publish_called_number(called) -> None:
    socketio.emit('number_called', called.to_dict(), to=game_channel(called.game_id), namespace=NAMESPACE)
