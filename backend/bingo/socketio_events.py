from flask_socketio import join_room, leave_room, emit

from bingo import socketio
from bingo.services.games.events import NAMESPACE, game_channel, room_channel


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def _channel_for(data, key, channel):
    ident = (data or {}).get(key)
    if ident is None:
        emit('error', {'message': f'{key} is required'})
        return None
    return channel(ident)


def handle_subscribe_room(data):
    channel = _channel_for(data, 'room_id', room_channel)
    if channel:
        join_room(channel)
        emit('subscribed', {'room': channel})


def handle_unsubscribe_room(data):
    channel = _channel_for(data, 'room_id', room_channel)
    if channel:
        leave_room(channel)
        emit('unsubscribed', {'room': channel})


def handle_subscribe_game(data):
    channel = _channel_for(data, 'game_id', game_channel)
    if channel:
        join_room(channel)
        emit('subscribed', {'room': channel})


def handle_unsubscribe_game(data):
    channel = _channel_for(data, 'game_id', game_channel)
    if channel:
        leave_room(channel)
        emit('unsubscribed', {'room': channel})


def handle_ping(data):
    emit('pong', data or {})


_HANDLERS = {
    'connect': handle_connect,
    'subscribe_room': handle_subscribe_room,
    'unsubscribe_room': handle_unsubscribe_room,
    'subscribe_game': handle_subscribe_game,
    'unsubscribe_game': handle_unsubscribe_game,
    'ping': handle_ping,
}


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for event, handler in _HANDLERS.items():
        socketio.on_event(event, handler, namespace=NAMESPACE)

    if testing:
        # Test-only mirror on default namespace
        for event, handler in _HANDLERS.items():
            socketio.on_event(event, handler, namespace='/')
