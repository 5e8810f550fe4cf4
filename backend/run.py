from bingo import create_app, socketio
from bingo.services.games.scheduler import recover_draws

app = create_app()

if __name__ == '__main__':
    # Draw timers are owned by the server process; pick up games that were
    # in progress when it last stopped.
    if app.config.get('RESUME_DRAWS_ON_START'):
        recover_draws(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True, use_reloader=False)
