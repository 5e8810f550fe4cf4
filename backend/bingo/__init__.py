from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from decimal import Decimal
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import and register blueprints here
    from bingo.main import main
    flask_app.register_blueprint(main)

    from bingo.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from bingo.api.admin import admin
    flask_app.register_blueprint(admin, url_prefix='/api/admin')

    # Every taxonomy error leaves the HTTP layer as a tagged failure envelope
    from bingo.api import register_error_handlers
    register_error_handlers(flask_app)

    from bingo.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from bingo.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from bingo.models import GameMode, Room
        from bingo.services.games.patterns import PATTERN_TYPES
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            starting = Decimal(str(flask_app.config.get('STARTING_BALANCE', '0')))
            admin_user = User(email='admin@bingo.local', full_name='Admin', role='admin',
                              balance=starting, starting_balance=starting)
            admin_user.set_password('password')
            db.session.add(admin_user)
            for n in range(1, 4):
                user = User(email=f'player{n}@bingo.local', full_name=f'Player {n}',
                            balance=starting, starting_balance=starting)
                user.set_password('password')
                db.session.add(user)
            db.session.flush()

            # One mode per win pattern, and a room for the simplest two
            interval = int(flask_app.config.get('DEFAULT_BALL_INTERVAL_SEC', 5))
            max_players = int(flask_app.config.get('DEFAULT_MAX_PLAYERS', 10))
            modes = {}
            for pattern in PATTERN_TYPES:
                mode = GameMode(name=pattern.replace('_', ' ').title(), pattern_type=pattern,
                                max_players=max_players, ball_interval_seconds=interval,
                                created_by=admin_user.id)
                db.session.add(mode)
                modes[pattern] = mode
            db.session.flush()

            entry_cost = Decimal(str(flask_app.config.get('DEFAULT_ENTRY_COST', '10.00')))
            min_players = int(flask_app.config.get('DEFAULT_MIN_PLAYERS', 3))
            for pattern in ('horizontal_line', 'four_corners'):
                db.session.add(Room(name=f"{modes[pattern].name} Room", game_mode_id=modes[pattern].id,
                                    min_players=min_players, max_players=max_players,
                                    default_entry_cost=entry_cost, created_by=admin_user.id))

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('ledger-audit')
    def ledger_audit_command():
        """Reports users whose balance disagrees with their transaction history."""
        from bingo.services.games.ledger import audit_all
        with flask_app.app_context():
            mismatches = audit_all()
            if not mismatches:
                print('Ledger is consistent.')
                return
            for user_id, discrepancy in mismatches:
                print(f'user={user_id} discrepancy={discrepancy}')
            raise SystemExit(1)

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(ledger_audit_command)

    return flask_app
