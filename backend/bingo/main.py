from flask import Blueprint
from flask_login import current_user, login_required, login_user, logout_user

from bingo.api import body, ok
from bingo.models import Transaction
from bingo.services import accounts

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return ok({'message': 'Welcome to the bingo game server!'})


@main.route('/register', methods=['POST'])
def register():
    data = body()
    user = accounts.register(data.get('email'), data.get('password'), data.get('full_name'), data.get('phone'))
    login_user(user)
    return ok(user.to_dict(), 201)


@main.route('/login', methods=['POST'])
def login():
    data = body()
    user = accounts.authenticate(data.get('email'), data.get('password'))
    login_user(user, remember=True)
    return ok(user.to_dict())


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return ok({'message': 'Logged out successfully.'})


@main.route('/check_login', methods=['GET'])
@login_required
def check_login():
    return ok(current_user.to_dict())


@main.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    data = body()
    user = accounts.update_own_profile(current_user, data.get('full_name'), data.get('phone'))
    return ok(user.to_dict())


@main.route('/transactions', methods=['GET'])
@login_required
def list_transactions():
    txs = (Transaction.query.filter_by(user_id=current_user.id)
           .order_by(Transaction.created_at.desc(), Transaction.id.desc())
           .all())
    return ok([tx.to_dict() for tx in txs])
