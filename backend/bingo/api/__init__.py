"""HTTP envelope shared by every blueprint.

Success: ``{"ok": true, "result": ...}``
Failure: ``{"ok": false, "error": {"kind": ..., "message": ..., "details": ...}}``
"""
from flask import jsonify, request, current_app

from bingo import login_manager
from bingo.errors import BingoError


def ok(result=None, status=200):
    return jsonify({'ok': True, 'result': result}), status


def fail(kind, message, status, details=None):
    error = {'kind': kind, 'message': message}
    if details:
        error['details'] = details
    return jsonify({'ok': False, 'error': error}), status


def body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(flask_app) -> None:
    @flask_app.errorhandler(BingoError)
    def handle_bingo_error(exc):
        current_app.logger.info(f"[error] {request.method} {request.path} {exc.kind}: {exc.message}")
        payload = exc.to_dict()
        return fail(payload['kind'], payload['message'], exc.status_code, payload.get('details'))

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        return fail('NotAuthorized', 'Login required', 401)
