from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from quizarena import bridge
from quizarena.errors import QuizError
from quizarena.services.lobby import RoomLobbyController, build_lobby_view
from quizarena.services.settings import GameSettings

rooms = Blueprint('rooms', __name__)


def _controller() -> RoomLobbyController:
    return RoomLobbyController(bridge, current_user.id, current_user.username)


def _default_settings() -> GameSettings:
    cfg = current_app.config
    return GameSettings(
        num_questions=int(cfg.get('DEFAULT_NUM_QUESTIONS', 10)),
        time_limit=int(cfg.get('DEFAULT_TIME_LIMIT_SEC', 30)),
        max_players=int(cfg.get('DEFAULT_MAX_PLAYERS', 4)),
    )


def _error(exc: QuizError):
    return jsonify(exc.to_dict()), exc.status_code


@rooms.route('/create', methods=['POST'])
@login_required
def create_room():
    data = request.get_json(silent=True) or {}
    try:
        settings = GameSettings.from_dict(data, defaults=_default_settings())
    except QuizError as exc:
        return _error(exc)
    result = _controller().create_room(data.get('name'), settings)
    if not result.ok:
        return _error(result.error)
    room = bridge.select_one('rooms', id=result.value)
    return jsonify({'message': 'Room created!', 'room_id': result.value, 'code': room['code']}), 201


@rooms.route('/join', methods=['POST'])
@login_required
def join_room():
    data = request.get_json(silent=True) or {}
    result = _controller().join_room(data.get('code'))
    if not result.ok:
        return _error(result.error)
    return jsonify({'room_id': result.value})


@rooms.route('/<int:room_id>/ready', methods=['POST'])
@login_required
def toggle_ready(room_id):
    result = _controller().toggle_ready(room_id)
    if not result.ok:
        return _error(result.error)
    return jsonify({'is_ready': result.value})


@rooms.route('/<int:room_id>/start', methods=['POST'])
@login_required
def start_game(room_id):
    result = _controller().start_game(room_id)
    if not result.ok:
        return _error(result.error)
    current_app.logger.info(f"[api-start] room={room_id} session={result.value} by={current_user.id}")
    return jsonify({'session_id': result.value})


@rooms.route('/<int:room_id>/leave', methods=['POST'])
@login_required
def leave_room(room_id):
    result = _controller().leave_room(room_id)
    if not result.ok:
        return _error(result.error)
    return jsonify({'message': 'Left room'})


@rooms.route('/<int:room_id>/state', methods=['GET'])
@login_required
def get_room_state(room_id):
    try:
        view = build_lobby_view(bridge, room_id, current_user.id)
    except QuizError as exc:
        return _error(exc)
    payload = view.to_dict()
    session = bridge.select_one('game_sessions', room_id=room_id, status='active')
    payload['session_id'] = session['id'] if session else None
    return jsonify(payload)
