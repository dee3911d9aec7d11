from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from quizarena import bridge
from quizarena.errors import QuizError, NotFound
from quizarena.services.session import GameSessionController
from quizarena.services.settings import GameSettings
from quizarena.services.timers import BackgroundScheduler

play = Blueprint('play', __name__)


def _registry() -> dict:
    # (session_id, user_id) -> hosted GameSessionController, per app
    return current_app.extensions.setdefault('quiz_games', {})


def _new_controller(user_id) -> GameSessionController:
    from quizarena.socketio_events import emit_game_state
    app = current_app._get_current_object()
    cfg = app.config
    return GameSessionController(
        bridge,
        user_id,
        BackgroundScheduler(app),
        points_per_correct=int(cfg.get('POINTS_PER_CORRECT', 10)),
        reveal_delay=float(cfg.get('ANSWER_REVEAL_DELAY_SEC', 1)),
        listener=lambda ctl: emit_game_state(user_id, ctl.snapshot()),
    )


def _hosted(session_id) -> GameSessionController:
    controller = _registry().get((session_id, current_user.id))
    if controller is None:
        raise NotFound('Game not loaded for this player')
    return controller


def _error(exc: QuizError):
    return jsonify(exc.to_dict()), exc.status_code


def _prune_finished() -> int:
    """Drop hosted games that are over for everyone they were following.

    Their final state already went out in the finishing answer's response
    and the ``game_state`` push.
    """
    registry = _registry()
    done = [key for key, controller in registry.items() if controller.is_done]
    for key in done:
        registry.pop(key).close()
    if done:
        current_app.logger.debug(f"[api-prune] evicted={len(done)} hosted={len(registry)}")
    return len(done)


def _load(**selector):
    _prune_finished()
    controller = _new_controller(current_user.id)
    result = controller.load_session(**selector)
    if not result.ok:
        controller.close()
        return _error(result.error)
    session_id = result.value.session['id']
    previous = _registry().pop((session_id, current_user.id), None)
    if previous is not None:
        previous.close()
    _registry()[(session_id, current_user.id)] = controller
    current_app.logger.info(f"[api-load] session={session_id} user={current_user.id}")
    return jsonify(controller.snapshot()), 201


@play.route('/solo', methods=['POST'])
@login_required
def start_solo():
    cfg = current_app.config
    defaults = GameSettings(
        num_questions=int(cfg.get('DEFAULT_NUM_QUESTIONS', 10)),
        time_limit=int(cfg.get('DEFAULT_TIME_LIMIT_SEC', 30)),
    )
    try:
        settings = GameSettings.from_dict(request.get_json(silent=True) or {}, defaults=defaults)
    except QuizError as exc:
        return _error(exc)
    return _load(settings=settings)


@play.route('/room/<int:room_id>', methods=['POST'])
@login_required
def join_room_game(room_id):
    session = bridge.select_one('game_sessions', room_id=room_id, status='active')
    if session:
        existing = _registry().get((session['id'], current_user.id))
        if existing is not None:
            return jsonify(existing.snapshot())
    return _load(room_id=room_id)


@play.route('/<int:session_id>/state', methods=['GET'])
@login_required
def get_state(session_id):
    try:
        controller = _hosted(session_id)
    except QuizError as exc:
        return _error(exc)
    return jsonify(controller.snapshot())


@play.route('/<int:session_id>/answer', methods=['POST'])
@login_required
def submit_answer(session_id):
    data = request.get_json(silent=True) or {}
    try:
        controller = _hosted(session_id)
    except QuizError as exc:
        return _error(exc)
    result = controller.submit_answer(data.get('answer'))
    if not result.ok:
        return _error(result.error)
    return jsonify({'accepted': result.value, 'state': controller.snapshot()})


@play.route('/<int:session_id>/leave', methods=['POST'])
@login_required
def leave_game(session_id):
    controller = _registry().pop((session_id, current_user.id), None)
    if controller is None:
        return _error(NotFound('Game not loaded for this player'))
    controller.close()
    return jsonify({'message': 'Left game'})
