from flask_socketio import join_room, leave_room, emit
from flask_login import current_user
from quizarena import socketio, bridge
from quizarena.errors import QuizError
from quizarena.services.bridge import CHANNEL_COLUMNS, channel_name

NAMESPACE = '/ws'


def broadcast_change(change) -> None:
    """Emitter for the bridge: push a row change to every matching channel."""
    for column in CHANNEL_COLUMNS.get(change.table, ()):
        value = change.row.get(column)
        if value is None:
            continue
        socketio.emit('row_change', change.to_dict(), to=channel_name(change.table, column, value), namespace=NAMESPACE)


def emit_game_state(user_id, state) -> None:
    socketio.emit('game_state', state, to=f"user:{user_id}", namespace=NAMESPACE)


def _parse_subscription(data):
    table = (data or {}).get('table')
    filters = (data or {}).get('filter') or {}
    if table not in CHANNEL_COLUMNS:
        return None, None, None, 'Unknown table'
    if len(filters) != 1:
        return None, None, None, 'Exactly one filter column is required'
    column, value = next(iter(filters.items()))
    if column not in CHANNEL_COLUMNS[table]:
        return None, None, None, f"Cannot subscribe to {table} by {column}"
    return table, column, value, None


def handle_connect():
    if current_user.is_authenticated:
        join_room(f"user:{current_user.id}")
    emit('connected', {'message': 'Connected to /ws'})


def handle_subscribe(data):
    table, column, value, error = _parse_subscription(data)
    if error:
        emit('error', {'message': error})
        return
    # Join first, then send the snapshot, so no change falls in between
    join_room(channel_name(table, column, value))
    try:
        rows = bridge.select(table, **{column: value})
    except QuizError as exc:
        emit('error', {'message': exc.message})
        return
    emit('snapshot', {'table': table, 'filter': {column: value}, 'rows': rows})


def handle_unsubscribe(data):
    table, column, value, error = _parse_subscription(data)
    if error:
        emit('error', {'message': error})
        return
    leave_room(channel_name(table, column, value))
    emit('unsubscribed', {'table': table, 'filter': {column: value}})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('subscribe', handle_subscribe, namespace=NAMESPACE)
    socketio.on_event('unsubscribe', handle_unsubscribe, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
