"""Room lobby: membership, readiness and the synchronized game start.

Room state lives only in the store. :class:`RoomLobbyController` performs the
writes for one acting user; :class:`LobbyWatcher` is the read side, a reducer
that rebuilds a :class:`LobbyView` from fresh reads whenever the bridge
reports a change to the room or its players.

None of the multi-row sequences here are transactional. Two joiners can both
pass the capacity check, and a player can join between session creation and
the room going active; both are accepted.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from quizarena.errors import (
    DuplicateKey, NotFound, NotReady, PermissionDenied, RoomFull, ValidationError, returns_result,
)
from quizarena.services.bridge import ChangeBridge
from quizarena.services.settings import GameSettings

logger = logging.getLogger(__name__)


def generate_room_code() -> str:
    """6-digit share code. Not checked for collisions."""
    return str(random.randint(100000, 999999))


class RoomLobbyController:

    def __init__(self, bridge: ChangeBridge, user_id: int, username: str):
        self.bridge = bridge
        self.user_id = user_id
        self.username = username

    def _room(self, room_id) -> dict:
        room = self.bridge.select_one('rooms', id=room_id)
        if not room:
            raise NotFound('Room not found')
        return room

    def _membership(self, room_id) -> Optional[dict]:
        return self.bridge.select_one('room_players', room_id=room_id, user_id=self.user_id)

    @returns_result
    def create_room(self, name: str, settings: Optional[GameSettings] = None) -> int:
        if name is not None and not isinstance(name, str):
            raise ValidationError('Room name must be text')
        if not (name or '').strip():
            raise ValidationError('Please enter a room name')
        settings = settings or GameSettings()
        settings.validate()

        code = generate_room_code()
        room = self.bridge.insert('rooms', {
            'code': code,
            'name': name.strip(),
            'creator_id': self.user_id,
            'max_players': settings.max_players,
            'num_questions': settings.num_questions,
            'time_limit': settings.time_limit,
            'category': settings.category,
            'difficulty': settings.difficulty,
            'status': 'waiting',
        })[0]
        # Only after the room exists; a failure here is surfaced as-is
        self.bridge.insert('room_players', {
            'room_id': room['id'],
            'user_id': self.user_id,
            'username': self.username,
            'is_ready': True,
            'is_creator': True,
        })
        logger.info(f"[room-create] room={room['id']} code={code} creator={self.user_id}")
        return room['id']

    @returns_result
    def join_room(self, code: str) -> int:
        # Codes are all digits, so JSON clients may send them as numbers
        code = str(code).strip() if code is not None else ''
        if not code:
            raise ValidationError('Please enter a room code')
        room = self.bridge.select_one('rooms', code=code, status='waiting')
        if not room:
            raise NotFound('Room not found or no longer accepting players')

        if self._membership(room['id']):
            return room['id']

        if self.bridge.count('room_players', room_id=room['id']) >= room['max_players']:
            raise RoomFull('Room is full')

        try:
            self.bridge.insert('room_players', {
                'room_id': room['id'],
                'user_id': self.user_id,
                'username': self.username,
                'is_ready': False,
                'is_creator': False,
            })
        except DuplicateKey:
            # A concurrent join by the same user got there first
            logger.info(f"[room-join-dup] room={room['id']} user={self.user_id}")
            return room['id']
        logger.info(f"[room-join] room={room['id']} user={self.user_id}")
        return room['id']

    @returns_result
    def toggle_ready(self, room_id) -> bool:
        player = self._membership(room_id)
        if not player:
            raise NotFound('You are not in this room')
        if player['is_creator']:
            # The creator is always ready
            if not player['is_ready']:
                self.bridge.update('room_players', {'is_ready': True}, id=player['id'])
            return True
        new_state = not player['is_ready']
        self.bridge.update('room_players', {'is_ready': new_state}, id=player['id'])
        return new_state

    @returns_result
    def start_game(self, room_id) -> int:
        room = self._room(room_id)
        player = self._membership(room_id)
        if not player:
            raise NotFound('You are not in this room')
        if not player['is_creator']:
            raise PermissionDenied('Only the room creator can start the game')

        if room['status'] == 'active':
            existing = self.bridge.select_one('game_sessions', room_id=room_id, status='active')
            if existing:
                return existing['id']
        elif room['status'] != 'waiting':
            raise ValidationError('This room is no longer open')

        players = self.bridge.select('room_players', room_id=room_id)
        if any(not p['is_ready'] for p in players):
            raise NotReady('All players must be ready to start the game')

        session = self.bridge.insert('game_sessions', {
            'creator_id': self.user_id,
            'room_id': room_id,
            'is_multiplayer': True,
            'time_limit': room['time_limit'],
            'num_questions': room['num_questions'],
            'category': room['category'],
            'difficulty': room['difficulty'],
            'status': 'active',
        })[0]
        self.bridge.insert('player_scores', [
            {'session_id': session['id'], 'user_id': p['user_id'], 'score': 0, 'completed': False}
            for p in players
        ])
        # Flip last so anyone notified of 'active' can already load the session
        self.bridge.update('rooms', {'status': 'active'}, id=room_id)
        logger.info(f"[room-start] room={room_id} session={session['id']} players={len(players)}")
        return session['id']

    @returns_result
    def leave_room(self, room_id) -> None:
        player = self._membership(room_id)
        if player and player['is_creator']:
            self.bridge.update('rooms', {'status': 'closed'}, id=room_id)
            self.bridge.delete('room_players', room_id=room_id)
            logger.info(f"[room-close] room={room_id} by={self.user_id}")
            return None
        self.bridge.delete('room_players', room_id=room_id, user_id=self.user_id)
        logger.info(f"[room-leave] room={room_id} user={self.user_id}")
        return None


@dataclass
class LobbyView:
    room: Optional[dict] = None
    players: List[dict] = field(default_factory=list)
    is_ready: bool = False
    is_creator: bool = False
    game_started: bool = False
    closed: bool = False

    def to_dict(self):
        return {
            'room': self.room,
            'players': self.players,
            'is_ready': self.is_ready,
            'is_creator': self.is_creator,
            'game_started': self.game_started,
            'closed': self.closed,
        }


def build_lobby_view(bridge: ChangeBridge, room_id, user_id) -> LobbyView:
    room = bridge.select_one('rooms', id=room_id)
    if not room:
        raise NotFound('Room not found')
    players = bridge.select('room_players', room_id=room_id)
    me = next((p for p in players if p['user_id'] == user_id), None)
    return LobbyView(
        room=room,
        players=players,
        is_ready=bool(me and me['is_ready']),
        is_creator=bool(me and me['is_creator']),
        game_started=room['status'] == 'active',
        closed=room['status'] == 'closed',
    )


class LobbyWatcher:
    """Keeps a LobbyView current for one user by re-reading on every change.

    This is the read side for clients embedded in the same process. Browser
    clients get the same result from ``GET /api/rooms/<id>/state`` plus the
    ``rooms`` and ``room_players`` channels on ``/ws``.
    """

    def __init__(self, bridge: ChangeBridge, room_id, user_id,
                 listener: Optional[Callable[[LobbyView], None]] = None):
        self.bridge = bridge
        self.room_id = room_id
        self.user_id = user_id
        self.listener = listener
        self.view = LobbyView()
        self._subs = []

    @property
    def is_open(self) -> bool:
        return bool(self._subs)

    def open(self) -> LobbyView:
        if self._subs:
            return self.view
        # Subscribe before the first read so nothing between them is missed
        self._subs = [
            self.bridge.subscribe('rooms', self._on_change, id=self.room_id),
            self.bridge.subscribe('room_players', self._on_change, room_id=self.room_id),
        ]
        try:
            self.refresh()
        except Exception:
            self.close()
            raise
        return self.view

    def refresh(self) -> LobbyView:
        self.view = build_lobby_view(self.bridge, self.room_id, self.user_id)
        if self.listener:
            self.listener(self.view)
        return self.view

    def _on_change(self, change) -> None:
        if not self._subs:
            return
        self.refresh()

    def close(self) -> None:
        for sub in self._subs:
            sub.unsubscribe()
        self._subs = []
