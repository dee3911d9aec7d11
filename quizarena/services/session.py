"""Question-by-question play for one participant.

The same controller drives solo and multiplayer games; a session bound to a
room adds live score persistence, a leaderboard fed by ``player_scores``
change notifications, and completion detection across all participants.

Per player the phases are ``loading -> playing -> finished``. While playing,
the countdown reaching zero and an answer's delayed advance both go through
``_advance_from(index)``, which only acts if the controller is still on that
index. That keeps a question from being skipped or answered twice.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from quizarena.errors import (
    NoQuestionsAvailable, NotFound, PermissionDenied, PersistenceError, ValidationError, returns_result,
)
from quizarena.services.bridge import ChangeBridge
from quizarena.services.profiles import award_experience
from quizarena.services.rank import next_rank, progress_percent, rank_of
from quizarena.services.settings import GameSettings
from quizarena.services.timers import Scheduler

logger = logging.getLogger(__name__)

LOADING = 'loading'
PLAYING = 'playing'
FINISHED = 'finished'


def select_questions(bridge: ChangeBridge, session: dict) -> List[dict]:
    """Deterministic pick: first ``num_questions`` by id matching the filters."""
    filters = {'difficulty': session['difficulty']}
    if session['category'] != 'all':
        filters['category'] = session['category']
    return bridge.select('questions', limit=session['num_questions'], **filters)


@dataclass
class LoadedSession:
    session: dict
    questions: List[dict]


@dataclass
class GameSummary:
    score: int
    total_questions: int
    exp_gained: int
    percentage: int
    profile: Optional[dict] = None
    old_rank: Optional[str] = None
    new_rank: Optional[str] = None
    rank_up: bool = False
    next_rank: Optional[str] = None
    progress: int = 0

    def to_dict(self):
        return {
            'score': self.score,
            'total_questions': self.total_questions,
            'exp_gained': self.exp_gained,
            'percentage': self.percentage,
            'profile': self.profile,
            'old_rank': self.old_rank,
            'new_rank': self.new_rank,
            'rank_up': self.rank_up,
            'next_rank': self.next_rank,
            'progress': self.progress,
        }


class GameSessionController:

    def __init__(self, bridge: ChangeBridge, user_id: int, scheduler: Scheduler,
                 points_per_correct: int = 10, reveal_delay: float = 1.0,
                 listener: Optional[Callable[['GameSessionController'], None]] = None):
        self.bridge = bridge
        self.user_id = user_id
        self.scheduler = scheduler
        self.points_per_correct = points_per_correct
        self.reveal_delay = reveal_delay
        self.listener = listener

        self.phase = LOADING
        self.session: Optional[dict] = None
        self.questions: List[dict] = []
        self.index = 0
        self.time_left = 0
        self.score = 0
        self.exp_gained = 0
        self.answers: Dict[int, Optional[str]] = {}  # question id -> answer, None on timeout
        self.leaderboard: List[dict] = []
        self.summary: Optional[GameSummary] = None
        self.final_result = None

        self._usernames: Dict[int, str] = {}
        self._countdown = None
        self._pending_advance = None
        self._scores_sub = None
        self._lock = threading.RLock()
        # Leaderboard refreshes come from other players' writes; never hold
        # the main lock there
        self._board_lock = threading.Lock()

    @property
    def is_multiplayer(self) -> bool:
        return bool(self.session and self.session['is_multiplayer'])

    @property
    def current_question(self) -> Optional[dict]:
        if 0 <= self.index < len(self.questions):
            return self.questions[self.index]
        return None

    @property
    def is_done(self) -> bool:
        """Finished and no longer following other players' scores."""
        return self.phase == FINISHED and self._scores_sub is None

    def _notify(self) -> None:
        if self.listener:
            try:
                self.listener(self)
            except Exception:
                logger.exception(f"[listener-failed] user={self.user_id}")

    # ---- loading ----

    def _create_solo_session(self, settings) -> dict:
        if not isinstance(settings, GameSettings):
            settings = GameSettings.from_dict(settings)
        settings.validate()
        session = self.bridge.insert('game_sessions', dict(
            creator_id=self.user_id,
            room_id=None,
            is_multiplayer=False,
            status='active',
            **settings.session_fields()
        ))[0]
        self.bridge.insert('player_scores', {
            'session_id': session['id'],
            'user_id': self.user_id,
            'score': 0,
            'completed': False,
        })
        logger.info(f"[solo-create] session={session['id']} user={self.user_id}")
        return session

    @returns_result
    def load_session(self, session_id=None, room_id=None, settings=None) -> LoadedSession:
        if sum(x is not None for x in (session_id, room_id, settings)) != 1:
            raise ValidationError('Provide exactly one of session_id, room_id or settings')
        with self._lock:
            if self.phase != LOADING:
                raise ValidationError('Session already loaded')

            if settings is not None:
                session = self._create_solo_session(settings)
            elif room_id is not None:
                session = self.bridge.select_one('game_sessions', room_id=room_id, status='active')
                if not session:
                    raise NotFound('No active game for this room')
            else:
                session = self.bridge.select_one('game_sessions', id=session_id)
                if not session:
                    raise NotFound('Game session not found')
                if session['status'] != 'active':
                    raise ValidationError('This game has already finished')

            if not self.bridge.select_one('player_scores', session_id=session['id'], user_id=self.user_id):
                raise PermissionDenied('You are not part of this game')

            questions = select_questions(self.bridge, session)
            if not questions:
                raise NoQuestionsAvailable('There are no questions available for the selected category and difficulty')

            self.session = session
            self.questions = questions
            if self.is_multiplayer:
                self._scores_sub = self.bridge.subscribe(
                    'player_scores', self._on_score_change, session_id=session['id'])
                self._refresh_leaderboard()

            self.phase = PLAYING
            self.index = 0
            logger.info(
                f"[session-load] session={session['id']} user={self.user_id} "
                f"questions={len(questions)} multiplayer={self.is_multiplayer}"
            )
            self.start_timer()
            return LoadedSession(session=session, questions=questions)

    # ---- timing ----

    def start_timer(self, seconds: Optional[int] = None) -> None:
        with self._lock:
            if self.phase != PLAYING:
                return
            self._cancel_countdown()
            self.time_left = seconds if seconds is not None else self.session['time_limit']
            index = self.index
            self._countdown = self.scheduler.every(
                1, lambda: self._tick(index),
                name=f"countdown:{self.session['id']}:{self.user_id}:{index}",
            )
        self._notify()

    def _tick(self, index: int) -> None:
        with self._lock:
            if self.phase != PLAYING or self.index != index:
                return
            question = self.current_question
            if question['id'] in self.answers:
                return
            self.time_left = max(0, self.time_left - 1)
            if self.time_left > 0:
                self._notify()
                return
            self.answers[question['id']] = None
            self._cancel_countdown()
            logger.debug(f"[timeout] session={self.session['id']} user={self.user_id} index={index}")
            self._advance_from(index)

    def _cancel_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    def _cancel_timers(self) -> None:
        self._cancel_countdown()
        if self._pending_advance is not None:
            self._pending_advance.cancel()
            self._pending_advance = None

    # ---- answering ----

    @returns_result
    def submit_answer(self, answer) -> bool:
        with self._lock:
            if self.phase != PLAYING:
                return False
            question = self.current_question
            if question['id'] in self.answers:
                return False
            self.answers[question['id']] = answer
            self._cancel_countdown()

            error = None
            if answer == question['correct_answer']:
                self.score += self.points_per_correct
                self.exp_gained += self.points_per_correct
                if self.is_multiplayer:
                    try:
                        self.bridge.update(
                            'player_scores', {'score': self.score},
                            session_id=self.session['id'], user_id=self.user_id,
                        )
                    except PersistenceError as exc:
                        logger.warning(f"[score-persist-failed] session={self.session['id']} user={self.user_id}")
                        error = exc

            index = self.index
            self._notify()
            self._pending_advance = self.scheduler.call_later(
                self.reveal_delay, lambda: self._advance_from(index),
                name=f"reveal:{self.session['id']}:{self.user_id}:{index}",
            )
            if error is not None:
                raise error
            return True

    def advance(self) -> None:
        with self._lock:
            if self.phase == PLAYING:
                self._advance_from(self.index)

    def _advance_from(self, index: int) -> None:
        with self._lock:
            if self.phase != PLAYING or self.index != index:
                return
            if self._pending_advance is not None:
                self._pending_advance.cancel()
                self._pending_advance = None
            if index < len(self.questions) - 1:
                self.index += 1
                self.start_timer()
                return
            self.final_result = self.end_session()
            if not self.final_result.ok:
                logger.error(
                    f"[session-end-failed] session={self.session['id']} user={self.user_id} "
                    f"error={self.final_result.error.message}"
                )

    # ---- completion ----

    @returns_result
    def end_session(self) -> GameSummary:
        with self._lock:
            if self.summary is not None:
                return self.summary
            if self.session is None:
                raise ValidationError('No game session loaded')
            self.phase = FINISHED
            self._cancel_timers()
            session_id = self.session['id']

            before = self.bridge.select_one('profiles', id=self.user_id)
            old_xp = before['experience'] if before else 0

            self.bridge.update(
                'player_scores', {'score': self.score, 'completed': True},
                session_id=session_id, user_id=self.user_id,
            )
            profile = award_experience(self.bridge, self.user_id, self.exp_gained)

            if self.is_multiplayer:
                scores = self.bridge.select('player_scores', session_id=session_id)
                if scores and all(s['completed'] for s in scores):
                    self._promote()
                self._refresh_leaderboard()
            else:
                self._promote()

            new_xp = profile['experience'] if profile else old_xp + self.exp_gained
            upcoming = next_rank(new_xp)
            max_points = len(self.questions) * self.points_per_correct
            self.summary = GameSummary(
                score=self.score,
                total_questions=len(self.questions),
                exp_gained=self.exp_gained,
                percentage=math.floor(self.score / max_points * 100 + 0.5) if max_points else 0,
                profile=profile,
                old_rank=rank_of(old_xp).name,
                new_rank=rank_of(new_xp).name,
                rank_up=rank_of(old_xp).name != rank_of(new_xp).name,
                next_rank=upcoming.name if upcoming else None,
                progress=progress_percent(new_xp),
            )
            logger.info(
                f"[session-finish] session={session_id} user={self.user_id} "
                f"score={self.score} exp_gained={self.exp_gained}"
            )
        self._notify()
        return self.summary

    def _promote(self) -> None:
        # Compare-and-set: a second finisher racing here changes nothing
        session_id = self.session['id']
        if self.bridge.update('game_sessions', {'status': 'completed'}, id=session_id, status='active'):
            logger.info(f"[session-complete] session={session_id} by={self.user_id}")
        room_id = self.session.get('room_id')
        if room_id is not None:
            if self.bridge.update('rooms', {'status': 'completed'}, id=room_id, status='active'):
                logger.info(f"[room-complete] room={room_id} by={self.user_id}")

    # ---- leaderboard ----

    def _usernames_for(self, user_ids) -> Dict[int, str]:
        missing = [uid for uid in user_ids if uid not in self._usernames]
        if missing and self.session.get('room_id') is not None:
            for player in self.bridge.select('room_players', room_id=self.session['room_id']):
                self._usernames[player['user_id']] = player['username']
        for uid in missing:
            if uid not in self._usernames:
                # Left the room since the game started
                profile = self.bridge.select_one('profiles', id=uid)
                self._usernames[uid] = profile['username'] if profile else f"player-{uid}"
        return self._usernames

    def _refresh_leaderboard(self) -> None:
        with self._board_lock:
            rows = self.bridge.select('player_scores', session_id=self.session['id'])
            names = self._usernames_for([r['user_id'] for r in rows])
            # Stable sort: equal scores keep insertion order
            ranked = sorted(rows, key=lambda r: -r['score'])
            self.leaderboard = [
                {
                    'user_id': r['user_id'],
                    'username': names.get(r['user_id']),
                    'score': r['score'],
                    'completed': r['completed'],
                }
                for r in ranked
            ]
            everyone_done = bool(rows) and all(r['completed'] for r in rows)
        if self.phase == FINISHED and everyone_done:
            self._release_subscription()
        self._notify()

    def _on_score_change(self, change) -> None:
        if self._scores_sub is None:
            return
        self._refresh_leaderboard()

    def _release_subscription(self) -> None:
        sub, self._scores_sub = self._scores_sub, None
        if sub is not None:
            sub.unsubscribe()

    def close(self) -> None:
        with self._lock:
            self._cancel_timers()
            self._release_subscription()

    def snapshot(self) -> dict:
        question = self.current_question if self.phase == PLAYING else None
        answered = bool(question and question['id'] in self.answers)
        return {
            'session_id': self.session['id'] if self.session else None,
            'phase': self.phase,
            'is_multiplayer': self.is_multiplayer,
            'index': self.index,
            'total': len(self.questions),
            'question': {
                'id': question['id'],
                'question': question['question'],
                'options': question['options'],
                'category': question['category'],
                'difficulty': question['difficulty'],
            } if question else None,
            'answered': answered,
            'correct_answer': question['correct_answer'] if answered else None,
            'time_left': self.time_left,
            'score': self.score,
            'exp_gained': self.exp_gained,
            'leaderboard': list(self.leaderboard),
            'summary': self.summary.to_dict() if self.summary else None,
        }
