"""Error taxonomy shared by the lobby and game controllers.

Controllers raise these internally; the public operations are wrapped with
:func:`returns_result` so callers always get a :class:`Result` back. The HTTP
layer turns a failed result into ``{'error': ..., 'code': ...}`` with the
error's ``status_code``.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


class QuizError(Exception):
    status_code = 400
    kind = 'error'

    def __init__(self, message: str = ''):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {'error': self.message, 'code': self.kind}


class ValidationError(QuizError):
    kind = 'validation'


class NotFound(QuizError):
    status_code = 404
    kind = 'not_found'


class PermissionDenied(QuizError):
    status_code = 403
    kind = 'permission'


class RoomFull(QuizError):
    status_code = 409
    kind = 'room_full'


class NotReady(QuizError):
    kind = 'not_ready'


class NoQuestionsAvailable(QuizError):
    kind = 'no_questions'


class PersistenceError(QuizError):
    status_code = 500
    kind = 'persistence'


class DuplicateKey(PersistenceError):
    kind = 'duplicate'


@dataclass
class Result:
    ok: bool
    value: Any = None
    error: Optional[QuizError] = None

    @classmethod
    def success(cls, value=None):
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: QuizError):
        return cls(ok=False, error=error)

    def unwrap(self):
        """Return the value or re-raise the carried error."""
        if not self.ok:
            raise self.error
        return self.value


def returns_result(func):
    """Wrap an operation so QuizErrors come back as a failed Result."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return Result.success(func(*args, **kwargs))
        except QuizError as exc:
            logger.info(f"[op-failed] op={func.__name__} kind={exc.kind} error={exc.message}")
            return Result.failure(exc)

    return wrapper
