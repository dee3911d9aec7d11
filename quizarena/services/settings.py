from dataclasses import asdict, dataclass, fields
from typing import Optional

from quizarena.errors import ValidationError

CATEGORIES = ('all', 'science', 'history', 'geography', 'entertainment', 'sports')
DIFFICULTIES = ('easy', 'medium', 'hard')

# Inclusive bounds offered by the setup forms
MAX_PLAYERS_RANGE = (2, 8)
NUM_QUESTIONS_RANGE = (5, 20)
TIME_LIMIT_RANGE = (10, 60)


@dataclass
class GameSettings:
    num_questions: int = 10
    time_limit: int = 30
    category: str = 'all'
    difficulty: str = 'medium'
    max_players: int = 4

    @classmethod
    def from_dict(cls, data: Optional[dict], defaults: Optional['GameSettings'] = None) -> 'GameSettings':
        """Build settings from request-ish data, falling back to ``defaults``."""
        base = asdict(defaults or cls())
        data = data or {}
        for f in fields(cls):
            value = data.get(f.name)
            if value is None:
                continue
            if f.type is int or f.type == 'int':
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise ValidationError(f"{f.name} must be a number")
            else:
                value = str(value).strip().lower()
            base[f.name] = value
        settings = cls(**base)
        settings.validate()
        return settings

    def validate(self) -> None:
        _check_range('max_players', self.max_players, MAX_PLAYERS_RANGE)
        _check_range('num_questions', self.num_questions, NUM_QUESTIONS_RANGE)
        _check_range('time_limit', self.time_limit, TIME_LIMIT_RANGE)
        if self.category not in CATEGORIES:
            raise ValidationError(f"Unknown category '{self.category}'")
        if self.difficulty not in DIFFICULTIES:
            raise ValidationError(f"Unknown difficulty '{self.difficulty}'")

    def session_fields(self) -> dict:
        return {
            'num_questions': self.num_questions,
            'time_limit': self.time_limit,
            'category': self.category,
            'difficulty': self.difficulty,
        }


def _check_range(name, value, bounds):
    low, high = bounds
    if not low <= value <= high:
        raise ValidationError(f"{name} must be between {low} and {high}")
