"""Experience to rank tier mapping. Pure functions, no I/O."""

import math
from typing import NamedTuple, Optional


class RankInfo(NamedTuple):
    name: str
    min_xp: int
    color: str
    icon: str

    def to_dict(self):
        return self._asdict()


# Ascending by min_xp
RANKS = (
    RankInfo('Bronze', 0, 'amber', '🥉'),
    RankInfo('Silver', 300, 'gray', '🥈'),
    RankInfo('Gold', 800, 'yellow', '🥇'),
    RankInfo('Platinum', 1500, 'cyan', '💎'),
    RankInfo('Diamond', 3000, 'blue', '💠'),
    RankInfo('Heroic', 5000, 'purple', '👑'),
    RankInfo('Master', 10000, 'red', '🏆'),
)


def _rank_index(xp: int) -> int:
    for i in range(len(RANKS) - 1, -1, -1):
        if xp >= RANKS[i].min_xp:
            return i
    return 0


def rank_of(xp: int) -> RankInfo:
    """Highest rank whose threshold is <= xp (Bronze for anything lower)."""
    return RANKS[_rank_index(xp)]


def next_rank(xp: int) -> Optional[RankInfo]:
    idx = _rank_index(xp)
    if idx == len(RANKS) - 1:
        return None
    return RANKS[idx + 1]


def progress_percent(xp: int) -> int:
    """Percent of the way from the current rank to the next, in [0, 100]."""
    current = rank_of(xp)
    upcoming = next_rank(xp)
    if upcoming is None:
        return 100
    span = upcoming.min_xp - current.min_xp
    percent = math.floor((xp - current.min_xp) / span * 100)
    return max(0, min(100, percent))


def rank_summary(xp: int) -> dict:
    upcoming = next_rank(xp)
    return {
        'experience': xp,
        'rank': rank_of(xp).to_dict(),
        'next_rank': upcoming.to_dict() if upcoming else None,
        'progress': progress_percent(xp),
    }
