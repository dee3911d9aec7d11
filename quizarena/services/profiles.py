import logging
import time
from typing import Optional

from quizarena.errors import DuplicateKey, returns_result
from quizarena.services.bridge import ChangeBridge

logger = logging.getLogger(__name__)


def level_for(experience: int) -> int:
    return experience // 100 + 1


@returns_result
def ensure_profile(bridge: ChangeBridge, user_id: int, username: str,
                   delay: float = 1.0, sleep=time.sleep) -> dict:
    """Create the profile for a freshly signed-up user.

    Waits ``delay`` seconds first so the identity row is visible, then makes
    a single attempt. An existing profile, or losing an insert race to one,
    counts as success.
    """
    if delay:
        sleep(delay)
    existing = bridge.select_one('profiles', id=user_id)
    if existing:
        return existing
    try:
        return bridge.insert('profiles', {
            'id': user_id,
            'username': username,
            'experience': 0,
            'level': 1,
        })[0]
    except DuplicateKey:
        logger.info(f"[profile-exists] user={user_id}")
        return bridge.select_one('profiles', id=user_id)


def award_experience(bridge: ChangeBridge, user_id: int, exp_gained: int) -> Optional[dict]:
    """Add experience and recompute level. Returns the updated profile."""
    profile = bridge.select_one('profiles', id=user_id)
    if not profile:
        logger.warning(f"[profile-missing] user={user_id} exp_gained={exp_gained}")
        return None
    experience = profile['experience'] + exp_gained
    updated = bridge.update(
        'profiles',
        {'experience': experience, 'level': level_for(experience)},
        id=user_id,
    )
    logger.info(f"[profile-xp] user={user_id} +{exp_gained} total={experience}")
    return updated[0] if updated else bridge.select_one('profiles', id=user_id)
