"""Entitlement gate for interpretation requests.

``check``/``decide`` are pure functions of the profile. ``EntitlementGate``
owns the only counter mutation (``record_usage``) and remembers which usage
keys it has already counted, so a result persisted through several write
paths is counted once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from dreamvision.models import PlanTier, UserProfile

logger = logging.getLogger("dreamvision")


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    remaining: Optional[int]
    reason: str


def check(profile: UserProfile) -> bool:
    return profile.plan_tier == PlanTier.premium or profile.interpretations_used < profile.interpretations_allowed


def remaining_interpretations(profile: UserProfile) -> Optional[int]:
    """Interpretations left on the trial tier; None means unlimited."""
    if profile.plan_tier == PlanTier.premium:
        return None
    return max(0, profile.interpretations_allowed - profile.interpretations_used)


def decide(profile: UserProfile) -> EntitlementDecision:
    if profile.plan_tier == PlanTier.premium:
        return EntitlementDecision(allowed=True, remaining=None, reason="premium")
    if check(profile):
        return EntitlementDecision(allowed=True, remaining=remaining_interpretations(profile), reason="trial")
    return EntitlementDecision(allowed=False, remaining=0, reason="limit_reached")


def upgrade(profile: UserProfile) -> UserProfile:
    """Flip the profile to premium; counters are left as they were."""
    return profile.model_copy(update={"plan_tier": PlanTier.premium})


class EntitlementGate:
    def __init__(self):
        self._recorded: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    check = staticmethod(check)
    decide = staticmethod(decide)
    upgrade = staticmethod(upgrade)

    def record_usage(self, profile: UserProfile, usage_key: str) -> UserProfile:
        """Count one successful interpretation for ``profile``.

        Saturates at ``interpretations_allowed``. Premium profiles and keys
        already counted come back unchanged.
        """
        if profile.plan_tier == PlanTier.premium:
            return profile
        marker = (profile.user_id, usage_key)
        with self._lock:
            if marker in self._recorded:
                logger.info("Usage already recorded user_id=%s usage_key=%s", profile.user_id, usage_key)
                return profile
            self._recorded.add(marker)
        used = min(profile.interpretations_used + 1, profile.interpretations_allowed)
        logger.info(
            "Usage recorded user_id=%s used=%s allowed=%s",
            profile.user_id,
            used,
            profile.interpretations_allowed,
        )
        return profile.model_copy(update={"interpretations_used": used})
