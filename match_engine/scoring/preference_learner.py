"""
Preference learner ("taste engine").

Infers soft preference clusters from the profiles of a user's recently
liked candidates. A simple frequency/threshold model: the age margin,
distance margin and tag threshold are the contract that similarity
scoring is calibrated against.
"""

import logging
import math
from collections import Counter
from typing import Callable, Iterable, List, Optional, Sequence

from match_engine.config import DEFAULT_CONFIG, EngineConfig
from match_engine.models.learned_preferences import AgeRange, LearnedPreferences
from match_engine.models.user import UserRecord
from match_engine.storage.base import UserStore
from match_engine.utils.constants import MAX_AGE, MIN_AGE, NEUTRAL_SIMILARITY
from match_engine.utils.time_utils import utc_now


logger = logging.getLogger(__name__)


class PreferenceLearner:
    """
    Learner for soft preferences and scorer for preference similarity.

    Example usage:
        learner = PreferenceLearner(user_store)
        prefs = learner.learn("u1", liked_ids)
        similarity = learner.similarity(prefs, viewer, candidate)
    """

    def __init__(
        self,
        user_store: UserStore,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable = utc_now,
    ) -> None:
        self.user_store = user_store
        self.engine_config = config
        self.config = config.preferences
        self.clock = clock

    def learn(
        self,
        user_id: str,
        recent_right_swipe_targets: Sequence[str],
    ) -> LearnedPreferences:
        """
        Build preferences from recently liked candidates (newest first).

        Never raises for missing data: if no liked profile resolves, a
        zero-confidence empty record is returned.

        Args:
            user_id: Learner's owner
            recent_right_swipe_targets: Liked user ids, newest first

        Returns:
            LearnedPreferences replacing any previous ones wholesale
        """
        now = self.clock()
        liked_ids = list(recent_right_swipe_targets)[:self.config.max_liked_profiles]

        if not liked_ids:
            return LearnedPreferences.empty(user_id, now)

        resolved = self.user_store.get_users(liked_ids)
        liked_profiles = [resolved[uid] for uid in liked_ids if uid in resolved]

        if not liked_profiles:
            logger.info(f"No liked profiles resolved for {user_id}; preferences empty")
            return LearnedPreferences.empty(user_id, now)

        viewer = self.user_store.get_user(user_id)
        confidence = min(1.0, len(liked_ids) / self.config.full_confidence_likes)

        preferences = LearnedPreferences(
            user_id=user_id,
            confidence_level=confidence,
            swipes_analyzed=len(liked_ids),
            age_range=self._infer_age_range(liked_profiles),
            max_distance_km=self._infer_distance(viewer, liked_profiles),
            body_types=self._frequent_tags(p.body_type for p in liked_profiles),
            styles=self._frequent_tags(p.style for p in liked_profiles),
            interests=self._frequent_tags(
                interest for p in liked_profiles for interest in set(p.interests)
            ),
            last_updated=now,
        )

        logger.info(
            f"Built learned preferences for {user_id}: "
            f"confidence={confidence:.2f}, analyzed={len(liked_ids)}"
        )
        return preferences

    def _infer_age_range(self, profiles: List[UserRecord]) -> Optional[AgeRange]:
        """Observed min/max age widened by the margin, clamped to 18-99."""
        ages = [p.age for p in profiles if p.age is not None]
        if not ages:
            return None
        margin = self.config.age_margin_years
        return AgeRange(
            min_age=max(MIN_AGE, min(ages) - margin),
            max_age=min(MAX_AGE, max(ages) + margin),
        )

    def _infer_distance(
        self, viewer: Optional[UserRecord], profiles: List[UserRecord]
    ) -> Optional[float]:
        """Mean distance to liked profiles times the margin, rounded up to a km."""
        if viewer is None:
            return None
        distances = [
            d for d in (viewer.distance_to(p) for p in profiles) if d is not None
        ]
        if not distances:
            return None
        mean = sum(distances) / len(distances)
        return float(math.ceil(mean * self.config.distance_margin))

    def _frequent_tags(self, values: Iterable[Optional[str]]) -> List[str]:
        """Tags seen at least `tag_min_occurrences` times, most frequent first."""
        counts = Counter(v for v in values if v)
        frequent = [
            (tag, count) for tag, count in counts.items()
            if count >= self.config.tag_min_occurrences
        ]
        return [tag for tag, _ in sorted(frequent, key=lambda x: (-x[1], x[0]))]

    def similarity(
        self,
        preferences: Optional[LearnedPreferences],
        viewer: UserRecord,
        candidate: UserRecord,
    ) -> float:
        """
        Confidence-damped similarity between preferences and a candidate.

        Formula: raw × confidence + 0.5 × (1 − confidence), where raw is the
        mean of the preference factors the candidate can be compared on.
        Returns 0.5 when there are no usable preferences.
        """
        return calculate_preference_similarity(
            preferences, viewer, candidate, self.engine_config
        )


def raw_similarity(
    preferences: LearnedPreferences,
    viewer: UserRecord,
    candidate: UserRecord,
) -> float:
    """
    Undamped similarity in 0.0-1.0.

    Factors (each 0-1, only counted when both sides have data):
    - Age: 1 inside range, else 1 - deviation/10
    - Distance: 1 within ceiling, else linear falloff to 0 at 2× ceiling
    - Body type / style: 1 if preferred, else 0
    - Interests: share of preferred interests the candidate has
    """
    score = 0.0
    factors = 0

    if preferences.age_range and candidate.age is not None:
        factors += 1
        deviation = preferences.age_range.deviation(candidate.age)
        score += max(0.0, 1 - deviation / 10)

    distance = viewer.distance_to(candidate)
    if preferences.max_distance_km and distance is not None:
        factors += 1
        ceiling = preferences.max_distance_km
        if distance <= ceiling:
            score += 1
        else:
            score += max(0.0, 1 - (distance - ceiling) / ceiling)

    if preferences.body_types and candidate.body_type:
        factors += 1
        score += 1 if candidate.body_type in preferences.body_types else 0

    if preferences.styles and candidate.style:
        factors += 1
        score += 1 if candidate.style in preferences.styles else 0

    if preferences.interests and candidate.interests:
        factors += 1
        common = set(preferences.interests) & set(candidate.interests)
        score += len(common) / max(len(preferences.interests), 1)

    return score / factors if factors > 0 else NEUTRAL_SIMILARITY


def calculate_preference_similarity(
    preferences: Optional[LearnedPreferences],
    viewer: UserRecord,
    candidate: UserRecord,
    config: EngineConfig = DEFAULT_CONFIG,
) -> float:
    """
    Calculate damped preference similarity.

    Convenience function that needs no user store.
    """
    if preferences is None or preferences.confidence_level < config.preferences.min_confidence:
        return NEUTRAL_SIMILARITY
    confidence = preferences.confidence_level
    raw = raw_similarity(preferences, viewer, candidate)
    return raw * confidence + NEUTRAL_SIMILARITY * (1 - confidence)
