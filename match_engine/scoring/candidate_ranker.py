"""
Candidate ranker.

Scores one candidate for one viewer from five independent sub-scores
(base, behavior, similarity, recency, popularity), combines them with the
configured weights, then applies the candidate's tier multiplier and the
viewer's heating multiplier. Scores are computed fresh for every request
and never stored; given the same snapshot and clock, ranking is a pure
function.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from match_engine.classifiers.tier_classifier import TierClassifier
from match_engine.config import DEFAULT_CONFIG, EngineConfig
from match_engine.errors import UserNotFound
from match_engine.heating.heating_manager import HeatingStateManager
from match_engine.models.behavior_profile import BehaviorProfile
from match_engine.models.behavior_signal import SignalType
from match_engine.models.learned_preferences import LearnedPreferences
from match_engine.models.ranking_score import RankingScore
from match_engine.models.user import UserRecord
from match_engine.storage.base import ProfileStore, SignalStore, UserStore
from match_engine.utils import constants as C
from match_engine.utils.time_utils import hours_between, utc_now
from .preference_learner import PreferenceLearner


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewerContext:
    """
    Viewer-side inputs shared by every candidate on a page.

    Captured once per request so all candidates are scored against the
    same snapshot and clock reading.
    """

    viewer: UserRecord
    preferences: Optional[LearnedPreferences]
    heating_multiplier: float
    now: datetime


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class CandidateRanker:
    """
    Weighted multi-factor scorer.

    Example usage:
        ranker = CandidateRanker(users, profiles, signals, tiers, heating, learner)
        score = ranker.rank("viewer-1", "candidate-7")
        score.final_score
    """

    def __init__(
        self,
        user_store: UserStore,
        profile_store: ProfileStore,
        signal_store: SignalStore,
        tier_classifier: TierClassifier,
        heating_manager: HeatingStateManager,
        preference_learner: PreferenceLearner,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable = utc_now,
    ) -> None:
        self.user_store = user_store
        self.profile_store = profile_store
        self.signal_store = signal_store
        self.tier_classifier = tier_classifier
        self.heating_manager = heating_manager
        self.preference_learner = preference_learner
        self.config = config
        self.clock = clock

    def rank(self, viewer_id: str, candidate_id: str) -> RankingScore:
        """
        Score candidate_id for viewer_id.

        Raises:
            UserNotFound: If either user is unknown
        """
        viewer = self.user_store.get_user(viewer_id)
        if viewer is None:
            raise UserNotFound(viewer_id)
        candidate = self.user_store.get_user(candidate_id)
        if candidate is None:
            raise UserNotFound(candidate_id)

        return self.score_candidate(self.viewer_context(viewer), candidate)

    def viewer_context(self, viewer: UserRecord) -> ViewerContext:
        """Load the viewer's preferences and heating once, as of one clock reading."""
        now = self.clock()
        return ViewerContext(
            viewer=viewer,
            preferences=self.profile_store.get_preferences(viewer.user_id),
            heating_multiplier=self.heating_manager.heating_multiplier(viewer.user_id, now),
            now=now,
        )

    def score_candidate(self, context: ViewerContext, candidate: UserRecord) -> RankingScore:
        """
        Compute the full score breakdown for one candidate.

        Formula:
            weighted = Σ weight_i × sub_score_i
            final = clamp(weighted × tier_multiplier × heating_multiplier, 0, 100)
        """
        now = context.now
        profile = self.profile_store.get_profile(candidate.user_id)
        weights = self.config.weights

        base = self.base_score(context.viewer, candidate)
        behavior = self.behavior_score(profile, now)
        similarity = clamp(100.0 * self.preference_learner.similarity(
            context.preferences, context.viewer, candidate
        ))
        recency = self.recency_score(self._last_active(candidate, profile), now)
        popularity = self.popularity_score(candidate.user_id, now)

        weighted = clamp(
            weights.base * base +
            weights.behavior * behavior +
            weights.similarity * similarity +
            weights.recency * recency +
            weights.popularity * popularity
        )

        tier = self.tier_classifier.classify_user(candidate, profile, now)
        tier_multiplier = self.config.tier_multipliers.for_tier(tier)
        heating_multiplier = context.heating_multiplier

        return RankingScore(
            viewer_id=context.viewer.user_id,
            candidate_id=candidate.user_id,
            base_score=base,
            behavior_score=behavior,
            similarity_score=similarity,
            recency_score=recency,
            popularity_score=popularity,
            weighted_score=weighted,
            candidate_tier=tier,
            tier_multiplier=tier_multiplier,
            heating_multiplier=heating_multiplier,
            final_score=clamp(weighted * tier_multiplier * heating_multiplier),
            computed_at=now,
        )

    def base_score(self, viewer: UserRecord, candidate: UserRecord) -> float:
        """
        Heuristic compatibility (0-100).

        - Age proximity: up to 30, linear falloff over 15 years (15 if unknown)
        - Distance: up to 30, linear falloff over 100 km (15 if unknown)
        - Completeness: photos up to 20, bio 10, interests up to 10
        """
        score = 0.0

        if viewer.age is not None and candidate.age is not None:
            gap = abs(viewer.age - candidate.age)
            score += C.BASE_AGE_POINTS * max(0.0, 1 - gap / C.BASE_AGE_FALLOFF_YEARS)
        else:
            score += C.BASE_AGE_POINTS / 2

        distance = viewer.distance_to(candidate)
        if distance is not None:
            score += C.BASE_DISTANCE_POINTS * max(0.0, 1 - distance / C.BASE_DISTANCE_FALLOFF_KM)
        else:
            score += C.BASE_DISTANCE_POINTS / 2

        score += C.BASE_PHOTO_POINTS * min(candidate.photo_count, C.BASE_FULL_PHOTOS) / C.BASE_FULL_PHOTOS
        if candidate.has_bio:
            score += C.BASE_BIO_POINTS
        score += (
            C.BASE_INTEREST_POINTS
            * min(len(candidate.interests), C.BASE_FULL_INTERESTS) / C.BASE_FULL_INTERESTS
        )

        return clamp(score)

    def behavior_score(self, profile: Optional[BehaviorProfile], now: datetime) -> float:
        """
        Candidate's engagement quality (0-100); 50 without history.

        - Response rate: up to 30
        - Match conversion rate: up to 30
        - Activity: 20 if active within a day, 10 within a week
        - Paid interactions: up to 20, saturating at 10 interactions
        """
        if profile is None or not profile.has_history:
            return C.NEUTRAL_BEHAVIOR_SCORE

        score = 30.0 * profile.message_response_rate
        score += 30.0 * profile.match_conversion_rate

        if profile.last_active is not None:
            hours = hours_between(profile.last_active, now)
            if hours <= 24:
                score += 20.0
            elif hours <= 24 * 7:
                score += 10.0

        score += 20.0 * min(profile.paid_interaction_count, 10) / 10
        return clamp(score)

    def recency_score(self, last_active: Optional[datetime], now: datetime) -> float:
        """100 if ≤1h, 90 if ≤24h, 70 if ≤1 week, 40 if ≤30 days, else 10."""
        if last_active is None:
            return C.RECENCY_FLOOR
        hours = max(0.0, hours_between(last_active, now))
        for max_hours, score in C.RECENCY_STEPS:
            if hours <= max_hours:
                return score
        return C.RECENCY_FLOOR

    def popularity_score(self, candidate_id: str, now: datetime) -> float:
        """Step function of inbound right swipes over the trailing 30 days."""
        since = now - timedelta(days=C.POPULARITY_WINDOW_DAYS)
        likes = self.signal_store.count_inbound(candidate_id, SignalType.SWIPE_RIGHT, since)
        for min_likes, score in C.POPULARITY_STEPS:
            if likes >= min_likes:
                return score
        return C.POPULARITY_FLOOR

    @staticmethod
    def _last_active(
        candidate: UserRecord, profile: Optional[BehaviorProfile]
    ) -> Optional[datetime]:
        """Latest of the profile's last signal and the user service's last-seen."""
        candidates = [
            ts for ts in (
                profile.last_active if profile else None,
                candidate.last_active_at,
            )
            if ts is not None
        ]
        return max(candidates) if candidates else None
