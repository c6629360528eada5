"""
Behavior profile aggregator.

Recomputes a user's rolling behavior profile from their most recent
signals: swipe counts and rates, view time, mutual matches, message
response rate, paid interactions and last activity. Once a user has
enough swipes, the preference learner runs and its result is attached.
"""

import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional

from match_engine.config import DEFAULT_CONFIG, EngineConfig
from match_engine.models.behavior_profile import BehaviorProfile
from match_engine.models.behavior_signal import (
    BehaviorSignal,
    LEFT_SWIPES,
    SignalType,
    VIEW_SIGNALS,
)
from match_engine.storage.base import ProfileStore, SignalStore
from match_engine.utils.time_utils import utc_now
from .preference_learner import PreferenceLearner


logger = logging.getLogger(__name__)


class BehaviorProfileAggregator:
    """
    Calculator for behavior profiles from a signal window.

    Example usage:
        aggregator = BehaviorProfileAggregator(signals, profiles, learner)
        profile = aggregator.refresh("user-1")
    """

    def __init__(
        self,
        signal_store: SignalStore,
        profile_store: ProfileStore,
        preference_learner: PreferenceLearner,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable = utc_now,
    ) -> None:
        self.signal_store = signal_store
        self.profile_store = profile_store
        self.preference_learner = preference_learner
        self.config = config.preferences
        self.clock = clock

    def refresh(self, user_id: str) -> BehaviorProfile:
        """
        Recompute and store the profile for user_id.

        Args:
            user_id: User whose outbound signals are aggregated

        Returns:
            The new BehaviorProfile, which replaces the stored one
        """
        now = self.clock()
        previous = self.profile_store.get_profile(user_id)
        signals = self.signal_store.recent_for_actor(
            user_id, self.config.profile_signal_window
        )

        profile = self.calculate_profile(user_id, signals)
        profile.created_at = previous.created_at if previous else now
        profile.updated_at = now

        if profile.total_swipes >= self.config.min_swipes:
            preferences = self.preference_learner.learn(
                user_id, self._liked_targets(signals)
            )
            self.profile_store.save_preferences(preferences)
            profile.learned_preferences = preferences
        elif previous is not None:
            # Below threshold the last learned preferences stay authoritative
            profile.learned_preferences = previous.learned_preferences

        self.profile_store.save_profile(profile)

        logger.info(
            f"Updated behavior profile for {user_id}: "
            f"{profile.total_swipes} swipes, {profile.total_matches} matches"
        )
        return profile

    def calculate_profile(
        self, user_id: str, signals: List[BehaviorSignal]
    ) -> BehaviorProfile:
        """
        Calculate profile statistics from a signal window (newest first).

        Matches and the message response rate need lookups beyond the
        window, so this still reads from the signal store.
        """
        if not signals:
            return BehaviorProfile.empty(user_id, self.clock())

        counts = Counter(s.signal_type for s in signals)

        swipe_right_count = counts[SignalType.SWIPE_RIGHT]
        swipe_left_count = sum(counts[t] for t in LEFT_SWIPES)
        total_swipes = swipe_right_count + swipe_left_count

        total_matches = self._count_matches(user_id, signals)

        return BehaviorProfile(
            user_id=user_id,
            total_swipes=total_swipes,
            swipe_right_count=swipe_right_count,
            swipe_left_count=swipe_left_count,
            swipe_right_rate=self._ratio(swipe_right_count, total_swipes),
            avg_profile_view_ms=self._average_view_time(signals),
            total_matches=total_matches,
            match_conversion_rate=self._ratio(total_matches, swipe_right_count),
            message_response_rate=self._calculate_response_rate(user_id, counts),
            paid_chat_count=counts[SignalType.PAID_CHAT],
            call_count=counts[SignalType.CALL_STARTED],
            meeting_count=counts[SignalType.MEETING_BOOKED],
            gift_count=counts[SignalType.GIFT_SENT],
            signals_analyzed=len(signals),
            last_active=max(s.timestamp for s in signals),
        )

    def _liked_targets(self, signals: Iterable[BehaviorSignal]) -> List[str]:
        """Distinct right-swipe targets, newest first."""
        seen: Dict[str, None] = {}
        for signal in signals:
            if signal.signal_type == SignalType.SWIPE_RIGHT:
                seen.setdefault(signal.target_id, None)
        return list(seen)

    def _count_matches(self, user_id: str, signals: List[BehaviorSignal]) -> int:
        """
        Count distinct users with a mutual right swipe.

        A right swipe by the user on B is a match only if B has also right
        swiped the user. All reverse pairs are resolved in one batched
        index lookup.
        """
        liked = self._liked_targets(signals)
        if not liked:
            return 0
        mutual = self.signal_store.find_reciprocal(user_id, liked, SignalType.SWIPE_RIGHT)
        return len(mutual)

    def _calculate_response_rate(self, user_id: str, counts: Counter) -> float:
        """
        Replies sent / messages received, clamped to 1.

        Received messages are counted over the full history, replies over
        the window, so the raw ratio can exceed 1 for very chatty users.
        """
        received = self.signal_store.count_inbound(user_id, SignalType.MESSAGE_SENT)
        return self._ratio(counts[SignalType.MESSAGE_REPLY], received)

    def _average_view_time(self, signals: List[BehaviorSignal]) -> float:
        views = [s for s in signals if s.signal_type in VIEW_SIGNALS]
        if not views:
            return 0.0
        return sum(s.view_duration_ms or 0.0 for s in views) / len(views)

    @staticmethod
    def _ratio(numerator: int, denominator: int) -> float:
        if denominator <= 0:
            return 0.0
        return min(1.0, numerator / denominator)

    def batch_refresh(self, user_ids: Iterable[str]) -> Dict[str, int]:
        """
        Refresh many profiles, continuing past individual failures.

        Returns:
            {'success': n, 'failed': m}
        """
        success = 0
        failed = 0
        for user_id in user_ids:
            try:
                self.refresh(user_id)
                success += 1
            except Exception:
                logger.exception(f"Failed to update profile for {user_id}")
                failed += 1

        logger.info(f"Batch update complete: {success} success, {failed} failed")
        return {'success': success, 'failed': failed}

    def get_profile(self, user_id: str) -> Optional[BehaviorProfile]:
        return self.profile_store.get_profile(user_id)
