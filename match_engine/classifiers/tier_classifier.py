"""
Tier classifier using prioritized rules.

Classifies users into value/engagement tiers: ROYAL, NEW_USER,
HIGH_MONETIZATION, HIGH_ENGAGEMENT, LOW_POPULARITY, STANDARD. The tier
only boosts a user's own visibility as a candidate.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from match_engine.config import DEFAULT_CONFIG, EngineConfig
from match_engine.errors import UserNotFound
from match_engine.models.behavior_profile import BehaviorProfile
from match_engine.models.behavior_signal import SignalType
from match_engine.models.tier import Tier
from match_engine.models.user import UserRecord
from match_engine.storage.base import ProfileStore, SignalStore, UserStore
from match_engine.utils.time_utils import utc_now


logger = logging.getLogger(__name__)


class TierClassifier:
    """
    Rule-based tier classifier.

    Rules are checked in PRIORITY_ORDER and the first match wins. Royal
    and monetization/engagement rules come before the low-popularity rule
    so high-value users with few inbound likes still register as such.

    Example usage:
        classifier = TierClassifier(users, profiles, signals)
        classifier.classify("user-1")
        # Returns: Tier.STANDARD
    """

    PRIORITY_ORDER: List[Tier] = [
        Tier.ROYAL,
        Tier.NEW_USER,
        Tier.HIGH_MONETIZATION,
        Tier.HIGH_ENGAGEMENT,
        Tier.LOW_POPULARITY,
    ]

    def __init__(
        self,
        user_store: UserStore,
        profile_store: ProfileStore,
        signal_store: SignalStore,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable = utc_now,
    ) -> None:
        self.user_store = user_store
        self.profile_store = profile_store
        self.signal_store = signal_store
        self.thresholds = config.tiers
        self.clock = clock

    def classify(self, user_id: str) -> Tier:
        """
        Classify a user by id.

        Raises:
            UserNotFound: If the user store has no such user
        """
        user = self.user_store.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return self.classify_user(user, self.profile_store.get_profile(user_id))

    def classify_user(
        self,
        user: UserRecord,
        profile: Optional[BehaviorProfile],
        now: Optional[datetime] = None,
    ) -> Tier:
        """Classify an already-loaded user and profile."""
        now = now or self.clock()
        for tier in self.PRIORITY_ORDER:
            if self._matches_tier(tier, user, profile, now):
                return tier
        return Tier.STANDARD

    def _matches_tier(
        self,
        tier: Tier,
        user: UserRecord,
        profile: Optional[BehaviorProfile],
        now: datetime,
    ) -> bool:
        t = self.thresholds

        if tier == Tier.ROYAL:
            return user.is_royal

        if tier == Tier.NEW_USER:
            return now - user.created_at < timedelta(days=t.new_user_days)

        # Remaining rules need behavior history
        if profile is None:
            return False

        if tier == Tier.HIGH_MONETIZATION:
            return (
                profile.paid_chat_count >= t.min_paid_chats
                or profile.meeting_count >= t.min_meetings
            )

        if tier == Tier.HIGH_ENGAGEMENT:
            return (
                profile.message_response_rate >= t.min_response_rate
                and profile.total_matches >= t.min_matches
            )

        if tier == Tier.LOW_POPULARITY:
            if profile.total_swipes < t.low_popularity_min_swipes:
                return False
            return self.inbound_like_rate(user.user_id, profile) < t.low_popularity_max_like_rate

        return False

    def inbound_like_rate(self, user_id: str, profile: BehaviorProfile) -> float:
        """Received right swipes / own total swipes."""
        if profile.total_swipes <= 0:
            return 0.0
        received = self.signal_store.count_inbound(user_id, SignalType.SWIPE_RIGHT)
        return received / profile.total_swipes
