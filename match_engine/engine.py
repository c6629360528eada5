"""
MatchEngine - wires the ranking components together.

This is the single entry point used by the HTTP service, the demo script
and the scheduler. Every component receives the same config and clock so
that a whole engine can be run against a frozen clock in tests.
"""

import logging
import threading
from concurrent.futures import Executor
from decimal import Decimal
from typing import Any, Collection, Dict, Iterable, Optional, Union

from match_engine.classifiers.tier_classifier import TierClassifier
from match_engine.config import DEFAULT_CONFIG, EngineConfig
from match_engine.errors import InvalidRequest, ProfileNotFound, UserNotFound
from match_engine.feed.paginator import FeedPaginator
from match_engine.feed.safety_filter import SafetyFilter
from match_engine.heating.heating_manager import HeatingStateManager
from match_engine.metrics.metrics_aggregator import MetricsAggregator
from match_engine.models.behavior_profile import BehaviorProfile
from match_engine.models.behavior_signal import BehaviorSignal, SignalType
from match_engine.models.engine_health import EngineHealth, EngineMetrics
from match_engine.models.feed import FeedPage
from match_engine.models.heating_state import DecayedHeatingState, HeatingTrigger
from match_engine.models.learned_preferences import LearnedPreferences
from match_engine.models.ranking_score import RankingScore
from match_engine.models.tier import Tier
from match_engine.models.user import UserRecord
from match_engine.scoring.candidate_ranker import CandidateRanker
from match_engine.scoring.preference_learner import PreferenceLearner
from match_engine.scoring.profile_aggregator import BehaviorProfileAggregator
from match_engine.signals.recorder import BehaviorSignalRecorder
from match_engine.signals.refresh_queue import ProfileRefreshQueue
from match_engine.storage.base import (
    HeatingStore,
    MetricsStore,
    ProfileStore,
    SignalStore,
    UserStore,
)
from match_engine.storage.memory import (
    InMemoryHeatingStore,
    InMemoryMetricsStore,
    InMemoryProfileStore,
    InMemorySignalStore,
    InMemoryUserStore,
)
from match_engine.utils.time_utils import utc_now


logger = logging.getLogger(__name__)


class MatchEngine:
    """
    Facade over the behavioral match ranking engine.

    Example usage:
        engine = MatchEngine.in_memory(users=[alice, bob])
        engine.track_swipe("alice", "bob", "right")
        engine.wait_for_refreshes()
        page = engine.get_feed("alice", limit=10)
    """

    def __init__(
        self,
        user_store: UserStore,
        signal_store: SignalStore,
        profile_store: ProfileStore,
        heating_store: HeatingStore,
        metrics_store: MetricsStore,
        config: EngineConfig = DEFAULT_CONFIG,
        clock=utc_now,
        refresh_workers: int = 2,
        refresh_executor: Optional[Executor] = None,
    ) -> None:
        self.config = config
        self.clock = clock

        self.user_store = user_store
        self.signal_store = signal_store
        self.profile_store = profile_store
        self.heating_store = heating_store
        self.metrics_store = metrics_store

        self.preference_learner = PreferenceLearner(user_store, config, clock)
        self.aggregator = BehaviorProfileAggregator(
            signal_store, profile_store, self.preference_learner, config, clock
        )
        self.refresh_queue = ProfileRefreshQueue(
            self.aggregator.refresh,
            max_workers=refresh_workers,
            executor=refresh_executor,
        )
        self.recorder = BehaviorSignalRecorder(signal_store, self.refresh_queue, clock)
        self.heating = HeatingStateManager(heating_store, config, clock)
        self.tier_classifier = TierClassifier(
            user_store, profile_store, signal_store, config, clock
        )
        self.ranker = CandidateRanker(
            user_store,
            profile_store,
            signal_store,
            self.tier_classifier,
            self.heating,
            self.preference_learner,
            config,
            clock,
        )
        self.safety_filter = SafetyFilter(user_store)
        self.paginator = FeedPaginator(user_store, self.safety_filter, self.ranker, config)
        self.metrics = MetricsAggregator(
            profile_store,
            user_store,
            signal_store,
            heating_store,
            metrics_store,
            self.tier_classifier,
            config,
            clock,
        )

    @classmethod
    def in_memory(
        cls,
        users: Iterable = (),
        config: EngineConfig = DEFAULT_CONFIG,
        clock=utc_now,
        **kwargs: Any,
    ) -> 'MatchEngine':
        """Engine backed entirely by in-memory stores."""
        return cls(
            user_store=InMemoryUserStore(users),
            signal_store=InMemorySignalStore(),
            profile_store=InMemoryProfileStore(),
            heating_store=InMemoryHeatingStore(),
            metrics_store=InMemoryMetricsStore(),
            config=config,
            clock=clock,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Users (sync from the user service)
    # ------------------------------------------------------------------

    def save_user(self, user: UserRecord) -> UserRecord:
        self.user_store.save_user(user)
        logger.info(f"Synced user {user.user_id}")
        return user

    def block_user(self, blocker_id: str, blocked_id: str) -> None:
        """
        Raises:
            InvalidRequest: If a user tries to block themselves
        """
        if blocker_id == blocked_id:
            raise InvalidRequest(f"User {blocker_id} cannot block themselves")
        self.user_store.block(blocker_id, blocked_id)
        logger.info(f"Synced block {blocker_id} -> {blocked_id}")

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def record_signal(
        self,
        actor_id: str,
        target_id: str,
        signal_type: Union[str, SignalType],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> BehaviorSignal:
        return self.recorder.record(actor_id, target_id, signal_type, metadata)

    def track_profile_view(
        self, actor_id: str, target_id: str, view_duration_ms: float
    ) -> BehaviorSignal:
        return self.recorder.track_profile_view(actor_id, target_id, view_duration_ms)

    def track_swipe(
        self,
        actor_id: str,
        target_id: str,
        direction: str,
        view_duration_ms: Optional[float] = None,
    ) -> BehaviorSignal:
        return self.recorder.track_swipe(actor_id, target_id, direction, view_duration_ms)

    def track_message(
        self, sender_id: str, recipient_id: str, is_reply: bool, message_length: int = 0
    ) -> BehaviorSignal:
        return self.recorder.track_message(sender_id, recipient_id, is_reply, message_length)

    def track_paid_interaction(
        self,
        actor_id: str,
        target_id: str,
        interaction_type: str,
        amount: Optional[Union[Decimal, str, int]] = None,
    ) -> BehaviorSignal:
        return self.recorder.track_paid_interaction(
            actor_id, target_id, interaction_type, amount
        )

    def wait_for_refreshes(self, timeout: Optional[float] = None) -> bool:
        """Block until queued profile refreshes have run."""
        return self.refresh_queue.wait(timeout)

    # ------------------------------------------------------------------
    # Profiles and preferences
    # ------------------------------------------------------------------

    def get_behavior_profile(self, user_id: str) -> BehaviorProfile:
        """
        Raises:
            ProfileNotFound: If no profile has been computed for user_id
        """
        profile = self.profile_store.get_profile(user_id)
        if profile is None:
            raise ProfileNotFound(user_id)
        return profile

    def refresh_behavior_profile(self, user_id: str) -> BehaviorProfile:
        """Recompute synchronously, bypassing the refresh queue."""
        return self.aggregator.refresh(user_id)

    def batch_refresh_profiles(self, user_ids: Iterable[str]) -> Dict[str, int]:
        return self.aggregator.batch_refresh(user_ids)

    def get_learned_preferences(self, user_id: str) -> Optional[LearnedPreferences]:
        """Learned preferences, or None while the user is below the swipe threshold."""
        return self.profile_store.get_preferences(user_id)

    def get_tier(self, user_id: str) -> Tier:
        return self.tier_classifier.classify(user_id)

    # ------------------------------------------------------------------
    # Ranking and feed
    # ------------------------------------------------------------------

    def preview_ranking(self, viewer_id: str, candidate_id: str) -> RankingScore:
        """Full score breakdown for one pair (diagnostic)."""
        return self.ranker.rank(viewer_id, candidate_id)

    def get_feed(
        self,
        viewer_id: str,
        limit: int = 20,
        cursor: Optional[str] = None,
        exclude_ids: Collection[str] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> FeedPage:
        return self.paginator.feed(viewer_id, limit, cursor, exclude_ids, cancel_event)

    # ------------------------------------------------------------------
    # Heating
    # ------------------------------------------------------------------

    def activate_heating(
        self, user_id: str, trigger: Union[str, HeatingTrigger]
    ) -> Optional[DecayedHeatingState]:
        if self.user_store.get_user(user_id) is None:
            raise UserNotFound(user_id)
        return self.heating.activate(user_id, trigger)

    def get_heating_state(self, user_id: str) -> Optional[DecayedHeatingState]:
        return self.heating.get_current(user_id)

    def deactivate_heating(self, user_id: str) -> int:
        return self.heating.deactivate(user_id)

    # ------------------------------------------------------------------
    # Health and scheduled jobs
    # ------------------------------------------------------------------

    def get_engine_health(self) -> EngineHealth:
        return self.metrics.get_health()

    def run_metrics_rollup(self) -> EngineMetrics:
        return self.metrics.rollup()

    def run_heating_cleanup(self) -> int:
        return self.heating.cleanup_expired()

    def close(self) -> None:
        self.refresh_queue.shutdown(wait=True)
