"""
Abstract store interfaces.

The engine depends only on these interfaces. The user store is an external
collaborator (profile/identity service); the signal, profile, heating and
metrics stores are owned by the engine.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime
from typing import Collection, Dict, Iterable, List, Optional, Set

from match_engine.models.behavior_profile import BehaviorProfile
from match_engine.models.behavior_signal import BehaviorSignal, SignalType
from match_engine.models.engine_health import EngineMetrics
from match_engine.models.heating_state import HeatingState
from match_engine.models.learned_preferences import LearnedPreferences
from match_engine.models.user import UserRecord


class SignalStore(ABC):
    """Append-only log of behavior signals."""

    @abstractmethod
    def append(self, signal: BehaviorSignal) -> None:
        """Append one signal. Signals are never updated or deleted here."""

    @abstractmethod
    def recent_for_actor(self, actor_id: str, limit: int) -> List[BehaviorSignal]:
        """Most recent signals performed by actor_id, newest first."""

    @abstractmethod
    def find_reciprocal(
        self,
        target_id: str,
        actor_ids: Collection[str],
        signal_type: SignalType,
    ) -> Set[str]:
        """
        Subset of actor_ids that have sent `signal_type` to target_id.

        One batched lookup over the (actor, target, type) index.
        """

    @abstractmethod
    def count_inbound(
        self,
        target_id: str,
        signal_type: SignalType,
        since: Optional[datetime] = None,
    ) -> int:
        """Number of `signal_type` signals received by target_id."""

    @abstractmethod
    def count_for_actor_between(
        self,
        actor_id: str,
        start: datetime,
        end: datetime,
        signal_types: Iterable[SignalType],
    ) -> int:
        """Signals of the given types performed by actor_id in [start, end)."""


class ProfileStore(ABC):
    """Derived behavior profiles and learned preferences."""

    @abstractmethod
    def save_profile(self, profile: BehaviorProfile) -> None:
        """Insert or replace the profile for profile.user_id."""

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[BehaviorProfile]:
        """Stored profile, or None if never computed."""

    @abstractmethod
    def list_profiles(self) -> List[BehaviorProfile]:
        """All stored profiles (used by metrics rollups)."""

    @abstractmethod
    def save_preferences(self, preferences: LearnedPreferences) -> None:
        """Replace the learned preferences for preferences.user_id."""

    @abstractmethod
    def get_preferences(self, user_id: str) -> Optional[LearnedPreferences]:
        """Stored preferences, or None if never learned."""


class HeatingStore(ABC):
    """Heating activations, one row per activation."""

    @abstractmethod
    def insert(self, state: HeatingState) -> HeatingState:
        """Store a new activation and return it with its state_id set."""

    @abstractmethod
    def count_since(self, user_id: str, since: datetime) -> int:
        """Activations for user_id triggered at or after `since`."""

    @abstractmethod
    def active_states(self, user_id: str, now: datetime) -> List[HeatingState]:
        """Non-expired states for user_id, most recently triggered first."""

    @abstractmethod
    def expire_all(self, user_id: str, now: datetime) -> int:
        """Force every non-expired state of user_id to expire at `now`."""

    @abstractmethod
    def delete_expired_before(self, cutoff: datetime) -> int:
        """Delete states whose expiry is before cutoff. Returns rows deleted."""

    @abstractmethod
    def states_between(self, start: datetime, end: datetime) -> List[HeatingState]:
        """States triggered in [start, end)."""

    def insert_capped(
        self,
        state: HeatingState,
        since: datetime,
        cap: int,
    ) -> Optional[HeatingState]:
        """
        Insert `state` only if user has fewer than `cap` activations since `since`.

        Returns the stored state, or None when the cap is reached. This
        default is count-then-insert and is only atomic if the caller
        serializes per user; stores that can do better override it.
        """
        count = self.count_since(state.user_id, since)
        if count >= cap:
            return None
        return self.insert(replace(state, activations_today=count + 1))


class MetricsStore(ABC):
    """Periodic metric rollups keyed by day."""

    @abstractmethod
    def save_metrics(self, metrics: EngineMetrics) -> None:
        """Insert or replace the rollup for metrics.period_key."""

    @abstractmethod
    def get_metrics(self, period_key: date) -> Optional[EngineMetrics]:
        """Rollup for a day, or None."""

    @abstractmethod
    def latest_metrics(self) -> Optional[EngineMetrics]:
        """Most recent rollup, or None."""


class UserStore(ABC):
    """
    Access to users mirrored from the external user/profile service.

    The engine only reads users while ranking. save_user and block are the
    sync path the user service writes through.
    """

    @abstractmethod
    def save_user(self, user: UserRecord) -> None:
        """Insert or replace one user record."""

    @abstractmethod
    def block(self, blocker_id: str, blocked_id: str) -> None:
        """Record that blocker_id blocked blocked_id. Idempotent."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserRecord]:
        """User attributes, or None if unknown."""

    @abstractmethod
    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        """Users that exist among user_ids, keyed by id."""

    @abstractmethod
    def get_blocked_ids(self, user_id: str) -> Set[str]:
        """Ids that user_id has blocked."""

    @abstractmethod
    def find_candidates(
        self,
        viewer: UserRecord,
        limit: int,
        exclude_ids: Collection[str] = (),
    ) -> List[UserRecord]:
        """
        Raw candidate pool for viewer, honoring viewer.search_filters.

        Safety exclusion is not this method's job; the Safety Filter runs
        on whatever comes back.
        """
