"""
Thread-safe in-memory stores.

Used for tests, the demo, and single-process deployments. The signal store
keeps an (actor, target, type) index so reciprocal-swipe lookups are O(1)
per pair.
"""

import itertools
import threading
from collections import Counter, defaultdict
from dataclasses import replace
from datetime import date, datetime
from typing import Collection, Dict, Iterable, List, Optional, Set, Tuple

from match_engine.models.behavior_profile import BehaviorProfile
from match_engine.models.behavior_signal import BehaviorSignal, SignalType
from match_engine.models.engine_health import EngineMetrics
from match_engine.models.heating_state import HeatingState
from match_engine.models.learned_preferences import LearnedPreferences
from match_engine.models.user import UserRecord
from match_engine.utils.time_utils import ensure_utc
from .base import HeatingStore, MetricsStore, ProfileStore, SignalStore, UserStore


class InMemorySignalStore(SignalStore):

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_actor: Dict[str, List[BehaviorSignal]] = defaultdict(list)
        self._by_target: Dict[str, List[BehaviorSignal]] = defaultdict(list)
        self._pair_index: Counter = Counter()

    def append(self, signal: BehaviorSignal) -> None:
        with self._lock:
            self._by_actor[signal.actor_id].append(signal)
            self._by_target[signal.target_id].append(signal)
            self._pair_index[(signal.actor_id, signal.target_id, signal.signal_type)] += 1

    def recent_for_actor(self, actor_id: str, limit: int) -> List[BehaviorSignal]:
        with self._lock:
            signals = list(self._by_actor.get(actor_id, ()))
        # Stable sort keeps insertion order for equal timestamps
        signals.reverse()
        signals.sort(key=lambda s: s.timestamp, reverse=True)
        return signals[:limit]

    def find_reciprocal(
        self,
        target_id: str,
        actor_ids: Collection[str],
        signal_type: SignalType,
    ) -> Set[str]:
        with self._lock:
            return {
                actor_id for actor_id in actor_ids
                if self._pair_index.get((actor_id, target_id, signal_type), 0) > 0
            }

    def count_inbound(
        self,
        target_id: str,
        signal_type: SignalType,
        since: Optional[datetime] = None,
    ) -> int:
        since = ensure_utc(since) if since else None
        with self._lock:
            return sum(
                1 for s in self._by_target.get(target_id, ())
                if s.signal_type == signal_type and (since is None or s.timestamp >= since)
            )

    def count_for_actor_between(
        self,
        actor_id: str,
        start: datetime,
        end: datetime,
        signal_types: Iterable[SignalType],
    ) -> int:
        start, end = ensure_utc(start), ensure_utc(end)
        wanted = set(signal_types)
        with self._lock:
            return sum(
                1 for s in self._by_actor.get(actor_id, ())
                if s.signal_type in wanted and start <= s.timestamp < end
            )

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._by_actor.values())


class InMemoryProfileStore(ProfileStore):

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._profiles: Dict[str, BehaviorProfile] = {}
        self._preferences: Dict[str, LearnedPreferences] = {}

    def save_profile(self, profile: BehaviorProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = profile

    def get_profile(self, user_id: str) -> Optional[BehaviorProfile]:
        with self._lock:
            return self._profiles.get(user_id)

    def list_profiles(self) -> List[BehaviorProfile]:
        with self._lock:
            return list(self._profiles.values())

    def save_preferences(self, preferences: LearnedPreferences) -> None:
        with self._lock:
            self._preferences[preferences.user_id] = preferences

    def get_preferences(self, user_id: str) -> Optional[LearnedPreferences]:
        with self._lock:
            return self._preferences.get(user_id)


class InMemoryHeatingStore(HeatingStore):

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._states: Dict[str, HeatingState] = {}
        self._ids = itertools.count(1)

    def insert(self, state: HeatingState) -> HeatingState:
        with self._lock:
            state_id = str(next(self._ids))
            stored = replace(state, state_id=state_id)
            self._states[state_id] = stored
            return stored

    def count_since(self, user_id: str, since: datetime) -> int:
        since = ensure_utc(since)
        with self._lock:
            return sum(
                1 for s in self._states.values()
                if s.user_id == user_id and s.triggered_at >= since
            )

    def active_states(self, user_id: str, now: datetime) -> List[HeatingState]:
        now = ensure_utc(now)
        with self._lock:
            states = [
                s for s in self._states.values()
                if s.user_id == user_id and s.expires_at > now
            ]
        return sorted(states, key=lambda s: (s.triggered_at, int(s.state_id)), reverse=True)

    def expire_all(self, user_id: str, now: datetime) -> int:
        now = ensure_utc(now)
        expired = 0
        with self._lock:
            for state_id, state in list(self._states.items()):
                if state.user_id == user_id and state.expires_at > now:
                    self._states[state_id] = state.expired_at(now)
                    expired += 1
        return expired

    def delete_expired_before(self, cutoff: datetime) -> int:
        cutoff = ensure_utc(cutoff)
        with self._lock:
            doomed = [k for k, s in self._states.items() if s.expires_at < cutoff]
            for state_id in doomed:
                del self._states[state_id]
        return len(doomed)

    def states_between(self, start: datetime, end: datetime) -> List[HeatingState]:
        start, end = ensure_utc(start), ensure_utc(end)
        with self._lock:
            return sorted(
                (s for s in self._states.values() if start <= s.triggered_at < end),
                key=lambda s: s.triggered_at,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


class InMemoryMetricsStore(MetricsStore):

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._metrics: Dict[date, EngineMetrics] = {}

    def save_metrics(self, metrics: EngineMetrics) -> None:
        with self._lock:
            self._metrics[metrics.period_key] = metrics

    def get_metrics(self, period_key: date) -> Optional[EngineMetrics]:
        with self._lock:
            return self._metrics.get(period_key)

    def latest_metrics(self) -> Optional[EngineMetrics]:
        with self._lock:
            if not self._metrics:
                return None
            return self._metrics[max(self._metrics)]


class InMemoryUserStore(UserStore):
    """Stand-in for the external user service."""

    def __init__(self, users: Iterable[UserRecord] = ()) -> None:
        self._lock = threading.RLock()
        self._users: Dict[str, UserRecord] = {}
        self._blocks: Set[Tuple[str, str]] = set()
        for user in users:
            self.save_user(user)

    def save_user(self, user: UserRecord) -> None:
        with self._lock:
            self._users[user.user_id] = user

    def update_user(self, user_id: str, **changes) -> UserRecord:
        with self._lock:
            updated = self._users[user_id].model_copy(update=changes)
            self._users[user_id] = updated
            return updated

    def block(self, blocker_id: str, blocked_id: str) -> None:
        with self._lock:
            self._blocks.add((blocker_id, blocked_id))

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self._users.get(user_id)

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        with self._lock:
            return {uid: self._users[uid] for uid in user_ids if uid in self._users}

    def get_blocked_ids(self, user_id: str) -> Set[str]:
        with self._lock:
            return {blocked for blocker, blocked in self._blocks if blocker == user_id}

    def find_candidates(
        self,
        viewer: UserRecord,
        limit: int,
        exclude_ids: Collection[str] = (),
    ) -> List[UserRecord]:
        excluded = set(exclude_ids) | {viewer.user_id}
        filters = viewer.search_filters

        with self._lock:
            users = [self._users[k] for k in sorted(self._users)]

        pool = []
        for user in users:
            if user.user_id in excluded:
                continue
            if filters is not None and not self._passes_filters(viewer, user):
                continue
            pool.append(user)
            if len(pool) >= limit:
                break
        return pool

    @staticmethod
    def _passes_filters(viewer: UserRecord, candidate: UserRecord) -> bool:
        filters = viewer.search_filters
        if candidate.age is not None:
            if filters.min_age is not None and candidate.age < filters.min_age:
                return False
            if filters.max_age is not None and candidate.age > filters.max_age:
                return False
        if filters.max_distance_km is not None:
            distance = viewer.distance_to(candidate)
            if distance is not None and distance > filters.max_distance_km:
                return False
        return True
