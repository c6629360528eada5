"""
Heating state manager.

Activates, reads and manually expires per-user heating states. Heat decay
is applied at read time from elapsed minutes; nothing is decayed in
storage. Activations are capped per UTC day, and the count-then-insert
runs under a per-user lock so concurrent triggers cannot exceed the cap.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Union

from match_engine.config import DEFAULT_CONFIG, EngineConfig
from match_engine.errors import InvalidRequest
from match_engine.models.heating_state import DecayedHeatingState, HeatingState, HeatingTrigger
from match_engine.storage.base import HeatingStore
from match_engine.utils.time_utils import start_of_day, utc_now


logger = logging.getLogger(__name__)


class HeatingStateManager:
    """
    Manager for time-boxed heating boosts.

    Example usage:
        manager = HeatingStateManager(heating_store)
        manager.activate("user-1", HeatingTrigger.MEETING_COMPLETED)
        manager.get_current("user-1").current_heat
        # 100.0 right after activation
    """

    def __init__(
        self,
        heating_store: HeatingStore,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable = utc_now,
    ) -> None:
        self.heating_store = heating_store
        self.config = config.heating
        self.clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def activate(
        self,
        user_id: str,
        trigger: Union[str, HeatingTrigger],
    ) -> Optional[DecayedHeatingState]:
        """
        Start a new heating state for user_id.

        Once the daily cap is reached the trigger is ignored and the
        current state (None if nothing is heating) is returned unchanged.

        Raises:
            InvalidRequest: If trigger is not a HeatingTrigger
        """
        try:
            trigger = HeatingTrigger.parse(trigger)
        except ValueError as e:
            raise InvalidRequest(str(e))

        now = self.clock()
        state = HeatingState(
            user_id=user_id,
            trigger=trigger,
            triggered_at=now,
            expires_at=now + timedelta(minutes=self.config.window_minutes),
            heat_level=self.config.level_for(trigger),
            decay_rate=self.config.decay_per_minute,
        )

        with self._user_lock(user_id):
            stored = self.heating_store.insert_capped(
                state, start_of_day(now), self.config.max_heats_per_day
            )

        if stored is None:
            logger.info(
                f"Heating cap reached for {user_id} "
                f"({self.config.max_heats_per_day}/day); ignoring {trigger.value}"
            )
            return self.get_current(user_id)

        logger.info(
            f"Heating activated for {user_id}: {trigger.value} "
            f"level={stored.heat_level:.0f} (#{stored.activations_today} today)"
        )
        return stored.decayed(now)

    def get_current(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Optional[DecayedHeatingState]:
        """
        Most recent non-expired state, decayed to `now` (default: the
        manager's clock). Storage is not touched.
        """
        now = self.clock() if now is None else now
        states = self.heating_store.active_states(user_id, now)
        if not states:
            return None
        return states[0].decayed(now)

    def heating_multiplier(self, user_id: str, now: Optional[datetime] = None) -> float:
        """1 + heat/100 for a heated user (bounded), else 1."""
        current = self.get_current(user_id, now)
        if current is None:
            return 1.0
        return current.multiplier(self.config.max_multiplier)

    def deactivate(self, user_id: str) -> int:
        """Expire every current state of user_id immediately (admin override)."""
        expired = self.heating_store.expire_all(user_id, self.clock())
        logger.info(f"Heating deactivated for {user_id}: {expired} state(s) expired")
        return expired

    def cleanup_expired(self) -> int:
        """
        Delete states that expired before the retention window.

        Idempotent and safe to run alongside traffic: today's activations
        stay until they are older than the retention window, so the daily
        cap count is unaffected.
        """
        cutoff = self.clock() - timedelta(hours=self.config.retention_hours)
        deleted = self.heating_store.delete_expired_before(cutoff)

        logger.info(f"Heating cleanup removed {deleted} expired state(s)")
        return deleted
