"""
Behavior signal recorder.

Validates and appends typed interaction signals, then schedules (without
waiting for) a profile refresh for the actor. Convenience wrappers derive
the signal type from richer client inputs.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Union

from match_engine.errors import InvalidSignal
from match_engine.models.behavior_signal import BehaviorSignal, SignalType
from match_engine.storage.base import SignalStore
from match_engine.utils.constants import FAST_SWIPE_THRESHOLD_MS, LONG_VIEW_THRESHOLD_MS
from match_engine.utils.time_utils import utc_now
from .refresh_queue import ProfileRefreshQueue


logger = logging.getLogger(__name__)


PAID_INTERACTION_TYPES: Dict[str, SignalType] = {
    'chat': SignalType.PAID_CHAT,
    'call': SignalType.CALL_STARTED,
    'meeting': SignalType.MEETING_BOOKED,
    'gift': SignalType.GIFT_SENT,
    'media': SignalType.MEDIA_UNLOCKED,
}


class BehaviorSignalRecorder:
    """
    Append-only signal writer.

    Example usage:
        recorder = BehaviorSignalRecorder(signal_store, refresh_queue)
        recorder.track_swipe("u1", "u2", "left", view_duration_ms=600)
        # Records SWIPE_LEFT_FAST
    """

    def __init__(
        self,
        signal_store: SignalStore,
        refresh_queue: Optional[ProfileRefreshQueue] = None,
        clock: Callable = utc_now,
    ) -> None:
        self.signal_store = signal_store
        self.refresh_queue = refresh_queue
        self.clock = clock

    def record(
        self,
        actor_id: str,
        target_id: str,
        signal_type: Union[str, SignalType],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> BehaviorSignal:
        """
        Validate and append one signal, then schedule a profile refresh.

        Validation happens before anything is written, so a rejected signal
        leaves no trace.

        Raises:
            InvalidSignal: If the type is unrecognized or ids are missing
        """
        signal = BehaviorSignal(
            actor_id=actor_id,
            target_id=target_id,
            signal_type=SignalType.parse(signal_type),
            timestamp=self.clock(),
            metadata=metadata or {},
        )

        self.signal_store.append(signal)
        logger.info(f"Tracked signal: {actor_id} -> {target_id} [{signal.signal_type.value}]")

        if self.refresh_queue is not None:
            try:
                self.refresh_queue.enqueue(actor_id)
            except Exception:
                logger.exception(f"Could not schedule profile refresh for {actor_id}")

        return signal

    def track_profile_view(
        self, actor_id: str, target_id: str, view_duration_ms: float
    ) -> BehaviorSignal:
        """Views longer than 4 seconds are long views; the rest are short."""
        if view_duration_ms is None or view_duration_ms < 0:
            raise InvalidSignal(f"Invalid view duration: {view_duration_ms!r}")

        signal_type = (
            SignalType.PROFILE_VIEW_LONG
            if view_duration_ms > LONG_VIEW_THRESHOLD_MS
            else SignalType.PROFILE_VIEW_SHORT
        )
        return self.record(actor_id, target_id, signal_type, {
            'view_duration_ms': view_duration_ms,
        })

    def track_swipe(
        self,
        actor_id: str,
        target_id: str,
        direction: str,
        view_duration_ms: Optional[float] = None,
    ) -> BehaviorSignal:
        """
        Record a swipe. A left swipe after less than one second of viewing
        is a fast left swipe (strong disinterest).
        """
        direction = str(direction).lower()
        if direction == 'right':
            signal_type = SignalType.SWIPE_RIGHT
        elif direction == 'left':
            # A zero or missing duration is unknown, not fast
            is_fast = bool(view_duration_ms) and view_duration_ms < FAST_SWIPE_THRESHOLD_MS
            signal_type = SignalType.SWIPE_LEFT_FAST if is_fast else SignalType.SWIPE_LEFT
        else:
            raise InvalidSignal(f"Swipe direction must be 'left' or 'right', got: {direction!r}")

        metadata = {}
        if view_duration_ms is not None:
            metadata['view_duration_ms'] = view_duration_ms
        return self.record(actor_id, target_id, signal_type, metadata)

    def track_message(
        self,
        sender_id: str,
        recipient_id: str,
        is_reply: bool,
        message_length: int = 0,
    ) -> BehaviorSignal:
        signal_type = SignalType.MESSAGE_REPLY if is_reply else SignalType.MESSAGE_SENT
        return self.record(sender_id, recipient_id, signal_type, {
            'message_length': message_length,
        })

    def track_paid_interaction(
        self,
        actor_id: str,
        target_id: str,
        interaction_type: str,
        amount: Optional[Union[Decimal, str, int]] = None,
    ) -> BehaviorSignal:
        """
        Record a paid interaction (chat/call/meeting/gift/media).

        Amounts are kept as Decimal strings to preserve precision.
        """
        signal_type = PAID_INTERACTION_TYPES.get(str(interaction_type).lower())
        if signal_type is None:
            raise InvalidSignal(
                f"Unknown paid interaction type {interaction_type!r}. "
                f"Must be one of: {sorted(PAID_INTERACTION_TYPES)}"
            )

        metadata = {}
        if amount is not None:
            try:
                value = Decimal(str(amount))
            except InvalidOperation:
                raise InvalidSignal(f"Invalid amount: {amount!r}")
            if value < Decimal('0'):
                raise InvalidSignal(f"Amount cannot be negative: {amount}")
            metadata['amount'] = str(value)

        return self.record(actor_id, target_id, signal_type, metadata)
