"""
BehaviorSignal model - One immutable interaction between two users.

Signals are append-only facts. Each SignalType carries a fixed integer
weight whose sign marks it as a positive or negative signal; weights are
descriptive only and never change after a signal is created.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, FrozenSet, Mapping, Optional, Union

from match_engine.errors import InvalidSignal
from match_engine.utils.time_utils import ensure_utc, parse_timestamp, utc_now


class SignalType(str, Enum):
    """Recognized interaction types."""

    # Positive
    PROFILE_VIEW_LONG = 'PROFILE_VIEW_LONG'
    SWIPE_RIGHT = 'SWIPE_RIGHT'
    MESSAGE_SENT = 'MESSAGE_SENT'
    MESSAGE_REPLY = 'MESSAGE_REPLY'
    PAID_CHAT = 'PAID_CHAT'
    CALL_STARTED = 'CALL_STARTED'
    MEETING_BOOKED = 'MEETING_BOOKED'
    GIFT_SENT = 'GIFT_SENT'
    MEDIA_UNLOCKED = 'MEDIA_UNLOCKED'

    # Negative
    PROFILE_VIEW_SHORT = 'PROFILE_VIEW_SHORT'
    SWIPE_LEFT = 'SWIPE_LEFT'
    SWIPE_LEFT_FAST = 'SWIPE_LEFT_FAST'
    MESSAGE_IGNORED = 'MESSAGE_IGNORED'
    CHAT_ABANDONED = 'CHAT_ABANDONED'
    PROFILE_SKIPPED = 'PROFILE_SKIPPED'

    @property
    def weight(self) -> int:
        """Fixed descriptive weight for this type."""
        return SIGNAL_WEIGHTS[self]

    @property
    def is_positive(self) -> bool:
        return self in POSITIVE_SIGNALS

    @classmethod
    def parse(cls, value: Union[str, 'SignalType']) -> 'SignalType':
        """
        Coerce a raw value into a SignalType.

        Raises:
            InvalidSignal: If value is not a recognized type
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidSignal(f"Unrecognized signal type: {value!r}")


SIGNAL_WEIGHTS: Mapping[SignalType, int] = {
    SignalType.PROFILE_VIEW_LONG: 2,
    SignalType.SWIPE_RIGHT: 5,
    SignalType.MESSAGE_SENT: 10,
    SignalType.MESSAGE_REPLY: 12,
    SignalType.PAID_CHAT: 25,
    SignalType.CALL_STARTED: 30,
    SignalType.MEETING_BOOKED: 50,
    SignalType.GIFT_SENT: 15,
    SignalType.MEDIA_UNLOCKED: 8,

    SignalType.PROFILE_VIEW_SHORT: -1,
    SignalType.SWIPE_LEFT: -3,
    SignalType.SWIPE_LEFT_FAST: -5,
    SignalType.MESSAGE_IGNORED: -8,
    SignalType.CHAT_ABANDONED: -10,
    SignalType.PROFILE_SKIPPED: -2,
}

POSITIVE_SIGNALS: FrozenSet[SignalType] = frozenset({
    SignalType.PROFILE_VIEW_LONG,
    SignalType.SWIPE_RIGHT,
    SignalType.MESSAGE_SENT,
    SignalType.MESSAGE_REPLY,
    SignalType.PAID_CHAT,
    SignalType.CALL_STARTED,
    SignalType.MEETING_BOOKED,
    SignalType.GIFT_SENT,
    SignalType.MEDIA_UNLOCKED,
})

NEGATIVE_SIGNALS: FrozenSet[SignalType] = frozenset(
    set(SignalType) - POSITIVE_SIGNALS
)

LEFT_SWIPES: FrozenSet[SignalType] = frozenset({
    SignalType.SWIPE_LEFT,
    SignalType.SWIPE_LEFT_FAST,
})

VIEW_SIGNALS: FrozenSet[SignalType] = frozenset({
    SignalType.PROFILE_VIEW_LONG,
    SignalType.PROFILE_VIEW_SHORT,
})


@dataclass(frozen=True)
class BehaviorSignal:
    """
    A single recorded interaction.

    Attributes:
        actor_id: User who performed the action
        target_id: User the action was directed at
        signal_type: What happened
        timestamp: When it happened (aware UTC)
        metadata: Optional extras (view_duration_ms, message_length, amount)
    """

    actor_id: str
    target_id: str
    signal_type: SignalType
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """
        Validate and normalize after initialization.

        Raises:
            InvalidSignal: If ids are empty, the type is unrecognized, or a
                known metadata field is malformed
        """
        if not self.actor_id or not self.target_id:
            raise InvalidSignal("Signal requires both actor_id and target_id")

        object.__setattr__(self, 'signal_type', SignalType.parse(self.signal_type))
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))
        object.__setattr__(self, 'metadata', dict(self.metadata or {}))
        _validate_metadata(self.metadata)

    @property
    def weight(self) -> int:
        return self.signal_type.weight

    @property
    def is_positive(self) -> bool:
        return self.signal_type.is_positive

    @property
    def view_duration_ms(self) -> Optional[float]:
        value = self.metadata.get('view_duration_ms')
        return float(value) if value is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON output and storage."""
        return {
            'actor_id': self.actor_id,
            'target_id': self.target_id,
            'signal_type': self.signal_type.value,
            'timestamp': self.timestamp.isoformat(),
            'metadata': dict(self.metadata),
            'weight': self.weight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BehaviorSignal':
        return cls(
            actor_id=data['actor_id'],
            target_id=data['target_id'],
            signal_type=SignalType.parse(data['signal_type']),
            timestamp=parse_timestamp(data['timestamp']),
            metadata=data.get('metadata') or {},
        )


def _validate_metadata(metadata: Mapping[str, Any]) -> None:
    """Known metadata keys must hold non-negative numbers."""
    duration = metadata.get('view_duration_ms')
    if duration is not None:
        if (
            isinstance(duration, bool)
            or not isinstance(duration, (int, float))
            or not math.isfinite(duration)
            or duration < 0
        ):
            raise InvalidSignal(
                f"view_duration_ms must be a non-negative number, got: {duration!r}"
            )

    length = metadata.get('message_length')
    if length is not None:
        if isinstance(length, bool) or not isinstance(length, int) or length < 0:
            raise InvalidSignal(
                f"message_length must be a non-negative integer, got: {length!r}"
            )
