"""
HeatingState model - A short-lived, decaying emotional boost.

A state is created when a qualifying event fires and is never decayed in
storage: the effective heat is a pure function of elapsed time, computed
on read with `heat_at`.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from match_engine.utils.time_utils import ensure_utc, minutes_between, parse_timestamp


class HeatingTrigger(str, Enum):
    """Events that heat a user up."""

    MATCH_RECEIVED = 'MATCH_RECEIVED'
    SUPER_LIKE_RECEIVED = 'SUPER_LIKE_RECEIVED'
    GIFT_RECEIVED = 'GIFT_RECEIVED'
    PAID_CHAT_COMPLETED = 'PAID_CHAT_COMPLETED'
    CALL_ENDED = 'CALL_ENDED'
    MEETING_COMPLETED = 'MEETING_COMPLETED'

    @classmethod
    def parse(cls, value) -> 'HeatingTrigger':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unrecognized heating trigger: {value!r}")


@dataclass(frozen=True)
class HeatingState:
    """
    One heating activation.

    Attributes:
        user_id: Heated user
        trigger: Event that caused the activation
        triggered_at: Activation time
        expires_at: Hard expiry (triggered_at + window)
        heat_level: Initial heat, 0-100
        decay_rate: Heat lost per elapsed minute
        activations_today: Activation ordinal within the UTC day (1-based)
        state_id: Store-assigned identifier
    """

    user_id: str
    trigger: HeatingTrigger
    triggered_at: datetime
    expires_at: datetime
    heat_level: float
    decay_rate: float
    activations_today: int = 1
    state_id: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'trigger', HeatingTrigger.parse(self.trigger))
        object.__setattr__(self, 'triggered_at', ensure_utc(self.triggered_at))
        object.__setattr__(self, 'expires_at', ensure_utc(self.expires_at))

        if self.heat_level < 0 or self.heat_level > 100:
            raise ValueError(f"heat_level must be between 0 and 100, got: {self.heat_level}")
        if self.decay_rate < 0:
            raise ValueError(f"decay_rate cannot be negative: {self.decay_rate}")
        if self.expires_at < self.triggered_at:
            raise ValueError("expires_at cannot precede triggered_at")

    def heat_at(self, now: datetime) -> float:
        """
        Effective heat at `now`.

        Linear decay from the initial level, floored at 0, and 0 once the
        state has expired. Reads before triggered_at see the initial level.
        """
        if ensure_utc(now) >= self.expires_at:
            return 0.0
        elapsed = max(0.0, minutes_between(self.triggered_at, now))
        return max(0.0, min(100.0, self.heat_level - elapsed * self.decay_rate))

    def is_heated_at(self, now: datetime) -> bool:
        return self.heat_at(now) > 0 and ensure_utc(now) < self.expires_at

    def decayed(self, now: datetime) -> 'DecayedHeatingState':
        """Snapshot of this state as seen at `now`."""
        return DecayedHeatingState(
            state=self,
            as_of=ensure_utc(now),
            current_heat=self.heat_at(now),
            is_heated=self.is_heated_at(now),
        )

    def expired_at(self, when: datetime) -> 'HeatingState':
        """Copy of this state forced to expire at `when`."""
        when = max(ensure_utc(when), self.triggered_at)
        return replace(self, expires_at=min(self.expires_at, when))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state_id': self.state_id,
            'user_id': self.user_id,
            'trigger': self.trigger.value,
            'triggered_at': self.triggered_at.isoformat(),
            'expires_at': self.expires_at.isoformat(),
            'heat_level': self.heat_level,
            'decay_rate': self.decay_rate,
            'activations_today': self.activations_today,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HeatingState':
        return cls(
            user_id=data['user_id'],
            trigger=HeatingTrigger.parse(data['trigger']),
            triggered_at=parse_timestamp(data['triggered_at']),
            expires_at=parse_timestamp(data['expires_at']),
            heat_level=float(data['heat_level']),
            decay_rate=float(data['decay_rate']),
            activations_today=int(data.get('activations_today', 1)),
            state_id=data.get('state_id'),
        )


@dataclass(frozen=True)
class DecayedHeatingState:
    """A HeatingState evaluated at a point in time."""

    state: HeatingState
    as_of: datetime
    current_heat: float
    is_heated: bool

    def multiplier(self, max_multiplier: float = 2.0) -> float:
        """Ranking multiplier 1 + heat/100, bounded to max_multiplier."""
        if not self.is_heated:
            return 1.0
        return min(max_multiplier, 1.0 + self.current_heat / 100.0)

    def to_dict(self) -> Dict[str, Any]:
        data = self.state.to_dict()
        data.update({
            'as_of': self.as_of.isoformat(),
            'current_heat': round(self.current_heat, 4),
            'is_heated': self.is_heated,
            'multiplier': round(self.multiplier(), 4),
        })
        return data
