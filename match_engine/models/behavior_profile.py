"""
BehaviorProfile model - Rolling statistics derived from a user's signals.

One profile per user, recomputed from the most recent signal window every
time that user records a signal. All rates are normalized to 0.0-1.0.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .learned_preferences import LearnedPreferences
from match_engine.utils.time_utils import parse_timestamp, utc_now


@dataclass
class BehaviorProfile:
    """
    Aggregated behavior of one user over the recent signal window.

    Swipe Metrics:
        total_swipes: Right plus left swipes
        swipe_right_count / swipe_left_count: Directional counts
        swipe_right_rate: Right swipes / total swipes

    Engagement Metrics:
        avg_profile_view_ms: Mean view duration over view signals
        total_matches: Distinct users with a mutual right swipe
        match_conversion_rate: Matches / right swipes
        message_response_rate: Replies sent / messages received

    Paid Interactions:
        paid_chat_count, call_count, meeting_count, gift_count

    Temporal:
        last_active: Most recent signal in the window
    """

    user_id: str
    total_swipes: int = 0
    swipe_right_count: int = 0
    swipe_left_count: int = 0
    swipe_right_rate: float = 0.0
    avg_profile_view_ms: float = 0.0
    total_matches: int = 0
    match_conversion_rate: float = 0.0
    message_response_rate: float = 0.0
    paid_chat_count: int = 0
    call_count: int = 0
    meeting_count: int = 0
    gift_count: int = 0
    signals_analyzed: int = 0
    last_active: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    learned_preferences: Optional[LearnedPreferences] = None

    def __post_init__(self) -> None:
        """Validate counts and rates after initialization."""
        count_fields = [
            ('total_swipes', self.total_swipes),
            ('swipe_right_count', self.swipe_right_count),
            ('swipe_left_count', self.swipe_left_count),
            ('total_matches', self.total_matches),
            ('paid_chat_count', self.paid_chat_count),
            ('call_count', self.call_count),
            ('meeting_count', self.meeting_count),
            ('gift_count', self.gift_count),
        ]
        for field_name, value in count_fields:
            if value < 0:
                raise ValueError(f"{field_name} cannot be negative: {value}")

        rate_fields = [
            ('swipe_right_rate', self.swipe_right_rate),
            ('match_conversion_rate', self.match_conversion_rate),
            ('message_response_rate', self.message_response_rate),
        ]
        for field_name, value in rate_fields:
            if value < 0 or value > 1:
                raise ValueError(
                    f"{field_name} must be between 0 and 1, got: {value}"
                )

    @property
    def paid_interaction_count(self) -> int:
        return self.paid_chat_count + self.call_count + self.meeting_count + self.gift_count

    @property
    def has_history(self) -> bool:
        return self.signals_analyzed > 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize profile to a JSON-safe dictionary."""
        return {
            'user_id': self.user_id,
            'total_swipes': self.total_swipes,
            'swipe_right_count': self.swipe_right_count,
            'swipe_left_count': self.swipe_left_count,
            'swipe_right_rate': self.swipe_right_rate,
            'avg_profile_view_ms': self.avg_profile_view_ms,
            'total_matches': self.total_matches,
            'match_conversion_rate': self.match_conversion_rate,
            'message_response_rate': self.message_response_rate,
            'paid_chat_count': self.paid_chat_count,
            'call_count': self.call_count,
            'meeting_count': self.meeting_count,
            'gift_count': self.gift_count,
            'signals_analyzed': self.signals_analyzed,
            'last_active': self.last_active.isoformat() if self.last_active else None,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'learned_preferences': (
                self.learned_preferences.to_dict() if self.learned_preferences else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BehaviorProfile':
        prefs = data.get('learned_preferences')
        last_active = data.get('last_active')
        return cls(
            user_id=data['user_id'],
            total_swipes=data.get('total_swipes', 0),
            swipe_right_count=data.get('swipe_right_count', 0),
            swipe_left_count=data.get('swipe_left_count', 0),
            swipe_right_rate=float(data.get('swipe_right_rate', 0.0)),
            avg_profile_view_ms=float(data.get('avg_profile_view_ms', 0.0)),
            total_matches=data.get('total_matches', 0),
            match_conversion_rate=float(data.get('match_conversion_rate', 0.0)),
            message_response_rate=float(data.get('message_response_rate', 0.0)),
            paid_chat_count=data.get('paid_chat_count', 0),
            call_count=data.get('call_count', 0),
            meeting_count=data.get('meeting_count', 0),
            gift_count=data.get('gift_count', 0),
            signals_analyzed=data.get('signals_analyzed', 0),
            last_active=parse_timestamp(last_active) if last_active else None,
            created_at=parse_timestamp(data['created_at']),
            updated_at=parse_timestamp(data['updated_at']),
            learned_preferences=LearnedPreferences.from_dict(prefs) if prefs else None,
        )

    @classmethod
    def empty(cls, user_id: str, now: Optional[datetime] = None) -> 'BehaviorProfile':
        """Profile for a user with no signals in the window."""
        now = now or utc_now()
        return cls(user_id=user_id, created_at=now, updated_at=now)
