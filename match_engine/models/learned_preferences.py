"""
LearnedPreferences model - Soft preferences inferred from liked candidates.

Preferences are derived, never authored: they are rebuilt wholesale from a
user's recent right swipes and carry a confidence level that damps their
influence on similarity scoring.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from match_engine.utils.time_utils import parse_timestamp, utc_now


@dataclass(frozen=True)
class AgeRange:
    """Inclusive age band."""

    min_age: int
    max_age: int

    def __post_init__(self) -> None:
        if self.min_age > self.max_age:
            raise ValueError(
                f"min_age cannot exceed max_age: {self.min_age} > {self.max_age}"
            )

    def contains(self, age: int) -> bool:
        return self.min_age <= age <= self.max_age

    def deviation(self, age: int) -> int:
        """Years outside the band (0 when inside)."""
        if self.contains(age):
            return 0
        return min(abs(age - self.min_age), abs(age - self.max_age))


@dataclass
class LearnedPreferences:
    """
    Inferred preference clusters for one user.

    Attributes:
        user_id: Owner of the preferences
        confidence_level: min(1, liked_count / 100), in 0.0-1.0
        swipes_analyzed: Number of liked candidates considered
        age_range: Observed age band widened by the age margin
        max_distance_km: Mean observed distance times the distance margin
        body_types: Body types seen in at least 3 liked profiles
        styles: Styles seen in at least 3 liked profiles
        interests: Interests seen in at least 3 liked profiles
        last_updated: When these preferences were built
    """

    user_id: str
    confidence_level: float = 0.0
    swipes_analyzed: int = 0
    age_range: Optional[AgeRange] = None
    max_distance_km: Optional[float] = None
    body_types: List[str] = field(default_factory=list)
    styles: List[str] = field(default_factory=list)
    interests: List[str] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.confidence_level < 0 or self.confidence_level > 1:
            raise ValueError(
                f"confidence_level must be between 0 and 1, got: {self.confidence_level}"
            )
        if self.swipes_analyzed < 0:
            raise ValueError(
                f"swipes_analyzed cannot be negative: {self.swipes_analyzed}"
            )

    @property
    def has_signal(self) -> bool:
        """True if any preference dimension was learned."""
        return bool(
            self.age_range or self.max_distance_km
            or self.body_types or self.styles or self.interests
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'confidence_level': self.confidence_level,
            'swipes_analyzed': self.swipes_analyzed,
            'age_range': (
                {'min': self.age_range.min_age, 'max': self.age_range.max_age}
                if self.age_range else None
            ),
            'max_distance_km': self.max_distance_km,
            'body_types': list(self.body_types),
            'styles': list(self.styles),
            'interests': list(self.interests),
            'last_updated': self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LearnedPreferences':
        age_range = data.get('age_range')
        return cls(
            user_id=data['user_id'],
            confidence_level=float(data.get('confidence_level', 0.0)),
            swipes_analyzed=int(data.get('swipes_analyzed', 0)),
            age_range=AgeRange(age_range['min'], age_range['max']) if age_range else None,
            max_distance_km=data.get('max_distance_km'),
            body_types=list(data.get('body_types') or []),
            styles=list(data.get('styles') or []),
            interests=list(data.get('interests') or []),
            last_updated=parse_timestamp(data['last_updated']),
        )

    @classmethod
    def empty(cls, user_id: str, now: Optional[datetime] = None) -> 'LearnedPreferences':
        """Zero-confidence record used when nothing could be learned."""
        return cls(user_id=user_id, last_updated=now or utc_now())
