"""
UserRecord model - User attributes read from the external profile store.

Uses Pydantic v2 for validation. The engine only reads these records; it
never writes user attributes. Only behavior and safety attributes are
modeled; demographic attributes are deliberately absent.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from match_engine.utils.geo import haversine_km
from match_engine.utils.time_utils import ensure_utc, utc_now


class AccountStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    SUSPENDED = 'SUSPENDED'
    DEACTIVATED = 'DEACTIVATED'
    DELETED = 'DELETED'


class GeoPoint(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    model_config = {"frozen": True}

    def distance_km(self, other: 'GeoPoint') -> float:
        return haversine_km(self.latitude, self.longitude, other.latitude, other.longitude)


class SearchFilters(BaseModel):
    """Filters a user explicitly stated for their own feed."""

    min_age: Optional[int] = Field(default=None, ge=18, le=99)
    max_age: Optional[int] = Field(default=None, ge=18, le=99)
    max_distance_km: Optional[float] = Field(default=None, gt=0)

    model_config = {"frozen": True}


class UserRecord(BaseModel):
    """
    Read-only view of a user.
    Why: Ranking, tiering and safety all need the same small attribute set.
    """
    user_id: str = Field(min_length=1)
    age: Optional[int] = Field(default=None, ge=18, le=120)
    location: Optional[GeoPoint] = None

    # Profile completeness
    photo_count: int = Field(default=0, ge=0)
    bio: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    body_type: Optional[str] = None
    style: Optional[str] = None

    # Account / safety
    account_status: AccountStatus = AccountStatus.ACTIVE
    is_royal: bool = False
    shadow_banned: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    last_active_at: Optional[datetime] = None

    search_filters: Optional[SearchFilters] = None

    model_config = {"frozen": True}

    @field_validator('created_at', 'last_active_at')
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE

    @property
    def has_bio(self) -> bool:
        return bool(self.bio and self.bio.strip())

    def distance_to(self, other: 'UserRecord') -> Optional[float]:
        """Kilometers to another user, or None if either location is unknown."""
        if self.location is None or other.location is None:
            return None
        return self.location.distance_km(other.location)
