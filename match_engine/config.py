"""
Engine configuration.

All tuning values (ranking weights, tier boosts, heating and feed limits,
health thresholds) are grouped into one immutable EngineConfig that is
passed to components at construction time. DEFAULT_CONFIG is built from
match_engine.utils.constants; use `with_overrides` or `from_env` for
per-test and per-deployment changes.
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional

from match_engine.errors import ConfigurationError
from match_engine.models.heating_state import HeatingTrigger
from match_engine.models.tier import Tier
from match_engine.utils import constants as C


logger = logging.getLogger(__name__)

ENV_PREFIX = 'MATCH_ENGINE_'


@dataclass(frozen=True)
class RankingWeights:
    """Sub-score weights. Must be non-negative and sum to 1.0."""

    behavior: float = C.WEIGHT_BEHAVIOR
    similarity: float = C.WEIGHT_SIMILARITY
    recency: float = C.WEIGHT_RECENCY
    popularity: float = C.WEIGHT_POPULARITY
    base: float = C.WEIGHT_BASE

    def __post_init__(self) -> None:
        for field_obj in fields(self):
            value = getattr(self, field_obj.name)
            if value < 0:
                raise ConfigurationError(
                    f"Ranking weight '{field_obj.name}' cannot be negative: {value}"
                )
        total = sum(getattr(self, f.name) for f in fields(self))
        if abs(total - 1.0) > 0.001:
            raise ConfigurationError(f"Ranking weights must sum to 1.0, got: {total}")


@dataclass(frozen=True)
class TierMultipliers:
    royal: float = C.TIER_MULTIPLIERS['ROYAL']
    high_monetization: float = C.TIER_MULTIPLIERS['HIGH_MONETIZATION']
    high_engagement: float = C.TIER_MULTIPLIERS['HIGH_ENGAGEMENT']
    standard: float = C.TIER_MULTIPLIERS['STANDARD']
    low_popularity: float = C.TIER_MULTIPLIERS['LOW_POPULARITY']
    new_user: float = C.TIER_MULTIPLIERS['NEW_USER']

    def __post_init__(self) -> None:
        for field_obj in fields(self):
            if getattr(self, field_obj.name) <= 0:
                raise ConfigurationError(
                    f"Tier multiplier '{field_obj.name}' must be positive"
                )

    def for_tier(self, tier: Tier) -> float:
        return getattr(self, tier.value.lower())


@dataclass(frozen=True)
class HeatingConfig:
    window_minutes: float = C.HEATING_WINDOW_MINUTES
    decay_per_minute: float = C.HEATING_DECAY_PER_MINUTE
    max_heats_per_day: int = C.MAX_HEATS_PER_DAY
    max_multiplier: float = C.MAX_HEATING_MULTIPLIER
    retention_hours: float = C.HEATING_RETENTION_HOURS
    trigger_levels: Mapping[str, float] = field(
        default_factory=lambda: dict(C.HEATING_TRIGGER_LEVELS)
    )

    def __post_init__(self) -> None:
        if self.window_minutes <= 0:
            raise ConfigurationError("Heating window must be positive")
        if self.max_heats_per_day < 0:
            raise ConfigurationError("max_heats_per_day cannot be negative")
        for trigger in HeatingTrigger:
            level = self.trigger_levels.get(trigger.value)
            if level is None or not 0 <= level <= C.MAX_HEAT_LEVEL:
                raise ConfigurationError(
                    f"Heating trigger {trigger.value} needs a level in 0-100"
                )

    def level_for(self, trigger: HeatingTrigger) -> float:
        return float(self.trigger_levels[trigger.value])


@dataclass(frozen=True)
class PreferenceConfig:
    profile_signal_window: int = C.PROFILE_SIGNAL_WINDOW
    min_swipes: int = C.MIN_SWIPES_FOR_PREFERENCES
    max_liked_profiles: int = C.MAX_LIKED_PROFILES
    full_confidence_likes: int = C.FULL_CONFIDENCE_LIKES
    age_margin_years: int = C.AGE_MARGIN_YEARS
    distance_margin: float = C.DISTANCE_MARGIN
    tag_min_occurrences: int = C.TAG_MIN_OCCURRENCES
    min_confidence: float = C.MIN_PREFERENCE_CONFIDENCE


@dataclass(frozen=True)
class TierThresholds:
    new_user_days: int = C.NEW_USER_DAYS
    min_paid_chats: int = C.MONETIZATION_MIN_PAID_CHATS
    min_meetings: int = C.MONETIZATION_MIN_MEETINGS
    min_response_rate: float = C.ENGAGEMENT_MIN_RESPONSE_RATE
    min_matches: int = C.ENGAGEMENT_MIN_MATCHES
    low_popularity_min_swipes: int = C.LOW_POPULARITY_MIN_SWIPES
    low_popularity_max_like_rate: float = C.LOW_POPULARITY_MAX_LIKE_RATE


@dataclass(frozen=True)
class FeedConfig:
    pool_multiplier: int = C.FEED_POOL_MULTIPLIER
    max_limit: int = C.FEED_MAX_LIMIT
    max_workers: int = C.FEED_MAX_WORKERS
    fetch_timeout_seconds: float = C.FEED_FETCH_TIMEOUT_SECONDS
    scoring_timeout_seconds: float = C.FEED_SCORING_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ConfigurationError("Feed max_workers must be at least 1")
        if self.pool_multiplier < 1:
            raise ConfigurationError("Feed pool_multiplier must be at least 1")


@dataclass(frozen=True)
class HealthThresholds:
    min_match_rate: float = C.HEALTH_MIN_MATCH_RATE
    min_response_rate: float = C.HEALTH_MIN_RESPONSE_RATE
    min_active_users: int = C.HEALTH_MIN_ACTIVE_USERS
    min_preference_adoption: float = C.HEALTH_MIN_PREFERENCE_ADOPTION
    active_window_hours: float = C.ACTIVE_USER_WINDOW_HOURS


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable configuration for every engine component.

    Example usage:
        config = DEFAULT_CONFIG.with_overrides(
            weights=RankingWeights(behavior=0.5, similarity=0.2,
                                   recency=0.1, popularity=0.1, base=0.1),
        )
    """

    weights: RankingWeights = field(default_factory=RankingWeights)
    tier_multipliers: TierMultipliers = field(default_factory=TierMultipliers)
    tiers: TierThresholds = field(default_factory=TierThresholds)
    heating: HeatingConfig = field(default_factory=HeatingConfig)
    preferences: PreferenceConfig = field(default_factory=PreferenceConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    health: HealthThresholds = field(default_factory=HealthThresholds)

    def with_overrides(self, **sections: Any) -> 'EngineConfig':
        """Copy with whole sections replaced."""
        return replace(self, **sections)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'EngineConfig':
        """
        Build a config from MATCH_ENGINE_<SECTION>__<FIELD> variables.

        Example: MATCH_ENGINE_HEATING__MAX_HEATS_PER_DAY=10. Unset values
        keep their defaults; unknown names are ignored with a warning.
        """
        environ = os.environ if environ is None else environ
        base = cls()
        overrides: Dict[str, Dict[str, Any]] = {}

        for key, raw in environ.items():
            if not key.startswith(ENV_PREFIX) or '__' not in key:
                continue
            section, _, name = key[len(ENV_PREFIX):].lower().partition('__')
            current = getattr(base, section, None)
            if current is None or not hasattr(current, name) or name == 'trigger_levels':
                logger.warning(f"Ignoring unknown config variable {key}")
                continue
            kind = {f.name: f.type for f in fields(current)}[name]
            try:
                value = kind(raw)
            except (TypeError, ValueError):
                raise ConfigurationError(f"Invalid value for {key}: {raw!r}")
            overrides.setdefault(section, {})[name] = value

        return cls(**{
            section: replace(getattr(base, section), **values)
            for section, values in overrides.items()
        })


DEFAULT_CONFIG = EngineConfig()
