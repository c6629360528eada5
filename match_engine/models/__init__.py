"""Data models for the Behavioral Match Ranking Engine."""

from .behavior_signal import (
    BehaviorSignal,
    SignalType,
    SIGNAL_WEIGHTS,
    POSITIVE_SIGNALS,
    NEGATIVE_SIGNALS,
)
from .behavior_profile import BehaviorProfile
from .learned_preferences import AgeRange, LearnedPreferences
from .heating_state import HeatingState, HeatingTrigger, DecayedHeatingState
from .tier import Tier
from .ranking_score import RankingScore
from .user import UserRecord, AccountStatus, GeoPoint, SearchFilters
from .feed import FeedPage, EligibilityResult
from .engine_health import EngineMetrics, EngineHealth, HeatingEffectiveness

__all__ = [
    'BehaviorSignal',
    'SignalType',
    'SIGNAL_WEIGHTS',
    'POSITIVE_SIGNALS',
    'NEGATIVE_SIGNALS',
    'BehaviorProfile',
    'AgeRange',
    'LearnedPreferences',
    'HeatingState',
    'HeatingTrigger',
    'DecayedHeatingState',
    'Tier',
    'RankingScore',
    'UserRecord',
    'AccountStatus',
    'GeoPoint',
    'SearchFilters',
    'FeedPage',
    'EligibilityResult',
    'EngineMetrics',
    'EngineHealth',
    'HeatingEffectiveness',
]
