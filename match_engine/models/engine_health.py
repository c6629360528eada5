"""
Engine metrics rollup and health verdict models.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List

from match_engine.utils.time_utils import parse_timestamp


@dataclass
class HeatingEffectiveness:
    """How heating activations played out over the rollup window."""

    activations: int = 0
    heated_users: int = 0
    avg_initial_heat: float = 0.0
    engagement_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'activations': self.activations,
            'heated_users': self.heated_users,
            'avg_initial_heat': round(self.avg_initial_heat, 4),
            'engagement_rate': round(self.engagement_rate, 4),
        }


@dataclass
class EngineMetrics:
    """
    Periodic rollup of engine-wide behavior.

    Rates are 0.0-1.0. One rollup exists per period_key (a UTC date), and
    re-running a rollup for the same day replaces it.
    """

    period_key: date
    computed_at: datetime
    total_profiles: int = 0
    match_rate: float = 0.0
    response_rate: float = 0.0
    active_users: int = 0
    preference_adoption: float = 0.0
    tier_distribution: Dict[str, int] = field(default_factory=dict)
    heating: HeatingEffectiveness = field(default_factory=HeatingEffectiveness)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'period_key': self.period_key.isoformat(),
            'computed_at': self.computed_at.isoformat(),
            'total_profiles': self.total_profiles,
            'match_rate': round(self.match_rate, 4),
            'response_rate': round(self.response_rate, 4),
            'active_users': self.active_users,
            'preference_adoption': round(self.preference_adoption, 4),
            'tier_distribution': dict(self.tier_distribution),
            'heating': self.heating.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineMetrics':
        heating = data.get('heating') or {}
        return cls(
            period_key=date.fromisoformat(data['period_key']),
            computed_at=parse_timestamp(data['computed_at']),
            total_profiles=data.get('total_profiles', 0),
            match_rate=float(data.get('match_rate', 0.0)),
            response_rate=float(data.get('response_rate', 0.0)),
            active_users=data.get('active_users', 0),
            preference_adoption=float(data.get('preference_adoption', 0.0)),
            tier_distribution=dict(data.get('tier_distribution') or {}),
            heating=HeatingEffectiveness(**heating),
        )


@dataclass
class EngineHealth:
    """Pass/fail verdict over the latest metrics."""

    healthy: bool
    checks: Dict[str, bool]
    issues: List[str]
    metrics: EngineMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            'healthy': self.healthy,
            'checks': dict(self.checks),
            'issues': list(self.issues),
            'metrics': self.metrics.to_dict(),
        }
