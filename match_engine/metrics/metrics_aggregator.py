"""
Metrics aggregator - periodic engine rollups and health checks.

A rollup summarizes every stored behavior profile (match and response
rates, active users, preference adoption, tier mix) plus the heating
activations of the trailing day, and is saved under the UTC date it was
computed on. Re-running a rollup on the same day overwrites it, so the
scheduler can invoke it as often as it likes.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import pandas as pd

from match_engine.classifiers.tier_classifier import TierClassifier
from match_engine.config import DEFAULT_CONFIG, EngineConfig
from match_engine.models.behavior_profile import BehaviorProfile
from match_engine.models.behavior_signal import POSITIVE_SIGNALS
from match_engine.models.engine_health import EngineHealth, EngineMetrics, HeatingEffectiveness
from match_engine.models.tier import Tier
from match_engine.storage.base import HeatingStore, MetricsStore, ProfileStore, SignalStore, UserStore
from match_engine.utils.time_utils import utc_now


logger = logging.getLogger(__name__)

PROFILE_COLUMNS = [
    'user_id', 'swipe_right_count', 'total_matches', 'message_response_rate',
    'last_active', 'has_preferences', 'tier',
]


class MetricsAggregator:
    """
    Computes and evaluates engine rollups.

    Example usage:
        aggregator = MetricsAggregator(profiles, users, signals, heating, metrics, tiers)
        metrics = aggregator.rollup()
        health = aggregator.evaluate(metrics)
        print(health.issues)
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        user_store: UserStore,
        signal_store: SignalStore,
        heating_store: HeatingStore,
        metrics_store: MetricsStore,
        tier_classifier: TierClassifier,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable = utc_now,
    ) -> None:
        self.profile_store = profile_store
        self.user_store = user_store
        self.signal_store = signal_store
        self.heating_store = heating_store
        self.metrics_store = metrics_store
        self.tier_classifier = tier_classifier
        self.thresholds = config.health
        self.clock = clock

    def rollup(self) -> EngineMetrics:
        """Compute the current rollup and save it under today's date."""
        now = self.clock()
        profiles = self.profile_store.list_profiles()
        df = self._profiles_frame(profiles, now)

        if df.empty:
            metrics = EngineMetrics(period_key=now.date(), computed_at=now)
        else:
            right_swipes = int(df['swipe_right_count'].sum())
            active_since = now - timedelta(hours=self.thresholds.active_window_hours)
            last_active = pd.to_datetime(df['last_active'], utc=True)

            metrics = EngineMetrics(
                period_key=now.date(),
                computed_at=now,
                total_profiles=len(df),
                match_rate=(
                    float(df['total_matches'].sum()) / right_swipes if right_swipes else 0.0
                ),
                response_rate=float(df['message_response_rate'].mean()),
                active_users=int((last_active >= active_since).sum()),
                preference_adoption=float(df['has_preferences'].mean()),
                tier_distribution={
                    str(tier): int(count)
                    for tier, count in df['tier'].value_counts().sort_index().items()
                },
            )

        metrics.heating = self._heating_effectiveness(now)
        self.metrics_store.save_metrics(metrics)

        logger.info(
            f"Metrics rollup {metrics.period_key}: profiles={metrics.total_profiles}, "
            f"match_rate={metrics.match_rate:.3f}, active={metrics.active_users}"
        )
        return metrics

    def _profiles_frame(self, profiles: List[BehaviorProfile], now: datetime) -> pd.DataFrame:
        """One row per profile; users missing from the user store get no tier."""
        if not profiles:
            return pd.DataFrame(columns=PROFILE_COLUMNS)

        users = self.user_store.get_users(p.user_id for p in profiles)
        rows = []
        for profile in profiles:
            user = users.get(profile.user_id)
            tier: Optional[Tier] = (
                self.tier_classifier.classify_user(user, profile, now) if user else None
            )
            prefs = profile.learned_preferences
            rows.append({
                'user_id': profile.user_id,
                'swipe_right_count': profile.swipe_right_count,
                'total_matches': profile.total_matches,
                'message_response_rate': profile.message_response_rate,
                'last_active': profile.last_active,
                'has_preferences': bool(prefs is not None and prefs.confidence_level > 0),
                'tier': tier.value if tier else None,
            })
        return pd.DataFrame(rows, columns=PROFILE_COLUMNS)

    def _heating_effectiveness(self, now: datetime) -> HeatingEffectiveness:
        """
        Activations over the trailing day.

        engagement_rate is the share of activations during which the heated
        user performed at least one positive signal before expiry.
        """
        states = self.heating_store.states_between(now - timedelta(days=1), now)
        if not states:
            return HeatingEffectiveness()

        df = pd.DataFrame([
            {
                'user_id': s.user_id,
                'heat_level': s.heat_level,
                'engaged': self.signal_store.count_for_actor_between(
                    s.user_id, s.triggered_at, s.expires_at, POSITIVE_SIGNALS
                ) > 0,
            }
            for s in states
        ])
        return HeatingEffectiveness(
            activations=len(df),
            heated_users=int(df['user_id'].nunique()),
            avg_initial_heat=float(df['heat_level'].mean()),
            engagement_rate=float(df['engaged'].mean()),
        )

    def evaluate(self, metrics: EngineMetrics) -> EngineHealth:
        """Pass/fail each threshold and describe every failure."""
        t = self.thresholds
        checks = {
            'match_rate': metrics.match_rate >= t.min_match_rate,
            'response_rate': metrics.response_rate >= t.min_response_rate,
            'active_users': metrics.active_users >= t.min_active_users,
            'preference_adoption': metrics.preference_adoption >= t.min_preference_adoption,
        }

        issues = []
        if not checks['match_rate']:
            issues.append(
                f"Match rate {metrics.match_rate:.1%} is below {t.min_match_rate:.0%}"
            )
        if not checks['response_rate']:
            issues.append(
                f"Response rate {metrics.response_rate:.1%} is below {t.min_response_rate:.0%}"
            )
        if not checks['active_users']:
            issues.append(
                f"Only {metrics.active_users} active users in the last "
                f"{t.active_window_hours:g}h (minimum {t.min_active_users})"
            )
        if not checks['preference_adoption']:
            issues.append(
                f"Preference adoption {metrics.preference_adoption:.1%} is below "
                f"{t.min_preference_adoption:.0%}"
            )

        return EngineHealth(
            healthy=all(checks.values()),
            checks=checks,
            issues=issues,
            metrics=metrics,
        )

    def get_health(self) -> EngineHealth:
        """Health of the latest rollup, computing one if none exists yet."""
        metrics = self.metrics_store.latest_metrics()
        if metrics is None:
            metrics = self.rollup()
        return self.evaluate(metrics)
