"""
Unit tests for the metrics rollup and engine health.

Tests cover:
- Rollup aggregates over stored profiles
- Heating effectiveness over the trailing day
- Health verdicts and issue messages
"""

from datetime import timedelta

import pytest

from match_engine.models import (
    BehaviorProfile,
    EngineMetrics,
    HeatingTrigger,
    LearnedPreferences,
    SignalType,
)

from conftest import NOW


def save_profile(engine, user_id, **values):
    values.setdefault('signals_analyzed', 1)
    engine.profile_store.save_profile(BehaviorProfile(user_id=user_id, **values))


class TestRollup:
    """Tests for MetricsAggregator.rollup."""

    def test_empty_rollup(self, engine):
        metrics = engine.run_metrics_rollup()

        assert metrics.total_profiles == 0
        assert metrics.match_rate == 0.0
        assert metrics.period_key == NOW.date()
        assert engine.metrics_store.get_metrics(NOW.date()) == metrics

    def test_aggregates(self, engine, clock):
        save_profile(
            engine, "alice",
            swipe_right_count=10, total_matches=2, message_response_rate=0.8,
            last_active=clock() - timedelta(hours=2),
            learned_preferences=LearnedPreferences("alice", confidence_level=0.6),
        )
        save_profile(
            engine, "bella",
            swipe_right_count=10, total_matches=0, message_response_rate=0.2,
            last_active=clock() - timedelta(days=3),
        )
        engine.user_store.update_user("alice", is_royal=True)

        metrics = engine.run_metrics_rollup()

        assert metrics.total_profiles == 2
        assert metrics.match_rate == pytest.approx(0.1)
        assert metrics.response_rate == pytest.approx(0.5)
        assert metrics.active_users == 1
        assert metrics.preference_adoption == pytest.approx(0.5)
        assert metrics.tier_distribution == {'ROYAL': 1, 'STANDARD': 1}

    def test_profiles_without_activity_are_not_active(self, engine):
        save_profile(engine, "alice", signals_analyzed=0)
        assert engine.run_metrics_rollup().active_users == 0

    def test_rerun_overwrites_same_day(self, engine, clock):
        engine.run_metrics_rollup()
        save_profile(engine, "alice", swipe_right_count=4, total_matches=1)
        clock.advance(hours=1)

        second = engine.run_metrics_rollup()

        assert engine.metrics_store.latest_metrics() == second
        assert engine.metrics_store.get_metrics(NOW.date()).total_profiles == 1

    def test_heating_effectiveness(self, engine, clock):
        engine.activate_heating("alice", HeatingTrigger.MATCH_RECEIVED)
        engine.activate_heating("bella", HeatingTrigger.MEETING_COMPLETED)
        clock.advance(minutes=2)
        engine.record_signal("alice", "viewer", SignalType.SWIPE_RIGHT)
        engine.record_signal("bella", "viewer", SignalType.SWIPE_LEFT)
        engine.wait_for_refreshes(timeout=5)

        heating = engine.run_metrics_rollup().heating

        assert heating.activations == 2
        assert heating.heated_users == 2
        assert heating.avg_initial_heat == pytest.approx(80.0)
        assert heating.engagement_rate == pytest.approx(0.5)

    def test_old_activations_excluded(self, engine, clock):
        engine.activate_heating("alice", HeatingTrigger.MATCH_RECEIVED)
        clock.advance(days=2)

        assert engine.run_metrics_rollup().heating.activations == 0

    def test_metrics_dict_round_trip(self, engine, clock):
        save_profile(engine, "alice", swipe_right_count=4, total_matches=1)
        metrics = engine.run_metrics_rollup()

        restored = EngineMetrics.from_dict(metrics.to_dict())
        assert restored.period_key == metrics.period_key
        assert restored.tier_distribution == metrics.tier_distribution


class TestEngineHealth:
    """Tests for health evaluation."""

    def _metrics(self, **values):
        base = dict(
            period_key=NOW.date(), computed_at=NOW, total_profiles=100,
            match_rate=0.10, response_rate=0.50, active_users=40,
            preference_adoption=0.35,
        )
        base.update(values)
        return EngineMetrics(**base)

    def test_healthy(self, engine):
        health = engine.metrics.evaluate(self._metrics())
        assert health.healthy
        assert health.issues == []
        assert all(health.checks.values())

    def test_every_threshold_reports_an_issue(self, engine):
        health = engine.metrics.evaluate(self._metrics(
            match_rate=0.01, response_rate=0.1, active_users=3, preference_adoption=0.05,
        ))

        assert not health.healthy
        assert len(health.issues) == 4
        assert health.checks == {
            'match_rate': False,
            'response_rate': False,
            'active_users': False,
            'preference_adoption': False,
        }
        assert "Match rate 1.0% is below 5%" in health.issues

    def test_thresholds_are_inclusive(self, engine):
        health = engine.metrics.evaluate(self._metrics(
            match_rate=0.05, response_rate=0.30, active_users=10, preference_adoption=0.20,
        ))
        assert health.healthy

    def test_get_health_computes_rollup_when_missing(self, engine):
        health = engine.get_engine_health()

        assert not health.healthy
        assert engine.metrics_store.latest_metrics() is not None
