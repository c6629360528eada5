"""
End-to-end integration tests.

Tests the complete pipeline from recorded signals to a ranked feed,
through MatchEngine with in-memory stores.
"""

import threading

import pytest

from match_engine.engine import MatchEngine
from match_engine.errors import ProfileNotFound, UserNotFound
from match_engine.models import HeatingTrigger, SignalType, Tier

from conftest import NOW, FixedClock, make_user


@pytest.fixture
def clock():
    return FixedClock()


def build_engine(clock, users):
    return MatchEngine.in_memory(users=users, clock=clock)


class TestEndToEnd:
    """End-to-end tests for the complete pipeline."""

    def test_new_user_sees_neutral_scores(self, clock):
        """A viewer with no signals scoring a candidate with no history."""
        engine = build_engine(clock, [make_user('newbie'), make_user('cand')])
        try:
            score = engine.preview_ranking('newbie', 'cand')
        finally:
            engine.close()

        assert score.similarity_score == 50.0
        assert score.behavior_score == 50.0
        assert score.base_score == 100.0

    def test_learned_preferences_from_right_swipes(self, clock):
        """65 likes on 28-32 year olds give an age range inside 26-34."""
        liked = [
            make_user(f"liked-{i:02d}", age=28 + i % 5) for i in range(65)
        ]
        engine = build_engine(clock, [make_user('u')] + liked)
        try:
            for user in liked:
                clock.advance(seconds=1)
                engine.track_swipe('u', user.user_id, 'right', view_duration_ms=3000)
            assert engine.wait_for_refreshes(timeout=10)

            prefs = engine.get_learned_preferences('u')
            profile = engine.get_behavior_profile('u')
        finally:
            engine.close()

        assert prefs is not None
        assert prefs.confidence_level == pytest.approx(0.65)
        assert 26 <= prefs.age_range.min_age <= prefs.age_range.max_age <= 34
        assert profile.total_swipes == 65
        assert profile.swipe_right_rate == 1.0

    def test_preferences_absent_below_threshold(self, clock):
        users = [make_user('u')] + [make_user(f"c{i}") for i in range(10)]
        engine = build_engine(clock, users)
        try:
            for i in range(10):
                engine.track_swipe('u', f"c{i}", 'right')
            engine.wait_for_refreshes(timeout=10)

            assert engine.get_learned_preferences('u') is None
            assert engine.get_behavior_profile('u').total_swipes == 10
        finally:
            engine.close()

    def test_meeting_heats_to_full_then_decays(self, clock):
        engine = build_engine(clock, [make_user('u')])
        try:
            state = engine.activate_heating('u', HeatingTrigger.MEETING_COMPLETED)
            assert state.current_heat == 100.0

            clock.advance(minutes=5)
            current = engine.get_heating_state('u')
        finally:
            engine.close()

        assert current.current_heat == pytest.approx(99.5)
        assert current.is_heated

    def test_feed_orders_by_final_score(self, clock):
        """A royal candidate outranks an otherwise identical standard one."""
        engine = build_engine(clock, [
            make_user('viewer'),
            make_user('plain'),
            make_user('royal', is_royal=True),
        ])
        try:
            page = engine.get_feed('viewer', limit=10)
            truncated = engine.get_feed('viewer', limit=1)
        finally:
            engine.close()

        assert [s.candidate_id for s in page.candidates] == ['royal', 'plain']
        assert page.candidates[0].final_score > page.candidates[1].final_score
        assert page.next_cursor is None
        assert page.has_more is False

        assert [s.candidate_id for s in truncated.candidates] == ['royal']
        assert truncated.next_cursor == 'royal'

    def test_cursor_continues_the_feed(self, clock):
        users = [make_user('viewer')] + [make_user(f"c{i}") for i in range(5)]
        engine = build_engine(clock, users)
        try:
            seen = []
            cursor = None
            for _ in range(5):
                page = engine.get_feed('viewer', limit=2, cursor=cursor, exclude_ids=seen)
                seen.extend(s.candidate_id for s in page.candidates)
                cursor = page.next_cursor
                if cursor is None:
                    break
        finally:
            engine.close()

        assert sorted(seen) == [f"c{i}" for i in range(5)]
        assert len(seen) == len(set(seen))

    def test_heated_viewer_boosts_every_score(self, clock):
        engine = build_engine(clock, [make_user('viewer'), make_user('cand', age=29)])
        try:
            cold = engine.preview_ranking('viewer', 'cand')
            engine.activate_heating('viewer', 'MATCH_RECEIVED')
            hot = engine.preview_ranking('viewer', 'cand')
        finally:
            engine.close()

        assert cold.heating_multiplier == 1.0
        assert hot.heating_multiplier == pytest.approx(1.6)
        assert hot.final_score == pytest.approx(min(100.0, cold.final_score * 1.6))

    def test_mutual_likes_become_matches(self, clock):
        users = [make_user('u')] + [make_user(f"c{i}") for i in range(4)]
        engine = build_engine(clock, users)
        try:
            for i in range(4):
                engine.track_swipe('u', f"c{i}", 'right')
            engine.track_swipe('c0', 'u', 'right')
            engine.track_swipe('c1', 'u', 'right')
            engine.track_swipe('c2', 'u', 'left')
            profile = engine.refresh_behavior_profile('u')
        finally:
            engine.close()

        assert profile.total_matches == 2
        assert profile.match_conversion_rate == pytest.approx(0.5)

    def test_paid_interactions_drive_monetization_tier(self, clock):
        users = [make_user('u'), make_user('partner')]
        engine = build_engine(clock, users)
        try:
            for _ in range(5):
                engine.track_paid_interaction('u', 'partner', 'chat', '2.50')
            engine.track_paid_interaction('u', 'partner', 'meeting')
            engine.refresh_behavior_profile('u')
            tier = engine.get_tier('u')
        finally:
            engine.close()

        assert tier == Tier.HIGH_MONETIZATION

    def test_metrics_rollup_and_health(self, clock):
        users = [make_user('a'), make_user('b')]
        engine = build_engine(clock, users)
        try:
            engine.track_swipe('a', 'b', 'right')
            engine.track_swipe('b', 'a', 'right')
            engine.track_message('a', 'b', is_reply=False)
            engine.track_message('b', 'a', is_reply=True)
            engine.batch_refresh_profiles(['a', 'b'])

            metrics = engine.run_metrics_rollup()
            health = engine.get_engine_health()
        finally:
            engine.close()

        assert metrics.total_profiles == 2
        assert metrics.match_rate == pytest.approx(1.0)
        assert metrics.period_key == NOW.date()
        # Two users are far below the active-user floor
        assert health.checks['active_users'] is False
        assert not health.healthy

    def test_unknown_users(self, clock):
        engine = build_engine(clock, [make_user('viewer')])
        try:
            with pytest.raises(UserNotFound):
                engine.get_feed('ghost')
            with pytest.raises(UserNotFound):
                engine.preview_ranking('viewer', 'ghost')
            with pytest.raises(UserNotFound):
                engine.activate_heating('ghost', 'MATCH_RECEIVED')
            with pytest.raises(ProfileNotFound):
                engine.get_behavior_profile('viewer')
        finally:
            engine.close()


class TestEngineProperties:
    """Invariants that hold across the whole engine."""

    def test_signal_weight_signs_are_fixed(self):
        positives = {t for t in SignalType if t.weight > 0}
        negatives = {t for t in SignalType if t.weight < 0}
        assert SignalType.SWIPE_RIGHT in positives
        assert SignalType.MEETING_BOOKED in positives
        assert {SignalType.SWIPE_LEFT, SignalType.SWIPE_LEFT_FAST, SignalType.PROFILE_SKIPPED} <= negatives

    def test_heat_never_increases_between_activations(self, clock):
        engine = build_engine(clock, [make_user('u')])
        try:
            engine.activate_heating('u', 'GIFT_RECEIVED')
            readings = []
            for _ in range(12):
                state = engine.get_heating_state('u')
                readings.append(state.current_heat if state else 0.0)
                clock.advance(minutes=7)
        finally:
            engine.close()

        assert readings == sorted(readings, reverse=True)
        assert all(0.0 <= r <= 100.0 for r in readings)
        assert readings[-1] == 0.0

    def test_daily_cap_under_concurrency(self, clock):
        engine = build_engine(clock, [make_user('u')])
        results = []
        lock = threading.Lock()

        def heat():
            state = engine.activate_heating('u', 'MATCH_RECEIVED')
            with lock:
                results.append(state)

        try:
            threads = [threading.Thread(target=heat) for _ in range(21)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        finally:
            engine.close()

        stored = [r for r in results if r is not None]
        assert len(stored) == 20
        assert len(engine.heating_store) == 20

    def test_ranking_is_deterministic(self, clock):
        engine = build_engine(clock, [make_user('viewer'), make_user('cand', age=35)])
        try:
            engine.track_swipe('cand', 'viewer', 'right')
            engine.refresh_behavior_profile('cand')
            first = engine.preview_ranking('viewer', 'cand')
            second = engine.preview_ranking('viewer', 'cand')
        finally:
            engine.close()

        assert first == second

    def test_blocked_candidate_never_served(self, clock):
        engine = build_engine(clock, [
            make_user('viewer'),
            make_user('blocked', is_royal=True),
            make_user('other'),
        ])
        engine.user_store.block('viewer', 'blocked')
        try:
            page = engine.get_feed('viewer', limit=10)
        finally:
            engine.close()

        assert [s.candidate_id for s in page.candidates] == ['other']
