"""
Security and safety tests for the match ranking engine.

Tests cover:
- Blocked, shadow-banned and inactive users never reach a feed
- SQL injection prevention (values always bound as parameters)
- Decimal for money fields
- Request validation
- No demographic attributes in ranking inputs
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from match_engine.engine import MatchEngine
from match_engine.errors import InvalidRequest, InvalidSignal
from match_engine.models import AccountStatus, SignalType, UserRecord
from match_engine.storage.postgres import PostgresEngineStore

from conftest import FixedClock, make_user


@pytest.fixture
def engine():
    users = [
        make_user('viewer'),
        make_user('blocked', is_royal=True),
        make_user('blocker'),
        make_user('banned', shadow_banned=True),
        make_user('suspended', account_status=AccountStatus.SUSPENDED),
        make_user('deleted', account_status=AccountStatus.DELETED),
        make_user('ok'),
    ]
    engine = MatchEngine.in_memory(users=users, clock=FixedClock())
    engine.user_store.block('viewer', 'blocked')
    engine.user_store.block('blocker', 'viewer')
    yield engine
    engine.close()


class TestFeedSafety:
    """Safety rules win over any score."""

    def test_only_eligible_candidates_served(self, engine):
        page = engine.get_feed('viewer', limit=50)
        assert [s.candidate_id for s in page.candidates] == ['ok']

    def test_heating_cannot_bypass_a_block(self, engine):
        engine.activate_heating('viewer', 'MEETING_COMPLETED')
        engine.activate_heating('blocked', 'MEETING_COMPLETED')

        page = engine.get_feed('viewer', limit=50)

        assert 'blocked' not in {s.candidate_id for s in page.candidates}

    def test_block_is_checked_both_ways(self, engine):
        assert not engine.safety_filter.is_eligible('viewer', 'blocker').allowed
        assert not engine.safety_filter.is_eligible('blocker', 'viewer').allowed

    def test_candidate_heat_does_not_boost_their_rank(self, engine):
        before = engine.preview_ranking('viewer', 'ok')
        engine.activate_heating('ok', 'MEETING_COMPLETED')
        after = engine.preview_ranking('viewer', 'ok')

        assert after.final_score == before.final_score


class TestSQLInjectionPrevention:
    """Test SQL injection prevention."""

    @pytest.fixture
    def store_and_cursor(self):
        with patch('match_engine.storage.postgres.pool.ThreadedConnectionPool') as pool_cls:
            conn = MagicMock()
            cursor = MagicMock()
            conn.cursor.return_value.__enter__.return_value = cursor
            pool_cls.return_value.getconn.return_value = conn
            yield PostgresEngineStore("postgresql://test/db"), cursor

    def test_malicious_user_id_is_bound(self, store_and_cursor):
        """Ensure malicious ids travel as parameters, never inside SQL."""
        store, cursor = store_and_cursor
        cursor.fetchone.return_value = None
        malicious = "x'; DROP TABLE behavior_profiles; --"

        store.get_profile(malicious)

        sql, params = cursor.execute.call_args[0]
        assert malicious not in sql
        assert params == (malicious,)

    def test_malicious_ids_in_batch_lookup(self, store_and_cursor):
        store, cursor = store_and_cursor
        cursor.fetchall.return_value = []
        malicious = ["a') OR 1=1 --", "b"]

        store.find_reciprocal("u1", malicious, SignalType.SWIPE_RIGHT)

        sql, params = cursor.execute.call_args[0]
        assert "OR 1=1" not in sql
        assert params[0] == malicious


class TestMoneyFields:
    """Amounts must never pass through float."""

    def test_amount_stored_as_decimal_string(self, engine):
        signal = engine.track_paid_interaction('viewer', 'ok', 'gift', Decimal('0.10'))
        assert signal.metadata['amount'] == '0.10'

    def test_negative_amount_rejected(self, engine):
        with pytest.raises(InvalidSignal):
            engine.track_paid_interaction('viewer', 'ok', 'gift', '-5')
        assert len(engine.signal_store) == 0

    def test_garbage_amount_rejected(self, engine):
        with pytest.raises(InvalidSignal):
            engine.track_paid_interaction('viewer', 'ok', 'chat', 'ten dollars')


class TestRequestValidation:

    @pytest.mark.parametrize("limit", [0, -1, 101, True, "20"])
    def test_bad_limits(self, engine, limit):
        with pytest.raises(InvalidRequest):
            engine.get_feed('viewer', limit=limit)

    def test_empty_ids_rejected(self, engine):
        with pytest.raises(InvalidSignal):
            engine.record_signal('', 'ok', 'SWIPE_RIGHT')


class TestNoDemographicInputs:
    """Ranking inputs carry no protected attributes."""

    @pytest.mark.parametrize("attribute", ['gender', 'race', 'ethnicity', 'religion'])
    def test_attribute_not_modeled(self, attribute):
        assert attribute not in UserRecord.model_fields

    def test_extra_attributes_are_dropped(self):
        user = UserRecord(user_id='u1', religion='any')
        assert not hasattr(user, 'religion')
