"""
HTTP API tests.

Tests cover:
- Signal recording and error mapping (400/404)
- Feed, profile, preference and ranking routes
- Heating activate/read/deactivate
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import app as app_module
from app import app, build_engine, get_engine
from match_engine.engine import MatchEngine

from conftest import FixedClock, make_user


@pytest.fixture
def engine():
    engine = MatchEngine.in_memory(
        users=[make_user('viewer'), make_user('alice', age=29), make_user('bella', age=33)],
        clock=FixedClock(),
    )
    yield engine
    engine.close()


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Signals
# =============================================================================

class TestSignalRoutes:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'

    def test_record_signal(self, client, engine):
        response = client.post("/signals", json={
            'actor_id': 'viewer', 'target_id': 'alice', 'signal_type': 'swipe_right',
        })

        assert response.status_code == 201
        assert response.json()['signal_type'] == 'SWIPE_RIGHT'
        assert len(engine.signal_store) == 1

    def test_unknown_signal_type_is_400(self, client, engine):
        response = client.post("/signals", json={
            'actor_id': 'viewer', 'target_id': 'alice', 'signal_type': 'wink',
        })

        assert response.status_code == 400
        assert len(engine.signal_store) == 0

    def test_malformed_view_duration_is_400(self, client, engine):
        response = client.post("/signals", json={
            'actor_id': 'viewer', 'target_id': 'alice',
            'signal_type': 'PROFILE_VIEW_LONG', 'metadata': {'view_duration_ms': 'abc'},
        })

        assert response.status_code == 400
        assert len(engine.signal_store) == 0

    def test_missing_actor_is_422(self, client):
        response = client.post("/signals", json={
            'actor_id': '', 'target_id': 'alice', 'signal_type': 'SWIPE_RIGHT',
        })
        assert response.status_code == 422

    def test_paid_interaction(self, client):
        response = client.post("/signals/paid", json={
            'actor_id': 'viewer', 'target_id': 'alice',
            'interaction_type': 'gift', 'amount': '4.99',
        })

        assert response.status_code == 201
        body = response.json()
        assert body['signal_type'] == 'GIFT_SENT'
        assert body['metadata']['amount'] == '4.99'

    def test_unknown_paid_interaction_is_400(self, client):
        response = client.post("/signals/paid", json={
            'actor_id': 'viewer', 'target_id': 'alice', 'interaction_type': 'tip',
        })
        assert response.status_code == 400


# =============================================================================
# Feed, profiles, ranking
# =============================================================================

class TestReadRoutes:

    def test_feed(self, client):
        response = client.get("/feed/viewer", params={'limit': 1})

        assert response.status_code == 200
        body = response.json()
        assert len(body['candidates']) == 1
        assert body['has_more'] is True
        assert body['next_cursor'] == body['candidates'][0]['candidate_id']

    def test_feed_exclusions(self, client):
        response = client.get("/feed/viewer", params=[('exclude', 'alice')])
        ids = [c['candidate_id'] for c in response.json()['candidates']]
        assert ids == ['bella']

    def test_feed_unknown_viewer_is_404(self, client):
        assert client.get("/feed/ghost").status_code == 404

    def test_feed_limit_bounds(self, client):
        assert client.get("/feed/viewer", params={'limit': 0}).status_code == 422
        assert client.get("/feed/viewer", params={'limit': 101}).status_code == 422

    def test_behavior_profile(self, client, engine):
        assert client.get("/profiles/viewer/behavior").status_code == 404

        engine.track_swipe('viewer', 'alice', 'right')
        engine.refresh_behavior_profile('viewer')
        response = client.get("/profiles/viewer/behavior")

        assert response.status_code == 200
        assert response.json()['swipe_right_count'] == 1

    def test_preferences_below_threshold_is_404(self, client):
        assert client.get("/profiles/viewer/preferences").status_code == 404

    def test_ranking_breakdown(self, client):
        response = client.get("/ranking/viewer/alice")

        assert response.status_code == 200
        body = response.json()
        assert body['candidate_id'] == 'alice'
        assert 0 <= body['final_score'] <= 100

    def test_ranking_unknown_candidate_is_404(self, client):
        assert client.get("/ranking/viewer/ghost").status_code == 404

    def test_engine_health(self, client):
        response = client.get("/engine/health")

        assert response.status_code == 200
        assert response.json()['healthy'] is False


# =============================================================================
# Heating
# =============================================================================

class TestHeatingRoutes:

    def test_activate_and_read(self, client):
        response = client.post("/heating/viewer/activate", json={'trigger': 'CALL_ENDED'})

        assert response.status_code == 200
        assert response.json()['heating']['is_heated'] is True

        current = client.get("/heating/viewer").json()
        assert current['heating']['trigger'] == 'CALL_ENDED'

    def test_invalid_trigger_is_400(self, client):
        response = client.post("/heating/viewer/activate", json={'trigger': 'BIRTHDAY'})
        assert response.status_code == 400

    def test_unknown_user_is_404(self, client):
        response = client.post("/heating/ghost/activate", json={'trigger': 'CALL_ENDED'})
        assert response.status_code == 404

    def test_deactivate(self, client):
        client.post("/heating/viewer/activate", json={'trigger': 'MATCH_RECEIVED'})

        response = client.delete("/heating/viewer")

        assert response.json() == {'user_id': 'viewer', 'expired': 1}
        assert client.get("/heating/viewer").json()['heating'] is None


# =============================================================================
# User sync and engine wiring
# =============================================================================

@pytest.fixture
def default_client(monkeypatch):
    """Client on the engine get_engine builds itself from the environment."""
    monkeypatch.delenv('DATABASE_URL', raising=False)
    monkeypatch.setattr(app_module, '_engine', None)
    yield TestClient(app)
    if app_module._engine is not None:
        app_module._engine.close()


class TestUserSyncRoutes:

    def test_synced_users_reach_the_feed(self, default_client):
        for user in (make_user('viewer'), make_user('alice'), make_user('bella')):
            response = default_client.put(
                f"/users/{user.user_id}", json=user.model_dump(mode='json')
            )
            assert response.status_code == 200

        response = default_client.get("/feed/viewer")

        assert response.status_code == 200
        ids = [c['candidate_id'] for c in response.json()['candidates']]
        assert sorted(ids) == ['alice', 'bella']

    def test_synced_block_hides_candidate(self, default_client):
        for user in (make_user('viewer'), make_user('alice'), make_user('bella')):
            default_client.put(f"/users/{user.user_id}", json=user.model_dump(mode='json'))

        response = default_client.post("/users/viewer/blocks/alice")

        assert response.status_code == 201
        ids = [c['candidate_id'] for c in default_client.get("/feed/viewer").json()['candidates']]
        assert ids == ['bella']

    def test_path_and_body_mismatch_is_400(self, client):
        response = client.put("/users/alice", json=make_user('bella').model_dump(mode='json'))
        assert response.status_code == 400

    def test_invalid_user_is_422(self, client):
        response = client.put("/users/alice", json={'user_id': 'alice', 'age': 12})
        assert response.status_code == 422

    def test_self_block_is_400(self, client):
        assert client.post("/users/viewer/blocks/viewer").status_code == 400


class TestBuildEngine:

    def test_without_database_uses_memory(self, monkeypatch):
        monkeypatch.delenv('DATABASE_URL', raising=False)

        engine = build_engine()
        engine.save_user(make_user('alice'))

        assert engine.user_store.get_user('alice').user_id == 'alice'
        engine.close()

    def test_with_database_reads_users_from_postgres(self, monkeypatch):
        monkeypatch.setenv('DATABASE_URL', 'postgresql://test/db')

        with patch('match_engine.storage.postgres.PostgresEngineStore') as store_cls:
            engine = build_engine()

        store = store_cls.return_value
        store.init_schema.assert_called_once()
        assert engine.user_store is store
        assert engine.signal_store is store
        engine.close()
