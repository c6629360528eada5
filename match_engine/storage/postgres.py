"""
PostgresEngineStore - PostgreSQL storage for engine-owned data.

Uses psycopg2 for PostgreSQL connections with connection pooling. One
class backs the signal log, behavior profiles, learned preferences,
heating activations and metric rollups; each concern keeps its own table.
"""

import json
import logging
import os
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Collection, Dict, Iterable, Iterator, List, Optional, Set

import psycopg2
from psycopg2 import pool

from match_engine.errors import StoreUnavailable
from match_engine.models.behavior_profile import BehaviorProfile
from match_engine.models.behavior_signal import BehaviorSignal, SignalType
from match_engine.models.engine_health import EngineMetrics
from match_engine.models.heating_state import HeatingState
from match_engine.models.learned_preferences import LearnedPreferences
from match_engine.models.user import UserRecord
from match_engine.utils.geo import EARTH_RADIUS_KM
from .base import HeatingStore, MetricsStore, ProfileStore, SignalStore, UserStore


logger = logging.getLogger(__name__)


SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS behavior_signals (
        signal_id BIGSERIAL PRIMARY KEY,
        actor_id TEXT NOT NULL,
        target_id TEXT NOT NULL,
        signal_type TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb
    );

    CREATE INDEX IF NOT EXISTS idx_signals_actor_time
    ON behavior_signals(actor_id, created_at DESC);

    CREATE INDEX IF NOT EXISTS idx_signals_pair_type
    ON behavior_signals(actor_id, target_id, signal_type);

    CREATE INDEX IF NOT EXISTS idx_signals_target_type_time
    ON behavior_signals(target_id, signal_type, created_at DESC);

    CREATE TABLE IF NOT EXISTS behavior_profiles (
        user_id TEXT PRIMARY KEY,
        updated_at TIMESTAMPTZ NOT NULL,
        profile JSONB NOT NULL
    );

    CREATE TABLE IF NOT EXISTS learned_preferences (
        user_id TEXT PRIMARY KEY,
        updated_at TIMESTAMPTZ NOT NULL,
        confidence_level NUMERIC(4,3) NOT NULL,
        preferences JSONB NOT NULL
    );

    CREATE TABLE IF NOT EXISTS heating_states (
        state_id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL,
        trigger TEXT NOT NULL,
        triggered_at TIMESTAMPTZ NOT NULL,
        expires_at TIMESTAMPTZ NOT NULL,
        heat_level DOUBLE PRECISION NOT NULL,
        decay_rate DOUBLE PRECISION NOT NULL,
        activations_today INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_heating_user_time
    ON heating_states(user_id, triggered_at DESC);

    CREATE INDEX IF NOT EXISTS idx_heating_expires
    ON heating_states(expires_at);

    CREATE TABLE IF NOT EXISTS engine_metrics (
        period_key DATE PRIMARY KEY,
        computed_at TIMESTAMPTZ NOT NULL,
        metrics JSONB NOT NULL
    );

    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        age INTEGER,
        latitude DOUBLE PRECISION,
        longitude DOUBLE PRECISION,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        record JSONB NOT NULL
    );

    CREATE TABLE IF NOT EXISTS user_blocks (
        blocker_id TEXT NOT NULL,
        blocked_id TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (blocker_id, blocked_id)
    );
"""

HEATING_COLUMNS = (
    "state_id, user_id, trigger, triggered_at, expires_at, "
    "heat_level, decay_rate, activations_today"
)

# Great-circle km from the viewer to each users row; binds radius, lat, lat, lon
DISTANCE_SQL = (
    "2 * %s * ASIN(LEAST(1.0, SQRT("
    "POWER(SIN(RADIANS(latitude - %s) / 2), 2) + "
    "COS(RADIANS(%s)) * COS(RADIANS(latitude)) * "
    "POWER(SIN(RADIANS(longitude - %s) / 2), 2))))"
)


class PostgresEngineStore(SignalStore, ProfileStore, HeatingStore, MetricsStore, UserStore):
    """
    PostgreSQL storage for signals, profiles, heating, metrics and the
    mirrored user directory.
    Why: Share one connection pool across every engine-owned table.
    """

    def __init__(
        self,
        connection_string: Optional[str] = None,
        min_connections: int = 1,
        max_connections: int = 10,
    ):
        """
        Initialize store with database connection settings.

        Args:
            connection_string: PostgreSQL connection string.
                             Defaults to DATABASE_URL env var.
            min_connections / max_connections: Pool bounds
        """
        self.connection_string = connection_string or os.getenv('DATABASE_URL')
        self.min_connections = min_connections
        self.max_connections = max_connections
        self._pool: Optional[pool.ThreadedConnectionPool] = None

    def _get_connection(self):
        """Get a connection from the pool."""
        if not self._pool:
            self._pool = pool.ThreadedConnectionPool(
                self.min_connections, self.max_connections,
                self.connection_string
            )
        return self._pool.getconn()

    def _release_connection(self, conn):
        """Return connection to pool."""
        if self._pool:
            self._pool.putconn(conn)

    @contextmanager
    def _cursor(self) -> Iterator:
        """
        Cursor inside one transaction.

        Commits on success, rolls back on error, and surfaces driver errors
        as StoreUnavailable.
        """
        try:
            conn = self._get_connection()
        except psycopg2.Error as e:
            raise StoreUnavailable(f"Could not connect to PostgreSQL: {e}") from e

        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"PostgreSQL operation failed: {e}")
            raise StoreUnavailable(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release_connection(conn)

    def init_schema(self) -> None:
        """Create all tables and indexes if they don't exist."""
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL)

    # -------------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------------

    def append(self, signal: BehaviorSignal) -> None:
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO behavior_signals (
                    actor_id, target_id, signal_type, created_at, metadata
                ) VALUES (%s, %s, %s, %s, %s)
            """, (
                signal.actor_id,
                signal.target_id,
                signal.signal_type.value,
                signal.timestamp,
                json.dumps(signal.metadata),
            ))

    def recent_for_actor(self, actor_id: str, limit: int) -> List[BehaviorSignal]:
        with self._cursor() as cur:
            cur.execute("""
                SELECT actor_id, target_id, signal_type, created_at, metadata
                FROM behavior_signals
                WHERE actor_id = %s
                ORDER BY created_at DESC, signal_id DESC
                LIMIT %s
            """, (actor_id, limit))
            rows = cur.fetchall()

        return [
            BehaviorSignal(
                actor_id=row[0],
                target_id=row[1],
                signal_type=SignalType(row[2]),
                timestamp=row[3],
                metadata=row[4] or {},
            )
            for row in rows
        ]

    def find_reciprocal(
        self,
        target_id: str,
        actor_ids: Collection[str],
        signal_type: SignalType,
    ) -> Set[str]:
        if not actor_ids:
            return set()
        with self._cursor() as cur:
            cur.execute("""
                SELECT DISTINCT actor_id
                FROM behavior_signals
                WHERE actor_id = ANY(%s)
                  AND target_id = %s
                  AND signal_type = %s
            """, (list(actor_ids), target_id, signal_type.value))
            return {row[0] for row in cur.fetchall()}

    def count_inbound(
        self,
        target_id: str,
        signal_type: SignalType,
        since: Optional[datetime] = None,
    ) -> int:
        with self._cursor() as cur:
            if since is None:
                cur.execute("""
                    SELECT COUNT(*) FROM behavior_signals
                    WHERE target_id = %s AND signal_type = %s
                """, (target_id, signal_type.value))
            else:
                cur.execute("""
                    SELECT COUNT(*) FROM behavior_signals
                    WHERE target_id = %s AND signal_type = %s AND created_at >= %s
                """, (target_id, signal_type.value, since))
            return cur.fetchone()[0]

    def count_for_actor_between(
        self,
        actor_id: str,
        start: datetime,
        end: datetime,
        signal_types: Iterable[SignalType],
    ) -> int:
        with self._cursor() as cur:
            cur.execute("""
                SELECT COUNT(*) FROM behavior_signals
                WHERE actor_id = %s
                  AND signal_type = ANY(%s)
                  AND created_at >= %s AND created_at < %s
            """, (actor_id, [t.value for t in signal_types], start, end))
            return cur.fetchone()[0]

    # -------------------------------------------------------------------------
    # Profiles and preferences
    # -------------------------------------------------------------------------

    def save_profile(self, profile: BehaviorProfile) -> None:
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO behavior_profiles (user_id, updated_at, profile)
                VALUES (%s, %s, %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    updated_at = EXCLUDED.updated_at,
                    profile = EXCLUDED.profile
            """, (
                profile.user_id,
                profile.updated_at,
                json.dumps(profile.to_dict()),
            ))

    def get_profile(self, user_id: str) -> Optional[BehaviorProfile]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT profile FROM behavior_profiles WHERE user_id = %s",
                (user_id,)
            )
            row = cur.fetchone()
        return BehaviorProfile.from_dict(row[0]) if row else None

    def list_profiles(self) -> List[BehaviorProfile]:
        with self._cursor() as cur:
            cur.execute("SELECT profile FROM behavior_profiles ORDER BY user_id")
            rows = cur.fetchall()
        return [BehaviorProfile.from_dict(row[0]) for row in rows]

    def save_preferences(self, preferences: LearnedPreferences) -> None:
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO learned_preferences (
                    user_id, updated_at, confidence_level, preferences
                ) VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    updated_at = EXCLUDED.updated_at,
                    confidence_level = EXCLUDED.confidence_level,
                    preferences = EXCLUDED.preferences
            """, (
                preferences.user_id,
                preferences.last_updated,
                preferences.confidence_level,
                json.dumps(preferences.to_dict()),
            ))

    def get_preferences(self, user_id: str) -> Optional[LearnedPreferences]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT preferences FROM learned_preferences WHERE user_id = %s",
                (user_id,)
            )
            row = cur.fetchone()
        return LearnedPreferences.from_dict(row[0]) if row else None

    # -------------------------------------------------------------------------
    # Heating
    # -------------------------------------------------------------------------

    def insert(self, state: HeatingState) -> HeatingState:
        with self._cursor() as cur:
            return self._insert_heating(cur, state)

    def insert_capped(
        self,
        state: HeatingState,
        since: datetime,
        cap: int,
    ) -> Optional[HeatingState]:
        """Count-and-insert under a per-user transaction advisory lock."""
        with self._cursor() as cur:
            cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (state.user_id,))
            cur.execute("""
                SELECT COUNT(*) FROM heating_states
                WHERE user_id = %s AND triggered_at >= %s
            """, (state.user_id, since))
            count = cur.fetchone()[0]
            if count >= cap:
                return None
            return self._insert_heating(cur, replace(state, activations_today=count + 1))

    def _insert_heating(self, cur, state: HeatingState) -> HeatingState:
        cur.execute("""
            INSERT INTO heating_states (
                user_id, trigger, triggered_at, expires_at,
                heat_level, decay_rate, activations_today
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING state_id
        """, (
            state.user_id,
            state.trigger.value,
            state.triggered_at,
            state.expires_at,
            state.heat_level,
            state.decay_rate,
            state.activations_today,
        ))
        state_id = cur.fetchone()[0]
        return replace(state, state_id=str(state_id))

    def count_since(self, user_id: str, since: datetime) -> int:
        with self._cursor() as cur:
            cur.execute("""
                SELECT COUNT(*) FROM heating_states
                WHERE user_id = %s AND triggered_at >= %s
            """, (user_id, since))
            return cur.fetchone()[0]

    def active_states(self, user_id: str, now: datetime) -> List[HeatingState]:
        with self._cursor() as cur:
            cur.execute(f"""
                SELECT {HEATING_COLUMNS}
                FROM heating_states
                WHERE user_id = %s AND expires_at > %s
                ORDER BY triggered_at DESC, state_id DESC
            """, (user_id, now))
            rows = cur.fetchall()
        return [self._row_to_heating(row) for row in rows]

    def expire_all(self, user_id: str, now: datetime) -> int:
        with self._cursor() as cur:
            cur.execute("""
                UPDATE heating_states
                SET expires_at = GREATEST(%s, triggered_at)
                WHERE user_id = %s AND expires_at > %s
            """, (now, user_id, now))
            return cur.rowcount

    def delete_expired_before(self, cutoff: datetime) -> int:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM heating_states WHERE expires_at < %s",
                (cutoff,)
            )
            return cur.rowcount

    def states_between(self, start: datetime, end: datetime) -> List[HeatingState]:
        with self._cursor() as cur:
            cur.execute(f"""
                SELECT {HEATING_COLUMNS}
                FROM heating_states
                WHERE triggered_at >= %s AND triggered_at < %s
                ORDER BY triggered_at
            """, (start, end))
            rows = cur.fetchall()
        return [self._row_to_heating(row) for row in rows]

    @staticmethod
    def _row_to_heating(row) -> HeatingState:
        return HeatingState(
            state_id=str(row[0]),
            user_id=row[1],
            trigger=row[2],
            triggered_at=row[3],
            expires_at=row[4],
            heat_level=float(row[5]),
            decay_rate=float(row[6]),
            activations_today=row[7],
        )

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def save_metrics(self, metrics: EngineMetrics) -> None:
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO engine_metrics (period_key, computed_at, metrics)
                VALUES (%s, %s, %s)
                ON CONFLICT (period_key) DO UPDATE SET
                    computed_at = EXCLUDED.computed_at,
                    metrics = EXCLUDED.metrics
            """, (
                metrics.period_key,
                metrics.computed_at,
                json.dumps(metrics.to_dict()),
            ))

    def get_metrics(self, period_key: date) -> Optional[EngineMetrics]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT metrics FROM engine_metrics WHERE period_key = %s",
                (period_key,)
            )
            row = cur.fetchone()
        return EngineMetrics.from_dict(row[0]) if row else None

    def latest_metrics(self) -> Optional[EngineMetrics]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT metrics FROM engine_metrics ORDER BY period_key DESC LIMIT 1"
            )
            row = cur.fetchone()
        return EngineMetrics.from_dict(row[0]) if row else None

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def save_user(self, user: UserRecord) -> None:
        location = user.location
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO users (user_id, age, latitude, longitude, updated_at, record)
                VALUES (%s, %s, %s, %s, NOW(), %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    age = EXCLUDED.age,
                    latitude = EXCLUDED.latitude,
                    longitude = EXCLUDED.longitude,
                    updated_at = EXCLUDED.updated_at,
                    record = EXCLUDED.record
            """, (
                user.user_id,
                user.age,
                location.latitude if location else None,
                location.longitude if location else None,
                user.model_dump_json(),
            ))

    def block(self, blocker_id: str, blocked_id: str) -> None:
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO user_blocks (blocker_id, blocked_id)
                VALUES (%s, %s)
                ON CONFLICT DO NOTHING
            """, (blocker_id, blocked_id))

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._cursor() as cur:
            cur.execute("SELECT record FROM users WHERE user_id = %s", (user_id,))
            row = cur.fetchone()
        return UserRecord.model_validate(row[0]) if row else None

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        ids = list(user_ids)
        if not ids:
            return {}
        with self._cursor() as cur:
            cur.execute("SELECT record FROM users WHERE user_id = ANY(%s)", (ids,))
            rows = cur.fetchall()
        users = [UserRecord.model_validate(row[0]) for row in rows]
        return {user.user_id: user for user in users}

    def get_blocked_ids(self, user_id: str) -> Set[str]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT blocked_id FROM user_blocks WHERE blocker_id = %s",
                (user_id,)
            )
            return {row[0] for row in cur.fetchall()}

    def find_candidates(
        self,
        viewer: UserRecord,
        limit: int,
        exclude_ids: Collection[str] = (),
    ) -> List[UserRecord]:
        """
        Candidates ordered by user_id. Age and distance filters only apply
        where both sides know the value.
        """
        conditions = ["NOT (user_id = ANY(%s))"]
        params: List[Any] = [list(set(exclude_ids) | {viewer.user_id})]

        filters = viewer.search_filters
        if filters is not None:
            if filters.min_age is not None:
                conditions.append("(age IS NULL OR age >= %s)")
                params.append(filters.min_age)
            if filters.max_age is not None:
                conditions.append("(age IS NULL OR age <= %s)")
                params.append(filters.max_age)
            if filters.max_distance_km is not None and viewer.location is not None:
                conditions.append(f"(latitude IS NULL OR {DISTANCE_SQL} <= %s)")
                params.extend([
                    EARTH_RADIUS_KM,
                    viewer.location.latitude,
                    viewer.location.latitude,
                    viewer.location.longitude,
                    filters.max_distance_km,
                ])

        params.append(limit)
        with self._cursor() as cur:
            cur.execute(
                "SELECT record FROM users WHERE "
                + " AND ".join(conditions)
                + " ORDER BY user_id LIMIT %s",
                tuple(params),
            )
            rows = cur.fetchall()
        return [UserRecord.model_validate(row[0]) for row in rows]

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
