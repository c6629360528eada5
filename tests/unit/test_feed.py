"""
Unit tests for the safety filter and feed paginator.

Tests cover:
- SafetyFilter: exclusion rules and their order
- FeedPaginator: ordering, truncation, cursors, exclusions
- Degradation: per-candidate failures, timeouts, cancellation
"""

import threading
import time

import pytest

from match_engine.config import DEFAULT_CONFIG, FeedConfig
from match_engine.errors import InvalidRequest, RequestCancelled, StoreUnavailable, UserNotFound
from match_engine.feed import FeedPaginator, SafetyFilter
from match_engine.models import RankingScore, SearchFilters, Tier
from match_engine.models.user import AccountStatus
from match_engine.scoring.candidate_ranker import ViewerContext
from match_engine.storage import InMemoryUserStore

from conftest import NOW, make_user


class FakeRanker:
    """Returns preset final scores; raises or stalls for chosen candidates."""

    def __init__(self, scores, failing=(), slow=(), delay=1.0):
        self.scores = scores
        self.failing = set(failing)
        self.slow = set(slow)
        self.delay = delay
        self.scored = []

    def viewer_context(self, viewer):
        return ViewerContext(viewer=viewer, preferences=None, heating_multiplier=1.0, now=NOW)

    def score_candidate(self, context, candidate):
        if candidate.user_id in self.failing:
            raise ConnectionError("profile store unavailable")
        if candidate.user_id in self.slow:
            time.sleep(self.delay)
        self.scored.append(candidate.user_id)
        final = self.scores.get(candidate.user_id, 10.0)
        return RankingScore(
            viewer_id=context.viewer.user_id,
            candidate_id=candidate.user_id,
            base_score=final, behavior_score=final, similarity_score=final,
            recency_score=final, popularity_score=final, weighted_score=final,
            candidate_tier=Tier.STANDARD, tier_multiplier=1.0, heating_multiplier=1.0,
            final_score=final, computed_at=context.now,
        )


@pytest.fixture
def users():
    return InMemoryUserStore([make_user(uid) for uid in ("viewer", "a", "b", "c", "d")])


def paginator_for(users, ranker, **feed):
    config = DEFAULT_CONFIG.with_overrides(feed=FeedConfig(**feed)) if feed else DEFAULT_CONFIG
    return FeedPaginator(users, SafetyFilter(users), ranker, config)


# =============================================================================
# SafetyFilter Tests
# =============================================================================

class TestSafetyFilter:
    """Tests for eligibility rules."""

    def test_eligible(self, users):
        assert SafetyFilter(users).is_eligible("viewer", "a").allowed

    def test_blocked_by_viewer(self, users):
        users.block("viewer", "a")
        result = SafetyFilter(users).is_eligible("viewer", "a")
        assert not result.allowed
        assert result.reason == 'blocked_by_viewer'

    def test_candidate_blocked_viewer(self, users):
        users.block("a", "viewer")
        assert SafetyFilter(users).is_eligible("viewer", "a").reason == 'blocked_viewer'

    def test_shadow_banned(self, users):
        users.update_user("a", shadow_banned=True)
        assert SafetyFilter(users).is_eligible("viewer", "a").reason == 'shadow_banned'

    @pytest.mark.parametrize("status", [
        AccountStatus.SUSPENDED, AccountStatus.DEACTIVATED, AccountStatus.DELETED,
    ])
    def test_inactive(self, users, status):
        users.update_user("a", account_status=status)
        assert SafetyFilter(users).is_eligible("viewer", "a").reason == 'inactive'

    def test_rules_checked_in_order(self, users):
        users.block("viewer", "a")
        users.block("a", "viewer")
        users.update_user("a", shadow_banned=True, account_status=AccountStatus.SUSPENDED)

        assert SafetyFilter(users).is_eligible("viewer", "a").reason == 'blocked_by_viewer'

    def test_unknown_candidate(self, users):
        assert SafetyFilter(users).is_eligible("viewer", "ghost").reason == 'not_found'

    def test_filter_candidates_keeps_order(self, users):
        users.block("viewer", "b")
        pool = [users.get_user(uid) for uid in ("d", "b", "a")]

        eligible = SafetyFilter(users).filter_candidates("viewer", pool)
        assert [u.user_id for u in eligible] == ["d", "a"]

    def test_unreadable_block_list_excludes_candidate(self, users):
        class FlakyBlocks(InMemoryUserStore):
            def get_blocked_ids(self, user_id):
                if user_id == "a":
                    raise StoreUnavailable("block list shard down")
                return super().get_blocked_ids(user_id)

        flaky = FlakyBlocks([users.get_user(uid) for uid in ("viewer", "a", "b")])
        pool = [flaky.get_user(uid) for uid in ("a", "b")]

        eligible, rejected = SafetyFilter(flaky).partition("viewer", pool)

        assert [u.user_id for u in eligible] == ["b"]
        assert rejected == {'unavailable': 1}


# =============================================================================
# FeedPaginator Tests
# =============================================================================

class TestFeedOrdering:
    """Tests for sorting, truncation and cursors."""

    def test_two_candidates_highest_first(self, clock):
        users = InMemoryUserStore([make_user(uid) for uid in ("viewer", "low", "high")])
        ranker = FakeRanker({"high": 80.0, "low": 40.0})

        page = paginator_for(users, ranker).feed("viewer", limit=2)

        assert page.candidate_ids == ["high", "low"]
        assert page.next_cursor is None
        assert not page.has_more

    def test_truncated_page_has_cursor(self, clock):
        users = InMemoryUserStore([make_user(uid) for uid in ("viewer", "low", "high")])
        ranker = FakeRanker({"high": 80.0, "low": 40.0})

        page = paginator_for(users, ranker).feed("viewer", limit=1)

        assert page.candidate_ids == ["high"]
        assert page.next_cursor == "high"
        assert page.has_more

    def test_ties_broken_by_id(self, users):
        ranker = FakeRanker({"a": 50.0, "b": 50.0, "c": 50.0, "d": 50.0})
        assert paginator_for(users, ranker).feed("viewer", limit=4).candidate_ids == \
            ["a", "b", "c", "d"]

    def test_cursor_joins_exclusion_set(self, users):
        ranker = FakeRanker({"a": 90.0, "b": 70.0, "c": 50.0, "d": 30.0})
        paginator = paginator_for(users, ranker)

        first = paginator.feed("viewer", limit=2)
        second = paginator.feed(
            "viewer", limit=2, cursor=first.next_cursor, exclude_ids=first.candidate_ids
        )

        assert first.candidate_ids == ["a", "b"]
        assert second.candidate_ids == ["c", "d"]
        assert second.next_cursor is None

    def test_cursor_alone_is_excluded(self, users):
        ranker = FakeRanker({"a": 90.0, "b": 70.0})
        page = paginator_for(users, ranker).feed("viewer", limit=10, cursor="a")
        assert "a" not in page.candidate_ids

    def test_viewer_never_in_own_feed(self, users):
        page = paginator_for(users, FakeRanker({})).feed("viewer", limit=10)
        assert "viewer" not in page.candidate_ids

    def test_pool_is_five_times_limit(self):
        users = InMemoryUserStore(
            [make_user("viewer")] + [make_user(f"u{i:02d}") for i in range(30)]
        )
        ranker = FakeRanker({})

        paginator_for(users, ranker).feed("viewer", limit=2)

        assert len(ranker.scored) == 10

    def test_search_filters_respected(self):
        users = InMemoryUserStore([
            make_user("viewer", search_filters=SearchFilters(min_age=25, max_age=35)),
            make_user("young", age=21),
            make_user("fits", age=30),
        ])

        page = paginator_for(users, FakeRanker({})).feed("viewer", limit=10)
        assert page.candidate_ids == ["fits"]


class TestFeedSafety:

    def test_ineligible_candidates_are_never_scored(self, users):
        users.block("viewer", "a")
        users.update_user("b", shadow_banned=True)
        ranker = FakeRanker({"a": 99.0, "b": 99.0})

        page = paginator_for(users, ranker).feed("viewer", limit=10)

        assert page.candidate_ids == ["c", "d"]
        assert "a" not in ranker.scored
        assert "b" not in ranker.scored


class TestFeedValidation:

    @pytest.mark.parametrize("limit", [0, -1, 101, "10", True])
    def test_invalid_limit(self, users, limit):
        with pytest.raises(InvalidRequest):
            paginator_for(users, FakeRanker({})).feed("viewer", limit=limit)

    def test_unknown_viewer_is_fatal(self, users):
        with pytest.raises(UserNotFound):
            paginator_for(users, FakeRanker({})).feed("ghost", limit=10)


class TestFeedDegradation:
    """Tests for partial results under failure."""

    def test_failed_candidate_is_dropped(self, users):
        ranker = FakeRanker({"a": 90.0, "b": 80.0}, failing={"a"})

        page = paginator_for(users, ranker).feed("viewer", limit=10)

        assert page.candidate_ids == ["b", "c", "d"]
        assert page.dropped == 1

    def test_scoring_timeout_returns_ready_subset(self, users):
        ranker = FakeRanker({"a": 90.0}, slow={"a"}, delay=1.0)

        page = paginator_for(users, ranker, scoring_timeout_seconds=0.2).feed("viewer", limit=10)

        assert page.candidate_ids == ["b", "c", "d"]
        assert page.dropped == 1

    def test_fetch_timeout_returns_empty_page(self, users):
        class SlowStore(InMemoryUserStore):
            def find_candidates(self, viewer, limit, exclude_ids=()):
                time.sleep(0.5)
                return super().find_candidates(viewer, limit, exclude_ids)

        slow = SlowStore([users.get_user(uid) for uid in ("viewer", "a", "b")])
        paginator = FeedPaginator(
            slow, SafetyFilter(slow), FakeRanker({}),
            DEFAULT_CONFIG.with_overrides(feed=FeedConfig(fetch_timeout_seconds=0.05)),
        )

        page = paginator.feed("viewer", limit=10)

        assert page.candidates == []
        assert page.next_cursor is None

    def test_cancelled_request_raises(self, users):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(RequestCancelled):
            paginator_for(users, FakeRanker({})).feed("viewer", limit=10, cancel_event=cancel)

    def test_cancel_mid_scoring(self, users):
        cancel = threading.Event()
        ranker = FakeRanker({}, slow={"a", "b", "c", "d"}, delay=0.3)
        paginator = paginator_for(users, ranker, max_workers=1)

        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        with pytest.raises(RequestCancelled):
            paginator.feed("viewer", limit=10, cancel_event=cancel)
        timer.cancel()

    def test_candidate_block_list_failure_drops_only_that_candidate(self, users):
        class FlakyBlocks(InMemoryUserStore):
            def get_blocked_ids(self, user_id):
                if user_id == "a":
                    raise StoreUnavailable("block list shard down")
                return super().get_blocked_ids(user_id)

        flaky = FlakyBlocks([users.get_user(uid) for uid in ("viewer", "a", "b")])
        ranker = FakeRanker({"a": 99.0, "b": 50.0})
        paginator = FeedPaginator(flaky, SafetyFilter(flaky), ranker, DEFAULT_CONFIG)

        page = paginator.feed("viewer", limit=10)

        assert page.candidate_ids == ["b"]
        assert page.dropped == 1
        assert "a" not in ranker.scored

    def test_slow_fetch_does_not_block_other_viewers(self):
        class PerViewerSlowStore(InMemoryUserStore):
            def find_candidates(self, viewer, limit, exclude_ids=()):
                if viewer.user_id == "slow":
                    time.sleep(1.0)
                return super().find_candidates(viewer, limit, exclude_ids)

        store = PerViewerSlowStore(
            [make_user(uid) for uid in ("slow", "fast", "a", "b", "c")]
        )
        paginator = FeedPaginator(
            store, SafetyFilter(store), FakeRanker({}),
            DEFAULT_CONFIG.with_overrides(feed=FeedConfig(fetch_timeout_seconds=0.5)),
        )

        slow_thread = threading.Thread(target=paginator.feed, args=("slow", 10))
        slow_thread.start()
        time.sleep(0.1)
        page = paginator.feed("fast", limit=10)
        slow_thread.join()

        assert page.candidate_ids == ["a", "b", "c", "slow"]
