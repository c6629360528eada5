"""
Feed paginator.

Fetches an oversized raw candidate pool, drops ineligible and already-seen
candidates, scores the rest in parallel and returns the top `limit`.

The cursor is the id of the last candidate returned. Callers pass it back
and it is added to the exclusion set, so ties and new entrants may reorder
between pages.
"""

import logging
import threading
import time
from concurrent.futures import (
    FIRST_COMPLETED,
    Future,
    ThreadPoolExecutor,
    TimeoutError as FutureTimeout,
    wait,
)
from typing import Callable, Collection, Dict, List, Optional

from match_engine.config import DEFAULT_CONFIG, EngineConfig
from match_engine.errors import InvalidRequest, RequestCancelled, UserNotFound
from match_engine.models.feed import FeedPage
from match_engine.models.ranking_score import RankingScore
from match_engine.models.user import UserRecord
from match_engine.scoring.candidate_ranker import CandidateRanker, ViewerContext
from match_engine.storage.base import UserStore
from .safety_filter import UNAVAILABLE, SafetyFilter


logger = logging.getLogger(__name__)

# How often the scoring loop checks for caller cancellation
CANCEL_POLL_SECONDS = 0.05


class FeedPaginator:
    """
    Top-K selection over a ranked candidate pool.

    Example usage:
        paginator = FeedPaginator(user_store, safety_filter, ranker)
        page = paginator.feed("viewer-1", limit=20)
        next_page = paginator.feed("viewer-1", limit=20, cursor=page.next_cursor)
    """

    def __init__(
        self,
        user_store: UserStore,
        safety_filter: SafetyFilter,
        ranker: CandidateRanker,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.user_store = user_store
        self.safety_filter = safety_filter
        self.ranker = ranker
        self.config = config.feed

    def feed(
        self,
        viewer_id: str,
        limit: int = 20,
        cursor: Optional[str] = None,
        exclude_ids: Collection[str] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> FeedPage:
        """
        Build one feed page.

        Args:
            viewer_id: Requesting user
            limit: Page size, 1 to feed.max_limit
            cursor: next_cursor from the previous page
            exclude_ids: Ids the client has already seen
            cancel_event: Set by the caller to abandon the request

        Returns:
            FeedPage sorted by final score, highest first

        Raises:
            InvalidRequest: If limit is out of range
            UserNotFound: If the viewer cannot be resolved
            RequestCancelled: If cancel_event was set before scoring finished
        """
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            raise InvalidRequest(f"limit must be a positive integer, got: {limit!r}")
        if limit > self.config.max_limit:
            raise InvalidRequest(f"limit cannot exceed {self.config.max_limit}, got: {limit}")

        viewer = self.user_store.get_user(viewer_id)
        if viewer is None:
            raise UserNotFound(viewer_id)

        excluded = set(exclude_ids)
        if cursor:
            excluded.add(cursor)
        excluded.add(viewer_id)

        pool = self._fetch_pool_with_timeout(viewer, limit * self.config.pool_multiplier, excluded)
        eligible, rejected = self.safety_filter.partition(viewer_id, pool)

        context = self.ranker.viewer_context(viewer)
        scores, dropped = self._score_all(context, eligible, cancel_event)
        dropped += rejected.get(UNAVAILABLE, 0)

        scores.sort(key=lambda s: (-s.final_score, s.candidate_id))
        has_more = len(scores) > limit
        page = scores[:limit]

        logger.info(
            f"Feed for {viewer_id}: pool={len(pool)}, eligible={len(eligible)}, "
            f"scored={len(scores)}, returned={len(page)}, dropped={dropped}"
        )
        return FeedPage(
            viewer_id=viewer_id,
            candidates=page,
            next_cursor=page[-1].candidate_id if has_more and page else None,
            has_more=has_more,
            dropped=dropped,
        )

    def _fetch_pool_with_timeout(
        self, viewer: UserRecord, size: int, excluded: Collection[str]
    ) -> List[UserRecord]:
        """
        Raw candidate pool; empty when the store does not answer in time.

        Each request fetches on its own thread, so a slow fetch for one
        viewer never holds up another.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='feed-fetch')
        future = executor.submit(self.user_store.find_candidates, viewer, size, excluded)
        try:
            return future.result(timeout=self.config.fetch_timeout_seconds)
        except FutureTimeout:
            logger.warning(
                f"Candidate fetch for {viewer.user_id} timed out after "
                f"{self.config.fetch_timeout_seconds}s; returning empty page"
            )
            return []
        finally:
            executor.shutdown(wait=False)

    def _score_all(
        self,
        context: ViewerContext,
        candidates: List[UserRecord],
        cancel_event: Optional[threading.Event],
    ):
        """
        Score candidates on a bounded pool.

        Candidates that fail to score are dropped. On timeout, whatever is
        finished is returned and the rest is cancelled.
        """
        if not candidates:
            return [], 0

        workers = min(self.config.max_workers, len(candidates))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='feed-score')
        futures: Dict[Future, str] = {
            executor.submit(self.ranker.score_candidate, context, candidate): candidate.user_id
            for candidate in candidates
        }

        scores: List[RankingScore] = []
        dropped = 0
        pending = set(futures)
        deadline = time.monotonic() + self.config.scoring_timeout_seconds

        try:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    raise RequestCancelled(
                        f"Feed request for {context.viewer.user_id} was cancelled"
                    )
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(
                        f"Scoring for {context.viewer.user_id} timed out with "
                        f"{len(pending)} candidates unscored"
                    )
                    dropped += len(pending)
                    break

                done, pending = wait(
                    pending,
                    timeout=min(remaining, CANCEL_POLL_SECONDS),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    candidate_id = futures[future]
                    try:
                        scores.append(future.result())
                    except Exception as e:
                        dropped += 1
                        logger.warning(
                            f"Dropping candidate {candidate_id} for "
                            f"{context.viewer.user_id}: {e}"
                        )
        finally:
            for future in pending:
                future.cancel()
            executor.shutdown(wait=False)

        return scores, dropped
