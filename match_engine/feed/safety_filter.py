"""
Safety filter - decides whether a candidate may be shown to a viewer.

Only block lists, shadow bans and account status are consulted. No other
user attribute may exclude a candidate.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from match_engine.errors import StoreUnavailable
from match_engine.models.feed import EligibilityResult
from match_engine.models.user import UserRecord
from match_engine.storage.base import UserStore


logger = logging.getLogger(__name__)

BLOCKED_BY_VIEWER = 'blocked_by_viewer'
BLOCKED_VIEWER = 'blocked_viewer'
SHADOW_BANNED = 'shadow_banned'
INACTIVE = 'inactive'
NOT_FOUND = 'not_found'
UNAVAILABLE = 'unavailable'


class SafetyFilter:
    """
    Eligibility checks run before any ranking work.

    Example usage:
        safety = SafetyFilter(user_store)
        result = safety.is_eligible("viewer-1", "candidate-7")
        if not result.allowed:
            print(result.reason)
    """

    def __init__(self, user_store: UserStore) -> None:
        self.user_store = user_store

    def is_eligible(self, viewer_id: str, candidate_id: str) -> EligibilityResult:
        candidate = self.user_store.get_user(candidate_id)
        if candidate is None:
            return EligibilityResult(False, NOT_FOUND)
        return self.check(
            viewer_id,
            candidate,
            viewer_blocked=self.user_store.get_blocked_ids(viewer_id),
        )

    def check(
        self,
        viewer_id: str,
        candidate: UserRecord,
        viewer_blocked: Set[str],
        candidate_blocked: Optional[Set[str]] = None,
    ) -> EligibilityResult:
        """
        Evaluate the exclusion rules in order:
        viewer blocked candidate, candidate blocked viewer, candidate
        shadow-banned, candidate account not active.
        """
        if candidate.user_id in viewer_blocked:
            return EligibilityResult(False, BLOCKED_BY_VIEWER)

        if candidate_blocked is None:
            candidate_blocked = self.user_store.get_blocked_ids(candidate.user_id)
        if viewer_id in candidate_blocked:
            return EligibilityResult(False, BLOCKED_VIEWER)

        if candidate.shadow_banned:
            return EligibilityResult(False, SHADOW_BANNED)

        if not candidate.is_active:
            return EligibilityResult(False, INACTIVE)

        return EligibilityResult(True)

    def filter_candidates(
        self, viewer_id: str, candidates: Iterable[UserRecord]
    ) -> List[UserRecord]:
        """Eligible candidates, in input order."""
        eligible, _ = self.partition(viewer_id, candidates)
        return eligible

    def partition(
        self, viewer_id: str, candidates: Iterable[UserRecord]
    ) -> Tuple[List[UserRecord], Dict[str, int]]:
        """
        Split candidates into the eligible ones (input order) and rejection
        counts keyed by reason.

        A candidate whose block list cannot be read is excluded under
        UNAVAILABLE rather than failing the whole request. Failing to read
        the viewer's own block list still raises.
        """
        viewer_blocked = self.user_store.get_blocked_ids(viewer_id)
        eligible = []
        rejected: Dict[str, int] = {}

        for candidate in candidates:
            try:
                result = self.check(viewer_id, candidate, viewer_blocked)
            except StoreUnavailable as e:
                logger.warning(
                    f"Excluding {candidate.user_id} from feed for {viewer_id}: "
                    f"safety data unavailable ({e})"
                )
                result = EligibilityResult(False, UNAVAILABLE)

            if result.allowed:
                eligible.append(candidate)
            else:
                rejected[result.reason] = rejected.get(result.reason, 0) + 1

        if rejected:
            logger.debug(f"Safety filter for {viewer_id} excluded {rejected}")
        return eligible, rejected
