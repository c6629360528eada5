"""Feed page returned by the paginator."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .ranking_score import RankingScore


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of a safety check for one (viewer, candidate) pair."""

    allowed: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'allowed': self.allowed, 'reason': self.reason}


@dataclass
class FeedPage:
    """
    One page of ranked candidates.

    next_cursor is the id of the last returned candidate when more ranked
    candidates remained, None otherwise. Continuation requests pass it
    back and it joins the exclusion set.
    """

    viewer_id: str
    candidates: List[RankingScore] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False
    dropped: int = 0

    @property
    def candidate_ids(self) -> List[str]:
        return [score.candidate_id for score in self.candidates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'viewer_id': self.viewer_id,
            'candidates': [score.to_dict() for score in self.candidates],
            'next_cursor': self.next_cursor,
            'has_more': self.has_more,
        }
