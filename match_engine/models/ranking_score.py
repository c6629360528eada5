"""
RankingScore model - Read-time score of one candidate for one viewer.

Never persisted. Five sub-scores in 0-100 are combined by configured
weights, then boosted by the candidate's tier and the viewer's heat.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Tuple

from .tier import Tier


SUB_SCORE_NAMES: List[str] = [
    'base_score',
    'behavior_score',
    'similarity_score',
    'recency_score',
    'popularity_score',
]


@dataclass(frozen=True)
class RankingScore:
    """
    Full score breakdown for a (viewer, candidate) pair.

    Attributes:
        viewer_id / candidate_id: The pair being scored
        base_score: Age proximity, distance and profile completeness
        behavior_score: Candidate's own engagement history
        similarity_score: Viewer's learned preferences vs. candidate
        recency_score: Step function of candidate's last activity
        popularity_score: Step function of candidate's recent inbound likes
        weighted_score: Weighted sum of the sub-scores
        candidate_tier: Tier used for the tier multiplier
        tier_multiplier: Boost for the candidate's tier
        heating_multiplier: Boost from the viewer's heating state
        final_score: weighted × tier × heating, clamped to 0-100
        computed_at: Snapshot time the score was computed for
    """

    viewer_id: str
    candidate_id: str
    base_score: float
    behavior_score: float
    similarity_score: float
    recency_score: float
    popularity_score: float
    weighted_score: float
    candidate_tier: Tier
    tier_multiplier: float
    heating_multiplier: float
    final_score: float
    computed_at: datetime = field(compare=False)

    def __post_init__(self) -> None:
        for name in SUB_SCORE_NAMES + ['weighted_score', 'final_score']:
            value = getattr(self, name)
            if value < 0 or value > 100:
                raise ValueError(f"{name} must be between 0 and 100, got: {value}")

    @property
    def sub_scores(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in SUB_SCORE_NAMES}

    @property
    def sub_scores_ranked(self) -> List[Tuple[str, float]]:
        """Sub-scores sorted highest first (useful when explaining a rank)."""
        return sorted(self.sub_scores.items(), key=lambda x: x[1], reverse=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'viewer_id': self.viewer_id,
            'candidate_id': self.candidate_id,
            'sub_scores': {k: round(v, 4) for k, v in self.sub_scores.items()},
            'weighted_score': round(self.weighted_score, 4),
            'candidate_tier': self.candidate_tier.value,
            'tier_multiplier': self.tier_multiplier,
            'heating_multiplier': round(self.heating_multiplier, 4),
            'final_score': round(self.final_score, 4),
            'computed_at': self.computed_at.isoformat(),
        }

    def __str__(self) -> str:
        return (
            f"RankingScore({self.viewer_id}->{self.candidate_id}, "
            f"final={self.final_score:.1f}, tier={self.candidate_tier.value})"
        )
