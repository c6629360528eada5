"""Behavior aggregation, preference learning and candidate scoring."""

from .profile_aggregator import BehaviorProfileAggregator
from .preference_learner import PreferenceLearner, calculate_preference_similarity
from .candidate_ranker import CandidateRanker, ViewerContext

__all__ = [
    'BehaviorProfileAggregator',
    'PreferenceLearner',
    'calculate_preference_similarity',
    'CandidateRanker',
    'ViewerContext',
]
