"""User tier classifiers."""

from .tier_classifier import TierClassifier

__all__ = [
    'TierClassifier',
]
