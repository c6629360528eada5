"""Safety filtering and feed pagination."""

from .safety_filter import SafetyFilter
from .paginator import FeedPaginator

__all__ = ['SafetyFilter', 'FeedPaginator']
