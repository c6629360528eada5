"""Signal recording and profile refresh scheduling."""

from .recorder import BehaviorSignalRecorder, PAID_INTERACTION_TYPES
from .refresh_queue import ProfileRefreshQueue, FailedRefresh

__all__ = [
    'BehaviorSignalRecorder',
    'PAID_INTERACTION_TYPES',
    'ProfileRefreshQueue',
    'FailedRefresh',
]
