"""
Tier model - Coarse value/engagement class of a user.

A tier only ever boosts the user's own visibility as a candidate to
others; it never changes what that user sees.
"""

from enum import Enum


class Tier(str, Enum):
    ROYAL = 'ROYAL'
    HIGH_ENGAGEMENT = 'HIGH_ENGAGEMENT'
    HIGH_MONETIZATION = 'HIGH_MONETIZATION'
    STANDARD = 'STANDARD'
    LOW_POPULARITY = 'LOW_POPULARITY'
    NEW_USER = 'NEW_USER'
