"""Storage interfaces and implementations."""

from .base import SignalStore, ProfileStore, HeatingStore, MetricsStore, UserStore
from .memory import (
    InMemorySignalStore,
    InMemoryProfileStore,
    InMemoryHeatingStore,
    InMemoryMetricsStore,
    InMemoryUserStore,
)

__all__ = [
    'SignalStore',
    'ProfileStore',
    'HeatingStore',
    'MetricsStore',
    'UserStore',
    'InMemorySignalStore',
    'InMemoryProfileStore',
    'InMemoryHeatingStore',
    'InMemoryMetricsStore',
    'InMemoryUserStore',
]
