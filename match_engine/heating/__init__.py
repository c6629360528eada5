"""Heating (temporary emotional boost) management."""

from .heating_manager import HeatingStateManager

__all__ = [
    'HeatingStateManager',
]
