"""
Race Modules
============
"""

from .session import (
    RaceSession,
    RaceSnapshot,
    RaceStatus,
    SessionState,
    SimulationConfig,
)

__all__ = [
    'RaceSession',
    'RaceSnapshot',
    'RaceStatus',
    'SessionState',
    'SimulationConfig',
]
