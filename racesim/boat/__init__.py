"""
Boat Modules
============

Polar performance model and steering maneuvers.
"""

from .polar import Polar, PolarTable, twa_of

from .maneuvers import (
    ManeuverState,
    TurnDirection,
    VMGMode,
    request_tack,
    vmg_lock_heading,
)

__all__ = [
    'Polar',
    'PolarTable',
    'twa_of',
    'ManeuverState',
    'TurnDirection',
    'VMGMode',
    'request_tack',
    'vmg_lock_heading',
]
