"""
Offshore Race Simulation Engine
===============================

Sails a boat through a time-varying global wind field, around an ordered
set of gates to a finish line.

Packages:
    - wind: Wind rasters, fields and the current/next field timeline
    - boat: Polar performance model and steering maneuvers
    - course: Course model and gate crossing detection
    - race: Per-tick race session and the headless race runner
"""

__version__ = '0.1.0'
