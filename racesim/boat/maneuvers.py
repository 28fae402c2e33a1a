"""
Maneuvers Module
================

Steering decisions for the boat: tacks and gybes, manual turning,
TWA lock and VMG lock.

A tack or gybe is a single heading mirror across the wind axis. While a
target heading is set the boat is TURNING and further tack requests are
rejected; the tick integrator rotates the heading toward the target and
clears it on arrival.
"""

import math
import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

from ..geo import ms_to_knots, normalize_angle, normalize_heading, wind_direction
from .polar import Polar, twa_of

if TYPE_CHECKING:
    from ..race.session import SessionState

logger = logging.getLogger(__name__)


# Rotation rate while executing a tack or gybe (degrees per wall-clock second)
TACK_TURN_RATE = 90.0

# Manual turn rate ramps from MIN to MAX with time constant TURN_ACCEL_TAU
MIN_TURN_RATE = 35.0
MAX_TURN_RATE = 70.0
TURN_ACCEL_TAU = 0.12   # seconds

# Below this wind speed there is no meaningful VMG (knots)
VMG_MIN_TWS = 1.0


class ManeuverState(Enum):
    """Steering state of the boat."""
    STEADY = "steady"       # No target heading
    TURNING = "turning"     # Rotating toward a target heading


class TurnDirection(Enum):
    """Manual turn direction."""
    LEFT = -1
    RIGHT = 1


class VMGMode(Enum):
    """Which VMG optimum to lock onto."""
    UPWIND = "upwind"
    DOWNWIND = "downwind"
    CLOSEST = "closest"     # Upwind or downwind, from the current TWA


def state_of(target_heading: Optional[float]) -> ManeuverState:
    return ManeuverState.STEADY if target_heading is None else ManeuverState.TURNING


def mirror_heading(heading: float, wind_dir: float) -> float:
    """Mirror a heading across the wind axis (same TWA, other side)."""
    return normalize_heading(wind_dir - normalize_angle(heading - wind_dir))


def request_tack(state: 'SessionState') -> Optional[float]:
    """
    Compute the target heading for a tack or gybe.

    Upwind this is a tack and downwind a gybe; the mirror is the same.
    Bow-to-wind and dead-downwind headings mirror onto themselves.

    Args:
        state: Session state (heading, wind_speed, target_heading)

    Returns:
        Target heading, or None if a maneuver is already in flight
    """
    if state_of(state.target_heading) is ManeuverState.TURNING:
        logger.debug("Tack rejected: maneuver already in progress")
        return None

    wind_dir = wind_direction(state.wind_speed.u, state.wind_speed.v)
    return mirror_heading(state.heading, wind_dir)


def step_toward_target(heading: float, target: float, dt_s: float,
                       turn_rate: float = TACK_TURN_RATE,
                       tolerance: float = 0.0) -> Tuple[float, Optional[float], bool]:
    """
    Rotate toward a target heading the short way round.

    Args:
        heading: Current heading (degrees)
        target: Target heading (degrees)
        dt_s: Wall-clock step (seconds)
        turn_rate: Rotation rate (degrees/second)
        tolerance: Snap to the target when this close (degrees)

    Returns:
        (new_heading, remaining_target_or_None, completed)
    """
    max_turn = turn_rate * dt_s
    diff = normalize_angle(target - heading)

    if abs(diff) <= max(max_turn, tolerance):
        return normalize_heading(target), None, True

    return normalize_heading(heading + math.copysign(max_turn, diff)), target, False


def manual_turn_rate(duration_s: float,
                     min_rate: float = MIN_TURN_RATE,
                     max_rate: float = MAX_TURN_RATE,
                     tau: float = TURN_ACCEL_TAU) -> float:
    """Manual turn rate after holding the helm over for duration_s seconds."""
    return min_rate + (max_rate - min_rate) * (1 - math.exp(-duration_s / tau))


def step_manual_turn(heading: float, direction: TurnDirection, duration_s: float, dt_s: float,
                     min_rate: float = MIN_TURN_RATE,
                     max_rate: float = MAX_TURN_RATE,
                     tau: float = TURN_ACCEL_TAU) -> Tuple[float, float]:
    """
    Apply one step of manual turning.

    Returns:
        (new_heading, new_turning_duration)
    """
    rate = manual_turn_rate(duration_s, min_rate, max_rate, tau)
    new_heading = normalize_heading(heading + direction.value * rate * dt_s)
    return new_heading, duration_s + dt_s


def signed_twa(state: 'SessionState') -> float:
    """Signed TWA in (-180, 180]: positive with wind from starboard."""
    wind_dir = wind_direction(state.wind_speed.u, state.wind_speed.v)
    return normalize_angle(wind_dir - state.heading)


def toggle_twa_lock(state: 'SessionState') -> Optional[float]:
    """New locked TWA: the current signed TWA when locking, None when unlocking."""
    if state.locked_twa is not None:
        return None
    return signed_twa(state)


def heading_for_locked_twa(wind_dir: float, locked_twa: float) -> float:
    """Heading that holds a signed TWA."""
    return normalize_heading(wind_dir - locked_twa)


def vmg_lock_heading(state: 'SessionState', polar: Polar,
                     mode: VMGMode = VMGMode.CLOSEST) -> Optional[float]:
    """
    Heading for the best VMG on the current side of the wind.

    Args:
        state: Session state (heading, wind_speed)
        polar: Boat polar
        mode: Upwind, downwind, or closest to the current TWA

    Returns:
        Target heading, or None when there is too little wind
    """
    tws = ms_to_knots(state.wind_speed.speed)
    if tws < VMG_MIN_TWS:
        return None

    wind_dir = wind_direction(state.wind_speed.u, state.wind_speed.v)
    if mode is VMGMode.CLOSEST:
        upwind = twa_of(state.heading, wind_dir) < 90
    else:
        upwind = mode is VMGMode.UPWIND

    return polar.optimal_vmg_heading(wind_dir, tws, state.heading, upwind)
