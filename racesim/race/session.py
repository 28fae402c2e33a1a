"""
Race Session
============

Per-tick orchestrator for a single race.

Each tick runs in a fixed order:
1. Wind: advance the wind timeline and sample at the boat
2. Boat speed: polar target speed, smoothed by first-order inertia
3. Heading: tack/gybe target, manual turn, TWA lock
4. Position: dead reckoning (exclusion zones stop the boat)
5. Gates: crossing detection on the tick's movement segment

The result of every tick is an immutable RaceSnapshot, published to
subscribers so rendering never touches session state.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional

from ..boat import maneuvers
from ..boat.maneuvers import (
    MAX_TURN_RATE, MIN_TURN_RATE, TACK_TURN_RATE, TURN_ACCEL_TAU,
    ManeuverState, TurnDirection, VMGMode,
)
from ..boat.polar import Polar, twa_of
from ..course.models import Course
from ..course.tracker import CourseTracker
from ..geo import CALM, KM_PER_NM, LngLat, WindSpeed, dead_reckon, normalize_heading
from ..wind.field import WindField, WindFieldDescriptor
from ..wind.loader import load_field
from ..wind.timeline import WindTimeline

logger = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    """Tick integrator tuning."""
    tack_turn_rate: float = TACK_TURN_RATE     # deg/s during a tack or gybe
    min_turn_rate: float = MIN_TURN_RATE       # deg/s when a manual turn starts
    max_turn_rate: float = MAX_TURN_RATE       # deg/s for a sustained manual turn
    turn_accel_tau: float = TURN_ACCEL_TAU     # Manual turn ramp time constant (s)
    inertia_tau: float = 1.0                   # Boat speed time constant (s, wall clock)
    heading_tolerance: float = 0.0             # Target heading snap distance (degrees)


class RaceStatus(Enum):
    """Race lifecycle."""
    RUNNING = "running"
    FINISHED = "finished"       # Finish line crossed
    TIMED_OUT = "timed_out"     # Course time limit exceeded
    ABANDONED = "abandoned"     # Player left the race


@dataclass
class SessionState:
    """Mutable race state, owned by one RaceSession."""
    clock: float = 0.0                          # Elapsed wall-clock time (ms)
    course_time: int = 0                        # Simulated time (unix ms)
    position: LngLat = field(default_factory=lambda: LngLat(0.0, 0.0))
    heading: float = 0.0                        # degrees
    target_heading: Optional[float] = None      # Set while tacking or gybing
    boat_speed: float = 0.0                     # knots
    wind_speed: WindSpeed = CALM                # Last wind sample (m/s)
    wind_available: bool = False
    next_gate_index: int = 0
    turning: Optional[TurnDirection] = None     # Manual turn in progress
    turning_duration: float = 0.0               # seconds
    locked_twa: Optional[float] = None          # Signed TWA held by the TWA lock
    finish_time: Optional[int] = None           # Simulated time of finish (unix ms)
    status: RaceStatus = RaceStatus.RUNNING


@dataclass(frozen=True)
class RaceSnapshot:
    """Immutable per-tick view of the race for rendering."""
    position: LngLat
    heading: float
    boat_speed: float
    wind_speed: Optional[WindSpeed]
    next_gate_index: int
    race_finished: bool
    clock: float
    course_time: int
    target_heading: Optional[float]
    gate_crossed: Optional[int]
    status: RaceStatus

    @property
    def maneuver_state(self) -> ManeuverState:
        return maneuvers.state_of(self.target_heading)


SnapshotCallback = Callable[[RaceSnapshot], None]


class RaceSession:
    """
    Runs one race.

    The session is driven by tick(delta_ms) from a single thread. Wind
    fields load in the background and are picked up on later ticks.
    """

    def __init__(self,
                 course: Course,
                 timeline: WindTimeline,
                 polar: Optional[Polar] = None,
                 config: Optional[SimulationConfig] = None):
        """
        Initialize race session.

        Args:
            course: Race course
            timeline: Wind timeline covering the race
            polar: Boat polar (built-in IMOCA if omitted)
            config: Tick integrator tuning
        """
        self.course = course
        self.timeline = timeline
        self.polar = polar or Polar.imoca()
        self.config = config or SimulationConfig()

        self.tracker = CourseTracker(course)
        self.state = SessionState(
            course_time=course.start_time,
            position=course.start,
            heading=normalize_heading(course.start_heading),
        )
        self._callbacks: List[SnapshotCallback] = []

        self._sample_wind()
        self._snapshot = self._make_snapshot(gate_crossed=None)

    @classmethod
    def start(cls,
              course: Course,
              descriptors: Iterable[WindFieldDescriptor],
              polar: Optional[Polar] = None,
              config: Optional[SimulationConfig] = None,
              loader: Callable[[WindFieldDescriptor], WindField] = load_field) -> 'RaceSession':
        """
        Create a session, blocking until the initial wind fields have loaded.

        Args:
            course: Race course
            descriptors: Wind field descriptors covering the race
            polar: Boat polar
            config: Tick integrator tuning
            loader: Wind field loader

        Returns:
            Running RaceSession
        """
        timeline = WindTimeline(descriptors, loader=loader)
        timeline.advance(course.start_time, wait=True)
        if not timeline.is_ready:
            logger.warning("No wind field available at race start, boat will not move until one loads")

        session = cls(course, timeline, polar, config)
        logger.info(f"Race {course.key} started at {course.start} heading {session.state.heading:.0f}")
        return session

    @property
    def snapshot(self) -> RaceSnapshot:
        """Snapshot from the latest tick."""
        return self._snapshot

    @property
    def is_running(self) -> bool:
        return self.state.status is RaceStatus.RUNNING

    def subscribe(self, callback: SnapshotCallback):
        """Register callback for per-tick snapshots."""
        self._callbacks.append(callback)

    def unsubscribe(self, callback: SnapshotCallback):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, delta_ms: float) -> RaceSnapshot:
        """
        Advance the race by a wall-clock delta.

        Args:
            delta_ms: Elapsed wall-clock time since the previous tick (ms)

        Returns:
            Snapshot after the tick (the previous one if the race is over)
        """
        if not self.is_running:
            return self._snapshot
        if delta_ms < 0:
            raise ValueError(f"Tick delta must be non-negative, got {delta_ms}")

        state = self.state
        dt = delta_ms / 1000.0

        state.clock += delta_ms
        state.course_time = self.course.course_time(state.clock)

        # 1. Wind
        self.timeline.advance(state.course_time)
        self._sample_wind()

        # 2. Boat speed
        self._update_boat_speed(dt)

        # 3. Heading
        self._update_heading(dt)

        # 4. Position
        prev_position = state.position
        new_position = self._move(dt)

        # 5. Gates
        gate_crossed = None
        if new_position != prev_position:
            gate_crossed = self.tracker.update(prev_position, new_position)
            state.next_gate_index = self.tracker.next_gate_index
            if self.tracker.finished:
                state.finish_time = state.course_time
                state.status = RaceStatus.FINISHED
                elapsed_h = (state.course_time - self.course.start_time) / 3_600_000
                logger.info(f"Race {self.course.key} finished after {elapsed_h:.1f} h of race time")

        self._check_time_limit()

        self._snapshot = self._make_snapshot(gate_crossed)
        self._publish(self._snapshot)
        return self._snapshot

    def _sample_wind(self):
        state = self.state
        wind = self.timeline.sample_at(state.position, state.course_time)
        state.wind_available = wind is not None
        state.wind_speed = wind if wind is not None else CALM

    def _update_boat_speed(self, dt: float):
        state = self.state
        if state.wind_available:
            twa = twa_of(state.heading, state.wind_speed.direction)
            target_speed = self.polar.speed_at(state.wind_speed.speed_knots, twa)
        else:
            target_speed = 0.0

        tau = self.config.inertia_tau
        alpha = 1.0 - math.exp(-dt / tau) if tau > 0 else 1.0
        state.boat_speed += (target_speed - state.boat_speed) * alpha

    def _update_heading(self, dt: float):
        state = self.state
        config = self.config

        if state.turning is not None:
            state.heading, state.turning_duration = maneuvers.step_manual_turn(
                state.heading, state.turning, state.turning_duration, dt,
                config.min_turn_rate, config.max_turn_rate, config.turn_accel_tau,
            )

        if state.target_heading is not None:
            state.heading, state.target_heading, completed = maneuvers.step_toward_target(
                state.heading, state.target_heading, dt,
                config.tack_turn_rate, config.heading_tolerance,
            )
            if completed:
                logger.debug(f"Maneuver complete, heading {state.heading:.1f}")
                # Hold the same angle on the new side
                if state.locked_twa is not None:
                    state.locked_twa = -state.locked_twa

        if (state.locked_twa is not None and state.target_heading is None
                and state.wind_available):
            state.heading = maneuvers.heading_for_locked_twa(
                state.wind_speed.direction, state.locked_twa
            )

    def _move(self, dt: float) -> LngLat:
        state = self.state
        sim_dt_s = dt * self.course.time_factor
        distance_km = state.boat_speed * KM_PER_NM * sim_dt_s / 3600

        new_position = dead_reckon(state.position, state.heading, distance_km)
        if self.course.in_exclusion_zone(new_position):
            state.boat_speed = 0.0
            return state.position

        state.position = new_position
        return new_position

    def _check_time_limit(self):
        state = self.state
        limit = self.course.max_duration_ms
        if state.status is not RaceStatus.RUNNING or limit is None:
            return
        if state.course_time - self.course.start_time >= limit:
            state.status = RaceStatus.TIMED_OUT
            logger.warning(f"Race {self.course.key} timed out after {self.course.max_days} days")

    def _make_snapshot(self, gate_crossed: Optional[int]) -> RaceSnapshot:
        state = self.state
        return RaceSnapshot(
            position=state.position,
            heading=state.heading,
            boat_speed=state.boat_speed,
            wind_speed=state.wind_speed if state.wind_available else None,
            next_gate_index=state.next_gate_index,
            race_finished=state.status is RaceStatus.FINISHED,
            clock=state.clock,
            course_time=state.course_time,
            target_heading=state.target_heading,
            gate_crossed=gate_crossed,
            status=state.status,
        )

    def _publish(self, snapshot: RaceSnapshot):
        for callback in self._callbacks:
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning(f"Snapshot callback error: {e}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def tack(self) -> Optional[float]:
        """
        Start a tack or gybe.

        Returns:
            Target heading, or None if rejected
        """
        if not self.is_running or not self.state.wind_available:
            return None

        target = maneuvers.request_tack(self.state)
        if target is not None:
            self.state.target_heading = target
            logger.debug(f"Tacking from {self.state.heading:.1f} to {target:.1f}")
        return target

    def start_turn(self, direction: TurnDirection):
        """Start turning manually; overrides any maneuver or lock."""
        state = self.state
        if state.turning is direction:
            return
        state.turning = direction
        state.turning_duration = 0.0
        state.target_heading = None
        state.locked_twa = None

    def stop_turn(self):
        self.state.turning = None
        self.state.turning_duration = 0.0

    def set_heading(self, heading: float):
        """Manual heading override."""
        state = self.state
        state.heading = normalize_heading(heading)
        state.target_heading = None
        state.locked_twa = None

    def toggle_twa_lock(self) -> Optional[float]:
        """
        Lock or unlock the current true wind angle.

        Returns:
            Locked signed TWA, or None when unlocked
        """
        state = self.state
        if state.locked_twa is None and not state.wind_available:
            return None
        state.locked_twa = maneuvers.toggle_twa_lock(state)
        logger.debug(f"TWA lock set to {state.locked_twa}")
        return state.locked_twa

    def lock_vmg(self, mode: VMGMode = VMGMode.CLOSEST) -> Optional[float]:
        """
        Steer to the best VMG heading on the current side of the wind.

        Returns:
            Target heading, or None if no wind or a maneuver is in flight
        """
        state = self.state
        if not self.is_running or state.target_heading is not None or not state.wind_available:
            return None

        target = maneuvers.vmg_lock_heading(state, self.polar, mode)
        if target is not None:
            state.target_heading = target
            state.locked_twa = None
        return target

    def abandon(self):
        """Leave the race; in-flight wind loads are discarded."""
        if self.state.status is RaceStatus.RUNNING:
            self.state.status = RaceStatus.ABANDONED
            logger.info(f"Race {self.course.key} abandoned")
        self.timeline.cancel()
        self._snapshot = self._make_snapshot(gate_crossed=None)

    def close(self):
        self.timeline.close()
