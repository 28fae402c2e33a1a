"""
Course Tracker
==============

Detects gate crossings and tracks race progress.

A tick's movement is a segment from the previous to the new position.
Only the next required gate is tested against it, so gates are crossed
in strict order and crossing a later gate early counts for nothing.
"""

import logging
from typing import Optional

from ..geo import LngLat
from .models import Course, Gate

logger = logging.getLogger(__name__)


def _cross(a: LngLat, b: LngLat, c: LngLat) -> float:
    """Cross product (b - a) x (c - a)."""
    return (b.lng - a.lng) * (c.lat - a.lat) - (b.lat - a.lat) * (c.lng - a.lng)


def _on_segment(a: LngLat, b: LngLat, c: LngLat) -> bool:
    """True if c lies within the bounding box of segment a-b."""
    return (min(a.lng, b.lng) <= c.lng <= max(a.lng, b.lng)
            and min(a.lat, b.lat) <= c.lat <= max(a.lat, b.lat))


def segments_intersect(p1: LngLat, p2: LngLat, g1: LngLat, g2: LngLat) -> bool:
    """
    Test whether segment p1-p2 intersects segment g1-g2.

    Touching and collinear overlap count as intersecting.
    """
    d1 = _cross(g1, g2, p1)
    d2 = _cross(g1, g2, p2)
    d3 = _cross(p1, p2, g1)
    d4 = _cross(p1, p2, g2)

    # General case: each segment straddles the other
    if ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4)):
        return True

    # Collinear cases
    if d1 == 0 and _on_segment(g1, g2, p1):
        return True
    if d2 == 0 and _on_segment(g1, g2, p2):
        return True
    if d3 == 0 and _on_segment(p1, p2, g1):
        return True
    if d4 == 0 and _on_segment(p1, p2, g2):
        return True

    return False


def crosses_gate(prev_pos: LngLat, new_pos: LngLat, gate: Gate) -> bool:
    g1, g2 = gate.endpoints
    return segments_intersect(prev_pos, new_pos, g1, g2)


def check_crossing(prev_pos: LngLat, new_pos: LngLat, course: Course,
                   next_gate_index: int) -> Optional[int]:
    """
    Check whether the next required gate was crossed.

    Args:
        prev_pos: Position before the tick
        new_pos: Position after the tick
        course: Race course
        next_gate_index: Index of the next required gate; len(gates)
            means the finish line

    Returns:
        The crossed gate index, or None
    """
    gate = course.gate_at(next_gate_index)
    if gate is None:
        return None
    if crosses_gate(prev_pos, new_pos, gate):
        return next_gate_index
    return None


class CourseTracker:
    """
    Tracks which gate the boat must cross next.

    next_gate_index runs from 0 to len(gates) (the finish line); crossing
    the finish line finishes the race and stops all further checks.
    """

    def __init__(self, course: Course, next_gate_index: int = 0):
        self.course = course
        self.next_gate_index = next_gate_index
        self.finished = False

    @property
    def target_gate(self) -> Optional[Gate]:
        """Gate the boat is sailing for, or None once finished."""
        if self.finished:
            return None
        return self.course.gate_at(self.next_gate_index)

    @property
    def is_finish_next(self) -> bool:
        return not self.finished and self.next_gate_index == len(self.course.gates)

    @property
    def gates_remaining(self) -> int:
        """Gates still to cross, finish line included."""
        if self.finished:
            return 0
        return self.course.gate_count - self.next_gate_index

    @property
    def progress(self) -> float:
        """Fraction of gates crossed (0-1)."""
        if self.finished:
            return 1.0
        return self.next_gate_index / self.course.gate_count

    def update(self, prev_pos: LngLat, new_pos: LngLat) -> Optional[int]:
        """
        Process one tick of movement.

        Returns:
            Index of the gate crossed this tick, or None
        """
        if self.finished:
            return None

        crossed = check_crossing(prev_pos, new_pos, self.course, self.next_gate_index)
        if crossed is None:
            return None

        if crossed == len(self.course.gates):
            self.finished = True
            self.next_gate_index = crossed + 1
            logger.info("Finish line crossed")
        else:
            self.next_gate_index = crossed + 1
            logger.info(f"Gate {crossed + 1}/{len(self.course.gates)} crossed")

        return crossed
