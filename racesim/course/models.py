"""
Course Models
=============

Immutable race course: start, ordered gates, finish line, exclusion
zones and the simulated-time mapping.

Courses are loaded from the camelCase JSON written by the course editor.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from functools import cached_property
from typing import List, Optional, Tuple

from shapely.geometry import Point, Polygon

from ..geo import LngLat, offset_nm

logger = logging.getLogger(__name__)


MS_PER_DAY = 24 * 3600 * 1000


def _point(data: dict) -> LngLat:
    return LngLat(lng=float(data['lng']), lat=float(data['lat']))


@dataclass(frozen=True)
class Gate:
    """
    A line the boat must cross.

    The orientation is the bearing of the gate line itself: 0 gives a
    north-south line, 90 an east-west line.
    """
    center: LngLat
    orientation: float      # degrees
    length_nm: float

    @cached_property
    def endpoints(self) -> Tuple[LngLat, LngLat]:
        half = self.length_nm / 2
        return (
            offset_nm(self.center, self.orientation + 180, half),
            offset_nm(self.center, self.orientation, half),
        )

    @classmethod
    def from_dict(cls, data: dict) -> 'Gate':
        return cls(
            center=_point(data['center']),
            orientation=float(data['orientation']),
            length_nm=float(data['lengthNm']),
        )


@dataclass(frozen=True)
class ExclusionZone:
    """Polygon the boat may not enter."""
    name: str
    polygon: Tuple[LngLat, ...]

    def __post_init__(self):
        if len(self.polygon) < 3:
            raise ValueError(f"Exclusion zone {self.name!r} needs at least 3 points")

    @cached_property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(min_lng, min_lat, max_lng, max_lat)"""
        lngs = [p.lng for p in self.polygon]
        lats = [p.lat for p in self.polygon]
        return (min(lngs), min(lats), max(lngs), max(lats))

    @cached_property
    def shape(self) -> Polygon:
        return Polygon([(p.lng, p.lat) for p in self.polygon])

    def contains(self, point: LngLat) -> bool:
        """True if the point is inside the zone or on its boundary."""
        min_lng, min_lat, max_lng, max_lat = self.bounds
        # Quick bounding box rejection
        if not (min_lng <= point.lng <= max_lng and min_lat <= point.lat <= max_lat):
            return False
        return self.shape.covers(Point(point.lng, point.lat))

    @classmethod
    def from_dict(cls, data: dict) -> 'ExclusionZone':
        return cls(
            name=data.get('name', ''),
            polygon=tuple(_point(p) for p in data['polygon']),
        )


@dataclass(frozen=True)
class Course:
    """Race course, read-only for the duration of a race."""
    key: str
    name: str
    start_time: int                 # Simulated start (unix ms)
    start: LngLat
    start_heading: float            # degrees
    finish_line: Gate
    gates: Tuple[Gate, ...] = ()
    exclusion_zones: Tuple[ExclusionZone, ...] = ()
    route_waypoints: Tuple[Tuple[LngLat, ...], ...] = ()
    time_factor: float = 1.0        # Simulated ms per wall-clock ms
    max_days: Optional[float] = None
    description: str = field(default='', compare=False)

    def __post_init__(self):
        if self.time_factor <= 0:
            raise ValueError(f"Course {self.key!r} time factor must be positive, got {self.time_factor}")

    def course_time(self, clock_ms: float) -> int:
        """Simulated time (unix ms) after clock_ms of elapsed wall-clock time."""
        return self.start_time + math.floor(clock_ms * self.time_factor + 0.5)

    @property
    def max_duration_ms(self) -> Optional[int]:
        """Simulated race time limit, if the course has one."""
        if self.max_days is None:
            return None
        return int(self.max_days * MS_PER_DAY)

    @property
    def gate_count(self) -> int:
        """Gates plus the finish line."""
        return len(self.gates) + 1

    def gate_at(self, index: int) -> Optional[Gate]:
        """Gate for a crossing index; the finish line follows the last gate."""
        if 0 <= index < len(self.gates):
            return self.gates[index]
        if index == len(self.gates):
            return self.finish_line
        return None

    def in_exclusion_zone(self, point: LngLat) -> bool:
        return any(zone.contains(point) for zone in self.exclusion_zones)

    @classmethod
    def from_dict(cls, data: dict) -> 'Course':
        """
        Build a course from editor JSON.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        try:
            return cls(
                key=data['key'],
                name=data.get('name', data['key']),
                description=data.get('description', ''),
                start_time=int(data['startTime']),
                start=_point(data['start']),
                start_heading=float(data.get('startHeading', 0.0)),
                finish_line=Gate.from_dict(data['finishLine']),
                gates=tuple(Gate.from_dict(g) for g in data.get('gates', [])),
                exclusion_zones=tuple(
                    ExclusionZone.from_dict(z) for z in data.get('exclusionZones', [])
                ),
                route_waypoints=tuple(
                    tuple(_point(p) for p in leg) for leg in data.get('routeWaypoints', [])
                ),
                time_factor=float(data.get('timeFactor', 1.0)),
                max_days=float(data['maxDays']) if data.get('maxDays') is not None else None,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed course: {e!r}") from e

    @classmethod
    def from_json(cls, filepath: str) -> 'Course':
        """Load a course from a JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        course = cls.from_dict(data)
        logger.info(f"Loaded course {course.key} with {len(course.gates)} gates")
        return course

    def to_dict(self) -> dict:
        """Editor JSON representation."""
        def point(p: LngLat) -> dict:
            return {'lng': p.lng, 'lat': p.lat}

        def gate(g: Gate) -> dict:
            return {'center': point(g.center), 'orientation': g.orientation, 'lengthNm': g.length_nm}

        return {
            'key': self.key,
            'name': self.name,
            'description': self.description,
            'startTime': self.start_time,
            'start': point(self.start),
            'startHeading': self.start_heading,
            'finishLine': gate(self.finish_line),
            'gates': [gate(g) for g in self.gates],
            'exclusionZones': [
                {'name': z.name, 'polygon': [point(p) for p in z.polygon]}
                for z in self.exclusion_zones
            ],
            'routeWaypoints': [[point(p) for p in leg] for leg in self.route_waypoints],
            'timeFactor': self.time_factor,
            'maxDays': self.max_days,
        }
