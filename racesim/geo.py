"""
Geo Helpers
===========

Positions, wind vectors and the angle conventions shared by the engine.

Conventions:
- Headings and bearings are compass degrees (0 = north, clockwise)
- Wind direction is where the wind blows FROM (meteorological)
- Wind components are m/s, u eastward and v northward
"""

import math
from dataclasses import dataclass
from typing import Tuple


KNOTS_PER_MS = 1.94384
KM_PER_NM = 1.852

# Small-offset approximation used for dead reckoning and gate geometry
LAT_DEGREE_KM = 111.0


@dataclass(frozen=True)
class LngLat:
    """Geographic position in degrees."""
    lng: float
    lat: float


@dataclass(frozen=True)
class WindSpeed:
    """Wind vector in m/s."""
    u: float
    v: float

    @property
    def direction(self) -> float:
        """Direction the wind blows from (degrees, 0-360)."""
        return wind_direction(self.u, self.v)

    @property
    def speed(self) -> float:
        """Wind speed in m/s."""
        return math.hypot(self.u, self.v)

    @property
    def speed_knots(self) -> float:
        """Wind speed in knots."""
        return ms_to_knots(self.speed)


CALM = WindSpeed(0.0, 0.0)


def normalize_angle(angle: float) -> float:
    """Normalize an angle to (-180, 180]."""
    angle = math.fmod(angle, 360.0)
    if angle > 180:
        angle -= 360
    elif angle <= -180:
        angle += 360
    return angle


def normalize_heading(heading: float) -> float:
    """Normalize a heading to [0, 360)."""
    heading = heading % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if heading >= 360.0 else heading


def wind_direction(u: float, v: float) -> float:
    """Direction the wind comes FROM, in compass degrees [0, 360)."""
    return normalize_heading(math.degrees(math.atan2(-u, -v)))


def ms_to_knots(speed: float) -> float:
    return speed * KNOTS_PER_MS


def reframe_longitude(lng: float) -> float:
    """Bring a longitude back into [-180, 180]."""
    if lng > 180:
        return lng - 360
    if lng < -180:
        return lng + 360
    return lng


def lng_degree_km(lat: float) -> float:
    """Length of one degree of longitude at a latitude (km)."""
    return LAT_DEGREE_KM * math.cos(math.radians(lat))


def bearing_components(bearing: float) -> Tuple[float, float]:
    """(sin, cos) of a compass bearing; exact zeros on cardinal bearings."""
    rad = math.radians(bearing)
    return round(math.sin(rad), 15), round(math.cos(rad), 15)


def dead_reckon(position: LngLat, heading: float, distance_km: float) -> LngLat:
    """
    Move a position along a heading.

    Args:
        position: Start position
        heading: Course over ground (degrees)
        distance_km: Distance travelled (km)

    Returns:
        New position, longitude reframed to [-180, 180]
    """
    east, north = bearing_components(heading)
    lat_delta = distance_km * north / LAT_DEGREE_KM
    lng_delta = distance_km * east / lng_degree_km(position.lat)
    return LngLat(
        lng=reframe_longitude(position.lng + lng_delta),
        lat=position.lat + lat_delta,
    )


def offset_nm(position: LngLat, bearing: float, distance_nm: float) -> LngLat:
    """Offset a position by a distance in nautical miles along a bearing."""
    distance_km = distance_nm * KM_PER_NM
    east, north = bearing_components(bearing)
    return LngLat(
        lng=position.lng + distance_km * east / lng_degree_km(position.lat),
        lat=position.lat + distance_km * north / LAT_DEGREE_KM,
    )
