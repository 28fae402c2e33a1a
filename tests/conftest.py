"""
Shared test fixtures for race engine unit tests.
"""

import struct
import zlib
from concurrent.futures import Executor, Future

import numpy as np
import pytest

from racesim.boat.polar import Polar
from racesim.course.models import Course, Gate
from racesim.errors import FetchError
from racesim.geo import LngLat, WindSpeed
from racesim.race.session import SessionState
from racesim.wind.field import WindField, WindFieldDescriptor
from racesim.wind.raster import encode_raster


HOUR_MS = 3_600_000


class ImmediateExecutor(Executor):
    """Runs submitted work synchronously so background loads are deterministic."""

    def __init__(self):
        self.submitted = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.submitted.append(args)
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


def uniform_field(time: int, u: float, v: float, width: int = 8, height: int = 4) -> WindField:
    """Wind field with the same wind everywhere."""
    return WindField(
        time=time,
        u=np.full((height, width), u, dtype=np.float64),
        v=np.full((height, width), v, dtype=np.float64),
    )


class FakeLoader:
    """
    Loader producing uniform fields keyed by descriptor time.

    Fields are described by {time: (u, v)}; times listed in `failing`
    raise FetchError.
    """

    def __init__(self, winds, failing=()):
        self.winds = dict(winds)
        self.failing = set(failing)
        self.calls = []

    def __call__(self, descriptor: WindFieldDescriptor) -> WindField:
        self.calls.append(descriptor.time)
        if descriptor.time in self.failing:
            raise FetchError(f"unreachable {descriptor.source_url}")
        u, v = self.winds[descriptor.time]
        return uniform_field(descriptor.time, u, v)


def oversized_png(width: int = 30000, height: int = 30000) -> bytes:
    """PNG whose header claims a huge image, with almost no pixel data."""
    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack('>I', len(data)) + kind + data + struct.pack('>I', zlib.crc32(kind + data))

    header = struct.pack('>IIBBBBB', width, height, 8, 2, 0, 0, 0)
    return (b'\x89PNG\r\n\x1a\n' + chunk(b'IHDR', header)
            + chunk(b'IDAT', zlib.compress(b'\x00')) + chunk(b'IEND', b''))


def descriptors_for(times):
    return [WindFieldDescriptor(time=t, source_url=f"mem://wind/{t}.png") for t in times]


@pytest.fixture
def executor():
    """Synchronous executor for wind loads."""
    return ImmediateExecutor()


@pytest.fixture
def polar():
    """Built-in IMOCA polar for testing."""
    return Polar.imoca()


@pytest.fixture
def north_wind():
    """10 m/s wind blowing from the north."""
    return WindSpeed(u=0.0, v=-10.0)


@pytest.fixture
def north_wind_state(north_wind):
    """Boat close-hauled on starboard-side heading in a northerly."""
    return SessionState(heading=45.0, wind_speed=north_wind, wind_available=True)


@pytest.fixture
def gate_course():
    """One gate at (10, 0) and a finish line at (20, 0), both east-west lines."""
    return Course(
        key='test-course',
        name='Test Course',
        start_time=1_000_000,
        start=LngLat(lng=9.0, lat=0.0),
        start_heading=90.0,
        finish_line=Gate(center=LngLat(lng=20.0, lat=0.0), orientation=0.0, length_nm=12.0),
        gates=(Gate(center=LngLat(lng=10.0, lat=0.0), orientation=90.0, length_nm=2.0),),
        time_factor=60.0,
        max_days=90,
    )


@pytest.fixture
def race_course():
    """Sprint east along the equator: a gate at 0.5E, finish at 1.0E (north-south lines)."""
    return Course(
        key='equator-sprint',
        name='Equator Sprint',
        start_time=1_000_000,
        start=LngLat(lng=0.0, lat=0.0),
        start_heading=90.0,
        finish_line=Gate(center=LngLat(lng=1.0, lat=0.0), orientation=0.0, length_nm=20.0),
        gates=(Gate(center=LngLat(lng=0.5, lat=0.0), orientation=0.0, length_nm=20.0),),
        time_factor=60.0,
        max_days=2,
    )


@pytest.fixture
def race_winds(race_course):
    """Northerly 10 m/s for the first 6 hours, then 12 m/s."""
    start = race_course.start_time
    times = [start, start + 6 * HOUR_MS, start + 12 * HOUR_MS]
    loader = FakeLoader({times[0]: (0.0, -10.0), times[1]: (0.0, -12.0), times[2]: (0.0, -12.0)})
    return descriptors_for(times), loader


@pytest.fixture
def raster_png():
    """4x8 wind raster PNG: u = 10 m/s, v = -5 m/s everywhere."""
    return encode_raster(np.full((4, 8), 10.0), np.full((4, 8), -5.0))
