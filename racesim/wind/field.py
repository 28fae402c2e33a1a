"""
Wind Field
==========

A single time-stamped global grid of (u, v) wind components with
bilinear spatial sampling.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from ..geo import LngLat, WindSpeed
from .raster import RasterData, U_CHANNEL, V_CHANNEL, color_to_speed


LAT_AMPLITUDE = 180.0


def to_grib_longitude(lng: float) -> float:
    """Map a longitude to the raster's [0, 360) convention."""
    return lng + 360 if lng <= 0 else lng


@dataclass(frozen=True, order=True)
class WindFieldDescriptor:
    """Reference to a not-yet-decoded wind field."""
    time: int                                   # Valid time (unix ms)
    source_url: str = field(compare=False)      # URL or path of the raster

    @classmethod
    def from_dict(cls, data: dict) -> 'WindFieldDescriptor':
        """Build from the loader JSON shape ({"time": ms, "sourceUrl": url})."""
        return cls(time=int(data['time']), source_url=data['sourceUrl'])


@dataclass(frozen=True, eq=False)
class WindField:
    """Decoded wind grid, immutable once built."""
    time: int            # Valid time (unix ms)
    u: np.ndarray        # U component [height, width] (m/s)
    v: np.ndarray        # V component [height, width] (m/s)

    def __post_init__(self):
        if self.u.shape != self.v.shape or self.u.ndim != 2:
            raise ValueError(f"u and v must be matching 2D grids, got {self.u.shape} and {self.v.shape}")
        self.u.flags.writeable = False
        self.v.flags.writeable = False

    @classmethod
    def from_raster(cls, time: int, raster: RasterData) -> 'WindField':
        """Decode a raw raster into wind components."""
        u = color_to_speed(raster.data[:, :, U_CHANNEL].astype(np.float64))
        v = color_to_speed(raster.data[:, :, V_CHANNEL].astype(np.float64))
        return cls(time=time, u=u, v=v)

    @property
    def width(self) -> int:
        return int(self.u.shape[1])

    @property
    def height(self) -> int:
        return int(self.u.shape[0])

    @property
    def pixel_size(self) -> float:
        """Grid resolution in degrees (0.5 for a 720-wide grid)."""
        return 360.0 / self.width

    def position_to_pixel(self, position: LngLat) -> Optional[Tuple[float, float]]:
        """
        Convert a position to fractional pixel coordinates.

        Returns:
            (x, y) or None when the latitude is outside [-90, 90]
        """
        if position.lat < -LAT_AMPLITUDE / 2 or position.lat > LAT_AMPLITUDE / 2:
            return None
        x = to_grib_longitude(position.lng) / self.pixel_size
        y = (LAT_AMPLITUDE / 2 - position.lat) / self.pixel_size
        return (x, y)

    def sample_at(self, position: LngLat) -> Optional[WindSpeed]:
        """
        Sample the wind at a position.

        Args:
            position: Query position

        Returns:
            Interpolated WindSpeed, or None when out of bounds
        """
        pixel = self.position_to_pixel(position)
        if pixel is None:
            return None
        x, y = pixel

        x0 = math.floor(x)
        y0 = math.floor(y)
        x_frac = x - x0
        y_frac = y - y0

        # Columns wrap across the date line, rows clamp at the poles
        j0 = x0 % self.width
        j1 = (x0 + 1) % self.width
        i0 = min(max(y0, 0), self.height - 1)
        i1 = min(max(y0 + 1, 0), self.height - 1)

        return WindSpeed(
            u=_bilinear(self.u, i0, i1, j0, j1, x_frac, y_frac),
            v=_bilinear(self.v, i0, i1, j0, j1, x_frac, y_frac),
        )


def _bilinear(grid: np.ndarray, i0: int, i1: int, j0: int, j1: int,
              x_frac: float, y_frac: float) -> float:
    """Bilinear interpolation between four grid cells."""
    v00 = float(grid[i0, j0])
    v01 = float(grid[i0, j1])
    v10 = float(grid[i1, j0])
    v11 = float(grid[i1, j1])

    v0 = v00 + (v01 - v00) * x_frac
    v1 = v10 + (v11 - v10) * x_frac

    return v0 + (v1 - v0) * y_frac
