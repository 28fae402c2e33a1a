"""
Polar Diagram Module
====================

Loads and interpolates the boat's polar performance diagram.
Used to compute boat speed every tick and for VMG optimization.
"""

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..geo import normalize_angle, normalize_heading

logger = logging.getLogger(__name__)


UPWIND = 'upwind'
DOWNWIND = 'downwind'


@dataclass(frozen=True)
class PolarTable:
    """Polar diagram data structure."""
    name: str
    tws: List[float]            # True wind speeds (knots), ascending
    twa: List[float]            # True wind angles (degrees, 0-180), ascending
    speeds: List[List[float]]   # Boat speed (knots) [tws_idx][twa_idx]

    def __post_init__(self):
        if not self.tws or not self.twa:
            raise ValueError(f"Polar {self.name!r} has no TWS or TWA keys")
        if list(self.tws) != sorted(self.tws) or list(self.twa) != sorted(self.twa):
            raise ValueError(f"Polar {self.name!r} keys must be sorted ascending")
        if len(self.speeds) != len(self.tws):
            raise ValueError(
                f"Polar {self.name!r} has {len(self.speeds)} rows for {len(self.tws)} TWS keys"
            )
        for tws, row in zip(self.tws, self.speeds):
            if len(row) != len(self.twa):
                raise ValueError(
                    f"Polar {self.name!r} row for TWS {tws} has {len(row)} values, "
                    f"expected {len(self.twa)}"
                )


class Polar:
    """
    Boat polar diagram for performance calculations.

    Lookups never fail: TWA is folded onto 0-180 (port/starboard
    symmetry) and both axes are clamped to the table's keys.
    """

    def __init__(self, table: Optional[PolarTable] = None):
        self._table = table or _imoca_table()

    @property
    def name(self) -> str:
        return self._table.name

    @property
    def table(self) -> PolarTable:
        return self._table

    @classmethod
    def from_dict(cls, mapping: Dict[str, Dict[str, float]], name: str = 'custom') -> 'Polar':
        """
        Build a polar from the nested mapping format.

        Args:
            mapping: {"<tws>": {"<twa>": speed}}
            name: Polar name

        Raises:
            ValueError: If rows do not share the same TWA keys
        """
        rows = {float(tws): {float(twa): float(speed) for twa, speed in row.items()}
                for tws, row in mapping.items()}
        if not rows:
            raise ValueError("Polar mapping is empty")

        tws_keys = sorted(rows)
        twa_keys = sorted(rows[tws_keys[0]])
        for tws in tws_keys:
            if sorted(rows[tws]) != twa_keys:
                raise ValueError(f"Polar row for TWS {tws} does not share the TWA key set")

        speeds = [[rows[tws][twa] for twa in twa_keys] for tws in tws_keys]
        return cls(PolarTable(name=name, tws=tws_keys, twa=twa_keys, speeds=speeds))

    @classmethod
    def from_json(cls, filepath: str) -> 'Polar':
        """
        Load polar from JSON file.

        Accepts either the nested mapping format or a table object with
        "tws", "twa" and "speeds" keys.
        """
        with open(filepath, 'r') as f:
            data = json.load(f)

        if 'speeds' in data:
            table = PolarTable(
                name=data.get('name', 'unknown'),
                tws=[float(x) for x in data['tws']],
                twa=[float(x) for x in data['twa']],
                speeds=[[float(x) for x in row] for row in data['speeds']],
            )
            polar = cls(table)
        else:
            polar = cls.from_dict(data, name=Path(filepath).stem)

        logger.info(f"Loaded polar {polar.name} "
                    f"({len(polar.table.tws)} TWS x {len(polar.table.twa)} TWA)")
        return polar

    @classmethod
    def imoca(cls) -> 'Polar':
        """Return the IMOCA 60 polar (built-in)."""
        return cls(_imoca_table())

    def speed_at(self, tws: float, twa: float) -> float:
        """
        Get boat speed from polar.

        Args:
            tws: True wind speed (knots)
            twa: True wind angle (degrees, any sign)

        Returns:
            Boat speed (knots)
        """
        # Normalize TWA to 0-180
        twa = abs(twa)
        if twa > 180:
            twa = 360 - twa

        tws_idx = _find_indices(self._table.tws, tws)
        twa_idx = _find_indices(self._table.twa, twa)

        return self._bilinear_interpolate(tws_idx, twa_idx)

    def _bilinear_interpolate(self, tws_idx: Tuple[int, int, float],
                              twa_idx: Tuple[int, int, float]) -> float:
        """Bilinear interpolation of polar speed."""
        i0, i1, tws_frac = tws_idx
        j0, j1, twa_frac = twa_idx
        speeds = self._table.speeds

        # Get corner values
        v00 = speeds[i0][j0]
        v01 = speeds[i0][j1]
        v10 = speeds[i1][j0]
        v11 = speeds[i1][j1]

        # Interpolate along TWA axis
        v0 = v00 + (v01 - v00) * twa_frac
        v1 = v10 + (v11 - v10) * twa_frac

        # Interpolate along TWS axis
        return v0 + (v1 - v0) * tws_frac

    def max_speed(self) -> float:
        """Fastest speed anywhere in the table (knots)."""
        return max(max(row) for row in self._table.speeds)

    def polar_curve(self, tws: float) -> List[Tuple[float, float]]:
        """Boat speed at each tabulated TWA for a wind speed: [(twa, speed)]."""
        return [(twa, self.speed_at(tws, twa)) for twa in self._table.twa]

    def optimal_vmg_angle(self, tws: float, upwind: bool = True) -> float:
        """
        Find the TWA with the best velocity made good.

        Args:
            tws: True wind speed (knots)
            upwind: Scan 20-90 degrees if True, 90-180 otherwise

        Returns:
            Optimal TWA (degrees)
        """
        best_vmg = -math.inf
        best_twa = 45.0 if upwind else 135.0
        lo, hi = (20, 90) if upwind else (90, 180)

        for twa_deg in range(lo, hi + 1):
            vmg = abs(self.speed_at(tws, twa_deg) * math.cos(math.radians(twa_deg)))
            if vmg > best_vmg:
                best_vmg = vmg
                best_twa = float(twa_deg)

        return best_twa

    def optimal_vmg_heading(self, wind_direction: float, tws: float,
                            heading: float, upwind: Optional[bool] = None) -> float:
        """
        Heading that sails the optimal VMG angle on the current side of the wind.

        Args:
            wind_direction: Direction the wind blows from (degrees)
            tws: True wind speed (knots)
            heading: Current heading (degrees)
            upwind: Force upwind/downwind; None picks from the current TWA

        Returns:
            Target heading (degrees, 0-360)
        """
        if upwind is None:
            upwind = twa_of(heading, wind_direction) <= 90

        optimal = self.optimal_vmg_angle(tws, upwind)
        # Positive when the wind is on the port side
        side = 1 if normalize_angle(heading - wind_direction) > 0 else -1

        return normalize_heading(wind_direction + side * optimal)


def twa_of(heading: float, wind_direction: float) -> float:
    """True wind angle (0-180) for a heading and wind direction."""
    return abs(normalize_angle(wind_direction - heading))


def _find_indices(arr: List[float], val: float) -> Tuple[int, int, float]:
    """Find bracketing indices and interpolation factor, clamping to the ends."""
    if val <= arr[0]:
        return (0, 0, 0.0)
    if val >= arr[-1]:
        return (len(arr) - 1, len(arr) - 1, 0.0)

    for i in range(len(arr) - 1):
        if arr[i] <= val <= arr[i + 1]:
            frac = (val - arr[i]) / (arr[i + 1] - arr[i]) if arr[i + 1] != arr[i] else 0.0
            return (i, i + 1, frac)

    return (len(arr) - 1, len(arr) - 1, 0.0)


def _imoca_table() -> PolarTable:
    """Built-in IMOCA 60 polar data."""
    return PolarTable(
        name='imoca60',
        tws=[0, 4, 6, 8, 10, 12, 14, 16, 20, 25, 30, 35, 40, 50, 70],
        twa=[0, 30, 40, 50, 60, 70, 80, 90, 100, 110, 120, 130, 140, 150, 160, 170, 180],
        speeds=[
            [0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0],
            [0, 1.8, 3.2, 4.1, 4.7, 5.0, 5.1, 5.0, 4.8, 4.5, 4.2, 3.8, 3.4, 3.0, 2.6, 2.3, 2.1],
            [0, 2.9, 4.8, 6.0, 6.8, 7.2, 7.4, 7.3, 7.1, 6.8, 6.4, 5.9, 5.3, 4.7, 4.1, 3.6, 3.3],
            [0, 3.9, 6.2, 7.7, 8.7, 9.3, 9.6, 9.6, 9.4, 9.1, 8.7, 8.2, 7.5, 6.7, 5.9, 5.2, 4.7],
            [0, 4.6, 7.2, 8.9, 10.1, 10.9, 11.4, 11.6, 11.6, 11.4, 11.0, 10.4, 9.6, 8.7, 7.7, 6.8, 6.2],
            [0, 5.1, 7.9, 9.8, 11.2, 12.3, 13.0, 13.5, 13.8, 13.8, 13.5, 12.9, 12.0, 10.9, 9.6, 8.5, 7.7],
            [0, 5.4, 8.4, 10.5, 12.1, 13.4, 14.4, 15.1, 15.6, 15.9, 15.8, 15.3, 14.4, 13.2, 11.7, 10.3, 9.3],
            [0, 5.6, 8.7, 11.0, 12.8, 14.3, 15.5, 16.4, 17.1, 17.6, 17.7, 17.4, 16.6, 15.3, 13.7, 12.1, 10.9],
            [0, 5.8, 9.1, 11.6, 13.7, 15.5, 17.0, 18.3, 19.3, 20.1, 20.6, 20.7, 20.2, 19.0, 17.2, 15.2, 13.7],
            [0, 5.9, 9.3, 12.0, 14.3, 16.4, 18.2, 19.8, 21.2, 22.4, 23.3, 23.8, 23.7, 22.8, 21.0, 18.6, 16.6],
            [0, 5.8, 9.2, 12.0, 14.5, 16.8, 18.8, 20.7, 22.3, 23.8, 25.0, 25.8, 26.0, 25.4, 23.6, 20.9, 18.5],
            [0, 5.5, 8.8, 11.6, 14.1, 16.5, 18.7, 20.7, 22.5, 24.1, 25.5, 26.5, 27.0, 26.6, 24.9, 22.1, 19.4],
            [0, 5.0, 8.1, 10.8, 13.3, 15.7, 17.9, 20.0, 21.9, 23.6, 25.1, 26.2, 26.8, 26.6, 25.0, 22.2, 19.3],
            [0, 3.8, 6.4, 8.8, 11.1, 13.4, 15.6, 17.7, 19.6, 21.4, 23.0, 24.2, 25.0, 25.0, 23.6, 20.9, 18.0],
            [0, 2.0, 3.6, 5.2, 6.8, 8.5, 10.2, 11.9, 13.5, 15.0, 16.4, 17.5, 18.3, 18.5, 17.4, 15.2, 12.8],
        ]
    )
