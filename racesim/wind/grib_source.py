"""
GRIB to Wind Raster
===================

Converts a GRIB file with 10 m u/v wind into the PNG raster format read
by the engine. Used on the server side when publishing forecasts.

Supported grids: 0.5 degree (720x360, or 720x361 with both poles) and
0.25 degree (1440x720 or 1440x721). The extra south pole row is dropped.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Tuple

import numpy as np

from .raster import encode_raster

logger = logging.getLogger(__name__)

# Disable cfgrib index files next to read-only forecast files
os.environ.setdefault('GRIB_INDEX_PATH', '')

# Optional imports for GRIB handling
try:
    import xarray as xr
    import cfgrib  # noqa: F401  (registers the xarray engine)
    HAS_CFGRIB = True
except ImportError:
    HAS_CFGRIB = False


# (width, height) of the supported output grids
GRID_SIZES = [(720, 360), (1440, 720)]


def normalize_grid(u: np.ndarray, v: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Reshape u/v samples to a supported raster grid.

    Args:
        u: U component, flat or 2D, north row first
        v: V component, same size as u

    Returns:
        (u, v) as [height, width] arrays

    Raises:
        ValueError: If the grid size is not supported
    """
    u = np.asarray(u, dtype=np.float32).ravel()
    v = np.asarray(v, dtype=np.float32).ravel()

    if u.size != v.size:
        raise ValueError(f"U and V sizes differ: {u.size} != {v.size}")

    for width, height in GRID_SIZES:
        if u.size == width * (height + 1):
            # Skip the last row (south pole)
            u = u[:width * height]
            v = v[:width * height]
        if u.size == width * height:
            return u.reshape(height, width), v.reshape(height, width)

    expected = ', '.join(f"{w}x{h} or {w}x{h + 1}" for w, h in GRID_SIZES)
    raise ValueError(f"Unexpected grid size {u.size}, expected {expected}")


def load_grib_uv(path: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Read 10 m wind components from a GRIB file.

    Returns:
        (u, v) 2D arrays in m/s, north row first

    Raises:
        ImportError: If cfgrib/xarray are not installed
    """
    if not HAS_CFGRIB:
        raise ImportError("GRIB conversion needs cfgrib and xarray: pip install 'racesim[grib]'")

    ds = xr.open_dataset(
        path,
        engine='cfgrib',
        backend_kwargs={'filter_by_keys': {'typeOfLevel': 'heightAboveGround', 'level': 10}},
    )
    try:
        u_da = ds['u10']
        v_da = ds['v10']
        # Keep the first forecast step only
        for dim in ('time', 'step', 'valid_time'):
            if dim in u_da.dims:
                u_da = u_da.isel({dim: 0})
                v_da = v_da.isel({dim: 0})

        u = u_da.values
        v = v_da.values
        lats = u_da.latitude.values
    finally:
        ds.close()

    if lats[0] < lats[-1]:
        logger.debug("Flipping south-first grid")
        u = u[::-1]
        v = v[::-1]

    return u, v


def grib_to_raster(path: str) -> bytes:
    """Convert a GRIB file to PNG raster bytes."""
    u, v = normalize_grid(*load_grib_uv(path))
    logger.info(f"Converted {path} to {u.shape[1]}x{u.shape[0]} raster")
    return encode_raster(u, v)


def main():
    """Main entry point for GRIB conversion."""
    parser = argparse.ArgumentParser(description='Convert a GRIB wind file to a wind raster PNG')
    parser.add_argument('input', type=str, help='GRIB2 file with u10/v10')
    parser.add_argument('output', type=str, help='Output PNG path')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s',
                        handlers=[logging.StreamHandler(sys.stdout)])
    logging.getLogger('cfgrib').setLevel(logging.WARNING)

    try:
        png = grib_to_raster(args.input)
    except (ImportError, ValueError, OSError, KeyError) as e:
        logger.error(f"Conversion failed: {e}")
        sys.exit(2)

    Path(args.output).write_bytes(png)
    logger.info(f"Wrote {args.output}")


if __name__ == '__main__':
    main()
