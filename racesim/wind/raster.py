"""
Wind Raster Codec
=================

Decodes image-encoded wind fields into raw channel grids.

Wire format: an RGB or RGBA image covering the globe, north at row 0,
columns starting at longitude 0 and increasing eastward. Channel 0 holds
the u component and channel 1 the v component, each mapped from
-30..30 m/s to 0..255.
"""

import io
import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..errors import DecodeError

logger = logging.getLogger(__name__)


WIND_SCALE = 30.0                       # m/s at byte 255
QUANTIZATION_STEP = WIND_SCALE * 2 / 255

U_CHANNEL = 0
V_CHANNEL = 1


@dataclass(frozen=True)
class RasterData:
    """Raw decoded raster."""
    data: np.ndarray    # uint8 [height, width, channels]
    width: int
    height: int

    @property
    def channels(self) -> int:
        return int(self.data.shape[2])


def color_to_speed(n):
    """
    Convert a channel byte to a wind component.

    Args:
        n: Byte value(s) in 0..255 (scalar or numpy array)

    Returns:
        Wind component in m/s, in -30..30
    """
    return n * (WIND_SCALE * 2) / 255 - WIND_SCALE


def speed_to_color(speed):
    """
    Convert a wind component to a channel byte.

    Values are clamped to +/-30 m/s before quantization.
    """
    clamped = np.clip(speed, -WIND_SCALE, WIND_SCALE)
    normalized = (clamped + WIND_SCALE) / (WIND_SCALE * 2)
    # Round half up, as the server encoder does
    encoded = np.floor(normalized * 255 + 0.5).astype(np.uint8)
    if np.ndim(encoded) == 0:
        return int(encoded)
    return encoded


def decode_raster(raw: bytes) -> RasterData:
    """
    Decode raw image bytes into a channel grid.

    Args:
        raw: Encoded image (PNG in production)

    Returns:
        RasterData with at least the u and v channels

    Raises:
        DecodeError: If the bytes are not a readable image
    """
    if not raw:
        raise DecodeError("Empty wind raster")

    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.load()
            if image.mode not in ('RGB', 'RGBA'):
                logger.debug(f"Converting {image.mode} raster to RGBA")
                image = image.convert('RGBA')
            data = np.asarray(image, dtype=np.uint8)
    except (UnidentifiedImageError, Image.DecompressionBombError,
            OSError, ValueError, SyntaxError, EOFError) as e:
        raise DecodeError(f"Invalid wind raster: {e}") from e

    if data.ndim != 3 or data.shape[2] < 2:
        raise DecodeError(f"Wind raster needs u and v channels, got shape {data.shape}")

    height, width = data.shape[0], data.shape[1]
    return RasterData(data=data, width=width, height=height)


def encode_raster(u: np.ndarray, v: np.ndarray) -> bytes:
    """
    Encode u/v grids as an RGB PNG (R=u, G=v, B=0).

    Args:
        u: U component grid [height, width] in m/s
        v: V component grid [height, width] in m/s

    Returns:
        PNG bytes
    """
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    if u.shape != v.shape or u.ndim != 2:
        raise ValueError(f"u and v must be matching 2D grids, got {u.shape} and {v.shape}")

    rgb = np.zeros(u.shape + (3,), dtype=np.uint8)
    rgb[:, :, U_CHANNEL] = speed_to_color(u)
    rgb[:, :, V_CHANNEL] = speed_to_color(v)

    buffer = io.BytesIO()
    Image.fromarray(rgb).save(buffer, format='PNG')
    return buffer.getvalue()
