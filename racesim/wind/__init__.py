"""
Wind Modules
============

Wind rasters are decoded in the background and sampled through the
WindTimeline, which blends the current and next field in time.
"""

from .raster import (
    RasterData,
    color_to_speed,
    speed_to_color,
    decode_raster,
    encode_raster,
)

from .field import (
    WindField,
    WindFieldDescriptor,
)

from .loader import (
    RequestSlot,
    SlotResult,
    fetch_bytes,
    load_field,
)

from .timeline import (
    WindTimeline,
    select_wind_context,
)

__all__ = [
    'RasterData',
    'color_to_speed',
    'speed_to_color',
    'decode_raster',
    'encode_raster',
    'WindField',
    'WindFieldDescriptor',
    'RequestSlot',
    'SlotResult',
    'fetch_bytes',
    'load_field',
    'WindTimeline',
    'select_wind_context',
]
