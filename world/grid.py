"""
CoinTrail — world/grid.py
GridCoder: quantizes continuous lat/lng into integer grid cells and back.
Also provides the Manhattan neighborhood used by the visibility window.
"""

from __future__ import annotations
from functools import lru_cache
from typing import Iterator
import math

import numpy as np

from engine.components import GridCell, LatLng

# Decimal places kept before flooring. Absorbs binary drift from repeated
# tile-sized steps without merging genuinely distinct buckets.
QUANTIZE_DIGITS = 6

class GridCoder:
    """
    Per axis: cell = floor((value + offset) * scale), with
    offset = -origin and scale = 1 / tile_degrees. The origin is cell (0, 0).
    """
    def __init__(self, origin: LatLng, tile_degrees: float):
        self.origin = origin
        self.tile_degrees = tile_degrees
        self.scale = 1.0 / tile_degrees
        self.lat_offset = -origin.lat
        self.lng_offset = -origin.lng

    def _quantize(self, value: float, offset: float) -> int:
        return math.floor(round((value + offset) * self.scale, QUANTIZE_DIGITS))

    def to_cell(self, location: LatLng) -> GridCell:
        return GridCell(
            self._quantize(location.lat, self.lat_offset),
            self._quantize(location.lng, self.lng_offset),
        )

    def to_location(self, cell: GridCell) -> LatLng:
        """South-west corner of the cell."""
        return LatLng(
            cell.i / self.scale - self.lat_offset,
            cell.j / self.scale - self.lng_offset,
        )

    def cell_center(self, cell: GridCell) -> LatLng:
        corner = self.to_location(cell)
        half = self.tile_degrees / 2
        return LatLng(corner.lat + half, corner.lng + half)

def is_valid_location(location: LatLng) -> bool:
    """True for finite coordinates inside the lat/lng domain."""
    lat, lng = location.lat, location.lng
    if not (isinstance(lat, (int, float)) and isinstance(lng, (int, float))):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0

def manhattan(a: GridCell, b: GridCell) -> int:
    return abs(a.i - b.i) + abs(a.j - b.j)

@lru_cache(maxsize=16)
def neighborhood_offsets(radius: int) -> np.ndarray:
    """
    (N, 2) int array of (di, dj) with |di| + |dj| <= radius, in row-major
    order over the bounding square.
    """
    span = np.arange(-radius, radius + 1)
    di, dj = np.meshgrid(span, span, indexing="ij")
    mask = (np.abs(di) + np.abs(dj)) <= radius
    offsets = np.stack([di[mask], dj[mask]], axis=1)
    offsets.setflags(write=False)
    return offsets

def neighborhood(center: GridCell, radius: int) -> Iterator[GridCell]:
    """All cells within Manhattan distance radius of center."""
    if radius < 0:
        return
    for di, dj in neighborhood_offsets(radius):
        yield GridCell(center.i + int(di), center.j + int(dj))
