"""
Geographic helpers and the default planar projection.

- Meters-to-degrees scale factors for local offsets
- UTM zone selection from a reference position
- UTMProjection, a pyproj-backed forward projection
"""

import logging
from typing import Tuple

import numpy as np
import pyproj

from .errors import ProjectionUnavailable

logger = logging.getLogger(__name__)


def coor_scale(lat: float) -> Tuple[float, float]:
    """
    Degrees per meter of longitude and latitude at a given latitude.

    Args:
        lat: Latitude in degrees

    Returns:
        (mtodeglon, mtodeglat)
    """
    r = np.deg2rad(lat)
    mtodeglon = 1.0 / abs(
        111412.84 * np.cos(r) - 93.5 * np.cos(3.0 * r) + 0.118 * np.cos(5.0 * r)
    )
    mtodeglat = 1.0 / abs(
        111132.92 - 559.82 * np.cos(2.0 * r)
        + 1.175 * np.cos(4.0 * r) - 0.0023 * np.cos(6.0 * r)
    )
    return float(mtodeglon), float(mtodeglat)


def utm_zone_for(lon: float, lat: float) -> Tuple[int, bool]:
    """
    UTM zone containing a reference position.

    Args:
        lon: Longitude in degrees (any wrap)
        lat: Latitude in degrees

    Returns:
        (zone number, southern hemisphere)
    """
    lon = ((lon + 180.0) % 360.0) - 180.0
    zone = int((lon + 183.0) / 6.0 + 0.5)
    zone = min(max(zone, 1), 60)
    return zone, lat < 0.0


class UTMProjection:
    """
    Forward projection from geographic to UTM planar coordinates.

    Wraps a pyproj.Proj built for a single zone; one instance is shared by
    every file of a grid session.
    """

    def __init__(self, zone: int, south: bool = False):
        """
        Initialize projection.

        Args:
            zone: UTM zone number (1-60)
            south: True for the southern hemisphere
        """
        if not 1 <= zone <= 60:
            raise ProjectionUnavailable(f"Invalid UTM zone: {zone}")

        self.zone = zone
        self.south = south
        try:
            self._proj = pyproj.Proj(proj='utm', zone=zone, ellps='WGS84', south=south)
        except pyproj.exceptions.CRSError as e:
            raise ProjectionUnavailable(f"Failed to initialize UTM zone {zone}: {e}") from e

        logger.info(f"Initialized projection UTM{zone:02d}{'S' if south else 'N'}")

    @classmethod
    def for_position(cls, lon: float, lat: float) -> "UTMProjection":
        """Projection for the zone containing a reference position."""
        zone, south = utm_zone_for(lon, lat)
        return cls(zone, south)

    @property
    def name(self) -> str:
        return f"UTM{self.zone:02d}{'S' if self.south else 'N'}"

    def forward(self, lon, lat):
        """Project lon/lat (scalars or arrays) to planar x/y."""
        if self._proj is None:
            raise ProjectionUnavailable("Projection has been freed")
        x, y = self._proj(lon, lat)
        if np.ndim(x) == 0:
            return float(x), float(y)
        return np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)

    def free(self):
        """Release the underlying projection."""
        self._proj = None
