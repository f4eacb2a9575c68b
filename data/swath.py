"""
In-memory swath data model.

Holds the soundings of loaded survey lines:
- Beam flags (ok / flagged / unusable)
- Pings with navigation, attitude and per-beam arrays
- Files with beam widths and asynchronous sensor time series
- Bias parameters applied during repositioning

Reading swath formats is handled elsewhere; this module only models what
the gridding and calibration code needs.
"""

import logging
import dataclasses
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional

import numpy as np

logger = logging.getLogger(__name__)


class BeamFlag(IntEnum):
    """Usability state of a single sounding."""
    OK = 0
    MANUAL = 1                               # Flagged by operator or voxel filter
    FILTER = 2                               # Flagged by an automatic filter
    NULL = 3                                 # Unusable, no valid data


def beam_ok(flag) -> bool:
    """True if the sounding contributes to grids and statistics."""
    return int(flag) == BeamFlag.OK


def beam_unusable(flag) -> bool:
    """True if the sounding carries no valid position at all."""
    return int(flag) == BeamFlag.NULL


TOPO_MULTIBEAM = "multibeam"


@dataclass(frozen=True)
class BiasParameters:
    """Sensor bias values applied when repositioning soundings."""
    roll_bias: float = 0.0                   # degrees
    pitch_bias: float = 0.0                  # degrees
    heading_bias: float = 0.0                # degrees
    time_lag: float = 0.0                    # seconds
    snell: float = 1.0                       # beamforming sound speed ratio

    def replace(self, **changes) -> "BiasParameters":
        """Return a copy with some values changed."""
        return dataclasses.replace(self, **changes)

    def __str__(self) -> str:
        return (
            f"r:{self.roll_bias:.2f} p:{self.pitch_bias:.2f} "
            f"h:{self.heading_bias:.2f} t:{self.time_lag:.3f} s:{self.snell:.4f}"
        )


@dataclass
class AsyncSeries:
    """Asynchronous sensor time series used for time lag interpolation."""
    time: np.ndarray                         # Epoch seconds, ascending
    values: np.ndarray                       # (n,) or (n, k) samples
    angular: bool = False                    # Values are headings in degrees

    def __post_init__(self):
        self.time = np.asarray(self.time, dtype=np.float64)
        self.values = np.asarray(self.values, dtype=np.float64)
        if len(self.time) != len(self.values):
            raise ValueError(
                f"Series length mismatch: {len(self.time)} times, {len(self.values)} values"
            )
        if len(self.time) > 1 and np.any(np.diff(self.time) < 0):
            raise ValueError("Series times must be ascending")

        # Interpolate headings on an unwrapped copy so 359 -> 1 stays short
        if self.angular:
            self._samples = np.rad2deg(np.unwrap(np.deg2rad(self.values)))
        else:
            self._samples = self.values

    def __len__(self) -> int:
        return len(self.time)

    def interp(self, t: float):
        """Linear interpolation at time t; end values are held outside the span."""
        if self._samples.ndim == 1:
            value = float(np.interp(t, self.time, self._samples))
            return value % 360.0 if self.angular else value
        return np.array([
            np.interp(t, self.time, self._samples[:, c])
            for c in range(self._samples.shape[1])
        ])


@dataclass
class Ping:
    """A single sonar ping and its soundings."""
    time_d: float                            # Epoch seconds
    navlon: float
    navlat: float
    heading: float                           # degrees
    roll: float                              # degrees, already applied to offsets
    pitch: float                             # degrees, already applied to offsets
    sonar_depth: float                       # meters, positive down
    altitude: float                          # meters above seafloor
    bath: np.ndarray                         # Depth (positive down)
    acrosstrack: np.ndarray                  # Starboard offset (m)
    alongtrack: np.ndarray                   # Forward offset (m)
    beamflag: np.ndarray                     # BeamFlag values

    # Derived values, rewritten whenever bias parameters change
    bathcorr: Optional[np.ndarray] = None
    bathlon: Optional[np.ndarray] = None
    bathlat: Optional[np.ndarray] = None
    bathx: Optional[np.ndarray] = None
    bathy: Optional[np.ndarray] = None
    navx: float = np.nan
    navy: float = np.nan
    beamflag_org: Optional[np.ndarray] = None

    def __post_init__(self):
        self.bath = np.asarray(self.bath, dtype=np.float64)
        self.acrosstrack = np.asarray(self.acrosstrack, dtype=np.float64)
        self.alongtrack = np.asarray(self.alongtrack, dtype=np.float64)
        self.beamflag = np.asarray(self.beamflag, dtype=np.int8)

        n = len(self.bath)
        for name in ("acrosstrack", "alongtrack", "beamflag"):
            if len(getattr(self, name)) != n:
                raise ValueError(f"Ping array {name} has {len(getattr(self, name))} beams, expected {n}")

        if self.bathcorr is None:
            self.bathcorr = self.bath.copy()
        for name in ("bathlon", "bathlat", "bathx", "bathy"):
            if getattr(self, name) is None:
                setattr(self, name, np.full(n, np.nan))
        if self.beamflag_org is None:
            self.beamflag_org = self.beamflag.copy()

    @property
    def num_beams(self) -> int:
        return len(self.bath)

    def sensor_offsets(self, ibeam: int):
        """Acrosstrack, alongtrack and depth of a beam relative to the sonar."""
        return (
            float(self.acrosstrack[ibeam]),
            float(self.alongtrack[ibeam]),
            float(self.bath[ibeam] - self.sonar_depth),
        )


@dataclass
class SwathInfo:
    """Bounds of a loaded swath file."""
    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float
    depth_min: float
    depth_max: float
    altitude_min: float
    altitude_max: float


@dataclass
class SwathFile:
    """A loaded survey line."""
    name: str
    pings: List[Ping] = field(default_factory=list)
    topo_type: str = TOPO_MULTIBEAM
    beamwidth_xtrack: float = 1.0            # degrees
    beamwidth_ltrack: float = 1.0            # degrees
    async_heading: Optional[AsyncSeries] = None
    async_sonar_depth: Optional[AsyncSeries] = None
    async_attitude: Optional[AsyncSeries] = None   # columns: roll, pitch
    edits_changed: bool = False

    @property
    def num_pings(self) -> int:
        return len(self.pings)

    @property
    def is_multibeam(self) -> bool:
        return self.topo_type == TOPO_MULTIBEAM

    def info(self) -> Optional[SwathInfo]:
        """Bounds over usable soundings, None if the file holds none."""
        lons, lats, depths = [], [], []
        altitudes = []
        for ping in self.pings:
            usable = ping.beamflag != BeamFlag.NULL
            valid = usable & np.isfinite(ping.bathlon) & np.isfinite(ping.bathlat)
            lons.append(ping.bathlon[valid])
            lats.append(ping.bathlat[valid])
            depths.append(ping.bathcorr[usable])
            lons.append(np.array([ping.navlon]))
            lats.append(np.array([ping.navlat]))
            altitudes.append(ping.altitude)

        if not self.pings:
            return None

        lons = np.concatenate(lons)
        lats = np.concatenate(lats)
        depths = np.concatenate(depths)
        depths = depths[np.isfinite(depths)]
        if len(depths) == 0:
            depths = np.zeros(1)

        return SwathInfo(
            lon_min=float(np.min(lons)),
            lon_max=float(np.max(lons)),
            lat_min=float(np.min(lats)),
            lat_max=float(np.max(lats)),
            depth_min=float(np.min(depths)),
            depth_max=float(np.max(depths)),
            altitude_min=float(np.min(altitudes)),
            altitude_max=float(np.max(altitudes)),
        )
