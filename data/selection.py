"""
Working set of selected soundings.

A selection holds references to soundings (file, ping, beam) together with
a local bearing-aligned coordinate frame and copies of their flags. It is
filled by a region query, consumed by the sparse voxel filter and the bias
optimizer, and released explicitly when the pass is over.

The optimizer rewrites the local coordinates in place for every candidate;
only one pass may own the selection at a time.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .swath import BeamFlag

logger = logging.getLogger(__name__)


@dataclass
class SelectedSounding:
    """A single selected sounding."""
    file_index: int
    ping_index: int
    beam_index: int
    x: float                                 # Local bearing-aligned x (m)
    y: float                                 # Local bearing-aligned y (m)
    z: float                                 # Local z, recentered (m)
    beamflag: int
    beamflag_org: int


class SelectedSoundingSet:
    """
    Flat growable arrays of selected soundings.

    Storage doubles on demand so appends are amortized O(1).
    """

    _INITIAL_CAPACITY = 1024

    def __init__(
        self,
        xorigin: float = 0.0,
        yorigin: float = 0.0,
        zorigin: float = 0.0,
        bearing: float = 90.0,
    ):
        """
        Initialize an empty selection.

        Args:
            xorigin: Planar x of the local frame origin
            yorigin: Planar y of the local frame origin
            zorigin: Depth offset removed from local z
            bearing: Bearing of the local x axis (degrees)
        """
        self.xorigin = xorigin
        self.yorigin = yorigin
        self.zorigin = zorigin
        self.bearing = bearing

        self.xmin = self.xmax = 0.0
        self.ymin = self.ymax = 0.0
        self.zmin = self.zmax = 0.0

        self._size = 0
        self._allocate(0)
        self._lookup: Dict[Tuple[int, int, int], int] = {}

    def _allocate(self, capacity: int):
        self.file_index = np.zeros(capacity, dtype=np.int32)
        self.ping_index = np.zeros(capacity, dtype=np.int32)
        self.beam_index = np.zeros(capacity, dtype=np.int32)
        self.x = np.zeros(capacity, dtype=np.float64)
        self.y = np.zeros(capacity, dtype=np.float64)
        self.z = np.zeros(capacity, dtype=np.float64)
        self.beamflag = np.zeros(capacity, dtype=np.int8)
        self.beamflag_org = np.zeros(capacity, dtype=np.int8)

    _FIELDS = (
        "file_index", "ping_index", "beam_index",
        "x", "y", "z", "beamflag", "beamflag_org",
    )

    @property
    def capacity(self) -> int:
        return len(self.x)

    def __len__(self) -> int:
        return self._size

    def _grow(self, needed: int):
        capacity = max(self._INITIAL_CAPACITY, self.capacity)
        while capacity < needed:
            capacity *= 2
        for name in self._FIELDS:
            old = getattr(self, name)
            new = np.zeros(capacity, dtype=old.dtype)
            new[:self._size] = old[:self._size]
            setattr(self, name, new)

    def append(
        self,
        file_index: int,
        ping_index: int,
        beam_index: int,
        x: float,
        y: float,
        z: float,
        beamflag: int,
        beamflag_org: Optional[int] = None,
    ) -> int:
        """Add a sounding and return its index."""
        if self._size >= self.capacity:
            self._grow(self._size + 1)

        n = self._size
        self.file_index[n] = file_index
        self.ping_index[n] = ping_index
        self.beam_index[n] = beam_index
        self.x[n] = x
        self.y[n] = y
        self.z[n] = z
        self.beamflag[n] = beamflag
        self.beamflag_org[n] = beamflag if beamflag_org is None else beamflag_org
        self._lookup[(int(file_index), int(ping_index), int(beam_index))] = n
        self._size += 1
        return n

    def find(self, file_index: int, ping_index: int, beam_index: int) -> Optional[int]:
        """Selection index of a sounding, None if it is not selected."""
        return self._lookup.get((int(file_index), int(ping_index), int(beam_index)))

    def __getitem__(self, index: int) -> SelectedSounding:
        if index < 0 or index >= self._size:
            raise IndexError(f"Selection index {index} out of range (size {self._size})")
        return SelectedSounding(
            file_index=int(self.file_index[index]),
            ping_index=int(self.ping_index[index]),
            beam_index=int(self.beam_index[index]),
            x=float(self.x[index]),
            y=float(self.y[index]),
            z=float(self.z[index]),
            beamflag=int(self.beamflag[index]),
            beamflag_org=int(self.beamflag_org[index]),
        )

    def view(self, name: str) -> np.ndarray:
        """Live view of the filled part of a field array."""
        return getattr(self, name)[:self._size]

    def to_local(self, px, py, depth):
        """
        Transform planar coordinates and depth into the local frame.

        Args:
            px, py: Planar coordinates (scalar or array)
            depth: Corrected depth, positive down

        Returns:
            Local (x, y, z) with z positive up and zorigin removed
        """
        b = np.deg2rad(self.bearing)
        dx = np.asarray(px) - self.xorigin
        dy = np.asarray(py) - self.yorigin
        x = dx * np.sin(b) + dy * np.cos(b)
        y = -dx * np.cos(b) + dy * np.sin(b)
        z = -np.asarray(depth) - self.zorigin
        return x, y, z

    def update_bounds(self):
        """Recompute the local bounding box over the stored soundings."""
        if self._size == 0:
            self.xmin = self.xmax = 0.0
            self.ymin = self.ymax = 0.0
            self.zmin = self.zmax = 0.0
            return
        x, y, z = self.view("x"), self.view("y"), self.view("z")
        self.xmin, self.xmax = float(np.min(x)), float(np.max(x))
        self.ymin, self.ymax = float(np.min(y)), float(np.max(y))
        self.zmin, self.zmax = float(np.min(z)), float(np.max(z))

    def recenter_z(self):
        """Shift local z so the depth range is centered on zero."""
        if self._size == 0:
            return
        z = self.view("z")
        zmid = 0.5 * (float(np.min(z)) + float(np.max(z)))
        z -= zmid
        self.zorigin += zmid
        self.update_bounds()

    @property
    def num_ok(self) -> int:
        return int(np.sum(self.view("beamflag") == BeamFlag.OK))

    @property
    def num_flagged(self) -> int:
        flags = self.view("beamflag")
        return int(np.sum((flags != BeamFlag.OK) & (flags != BeamFlag.NULL)))

    def clear(self):
        """Release all stored soundings."""
        self._size = 0
        self._allocate(0)
        self._lookup = {}
        self.update_bounds()
        logger.debug("Selection released")
