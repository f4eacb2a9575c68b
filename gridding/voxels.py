"""
Sparse voxel filter.

Flags soundings that sit in voxels with too few soundings in their 3x3x3
neighborhood. Fine voxels are only created where soundings exist; they are
kept in buckets of 10x10x10 coarse voxels so memory follows the occupied
volume instead of the bounding box.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np
from tqdm import tqdm

from data.errors import AllocationFailure
from data.selection import SelectedSoundingSet
from data.swath import BeamFlag

logger = logging.getLogger(__name__)

COARSE = 10
PROGRESS_INTERVAL = 100000


class CoarseVoxel:
    """Growable array of fine voxel records inside one coarse voxel."""

    def __init__(self, capacity: int, threshold: int):
        self.threshold = threshold
        self.size = 0
        self.ijk = np.zeros((capacity, 3), dtype=np.int32)
        self.own = np.zeros(capacity, dtype=np.int32)
        self.neighbor = np.zeros(capacity, dtype=np.int32)
        self.soundings = np.full((capacity, threshold), -1, dtype=np.int64)

    @property
    def capacity(self) -> int:
        return len(self.own)

    def grow(self, chunk: int):
        capacity = self.capacity + chunk
        ijk = np.zeros((capacity, 3), dtype=np.int32)
        own = np.zeros(capacity, dtype=np.int32)
        neighbor = np.zeros(capacity, dtype=np.int32)
        soundings = np.full((capacity, self.threshold), -1, dtype=np.int64)
        ijk[:self.size] = self.ijk[:self.size]
        own[:self.size] = self.own[:self.size]
        neighbor[:self.size] = self.neighbor[:self.size]
        soundings[:self.size] = self.soundings[:self.size]
        self.ijk, self.own, self.neighbor, self.soundings = ijk, own, neighbor, soundings

    def find(self, i: int, j: int, k: int) -> int:
        """Index of a fine voxel record, -1 if absent."""
        if self.size == 0:
            return -1
        ijk = self.ijk[:self.size]
        hits = np.flatnonzero((ijk[:, 0] == i) & (ijk[:, 1] == j) & (ijk[:, 2] == k))
        return int(hits[0]) if len(hits) else -1

    def add(self, i: int, j: int, k: int, chunk: int) -> int:
        if self.size >= self.capacity:
            self.grow(chunk)
        n = self.size
        self.ijk[n] = (i, j, k)
        self.size += 1
        return n


@dataclass
class VoxelFilterResult:
    """Outcome of a sparse voxel pass."""
    flagged: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))
    num_soundings_checked: int = 0
    num_voxels_occupied: int = 0
    num_voxel_records: int = 0
    dimensions: Tuple[int, int, int] = (0, 0, 0)

    @property
    def num_flagged(self) -> int:
        return len(self.flagged)


class SparseVoxelFilter:
    """
    Two-level voxel occupancy index over a selection.

    Example:
        vf = SparseVoxelFilter(count_threshold=5)
        result = vf.run(selection, voxel_size=2.0)
    """

    def __init__(
        self,
        count_threshold: int = 5,
        alloc_chunk: int = 64,
        progress=None,
        show_progress: bool = False,
    ):
        """
        Initialize filter.

        Args:
            count_threshold: Flag voxels with fewer own + neighbor soundings
            alloc_chunk: Growth of a coarse voxel bucket
            progress: Optional progress sink (message_on / message_off)
            show_progress: Show a tqdm bar during the pass
        """
        if count_threshold < 1:
            raise ValueError(f"Count threshold must be positive, got {count_threshold}")
        self.count_threshold = count_threshold
        self.alloc_chunk = max(1, alloc_chunk)
        self.progress = progress
        self.show_progress = show_progress
        self.buckets: Dict[Tuple[int, int, int], CoarseVoxel] = {}

    def _bucket(self, key) -> CoarseVoxel:
        bucket = self.buckets.get(key)
        if bucket is None:
            bucket = CoarseVoxel(self.alloc_chunk, self.count_threshold)
            self.buckets[key] = bucket
        return bucket

    def _message(self, text: str):
        if self.progress is not None:
            self.progress.message_on(text)

    def release(self):
        """Drop the voxel index."""
        self.buckets = {}

    def run(self, selection: SelectedSoundingSet, voxel_size: float) -> VoxelFilterResult:
        """
        Flag soundings in sparse voxels.

        Args:
            selection: Selected soundings in local coordinates
            voxel_size: Voxel edge length (m)

        Returns:
            VoxelFilterResult with the flagged selection indices
        """
        if voxel_size <= 0:
            raise ValueError(f"Voxel size must be positive, got {voxel_size}")

        result = VoxelFilterResult()
        if len(selection) == 0:
            return result

        selection.update_bounds()
        dims = []
        for lo, hi in ((selection.xmin, selection.xmax),
                       (selection.ymin, selection.ymax),
                       (selection.zmin, selection.zmax)):
            n = int((hi - lo) / voxel_size)
            dims.append(COARSE * (n // COARSE + 1))
        nx, ny, nz = dims
        result.dimensions = (nx, ny, nz)

        flags = selection.view("beamflag")
        ok = np.flatnonzero(flags == BeamFlag.OK)
        vi = ((selection.view("x")[ok] - selection.xmin) / voxel_size).astype(np.int64)
        vj = ((selection.view("y")[ok] - selection.ymin) / voxel_size).astype(np.int64)
        vk = ((selection.view("z")[ok] - selection.zmin) / voxel_size).astype(np.int64)

        self.release()
        threshold = self.count_threshold
        try:
            iterator = range(len(ok))
            if self.show_progress:
                iterator = tqdm(iterator, desc="Voxel index")
            for n in iterator:
                if n % PROGRESS_INTERVAL == 0 and n > 0:
                    self._message(f"Voxel index: {n} of {len(ok)} soundings")
                i, j, k = int(vi[n]), int(vj[n]), int(vk[n])
                for ii in range(max(0, i - 1), min(nx - 1, i + 1) + 1):
                    for jj in range(max(0, j - 1), min(ny - 1, j + 1) + 1):
                        for kk in range(max(0, k - 1), min(nz - 1, k + 1) + 1):
                            bucket = self._bucket((ii // COARSE, jj // COARSE, kk // COARSE))
                            r = bucket.find(ii, jj, kk)
                            if r < 0:
                                r = bucket.add(ii, jj, kk, self.alloc_chunk)
                            if ii == i and jj == j and kk == k:
                                if bucket.own[r] == 0:
                                    result.num_voxels_occupied += 1
                                if bucket.own[r] < threshold:
                                    bucket.soundings[r, bucket.own[r]] = ok[n]
                                bucket.own[r] += 1
                            else:
                                bucket.neighbor[r] += 1
        except MemoryError as e:
            self.release()
            raise AllocationFailure(
                f"Voxel index growth failed after {result.num_voxels_occupied} voxels"
            ) from e

        result.num_soundings_checked = len(ok)

        # Flag every own sounding of a sparse occupied voxel
        flagged = []
        for bucket in self.buckets.values():
            size = bucket.size
            result.num_voxel_records += size
            sparse = (bucket.own[:size] > 0) & (
                bucket.own[:size] + bucket.neighbor[:size] < threshold
            )
            for r in np.flatnonzero(sparse):
                members = bucket.soundings[r]
                flagged.extend(int(m) for m in members[members >= 0])

        result.flagged = np.array(sorted(flagged), dtype=np.int64)
        if len(result.flagged):
            flags[result.flagged] = BeamFlag.MANUAL

        self.release()
        if self.progress is not None:
            self.progress.message_off()

        logger.info(
            f"Voxel filter: {result.num_soundings_checked} soundings, "
            f"{result.num_voxels_occupied} occupied voxels, "
            f"{result.num_flagged} flagged"
        )
        return result


def flag_sparse_voxels(
    selection: SelectedSoundingSet,
    voxel_size: float,
    count_threshold: int,
    alloc_chunk: int = 64,
    progress=None,
) -> VoxelFilterResult:
    """Run a single sparse voxel pass over a selection."""
    vf = SparseVoxelFilter(
        count_threshold=count_threshold, alloc_chunk=alloc_chunk, progress=progress
    )
    return vf.run(selection, voxel_size)
