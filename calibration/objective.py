"""
Local-variance objective grid used to score bias candidates.

The grid is coarser than the display grid and padded beyond the selection
so repositioned soundings stay inside it across a sweep. Each cell
accumulates depths relative to the first depth it received, which keeps the
variance numerically stable for deep water.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from data.errors import EmptyObjective

logger = logging.getLogger(__name__)


class ObjectiveGrid:
    """
    Throwaway grid of per-cell depth variance.

    Args:
        xmin, xmax, ymin, ymax: Unpadded bounds of the scored soundings
        cell_size: Cell edge length
        padding: Fraction of the extent added on each side
    """

    def __init__(
        self,
        xmin: float,
        xmax: float,
        ymin: float,
        ymax: float,
        cell_size: float,
        padding: float = 0.25,
    ):
        if cell_size <= 0 or not np.isfinite(cell_size):
            raise ValueError(f"Objective cell size must be positive, got {cell_size}")

        self.cell_size = float(cell_size)
        xpad = padding * (xmax - xmin)
        ypad = padding * (ymax - ymin)
        self.xmin = xmin - xpad
        self.ymin = ymin - ypad
        self.n_columns = int((xmax + xpad - self.xmin) / self.cell_size) + 1
        self.n_rows = int((ymax + ypad - self.ymin) / self.cell_size) + 1
        self.xmax = self.xmin + self.n_columns * self.cell_size
        self.ymax = self.ymin + self.n_rows * self.cell_size

        self.first: Optional[np.ndarray] = None
        self.sum: Optional[np.ndarray] = None
        self.sum2: Optional[np.ndarray] = None
        self.count: Optional[np.ndarray] = None

    @property
    def shape(self) -> Tuple[int, int]:
        return self.n_columns, self.n_rows

    def evaluate(self, x: np.ndarray, y: np.ndarray, z: np.ndarray) -> Tuple[float, int]:
        """
        Mean per-cell variance of the given soundings.

        Args:
            x, y: Planar or local coordinates
            z: Depths (any consistent sign)

        Returns:
            (objective, number of scored cells)

        Raises:
            EmptyObjective: if no sounding falls in the grid
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        z = np.asarray(z, dtype=np.float64)

        valid = np.isfinite(x) & np.isfinite(y) & np.isfinite(z)
        i = np.zeros(len(x), dtype=np.int64)
        j = np.zeros(len(y), dtype=np.int64)
        i[valid] = ((x[valid] - self.xmin) / self.cell_size).astype(np.int64)
        j[valid] = ((y[valid] - self.ymin) / self.cell_size).astype(np.int64)
        valid &= (x >= self.xmin) & (y >= self.ymin)
        valid &= (i >= 0) & (i < self.n_columns) & (j >= 0) & (j < self.n_rows)

        ncells = self.n_columns * self.n_rows
        cell = i[valid] * self.n_rows + j[valid]
        depth = z[valid]

        self.first = np.zeros(ncells, dtype=np.float64)
        self.sum = np.zeros(ncells, dtype=np.float64)
        self.sum2 = np.zeros(ncells, dtype=np.float64)
        self.count = np.zeros(ncells, dtype=np.int64)
        if len(cell) == 0:
            raise EmptyObjective("No soundings inside the objective grid")

        # Anchor each cell on the first depth it received
        cells, first_index = np.unique(cell, return_index=True)
        self.first[cells] = depth[first_index]
        offset = depth - self.first[cell]

        self.sum += np.bincount(cell, weights=offset, minlength=ncells)
        self.sum2 += np.bincount(cell, weights=offset * offset, minlength=ncells)
        self.count += np.bincount(cell, minlength=ncells)

        occupied = self.count > 0
        n = self.count[occupied].astype(np.float64)
        variance = (self.sum2[occupied] - self.sum[occupied] ** 2 / n) / n
        num_bins = int(np.sum(occupied))
        return float(np.sum(variance) / num_bins), num_bins

    def release(self):
        """Drop the per-cell arrays."""
        self.first = None
        self.sum = None
        self.sum2 = None
        self.count = None
