"""
Weighted depth grid with reversible contributions.

Each cell accumulates:
- sum: weighted sum of negative depth
- weight: total weight (never negative)
- sigma_sum: weighted sum of squared depth

Values and standard deviations are derived on recompute. Contributions can
be removed again with a negative sign, so editing a sounding only touches
the cells it originally reached.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .footprint import FootprintUse, compute_footprint, cell_use

logger = logging.getLogger(__name__)

NODATA = -10000000.0
WEIGHT_TINY = 1.0e-7


@dataclass
class BeamContext:
    """Per-ping values the footprint model needs."""
    navx: float
    navy: float
    sonar_depth: float
    altitude: float
    beamwidth_xtrack: float
    beamwidth_ltrack: float
    multibeam: bool = True


@dataclass
class TouchedCells:
    """Cells reached by one sounding and the weights applied."""
    i: np.ndarray
    j: np.ndarray
    weight: np.ndarray

    def __len__(self) -> int:
        return len(self.i)


class GridAccumulator:
    """
    2D accumulator over a planar bounding box.

    Not reentrant: all updates must come from a single writer.
    """

    def __init__(
        self,
        xmin: float,
        ymin: float,
        xmax: float,
        ymax: float,
        dx: float,
        algorithm: str = "simple",
        weight_tiny: float = WEIGHT_TINY,
        footprint_weight_threshold: float = 0.05,
    ):
        """
        Initialize grid.

        Args:
            xmin, ymin, xmax, ymax: Planar bounds
            dx: Square cell size
            algorithm: "simple", "footprint" or "shoal"
            weight_tiny: Weights below this snap to zero
            footprint_weight_threshold: Integrated weight needed to use a cell
        """
        if dx <= 0 or not np.isfinite(dx):
            raise ValueError(f"Grid cell size must be positive, got {dx}")
        if xmax < xmin or ymax < ymin:
            raise ValueError(f"Invalid grid bounds: ({xmin}, {ymin}) - ({xmax}, {ymax})")

        self.dx = float(dx)
        self.dy = float(dx)
        self.xmin = float(xmin)
        self.ymin = float(ymin)
        self.n_columns = int((xmax - xmin) / self.dx) + 1
        self.n_rows = int((ymax - ymin) / self.dy) + 1
        self.xmax = self.xmin + (self.n_columns - 1) * self.dx
        self.ymax = self.ymin + (self.n_rows - 1) * self.dy

        self.algorithm = algorithm
        self.weight_tiny = weight_tiny
        self.footprint_weight_threshold = footprint_weight_threshold

        shape = (self.n_columns, self.n_rows)
        self.sum = np.zeros(shape, dtype=np.float64)
        self.weight = np.zeros(shape, dtype=np.float64)
        self.sigma_sum = np.zeros(shape, dtype=np.float64)
        self.value = np.full(shape, NODATA, dtype=np.float64)
        self.sigma = np.full(shape, NODATA, dtype=np.float64)

        self.min_value = self.max_value = NODATA
        self.min_sigma = self.max_sigma = NODATA

        logger.info(
            f"Grid {self.n_columns} x {self.n_rows} cells, dx={self.dx:.3f}, "
            f"algorithm={algorithm}"
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.n_columns, self.n_rows

    @property
    def supports_removal(self) -> bool:
        """Shoal grids cannot reverse a contribution incrementally."""
        return self.algorithm != "shoal"

    def reset(self):
        """Clear all accumulated contributions."""
        self.sum.fill(0.0)
        self.weight.fill(0.0)
        self.sigma_sum.fill(0.0)
        self.value.fill(NODATA)
        self.sigma.fill(NODATA)
        self.min_value = self.max_value = NODATA
        self.min_sigma = self.max_sigma = NODATA

    def locate(self, x: float, y: float) -> Optional[Tuple[int, int]]:
        """Cell containing a planar point, None if outside the grid."""
        if not (np.isfinite(x) and np.isfinite(y)):
            return None
        i = int(np.floor((x - self.xmin + 0.5 * self.dx) / self.dx))
        j = int(np.floor((y - self.ymin + 0.5 * self.dy) / self.dy))
        if 0 <= i < self.n_columns and 0 <= j < self.n_rows:
            return i, j
        return None

    def contribute(self, i, j, depth: float, weight_sign: int, weight=1.0):
        """
        Add or remove a weighted sounding on one or more cells.

        Args:
            i, j: Cell indices (scalars or equal-length arrays of unique cells)
            depth: Depth, positive down
            weight_sign: +1 to add, -1 to remove
            weight: Weight per cell
        """
        w = weight_sign * np.asarray(weight, dtype=np.float64)
        self.sum[i, j] += w * (-depth)
        self.sigma_sum[i, j] += w * depth * depth
        self.weight[i, j] += w
        if weight_sign > 0:
            return

        # An emptied cell drops its rounding residue
        empty = self.weight[i, j] < self.weight_tiny
        self.weight[i, j] = np.where(empty, 0.0, self.weight[i, j])
        self.sum[i, j] = np.where(empty, 0.0, self.sum[i, j])
        self.sigma_sum[i, j] = np.where(empty, 0.0, self.sigma_sum[i, j])

    def contribute_shoal(self, i: int, j: int, depth: float):
        """Keep the shallowest sounding in a cell."""
        if self.weight[i, j] == 0.0 or -depth > self.sum[i, j]:
            self.weight[i, j] = 1.0
            self.sum[i, j] = -depth
            self.sigma_sum[i, j] = depth * depth

    def recompute(self, i: int, j: int):
        """Derive value and sigma of one cell and widen the running range."""
        w = self.weight[i, j]
        if w > 0.0:
            value = self.sum[i, j] / w
            sigma = np.sqrt(abs(self.sigma_sum[i, j] / w - value * value))
            self.value[i, j] = value
            self.sigma[i, j] = sigma
            self._widen_range(value, sigma)
        else:
            self.value[i, j] = NODATA
            self.sigma[i, j] = NODATA

    def _widen_range(self, value: float, sigma: float):
        if self.min_value == NODATA:
            self.min_value = self.max_value = value
            self.min_sigma = self.max_sigma = sigma
            return
        self.min_value = min(self.min_value, value)
        self.max_value = max(self.max_value, value)
        self.min_sigma = min(self.min_sigma, sigma)
        self.max_sigma = max(self.max_sigma, sigma)

    def recompute_all(self):
        """Derive every cell and the exact value and sigma ranges."""
        has_data = self.weight > 0.0
        safe = np.where(has_data, self.weight, 1.0)
        value = self.sum / safe
        sigma = np.sqrt(np.abs(self.sigma_sum / safe - value * value))
        self.value = np.where(has_data, value, NODATA)
        self.sigma = np.where(has_data, sigma, NODATA)

        if np.any(has_data):
            self.min_value = float(np.min(value[has_data]))
            self.max_value = float(np.max(value[has_data]))
            self.min_sigma = float(np.min(sigma[has_data]))
            self.max_sigma = float(np.max(sigma[has_data]))
        else:
            self.min_value = self.max_value = NODATA
            self.min_sigma = self.max_sigma = NODATA

    @property
    def num_cells_with_data(self) -> int:
        return int(np.sum(self.weight > 0.0))

    def footprint_cells(self, x: float, y: float, depth: float, context: BeamContext):
        """
        Cells used by a sounding's footprint.

        Returns:
            TouchedCells, or None when the footprint is undefined
        """
        footprint = compute_footprint(
            x, y, depth,
            context.navx, context.navy, context.sonar_depth, context.altitude,
            context.beamwidth_xtrack, context.beamwidth_ltrack,
            self.dx, self.dy,
        )
        if footprint is None:
            return None

        # Soundings centered outside the grid reach no cell at all
        center = self.locate(x, y)
        if center is None:
            return TouchedCells(np.empty(0, int), np.empty(0, int), np.empty(0))
        i0, j0 = center
        i1, i2 = max(0, i0 - footprint.dix), min(self.n_columns - 1, i0 + footprint.dix)
        j1, j2 = max(0, j0 - footprint.diy), min(self.n_rows - 1, j0 + footprint.diy)

        ii, jj = np.meshgrid(np.arange(i1, i2 + 1), np.arange(j1, j2 + 1), indexing='ij')
        ii, jj = ii.ravel(), jj.ravel()
        xx = self.xmin + ii * self.dx + 0.5 * self.dx - x
        yy = self.ymin + jj * self.dy + 0.5 * self.dy - y
        weight, use = cell_use(
            footprint, xx, yy, self.dx, self.dy, self.footprint_weight_threshold
        )
        keep = use == FootprintUse.YES
        return TouchedCells(ii[keep], jj[keep], weight[keep])

    def grid_beam(
        self,
        x: float,
        y: float,
        depth: float,
        weight_sign: int = 1,
        context: Optional[BeamContext] = None,
        apply_now: bool = False,
    ) -> TouchedCells:
        """
        Add or remove one sounding with the configured algorithm.

        Args:
            x, y: Planar position
            depth: Corrected depth, positive down
            weight_sign: +1 to add, -1 to remove
            context: Ping values for footprint gridding
            apply_now: Recompute the touched cells immediately

        Returns:
            Cells reached and the weights applied
        """
        if not np.isfinite(depth):
            return TouchedCells(np.empty(0, int), np.empty(0, int), np.empty(0))

        if self.algorithm == "shoal":
            if weight_sign < 0:
                raise ValueError("Shoal grids cannot remove a sounding incrementally")
            touched = self._simple_cells(x, y)
            if len(touched):
                self.contribute_shoal(int(touched.i[0]), int(touched.j[0]), depth)
        else:
            touched = None
            if self.algorithm == "footprint" and context is not None and context.multibeam:
                touched = self.footprint_cells(x, y, depth, context)
            if touched is None:
                touched = self._simple_cells(x, y)
            if len(touched):
                self.contribute(touched.i, touched.j, depth, weight_sign, touched.weight)

        if apply_now:
            for i, j in zip(touched.i, touched.j):
                self.recompute(int(i), int(j))
        return touched

    def _simple_cells(self, x: float, y: float) -> TouchedCells:
        cell = self.locate(x, y)
        if cell is None:
            return TouchedCells(np.empty(0, int), np.empty(0, int), np.empty(0))
        return TouchedCells(np.array([cell[0]]), np.array([cell[1]]), np.array([1.0]))
