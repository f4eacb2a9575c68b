"""
Bias parameter search.

Coordinate descent over roll, pitch and heading bias, navigation time lag
and Snell ratio. Each candidate repositions the whole selection and is
scored by the mean local depth variance on an ObjectiveGrid; lower is
better.

Search order:
1. Roll, pitch, heading: coarse sweep then fine sweep around the winner
2. If more than one angle was requested, fine sweeps of roll, pitch,
   heading again to settle their coupling
3. Time lag: coarse + fine
4. Snell ratio: coarse + fine

The selection's local coordinates are rewritten for every candidate; the
optimizer owns the selection for the whole search.
"""

import logging
from dataclasses import dataclass
from enum import IntFlag
from typing import Callable, List, Optional, Sequence

import numpy as np

from config import OptimizerConfig, SweepSchedule
from data.errors import EmptyObjective
from data.selection import SelectedSoundingSet
from data.swath import BeamFlag, BiasParameters, SwathFile
from geometry.repositioning import reposition_ping

from .objective import ObjectiveGrid

logger = logging.getLogger(__name__)


class OptimizeMode(IntFlag):
    """Bias parameters to search."""
    ROLL = 0x01
    PITCH = 0x02
    HEADING = 0x04
    TIME_LAG = 0x08
    SNELL = 0x10

    ANGLES = ROLL | PITCH | HEADING
    ALL = ROLL | PITCH | HEADING | TIME_LAG | SNELL


_PARAMETERS = (
    (OptimizeMode.ROLL, "roll_bias", "roll bias"),
    (OptimizeMode.PITCH, "pitch_bias", "pitch bias"),
    (OptimizeMode.HEADING, "heading_bias", "heading bias"),
)


@dataclass
class OptimizationResult:
    """Outcome of a bias search."""
    best_bias: BiasParameters
    objective: float                         # Objective of best_bias (inf if unscored)
    initial_objective: float                 # Objective of the initial bias
    evaluations: int                         # Candidates scored
    cancelled: bool = False

    @property
    def improvement(self) -> float:
        if not np.isfinite(self.initial_objective):
            return 0.0
        return self.initial_objective - self.objective


@dataclass
class _PingGroup:
    file_index: int
    ping_index: int
    beams: np.ndarray                        # Beam indices on the ping
    entries: np.ndarray                      # Matching selection indices


class BiasOptimizer:
    """
    Searches bias parameters that minimize local surface roughness.

    Example:
        optimizer = BiasOptimizer(files, selection, projection, grid_cell_size=1.0)
        result = optimizer.optimize(OptimizeMode.ROLL | OptimizeMode.PITCH)
    """

    def __init__(
        self,
        files: Sequence[SwathFile],
        selection: SelectedSoundingSet,
        projection,
        grid_cell_size: float,
        config: Optional[OptimizerConfig] = None,
        progress=None,
        cancel: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize optimizer.

        Args:
            files: Loaded swath files referenced by the selection
            selection: Soundings to score
            projection: Forward projection used for planar positions
            grid_cell_size: Cell size of the main grid
            config: Sweep schedules and objective grid settings
            progress: Optional progress sink (message_on / message_off)
            cancel: Callable returning True to stop between candidates
        """
        self.files = files
        self.selection = selection
        self.projection = projection
        self.config = config or OptimizerConfig()
        self.progress = progress
        self.cancel = cancel

        self.grid_cell_size = grid_cell_size
        self.groups = self._group_selection()
        self.objective_grid: Optional[ObjectiveGrid] = None

        self.evaluations = 0
        self._cancelled = False

    def _group_selection(self) -> List[_PingGroup]:
        """Group selection entries by ping so each ping is repositioned once."""
        n = len(self.selection)
        if n == 0:
            return []
        fi = self.selection.view("file_index")
        pi = self.selection.view("ping_index")
        bi = self.selection.view("beam_index")
        order = np.lexsort((pi, fi))
        keys = np.stack([fi[order], pi[order]], axis=1)
        breaks = np.flatnonzero(np.any(np.diff(keys, axis=0) != 0, axis=1)) + 1
        groups = []
        for chunk in np.split(order, breaks):
            groups.append(_PingGroup(
                file_index=int(fi[chunk[0]]),
                ping_index=int(pi[chunk[0]]),
                beams=bi[chunk].astype(np.int64),
                entries=chunk,
            ))
        return groups

    def _message(self, text: str):
        if self.progress is not None:
            self.progress.message_on(text)

    def apply_bias(self, bias: BiasParameters) -> np.ndarray:
        """
        Reposition every selected sounding and rewrite its local coordinates.

        Returns:
            Boolean mask of selection entries with finite geometry
        """
        sel = self.selection
        good = np.zeros(len(sel), dtype=bool)
        x, y, z = sel.view("x"), sel.view("y"), sel.view("z")
        for group in self.groups:
            swath = self.files[group.file_index]
            ping = swath.pings[group.ping_index]
            result = reposition_ping(swath, ping, bias, self.projection, beams=group.beams)
            lx, ly, lz = sel.to_local(result.x, result.y, result.bathcorr)
            ok = result.ok
            entries = group.entries[ok]
            x[entries] = lx[ok]
            y[entries] = ly[ok]
            z[entries] = lz[ok]
            good[entries] = True
        return good

    def evaluate(self, bias: BiasParameters) -> Optional[float]:
        """Objective of a candidate, None when it has no scorable bins."""
        good = self.apply_bias(bias)
        use = good & (self.selection.view("beamflag") == BeamFlag.OK)
        self.evaluations += 1
        try:
            objective, num_bins = self.objective_grid.evaluate(
                self.selection.view("x")[use],
                self.selection.view("y")[use],
                self.selection.view("z")[use],
            )
        except EmptyObjective:
            logger.debug(f"Candidate {bias} has no scorable bins")
            return None
        logger.debug(f"Candidate {bias}: objective {objective:.6f} over {num_bins} bins")
        return objective

    def _sweep(
        self,
        name: str,
        label: str,
        center: float,
        half_width: float,
        samples: int,
    ):
        """Sweep one parameter around a center and keep the best candidate."""
        for value in np.linspace(center - half_width, center + half_width, samples):
            if self.cancel is not None and self.cancel():
                self._cancelled = True
                logger.info("Bias optimization cancelled")
                return
            candidate = self.best_bias.replace(**{name: float(value)})
            self._message(f"Optimizing {label}: {value:.4f}")
            objective = self.evaluate(candidate)
            if objective is not None and objective < self.best_objective:
                self.best_bias = candidate
                self.best_objective = objective

    def _coarse_fine(self, name: str, label: str, schedule: SweepSchedule, coarse: bool = True):
        if coarse and not self._cancelled:
            self._sweep(
                name, label, getattr(self.best_bias, name),
                schedule.coarse_half_width, schedule.coarse_samples,
            )
        if not self._cancelled:
            self._sweep(
                name, label, getattr(self.best_bias, name),
                schedule.fine_half_width, schedule.fine_samples,
            )
        logger.info(
            f"Best {label}: {getattr(self.best_bias, name):.4f} "
            f"(objective {self.best_objective:.6f})"
        )

    def optimize(
        self,
        mode: OptimizeMode,
        initial_bias: Optional[BiasParameters] = None,
    ) -> OptimizationResult:
        """
        Search the requested parameters starting from an initial bias.

        The best bias found (the initial one if nothing scores lower) is
        applied to the selection before returning.

        Args:
            mode: Parameters to search
            initial_bias: Starting bias (default all zero, Snell 1)

        Returns:
            OptimizationResult
        """
        mode = OptimizeMode(mode)
        initial_bias = initial_bias or BiasParameters()
        self.evaluations = 0
        self._cancelled = False

        sel = self.selection
        sel.update_bounds()
        self.objective_grid = ObjectiveGrid(
            sel.xmin, sel.xmax, sel.ymin, sel.ymax,
            cell_size=self.config.cell_factor * self.grid_cell_size,
            padding=self.config.padding,
        )
        logger.info(
            f"Optimizing bias over {len(sel)} soundings, objective grid "
            f"{self.objective_grid.n_columns} x {self.objective_grid.n_rows}"
        )

        initial_objective = self.evaluate(initial_bias)
        self.best_bias = initial_bias
        self.best_objective = initial_objective if initial_objective is not None else np.inf

        angles = self.config.angles
        for flag, name, label in _PARAMETERS:
            if mode & flag:
                self._coarse_fine(name, label, angles)

        if bin(int(mode & OptimizeMode.ANGLES)).count("1") > 1:
            for flag, name, label in _PARAMETERS:
                if mode & flag:
                    self._coarse_fine(name, label, angles, coarse=False)

        if mode & OptimizeMode.TIME_LAG:
            self._coarse_fine("time_lag", "time lag", self.config.time_lag)
        if mode & OptimizeMode.SNELL:
            self._coarse_fine("snell", "snell ratio", self.config.snell)

        self.apply_bias(self.best_bias)
        self.objective_grid.release()
        self.objective_grid = None
        if self.progress is not None:
            self.progress.message_off()

        result = OptimizationResult(
            best_bias=self.best_bias,
            objective=float(self.best_objective),
            initial_objective=float(initial_objective) if initial_objective is not None else np.inf,
            evaluations=self.evaluations,
            cancelled=self._cancelled,
        )
        logger.info("=" * 50)
        logger.info("Bias optimization summary")
        logger.info(f"  Initial: {initial_bias}  objective {result.initial_objective:.6f}")
        logger.info(f"  Best:    {result.best_bias}  objective {result.objective:.6f}")
        logger.info(f"  Candidates evaluated: {result.evaluations}")
        logger.info("=" * 50)
        return result
