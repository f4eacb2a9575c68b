"""
Grid session: owner of loaded files, projection, grid and selection.

Every operation goes through a session; there is no module level state.
The session is the single writer of ping derived fields and grid cells.

Typical use:
    session = GridSession(config)
    session.load_files(files)
    session.setup_grid()
    session.make_grid()
    session.select_region(xmin, xmax, ymin, ymax)
    session.flag_sparse_voxels()
    result = session.optimize_bias(OptimizeMode.ROLL | OptimizeMode.PITCH)
"""

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from calibration import BiasOptimizer, OptimizationResult, OptimizeMode
from config import Config
from data.errors import ProjectionUnavailable
from data.projection import UTMProjection
from data.selection import SelectedSoundingSet
from data.swath import BeamFlag, BiasParameters, SwathFile, beam_ok
from geometry.repositioning import update_ping
from gridding import BeamContext, GridAccumulator, SparseVoxelFilter, VoxelFilterResult

from .sinks import EditJournal, LoggingProgressSink

logger = logging.getLogger(__name__)


class GridSession:
    """
    Gridding and calibration session over a set of swath files.

    Args:
        config: Engine configuration
        projection_factory: Callable (lon, lat) -> projection service
        progress: Progress sink (message_on / message_off)
        edit_sink: Receives record_edit(file, ping, beam, new_flag) calls
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        projection_factory: Optional[Callable] = None,
        progress=None,
        edit_sink=None,
    ):
        self.config = config or Config()
        self.projection_factory = projection_factory or UTMProjection.for_position
        self.progress = progress if progress is not None else LoggingProgressSink(logging.DEBUG)
        self.edit_sink = edit_sink if edit_sink is not None else EditJournal()

        self.files: List[SwathFile] = []
        self.bias = BiasParameters()
        self.projection = None
        self.grid: Optional[GridAccumulator] = None
        self.selection: Optional[SelectedSoundingSet] = None
        self.num_degenerate = 0

    # ------------------------------------------------------------------
    # Loading and projection
    # ------------------------------------------------------------------

    def load_files(self, files: Sequence[SwathFile]) -> int:
        """
        Add swath files and compute their geographic positions.

        Returns:
            Number of files loaded
        """
        for swath in files:
            for ping in swath.pings:
                self.num_degenerate += update_ping(swath, ping, self.bias, None)
            self.files.append(swath)
            logger.info(f"Loaded {swath.name}: {swath.num_pings} pings")
        return len(files)

    def project_soundings(self, bias: Optional[BiasParameters] = None) -> int:
        """
        Reposition every loaded sounding under a bias.

        Returns:
            Number of beams set unusable because of degenerate geometry
        """
        if self.projection is None:
            raise ProjectionUnavailable("Grid has not been set up")
        if bias is not None:
            self.bias = bias

        bad = 0
        iterator = self.files
        if self.config.show_progress:
            iterator = tqdm(iterator, desc="Repositioning")
        for swath in iterator:
            self.progress.message_on(f"Repositioning soundings of {swath.name}")
            for ping in swath.pings:
                bad += update_ping(swath, ping, self.bias, self.projection)
        self.progress.message_off()

        self.num_degenerate += bad
        if bad:
            logger.warning(f"{bad} soundings with degenerate geometry set unusable")
        return bad

    def setup_grid(self) -> GridAccumulator:
        """
        Choose projection, bounds and cell size from the loaded files.

        Raises:
            ProjectionUnavailable: if the projection cannot be initialized
        """
        infos = [info for info in (f.info() for f in self.files) if info is not None]
        if not infos:
            raise ValueError("No soundings loaded, cannot set up a grid")

        lon_min = min(i.lon_min for i in infos)
        lon_max = max(i.lon_max for i in infos)
        lat_min = min(i.lat_min for i in infos)
        lat_max = max(i.lat_max for i in infos)
        altitude_max = max(i.altitude_max for i in infos)
        depth_max = max(i.depth_max for i in infos)

        reflon = 0.5 * (lon_min + lon_max)
        reflat = 0.5 * (lat_min + lat_max)
        if self.projection is not None:
            self.projection.free()
        try:
            self.projection = self.projection_factory(reflon, reflat)
        except ProjectionUnavailable:
            raise
        except Exception as e:
            raise ProjectionUnavailable(
                f"Projection at ({reflon:.6f}, {reflat:.6f}) failed: {e}"
            ) from e

        corner_lon = np.array([lon_min, lon_max, lon_min, lon_max])
        corner_lat = np.array([lat_min, lat_min, lat_max, lat_max])
        cx, cy = self.projection.forward(corner_lon, corner_lat)
        if not (np.all(np.isfinite(cx)) and np.all(np.isfinite(cy))):
            raise ProjectionUnavailable("Projected grid bounds are not finite")
        xmin, xmax = float(np.min(cx)), float(np.max(cx))
        ymin, ymax = float(np.min(cy)), float(np.max(cy))

        grid_config = self.config.grid
        if grid_config.cell_size is not None:
            dx = grid_config.cell_size
        elif altitude_max > 0.0:
            dx = grid_config.auto_cell_factor * altitude_max
        elif depth_max > 0.0:
            dx = grid_config.auto_cell_factor * depth_max
        else:
            dx = (xmax - xmin) / grid_config.auto_cell_divisor
        if dx <= 0.0:
            raise ValueError("Could not derive a positive grid cell size from the data")

        self.grid = GridAccumulator(
            xmin, ymin, xmax, ymax, dx,
            algorithm=grid_config.algorithm,
            weight_tiny=grid_config.weight_tiny,
            footprint_weight_threshold=grid_config.footprint_weight_threshold,
        )
        logger.info(
            f"Grid bounds lon {lon_min:.6f}/{lon_max:.6f} lat {lat_min:.6f}/{lat_max:.6f}, "
            f"projection {getattr(self.projection, 'name', 'custom')}"
        )
        self.project_soundings()
        return self.grid

    # ------------------------------------------------------------------
    # Gridding
    # ------------------------------------------------------------------

    def _context(self, swath: SwathFile, ping) -> BeamContext:
        return BeamContext(
            navx=ping.navx,
            navy=ping.navy,
            sonar_depth=ping.sonar_depth,
            altitude=ping.altitude,
            beamwidth_xtrack=swath.beamwidth_xtrack,
            beamwidth_ltrack=swath.beamwidth_ltrack,
            multibeam=swath.is_multibeam,
        )

    def _grid_sounding(self, swath: SwathFile, ping, beam: int, sign: int, apply_now: bool):
        return self.grid.grid_beam(
            ping.bathx[beam], ping.bathy[beam], ping.bathcorr[beam],
            weight_sign=sign,
            context=self._context(swath, ping),
            apply_now=apply_now,
        )

    def make_grid(self) -> GridAccumulator:
        """Rebuild the grid from every usable sounding."""
        if self.grid is None:
            raise ValueError("Grid has not been set up")

        self.grid.reset()
        num_gridded = 0
        iterator = self.files
        if self.config.show_progress:
            iterator = tqdm(iterator, desc="Gridding")
        for swath in iterator:
            self.progress.message_on(f"Gridding {swath.name}")
            for ping in swath.pings:
                context = self._context(swath, ping)
                for beam in np.flatnonzero(ping.beamflag == BeamFlag.OK):
                    self.grid.grid_beam(
                        ping.bathx[beam], ping.bathy[beam], ping.bathcorr[beam],
                        weight_sign=1, context=context,
                    )
                    num_gridded += 1
        self.progress.message_off()
        self.grid.recompute_all()

        logger.info("=" * 50)
        logger.info("Grid summary")
        logger.info(f"  Cells: {self.grid.n_columns} x {self.grid.n_rows}, dx={self.grid.dx:.3f}")
        logger.info(f"  Soundings gridded: {num_gridded}")
        logger.info(f"  Cells with data: {self.grid.num_cells_with_data}")
        if self.grid.num_cells_with_data:
            logger.info(f"  Value range: {self.grid.min_value:.2f} to {self.grid.max_value:.2f}")
        logger.info("=" * 50)
        return self.grid

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def _set_flag(self, file_index: int, ping_index: int, beam_index: int, new_flag: int) -> bool:
        """
        Change a sounding flag and update the grid incrementally.

        Returns:
            True if a full regrid is still needed
        """
        swath = self.files[file_index]
        ping = swath.pings[ping_index]
        old_flag = int(ping.beamflag[beam_index])
        ping.beamflag[beam_index] = new_flag

        # Keep the selection copy in step so filtering and scoring see the edit
        if self.selection is not None:
            n = self.selection.find(file_index, ping_index, beam_index)
            if n is not None:
                self.selection.beamflag[n] = new_flag

        was_ok, is_ok = beam_ok(old_flag), beam_ok(new_flag)
        if was_ok == is_ok:
            return False

        swath.edits_changed = True
        self.edit_sink.record_edit(file_index, ping_index, beam_index, new_flag)

        if self.grid is None:
            return False
        if not is_ok and not self.grid.supports_removal:
            return True
        self._grid_sounding(swath, ping, beam_index, 1 if is_ok else -1, apply_now=True)
        return False

    def edit_sounding(self, file_index: int, ping_index: int, beam_index: int, new_flag: int) -> bool:
        """
        Set a sounding flag, propagating it to the grid and the edit sink.

        Returns:
            True if the usable state of the sounding changed
        """
        ping = self.files[file_index].pings[ping_index]
        was_ok = beam_ok(ping.beamflag[beam_index])
        if self._set_flag(file_index, ping_index, beam_index, int(new_flag)):
            self.make_grid()
        return was_ok != beam_ok(new_flag)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_region(
        self,
        xmin: float,
        xmax: float,
        ymin: float,
        ymax: float,
        bearing: float = 90.0,
    ) -> SelectedSoundingSet:
        """
        Select every usable or flagged sounding inside a planar rectangle.

        Local coordinates are bearing-aligned around the rectangle center,
        with z positive up and centered on the depth range.
        """
        self.release_selection()
        selection = SelectedSoundingSet(
            xorigin=0.5 * (xmin + xmax),
            yorigin=0.5 * (ymin + ymax),
            bearing=bearing,
        )
        for fi, swath in enumerate(self.files):
            for pi, ping in enumerate(swath.pings):
                inside = (
                    (ping.beamflag != BeamFlag.NULL)
                    & (ping.bathx >= xmin) & (ping.bathx <= xmax)
                    & (ping.bathy >= ymin) & (ping.bathy <= ymax)
                )
                beams = np.flatnonzero(inside)
                if len(beams) == 0:
                    continue
                lx, ly, lz = selection.to_local(
                    ping.bathx[beams], ping.bathy[beams], ping.bathcorr[beams]
                )
                for n, beam in enumerate(beams):
                    selection.append(
                        fi, pi, int(beam), lx[n], ly[n], lz[n],
                        int(ping.beamflag[beam]), int(ping.beamflag_org[beam]),
                    )

        selection.recenter_z()
        self.selection = selection
        logger.info(
            f"Selected {len(selection)} soundings ({selection.num_ok} ok, "
            f"{selection.num_flagged} flagged)"
        )
        return selection

    def select_all(self) -> SelectedSoundingSet:
        """Select every sounding inside the grid bounds."""
        if self.grid is None:
            raise ValueError("Grid has not been set up")
        half = 0.5 * self.grid.dx
        return self.select_region(
            self.grid.xmin - half, self.grid.xmax + half,
            self.grid.ymin - half, self.grid.ymax + half,
        )

    def release_selection(self):
        """Free the current selection."""
        if self.selection is not None:
            self.selection.clear()
            self.selection = None

    # ------------------------------------------------------------------
    # Filtering and calibration
    # ------------------------------------------------------------------

    def flag_sparse_voxels(
        self,
        size_multiplier: Optional[int] = None,
        count_threshold: Optional[int] = None,
    ) -> VoxelFilterResult:
        """
        Flag selected soundings in sparse voxels.

        Voxel size is a multiple of the grid cell size. Flags are written
        to the pings, the grid and the edit sink.
        """
        if self.selection is None or self.grid is None:
            raise ValueError("A grid and a selection are required for voxel filtering")

        voxel_config = self.config.voxels
        multiplier = size_multiplier or voxel_config.size_multiplier
        threshold = count_threshold or voxel_config.count_threshold

        vf = SparseVoxelFilter(
            count_threshold=threshold,
            alloc_chunk=voxel_config.alloc_chunk,
            progress=self.progress,
            show_progress=self.config.show_progress,
        )
        result = vf.run(self.selection, multiplier * self.grid.dx)

        regrid = False
        sel = self.selection
        for n in result.flagged:
            regrid |= self._set_flag(
                int(sel.file_index[n]), int(sel.ping_index[n]), int(sel.beam_index[n]),
                BeamFlag.MANUAL,
            )
        if regrid:
            self.make_grid()
        return result

    def apply_bias(self, bias: BiasParameters):
        """Reposition the selected soundings only."""
        if self.selection is None:
            raise ValueError("No soundings selected")
        optimizer = BiasOptimizer(self.files, self.selection, self.projection, self.grid.dx)
        optimizer.apply_bias(bias)

    def apply_bias_all(self, bias: BiasParameters) -> int:
        """
        Reposition every loaded sounding under a bias and regrid.

        Returns:
            Number of beams set unusable because of degenerate geometry
        """
        logger.info(f"Applying bias {bias} to all soundings")
        bad = self.project_soundings(bias)
        if self.grid is not None:
            self.make_grid()
        if self.selection is not None:
            # Refresh flag copies so newly unusable soundings drop out of scoring
            flags = self.selection.view("beamflag")
            for n in range(len(self.selection)):
                ping = self.files[self.selection.file_index[n]].pings[self.selection.ping_index[n]]
                flags[n] = ping.beamflag[self.selection.beam_index[n]]
            self.apply_bias(bias)
        return bad

    def optimize_bias(
        self,
        mode: OptimizeMode,
        initial_bias: Optional[BiasParameters] = None,
        cancel: Optional[Callable[[], bool]] = None,
    ) -> OptimizationResult:
        """
        Search bias parameters over the selection and apply the best to all.
        """
        if self.selection is None or len(self.selection) == 0:
            raise ValueError("No soundings selected for bias optimization")
        if self.grid is None:
            raise ValueError("Grid has not been set up")

        optimizer = BiasOptimizer(
            self.files,
            self.selection,
            self.projection,
            self.grid.dx,
            config=self.config.optimizer,
            progress=self.progress,
            cancel=cancel,
        )
        result = optimizer.optimize(mode, initial_bias or self.bias)
        self.apply_bias_all(result.best_bias)
        return result

    def close(self):
        """Release selection, grid and projection."""
        self.release_selection()
        self.grid = None
        if self.projection is not None:
            self.projection.free()
            self.projection = None
