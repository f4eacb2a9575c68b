from .accumulator import GridAccumulator, BeamContext, TouchedCells, NODATA, WEIGHT_TINY
from .footprint import FootprintUse, Footprint, bin_weight, compute_footprint, cell_use
from .voxels import SparseVoxelFilter, VoxelFilterResult, CoarseVoxel, flag_sparse_voxels

__all__ = [
    # Accumulator
    "GridAccumulator",
    "BeamContext",
    "TouchedCells",
    "NODATA",
    "WEIGHT_TINY",
    # Footprint
    "FootprintUse",
    "Footprint",
    "bin_weight",
    "compute_footprint",
    "cell_use",
    # Voxels
    "SparseVoxelFilter",
    "VoxelFilterResult",
    "CoarseVoxel",
    "flag_sparse_voxels",
]
