from .config import (
    Config,
    GridConfig,
    VoxelFilterConfig,
    SweepSchedule,
    OptimizerConfig,
    GRID_ALGORITHMS,
)

__all__ = [
    "Config",
    "GridConfig",
    "VoxelFilterConfig",
    "SweepSchedule",
    "OptimizerConfig",
    "GRID_ALGORITHMS",
]
