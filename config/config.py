"""
Configuration module for the swath gridding and bias calibration engine.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional
from pathlib import Path
import yaml


GRID_ALGORITHMS = ("simple", "footprint", "shoal")


@dataclass
class GridConfig:
    """Configuration for the primary depth grid."""
    algorithm: str = "footprint"             # "simple", "footprint" or "shoal"
    cell_size: Optional[float] = None        # Cell size (m), None = derive from altitude/depth
    auto_cell_factor: float = 0.02           # Cell size as fraction of max altitude or depth
    auto_cell_divisor: int = 250             # Fallback: x extent / divisor
    weight_tiny: float = 1.0e-7              # Weights below this snap to zero
    footprint_weight_threshold: float = 0.05  # Integrated weight needed to use a cell


@dataclass
class VoxelFilterConfig:
    """Configuration for sparse voxel flagging."""
    size_multiplier: int = 2                 # Voxel size = multiplier x grid cell size
    count_threshold: int = 5                 # Flag voxels with fewer soundings than this
    alloc_chunk: int = 64                    # Minimum growth of a coarse voxel bucket


@dataclass
class SweepSchedule:
    """Coarse and fine sampling of one bias parameter."""
    coarse_samples: int = 11
    coarse_half_width: float = 5.0
    fine_samples: int = 19
    fine_half_width: float = 0.9


@dataclass
class OptimizerConfig:
    """Configuration for the bias parameter search."""
    angles: SweepSchedule = field(default_factory=SweepSchedule)
    time_lag: SweepSchedule = field(default_factory=lambda: SweepSchedule(
        coarse_samples=21,
        coarse_half_width=1.0,
        fine_samples=19,
        fine_half_width=0.09,
    ))
    snell: SweepSchedule = field(default_factory=lambda: SweepSchedule(
        coarse_samples=21,
        coarse_half_width=0.1,
        fine_samples=19,
        fine_half_width=0.009,
    ))
    cell_factor: float = 2.0                 # Objective cell = factor x grid cell size
    padding: float = 0.25                    # Pad selection bounds by this fraction


@dataclass
class Config:
    """Master configuration class."""
    # Sub-configs
    grid: GridConfig = field(default_factory=GridConfig)
    voxels: VoxelFilterConfig = field(default_factory=VoxelFilterConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)

    # Logging
    log_level: str = "INFO"
    show_progress: bool = False

    def save(self, path: Path):
        """Save configuration to YAML file."""
        path = Path(path)
        with open(path, 'w') as f:
            yaml.dump(asdict(self), f, default_flow_style=False)

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load configuration from YAML file."""
        path = Path(path)
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        # Reconstruct nested dataclasses, sweep schedules merge over defaults
        optimizer = data.get('optimizer', {})
        defaults = OptimizerConfig()

        def schedule(name: str) -> SweepSchedule:
            merged = asdict(getattr(defaults, name))
            merged.update(optimizer.get(name, {}))
            return SweepSchedule(**merged)

        return cls(
            grid=GridConfig(**data.get('grid', {})),
            voxels=VoxelFilterConfig(**data.get('voxels', {})),
            optimizer=OptimizerConfig(
                angles=schedule('angles'),
                time_lag=schedule('time_lag'),
                snell=schedule('snell'),
                cell_factor=optimizer.get('cell_factor', defaults.cell_factor),
                padding=optimizer.get('padding', defaults.padding),
            ),
            log_level=data.get('log_level', 'INFO'),
            show_progress=data.get('show_progress', False),
        )

    def __post_init__(self):
        """Validate configuration after initialization."""
        assert self.grid.algorithm in GRID_ALGORITHMS, \
            f"Unknown grid algorithm: {self.grid.algorithm}"
        assert self.grid.cell_size is None or self.grid.cell_size > 0, \
            "Grid cell size must be positive"
        assert self.voxels.size_multiplier > 0, \
            "Voxel size multiplier must be positive"
        assert self.voxels.count_threshold > 0, \
            "Voxel count threshold must be positive"
        for name in ("angles", "time_lag", "snell"):
            schedule = getattr(self.optimizer, name)
            assert schedule.coarse_samples > 1 and schedule.fine_samples > 1, \
                f"Sweep {name} needs at least two samples per phase"
