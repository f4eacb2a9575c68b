from .objective import ObjectiveGrid
from .optimizer import BiasOptimizer, OptimizeMode, OptimizationResult

__all__ = [
    "ObjectiveGrid",
    "BiasOptimizer",
    "OptimizeMode",
    "OptimizationResult",
]
