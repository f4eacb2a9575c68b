from .errors import (
    SwathEngineError,
    GeometryError,
    AllocationFailure,
    EmptyObjective,
    ProjectionUnavailable,
)
from .swath import (
    BeamFlag,
    beam_ok,
    beam_unusable,
    BiasParameters,
    AsyncSeries,
    Ping,
    SwathInfo,
    SwathFile,
    TOPO_MULTIBEAM,
)
from .selection import SelectedSounding, SelectedSoundingSet
from .projection import UTMProjection, utm_zone_for, coor_scale
from .synthetic import SyntheticSurveyConfig, SyntheticSurveyGenerator

__all__ = [
    # Errors
    "SwathEngineError",
    "GeometryError",
    "AllocationFailure",
    "EmptyObjective",
    "ProjectionUnavailable",
    # Swath model
    "BeamFlag",
    "beam_ok",
    "beam_unusable",
    "BiasParameters",
    "AsyncSeries",
    "Ping",
    "SwathInfo",
    "SwathFile",
    "TOPO_MULTIBEAM",
    # Selection
    "SelectedSounding",
    "SelectedSoundingSet",
    # Projection
    "UTMProjection",
    "utm_zone_for",
    "coor_scale",
    # Synthetic surveys
    "SyntheticSurveyConfig",
    "SyntheticSurveyGenerator",
]
