"""
Error types raised by the swath engine.

Per-sounding problems (GeometryError) are recovered by flagging the sounding;
EmptyObjective is recovered by skipping the candidate. AllocationFailure and
ProjectionUnavailable abort the current operation.
"""


class SwathEngineError(RuntimeError):
    """Base class for engine errors."""


class GeometryError(SwathEngineError):
    """Non-finite intermediate value while repositioning a sounding."""


class AllocationFailure(SwathEngineError):
    """A growable index could not be extended."""


class EmptyObjective(SwathEngineError):
    """An objective grid evaluation found no scorable bins."""


class ProjectionUnavailable(SwathEngineError):
    """The planar projection could not be initialized."""
