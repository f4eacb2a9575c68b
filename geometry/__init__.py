from .attitude import (
    attitude_matrix,
    euler_from_matrix,
    attitude_offset_corrected_by_nav,
    rotate_beam,
    snell_correction,
)
from .repositioning import (
    RepositionedBeam,
    RepositionedPing,
    ping_attitude,
    reposition,
    reposition_ping,
    update_ping,
)

__all__ = [
    # Attitude math
    "attitude_matrix",
    "euler_from_matrix",
    "attitude_offset_corrected_by_nav",
    "rotate_beam",
    "snell_correction",
    # Repositioning
    "RepositionedBeam",
    "RepositionedPing",
    "ping_attitude",
    "reposition",
    "reposition_ping",
    "update_ping",
]
