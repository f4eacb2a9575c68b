"""
Anisotropic beam footprint weighting.

A sounding is spread over the grid cells its beam footprint covers. The
footprint is an ellipse with half width across the beam direction and half
length along it; the weight of a cell is the integral of a separable erf
kernel over the cell extent. The kernel is evaluated with the cell treated
as un-rotated and centered on its rotated center, a known approximation
that keeps the integral closed form.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

import numpy as np
from scipy.special import erf

logger = logging.getLogger(__name__)


class FootprintUse(IntEnum):
    """Acceptance of a candidate cell."""
    NO = 0
    CONDITIONAL = 1
    YES = 2


@dataclass
class Footprint:
    """Footprint of one sounding in planar coordinates."""
    hwidth: float                            # Half width across beam direction (m)
    hlength: float                           # Half length along track (m)
    dxn: float                               # Unit lateral direction, x
    dyn: float                               # Unit lateral direction, y
    dix: int                                 # Neighborhood half size in columns
    diy: int                                 # Neighborhood half size in rows


def bin_weight(pcx, pcy, bdx: float, bdy: float, a: float, b: float):
    """
    Integrated kernel weight of a bin.

    Args:
        pcx, pcy: Bin center in footprint coordinates
        bdx, bdy: Bin half sizes
        a, b: Footprint half width and half length

    Returns:
        Weight in [0, 1]
    """
    return 0.25 * (
        (erf((pcx + bdx) / a) - erf((pcx - bdx) / a))
        * (erf((pcy + bdy) / b) - erf((pcy - bdy) / b))
    )


def compute_footprint(
    bathx: float,
    bathy: float,
    bathcorr: float,
    navx: float,
    navy: float,
    sonar_depth: float,
    altitude: float,
    beamwidth_xtrack: float,
    beamwidth_ltrack: float,
    dx: float,
    dy: float,
) -> Optional[Footprint]:
    """
    Footprint of a sounding from its lateral offset and the beam widths.

    Returns:
        Footprint, or None when the geometry does not define a footprint
    """
    foot_dx = bathx - navx
    foot_dy = bathy - navy
    lateral = np.sqrt(foot_dx * foot_dx + foot_dy * foot_dy)
    if lateral > 0.0:
        dxn, dyn = foot_dx / lateral, foot_dy / lateral
    else:
        dxn, dyn = 1.0, 0.0

    dz = bathcorr - sonar_depth
    rng = np.sqrt(lateral * lateral + altitude * altitude)
    theta = np.rad2deg(np.arctan2(lateral, dz))

    dtheta = 0.5 * beamwidth_xtrack
    dphi = 0.5 * beamwidth_ltrack
    if dtheta <= 0.0:
        dtheta = 1.0
    if dphi <= 0.0:
        dphi = 1.0

    hwidth = dz * np.tan(np.deg2rad(theta + dtheta)) - lateral
    hlength = rng * np.tan(np.deg2rad(dphi))
    if not (np.isfinite(hwidth) and np.isfinite(hlength)) or hwidth <= 0.0 or hlength <= 0.0:
        return None

    t = np.deg2rad(theta)
    wix = int(abs(hwidth * np.cos(t) / dx))
    wiy = int(abs(hwidth * np.sin(t) / dx))
    lix = int(abs(hlength * np.sin(t) / dy))
    liy = int(abs(hlength * np.cos(t) / dy))

    return Footprint(
        hwidth=float(hwidth),
        hlength=float(hlength),
        dxn=float(dxn),
        dyn=float(dyn),
        dix=2 * max(wix, lix),
        diy=2 * max(wiy, liy),
    )


def cell_use(
    footprint: Footprint,
    xx,
    yy,
    dx: float,
    dy: float,
    weight_threshold: float = 0.05,
):
    """
    Weight and acceptance of candidate cells.

    Args:
        footprint: Sounding footprint
        xx, yy: Bin centers relative to the sounding (scalars or arrays)
        dx, dy: Cell sizes
        weight_threshold: Weight above which a cell is always used

    Returns:
        (weight, use) arrays
    """
    xx = np.asarray(xx, dtype=np.float64)
    yy = np.asarray(yy, dtype=np.float64)
    a, b = footprint.hwidth, footprint.hlength
    dxn, dyn = footprint.dxn, footprint.dyn

    prx = xx * dxn + yy * dyn
    pry = -xx * dyn + yy * dxn
    weight = bin_weight(prx, pry, 0.5 * dx, 0.5 * dy, a, b)

    use = np.where(weight > weight_threshold, FootprintUse.YES, FootprintUse.NO)

    # Corner fallback: inside one footprint radius is a use, two is conditional
    within_one = np.zeros(xx.shape, dtype=bool)
    within_two = np.zeros(xx.shape, dtype=bool)
    for sx, sy in ((-0.5, -0.5), (0.5, -0.5), (-0.5, 0.5), (0.5, 0.5)):
        cx = xx + sx * dx
        cy = yy + sy * dy
        px = cx * dxn + cy * dyn
        py = -cx * dyn + cy * dxn
        angle = np.arctan2(py, px)
        xe = a * np.cos(angle)
        ye = b * np.sin(angle)
        ratio = np.sqrt(px * px + py * py) / np.sqrt(xe * xe + ye * ye)
        within_one |= ratio <= 1.0
        within_two |= ratio <= 2.0

    undecided = use == FootprintUse.NO
    use = np.where(undecided & within_one, FootprintUse.YES, use)
    use = np.where(
        (use == FootprintUse.NO) & within_two, FootprintUse.CONDITIONAL, use
    )
    return weight, use
