"""
Beam repositioning under candidate bias parameters.

Turns sensor-relative soundings into corrected depth, geographic and planar
positions:
1. Attitude/heading/sonar depth at the time-lagged ping time
2. Combined attitude offset including mount bias
3. Optional Snell correction
4. Rotation to local easting/northing/depth
5. Geographic offset and forward projection
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from data.errors import GeometryError
from data.projection import coor_scale
from data.swath import BeamFlag, BiasParameters, Ping, SwathFile

from .attitude import attitude_offset_corrected_by_nav, rotate_beam, snell_correction

logger = logging.getLogger(__name__)


@dataclass
class RepositionedBeam:
    """Corrected position of a single sounding."""
    bathcorr: float                          # Corrected depth, positive down
    lon: float
    lat: float
    x: float                                 # Planar x (nan without projection)
    y: float                                 # Planar y (nan without projection)
    ok: bool                                 # All values finite


@dataclass
class RepositionedPing:
    """Corrected positions for a set of beams on one ping."""
    beams: np.ndarray                        # Beam indices
    bathcorr: np.ndarray
    lon: np.ndarray
    lat: np.ndarray
    x: np.ndarray
    y: np.ndarray
    ok: np.ndarray                           # Boolean mask of finite results
    navx: float = np.nan
    navy: float = np.nan


def ping_attitude(swath: SwathFile, ping: Ping, time_lag: float):
    """
    Heading, sonar depth, roll and pitch at the time-lagged ping time.

    Async series are only consulted for a non-zero lag; each missing series
    falls back to the ping's own value.
    """
    heading = ping.heading
    sonar_depth = ping.sonar_depth
    roll = ping.roll
    pitch = ping.pitch

    if time_lag != 0.0:
        t = ping.time_d + time_lag
        if swath.async_heading is not None and len(swath.async_heading) > 0:
            heading = swath.async_heading.interp(t)
        if swath.async_sonar_depth is not None and len(swath.async_sonar_depth) > 0:
            sonar_depth = swath.async_sonar_depth.interp(t)
        if swath.async_attitude is not None and len(swath.async_attitude) > 0:
            roll, pitch = swath.async_attitude.interp(t)

    return float(heading), float(sonar_depth), float(roll), float(pitch)


def reposition_ping(
    swath: SwathFile,
    ping: Ping,
    bias: BiasParameters,
    projection=None,
    beams: Optional[np.ndarray] = None,
) -> RepositionedPing:
    """
    Reposition beams of a ping under the given bias parameters.

    Args:
        swath: File owning the ping (async series, beam widths)
        ping: Ping to reposition
        bias: Bias parameters
        projection: Forward projection service, or None to skip planar x/y
        beams: Beam indices to process (default all)

    Returns:
        RepositionedPing with per-beam results and a finite-value mask
    """
    if beams is None:
        beams = np.arange(ping.num_beams)
    beams = np.asarray(beams, dtype=np.int64)

    heading, sonar_depth, roll, pitch = ping_attitude(swath, ping, bias.time_lag)
    roll_delta, pitch_delta, heading = attitude_offset_corrected_by_nav(
        ping.roll, ping.pitch, 0.0,
        bias.roll_bias, bias.pitch_bias, bias.heading_bias,
        roll, pitch, heading,
    )

    x = ping.acrosstrack[beams]
    y = ping.alongtrack[beams]
    z = ping.bath[beams] - ping.sonar_depth
    if bias.snell != 1.0:
        x, y, z = snell_correction(x, y, z, ping.roll + roll_delta, bias.snell)

    easting, northing, depth = rotate_beam(x, y, z, roll_delta, pitch_delta, heading)
    bathcorr = depth + sonar_depth

    mtodeglon, mtodeglat = coor_scale(ping.navlat)
    lon = ping.navlon + mtodeglon * easting
    lat = ping.navlat + mtodeglat * northing

    navx = navy = np.nan
    if projection is not None:
        px, py = projection.forward(lon, lat)
        px = np.asarray(px, dtype=np.float64)
        py = np.asarray(py, dtype=np.float64)
        navx, navy = projection.forward(ping.navlon, ping.navlat)
    else:
        px = np.full(len(beams), np.nan)
        py = np.full(len(beams), np.nan)

    ok = np.isfinite(bathcorr) & np.isfinite(lon) & np.isfinite(lat)
    if projection is not None:
        ok &= np.isfinite(px) & np.isfinite(py)

    return RepositionedPing(
        beams=beams,
        bathcorr=np.asarray(bathcorr, dtype=np.float64),
        lon=np.asarray(lon, dtype=np.float64),
        lat=np.asarray(lat, dtype=np.float64),
        x=px,
        y=py,
        ok=ok,
        navx=navx,
        navy=navy,
    )


def reposition(
    swath: SwathFile,
    ping: Ping,
    beam: int,
    bias: BiasParameters,
    projection=None,
) -> RepositionedBeam:
    """
    Reposition a single sounding.

    Raises:
        GeometryError: if any corrected value is non-finite
    """
    result = reposition_ping(swath, ping, bias, projection, beams=np.array([beam]))
    if not result.ok[0]:
        raise GeometryError(
            f"Non-finite position for beam {beam} at time {ping.time_d:.3f}"
        )
    return RepositionedBeam(
        bathcorr=float(result.bathcorr[0]),
        lon=float(result.lon[0]),
        lat=float(result.lat[0]),
        x=float(result.x[0]),
        y=float(result.y[0]),
        ok=True,
    )


def update_ping(
    swath: SwathFile,
    ping: Ping,
    bias: BiasParameters,
    projection=None,
) -> int:
    """
    Rewrite a ping's derived fields under the given bias parameters.

    Usable beams whose geometry is not finite are set to NULL and keep their
    previous derived values, so nothing non-finite reaches a grid. NULL beams
    are skipped on every later pass, so a beam dropped here stays dropped
    even if a later bias would give it finite geometry.

    Returns:
        Number of beams newly marked unusable
    """
    usable = np.flatnonzero(ping.beamflag != BeamFlag.NULL)
    if len(usable) == 0:
        if projection is not None:
            ping.navx, ping.navy = projection.forward(ping.navlon, ping.navlat)
        return 0

    result = reposition_ping(swath, ping, bias, projection, beams=usable)
    good = result.beams[result.ok]
    bad = result.beams[~result.ok]

    ping.bathcorr[good] = result.bathcorr[result.ok]
    ping.bathlon[good] = result.lon[result.ok]
    ping.bathlat[good] = result.lat[result.ok]
    ping.bathx[good] = result.x[result.ok]
    ping.bathy[good] = result.y[result.ok]
    if projection is not None:
        ping.navx, ping.navy = result.navx, result.navy

    # Permanent: later passes only reposition non-NULL beams
    if len(bad) > 0:
        ping.beamflag[bad] = BeamFlag.NULL
        logger.warning(
            f"{swath.name}: {len(bad)} beams with degenerate geometry "
            f"at time {ping.time_d:.3f} set unusable"
        )
    return len(bad)
