"""
Attitude math for beam repositioning.

Vessel frame: x starboard, y forward, z down. Rotations compose as
heading * pitch * roll, so a vector is rolled first, then pitched, then
turned to geographic easting/northing. All angles are in degrees at the
function boundaries.
"""

import numpy as np


def _roll_matrix(r: float) -> np.ndarray:
    cr, sr = np.cos(r), np.sin(r)
    return np.array([
        [cr, 0.0, -sr],
        [0.0, 1.0, 0.0],
        [sr, 0.0, cr],
    ])


def _pitch_matrix(p: float) -> np.ndarray:
    cp, sp = np.cos(p), np.sin(p)
    return np.array([
        [1.0, 0.0, 0.0],
        [0.0, cp, sp],
        [0.0, -sp, cp],
    ])


def _heading_matrix(h: float) -> np.ndarray:
    ch, sh = np.cos(h), np.sin(h)
    return np.array([
        [ch, sh, 0.0],
        [-sh, ch, 0.0],
        [0.0, 0.0, 1.0],
    ])


def attitude_matrix(roll: float, pitch: float, heading: float) -> np.ndarray:
    """Rotation from the vessel frame to east/north/down, angles in degrees."""
    return (
        _heading_matrix(np.deg2rad(heading))
        @ _pitch_matrix(np.deg2rad(pitch))
        @ _roll_matrix(np.deg2rad(roll))
    )


def euler_from_matrix(m: np.ndarray):
    """
    Extract (roll, pitch, heading) in degrees from an attitude matrix.

    Heading is returned in [0, 360).
    """
    pitch = np.arcsin(np.clip(-m[2, 1], -1.0, 1.0))
    roll = np.arctan2(m[2, 0], m[2, 2])
    heading = np.arctan2(m[0, 1], m[1, 1])
    return (
        float(np.rad2deg(roll)),
        float(np.rad2deg(pitch)),
        float(np.rad2deg(heading) % 360.0),
    )


def attitude_offset_corrected_by_nav(
    old_roll: float,
    old_pitch: float,
    old_heave: float,
    roll_bias: float,
    pitch_bias: float,
    heading_bias: float,
    async_roll: float,
    async_pitch: float,
    async_heading: float,
):
    """
    Combine previously applied attitude, mount bias and new attitude.

    Beam offsets on a ping already have old_roll/old_pitch applied. The
    returned rotation undoes them, applies the bias (mount) rotation and then
    the new attitude, expressed as a single set of Euler angles.

    Args:
        old_roll, old_pitch: Attitude already applied to the offsets (degrees)
        old_heave: Heave already applied (unused by the rotation)
        roll_bias, pitch_bias, heading_bias: Mount bias (degrees)
        async_roll, async_pitch, async_heading: New attitude (degrees)

    Returns:
        (roll_delta, pitch_delta, heading) in degrees
    """
    previous = attitude_matrix(old_roll, old_pitch, 0.0)
    bias = attitude_matrix(roll_bias, pitch_bias, heading_bias)
    current = attitude_matrix(async_roll, async_pitch, async_heading)
    total = current @ bias @ previous.T
    return euler_from_matrix(total)


def rotate_beam(x, y, z, roll_delta: float, pitch_delta: float, heading: float):
    """
    Rotate sensor offsets into local easting, northing and depth.

    Args:
        x, y, z: Acrosstrack, alongtrack and depth offsets (scalars or arrays)
        roll_delta, pitch_delta, heading: Rotation angles (degrees)

    Returns:
        (easting, northing, depth) offsets
    """
    r, p, h = np.deg2rad(roll_delta), np.deg2rad(pitch_delta), np.deg2rad(heading)
    cr, sr = np.cos(r), np.sin(r)
    cp, sp = np.cos(p), np.sin(p)
    ch, sh = np.cos(h), np.sin(h)

    x1 = x * cr - z * sr
    z1 = x * sr + z * cr
    y2 = y * cp + z1 * sp
    z2 = -y * sp + z1 * cp
    easting = x1 * ch + y2 * sh
    northing = -x1 * sh + y2 * ch
    return easting, northing, z2


def snell_correction(x, y, z, roll: float, snell: float):
    """
    Adjust beam offsets for a sound speed ratio error at the array.

    Offsets are decomposed into range, elevation (alpha) and azimuth (beta)
    angles; the azimuth relative to the array is refracted by the ratio and
    the offsets rebuilt. A ratio of exactly 1.0 returns the inputs untouched.

    Args:
        x, y, z: Acrosstrack, alongtrack and depth offsets (scalars or arrays)
        roll: Roll of the array (degrees)
        snell: Sound speed ratio

    Returns:
        Corrected (x, y, z)
    """
    if snell == 1.0:
        return x, y, z

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    z = np.asarray(z, dtype=np.float64)
    rr = np.sqrt(x * x + y * y + z * z)
    degenerate = rr < 0.001
    safe = np.where(degenerate, 1.0, rr)

    alpha = np.arcsin(np.clip(y / safe, -1.0, 1.0))
    ca = np.cos(alpha)
    ca = np.where(ca == 0.0, 1.0, ca)
    beta = np.arccos(np.clip(x / safe / ca, -1.0, 1.0))
    beta = np.where(z < 0.0, 2.0 * np.pi - beta, beta)
    alpha = np.where(degenerate, 0.0, alpha)
    beta = np.where(degenerate, 0.5 * np.pi, beta)

    r = np.deg2rad(roll)
    beta = beta - r
    beta = np.arcsin(np.clip(snell * np.sin(beta - 0.5 * np.pi), -1.0, 1.0)) + 0.5 * np.pi
    beta = beta + r

    y = rr * np.sin(alpha)
    x = rr * np.cos(alpha) * np.cos(beta)
    z = rr * np.cos(alpha) * np.sin(beta)
    return x, y, z
