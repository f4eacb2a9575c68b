"""
Synthetic multibeam survey generation.

Builds swath files over a known seafloor so gridding and calibration can be
exercised without sonar data:
- Seafloor is a gentle plane plus a Gaussian mound
- Reciprocal survey lines with overlapping swaths
- Injected roll bias baked into the recorded beam offsets
- Optional depth noise and isolated spikes
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .projection import coor_scale
from .swath import AsyncSeries, BeamFlag, Ping, SwathFile

logger = logging.getLogger(__name__)


@dataclass
class SyntheticSurveyConfig:
    """Configuration for synthetic survey generation."""
    ref_lon: float = -70.5                   # Survey center longitude
    ref_lat: float = 42.3                    # Survey center latitude
    base_depth: float = 50.0                 # Seafloor depth at the center (m)
    slope_east: float = 0.05                 # Depth gradient along easting (m/m)
    mound_height: float = 4.0                # Shoal mound height (m)
    mound_sigma: float = 20.0                # Shoal mound radius (m)
    sonar_depth: float = 2.0                 # Transducer depth (m)

    num_lines: int = 2                       # Reciprocal lines, alternating heading
    line_spacing: float = 60.0               # Distance between lines (m)
    num_pings: int = 60
    ping_interval: float = 1.0               # Seconds between pings
    speed: float = 2.0                       # Vessel speed (m/s)
    num_beams: int = 41
    swath_angle: float = 60.0                # Outermost beam angle (degrees)
    roll_amplitude: float = 2.0              # Vessel roll oscillation (degrees)
    beamwidth: float = 1.0                   # Across and along track (degrees)

    roll_bias: float = 0.0                   # Injected roll bias (degrees)
    noise_std: float = 0.0                   # Gaussian depth noise (m)
    num_spikes: int = 0                      # Isolated outlier soundings
    spike_height: float = 20.0               # Spike offset above seafloor (m)
    with_async: bool = True                  # Attach async heading/attitude/depth
    seed: int = 42


class SyntheticSurveyGenerator:
    """
    Generates multibeam swath files with known geometry.

    Recorded beam offsets are computed from the true ray geometry and then
    rotated by the injected roll bias, so repositioning with a roll bias of
    the same value recovers the true seafloor.
    """

    def __init__(self, config: Optional[SyntheticSurveyConfig] = None):
        self.config = config or SyntheticSurveyConfig()
        self.rng = np.random.default_rng(self.config.seed)

    def seafloor_depth(self, easting, northing):
        """True seafloor depth (positive down) at local easting/northing."""
        c = self.config
        r2 = easting ** 2 + northing ** 2
        mound = c.mound_height * np.exp(-r2 / (2.0 * c.mound_sigma ** 2))
        return c.base_depth + c.slope_east * easting - mound

    def generate(self) -> List[SwathFile]:
        """Generate all survey lines."""
        c = self.config
        files = []
        first_line = -0.5 * c.line_spacing * (c.num_lines - 1)
        for line in range(c.num_lines):
            heading = 0.0 if line % 2 == 0 else 180.0
            easting = first_line + line * c.line_spacing
            files.append(self._generate_line(line, easting, heading))

        if c.num_spikes > 0:
            self._add_spikes(files)

        total = sum(p.num_beams for f in files for p in f.pings)
        logger.info(
            f"Generated {len(files)} synthetic lines, {total} soundings, "
            f"roll bias {c.roll_bias:.2f} deg"
        )
        return files

    def _generate_line(self, line: int, easting: float, heading: float) -> SwathFile:
        c = self.config
        mtodeglon, mtodeglat = coor_scale(c.ref_lat)
        direction = 1.0 if heading == 0.0 else -1.0
        # Starboard points east when heading north
        starboard = direction

        length = c.num_pings * c.ping_interval * c.speed
        beam_angles = np.deg2rad(np.linspace(-c.swath_angle, c.swath_angle, c.num_beams))
        t0 = 1.7e9 + line * 3600.0

        pings = []
        for i in range(c.num_pings):
            t = t0 + i * c.ping_interval
            northing = direction * (-0.5 * length + i * c.ping_interval * c.speed)
            roll = c.roll_amplitude * np.sin(2.0 * np.pi * i / 12.0)

            # True ray intersection with the seafloor, refined by fixed point
            zr = self.seafloor_depth(easting, northing) - c.sonar_depth
            zr = np.full(c.num_beams, zr)
            for _ in range(10):
                x = zr * np.tan(beam_angles)
                zr = self.seafloor_depth(easting + starboard * x, northing) - c.sonar_depth
            x = zr * np.tan(beam_angles)
            rng = np.sqrt(x ** 2 + zr ** 2)

            recorded = beam_angles + np.deg2rad(c.roll_bias)
            acrosstrack = rng * np.sin(recorded)
            bath = c.sonar_depth + rng * np.cos(recorded)
            if c.noise_std > 0:
                bath = bath + self.rng.normal(0.0, c.noise_std, c.num_beams)

            nadir = float(self.seafloor_depth(easting, northing))
            pings.append(Ping(
                time_d=t,
                navlon=c.ref_lon + mtodeglon * easting,
                navlat=c.ref_lat + mtodeglat * northing,
                heading=heading,
                roll=roll,
                pitch=0.0,
                sonar_depth=c.sonar_depth,
                altitude=nadir - c.sonar_depth,
                bath=bath,
                acrosstrack=acrosstrack,
                alongtrack=np.zeros(c.num_beams),
                beamflag=np.full(c.num_beams, BeamFlag.OK, dtype=np.int8),
            ))

        swath = SwathFile(
            name=f"synthetic_line_{line:02d}",
            pings=pings,
            beamwidth_xtrack=c.beamwidth,
            beamwidth_ltrack=c.beamwidth,
        )
        if c.with_async:
            times = np.array([p.time_d for p in pings])
            swath.async_heading = AsyncSeries(times, [p.heading for p in pings], angular=True)
            swath.async_sonar_depth = AsyncSeries(times, [p.sonar_depth for p in pings])
            swath.async_attitude = AsyncSeries(
                times, np.column_stack([[p.roll for p in pings], [p.pitch for p in pings]])
            )
        return swath

    def _add_spikes(self, files: List[SwathFile]):
        """Lift randomly chosen soundings well above the seafloor."""
        c = self.config
        for _ in range(c.num_spikes):
            swath = files[self.rng.integers(len(files))]
            ping = swath.pings[self.rng.integers(swath.num_pings)]
            beam = int(self.rng.integers(ping.num_beams))
            # Shorten the ray so the spike stays in the beam direction
            zr = ping.bath[beam] - ping.sonar_depth
            scale = max(zr - c.spike_height, 0.1 * zr) / zr
            ping.bath[beam] = ping.sonar_depth + zr * scale
            ping.acrosstrack[beam] *= scale
            ping.bathcorr[beam] = ping.bath[beam]
