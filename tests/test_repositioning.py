"""
Tests for attitude math and beam repositioning.
"""
import numpy as np
import pytest

from data import BeamFlag, BiasParameters, GeometryError, coor_scale
from geometry import (
    attitude_offset_corrected_by_nav,
    reposition,
    reposition_ping,
    rotate_beam,
    snell_correction,
    update_ping,
)


class TestAttitudeOffset:
    """Combined attitude offsets."""

    def test_zero_bias_unchanged_attitude(self):
        roll, pitch, heading = attitude_offset_corrected_by_nav(
            3.0, 2.0, 0.0, 0.0, 0.0, 0.0, 3.0, 2.0, 45.0
        )
        assert roll == pytest.approx(0.0, abs=1e-9)
        assert pitch == pytest.approx(0.0, abs=1e-9)
        assert heading == pytest.approx(45.0)

    def test_roll_bias_without_pitch(self):
        roll, pitch, heading = attitude_offset_corrected_by_nav(
            4.0, 0.0, 0.0, 1.5, 0.0, 0.0, 4.0, 0.0, 120.0
        )
        assert roll == pytest.approx(1.5)
        assert pitch == pytest.approx(0.0, abs=1e-9)
        assert heading == pytest.approx(120.0)

    def test_heading_bias(self):
        _, _, heading = attitude_offset_corrected_by_nav(
            0.0, 0.0, 0.0, 0.0, 0.0, 2.0, 0.0, 0.0, 359.0
        )
        assert heading == pytest.approx(1.0)

    def test_new_attitude_difference(self):
        roll, pitch, _ = attitude_offset_corrected_by_nav(
            1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 3.0, 0.0, 0.0
        )
        assert roll == pytest.approx(2.0)
        assert pitch == pytest.approx(0.0, abs=1e-9)


class TestRotateBeam:
    """Rotation into easting/northing/depth."""

    def test_heading_north(self):
        e, n, z = rotate_beam(10.0, 5.0, 50.0, 0.0, 0.0, 0.0)
        assert (e, n, z) == pytest.approx((10.0, 5.0, 50.0))

    def test_heading_east(self):
        e, n, z = rotate_beam(10.0, 0.0, 50.0, 0.0, 0.0, 90.0)
        assert e == pytest.approx(0.0, abs=1e-9)
        assert n == pytest.approx(-10.0)
        assert z == pytest.approx(50.0)

    def test_roll_moves_nadir_to_port(self):
        e, _, z = rotate_beam(0.0, 0.0, 50.0, 1.0, 0.0, 0.0)
        assert e == pytest.approx(-50.0 * np.sin(np.deg2rad(1.0)))
        assert z == pytest.approx(50.0 * np.cos(np.deg2rad(1.0)))


class TestSnellCorrection:
    """Sound speed ratio correction."""

    def test_unit_ratio_is_exact_noop(self):
        x = np.array([-30.0, 0.0, 30.0])
        y = np.array([1.0, 0.0, -1.0])
        z = np.array([45.0, 50.0, 45.0])
        cx, cy, cz = snell_correction(x, y, z, 2.5, 1.0)
        assert cx is x and cy is y and cz is z

    def test_nadir_unchanged(self):
        x, y, z = snell_correction(0.0, 0.0, 50.0, 0.0, 1.02)
        assert float(x) == pytest.approx(0.0, abs=1e-9)
        assert float(z) == pytest.approx(50.0)

    def test_refracts_outer_beam(self):
        angle = np.deg2rad(45.0)
        x, _, z = snell_correction(50.0 * np.sin(angle), 0.0, 50.0 * np.cos(angle), 0.0, 1.05)
        corrected = np.arcsin(1.05 * np.sin(angle))
        assert float(x) == pytest.approx(50.0 * np.sin(corrected))
        assert float(z) == pytest.approx(50.0 * np.cos(corrected))

    def test_degenerate_range(self):
        x, y, z = snell_correction(0.0, 0.0, 0.0, 0.0, 1.05)
        assert np.all(np.isfinite([x, y, z]))


class TestReposition:
    """Full repositioning chain."""

    def test_zero_bias(self, single_ping_file):
        ping = single_ping_file.pings[0]
        result = reposition(single_ping_file, ping, 2, BiasParameters())
        mtodeglon, _ = coor_scale(ping.navlat)
        assert result.bathcorr == pytest.approx(52.0)
        assert result.lon == pytest.approx(ping.navlon + 10.0 * mtodeglon)
        assert result.lat == pytest.approx(ping.navlat)
        assert np.isnan(result.x)

    def test_unit_snell_matches_default(self, single_ping_file):
        ping = single_ping_file.pings[0]
        a = reposition_ping(single_ping_file, ping, BiasParameters())
        b = reposition_ping(single_ping_file, ping, BiasParameters(roll_bias=0.0, snell=1.0))
        np.testing.assert_array_equal(a.bathcorr, b.bathcorr)
        np.testing.assert_array_equal(a.lon, b.lon)
        np.testing.assert_array_equal(a.lat, b.lat)

    def test_roll_bias_tilts_swath(self, single_ping_file):
        ping = single_ping_file.pings[0]
        result = reposition_ping(single_ping_file, ping, BiasParameters(roll_bias=2.0))
        # Positive roll bias deepens the starboard beam and lifts the port beam
        assert result.bathcorr[2] > 52.0
        assert result.bathcorr[0] < 52.0

    def test_planar_coordinates(self, single_ping_file):
        from data import UTMProjection
        ping = single_ping_file.pings[0]
        projection = UTMProjection.for_position(ping.navlon, ping.navlat)
        result = reposition_ping(single_ping_file, ping, BiasParameters(), projection)
        assert np.all(np.isfinite(result.x))
        assert result.x[2] - result.x[0] == pytest.approx(20.0, rel=1e-2)
        assert np.isfinite(result.navx)

    def test_time_lag_uses_async_series(self, biased_survey):
        swath = biased_survey[0]
        ping = swath.pings[5]
        lagged = reposition_ping(swath, ping, BiasParameters(time_lag=1.0))
        plain = reposition_ping(swath, ping, BiasParameters())
        # Roll oscillates, so the lagged attitude differs
        assert not np.allclose(lagged.bathcorr, plain.bathcorr)

    def test_time_lag_without_series(self, single_ping_file):
        ping = single_ping_file.pings[0]
        lagged = reposition_ping(single_ping_file, ping, BiasParameters(time_lag=0.5))
        plain = reposition_ping(single_ping_file, ping, BiasParameters())
        np.testing.assert_allclose(lagged.bathcorr, plain.bathcorr)

    def test_non_finite_raises(self, single_ping_file):
        ping = single_ping_file.pings[0]
        ping.bath[1] = np.nan
        with pytest.raises(GeometryError):
            reposition(single_ping_file, ping, 1, BiasParameters())

    def test_update_ping_flags_degenerate(self, single_ping_file):
        ping = single_ping_file.pings[0]
        ping.acrosstrack[0] = np.inf
        bad = update_ping(single_ping_file, ping, BiasParameters())
        assert bad == 1
        assert ping.beamflag[0] == BeamFlag.NULL
        assert ping.beamflag[1] == BeamFlag.OK
        assert np.isfinite(ping.bathlon[1])

    def test_degenerate_beam_stays_null(self, single_ping_file):
        ping = single_ping_file.pings[0]
        ping.acrosstrack[0] = np.inf
        update_ping(single_ping_file, ping, BiasParameters())
        ping.acrosstrack[0] = -10.0
        bad = update_ping(single_ping_file, ping, BiasParameters(roll_bias=0.5))
        assert bad == 0
        assert ping.beamflag[0] == BeamFlag.NULL
        assert np.isnan(ping.bathlon[0])
        assert np.isfinite(ping.bathlon[2])
