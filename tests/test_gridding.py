"""
Tests for the grid accumulator and footprint weighting.
"""
import numpy as np
import pytest

from gridding import (
    NODATA,
    BeamContext,
    Footprint,
    FootprintUse,
    GridAccumulator,
    bin_weight,
    cell_use,
    compute_footprint,
)


@pytest.fixture
def grid():
    """Simple 11 x 11 grid with unit cells over (0, 0) - (10, 10)."""
    return GridAccumulator(0.0, 0.0, 10.0, 10.0, 1.0, algorithm="simple")


class TestGridSetup:
    """Grid dimensions and cell location."""

    def test_dimensions(self, grid):
        assert grid.shape == (11, 11)
        assert grid.xmax == 10.0

    def test_upper_bound_snapped(self):
        g = GridAccumulator(0.0, 0.0, 10.5, 7.2, 2.0)
        assert g.n_columns == 6
        assert g.n_rows == 4
        assert g.xmax == 10.0
        assert g.ymax == 6.0

    def test_locate(self, grid):
        assert grid.locate(2.3, 4.7) == (2, 5)
        assert grid.locate(10.4, 10.4) == (10, 10)
        assert grid.locate(10.6, 5.0) is None
        assert grid.locate(-0.6, 5.0) is None
        assert grid.locate(np.nan, 5.0) is None

    def test_invalid_cell_size(self):
        with pytest.raises(ValueError):
            GridAccumulator(0.0, 0.0, 10.0, 10.0, 0.0)


class TestSimpleMode:
    """Point binning."""

    def test_single_sounding(self, grid):
        touched = grid.grid_beam(2.3, 4.7, 5.0, weight_sign=1, apply_now=True)
        assert len(touched) == 1
        assert grid.weight[2, 5] == 1.0
        assert grid.value[2, 5] == -5.0
        assert grid.sigma[2, 5] == 0.0
        assert grid.value[3, 5] == NODATA

    def test_mean_and_sigma(self, grid):
        grid.grid_beam(2.0, 2.0, 4.0)
        grid.grid_beam(2.1, 2.1, 6.0)
        grid.recompute(2, 2)
        assert grid.value[2, 2] == pytest.approx(-5.0)
        assert grid.sigma[2, 2] == pytest.approx(1.0)

    def test_incremental_equivalence(self, grid):
        grid.contribute(3, 3, 3.0, 1)
        before = (grid.sum[3, 3], grid.weight[3, 3], grid.sigma_sum[3, 3])
        grid.contribute(3, 3, 5.0, 1)
        grid.contribute(3, 3, 5.0, -1)
        after = (grid.sum[3, 3], grid.weight[3, 3], grid.sigma_sum[3, 3])
        assert after == before

    def test_fractional_add_remove_from_empty(self, grid):
        grid.contribute(4, 4, 47.3, 1, 0.3717)
        grid.contribute(4, 4, 47.3, -1, 0.3717)
        assert grid.sum[4, 4] == 0.0
        assert grid.weight[4, 4] == 0.0
        assert grid.sigma_sum[4, 4] == 0.0

    def test_weight_never_negative(self, grid):
        rng = np.random.default_rng(3)
        depths = rng.uniform(10.0, 60.0, 20)
        weights = rng.uniform(0.01, 1.0, 20)
        for d, w in zip(depths, weights):
            grid.contribute(6, 6, d, 1, w)
        for n in rng.permutation(20):
            grid.contribute(6, 6, depths[n], -1, weights[n])
            assert grid.weight[6, 6] >= 0.0
        assert grid.weight[6, 6] == 0.0
        grid.recompute(6, 6)
        assert grid.value[6, 6] == NODATA
        assert grid.sigma[6, 6] == NODATA

    def test_recompute_idempotent(self, grid):
        grid.grid_beam(5.0, 5.0, 12.5)
        grid.grid_beam(5.2, 4.9, 13.1)
        grid.recompute(5, 5)
        first = (grid.value[5, 5], grid.sigma[5, 5])
        grid.recompute(5, 5)
        assert (grid.value[5, 5], grid.sigma[5, 5]) == first

    def test_removal_touches_same_cell(self, grid):
        grid.grid_beam(7.0, 1.0, 20.0, apply_now=True)
        grid.grid_beam(7.0, 1.0, 20.0, weight_sign=-1, apply_now=True)
        assert grid.weight[7, 1] == 0.0
        assert grid.value[7, 1] == NODATA

    def test_recompute_all_ranges(self, grid):
        grid.grid_beam(1.0, 1.0, 10.0)
        grid.grid_beam(8.0, 8.0, 30.0)
        grid.recompute_all()
        assert grid.min_value == -30.0
        assert grid.max_value == -10.0
        assert grid.num_cells_with_data == 2

    def test_outside_sounding_ignored(self, grid):
        touched = grid.grid_beam(50.0, 50.0, 10.0)
        assert len(touched) == 0
        assert grid.num_cells_with_data == 0


class TestShoalMode:
    """Shallowest sounding per cell."""

    def test_keeps_shallowest(self):
        g = GridAccumulator(0.0, 0.0, 10.0, 10.0, 1.0, algorithm="shoal")
        g.grid_beam(3.0, 3.0, 5.0)
        g.grid_beam(3.0, 3.0, 3.0)
        g.grid_beam(3.0, 3.0, 7.0)
        g.recompute_all()
        assert g.value[3, 3] == -3.0
        assert g.weight[3, 3] == 1.0
        assert g.sigma[3, 3] == 0.0

    def test_removal_not_supported(self):
        g = GridAccumulator(0.0, 0.0, 10.0, 10.0, 1.0, algorithm="shoal")
        assert not g.supports_removal
        with pytest.raises(ValueError):
            g.grid_beam(3.0, 3.0, 5.0, weight_sign=-1)


class TestFootprint:
    """Footprint geometry and weights."""

    def test_nadir_footprint(self):
        fp = compute_footprint(0.0, 0.0, 50.0, 0.0, 0.0, 0.0, 50.0, 2.0, 2.0, 1.0, 1.0)
        assert fp is not None
        assert (fp.dxn, fp.dyn) == (1.0, 0.0)
        assert fp.hwidth == pytest.approx(50.0 * np.tan(np.deg2rad(1.0)))
        assert fp.hlength == pytest.approx(50.0 * np.tan(np.deg2rad(1.0)))

    def test_outer_beam_footprint(self):
        fp = compute_footprint(20.0, 0.0, 50.0, 0.0, 0.0, 0.0, 50.0, 2.0, 2.0, 0.5, 0.5)
        theta = np.arctan2(20.0, 50.0)
        assert fp.hwidth == pytest.approx(50.0 * np.tan(theta + np.deg2rad(1.0)) - 20.0)
        assert fp.hlength == pytest.approx(np.sqrt(20.0 ** 2 + 50.0 ** 2) * np.tan(np.deg2rad(1.0)))

    def test_zero_beamwidth_defaults(self):
        fp = compute_footprint(0.0, 0.0, 50.0, 0.0, 0.0, 0.0, 50.0, 0.0, 0.0, 1.0, 1.0)
        assert fp.hwidth == pytest.approx(50.0 * np.tan(np.deg2rad(1.0)))

    def test_weight_decreases_with_distance(self):
        fp = Footprint(hwidth=1.0, hlength=0.5, dxn=1.0, dyn=0.0, dix=4, diy=4)
        distances = np.linspace(5.0, 0.0, 51)
        for direction in ((1.0, 0.0), (0.0, 1.0), (np.sqrt(0.5), np.sqrt(0.5))):
            weight, _ = cell_use(fp, distances * direction[0], distances * direction[1], 0.5, 0.5)
            assert np.all(np.diff(weight) >= 0.0)

    def test_rotated_footprint_monotonic(self):
        fp = Footprint(hwidth=1.2, hlength=0.6, dxn=0.6, dyn=0.8, dix=4, diy=4)
        distances = np.linspace(4.0, 0.0, 41)
        weight, _ = cell_use(fp, 0.6 * distances, 0.8 * distances, 0.5, 0.5)
        assert np.all(np.diff(weight) >= 0.0)

    def test_bin_weight_bounds(self):
        w = bin_weight(0.0, 0.0, 100.0, 100.0, 1.0, 1.0)
        assert w == pytest.approx(1.0)
        assert bin_weight(50.0, 0.0, 0.5, 0.5, 1.0, 1.0) == pytest.approx(0.0)

    def test_acceptance(self):
        fp = Footprint(hwidth=1.0, hlength=1.0, dxn=1.0, dyn=0.0, dix=4, diy=4)
        _, use = cell_use(fp, np.array([0.0, 1.6, 10.0]), np.zeros(3), 1.0, 1.0)
        assert use[0] == FootprintUse.YES
        assert use[1] == FootprintUse.CONDITIONAL
        assert use[2] == FootprintUse.NO

    def test_conditional_cells_not_contributed(self):
        g = GridAccumulator(-10.0, -10.0, 40.0, 10.0, 0.5, algorithm="footprint")
        context = BeamContext(0.0, 0.0, 0.0, 50.0, 2.0, 2.0)
        fp = compute_footprint(20.0, 0.0, 50.0, 0.0, 0.0, 0.0, 50.0, 2.0, 2.0, 0.5, 0.5)
        i0, j0 = g.locate(20.0, 0.0)
        ii, jj = np.meshgrid(
            np.arange(i0 - fp.dix, i0 + fp.dix + 1),
            np.arange(j0 - fp.diy, j0 + fp.diy + 1),
            indexing='ij',
        )
        ii, jj = ii.ravel(), jj.ravel()
        xx = g.xmin + ii * g.dx + 0.5 * g.dx - 20.0
        yy = g.ymin + jj * g.dy + 0.5 * g.dy - 0.0
        _, use = cell_use(fp, xx, yy, g.dx, g.dy)
        assert np.any(use == FootprintUse.CONDITIONAL)

        touched = g.grid_beam(20.0, 0.0, 50.0, 1, context)
        yes = use == FootprintUse.YES
        expected = set(zip(ii[yes].tolist(), jj[yes].tolist()))
        assert set(zip(touched.i.tolist(), touched.j.tolist())) == expected
        conditional = use == FootprintUse.CONDITIONAL
        assert np.all(g.weight[ii[conditional], jj[conditional]] == 0.0)

    def test_footprint_centered_outside_grid(self):
        g = GridAccumulator(0.0, 0.0, 10.0, 10.0, 0.5, algorithm="footprint")
        context = BeamContext(0.0, 5.0, 0.0, 50.0, 2.0, 2.0)
        touched = g.grid_beam(10.6, 5.0, 50.0, 1, context)
        assert len(touched) == 0
        assert g.num_cells_with_data == 0

    def test_footprint_grid_reversible(self):
        g = GridAccumulator(-10.0, -10.0, 40.0, 10.0, 0.5, algorithm="footprint")
        context = BeamContext(
            navx=0.0, navy=0.0, sonar_depth=0.0, altitude=50.0,
            beamwidth_xtrack=2.0, beamwidth_ltrack=2.0,
        )
        touched = g.grid_beam(20.0, 0.0, 50.0, 1, context, apply_now=True)
        assert len(touched) > 1
        assert np.all(touched.weight > 0.0)
        assert np.all(touched.weight <= 1.0)
        np.testing.assert_allclose(g.value[touched.i, touched.j], -50.0)

        again = g.grid_beam(20.0, 0.0, 50.0, -1, context, apply_now=True)
        np.testing.assert_array_equal(again.i, touched.i)
        assert np.all(g.weight == 0.0)
        assert np.all(g.sum == 0.0)

    def test_footprint_ignored_for_non_multibeam(self):
        g = GridAccumulator(-10.0, -10.0, 40.0, 10.0, 0.5, algorithm="footprint")
        context = BeamContext(0.0, 0.0, 0.0, 50.0, 2.0, 2.0, multibeam=False)
        touched = g.grid_beam(20.0, 0.0, 50.0, 1, context)
        assert len(touched) == 1
        assert touched.weight[0] == 1.0
