"""
Tests for the sparse voxel filter.
"""
import numpy as np
import pytest

from data import AllocationFailure, BeamFlag, SelectedSoundingSet
from gridding import CoarseVoxel, SparseVoxelFilter, flag_sparse_voxels


def make_selection(points, flag=BeamFlag.OK):
    selection = SelectedSoundingSet()
    for n, (x, y, z) in enumerate(points):
        selection.append(0, n, 0, x, y, z, flag)
    return selection


class TestSparseVoxelFilter:
    """Flagging of sparse voxels."""

    def test_isolated_soundings_all_flagged(self):
        selection = make_selection([
            (0.0, 0.0, 0.0),
            (10.0, 0.0, 0.0),
            (20.0, 0.0, 0.0),
            (30.0, 0.0, 0.0),
        ])
        result = flag_sparse_voxels(selection, voxel_size=1.0, count_threshold=5)
        assert result.num_flagged == 4
        np.testing.assert_array_equal(result.flagged, [0, 1, 2, 3])
        assert np.all(selection.view("beamflag") == BeamFlag.MANUAL)
        assert result.num_voxels_occupied == 4

    def test_threshold_boundary(self):
        # Four soundings in one voxel, five in another far away
        points = [(0.2, 0.2, 0.2)] * 4 + [(20.2, 20.2, 20.2)] * 5
        selection = make_selection(points)
        result = flag_sparse_voxels(selection, voxel_size=1.0, count_threshold=5)
        np.testing.assert_array_equal(result.flagged, [0, 1, 2, 3])
        flags = selection.view("beamflag")
        assert np.all(flags[4:] == BeamFlag.OK)

    def test_neighbors_count_toward_threshold(self):
        # Two voxels side by side: 3 + 2 soundings reach the threshold together
        points = [(0.5, 0.5, 0.5)] * 3 + [(1.5, 0.5, 0.5)] * 2
        selection = make_selection(points)
        result = flag_sparse_voxels(selection, voxel_size=1.0, count_threshold=5)
        assert result.num_flagged == 0

    def test_neighbors_below_threshold(self):
        points = [(0.5, 0.5, 0.5)] * 2 + [(1.5, 0.5, 0.5)] * 2
        selection = make_selection(points)
        result = flag_sparse_voxels(selection, voxel_size=1.0, count_threshold=5)
        assert result.num_flagged == 4

    def test_flagged_soundings_ignored(self):
        points = [(0.5, 0.5, 0.5)] * 3 + [(1.5, 0.5, 0.5)] * 2
        selection = make_selection(points)
        selection.beamflag[3] = BeamFlag.MANUAL
        result = flag_sparse_voxels(selection, voxel_size=1.0, count_threshold=5)
        assert result.num_soundings_checked == 4
        np.testing.assert_array_equal(result.flagged, [0, 1, 2, 4])

    def test_dimensions_multiple_of_ten(self):
        selection = make_selection([(0.0, 0.0, 0.0), (23.0, 4.0, 11.0)])
        result = flag_sparse_voxels(selection, voxel_size=1.0, count_threshold=2)
        assert result.dimensions == (30, 10, 20)

    def test_empty_selection(self):
        result = flag_sparse_voxels(SelectedSoundingSet(), voxel_size=1.0, count_threshold=5)
        assert result.num_flagged == 0

    def test_invalid_voxel_size(self):
        selection = make_selection([(0.0, 0.0, 0.0)])
        with pytest.raises(ValueError):
            flag_sparse_voxels(selection, voxel_size=0.0, count_threshold=5)

    def test_dense_cluster_survives(self):
        rng = np.random.default_rng(0)
        cluster = rng.uniform(0.0, 3.0, (200, 3))
        outlier = np.array([[30.0, 30.0, 30.0]])
        selection = make_selection(np.vstack([cluster, outlier]))
        result = flag_sparse_voxels(selection, voxel_size=1.0, count_threshold=5)
        assert 200 in result.flagged
        assert result.num_flagged < 10

    def test_bucket_growth(self):
        points = [(float(i), 0.0, 0.0) for i in range(10)] * 5
        selection = make_selection(points)
        vf = SparseVoxelFilter(count_threshold=5, alloc_chunk=2)
        result = vf.run(selection, voxel_size=1.0)
        assert result.num_flagged == 0
        assert vf.buckets == {}

    def test_allocation_failure_releases_index(self, monkeypatch):
        def fail(self, chunk):
            raise MemoryError("no memory")

        monkeypatch.setattr(CoarseVoxel, "grow", fail)
        selection = make_selection([(0.5, 0.5, 0.5), (1.5, 0.5, 0.5)])
        vf = SparseVoxelFilter(count_threshold=5, alloc_chunk=1)
        with pytest.raises(AllocationFailure):
            vf.run(selection, voxel_size=1.0)
        assert vf.buckets == {}
