import numpy as np
import pytest

from crownshift import (CentroidResult, ConfigurationError, EmptyNeighborhoodError, KernelParams,
                        OutOfBoundsVoxelError, PointCloud, classical_mean_shift, voxel_mean_shift)
from crownshift.convergence import ConvergenceLoop
from crownshift.engines import ClassicalNeighborSource, VoxelEngine
from crownshift.kernels import kernel_weight


def make_cluster(center, n=60, spread=2.0, seed=0):
    rng = np.random.default_rng(seed)
    return np.asarray(center) + rng.uniform(-spread, spread, size=(n, 3))


def never(new_center, old_center):
    return False


# Center point plus two neighbors just inside and two just outside radius 2.5
BOUNDARY_CLOUD = np.array([
    [50.0, 50.0, 10.0],
    [52.4, 50.0, 10.0],
    [50.0, 47.6, 10.0],
    [47.4, 50.0, 10.0],
    [50.0, 52.6, 10.0],
])


def test_boundary_membership_uniform():
    table = classical_mean_shift(BOUNDARY_CLOUD, 0.5, 1.0, uniform_kernel=True, max_iterations=1)
    assert table[0].ctr_x == pytest.approx((50.0 + 52.4 + 50.0) / 3)
    assert table[0].ctr_y == pytest.approx((50.0 + 50.0 + 47.6) / 3)
    assert table[0].ctr_z == pytest.approx(10.0)


def test_boundary_membership_weighted():
    table = classical_mean_shift(BOUNDARY_CLOUD, 0.5, 1.0, max_iterations=1)
    inside = BOUNDARY_CLOUD[:3]
    w = kernel_weight(inside, 5.0, 10.0, BOUNDARY_CLOUD[0])
    expected = (w @ inside) / w.sum()
    np.testing.assert_allclose(table.centroids[0], expected)


def test_uniform_kernel_is_arithmetic_mean():
    cloud = np.array([
        [10.0, 10.0, 20.0],
        [11.0, 10.0, 20.0],
        [10.0, 12.0, 20.0],
        [9.0, 9.0, 21.0],
        [40.0, 40.0, 20.0],
    ])
    table = classical_mean_shift(cloud, 0.5, 0.5, uniform_kernel=True, max_iterations=1)
    np.testing.assert_allclose(table.centroids[0], [10.0, 10.25, 20.25])
    # the isolated point only sees itself
    np.testing.assert_array_equal(table.centroids[4], cloud[4])


def test_isolated_point_is_its_own_centroid():
    cloud = np.array([[5.0, 5.0, 12.0], [80.0, 80.0, 15.0]])
    table = classical_mean_shift(cloud, 0.3, 0.5, uniform_kernel=True)
    np.testing.assert_array_equal(table.centroids, cloud)
    assert table.iterations.tolist() == [1, 1]
    assert table.converged.all()

    weighted = classical_mean_shift(cloud, 0.3, 0.5)
    np.testing.assert_allclose(weighted.centroids, cloud)


def test_single_cluster_converges_to_one_apex():
    cloud = make_cluster((50.0, 50.0, 20.0), spread=1.0)
    table = classical_mean_shift(cloud, 0.5, 0.5, uniform_kernel=True)
    assert table.converged.all()
    assert np.all(table.centroids == table.centroids[0])
    np.testing.assert_allclose(table.centroids[0], cloud.mean(axis=0))


def test_converged_centroid_is_stable():
    cloud = make_cluster((50.0, 50.0, 20.0), spread=1.0)
    params = KernelParams(0.5, 0.5, uniform_kernel=True)
    table = classical_mean_shift(cloud, 0.5, 0.5, uniform_kernel=True)
    loop = ConvergenceLoop(ClassicalNeighborSource(cloud), params)
    for centroid in table.centroids[table.converged]:
        outcome = loop.run(centroid)
        assert outcome.iterations <= 1
        np.testing.assert_array_equal(outcome.center, centroid)


def test_two_crowns_separate():
    tree_a = make_cluster((20.0, 20.0, 18.0), n=40, spread=1.5, seed=1)
    tree_b = make_cluster((70.0, 70.0, 22.0), n=40, spread=1.5, seed=2)
    cloud = np.vstack((tree_a, tree_b))
    table = classical_mean_shift(cloud, 0.4, 0.6, max_iterations=50)
    dist_a = np.linalg.norm(table.centroids[:40, :2] - [20.0, 20.0], axis=1)
    dist_b = np.linalg.norm(table.centroids[40:, :2] - [70.0, 70.0], axis=1)
    assert np.all(dist_a < 3.0)
    assert np.all(dist_b < 3.0)


def test_iteration_cap_is_exact():
    cloud = make_cluster((30.0, 30.0, 15.0), n=20)
    table = classical_mean_shift(cloud, 0.5, 0.5, max_iterations=7, converged=never)
    assert table.iterations.tolist() == [7] * 20
    assert not table.converged.any()
    assert np.all(np.isfinite(table.centroids))


def test_empty_neighborhood_propagates():
    cloud = np.array([[5.0, 5.0, 12.0], [5.5, 5.0, 12.5], [30.0, 30.0, -1.0]])
    table = classical_mean_shift(cloud, 0.5, 0.5)
    assert np.all(np.isfinite(table.centroids[:2]))
    assert np.all(np.isnan(table.centroids[2]))
    assert table.iterations[2] == 20
    assert not table.converged[2]
    assert table.summary()['non_finite'] == 1


def test_empty_neighborhood_raises():
    cloud = np.array([[5.0, 5.0, 12.0], [30.0, 30.0, -1.0]])
    with pytest.raises(EmptyNeighborhoodError) as excinfo:
        classical_mean_shift(cloud, 0.5, 0.5, on_empty="raise")
    assert excinfo.value.index == 1


def test_output_aligned_with_input():
    cloud = make_cluster((40.0, 40.0, 20.0), n=15)
    table = classical_mean_shift(PointCloud(cloud), 0.5, 0.5)
    assert len(table) == 15
    np.testing.assert_array_equal(table.points, cloud)
    record = table[3]
    assert isinstance(record, CentroidResult)
    assert (record.x, record.y, record.z) == tuple(cloud[3])
    assert table.as_array().shape == (15, 6)


def test_empty_cloud():
    assert len(classical_mean_shift(np.empty((0, 3)), 0.5, 0.5)) == 0
    assert len(voxel_mean_shift(np.empty((0, 3)), 0.5, 0.5)) == 0


def test_parallel_matches_sequential():
    cloud = np.vstack((make_cluster((20.0, 20.0, 18.0), n=25, seed=3),
                       make_cluster((35.0, 30.0, 25.0), n=25, seed=4)))
    sequential = classical_mean_shift(cloud, 0.4, 0.6)
    parallel = classical_mean_shift(cloud, 0.4, 0.6, n_jobs=2)
    np.testing.assert_array_equal(parallel.centroids, sequential.centroids)
    np.testing.assert_array_equal(parallel.iterations, sequential.iterations)

    sequential = voxel_mean_shift(cloud, 0.4, 0.6)
    parallel = voxel_mean_shift(cloud, 0.4, 0.6, n_jobs=2)
    np.testing.assert_array_equal(parallel.centroids, sequential.centroids)


def test_voxel_uniform_count_weighted_mean():
    cloud = np.array([
        [10.2, 10.7, 20.1],
        [10.9, 10.1, 20.6],
        [12.5, 10.5, 20.5],
    ])
    table = voxel_mean_shift(cloud, 0.5, 0.5, uniform_kernel=True, max_iterations=1)
    np.testing.assert_allclose(table.centroids[0], [32.0 / 3.0, 10.0, 20.0])


def test_voxel_grid_upper_bound_is_inclusive():
    cloud = np.array([[100.0, 50.0, 30.0], [99.5, 50.5, 30.5]])
    table = voxel_mean_shift(cloud, 0.5, 0.5, max_x=100)
    assert len(table) == 2
    assert np.all(np.isfinite(table.centroids))


def test_voxel_out_of_bounds_point():
    cloud = np.array([[50.0, 50.0, 30.0], [101.0, 50.0, 30.0]])
    with pytest.raises(OutOfBoundsVoxelError):
        voxel_mean_shift(cloud, 0.5, 0.5, max_x=100)


def test_voxel_clip_policies_differ_at_top_layer():
    cloud = np.array([[9.2, 5.5, 10.5], [10.7, 5.5, 10.5]])
    kwargs = dict(uniform_kernel=True, max_iterations=1, max_x=10, max_y=10, max_z=20)
    inclusive = voxel_mean_shift(cloud, 0.5, 0.5, clip_policy="inclusive", **kwargs)
    legacy = voxel_mean_shift(cloud, 0.5, 0.5, clip_policy="legacy", **kwargs)
    np.testing.assert_allclose(inclusive.centroids[0], [9.5, 5.0, 10.0])
    np.testing.assert_allclose(legacy.centroids[0], [9.0, 5.0, 10.0])


def test_voxel_engine_keeps_grid():
    cloud = make_cluster((40.0, 40.0, 20.0), n=30)
    engine = VoxelEngine(KernelParams(0.5, 0.5))
    engine.run(cloud)
    assert engine.grid.n_points == 30


@pytest.mark.parametrize("uniform", [True, False])
def test_classical_and_voxel_agree_within_one_voxel(uniform):
    cloud = make_cluster((42.0, 42.0, 20.0), n=400, spread=2.0, seed=5)
    classical = classical_mean_shift(cloud, 1.0, 1.0, uniform_kernel=uniform, max_iterations=50)
    voxel = voxel_mean_shift(cloud, 1.0, 1.0, uniform_kernel=uniform, max_iterations=50)
    assert np.all(np.abs(classical.centroids - voxel.centroids) <= 1.0)


@pytest.mark.parametrize("call", [
    lambda c: classical_mean_shift(c, 0.0, 0.5),
    lambda c: classical_mean_shift(c, 0.5, -1.0),
    lambda c: classical_mean_shift(c, 0.5, 0.5, max_iterations=-1),
    lambda c: classical_mean_shift(c, 0.5, 0.5, on_empty="skip"),
    lambda c: classical_mean_shift(c, 0.5, 0.5, n_jobs=0),
    lambda c: classical_mean_shift(c[:, :2], 0.5, 0.5),
    lambda c: voxel_mean_shift(c, 0.5, 0.5, max_x=0),
    lambda c: voxel_mean_shift(c, 0.5, 0.5, max_z=-5),
    lambda c: voxel_mean_shift(c, 0.5, 0.5, clip_policy="wrap"),
])
def test_configuration_errors(call):
    with pytest.raises(ConfigurationError):
        call(make_cluster((40.0, 40.0, 20.0), n=5))
