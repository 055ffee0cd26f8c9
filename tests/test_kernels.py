import numpy as np
import pytest

from crownshift.kernels import (epanechnikov_weight, gauss_weight, in_cylinder, kernel_weight,
                                vertical_distance, vertical_mask)


CENTER = (0.0, 0.0, 10.0)


def test_in_cylinder_radius_edge():
    assert in_cylinder([2.4, 0.0, 10.0], 2.5, 10.0, CENTER)
    assert in_cylinder([2.5, 0.0, 10.0], 2.5, 10.0, CENTER)
    assert not in_cylinder([2.6, 0.0, 10.0], 2.5, 10.0, CENTER)


def test_in_cylinder_height_edge():
    assert in_cylinder([0.0, 0.0, 15.0], 2.5, 10.0, CENTER)
    assert in_cylinder([0.0, 0.0, 5.0], 2.5, 10.0, CENTER)
    assert not in_cylinder([0.0, 0.0, 15.01], 2.5, 10.0, CENTER)
    assert not in_cylinder([0.0, 0.0, 4.99], 2.5, 10.0, CENTER)


def test_in_cylinder_vectorized():
    points = np.array([[0.0, 0.0, 10.0], [3.0, 0.0, 10.0], [1.0, 1.0, 12.0]])
    assert in_cylinder(points, 2.5, 10.0, CENTER).tolist() == [True, False, True]


@pytest.mark.parametrize("dx, dy", [(0.0, 0.0), (10.0, -3.5), (-250.25, 1e3)])
def test_in_cylinder_horizontal_translation(dx, dy):
    rng = np.random.default_rng(7)
    points = rng.uniform(-4, 4, size=(200, 3)) + [0.0, 0.0, 10.0]
    center = np.array([0.5, -0.5, 10.0])
    shift = np.array([dx, dy, 0.0])
    expected = in_cylinder(points, 2.5, 6.0, center)
    assert np.array_equal(in_cylinder(points + shift, 2.5, 6.0, center + shift), expected)


def test_vertical_distance_at_center_and_midpoint():
    height, center_z = 8.0, 10.0
    assert vertical_distance(height, center_z, center_z) == pytest.approx(2.0 / 3.0)
    # midpoint of the support window [8, 14]
    assert vertical_distance(height, center_z, 11.0) == pytest.approx(1.0)
    assert vertical_distance(height, center_z, 8.0) == pytest.approx(0.0)
    assert vertical_distance(height, center_z, 14.0) == pytest.approx(0.0)


def test_vertical_mask_is_asymmetric():
    height, center_z = 8.0, 10.0
    assert vertical_mask(height, center_z, 8.0) == 1.0
    assert vertical_mask(height, center_z, 14.0) == 1.0
    assert vertical_mask(height, center_z, 7.9) == 0.0
    assert vertical_mask(height, center_z, 14.1) == 0.0


def test_epanechnikov_peaks_at_window_midpoint():
    assert epanechnikov_weight(8.0, 10.0, 11.0) == 1.0
    assert epanechnikov_weight(8.0, 10.0, 10.0) == pytest.approx(8.0 / 9.0)


def test_epanechnikov_range_and_support():
    z = np.linspace(0.0, 20.0, 401)
    w = epanechnikov_weight(8.0, 10.0, z)
    assert np.all((w >= 0.0) & (w <= 1.0))
    assert np.all(w[(z < 8.0) | (z > 14.0)] == 0.0)
    assert np.all(w[(z > 8.0) & (z < 14.0)] > 0.0)


def test_gauss_weight_full_at_center():
    assert gauss_weight(5.0, 3.0, 4.0, 3.0, 4.0) == 1.0


def test_gauss_weight_strictly_decreasing():
    distances = np.array([0.0, 0.5, 1.0, 2.0, 4.0, 8.0])
    w = gauss_weight(3.0, 0.0, 0.0, distances, np.zeros_like(distances))
    assert np.all(np.diff(w) < 0)
    assert np.all(w > 0)


def test_gauss_weight_at_bandwidth():
    assert gauss_weight(2.0, 0.0, 0.0, 0.0, 2.0) == pytest.approx(np.exp(-5.0))


def test_kernel_weight_is_product():
    points = np.array([[1.0, 0.5, 11.0], [0.0, 0.0, 9.0], [2.0, 2.0, 20.0]])
    w = kernel_weight(points, 5.0, 8.0, CENTER)
    expected = (epanechnikov_weight(8.0, 10.0, points[:, 2])
                * gauss_weight(5.0, 0.0, 0.0, points[:, 0], points[:, 1]))
    np.testing.assert_allclose(w, expected)
    assert w[2] == 0.0
