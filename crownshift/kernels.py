"""
Kernel geometry for the adaptive crown kernel.

The kernel is a vertical cylinder centered on the current mode estimate. Points
inside it are weighted by an asymmetric Epanechnikov profile along Z and a
Gaussian profile in the horizontal plane. All functions accept scalars or numpy
arrays for the point coordinates and broadcast like numpy ufuncs.
"""

import numpy as np


def in_cylinder(points, radius, height, center):
    """
    Test whether points lie inside a vertical cylinder.

    Args:
        points: Array of shape (3,) or (N, 3)
        radius: Cylinder radius
        height: Cylinder height, split evenly above and below the center
        center: Cylinder center (x, y, z)

    Returns:
        Boolean (or boolean array of shape (N,))
    """
    points = np.asarray(points, dtype=float)
    cx, cy, cz = center
    dx = points[..., 0] - cx
    dy = points[..., 1] - cy
    z = points[..., 2]
    return ((dx * dx + dy * dy <= radius * radius)
            & (z >= cz - 0.5 * height)
            & (z <= cz + 0.5 * height))


def vertical_distance(height, center_z, point_z):
    """
    Normalized distance to the nearer edge of the vertical support window.

    The window spans [center_z - height/4, center_z + height/2] and distances
    are scaled by half its length (3*height/8), so the window midpoint sits at
    distance 1.
    """
    scale = 3.0 * height / 8.0
    bottom = np.abs((center_z - height / 4.0 - point_z) / scale)
    top = np.abs((center_z + height / 2.0 - point_z) / scale)
    return np.minimum(bottom, top)


def vertical_mask(height, center_z, point_z):
    """1 inside [center_z - height/4, center_z + height/2], else 0."""
    point_z = np.asarray(point_z, dtype=float)
    inside = (point_z >= center_z - height / 4.0) & (point_z <= center_z + height / 2.0)
    return inside.astype(float)


def epanechnikov_weight(height, center_z, point_z):
    """
    Vertical Epanechnikov-shaped weight in [0, 1].

    Zero outside the vertical mask. Inside the window the weight rises from 0 at
    both edges to 1 at the window midpoint (center_z + height/8), so the kernel
    favours points slightly above its center.
    """
    dist = vertical_distance(height, center_z, point_z)
    return vertical_mask(height, center_z, point_z) * (1.0 - (1.0 - dist) ** 2)


def gauss_weight(width, center_x, center_y, point_x, point_y):
    """
    Horizontal Gaussian weight in (0, 1].

    Uses a fixed shape exp(-5 * (d / width)^2) where d is the planar distance to
    the kernel center. Not normalized.
    """
    dx = np.asarray(point_x, dtype=float) - center_x
    dy = np.asarray(point_y, dtype=float) - center_y
    norm_distance = np.sqrt(dx * dx + dy * dy) / width
    return np.exp(-5.0 * norm_distance ** 2)


def kernel_weight(points, width, height, center):
    """
    Combined per-neighbor weight (vertical Epanechnikov times horizontal Gauss).

    Args:
        points: Array of shape (N, 3)
        width: Kernel diameter used as Gaussian bandwidth
        height: Kernel height
        center: Kernel center (x, y, z)

    Returns:
        Array of weights of shape (N,)
    """
    points = np.asarray(points, dtype=float)
    cx, cy, cz = center
    vertical = epanechnikov_weight(height, cz, points[..., 2])
    horizontal = gauss_weight(width, cx, cy, points[..., 0], points[..., 1])
    return vertical * horizontal
