"""Dense 3-D occupancy histogram over unit voxels."""

import logging
import math
import numbers

import numpy as np

from .errors import ConfigurationError, OutOfBoundsVoxelError
from .utils import time_function

logger = logging.getLogger(__name__)

CLIP_POLICIES = ("inclusive", "legacy")


def check_bounds(max_x, max_y, max_z):
    """Raise ConfigurationError unless every grid bound is a positive integer."""
    for name, value in (("max_x", max_x), ("max_y", max_y), ("max_z", max_z)):
        if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value <= 0:
            raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


class VoxelGrid:
    """
    Point counts per unit voxel, indexed by floored integer coordinates.

    The grid covers [0, max_x] x [0, max_y] x [0, max_z] (bounds inclusive) and
    is stored as one flat C-ordered buffer. Build it with ``from_points``; the
    buffer is read-only afterwards.
    """

    def __init__(self, max_x=100, max_y=100, max_z=60):
        check_bounds(max_x, max_y, max_z)
        self.bounds = (int(max_x), int(max_y), int(max_z))
        self.shape = (self.bounds[0] + 1, self.bounds[1] + 1, self.bounds[2] + 1)
        self._strides = (self.shape[1] * self.shape[2], self.shape[2], 1)
        self._counts = np.zeros(self.shape[0] * self.shape[1] * self.shape[2], dtype=np.int64)
        self.n_points = 0

    @classmethod
    @time_function
    def from_points(cls, points, max_x=100, max_y=100, max_z=60):
        """
        Build a grid from an (N, 3) array of points.

        Raises:
            OutOfBoundsVoxelError: if any point floors to a voxel outside the
                grid or has a non-finite coordinate. Nothing is written then.
        """
        grid = cls(max_x, max_y, max_z)
        grid._fill(np.asarray(points, dtype=float))
        grid._counts.flags.writeable = False
        logger.debug("Voxel grid %s built from %d points, %d occupied cells",
                     grid.shape, grid.n_points, grid.occupied)
        return grid

    def _fill(self, points):
        if points.size == 0:
            return
        finite = np.isfinite(points).all(axis=1)
        if not finite.all():
            idx = int(np.flatnonzero(~finite)[0])
            raise OutOfBoundsVoxelError(idx, points[idx], (None, None, None), self.bounds)

        voxels = np.floor(points).astype(np.int64)
        outside = ((voxels < 0) | (voxels > np.asarray(self.bounds))).any(axis=1)
        if outside.any():
            idx = int(np.flatnonzero(outside)[0])
            raise OutOfBoundsVoxelError(idx, points[idx], tuple(int(v) for v in voxels[idx]), self.bounds)

        offsets = voxels @ np.asarray(self._strides, dtype=np.int64)
        self._counts += np.bincount(offsets, minlength=self._counts.size)
        self.n_points += len(points)

    @property
    def counts(self):
        """Read-only 3-D view over the count buffer."""
        view = self._counts.reshape(self.shape)
        view.flags.writeable = False
        return view

    @property
    def occupied(self):
        return int(np.count_nonzero(self._counts))

    def offset(self, x, y, z):
        """Flat buffer offset for voxel (x, y, z)."""
        if not (0 <= x < self.shape[0] and 0 <= y < self.shape[1] and 0 <= z < self.shape[2]):
            raise IndexError(f"Voxel ({x}, {y}, {z}) outside grid of shape {self.shape}")
        return x * self._strides[0] + y * self._strides[1] + z

    def count(self, x, y, z):
        """Number of points whose floored coordinates equal (x, y, z)."""
        return int(self._counts[self.offset(x, y, z)])

    def bounding_box(self, center, radius, height, clip_policy="inclusive"):
        """
        Integer voxel box enclosing a kernel cylinder, clipped to the grid.

        Returns:
            Three half-open (start, stop) ranges for x, y and z. A range with
            start >= stop is empty.
        """
        if clip_policy not in CLIP_POLICIES:
            raise ConfigurationError(f"Unknown clip policy: {clip_policy!r}")
        cx, cy, cz = center
        if not all(math.isfinite(v) for v in (cx, cy, cz, radius, height)):
            return ((0, 0), (0, 0), (0, 0))

        raw = (
            (math.floor(cx - radius), math.ceil(cx + radius)),
            (math.floor(cy - radius), math.ceil(cy + radius)),
            (math.floor(cz - height / 2.0), math.ceil(cz + height / 2.0)),
        )
        box = []
        for (lo, hi), upper in zip(raw, self.bounds):
            lo = max(lo, 0)
            if clip_policy == "inclusive":
                hi = min(hi, upper + 1)
            elif hi > upper + 1:
                # legacy rule: overflowing boxes lose the top layer
                hi = upper
            box.append((lo, max(hi, lo)))
        return tuple(box)

    def occupied_cells(self, box):
        """
        Occupied voxels inside a box.

        Args:
            box: Ranges as returned by ``bounding_box``

        Returns:
            Tuple of (coords, counts): integer voxel coordinates (K, 3) and
            their point counts (K,)
        """
        (x0, x1), (y0, y1), (z0, z1) = box
        block = self.counts[x0:x1, y0:y1, z0:z1]
        ix, iy, iz = np.nonzero(block)
        coords = np.column_stack((ix + x0, iy + y0, iz + z0))
        return coords, block[ix, iy, iz]

    def __repr__(self):
        return f"VoxelGrid(shape={self.shape}, points={self.n_points})"
