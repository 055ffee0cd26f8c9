"""
Mean shift engines.

Both engines run the same ``ConvergenceLoop`` for every input point and differ
only in where neighbors come from: ``ClassicalEngine`` scans all points each
iteration, ``VoxelEngine`` scans occupied cells of a ``VoxelGrid`` inside the
kernel's bounding box and weights each cell by its point count.
"""

import logging
import numbers

import numpy as np
from joblib import Parallel, delayed, effective_n_jobs

from .convergence import EMPTY_POLICIES, ConvergenceLoop, NeighborSource
from .errors import ConfigurationError
from .kernels import in_cylinder
from .params import KernelParams, exact_match
from .point_cloud import as_points
from .results import CentroidTable
from .utils import time_function
from .voxel_grid import CLIP_POLICIES, VoxelGrid, check_bounds

logger = logging.getLogger(__name__)

# Work items handed to each parallel worker
CHUNKS_PER_JOB = 4


class ClassicalNeighborSource(NeighborSource):
    """All points of the cloud inside the cylinder, each counted once."""

    def __init__(self, points):
        self.points = points

    def gather(self, center, radius, height):
        mask = in_cylinder(self.points, radius, height, center)
        return self.points[mask], None


class VoxelNeighborSource(NeighborSource):
    """Occupied voxels inside the cylinder, weighted by their point counts."""

    def __init__(self, grid, clip_policy="inclusive"):
        self.grid = grid
        self.clip_policy = clip_policy

    def gather(self, center, radius, height):
        box = self.grid.bounding_box(center, radius, height, self.clip_policy)
        coords, counts = self.grid.occupied_cells(box)
        coords = coords.astype(float)
        mask = in_cylinder(coords, radius, height, center)
        return coords[mask], counts[mask]


def _shift_chunk(loop, points, start):
    """Run the convergence loop for a contiguous block of points."""
    n = len(points)
    centroids = np.empty((n, 3))
    iterations = np.empty(n, dtype=np.int64)
    converged = np.empty(n, dtype=bool)
    empty = np.empty(n, dtype=bool)
    for i in range(n):
        outcome = loop.run(points[i], index=start + i)
        centroids[i] = outcome.center
        iterations[i] = outcome.iterations
        converged[i] = outcome.converged
        empty[i] = outcome.empty
    return centroids, iterations, converged, empty


class MeanShiftEngine:
    """
    Base engine: validates run options and maps the convergence loop over points.

    Args:
        params: KernelParams
        converged: Convergence predicate (see ``crownshift.params``)
        on_empty: 'propagate' or 'raise'
        n_jobs: 1 runs in process, anything else distributes chunks of points
            over joblib workers (-1 uses all cores)
    """

    name = "mean shift"

    def __init__(self, params, converged=exact_match, on_empty="propagate", n_jobs=1):
        if not isinstance(params, KernelParams):
            raise ConfigurationError("params must be a KernelParams instance")
        if isinstance(n_jobs, bool) or not isinstance(n_jobs, numbers.Integral) or n_jobs == 0:
            raise ConfigurationError(f"n_jobs must be a non-zero integer, got {n_jobs!r}")
        if on_empty not in EMPTY_POLICIES:
            raise ConfigurationError(f"on_empty must be one of {EMPTY_POLICIES}, got {on_empty!r}")
        self.params = params
        self.converged = converged
        self.on_empty = on_empty
        self.n_jobs = n_jobs

    def neighbor_source(self, points):
        raise NotImplementedError

    @time_function
    def run(self, cloud):
        """
        Shift every point of ``cloud`` to its mode.

        Returns:
            CentroidTable aligned with the input order
        """
        points = as_points(cloud)
        logger.info("Running %s on %d points (h2cw=%g, h2cl=%g, uniform=%s, max_iter=%d)",
                     self.name, len(points), self.params.height_to_width_factor,
                     self.params.height_to_length_factor, self.params.uniform_kernel,
                     self.params.max_iterations)

        # The source is fully built before any point is shifted
        source = self.neighbor_source(points)
        loop = ConvergenceLoop(source, self.params, self.converged, self.on_empty)

        centroids, iterations, converged, empty = self._map(loop, points)
        table = CentroidTable(points, centroids, iterations, converged)

        n_empty = int(empty.sum())
        if n_empty:
            logger.warning("%d of %d points hit an empty neighborhood; their centroids are NaN",
                           n_empty, len(points))
        stats = table.summary()
        logger.info("%s finished: %d converged, %d capped, mean iterations %.2f",
                    self.name, stats['converged'], stats['capped'], stats['mean_iterations'])
        return table

    def _map(self, loop, points):
        n = len(points)
        if self.n_jobs == 1 or n < 2:
            return _shift_chunk(loop, points, 0)

        n_chunks = min(n, effective_n_jobs(self.n_jobs) * CHUNKS_PER_JOB)
        splits = [idx for idx in np.array_split(np.arange(n), n_chunks) if len(idx)]
        logger.debug("Distributing %d points over %d chunks (n_jobs=%d)", n, len(splits), self.n_jobs)
        parts = Parallel(n_jobs=self.n_jobs, backend='loky')(
            delayed(_shift_chunk)(loop, points[idx[0]:idx[-1] + 1], int(idx[0]))
            for idx in splits
        )
        return tuple(np.concatenate(column) for column in zip(*parts))


class ClassicalEngine(MeanShiftEngine):
    """Neighbor search over the raw point coordinates."""

    name = "classical mean shift"

    def neighbor_source(self, points):
        return ClassicalNeighborSource(points)


class VoxelEngine(MeanShiftEngine):
    """
    Neighbor search over a unit voxel histogram of the cloud.

    Args:
        max_x, max_y, max_z: Inclusive upper grid bounds. All points must
            floor to voxels inside [0, max] on every axis.
        clip_policy: 'inclusive' or 'legacy' bounding-box clipping
    """

    name = "voxel mean shift"

    def __init__(self, params, max_x=100, max_y=100, max_z=60, clip_policy="inclusive", **kwargs):
        super().__init__(params, **kwargs)
        if clip_policy not in CLIP_POLICIES:
            raise ConfigurationError(f"clip_policy must be one of {CLIP_POLICIES}, got {clip_policy!r}")
        check_bounds(max_x, max_y, max_z)
        self.bounds = (max_x, max_y, max_z)
        self.clip_policy = clip_policy
        self.grid = None

    def neighbor_source(self, points):
        self.grid = VoxelGrid.from_points(points, *self.bounds)
        return VoxelNeighborSource(self.grid, self.clip_policy)


def classical_mean_shift(cloud, height_to_width_factor, height_to_length_factor,
                         uniform_kernel=False, max_iterations=20,
                         converged=exact_match, on_empty="propagate", n_jobs=1):
    """
    Adaptive mean shift over raw point coordinates.

    Args:
        cloud: (N, 3) array, sequence of triples or PointCloud
        height_to_width_factor: Kernel diameter per unit of center height
        height_to_length_factor: Kernel height per unit of center height
        uniform_kernel: Use unweighted means instead of the crown kernel
        max_iterations: Iteration cap per point
        converged: Convergence predicate
        on_empty: 'propagate' (NaN centroids) or 'raise'
        n_jobs: Number of parallel workers

    Returns:
        CentroidTable with one record per input point
    """
    params = KernelParams(height_to_width_factor, height_to_length_factor,
                          uniform_kernel, max_iterations)
    engine = ClassicalEngine(params, converged=converged, on_empty=on_empty, n_jobs=n_jobs)
    return engine.run(cloud)


def voxel_mean_shift(cloud, height_to_width_factor, height_to_length_factor,
                     uniform_kernel=False, max_iterations=20,
                     max_x=100, max_y=100, max_z=60, clip_policy="inclusive",
                     converged=exact_match, on_empty="propagate", n_jobs=1):
    """
    Adaptive mean shift over a 1-unit voxel histogram of the cloud.

    Coordinates must lie in [0, max + 1) on every axis; see
    ``PointCloud.shifted_to_origin`` for projected data. Other arguments as
    for ``classical_mean_shift``.

    Returns:
        CentroidTable with one record per input point
    """
    params = KernelParams(height_to_width_factor, height_to_length_factor,
                          uniform_kernel, max_iterations)
    engine = VoxelEngine(params, max_x, max_y, max_z, clip_policy,
                         converged=converged, on_empty=on_empty, n_jobs=n_jobs)
    return engine.run(cloud)
