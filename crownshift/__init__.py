"""
CrownShift - Tree crown delineation in airborne LiDAR using adaptive mean shift

Every point is shifted towards the weighted centroid of a height-adaptive,
anisotropic crown kernel until it settles on a crown apex:
- Classical engine searching neighbors over the raw points
- Voxel engine searching a 1-unit occupancy histogram
- Parallel processing support
"""

from .engines import ClassicalEngine, VoxelEngine, classical_mean_shift, voxel_mean_shift
from .errors import ConfigurationError, EmptyNeighborhoodError, MeanShiftError, OutOfBoundsVoxelError
from .params import KernelParams, any_axis_match, exact_match, tolerance_match
from .point_cloud import PointCloud
from .results import CentroidResult, CentroidTable
from .utils import setup_logging
from .visualization import plot_centroids, plot_iterations
from .voxel_grid import VoxelGrid

__version__ = "1.0.0"
__all__ = ["classical_mean_shift", "voxel_mean_shift", "ClassicalEngine", "VoxelEngine",
           "KernelParams", "exact_match", "any_axis_match", "tolerance_match",
           "PointCloud", "VoxelGrid", "CentroidResult", "CentroidTable",
           "MeanShiftError", "ConfigurationError", "EmptyNeighborhoodError",
           "OutOfBoundsVoxelError", "setup_logging", "plot_centroids", "plot_iterations"]
