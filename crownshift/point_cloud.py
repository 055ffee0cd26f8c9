"""Point cloud loading and preprocessing."""

import logging
import os

import numpy as np
import open3d as o3d

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

OPEN3D_EXTENSIONS = ('.ply', '.pcd', '.xyz', '.xyzn', '.xyzrgb', '.pts')
TEXT_EXTENSIONS = ('.csv', '.txt')


def as_points(cloud):
    """
    Coerce a cloud into a float (N, 3) array.

    Args:
        cloud: PointCloud, numpy array or sequence of (x, y, z) triples

    Returns:
        Numpy array of shape (N, 3)
    """
    if isinstance(cloud, PointCloud):
        return cloud.points
    points = np.asarray(cloud, dtype=float)
    if points.size == 0:
        return points.reshape(0, 3)
    if points.ndim != 2 or points.shape[1] != 3:
        raise ConfigurationError(f"Point cloud must have shape (N, 3), got {points.shape}")
    return points


class PointCloud:
    """Read-only XYZ point cloud. Row order is preserved in all results."""

    def __init__(self, points):
        """
        Initialize a point cloud from coordinates.

        Args:
            points: Array-like of shape (N, 3), or an Open3D PointCloud
        """
        if isinstance(points, o3d.geometry.PointCloud):
            points = np.asarray(points.points)
        self.points = np.array(as_points(points), dtype=float)
        self.points.flags.writeable = False

    @classmethod
    def from_file(cls, filepath):
        """
        Load point cloud from file.

        Open3D formats (.ply, .pcd, .xyz, ...) are read with Open3D. Delimited
        text (.csv, .txt) is read with numpy; the first three columns are used
        and a non-numeric header row is skipped.
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Point cloud file {filepath} not found")
        ext = os.path.splitext(filepath)[1].lower()

        if ext in TEXT_EXTENSIONS:
            points = cls._read_text(filepath)
        elif ext in OPEN3D_EXTENSIONS:
            points = np.asarray(o3d.io.read_point_cloud(filepath).points)
        else:
            raise ConfigurationError(f"Unsupported point cloud format: {ext}")

        logger.info("Loaded %d points from %s", len(points), filepath)
        return cls(points)

    @staticmethod
    def _read_text(filepath):
        with open(filepath, 'r', encoding='utf-8') as f:
            first = f.readline()
        delimiter = ',' if ',' in first else None
        try:
            [float(v) for v in first.replace(',', ' ').split()[:3]]
            skiprows = 0
        except ValueError:
            skiprows = 1
        data = np.loadtxt(filepath, delimiter=delimiter, skiprows=skiprows, ndmin=2)
        if data.size == 0:
            return np.empty((0, 3))
        if data.shape[1] < 3:
            raise ConfigurationError(f"{filepath} has {data.shape[1]} columns, expected at least 3")
        return data[:, :3]

    def bounds(self):
        """Return (min_bound, max_bound) arrays."""
        if len(self) == 0:
            return np.zeros(3), np.zeros(3)
        return self.points.min(axis=0), self.points.max(axis=0)

    def shifted_to_origin(self):
        """
        Translate the cloud so that min X and Y sit at 0, and Z too when negative.

        Heights are kept as is when they are already non-negative, since the
        kernel size is proportional to Z.

        Returns:
            Tuple of (shifted PointCloud, offset) where original = shifted + offset
        """
        min_bound, _ = self.bounds()
        offset = np.array([min_bound[0], min_bound[1], min(min_bound[2], 0.0)])
        return PointCloud(self.points - offset), offset

    def to_o3d(self, points=None, color=None):
        """
        Convert to Open3D PointCloud object.

        Args:
            points: Optional custom points array (default: self.points)
            color: Optional uniform color [r, g, b] or color array

        Returns:
            Open3D PointCloud object
        """
        pcd = o3d.geometry.PointCloud()
        pts = points if points is not None else self.points
        pcd.points = o3d.utility.Vector3dVector(np.asarray(pts, dtype=float))

        if color is not None:
            if isinstance(color, (list, tuple)) and len(color) == 3:
                pcd.paint_uniform_color(color)
            else:
                pcd.colors = o3d.utility.Vector3dVector(color)

        return pcd

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self.points
        return self.points.astype(dtype)

    def __len__(self):
        return len(self.points)
