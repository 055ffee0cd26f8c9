"""Per-point mean shift output."""

import logging
import os
import pickle
from collections import namedtuple
from collections.abc import Sequence

import numpy as np

logger = logging.getLogger(__name__)

COLUMNS = ("X", "Y", "Z", "CtrX", "CtrY", "CtrZ")

CentroidResult = namedtuple("CentroidResult", ["x", "y", "z", "ctr_x", "ctr_y", "ctr_z"])


class CentroidTable(Sequence):
    """
    Original coordinates paired with converged centroids, in input order.

    Indexing yields ``CentroidResult`` records. The underlying arrays are
    available as ``points`` and ``centroids``; ``iterations`` and ``converged``
    record how each point's iteration ended.
    """

    def __init__(self, points, centroids, iterations=None, converged=None):
        self.points = np.array(points, dtype=float).reshape(-1, 3)
        self.centroids = np.array(centroids, dtype=float).reshape(-1, 3)
        if len(self.points) != len(self.centroids):
            raise ValueError(
                f"points and centroids differ in length: {len(self.points)} != {len(self.centroids)}"
            )
        n = len(self.points)
        self.iterations = (np.zeros(n, dtype=np.int64) if iterations is None
                           else np.array(iterations, dtype=np.int64))
        self.converged = (np.zeros(n, dtype=bool) if converged is None
                          else np.array(converged, dtype=bool))
        for arr in (self.points, self.centroids, self.iterations, self.converged):
            arr.flags.writeable = False

    def __len__(self):
        return len(self.points)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return CentroidTable(self.points[index], self.centroids[index],
                                 self.iterations[index], self.converged[index])
        return CentroidResult(*self.points[index].tolist(), *self.centroids[index].tolist())

    def __repr__(self):
        return f"CentroidTable(n={len(self)}, converged={int(self.converged.sum())})"

    @property
    def finite(self):
        """Mask of rows whose centroid has only finite coordinates."""
        return np.isfinite(self.centroids).all(axis=1)

    def as_array(self):
        """(N, 6) array with columns X, Y, Z, CtrX, CtrY, CtrZ."""
        return np.hstack((self.points, self.centroids))

    def summary(self):
        """Dictionary of run statistics."""
        n = len(self)
        return {
            'points': n,
            'converged': int(self.converged.sum()),
            'capped': int(n - self.converged.sum()),
            'non_finite': int(n - self.finite.sum()),
            'mean_iterations': float(self.iterations.mean()) if n else 0.0,
            'max_iterations': int(self.iterations.max()) if n else 0,
        }

    def to_csv(self, filepath, delimiter=","):
        """Write the table as delimited text with a header row."""
        np.savetxt(filepath, self.as_array(), delimiter=delimiter,
                   header=delimiter.join(COLUMNS), comments="", fmt="%.10g")
        logger.info("Centroids written to %s", filepath)

    def save(self, filepath):
        """Save the table including iteration bookkeeping."""
        result = {
            'points': np.array(self.points),
            'centroids': np.array(self.centroids),
            'iterations': np.array(self.iterations),
            'converged': np.array(self.converged),
        }
        with open(filepath, 'wb') as f:
            pickle.dump(result, f)
        logger.info("Results saved to %s", filepath)

    @classmethod
    def load(cls, filepath):
        """Load a table written by ``save``."""
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"File {filepath} not found")
        with open(filepath, 'rb') as f:
            result = pickle.load(f)
        logger.info("Results loaded from %s", filepath)
        return cls(result['points'], result['centroids'],
                   result['iterations'], result['converged'])
