"""
Adaptive mean shift iteration shared by both engines.

A ``ConvergenceLoop`` moves a kernel center from a starting point towards the
weighted centroid of its neighborhood until a convergence predicate fires or the
iteration cap is reached. Where neighbors come from is delegated to a
``NeighborSource``, so the same loop runs over raw points or over voxel counts.
"""

import logging
from collections import namedtuple

import numpy as np

from .errors import ConfigurationError, EmptyNeighborhoodError
from .kernels import kernel_weight
from .params import exact_match

logger = logging.getLogger(__name__)

EMPTY_POLICIES = ("propagate", "raise")

ShiftOutcome = namedtuple("ShiftOutcome", ["center", "iterations", "converged", "empty"])


class NeighborSource:
    """
    Supplies the neighbors of a kernel cylinder.

    Subclasses implement ``gather`` and return a tuple (coords, counts): neighbor
    coordinates of shape (K, 3) and per-neighbor multiplicities of shape (K,),
    or None when every neighbor counts once.
    """

    def gather(self, center, radius, height):
        raise NotImplementedError


class MovingCenter:
    """Per-point iteration state."""

    __slots__ = ("center", "previous", "iterations")

    def __init__(self, start):
        self.center = np.array(start, dtype=float)
        self.previous = None
        self.iterations = 0

    def move(self, new_center):
        self.previous = self.center
        self.center = new_center
        self.iterations += 1


def weighted_centroid(coords, counts, center, width, height, uniform):
    """
    Weighted mean of neighbor coordinates.

    Returns:
        Tuple of (new_center, weight_total). When the total is zero the center
        is NaN.
    """
    coords = np.asarray(coords, dtype=float).reshape(-1, 3)
    # zero-height kernels (center at Z=0) and empty neighborhoods yield NaN
    with np.errstate(divide='ignore', invalid='ignore'):
        if uniform:
            weights = np.ones(len(coords)) if counts is None else np.asarray(counts, dtype=float)
        else:
            weights = kernel_weight(coords, width, height, center)
            if counts is not None:
                weights = weights * counts
        total = weights.sum()
        new_center = (weights @ coords) / total
    return new_center, total


class ConvergenceLoop:
    """
    Runs the shift-and-converge iteration for single points.

    Args:
        source: NeighborSource to query each iteration
        params: KernelParams
        converged: Predicate (new_center, old_center) -> bool
        on_empty: 'propagate' lets an empty neighborhood turn the center into
            NaN and run to the cap; 'raise' raises EmptyNeighborhoodError
    """

    def __init__(self, source, params, converged=exact_match, on_empty="propagate"):
        if on_empty not in EMPTY_POLICIES:
            raise ConfigurationError(f"on_empty must be one of {EMPTY_POLICIES}, got {on_empty!r}")
        self.source = source
        self.params = params
        self.converged = converged
        self.on_empty = on_empty

    def run(self, start, index=None):
        """
        Shift a kernel starting at ``start`` until it stops or hits the cap.

        The body always runs at least once, so ``max_iterations=0`` behaves
        like 1.

        Returns:
            ShiftOutcome(center, iterations, converged, empty)
        """
        state = MovingCenter(start)
        params = self.params
        empty = False

        while True:
            radius, width, height = params.cylinder(state.center[2])
            coords, counts = self.source.gather(state.center, radius, height)
            new_center, total = weighted_centroid(
                coords, counts, state.center, width, height, params.uniform_kernel
            )
            if not total > 0:
                if self.on_empty == "raise":
                    raise EmptyNeighborhoodError(index, start, state.iterations + 1)
                empty = True
            state.move(new_center)

            if self.converged(state.center, state.previous):
                return ShiftOutcome(state.center, state.iterations, True, empty)
            if state.iterations >= params.max_iterations:
                return ShiftOutcome(state.center, state.iterations, False, empty)
