"""Kernel parameters and convergence predicates."""

import math
import numbers
from collections import namedtuple
from functools import partial

import numpy as np

from .errors import ConfigurationError


_KernelParamsBase = namedtuple(
    "KernelParams",
    ["height_to_width_factor", "height_to_length_factor", "uniform_kernel", "max_iterations"],
)


class KernelParams(_KernelParamsBase):
    """
    Immutable kernel configuration for one mean shift run.

    Args:
        height_to_width_factor: Ratio of crown width to height. The kernel
            diameter is this factor times the current center height.
        height_to_length_factor: Ratio of crown length to height. The kernel
            height is this factor times the current center height.
        uniform_kernel: Disable distance weighting and use plain (count) means
        max_iterations: Iteration cap per point
    """

    __slots__ = ()

    def __new__(cls, height_to_width_factor, height_to_length_factor,
                uniform_kernel=False, max_iterations=20):
        height_to_width_factor = _positive_factor("height_to_width_factor", height_to_width_factor)
        height_to_length_factor = _positive_factor("height_to_length_factor", height_to_length_factor)
        if isinstance(max_iterations, bool) or not isinstance(max_iterations, numbers.Integral):
            raise ConfigurationError(f"max_iterations must be an integer, got {max_iterations!r}")
        if max_iterations < 0:
            raise ConfigurationError(f"max_iterations must be >= 0, got {max_iterations}")
        return super().__new__(cls, height_to_width_factor, height_to_length_factor,
                               bool(uniform_kernel), int(max_iterations))

    def cylinder(self, center_z):
        """
        Kernel dimensions for a center at height ``center_z``.

        Returns:
            Tuple of (radius, diameter, height)
        """
        diameter = self.height_to_width_factor * center_z
        return 0.5 * diameter, diameter, self.height_to_length_factor * center_z


def _positive_factor(name, value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be positive and finite, got {value}")
    return value


# Convergence predicates take (new_center, old_center) and return True to stop.

def exact_match(new_center, old_center):
    """Stop when every axis is bit-for-bit unchanged. NaN never matches."""
    return bool(np.all(np.asarray(new_center) == np.asarray(old_center)))


def any_axis_match(new_center, old_center):
    """Stop as soon as any single axis is unchanged (legacy loop guard)."""
    return bool(np.any(np.asarray(new_center) == np.asarray(old_center)))


def _within_tolerance(new_center, old_center, eps):
    delta = np.abs(np.asarray(new_center, dtype=float) - np.asarray(old_center, dtype=float))
    return bool(np.all(delta <= eps))


def tolerance_match(eps):
    """Build a predicate that stops once no axis moves by more than ``eps``."""
    if not eps >= 0:
        raise ConfigurationError(f"Tolerance must be >= 0, got {eps}")
    return partial(_within_tolerance, eps=float(eps))
