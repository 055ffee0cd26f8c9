"""Exception types raised by the mean shift engines."""


class MeanShiftError(Exception):
    """Base class for all crownshift errors."""


class ConfigurationError(MeanShiftError, ValueError):
    """Invalid kernel, grid or run parameters. Raised before any point is processed."""


class EmptyNeighborhoodError(MeanShiftError, ArithmeticError):
    """
    A kernel cylinder contained no neighbors, so the weighted centroid is undefined.

    Only raised when the engine runs with ``on_empty="raise"``.
    """

    def __init__(self, index, point, iteration):
        self.index = index
        self.point = tuple(float(v) for v in point)
        self.iteration = iteration
        super().__init__(
            f"Empty neighborhood for point {index} {self.point} "
            f"at iteration {iteration}"
        )

    def __reduce__(self):
        return (self.__class__, (self.index, self.point, self.iteration))


class OutOfBoundsVoxelError(MeanShiftError, IndexError):
    """A point falls outside the configured voxel grid bounds."""

    def __init__(self, index, point, voxel, bounds):
        self.index = index
        self.point = tuple(float(v) for v in point)
        self.voxel = voxel
        self.bounds = bounds
        super().__init__(
            f"Point {index} {self.point} maps to voxel {voxel}, "
            f"outside grid [0, {bounds[0]}] x [0, {bounds[1]}] x [0, {bounds[2]}]"
        )

    def __reduce__(self):
        return (self.__class__, (self.index, self.point, self.voxel, self.bounds))
