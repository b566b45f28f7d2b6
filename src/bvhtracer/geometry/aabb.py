"""Axis-aligned bounding boxes for BVH construction and traversal.

This module provides two views of the same box:

- ``AABB``: a host-side NumPy value type used while building the BVH. Every
  operation returns a new box; nothing is mutated in place.
- ``hit_aabb``: the device-side slab test used by BVH traversal inside
  Taichi kernels.

The empty box (``AABB.empty()``) has ``min = +inf`` and ``max = -inf`` so that
it is the identity for ``union`` and ``point_union``.

Example:
    >>> from bvhtracer.geometry.aabb import AABB
    >>> box = AABB.from_points([(0, 0, 0), (1, 1, 1)])
    >>> box.surface_area()
    6.0
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import IntEnum

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from bvhtracer.core.ray import Ray

vec3 = tm.vec3

Vector3 = Sequence[float] | npt.NDArray[np.floating]


class Axis(IntEnum):
    """Coordinate axis, usable directly as an index into a 3-vector."""

    X = 0
    Y = 1
    Z = 2


def _as_vector(p: Vector3) -> npt.NDArray[np.float64]:
    return np.asarray(p, dtype=np.float64).reshape(3)


@dataclass(eq=False)
class AABB:
    """Axis-aligned bounding box.

    Attributes:
        min: The minimum corner (x, y, z).
        max: The maximum corner (x, y, z).
    """

    min: npt.NDArray[np.float64]
    max: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        self.min = _as_vector(self.min)
        self.max = _as_vector(self.max)

    @classmethod
    def empty(cls) -> "AABB":
        """Create the box built from zero inputs."""
        return cls(
            min=np.full(3, np.inf),
            max=np.full(3, -np.inf),
        )

    @classmethod
    def from_points(cls, points: Iterable[Vector3]) -> "AABB":
        """Create the smallest box containing every point.

        Args:
            points: The points to enclose.

        Returns:
            The bounding box, or the empty box if no points are given.
        """
        box = cls.empty()
        for p in points:
            box = box.point_union(p)
        return box

    def is_empty(self) -> bool:
        """Return True if the box contains no points."""
        return bool(np.any(self.min > self.max))

    def union(self, other: "AABB") -> "AABB":
        """Return the smallest box containing both boxes."""
        return AABB(
            min=np.minimum(self.min, other.min),
            max=np.maximum(self.max, other.max),
        )

    def point_union(self, point: Vector3) -> "AABB":
        """Return the smallest box containing this box and a point."""
        p = _as_vector(point)
        return AABB(min=np.minimum(self.min, p), max=np.maximum(self.max, p))

    def centroid(self) -> npt.NDArray[np.float64]:
        """Return the center of the box."""
        return 0.5 * (self.min + self.max)

    def extent(self) -> npt.NDArray[np.float64]:
        """Return max - min."""
        return self.max - self.min

    def contains_point(self, point: Vector3) -> bool:
        """Return True if the point lies inside or on the box."""
        p = _as_vector(point)
        return bool(np.all(self.min <= p) and np.all(p <= self.max))

    def contains(self, other: "AABB") -> bool:
        """Return True if every point of ``other`` lies inside this box."""
        if other.is_empty():
            return True
        return bool(np.all(self.min <= other.min) and np.all(other.max <= self.max))

    def max_extent(self) -> Axis:
        """Return the axis along which the box is widest.

        Ties are resolved in the order X, Y, Z: X wins a tie with Y or Z,
        and Y wins a tie with Z.
        """
        dx, dy, dz = self.extent()
        if dx >= dy and dx >= dz:
            return Axis.X
        if dy >= dz:
            return Axis.Y
        return Axis.Z

    def surface_area(self) -> float:
        """Return 2 * (dx*dy + dx*dz + dy*dz), or 0.0 for the empty box."""
        if self.is_empty():
            return 0.0
        dx, dy, dz = self.extent()
        return float(2.0 * (dx * dy + dx * dz + dy * dz))

    def padded(self, delta: float = 1e-4) -> "AABB":
        """Widen every axis thinner than ``delta`` to exactly ``delta``.

        Planar primitives such as quads have a zero-width box along their
        normal; padding keeps their surface area and slab test well behaved.
        """
        lo = self.min.copy()
        hi = self.max.copy()
        for axis in range(3):
            if hi[axis] - lo[axis] < delta:
                mid = 0.5 * (lo[axis] + hi[axis])
                lo[axis] = mid - delta / 2.0
                hi[axis] = mid + delta / 2.0
        return AABB(min=lo, max=hi)

    def transformed(self, matrix: npt.NDArray[np.floating]) -> "AABB":
        """Return the box enclosing this box's eight corners under an affine map.

        Args:
            matrix: A 4x4 affine matrix.
        """
        corners = [
            (x, y, z)
            for x in (self.min[0], self.max[0])
            for y in (self.min[1], self.max[1])
            for z in (self.min[2], self.max[2])
        ]
        m = np.asarray(matrix, dtype=np.float64)
        points = [m[:3, :3] @ np.asarray(c) + m[:3, 3] for c in corners]
        return AABB.from_points(points)

    def has_intersection(
        self,
        origin: Vector3,
        inv_direction: Vector3,
        t_min: float = 0.0,
        t_max: float = np.inf,
    ) -> bool:
        """Slab test against a ray given by its origin and inverse direction.

        Per axis, the entry and exit distances are the min and max of the two
        slab products, which makes negative direction components work without
        branching. The running entry is folded with max and the running exit
        with min, starting from (t_min, t_max). Infinite inverse-direction
        components are handled by IEEE arithmetic.

        Args:
            origin: The ray origin.
            inv_direction: The componentwise inverse of the ray direction.
            t_min: Lower end of the query interval.
            t_max: Upper end of the query interval.

        Returns:
            True if the ray overlaps the box within the interval.
        """
        o = _as_vector(origin)
        inv = _as_vector(inv_direction)
        with np.errstate(invalid="ignore", over="ignore"):
            t1 = (self.min - o) * inv
            t2 = (self.max - o) * inv
        t_near = t_min
        t_far = t_max
        for axis in range(3):
            t_near = max(t_near, min(t1[axis], t2[axis]))
            t_far = min(t_far, max(t1[axis], t2[axis]))
        return bool(t_far >= max(t_near, 0.0))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AABB):
            return NotImplemented
        return bool(np.array_equal(self.min, other.min) and np.array_equal(self.max, other.max))

    def __repr__(self) -> str:
        return f"AABB(min={self.min.tolist()}, max={self.max.tolist()})"


def inverse_direction(direction: Vector3) -> npt.NDArray[np.float64]:
    """Compute 1 / direction, allowing infinite components for zero entries."""
    d = _as_vector(direction)
    with np.errstate(divide="ignore"):
        return 1.0 / d


# =============================================================================
# Device-side slab test
# =============================================================================


@ti.func
def hit_aabb(box_min: vec3, box_max: vec3, ray: Ray, t_min: ti.f32, t_max: ti.f32) -> ti.i32:
    """Slab test for use inside Taichi kernels.

    Mirrors ``AABB.has_intersection`` using the ray's precomputed inverse
    direction.

    Args:
        box_min: The minimum corner of the box.
        box_max: The maximum corner of the box.
        ray: The ray to test.
        t_min: Lower end of the query interval.
        t_max: Upper end of the query interval.

    Returns:
        1 if the ray overlaps the box within the interval, 0 otherwise.
    """
    t1 = (box_min - ray.origin) * ray.inv_direction
    t2 = (box_max - ray.origin) * ray.inv_direction

    t_near = t_min
    t_far = t_max
    for axis in ti.static(range(3)):
        t_near = ti.max(t_near, ti.min(t1[axis], t2[axis]))
        t_far = ti.min(t_far, ti.max(t1[axis], t2[axis]))

    result = 0
    if t_far >= ti.max(t_near, 0.0):
        result = 1
    return result
