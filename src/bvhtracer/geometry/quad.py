"""Quad primitive with ray-quad intersection.

A quad is defined by:
- Q: A corner point of the quad
- u: Edge vector from Q to adjacent corner
- v: Edge vector from Q to other adjacent corner

The quad spans the parallelogram from Q to Q+u+v. The normal is computed as
normalize(cross(u, v)), pointing in the direction determined by the right-hand
rule.

Ray-quad intersection uses the parametric plane test:
1. Find where ray intersects the plane containing the quad
2. Check if the intersection point lies within the quad bounds

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, fast_math=False)
    >>> from bvhtracer.geometry.quad import Quad, hit_quad
    >>> # Floor quad at y=0, spanning x=[0,1] and z=[0,1]
    >>> quad = Quad(
    ...     Q=ti.math.vec3(0, 0, 0),
    ...     u=ti.math.vec3(1, 0, 0),
    ...     v=ti.math.vec3(0, 0, 1)
    ... )
    >>> # Use hit_quad within a Taichi kernel
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from .aabb import AABB
from .sphere import HitRecord

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class Quad:
    """A quad (parallelogram) defined by a corner point and two edge vectors.

    The quad represents the parallelogram with vertices at:
        Q, Q+u, Q+v, Q+u+v

    Attributes:
        Q: The corner point of the quad (vec3).
        u: Edge vector from Q to adjacent corner (vec3).
        v: Edge vector from Q to other adjacent corner (vec3).
    """

    Q: vec3
    u: vec3
    v: vec3


@ti.func
def _compute_quad_frame(quad: Quad):
    """Compute the quad's plane and the dual edge vectors.

    With n = cross(u, v), the vectors w_u = cross(v, n) / |n|^2 and
    w_v = cross(n, u) / |n|^2 satisfy dot(w_u, u) = dot(w_v, v) = 1 and
    dot(w_u, v) = dot(w_v, u) = 0, so the planar coordinates of a point P are
    alpha = dot(w_u, P - Q) and beta = dot(w_v, P - Q).

    Returns:
        Tuple of (normal, d, w_u, w_v) with the plane given by
        dot(normal, P) = d. Degenerate quads (parallel edges) get zero
        w vectors.
    """
    n = tm.cross(quad.u, quad.v)
    normal = tm.normalize(n)
    d = tm.dot(normal, quad.Q)

    n_dot_n = tm.dot(n, n)
    w_u = vec3(0.0, 0.0, 0.0)
    w_v = vec3(0.0, 0.0, 0.0)
    if n_dot_n > 1e-10:
        w_u = tm.cross(quad.v, n) / n_dot_n
        w_v = tm.cross(n, quad.u) / n_dot_n

    return normal, d, w_u, w_v


@ti.func
def hit_quad(
    ray_origin: vec3,
    ray_direction: vec3,
    quad: Quad,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-quad intersection in the open interval (t_min, t_max).

    The ray meets the quad's plane at
        t = (d - dot(normal, ray_origin)) / dot(normal, ray_direction)
    and the hit is accepted when its planar coordinates both lie in [0, 1].

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray (any length).
        quad: The quad to test intersection against.
        t_min: Exclusive lower bound on t.
        t_max: Exclusive upper bound on t.

    Returns:
        A HitRecord; check the hit field to determine if intersection occurred.
    """
    normal, d, w_u, w_v = _compute_quad_frame(quad)
    denom = tm.dot(normal, ray_direction)

    did_hit = 0
    hit_t = 0.0
    hit_point = vec3(0.0, 0.0, 0.0)
    hit_normal = vec3(0.0, 0.0, 0.0)
    is_front_face = 0

    # Parallel rays never hit
    if ti.abs(denom) > 1e-8:
        t = (d - tm.dot(normal, ray_origin)) / denom
        if t > t_min and t < t_max:
            p = ray_origin + t * ray_direction
            alpha = tm.dot(w_u, p - quad.Q)
            beta = tm.dot(w_v, p - quad.Q)

            if alpha >= 0.0 and alpha <= 1.0 and beta >= 0.0 and beta <= 1.0:
                did_hit = 1
                hit_t = t
                hit_point = p
                if denom > 0.0:
                    is_front_face = 0
                    hit_normal = -normal
                else:
                    is_front_face = 1
                    hit_normal = normal

    return HitRecord(
        hit=did_hit,
        t=hit_t,
        point=hit_point,
        normal=hit_normal,
        front_face=is_front_face,
    )


def quad_bounds(q, u, v) -> AABB:
    """Object-space bounding box of a quad.

    The four corners are enclosed and the result is padded so that an
    axis-aligned quad does not produce a zero-width box.

    Args:
        q: The corner point of the quad.
        u: Edge vector from q to adjacent corner.
        v: Edge vector from q to other adjacent corner.
    """
    q = np.asarray(q, dtype=np.float64)
    u = np.asarray(u, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    return AABB.from_points([q, q + u, q + v, q + u + v]).padded()
