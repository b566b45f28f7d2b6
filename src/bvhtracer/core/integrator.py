"""Path tracing integrator for Monte Carlo light transport.

This module traces a single camera ray through the scene, bouncing off
surfaces according to their material properties until the path escapes to the
sky, is absorbed, or runs out of bounces.

The sky is the only light source. A path that escapes returns the sky color
scaled by the product of all attenuations along the way; a path that is
absorbed or exhausts its bounce budget returns black.

Key features:
    - Material dispatch (Lambertian, Metal, Dielectric)
    - BVH accelerated nearest-hit queries
    - Ray counting for throughput reports

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, fast_math=False)
    >>> from bvhtracer.core.integrator import trace_single_ray
    >>> from bvhtracer.scene.manager import SceneManager
    >>>
    >>> scene = SceneManager()
    >>> scene.add_lambertian_sphere((0, 0, -1), 0.5, (0.5, 0.5, 0.5))
    >>> scene.build()
    >>> color, rays = trace_single_ray((0, 0, 0), (0, 0, -1), max_bounces=8)
"""

import taichi as ti
import taichi.math as tm

from bvhtracer.accel.traversal import intersect_bvh
from bvhtracer.core.ray import Ray, make_ray
from bvhtracer.materials.dielectric import scatter_dielectric_by_id
from bvhtracer.materials.lambertian import scatter_lambertian_by_id
from bvhtracer.materials.metal import scatter_metal_by_id
from bvhtracer.scene.manager import (
    MaterialType,
    get_material_type,
    get_material_type_index,
)

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# t_min and t_max for ray intersection
T_MIN = 1e-4
T_MAX = 1e10

# Sky gradient endpoints
SKY_HORIZON_COLOR = vec3(1.0, 1.0, 1.0)
SKY_ZENITH_COLOR = vec3(0.5, 0.7, 1.0)

# =============================================================================
# Background
# =============================================================================


@ti.func
def background(direction: vec3) -> vec3:
    """Sky color seen along ``direction``.

    A vertical gradient from white at the horizon (and below) to light blue
    straight up.
    """
    unit_direction = tm.normalize(direction)
    t = 0.5 * (unit_direction.y + 1.0)
    return (1.0 - t) * SKY_HORIZON_COLOR + t * SKY_ZENITH_COLOR


# =============================================================================
# Material Dispatch
# =============================================================================


@ti.func
def _scatter_material(
    material_id: ti.i32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
):
    """Dispatch to the appropriate material scattering function.

    Args:
        material_id: The unified material ID.
        incident_direction: The incoming ray direction.
        normal: The surface normal (normalized, facing toward ray).
        front_face: 1 if hit front face, 0 if back face.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter) where
        did_scatter is 0 when the material absorbed the ray.
    """
    mat_type = get_material_type(material_id)
    type_index = get_material_type_index(material_id)

    scattered_direction = vec3(0.0, 0.0, 0.0)
    attenuation = vec3(0.0, 0.0, 0.0)
    did_scatter = 0

    if mat_type == int(MaterialType.LAMBERTIAN):
        scattered_direction, attenuation = scatter_lambertian_by_id(type_index, normal)
        did_scatter = 1

    elif mat_type == int(MaterialType.METAL):
        scattered_direction, attenuation, did_scatter = scatter_metal_by_id(
            type_index, incident_direction, normal
        )

    elif mat_type == int(MaterialType.DIELECTRIC):
        scattered_direction, attenuation = scatter_dielectric_by_id(
            type_index, incident_direction, normal, front_face
        )
        did_scatter = 1

    return scattered_direction, attenuation, did_scatter


# =============================================================================
# Path Tracing Core
# =============================================================================


@ti.func
def trace(ray: Ray, max_bounces: ti.i32):
    """Trace one path starting with ``ray``.

    Each loop iteration casts one ray against the BVH. A miss ends the path
    with the sky color times the accumulated throughput. A hit after
    ``max_bounces`` scatters, or a hit on a surface that absorbs, ends the
    path with black. Otherwise the throughput is multiplied by the material
    attenuation and the scattered ray leaves the hit point.

    Args:
        ray: The primary ray.
        max_bounces: Number of scatter events allowed before the path is cut.

    Returns:
        A tuple of (color, rays_traced).
    """
    color = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    rays_traced = 0
    bounce = 0

    current = ray
    active = 1

    while active == 1:
        hit_record = intersect_bvh(current, T_MIN, T_MAX)
        rays_traced += 1

        if hit_record.hit == 0:
            color = throughput * background(current.direction)
            active = 0
        elif bounce >= max_bounces:
            active = 0
        else:
            scattered_direction, attenuation, did_scatter = _scatter_material(
                hit_record.material_id,
                current.direction,
                hit_record.normal,
                hit_record.front_face,
            )

            if did_scatter == 0:
                active = 0
            else:
                throughput *= attenuation
                current = make_ray(hit_record.point, scattered_direction)
                bounce += 1

    return color, rays_traced


# =============================================================================
# Host Helpers
# =============================================================================

_last_ray_count = ti.field(dtype=ti.i32, shape=())


@ti.kernel
def _trace_single_ray_kernel(origin: vec3, direction: vec3, max_bounces: ti.i32) -> vec3:
    color, rays = trace(make_ray(origin, direction), max_bounces)
    _last_ray_count[None] = rays
    return color


@ti.kernel
def _background_kernel(direction: vec3) -> vec3:
    return background(direction)


def trace_single_ray(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    max_bounces: int = 8,
) -> tuple[tuple[float, float, float], int]:
    """Trace one path from Python, for testing and debugging.

    The scene BVH must already be uploaded; with no BVH every ray misses and
    the sky color is returned.

    Args:
        origin: Ray origin in world space.
        direction: Ray direction (need not be normalized).
        max_bounces: Scatter events allowed before the path is cut.

    Returns:
        Tuple of ((R, G, B), rays_traced).

    Raises:
        ValueError: If max_bounces is negative or direction is zero.
    """
    if max_bounces < 0:
        raise ValueError(f"max_bounces must be non-negative, got {max_bounces}")
    if direction[0] == 0.0 and direction[1] == 0.0 and direction[2] == 0.0:
        raise ValueError("direction must be non-zero")

    color = _trace_single_ray_kernel(vec3(*origin), vec3(*direction), max_bounces)
    rgb = (float(color[0]), float(color[1]), float(color[2]))
    return rgb, int(_last_ray_count[None])


def background_color(direction: tuple[float, float, float]) -> tuple[float, float, float]:
    """Sky color seen along ``direction``, evaluated from Python."""
    color = _background_kernel(vec3(*direction))
    return (float(color[0]), float(color[1]), float(color[2]))
