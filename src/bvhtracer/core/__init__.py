"""Core rendering module.

Components:
    ray: Ray data structure, vector and sampling utilities
    integrator: Iterative Monte Carlo path tracing
    renderer: Data-parallel per-pixel render kernel

All compute-intensive operations use Taichi kernels.
"""

from .ray import (
    Ray,
    length_squared,
    make_ray,
    near_zero,
    random_in_unit_disk,
    random_in_unit_sphere,
    ray_at,
    reflect,
    refract,
    schlick_fresnel,
    vec3,
)

# Note: integrator and renderer are NOT imported here to avoid circular imports.
# Import them directly from bvhtracer.core.integrator and bvhtracer.core.renderer.

__all__ = [
    "Ray",
    "ray_at",
    "make_ray",
    "vec3",
    "length_squared",
    "reflect",
    "refract",
    "schlick_fresnel",
    "near_zero",
    "random_in_unit_sphere",
    "random_in_unit_disk",
]
