"""Geometry module for shape primitives, bounds and instancing.

Components:
    aabb: Axis-aligned bounding boxes (host value type and device slab test)
    transform: Translation, rotation and scale of an instance
    sphere: Sphere primitive with ray-sphere intersection
    quad: Parallelogram primitive with ray-quad intersection
    instance: Device primitive storage and per-instance intersection

Primitives are intersected in object space by Taichi functions (@ti.func);
instances carry them into the world.
"""

from .aabb import AABB, Axis, hit_aabb, inverse_direction
from .instance import (
    MAX_INSTANCES,
    PRIM_QUAD,
    PRIM_SPHERE,
    SceneHitRecord,
    add_instance,
    add_quad,
    add_sphere,
    clear_instances,
    get_instance_count,
    intersect_all_instances,
    intersect_instance,
)
from .quad import Quad, hit_quad, quad_bounds
from .sphere import HitRecord, Sphere, hit_sphere, sphere_bounds
from .transform import Transform

__all__ = [
    "AABB",
    "Axis",
    "hit_aabb",
    "inverse_direction",
    "Transform",
    "Sphere",
    "HitRecord",
    "hit_sphere",
    "sphere_bounds",
    "Quad",
    "hit_quad",
    "quad_bounds",
    "SceneHitRecord",
    "PRIM_SPHERE",
    "PRIM_QUAD",
    "MAX_INSTANCES",
    "add_sphere",
    "add_quad",
    "add_instance",
    "clear_instances",
    "get_instance_count",
    "intersect_instance",
    "intersect_all_instances",
]
