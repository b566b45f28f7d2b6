"""Device-side primitive storage and instance intersection.

Primitives are stored once, in object space, and placed in the world by
instances. An instance row holds the primitive kind and index, a material id
and the inverse of the instance's affine transform, so many instances can
share one primitive (the demo scene draws hundreds of small spheres from a
single unit sphere).

A world ray is taken to object space with the inverse transform. The
direction is transformed but not renormalized, so the t found in object
space is the t along the world ray. World normals use the inverse-transpose
of the linear part.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, fast_math=False)
    >>> from bvhtracer.geometry.instance import add_sphere, add_instance, PRIM_SPHERE
    >>> from bvhtracer.geometry.transform import Transform
    >>> prim = add_sphere((0.0, 0.0, 0.0), 1.0)
    >>> add_instance(PRIM_SPHERE, prim, material_id=0, transform=Transform.translate(0, 0, -3))
    0
"""

import taichi as ti
import taichi.math as tm

from .quad import Quad, hit_quad
from .sphere import HitRecord, Sphere, hit_sphere
from .transform import Transform

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Primitive kind tags stored per instance
PRIM_SPHERE = 0
PRIM_QUAD = 1

MAX_SPHERES = 1024
MAX_QUADS = 1024
MAX_INSTANCES = 8192


@ti.dataclass
class SceneHitRecord:
    """Record of a ray-scene intersection with material information.

    Attributes:
        hit: Whether the ray intersected any instance (1 if hit, 0 if miss).
        t: The parameter value along the world ray. Only valid if hit == 1.
        point: The world-space hit point. Only valid if hit == 1.
        normal: The unit world-space normal, facing the incoming ray.
            Only valid if hit == 1.
        front_face: Whether the ray arrived from outside the surface (1)
            or from inside (0). Only valid if hit == 1.
        material_id: The material ID of the hit instance. -1 on a miss.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    material_id: ti.i32


# Object-space sphere storage
sphere_centers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SPHERES)
sphere_radii = ti.field(dtype=ti.f32, shape=MAX_SPHERES)
num_spheres = ti.field(dtype=ti.i32, shape=())

# Object-space quad storage
quad_corners = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_edge_u = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_edge_v = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
num_quads = ti.field(dtype=ti.i32, shape=())

# Instance table
instance_prim_types = ti.field(dtype=ti.i32, shape=MAX_INSTANCES)
instance_prim_indices = ti.field(dtype=ti.i32, shape=MAX_INSTANCES)
instance_material_ids = ti.field(dtype=ti.i32, shape=MAX_INSTANCES)
instance_inv_linear = ti.Matrix.field(3, 3, dtype=ti.f32, shape=MAX_INSTANCES)
instance_inv_translation = ti.Vector.field(3, dtype=ti.f32, shape=MAX_INSTANCES)
instance_normal_matrix = ti.Matrix.field(3, 3, dtype=ti.f32, shape=MAX_INSTANCES)
num_instances = ti.field(dtype=ti.i32, shape=())


def clear_instances() -> None:
    """Clear all primitives and instances.

    Resets the counts to zero. The field data is overwritten as new
    primitives and instances are added.
    """
    num_spheres[None] = 0
    num_quads[None] = 0
    num_instances[None] = 0


def add_sphere(center, radius: float) -> int:
    """Store an object-space sphere.

    Args:
        center: The center point of the sphere.
        radius: The radius of the sphere. Must be positive.

    Returns:
        The primitive index of the sphere.

    Raises:
        ValueError: If the radius is not positive.
        RuntimeError: If the maximum number of spheres is exceeded.
    """
    if radius <= 0.0:
        raise ValueError(f"Sphere radius must be positive, got {radius}")
    idx = num_spheres[None]
    if idx >= MAX_SPHERES:
        raise RuntimeError(f"Maximum number of spheres ({MAX_SPHERES}) exceeded")
    sphere_centers[idx] = vec3(*center)
    sphere_radii[idx] = radius
    num_spheres[None] = idx + 1
    return idx


def add_quad(q, u, v) -> int:
    """Store an object-space quad spanning Q, Q+u, Q+v, Q+u+v.

    Returns:
        The primitive index of the quad.

    Raises:
        RuntimeError: If the maximum number of quads is exceeded.
    """
    idx = num_quads[None]
    if idx >= MAX_QUADS:
        raise RuntimeError(f"Maximum number of quads ({MAX_QUADS}) exceeded")
    quad_corners[idx] = vec3(*q)
    quad_edge_u[idx] = vec3(*u)
    quad_edge_v[idx] = vec3(*v)
    num_quads[None] = idx + 1
    return idx


def add_instance(prim_type: int, prim_index: int, material_id: int, transform: Transform) -> int:
    """Add a row to the instance table.

    Args:
        prim_type: PRIM_SPHERE or PRIM_QUAD.
        prim_index: Index returned by add_sphere or add_quad.
        material_id: Material ID from the scene's material table.
        transform: Object-to-world placement.

    Returns:
        The instance index.

    Raises:
        ValueError: If the primitive kind or index is unknown.
        RuntimeError: If the maximum number of instances is exceeded.
    """
    if prim_type == PRIM_SPHERE:
        count = num_spheres[None]
    elif prim_type == PRIM_QUAD:
        count = num_quads[None]
    else:
        raise ValueError(f"Unknown primitive type {prim_type}")
    if not 0 <= prim_index < count:
        raise ValueError(f"Primitive index {prim_index} out of range (have {count})")

    idx = num_instances[None]
    if idx >= MAX_INSTANCES:
        raise RuntimeError(f"Maximum number of instances ({MAX_INSTANCES}) exceeded")

    inverse = transform.inverse_matrix()
    instance_prim_types[idx] = prim_type
    instance_prim_indices[idx] = prim_index
    instance_material_ids[idx] = material_id
    instance_inv_linear[idx] = ti.Matrix(inverse[:3, :3].tolist())
    instance_inv_translation[idx] = vec3(*inverse[:3, 3].tolist())
    instance_normal_matrix[idx] = ti.Matrix(transform.normal_matrix().tolist())
    num_instances[None] = idx + 1
    return idx


def get_instance_count() -> int:
    """Get the number of instances in the table."""
    return int(num_instances[None])


@ti.func
def make_miss_record() -> SceneHitRecord:
    return SceneHitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        material_id=-1,
    )


@ti.func
def _hit_primitive(idx: ti.i32, origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32) -> HitRecord:
    """Intersect an object-space ray with the primitive of instance idx."""
    prim = instance_prim_indices[idx]
    rec = HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
    )
    if instance_prim_types[idx] == PRIM_SPHERE:
        sphere = Sphere(center=sphere_centers[prim], radius=sphere_radii[prim])
        rec = hit_sphere(origin, direction, sphere, t_min, t_max)
    elif instance_prim_types[idx] == PRIM_QUAD:
        quad = Quad(Q=quad_corners[prim], u=quad_edge_u[prim], v=quad_edge_v[prim])
        rec = hit_quad(origin, direction, quad, t_min, t_max)
    return rec


@ti.func
def intersect_instance(
    idx: ti.i32,
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Intersect a world ray with one instance.

    Args:
        idx: Instance index.
        ray_origin: World-space ray origin.
        ray_direction: World-space ray direction.
        t_min: Exclusive lower bound on t.
        t_max: Exclusive upper bound on t.

    Returns:
        A SceneHitRecord in world space carrying the instance's material.
    """
    inv_linear = instance_inv_linear[idx]
    local_origin = inv_linear @ ray_origin + instance_inv_translation[idx]
    local_direction = inv_linear @ ray_direction

    rec = _hit_primitive(idx, local_origin, local_direction, t_min, t_max)

    result = make_miss_record()
    if rec.hit == 1:
        result = SceneHitRecord(
            hit=1,
            t=rec.t,
            point=ray_origin + rec.t * ray_direction,
            normal=tm.normalize(instance_normal_matrix[idx] @ rec.normal),
            front_face=rec.front_face,
            material_id=instance_material_ids[idx],
        )
    return result


@ti.func
def intersect_all_instances(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Closest hit over every instance by linear scan.

    This is the reference the BVH query must agree with.
    """
    closest_t = t_max
    result = make_miss_record()
    for i in range(num_instances[None]):
        rec = intersect_instance(i, ray_origin, ray_direction, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = rec
    return result
