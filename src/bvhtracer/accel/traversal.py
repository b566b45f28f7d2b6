"""Device-side BVH storage and ray queries.

A FlatBVH built on the host is copied into Structure-of-Arrays Taichi fields
by ``upload_bvh``. The render kernels then only read these fields, so every
pixel thread can walk the tree concurrently.

Traversal is depth-first with a fixed-size per-thread stack. The running
closest hit distance shrinks as leaves are scanned and is used as the upper
end of every later box test, which prunes subtrees that lie behind a hit
already found.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, fast_math=False)
    >>> from bvhtracer.accel.bvh import build_bvh
    >>> from bvhtracer.accel.traversal import upload_bvh, intersect_bvh
    >>> upload_bvh(build_bvh(instances))
    >>> # Use intersect_bvh within a Taichi kernel
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from bvhtracer.core.ray import Ray
from bvhtracer.geometry.aabb import hit_aabb
from bvhtracer.geometry.instance import (
    MAX_INSTANCES,
    SceneHitRecord,
    intersect_instance,
    make_miss_record,
)

from .bvh import FlatBVH

vec3 = tm.vec3

# A binary tree with one item per leaf has 2n - 1 nodes
MAX_BVH_NODES = 2 * MAX_INSTANCES
BVH_STACK_SIZE = 64

bvh_node_min = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_node_max = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BVH_NODES)
bvh_node_left = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_node_right = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_node_offset = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_node_count = ti.field(dtype=ti.i32, shape=MAX_BVH_NODES)
bvh_num_nodes = ti.field(dtype=ti.i32, shape=())

# Leaf ranges index this array; it maps back to instance indices
bvh_instance_order = ti.field(dtype=ti.i32, shape=MAX_INSTANCES)


def clear_bvh() -> None:
    """Forget the uploaded tree. Queries miss until the next upload."""
    bvh_num_nodes[None] = 0


def get_bvh_node_count() -> int:
    """Get the number of nodes currently uploaded."""
    return int(bvh_num_nodes[None])


def upload_bvh(bvh: FlatBVH) -> None:
    """Copy a flattened BVH into the device fields.

    Node boxes are rounded outward to float32 so that no hit inside the
    double-precision box can be missed by the device slab test.

    Args:
        bvh: The tree to upload.

    Raises:
        ValueError: If the tree has more nodes or items than the fields hold,
            or is deeper than the traversal stack allows.
    """
    n_nodes = bvh.total_nodes
    n_items = len(bvh.permutation)
    if n_nodes > MAX_BVH_NODES:
        raise ValueError(f"BVH has {n_nodes} nodes, more than the capacity of {MAX_BVH_NODES}")
    if n_items > MAX_INSTANCES:
        raise ValueError(f"BVH indexes {n_items} items, more than the capacity of {MAX_INSTANCES}")
    # The stack holds at most one pending sibling per level plus the current pair
    if bvh.depth + 1 > BVH_STACK_SIZE:
        raise ValueError(f"BVH depth {bvh.depth} exceeds the traversal stack size {BVH_STACK_SIZE}")

    mins = np.zeros((MAX_BVH_NODES, 3), dtype=np.float32)
    maxs = np.zeros((MAX_BVH_NODES, 3), dtype=np.float32)
    left = np.full(MAX_BVH_NODES, -1, dtype=np.int32)
    right = np.full(MAX_BVH_NODES, -1, dtype=np.int32)
    offset = np.zeros(MAX_BVH_NODES, dtype=np.int32)
    count = np.zeros(MAX_BVH_NODES, dtype=np.int32)

    for i, node in enumerate(bvh.nodes):
        mins[i] = node.bounds.min
        maxs[i] = node.bounds.max
        left[i] = node.left
        right[i] = node.right
        offset[i] = node.offset
        count[i] = node.count

    mins = np.nextafter(mins, np.float32(-np.inf))
    maxs = np.nextafter(maxs, np.float32(np.inf))

    order = np.zeros(MAX_INSTANCES, dtype=np.int32)
    order[:n_items] = bvh.permutation

    bvh_node_min.from_numpy(mins)
    bvh_node_max.from_numpy(maxs)
    bvh_node_left.from_numpy(left)
    bvh_node_right.from_numpy(right)
    bvh_node_offset.from_numpy(offset)
    bvh_node_count.from_numpy(count)
    bvh_instance_order.from_numpy(order)
    bvh_num_nodes[None] = n_nodes


@ti.func
def intersect_bvh(ray: Ray, t_min: ti.f32, t_max: ti.f32) -> SceneHitRecord:
    """Find the closest instance hit along the ray in (t_min, t_max).

    Args:
        ray: The world-space ray, with its inverse direction.
        t_min: Exclusive lower bound on t.
        t_max: Exclusive upper bound on t.

    Returns:
        The closest SceneHitRecord, or a miss record (hit == 0).
    """
    result = make_miss_record()
    closest_t = t_max

    stack = ti.Vector([0 for _ in range(BVH_STACK_SIZE)], dt=ti.i32)
    stack_ptr = 0
    if bvh_num_nodes[None] > 0:
        stack[0] = 0
        stack_ptr = 1

    while stack_ptr > 0:
        stack_ptr -= 1
        node = stack[stack_ptr]

        if hit_aabb(bvh_node_min[node], bvh_node_max[node], ray, t_min, closest_t) == 0:
            continue

        count = bvh_node_count[node]
        if count > 0:
            offset = bvh_node_offset[node]
            for k in range(count):
                inst = bvh_instance_order[offset + k]
                rec = intersect_instance(inst, ray.origin, ray.direction, t_min, closest_t)
                if rec.hit == 1:
                    closest_t = rec.t
                    result = rec
        else:
            # Left is pushed last so it is visited first
            stack[stack_ptr] = bvh_node_right[node]
            stack_ptr += 1
            stack[stack_ptr] = bvh_node_left[node]
            stack_ptr += 1

    return result


@ti.func
def intersect_bvh_any(ray: Ray, t_min: ti.f32, t_max: ti.f32) -> ti.i32:
    """Return 1 if anything is hit along the ray in (t_min, t_max).

    Stops at the first hit found, in whatever order the tree yields it.
    """
    hit_any = 0

    stack = ti.Vector([0 for _ in range(BVH_STACK_SIZE)], dt=ti.i32)
    stack_ptr = 0
    if bvh_num_nodes[None] > 0:
        stack[0] = 0
        stack_ptr = 1

    while stack_ptr > 0 and hit_any == 0:
        stack_ptr -= 1
        node = stack[stack_ptr]

        if hit_aabb(bvh_node_min[node], bvh_node_max[node], ray, t_min, t_max) == 1:
            count = bvh_node_count[node]
            if count > 0:
                offset = bvh_node_offset[node]
                for k in range(count):
                    if hit_any == 0:
                        inst = bvh_instance_order[offset + k]
                        rec = intersect_instance(inst, ray.origin, ray.direction, t_min, t_max)
                        if rec.hit == 1:
                            hit_any = 1
            else:
                stack[stack_ptr] = bvh_node_right[node]
                stack_ptr += 1
                stack[stack_ptr] = bvh_node_left[node]
                stack_ptr += 1

    return hit_any
