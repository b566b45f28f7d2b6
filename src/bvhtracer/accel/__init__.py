"""Acceleration structures.

Components:
    bvh: Host-side SAH BVH construction and pre-order flattening
    traversal: Device-side BVH storage and nearest/any-hit ray queries
"""

from .bvh import LEAF_SIZE, FlatBVH, FlatNode, build_bvh, flatten
from .traversal import (
    BVH_STACK_SIZE,
    MAX_BVH_NODES,
    clear_bvh,
    get_bvh_node_count,
    intersect_bvh,
    intersect_bvh_any,
    upload_bvh,
)

__all__ = [
    "LEAF_SIZE",
    "FlatBVH",
    "FlatNode",
    "build_bvh",
    "flatten",
    "BVH_STACK_SIZE",
    "MAX_BVH_NODES",
    "clear_bvh",
    "get_bvh_node_count",
    "intersect_bvh",
    "intersect_bvh_any",
    "upload_bvh",
]
