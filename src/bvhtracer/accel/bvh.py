"""Surface Area Heuristic BVH construction and flattening.

The tree is built on the host once per scene, flattened into an immutable
pre-order node array and then uploaded to Taichi fields by
``bvhtracer.accel.traversal`` for the render kernels.

Construction works on a list of GeometryInfo records, one per instance, that
is partitioned in place. Each window [start, end) either becomes a leaf or is
split in two by the SAH over 12 centroid buckets:

    cost(i) = 0.125 + (n_left * SA(left) + n_right * SA(right)) / SA(parent)

Degenerate windows fall back to a median split: when every centroid sits at
the same coordinate along the split axis (and the window is too big for a
leaf), or when the chosen bucket boundary leaves one side empty.

Both the build and the flattening walk the tree with explicit stacks.

Example:
    >>> from bvhtracer.accel.bvh import build_bvh
    >>> from bvhtracer.geometry.aabb import AABB
    >>> from types import SimpleNamespace
    >>> items = [SimpleNamespace(bounds=AABB(min=(i, 0, 0), max=(i + 1, 1, 1))) for i in range(4)]
    >>> bvh = build_bvh(items)
    >>> bvh.nodes[0].bounds
    AABB(min=[0.0, 0.0, 0.0], max=[4.0, 1.0, 1.0])
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import numpy.typing as npt

from bvhtracer.geometry.aabb import AABB, Axis

logger = logging.getLogger(__name__)

# SAH parameters
SAH_BUCKETS = 12
TRAVERSAL_COST = 0.125
LEAF_SIZE = 64


class Bounded(Protocol):
    """Anything the BVH can be built over."""

    @property
    def bounds(self) -> AABB: ...


@dataclass(frozen=True)
class GeometryInfo:
    """Build-time record for one input item."""

    original_index: int
    centroid: npt.NDArray[np.float64]
    bounds: AABB


@dataclass
class BuildLeaf:
    bounds: AABB
    offset: int
    count: int


@dataclass
class BuildInterior:
    bounds: AABB
    left: BuildLeaf | BuildInterior | None = None
    right: BuildLeaf | BuildInterior | None = None


BuildNode = BuildLeaf | BuildInterior


@dataclass(frozen=True)
class FlatNode:
    """One node of the flattened tree.

    Interior nodes carry child indices and ``count == 0``. Leaves carry
    ``left == right == -1`` and the range [offset, offset + count) of the
    permuted item array.
    """

    bounds: AABB
    left: int = -1
    right: int = -1
    offset: int = 0
    count: int = 0

    @property
    def is_leaf(self) -> bool:
        return self.count > 0


@dataclass(frozen=True)
class FlatBVH:
    """Immutable flattened BVH.

    Attributes:
        nodes: Pre-order node array; node 0 is the root.
        permutation: ``permutation[k]`` is the original index of the item
            stored at position k. Every leaf's range is contiguous.
        depth: Number of edges on the longest root-to-leaf path.
    """

    nodes: tuple[FlatNode, ...]
    permutation: tuple[int, ...]
    depth: int

    @property
    def total_nodes(self) -> int:
        return len(self.nodes)

    @property
    def leaf_count(self) -> int:
        return sum(1 for node in self.nodes if node.is_leaf)

    @property
    def bounds(self) -> AABB:
        return self.nodes[0].bounds


@dataclass
class _Bucket:
    count: int = 0
    bounds: AABB | None = None

    def add(self, box: AABB) -> None:
        self.count += 1
        self.bounds = box if self.bounds is None else self.bounds.union(box)


def _window_bounds(infos: Sequence[GeometryInfo]) -> AABB:
    box = AABB.empty()
    for info in infos:
        box = box.union(info.bounds)
    return box


def _bucket_index(c: float, cmin: float, cmax: float) -> int:
    b = int((c - cmin) / (cmax - cmin) * SAH_BUCKETS)
    return min(max(b, 0), SAH_BUCKETS - 1)


def _median_split(infos: list[GeometryInfo], start: int, end: int, axis: Axis) -> int:
    """Sort the window by centroid along ``axis`` and cut it in half."""
    infos[start:end] = sorted(infos[start:end], key=lambda info: info.centroid[axis])
    return start + (end - start) // 2


def _sah_costs(buckets: list[_Bucket], parent_area: float) -> list[float]:
    """Cost of splitting after each of the first SAH_BUCKETS - 1 buckets."""
    inv_area = 1.0 / parent_area if parent_area > 0.0 else 0.0

    # Sweep from the left and from the right so every split costs O(1)
    left_area = []
    left_count = []
    box = AABB.empty()
    count = 0
    for bucket in buckets[:-1]:
        if bucket.count:
            box = box.union(bucket.bounds)
            count += bucket.count
        left_area.append(box.surface_area())
        left_count.append(count)

    right_area = [0.0] * (SAH_BUCKETS - 1)
    right_count = [0] * (SAH_BUCKETS - 1)
    box = AABB.empty()
    count = 0
    for i in range(SAH_BUCKETS - 1, 0, -1):
        bucket = buckets[i]
        if bucket.count:
            box = box.union(bucket.bounds)
            count += bucket.count
        right_area[i - 1] = box.surface_area()
        right_count[i - 1] = count

    return [
        TRAVERSAL_COST + (left_count[i] * left_area[i] + right_count[i] * right_area[i]) * inv_area
        for i in range(SAH_BUCKETS - 1)
    ]


def _split_window(infos: list[GeometryInfo], start: int, end: int, bounds: AABB, leaf_size: int) -> int | None:
    """Decide how to split infos[start:end].

    Returns:
        The index where the right half starts, or None if the window should
        become a leaf. The window is reordered in place when it is split.
    """
    n = end - start
    if n == 1:
        return None

    window = infos[start:end]
    centroid_bounds = AABB.from_points(info.centroid for info in window)
    axis = bounds.max_extent()
    cmin = centroid_bounds.min[axis]
    cmax = centroid_bounds.max[axis]

    if cmax - cmin <= 0.0:
        if n <= leaf_size:
            return None
        return _median_split(infos, start, end, axis)

    buckets = [_Bucket() for _ in range(SAH_BUCKETS)]
    indices = [_bucket_index(info.centroid[axis], cmin, cmax) for info in window]
    for info, b in zip(window, indices):
        buckets[b].add(info.bounds)

    costs = _sah_costs(buckets, bounds.surface_area())
    best = int(np.argmin(costs))
    min_cost = costs[best]

    if not (n > leaf_size or min_cost < n):
        return None

    left = [info for info, b in zip(window, indices) if b <= best]
    right = [info for info, b in zip(window, indices) if b > best]
    if not left or not right:
        return _median_split(infos, start, end, axis)

    infos[start:end] = left + right
    return start + len(left)


def _build_tree(infos: list[GeometryInfo], leaf_size: int) -> tuple[BuildNode, list[int], int, int]:
    """Build the tree with an explicit stack.

    Windows are popped left before right, so leaves are emitted left to
    right and the permutation matches the pre-order of the tree.

    Returns:
        (root, permutation, total_nodes, depth)
    """
    root: BuildNode | None = None
    permutation: list[int] = []
    total_nodes = 0
    depth = 0

    # (start, end, depth, parent, is_right_child)
    stack: list[tuple[int, int, int, BuildInterior | None, bool]] = [(0, len(infos), 0, None, False)]
    while stack:
        start, end, node_depth, parent, is_right = stack.pop()
        bounds = _window_bounds(infos[start:end])
        total_nodes += 1
        depth = max(depth, node_depth)

        mid = _split_window(infos, start, end, bounds, leaf_size)
        if mid is None:
            node: BuildNode = BuildLeaf(bounds=bounds, offset=len(permutation), count=end - start)
            permutation.extend(info.original_index for info in infos[start:end])
        else:
            # Children partition the window, so their union is these bounds
            node = BuildInterior(bounds=bounds)
            stack.append((mid, end, node_depth + 1, node, True))
            stack.append((start, mid, node_depth + 1, node, False))

        if parent is None:
            root = node
        elif is_right:
            parent.right = node
        else:
            parent.left = node

    return root, permutation, total_nodes, depth


def flatten(root: BuildNode, total_nodes: int) -> tuple[FlatNode, ...]:
    """Lay the tree out in pre-order: node, left subtree, right subtree.

    Args:
        root: Root of the build tree.
        total_nodes: Number of nodes the build produced.

    Returns:
        The flattened nodes. Interior nodes reference strictly later indices.

    Raises:
        RuntimeError: If the walk does not visit exactly ``total_nodes`` nodes.
    """
    order: list[BuildNode] = []
    links: dict[int, list[int]] = {}

    stack: list[tuple[BuildNode, int, bool]] = [(root, -1, False)]
    while stack:
        node, parent, is_right = stack.pop()
        index = len(order)
        order.append(node)
        if parent >= 0:
            links[parent][1 if is_right else 0] = index
        if isinstance(node, BuildInterior):
            links[index] = [-1, -1]
            stack.append((node.right, index, True))
            stack.append((node.left, index, False))

    if len(order) != total_nodes:
        raise RuntimeError(f"Flattened {len(order)} nodes but the build produced {total_nodes}")

    nodes = []
    for index, node in enumerate(order):
        if isinstance(node, BuildLeaf):
            nodes.append(FlatNode(bounds=node.bounds, offset=node.offset, count=node.count))
        else:
            left, right = links[index]
            nodes.append(FlatNode(bounds=node.bounds, left=left, right=right))
    return tuple(nodes)


def build_bvh(items: Sequence[Bounded], leaf_size: int = LEAF_SIZE) -> FlatBVH:
    """Build a flattened SAH BVH over anything exposing a ``bounds`` AABB.

    Args:
        items: The items to index, typically the scene's instances.
        leaf_size: Windows larger than this are always split.

    Returns:
        The flattened BVH.

    Raises:
        ValueError: If ``items`` is empty or ``leaf_size`` is not positive.
    """
    if len(items) == 0:
        raise ValueError("Cannot build a BVH over zero items")
    if leaf_size < 1:
        raise ValueError(f"leaf_size must be at least 1, got {leaf_size}")

    infos = [
        GeometryInfo(original_index=i, centroid=item.bounds.centroid(), bounds=item.bounds)
        for i, item in enumerate(items)
    ]
    root, permutation, total_nodes, depth = _build_tree(infos, leaf_size)
    nodes = flatten(root, total_nodes)

    bvh = FlatBVH(nodes=nodes, permutation=tuple(permutation), depth=depth)
    logger.info(
        "Built BVH over %d items: %d nodes, %d leaves, depth %d",
        len(items),
        bvh.total_nodes,
        bvh.leaf_count,
        bvh.depth,
    )
    return bvh
