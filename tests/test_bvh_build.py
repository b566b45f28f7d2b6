"""Unit tests for host-side BVH construction and flattening.

Tests cover:
- Input validation
- Structural invariants of the flattened tree
- SAH splitting of well separated clusters
- Degenerate inputs (coincident centroids, more than a leaf's worth)
"""

import logging
from types import SimpleNamespace

import numpy as np
import pytest


def _boxes(bounds_list):
    """Wrap (min, max) pairs as items exposing a ``bounds`` AABB."""
    from bvhtracer.geometry.aabb import AABB

    return [SimpleNamespace(bounds=AABB(min=lo, max=hi)) for lo, hi in bounds_list]


def _random_items(n, seed=0):
    rng = np.random.default_rng(seed)
    centers = rng.uniform(-50.0, 50.0, size=(n, 3))
    half = rng.uniform(0.1, 2.0, size=(n, 3))
    return _boxes([(c - h, c + h) for c, h in zip(centers, half)])


def _subtree_items(bvh, index):
    """Original item indices stored under node ``index``."""
    items = []
    stack = [index]
    while stack:
        node = bvh.nodes[stack.pop()]
        if node.is_leaf:
            items.extend(bvh.permutation[node.offset : node.offset + node.count])
        else:
            stack.extend([node.left, node.right])
    return items


def _check_invariants(bvh, items):
    """Assert the structural invariants every flattened tree must satisfy."""
    n = len(items)

    # The permutation is a permutation of the inputs
    assert sorted(bvh.permutation) == list(range(n))

    # Node 0 is the root and bounds everything
    for item in items:
        assert bvh.nodes[0].bounds.contains(item.bounds)

    covered = []
    for index, node in enumerate(bvh.nodes):
        if node.is_leaf:
            assert node.left == -1 and node.right == -1
            covered.append((node.offset, node.offset + node.count))
            for k in range(node.offset, node.offset + node.count):
                assert node.bounds.contains(items[bvh.permutation[k]].bounds)
        else:
            assert node.count == 0
            # Children come after their parent in pre-order
            assert index < node.left < len(bvh.nodes)
            assert index < node.right < len(bvh.nodes)
            assert node.left == index + 1
            assert node.bounds.contains(bvh.nodes[node.left].bounds)
            assert node.bounds.contains(bvh.nodes[node.right].bounds)

    # Leaf ranges tile [0, n) without gaps or overlaps, in pre-order
    covered.sort()
    assert covered[0][0] == 0
    assert covered[-1][1] == n
    for (_, end), (start, _) in zip(covered, covered[1:]):
        assert end == start


def _max_depth(bvh):
    depth = 0
    stack = [(0, 0)]
    while stack:
        index, d = stack.pop()
        depth = max(depth, d)
        node = bvh.nodes[index]
        if not node.is_leaf:
            stack.append((node.left, d + 1))
            stack.append((node.right, d + 1))
    return depth


class TestBuildValidation:
    """Tests for build_bvh argument checking."""

    def test_empty_input_raises(self):
        from bvhtracer.accel.bvh import build_bvh

        with pytest.raises(ValueError, match="zero items"):
            build_bvh([])

    def test_bad_leaf_size_raises(self):
        from bvhtracer.accel.bvh import build_bvh

        with pytest.raises(ValueError, match="leaf_size"):
            build_bvh(_random_items(4), leaf_size=0)


class TestBuildStructure:
    """Tests for the shape of the flattened tree."""

    def test_single_item_is_one_leaf(self):
        from bvhtracer.accel.bvh import build_bvh

        items = _random_items(1)
        bvh = build_bvh(items)
        assert bvh.total_nodes == 1
        assert bvh.leaf_count == 1
        assert bvh.depth == 0
        assert bvh.permutation == (0,)
        assert bvh.nodes[0].is_leaf
        assert bvh.bounds == items[0].bounds

    @pytest.mark.parametrize("n,leaf_size", [(2, 1), (17, 1), (200, 4), (500, 64)])
    def test_invariants(self, n, leaf_size):
        from bvhtracer.accel.bvh import build_bvh

        items = _random_items(n, seed=n)
        bvh = build_bvh(items, leaf_size=leaf_size)
        _check_invariants(bvh, items)
        assert bvh.depth == _max_depth(bvh)

    def test_leaf_size_one_gives_full_binary_tree(self):
        from bvhtracer.accel.bvh import build_bvh

        n = 33
        bvh = build_bvh(_random_items(n), leaf_size=1)
        assert bvh.leaf_count == n
        assert bvh.total_nodes == 2 * n - 1
        assert all(node.count == 1 for node in bvh.nodes if node.is_leaf)

    def test_large_windows_are_always_split(self):
        from bvhtracer.accel.bvh import build_bvh

        bvh = build_bvh(_random_items(300), leaf_size=8)
        assert all(node.count <= 8 for node in bvh.nodes if node.is_leaf)

    def test_row_of_boxes(self):
        """Test the documented four-box example."""
        from bvhtracer.accel.bvh import build_bvh

        items = _boxes([((i, 0, 0), (i + 1, 1, 1)) for i in range(4)])
        bvh = build_bvh(items)
        np.testing.assert_array_equal(bvh.bounds.min, [0, 0, 0])
        np.testing.assert_array_equal(bvh.bounds.max, [4, 1, 1])
        _check_invariants(bvh, items)

    def test_build_logs_summary(self, caplog):
        from bvhtracer.accel.bvh import build_bvh

        with caplog.at_level(logging.INFO, logger="bvhtracer.accel.bvh"):
            build_bvh(_random_items(10))
        assert "Built BVH over 10 items" in caplog.text


class TestSAHSplitting:
    """Tests for the quality of SAH splits."""

    def test_separates_distant_clusters(self):
        """Test two far apart clusters end up in different root subtrees."""
        from bvhtracer.accel.bvh import build_bvh

        near = [((0.1 * i, 0, 0), (0.1 * i + 1, 1, 1)) for i in range(10)]
        far = [((100 + 0.1 * i, 0, 0), (100 + 0.1 * i + 1, 1, 1)) for i in range(10)]
        items = _boxes(near + far)

        bvh = build_bvh(items)
        root = bvh.nodes[0]
        assert not root.is_leaf
        assert sorted(_subtree_items(bvh, root.left)) == list(range(10))
        assert sorted(_subtree_items(bvh, root.right)) == list(range(10, 20))

    def test_small_compact_window_stays_leaf(self):
        """Test splitting is skipped when it would not pay for itself."""
        from bvhtracer.accel.bvh import build_bvh

        # Two nearly coincident boxes: any split costs more than 2 tests
        items = _boxes([((0, 0, 0), (1, 1, 1)), ((0.01, 0, 0), (1.01, 1, 1))])
        bvh = build_bvh(items)
        assert bvh.total_nodes == 1


class TestDegenerateInputs:
    """Tests for the median-split fallback."""

    def test_coincident_centroids_fit_in_leaf(self):
        from bvhtracer.accel.bvh import build_bvh

        items = _boxes([((-1, -1, -1), (1, 1, 1))] * 10)
        bvh = build_bvh(items)
        assert bvh.total_nodes == 1
        assert bvh.nodes[0].count == 10

    def test_coincident_centroids_over_leaf_size(self):
        """Test more coincident items than a leaf holds still builds."""
        from bvhtracer.accel.bvh import LEAF_SIZE, build_bvh

        n = LEAF_SIZE + 36
        items = _boxes([((-1, -1, -1), (1, 1, 1))] * n)
        bvh = build_bvh(items)
        _check_invariants(bvh, items)
        assert bvh.total_nodes == 3
        assert bvh.depth == 1
        assert [node.count for node in bvh.nodes if node.is_leaf] == [n // 2, n - n // 2]

    def test_coincident_centroids_small_leaf_size(self):
        from bvhtracer.accel.bvh import build_bvh

        items = _boxes([((0, 0, 0), (1, 1, 1))] * 20)
        bvh = build_bvh(items, leaf_size=3)
        _check_invariants(bvh, items)
        assert all(node.count <= 3 for node in bvh.nodes if node.is_leaf)

    def test_split_axis_follows_primitive_bounds(self):
        """Test a window widest on X stays a leaf when centroids coincide on X."""
        from bvhtracer.accel.bvh import build_bvh

        # Centroids differ on Y only, but the boxes together are widest on X
        items = _boxes([((0, 0, 0), (10, 1, 1)), ((4, 2, 0), (6, 3, 1))])
        bvh = build_bvh(items)
        assert bvh.total_nodes == 1
        assert bvh.nodes[0].count == 2

    def test_median_split_on_primitive_bounds_axis(self):
        """Test an oversized window with coincident X centroids keeps input order."""
        from bvhtracer.accel.bvh import build_bvh

        items = _boxes(
            [
                ((0, 5, 0), (10, 6, 1)),
                ((4, 2, 0), (6, 3, 1)),
                ((4.5, 0, 0), (5.5, 1, 1)),
            ]
        )
        bvh = build_bvh(items, leaf_size=1)
        _check_invariants(bvh, items)

        root = bvh.nodes[0]
        assert _subtree_items(bvh, root.left) == [0]
        assert sorted(_subtree_items(bvh, root.right)) == [1, 2]
        assert bvh.permutation[0] == 0

    def test_flat_boxes(self):
        """Test zero-thickness boxes (unpadded quads) build without error."""
        from bvhtracer.accel.bvh import build_bvh

        items = _boxes([((i, 0, 0), (i + 1, 0, 1)) for i in range(50)])
        bvh = build_bvh(items, leaf_size=2)
        _check_invariants(bvh, items)


class TestFlatten:
    """Tests for flatten on hand-built trees."""

    def test_node_count_mismatch_raises(self):
        from bvhtracer.accel.bvh import BuildLeaf, flatten
        from bvhtracer.geometry.aabb import AABB

        leaf = BuildLeaf(bounds=AABB(min=(0, 0, 0), max=(1, 1, 1)), offset=0, count=1)
        with pytest.raises(RuntimeError):
            flatten(leaf, total_nodes=3)

    def test_preorder_layout(self):
        from bvhtracer.accel.bvh import BuildInterior, BuildLeaf, flatten
        from bvhtracer.geometry.aabb import AABB

        box = AABB(min=(0, 0, 0), max=(1, 1, 1))
        inner = BuildInterior(
            bounds=box,
            left=BuildLeaf(bounds=box, offset=0, count=1),
            right=BuildLeaf(bounds=box, offset=1, count=1),
        )
        root = BuildInterior(bounds=box, left=inner, right=BuildLeaf(bounds=box, offset=2, count=2))

        nodes = flatten(root, total_nodes=5)
        assert (nodes[0].left, nodes[0].right) == (1, 4)
        assert (nodes[1].left, nodes[1].right) == (2, 3)
        assert [n.offset for n in nodes if n.is_leaf] == [0, 1, 2]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
