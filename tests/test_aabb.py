"""Unit tests for axis-aligned bounding boxes.

Tests cover:
- Construction, union and the empty box identity
- Centroid, extent, max_extent tie-breaking and surface area
- Affine transformation of boxes
- Host and device slab tests, including axis-aligned rays
"""

import math

import numpy as np
import pytest
import taichi as ti


class TestAABBBasics:
    """Tests for AABB construction and combination."""

    def test_from_points(self):
        from bvhtracer.geometry.aabb import AABB

        box = AABB.from_points([(1, 5, -2), (-1, 0, 3), (0, 2, 0)])
        np.testing.assert_array_equal(box.min, [-1, 0, -2])
        np.testing.assert_array_equal(box.max, [1, 5, 3])

    def test_empty_is_union_identity(self):
        from bvhtracer.geometry.aabb import AABB

        box = AABB(min=(0, 1, 2), max=(3, 4, 5))
        assert AABB.empty().is_empty()
        assert AABB.empty().union(box) == box
        assert box.union(AABB.empty()) == box
        assert AABB.from_points([]) == AABB.empty()

    def test_union_and_point_union(self):
        from bvhtracer.geometry.aabb import AABB

        a = AABB(min=(0, 0, 0), max=(1, 1, 1))
        b = AABB(min=(2, -1, 0), max=(3, 0.5, 4))
        u = a.union(b)
        np.testing.assert_array_equal(u.min, [0, -1, 0])
        np.testing.assert_array_equal(u.max, [3, 1, 4])
        assert u.contains(a)
        assert u.contains(b)

        p = a.point_union((-2, 0.5, 0.5))
        np.testing.assert_array_equal(p.min, [-2, 0, 0])
        np.testing.assert_array_equal(p.max, [1, 1, 1])

    def test_union_contains_both_and_commutes(self):
        from bvhtracer.geometry.aabb import AABB

        rng = np.random.default_rng(7)
        for _ in range(100):
            corners = rng.uniform(-100.0, 100.0, size=(4, 3))
            a = AABB.from_points(corners[:2])
            b = AABB.from_points(corners[2:])
            u = a.union(b)

            assert u.contains(a)
            assert u.contains(b)
            assert u == b.union(a)

    def test_union_does_not_mutate(self):
        from bvhtracer.geometry.aabb import AABB

        a = AABB(min=(0, 0, 0), max=(1, 1, 1))
        a.union(AABB(min=(5, 5, 5), max=(6, 6, 6)))
        np.testing.assert_array_equal(a.max, [1, 1, 1])

    def test_centroid_and_extent(self):
        from bvhtracer.geometry.aabb import AABB

        box = AABB(min=(0, 2, -4), max=(2, 6, 4))
        np.testing.assert_array_equal(box.centroid(), [1, 4, 0])
        np.testing.assert_array_equal(box.extent(), [2, 4, 8])


class TestAABBMeasures:
    """Tests for max_extent and surface_area."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            ((3, 1, 1), 0),
            ((1, 3, 1), 1),
            ((1, 1, 3), 2),
            ((2, 2, 1), 0),
            ((2, 1, 2), 0),
            ((1, 2, 2), 1),
            ((1, 1, 1), 0),
        ],
    )
    def test_max_extent_tie_break(self, size, expected):
        """Test the widest axis wins, ties going to X then Y."""
        from bvhtracer.geometry.aabb import AABB, Axis

        box = AABB(min=(0, 0, 0), max=size)
        assert box.max_extent() == Axis(expected)

    def test_surface_area(self):
        from bvhtracer.geometry.aabb import AABB

        assert AABB(min=(0, 0, 0), max=(1, 1, 1)).surface_area() == 6.0
        assert AABB(min=(0, 0, 0), max=(1, 2, 3)).surface_area() == 22.0

    def test_surface_area_of_empty_and_flat_boxes(self):
        from bvhtracer.geometry.aabb import AABB

        assert AABB.empty().surface_area() == 0.0
        assert AABB.from_points([(1, 1, 1)]).surface_area() == 0.0
        assert AABB(min=(0, 0, 0), max=(2, 3, 0)).surface_area() == 12.0

    def test_padded(self):
        from bvhtracer.geometry.aabb import AABB

        box = AABB(min=(0, 1, 0), max=(1, 1, 1)).padded(0.01)
        assert abs((box.max[1] - box.min[1]) - 0.01) < 1e-12
        assert box.max[0] == 1.0


class TestAABBTransform:
    """Tests for AABB.transformed."""

    def test_translation(self):
        from bvhtracer.geometry.aabb import AABB
        from bvhtracer.geometry.transform import Transform

        box = AABB(min=(-1, -1, -1), max=(1, 1, 1))
        moved = box.transformed(Transform(translation=(5, 0, -2)).matrix())
        np.testing.assert_allclose(moved.min, [4, -1, -3])
        np.testing.assert_allclose(moved.max, [6, 1, -1])

    def test_rotation_grows_box(self):
        """Test a 45 degree rotation about Y encloses the rotated corners."""
        from bvhtracer.geometry.aabb import AABB
        from bvhtracer.geometry.transform import Transform

        box = AABB(min=(-1, -1, -1), max=(1, 1, 1))
        rotated = box.transformed(Transform(rotation=(0, 45, 0)).matrix())
        r = math.sqrt(2.0)
        np.testing.assert_allclose(rotated.min, [-r, -1, -r], atol=1e-9)
        np.testing.assert_allclose(rotated.max, [r, 1, r], atol=1e-9)


class TestSlabTest:
    """Tests for the host and device slab tests."""

    def test_host_hit_and_miss(self):
        from bvhtracer.geometry.aabb import AABB, inverse_direction

        box = AABB(min=(-1, -1, -1), max=(1, 1, 1))
        inv = inverse_direction((0.0, 0.0, -1.0))
        assert box.has_intersection((0, 0, 5), inv)
        assert not box.has_intersection((3, 0, 5), inv)
        # Box entirely behind the ray
        assert not box.has_intersection((0, 0, -5), inv)

    def test_host_interval_bounds(self):
        from bvhtracer.geometry.aabb import AABB, inverse_direction

        box = AABB(min=(-1, -1, -1), max=(1, 1, 1))
        inv = inverse_direction((0.0, 0.0, -1.0))
        assert not box.has_intersection((0, 0, 5), inv, 0.0, 3.0)
        assert box.has_intersection((0, 0, 5), inv, 0.0, 4.5)

    def test_host_origin_inside(self):
        from bvhtracer.geometry.aabb import AABB, inverse_direction

        box = AABB(min=(-1, -1, -1), max=(1, 1, 1))
        assert box.has_intersection((0, 0, 0), inverse_direction((1.0, 2.0, 3.0)))

    def test_inverse_direction_zero_component(self):
        from bvhtracer.geometry.aabb import inverse_direction

        inv = inverse_direction((0.0, 2.0, -0.0))
        assert math.isinf(inv[0]) and inv[0] > 0
        assert inv[1] == 0.5
        assert math.isinf(inv[2]) and inv[2] < 0

    def test_device_matches_host(self):
        """Test hit_aabb agrees with has_intersection for a batch of rays."""
        from bvhtracer.core.ray import make_ray, vec3
        from bvhtracer.geometry.aabb import AABB, hit_aabb, inverse_direction

        box = AABB(min=(-1, -2, -0.5), max=(1, 2, 0.5))
        rays = [
            ((0, 0, 5), (0, 0, -1)),
            ((0, 0, 5), (0, 0, 1)),
            ((3, 0, 0), (-1, 0, 0)),
            ((3, 3, 0), (-1, 0, 0)),
            ((5, 5, 5), (-1, -1, -1)),
            ((5, 5, 5), (-1, -0.2, -1)),
            ((0.5, 1.5, 0), (0, 1, 0)),
            ((-4, 0, 0.25), (1, 0.1, 0)),
        ]
        n = len(rays)
        origins = ti.Vector.field(3, dtype=ti.f32, shape=n)
        directions = ti.Vector.field(3, dtype=ti.f32, shape=n)
        results = ti.field(dtype=ti.i32, shape=n)
        for i, (o, d) in enumerate(rays):
            origins[i] = o
            directions[i] = d

        @ti.kernel
        def test_kernel(box_min: vec3, box_max: vec3):
            for i in range(n):
                ray = make_ray(origins[i], directions[i])
                results[i] = hit_aabb(box_min, box_max, ray, 0.0, 1e10)

        test_kernel(vec3(*box.min), vec3(*box.max))
        for i, (o, d) in enumerate(rays):
            expected = box.has_intersection(o, inverse_direction(d), 0.0, 1e10)
            assert results[i] == int(expected), f"ray {i}: {o} -> {d}"

    def test_device_axis_aligned_ray(self):
        """Test axis-aligned rays, whose inverse has infinite components."""
        from bvhtracer.core.ray import make_ray, vec3
        from bvhtracer.geometry.aabb import hit_aabb

        results = ti.field(dtype=ti.i32, shape=2)

        @ti.kernel
        def test_kernel():
            box_min = vec3(-1.0, -1.0, -1.0)
            box_max = vec3(1.0, 1.0, 1.0)
            inside = make_ray(vec3(0.5, 0.5, 10.0), vec3(0.0, 0.0, -1.0))
            outside = make_ray(vec3(1.5, 0.5, 10.0), vec3(0.0, 0.0, -1.0))
            results[0] = hit_aabb(box_min, box_max, inside, 0.0, 1e10)
            results[1] = hit_aabb(box_min, box_max, outside, 0.0, 1e10)

        test_kernel()
        assert results[0] == 1
        assert results[1] == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
