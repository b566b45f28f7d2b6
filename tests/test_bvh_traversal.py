"""Tests for the device-side BVH upload and ray queries.

Tests cover:
- Upload validation (depth and capacity limits)
- Nearest-hit traversal agreeing with a brute-force scan of all instances
- Any-hit traversal agreeing with nearest-hit on whether something was hit
- Empty and cleared trees

Note: Imports are done inside test methods so that Taichi fields are declared
after the conftest.py fixture has initialized Taichi.
"""

import numpy as np
import pytest
import taichi as ti


def _random_sphere_scene(n, seed=0, leaf_size=4):
    """Build a scene of n random spheres with distinct materials."""
    from bvhtracer.scene.manager import SceneManager

    rng = np.random.default_rng(seed)
    scene = SceneManager()
    for _ in range(n):
        center = tuple(float(x) for x in rng.uniform(-10.0, 10.0, size=3))
        radius = float(rng.uniform(0.2, 1.5))
        albedo = tuple(float(x) for x in rng.uniform(0.0, 1.0, size=3))
        scene.add_lambertian_sphere(center, radius, albedo)
    bvh = scene.build(leaf_size=leaf_size)
    return scene, bvh


def _random_rays(n, seed=1):
    rng = np.random.default_rng(seed)
    origins = rng.uniform(-15.0, 15.0, size=(n, 3)).astype(np.float32)
    targets = rng.uniform(-8.0, 8.0, size=(n, 3)).astype(np.float32)
    return origins, targets - origins


def _compare_queries(origins, directions):
    """Run BVH and brute-force queries for every ray.

    Returns:
        Dict of numpy arrays: bvh_hit, bvh_t, bvh_mat, brute_hit, brute_t,
        brute_mat, any_hit.
    """
    from bvhtracer.accel.traversal import intersect_bvh, intersect_bvh_any
    from bvhtracer.core.ray import make_ray
    from bvhtracer.geometry.instance import intersect_all_instances

    n = len(origins)
    o_field = ti.Vector.field(3, dtype=ti.f32, shape=n)
    d_field = ti.Vector.field(3, dtype=ti.f32, shape=n)
    o_field.from_numpy(np.asarray(origins, dtype=np.float32))
    d_field.from_numpy(np.asarray(directions, dtype=np.float32))

    bvh_hit = ti.field(dtype=ti.i32, shape=n)
    bvh_t = ti.field(dtype=ti.f32, shape=n)
    bvh_mat = ti.field(dtype=ti.i32, shape=n)
    brute_hit = ti.field(dtype=ti.i32, shape=n)
    brute_t = ti.field(dtype=ti.f32, shape=n)
    brute_mat = ti.field(dtype=ti.i32, shape=n)
    any_hit = ti.field(dtype=ti.i32, shape=n)

    @ti.kernel
    def test_kernel():
        for i in range(n):
            ray = make_ray(o_field[i], d_field[i])
            rec = intersect_bvh(ray, 1e-4, 1e10)
            bvh_hit[i] = rec.hit
            bvh_t[i] = rec.t
            bvh_mat[i] = rec.material_id

            ref = intersect_all_instances(o_field[i], d_field[i], 1e-4, 1e10)
            brute_hit[i] = ref.hit
            brute_t[i] = ref.t
            brute_mat[i] = ref.material_id

            any_hit[i] = intersect_bvh_any(ray, 1e-4, 1e10)

    test_kernel()
    return {
        "bvh_hit": bvh_hit.to_numpy(),
        "bvh_t": bvh_t.to_numpy(),
        "bvh_mat": bvh_mat.to_numpy(),
        "brute_hit": brute_hit.to_numpy(),
        "brute_t": brute_t.to_numpy(),
        "brute_mat": brute_mat.to_numpy(),
        "any_hit": any_hit.to_numpy(),
    }


class TestUploadValidation:
    """Tests for upload_bvh limits."""

    def test_too_deep_raises(self):
        from bvhtracer.accel.bvh import FlatBVH, FlatNode
        from bvhtracer.accel.traversal import BVH_STACK_SIZE, upload_bvh
        from bvhtracer.geometry.aabb import AABB

        leaf = FlatNode(bounds=AABB(min=(0, 0, 0), max=(1, 1, 1)), offset=0, count=1)
        bvh = FlatBVH(nodes=(leaf,), permutation=(0,), depth=BVH_STACK_SIZE)
        with pytest.raises(ValueError, match="depth"):
            upload_bvh(bvh)

    def test_upload_sets_node_count(self):
        from bvhtracer.accel.traversal import clear_bvh, get_bvh_node_count

        _, bvh = _random_sphere_scene(20)
        assert get_bvh_node_count() == bvh.total_nodes
        clear_bvh()
        assert get_bvh_node_count() == 0

    def test_boxes_rounded_outward(self):
        """Test uploaded float32 boxes never shrink the double-precision box."""
        from bvhtracer.accel.traversal import bvh_node_max, bvh_node_min

        _, bvh = _random_sphere_scene(30)
        mins = bvh_node_min.to_numpy()[: bvh.total_nodes].astype(np.float64)
        maxs = bvh_node_max.to_numpy()[: bvh.total_nodes].astype(np.float64)
        for i, node in enumerate(bvh.nodes):
            assert np.all(mins[i] <= node.bounds.min)
            assert np.all(maxs[i] >= node.bounds.max)


class TestNearestHit:
    """Tests for intersect_bvh against the brute-force reference."""

    @pytest.mark.parametrize("leaf_size", [1, 4, 64])
    def test_matches_brute_force(self, leaf_size):
        _random_sphere_scene(60, seed=leaf_size, leaf_size=leaf_size)
        origins, directions = _random_rays(400)

        r = _compare_queries(origins, directions)
        np.testing.assert_array_equal(r["bvh_hit"], r["brute_hit"])
        hit = r["brute_hit"] == 1
        assert hit.any() and (~hit).any()
        np.testing.assert_allclose(r["bvh_t"][hit], r["brute_t"][hit], rtol=1e-5)
        np.testing.assert_array_equal(r["bvh_mat"][hit], r["brute_mat"][hit])

    def test_axis_aligned_rays(self):
        """Test rays with zero direction components traverse correctly."""
        _random_sphere_scene(60, seed=3)
        rng = np.random.default_rng(5)
        origins = rng.uniform(-12.0, 12.0, size=(300, 3)).astype(np.float32)
        axes = np.eye(3, dtype=np.float32)
        signs = rng.choice([-1.0, 1.0], size=300).astype(np.float32)
        directions = axes[rng.integers(0, 3, size=300)] * signs[:, None]

        r = _compare_queries(origins, directions)
        np.testing.assert_array_equal(r["bvh_hit"], r["brute_hit"])
        hit = r["brute_hit"] == 1
        np.testing.assert_allclose(r["bvh_t"][hit], r["brute_t"][hit], rtol=1e-5)

    def test_transformed_instances(self):
        """Test traversal over rotated and scaled instances of one primitive."""
        from bvhtracer.geometry.transform import Transform
        from bvhtracer.scene.manager import PrimitiveType, SceneManager

        rng = np.random.default_rng(11)
        scene = SceneManager()
        sphere = scene.add_sphere((0.0, 0.0, 0.0), 1.0)
        quad = scene.add_quad((-1.0, -1.0, 0.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0))
        for i in range(40):
            mat = scene.add_lambertian_material((0.5, 0.5, 0.5))
            transform = Transform(
                translation=tuple(float(x) for x in rng.uniform(-8.0, 8.0, size=3)),
                rotation=tuple(float(x) for x in rng.uniform(0.0, 360.0, size=3)),
                scale=tuple(float(x) for x in rng.uniform(0.3, 2.0, size=3)),
            )
            kind, index = (PrimitiveType.SPHERE, sphere) if i % 2 == 0 else (PrimitiveType.QUAD, quad)
            scene.add_instance(kind, index, mat, transform)
        scene.build(leaf_size=2)

        origins, directions = _random_rays(400, seed=12)
        r = _compare_queries(origins, directions)
        np.testing.assert_array_equal(r["bvh_hit"], r["brute_hit"])
        hit = r["brute_hit"] == 1
        assert hit.any()
        np.testing.assert_allclose(r["bvh_t"][hit], r["brute_t"][hit], rtol=1e-5)
        np.testing.assert_array_equal(r["bvh_mat"][hit], r["brute_mat"][hit])


class TestAnyHit:
    """Tests for intersect_bvh_any."""

    def test_agrees_with_nearest_hit(self):
        _random_sphere_scene(60, seed=7)
        origins, directions = _random_rays(400, seed=8)

        r = _compare_queries(origins, directions)
        np.testing.assert_array_equal(r["any_hit"], r["bvh_hit"])


class TestEmptyTree:
    """Tests for queries with no uploaded tree."""

    def test_cleared_tree_misses(self):
        from bvhtracer.accel.traversal import clear_bvh

        _random_sphere_scene(10)
        clear_bvh()
        origins = np.zeros((4, 3), dtype=np.float32) + 20.0
        directions = -origins

        r = _compare_queries(origins, directions)
        assert (r["bvh_hit"] == 0).all()
        assert (r["any_hit"] == 0).all()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
