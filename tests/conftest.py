"""Pytest configuration for bvhtracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts. Fast math stays off
    so that infinite inverse ray directions survive the slab test.
    """
    ti.init(arch=ti.cpu, random_seed=42, fast_math=False)
    yield
    # Note: We don't call ti.reset() here as it can cause issues
    # with subsequent tests if any cleanup happens after


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear every device registry before and after each test.

    This ensures tests are isolated from each other.
    """
    # Import here to ensure Taichi is initialized before fields are declared
    from bvhtracer.accel.traversal import clear_bvh
    from bvhtracer.camera.thin_lens import clear_camera
    from bvhtracer.geometry.instance import clear_instances
    from bvhtracer.materials.dielectric import clear_dielectric_materials
    from bvhtracer.materials.lambertian import clear_lambertian_materials
    from bvhtracer.materials.metal import clear_metal_materials
    from bvhtracer.scene.manager import _clear_material_tracking

    def _clear_all():
        clear_bvh()
        clear_instances()
        clear_lambertian_materials()
        clear_metal_materials()
        clear_dielectric_materials()
        _clear_material_tracking()
        clear_camera()

    _clear_all()

    yield

    _clear_all()
