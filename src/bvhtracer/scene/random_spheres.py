"""Random spheres demo scene.

A field of small spheres with random materials on a huge ground sphere, with
three large feature spheres in the middle:

- Ground: a radius-1000 gray Lambertian sphere centered at (0, -1000, 0)
- Small spheres: a 24x24 grid of radius-0.2 spheres, jittered inside their
  cells, skipping any that would crowd the metal feature sphere. All of
  them instance the same sphere primitive; only the translation differs.
  Each gets its own material, chosen as Lambertian (50%), fuzzy metal (25%)
  or glass (25%).
- Feature spheres: purple Lambertian, glass and polished metal, radius 1

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, fast_math=False)
    >>> from bvhtracer.camera.thin_lens import setup_camera
    >>> from bvhtracer.scene.random_spheres import create_random_spheres_scene
    >>>
    >>> scene, camera = create_random_spheres_scene(aspect_ratio=16 / 9, seed=7)
    >>> scene.build()
    >>> setup_camera(camera)
"""

import numpy as np

from bvhtracer.camera.thin_lens import ThinLensCamera
from bvhtracer.geometry.transform import Transform
from bvhtracer.scene.manager import PrimitiveType, SceneManager

# =============================================================================
# Scene Constants
# =============================================================================

GROUND_CENTER = (0.0, -1000.0, 0.0)
GROUND_RADIUS = 1000.0
GROUND_ALBEDO = (0.5, 0.5, 0.5)

# Small spheres occupy cells a, b in [-GRID_HALF, GRID_HALF)
GRID_HALF = 12
SMALL_RADIUS = 0.2
CELL_JITTER = 0.9

# Small spheres closer than this to the metal feature sphere are skipped
CLEARANCE_POINT = np.array([4.0, 0.2, 0.0])
CLEARANCE_DISTANCE = 0.9

LAMBERTIAN_PROBABILITY = 0.5
METAL_PROBABILITY = 0.25
GLASS_IOR = 1.5

FEATURE_RADIUS = 1.0
DIFFUSE_FEATURE_CENTER = (-4.0, 1.0, 0.0)
DIFFUSE_FEATURE_ALBEDO = (0.6, 0.2, 0.9)
GLASS_FEATURE_CENTER = (0.0, 1.0, 0.0)
METAL_FEATURE_CENTER = (4.0, 1.0, 0.0)
METAL_FEATURE_ALBEDO = (0.7, 0.6, 0.5)

# Camera
LOOKFROM = (13.0, 2.0, 3.0)
LOOKAT = (4.0, 1.0, 0.0)
VUP = (0.0, 1.0, 0.0)
VFOV = 20.0
APERTURE = 0.1


# =============================================================================
# Scene Factory
# =============================================================================


def _add_small_spheres(scene: SceneManager, rng: np.random.Generator) -> int:
    """Scatter the grid of small spheres. Returns how many were placed."""
    sphere_index = scene.add_sphere((0.0, 0.0, 0.0), SMALL_RADIUS)
    placed = 0

    for a in range(-GRID_HALF, GRID_HALF):
        for b in range(-GRID_HALF, GRID_HALF):
            choice = rng.random()
            center = np.array(
                [
                    a + CELL_JITTER * rng.random(),
                    SMALL_RADIUS,
                    b + CELL_JITTER * rng.random(),
                ]
            )
            if np.linalg.norm(center - CLEARANCE_POINT) <= CLEARANCE_DISTANCE:
                continue

            # Products of two uniforms bias the colors toward dark
            color = tuple(float(x) for x in rng.random(3) * rng.random(3))

            if choice < LAMBERTIAN_PROBABILITY:
                material_id = scene.add_lambertian_material(color)
            elif choice < LAMBERTIAN_PROBABILITY + METAL_PROBABILITY:
                material_id = scene.add_metal_material(color, fuzz=float(rng.random()))
            else:
                material_id = scene.add_dielectric_material(GLASS_IOR)

            transform = Transform(translation=(float(center[0]), float(center[1]), float(center[2])))
            scene.add_instance(PrimitiveType.SPHERE, sphere_index, material_id, transform)
            placed += 1

    return placed


def create_random_spheres_scene(
    aspect_ratio: float = 16.0 / 9.0,
    seed: int | None = None,
) -> tuple[SceneManager, ThinLensCamera]:
    """Create the random spheres scene and its camera.

    The returned scene is populated but not built; call ``scene.build()``
    before rendering.

    Args:
        aspect_ratio: Width over height of the image the camera will render.
        seed: Seed for the scene layout. None draws fresh entropy, so every
            call gives a different scene.

    Returns:
        A tuple of (SceneManager, ThinLensCamera).
    """
    rng = np.random.default_rng(seed)
    scene = SceneManager()

    scene.add_lambertian_sphere(GROUND_CENTER, GROUND_RADIUS, GROUND_ALBEDO)

    _add_small_spheres(scene, rng)

    scene.add_lambertian_sphere(DIFFUSE_FEATURE_CENTER, FEATURE_RADIUS, DIFFUSE_FEATURE_ALBEDO)
    scene.add_dielectric_sphere(GLASS_FEATURE_CENTER, FEATURE_RADIUS, GLASS_IOR)
    scene.add_metal_sphere(METAL_FEATURE_CENTER, FEATURE_RADIUS, METAL_FEATURE_ALBEDO, fuzz=0.0)

    camera = ThinLensCamera(
        lookfrom=LOOKFROM,
        lookat=LOOKAT,
        vup=VUP,
        vfov=VFOV,
        aspect_ratio=aspect_ratio,
        aperture=APERTURE,
    )
    return scene, camera
