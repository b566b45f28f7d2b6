"""Data-parallel renderer that drives the path tracing integrator.

One Taichi kernel sweeps every pixel of the image in parallel. Each pixel
traces ``samples`` jittered camera rays, averages them, applies gamma and
quantizes to 8 bits. The scene, BVH and camera are read-only during the
sweep; the only writes are to the pixel's own output slots.

Each pixel also records how many rays it cast. The counts are summed on the
host after the kernel finishes, which gives the throughput report without
any shared counter inside the kernel.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, fast_math=False)
    >>> from bvhtracer.config import RenderSettings
    >>> from bvhtracer.core.renderer import render
    >>>
    >>> # ... build a scene and set up the camera ...
    >>> result = render(RenderSettings(resolution=(320, 180), samples=4))
    >>> result.pixels.shape
    (180, 320, 3)
"""

import logging
import time
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from bvhtracer.accel.traversal import get_bvh_node_count
from bvhtracer.camera.thin_lens import get_ray_jittered, is_camera_ready
from bvhtracer.config import RenderSettings
from bvhtracer.core.integrator import trace

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# =============================================================================
# Render Target
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

# Indexed [row, col] with row 0 at the top of the image
_pixels = ti.Vector.field(3, dtype=ti.u8, shape=(MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH))
_ray_counts = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH))


@dataclass
class RenderResult:
    """A finished frame and its throughput statistics.

    Attributes:
        pixels: RGB image, shape (height, width, 3), dtype uint8, row 0 at
            the top.
        ray_count: Total rays cast, camera rays and bounces together.
        elapsed_seconds: Wall-clock time of the render kernel.
    """

    pixels: npt.NDArray[np.uint8]
    ray_count: int
    elapsed_seconds: float

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def rays_per_second(self) -> float:
        if self.elapsed_seconds <= 0.0:
            return 0.0
        return self.ray_count / self.elapsed_seconds

    def to_bytes(self) -> bytes:
        """Return the image as ``width * height * 3`` bytes, row-major RGB."""
        return np.ascontiguousarray(self.pixels, dtype=np.uint8).tobytes()


# =============================================================================
# Rendering Kernel
# =============================================================================


@ti.kernel
def _render_kernel(
    width: ti.i32,
    height: ti.i32,
    samples: ti.i32,
    max_bounces: ti.i32,
    inv_gamma: ti.f32,
):
    """Render every pixel of a width x height image.

    Storage row ``row`` samples image-plane row ``height - 1 - row`` so that
    row 0 is the top of the picture.
    """
    for row, col in ti.ndrange(height, width):
        plane_row = height - 1 - row

        color = vec3(0.0, 0.0, 0.0)
        rays = 0
        for _sample in range(samples):
            ray = get_ray_jittered(col, plane_row, width, height)
            sample_color, sample_rays = trace(ray, max_bounces)
            color += sample_color
            rays += sample_rays

        color /= ti.cast(samples, ti.f32)

        for c in ti.static(range(3)):
            if tm.isnan(color[c]) or tm.isinf(color[c]):
                color[c] = 0.0
            color[c] = ti.pow(tm.clamp(color[c], 0.0, 1.0), inv_gamma)

        _pixels[row, col] = ti.cast(255.99 * color, ti.u8)
        _ray_counts[row, col] = rays


# =============================================================================
# Public Rendering API
# =============================================================================


def render(settings: RenderSettings) -> RenderResult:
    """Render the current scene through the current camera.

    Args:
        settings: Resolution, samples per pixel, bounce limit and gamma.

    Returns:
        The finished RenderResult.

    Raises:
        ValueError: If the resolution exceeds the render target capacity.
        RuntimeError: If the camera or the scene BVH has not been set up.
    """
    width, height = settings.width, settings.height
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )
    if not is_camera_ready():
        raise RuntimeError("Camera not set up. Call setup_camera() first.")
    if get_bvh_node_count() == 0:
        raise RuntimeError("Scene not built. Call SceneManager.build() first.")

    start = time.perf_counter()
    _render_kernel(width, height, settings.samples, settings.max_bounces, 1.0 / settings.gamma)
    ti.sync()
    elapsed = time.perf_counter() - start

    pixels = _pixels.to_numpy()[:height, :width, :]
    ray_count = int(_ray_counts.to_numpy()[:height, :width].sum(dtype=np.int64))

    result = RenderResult(
        pixels=np.ascontiguousarray(pixels, dtype=np.uint8),
        ray_count=ray_count,
        elapsed_seconds=elapsed,
    )
    logger.info(
        "Rendered %dx%d in %.3f s: %.2f Mrays, %.0f rays/s",
        width,
        height,
        elapsed,
        ray_count / 1e6,
        result.rays_per_second,
    )
    return result
