"""Render settings and Taichi runtime setup.

Settings are read from a small TOML file::

    resolution = [1280, 720]
    samples = 12
    max_bounces = 8
    gamma = 2.2

Every key is optional. A missing file gives the defaults.
"""

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path

import taichi as ti

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTION = (1280, 720)
DEFAULT_SAMPLES = 12
DEFAULT_MAX_BOUNCES = 8
DEFAULT_GAMMA = 2.2

_ARCHS = {
    "cpu": ti.cpu,
    "gpu": ti.gpu,
    "cuda": ti.cuda,
    "vulkan": ti.vulkan,
    "metal": ti.metal,
}


@dataclass(frozen=True)
class RenderSettings:
    """Output image and sampling parameters.

    Attributes:
        resolution: (width, height) in pixels.
        samples: Camera rays per pixel.
        max_bounces: Scatter events allowed per path.
        gamma: Display gamma; pixels are stored as ``c ** (1 / gamma)``.
    """

    resolution: tuple[int, int] = DEFAULT_RESOLUTION
    samples: int = DEFAULT_SAMPLES
    max_bounces: int = DEFAULT_MAX_BOUNCES
    gamma: float = DEFAULT_GAMMA

    def __post_init__(self) -> None:
        if len(self.resolution) != 2:
            raise ValueError(f"resolution must be [width, height], got {self.resolution}")
        width, height = self.resolution
        if width <= 0 or height <= 0:
            raise ValueError(f"resolution must be positive, got {width}x{height}")
        if self.samples <= 0:
            raise ValueError(f"samples must be positive, got {self.samples}")
        if self.max_bounces < 0:
            raise ValueError(f"max_bounces must be non-negative, got {self.max_bounces}")
        if self.gamma <= 0.0:
            raise ValueError(f"gamma must be positive, got {self.gamma}")

    @property
    def width(self) -> int:
        return int(self.resolution[0])

    @property
    def height(self) -> int:
        return int(self.resolution[1])

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


def load_settings(path: str | Path) -> RenderSettings:
    """Load render settings from a TOML file.

    Args:
        path: Settings file path.

    Returns:
        The settings, with defaults for any key the file does not set. If the
        file does not exist the defaults are returned unchanged.

    Raises:
        ValueError: If the file is not valid TOML or holds invalid values.
    """
    path = Path(path)
    if not path.exists():
        logger.info("No settings file at %s, using defaults", path)
        return RenderSettings()

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid settings file {path}: {e}") from e

    resolution = data.get("resolution", DEFAULT_RESOLUTION)
    settings = RenderSettings(
        resolution=tuple(int(x) for x in resolution),
        samples=int(data.get("samples", DEFAULT_SAMPLES)),
        max_bounces=int(data.get("max_bounces", DEFAULT_MAX_BOUNCES)),
        gamma=float(data.get("gamma", DEFAULT_GAMMA)),
    )
    logger.info(
        "Loaded settings from %s: %dx%d, %d samples, %d bounces",
        path,
        settings.width,
        settings.height,
        settings.samples,
        settings.max_bounces,
    )
    return settings


def init_taichi(arch: str = "cpu", seed: int = 0) -> None:
    """Initialize the Taichi runtime.

    Must run before any bvhtracer module that declares fields is imported.
    Fast math stays off so that infinite inverse ray directions behave as
    IEEE infinities in the slab test.

    Args:
        arch: One of "cpu", "gpu", "cuda", "vulkan", "metal".
        seed: Seed for the per-thread ``ti.random`` streams.

    Raises:
        ValueError: If arch is not recognized.
    """
    if arch not in _ARCHS:
        raise ValueError(f"Unknown arch {arch!r}, expected one of {sorted(_ARCHS)}")
    ti.init(arch=_ARCHS[arch], random_seed=seed, fast_math=False)
