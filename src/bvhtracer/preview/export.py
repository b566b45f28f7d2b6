"""Image export utilities for rendered images.

The renderer already applies gamma and quantizes to 8 bits, so export is a
straight copy of the pixel buffer into an image file.

Supported formats:
    - PNG (8-bit RGB via Pillow)

Example:
    >>> from bvhtracer.core.renderer import render
    >>> from bvhtracer.preview.export import save_png
    >>>
    >>> result = render(settings)
    >>> save_png(result, "output.png")
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

if TYPE_CHECKING:
    from bvhtracer.core.renderer import RenderResult


def to_pil_image(pixels: npt.NDArray[np.uint8]) -> PILImage.Image:
    """Wrap an (H, W, 3) uint8 array as an RGB Pillow image.

    Raises:
        ValueError: If the array is not (H, W, 3) uint8.
    """
    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) array, got shape {pixels.shape}")
    if pixels.dtype != np.uint8:
        raise ValueError(f"Expected dtype uint8, got {pixels.dtype}")
    return PILImage.fromarray(np.ascontiguousarray(pixels), mode="RGB")


def save_png_from_array(pixels: npt.NDArray[np.uint8], filepath: str | Path) -> Path:
    """Save an (H, W, 3) uint8 array as a PNG file.

    Args:
        pixels: Image with row 0 at the top.
        filepath: Output file path (should end in .png).

    Returns:
        The path written.
    """
    path = Path(filepath)
    to_pil_image(pixels).save(path, format="PNG")
    return path


def save_png(result: RenderResult, filepath: str | Path) -> Path:
    """Save a rendered frame as an 8-bit RGB PNG file.

    Args:
        result: The RenderResult returned by ``render``.
        filepath: Output file path (should end in .png).

    Returns:
        The path written.
    """
    return save_png_from_array(result.pixels, filepath)
