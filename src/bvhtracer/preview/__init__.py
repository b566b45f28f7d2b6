"""Preview module for rendered output.

Components:
    export: PNG export of rendered frames via Pillow

Example:
    >>> from bvhtracer.preview import save_png
    >>> save_png(result, "output.png")
"""

from bvhtracer.preview.export import save_png, save_png_from_array, to_pil_image

__all__ = [
    "save_png",
    "save_png_from_array",
    "to_pil_image",
]
