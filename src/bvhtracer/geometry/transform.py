"""Affine instance transforms.

A Transform places a shared primitive in the world with a translation, a
rotation (XYZ Euler angles in degrees) and a non-uniform scale. The world
matrix is ``T @ R @ S``; instance intersection needs its full inverse and
the inverse-transpose of its linear part for normals.

Example:
    >>> from bvhtracer.geometry.transform import Transform
    >>> t = Transform(translation=(0.0, 1.0, 0.0), scale=(2.0, 1.0, 1.0))
    >>> t.matrix()[:3, 3].tolist()
    [0.0, 1.0, 0.0]
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt


def _rotation_matrix(rotation: tuple[float, float, float]) -> npt.NDArray[np.float64]:
    """Build the 3x3 rotation for XYZ Euler angles given in degrees.

    The X rotation is applied first, then Y, then Z.
    """
    rx, ry, rz = (math.radians(a) for a in rotation)
    cx, sx = math.cos(rx), math.sin(rx)
    cy, sy = math.cos(ry), math.sin(ry)
    cz, sz = math.cos(rz), math.sin(rz)

    mx = np.array([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]])
    my = np.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    mz = np.array([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]])
    return mz @ my @ mx


@dataclass(frozen=True)
class Transform:
    """Translation, rotation and scale of an instance.

    Attributes:
        translation: World-space offset (x, y, z).
        rotation: Euler angles in degrees about X, Y and Z.
        scale: Per-axis scale factors. Must all be non-zero.
    """

    translation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: tuple[float, float, float] = (1.0, 1.0, 1.0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "translation", tuple(float(c) for c in self.translation))
        object.__setattr__(self, "rotation", tuple(float(c) for c in self.rotation))
        object.__setattr__(self, "scale", tuple(float(c) for c in self.scale))
        for i, s in enumerate(self.scale):
            if s == 0.0:
                raise ValueError(f"Scale component {i} is zero; the transform would not be invertible")

    @classmethod
    def identity(cls) -> Transform:
        """Return the transform that leaves geometry where it is."""
        return cls()

    @classmethod
    def translate(cls, x: float, y: float, z: float) -> Transform:
        """Return a pure translation."""
        return cls(translation=(x, y, z))

    def linear(self) -> npt.NDArray[np.float64]:
        """Return the 3x3 linear part R @ S."""
        return _rotation_matrix(self.rotation) @ np.diag(self.scale)

    def matrix(self) -> npt.NDArray[np.float64]:
        """Return the 4x4 object-to-world matrix T @ R @ S."""
        m = np.eye(4)
        m[:3, :3] = self.linear()
        m[:3, 3] = self.translation
        return m

    def inverse_matrix(self) -> npt.NDArray[np.float64]:
        """Return the 4x4 world-to-object matrix."""
        inv_linear = np.linalg.inv(self.linear())
        m = np.eye(4)
        m[:3, :3] = inv_linear
        m[:3, 3] = -inv_linear @ np.asarray(self.translation)
        return m

    def normal_matrix(self) -> npt.NDArray[np.float64]:
        """Return the inverse-transpose of the linear part, for normals."""
        return np.linalg.inv(self.linear()).T

    def apply_point(self, p: tuple[float, float, float]) -> npt.NDArray[np.float64]:
        """Map an object-space point to world space."""
        return self.linear() @ np.asarray(p, dtype=np.float64) + np.asarray(self.translation)

    def to_dict(self) -> dict[str, list[float]]:
        """Serialize to plain lists."""
        return {
            "translation": list(self.translation),
            "rotation": list(self.rotation),
            "scale": list(self.scale),
        }

    @classmethod
    def from_dict(cls, data: dict[str, list[float]]) -> Transform:
        """Deserialize from the output of ``to_dict``."""
        return cls(
            translation=tuple(data.get("translation", (0.0, 0.0, 0.0))),
            rotation=tuple(data.get("rotation", (0.0, 0.0, 0.0))),
            scale=tuple(data.get("scale", (1.0, 1.0, 1.0))),
        )
