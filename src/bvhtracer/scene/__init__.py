"""Scene module for scene management and demo scenes.

Components:
    manager: Unified scene manager coordinating materials, primitives,
        instances and the BVH build
    random_spheres: The random spheres demo scene and its camera

The scene module manages:
    - Material ID assignment and lookup for device-side dispatch
    - Shared primitives placed by any number of instances
    - Building and uploading the BVH once the scene is complete
"""

from .manager import (
    MAX_MATERIALS,
    InstanceInfo,
    MaterialInfo,
    MaterialType,
    PrimitiveType,
    QuadInfo,
    SceneConfig,
    SceneManager,
    SphereInfo,
    get_material_type,
    get_material_type_index,
)
from .random_spheres import create_random_spheres_scene

__all__ = [
    "SceneManager",
    "MaterialType",
    "PrimitiveType",
    "MaterialInfo",
    "SphereInfo",
    "QuadInfo",
    "InstanceInfo",
    "SceneConfig",
    "MAX_MATERIALS",
    "get_material_type",
    "get_material_type_index",
    "create_random_spheres_scene",
]
