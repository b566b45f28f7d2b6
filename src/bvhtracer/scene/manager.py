"""Unified scene manager for coordinating primitives, instances and materials.

This module provides a high-level scene management API on top of the device
registries. It tracks which material type (Lambertian, Metal, Dielectric)
each material ID corresponds to, enabling material dispatch in the path
tracer, and keeps host-side copies of every primitive and instance so that
the BVH can be built over instance bounds.

The SceneManager maintains:
- A unified material_id space across all material types
- Mapping from material_id to (material_type, type_local_index)
- Object-space primitives shared by any number of instances
- Instances with their world-space bounds
- Scene serialization support

A scene is built once: ``build()`` constructs and uploads the BVH, after
which the scene is read-only until ``clear()``.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, fast_math=False)
    >>> from bvhtracer.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> mat_id = scene.add_lambertian_material(albedo=(0.8, 0.3, 0.3))
    >>> scene.add_sphere_with_material(center=(0, 0, -1), radius=0.5, material_id=mat_id)
    (0, 0)
    >>> bvh = scene.build()
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

import taichi as ti

from bvhtracer.accel.bvh import LEAF_SIZE, FlatBVH, build_bvh
from bvhtracer.accel.traversal import clear_bvh, upload_bvh
from bvhtracer.geometry.aabb import AABB
from bvhtracer.geometry.instance import (
    MAX_INSTANCES,
    PRIM_QUAD,
    PRIM_SPHERE,
    add_instance,
    add_quad,
    add_sphere,
    clear_instances,
)
from bvhtracer.geometry.quad import quad_bounds
from bvhtracer.geometry.sphere import sphere_bounds
from bvhtracer.geometry.transform import Transform
from bvhtracer.materials.dielectric import (
    add_dielectric_material,
    clear_dielectric_materials,
)
from bvhtracer.materials.lambertian import (
    add_lambertian_material,
    clear_lambertian_materials,
)
from bvhtracer.materials.metal import (
    add_metal_material,
    clear_metal_materials,
)


class MaterialType(IntEnum):
    """Enumeration of supported material types.

    Used for material dispatch in the path tracer to determine which
    scattering function to call.
    """

    LAMBERTIAN = 0
    METAL = 1
    DIELECTRIC = 2


class PrimitiveType(IntEnum):
    """Kinds of shared primitives an instance can reference."""

    SPHERE = PRIM_SPHERE
    QUAD = PRIM_QUAD


# Maximum number of materials across all types
MAX_MATERIALS = 2048

# Taichi fields for GPU-side material type lookup
# material_types[i] stores the MaterialType for material_id i
material_types = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
# material_type_indices[i] stores the type-local index for material_id i
# (e.g., if material_id 5 is the 2nd metal material, material_type_indices[5] = 1)
material_type_indices = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def _clear_material_tracking() -> None:
    """Clear the material tracking fields."""
    num_materials[None] = 0


@ti.func
def get_material_type(material_id: ti.i32) -> ti.i32:
    """Get the material type for a given material ID.

    Args:
        material_id: The unified material ID.

    Returns:
        The material type as an integer (see MaterialType enum).
        Returns -1 for invalid material IDs.
    """
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_types[material_id]
    return result


@ti.func
def get_material_type_index(material_id: ti.i32) -> ti.i32:
    """Get the index into the type-specific registry for a material ID.

    Returns:
        The type-local index, or -1 for invalid material IDs.
    """
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_type_indices[material_id]
    return result


@dataclass
class MaterialInfo:
    """Information about a registered material.

    Attributes:
        material_id: The unified material ID.
        material_type: The type of material (Lambertian, Metal, Dielectric).
        type_index: The index within the type-specific material array.
        params: The material parameters as provided during creation.
    """

    material_id: int
    material_type: MaterialType
    type_index: int
    params: dict[str, Any]


@dataclass
class SphereInfo:
    """An object-space sphere primitive."""

    sphere_index: int
    center: tuple[float, float, float]
    radius: float
    bounds: AABB


@dataclass
class QuadInfo:
    """An object-space quad primitive."""

    quad_index: int
    corner: tuple[float, float, float]
    edge_u: tuple[float, float, float]
    edge_v: tuple[float, float, float]
    bounds: AABB


@dataclass
class InstanceInfo:
    """A placed copy of a primitive.

    Attributes:
        instance_index: Row in the device instance table.
        primitive_type: Kind of the referenced primitive.
        primitive_index: Index of the primitive within its kind.
        material_id: The unified material ID.
        transform: Object-to-world placement.
        bounds: World-space bounds used to build the BVH.
    """

    instance_index: int
    primitive_type: PrimitiveType
    primitive_index: int
    material_id: int
    transform: Transform
    bounds: AABB


@dataclass
class SceneConfig:
    """Configuration for scene serialization."""

    materials: list[dict[str, Any]] = field(default_factory=list)
    spheres: list[dict[str, Any]] = field(default_factory=list)
    quads: list[dict[str, Any]] = field(default_factory=list)
    instances: list[dict[str, Any]] = field(default_factory=list)


def _vec3_tuple(values) -> tuple[float, float, float]:
    return (float(values[0]), float(values[1]), float(values[2]))


class SceneManager:
    """Unified scene manager coordinating primitives, instances and materials.

    Attributes:
        materials: MaterialInfo for every registered material.
        spheres: SphereInfo for every sphere primitive.
        quads: QuadInfo for every quad primitive.
        instances: InstanceInfo for every instance, in instance order.
        bvh: The flattened BVH once ``build()`` has run, else None.

    Example:
        >>> scene = SceneManager()
        >>> red_diffuse = scene.add_lambertian_material(albedo=(0.8, 0.1, 0.1))
        >>> unit = scene.add_sphere((0, 0, 0), 1.0)
        >>> scene.add_instance(PrimitiveType.SPHERE, unit, red_diffuse,
        ...                    Transform(translation=(0, 0, -3), scale=(2, 1, 1)))
        0
        >>> scene.build()
    """

    def __init__(self) -> None:
        """Initialize an empty scene."""
        self.materials: list[MaterialInfo] = []
        self.spheres: list[SphereInfo] = []
        self.quads: list[QuadInfo] = []
        self.instances: list[InstanceInfo] = []
        self.bvh: FlatBVH | None = None
        self._clear_all()

    def _clear_all(self) -> None:
        """Clear all scene data including Taichi fields."""
        clear_instances()
        clear_bvh()
        clear_lambertian_materials()
        clear_metal_materials()
        clear_dielectric_materials()
        _clear_material_tracking()
        self.materials.clear()
        self.spheres.clear()
        self.quads.clear()
        self.instances.clear()
        self.bvh = None

    def clear(self) -> None:
        """Clear the entire scene (primitives, instances, materials and BVH)."""
        self._clear_all()

    @property
    def is_built(self) -> bool:
        return self.bvh is not None

    def _check_mutable(self) -> None:
        if self.is_built:
            raise RuntimeError("Scene has already been built; call clear() to start a new one")

    # =========================================================================
    # Material Management
    # =========================================================================

    def _check_material_capacity(self) -> None:
        if num_materials[None] >= MAX_MATERIALS:
            raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

    def _register_material(
        self,
        material_type: MaterialType,
        type_index: int,
        params: dict[str, Any],
    ) -> int:
        """Assign the next unified material ID to a type-local material."""
        material_id = num_materials[None]
        material_types[material_id] = int(material_type)
        material_type_indices[material_id] = type_index
        num_materials[None] = material_id + 1

        self.materials.append(
            MaterialInfo(
                material_id=material_id,
                material_type=material_type,
                type_index=type_index,
                params=params,
            )
        )
        return material_id

    def add_lambertian_material(self, albedo: tuple[float, float, float]) -> int:
        """Add a Lambertian (diffuse) material to the scene.

        Args:
            albedo: The diffuse reflectance color as (R, G, B) tuple.

        Returns:
            The unified material ID for this material.

        Raises:
            RuntimeError: If the maximum number of materials is exceeded.
            ValueError: If any albedo component is outside [0, 1].
        """
        self._check_mutable()
        self._check_material_capacity()
        albedo = _vec3_tuple(albedo)
        type_index = add_lambertian_material(albedo)
        return self._register_material(MaterialType.LAMBERTIAN, type_index, {"albedo": albedo})

    def add_metal_material(self, albedo: tuple[float, float, float], fuzz: float = 0.0) -> int:
        """Add a metal (specular reflective) material to the scene.

        Args:
            albedo: The reflective color as (R, G, B) tuple.
            fuzz: The reflection perturbation in [0, 1]. Default is 0 (perfect mirror).

        Returns:
            The unified material ID for this material.

        Raises:
            RuntimeError: If the maximum number of materials is exceeded.
            ValueError: If any albedo component or fuzz is outside [0, 1].
        """
        self._check_mutable()
        self._check_material_capacity()
        albedo = _vec3_tuple(albedo)
        type_index = add_metal_material(albedo, fuzz)
        return self._register_material(
            MaterialType.METAL, type_index, {"albedo": albedo, "fuzz": float(fuzz)}
        )

    def add_dielectric_material(self, ior: float = 1.5) -> int:
        """Add a dielectric (glass/water) material to the scene.

        Args:
            ior: Index of refraction. Default is 1.5 (typical glass).

        Returns:
            The unified material ID for this material.

        Raises:
            RuntimeError: If the maximum number of materials is exceeded.
            ValueError: If IOR is less than 1.0.
        """
        self._check_mutable()
        self._check_material_capacity()
        type_index = add_dielectric_material(ior)
        return self._register_material(MaterialType.DIELECTRIC, type_index, {"ior": float(ior)})

    def get_material_count(self) -> int:
        """Get the total number of materials in the scene."""
        return int(num_materials[None])

    def get_material_info(self, material_id: int) -> MaterialInfo | None:
        """Get information about a material by ID, or None if not found."""
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    # =========================================================================
    # Primitive and Instance Management
    # =========================================================================

    def add_sphere(self, center: tuple[float, float, float], radius: float) -> int:
        """Add an object-space sphere primitive.

        Returns:
            The sphere's primitive index, for use with add_instance.

        Raises:
            RuntimeError: If the maximum number of spheres is exceeded.
            ValueError: If the radius is not positive.
        """
        self._check_mutable()
        center = _vec3_tuple(center)
        sphere_index = add_sphere(center, radius)
        self.spheres.append(
            SphereInfo(
                sphere_index=sphere_index,
                center=center,
                radius=float(radius),
                bounds=sphere_bounds(center, radius),
            )
        )
        return sphere_index

    def add_quad(
        self,
        corner: tuple[float, float, float],
        edge_u: tuple[float, float, float],
        edge_v: tuple[float, float, float],
    ) -> int:
        """Add an object-space quad primitive.

        The quad spans corner, corner+edge_u, corner+edge_v, corner+edge_u+edge_v.

        Returns:
            The quad's primitive index, for use with add_instance.

        Raises:
            RuntimeError: If the maximum number of quads is exceeded.
        """
        self._check_mutable()
        corner = _vec3_tuple(corner)
        edge_u = _vec3_tuple(edge_u)
        edge_v = _vec3_tuple(edge_v)
        quad_index = add_quad(corner, edge_u, edge_v)
        self.quads.append(
            QuadInfo(
                quad_index=quad_index,
                corner=corner,
                edge_u=edge_u,
                edge_v=edge_v,
                bounds=quad_bounds(corner, edge_u, edge_v),
            )
        )
        return quad_index

    def add_instance(
        self,
        primitive_type: PrimitiveType,
        primitive_index: int,
        material_id: int,
        transform: Transform | None = None,
    ) -> int:
        """Place a primitive in the world.

        Args:
            primitive_type: SPHERE or QUAD.
            primitive_index: Index returned by add_sphere or add_quad.
            material_id: The unified material ID.
            transform: Object-to-world placement. Defaults to identity.

        Returns:
            The instance index.

        Raises:
            ValueError: If material_id or the primitive reference is invalid.
            RuntimeError: If the scene is built or the instance table is full.
        """
        self._check_mutable()
        if material_id < 0 or material_id >= num_materials[None]:
            raise ValueError(f"Invalid material_id: {material_id}")

        primitive_type = PrimitiveType(primitive_type)
        if transform is None:
            transform = Transform.identity()

        instance_index = add_instance(int(primitive_type), primitive_index, material_id, transform)

        if primitive_type == PrimitiveType.SPHERE:
            local_bounds = self.spheres[primitive_index].bounds
        else:
            local_bounds = self.quads[primitive_index].bounds

        self.instances.append(
            InstanceInfo(
                instance_index=instance_index,
                primitive_type=primitive_type,
                primitive_index=primitive_index,
                material_id=material_id,
                transform=transform,
                bounds=local_bounds.transformed(transform.matrix()),
            )
        )
        return instance_index

    # =========================================================================
    # Convenience Methods (add object with material in one call)
    # =========================================================================

    def add_sphere_with_material(
        self,
        center: tuple[float, float, float],
        radius: float,
        material_id: int,
    ) -> tuple[int, int]:
        """Add a sphere primitive and an identity instance of it.

        Returns:
            Tuple of (instance_index, material_id).
        """
        sphere_index = self.add_sphere(center, radius)
        instance_index = self.add_instance(PrimitiveType.SPHERE, sphere_index, material_id)
        return instance_index, material_id

    def add_quad_with_material(
        self,
        corner: tuple[float, float, float],
        edge_u: tuple[float, float, float],
        edge_v: tuple[float, float, float],
        material_id: int,
    ) -> tuple[int, int]:
        """Add a quad primitive and an identity instance of it.

        Returns:
            Tuple of (instance_index, material_id).
        """
        quad_index = self.add_quad(corner, edge_u, edge_v)
        instance_index = self.add_instance(PrimitiveType.QUAD, quad_index, material_id)
        return instance_index, material_id

    def add_lambertian_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        albedo: tuple[float, float, float],
    ) -> tuple[int, int]:
        """Add a sphere with a new Lambertian material.

        Returns:
            Tuple of (instance_index, material_id).
        """
        material_id = self.add_lambertian_material(albedo)
        return self.add_sphere_with_material(center, radius, material_id)

    def add_metal_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        albedo: tuple[float, float, float],
        fuzz: float = 0.0,
    ) -> tuple[int, int]:
        """Add a sphere with a new metal material.

        Returns:
            Tuple of (instance_index, material_id).
        """
        material_id = self.add_metal_material(albedo, fuzz)
        return self.add_sphere_with_material(center, radius, material_id)

    def add_dielectric_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        ior: float = 1.5,
    ) -> tuple[int, int]:
        """Add a sphere with a new dielectric material.

        Returns:
            Tuple of (instance_index, material_id).
        """
        material_id = self.add_dielectric_material(ior)
        return self.add_sphere_with_material(center, radius, material_id)

    # =========================================================================
    # Build
    # =========================================================================

    def build(self, leaf_size: int = LEAF_SIZE) -> FlatBVH:
        """Build the BVH over all instances and upload it to the device.

        Args:
            leaf_size: Largest window the builder may turn into a leaf.

        Returns:
            The flattened BVH.

        Raises:
            ValueError: If the scene has no instances, or the tree does not
                fit the device traversal limits.
            RuntimeError: If the scene has already been built.
        """
        self._check_mutable()
        if not self.instances:
            raise ValueError("Cannot build an empty scene: add at least one instance")
        bvh = build_bvh(self.instances, leaf_size=leaf_size)
        upload_bvh(bvh)
        self.bvh = bvh
        return bvh

    # =========================================================================
    # Scene Queries
    # =========================================================================

    def get_instance_count(self) -> int:
        """Get the number of instances in the scene."""
        return len(self.instances)

    def get_primitive_count(self) -> int:
        """Get the total number of shared primitives in the scene."""
        return len(self.spheres) + len(self.quads)

    def get_bounds(self) -> AABB:
        """World-space bounds of every instance (empty box for an empty scene)."""
        box = AABB.empty()
        for instance in self.instances:
            box = box.union(instance.bounds)
        return box

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        """Export the scene to a configuration object."""
        config = SceneConfig()

        for mat in self.materials:
            params = {k: list(v) if isinstance(v, tuple) else v for k, v in mat.params.items()}
            config.materials.append({"type": mat.material_type.name.lower(), **params})

        for sphere in self.spheres:
            config.spheres.append({"center": list(sphere.center), "radius": sphere.radius})

        for quad in self.quads:
            config.quads.append(
                {
                    "corner": list(quad.corner),
                    "edge_u": list(quad.edge_u),
                    "edge_v": list(quad.edge_v),
                }
            )

        for instance in self.instances:
            config.instances.append(
                {
                    "primitive": instance.primitive_type.name.lower(),
                    "index": instance.primitive_index,
                    "material_id": instance.material_id,
                    "transform": instance.transform.to_dict(),
                }
            )

        return config

    def from_config(self, config: SceneConfig) -> None:
        """Load a scene from a configuration object.

        Clears the current scene and loads the configuration. The loaded
        scene is not built.

        Raises:
            ValueError: If the configuration contains invalid data.
        """
        self.clear()

        # Materials first, instances refer to them
        for mat_config in config.materials:
            mat_type = mat_config.get("type", "").lower()
            if mat_type == "lambertian":
                self.add_lambertian_material(_vec3_tuple(mat_config.get("albedo", [0.5, 0.5, 0.5])))
            elif mat_type == "metal":
                self.add_metal_material(
                    _vec3_tuple(mat_config.get("albedo", [0.8, 0.8, 0.8])),
                    mat_config.get("fuzz", 0.0),
                )
            elif mat_type == "dielectric":
                self.add_dielectric_material(mat_config.get("ior", 1.5))
            else:
                raise ValueError(f"Unknown material type: {mat_type}")

        for sphere_config in config.spheres:
            self.add_sphere(
                _vec3_tuple(sphere_config.get("center", [0, 0, 0])),
                sphere_config.get("radius", 1.0),
            )

        for quad_config in config.quads:
            self.add_quad(
                _vec3_tuple(quad_config.get("corner", [0, 0, 0])),
                _vec3_tuple(quad_config.get("edge_u", [1, 0, 0])),
                _vec3_tuple(quad_config.get("edge_v", [0, 1, 0])),
            )

        for instance_config in config.instances:
            kind = instance_config.get("primitive", "").upper()
            if kind not in PrimitiveType.__members__:
                raise ValueError(f"Unknown primitive type: {kind.lower()}")
            self.add_instance(
                PrimitiveType[kind],
                instance_config.get("index", 0),
                instance_config.get("material_id", 0),
                Transform.from_dict(instance_config.get("transform", {})),
            )

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        config = self.to_config()
        return {
            "materials": config.materials,
            "spheres": config.spheres,
            "quads": config.quads,
            "instances": config.instances,
        }

    def from_dict(self, data: dict[str, Any]) -> None:
        """Load a scene from a dictionary produced by ``to_dict``."""
        self.from_config(
            SceneConfig(
                materials=data.get("materials", []),
                spheres=data.get("spheres", []),
                quads=data.get("quads", []),
                instances=data.get("instances", []),
            )
        )

    # =========================================================================
    # Capacity Information
    # =========================================================================

    @staticmethod
    def get_max_instances() -> int:
        """Get the maximum number of instances supported."""
        return MAX_INSTANCES

    @staticmethod
    def get_max_materials() -> int:
        """Get the maximum number of materials supported."""
        return MAX_MATERIALS
