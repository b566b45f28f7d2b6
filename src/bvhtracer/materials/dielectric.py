"""Dielectric (glass/water) material implementation.

Key physics:
    - Snell's law for refraction: n1 * sin(theta1) = n2 * sin(theta2)
    - Schlick's approximation for Fresnel reflectance
    - Total internal reflection when no refracted direction exists

Each hit either reflects, with the Schlick probability, or refracts. Total
internal reflection forces a reflection. Glass tints light slightly: the
attenuation is 0.9 in every channel.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, fast_math=False)
    >>> from bvhtracer.materials.dielectric import add_dielectric_material
    >>> add_dielectric_material(1.5)
    0
    >>> # Within a Taichi kernel:
    >>> # direction, attenuation = scatter_dielectric_by_id(0, incident, normal, front_face)
"""

import taichi as ti
import taichi.math as tm

from bvhtracer.core.ray import reflect, refract, schlick_fresnel

# Type alias for 3D vectors
vec3 = tm.vec3

DIELECTRIC_ATTENUATION = 0.9


@ti.func
def dielectric_terms(ior: ti.f32, incident_direction: vec3, normal: vec3, front_face: ti.i32):
    """Refraction ratio and Schlick cosine for a hit on a dielectric.

    Entering the material (front_face = 1) the ratio is 1 / ior and the
    cosine is -dot(d, n) / |d|. Leaving it the ratio is ior and the cosine
    is scaled by ior.

    Returns:
        A tuple of (ni_over_nt, cosine).
    """
    d_dot_n = tm.dot(incident_direction, normal) / tm.length(incident_direction)
    ni_over_nt = 1.0 / ior
    cosine = -d_dot_n
    if front_face == 0:
        ni_over_nt = ior
        cosine = -ior * d_dot_n
    return ni_over_nt, cosine


@ti.func
def scatter_dielectric(
    ior: ti.f32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
):
    """Compute the scattered ray direction for a dielectric surface.

    Args:
        ior: Index of refraction of the material.
        incident_direction: The incoming ray direction (any length).
        normal: The unit surface normal, facing the incoming ray.
        front_face: 1 if the ray arrives from outside the material,
            0 if it is leaving the material.

    Returns:
        A tuple of (scattered_direction, attenuation). Dielectrics never
        absorb.
    """
    ni_over_nt, cosine = dielectric_terms(ior, incident_direction, normal, front_face)
    refracted, did_refract = refract(incident_direction, normal, ni_over_nt)

    reflect_prob = 1.0
    if did_refract == 1:
        reflect_prob = schlick_fresnel(cosine, ior)

    scattered_direction = refracted
    if ti.random(ti.f32) < reflect_prob:
        scattered_direction = reflect(incident_direction, normal)

    attenuation = vec3(DIELECTRIC_ATTENUATION, DIELECTRIC_ATTENUATION, DIELECTRIC_ATTENUATION)
    return scattered_direction, attenuation


# =============================================================================
# Material Field Storage (for scene-level material management)
# =============================================================================

MAX_DIELECTRIC_MATERIALS = 1024

dielectric_iors = ti.field(dtype=ti.f32, shape=MAX_DIELECTRIC_MATERIALS)
num_dielectric_materials = ti.field(dtype=ti.i32, shape=())


def clear_dielectric_materials() -> None:
    """Clear all dielectric materials.

    Resets the material count to zero. Existing data in the field will be
    overwritten when new materials are added.
    """
    num_dielectric_materials[None] = 0


def add_dielectric_material(ior: float = 1.5) -> int:
    """Add a dielectric material to the material registry.

    Args:
        ior: Index of refraction. Default is 1.5 (typical glass).
            Must be >= 1.0.

    Returns:
        The index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If IOR is less than 1.0.
    """
    if ior < 1.0:
        raise ValueError(
            f"Index of refraction = {ior} is less than 1.0. "
            "IOR must be >= 1.0 for physically meaningful materials."
        )

    idx = num_dielectric_materials[None]
    if idx >= MAX_DIELECTRIC_MATERIALS:
        raise RuntimeError(
            f"Maximum number of dielectric materials ({MAX_DIELECTRIC_MATERIALS}) exceeded"
        )

    dielectric_iors[idx] = ior
    num_dielectric_materials[None] = idx + 1
    return idx


def get_dielectric_material_count() -> int:
    """Get the number of dielectric materials in the registry."""
    return int(num_dielectric_materials[None])


@ti.func
def scatter_dielectric_by_id(
    material_idx: ti.i32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
):
    """Scatter off the dielectric material stored at ``material_idx``.

    Returns:
        A tuple of (scattered_direction, attenuation).
    """
    return scatter_dielectric(dielectric_iors[material_idx], incident_direction, normal, front_face)
