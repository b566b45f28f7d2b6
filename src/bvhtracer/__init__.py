"""BVH-accelerated Monte Carlo path tracer built on Taichi.

This package renders scenes of instanced spheres and quads with:
- A surface-area-heuristic BVH built on the host and traversed on the device
- Lambertian, metal and dielectric materials
- A thin-lens camera with depth of field
- A data-parallel per-pixel render kernel with ray-throughput statistics

Subpackages:
    accel: BVH construction, flattening and device traversal
    core: Rays, the path tracing integrator and the renderer
    geometry: Bounding boxes, transforms, primitives and instances
    materials: Scattering models
    scene: Scene management and the random spheres demo scene
    camera: Thin-lens camera with ray generation
    preview: PNG export

Taichi must be initialized (see ``bvhtracer.config.init_taichi``) before any
subpackage that declares fields is imported.
"""

__version__ = "0.1.0"
