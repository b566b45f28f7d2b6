#!/usr/bin/env python3
"""Render the random spheres scene.

This script builds the random spheres demo scene, builds its BVH, renders it
with the settings from a TOML file and saves a PNG.

Usage:
    python -m examples.render_random_spheres [options]

Options:
    --settings PATH     Settings file (default: settings.toml; missing file
                        means defaults)
    --width WIDTH       Override the image width in pixels
    --height HEIGHT     Override the image height in pixels
    --samples SAMPLES   Override the samples per pixel
    --max-bounces N     Override the bounce limit
    --output OUTPUT     Output file path (default: output.png)
    --arch ARCH         Taichi backend: cpu, gpu, cuda, vulkan, metal
                        (default: cpu)
    --seed SEED         Seed for the render and the scene layout
                        (default: fresh entropy)
    --quiet             Suppress progress output

Example:
    python -m examples.render_random_spheres --width 320 --height 180 --samples 4
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
import time
from pathlib import Path


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render the random spheres scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--settings",
        type=str,
        default="settings.toml",
        help="Settings file (default: settings.toml)",
    )
    parser.add_argument("--width", type=int, default=None, help="Image width in pixels")
    parser.add_argument("--height", type=int, default=None, help="Image height in pixels")
    parser.add_argument("--samples", type=int, default=None, help="Samples per pixel")
    parser.add_argument("--max-bounces", type=int, default=None, help="Bounce limit per path")
    parser.add_argument(
        "--output",
        type=str,
        default="output.png",
        help="Output file path (default: output.png)",
    )
    parser.add_argument(
        "--arch",
        type=str,
        default="cpu",
        choices=["cpu", "gpu", "cuda", "vulkan", "metal"],
        help="Taichi backend (default: cpu)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the render and the scene layout (default: fresh entropy)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    return parser.parse_args()


def render_random_spheres(args: argparse.Namespace, seed: int) -> Path:
    """Build, render and save the random spheres scene.

    Args:
        args: Parsed command-line arguments.
        seed: Seed for the scene layout.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports so that Taichi fields are created after ti.init
    from bvhtracer.camera.thin_lens import setup_camera
    from bvhtracer.config import load_settings
    from bvhtracer.core.renderer import render
    from bvhtracer.preview.export import save_png
    from bvhtracer.scene.random_spheres import create_random_spheres_scene

    settings = load_settings(args.settings)
    overrides = {}
    if args.width is not None or args.height is not None:
        overrides["resolution"] = (
            args.width if args.width is not None else settings.width,
            args.height if args.height is not None else settings.height,
        )
    if args.samples is not None:
        overrides["samples"] = args.samples
    if args.max_bounces is not None:
        overrides["max_bounces"] = args.max_bounces
    settings = dataclasses.replace(settings, **overrides)

    if not args.quiet:
        print(f"Creating random spheres scene ({settings.width}x{settings.height})...")

    start_time = time.time()
    scene, camera = create_random_spheres_scene(aspect_ratio=settings.aspect_ratio, seed=seed)
    bvh = scene.build()
    setup_camera(camera)

    if not args.quiet:
        print(
            f"  {scene.get_instance_count()} instances, {bvh.total_nodes} BVH nodes, "
            f"depth {bvh.depth} ({time.time() - start_time:.2f}s)"
        )
        print(
            f"Rendering {settings.samples} samples per pixel, "
            f"up to {settings.max_bounces} bounces..."
        )

    result = render(settings)

    if not args.quiet:
        print(f"Time elapsed: {result.elapsed_seconds:.2f}s")
        print(f"Total Rays: {result.ray_count / 1e6:.2f}M")
        print(f"Rays per second: {result.rays_per_second / 1e6:.2f}M")

    output_file = save_png(result, args.output)

    if not args.quiet:
        print(f"Saved to: {output_file.absolute()}")

    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    seed = args.seed
    if seed is None:
        seed = int.from_bytes(os.urandom(4), "little") & 0x7FFFFFFF

    try:
        from bvhtracer.config import init_taichi

        init_taichi(args.arch, seed)
        if not args.quiet:
            print(f"Using {args.arch} backend, seed {seed}")

        render_random_spheres(args, seed)
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
