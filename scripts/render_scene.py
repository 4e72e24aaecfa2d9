#!/usr/bin/env python3
"""Render a YAML scene or lines file to PNG.

CLI tool that loads a contour scene (scene.v1) or a line set (lines.v1),
renders it with Canvas2DRenderer and writes the image atomically alongside a
metadata file for provenance.

Usage:
    # Filled and stroked contours
    python scripts/render_scene.py --scene configs/scenes/demo_scene.yaml --output outputs/demo.png

    # Coverage mask from polylines, 3×3 subsamples, 4 threads
    python scripts/render_scene.py --lines configs/scenes/demo_lines.yaml \
        --output outputs/lines.png --samples 3 --workers 4

    # Torch backend with a custom renderer config
    python scripts/render_scene.py --scene scene.yaml --output out.png \
        --config configs/renderer.v1.yaml --backend torch

Outputs:
    - <output>.png: rendered RGBA image
    - metadata.yaml (next to the image): elapsed time, image SHA-256, input
      file hash, coverage fraction, effective renderer config and its hash

Exit codes:
    0 on success, 1 when an input or config fails validation
"""

import argparse
import sys
from pathlib import Path

from pydantic import ValidationError

from canvas2d import __version__
from canvas2d.rasterizer import CapacityError, StreamValidationError
from canvas2d.rasterizer.dispatch import Canvas2DRenderer
from canvas2d.utils import fs, hashing, logging_config, metrics, profiler, validators

DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "configs" / "renderer.v1.yaml"


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a scene or lines file with the canvas2d rasterizer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    input_group = parser.add_mutually_exclusive_group(required=True)
    input_group.add_argument('--scene', type=str, help='Path to scene.v1 YAML (contours)')
    input_group.add_argument('--lines', type=str, help='Path to lines.v1 YAML (coverage mask)')

    parser.add_argument('--output', type=str, required=True, help='Output PNG path')
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Renderer config (renderer.v1 YAML); defaults to configs/renderer.v1.yaml when present'
    )
    parser.add_argument('--samples', type=int, default=None, help='Override samples_per_axis (1-5)')
    parser.add_argument('--workers', type=int, default=None, help='Override worker thread count')
    parser.add_argument('--backend', choices=['numpy', 'torch'], default=None, help='Override backend')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    return parser.parse_args(argv)


def load_config(args) -> validators.RendererV1:
    """Load the renderer config and apply command-line overrides (re-validated)."""
    if args.config is not None:
        cfg = validators.load_renderer_config(args.config)
    elif DEFAULT_CONFIG.exists():
        cfg = validators.load_renderer_config(DEFAULT_CONFIG)
    else:
        cfg = validators.RendererV1()

    overrides = {}
    if args.samples is not None:
        overrides['samples_per_axis'] = args.samples
    if args.workers is not None:
        overrides['workers'] = args.workers
    if args.backend is not None:
        overrides['backend'] = args.backend
    if args.verbose:
        overrides['logging'] = {**cfg.logging.model_dump(by_alias=True), 'log_level': 'DEBUG'}

    if overrides:
        data = cfg.model_dump(by_alias=True)
        data.update(overrides)
        cfg = validators.RendererV1(**data)
    return cfg


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Logging comes up before config parsing so validation errors are reported
    logging_config.setup_logging(log_level="DEBUG" if args.verbose else "INFO", context={'app': 'render'})
    logger = logging_config.get_logger(__name__)

    input_path = Path(args.scene or args.lines)
    timings = {}
    try:
        try:
            cfg = load_config(args)
            logging_config.setup_logging(**cfg.logging.setup_kwargs(), context={'app': 'render'})
            logging_config.push_context(input=input_path.name)

            renderer = Canvas2DRenderer(cfg)
            with profiler.timer("render", sink=timings.__setitem__):
                if args.scene:
                    scene = validators.load_scene(input_path)
                    logger.info(f"Scene: {scene.width}×{scene.height}, {len(scene.contours)} contour(s)")
                    grid = renderer.render_scene(scene)
                else:
                    lines = validators.load_lines(input_path)
                    logger.info(f"Lines: {lines.width}×{lines.height}, {lines.num_lines()} segment(s)")
                    grid = renderer.render_lines_file(lines)
        except (ValidationError, StreamValidationError, CapacityError, ValueError, FileNotFoundError) as e:
            logger.error(f"Validation failed: {e}")
            return 1
        elapsed = timings['render']

        output_path = Path(args.output)
        fs.atomic_save_image(grid, output_path)
        logger.info(f"Rendered in {elapsed:.3f} s → {output_path}")

        config_dump = cfg.model_dump(mode='json', by_alias=True)
        metadata = {
            'version': __version__,
            'input': str(input_path),
            'input_sha256': hashing.sha256_file(input_path),
            'output': str(output_path),
            'image_sha256': hashing.sha256_file(output_path),
            'grid_sha256': hashing.sha256_array(grid),
            'config_sha256': hashing.hash_dict(config_dump),
            'shape': list(grid.shape),
            'coverage_fraction': metrics.coverage_fraction(grid),
            'elapsed_s': round(elapsed, 6),
            'render_stats': {k: float(v) for k, v in renderer.last_stats.items()},
            'config': config_dump,
        }
        metadata_path = output_path.parent / "metadata.yaml"
        fs.atomic_yaml_dump(metadata, metadata_path)
        logger.info(f"Saved metadata: {metadata_path}")
        return 0
    finally:
        logging_config.pop_context(['input'])


if __name__ == '__main__':
    logging_config.install_excepthook()
    sys.exit(main())
