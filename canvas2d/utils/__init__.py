"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Config and scene validation (validators)
    - Tiling, pixel grids and finite checks (compute)
    - 8-bit color packing and image conversion (color)
    - Segment geometry and smoothstep falloff (geometry)
    - Atomic I/O and YAML (fs)
    - Image metrics (metrics)
    - Profiling (profiler)
    - Hashing for render provenance (hashing)
    - Unified logging (logging_config)

No module in utils/ may import from upper layers (rasterizer, scripts).

Convenience imports:
    from canvas2d.utils import fs, compute, color, validators
    from canvas2d.utils.logging_config import setup_logging, get_logger
"""

# Re-export commonly used modules for convenience
from . import color
from . import compute
from . import fs
from . import geometry
from . import hashing
from . import logging_config
from . import metrics
from . import profiler
from . import validators

# Common functions for direct import
from .logging_config import get_logger, push_context, setup_logging

__all__ = [
    # Modules
    'color',
    'compute',
    'fs',
    'geometry',
    'hashing',
    'logging_config',
    'metrics',
    'profiler',
    'validators',
    # Direct exports
    'setup_logging',
    'get_logger',
    'push_context',
]
