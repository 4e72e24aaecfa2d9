"""canvas2d: per-pixel software rasterizer for 2D vector canvases.

This package contains two pixel-parallel kernels and the thin layers that feed
them finished buffers:
    - ContourRasterizer: replays a fill/stroke command stream for every pixel
      (nonzero winding + distance antialiasing)
    - MultisampleCoverage: supersampled even-odd coverage of a line-segment set
      (grayscale mask)

Architecture layers (strict one-way dependency):
    scripts/ → canvas2d/rasterizer/ → canvas2d/utils/

Key invariants:
    - Each output pixel depends only on the read-only input buffer and its own
      integer coordinates (no cross-pixel state)
    - Command streams end in a Terminator; inputs are validated once, at the
      boundary, never inside the per-pixel replay
    - Colors are 8-bit channels packed into two 16-bit fields, normalized by /255
    - YAML-only configs, validated by pydantic schemas
    - All output grids are float32 RGBA (H, W, 4)
"""

__version__ = "0.3.0"
