"""Per-pixel rasterizer kernels and the layers that feed them.

Provides two independent pixel-parallel kernels:
    - Contour rasterizer: nonzero-winding fill and distance-falloff stroke of a
      recorded command stream, composited in stream order
    - Multisample coverage: S×S supersampled even-odd coverage of a segment list

Modules:
    - commands: command model, stream validation, 16-byte record codec
    - recorder: CanvasRecorder/ContourRecorder and LineCanvas
    - contour: scalar replay and numpy grid kernel for command streams
    - coverage: scalar and numpy grid kernel for segment lists
    - dispatch: workgroup tiling, thread-pool dispatch, Canvas2DRenderer
    - torch_backend: whole-grid torch kernels (CPU or CUDA)

Invariants:
    - Inputs are validated once, before any pixel is evaluated
    - Every output cell is written by exactly one workgroup
    - Results do not depend on workgroup size or worker count
"""

from .commands import (
    EndContour,
    LineTo,
    Opcode,
    StartFill,
    StartStroke,
    StreamValidationError,
    Terminator,
)
from .dispatch import Canvas2DRenderer
from .recorder import CanvasRecorder, CapacityError, LineCanvas, RecorderStateError

__all__ = [
    'Canvas2DRenderer',
    'CanvasRecorder',
    'CapacityError',
    'EndContour',
    'LineCanvas',
    'LineTo',
    'Opcode',
    'RecorderStateError',
    'StartFill',
    'StartStroke',
    'StreamValidationError',
    'Terminator',
]
