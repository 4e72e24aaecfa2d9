"""YAML schema validation and config loading.

Provides centralized validation for all configuration files using pydantic:
    - Renderer schema (renderer.v1.yaml): samples, tiling, workers, capacities,
      blend mode, backend, logging
    - Scene schema (scene.v1.yaml): fill/stroke contours for the contour rasterizer
    - Lines schema (lines.v1.yaml): polylines for the multisample coverage kernel

All entry points load configs through these validators, so malformed files
fail fast with the offending key and expected range.

Units:
    - Geometry: pixels, integer coordinates in [0, 65535] (u16 wire fields)
    - Color: 8-bit channels [r, g, b, a] or "#rrggbb[aa]"

Usage:
    from canvas2d.utils import validators

    cfg = validators.load_renderer_config("configs/renderer.v1.yaml")
    scene = validators.load_scene("configs/scenes/demo_scene.yaml")
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import color as color_utils

MIN_SAMPLES_PER_AXIS = 1
MAX_SAMPLES_PER_AXIS = 5

PointU16 = Tuple[int, int]


def _check_point_u16(pt: PointU16, what: str) -> PointU16:
    x, y = pt
    if not (0 <= x <= color_utils.U16_MAX and 0 <= y <= color_utils.U16_MAX):
        raise ValueError(
            f"{what} ({x}, {y}) out of range; coordinates must be in [0, {color_utils.U16_MAX}]"
        )
    return pt


# ============================================================================
# RENDERER SCHEMA V1
# ============================================================================

class LoggingConfig(BaseModel):
    """Arguments forwarded to logging_config.setup_logging()."""
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = None
    json_format: bool = Field(default=False, alias="json")
    color: bool = True
    to_stderr: bool = True
    rotate: Optional[Dict[str, Any]] = None
    tz: str = Field(default="UTC")
    capture_warnings: bool = True
    quiet_libs: List[str] = Field(default_factory=lambda: ["PIL"])

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('log_level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}, got {v}")
        return v.upper()

    @field_validator('tz')
    @classmethod
    def validate_tz(cls, v: str) -> str:
        if v not in ("UTC", "local"):
            raise ValueError(f"tz must be 'UTC' or 'local', got {v}")
        return v

    def setup_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for setup_logging()."""
        return {
            'log_level': self.log_level,
            'log_file': self.log_file,
            'json': self.json_format,
            'color': self.color,
            'to_stderr': self.to_stderr,
            'rotate': self.rotate,
            'tz': self.tz,
            'capture_warnings': self.capture_warnings,
            'quiet_libs': list(self.quiet_libs),
        }


class RendererV1(BaseModel):
    """Renderer configuration (renderer.v1.yaml schema).

    Controls both kernels: subsample grid for coverage, workgroup tiling and
    thread count for dispatch, buffer capacities for the recorders, and the
    compositing rule for contours.
    """
    schema_version: str = Field(default="renderer.v1", alias="schema")
    samples_per_axis: int = Field(
        default=5, ge=MIN_SAMPLES_PER_AXIS, le=MAX_SAMPLES_PER_AXIS,
        description="Subsample grid edge S (S² samples per pixel)"
    )
    workgroup_size: int = Field(default=8, ge=1, le=1024)
    workers: int = Field(default=1, ge=1, le=256)
    command_capacity: int = Field(default=1000, ge=1)
    line_buffer_bytes: int = Field(default=8192, ge=16)
    blend_mode: str = Field(default="normalized")
    cull_contours: bool = False
    backend: str = Field(default="numpy")
    device: str = Field(default="cpu")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "renderer.v1":
            raise ValueError(f"schema must be 'renderer.v1', got {v}")
        return v

    @field_validator('blend_mode')
    @classmethod
    def validate_blend_mode(cls, v: str) -> str:
        allowed = {'normalized', 'over'}
        if v not in allowed:
            raise ValueError(f"blend_mode must be one of {sorted(allowed)}, got {v}")
        return v

    @field_validator('backend')
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = {'numpy', 'torch'}
        if v not in allowed:
            raise ValueError(f"backend must be one of {sorted(allowed)}, got {v}")
        return v

    @field_validator('line_buffer_bytes')
    @classmethod
    def validate_line_buffer(cls, v: int) -> int:
        if v % 16 != 0:
            raise ValueError(f"line_buffer_bytes must be a multiple of 16 (one segment), got {v}")
        return v

    @property
    def max_lines(self) -> int:
        return self.line_buffer_bytes // 16


# ============================================================================
# SCENE SCHEMA V1
# ============================================================================

class ContourSpec(BaseModel):
    """One fill or stroke contour: start point followed by line_to points."""
    type: str = Field(..., description="'fill' or 'stroke'")
    start: PointU16
    color: Tuple[int, int, int, int] = Field(..., description="8-bit [r, g, b, a]")
    width: Optional[int] = Field(default=None, ge=0, le=color_utils.U16_MAX)
    points: List[PointU16] = Field(default_factory=list)

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in ("fill", "stroke"):
            raise ValueError(f"contour type must be 'fill' or 'stroke', got {v}")
        return v

    @field_validator('color', mode='before')
    @classmethod
    def parse_color(cls, v):
        if isinstance(v, str):
            return color_utils.parse_hex_color(v)
        return v

    @field_validator('color')
    @classmethod
    def validate_color(cls, v: Tuple[int, int, int, int]) -> Tuple[int, int, int, int]:
        for name, c in zip("rgba", v):
            if not 0 <= c <= color_utils.U8_MAX:
                raise ValueError(f"color channel {name}={c} out of range [0, 255]")
        return v

    @model_validator(mode='after')
    def validate_geometry(self) -> 'ContourSpec':
        _check_point_u16(self.start, "start point")
        for i, pt in enumerate(self.points):
            _check_point_u16(pt, f"point {i}")
        if self.type == "stroke" and self.width is None:
            raise ValueError("stroke contours require a width")
        if self.type == "fill" and self.width is not None:
            raise ValueError("fill contours do not take a width")
        return self


class SceneV1(BaseModel):
    """Contour scene (scene.v1.yaml schema). Contours are drawn in list order."""
    schema_version: str = Field(default="scene.v1", alias="schema")
    width: int = Field(..., ge=1, le=8192)
    height: int = Field(..., ge=1, le=8192)
    contours: List[ContourSpec] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "scene.v1":
            raise ValueError(f"schema must be 'scene.v1', got {v}")
        return v

    def num_commands(self) -> int:
        """Commands needed to record this scene, terminator included."""
        return sum(len(c.points) + 2 for c in self.contours) + 1


# ============================================================================
# LINES SCHEMA V1
# ============================================================================

class PathSpec(BaseModel):
    """Open polyline: move_to(start) then line_to each point."""
    start: Tuple[float, float]
    points: List[Tuple[float, float]] = Field(..., min_length=1)


class LinesV1(BaseModel):
    """Line-segment scene (lines.v1.yaml schema) for coverage masks.

    Closed shapes must repeat their first point; coverage uses even-odd parity
    over all segments.
    """
    schema_version: str = Field(default="lines.v1", alias="schema")
    width: int = Field(..., ge=1, le=8192)
    height: int = Field(..., ge=1, le=8192)
    paths: List[PathSpec] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "lines.v1":
            raise ValueError(f"schema must be 'lines.v1', got {v}")
        return v

    def num_lines(self) -> int:
        return sum(len(p.points) for p in self.paths)


# ============================================================================
# LOADERS
# ============================================================================

def load_renderer_config(path: Union[str, Path]) -> RendererV1:
    """Load and validate renderer config from YAML.

    Parameters
    ----------
    path : str or Path
        Path to renderer.v1.yaml file

    Returns
    -------
    RendererV1
        Validated config model

    Raises
    ------
    FileNotFoundError
        If file does not exist
    pydantic.ValidationError
        If config is invalid
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Renderer config not found: {path}")

    cfg = fs.load_yaml(path)
    return RendererV1(**cfg)


def load_scene(path: Union[str, Path]) -> SceneV1:
    """Load and validate a contour scene from YAML.

    Raises
    ------
    FileNotFoundError
        If file does not exist
    pydantic.ValidationError
        If the scene is invalid
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Scene file not found: {path}")

    return SceneV1(**fs.load_yaml(path))


def load_lines(path: Union[str, Path]) -> LinesV1:
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Lines file not found: {path}")

    return LinesV1(**fs.load_yaml(path))
