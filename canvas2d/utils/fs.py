"""Atomic filesystem operations and YAML handling.

Provides:
    - Atomic writes: tmp file → fsync → rename (no partially written outputs)
    - YAML load/dump (PyYAML safe_load / safe_dump)
    - Atomic PNG writes for rendered grids
    - Directory creation with exist_ok semantics

All paths use pathlib.Path.

Usage:
    from canvas2d.utils import fs
    fs.atomic_save_image(grid_u8, out_dir / "scene.png")
    fs.atomic_yaml_dump(metadata, out_dir / "metadata.yaml")
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import yaml
from PIL import Image

from . import color as color_utils


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create directory (and parents) if missing and return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(
    path: Union[str, Path],
    data: bytes,
    tmp_suffix: str = ".tmp"
) -> None:
    """Write bytes to file atomically (tmp → fsync → rename).

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    data : bytes
        Data to write
    tmp_suffix : str
        Temporary file suffix, default ".tmp"

    Raises
    ------
    RuntimeError
        If the write or rename fails (the tmp file is removed)
    """
    path = Path(path)
    ensure_dir(path.parent)

    tmp_path = path.with_suffix(path.suffix + tmp_suffix)

    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_write_text(path: Union[str, Path], text: str, encoding: str = "utf-8") -> None:
    atomic_write_bytes(path, text.encode(encoding))


def atomic_save_image(
    img: np.ndarray,
    path: Union[str, Path],
    pil_kwargs: Optional[Dict[str, Any]] = None
) -> None:
    """Save an image atomically.

    Parameters
    ----------
    img : np.ndarray
        (H, W), (H, W, 3) or (H, W, 4) array; float arrays are taken as
        [0, 1] and scaled to uint8
    path : Union[str, Path]
        Target file path (extension determines format)
    pil_kwargs : Optional[Dict[str, Any]]
        Additional kwargs for PIL.Image.save

    Raises
    ------
    ValueError
        If the array shape is not an image shape
    RuntimeError
        If saving fails
    """
    path = Path(path)
    pil_kwargs = pil_kwargs or {}

    img = np.asarray(img)
    if img.ndim == 3 and img.shape[2] == 1:
        img = img.squeeze(2)
    if img.ndim not in (2, 3) or (img.ndim == 3 and img.shape[2] not in (3, 4)):
        raise ValueError(f"Expected (H, W), (H, W, 3) or (H, W, 4) image, got shape {img.shape}")

    if np.issubdtype(img.dtype, np.floating):
        img = color_utils.to_uint8_image(img)
    elif img.dtype != np.uint8:
        img = np.clip(img, 0, 255).astype(np.uint8)

    ensure_dir(path.parent)
    pil_img = Image.fromarray(img)

    # Keep the real extension last so PIL can infer the format
    tmp_path = path.with_name(path.stem + ".tmp" + path.suffix)
    try:
        pil_img.save(tmp_path, **pil_kwargs)
        tmp_path.replace(path)
    except (OSError, ValueError) as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to save image {path} atomically: {e}") from e


def atomic_yaml_dump(obj: Any, path: Union[str, Path]) -> None:
    """Save object as YAML atomically (safe_dump, insertion order kept)."""
    yaml_str = yaml.safe_dump(
        obj,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True
    )
    atomic_write_bytes(Path(path), yaml_str.encode('utf-8'))


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load YAML file safely.

    Parameters
    ----------
    path : Union[str, Path]
        YAML file path

    Returns
    -------
    Dict[str, Any]
        Parsed YAML content ({} for an empty file)

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If YAML parsing fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
    return data if data is not None else {}
