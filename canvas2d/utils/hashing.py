"""SHA-256 hashing for render provenance.

Provides:
    - sha256_file(): hash file contents (rendered PNGs, scene files)
    - sha256_array(): hash array values (rendered grids before encoding)
    - sha256_string(), hash_dict(): hash configs for metadata

Hashes are hex strings (64 chars). Arrays are hashed from their raw bytes, so
the hash is NOT invariant to dtype or shape.

Usage:
    from canvas2d.utils import hashing
    grid_hash = hashing.sha256_array(grid)
"""

import hashlib
import json
from pathlib import Path
from typing import Union

import numpy as np
import torch


def sha256_file(path: Union[str, Path], chunk_size: int = 1 << 20) -> str:
    """Compute SHA-256 hash of file contents, read in chunks.

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    sha256 = hashlib.sha256()
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            sha256.update(chunk)
    return sha256.hexdigest()


def sha256_array(a: Union[np.ndarray, torch.Tensor]) -> str:
    """Compute SHA-256 hash of array values.

    Parameters
    ----------
    a : np.ndarray or torch.Tensor
        Array to hash; tensors are moved to CPU first

    Returns
    -------
    str
        SHA-256 hex digest
    """
    if isinstance(a, torch.Tensor):
        a = a.detach().cpu().numpy()
    return hashlib.sha256(np.ascontiguousarray(a).tobytes()).hexdigest()


def sha256_string(s: str) -> str:
    return hashlib.sha256(s.encode('utf-8')).hexdigest()


def hash_dict(d: dict) -> str:
    """Compute SHA-256 hash of a JSON-serializable dict (keys sorted)."""
    return sha256_string(json.dumps(d, sort_keys=True))
