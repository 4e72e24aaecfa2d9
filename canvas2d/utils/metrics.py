"""Image comparison metrics for rendered grids.

Provides:
    - PSNR: Peak Signal-to-Noise Ratio
    - MAE / max abs error: pixel-level agreement between backends
    - Coverage fraction: share of pixels above a luma/alpha threshold

Used by:
    - Parity tests: numpy vs torch backend, scalar vs grid kernel
    - CLI metadata: coverage of rendered masks

Inputs may be numpy arrays or torch tensors of any matching shape, with
values in [0, 1]. Results are Python floats.
"""

from typing import Union

import numpy as np
import torch
import torch.nn.functional as F

ArrayLike = Union[np.ndarray, torch.Tensor]


def _as_tensor(x: ArrayLike) -> torch.Tensor:
    if isinstance(x, torch.Tensor):
        return x.detach().to(dtype=torch.float64, device='cpu')
    return torch.from_numpy(np.asarray(x, dtype=np.float64))


def psnr(img1: ArrayLike, img2: ArrayLike, max_val: float = 1.0, eps: float = 1e-12) -> float:
    """Compute Peak Signal-to-Noise Ratio in dB.

    Parameters
    ----------
    img1, img2 : np.ndarray or torch.Tensor
        Images of identical shape, range [0, max_val]
    max_val : float
        Maximum possible pixel value, default 1.0
    eps : float
        Added to the MSE to avoid log(0); identical images give a large
        finite value

    Returns
    -------
    float
        10 · log10(max_val² / (MSE + eps))

    Raises
    ------
    ValueError
        If shapes differ
    """
    a, b = _as_tensor(img1), _as_tensor(img2)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {tuple(a.shape)} vs {tuple(b.shape)}")
    mse = F.mse_loss(a, b, reduction='mean')
    return float(10.0 * torch.log10((max_val ** 2) / (mse + eps)))


def mean_absolute_error(img1: ArrayLike, img2: ArrayLike) -> float:
    a, b = _as_tensor(img1), _as_tensor(img2)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {tuple(a.shape)} vs {tuple(b.shape)}")
    return float(torch.mean(torch.abs(a - b)))


def max_abs_error(img1: ArrayLike, img2: ArrayLike) -> float:
    a, b = _as_tensor(img1), _as_tensor(img2)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {tuple(a.shape)} vs {tuple(b.shape)}")
    if a.numel() == 0:
        return 0.0
    return float(torch.max(torch.abs(a - b)))


def coverage_fraction(grid: ArrayLike, threshold: float = 0.5) -> float:
    """Fraction of pixels whose first channel exceeds `threshold`.

    Parameters
    ----------
    grid : np.ndarray or torch.Tensor
        (H, W) luma or (H, W, C) image; channel 0 is used for images
    threshold : float
        Strict lower bound for a pixel to count as covered

    Returns
    -------
    float
        Covered fraction in [0, 1]
    """
    t = _as_tensor(grid)
    if t.ndim == 3:
        t = t[..., 0]
    if t.numel() == 0:
        return 0.0
    return float((t > threshold).to(torch.float64).mean())
