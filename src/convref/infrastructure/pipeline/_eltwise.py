"""
Scalar element-wise and binary functions used by post-ops.

All functions take and return `np.float32` so that results match a float32
kernel. Overflow in `exp` is allowed to produce `inf` silently.
"""

from __future__ import annotations

import numpy as np

from ...domain._attributes import BinaryAlg, EltwiseAlg
from ...domain._errors import InvariantViolationError


_F0 = np.float32(0.0)
_F1 = np.float32(1.0)
_HALF = np.float32(0.5)
_GELU_C = np.float32(0.7978845608028654)  # sqrt(2 / pi)
_GELU_K = np.float32(0.044715)


def _logistic(s: np.float32) -> np.float32:
    # Branch keeps exp() argument non-positive.
    if s >= _F0:
        return _F1 / (_F1 + np.exp(-s))
    e = np.exp(s)
    return e / (_F1 + e)


def compute_eltwise_fwd(
    alg: EltwiseAlg, s: float, alpha: float = 0.0, beta: float = 0.0
) -> np.float32:
    """
    Evaluate eltwise `alg` at `s`.

    Parameters
    ----------
    alg : EltwiseAlg
        Algorithm to apply.
    s : float
        Input value.
    alpha, beta : float
        Algorithm parameters (negative slope for relu, bounds for clip,
        `alpha * s + beta` for linear, etc.).
    """
    s = np.float32(s)
    a = np.float32(alpha)
    b = np.float32(beta)
    with np.errstate(over="ignore", invalid="ignore"):
        if alg is EltwiseAlg.RELU:
            return s if s > _F0 else np.float32(a * s)
        if alg is EltwiseAlg.LINEAR:
            return np.float32(a * s + b)
        if alg is EltwiseAlg.CLIP:
            return np.float32(min(max(s, a), b))
        if alg is EltwiseAlg.TANH:
            return np.tanh(s)
        if alg is EltwiseAlg.LOGISTIC:
            return _logistic(s)
        if alg is EltwiseAlg.ABS:
            return np.abs(s)
        if alg is EltwiseAlg.SQUARE:
            return np.float32(s * s)
        if alg is EltwiseAlg.SQRT:
            return np.sqrt(s)
        if alg is EltwiseAlg.EXP:
            return np.exp(s)
        if alg is EltwiseAlg.ELU:
            return s if s > _F0 else np.float32(a * (np.exp(s) - _F1))
        if alg is EltwiseAlg.GELU_TANH:
            inner = _GELU_C * (s + _GELU_K * s * s * s)
            return np.float32(_HALF * s * (_F1 + np.tanh(inner)))
        if alg is EltwiseAlg.SWISH:
            return np.float32(s * _logistic(np.float32(a * s)))
    raise InvariantViolationError(f"unmapped eltwise algorithm {alg!r}")


def compute_binary(alg: BinaryAlg, x: float, y: float) -> np.float32:
    """Evaluate binary `alg` on `(x, y)`."""
    x = np.float32(x)
    y = np.float32(y)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if alg is BinaryAlg.ADD:
            return np.float32(x + y)
        if alg is BinaryAlg.MUL:
            return np.float32(x * y)
        if alg is BinaryAlg.SUB:
            return np.float32(x - y)
        if alg is BinaryAlg.DIV:
            return np.float32(x / y)
        if alg is BinaryAlg.MAX:
            return max(x, y)
        if alg is BinaryAlg.MIN:
            return min(x, y)
    raise InvariantViolationError(f"unmapped binary algorithm {alg!r}")
