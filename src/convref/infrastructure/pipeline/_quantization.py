"""
Affine quantization steps shared by the evaluators and the reorder reference.

Two independent transforms are applied around the dot product:

1. source side: `s - zp_src` before `s` enters the reduction;
2. destination side: `v * scale`, post-ops, then `v + zp_dst` and
   saturation (see `_saturation.py`).

Absent attributes are identity transforms.
"""

from __future__ import annotations

from math import prod
from typing import Sequence

import numpy as np

from ...domain._arg_kind import ArgKind
from ...domain._attributes import MASK_PER_CHANNEL, Attributes
from ...domain._errors import InvariantViolationError


def maybe_zero_point(
    attr: Attributes,
    value: float,
    kind: ArgKind,
    channel: int,
    opposite_sign: bool = False,
) -> np.float32:
    """
    Apply the zero point of argument `kind` to `value`.

    Subtracts the zero point (source side), or adds it when `opposite_sign`
    is set (destination side). `channel` selects the entry of a per-channel
    zero point.
    """
    zp = attr.zero_points.get(kind)
    if zp is None:
        return value
    z = np.float32(zp.value(channel))
    return np.float32(value + z) if opposite_sign else np.float32(value - z)


def maybe_oscale(attr: Attributes, value: float, scale_idx: int) -> np.float32:
    """Multiply `value` by output scale entry `scale_idx` (identity if unset)."""
    scales = attr.scales
    if scales.is_def():
        return value
    return np.float32(value * np.float32(scales.values[scale_idx]))


def masked_count(dims: Sequence[int], mask: int) -> int:
    """Number of parameter entries a `mask` over `dims` selects."""
    return prod(d for i, d in enumerate(dims) if mask & (1 << i))


def check_quantization(
    attr: Attributes,
    dst_dims: Sequence[int],
    zp_channels: dict,
) -> None:
    """
    Validate attribute sizes once, before any element is computed.

    Parameters
    ----------
    attr : Attributes
        Attributes of the problem.
    dst_dims : Sequence[int]
        Logical dims of the tensor the output scale applies to.
    zp_channels : dict
        Channel count of every argument role whose zero point may be used.

    Raises
    ------
    InvariantViolationError
        If a scale or per-channel zero-point array has the wrong length.
    """
    scales = attr.scales
    if not scales.is_def():
        if scales.mask >> len(dst_dims):
            raise InvariantViolationError(
                f"scale mask {scales.mask:#x} exceeds {len(dst_dims)} dims"
            )
        need = masked_count(dst_dims, scales.mask)
        if len(scales.values) != need:
            raise InvariantViolationError(
                f"expected {need} scale values for mask {scales.mask:#x}, "
                f"got {len(scales.values)}"
            )
    for kind, channels in zp_channels.items():
        zp = attr.zero_points.get(kind)
        if zp is not None and zp.mask == MASK_PER_CHANNEL:
            if len(zp.values) != channels:
                raise InvariantViolationError(
                    f"expected {channels} zero points for {ArgKind(kind).name}, "
                    f"got {len(zp.values)}"
                )
