"""
Helpers shared by the direct convolution evaluators.
"""

from __future__ import annotations

from math import prod
from typing import Optional, Sequence

from ...domain._arg_kind import ArgKind
from ...domain._attributes import Attributes
from ...domain._errors import InvariantViolationError
from ..memory._args import ArgumentMap
from ..memory._memory import Memory
from ..pipeline import (
    maybe_oscale,
    maybe_post_ops,
    maybe_zero_point,
    prepare_po_vals,
    saturate_and_round,
)


def check_nelems(name: str, mem: Optional[Memory], dims: Sequence[int]) -> None:
    """
    Ensure `mem` holds exactly `prod(dims)` elements.

    Only the element count is compared: weights may be supplied grouped
    `(G, OCG, ICG, K...)` or flat `(OC, ICG, K...)` with the same layout.
    """
    if mem is None:
        return
    need = prod(dims)
    if mem.nelems != need:
        raise InvariantViolationError(
            f"{name} has {mem.nelems} elements ({mem.dims}), expected {need} {tuple(dims)}"
        )


def store_output(
    attr: Attributes,
    args: ArgumentMap,
    out_m: Memory,
    po_masks: Sequence[Optional[int]],
    out_off: int,
    channel: int,
    value: float,
    dst_zp_kind: ArgKind,
) -> None:
    """
    Run the output side of the pipeline for one element and store it.

    Order: output scale, post-ops (sum reads the current value at
    `out_off`), destination zero point, saturation and rounding.
    """
    value = maybe_oscale(attr, value, out_m.get_scale_idx(out_off, attr.scales.mask))
    out = out_m.flat
    po_vals = prepare_po_vals(out_m, args, po_masks, out_off)
    value = maybe_post_ops(attr, value, out[out_off], po_vals)
    value = maybe_zero_point(attr, value, dst_zp_kind, channel, opposite_sign=True)
    out[out_off] = saturate_and_round(out_m.dt, value)
