"""
Post-op chain evaluation.

The evaluators treat a post-op as `transform(value, aux) -> value` and know
nothing else about it. Auxiliary values are gathered per output element by
`prepare_po_vals` from the same flat destination offset (reduced by each
binary entry's mask) before the chain runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence, Tuple

import numpy as np

from ...domain._arg_kind import post_op_src
from ...domain._attributes import (
    Attributes,
    BinaryPostOp,
    EltwisePostOp,
    PostOps,
    SumPostOp,
)
from ...domain._errors import InvariantViolationError
from ._eltwise import compute_binary, compute_eltwise_fwd
from ._quantization import masked_count

if TYPE_CHECKING:
    from ..memory._args import ArgumentMap
    from ..memory._memory import Memory


PoVals = Tuple[Optional[np.float32], ...]


def check_post_ops(post_ops: PostOps, dst_m: Memory, args: ArgumentMap) -> None:
    """
    Ensure every binary entry has an operand of the size its mask implies.

    Raises
    ------
    InvariantViolationError
        On a missing or mis-sized binary operand.
    """
    for idx, mask in enumerate(post_ops.get_po_masks()):
        if mask is None:
            continue
        src1 = args.find(post_op_src(idx))
        need = masked_count(dst_m.dims, mask)
        if src1.nelems != need:
            raise InvariantViolationError(
                f"binary post-op {idx} operand has {src1.nelems} elements, "
                f"mask {mask:#x} over {dst_m.dims} needs {need}"
            )


def prepare_po_vals(
    dst_m: Memory,
    args: ArgumentMap,
    po_masks: Sequence[Optional[int]],
    dst_off: int,
) -> PoVals:
    """Auxiliary operand of each post-op entry for element `dst_off`."""
    if not po_masks:
        return ()
    vals = []
    for idx, mask in enumerate(po_masks):
        if mask is None:
            vals.append(None)
            continue
        src1 = args.find(post_op_src(idx))
        vals.append(src1.get_elem(dst_m.get_scale_idx(dst_off, mask)))
    return tuple(vals)


def maybe_post_ops(
    attr: Attributes, value: float, dst_value: float, po_vals: PoVals
) -> np.float32:
    """
    Apply the post-op chain of `attr` to `value`, strictly in order.

    Parameters
    ----------
    attr : Attributes
        Problem attributes.
    value : float
        Running accumulator.
    dst_value : float
        Current destination value (read by sum entries).
    po_vals : PoVals
        Output of `prepare_po_vals` for the same element.
    """
    value = np.float32(value)
    for idx, e in enumerate(attr.post_ops):
        if isinstance(e, SumPostOp):
            prev = np.float32(dst_value) - np.float32(e.zero_point)
            value = np.float32(value + np.float32(e.scale) * prev)
        elif isinstance(e, EltwisePostOp):
            res = compute_eltwise_fwd(e.alg, value, e.alpha, e.beta)
            value = np.float32(np.float32(e.scale) * res)
        elif isinstance(e, BinaryPostOp):
            value = compute_binary(e.alg, value, po_vals[idx])
        else:
            raise InvariantViolationError(f"unmapped post-op entry {e!r}")
    return value
