"""
Reorder reference (CPU, NumPy).

Every destination element is

    value = factor * alpha * (src - src_zp) + beta * (dst - dst_zp) + dst_zp

saturated to the destination type (with the s32 sentinel) and rounded. The
`dst` term is read only when a sum post-op is configured.

Compensation
------------
When the argument map carries an `S8_COMPENSATION` and/or `ZP_COMPENSATION`
buffer of type s32, each compensation element `f` (a position over the axes
kept by `comp_mask`) receives

    zp_comp[f] = -sum_r saturate(dst_dt, src[f, r] * alpha * factor)
    s8_comp[f] = 128 * zp_comp[f]

where `r` ranges over the remaining (reduced) axes. `factor` is the
problem's `s8s8_scale_factor` when s8 compensation is requested and 1
otherwise.
"""

from __future__ import annotations

from math import prod
from typing import Optional, Sequence, Tuple

import numpy as np

from ...domain._arg_kind import ArgKind
from ...domain._config import RefConfig
from ...domain._data_type import DataType
from ...domain._errors import InvariantViolationError
from ...domain._reorder_problem import S8S8_COMP_MULTIPLIER, ReorderProblem
from ..memory._args import ArgumentMap
from ..memory._memory import Memory
from ..parallel import parallel_nd
from ..pipeline import masked_count, maybe_saturate, saturate_and_round


def _strides(dims: Sequence[int]) -> Tuple[int, ...]:
    out = [1] * len(dims)
    for i in range(len(dims) - 2, -1, -1):
        out[i] = out[i + 1] * dims[i + 1]
    return tuple(out)


def _off2dims_off(sub_dims: Sequence[int], strides: Sequence[int], off: int) -> int:
    """Offset in the full tensor of flat index `off` taken over `sub_dims`."""
    res = 0
    for i in range(len(sub_dims) - 1, -1, -1):
        res += (off % sub_dims[i]) * strides[i]
        off //= sub_dims[i]
    return res


def _needs_comp(mem: Optional[Memory]) -> bool:
    return mem is not None and mem.dt is DataType.S32


def compute_ref_reorder(
    prb: ReorderProblem, args: ArgumentMap, config: Optional[RefConfig] = None
) -> None:
    """
    Compute the reorder reference into `args[TO]` and, when requested, the
    compensation buffers.

    Parameters
    ----------
    prb : ReorderProblem
        Scales, zero points, sum beta and compensation settings.
    args : ArgumentMap
        Must provide FROM and TO with the same element count; may provide
        S8_COMPENSATION and ZP_COMPENSATION.
    config : Optional[RefConfig]
        Worker count.

    Raises
    ------
    InvariantViolationError
        On mismatched element counts or scale entries.
    """
    config = config or RefConfig()
    src_m = args.find(ArgKind.FROM)
    dst_m = args.find(ArgKind.TO)
    s8_comp_m = args.get(ArgKind.S8_COMPENSATION)
    zp_comp_m = args.get(ArgKind.ZP_COMPENSATION)

    if src_m.nelems != dst_m.nelems:
        raise InvariantViolationError(
            f"reorder FROM has {src_m.nelems} elements, TO has {dst_m.nelems}"
        )

    scales = prb.attr.scales
    scale_mask = scales.mask
    n_scales = masked_count(dst_m.dims, scale_mask)
    if not scales.is_def() and len(scales.values) != n_scales:
        raise InvariantViolationError(
            f"reorder expects {n_scales} scales for mask {scale_mask}, "
            f"got {len(scales.values)}"
        )
    alphas = scales.values or (1.0,)

    need_s8_comp = _needs_comp(s8_comp_m)
    need_zp_comp = _needs_comp(zp_comp_m)
    factor = np.float32(prb.s8s8_scale_factor if need_s8_comp else 1.0)

    dst_dt = dst_m.dt
    src = src_m.flat
    dst = dst_m.flat
    src_zp = np.float32(prb.src_zp)
    dst_zp = np.float32(prb.dst_zp)
    beta = np.float32(prb.beta)
    has_sum = prb.has_sum

    def body(idx: int) -> None:
        s = src[idx] - src_zp
        d = dst[idx] - dst_zp if has_sum else np.float32(0.0)
        alpha = np.float32(alphas[dst_m.get_scale_idx(idx, scale_mask)])
        value = factor * alpha * s + beta * d + dst_zp
        dst[idx] = saturate_and_round(dst_dt, value)

    parallel_nd((src_m.nelems,), body, num_workers=config.num_workers)

    if not (need_s8_comp or need_zp_comp):
        return

    nelems_s8 = s8_comp_m.nelems if need_s8_comp else 0
    nelems_zp = zp_comp_m.nelems if need_zp_comp else 0
    if need_s8_comp and need_zp_comp and nelems_s8 != nelems_zp:
        raise InvariantViolationError(
            f"compensation sizes differ: s8 {nelems_s8}, zp {nelems_zp}"
        )
    nelems_comp = max(nelems_s8, nelems_zp)

    src_dims = src_m.dims
    comp_dims = tuple(
        d if prb.comp_mask & (1 << i) else 1 for i, d in enumerate(src_dims)
    )
    reduce_dims = tuple(
        1 if prb.comp_mask & (1 << i) else d for i, d in enumerate(src_dims)
    )
    if prod(comp_dims) != nelems_comp:
        raise InvariantViolationError(
            f"compensation holds {nelems_comp} elements, mask {prb.comp_mask} "
            f"over {src_dims} selects {prod(comp_dims)}"
        )
    nelems_reduce = prod(reduce_dims)
    strides = _strides(src_dims)
    s8_comp = s8_comp_m.flat if need_s8_comp else None
    zp_comp = zp_comp_m.flat if need_zp_comp else None

    def comp_body(f: int) -> None:
        idle_off = _off2dims_off(comp_dims, strides, f)
        comp_val = 0
        for r in range(nelems_reduce):
            src_off = idle_off + _off2dims_off(reduce_dims, strides, r)
            alpha = np.float32(alphas[dst_m.get_scale_idx(src_off, scale_mask)])
            value = src[src_off] * alpha * factor
            # int - float narrows back to int by truncation
            comp_val = int(np.float32(comp_val) - maybe_saturate(dst_dt, value))
        if zp_comp is not None:
            zp_comp[f] = comp_val
        if s8_comp is not None:
            s8_comp[f] = comp_val * S8S8_COMP_MULTIPLIER

    parallel_nd((nelems_comp,), comp_body, num_workers=config.num_workers)
