"""
Direct backward-weights and backward-bias convolution references (CPU, NumPy).

Backward-weights, for every weight element `(g, oc, ic, kd, kh, kw)`:

    acc = sum_{mb, od, oh, ow} diff_dst[g, mb, oc, od, oh, ow] * src[g, mb, ic, id, ih, iw]
    id  = od * SD + kd * DD - PD        (same for h, w)

Instead of bounds-checking every output coordinate, `compute_bounds` derives
per kernel offset the exact output range `[o_s, o_e)` whose input
coordinates are in range. The visited set equals that of a fully
bounds-checked scan.

Backward-bias, for every `(g, oc)`, sums diff_dst over `(mb, od, oh, ow)`
in double precision and narrows once at the end.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from ...domain._arg_kind import ArgKind
from ...domain._config import RefConfig
from ...domain._problem import ConvProblem
from ..memory._args import ArgumentMap
from ..parallel import parallel_nd
from ..pipeline import saturate_and_round
from ._conv_common import check_nelems


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def compute_bounds(
    I: int, O: int, k: int, S: int, P: int, D: int
) -> Tuple[int, int]:
    """
    Output range `[o_s, o_e)` for which `o * S + k * D - P` lies in `[0, I)`.

    Computed with exact integer ceiling division and clamped to `[0, O)`;
    the range is empty when `o_e <= o_s`.
    """
    tmp = P - k * D
    o_s = max(0, _ceil_div(tmp, S))
    o_e = min(O, _ceil_div(I + tmp, S))
    return o_s, o_e


def compute_ref_bwd_weights(
    prb: ConvProblem, args: ArgumentMap, config: Optional[RefConfig] = None
) -> None:
    """
    Compute the weights gradient into `args[DIFF_WEIGHTS]`.

    Each weight element starts from a fresh accumulator and reduces over the
    whole batch.
    """
    config = config or RefConfig()
    src_m = args.find(ArgKind.SRC)
    diff_wei_m = args.find(ArgKind.DIFF_WEIGHTS)
    diff_dst_m = args.find(ArgKind.DIFF_DST)

    check_nelems("src", src_m, prb.src_dims)
    check_nelems("diff_weights", diff_wei_m, prb.wei_dims)
    check_nelems("diff_dst", diff_dst_m, prb.dst_dims)

    MB, IC, OC = prb.mb, prb.ic, prb.oc
    ICG, OCG = prb.icg, prb.ocg
    OD, OH, OW = prb.od, prb.oh, prb.ow
    ID, IH, IW = prb.id, prb.ih, prb.iw
    SD, SH, SW = prb.sd, prb.sh, prb.sw
    PD, PH, PW = prb.pd, prb.ph, prb.pw
    DD, DH, DW = prb.dd + 1, prb.dh + 1, prb.dw + 1

    src = src_m.flat
    diff_dst = diff_dst_m.flat
    diff_wei = diff_wei_m.flat
    out_dt = diff_wei_m.dt

    def ker(g: int, oc: int, ic: int, kd: int, kh: int, kw: int) -> np.float32:
        od_s, od_e = compute_bounds(ID, OD, kd, SD, PD, DD)
        oh_s, oh_e = compute_bounds(IH, OH, kh, SH, PH, DH)
        ow_s, ow_e = compute_bounds(IW, OW, kw, SW, PW, DW)
        id_s = kd * DD - PD
        ih_s = kh * DH - PH
        iw_s = kw * DW - PW

        dw = np.float32(0.0)
        for mb in range(MB):
            diff_dst_base = (mb * OC + g * OCG + oc) * OD * OH * OW
            src_base = (mb * IC + g * ICG + ic) * ID * IH * IW
            for od in range(od_s, od_e):
                id_ = od * SD + id_s
                for oh in range(oh_s, oh_e):
                    ih = oh * SH + ih_s
                    for ow in range(ow_s, ow_e):
                        iw = ow * SW + iw_s
                        diff_dst_off = diff_dst_base + (od * OH + oh) * OW + ow
                        src_off = src_base + (id_ * IH + ih) * IW + iw
                        dw += diff_dst[diff_dst_off] * src[src_off]
        return dw

    def body(g: int, oc: int, ic: int, kd: int, kh: int, kw: int) -> None:
        wei_off = prb.wei_off(g, oc, ic, kd, kh, kw)
        diff_wei[wei_off] = saturate_and_round(out_dt, ker(g, oc, ic, kd, kh, kw))

    parallel_nd(
        (prb.g, OCG, ICG, prb.kd, prb.kh, prb.kw),
        body,
        num_workers=config.num_workers,
    )


def compute_ref_bwd_bias(
    prb: ConvProblem, args: ArgumentMap, config: Optional[RefConfig] = None
) -> None:
    """
    Compute the bias gradient into `args[DIFF_BIAS]`.

    The running sum is a Python float (double precision), narrowed to the
    diff-bias data type once per channel.
    """
    config = config or RefConfig()
    diff_bia_m = args.find(ArgKind.DIFF_BIAS)
    diff_dst_m = args.find(ArgKind.DIFF_DST)

    check_nelems("diff_bias", diff_bia_m, prb.bia_dims)
    check_nelems("diff_dst", diff_dst_m, prb.dst_dims)

    MB, OCG = prb.mb, prb.ocg
    OD, OH, OW = prb.od, prb.oh, prb.ow
    diff_dst = diff_dst_m.flat
    diff_bia = diff_bia_m.flat
    out_dt = diff_bia_m.dt

    def body(g: int, oc: int) -> None:
        total = 0.0
        for mb in range(MB):
            for od in range(OD):
                for oh in range(OH):
                    for ow in range(OW):
                        total += float(diff_dst[prb.dst_off(mb, g, oc, od, oh, ow)])
        diff_bia[prb.bia_off(g, oc)] = saturate_and_round(out_dt, total)

    parallel_nd((prb.g, OCG), body, num_workers=config.num_workers)


def compute_ref_direct_bwd_w(
    prb: ConvProblem, args: ArgumentMap, config: Optional[RefConfig] = None
) -> None:
    """Backward-weights, followed by backward-bias when the problem has bias."""
    compute_ref_bwd_weights(prb, args, config)
    if not prb.has_bias:
        return
    compute_ref_bwd_bias(prb, args, config)
