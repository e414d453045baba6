"""
Direct forward convolution reference (CPU, NumPy).

This module evaluates the forward pass element by element:

    acc = sum_{kd, kh, kw, ic} src[g, mb, ic, id, ih, iw] * wei[g, oc, ic, kd, kh, kw]
    id  = od * SD - PD + kd * DD        (same for h, w)

Terms whose input coordinate falls outside the tensor are skipped, which is
zero padding without materializing a padded copy.

Design goals
------------
- Reproduce the numeric contract of an optimized kernel: float32
  accumulation in the fixed order kd, kh, kw, ic, followed by bias, output
  scale, post-ops, destination zero point, saturation and rounding.
- Stay dimension-generic: 1D/2D/3D problems share one code path (unused
  axes have extent 1).

Non-goals
---------
- Performance (no im2col, GEMM or vectorization).
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ...domain._arg_kind import ArgKind
from ...domain._config import RefConfig
from ...domain._problem import ConvProblem
from ..memory._args import ArgumentMap
from ..parallel import parallel_nd
from ..pipeline import check_post_ops, check_quantization, maybe_zero_point
from ._conv_common import check_nelems, store_output


def compute_ref_direct_fwd(
    prb: ConvProblem, args: ArgumentMap, config: Optional[RefConfig] = None
) -> None:
    """
    Compute the forward reference into `args[DST]`.

    Parameters
    ----------
    prb : ConvProblem
        Problem descriptor.
    args : ArgumentMap
        Must provide SRC, WEIGHTS and DST; BIAS when the direction carries
        bias; one operand per binary post-op.
    config : Optional[RefConfig]
        Engine configuration (worker count).

    Raises
    ------
    InvariantViolationError
        If a buffer or attribute array does not match the problem.
    """
    config = config or RefConfig()
    src_m = args.find(ArgKind.SRC)
    wei_m = args.find(ArgKind.WEIGHTS)
    bia_m = args.find(ArgKind.BIAS) if prb.has_bias else None
    dst_m = args.find(ArgKind.DST)

    check_nelems("src", src_m, prb.src_dims)
    check_nelems("weights", wei_m, prb.wei_dims)
    check_nelems("bias", bia_m, prb.bia_dims)
    check_nelems("dst", dst_m, prb.dst_dims)
    check_quantization(
        prb.attr, dst_m.dims, {ArgKind.SRC: prb.ic, ArgKind.DST: prb.oc}
    )
    check_post_ops(prb.attr.post_ops, dst_m, args)

    attr = prb.attr
    IC = prb.ic
    ICG, OCG = prb.icg, prb.ocg
    ID, IH, IW = prb.id, prb.ih, prb.iw
    SD, SH, SW = prb.sd, prb.sh, prb.sw
    PD, PH, PW = prb.pd, prb.ph, prb.pw
    KD, KH, KW = prb.kd, prb.kh, prb.kw
    DD, DH, DW = prb.dd + 1, prb.dh + 1, prb.dw + 1

    src = src_m.flat
    wei = wei_m.flat
    bia = None if bia_m is None else bia_m.flat
    po_masks = attr.post_ops.get_po_masks()

    def ker(g: int, mb: int, oc: int, od: int, oh: int, ow: int) -> np.float32:
        src_base = (mb * IC + g * ICG) * ID * IH * IW
        wei_base = (g * OCG + oc) * ICG * KD * KH * KW
        d = np.float32(0.0)
        for kd in range(KD):
            id_ = od * SD - PD + kd * DD
            if id_ < 0 or id_ >= ID:
                continue
            for kh in range(KH):
                ih = oh * SH - PH + kh * DH
                if ih < 0 or ih >= IH:
                    continue
                for kw in range(KW):
                    iw = ow * SW - PW + kw * DW
                    if iw < 0 or iw >= IW:
                        continue
                    for ic in range(ICG):
                        src_off = src_base + ((ic * ID + id_) * IH + ih) * IW + iw
                        wei_off = wei_base + ((ic * KD + kd) * KH + kh) * KW + kw
                        s = maybe_zero_point(
                            attr, src[src_off], ArgKind.SRC, g * ICG + ic
                        )
                        d += s * wei[wei_off]
        return d

    def body(g: int, mb: int, oc: int, od: int, oh: int, ow: int) -> None:
        dst_off = prb.dst_off(mb, g, oc, od, oh, ow)
        conv_res = ker(g, mb, oc, od, oh, ow)
        if bia is not None:
            conv_res += bia[prb.bia_off(g, oc)]
        store_output(
            attr,
            args,
            dst_m,
            po_masks,
            dst_off,
            g * OCG + oc,
            conv_res,
            ArgKind.DST,
        )

    parallel_nd(
        (prb.g, prb.mb, OCG, prb.od, prb.oh, prb.ow),
        body,
        num_workers=config.num_workers,
    )
