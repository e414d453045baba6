"""
Direct backward-data convolution reference (CPU, NumPy).

For every diff-source element `(g, mb, ic, id, ih, iw)`:

    acc = sum_{kd, kh, kw, oc} diff_dst[g, mb, oc, od, oh, ow] * wei[g, oc, ic, kd, kh, kw]
    od  = (id - kd * DD + PD) / SD      valid only if exact and in [0, OD)

Two inner kernels produce identical results:

- direct search: test every kernel offset for divisibility and range;
- precomputed table: per spatial axis, list the valid
  `(kernel index, output index)` pairs once, then walk their outer product.

The table kernel is chosen automatically when every kernel extent is at most
`RefConfig.precompute_size`. Both kernels visit the valid offsets in the same
ascending order, so float32 sums match bit for bit.

Zero points are taken with the roles swapped (see `map_arg_to_zp_arg`): the
forward source zero point applies to diff-destination values, the forward
destination zero point to the stored diff-source.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import numpy as np

from ...domain._arg_kind import ArgKind, map_arg_to_zp_arg
from ...domain._config import BwdDataStrategy, RefConfig
from ...domain._problem import ConvProblem
from ..memory._args import ArgumentMap
from ..parallel import parallel_nd
from ..pipeline import check_post_ops, check_quantization, maybe_zero_point
from ._conv_common import check_nelems, store_output


def precompute_ok(
    i: int, O: int, K: int, S: int, P: int, D: int
) -> Tuple[List[int], List[int]]:
    """
    Valid `(kernel, output)` index pairs contributing to input index `i`.

    Returns
    -------
    tuple[list[int], list[int]]
        Parallel lists `(ks, os)` in ascending kernel order.
    """
    ks: List[int] = []
    os_: List[int] = []
    for k in range(K):
        o = i - k * D + P
        if o < 0 or o % S:
            continue
        o //= S
        if o >= O:
            continue
        ks.append(k)
        os_.append(o)
    return ks, os_


def use_precomputed_table(prb: ConvProblem, config: RefConfig) -> bool:
    """Whether backward-data runs the precomputed-table kernel."""
    if config.bwd_d_strategy is BwdDataStrategy.TABLE:
        return True
    if config.bwd_d_strategy is BwdDataStrategy.DIRECT:
        return False
    return max(prb.kd, prb.kh, prb.kw) <= config.precompute_size


def compute_ref_direct_bwd_d(
    prb: ConvProblem, args: ArgumentMap, config: Optional[RefConfig] = None
) -> None:
    """
    Compute the backward-data reference into `args[DIFF_SRC]`.

    Parameters
    ----------
    prb : ConvProblem
        Problem descriptor.
    args : ArgumentMap
        Must provide DIFF_DST, WEIGHTS and DIFF_SRC; BIAS when the problem
        carries bias (used when evaluating a deconvolution forward pass).
    config : Optional[RefConfig]
        Worker count and inner-kernel strategy.
    """
    config = config or RefConfig()
    diff_src_m = args.find(ArgKind.DIFF_SRC)
    wei_m = args.find(ArgKind.WEIGHTS)
    bia_m = args.find(ArgKind.BIAS) if prb.has_bias else None
    diff_dst_m = args.find(ArgKind.DIFF_DST)

    check_nelems("diff_src", diff_src_m, prb.src_dims)
    check_nelems("weights", wei_m, prb.wei_dims)
    check_nelems("bias", bia_m, (prb.ic,))
    check_nelems("diff_dst", diff_dst_m, prb.dst_dims)
    check_quantization(
        prb.attr,
        diff_src_m.dims,
        {
            map_arg_to_zp_arg(ArgKind.DIFF_DST): prb.oc,
            map_arg_to_zp_arg(ArgKind.DIFF_SRC): prb.ic,
        },
    )
    check_post_ops(prb.attr.post_ops, diff_src_m, args)

    attr = prb.attr
    OC = prb.oc
    ICG, OCG = prb.icg, prb.ocg
    OD, OH, OW = prb.od, prb.oh, prb.ow
    SD, SH, SW = prb.sd, prb.sh, prb.sw
    PD, PH, PW = prb.pd, prb.ph, prb.pw
    KD, KH, KW = prb.kd, prb.kh, prb.kw
    DD, DH, DW = prb.dd + 1, prb.dh + 1, prb.dw + 1

    diff_dst = diff_dst_m.flat
    wei = wei_m.flat
    bia = None if bia_m is None else bia_m.flat
    po_masks = attr.post_ops.get_po_masks()
    zp_diff_dst = map_arg_to_zp_arg(ArgKind.DIFF_DST)
    zp_diff_src = map_arg_to_zp_arg(ArgKind.DIFF_SRC)

    def accumulate(
        g: int,
        mb: int,
        ic: int,
        kd: int,
        kh: int,
        kw: int,
        od: int,
        oh: int,
        ow: int,
        ds: np.float32,
    ) -> np.float32:
        diff_dst_base = (mb * OC + g * OCG) * OD * OH * OW
        wei_base = ((g * OCG) * ICG + ic) * KD * KH * KW
        for oc in range(OCG):
            diff_dst_off = diff_dst_base + ((oc * OD + od) * OH + oh) * OW + ow
            wei_off = wei_base + ((oc * ICG * KD + kd) * KH + kh) * KW + kw
            v = maybe_zero_point(
                attr, diff_dst[diff_dst_off], zp_diff_dst, g * OCG + oc
            )
            ds += v * wei[wei_off]
        return ds

    def ker_fast(g: int, mb: int, ic: int, id_: int, ih: int, iw: int) -> np.float32:
        kd, od = precompute_ok(id_, OD, KD, SD, PD, DD)
        kh, oh = precompute_ok(ih, OH, KH, SH, PH, DH)
        kw, ow = precompute_ok(iw, OW, KW, SW, PW, DW)
        ds = np.float32(0.0)
        for d in range(len(kd)):
            for h in range(len(kh)):
                for w in range(len(kw)):
                    ds = accumulate(
                        g, mb, ic, kd[d], kh[h], kw[w], od[d], oh[h], ow[w], ds
                    )
        return ds

    def ker(g: int, mb: int, ic: int, id_: int, ih: int, iw: int) -> np.float32:
        ds = np.float32(0.0)
        for kd in range(KD):
            od = id_ - kd * DD + PD
            if od < 0 or od % SD or od >= OD * SD:
                continue
            od //= SD
            for kh in range(KH):
                oh = ih - kh * DH + PH
                if oh < 0 or oh % SH or oh >= OH * SH:
                    continue
                oh //= SH
                for kw in range(KW):
                    ow = iw - kw * DW + PW
                    if ow < 0 or ow % SW or ow >= OW * SW:
                        continue
                    ow //= SW
                    ds = accumulate(g, mb, ic, kd, kh, kw, od, oh, ow, ds)
        return ds

    kernel: Callable[..., np.float32] = (
        ker_fast if use_precomputed_table(prb, config) else ker
    )

    def body(g: int, mb: int, ic: int, id_: int, ih: int, iw: int) -> None:
        src_off = prb.src_off(mb, g, ic, id_, ih, iw)
        conv_res = kernel(g, mb, ic, id_, ih, iw)
        if bia is not None:
            conv_res += bia[g * ICG + ic]
        store_output(
            attr,
            args,
            diff_src_m,
            po_masks,
            src_off,
            g * ICG + ic,
            conv_res,
            zp_diff_src,
        )

    parallel_nd(
        (prb.g, prb.mb, ICG, prb.id, prb.ih, prb.iw),
        body,
        num_workers=config.num_workers,
    )
