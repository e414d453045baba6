"""
Deconvolution (transposed convolution) reference built on the direct
convolution evaluators.

A deconvolution with weights `(G, OCG, ICG, K...)` is the adjoint of the
convolution obtained by exchanging input and output (`ConvProblem.transposed`)
and transposing the weights per group to `(G, ICG, OCG, K...)`:

- forward        = convolution backward-data of the transposed problem
- backward-data  = convolution forward of the transposed problem
- backward-weights = convolution backward-weights of the transposed problem
  (source and diff-destination exchanged), transposed back; the bias
  gradient is reduced from the deconvolution diff-destination directly.

Weight layout
-------------
Weights follow the same `(G, OCG, ICG, K...)` convention as convolution,
with OC/IC being the deconvolution's own output/input channels.
"""

from __future__ import annotations

from math import prod
from typing import Optional

from ...domain._arg_kind import ArgKind
from ...domain._config import RefConfig
from ...domain._direction import DirectionKind
from ...domain._errors import InvariantViolationError
from ...domain._problem import ConvProblem
from ..memory._args import ArgumentMap
from ..memory._memory import Memory
from .conv_bwd_data_cpu import compute_ref_direct_bwd_d
from .conv_bwd_weights_cpu import compute_ref_bwd_bias, compute_ref_bwd_weights
from .conv_fwd_cpu import compute_ref_direct_fwd
from ._conv_common import check_nelems


def transpose_data_wei(prb: ConvProblem, wei_m: Memory) -> Memory:
    """
    Swap the per-group output and input channel axes of deconvolution weights.

    Returns a new memory with the transposed problem's weight dims.
    """
    check_nelems("weights", wei_m, prb.wei_dims)
    ksz = prod((prb.kd, prb.kh, prb.kw))
    arr = wei_m.flat.reshape(prb.g, prb.ocg, prb.icg, ksz).transpose(0, 2, 1, 3)
    return Memory(prb.transposed().wei_dims, wei_m.dt, arr)


class DefaultDeconvReference:
    """
    Deconvolution reference strategy used when the caller registers none.
    """

    def compute_ref(
        self,
        prb: ConvProblem,
        args: ArgumentMap,
        config: Optional[RefConfig] = None,
    ) -> None:
        if not prb.is_deconv:
            raise InvariantViolationError("deconvolution reference got a convolution")
        prb_tr = prb.transposed()

        if prb.kind is DirectionKind.FORWARD:
            wei_tr = transpose_data_wei(prb, args.find(ArgKind.WEIGHTS))
            conv_args = args.remapped(
                {ArgKind.DIFF_SRC: ArgKind.DST, ArgKind.DIFF_DST: ArgKind.SRC}
            )
            conv_args.set(ArgKind.WEIGHTS, wei_tr)
            compute_ref_direct_bwd_d(prb_tr, conv_args, config)
            return

        if prb.kind is DirectionKind.BACKWARD_DATA:
            wei_tr = transpose_data_wei(prb, args.find(ArgKind.WEIGHTS))
            conv_args = args.remapped(
                {ArgKind.SRC: ArgKind.DIFF_DST, ArgKind.DST: ArgKind.DIFF_SRC}
            )
            conv_args.set(ArgKind.WEIGHTS, wei_tr)
            compute_ref_direct_fwd(prb_tr, conv_args, config)
            return

        if prb.kind is DirectionKind.BACKWARD_WEIGHTS:
            diff_wei_m = args.find(ArgKind.DIFF_WEIGHTS)
            check_nelems("diff_weights", diff_wei_m, prb.wei_dims)
            diff_wei_tr = Memory(prb_tr.wei_dims, diff_wei_m.dt)
            conv_args = args.remapped(
                {ArgKind.SRC: ArgKind.DIFF_DST, ArgKind.DIFF_DST: ArgKind.SRC}
            )
            conv_args.set(ArgKind.DIFF_WEIGHTS, diff_wei_tr)
            compute_ref_bwd_weights(prb_tr, conv_args, config)

            ksz = prod((prb.kd, prb.kh, prb.kw))
            back = diff_wei_tr.flat.reshape(prb.g, prb.icg, prb.ocg, ksz)
            diff_wei_m.flat[:] = back.transpose(0, 2, 1, 3).reshape(-1)
            if prb.has_bias:
                compute_ref_bwd_bias(prb, args, config)
            return

        raise InvariantViolationError(f"unmapped direction kind {prb.kind!r}")
