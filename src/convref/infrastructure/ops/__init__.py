"""
Reference evaluators: direct convolution (forward, backward-data,
backward-weights/bias), deconvolution on top of them, and reorder.
"""

from .conv_bwd_data_cpu import (
    compute_ref_direct_bwd_d,
    precompute_ok,
    use_precomputed_table,
)
from .conv_bwd_weights_cpu import (
    compute_bounds,
    compute_ref_bwd_bias,
    compute_ref_bwd_weights,
    compute_ref_direct_bwd_w,
)
from .conv_fwd_cpu import compute_ref_direct_fwd
from .deconv_cpu import DefaultDeconvReference, transpose_data_wei
from .reorder_cpu import compute_ref_reorder

__all__ = [
    "compute_ref_direct_bwd_d",
    "precompute_ok",
    "use_precomputed_table",
    "compute_bounds",
    "compute_ref_bwd_bias",
    "compute_ref_bwd_weights",
    "compute_ref_direct_bwd_w",
    "compute_ref_direct_fwd",
    "DefaultDeconvReference",
    "transpose_data_wei",
    "compute_ref_reorder",
]
