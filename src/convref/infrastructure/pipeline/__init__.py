"""
Quantization, post-op and saturation pipeline shared by all evaluators.
"""

from ._eltwise import compute_binary, compute_eltwise_fwd
from ._post_ops import check_post_ops, maybe_post_ops, prepare_po_vals
from ._quantization import (
    check_quantization,
    masked_count,
    maybe_oscale,
    maybe_zero_point,
)
from ._saturation import (
    maybe_saturate,
    round_array,
    round_to_nearest_representable,
    saturate_and_round,
)

__all__ = [
    "compute_binary",
    "compute_eltwise_fwd",
    "check_post_ops",
    "maybe_post_ops",
    "prepare_po_vals",
    "check_quantization",
    "masked_count",
    "maybe_oscale",
    "maybe_zero_point",
    "maybe_saturate",
    "round_array",
    "round_to_nearest_representable",
    "saturate_and_round",
]
