"""
Reorder problem descriptor.

A reorder converts a tensor between representations while applying the same
affine transform the convolution evaluators use:

    dst = alpha * scale * (src - src_zp) + beta * (dst - dst_zp) + dst_zp

It can additionally emit compensation terms (per masked slice, the negated
sum of the converted values over the remaining axes) consumed later by a
low-precision kernel under test.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import cast

from ._attributes import Attributes, PostOpKind, SumPostOp
from ._errors import InvariantViolationError


S8S8_COMP_MULTIPLIER = 128
"""s8s8 compensation = zero-point compensation * 128 (shift of s8 to u8)."""


@dataclass(frozen=True, kw_only=True)
class ReorderProblem:
    """
    Attributes
    ----------
    attr : Attributes
        Output scales (with mask over the source/destination axes) and an
        optional `SumPostOp` whose scale is `beta`.
    src_zp, dst_zp : int
        Common zero points native to the reorder.
    comp_mask : int
        Axes kept by the compensation buffers; all other axes are reduced.
    s8s8_scale_factor : float
        Extra factor applied only when s8s8 compensation is requested.
    """

    attr: Attributes = field(default_factory=Attributes)
    src_zp: int = 0
    dst_zp: int = 0
    comp_mask: int = 0
    s8s8_scale_factor: float = 1.0

    def __post_init__(self) -> None:
        if self.comp_mask < 0:
            raise InvariantViolationError(f"negative compensation mask {self.comp_mask}")
        for e in self.attr.post_ops:
            if e.kind is not PostOpKind.SUM:
                raise InvariantViolationError("reorder supports only sum post-ops")

    @property
    def beta(self) -> float:
        """Scale of the sum post-op, 0 when there is none."""
        idx = self.attr.post_ops.find(PostOpKind.SUM)
        if idx < 0:
            return 0.0
        return cast(SumPostOp, self.attr.post_ops.entries[idx]).scale

    @property
    def has_sum(self) -> bool:
        return self.attr.post_ops.find(PostOpKind.SUM) >= 0
