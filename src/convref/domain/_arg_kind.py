"""
Logical argument roles of the reference computation.
"""

from __future__ import annotations

from enum import IntEnum

from ._errors import InvariantViolationError


class ArgKind(IntEnum):
    """
    Fixed vocabulary of argument roles.

    Values leave room above `POST_OP_SRC_BASE` for one binary-operand role per
    post-op entry (see `post_op_src`).
    """

    SRC = 1
    WEIGHTS = 2
    BIAS = 3
    DST = 4
    DIFF_SRC = 5
    DIFF_WEIGHTS = 6
    DIFF_BIAS = 7
    DIFF_DST = 8
    S8_COMPENSATION = 9
    ZP_COMPENSATION = 10
    FROM = 11
    TO = 12


POST_OP_SRC_BASE = 4096
"""First integer key used for post-op binary operands."""


def post_op_src(index: int) -> int:
    """Key of the binary operand of post-op entry `index`."""
    if index < 0:
        raise InvariantViolationError(f"negative post-op index {index}")
    return POST_OP_SRC_BASE + index


_FWD_TO_BWD_ZP = {
    ArgKind.SRC: ArgKind.DIFF_DST,
    ArgKind.DST: ArgKind.DIFF_SRC,
}
_BWD_TO_FWD_ZP = {v: k for k, v in _FWD_TO_BWD_ZP.items()}


def map_arg_to_zp_arg(kind: ArgKind) -> ArgKind:
    """
    Map an argument role to the role whose zero point it uses.

    From the backward-data point of view the forward source zero point
    belongs to diff-destination, and the forward destination zero point
    belongs to diff-source. The mapping is an involution: applying it twice
    returns the original role.

    Raises
    ------
    InvariantViolationError
        If `kind` has no zero-point counterpart.
    """
    kind = ArgKind(kind)
    if kind in _BWD_TO_FWD_ZP:
        return _BWD_TO_FWD_ZP[kind]
    if kind in _FWD_TO_BWD_ZP:
        return _FWD_TO_BWD_ZP[kind]
    raise InvariantViolationError(f"no zero-point role mapping for {kind.name}")
