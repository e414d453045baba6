"""
Propagation directions and algorithm selectors.

Directions are composed from bit flags (`DirFlag`) the same way the kernels
under test describe them. The problem descriptor resolves a composed value
once into a `DirectionKind` plus a bias capability flag, so evaluators never
re-test bits per element.
"""

from __future__ import annotations

from enum import Enum, IntFlag

from ._errors import InvariantViolationError


class DirFlag(IntFlag):
    """Elementary direction bits."""

    FWD = 1
    BWD = 2
    DAT = 4
    WEI = 8
    BIA = 16
    INF = 32


class Direction(IntFlag):
    """
    Named compositions of `DirFlag` bits.

    Attributes
    ----------
    FWD_D : Direction
        Forward training, no bias.
    FWD_B : Direction
        Forward training with bias.
    FWD_I : Direction
        Forward inference with bias.
    BWD_D : Direction
        Backward with respect to data.
    BWD_W : Direction
        Backward with respect to weights.
    BWD_WB : Direction
        Backward with respect to weights and bias.
    """

    FWD_D = DirFlag.FWD | DirFlag.DAT
    FWD_B = DirFlag.FWD | DirFlag.DAT | DirFlag.BIA
    FWD_I = DirFlag.FWD | DirFlag.BIA | DirFlag.INF
    BWD_D = DirFlag.BWD | DirFlag.DAT
    BWD_W = DirFlag.BWD | DirFlag.WEI
    BWD_WB = DirFlag.BWD | DirFlag.WEI | DirFlag.BIA

    @classmethod
    def parse(cls, value: "str | int | Direction") -> "Direction":
        if isinstance(value, Direction):
            return value
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValueError(f"Unknown direction {value!r}") from None
        return cls(int(value))


class DirectionKind(Enum):
    """Which evaluator a direction maps to."""

    FORWARD = "fwd"
    BACKWARD_DATA = "bwd_d"
    BACKWARD_WEIGHTS = "bwd_w"


class Algorithm(Enum):
    """Convolution algorithm requested by the problem."""

    DIRECT = "direct"
    WINO = "wino"
    AUTO = "auto"


def resolve_direction(direction: int) -> tuple[DirectionKind, bool]:
    """
    Resolve composed direction bits into an evaluator kind and bias flag.

    Parameters
    ----------
    direction : int
        Any combination of `DirFlag` bits.

    Returns
    -------
    tuple[DirectionKind, bool]
        The evaluator kind and whether the bias argument participates.

    Raises
    ------
    InvariantViolationError
        If the bits do not describe a supported direction.
    """
    d = int(direction)
    has_bias = bool(d & DirFlag.BIA)
    if d & DirFlag.FWD:
        return DirectionKind.FORWARD, has_bias
    if d == Direction.BWD_D:
        return DirectionKind.BACKWARD_DATA, False
    if d & DirFlag.BWD and d & DirFlag.WEI:
        return DirectionKind.BACKWARD_WEIGHTS, has_bias
    raise InvariantViolationError(f"unsupported direction bits {d:#x}")
