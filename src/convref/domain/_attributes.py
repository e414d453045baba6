"""
Primitive attributes: zero points, output scales and post-ops.

Attributes are plain immutable values. All behavior that consumes them
(zero-point subtraction, scaling, post-op evaluation) lives in
`convref.infrastructure.pipeline`; this module only describes *what* was
configured.

Masks
-----
A mask is a bit set over the logical axes of the tensor a parameter applies
to. Bit `i` set means the parameter varies along axis `i`:

- `0`       : one common value
- `1 << 1`  : one value per channel (axis 1 of an NC... tensor)
- other bits: finer granularities, resolved by `Memory.get_scale_idx`
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

from ._arg_kind import ArgKind
from ._errors import InvariantViolationError


MASK_COMMON = 0
MASK_PER_CHANNEL = 1 << 1


@dataclass(frozen=True)
class ZeroPoint:
    """
    Zero point of one argument.

    Attributes
    ----------
    values : Tuple[int, ...]
        One value for a common zero point, one per channel otherwise.
    mask : int
        `MASK_COMMON` or `MASK_PER_CHANNEL`.
    """

    values: Tuple[int, ...]
    mask: int = MASK_COMMON

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(int(v) for v in self.values))
        if self.mask not in (MASK_COMMON, MASK_PER_CHANNEL):
            raise InvariantViolationError(
                f"zero-point mask must be common or per-channel, got {self.mask}"
            )
        if not self.values:
            raise InvariantViolationError("zero point needs at least one value")

    def value(self, channel: int) -> int:
        if self.mask == MASK_COMMON:
            return self.values[0]
        return self.values[channel]


@dataclass(frozen=True)
class ZeroPoints:
    """Zero points keyed by argument role; absent roles are identity."""

    entries: Mapping[ArgKind, ZeroPoint] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "entries", {ArgKind(k): v for k, v in dict(self.entries).items()}
        )

    def is_def(self, kind: ArgKind) -> bool:
        """True when no zero point is configured for `kind`."""
        return kind not in self.entries

    def get(self, kind: ArgKind) -> Optional[ZeroPoint]:
        return self.entries.get(kind)

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.entries.items())))


@dataclass(frozen=True)
class Scales:
    """
    Output scales.

    Attributes
    ----------
    values : Tuple[float, ...]
        Scale entries; empty means the default (no scaling).
    mask : int
        Destination axes the scale varies along.
    """

    values: Tuple[float, ...] = ()
    mask: int = MASK_COMMON

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(float(v) for v in self.values))
        if self.mask < 0:
            raise InvariantViolationError(f"negative scale mask {self.mask}")

    def is_def(self) -> bool:
        return not self.values


class PostOpKind(Enum):
    SUM = "sum"
    ELTWISE = "eltwise"
    BINARY = "binary"


class EltwiseAlg(Enum):
    RELU = "relu"
    LINEAR = "linear"
    CLIP = "clip"
    TANH = "tanh"
    LOGISTIC = "logistic"
    ABS = "abs"
    SQUARE = "square"
    SQRT = "sqrt"
    EXP = "exp"
    ELU = "elu"
    GELU_TANH = "gelu_tanh"
    SWISH = "swish"


class BinaryAlg(Enum):
    ADD = "add"
    MUL = "mul"
    SUB = "sub"
    DIV = "div"
    MAX = "max"
    MIN = "min"


@dataclass(frozen=True)
class SumPostOp:
    """Accumulate the previous destination value: `v += scale * (dst - zp)`."""

    scale: float = 1.0
    zero_point: int = 0
    kind: PostOpKind = field(default=PostOpKind.SUM, init=False)


@dataclass(frozen=True)
class EltwisePostOp:
    """Element-wise transform: `v = scale * f(v; alpha, beta)`."""

    alg: EltwiseAlg
    alpha: float = 0.0
    beta: float = 0.0
    scale: float = 1.0
    kind: PostOpKind = field(default=PostOpKind.ELTWISE, init=False)


@dataclass(frozen=True)
class BinaryPostOp:
    """
    Binary operation with a second tensor operand.

    The operand lives in the argument map under `post_op_src(index)` and is
    broadcast over the destination according to `mask`.
    """

    alg: BinaryAlg
    mask: int = MASK_COMMON
    kind: PostOpKind = field(default=PostOpKind.BINARY, init=False)


PostOpEntry = Union[SumPostOp, EltwisePostOp, BinaryPostOp]


@dataclass(frozen=True)
class PostOps:
    """Ordered post-op chain."""

    entries: Tuple[PostOpEntry, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", tuple(self.entries))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def find(self, kind: PostOpKind) -> int:
        """Index of the first entry of `kind`, or -1."""
        for i, e in enumerate(self.entries):
            if e.kind is kind:
                return i
        return -1

    def get_po_masks(self) -> Tuple[Optional[int], ...]:
        """Mask of every binary entry, `None` for other kinds."""
        return tuple(
            e.mask if e.kind is PostOpKind.BINARY else None for e in self.entries
        )


@dataclass(frozen=True)
class Attributes:
    """Bundle of zero points, output scales and post-ops."""

    zero_points: ZeroPoints = field(default_factory=ZeroPoints)
    scales: Scales = field(default_factory=Scales)
    post_ops: PostOps = field(default_factory=PostOps)

    @classmethod
    def build(
        cls,
        *,
        zero_points: Optional[Dict[ArgKind, Union[int, ZeroPoint]]] = None,
        scales: Optional[Union[float, Sequence[float], Scales]] = None,
        scale_mask: int = MASK_COMMON,
        post_ops: Sequence[PostOpEntry] = (),
    ) -> "Attributes":
        """
        Convenience constructor accepting plain Python values.

        A bare int zero point becomes a common `ZeroPoint`; a bare float
        scale becomes a one-entry common `Scales`.
        """
        zps: Dict[ArgKind, ZeroPoint] = {}
        for k, v in (zero_points or {}).items():
            zps[ArgKind(k)] = v if isinstance(v, ZeroPoint) else ZeroPoint((v,))

        if scales is None:
            sc = Scales()
        elif isinstance(scales, Scales):
            sc = scales
        elif isinstance(scales, (int, float)):
            sc = Scales((float(scales),), scale_mask)
        else:
            sc = Scales(tuple(scales), scale_mask)

        return cls(ZeroPoints(zps), sc, PostOps(tuple(post_ops)))
