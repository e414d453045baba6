"""
Pure value types of the reference engine: data types, directions, argument
roles, attributes, the problem descriptor, configuration and errors.
"""

from ._arg_kind import ArgKind, map_arg_to_zp_arg, post_op_src
from ._attributes import (
    MASK_COMMON,
    MASK_PER_CHANNEL,
    Attributes,
    BinaryAlg,
    BinaryPostOp,
    EltwiseAlg,
    EltwisePostOp,
    PostOpKind,
    PostOps,
    Scales,
    SumPostOp,
    ZeroPoint,
    ZeroPoints,
)
from ._config import DEFAULT_PRECOMPUTE_SIZE, BwdDataStrategy, RefConfig
from ._data_type import INT32_MAX, S32_TO_F32_SAT_CONST, DataType
from ._direction import Algorithm, DirFlag, Direction, DirectionKind
from ._errors import (
    DelegatedKernelError,
    InvariantViolationError,
    MissingArgumentError,
    RefComputeError,
)
from ._problem import ConvProblem
from ._reorder_problem import S8S8_COMP_MULTIPLIER, ReorderProblem

__all__ = [
    "ArgKind",
    "map_arg_to_zp_arg",
    "post_op_src",
    "MASK_COMMON",
    "MASK_PER_CHANNEL",
    "Attributes",
    "BinaryAlg",
    "BinaryPostOp",
    "EltwiseAlg",
    "EltwisePostOp",
    "PostOpKind",
    "PostOps",
    "Scales",
    "SumPostOp",
    "ZeroPoint",
    "ZeroPoints",
    "DEFAULT_PRECOMPUTE_SIZE",
    "BwdDataStrategy",
    "RefConfig",
    "INT32_MAX",
    "S32_TO_F32_SAT_CONST",
    "DataType",
    "Algorithm",
    "DirFlag",
    "Direction",
    "DirectionKind",
    "DelegatedKernelError",
    "InvariantViolationError",
    "MissingArgumentError",
    "RefComputeError",
    "ConvProblem",
    "S8S8_COMP_MULTIPLIER",
    "ReorderProblem",
]
