"""
Numeric data types understood by the reference engine.

The reference keeps every tensor in float32 storage, but each argument is
tagged with the data type the kernel under test actually uses. The tag
decides how intermediate values are clamped and rounded before they are
written back, so that reference and optimized results agree bit for bit.
"""

from __future__ import annotations

from enum import Enum

import numpy as np


INT32_MAX = 2147483647
"""Largest value of the signed 32-bit integer type."""

S32_TO_F32_SAT_CONST = 2147483520.0
"""
Largest float32 value strictly below 2**31.

`float(INT32_MAX)` rounds up to 2**31 in float32, which overflows when cast
back to int32. Values at or above that boundary are replaced by this
constant instead.
"""


class DataType(Enum):
    """
    Enumeration of supported tensor data types.

    Attributes
    ----------
    F32, F16, BF16 : DataType
        Floating point types (IEEE single, IEEE half, bfloat16).
    S32, S8, U8 : DataType
        Integer types.
    """

    F32 = "f32"
    F16 = "f16"
    BF16 = "bf16"
    S32 = "s32"
    S8 = "s8"
    U8 = "u8"

    @property
    def is_integral(self) -> bool:
        return self in (DataType.S32, DataType.S8, DataType.U8)

    @property
    def lowest(self) -> float:
        """Lowest representable value, as a Python float."""
        return _LIMITS[self][0]

    @property
    def max(self) -> float:
        """Largest representable value, as a Python float."""
        return _LIMITS[self][1]

    @property
    def numpy_dtype(self) -> np.dtype:
        """
        NumPy dtype with the same storage width.

        bf16 has no native NumPy dtype; it maps to `uint16` (raw bits).
        """
        return np.dtype(_NUMPY_DTYPES[self])

    @classmethod
    def parse(cls, value: "str | DataType") -> "DataType":
        """
        Normalize a string such as "s8" (or an existing member) into a member.

        Raises
        ------
        ValueError
            If `value` does not name a supported data type.
        """
        if isinstance(value, DataType):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unsupported data type {value!r}. "
                f"Expected one of {[m.value for m in cls]}"
            ) from None


_LIMITS = {
    DataType.F32: (
        float(np.finfo(np.float32).min),
        float(np.finfo(np.float32).max),
    ),
    DataType.F16: (
        float(np.finfo(np.float16).min),
        float(np.finfo(np.float16).max),
    ),
    # bf16 shares the float32 exponent range.
    DataType.BF16: (-3.3895313892515355e38, 3.3895313892515355e38),
    # Limits as seen after conversion to float32, matching the float storage.
    DataType.S32: (float(np.float32(-2147483648)), float(np.float32(INT32_MAX))),
    DataType.S8: (-128.0, 127.0),
    DataType.U8: (0.0, 255.0),
}

_NUMPY_DTYPES = {
    DataType.F32: np.float32,
    DataType.F16: np.float16,
    DataType.BF16: np.uint16,
    DataType.S32: np.int32,
    DataType.S8: np.int8,
    DataType.U8: np.uint8,
}
