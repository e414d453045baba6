"""
Saturation and rounding into a destination data type.

The reference computes in float32. Before a value is stored it is clamped
into the destination range and rounded to the nearest value the destination
type can represent, so that the float32 reference value equals what the
kernel under test writes in its native type.

Rounding rules
--------------
- integers: round half to even (`np.rint`)
- f16: IEEE half conversion (round to nearest even)
- bf16: round to nearest even on the float32 bit pattern
- f32: identity
"""

from __future__ import annotations

import numpy as np

from ...domain._data_type import DataType, S32_TO_F32_SAT_CONST


_S32_CAST_THRESHOLD = float(np.float32(2147483647))


def maybe_saturate(dt: DataType, value: float) -> float:
    """
    Clamp `value` into the range of an integral `dt`; identity for floats.
    """
    if not dt.is_integral:
        return value
    lo, hi = dt.lowest, dt.max
    if value < lo:
        return lo
    if value > hi:
        return hi
    return value


def _bf16_round_bits(bits: np.ndarray) -> np.ndarray:
    bits = bits.astype(np.uint64)
    rounded = (bits + 0x7FFF + ((bits >> 16) & 1)) & 0xFFFF0000
    return rounded.astype(np.uint32)


def round_to_nearest_representable(dt: DataType, value: float) -> np.float32:
    """
    Round a scalar to the nearest value representable in `dt`.

    The result is returned as `np.float32`, the storage type of reference
    memory. NaN passes through unchanged.
    """
    if dt is DataType.F32:
        return np.float32(value)
    if dt.is_integral:
        return np.float32(np.rint(np.float32(value)))
    if dt is DataType.F16:
        with np.errstate(over="ignore"):
            return np.float32(np.float16(value))
    f = np.array([value], dtype=np.float32)
    if np.isnan(f[0]):
        return f[0]
    return _bf16_round_bits(f.view(np.uint32)).view(np.float32)[0]


def round_array(dt: DataType, values: np.ndarray) -> np.ndarray:
    """
    Vectorized `round_to_nearest_representable` returning a float32 array.
    """
    f = np.asarray(values, dtype=np.float32)
    if dt is DataType.F32:
        return f.copy()
    if dt.is_integral:
        return np.rint(np.clip(f, dt.lowest, dt.max)).astype(np.float32)
    if dt is DataType.F16:
        with np.errstate(over="ignore"):
            return f.astype(np.float16).astype(np.float32)
    out = _bf16_round_bits(f.view(np.uint32)).view(np.float32)
    return np.where(np.isnan(f), f, out).astype(np.float32)


def saturate_and_round(dt: DataType, value: float) -> np.float32:
    """
    Full store conversion: saturate, apply the signed-32 sentinel, round.

    A value at or above `float32(INT32_MAX)` (which is exactly 2**31) would
    overflow a float-to-int32 cast; it is replaced by `S32_TO_F32_SAT_CONST`
    instead.
    """
    value = maybe_saturate(dt, value)
    if dt is DataType.S32 and value >= _S32_CAST_THRESHOLD:
        value = S32_TO_F32_SAT_CONST
    return round_to_nearest_representable(dt, value)
