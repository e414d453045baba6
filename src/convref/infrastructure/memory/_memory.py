"""
Reference memory: dense float32 storage tagged with a data type.

`Memory` is the buffer type held by the `ArgumentMap`. It deliberately stays
simple: a C-contiguous float32 ndarray with logical dims equal to its
physical shape, plus the `DataType` the kernel under test uses for the same
argument. Values written through `copy_from_numpy` are rounded to that data
type so the reference never carries precision the real tensor cannot hold.

Offsets
-------
All element offsets used by the evaluators are flat, row-major offsets into
the logical dims. `get_scale_idx` maps such an offset to the index of a
mask-selected parameter entry.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ...domain._data_type import DataType
from ...domain._errors import InvariantViolationError
from ..pipeline._saturation import round_array


class Memory:
    """
    Dense float32 buffer with logical dims and a data type tag.

    Parameters
    ----------
    dims : Sequence[int]
        Logical dims of the tensor (row-major).
    dt : DataType or str
        Data type of the tensor in the kernel under test.
    data : Optional[np.ndarray]
        Initial contents; must have `prod(dims)` elements. Zero-filled when
        omitted.

    Notes
    -----
    The buffer is allocated once and never resized. Evaluators write through
    `flat`, a 1-D view sharing storage with the array.
    """

    __slots__ = ("_data", "_flat", "_dt")

    def __init__(
        self,
        dims: Sequence[int],
        dt: Union[DataType, str] = DataType.F32,
        data: Optional[np.ndarray] = None,
    ) -> None:
        dims = tuple(int(d) for d in dims)
        if any(d < 0 for d in dims):
            raise InvariantViolationError(f"negative memory dims {dims}")
        self._dt = DataType.parse(dt)
        self._data = np.zeros(dims, dtype=np.float32)
        self._flat = self._data.reshape(-1)
        if data is not None:
            self.copy_from_numpy(data)

    @classmethod
    def from_numpy(
        cls, arr: np.ndarray, dt: Union[DataType, str] = DataType.F32
    ) -> "Memory":
        """Allocate a memory shaped like `arr` and fill it (rounded to `dt`)."""
        arr = np.asarray(arr)
        return cls(arr.shape, dt, arr)

    @property
    def dims(self) -> Tuple[int, ...]:
        return self._data.shape

    @property
    def ndims(self) -> int:
        return self._data.ndim

    @property
    def nelems(self) -> int:
        return self._data.size

    @property
    def dt(self) -> DataType:
        return self._dt

    @property
    def flat(self) -> np.ndarray:
        """1-D float32 view of the storage."""
        return self._flat

    def get_elem(self, idx: int) -> np.float32:
        return self._flat[idx]

    def set_elem(self, idx: int, value: float) -> None:
        self._flat[idx] = value

    def copy_from_numpy(self, arr: np.ndarray) -> None:
        """
        Overwrite the contents with `arr`, rounded to this memory's data type.

        Raises
        ------
        InvariantViolationError
            If `arr` does not hold exactly `nelems` elements.
        """
        arr = np.asarray(arr)
        if arr.size != self.nelems:
            raise InvariantViolationError(
                f"cannot copy {arr.size} elements into memory of dims {self.dims}"
            )
        self._flat[:] = round_array(self._dt, arr.reshape(-1))

    def to_numpy(self, native: bool = False) -> np.ndarray:
        """
        Return a copy of the contents.

        Parameters
        ----------
        native : bool
            When True, cast to the NumPy dtype of the tagged data type
            (bf16 stays float32 since NumPy has no bf16).
        """
        out = self._data.copy()
        if native and self._dt is not DataType.BF16:
            out = out.astype(self._dt.numpy_dtype)
        return out

    def get_scale_idx(self, offset: int, mask: int) -> int:
        """
        Index of the parameter entry selected by `mask` for element `offset`.

        The flat offset is decomposed into per-axis coordinates; coordinates
        of masked axes are recombined row-major into the result. Mask 0
        always yields 0, and mask `1 << 1` yields the channel coordinate.
        """
        if mask == 0:
            return 0
        dims = self._data.shape
        scale_idx = 0
        stride = 1
        for i in range(len(dims) - 1, -1, -1):
            d = offset % dims[i]
            offset //= dims[i]
            if mask & (1 << i):
                scale_idx += d * stride
                stride *= dims[i]
        return scale_idx

    def __repr__(self) -> str:
        return f"Memory(dims={self.dims}, dt={self._dt.value})"
