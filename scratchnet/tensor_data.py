from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
from numpy import array, float64
from typing_extensions import TypeAlias


MAX_DIMS = 3


class TensorError(RuntimeError):
    """Base class for every error raised by the tensor engine."""

    pass


class ShapeMismatch(TensorError):
    """Raised when operands are incompatible for the requested operation."""

    def __init__(self, a_shape: UserShape, b_shape: UserShape, operation: str):
        self.a_shape = tuple(a_shape)
        self.b_shape = tuple(b_shape)
        self.operation = operation
        super().__init__(
            f"Tensors of dimension {format_shape(self.a_shape)} and "
            f"{format_shape(self.b_shape)} do not have compatible dimensions "
            f"for {operation}."
        )


class IndexOutOfRange(TensorError):
    """Raised when a get/set addresses a coordinate outside the tensor."""

    def __init__(self, index: UserIndex, shape: UserShape):
        self.index = tuple(index)
        self.shape = tuple(shape)
        bounds = ", ".join(f"0 <= i{d} < {s}" for d, s in enumerate(self.shape))
        super().__init__(
            f"Invalid tensor entry index {list(self.index)}. "
            f"Valid indices for shape {format_shape(self.shape)} are: [{bounds}]."
        )


class MalformedInput(TensorError):
    """Raised when construction parameters are inconsistent."""

    pass


Storage: TypeAlias = npt.NDArray[np.float64]
OutIndex: TypeAlias = npt.NDArray[np.int32]
Index: TypeAlias = npt.NDArray[np.int32]
Shape: TypeAlias = npt.NDArray[np.int32]
Strides: TypeAlias = npt.NDArray[np.int32]

UserIndex: TypeAlias = Sequence[int]
UserShape: TypeAlias = Sequence[int]
UserStrides: TypeAlias = Sequence[int]


def format_shape(shape: UserShape) -> str:
    """Render a shape the way error messages show it, e.g. ``3x4x2``."""
    return "x".join(str(s) for s in shape)


def index_to_position(index: Index, strides: Strides) -> int:
    """Convert a multi-dimensional index to a single position based on strides."""
    pos = 0
    for a, b in zip(index, strides):
        pos += a * b
    return pos


def to_index(ordinal: int, shape: Shape, out_index: OutIndex) -> None:
    """Convert an ordinal value to a multi-dimensional index."""
    cur_ord = ordinal + 0
    for i in range(len(shape) - 1, -1, -1):
        sh = shape[i]
        out_index[i] = int(cur_ord % sh)
        cur_ord = cur_ord // sh


def strides_from_shape(shape: UserShape) -> UserStrides:
    """Return the row-major strides for a given shape."""
    layout = [1]
    offset = 1
    for s in reversed(shape):
        layout.append(s * offset)
        offset = s * offset
    return tuple(reversed(layout[:-1]))


class TensorData:
    _storage: Storage
    _strides: Strides
    _shape: Shape
    strides: UserStrides
    shape: UserShape
    dims: int

    def __init__(
        self,
        storage: Union[Sequence[float], Storage],
        shape: UserShape,
        strides: Optional[UserStrides] = None,
    ):
        """Initialize tensor data with storage, shape, and optional strides."""
        if isinstance(storage, np.ndarray):
            self._storage = storage.astype(float64, copy=False)
        else:
            self._storage = array(storage, dtype=float64)

        if strides is None:
            strides = strides_from_shape(shape)

        assert isinstance(strides, tuple), "Strides must be tuple"
        assert isinstance(shape, tuple), "Shape must be tuple"
        if len(strides) != len(shape):
            raise MalformedInput(f"Len of strides {strides} must match {shape}.")
        if len(shape) > MAX_DIMS:
            raise MalformedInput(f"At most {MAX_DIMS} dimensions supported, got {shape}.")
        for s in shape:
            if s < 0:
                raise MalformedInput(f"Negative dimension in shape {shape}.")
        self._strides = array(strides)
        self._shape = array(shape)
        self.strides = strides
        self.dims = len(strides)
        self.shape = shape
        size = 1
        for i in shape:
            size *= i
        self.size = size
        if len(self._storage) != self.size:
            raise MalformedInput(
                f"Storage of length {len(self._storage)} cannot hold shape {shape}."
            )

    def in_bounds(self, index: UserIndex) -> bool:
        """Check whether `index` addresses an entry of this tensor."""
        if len(index) != len(self.shape):
            return False
        for i, ind in enumerate(index):
            if ind < 0 or ind >= self.shape[i]:
                return False
        return True

    def index(self, index: Union[int, UserIndex]) -> int:
        """Convert a multi-dimensional index to a single-dimensional index."""
        if isinstance(index, int):
            aindex: UserIndex = (index,)
        else:
            aindex = tuple(index)

        if not self.in_bounds(aindex):
            raise IndexOutOfRange(aindex, self.shape)

        return index_to_position(array(aindex), self._strides)

    def indices(self) -> Iterable[UserIndex]:
        """Yield all possible indices for the tensor in row-major order."""
        lshape: Shape = array(self.shape)
        out_index: Index = array(self.shape)
        for i in range(self.size):
            to_index(i, lshape, out_index)
            yield tuple(int(x) for x in out_index)

    def get(self, key: UserIndex) -> float:
        """Get the value at a specific index."""
        x: float = float(self._storage[self.index(key)])
        return x

    def set(self, key: UserIndex, val: float) -> None:
        """Set a value at a specific index."""
        self._storage[self.index(key)] = val

    def tuple(self) -> Tuple[Storage, Shape, Strides]:
        """Return the core tensor data as a tuple."""
        return (self._storage, self._shape, self._strides)

    def permute(self, *order: int) -> TensorData:
        """Permute the tensor dimensions without copying storage."""
        assert list(sorted(order)) == list(
            range(len(self.shape))
        ), f"Must give a position to each dimension. Shape: {self.shape} Order: {order}"

        shape = tuple([self.shape[i] for i in order])
        strides = tuple([self.strides[i] for i in order])
        return TensorData(self._storage, shape, strides)

    def to_string(self) -> str:
        """Return a string representation of the tensor data."""
        if self.size == 0:
            return f"[] ({format_shape(self.shape)})"
        s = ""
        for index in self.indices():
            m = ""
            for i in range(len(index) - 1, -1, -1):
                if index[i] == 0:
                    m = "\n%s[" % ("\t" * i) + m
                else:
                    break
            s += m
            v = self.get(index)
            s += f"{v:3.2f}"
            m = ""
            for i in range(len(index) - 1, -1, -1):
                if index[i] == self.shape[i] - 1:
                    m += "]"
                else:
                    break
            if m:
                s += m
            else:
                s += " "
        return s
