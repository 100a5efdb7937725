from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from .fast_ops import FastBackend
from .tensor_data import (
    IndexOutOfRange,
    MalformedInput,
    ShapeMismatch,
    TensorData,
    to_index,
)

if TYPE_CHECKING:
    from typing import Iterable, List, Optional, Tuple, Type, Union

    import numpy.typing as npt

    from .fast_ops import TensorBackend
    from .tensor_data import Shape, Storage, Strides, UserIndex, UserShape, UserStrides

    TensorLike = Union[float, int, "Tensor"]


class Tensor:
    """A dense, fixed-shape block of float64 values.

    Operations never modify their operands; they return new tensors. The
    only mutators are `set` / `__setitem__` and the slice setters of the
    concrete 2D and 3D classes.
    """

    dims: int = 0
    backend: TensorBackend
    _tensor: TensorData

    def __init__(self, v: TensorData, backend: Optional[TensorBackend] = None):
        """Wraps tensor data, checking it has the right number of dimensions."""
        assert isinstance(v, TensorData)
        if v.dims != self.dims:
            raise MalformedInput(
                f"{type(self).__name__} needs {self.dims} dimensions, got shape {v.shape}."
            )
        self._tensor = v
        self.backend = backend if backend is not None else FastBackend
        self.f = self.backend

    @classmethod
    def make(
        cls,
        storage: Union[Storage, List[float]],
        shape: UserShape,
        strides: Optional[UserStrides] = None,
        backend: Optional[TensorBackend] = None,
    ) -> Tensor:
        """Creates a new tensor from the provided storage, shape, and optional strides."""
        return tensor_class(len(shape))(
            TensorData(storage, tuple(shape), strides), backend=backend
        )

    # Shape

    @property
    def shape(self) -> UserShape:
        """Returns the shape of the tensor."""
        return self._tensor.shape

    @property
    def size(self) -> int:
        """Returns the number of entries of the tensor."""
        return self._tensor.size

    def tuple(self) -> Tuple[Storage, Shape, Strides]:
        """Returns the tensor's storage, shape, and strides as a tuple."""
        return self._tensor.tuple()

    def zeros(self, shape: Optional[UserShape] = None) -> Tensor:
        """Creates a zero tensor, shaped like this one unless `shape` is given."""
        if shape is None:
            shape = self.shape
        size = 1
        for s in shape:
            size *= s
        return Tensor.make(np.zeros(size), tuple(shape), backend=self.backend)

    def copy(self) -> Tensor:
        """Returns a deep copy of the tensor."""
        return self.f.contiguous(self)

    def _new(self, tensor_data: TensorData) -> Tensor:
        return tensor_class(tensor_data.dims)(tensor_data, backend=self.backend)

    # Entry access

    def get(self, *index: int) -> float:
        """Gets the value at `index`, e.g. ``t.get(row, col)``."""
        return self._tensor.get(index)

    def set(self, *index_and_value: float) -> None:
        """Sets a value, e.g. ``t.set(row, col, value)``."""
        *index, value = index_and_value
        self._tensor.set(tuple(int(i) for i in index), float(value))

    def __getitem__(self, key: Union[int, UserIndex]) -> float:
        key2 = (key,) if isinstance(key, int) else key
        return self._tensor.get(key2)

    def __setitem__(self, key: Union[int, UserIndex], val: float) -> None:
        key2 = (key,) if isinstance(key, int) else key
        self._tensor.set(key2, float(val))

    def indices(self) -> Iterable[UserIndex]:
        """Yields every index in row-major order."""
        return self._tensor.indices()

    # Elementwise and linear algebra

    def add(self, b: Tensor) -> Tensor:
        """Entrywise sum. Shapes must be equal."""
        return self.f.add_zip(self, b)

    def subtract(self, b: Tensor) -> Tensor:
        """Entrywise difference. Shapes must be equal."""
        return self.f.sub_zip(self, b)

    def hadamard_multiply(self, b: Tensor) -> Tensor:
        """Entrywise product. Shapes must be equal."""
        return self.f.mul_zip(self, b)

    def matmul(self, b: Tensor) -> Tensor:
        """Matrix product; 3D tensors are multiplied layer by layer."""
        return self.f.matrix_multiply(self, b)

    def multiply(self, b: TensorLike) -> Tensor:
        """Scales by a number, or takes the matrix product with a tensor."""
        if isinstance(b, Tensor):
            return self.matmul(b)
        return self.f.mul_scalar(self, b)

    def divide(self, factor: float) -> Tensor:
        """Divides every entry by `factor`."""
        return self.f.div_scalar(self, factor)

    def pow(self, exponent: float) -> Tensor:
        """Raises every entry to `exponent`."""
        return self.f.pow_scalar(self, exponent)

    def abs(self) -> Tensor:
        """Absolute value of every entry."""
        return self.f.abs_map(self)

    def sum_entries(self) -> float:
        """Sums every entry into a scalar."""
        return self.f.add_reduce(self)

    def index_of_max(self) -> Tuple[int, ...]:
        """Coordinates of the first entry holding the maximum value.

        Entries are scanned by row, then column, then layer; ties resolve
        to the first one seen.
        """
        if self.size == 0:
            raise IndexOutOfRange((0,) * self.dims, self.shape)
        ordinal = self.f.argmax(self)
        out_index = np.zeros(self.dims, dtype=np.int32)
        to_index(ordinal, np.array(self.shape), out_index)
        return tuple(int(i) for i in out_index)

    def __add__(self, b: Tensor) -> Tensor:
        return self.add(b)

    def __sub__(self, b: Tensor) -> Tensor:
        return self.subtract(b)

    def __mul__(self, b: TensorLike) -> Tensor:
        """`*` is the Hadamard product for tensors and scaling for numbers."""
        if isinstance(b, Tensor):
            return self.hadamard_multiply(b)
        return self.f.mul_scalar(self, b)

    def __rmul__(self, b: float) -> Tensor:
        return self.f.mul_scalar(self, b)

    def __truediv__(self, b: float) -> Tensor:
        return self.divide(b)

    def __matmul__(self, b: Tensor) -> Tensor:
        return self.matmul(b)

    def __pow__(self, exponent: float) -> Tensor:
        return self.pow(exponent)

    def __neg__(self) -> Tensor:
        return self.f.neg_map(self)

    def __abs__(self) -> Tensor:
        return self.abs()

    # Comparison and conversion

    def __eq__(self, other: object) -> bool:
        """Exact equality of shape and every entry."""
        if not isinstance(other, Tensor) or tuple(self.shape) != tuple(other.shape):
            return False
        return bool(np.array_equal(self.to_numpy(), other.to_numpy()))

    __hash__ = None  # type: ignore[assignment]

    def is_close(self, other: Tensor, tol: float = 1e-9) -> bool:
        """True when shapes match and every entry is within `tol`."""
        if tuple(self.shape) != tuple(other.shape):
            return False
        return bool(np.allclose(self.to_numpy(), other.to_numpy(), rtol=0.0, atol=tol))

    def to_numpy(self) -> npt.NDArray[np.float64]:
        """Returns a copy of the entries as a numpy array of the same shape."""
        return self.copy()._tensor._storage.reshape(self.shape).copy()

    def __repr__(self) -> str:
        return f"{type(self).__name__}{self._tensor.to_string()}"

    def _check_index(self, axis: int, value: int) -> None:
        if value < 0 or value >= self.shape[axis]:
            index = [0] * self.dims
            index[axis] = value
            raise IndexOutOfRange(index, self.shape)


class Tensor2D(Tensor):
    """A rows x cols tensor."""

    dims = 2

    @property
    def rows(self) -> int:
        return self.shape[0]

    @property
    def cols(self) -> int:
        return self.shape[1]

    def transpose(self) -> Tensor2D:
        """Swaps the row and column axes."""
        return self.f.contiguous(self._new(self._tensor.permute(1, 0)))

    @property
    def T(self) -> Tensor2D:
        """Transpose property."""
        return self.transpose()

    def get_rows(self) -> List[Tensor2D]:
        """Splits the tensor into single-row tensors."""
        return [self.f.window(self, (r, 0), (1, self.cols)) for r in range(self.rows)]

    def get_columns(self) -> List[Tensor2D]:
        """Splits the tensor into single-column tensors."""
        return [self.f.window(self, (0, c), (self.rows, 1)) for c in range(self.cols)]

    def set_row(self, row: int, values: Tensor2D) -> None:
        """Overwrites `row` with the first row of a 1 x cols tensor."""
        if values.cols != self.cols or values.rows < 1:
            raise ShapeMismatch(self.shape, values.shape, "setting a row")
        self._check_index(0, row)
        for col in range(self.cols):
            self._tensor.set((row, col), values.get(0, col))

    def set_column(self, column: int, values: Tensor2D) -> None:
        """Overwrites `column` with the first column of a rows x 1 tensor."""
        if values.rows != self.rows or values.cols < 1:
            raise ShapeMismatch(self.shape, values.shape, "setting a column")
        self._check_index(1, column)
        for row in range(self.rows):
            self._tensor.set((row, column), values.get(row, 0))

    def sub_tensor(
        self, row_start: int, col_start: int, row_end: int, col_end: int
    ) -> Tensor2D:
        """The block ``[row_start, row_end) x [col_start, col_end)``.

        Unlike the 3D variant the bounds must lie inside the tensor.
        """
        if not (0 <= row_start <= row_end <= self.rows):
            raise IndexOutOfRange((row_start, col_start), self.shape)
        if not (0 <= col_start <= col_end <= self.cols):
            raise IndexOutOfRange((row_start, col_start), self.shape)
        return self.f.window(
            self, (row_start, col_start), (row_end - row_start, col_end - col_start)
        )

    def to_3d(self) -> Tensor3D:
        """The same values as a rows x cols x 1 tensor."""
        return Tensor3D(
            TensorData(self.copy()._tensor._storage, (self.rows, self.cols, 1)),
            backend=self.backend,
        )


class Tensor3D(Tensor):
    """A rows x cols x layers tensor."""

    dims = 3

    @property
    def rows(self) -> int:
        return self.shape[0]

    @property
    def cols(self) -> int:
        return self.shape[1]

    @property
    def layers(self) -> int:
        return self.shape[2]

    def get_rows(self) -> List[Tensor3D]:
        """Splits the tensor into 1 x cols x layers slices."""
        return [
            self.f.window(self, (r, 0, 0), (1, self.cols, self.layers))
            for r in range(self.rows)
        ]

    def get_columns(self) -> List[Tensor3D]:
        """Splits the tensor into rows x 1 x layers slices."""
        return [
            self.f.window(self, (0, c, 0), (self.rows, 1, self.layers))
            for c in range(self.cols)
        ]

    def get_layers(self) -> List[Tensor3D]:
        """Splits the tensor into rows x cols x 1 slices."""
        return [
            self.f.window(self, (0, 0, lay), (self.rows, self.cols, 1))
            for lay in range(self.layers)
        ]

    def set_row(self, row: int, values: Tensor3D) -> None:
        """Overwrites `row` from a 1 x cols x layers tensor."""
        if values.cols != self.cols or values.layers != self.layers or values.rows < 1:
            raise ShapeMismatch(self.shape, values.shape, "setting a row")
        self._check_index(0, row)
        for col in range(self.cols):
            for lay in range(self.layers):
                self._tensor.set((row, col, lay), values.get(0, col, lay))

    def set_column(self, column: int, values: Tensor3D) -> None:
        """Overwrites `column` from a rows x 1 x layers tensor."""
        if values.rows != self.rows or values.layers != self.layers or values.cols < 1:
            raise ShapeMismatch(self.shape, values.shape, "setting a column")
        self._check_index(1, column)
        for row in range(self.rows):
            for lay in range(self.layers):
                self._tensor.set((row, column, lay), values.get(row, 0, lay))

    def set_layer(self, layer: int, values: Tensor3D) -> None:
        """Overwrites `layer` from a rows x cols x 1 tensor."""
        if values.rows != self.rows or values.cols != self.cols or values.layers < 1:
            raise ShapeMismatch(self.shape, values.shape, "setting a layer")
        self._check_index(2, layer)
        for row in range(self.rows):
            for col in range(self.cols):
                self._tensor.set((row, col, layer), values.get(row, col, 0))

    def sub_tensor(
        self,
        row_start: int,
        col_start: int,
        layer_start: int,
        row_end: int,
        col_end: int,
        layer_end: int,
    ) -> Tensor3D:
        """The block between the start (inclusive) and end (exclusive) corners.

        Coordinates outside the tensor read as 0.0, which is how convolution
        windows get their zero padding.
        """
        return self.f.window(
            self,
            (row_start, col_start, layer_start),
            (row_end - row_start, col_end - col_start, layer_end - layer_start),
        )

    def to_2d(self) -> Tensor2D:
        """Drops the layer axis of a single-layer tensor."""
        if self.layers != 1:
            raise ShapeMismatch(self.shape, (self.rows, self.cols), "conversion to 2D")
        return Tensor2D(
            TensorData(self.copy()._tensor._storage, (self.rows, self.cols)),
            backend=self.backend,
        )

    def flatten(self) -> Tensor2D:
        """A single column holding every entry, ordered layer, then row, then column."""
        # layer-major order is the storage order of the (layers, rows, cols) permutation
        layer_major = self.f.contiguous(self._new(self._tensor.permute(2, 0, 1)))
        return Tensor2D(
            TensorData(layer_major._tensor._storage, (self.size, 1)),
            backend=self.backend,
        )


def tensor_class(dims: int) -> Type[Tensor]:
    """The concrete tensor class for a number of dimensions."""
    if dims == 2:
        return Tensor2D
    if dims == 3:
        return Tensor3D
    raise MalformedInput(f"Only 2D and 3D tensors are supported, got {dims} dimensions.")
