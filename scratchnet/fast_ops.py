from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

import numpy as np
from numba import njit as _njit
from numba import prange

from . import operators
from .tensor_data import (
    ShapeMismatch,
    index_to_position,
    to_index,
)

if TYPE_CHECKING:
    from typing import Callable, Sequence, Tuple

    from .tensor import Tensor
    from .tensor_data import Shape, Storage, Strides

# TIP: Use `NUMBA_DISABLE_JIT=1 pytest tests/` to step through these kernels in a debugger.

Fn = TypeVar("Fn")


def njit(fn: Fn, **kwargs: Any) -> Fn:
    """JIT compiles `fn` with numba, always inlining it into its callers.

    Args:
    ----
        fn (Fn): The function to compile.
        **kwargs (Any): Additional numba options such as ``parallel``.

    Returns:
    -------
        Fn: The compiled dispatcher.

    """
    return _njit(inline="always", **kwargs)(fn)  # type: ignore


to_index = njit(to_index)
index_to_position = njit(index_to_position)


class FastOps:
    """Factories turning scalar operators into whole-tensor operations.

    Every binary operation here requires operands of identical shape; there
    is no broadcasting.
    """

    @staticmethod
    def map(fn: Callable[[float], float]) -> Callable[[Tensor], Tensor]:
        """Lift a unary scalar function to an elementwise tensor map."""
        f = tensor_map(njit(fn))

        def ret(a: Tensor) -> Tensor:
            out = a.zeros()
            f(*out.tuple(), *a.tuple())
            return out

        return ret

    @staticmethod
    def zip(
        fn: Callable[[float, float], float], name: str
    ) -> Callable[[Tensor, Tensor], Tensor]:
        """Lift a binary scalar function to an elementwise tensor zip.

        `name` is the operation name reported in a `ShapeMismatch`.
        """
        f = tensor_zip(njit(fn))

        def ret(a: Tensor, b: Tensor) -> Tensor:
            if tuple(a.shape) != tuple(b.shape):
                raise ShapeMismatch(a.shape, b.shape, name)
            out = a.zeros()
            f(*out.tuple(), *a.tuple(), *b.tuple())
            return out

        return ret

    @staticmethod
    def scalar_zip(
        fn: Callable[[float, float], float],
    ) -> Callable[[Tensor, float], Tensor]:
        """Apply ``fn(entry, value)`` to every entry. Never fails on shape."""
        f = tensor_scalar_zip(njit(fn))

        def ret(a: Tensor, value: float) -> Tensor:
            out = a.zeros()
            f(*out.tuple(), *a.tuple(), float(value))
            return out

        return ret

    @staticmethod
    def reduce(
        fn: Callable[[float, float], float], start: float = 0.0
    ) -> Callable[[Tensor], float]:
        """Reduce every entry of a tensor to a single float, in row-major order."""
        f = tensor_reduce(njit(fn))

        def ret(a: Tensor) -> float:
            return float(f(*a.tuple(), float(start)))

        return ret

    @staticmethod
    def matrix_multiply(a: Tensor, b: Tensor) -> Tensor:
        """Layer-batched matrix multiply ::

            for l:
              for i:
                for j:
                  for k:
                    out[i, j, l] += a[i, k, l] * b[k, j, l]

        2D tensors are treated as having a single layer.

        Args:
        ----
            a : left operand, rows x inner [x layers]
            b : right operand, inner x cols [x layers]

        Returns:
        -------
            New tensor of shape rows x cols [x layers]

        """
        if len(a.shape) != len(b.shape) or a.shape[1] != b.shape[0]:
            raise ShapeMismatch(a.shape, b.shape, "multiplication")
        if len(a.shape) == 3 and a.shape[2] != b.shape[2]:
            raise ShapeMismatch(a.shape, b.shape, "multiplication")

        out_shape = (a.shape[0], b.shape[1]) + tuple(a.shape[2:])
        out = a.zeros(out_shape)
        tensor_matrix_multiply(
            *_as_3d(out.tuple()), *_as_3d(a.tuple()), *_as_3d(b.tuple())
        )
        return out

    @staticmethod
    def window(a: Tensor, start: Sequence[int], out_shape: Sequence[int]) -> Tensor:
        """Copy the window of shape `out_shape` whose corner sits at `start`.

        Entries that fall outside `a` read as 0.0.
        """
        out = a.zeros(tuple(out_shape))
        tensor_window(*out.tuple(), *a.tuple(), np.array(start, dtype=np.int64))
        return out

    @staticmethod
    def contiguous(a: Tensor) -> Tensor:
        """Copy `a` into fresh row-major storage, following its strides."""
        out = a.zeros()
        _copy(*out.tuple(), *a.tuple())
        return out

    @staticmethod
    def argmax(a: Tensor) -> int:
        """Ordinal of the first maximal entry in row-major order."""
        return int(tensor_argmax(*a.tuple()))


def _as_3d(t: Tuple[Storage, Shape, Strides]) -> Tuple[Storage, Shape, Strides]:
    """View a 2D (storage, shape, strides) triple as a single-layer 3D one."""
    storage, shape, strides = t
    if len(shape) == 3:
        return storage, shape, strides
    return (
        storage,
        np.array([shape[0], shape[1], 1]),
        np.array([strides[0], strides[1], 1]),
    )


# Implementations


def tensor_map(
    fn: Callable[[float], float],
) -> Callable[[Storage, Shape, Strides, Storage, Shape, Strides], None]:
    """NUMBA low_level tensor_map function.

    Optimizations:

    * Main loop in parallel
    * When `out` and `in` are stride-aligned, avoid indexing

    Args:
    ----
        fn: function mappings floats-to-floats to apply.

    Returns:
    -------
        Tensor map function.

    """

    def _map(
        out: Storage,
        out_shape: Shape,
        out_strides: Strides,
        in_storage: Storage,
        in_shape: Shape,
        in_strides: Strides,
    ) -> None:
        if np.array_equal(out_strides, in_strides) and np.array_equal(
            out_shape, in_shape
        ):
            for i in prange(len(out)):
                out[i] = fn(in_storage[i])
        else:
            for ordinal_pos in prange(len(out)):
                out_index = np.empty_like(out_shape, dtype=np.int32)
                to_index(ordinal_pos, out_shape, out_index)
                x = in_storage[index_to_position(out_index, in_strides)]
                out[index_to_position(out_index, out_strides)] = fn(x)

    return njit(_map, parallel=True)  # type: ignore


def tensor_zip(
    fn: Callable[[float, float], float],
) -> Callable[
    [Storage, Shape, Strides, Storage, Shape, Strides, Storage, Shape, Strides], None
]:
    """NUMBA higher-order tensor zip function over equally shaped operands.

    Optimizations:

    * Main loop in parallel
    * When `out`, `a`, `b` are stride-aligned, avoid indexing

    Args:
    ----
        fn: function maps two floats to float to apply.

    Returns:
    -------
        Tensor zip function.

    """

    def _zip(
        out: Storage,
        out_shape: Shape,
        out_strides: Strides,
        a_storage: Storage,
        a_shape: Shape,
        a_strides: Strides,
        b_storage: Storage,
        b_shape: Shape,
        b_strides: Strides,
    ) -> None:
        if np.array_equal(out_strides, a_strides) and np.array_equal(
            out_strides, b_strides
        ):
            for i in prange(len(out)):
                out[i] = fn(a_storage[i], b_storage[i])
        else:
            for i in prange(len(out)):
                out_index = np.empty_like(out_shape, dtype=np.int32)
                to_index(i, out_shape, out_index)
                x_a = a_storage[index_to_position(out_index, a_strides)]
                x_b = b_storage[index_to_position(out_index, b_strides)]
                out[index_to_position(out_index, out_strides)] = fn(x_a, x_b)

    return njit(_zip, parallel=True)  # type: ignore


def tensor_scalar_zip(
    fn: Callable[[float, float], float],
) -> Callable[[Storage, Shape, Strides, Storage, Shape, Strides, float], None]:
    """NUMBA kernel applying ``fn(entry, value)`` with a fixed scalar `value`."""

    def _scalar_zip(
        out: Storage,
        out_shape: Shape,
        out_strides: Strides,
        in_storage: Storage,
        in_shape: Shape,
        in_strides: Strides,
        value: float,
    ) -> None:
        for i in prange(len(out)):
            out_index = np.empty_like(out_shape, dtype=np.int32)
            to_index(i, out_shape, out_index)
            x = in_storage[index_to_position(out_index, in_strides)]
            out[index_to_position(out_index, out_strides)] = fn(x, value)

    return njit(_scalar_zip, parallel=True)  # type: ignore


def tensor_reduce(
    fn: Callable[[float, float], float],
) -> Callable[[Storage, Shape, Strides, float], float]:
    """NUMBA reduction of a whole tensor to one float.

    The loop is sequential so the summation order, and therefore the
    result, is reproducible.
    """

    def _reduce(
        a_storage: Storage,
        a_shape: Shape,
        a_strides: Strides,
        start: float,
    ) -> float:
        acc = start
        a_index = np.empty_like(a_shape, dtype=np.int32)
        size = 1
        for s in a_shape:
            size *= s
        for i in range(size):
            to_index(i, a_shape, a_index)
            acc = fn(acc, a_storage[index_to_position(a_index, a_strides)])
        return acc

    return _njit()(_reduce)  # type: ignore


def _tensor_argmax(a_storage: Storage, a_shape: Shape, a_strides: Strides) -> int:
    """Row-major ordinal of the first entry achieving the maximum value."""
    size = 1
    for s in a_shape:
        size *= s
    if size == 0:
        return 0
    a_index = np.zeros_like(a_shape, dtype=np.int32)
    best = a_storage[index_to_position(a_index, a_strides)]
    best_ordinal = 0
    for i in range(1, size):
        to_index(i, a_shape, a_index)
        v = a_storage[index_to_position(a_index, a_strides)]
        # strict comparison keeps the first occurrence on ties
        if v > best:
            best = v
            best_ordinal = i
    return best_ordinal


tensor_argmax = _njit()(_tensor_argmax)


def _tensor_copy(
    out: Storage,
    out_shape: Shape,
    out_strides: Strides,
    in_storage: Storage,
    in_shape: Shape,
    in_strides: Strides,
) -> None:
    for i in prange(len(out)):
        out_index = np.empty_like(out_shape, dtype=np.int32)
        to_index(i, out_shape, out_index)
        out[index_to_position(out_index, out_strides)] = in_storage[
            index_to_position(out_index, in_strides)
        ]


_copy = njit(_tensor_copy, parallel=True)


def _tensor_window(
    out: Storage,
    out_shape: Shape,
    out_strides: Strides,
    in_storage: Storage,
    in_shape: Shape,
    in_strides: Strides,
    start: Shape,
) -> None:
    """NUMBA window copy with implicit zero padding.

    Every out index is shifted by `start`; positions outside of the input
    are filled with 0.0 rather than rejected.
    """
    for i in prange(len(out)):
        out_index = np.empty_like(out_shape)
        in_index = np.empty_like(out_shape)
        to_index(i, out_shape, out_index)
        inside = True
        for d in range(len(out_shape)):
            pos = out_index[d] + start[d]
            if pos < 0 or pos >= in_shape[d]:
                inside = False
            in_index[d] = pos
        value = 0.0
        if inside:
            value = in_storage[index_to_position(in_index, in_strides)]
        out[index_to_position(out_index, out_strides)] = value


tensor_window = njit(_tensor_window, parallel=True)


def _tensor_matrix_multiply(
    out: Storage,
    out_shape: Shape,
    out_strides: Strides,
    a_storage: Storage,
    a_shape: Shape,
    a_strides: Strides,
    b_storage: Storage,
    b_shape: Shape,
    b_strides: Strides,
) -> None:
    """NUMBA layer-batched matrix multiply.

    Shapes are (rows, inner, layers) x (inner, cols, layers) =>
    (rows, cols, layers).

    Optimizations:

    * Outer loop in parallel
    * No index buffers or function calls
    * Inner loop should have no global writes, 1 multiply.

    Args:
    ----
        out (Storage): storage for `out` tensor
        out_shape (Shape): shape for `out` tensor
        out_strides (Strides): strides for `out` tensor
        a_storage (Storage): storage for `a` tensor
        a_shape (Shape): shape for `a` tensor
        a_strides (Strides): strides for `a` tensor
        b_storage (Storage): storage for `b` tensor
        b_shape (Shape): shape for `b` tensor
        b_strides (Strides): strides for `b` tensor

    Returns:
    -------
        None : Fills in `out`

    """
    N, K, M, L = a_shape[0], a_shape[1], b_shape[1], out_shape[2]

    for n in prange(N):
        for m in range(M):
            for lay in range(L):
                out_ordinal = (
                    n * out_strides[0] + m * out_strides[1] + lay * out_strides[2]
                )
                tmp = 0.0
                # dot product between the nth row of a and the mth column of b
                for k in range(K):
                    a_ordinal = n * a_strides[0] + k * a_strides[1] + lay * a_strides[2]
                    b_ordinal = k * b_strides[0] + m * b_strides[1] + lay * b_strides[2]
                    tmp += a_storage[a_ordinal] * b_storage[b_ordinal]
                out[out_ordinal] = tmp


tensor_matrix_multiply = njit(_tensor_matrix_multiply, parallel=True)
assert tensor_matrix_multiply is not None


class TensorBackend:
    """The compiled elementwise operations every tensor dispatches to."""

    def __init__(self, ops: type = FastOps):
        self.neg_map = ops.map(operators.neg)
        self.abs_map = ops.map(operators.abs_)
        self.sigmoid_map = ops.map(operators.sigmoid)
        self.relu_map = ops.map(operators.relu)
        self.sigmoid_back_map = ops.map(operators.sigmoid_back)
        self.relu_back_map = ops.map(operators.relu_back)

        self.add_zip = ops.zip(operators.add, "addition")
        self.sub_zip = ops.zip(operators.sub, "subtraction")
        self.mul_zip = ops.zip(operators.mul, "Hadamard multiplication")

        self.mul_scalar = ops.scalar_zip(operators.mul)
        self.div_scalar = ops.scalar_zip(operators.div)
        self.pow_scalar = ops.scalar_zip(operators.pow)

        self.add_reduce = ops.reduce(operators.add, 0.0)

        self.matrix_multiply = ops.matrix_multiply
        self.window = ops.window
        self.contiguous = ops.contiguous
        self.argmax = ops.argmax


FastBackend = TensorBackend(FastOps)
