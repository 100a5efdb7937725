from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from numba import prange

from .fast_ops import njit
from .tensor import Tensor3D
from .tensor_data import MalformedInput, ShapeMismatch

if TYPE_CHECKING:
    from typing import Tuple

    from .tensor_data import Shape, Storage, Strides


# List of functions in this file:
# - pooled_shape: Output size of a pooling window sweep
# - pool2d: Strided 2D pooling of every layer, max or average
# - maxpool2d: Strided max pooling 2D
# - avgpool2d: Strided average pooling 2D


class Pooling(Enum):
    MAX = "max"
    AVERAGE = "average"


def pooled_shape(
    input_shape: Tuple[int, ...], pool_size: int, pool_stride: int
) -> Tuple[int, int, int]:
    """Shape after pooling: ``(size - pool) // stride + 1`` along rows and columns.

    Windows are never padded, so an input smaller than the pool is an error.
    """
    if pool_size <= 0 or pool_stride <= 0:
        raise MalformedInput(
            f"Pool size and stride must be positive, got {pool_size} and {pool_stride}."
        )
    rows, cols, layers = input_shape
    if rows < pool_size or cols < pool_size:
        raise ShapeMismatch(input_shape, (pool_size, pool_size), "pooling")
    return (
        (rows - pool_size) // pool_stride + 1,
        (cols - pool_size) // pool_stride + 1,
        layers,
    )


def _tensor_pool(
    out: Storage,
    out_shape: Shape,
    out_strides: Strides,
    input: Storage,
    input_shape: Shape,
    input_strides: Strides,
    pool_size: int,
    pool_stride: int,
    average: bool,
) -> None:
    """NUMBA pooling of `pool_size` x `pool_size` windows, layer by layer.

    Window ``(r, c)`` starts at ``(r * pool_stride, c * pool_stride)`` and
    lies inside the input. Max pooling keeps the first maximum met scanning
    rows then columns.
    """
    for lay in prange(out_shape[2]):
        for r in range(out_shape[0]):
            for c in range(out_shape[1]):
                out_ordinal = (
                    r * out_strides[0] + c * out_strides[1] + lay * out_strides[2]
                )
                start = (
                    r * pool_stride * input_strides[0]
                    + c * pool_stride * input_strides[1]
                    + lay * input_strides[2]
                )
                best = input[start]
                total = 0.0
                for i in range(pool_size):
                    for j in range(pool_size):
                        v = input[start + i * input_strides[0] + j * input_strides[1]]
                        total += v
                        if v > best:
                            best = v
                if average:
                    out[out_ordinal] = total / (pool_size * pool_size)
                else:
                    out[out_ordinal] = best


tensor_pool = njit(_tensor_pool, parallel=True)


def pool2d(
    input: Tensor3D, pool_size: int, pool_stride: int, pooling: Pooling
) -> Tensor3D:
    """Pools every layer of `input` independently.

    Args:
    ----
        input (Tensor3D): height x width x layers
        pool_size (int): side of the square pooling window
        pool_stride (int): step between windows
        pooling (Pooling): reduce each window to its max or its mean

    Returns:
    -------
        :class:`Tensor3D` : pooled_height x pooled_width x layers

    """
    shape = pooled_shape(tuple(input.shape), pool_size, pool_stride)
    out = input.zeros(shape)
    tensor_pool(
        *out.tuple(),
        *input.tuple(),
        int(pool_size),
        int(pool_stride),
        pooling is Pooling.AVERAGE,
    )
    assert isinstance(out, Tensor3D)
    return out


def maxpool2d(input: Tensor3D, pool_size: int, pool_stride: int) -> Tensor3D:
    """Max of every pooling window."""
    return pool2d(input, pool_size, pool_stride, Pooling.MAX)


def avgpool2d(input: Tensor3D, pool_size: int, pool_stride: int) -> Tensor3D:
    """Mean of every pooling window."""
    return pool2d(input, pool_size, pool_stride, Pooling.AVERAGE)
