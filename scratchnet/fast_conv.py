from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numba import prange

from .fast_ops import njit
from .tensor import Tensor3D
from .tensor_data import MalformedInput, ShapeMismatch

if TYPE_CHECKING:
    from typing import Sequence, Tuple

    import numpy.typing as npt

    from .tensor_data import Shape, Storage, Strides


def filtered_size(size: int, filter_size: int, stride: int, padding: int) -> int:
    """Number of window positions along one axis: ``(size - filter + 2p) // s + 1``."""
    return (size - filter_size + 2 * padding) // stride + 1


def _tensor_filter_bank(
    out: Storage,
    out_shape: Shape,
    out_strides: Strides,
    input: Storage,
    input_shape: Shape,
    input_strides: Strides,
    filters: npt.NDArray[np.float64],
    biases: npt.NDArray[np.float64],
    stride: int,
    padding: int,
) -> None:
    """Strided, zero-padded 2D correlation of a filter bank.

    Given input tensor of

       `height, width, layers`

    and filters stacked as

       `filter_count, k_height, k_width, layers`

    computes

       `out_height, out_width, filter_count`

    where every out position ``(r, c, f)`` is the sum of the window of the
    input whose corner sits at ``(r * stride - padding, c * stride - padding)``
    multiplied entrywise with filter ``f``, plus ``biases[f]``. Window
    positions outside the input contribute nothing, i.e. the input is zero
    padded.

    Args:
    ----
        out (Storage): storage for `out` tensor.
        out_shape (Shape): shape for `out` tensor.
        out_strides (Strides): strides for `out` tensor.
        input (Storage): storage for `input` tensor.
        input_shape (Shape): shape for `input` tensor.
        input_strides (Strides): strides for `input` tensor.
        filters (ndarray): the stacked filters.
        biases (ndarray): one bias per filter.
        stride (int): step between window corners.
        padding (int): zero border added on every side.

    """
    out_height, out_width, filter_count = out_shape[0], out_shape[1], out_shape[2]
    height, width = input_shape[0], input_shape[1]
    kh, kw, layers = filters.shape[1], filters.shape[2], filters.shape[3]

    # For each filter
    for f in prange(filter_count):
        for r in range(out_height):
            for c in range(out_width):
                out_ordinal = (
                    r * out_strides[0] + c * out_strides[1] + f * out_strides[2]
                )
                temp = 0.0
                for kh_ in range(kh):
                    ih = r * stride - padding + kh_
                    if ih < 0 or ih >= height:
                        continue
                    for kw_ in range(kw):
                        iw = c * stride - padding + kw_
                        if iw < 0 or iw >= width:
                            continue
                        for d in range(layers):
                            in_ordinal = (
                                ih * input_strides[0]
                                + iw * input_strides[1]
                                + d * input_strides[2]
                            )
                            temp += input[in_ordinal] * filters[f, kh_, kw_, d]
                out[out_ordinal] = temp + biases[f]


tensor_filter_bank = njit(_tensor_filter_bank, parallel=True)


def filter_shape_check(
    input_shape: Sequence[int],
    filter_shape: Sequence[int],
    stride: int,
    padding: int,
) -> Tuple[int, int]:
    """Spatial size of the filtered tensor, validating the configuration.

    Raises:
    ------
        ShapeMismatch: if the input depth differs from the filter depth or
            the filtered tensor would be empty.

    """
    if len(input_shape) != 3 or input_shape[2] != filter_shape[2]:
        raise ShapeMismatch(input_shape, filter_shape, "convolution")
    rows = filtered_size(input_shape[0], filter_shape[0], stride, padding)
    cols = filtered_size(input_shape[1], filter_shape[1], stride, padding)
    if rows <= 0 or cols <= 0:
        raise ShapeMismatch(input_shape, filter_shape, "convolution")
    return rows, cols


def filter_bank(
    input: Tensor3D,
    filters: Sequence[Tensor3D],
    biases: Sequence[float],
    stride: int = 1,
    padding: int = 0,
) -> Tensor3D:
    """Correlates `input` with every filter, one out layer per filter.

    Args:
    ----
        input: height x width x layers
        filters: equally shaped k_height x k_width x layers tensors
        biases: one scalar per filter
        stride: step between windows
        padding: zero border width

    Returns:
    -------
        :class:`Tensor3D` : out_height x out_width x len(filters), before
        any activation.

    """
    if len(filters) == 0 or len(filters) != len(biases):
        raise MalformedInput(
            f"Need one bias per filter, got {len(filters)} filters and {len(biases)} biases."
        )
    if any(tuple(f.shape) != tuple(filters[0].shape) for f in filters):
        raise MalformedInput("Every filter of a bank must have the same shape.")
    rows, cols = filter_shape_check(input.shape, filters[0].shape, stride, padding)
    stacked = np.ascontiguousarray(np.stack([f.to_numpy() for f in filters]))
    bias_array = np.array(biases, dtype=np.float64)

    out = input.zeros((rows, cols, len(filters)))
    tensor_filter_bank(
        *out.tuple(), *input.tuple(), stacked, bias_array, int(stride), int(padding)
    )
    assert isinstance(out, Tensor3D)
    return out
