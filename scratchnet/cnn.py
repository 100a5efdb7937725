"""Forward-only convolution stages and their composition.

A `Convolution` correlates its input with a bank of filters, activates each
filtered layer and pools the result. A `ConvolutionalNetwork` feeds every
stage's pooled output into the next stage. Nothing here is trainable.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from .activation import Activation, activate, initial_weight_range
from .fast_conv import filter_bank, filter_shape_check
from .nn import Pooling, pool2d, pooled_shape
from .tensor import Tensor3D
from .tensor_data import IndexOutOfRange, MalformedInput
from .tensor_functions import rand

if TYPE_CHECKING:
    from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class Convolution:
    """One convolution stage: filter bank, activation, then pooling.

    Args:
        filter_count: number of filters, which is the output layer count.
        filter_shape: ``(rows, cols, layers)`` of every filter; `layers` must
            equal the input layer count.
        filter_stride: step between filter windows.
        padding: zero border around the input.
        activation: applied to each filtered layer separately.
        pool_size: side of the square pooling window; 1 with stride 1 is a no-op.
        pool_stride: step between pooling windows.
        pooling: max or average pooling.
        seed: seed for the random initial filters.
    """

    filters: List[Tensor3D]
    biases: List[float]

    def __init__(
        self,
        filter_count: int,
        filter_shape: Sequence[int],
        filter_stride: int = 1,
        padding: int = 0,
        activation: Activation = Activation.SIGMOID,
        pool_size: int = 1,
        pool_stride: int = 1,
        pooling: Pooling = Pooling.MAX,
        seed: Optional[int] = None,
    ):
        if filter_count <= 0:
            raise MalformedInput(f"filter_count must be positive, got {filter_count}.")
        if len(filter_shape) != 3 or any(s <= 0 for s in filter_shape):
            raise MalformedInput(
                f"filter_shape must be 3 positive sizes, got {tuple(filter_shape)}."
            )
        if filter_stride <= 0 or pool_size <= 0 or pool_stride <= 0:
            raise MalformedInput(
                "filter_stride, pool_size and pool_stride must be positive, got "
                f"{filter_stride}, {pool_size} and {pool_stride}."
            )
        if padding < 0:
            raise MalformedInput(f"padding must not be negative, got {padding}.")

        self.filter_shape: Tuple[int, int, int] = tuple(int(s) for s in filter_shape)  # type: ignore[assignment]
        self.filter_stride = filter_stride
        self.padding = padding
        self.activation = activation
        self.pool_size = pool_size
        self.pool_stride = pool_stride
        self.pooling = pooling

        rng = random.Random(seed)
        low, high = initial_weight_range(activation)
        self.filters = [
            rand(self.filter_shape, low, high, rng) for _ in range(filter_count)  # type: ignore[misc]
        ]
        self.biases = [0.0] * filter_count

    @property
    def filter_count(self) -> int:
        return len(self.filters)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.filter_count:
            raise IndexOutOfRange((index,), (self.filter_count,))

    def set_filter(self, index: int, filter: Tensor3D) -> None:
        """Replaces filter `index` with a copy of `filter`, e.g. an edge detector."""
        self._check_index(index)
        if not isinstance(filter, Tensor3D) or tuple(filter.shape) != self.filter_shape:
            raise MalformedInput(
                f"Filter of shape {tuple(filter.shape)} does not fit a bank of "
                f"{self.filter_shape} filters."
            )
        self.filters[index] = filter.copy()  # type: ignore[assignment]

    def set_bias(self, index: int, value: float) -> None:
        self._check_index(index)
        self.biases[index] = float(value)

    def filtered_shape(self, input_shape: Sequence[int]) -> Tuple[int, int, int]:
        """Shape of the activated filter output, before pooling."""
        rows, cols = filter_shape_check(
            input_shape, self.filter_shape, self.filter_stride, self.padding
        )
        return rows, cols, self.filter_count

    def output_shape(self, input_shape: Sequence[int]) -> Tuple[int, int, int]:
        """Shape of `compute` for an input of `input_shape`."""
        return pooled_shape(
            self.filtered_shape(input_shape), self.pool_size, self.pool_stride
        )

    def filter(self, input: Tensor3D) -> Tensor3D:
        """Correlates `input` with the filter bank and activates each layer."""
        filtered = filter_bank(
            input, self.filters, self.biases, self.filter_stride, self.padding
        )
        if self.filter_count == 1:
            return activate(filtered, self.activation)
        # each filter layer is activated on its own
        out = filtered.zeros()
        assert isinstance(out, Tensor3D)
        for index, layer in enumerate(filtered.get_layers()):
            out.set_layer(index, activate(layer, self.activation))
        return out

    def compute(self, input: Tensor3D) -> Tensor3D:
        """Filter, activate and pool `input`."""
        filtered = self.filter(input)
        pooled = pool2d(filtered, self.pool_size, self.pool_stride, self.pooling)
        logger.debug(
            "Convolution %s -> filtered %s -> pooled %s",
            input.shape,
            filtered.shape,
            pooled.shape,
        )
        return pooled

    def copy(self) -> Convolution:
        out = Convolution.__new__(Convolution)
        out.__dict__.update(self.__dict__)
        out.filters = [f.copy() for f in self.filters]  # type: ignore[misc]
        out.biases = list(self.biases)
        return out

    def __repr__(self) -> str:
        return (
            f"Convolution(filter_count={self.filter_count}, "
            f"filter_shape={self.filter_shape}, filter_stride={self.filter_stride}, "
            f"padding={self.padding}, activation={self.activation.name}, "
            f"pool_size={self.pool_size}, pool_stride={self.pool_stride}, "
            f"pooling={self.pooling.name})"
        )


class ConvolutionalNetwork:
    """A chain of `Convolution` stages. Each stage is copied on construction."""

    def __init__(self, convolutions: Sequence[Convolution]):
        if len(convolutions) == 0:
            raise MalformedInput("A convolutional network needs at least one stage.")
        self.convolutions = [c.copy() for c in convolutions]

    def output_shape(self, input_shape: Sequence[int]) -> Tuple[int, int, int]:
        shape = tuple(input_shape)
        for convolution in self.convolutions:
            shape = convolution.output_shape(shape)
        return shape  # type: ignore[return-value]

    def compute(self, input: Tensor3D) -> Tensor3D:
        output = input
        for stage, convolution in enumerate(self.convolutions):
            output = convolution.compute(output)
            logger.debug("Stage %d output %s", stage, output.shape)
        return output
