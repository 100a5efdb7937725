"""Elementwise nonlinearities and their derivatives.

An `Activation` is a closed policy chosen once per network or convolution
stage. `activate` maps pre-activation values ``z`` to activations and
`activate_derivative` gives the pointwise derivative evaluated at ``z``.
"""

from __future__ import annotations

from enum import Enum
from typing import Tuple, TypeVar

from .tensor import Tensor

NORMALIZED_RELU_MIN_DIVISOR = 1e-4

T = TypeVar("T", bound=Tensor)


class Activation(Enum):
    SIGMOID = "sigmoid"
    RELU = "relu"
    # ReLU rescaled by the largest activated value of each call
    RELU_NORMALIZED = "relu_normalized"


def activate(input: T, activation: Activation) -> T:
    """Applies `activation` to every entry of `input`.

    For `Activation.RELU_NORMALIZED` the whole ReLU output is divided by its
    largest entry, which couples every entry to the rest of the tensor. The
    divisor never drops below 1e-4.

    Args:
    ----
        input (Tensor): pre-activation values.
        activation (Activation): the policy to apply.

    Returns:
    -------
        Tensor: the activated tensor, same shape as `input`.

    """
    if activation is Activation.SIGMOID:
        return input.f.sigmoid_map(input)  # type: ignore[return-value]
    if activation is Activation.RELU:
        return input.f.relu_map(input)  # type: ignore[return-value]
    if activation is Activation.RELU_NORMALIZED:
        activated = input.f.relu_map(input)
        divisor = NORMALIZED_RELU_MIN_DIVISOR
        if activated.size > 0:
            divisor = max(divisor, activated[activated.index_of_max()])
        return activated / divisor  # type: ignore[return-value]
    raise ValueError(f"Unknown activation {activation!r}")


def activate_derivative(input: T, activation: Activation) -> T:
    """Pointwise derivative of `activation` at the pre-activation `input`.

    The normalized ReLU uses the plain ReLU derivative; its scaling is
    treated as a constant.
    """
    if activation is Activation.SIGMOID:
        return input.f.sigmoid_back_map(input)  # type: ignore[return-value]
    if activation in (Activation.RELU, Activation.RELU_NORMALIZED):
        return input.f.relu_back_map(input)  # type: ignore[return-value]
    raise ValueError(f"Unknown activation {activation!r}")


def initial_weight_range(activation: Activation) -> Tuple[float, float]:
    """The ``[low, high)`` range new weights and filters are drawn from.

    ReLU variants start strictly positive so no unit begins dead.
    """
    if activation is Activation.SIGMOID:
        return (-1.0, 1.0)
    return (0.001, 1.0)
