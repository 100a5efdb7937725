"""Collection of the core scalar operators used as elementwise kernels."""

import math
from typing import Iterable


def mul(x: float, y: float) -> float:
    """Multiplies two numbers and returns their product.

    Args:
    ----
        x (float): The first number.
        y (float): The second number.

    Returns:
    -------
        float: The product of x and y.

    """
    return x * y


def add(x: float, y: float) -> float:
    """Adds two numbers and returns their sum.

    Args:
    ----
        x (float): The first number.
        y (float): The second number.

    Returns:
    -------
        float: The sum of x and y.

    """
    return x + y


def sub(x: float, y: float) -> float:
    """Subtracts y from x."""
    return x - y


def div(x: float, y: float) -> float:
    """Divides x by y."""
    return x / y


def pow(x: float, y: float) -> float:
    """Raises x to the power y."""
    return math.pow(x, y)


def neg(x: float) -> float:
    """Returns the negation of the input number.

    Args:
    ----
        x (float): The input number.

    Returns:
    -------
        float: The negation of x.

    """
    return -1.0 * x


def abs_(x: float) -> float:
    """Returns the absolute value of x."""
    if x < 0:
        return -x
    return x


def sigmoid(x: float) -> float:
    """Computes the sigmoid function for the input number.

    Uses the `exp(x) / (1 + exp(x))` form for negative inputs so
    large negative values do not overflow.

    Args:
    ----
        x (float): The input number.

    Returns:
    -------
        float: The sigmoid of x.

    """
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-1.0 * x))
    else:
        a = math.exp(x)
        return a / (1.0 + a)


def relu(x: float) -> float:
    """Applies the ReLU (Rectified Linear Unit) function.

    Args:
    ----
        x (float): The input number.

    Returns:
    -------
        float: x if x is greater than 0, otherwise 0.

    """
    if x > 0:
        return x
    return 0.0


def sigmoid_back(x: float) -> float:
    """Derivative of sigmoid evaluated at the pre-activation value x."""
    # kept free of calls so numba can compile it on its own
    if x >= 0:
        s = 1.0 / (1.0 + math.exp(-1.0 * x))
    else:
        a = math.exp(x)
        s = a / (1.0 + a)
    return s * (1.0 - s)


def relu_back(x: float) -> float:
    """Derivative of ReLU evaluated at x.

    The subgradient at exactly 0 is taken to be 0.

    Args:
    ----
        x (float): The pre-activation value.

    Returns:
    -------
        float: 1.0 if x is greater than 0, otherwise 0.0.

    """
    if x > 0:
        return 1.0
    return 0.0


def prod(li: Iterable[float]) -> float:
    """Calculates the product of all elements in an Iterable of numbers.

    Args:
    ----
        li (Iterable[float]): An Iterable of numbers.

    Returns:
    -------
        float: The product of all elements in `li`.

    """
    product = 1
    for i in li:
        product *= i
    return product
