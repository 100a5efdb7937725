from __future__ import annotations

import random
from typing import TYPE_CHECKING

from . import operators
from .tensor import Tensor, Tensor2D, Tensor3D
from .tensor_data import MalformedInput, ShapeMismatch

if TYPE_CHECKING:
    from typing import Any, Callable, List, Optional, Sequence

    from .tensor_data import UserIndex, UserShape


DETERMINANT_EPSILON = 1e-6


# Helpers for Constructing tensors
def zeros(shape: UserShape) -> Tensor:
    """Create a tensor filled with zeros of the specified shape.

    Args:
    ----
        shape: (rows, cols) or (rows, cols, layers).

    Returns:
    -------
        Tensor: A `Tensor2D` or `Tensor3D` filled with zeros.

    """
    return Tensor.make([0.0] * int(operators.prod(shape)), tuple(shape))


def rand(
    shape: UserShape,
    low: float = 0.0,
    high: float = 1.0,
    rng: Optional[random.Random] = None,
) -> Tensor:
    """Create a tensor filled with uniform random values in ``[low, high)``.

    Args:
    ----
        shape: Shape of the tensor.
        low: Smallest value that can be drawn (inclusive).
        high: Upper bound (exclusive).
        rng: Source of randomness; pass a seeded `random.Random` for
            reproducible values.

    Returns:
    -------
        Tensor: A tensor filled with random values.

    """
    rng = rng if rng is not None else random.Random()
    vals = [rng.random() * (high - low) + low for _ in range(int(operators.prod(shape)))]
    return Tensor.make(vals, tuple(shape))


def tensor(ls: Any) -> Tensor:
    """Create a tensor from nested lists, inferring its shape.

    Two levels of nesting give a `Tensor2D`, three a `Tensor3D`. Every row
    must have the same length.

    Args:
    ----
        ls: Nested lists of numbers.

    Returns:
    -------
        Tensor: A tensor with the specified data and shape.

    """

    def shape(ls: Any) -> List[int]:
        if isinstance(ls, (list, tuple)):
            if len(ls) == 0:
                return [0]
            return [len(ls)] + shape(ls[0])
        else:
            return []

    def flatten(ls: Any, expected: List[int]) -> List[float]:
        if not expected:
            if isinstance(ls, (list, tuple)):
                raise MalformedInput("Nested values are deeper than their first entry.")
            return [float(ls)]
        if not isinstance(ls, (list, tuple)) or len(ls) != expected[0]:
            raise MalformedInput(f"Ragged values, every entry must have shape {expected}.")
        return [y for x in ls for y in flatten(x, expected[1:])]

    shape2 = shape(ls)
    cur = flatten(ls, shape2)
    return Tensor.make(cur, tuple(shape2))


def tensor3d(ls: Any) -> Tensor3D:
    """Like `tensor`, but a 2D literal is lifted to a single-layer `Tensor3D`."""
    out = tensor(ls)
    if isinstance(out, Tensor2D):
        return out.to_3d()
    assert isinstance(out, Tensor3D)
    return out


# Sequences of tensors


def add_all(tensors: Sequence[Tensor]) -> Tensor:
    """Sums a non-empty sequence of equally shaped tensors."""
    if len(tensors) == 0:
        raise MalformedInput("Cannot sum an empty sequence of tensors.")
    total = tensors[0]
    for t in tensors[1:]:
        total = total + t
    return total


def add_each(a: Sequence[Tensor], b: Sequence[Tensor]) -> List[Tensor]:
    """Adds two sequences of tensors item by item."""
    if len(a) != len(b):
        raise ShapeMismatch((len(a),), (len(b),), "array addition")
    return [x + y for x, y in zip(a, b)]


def scale_each(tensors: Sequence[Tensor], factor: float) -> List[Tensor]:
    """Multiplies every tensor of a sequence by `factor`."""
    return [t * factor for t in tensors]


# Square matrix algebra by Laplace expansion


def _require_square(a: Tensor2D, operation: str) -> None:
    if not isinstance(a, Tensor2D) or a.rows != a.cols or a.rows == 0:
        raise ShapeMismatch(a.shape, a.shape, operation)


def minor(a: Tensor2D, row: int, column: int) -> Tensor2D:
    """The matrix left after deleting `row` and `column` of a square matrix.

    A 1x1 matrix is its own minor.
    """
    _require_square(a, "calculating the minor")
    if a.rows == 1:
        return a
    out = zeros((a.rows - 1, a.cols - 1))
    for r in range(a.rows):
        if r == row:
            continue
        for c in range(a.cols):
            if c == column:
                continue
            out[(r - 1 if r > row else r, c - 1 if c > column else c)] = a[(r, c)]
    assert isinstance(out, Tensor2D)
    return out


def determinant(a: Tensor2D) -> float:
    """Determinant of a square matrix, expanded along the first row."""
    _require_square(a, "determinant")
    if a.cols == 1:
        return a[(0, 0)]
    total = 0.0
    for index in range(a.cols):
        sign = -1.0 if index % 2 else 1.0
        total += a[(0, index)] * determinant(minor(a, 0, index)) * sign
    return total


def cofactors(a: Tensor2D) -> Tensor2D:
    """The matrix of signed minors of a square matrix."""
    _require_square(a, "cofactors")
    out = zeros(a.shape)
    for row in range(a.rows):
        for column in range(a.cols):
            sign = -1.0 if (row + column) % 2 else 1.0
            out[(row, column)] = determinant(minor(a, row, column)) * sign
    assert isinstance(out, Tensor2D)
    return out


def adjoint(a: Tensor2D) -> Tensor2D:
    """Transpose of the cofactor matrix."""
    _require_square(a, "adjoint")
    return cofactors(a).transpose()


def inverse(a: Tensor2D) -> Tensor2D:
    """Inverse of a square matrix via its adjoint.

    Raises:
    ------
        ShapeMismatch: if `a` is not square or ``|det(a)| <= 1e-6``.

    """
    _require_square(a, "inversion")
    det = determinant(a)
    if abs(det) <= DETERMINANT_EPSILON:
        raise ShapeMismatch(a.shape, a.shape, "inversion; determinant is zero")
    out = adjoint(a) / det
    assert isinstance(out, Tensor2D)
    return out


# Gradient check for tensors


def grad_central_difference(
    f: Callable[[Tensor], float],
    x: Tensor,
    ind: UserIndex,
    epsilon: float = 1e-6,
) -> float:
    """Estimate d f / d x[ind] by central difference.

    Args:
    ----
        f: Scalar valued function of a tensor.
        x: Point at which to differentiate.
        ind: Index of the entry to perturb.
        epsilon: Step size.

    Returns:
    -------
        float: ``(f(x + e) - f(x - e)) / (2 * epsilon)``.

    """
    up = zeros(x.shape)
    up[ind] = epsilon
    delta = f(x + up) - f(x - up)
    return delta / (2.0 * epsilon)
