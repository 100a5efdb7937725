import random
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .tensor import Tensor, Tensor2D
from .tensor_functions import tensor


class Dataset:
    """One training example: an input, its expected output and, once a
    network has been run on it, the network's output and squared-error cost.

    The cost is recomputed whenever the output or the expected output is
    set. It is only present when both are, and then
    ``cost.shape == expected_output.shape``. A failed assignment leaves the
    record unchanged.
    """

    def __init__(
        self,
        input: Tensor,
        expected_output: Tensor,
        output: Optional[Tensor] = None,
    ):
        self._input = input.copy()
        self._expected_output = expected_output.copy()
        self._output: Optional[Tensor] = None
        self._cost: Optional[Tensor] = None
        if output is not None:
            self.output = output

    @property
    def input(self) -> Tensor:
        return self._input

    @input.setter
    def input(self, value: Tensor) -> None:
        self._input = value

    @property
    def expected_output(self) -> Tensor:
        return self._expected_output

    @expected_output.setter
    def expected_output(self, value: Tensor) -> None:
        cost = self._cost_of(value, self._output)
        self._expected_output = value
        self._cost = cost

    @property
    def output(self) -> Optional[Tensor]:
        """The cached network output, if any."""
        return self._output

    @output.setter
    def output(self, value: Optional[Tensor]) -> None:
        cost = self._cost_of(self._expected_output, value)
        self._output = value
        self._cost = cost

    @property
    def cost(self) -> Optional[Tensor]:
        """Elementwise ``(expected - output) ** 2``, or None without an output."""
        return self._cost

    @staticmethod
    def _cost_of(
        expected_output: Optional[Tensor], output: Optional[Tensor]
    ) -> Optional[Tensor]:
        if output is None or expected_output is None:
            return None
        return (expected_output - output).pow(2.0)

    def copy(self) -> "Dataset":
        return Dataset(self._input, self._expected_output, self._output)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dataset):
            return False
        return (
            self._input == other._input
            and self._expected_output == other._expected_output
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"Dataset(input={self._input!r}, "
            f"expected_output={self._expected_output!r})"
        )


def make_pts(N: int, rng: random.Random) -> List[Tuple[float, float]]:
    """Generates a list of N random 2D points within the range [0, 1].

    Args:
    ----
        N (int): The number of points to generate.
        rng (random.Random): Source of randomness.

    Returns:
    -------
    List[Tuple[float, float]]: A list of tuples, each representing a 2D point (x_1, x_2) with random coordinates.

    """
    X = []
    for i in range(N):
        x_1 = rng.random()
        x_2 = rng.random()
        X.append((x_1, x_2))
    return X


def one_hot(label: int, classes: int = 2) -> Tensor2D:
    """A ``classes x 1`` column with 1.0 at `label`."""
    out = tensor([[1.0 if i == label else 0.0] for i in range(classes)])
    assert isinstance(out, Tensor2D)
    return out


@dataclass
class Graph:
    """A labelled set of 2D points.

    Attributes
    ----------
        N (int): The number of points in the graph.
        X (List[Tuple[float, float]]): A list of tuples representing 2D points.
        y (List[int]): A list of integer labels associated with each point.

    """

    N: int
    X: List[Tuple[float, float]]
    y: List[int]

    def datasets(self) -> List[Dataset]:
        """Each point as a ``[2, 1]`` input with a one-hot ``[2, 1]`` expected output."""
        return [
            Dataset(tensor([[x_1], [x_2]]), one_hot(label))
            for (x_1, x_2), label in zip(self.X, self.y)
        ]


def xor(N: int, seed: Optional[int] = None) -> Graph:
    """Generates a graph where the label is 1 if the point falls in opposite quadrants, simulating an XOR pattern, else 0.

    Args:
    ----
        N (int): The number of points to generate.
        seed (Optional[int]): Seed for the point generator.

    Returns:
    -------
        Graph: A graph containing N points and their corresponding labels based on the XOR rule.

    """
    X = make_pts(N, random.Random(seed))
    y = []
    for x_1, x_2 in X:
        y1 = 1 if (x_1 < 0.5 and x_2 > 0.5) or (x_1 > 0.5 and x_2 < 0.5) else 0
        y.append(y1)
    return Graph(N, X, y)


def xor_table() -> List[Dataset]:
    """The four corners of the unit square labelled by XOR, one-hot encoded."""
    graph = Graph(
        4,
        [(0.0, 0.0), (0.0, 1.0), (1.0, 0.0), (1.0, 1.0)],
        [0, 1, 1, 0],
    )
    return graph.datasets()
