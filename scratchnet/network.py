"""Fully connected feedforward network trained by mini-batch gradient descent.

Gradients are derived by hand: the forward pass keeps every layer's
pre-activation ``z`` tensor and `Network.backpropagate` walks them in reverse
applying the chain rule.

Sign convention: the output error is ``output - expected``. With that
convention ``backpropagate`` returns the exact gradient of the half squared
error ``0.5 * sum((output - expected) ** 2)``, which is `Network.loss` scaled
by ``output_count / 2``. The update step subtracts the gradient.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .activation import Activation, activate, activate_derivative, initial_weight_range
from .tensor import Tensor2D
from .tensor_data import MalformedInput, ShapeMismatch
from .tensor_functions import rand, zeros

if TYPE_CHECKING:
    from concurrent.futures import Executor
    from typing import Callable, List, Optional, Sequence

    from .datasets import Dataset

logger = logging.getLogger(__name__)


@dataclass
class LayerParameters:
    """Weights ``[out, in]`` and biases ``[out, 1]`` between two layers."""

    weights: Tensor2D
    biases: Tensor2D

    @property
    def in_nodes(self) -> int:
        return self.weights.cols

    @property
    def out_nodes(self) -> int:
        return self.weights.rows

    @classmethod
    def validated(
        cls, weights: Tensor2D, biases: Tensor2D, in_nodes: int, out_nodes: int
    ) -> LayerParameters:
        """Copies `weights` and `biases`, resetting any of the wrong shape to zeros."""
        if tuple(weights.shape) == (out_nodes, in_nodes):
            weights = weights.copy()
        else:
            logger.warning(
                "Weights of shape %s do not fit %d -> %d nodes; resetting to zeros",
                weights.shape,
                in_nodes,
                out_nodes,
            )
            weights = zeros((out_nodes, in_nodes))
        if tuple(biases.shape) == (out_nodes, 1):
            biases = biases.copy()
        else:
            logger.warning(
                "Biases of shape %s do not fit %d nodes; resetting to zeros",
                biases.shape,
                out_nodes,
            )
            biases = zeros((out_nodes, 1))
        return cls(weights, biases)  # type: ignore[arg-type]

    def copy(self) -> LayerParameters:
        return LayerParameters(self.weights.copy(), self.biases.copy())


@dataclass
class Gradients:
    """Per-layer loss gradients, aligned with `Network.layers`."""

    weights: List[Tensor2D]
    biases: List[Tensor2D]

    def __add__(self, other: Gradients) -> Gradients:
        return Gradients(
            [a + b for a, b in zip(self.weights, other.weights)],  # type: ignore[misc]
            [a + b for a, b in zip(self.biases, other.biases)],  # type: ignore[misc]
        )

    def __truediv__(self, factor: float) -> Gradients:
        return Gradients(
            [w / factor for w in self.weights],  # type: ignore[misc]
            [b / factor for b in self.biases],  # type: ignore[misc]
        )


class Network:
    """A feedforward network with one activation policy shared by every layer.

    Args:
        node_counts: nodes per layer, input layer first, e.g. ``[3, 15, 15, 3]``.
        activation: the activation applied after every layer transform.
        seed: seed for the initial weights; equal seeds give equal networks.

    Attributes:
        layers (List[LayerParameters]): one entry per pair of adjacent layers.
    """

    layers: List[LayerParameters]
    activation: Activation

    def __init__(
        self,
        node_counts: Sequence[int],
        activation: Activation = Activation.SIGMOID,
        seed: Optional[int] = None,
    ):
        if len(node_counts) < 2:
            raise MalformedInput(
                f"A network needs at least 2 layers, got node counts {list(node_counts)}."
            )
        if any(int(n) <= 0 for n in node_counts):
            raise MalformedInput(
                f"Every layer needs at least one node, got {list(node_counts)}."
            )
        self.activation = activation
        rng = random.Random(seed)
        low, high = initial_weight_range(activation)
        self.layers = []
        for n_in, n_out in zip(node_counts[:-1], node_counts[1:]):
            weights = rand((n_out, n_in), low, high, rng)
            biases = zeros((n_out, 1))
            self.layers.append(LayerParameters(weights, biases))  # type: ignore[arg-type]
        logger.debug(
            "Created network %s with %s activation", self.node_counts, activation.name
        )

    @classmethod
    def from_parameters(
        cls,
        layers: Sequence[LayerParameters],
        activation: Activation = Activation.SIGMOID,
    ) -> Network:
        """Builds a network from explicit layer parameters.

        Node counts are read from the weight shapes; biases of the wrong
        shape are reset to zeros.
        """
        if len(layers) == 0:
            raise MalformedInput("A network needs at least one set of layer parameters.")
        node_counts = [layers[0].weights.cols] + [p.weights.rows for p in layers]
        net = cls(node_counts, activation)
        net.layers = [
            LayerParameters.validated(p.weights, p.biases, n_in, n_out)
            for p, n_in, n_out in zip(layers, node_counts[:-1], node_counts[1:])
        ]
        return net

    @property
    def node_counts(self) -> List[int]:
        return [self.layers[0].in_nodes] + [p.out_nodes for p in self.layers]

    @property
    def weights(self) -> List[Tensor2D]:
        return [p.weights for p in self.layers]

    @property
    def biases(self) -> List[Tensor2D]:
        return [p.biases for p in self.layers]

    # Forward pass

    def _check_input(self, input: Tensor2D) -> None:
        expected = (self.layers[0].in_nodes, 1)
        if not isinstance(input, Tensor2D) or tuple(input.shape) != expected:
            raise ShapeMismatch(input.shape, expected, "network input")

    def _check_expected(self, expected_output: Tensor2D) -> None:
        expected = (self.layers[-1].out_nodes, 1)
        if (
            not isinstance(expected_output, Tensor2D)
            or tuple(expected_output.shape) != expected
        ):
            raise ShapeMismatch(expected_output.shape, expected, "network output")

    def compute(self, input: Tensor2D) -> Tensor2D:
        """Runs `input` (shaped ``[input nodes, 1]``) through every layer."""
        self._check_input(input)
        output = input
        for p in self.layers:
            output = activate(p.weights @ output + p.biases, self.activation)
        return output

    def z_values(self, input: Tensor2D) -> List[Tensor2D]:
        """Pre-activation values of every layer.

        ``z[0]`` is the raw input, treated as already activated; ``z[l]``
        for ``l >= 1`` is ``W_l a_{l-1} + b_l``.
        """
        self._check_input(input)
        out = [input.copy()]
        a = input
        for p in self.layers:
            z = p.weights @ a + p.biases
            out.append(z)
            a = activate(z, self.activation)
        return out  # type: ignore[return-value]

    # Loss

    @staticmethod
    def loss(expected_output: Tensor2D, output: Tensor2D) -> float:
        """Mean squared error between `expected_output` and `output`."""
        return (expected_output - output).pow(2.0).sum_entries() / output.size

    def average_loss(self, datasets: Sequence[Dataset]) -> float:
        """Mean of the per-example loss; 0.0 for an empty collection."""
        if len(datasets) == 0:
            return 0.0
        total = 0.0
        for dataset in datasets:
            total += Network.loss(dataset.expected_output, self.compute(dataset.input))
        return total / len(datasets)

    def accuracy(self, datasets: Sequence[Dataset]) -> float:
        """Fraction of examples whose output argmax matches the expected argmax."""
        if len(datasets) == 0:
            return 0.0
        correct = 0
        for dataset in datasets:
            guess = self.compute(dataset.input).index_of_max()
            if guess == dataset.expected_output.index_of_max():
                correct += 1
        return correct / len(datasets)

    def evaluate(self, datasets: Sequence[Dataset]) -> Optional[Tensor2D]:
        """Caches each example's output and returns the mean cost tensor.

        Returns None for an empty collection. Every example is checked and
        computed before any output is cached.
        """
        if len(datasets) == 0:
            return None
        for dataset in datasets:
            self._check_expected(dataset.expected_output)
        outputs = [self.compute(dataset.input) for dataset in datasets]

        total = zeros((self.layers[-1].out_nodes, 1))
        for dataset, output in zip(datasets, outputs):
            dataset.output = output
            assert dataset.cost is not None
            total = total + dataset.cost
        return total / len(datasets)  # type: ignore[return-value]

    # Backpropagation

    def backpropagate(
        self, z_values: Sequence[Tensor2D], expected_output: Tensor2D
    ) -> Gradients:
        """Loss gradients for every layer from retained pre-activation values.

        Args:
            z_values: the output of `z_values` for one input.
            expected_output: the target for that input.

        Returns:
            Gradients: ``dL/dW_l = delta_l a_{l-1}^T`` and ``dL/db_l = delta_l``.
        """
        self._check_expected(expected_output)
        n_layers = len(self.layers)
        if len(z_values) != n_layers + 1:
            raise ShapeMismatch((len(z_values),), (n_layers + 1,), "backpropagation")
        weight_gradients: List[Optional[Tensor2D]] = [None] * n_layers
        bias_gradients: List[Optional[Tensor2D]] = [None] * n_layers

        output = activate(z_values[-1], self.activation)
        delta = (output - expected_output) * activate_derivative(
            z_values[-1], self.activation
        )
        for layer in range(n_layers - 1, -1, -1):
            if layer < n_layers - 1:
                delta = (self.layers[layer + 1].weights.T @ delta) * activate_derivative(
                    z_values[layer + 1], self.activation
                )
            # z[0] is the raw input and is not activated again
            a_prev = (
                z_values[layer]
                if layer == 0
                else activate(z_values[layer], self.activation)
            )
            weight_gradients[layer] = delta @ a_prev.T
            bias_gradients[layer] = delta.copy()
        return Gradients(weight_gradients, bias_gradients)  # type: ignore[arg-type]

    def dataset_gradients(self, dataset: Dataset) -> Gradients:
        """Forward pass plus backpropagation for a single example."""
        self._check_expected(dataset.expected_output)
        return self.backpropagate(
            self.z_values(dataset.input), dataset.expected_output
        )

    def batch_gradients(
        self, batch: Sequence[Dataset], executor: Optional[Executor] = None
    ) -> Gradients:
        """Average gradient over `batch`.

        Every example is validated and differentiated before anything is
        summed. Summation runs in batch order whether or not an `executor`
        computes the per-example gradients, so results do not depend on it.
        Thread pools need a threadsafe numba threading layer (``tbb`` or
        ``omp``); the default ``workqueue`` layer is not.
        """
        if len(batch) == 0:
            raise MalformedInput("Cannot compute gradients of an empty batch.")
        if executor is None:
            per_example = [self.dataset_gradients(d) for d in batch]
        else:
            per_example = list(executor.map(self.dataset_gradients, batch))
        total = per_example[0]
        for g in per_example[1:]:
            total = total + g
        return total / len(batch)

    def apply_gradients(self, gradients: Gradients, learning_rate: float) -> None:
        """``W <- W - lr * dW`` and ``b <- b - lr * db`` for every layer."""
        counts = (len(gradients.weights), len(gradients.biases))
        if counts != (len(self.layers), len(self.layers)):
            raise ShapeMismatch(
                counts, (len(self.layers), len(self.layers)), "applying gradients"
            )
        self.layers = [
            LayerParameters(
                p.weights - gw * learning_rate,  # type: ignore[arg-type]
                p.biases - gb * learning_rate,  # type: ignore[arg-type]
            )
            for p, gw, gb in zip(self.layers, gradients.weights, gradients.biases)
        ]

    def learn(
        self,
        datasets: Sequence[Dataset],
        epochs: int = 1,
        batch_size: int = 1,
        learning_rate: float = 1.0,
        log_fn: Optional[Callable[[int, float], None]] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        """Mini-batch stochastic gradient descent.

        Each epoch splits `datasets` into contiguous batches of `batch_size`
        (the last may be shorter) and updates the parameters once per batch
        with the batch-average gradient. A malformed example raises before
        its batch changes any parameter.

        Args:
            datasets: training examples, in the order they are batched.
            epochs: passes over `datasets`.
            batch_size: examples per parameter update.
            learning_rate: step size.
            log_fn: called as ``log_fn(epoch, average_loss)`` after each epoch.
            executor: optional pool computing per-example gradients of a batch.
        """
        if epochs <= 0 or batch_size <= 0:
            raise MalformedInput(
                f"epochs and batch_size must be positive, got {epochs} and {batch_size}."
            )
        if not math.isfinite(learning_rate):
            raise MalformedInput(f"learning_rate must be finite, got {learning_rate}.")

        for epoch in range(1, epochs + 1):
            for start in range(0, len(datasets), batch_size):
                batch = datasets[start : start + batch_size]
                gradients = self.batch_gradients(batch, executor)
                self.apply_gradients(gradients, learning_rate)

            if log_fn is not None or logger.isEnabledFor(logging.DEBUG):
                average = self.average_loss(datasets)
                logger.debug("Epoch %d average loss %.6f", epoch, average)
                if log_fn is not None:
                    log_fn(epoch, average)

    def __repr__(self) -> str:
        return f"Network(node_counts={self.node_counts}, activation={self.activation.name})"
