"""
test_cnn.py
~~~~~~~~~~~

Unit and integration tests for convolution stages, pooling and their
composition.
"""

import logging
import math

import pytest

from scratchnet.activation import Activation
from scratchnet.cnn import Convolution, ConvolutionalNetwork
from scratchnet.fast_conv import filter_bank
from scratchnet.nn import Pooling, avgpool2d, maxpool2d, pool2d, pooled_shape
from scratchnet.tensor import Tensor, Tensor3D
from scratchnet.tensor_data import IndexOutOfRange, MalformedInput, ShapeMismatch
from scratchnet.tensor_functions import tensor, tensor3d, zeros


def ones(shape):
    return Tensor.make([1.0] * math.prod(shape), tuple(shape))


@pytest.fixture
def edge_image():
    """5 x 5 x 1 image, dark in columns 0-1 and bright in columns 2-4."""
    return tensor3d([[0.0, 0.0, 1.0, 1.0, 1.0] for _ in range(5)])


@pytest.fixture
def sobel_x():
    return tensor3d([[-1.0, 0.0, 1.0], [-2.0, 0.0, 2.0], [-1.0, 0.0, 1.0]])


@pytest.mark.unit
class TestShapes:
    def test_filtered_size(self):
        conv = Convolution(1, (3, 3, 1))
        assert conv.filtered_shape((5, 5, 1)) == (3, 3, 1)

    def test_filtered_size_with_padding(self):
        conv = Convolution(1, (3, 3, 1), padding=1)
        assert conv.filtered_shape((5, 5, 1)) == (5, 5, 1)

    def test_filtered_size_with_stride(self):
        conv = Convolution(2, (3, 3, 1), filter_stride=2)
        assert conv.filtered_shape((5, 5, 1)) == (2, 2, 2)
        assert conv.compute(ones((5, 5, 1))).shape == (2, 2, 2)

    def test_pooled_size(self):
        conv = Convolution(1, (1, 1, 1), pool_size=2, pool_stride=2)
        assert conv.output_shape((4, 4, 1)) == (2, 2, 1)
        assert conv.compute(ones((4, 4, 1))).shape == (2, 2, 1)

    def test_depth_mismatch(self):
        conv = Convolution(1, (3, 3, 1))
        with pytest.raises(ShapeMismatch):
            conv.filtered_shape((5, 5, 2))
        with pytest.raises(ShapeMismatch):
            conv.compute(zeros((5, 5, 2)))

    def test_empty_output(self):
        with pytest.raises(ShapeMismatch):
            Convolution(1, (3, 3, 1)).filtered_shape((2, 2, 1))
        with pytest.raises(ShapeMismatch):
            Convolution(1, (1, 1, 1), pool_size=3).output_shape((2, 2, 1))

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"filter_count": 0},
            {"filter_shape": (0, 3, 1)},
            {"filter_shape": (3, 3)},
            {"filter_stride": 0},
            {"padding": -1},
            {"pool_size": 0},
            {"pool_stride": 0},
        ],
    )
    def test_invalid_configuration(self, kwargs):
        args = {"filter_count": 1, "filter_shape": (3, 3, 1)}
        args.update(kwargs)
        with pytest.raises(MalformedInput):
            Convolution(**args)


@pytest.mark.unit
class TestFiltering:
    def test_sobel_finds_vertical_edge(self, edge_image, sobel_x):
        conv = Convolution(1, (3, 3, 1), activation=Activation.RELU)
        conv.set_filter(0, sobel_x)
        out = conv.compute(edge_image)
        assert out.to_2d() == tensor([[4.0, 4.0, 0.0]] * 3)

    def test_zero_padding(self):
        conv = Convolution(1, (3, 3, 1), padding=1, activation=Activation.RELU)
        conv.set_filter(0, ones((3, 3, 1)))
        out = conv.compute(ones((3, 3, 1)))
        assert out.to_2d() == tensor(
            [[4.0, 6.0, 4.0], [6.0, 9.0, 6.0], [4.0, 6.0, 4.0]]
        )

    def test_bias_is_added(self):
        conv = Convolution(1, (1, 1, 1), activation=Activation.RELU)
        conv.set_filter(0, tensor3d([[1.0]]))
        conv.set_bias(0, 0.5)
        out = conv.compute(tensor3d([[1.0, 2.0]]))
        assert out.to_2d() == tensor([[1.5, 2.5]])

    def test_filters_span_input_layers(self):
        image = tensor([[[1.0, 10.0]]])
        out = filter_bank(image, [tensor([[[1.0, 1.0]]]), tensor([[[2.0, 0.0]]])], [0.0, 1.0])
        assert out == tensor([[[11.0, 3.0]]])

    def test_activation_runs_per_layer(self):
        conv = Convolution(2, (1, 1, 1), activation=Activation.RELU_NORMALIZED)
        conv.set_filter(0, tensor3d([[2.0]]))
        conv.set_filter(1, tensor3d([[4.0]]))
        out = conv.compute(ones((2, 2, 1)))
        assert out == ones((2, 2, 2))

    def test_sigmoid_output_range(self):
        conv = Convolution(3, (2, 2, 1), seed=0)
        values = conv.compute(ones((4, 4, 1))).to_numpy()
        assert values.min() > 0.0 and values.max() < 1.0

    def test_set_filter_shape(self):
        conv = Convolution(1, (3, 3, 1))
        with pytest.raises(MalformedInput):
            conv.set_filter(0, zeros((2, 2, 1)))

    @pytest.mark.parametrize("index", [-1, 1])
    def test_set_filter_index_out_of_range(self, sobel_x, index):
        conv = Convolution(1, (3, 3, 1), seed=0)
        before = conv.filters[0].copy()
        with pytest.raises(IndexOutOfRange) as info:
            conv.set_filter(index, sobel_x)
        assert info.value.shape == (1,)
        assert conv.filters[0] == before

    @pytest.mark.parametrize("index", [-1, 1])
    def test_set_bias_index_out_of_range(self, index):
        conv = Convolution(1, (3, 3, 1))
        with pytest.raises(IndexOutOfRange):
            conv.set_bias(index, 2.0)
        assert conv.biases == [0.0]

    def test_set_filter_copies(self, sobel_x):
        conv = Convolution(1, (3, 3, 1))
        conv.set_filter(0, sobel_x)
        sobel_x[(0, 0, 0)] = 100.0
        assert conv.filters[0][(0, 0, 0)] == -1.0

    def test_seeded_filters(self):
        assert Convolution(2, (3, 3, 1), seed=4).filters == Convolution(
            2, (3, 3, 1), seed=4
        ).filters

    def test_relu_filters_are_positive(self):
        conv = Convolution(4, (3, 3, 2), activation=Activation.RELU, seed=1)
        for f in conv.filters:
            assert f.to_numpy().min() >= 0.001


@pytest.mark.unit
class TestPooling:
    def test_average(self):
        window = tensor3d([[1.0, 2.0], [3.0, 4.0]])
        assert avgpool2d(window, 2, 2)[(0, 0, 0)] == 2.5

    def test_max(self):
        window = tensor3d([[1.0, 2.0], [3.0, 4.0]])
        assert maxpool2d(window, 2, 2)[(0, 0, 0)] == 4.0

    def test_strided_max(self):
        t = tensor3d(
            [
                [1.0, 2.0, 5.0, 0.0],
                [3.0, 4.0, 1.0, 1.0],
                [0.0, 0.0, 2.0, 2.0],
                [0.0, -1.0, 2.0, 2.0],
            ]
        )
        out = pool2d(t, 2, 2, Pooling.MAX)
        assert out.to_2d() == tensor([[4.0, 5.0], [0.0, 2.0]])

    def test_overlapping_windows(self):
        t = tensor3d([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        out = avgpool2d(t, 2, 1)
        assert out.to_2d() == tensor([[3.0, 4.0]])

    def test_windows_stay_inside(self):
        t = zeros((5, 5, 1))
        assert pooled_shape(t.shape, 2, 2) == (2, 2, 1)
        assert pool2d(t, 2, 2, Pooling.MAX).shape == (2, 2, 1)

    def test_layers_pool_independently(self):
        t = tensor([[[1.0, -1.0], [2.0, -2.0]], [[3.0, -3.0], [4.0, -4.0]]])
        out = maxpool2d(t, 2, 2)
        assert out == tensor([[[4.0, -1.0]]])

    def test_pool_larger_than_input(self):
        with pytest.raises(ShapeMismatch):
            maxpool2d(zeros((1, 1, 1)), 2, 1)


@pytest.mark.integration
class TestConvolutionalNetwork:
    def test_chain(self):
        first = Convolution(2, (3, 3, 1), activation=Activation.RELU, seed=1)
        second = Convolution(
            1, (3, 3, 2), pool_size=2, pool_stride=1, pooling=Pooling.AVERAGE, seed=2
        )
        cnn = ConvolutionalNetwork([first, second])
        image = ones((6, 6, 1))

        assert cnn.output_shape((6, 6, 1)) == (1, 1, 1)
        out = cnn.compute(image)
        assert isinstance(out, Tensor3D)
        assert out.shape == (1, 1, 1)
        assert out == second.compute(first.compute(image))

    def test_stages_are_copied(self, edge_image, sobel_x):
        conv = Convolution(1, (3, 3, 1), activation=Activation.RELU)
        conv.set_filter(0, sobel_x)
        cnn = ConvolutionalNetwork([conv])
        before = cnn.compute(edge_image)

        conv.set_filter(0, zeros((3, 3, 1)))
        assert cnn.compute(edge_image) == before
        assert conv.compute(edge_image) != before

    def test_copy_is_deep(self):
        conv = Convolution(1, (2, 2, 1), seed=0)
        twin = conv.copy()
        twin.set_bias(0, 3.0)
        twin.filters[0][(0, 0, 0)] = 9.0
        assert conv.biases == [0.0]
        assert conv.filters[0][(0, 0, 0)] != 9.0
        assert repr(twin) == repr(conv)

    def test_empty_network(self):
        with pytest.raises(MalformedInput):
            ConvolutionalNetwork([])

    def test_stage_shapes_are_logged(self, caplog):
        cnn = ConvolutionalNetwork([Convolution(1, (2, 2, 1), seed=0)])
        with caplog.at_level(logging.DEBUG, logger="scratchnet.cnn"):
            cnn.compute(ones((3, 3, 1)))
        assert "filtered (2, 2, 1)" in caplog.text
