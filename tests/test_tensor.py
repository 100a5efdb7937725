"""
test_tensor.py
~~~~~~~~~~~~~~

Unit tests for the 2D and 3D tensor algebra.
"""

import numpy as np
import numpy.testing as npt
import pytest

from scratchnet import (
    IndexOutOfRange,
    ShapeMismatch,
    Tensor2D,
    Tensor3D,
    tensor,
    tensor3d,
    zeros,
)


@pytest.fixture
def a():
    return tensor([[1.0, 2.0], [3.0, 4.0]])


@pytest.fixture
def b():
    return tensor([[5.0, 6.0], [7.0, 8.0]])


@pytest.fixture
def cube():
    """2 x 2 x 2 with layer 0 = [[1, 2], [3, 4]] and layer 1 = [[5, 6], [7, 8]]."""
    return tensor([[[1.0, 5.0], [2.0, 6.0]], [[3.0, 7.0], [4.0, 8.0]]])


@pytest.mark.unit
class TestElementwise:
    def test_add_subtract(self, a, b):
        assert a + b == tensor([[6.0, 8.0], [10.0, 12.0]])
        assert b - a == tensor([[4.0, 4.0], [4.0, 4.0]])

    def test_hadamard(self, a, b):
        assert a * b == tensor([[5.0, 12.0], [21.0, 32.0]])
        assert a.hadamard_multiply(b) == a * b

    def test_scalar_multiply_and_divide(self, a):
        assert a * 2.0 == tensor([[2.0, 4.0], [6.0, 8.0]])
        assert 2.0 * a == a * 2.0
        assert a.multiply(2.0) == a * 2.0
        assert a / 2.0 == tensor([[0.5, 1.0], [1.5, 2.0]])

    def test_pow_abs_neg(self, a):
        assert a**2 == tensor([[1.0, 4.0], [9.0, 16.0]])
        assert abs(tensor([[-1.0, 2.0]])) == tensor([[1.0, 2.0]])
        assert -a == tensor([[-1.0, -2.0], [-3.0, -4.0]])

    def test_sum_entries(self, a, cube):
        assert a.sum_entries() == 10.0
        assert cube.sum_entries() == 36.0

    def test_operations_do_not_mutate_operands(self, a, b):
        before = a.copy()
        _ = a + b
        _ = a @ b
        _ = a * 3.0
        assert a == before

    def test_elementwise_shape_mismatch(self, a):
        with pytest.raises(ShapeMismatch) as info:
            a + tensor([[1.0, 2.0, 3.0]])
        assert info.value.a_shape == (2, 2)
        assert info.value.b_shape == (1, 3)
        assert info.value.operation == "addition"
        assert "2x2" in str(info.value) and "1x3" in str(info.value)

        with pytest.raises(ShapeMismatch):
            a - tensor([[1.0], [2.0]])
        with pytest.raises(ShapeMismatch):
            a * tensor([[1.0], [2.0]])

    def test_2d_and_3d_never_combine(self, a):
        with pytest.raises(ShapeMismatch):
            a + a.to_3d()


@pytest.mark.unit
class TestLinearAlgebra:
    def test_matmul(self, a, b):
        assert a @ b == tensor([[19.0, 22.0], [43.0, 50.0]])
        assert a.multiply(b) == a @ b

    def test_matmul_shape_law(self):
        x = zeros((3, 4))
        y = zeros((4, 2))
        assert (x @ y).shape == (3, 2)
        assert isinstance(x @ y, Tensor2D)

    def test_matmul_inner_mismatch(self):
        with pytest.raises(ShapeMismatch) as info:
            zeros((2, 3)) @ zeros((2, 3))
        assert info.value.operation == "multiplication"

    def test_matmul_layer_by_layer(self, a, b):
        identity = tensor([[1.0, 0.0], [0.0, 1.0]])
        left = zeros((2, 2, 2))
        left.set_layer(0, a.to_3d())
        left.set_layer(1, identity.to_3d())
        right = zeros((2, 2, 2))
        right.set_layer(0, b.to_3d())
        right.set_layer(1, b.to_3d())

        out = left @ right
        assert isinstance(out, Tensor3D)
        layers = out.get_layers()
        assert layers[0].to_2d() == a @ b
        assert layers[1].to_2d() == b

    def test_matmul_layer_mismatch(self):
        with pytest.raises(ShapeMismatch):
            zeros((2, 2, 2)) @ zeros((2, 2, 3))

    def test_transpose(self):
        t = tensor([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        assert t.T.shape == (3, 2)
        assert t.T == tensor([[1.0, 4.0], [2.0, 5.0], [3.0, 6.0]])
        assert t.T.T == t

    def test_transpose_of_product(self, a, b):
        assert (a @ b).T == b.T @ a.T


@pytest.mark.unit
class TestIndexing:
    def test_get_and_set(self, a):
        assert a.get(1, 0) == 3.0
        assert a[(0, 1)] == 2.0
        a.set(1, 1, 9.0)
        a[(0, 0)] = -1.0
        assert a == tensor([[-1.0, 2.0], [3.0, 9.0]])

    def test_out_of_range(self, a):
        with pytest.raises(IndexOutOfRange):
            a[(2, 0)]
        with pytest.raises(IndexOutOfRange):
            a.set(-1, 0, 1.0)
        with pytest.raises(IndexOutOfRange):
            a.get(0, 2)

    def test_indices_are_row_major(self):
        assert list(zeros((2, 2)).indices()) == [(0, 0), (0, 1), (1, 0), (1, 1)]

    def test_index_of_max_first_occurrence(self):
        assert tensor([[1.0, 5.0], [5.0, 2.0]]).index_of_max() == (0, 1)

    def test_index_of_max_all_negative(self):
        assert tensor([[-3.0, -1.0], [-2.0, -5.0]]).index_of_max() == (0, 1)

    def test_index_of_max_scans_layers_last(self):
        t = tensor([[[1.0, 3.0], [3.0, 0.0]]])
        assert t.index_of_max() == (0, 0, 1)

    def test_index_of_max_empty(self):
        with pytest.raises(IndexOutOfRange):
            zeros((0, 3)).index_of_max()


@pytest.mark.unit
class TestSlices:
    def test_rows_and_columns(self, a):
        assert a.get_rows()[1] == tensor([[3.0, 4.0]])
        assert a.get_columns()[0] == tensor([[1.0], [3.0]])

    def test_set_row_and_column(self, a):
        a.set_row(0, tensor([[9.0, 8.0]]))
        a.set_column(1, tensor([[0.0], [0.0]]))
        assert a == tensor([[9.0, 0.0], [3.0, 0.0]])

    def test_set_row_errors(self, a):
        with pytest.raises(ShapeMismatch):
            a.set_row(0, tensor([[1.0, 2.0, 3.0]]))
        with pytest.raises(IndexOutOfRange):
            a.set_row(5, tensor([[1.0, 2.0]]))
        with pytest.raises(ShapeMismatch):
            a.set_column(0, tensor([[1.0], [2.0], [3.0]]))

    def test_3d_slices(self, cube):
        assert cube.get_layers()[1].to_2d() == tensor([[5.0, 6.0], [7.0, 8.0]])
        assert cube.get_rows()[0].shape == (1, 2, 2)
        assert cube.get_columns()[1].shape == (2, 1, 2)

        cube.set_layer(0, zeros((2, 2, 1)))
        assert cube.get_layers()[0].sum_entries() == 0.0
        with pytest.raises(ShapeMismatch):
            cube.set_layer(0, zeros((3, 2, 1)))
        with pytest.raises(IndexOutOfRange):
            cube.set_layer(2, zeros((2, 2, 1)))

    def test_2d_sub_tensor_is_strict(self, a):
        assert a.sub_tensor(0, 0, 1, 2) == tensor([[1.0, 2.0]])
        with pytest.raises(IndexOutOfRange):
            a.sub_tensor(0, 0, 3, 2)
        with pytest.raises(IndexOutOfRange):
            a.sub_tensor(-1, 0, 1, 1)

    def test_3d_sub_tensor_zero_fills(self, a):
        t = a.to_3d()
        window = t.sub_tensor(-1, -1, 0, 1, 1, 1)
        assert window.shape == (2, 2, 1)
        assert window.to_2d() == tensor([[0.0, 0.0], [0.0, 1.0]])

        outside = t.sub_tensor(5, 5, 0, 7, 7, 1)
        assert outside.sum_entries() == 0.0


@pytest.mark.unit
class TestConversions:
    def test_to_3d_and_back(self, a):
        t = a.to_3d()
        assert isinstance(t, Tensor3D)
        assert t.shape == (2, 2, 1)
        assert t.to_2d() == a

    def test_to_2d_needs_one_layer(self, cube):
        with pytest.raises(ShapeMismatch):
            cube.to_2d()

    def test_flatten_is_layer_major(self, cube):
        flat = cube.flatten()
        assert flat.shape == (8, 1)
        npt.assert_array_equal(flat.to_numpy()[:, 0], np.arange(1.0, 9.0))

    def test_tensor3d_lifts_2d_literals(self):
        assert tensor3d([[1.0, 2.0]]).shape == (1, 2, 1)

    def test_to_numpy(self, cube):
        arr = cube.to_numpy()
        assert arr.shape == (2, 2, 2)
        assert arr[1, 0, 1] == 7.0


@pytest.mark.unit
class TestComparison:
    def test_equality_is_exact(self, a):
        nudged = a + tensor([[1e-12, 0.0], [0.0, 0.0]])
        assert a != nudged
        assert a.is_close(nudged)
        assert not a.is_close(nudged, tol=0.0)

    def test_shapes_must_match(self, a):
        assert a != a.to_3d()
        assert not a.is_close(a.T.sub_tensor(0, 0, 1, 2))

    def test_unhashable(self, a):
        with pytest.raises(TypeError):
            hash(a)

    def test_copy_is_deep(self, a):
        c = a.copy()
        c[(0, 0)] = 100.0
        assert a[(0, 0)] == 1.0

    def test_repr(self, a):
        assert repr(a).startswith("Tensor2D")
        assert "4.00" in repr(a)
