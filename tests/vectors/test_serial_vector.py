import numpy as np
import pytest

from spgmr.vectors import NVector, SerialVector, ThreadedVector


@pytest.fixture(scope="function", params=[SerialVector, ThreadedVector],
                ids=["serial", "threaded"])
def vector_class(request):
    return request.param


@pytest.fixture(scope="function")
def pair(vector_class, precision):
    x = vector_class(np.array([1.0, -2.0, 3.0, 4.0]), precision)
    y = vector_class(np.array([0.5, 4.0, -1.0, 2.0]), precision)
    return x, y


def test_constructor_copies_and_infers_precision():
    data = np.array([1.0, 2.0], dtype=np.float32)
    vector = SerialVector(data)
    assert vector.dtype == np.float32
    data[0] = 5.0
    assert vector.data[0] == 1.0
    assert SerialVector([1, 2]).dtype == np.float64


def test_constructor_rejects_bad_input():
    with pytest.raises(ValueError):
        SerialVector(np.zeros((2, 2)))
    with pytest.raises(ValueError):
        SerialVector([1.0], precision=np.int32)


def test_from_array_shares_memory():
    data = np.zeros(3)
    vector = SerialVector.from_array(data)
    vector.const(2.0)
    assert np.all(data == 2.0)
    with pytest.raises(ValueError):
        SerialVector.from_array(np.zeros(3, dtype=np.int64))


def test_clone_keeps_layout(pair, vector_class, precision):
    x, _ = pair
    clone = x.clone()
    assert type(clone) is vector_class
    assert clone.length == 4
    assert clone.dtype == precision
    assert clone.data is not x.data
    clones = x.clone_array(3)
    assert len(clones) == 3
    assert len({id(c.data) for c in clones}) == 3


@pytest.mark.parametrize("solver_settings_override",
                         [{"precision": np.float32}, {"precision": np.float64}],
                         ids=["float32", "float64"], indirect=True)
def test_elementwise_operations(pair, precision):
    x, y = pair
    z = x.clone()
    xd = x.data.astype(np.float64)
    yd = y.data.astype(np.float64)

    z.linear_sum(2.0, x, -1.0, y)
    assert np.allclose(z.data, 2.0 * xd - yd)
    z.prod(x, y)
    assert np.allclose(z.data, xd * yd)
    z.div(x, y)
    assert np.allclose(z.data, xd / yd)
    z.scale(-3.0, x)
    assert np.allclose(z.data, -3.0 * xd)
    z.const(7.0)
    assert np.all(z.data == 7.0)
    assert z.dtype == precision


def test_reductions(pair):
    x, y = pair
    assert x.dot(y) == pytest.approx(0.5 - 8.0 - 3.0 + 8.0)
    assert x.l2_norm() == pytest.approx(np.sqrt(30.0))
    products = x.dot_multi([x, y])
    assert products.dtype == np.float64
    assert np.allclose(products, [30.0, -2.5])


def test_linear_combination_aliasing_first_vector(pair):
    x, y = pair
    expected = 2.0 * x.data.astype(np.float64) + 3.0 * y.data
    x.linear_combination([2.0, 3.0], [x, y])
    assert np.allclose(x.data, expected)


def test_linear_combination_into_fresh_vector(pair):
    x, y = pair
    z = x.clone()
    z.linear_combination([1.0, -1.0, 0.5], [x, y, x])
    assert np.allclose(z.data, 1.5 * x.data - y.data)
    z.linear_combination([4.0], [y])
    assert np.allclose(z.data, 4.0 * y.data)
    with pytest.raises(ValueError):
        z.linear_combination([], [])


def test_space_and_compatibility(pair):
    x, y = pair
    assert x.space() == (4, 1)
    assert x.compatible_with(y)
    assert not x.compatible_with(SerialVector.zeros(5, x.dtype))
    other = np.float32 if x.dtype == np.float64 else np.float64
    assert not x.compatible_with(SerialVector.zeros(4, other))
    assert not x.compatible_with(np.zeros(4))


def test_nvector_default_space():
    class Minimal(NVector):
        length = 0
        dtype = np.dtype(np.float64)

        def clone(self):
            return self

        def linear_sum(self, a, x, b, y):
            pass

        def const(self, c):
            pass

        def prod(self, x, y):
            pass

        def div(self, x, y):
            pass

        def scale(self, c, x):
            pass

        def dot(self, y):
            return 0.0

    assert issubclass(Minimal, NVector)
    assert Minimal().space() == (0, 0)
