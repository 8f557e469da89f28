"""Numpy-backed vectors with Numba-compiled element loops."""

from typing import Optional, Sequence, Union

import numpy as np
from numpy.typing import ArrayLike

from spgmr._utils import PrecisionDType, ALLOWED_PRECISIONS
from spgmr.vectors.base_vector import NVector
from spgmr.vectors.kernels import PARALLEL_KERNELS, SERIAL_KERNELS


class SerialVector(NVector):
    """Vector stored in a contiguous one-dimensional numpy array.

    Parameters
    ----------
    data : array_like
        Initial entries. Copied into a new C-contiguous array.
    precision : PrecisionDType, optional
        Floating point type of the entries. Defaults to the dtype of
        ``data`` when it is float32/float64, otherwise float64.

    Examples
    --------
    >>> v = SerialVector([3.0, 4.0])
    >>> v.l2_norm()
    5.0
    """

    kernels = SERIAL_KERNELS

    def __init__(
        self,
        data: ArrayLike,
        precision: Optional[PrecisionDType] = None,
    ) -> None:
        array = np.asarray(data)
        if precision is None:
            precision = (array.dtype
                         if array.dtype in ALLOWED_PRECISIONS
                         else np.float64)
        dtype = np.dtype(precision)
        if dtype not in ALLOWED_PRECISIONS:
            raise ValueError(
                f"precision must be np.float32 or np.float64, got {dtype}"
            )
        array = np.ascontiguousarray(array, dtype=dtype)
        if array.ndim != 1:
            raise ValueError("Expected a one-dimensional array of entries.")
        self._data = array.copy() if array is data else array

    @classmethod
    def zeros(cls, n: int, precision: PrecisionDType = np.float64):
        """Return a vector of ``n`` zeros."""
        return cls(np.zeros(n, dtype=precision))

    @classmethod
    def from_array(cls, array: np.ndarray) -> "SerialVector":
        """Wrap ``array`` without copying when it is already suitable.

        Writes through the vector are then visible in ``array``.
        """
        vector = cls.__new__(cls)
        array = np.asarray(array)
        if (array.dtype not in ALLOWED_PRECISIONS or array.ndim != 1
                or not array.flags.c_contiguous):
            raise ValueError(
                "from_array needs a contiguous 1D float32/float64 array"
            )
        vector._data = array
        return vector

    @property
    def data(self) -> np.ndarray:
        """Return the underlying numpy array."""
        return self._data

    @property
    def length(self) -> int:
        return self._data.shape[0]

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    def __len__(self) -> int:
        return self._data.shape[0]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    def _scalar(self, value) -> Union[np.float32, np.float64]:
        return self._data.dtype.type(value)

    def clone(self) -> "SerialVector":
        return type(self).from_array(np.zeros_like(self._data))

    def space(self) -> tuple[int, int]:
        return self.length, 1

    def linear_sum(self, a, x: "SerialVector", b, y: "SerialVector") -> None:
        self.kernels["linear_sum"](
            self._scalar(a), x.data, self._scalar(b), y.data, self._data
        )

    def const(self, c) -> None:
        self.kernels["const"](self._scalar(c), self._data)

    def prod(self, x: "SerialVector", y: "SerialVector") -> None:
        self.kernels["prod"](x.data, y.data, self._data)

    def div(self, x: "SerialVector", y: "SerialVector") -> None:
        self.kernels["div"](x.data, y.data, self._data)

    def scale(self, c, x: "SerialVector") -> None:
        self.kernels["scale"](self._scalar(c), x.data, self._data)

    def dot(self, y: "SerialVector") -> float:
        return float(self.kernels["dot"](self._data, y.data))

    def dot_multi(self, vectors: Sequence["SerialVector"]) -> np.ndarray:
        dot = self.kernels["dot"]
        products = np.empty(len(vectors), dtype=np.float64)
        for index, vector in enumerate(vectors):
            products[index] = dot(self._data, vector.data)
        return products


class ThreadedVector(SerialVector):
    """:class:`SerialVector` whose loops run on Numba's thread pool.

    The number of threads follows ``numba.set_num_threads`` /
    ``NUMBA_NUM_THREADS``; the solver is unaware of the parallelism.
    """

    kernels = PARALLEL_KERNELS
