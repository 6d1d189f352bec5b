"""Scoped access to a request tensor's backing memory."""

from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

import numpy as np

from frame_stylizer.engines.base import InferRequest, Precision
from frame_stylizer.errors import TensorViewError


class TensorView:
    """Non-owning view of one named tensor in an inference request.

    A view is valid exactly as long as the request that backs it. The session
    invalidates its views before releasing the request; any access after that
    raises ``TensorViewError``.

    Memory is only reachable through ``mapped()``, which yields an array
    aliasing the request buffer. On exit the yielded array is made read-only
    so a leaked reference cannot write into memory the backend may reuse.
    """

    def __init__(self, request: InferRequest, name: str):
        self.name = name
        self._request: Optional[InferRequest] = request
        self._mapped = False

    @property
    def is_valid(self) -> bool:
        return self._request is not None

    def invalidate(self) -> None:
        self._request = None

    def _tensor(self) -> np.ndarray:
        if self._request is None:
            raise TensorViewError(f"Tensor view {self.name!r} used after its request was released")
        return self._request.tensor(self.name)

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        shape = tuple(self._tensor().shape)
        if len(shape) != 4:
            raise TensorViewError(f"Tensor {self.name!r} is not (N, C, H, W): {shape}")
        return shape

    @property
    def batch(self) -> int:
        return self.shape[0]

    @property
    def channels(self) -> int:
        return self.shape[1]

    @property
    def height(self) -> int:
        return self.shape[2]

    @property
    def width(self) -> int:
        return self.shape[3]

    @property
    def pixel_count(self) -> int:
        _, _, height, width = self.shape
        return height * width

    @property
    def precision(self) -> Precision:
        return Precision.from_dtype(self._tensor().dtype)

    @contextmanager
    def mapped(self, write: bool = False) -> Iterator[np.ndarray]:
        """Lock the tensor memory for the duration of the ``with`` block.

        Args:
            write: Yield a writable array; otherwise it is read-only.

        Yields:
            Array of shape (N, C, H, W) aliasing the request buffer.
        """
        if self._mapped:
            raise TensorViewError(f"Tensor view {self.name!r} is already mapped")

        tensor = self._tensor()
        view = tensor.reshape(self.shape)
        if write and not np.shares_memory(view, tensor):
            raise TensorViewError(f"Tensor {self.name!r} is not contiguous")
        view.flags.writeable = write

        self._mapped = True
        try:
            yield view
        finally:
            view.flags.writeable = False
            self._mapped = False

    def __repr__(self) -> str:
        state = "valid" if self.is_valid else "released"
        return f"TensorView({self.name!r}, {state})"
