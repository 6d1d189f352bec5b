"""Inference session lifecycle.

States::

    UNBOUND -> COMPILING -> BOUND -> (RUNNING -> BOUND)* -> UNBOUND
                   |                      |
                   +-------> ERROR <------+

``bind`` is valid from UNBOUND, BOUND and ERROR. ``run`` is valid only in
BOUND. ``teardown`` is valid from any state and idempotent.
"""

import time
from enum import Enum
from typing import List, Optional

import numpy as np
from loguru import logger

from frame_stylizer.core.codec import FrameCodec
from frame_stylizer.core.devices import Device
from frame_stylizer.core.model import ModelHandle
from frame_stylizer.core.tensor_view import TensorView
from frame_stylizer.engines.base import CompiledNetwork, InferenceEngine, InferRequest
from frame_stylizer.errors import (
    CodecError,
    CompileError,
    InferenceError,
    SessionStateError,
)


class SessionState(Enum):
    UNBOUND = "unbound"
    COMPILING = "compiling"
    BOUND = "bound"
    RUNNING = "running"
    ERROR = "error"


class _Binding:
    """Compiled artifact, request and views for one (model, device) pair.

    Constructed completely or not at all.
    """

    def __init__(self, model: ModelHandle, device: Device, compiled: CompiledNetwork):
        self.model = model
        self.device = device
        self.compiled = compiled
        self.generation = model.generation
        self.request: Optional[InferRequest] = None
        try:
            self.request = compiled.create_infer_request()
            self.input_views = [TensorView(self.request, desc.name) for desc in model.image_inputs()]
            self.output_view = TensorView(self.request, model.primary_output_name)
        except Exception:
            self.release()
            raise

    def release(self) -> None:
        # Views go first so nothing touches request memory after it is freed
        for view in getattr(self, "input_views", []):
            view.invalidate()
        output_view = getattr(self, "output_view", None)
        if output_view is not None:
            output_view.invalidate()
        try:
            if self.request is not None:
                request, self.request = self.request, None
                request.release()
        finally:
            self.compiled.release()


class InferenceSession:
    """Binds a model to one device and runs one frame at a time.

    Failed frames raise ``InferenceError`` and return the session to BOUND.
    After ``max_consecutive_failures`` failures in a row the device is
    presumed lost and the session moves to ERROR; the caller must rebind.

    Attributes:
        frames: Frames processed successfully since the last bind.
        last_inference_ms: Duration of the last ``infer`` call.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        codec: Optional[FrameCodec] = None,
        max_consecutive_failures: int = 3,
    ):
        self.engine = engine
        self.codec = codec if codec is not None else FrameCodec()
        self.max_consecutive_failures = max_consecutive_failures
        self.frames = 0
        self.last_inference_ms = 0.0
        self.last_error: Optional[Exception] = None

        self._state = SessionState.UNBOUND
        self._binding: Optional[_Binding] = None
        self._failures = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def device(self) -> Optional[Device]:
        """Device of the current (possibly stale) binding."""
        return self._binding.device if self._binding else None

    @property
    def model(self) -> Optional[ModelHandle]:
        return self._binding.model if self._binding else None

    @property
    def input_views(self) -> List[TensorView]:
        self._require_bound()
        return list(self._binding.input_views)

    @property
    def output_view(self) -> TensorView:
        self._require_bound()
        return self._binding.output_view

    def _require_bound(self) -> None:
        if self._state is not SessionState.BOUND:
            raise SessionStateError(f"Session is {self._state.value}, expected bound")

    def bind(self, model: ModelHandle, device: Device) -> str:
        """Compile ``model`` for ``device`` and create the inference request.

        On failure the session enters ERROR and raises ``CompileError``. A
        previous binding is kept (stale) so the caller can ``resume()`` it.

        Returns:
            The bound device name.
        """
        if self._state in (SessionState.COMPILING, SessionState.RUNNING):
            raise SessionStateError(f"Cannot bind while {self._state.value}")

        self._state = SessionState.COMPILING
        logger.info(f"Compiling {model.path.name if model.path else 'model'} for {device.name}")
        start = time.perf_counter()
        try:
            compiled = self.engine.compile(model.graph, device.name)
            binding = _Binding(model, device, compiled)
        except Exception as e:
            self._state = SessionState.ERROR
            self.last_error = e
            logger.error(f"Compilation for {device.name} failed: {e}")
            raise CompileError(f"Cannot compile model for {device.name}: {e}") from e

        if self._binding is not None:
            self._binding.release()
        self._binding = binding
        self._failures = 0
        self.frames = 0
        self._state = SessionState.BOUND
        logger.info(f"Bound to {device.name} in {(time.perf_counter() - start) * 1000:.0f} ms")
        return device.name

    def resume(self) -> str:
        """Return to BOUND on the previous binding after a failed rebind.

        Raises:
            SessionStateError: Not in ERROR, or there is nothing to resume.
        """
        if self._state is not SessionState.ERROR or self._binding is None:
            raise SessionStateError("No previous binding to resume")
        if self._binding.generation != self._binding.model.generation:
            raise SessionStateError("Model was reshaped since the previous bind")
        self._failures = 0
        self._state = SessionState.BOUND
        logger.info(f"Resumed on {self._binding.device.name}")
        return self._binding.device.name

    def run(self, input_pixels: np.ndarray, output_pixels: Optional[np.ndarray] = None) -> None:
        """Stylize one frame.

        Args:
            input_pixels: (H, W, C_src) uint8 frame.
            output_pixels: Destination frame; defaults to ``input_pixels``
                (in place). Left untouched if the frame fails.

        Raises:
            SessionStateError: Not BOUND, or the model changed since bind.
            CodecError: Frame geometry does not match the tensors.
            InferenceError: The backend failed on this frame.
        """
        self._require_bound()
        binding = self._binding
        if binding.generation != binding.model.generation:
            raise SessionStateError("Model was reshaped since bind; rebind first")
        if output_pixels is None:
            output_pixels = input_pixels

        self._state = SessionState.RUNNING
        try:
            for view in binding.input_views:
                self.codec.encode(input_pixels, view)
            start = time.perf_counter()
            binding.request.infer()
            self.last_inference_ms = (time.perf_counter() - start) * 1000
            self.codec.decode(binding.output_view, output_pixels)
        except CodecError:
            self._state = SessionState.BOUND
            raise
        except Exception as e:
            self._failures += 1
            self.last_error = e
            if self._failures >= self.max_consecutive_failures:
                self._state = SessionState.ERROR
                logger.error(
                    f"{self._failures} consecutive failures on {binding.device.name}, session disabled: {e}"
                )
            else:
                self._state = SessionState.BOUND
                logger.warning(f"Frame failed on {binding.device.name}: {e}")
            raise InferenceError(f"Inference on {binding.device.name} failed: {e}") from e

        self._failures = 0
        self.frames += 1
        self._state = SessionState.BOUND

    def teardown(self) -> None:
        """Release the compiled artifact and request."""
        binding, self._binding = self._binding, None
        self._failures = 0
        self._state = SessionState.UNBOUND
        if binding is not None:
            logger.debug(f"Releasing session on {binding.device.name}")
            binding.release()

    def __enter__(self) -> "InferenceSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()
