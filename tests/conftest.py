"""
Pytest configuration and fixtures.

``FakeEngine`` is an in-memory engine whose model copies its input to its
output (optionally through ``transform``), so the session state machine and
the codec can be tested without a real runtime.
"""
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import numpy as np
import pytest

from frame_stylizer.core.devices import Device
from frame_stylizer.core.model import ModelHandle
from frame_stylizer.core.tensor_view import TensorView
from frame_stylizer.engines.base import (
    CompiledNetwork,
    InferenceEngine,
    InferRequest,
    NetworkGraph,
    Precision,
    TensorDesc,
)

FAKE_MODEL_TEXT = "fake-model"


class FakeGraph(NetworkGraph):
    def __init__(self, inputs: Dict[str, Tuple[int, ...]], outputs: Dict[str, Tuple[int, ...]], max_side: int = 1024):
        self._inputs = dict(inputs)
        self._outputs = dict(outputs)
        self.input_precisions: Dict[str, Precision] = {}
        self.output_precisions: Dict[str, Precision] = {}
        self.max_side = max_side

    def inputs(self):
        return [
            TensorDesc(name, self.input_precisions.get(name, Precision.FP32), shape)
            for name, shape in self._inputs.items()
        ]

    def outputs(self):
        return [
            TensorDesc(name, self.output_precisions.get(name, Precision.FP32), shape)
            for name, shape in self._outputs.items()
        ]

    def reshape(self, shapes):
        for name, shape in shapes.items():
            if name not in self._inputs:
                raise KeyError(name)
            if any(size > self.max_side for size in shape[2:]):
                raise RuntimeError(f"shape inference failed for {shape}")
        self._inputs.update({name: tuple(shape) for name, shape in shapes.items()})

        batch, _, height, width = next(iter(self._inputs.values()))
        for name, shape in self._outputs.items():
            self._outputs[name] = (batch, shape[1], height, width)

    def set_input_precision(self, name, precision):
        self.input_precisions[name] = precision

    def set_output_precision(self, name, precision):
        self.output_precisions[name] = precision


class FakeRequest(InferRequest):
    def __init__(self, engine: "FakeEngine", graph: FakeGraph):
        self.engine = engine
        self.tensors = {
            desc.name: np.zeros(desc.shape, dtype=desc.precision.dtype)
            for desc in graph.inputs() + graph.outputs()
        }
        self.input_name = graph.inputs()[0].name
        self.output_name = graph.outputs()[0].name
        self.released = False

    def tensor(self, name):
        if self.released:
            raise RuntimeError("request released")
        return self.tensors[name]

    def infer(self):
        self.engine.infer_calls += 1
        if self.engine.infer_error is not None:
            raise self.engine.infer_error
        source = self.tensors[self.input_name].astype(np.float32)
        self.tensors[self.output_name][...] = self.engine.transform(source)

    def release(self):
        self.released = True


class FakeCompiled(CompiledNetwork):
    def __init__(self, engine, graph, device):
        self._engine = engine
        self._graph = graph
        self._device = device
        self.released = False

    @property
    def device(self):
        return self._device

    def create_infer_request(self):
        request = FakeRequest(self._engine, self._graph)
        self._engine.requests.append(request)
        return request

    def release(self):
        self.released = True


class FakeEngine(InferenceEngine):
    def __init__(self, devices=("CPU", "GPU.0", "GNA"), max_side: int = 1024):
        self.devices = list(devices)
        self.max_side = max_side
        self.query_error: Optional[Exception] = None
        self.cache_error: Optional[Exception] = None
        self.compile_errors: Dict[str, Exception] = {}
        self.infer_error: Optional[Exception] = None
        self.transform: Callable[[np.ndarray], np.ndarray] = lambda x: x
        self.cache_dirs: Dict[str, str] = {}
        self.compiled = []
        self.requests = []
        self.infer_calls = 0

    def available_devices(self):
        if self.query_error is not None:
            raise self.query_error
        return list(self.devices)

    def set_cache_dir(self, device, cache_dir):
        if self.cache_error is not None:
            raise self.cache_error
        self.cache_dirs[device] = str(cache_dir)

    def read_network(self, model_path):
        if Path(model_path).read_text().strip() != FAKE_MODEL_TEXT:
            raise RuntimeError("malformed model")
        return FakeGraph(
            {"input": (4, 3, 8, 8)},
            {"output": (4, 3, 8, 8)},
            max_side=self.max_side,
        )

    def compile(self, graph, device):
        if device in self.compile_errors:
            raise self.compile_errors[device]
        compiled = FakeCompiled(self, graph, device)
        self.compiled.append(compiled)
        return compiled


class DictRequest(InferRequest):
    """Request over plain arrays, for codec and view tests."""

    def __init__(self, **tensors):
        self.tensors = tensors

    def tensor(self, name):
        return self.tensors[name]

    def infer(self):
        pass


def make_view(shape, dtype=np.float32, name="t", fill=None) -> TensorView:
    array = np.zeros(shape, dtype=dtype) if fill is None else np.asarray(fill, dtype=dtype).reshape(shape)
    return TensorView(DictRequest(**{name: array}), name)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def model_file(tmp_path) -> Path:
    path = tmp_path / "style.xml"
    path.write_text(FAKE_MODEL_TEXT)
    return path


@pytest.fixture
def model(engine, model_file) -> ModelHandle:
    """Model reshaped to 4x2 (no stride alignment)."""
    handle = ModelHandle.load(engine, model_file, alignment=1)
    handle.reshape(4, 2)
    return handle


@pytest.fixture
def cpu() -> Device:
    return Device("CPU")


@pytest.fixture
def rgba_frame() -> np.ndarray:
    """2x4 RGBA frame with distinct samples and a non-opaque alpha."""
    rng = np.random.default_rng(7)
    frame = rng.integers(0, 256, size=(2, 4, 4), dtype=np.uint8)
    frame[..., 3] = 17
    return frame


def build_identity_model(path, batch=1):
    """Save an ONNX model (N, 3, height, width) -> same shape.

    Uses Relu so the op survives graph import; it is the identity for pixel
    samples, which are never negative.
    """
    import onnx
    from onnx import TensorProto, helper

    dims = [batch, 3, "height", "width"]
    node = helper.make_node("Relu", ["input"], ["output"])
    graph = helper.make_graph(
        [node],
        "identity",
        [helper.make_tensor_value_info("input", TensorProto.FLOAT, dims)],
        [helper.make_tensor_value_info("output", TensorProto.FLOAT, dims)],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.save(model, str(path))
    return path
