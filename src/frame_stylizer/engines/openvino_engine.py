"""OpenVINO inference engine.

Devices are OpenVINO device names (CPU, GPU, GPU.0, GPU.1, GNA, NPU, ...).
Input/output precisions are applied with the pre/post-processing API at
compile time, so the request tensors expose exactly the pinned precision.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from frame_stylizer.engines.base import (
    CompiledNetwork,
    InferenceEngine,
    InferRequest,
    NetworkGraph,
    Precision,
    TensorDesc,
)

try:
    import openvino as ov
    from openvino.preprocess import PrePostProcessor
    OPENVINO_AVAILABLE = True
except ImportError:
    ov = None
    PrePostProcessor = None
    OPENVINO_AVAILABLE = False


def _to_ov_type(precision: Precision):
    return {
        Precision.U8: ov.Type.u8,
        Precision.FP16: ov.Type.f16,
        Precision.FP32: ov.Type.f32,
    }[precision]


def _from_ov_type(element_type) -> Precision:
    if element_type == ov.Type.u8:
        return Precision.U8
    if element_type == ov.Type.f16:
        return Precision.FP16
    return Precision.FP32


def _port_name(port) -> str:
    try:
        return port.get_any_name()
    except RuntimeError:
        # Unnamed tensors fall back to the producing node's name
        return port.get_node().get_friendly_name()


def _port_shape(port) -> tuple:
    partial = port.get_partial_shape()
    return tuple(dim.get_length() if dim.is_static else -1 for dim in partial)


class OpenVINOGraph(NetworkGraph):
    """Wraps an ``ov.Model`` read from IR or ONNX."""

    def __init__(self, model):
        self.model = model
        self._input_precisions: Dict[str, Precision] = {}
        self._output_precisions: Dict[str, Precision] = {}

    def _describe(self, ports, pinned: Dict[str, Precision]) -> List[TensorDesc]:
        descs = []
        for port in ports:
            name = _port_name(port)
            precision = pinned.get(name, _from_ov_type(port.get_element_type()))
            descs.append(TensorDesc(name, precision, _port_shape(port)))
        return descs

    def inputs(self) -> List[TensorDesc]:
        return self._describe(self.model.inputs, self._input_precisions)

    def outputs(self) -> List[TensorDesc]:
        return self._describe(self.model.outputs, self._output_precisions)

    def reshape(self, shapes):
        self.model.reshape(
            {name: ov.PartialShape(list(shape)) for name, shape in shapes.items()}
        )

    def set_input_precision(self, name, precision):
        self._input_precisions[name] = precision

    def set_output_precision(self, name, precision):
        self._output_precisions[name] = precision

    def build(self):
        """Clone the model with the pinned precisions applied."""
        model = self.model.clone()
        if not self._input_precisions and not self._output_precisions:
            return model

        ppp = PrePostProcessor(model)
        for name, precision in self._input_precisions.items():
            ppp.input(name).tensor().set_element_type(_to_ov_type(precision))
        for name, precision in self._output_precisions.items():
            ppp.output(name).tensor().set_element_type(_to_ov_type(precision))
        return ppp.build()


class OpenVINORequest(InferRequest):
    def __init__(self, request):
        self._request = request

    def tensor(self, name: str) -> np.ndarray:
        if self._request is None:
            raise RuntimeError("Inference request already released.")
        return self._request.get_tensor(name).data

    def infer(self) -> None:
        if self._request is None:
            raise RuntimeError("Inference request already released.")
        self._request.infer()

    def release(self) -> None:
        self._request = None


class OpenVINOCompiled(CompiledNetwork):
    def __init__(self, compiled_model, device: str):
        self._compiled = compiled_model
        self._device = device

    @property
    def device(self) -> str:
        return self._device

    def create_infer_request(self) -> InferRequest:
        return OpenVINORequest(self._compiled.create_infer_request())

    def release(self) -> None:
        self._compiled = None


class OpenVINOEngine(InferenceEngine):
    """OpenVINO runtime engine.

    ``available_devices`` keeps OpenVINO's own ordering (CPU first, then
    accelerators), which is the most-general-first order the device registry
    expects.
    """

    def __init__(self, core: Optional["ov.Core"] = None):
        if not OPENVINO_AVAILABLE:
            raise ImportError(
                "openvino not available. Install with: pip install openvino"
            )
        self.core = core if core is not None else ov.Core()

    def available_devices(self) -> List[str]:
        return list(self.core.available_devices)

    def set_cache_dir(self, device: str, cache_dir: Union[str, Path]) -> None:
        self.core.set_property(device, {"CACHE_DIR": str(cache_dir)})

    def read_network(self, model_path: Union[str, Path]) -> NetworkGraph:
        return OpenVINOGraph(self.core.read_model(str(model_path)))

    def compile(self, graph: NetworkGraph, device: str) -> CompiledNetwork:
        if not isinstance(graph, OpenVINOGraph):
            raise TypeError(f"Expected OpenVINOGraph, got {type(graph).__name__}")
        compiled = self.core.compile_model(graph.build(), device)
        return OpenVINOCompiled(compiled, device)
