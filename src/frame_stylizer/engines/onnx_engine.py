"""ONNX Runtime inference engine.

Execution providers are exposed as devices (CPU, GPU.CUDA, GPU.TensorRT, ...).
Reshaping rewrites the graph input dimensions and runs ONNX shape inference,
so an incompatible resolution is rejected before anything is compiled.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from loguru import logger

from frame_stylizer.engines.base import (
    CompiledNetwork,
    InferenceEngine,
    InferRequest,
    NetworkGraph,
    Precision,
    TensorDesc,
)

try:
    import onnx
    import onnxruntime as ort
    ONNX_AVAILABLE = True
except ImportError:
    onnx = None
    ort = None
    ONNX_AVAILABLE = False


# Provider -> device identifier. GPU-class providers share the "GPU." prefix
# so the registry's cache pattern applies to them.
PROVIDER_DEVICES = {
    "CPUExecutionProvider": "CPU",
    "XnnpackExecutionProvider": "XNNPACK",
    "NnapiExecutionProvider": "NNAPI",
    "CoreMLExecutionProvider": "CoreML",
    "OpenVINOExecutionProvider": "OpenVINO",
    "DmlExecutionProvider": "GPU.DirectML",
    "ROCMExecutionProvider": "GPU.ROCm",
    "CUDAExecutionProvider": "GPU.CUDA",
    "TensorrtExecutionProvider": "GPU.TensorRT",
}

# Not compute devices
IGNORED_PROVIDERS = {"AzureExecutionProvider"}

_ORT_TYPES = {
    "tensor(uint8)": np.uint8,
    "tensor(float16)": np.float16,
    "tensor(float)": np.float32,
}


def provider_to_device(provider: str) -> str:
    return PROVIDER_DEVICES.get(provider, provider.replace("ExecutionProvider", ""))


def device_to_provider(device: str) -> str:
    for provider, name in PROVIDER_DEVICES.items():
        if name == device:
            return provider
    return f"{device}ExecutionProvider"


def cache_provider_options(provider: str, cache_dir: Optional[str]) -> Dict[str, str]:
    """Provider options that enable the compiled-artifact cache, if supported."""
    if cache_dir is None:
        return {}
    if provider == "TensorrtExecutionProvider":
        return {"trt_engine_cache_enable": "True", "trt_engine_cache_path": cache_dir}
    if provider == "OpenVINOExecutionProvider":
        return {"cache_dir": cache_dir}
    return {}


def _value_desc(value, pinned: Dict[str, Precision]) -> TensorDesc:
    tensor_type = value.type.tensor_type
    shape = tuple(
        dim.dim_value if dim.HasField("dim_value") else -1
        for dim in tensor_type.shape.dim
    )
    if value.name in pinned:
        precision = pinned[value.name]
    else:
        try:
            precision = Precision.from_dtype(
                onnx.helper.tensor_dtype_to_np_dtype(tensor_type.elem_type)
            )
        except ValueError:
            precision = Precision.FP32
    return TensorDesc(value.name, precision, shape)


class OnnxGraph(NetworkGraph):
    """Wraps an ``onnx.ModelProto``."""

    def __init__(self, proto):
        self.proto = proto
        self._input_precisions: Dict[str, Precision] = {}
        self._output_precisions: Dict[str, Precision] = {}

    def inputs(self) -> List[TensorDesc]:
        initializers = {init.name for init in self.proto.graph.initializer}
        return [
            _value_desc(value, self._input_precisions)
            for value in self.proto.graph.input
            if value.name not in initializers
        ]

    def outputs(self) -> List[TensorDesc]:
        return [
            _value_desc(value, self._output_precisions)
            for value in self.proto.graph.output
        ]

    def reshape(self, shapes: Dict[str, Tuple[int, ...]]) -> None:
        candidate = onnx.ModelProto()
        candidate.CopyFrom(self.proto)

        for value in candidate.graph.input:
            if value.name not in shapes:
                continue
            dims = value.type.tensor_type.shape.dim
            target = shapes[value.name]
            if len(dims) != len(target):
                raise ValueError(
                    f"Rank mismatch for {value.name}: model has {len(dims)}, got {len(target)}"
                )
            for dim, size in zip(dims, target):
                if size < 0:
                    continue  # leave dynamic
                dim.dim_value = int(size)

        # Let shape inference recompute everything downstream of the inputs
        for value in candidate.graph.output:
            value.type.tensor_type.ClearField("shape")
        del candidate.graph.value_info[:]

        inferred = onnx.shape_inference.infer_shapes(
            candidate, check_type=True, strict_mode=True
        )

        # Some onnx versions only record inferred output shapes in value_info
        value_infos = {value.name: value for value in inferred.graph.value_info}
        for value in inferred.graph.output:
            if not value.type.tensor_type.HasField("shape") and value.name in value_infos:
                value.type.CopyFrom(value_infos[value.name].type)

        self.proto = inferred

    def set_input_precision(self, name, precision):
        self._input_precisions[name] = precision

    def set_output_precision(self, name, precision):
        self._output_precisions[name] = precision


class OnnxRequest(InferRequest):
    """Request with numpy-owned tensors in the pinned precisions.

    Inputs are cast to the model's own element type when fed to the session.
    """

    def __init__(self, session, inputs: List[TensorDesc], outputs: List[TensorDesc]):
        self._session = session
        self._feed_types = {
            info.name: np.dtype(_ORT_TYPES.get(info.type, np.float32))
            for info in session.get_inputs()
        }
        self._output_precisions = {desc.name: desc.precision for desc in outputs}
        self._tensors: Dict[str, np.ndarray] = {}

        for desc in inputs:
            if any(size < 0 for size in desc.shape):
                raise ValueError(
                    f"Input {desc.name} has dynamic shape {desc.shape}; reshape before compiling"
                )
            self._tensors[desc.name] = np.zeros(desc.shape, dtype=desc.precision.dtype)

        for desc in outputs:
            if all(size > 0 for size in desc.shape):
                self._tensors[desc.name] = np.zeros(desc.shape, dtype=desc.precision.dtype)

    def tensor(self, name: str) -> np.ndarray:
        if self._session is None:
            raise RuntimeError("Inference request already released.")
        if name not in self._tensors:
            raise KeyError(f"Tensor {name!r} not available before first inference")
        return self._tensors[name]

    def infer(self) -> None:
        if self._session is None:
            raise RuntimeError("Inference request already released.")

        feeds = {
            name: self._tensors[name].astype(dtype, copy=False)
            for name, dtype in self._feed_types.items()
        }
        names = list(self._output_precisions)
        results = self._session.run(names, feeds)

        for name, value in zip(names, results):
            value = np.asarray(value).astype(self._output_precisions[name].dtype, copy=False)
            current = self._tensors.get(name)
            if current is not None and current.shape == value.shape:
                np.copyto(current, value)
            else:
                self._tensors[name] = np.ascontiguousarray(value)

    def release(self) -> None:
        self._session = None
        self._tensors.clear()


class OnnxCompiled(CompiledNetwork):
    def __init__(self, session, graph: OnnxGraph, device: str):
        self._session = session
        self._device = device
        # Descriptors are frozen at compile time
        self._inputs = graph.inputs()
        self._outputs = graph.outputs()

    @property
    def device(self) -> str:
        return self._device

    @property
    def active_provider(self) -> str:
        if self._session is None:
            return "None"
        return self._session.get_providers()[0]

    def create_infer_request(self) -> InferRequest:
        if self._session is None:
            raise RuntimeError("Compiled network already released.")
        return OnnxRequest(self._session, self._inputs, self._outputs)

    def release(self) -> None:
        self._session = None


class OnnxRuntimeEngine(InferenceEngine):
    """ONNX Runtime engine.

    ONNX Runtime lists providers most-specialized first; ``available_devices``
    reverses that into the most-general-first order the registry expects.
    """

    def __init__(self, num_threads: int = 4):
        if not ONNX_AVAILABLE:
            raise ImportError(
                "onnxruntime not available. Install with: pip install onnx onnxruntime"
            )
        self.num_threads = num_threads
        self._cache_dirs: Dict[str, str] = {}

    def available_devices(self) -> List[str]:
        providers = [p for p in ort.get_available_providers() if p not in IGNORED_PROVIDERS]
        return [provider_to_device(p) for p in reversed(providers)]

    def set_cache_dir(self, device: str, cache_dir: Union[str, Path]) -> None:
        provider = device_to_provider(device)
        if not cache_provider_options(provider, str(cache_dir)):
            logger.debug(f"{provider} has no artifact cache, ignoring cache dir")
            return
        self._cache_dirs[device] = str(cache_dir)

    def read_network(self, model_path: Union[str, Path]) -> NetworkGraph:
        return OnnxGraph(onnx.load(str(model_path)))

    def compile(self, graph: NetworkGraph, device: str) -> CompiledNetwork:
        if not isinstance(graph, OnnxGraph):
            raise TypeError(f"Expected OnnxGraph, got {type(graph).__name__}")

        provider = device_to_provider(device)
        if provider not in ort.get_available_providers():
            raise ValueError(f"Execution provider {provider} is not available")

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        sess_options.intra_op_num_threads = self.num_threads

        options = cache_provider_options(provider, self._cache_dirs.get(device))
        session = ort.InferenceSession(
            graph.proto.SerializeToString(),
            sess_options=sess_options,
            providers=[(provider, options)],
        )
        return OnnxCompiled(session, graph, device)
