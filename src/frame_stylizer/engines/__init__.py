"""Inference engines the stylizer core can drive."""

from frame_stylizer.engines.base import (
    CompiledNetwork,
    InferenceEngine,
    InferRequest,
    NetworkGraph,
    Precision,
    TensorDesc,
)


def create_engine(engine_type: str = "openvino", **engine_kwargs) -> InferenceEngine:
    """Factory function to create an inference engine by name.

    Args:
        engine_type: "openvino" or "onnxruntime" (alias "onnx").
        **engine_kwargs: Additional arguments for the engine constructor.

    Returns:
        Configured InferenceEngine instance.
    """
    if engine_type.lower() == "openvino":
        from frame_stylizer.engines.openvino_engine import OpenVINOEngine
        return OpenVINOEngine(**engine_kwargs)
    elif engine_type.lower() in ("onnx", "onnxruntime"):
        from frame_stylizer.engines.onnx_engine import OnnxRuntimeEngine
        return OnnxRuntimeEngine(**engine_kwargs)
    raise ValueError(f"Unknown engine type: {engine_type}")


__all__ = [
    "CompiledNetwork",
    "InferenceEngine",
    "InferRequest",
    "NetworkGraph",
    "Precision",
    "TensorDesc",
    "create_engine",
]
