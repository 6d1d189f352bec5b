"""Real-time image-to-image inference on selectable compute devices."""

from frame_stylizer.config import CodecProfile, StylizerConfig
from frame_stylizer.core import (
    Device,
    DeviceRegistry,
    FrameCodec,
    InferenceSession,
    ModelHandle,
    SessionState,
    TensorView,
)
from frame_stylizer.plugin import Result, StylizerPlugin

__version__ = "0.3.0"

__all__ = [
    "CodecProfile",
    "Device",
    "DeviceRegistry",
    "FrameCodec",
    "InferenceSession",
    "ModelHandle",
    "Result",
    "SessionState",
    "StylizerConfig",
    "StylizerPlugin",
    "TensorView",
]
