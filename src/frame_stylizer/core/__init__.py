"""Core modules: devices, model, tensor views, codec and session."""

from frame_stylizer.core.codec import FrameCodec, as_pixels, clamp_to_u8
from frame_stylizer.core.devices import Device, DeviceRegistry
from frame_stylizer.core.model import ModelHandle, align_dimension
from frame_stylizer.core.session import InferenceSession, SessionState
from frame_stylizer.core.tensor_view import TensorView

__all__ = [
    "Device",
    "DeviceRegistry",
    "FrameCodec",
    "InferenceSession",
    "ModelHandle",
    "SessionState",
    "TensorView",
    "align_dimension",
    "as_pixels",
    "clamp_to_u8",
]
