"""Host-facing stylizer plugin.

Every operation returns a ``Result``; stylizer errors never propagate to the
host's render loop. Pixel buffers are caller-owned, fixed-size, interleaved
and modified in place.

Typical host flow::

    plugin = StylizerPlugin(StylizerConfig(engine="openvino"))
    devices = plugin.enumerate_devices()
    plugin.load_model("models/mosaic.xml")
    plugin.bind_device(0)
    for frame in frames:                 # (H, W, 4) uint8 or bytearray
        plugin.run_inference(frame)      # stylized in place
    plugin.free_resources()
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from loguru import logger

from frame_stylizer.config import CodecProfile, StylizerConfig
from frame_stylizer.core.codec import BufferLike, FrameCodec, as_pixels
from frame_stylizer.core.devices import Device, DeviceRegistry
from frame_stylizer.core.model import ModelHandle, align_dimension
from frame_stylizer.core.session import InferenceSession, SessionState
from frame_stylizer.engines import InferenceEngine, create_engine
from frame_stylizer.errors import DeviceEnumerationError, SessionStateError, StylizerError


@dataclass
class Result:
    """Outcome of a plugin operation."""

    ok: bool
    value: Any = None
    error: Optional[StylizerError] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(True, value)

    @classmethod
    def failure(cls, error: StylizerError) -> "Result":
        return cls(False, error=error)

    @property
    def message(self) -> str:
        return str(self.error) if self.error else ""

    def __bool__(self) -> bool:
        return self.ok


class StylizerPlugin:
    """Owns the registry, the loaded model and the session for one host."""

    def __init__(
        self,
        config: Optional[StylizerConfig] = None,
        engine: Optional[InferenceEngine] = None,
    ):
        self.config = config if config is not None else StylizerConfig()
        self.engine = engine if engine is not None else create_engine(self.config.engine)
        self.registry = DeviceRegistry(
            self.engine,
            blacklist=self.config.device_blacklist,
            cache_dir=self.config.cache_dir,
            cache_pattern=self.config.cache_device_pattern,
        )
        self.session = InferenceSession(
            self.engine,
            max_consecutive_failures=self.config.max_consecutive_failures,
        )
        self.model: Optional[ModelHandle] = None
        self.profile = CodecProfile()

        alignment = self.config.stride_alignment
        self.width = align_dimension(self.config.width, alignment)
        self.height = align_dimension(self.config.height, alignment)

    @property
    def resolution(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def current_device(self) -> Optional[str]:
        if self.session.state is SessionState.BOUND:
            return self.session.device.name
        return None

    @property
    def devices(self) -> List[str]:
        return self.registry.names()

    def enumerate_devices(self) -> List[str]:
        """Device names, accelerators first. Empty if the backend cannot be queried."""
        try:
            return [device.name for device in self.registry.enumerate()]
        except DeviceEnumerationError as e:
            logger.warning(f"{e}; falling back to CPU only")
            return []

    def device_name(self, index: int) -> Result:
        try:
            return Result.success(self.registry.describe(index).name)
        except StylizerError as e:
            return Result.failure(e)

    def load_model(self, model_path: Union[str, Path], profile: Optional[CodecProfile] = None) -> Result:
        """Load a model and shape it to the current resolution.

        Any bound session is torn down; call ``bind_device`` afterwards.
        """
        try:
            if profile is None:
                profile = CodecProfile.for_model(model_path)
            model = ModelHandle.load(
                self.engine,
                model_path,
                input_precision=profile.input_precision,
                alignment=self.config.stride_alignment,
            )
        except StylizerError as e:
            logger.error(f"Model load failed: {e}")
            return Result.failure(e)

        self.session.teardown()
        self.model = model
        self.profile = profile
        self.session.codec = FrameCodec(profile)

        resized = self.set_resolution(self.width, self.height)
        if not resized:
            return resized
        return Result.success(Path(model_path).stem)

    def set_resolution(self, width: int, height: int) -> Result:
        """Set the input resolution (rounded to the stride alignment).

        A bound session is rebound on the same device at the new shape.

        Returns:
            Result with the effective (width, height).
        """
        if self.model is None:
            self.width = align_dimension(width, self.config.stride_alignment)
            self.height = align_dimension(height, self.config.stride_alignment)
            return Result.success(self.resolution)

        device = self.session.device if self.session.state is SessionState.BOUND else None
        try:
            self.width, self.height = self.model.reshape(width, height)
        except StylizerError as e:
            logger.warning(f"Resolution {width}x{height} rejected: {e}")
            return Result.failure(e)

        if device is not None:
            rebound = self._bind(device)
            if not rebound:
                return rebound
        return Result.success(self.resolution)

    def bind_device(self, index: int) -> Result:
        """Compile the loaded model for the device at ``index``.

        Returns:
            Result with the bound device name.
        """
        if self.model is None:
            return Result.failure(SessionStateError("No model loaded"))
        if not len(self.registry):
            self.enumerate_devices()
        try:
            device = self.registry.describe(index)
        except StylizerError as e:
            return Result.failure(e)
        return self._bind(device)

    def _bind(self, device: Device) -> Result:
        try:
            return Result.success(self.session.bind(self.model, device))
        except StylizerError as e:
            return Result.failure(e)

    def run_inference(self, pixel_buffer: BufferLike) -> Result:
        """Stylize one frame in place.

        Returns:
            Result with the inference time in milliseconds. On failure the
            buffer is left as it was.
        """
        try:
            pixels = as_pixels(
                pixel_buffer, self.width, self.height, self.profile.source_channels
            )
            self.session.run(pixels)
        except StylizerError as e:
            return Result.failure(e)
        return Result.success(self.session.last_inference_ms)

    def free_resources(self) -> None:
        """Release the compiled model and request."""
        self.session.teardown()
