"""Configuration for the stylizer.

``StylizerConfig`` holds process-wide settings (engine, device policy, cache,
resolution). ``CodecProfile`` holds per-model marshalling policy and can be
shipped as a JSON sidecar next to the model file.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from frame_stylizer.engines.base import Precision
from frame_stylizer.errors import ConfigError


def _from_dict(cls, data: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**data)


def _read_json(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


@dataclass(frozen=True)
class CodecProfile:
    """Per-model marshalling policy.

    Attributes:
        source_channels: Channels per pixel in the host buffer (3 or 4).
        input_precision: Precision the input tensor is pinned to. U8 for
            direct-copy models, FP32 for models fed float samples.
        swap_rb: Swap the first and third channel when decoding (model emits
            BGR while the display expects RGB, or vice versa).
        synthesize_alpha: Write alpha as 255 on decode. When False the
            buffer's existing alpha is kept.
        normalize: Scale samples to [0, 1] on encode and back on decode.
        flip_vertical: Flip rows on encode and decode (bottom-up host textures).
    """

    source_channels: int = 4
    input_precision: Precision = Precision.FP32
    swap_rb: bool = False
    synthesize_alpha: bool = True
    normalize: bool = False
    flip_vertical: bool = False

    def __post_init__(self):
        if self.source_channels not in (3, 4):
            raise ConfigError(f"source_channels must be 3 or 4, got {self.source_channels}")
        if isinstance(self.input_precision, str):
            try:
                object.__setattr__(self, "input_precision", Precision(self.input_precision))
            except ValueError as e:
                raise ConfigError(f"Unknown input precision: {self.input_precision}") from e
        if self.normalize and self.input_precision is Precision.U8:
            raise ConfigError("normalize requires a floating point input precision")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CodecProfile:
        return _from_dict(cls, data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> CodecProfile:
        return cls.from_dict(_read_json(path))

    @classmethod
    def for_model(cls, model_path: Union[str, Path]) -> CodecProfile:
        """Profile from ``<model stem>.json`` beside the model, or the default."""
        sidecar = Path(model_path).with_suffix(".json")
        if sidecar.is_file():
            return cls.from_json(sidecar)
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["input_precision"] = self.input_precision.value
        return data


@dataclass
class StylizerConfig:
    """Process-wide stylizer settings.

    Attributes:
        engine: Inference engine, "openvino" or "onnxruntime".
        cache_dir: Compiled-artifact cache directory for matching devices.
        cache_device_pattern: Regex; devices matching it get the cache dir.
        device_blacklist: Device families excluded from enumeration.
        stride_alignment: Round width/height to this multiple (0 or 1 = off).
        width: Input width before alignment.
        height: Input height before alignment.
        max_consecutive_failures: Failed frames in a row before the session
            is put in the error state.
        log_level: Console log level.
        log_file: Optional log file path.
    """

    engine: str = "openvino"
    cache_dir: Optional[str] = "cache"
    cache_device_pattern: str = r"(GPU)(.*)"
    device_blacklist: list[str] = field(default_factory=lambda: ["GNA"])
    stride_alignment: int = 8
    width: int = 960
    height: int = 540
    max_consecutive_failures: int = 3
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"Invalid resolution: {self.width}x{self.height}")
        if self.stride_alignment < 0:
            raise ConfigError("stride_alignment must be >= 0")
        if self.max_consecutive_failures < 1:
            raise ConfigError("max_consecutive_failures must be >= 1")

    @classmethod
    def cpu_only(cls) -> StylizerConfig:
        """Everything but the CPU is filtered out; no artifact cache."""
        return cls(
            cache_dir=None,
            device_blacklist=["GPU", "GNA", "NPU", "XNNPACK", "NNAPI", "CoreML", "OpenVINO"],
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StylizerConfig:
        return _from_dict(cls, data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> StylizerConfig:
        return cls.from_dict(_read_json(path))
