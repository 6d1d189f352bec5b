"""Frame <-> tensor marshalling.

Converts an interleaved pixel buffer (RGBA8 or RGB8) into the planar
(N, C, H, W) tensor layout the model consumes, and converts planar model
output back into the pixel buffer.

Layout law, for pixel ``p`` in [0, H*W) and channel ``ch`` in [0, C)::

    tensor[ch * P + p] = pixels[p * 3 + ch]

Alpha is removed before encoding and re-created (opaque) after decoding.
Decoded samples are rounded and clamped to [0, 255] before narrowing.
"""

from typing import Sequence, Union

import cv2
import numpy as np

from frame_stylizer.config import CodecProfile
from frame_stylizer.core.tensor_view import TensorView
from frame_stylizer.errors import CodecError

BufferLike = Union[np.ndarray, bytearray, memoryview]

RGB_CHANNELS = 3


def as_pixels(buffer: BufferLike, width: int, height: int, channels: int = 4) -> np.ndarray:
    """View a caller-owned buffer as an (H, W, C) uint8 array without copying."""
    if isinstance(buffer, np.ndarray):
        array = buffer
    else:
        array = np.frombuffer(buffer, dtype=np.uint8)

    if array.ndim > 1 and array.shape != (height, width, channels):
        raise CodecError(
            f"Pixel array is {array.shape}, expected {(height, width, channels)}"
        )

    expected = width * height * channels
    if array.dtype != np.uint8 or array.size != expected:
        raise CodecError(
            f"Pixel buffer must hold {expected} uint8 samples "
            f"({width}x{height}x{channels}), got {array.size} {array.dtype}"
        )
    try:
        return array.reshape(height, width, channels)
    except ValueError as e:
        raise CodecError(f"Pixel buffer cannot be viewed as {height}x{width}x{channels}: {e}") from e


def to_planar(rgb: np.ndarray, channels: int = RGB_CHANNELS) -> np.ndarray:
    """Interleaved (H, W, 3) -> planar (C, H, W), keeping the first ``channels``."""
    height, width, _ = rgb.shape
    flat = rgb.reshape(height * width, RGB_CHANNELS)
    return np.ascontiguousarray(flat[:, :channels].T).reshape(channels, height, width)


def to_interleaved(planar: np.ndarray) -> np.ndarray:
    """Planar (C, H, W) -> interleaved (H, W, C)."""
    channels, height, width = planar.shape
    return np.ascontiguousarray(planar.reshape(channels, height * width).T).reshape(
        height, width, channels
    )


def clamp_to_u8(values: np.ndarray) -> np.ndarray:
    """``min(255, max(0, round(v)))`` per sample. NaN maps to 0."""
    values = np.nan_to_num(values.astype(np.float32, copy=False), nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


class FrameCodec:
    """Marshals frames to and from a session's tensor views.

    All per-model differences (channel order, alpha handling, scaling,
    orientation) come from the ``CodecProfile``.
    """

    def __init__(self, profile: CodecProfile = CodecProfile()):
        self.profile = profile

    def _source_rgb(self, pixels: np.ndarray) -> np.ndarray:
        if pixels.ndim != 3 or pixels.shape[2] != self.profile.source_channels:
            raise CodecError(
                f"Expected (H, W, {self.profile.source_channels}) pixels, got {pixels.shape}"
            )
        if self.profile.source_channels == 4:
            rgb = cv2.cvtColor(np.ascontiguousarray(pixels), cv2.COLOR_RGBA2RGB)
        else:
            rgb = pixels
        if self.profile.flip_vertical:
            rgb = rgb[::-1]
        return rgb

    def encode(self, pixels: np.ndarray, view: TensorView) -> None:
        """Write an (H, W, C_src) uint8 frame into the input tensor.

        Every batch entry receives the same frame.
        """
        _, channels, height, width = view.shape
        if pixels.ndim != 3:
            raise CodecError(f"Expected (H, W, C) pixels, got shape {pixels.shape}")
        if pixels.shape[:2] != (height, width):
            raise CodecError(
                f"Frame is {pixels.shape[1]}x{pixels.shape[0]}, tensor expects {width}x{height}"
            )
        if channels > RGB_CHANNELS:
            raise CodecError(f"Tensor has {channels} channels, at most 3 can be filled")

        planar = to_planar(self._source_rgb(pixels), channels)
        if self.profile.normalize:
            planar = planar.astype(np.float32) / 255.0

        with view.mapped(write=True) as data:
            # Assignment casts to the tensor's element type
            data[:] = planar

    def decode(self, view: TensorView, pixels: np.ndarray, index: int = 0) -> None:
        """Write batch entry ``index`` of the output tensor into ``pixels``.

        ``pixels`` is only modified once the whole frame has been converted.
        """
        with view.mapped() as data:
            if not 0 <= index < data.shape[0]:
                raise CodecError(f"Batch index {index} out of range for {data.shape[0]} images")
            # Copy out while the memory is mapped
            sample = np.array(data[index], dtype=np.float32)

        channels, height, width = sample.shape
        if pixels.ndim != 3 or pixels.shape[:2] != (height, width):
            raise CodecError(
                f"Output buffer is {pixels.shape}, model produced {width}x{height}"
            )
        if pixels.shape[2] != self.profile.source_channels:
            raise CodecError(
                f"Expected (H, W, {self.profile.source_channels}) pixels, got {pixels.shape}"
            )
        if not pixels.flags.writeable:
            raise CodecError("Output pixel buffer is read-only")
        if channels == 1:
            sample = np.repeat(sample, RGB_CHANNELS, axis=0)
        elif channels < RGB_CHANNELS:
            raise CodecError(f"Cannot build RGB from {channels} output channels")

        if self.profile.normalize:
            sample = sample * 255.0

        rgb = to_interleaved(sample[:RGB_CHANNELS])
        if self.profile.swap_rb:
            rgb = rgb[..., ::-1]
        rgb = clamp_to_u8(rgb)
        if self.profile.flip_vertical:
            rgb = rgb[::-1]

        if self.profile.source_channels == 4:
            if self.profile.synthesize_alpha:
                frame = cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2RGBA)
            else:
                frame = np.dstack([rgb, pixels[..., 3]])
        else:
            frame = rgb

        np.copyto(pixels, frame)

    def decode_batch(self, view: TensorView, frames: Sequence[np.ndarray]) -> None:
        """Decode each batch entry into its own frame, in order."""
        if len(frames) != view.batch:
            raise CodecError(f"Got {len(frames)} frames for a batch of {view.batch}")
        for index, pixels in enumerate(frames):
            self.decode(view, pixels, index)
