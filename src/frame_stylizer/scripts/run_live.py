#!/usr/bin/env python3
"""Live style transfer on a camera or video stream.

Frames are resized to the model resolution, stylized through the plugin and
shown in an OpenCV window.

Keys:
    d: next device    m: next model    s: toggle stylization    q/ESC: quit

Usage:
    frame-stylizer-live --models-dir models --source 0
"""

import argparse
import time
from typing import List, Optional

import cv2
import numpy as np

from frame_stylizer.catalog import ModelEntry, discover_models
from frame_stylizer.plugin import StylizerPlugin
from frame_stylizer.scripts import add_plugin_args, create_plugin


def _open_source(source: str) -> cv2.VideoCapture:
    # Integer sources are camera indices
    capture = cv2.VideoCapture(int(source) if source.isdigit() else source)
    if not capture.isOpened():
        raise SystemExit(f"Cannot open video source: {source}")
    return capture


def _select_model(plugin: StylizerPlugin, models: List[ModelEntry], index: int) -> bool:
    entry = models[index]
    result = plugin.load_model(entry.path, entry.profile)
    if not result:
        print(f"Failed to load {entry.name}: {result.message}")
        return False
    print(f"Model: {entry.name} at {plugin.width}x{plugin.height}")
    return True


def _select_device(plugin: StylizerPlugin, index: int) -> bool:
    result = plugin.bind_device(index)
    if not result:
        print(f"Failed to bind device {index}: {result.message}")
        return False
    print(f"Using device: {result.value}")
    return True


def stylize_frame(plugin: StylizerPlugin, frame_bgr: np.ndarray) -> Optional[np.ndarray]:
    """Stylize one BGR camera frame; returns a BGR frame at the source size or None."""
    src_h, src_w = frame_bgr.shape[:2]
    resized = cv2.resize(frame_bgr, plugin.resolution, interpolation=cv2.INTER_LINEAR)
    rgba = cv2.cvtColor(resized, cv2.COLOR_BGR2RGBA)

    result = plugin.run_inference(rgba)
    if not result:
        return None

    stylized = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGR)
    return cv2.resize(stylized, (src_w, src_h), interpolation=cv2.INTER_LINEAR)


def run_live(
    plugin: StylizerPlugin,
    models_dir: str,
    source: str = "0",
    model_name: Optional[str] = None,
    device_index: int = 0,
    max_frames: int = 0,
    show: bool = True,
) -> None:
    """Run the capture -> stylize -> display loop.

    Args:
        plugin: Configured stylizer plugin.
        models_dir: Directory with .xml / .onnx models.
        source: Camera index or video path.
        model_name: Start with this model (default: first found).
        device_index: Start with this device index.
        max_frames: Stop after this many frames (0 = until the stream ends).
        show: Display frames in a window.
    """
    models = discover_models(models_dir)
    if not models:
        raise SystemExit(f"No models found in {models_dir}")

    devices = plugin.enumerate_devices()
    print(f"Devices: {', '.join(devices) if devices else 'none'}")
    print(f"Models: {', '.join(m.name for m in models)}")

    model_index = 0
    if model_name is not None:
        names = [m.name for m in models]
        if model_name not in names:
            raise SystemExit(f"Unknown model {model_name!r}, available: {names}")
        model_index = names.index(model_name)

    if not _select_model(plugin, models, model_index):
        raise SystemExit(1)
    _select_device(plugin, device_index)

    capture = _open_source(source)
    stylize = True
    frame_count = 0
    failed = 0
    start = time.perf_counter()

    try:
        while True:
            ok, frame = capture.read()
            if not ok:
                break

            output = stylize_frame(plugin, frame) if stylize else None
            if stylize and output is None:
                failed += 1
            display = output if output is not None else frame
            frame_count += 1

            if show:
                cv2.imshow("frame-stylizer", display)
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):
                    break
                elif key == ord("s"):
                    stylize = not stylize
                elif key == ord("d") and devices:
                    device_index = (device_index + 1) % len(devices)
                    _select_device(plugin, device_index)
                elif key == ord("m"):
                    model_index = (model_index + 1) % len(models)
                    if _select_model(plugin, models, model_index):
                        _select_device(plugin, device_index)

            if max_frames and frame_count >= max_frames:
                break
    finally:
        capture.release()
        if show:
            cv2.destroyAllWindows()
        plugin.free_resources()

    elapsed = time.perf_counter() - start
    print(f"\nFrames: {frame_count} ({failed} failed)")
    if elapsed > 0:
        print(f"Average FPS: {frame_count / elapsed:.1f}")


def main():
    parser = argparse.ArgumentParser(description="Live style transfer from a camera or video")
    parser.add_argument("--models-dir", type=str, default="models",
                        help="Directory containing .xml / .onnx models")
    parser.add_argument("--model", type=str, default=None, help="Model name to start with")
    parser.add_argument("--source", type=str, default="0",
                        help="Camera index or video file (default: 0)")
    parser.add_argument("--device", type=int, default=0, help="Device index to start with")
    parser.add_argument("--max-frames", type=int, default=0,
                        help="Stop after N frames (0 = run until stream ends)")
    parser.add_argument("--no-display", action="store_true", help="Run without a window")
    add_plugin_args(parser)

    args = parser.parse_args()

    run_live(
        create_plugin(args),
        models_dir=args.models_dir,
        source=args.source,
        model_name=args.model,
        device_index=args.device,
        max_frames=args.max_frames,
        show=not args.no_display,
    )


if __name__ == "__main__":
    main()
