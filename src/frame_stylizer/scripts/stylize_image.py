#!/usr/bin/env python3
"""Stylize a single image file.

Usage:
    frame-stylizer-image models/mosaic.xml photo.jpg -o photo_mosaic.png
"""

import argparse
from pathlib import Path

import numpy as np
from PIL import Image

from frame_stylizer.plugin import StylizerPlugin
from frame_stylizer.scripts import add_plugin_args, create_plugin


def stylize_image(
    plugin: StylizerPlugin,
    model_path: str,
    image_path: str,
    output_path: str,
    device_index: int = 0,
    keep_size: bool = True,
) -> Path:
    """Run one image through the model and save the result.

    Args:
        plugin: Configured stylizer plugin.
        model_path: Model file (.xml or .onnx).
        image_path: Input image.
        output_path: Where to write the stylized image.
        device_index: Device index to run on.
        keep_size: Resize the output back to the input image size.

    Returns:
        Path of the written image.
    """
    image = Image.open(image_path).convert("RGBA")
    original_size = image.size

    # Model runs at the image's own resolution, rounded to the stride
    plugin.set_resolution(*original_size)
    result = plugin.load_model(model_path)
    if not result:
        raise SystemExit(f"Cannot load model: {result.message}")

    plugin.enumerate_devices()
    result = plugin.bind_device(device_index)
    if not result:
        raise SystemExit(f"Cannot use device {device_index}: {result.message}")
    print(f"Device: {result.value}")

    resized = image.resize(plugin.resolution, Image.Resampling.BILINEAR)
    pixels = np.array(resized, dtype=np.uint8)

    result = plugin.run_inference(pixels)
    plugin.free_resources()
    if not result:
        raise SystemExit(f"Inference failed: {result.message}")
    print(f"Inference: {result.value:.1f} ms at {plugin.width}x{plugin.height}")

    stylized = Image.fromarray(pixels).convert("RGB")
    if keep_size and stylized.size != original_size:
        stylized = stylized.resize(original_size, Image.Resampling.BILINEAR)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    stylized.save(output_path)
    print(f"Saved: {output_path}")
    return output_path


def main():
    parser = argparse.ArgumentParser(description="Stylize a single image")
    parser.add_argument("model_path", type=str, help="Model file (.xml or .onnx)")
    parser.add_argument("image_path", type=str, help="Input image")
    parser.add_argument("--output", "-o", type=str, default=None,
                        help="Output image (default: <image>_stylized.png)")
    parser.add_argument("--device", type=int, default=0, help="Device index")
    parser.add_argument("--model-size", action="store_true",
                        help="Keep the model resolution instead of the input size")
    add_plugin_args(parser)

    args = parser.parse_args()

    output = args.output
    if output is None:
        image_path = Path(args.image_path)
        output = str(image_path.with_name(f"{image_path.stem}_stylized.png"))

    stylize_image(
        create_plugin(args),
        model_path=args.model_path,
        image_path=args.image_path,
        output_path=output,
        device_index=args.device,
        keep_size=not args.model_size,
    )


if __name__ == "__main__":
    main()
