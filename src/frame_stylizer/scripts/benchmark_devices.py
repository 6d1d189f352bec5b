#!/usr/bin/env python3
"""Benchmark a model on every available device.

Each device is bound, warmed up, then timed over a number of synthetic frames
through the full encode -> infer -> decode path.

Usage:
    frame-stylizer-bench models/mosaic.xml [--iterations 100] [--warmup 10]
"""

import argparse
import time
from typing import Dict

import numpy as np

from frame_stylizer.plugin import StylizerPlugin
from frame_stylizer.scripts import add_plugin_args, create_plugin


def benchmark_device(
    plugin: StylizerPlugin,
    iterations: int = 100,
    warmup: int = 10,
) -> Dict[str, float]:
    """Time ``run_inference`` on the bound device.

    Returns:
        Dict with timing statistics (in milliseconds).
    """
    channels = plugin.profile.source_channels
    rng = np.random.default_rng(0)
    frame = rng.integers(0, 256, size=(plugin.height, plugin.width, channels), dtype=np.uint8)

    for _ in range(warmup):
        result = plugin.run_inference(frame.copy())
        if not result:
            raise RuntimeError(result.message)

    times = []
    for _ in range(iterations):
        pixels = frame.copy()
        start = time.perf_counter()
        result = plugin.run_inference(pixels)
        end = time.perf_counter()
        if not result:
            raise RuntimeError(result.message)
        times.append((end - start) * 1000)  # Convert to ms

    times = np.array(times)

    return {
        "mean_ms": float(np.mean(times)),
        "std_ms": float(np.std(times)),
        "min_ms": float(np.min(times)),
        "max_ms": float(np.max(times)),
        "median_ms": float(np.median(times)),
        "fps": float(1000.0 / np.mean(times)),
    }


def print_results_table(results: Dict[str, Dict]):
    """Print results as a formatted table."""
    print("\n" + "=" * 72)
    print("RESULTS SUMMARY")
    print("=" * 72)
    print(f"{'Device':<16} {'Mean (ms)':<12} {'Std (ms)':<10} {'Min (ms)':<10} {'Max (ms)':<10} {'FPS':<8}")
    print("-" * 72)

    for device, data in results.items():
        if data.get("error"):
            print(f"{device:<16} FAILED: {data['error'][:50]}")
            continue
        stats = data["stats"]
        print(f"{device:<16} {stats['mean_ms']:<12.2f} {stats['std_ms']:<10.2f} "
              f"{stats['min_ms']:<10.2f} {stats['max_ms']:<10.2f} {stats['fps']:<8.1f}")

    print("-" * 72)

    timed = {d: r["stats"]["fps"] for d, r in results.items() if not r.get("error")}
    if timed:
        best = max(timed, key=timed.get)
        print(f"\nBest: {best} @ {timed[best]:.1f} FPS")
    print()


def run_benchmark(
    plugin: StylizerPlugin,
    model_path: str,
    iterations: int = 100,
    warmup: int = 10,
) -> Dict[str, Dict]:
    """Benchmark ``model_path`` on every enumerated device."""
    devices = plugin.enumerate_devices()
    print("=" * 72)
    print(f"Engine: {plugin.engine.name}")
    print(f"Devices: {', '.join(devices) if devices else 'none'}")
    print("=" * 72)

    result = plugin.load_model(model_path)
    if not result:
        raise SystemExit(f"Cannot load model: {result.message}")
    print(f"Model: {result.value} at {plugin.width}x{plugin.height}")

    results = {}
    for index, device in enumerate(devices):
        print(f"  - {device}...", end=" ", flush=True)

        start = time.perf_counter()
        bound = plugin.bind_device(index)
        if not bound:
            print(f"BIND FAILED: {bound.message}")
            results[device] = {"error": bound.message}
            continue
        compile_ms = (time.perf_counter() - start) * 1000

        try:
            stats = benchmark_device(plugin, iterations=iterations, warmup=warmup)
        except RuntimeError as e:
            print(f"BENCHMARK FAILED: {e}")
            results[device] = {"error": str(e)}
            continue
        finally:
            plugin.free_resources()

        print(f"{stats['mean_ms']:.2f}ms ({stats['fps']:.1f} FPS, compile {compile_ms:.0f}ms)")
        results[device] = {"stats": stats, "compile_ms": compile_ms}

    print_results_table(results)
    return results


def main():
    parser = argparse.ArgumentParser(description="Benchmark a model on every device")
    parser.add_argument("model_path", type=str, help="Model file (.xml or .onnx)")
    parser.add_argument(
        "--iterations", "-n",
        type=int,
        default=100,
        help="Number of timed frames (default: 100)"
    )
    parser.add_argument(
        "--warmup", "-w",
        type=int,
        default=10,
        help="Number of warmup frames (default: 10)"
    )
    add_plugin_args(parser)

    args = parser.parse_args()

    run_benchmark(
        create_plugin(args),
        args.model_path,
        iterations=args.iterations,
        warmup=args.warmup,
    )


if __name__ == "__main__":
    main()
