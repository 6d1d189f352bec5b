"""Command line tools.

Shared argument handling for building a ``StylizerPlugin`` from the command line.
"""

import argparse

from frame_stylizer.config import StylizerConfig
from frame_stylizer.log import setup_logging
from frame_stylizer.plugin import StylizerPlugin


def add_plugin_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=str, default=None,
                        help="StylizerConfig JSON file")
    parser.add_argument("--engine", type=str, default=None,
                        choices=["openvino", "onnxruntime"],
                        help="Inference engine (overrides config)")
    parser.add_argument("--width", type=int, default=None, help="Input width")
    parser.add_argument("--height", type=int, default=None, help="Input height")
    parser.add_argument("--cache-dir", type=str, default=None,
                        help="Compiled model cache directory")
    parser.add_argument("--log-level", type=str, default=None, help="Console log level")


def create_plugin(args: argparse.Namespace) -> StylizerPlugin:
    """Build the config from ``--config`` plus overrides, set up logging, create the plugin."""
    config = StylizerConfig.from_json(args.config) if args.config else StylizerConfig()
    if args.engine:
        config.engine = args.engine
    if args.width:
        config.width = args.width
    if args.height:
        config.height = args.height
    if args.cache_dir:
        config.cache_dir = args.cache_dir
    if args.log_level:
        config.log_level = args.log_level

    setup_logging(config.log_level, config.log_file)
    return StylizerPlugin(config)
