"""Loaded network graph with reshape support."""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger

from frame_stylizer.engines.base import InferenceEngine, NetworkGraph, Precision, TensorDesc
from frame_stylizer.errors import ModelLoadError, NotPrepared, ReshapeError


def align_dimension(size: int, alignment: int = 8) -> int:
    """Round ``size`` to the nearest multiple of ``alignment`` (at least one multiple).

    ``alignment`` of 0 or 1 leaves the size unchanged.
    """
    if alignment <= 1:
        return size
    return max(alignment, alignment * round(size / alignment))


class ModelHandle:
    """Owns a network graph and its primary input/output.

    Batch size is fixed at 1. ``reshape`` rewrites the height/width of every
    image (rank 4) input and keeps the previous shape if the backend rejects
    the new one.

    Attributes:
        path: Model file the graph was read from.
        graph: Engine-specific network graph.
        generation: Incremented on every successful reshape, so sessions can
            tell that their compiled artifact no longer matches.
    """

    def __init__(
        self,
        graph: NetworkGraph,
        path: Optional[Path] = None,
        input_precision: Precision = Precision.FP32,
        alignment: int = 8,
    ):
        self.graph = graph
        self.path = path
        self.input_precision = input_precision
        self.alignment = alignment
        self.generation = 0
        self._input_name: Optional[str] = None
        self._output_name: Optional[str] = None

    @classmethod
    def load(
        cls,
        engine: InferenceEngine,
        model_path: Union[str, Path],
        input_precision: Precision = Precision.FP32,
        alignment: int = 8,
    ) -> "ModelHandle":
        """Read a model file and fix its batch size to 1.

        Raises:
            ModelLoadError: File missing, malformed, or without inputs/outputs.
        """
        model_path = Path(model_path)
        if not model_path.is_file():
            raise ModelLoadError(f"Model file not found: {model_path}")

        try:
            graph = engine.read_network(model_path)
        except Exception as e:
            raise ModelLoadError(f"Failed to read {model_path}: {e}") from e

        handle = cls(graph, model_path, input_precision, alignment)
        handle._set_batch_size(1)
        handle.prepare_tensor_info()
        logger.info(
            f"Loaded {model_path.name}: input {handle.input_desc.shape}, "
            f"output {handle.output_desc.shape}"
        )
        return handle

    def _set_batch_size(self, batch: int) -> None:
        shapes = {}
        for desc in self.graph.inputs():
            if desc.shape and desc.shape[0] != batch:
                shapes[desc.name] = (batch,) + tuple(desc.shape[1:])
        if not shapes:
            return
        try:
            self.graph.reshape(shapes)
        except Exception as e:
            raise ModelLoadError(f"Cannot set batch size {batch}: {e}") from e

    def prepare_tensor_info(self) -> None:
        """Resolve primary tensor names and pin their precisions.

        Outputs are pinned to FP32; inputs to ``input_precision``.
        """
        inputs = self.graph.inputs()
        outputs = self.graph.outputs()
        if not inputs or not outputs:
            raise ModelLoadError("Model must have at least one input and one output")

        for desc in inputs:
            self.graph.set_input_precision(desc.name, self.input_precision)
        for desc in outputs:
            self.graph.set_output_precision(desc.name, Precision.FP32)

        self._input_name = inputs[0].name
        self._output_name = outputs[0].name

    @property
    def primary_input_name(self) -> str:
        if self._input_name is None:
            raise NotPrepared("Call prepare_tensor_info() first")
        return self._input_name

    @property
    def primary_output_name(self) -> str:
        if self._output_name is None:
            raise NotPrepared("Call prepare_tensor_info() first")
        return self._output_name

    @property
    def input_desc(self) -> TensorDesc:
        name = self.primary_input_name
        return next(desc for desc in self.graph.inputs() if desc.name == name)

    @property
    def output_desc(self) -> TensorDesc:
        name = self.primary_output_name
        return next(desc for desc in self.graph.outputs() if desc.name == name)

    def image_inputs(self) -> List[TensorDesc]:
        """Inputs shaped (N, C, H, W), primary first."""
        return [desc for desc in self.graph.inputs() if len(desc.shape) == 4]

    def input_shapes(self) -> Dict[str, Tuple[int, ...]]:
        return self.graph.input_shapes()

    @property
    def resolution(self) -> Tuple[int, int]:
        """Current (width, height) of the primary input; -1 if dynamic."""
        shape = self.input_desc.shape
        return shape[3], shape[2]

    def reshape(self, width: int, height: int) -> Tuple[int, int]:
        """Set the input resolution and run shape inference.

        Width and height are first rounded to the model's stride alignment.

        Returns:
            The effective (width, height).

        Raises:
            ReshapeError: The backend rejected the shape. The previous shape
                stays in effect.
        """
        width = align_dimension(width, self.alignment)
        height = align_dimension(height, self.alignment)
        if width <= 0 or height <= 0:
            raise ReshapeError(f"Invalid resolution {width}x{height}")

        if self._input_name is None:
            raise NotPrepared("Call prepare_tensor_info() before reshape()")
        previous = self.graph.input_shapes()
        shapes = {}
        for desc in self.image_inputs():
            batch, channels = 1, desc.shape[1]
            shapes[desc.name] = (batch, channels, height, width)

        try:
            self.graph.reshape(shapes)
        except Exception as e:
            self._restore(previous)
            raise ReshapeError(f"Cannot reshape to {width}x{height}: {e}") from e

        self.generation += 1
        logger.info(f"Input dims set to W: {width} x H: {height}")
        return width, height

    def _restore(self, shapes: Dict[str, Tuple[int, ...]]) -> None:
        if self.graph.input_shapes() == shapes:
            return
        try:
            self.graph.reshape(shapes)
        except Exception as e:
            logger.error(f"Failed to restore previous input shapes {shapes}: {e}")
