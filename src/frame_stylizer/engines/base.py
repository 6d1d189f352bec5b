"""Abstract inference engine interface.

Defines the collaborator boundary the stylizer core drives. Concrete engines
(OpenVINO, ONNX Runtime) adapt their runtime to these classes; the core never
imports a runtime directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Tuple, Union

import numpy as np


class Precision(Enum):
    """Tensor element precision."""

    U8 = "u8"
    FP16 = "f16"
    FP32 = "f32"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(_DTYPES[self])

    @classmethod
    def from_dtype(cls, dtype) -> "Precision":
        dtype = np.dtype(dtype)
        for precision, np_type in _DTYPES.items():
            if np.dtype(np_type) == dtype:
                return precision
        raise ValueError(f"Unsupported tensor dtype: {dtype}")


_DTYPES = {
    Precision.U8: np.uint8,
    Precision.FP16: np.float16,
    Precision.FP32: np.float32,
}


@dataclass(frozen=True)
class TensorDesc:
    """Name, precision and shape of one network input or output.

    Unknown (dynamic) dimensions are reported as -1.
    """

    name: str
    precision: Precision
    shape: Tuple[int, ...]


class NetworkGraph(ABC):
    """A loaded, not yet compiled network."""

    @abstractmethod
    def inputs(self) -> List[TensorDesc]:
        """Input descriptors, primary input first."""
        pass

    @abstractmethod
    def outputs(self) -> List[TensorDesc]:
        """Output descriptors, primary output first."""
        pass

    def input_shapes(self) -> Dict[str, Tuple[int, ...]]:
        """Map of input name to shape."""
        return {desc.name: desc.shape for desc in self.inputs()}

    @abstractmethod
    def reshape(self, shapes: Dict[str, Tuple[int, ...]]) -> None:
        """Set new input shapes and run shape inference.

        Raises whatever the runtime raises when the shapes are incompatible.
        """
        pass

    @abstractmethod
    def set_input_precision(self, name: str, precision: Precision) -> None:
        """Pin the precision the request exposes for an input."""
        pass

    @abstractmethod
    def set_output_precision(self, name: str, precision: Precision) -> None:
        """Pin the precision the request exposes for an output."""
        pass


class InferRequest(ABC):
    """A live inference request with its own tensor memory."""

    @abstractmethod
    def tensor(self, name: str) -> np.ndarray:
        """Backing memory of a named tensor, shape (N, C, H, W).

        The array aliases the request's buffer. It must not be used after the
        request is released.
        """
        pass

    @abstractmethod
    def infer(self) -> None:
        """Run inference synchronously (blocks the calling thread)."""
        pass

    def release(self) -> None:
        """Free request resources."""
        pass


class CompiledNetwork(ABC):
    """A network compiled for one device."""

    @property
    @abstractmethod
    def device(self) -> str:
        pass

    @abstractmethod
    def create_infer_request(self) -> InferRequest:
        pass

    def release(self) -> None:
        """Free the compiled artifact."""
        pass


class InferenceEngine(ABC):
    """Abstract base class for inference engines."""

    @abstractmethod
    def available_devices(self) -> List[str]:
        """Device identifiers, ordered from most general to most specialized."""
        pass

    @abstractmethod
    def set_cache_dir(self, device: str, cache_dir: Union[str, Path]) -> None:
        """Enable the compiled-artifact cache for a device."""
        pass

    @abstractmethod
    def read_network(self, model_path: Union[str, Path]) -> NetworkGraph:
        """Parse a model file."""
        pass

    @abstractmethod
    def compile(self, graph: NetworkGraph, device: str) -> CompiledNetwork:
        """Compile a network for a device (may be slow)."""
        pass

    @property
    def name(self) -> str:
        """Engine name for logging."""
        return self.__class__.__name__
