"""Model discovery in a models directory."""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from loguru import logger

from frame_stylizer.config import CodecProfile
from frame_stylizer.errors import ConfigError

# OpenVINO IR (.xml + .bin) and ONNX
MODEL_SUFFIXES = (".xml", ".onnx")


@dataclass(frozen=True)
class ModelEntry:
    name: str
    path: Path
    profile: CodecProfile


def discover_models(models_dir: Union[str, Path]) -> List[ModelEntry]:
    """List model files in ``models_dir`` sorted by name.

    Each entry carries the codec profile from its JSON sidecar, if any. Models
    whose sidecar is invalid are skipped with a warning.
    """
    models_dir = Path(models_dir)
    if not models_dir.is_dir():
        logger.warning(f"Models directory not found: {models_dir}")
        return []

    entries = []
    for path in sorted(models_dir.iterdir()):
        if path.suffix.lower() not in MODEL_SUFFIXES or not path.is_file():
            continue
        try:
            profile = CodecProfile.for_model(path)
        except ConfigError as e:
            logger.warning(f"Skipping {path.name}: {e}")
            continue
        entries.append(ModelEntry(path.stem, path, profile))
        logger.debug(f"Model {path.stem}: {path}")
    return entries
