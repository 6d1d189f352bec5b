"""Compute device enumeration and cache configuration."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from frame_stylizer.engines.base import InferenceEngine
from frame_stylizer.errors import DeviceEnumerationError, IndexOutOfRange


@dataclass(frozen=True)
class Device:
    """A usable compute device."""

    name: str
    cache_dir: Optional[Path] = None

    @property
    def family(self) -> str:
        """Device family without the instance suffix ("GPU.0" -> "GPU")."""
        return self.name.split(".", 1)[0]

    def __str__(self) -> str:
        return self.name


def is_blacklisted(name: str, blacklist: Iterable[str]) -> bool:
    """Check a device name against family names ("GNA" matches "GNA" and "GNA.1")."""
    return any(name == entry or name.startswith(entry + ".") for entry in blacklist)


class DeviceRegistry:
    """Enumerates the engine's devices in selection order.

    The engine reports devices most-general first (CPU before accelerators).
    The registry drops blacklisted families and reverses the order so
    discrete accelerators surface first. Devices matching ``cache_pattern``
    get ``cache_dir`` configured so repeated compilations hit the cache.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        blacklist: Iterable[str] = ("GNA",),
        cache_dir: Optional[str] = "cache",
        cache_pattern: str = r"(GPU)(.*)",
    ):
        self.engine = engine
        self.blacklist = tuple(blacklist)
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.cache_pattern = re.compile(cache_pattern)
        self._devices: List[Device] = []

    def enumerate(self) -> List[Device]:
        """Query the engine and return usable devices, accelerators first.

        Raises:
            DeviceEnumerationError: The engine could not be queried.
        """
        try:
            names = list(self.engine.available_devices())
        except Exception as e:
            raise DeviceEnumerationError(f"{self.engine.name} device query failed: {e}") from e

        kept = []
        for name in names:
            if is_blacklisted(name, self.blacklist):
                logger.debug(f"Skipping blacklisted device {name}")
                continue
            kept.append(name)
        kept.reverse()

        self._devices = [Device(name, self._configure_cache(name)) for name in kept]
        logger.info(f"Available devices: {', '.join(self.names()) or 'none'}")
        return list(self._devices)

    def _configure_cache(self, name: str) -> Optional[Path]:
        if self.cache_dir is None or not self.cache_pattern.fullmatch(name):
            return None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.engine.set_cache_dir(name, self.cache_dir)
        except Exception as e:
            # Compilation still works without the cache, only slower
            logger.warning(f"Could not set cache dir for {name}: {e}")
            return None
        logger.debug(f"Cache dir for {name}: {self.cache_dir}")
        return self.cache_dir

    def describe(self, index: int) -> Device:
        """Device at ``index`` in the last enumerated set."""
        if not 0 <= index < len(self._devices):
            raise IndexOutOfRange(
                f"Device index {index} out of range (0..{len(self._devices) - 1})"
            )
        return self._devices[index]

    def index_of(self, name: str) -> int:
        for i, device in enumerate(self._devices):
            if device.name == name:
                return i
        raise IndexOutOfRange(f"Device {name!r} not in the enumerated set")

    def names(self) -> List[str]:
        return [device.name for device in self._devices]

    @property
    def devices(self) -> List[Device]:
        return list(self._devices)

    def __len__(self) -> int:
        return len(self._devices)
