"""Tests for device enumeration."""
import pytest

from conftest import FakeEngine
from frame_stylizer.core.devices import Device, DeviceRegistry, is_blacklisted
from frame_stylizer.errors import DeviceEnumerationError, IndexOutOfRange


class TestBlacklist:
    def test_family_matches_instances(self):
        assert is_blacklisted("GNA", ["GNA"])
        assert is_blacklisted("GNA.1", ["GNA"])
        assert not is_blacklisted("GNAX", ["GNA"])
        assert not is_blacklisted("CPU", ["GNA"])

    def test_device_family(self):
        assert Device("GPU.1").family == "GPU"
        assert Device("CPU").family == "CPU"
        assert str(Device("GPU.1")) == "GPU.1"


class TestDeviceRegistry:
    """Ordering, filtering and cache configuration."""

    def test_accelerators_first_and_blacklist_dropped(self, engine, tmp_path):
        registry = DeviceRegistry(engine, cache_dir=tmp_path / "cache")
        devices = registry.enumerate()

        assert [d.name for d in devices] == ["GPU.0", "CPU"]
        assert registry.names() == ["GPU.0", "CPU"]
        assert len(registry) == 2

    def test_cache_only_for_matching_devices(self, engine, tmp_path):
        cache = tmp_path / "cache"
        registry = DeviceRegistry(engine, cache_dir=cache)
        gpu, cpu = registry.enumerate()

        assert engine.cache_dirs == {"GPU.0": str(cache)}
        assert gpu.cache_dir == cache
        assert cpu.cache_dir is None
        assert cache.is_dir()

    def test_cache_disabled(self, engine):
        registry = DeviceRegistry(engine, cache_dir=None)
        registry.enumerate()
        assert engine.cache_dirs == {}

    def test_cache_failure_is_not_fatal(self, engine, tmp_path):
        engine.cache_error = RuntimeError("read-only property")
        registry = DeviceRegistry(engine, cache_dir=tmp_path / "cache")

        gpu, _ = registry.enumerate()

        assert gpu.name == "GPU.0"
        assert gpu.cache_dir is None

    def test_custom_blacklist(self, tmp_path):
        engine = FakeEngine(devices=["CPU", "GPU.0", "GPU.1", "NPU"])
        registry = DeviceRegistry(engine, blacklist=["GPU"], cache_dir=None)
        assert [d.name for d in registry.enumerate()] == ["NPU", "CPU"]

    def test_empty_device_list(self):
        registry = DeviceRegistry(FakeEngine(devices=[]), cache_dir=None)
        assert registry.enumerate() == []
        assert len(registry) == 0

    def test_query_failure(self, engine):
        engine.query_error = RuntimeError("driver crashed")
        registry = DeviceRegistry(engine, cache_dir=None)
        with pytest.raises(DeviceEnumerationError):
            registry.enumerate()

    def test_describe(self, engine):
        registry = DeviceRegistry(engine, cache_dir=None)
        registry.enumerate()

        assert registry.describe(0).name == "GPU.0"
        assert registry.describe(1).name == "CPU"
        assert registry.index_of("CPU") == 1

    @pytest.mark.parametrize("index", [-1, 2, 10])
    def test_describe_out_of_range(self, engine, index):
        registry = DeviceRegistry(engine, cache_dir=None)
        registry.enumerate()
        with pytest.raises(IndexOutOfRange):
            registry.describe(index)

    def test_describe_before_enumerate(self, engine):
        registry = DeviceRegistry(engine, cache_dir=None)
        with pytest.raises(IndexError):
            registry.describe(0)

    def test_enumerate_replaces_previous_set(self, engine):
        registry = DeviceRegistry(engine, cache_dir=None)
        registry.enumerate()
        engine.devices = ["CPU"]
        registry.enumerate()
        assert registry.names() == ["CPU"]
