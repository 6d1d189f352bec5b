"""Tests for model loading and reshaping."""
import pytest

from conftest import FakeEngine, FakeGraph
from frame_stylizer.core.model import ModelHandle, align_dimension
from frame_stylizer.engines.base import Precision
from frame_stylizer.errors import ModelLoadError, NotPrepared, ReshapeError


class TestAlignDimension:
    def test_rounds_to_nearest_multiple(self):
        assert align_dimension(961) == 960
        assert align_dimension(543) == 544
        assert align_dimension(540) == 544
        assert align_dimension(960) == 960

    def test_never_below_one_multiple(self):
        assert align_dimension(1) == 8
        assert align_dimension(3, 16) == 16

    @pytest.mark.parametrize("alignment", [0, 1])
    def test_disabled(self, alignment):
        assert align_dimension(961, alignment) == 961

    def test_result_is_nearest_multiple(self):
        for alignment in (2, 8, 32):
            for size in range(1, 200):
                aligned = align_dimension(size, alignment)
                assert aligned % alignment == 0
                assert aligned >= alignment
                assert abs(aligned - size) <= alignment / 2 or aligned == alignment


class TestLoad:
    def test_missing_file(self, engine, tmp_path):
        with pytest.raises(ModelLoadError):
            ModelHandle.load(engine, tmp_path / "missing.xml")

    def test_malformed_file(self, engine, tmp_path):
        path = tmp_path / "broken.xml"
        path.write_text("<not a model>")
        with pytest.raises(ModelLoadError):
            ModelHandle.load(engine, path)

    def test_batch_fixed_to_one(self, engine, model_file):
        handle = ModelHandle.load(engine, model_file)
        assert handle.input_desc.shape == (1, 3, 8, 8)
        assert handle.output_desc.shape == (1, 3, 8, 8)
        assert handle.resolution == (8, 8)

    def test_primary_names(self, engine, model_file):
        handle = ModelHandle.load(engine, model_file)
        assert handle.primary_input_name == "input"
        assert handle.primary_output_name == "output"
        assert handle.path == model_file

    @pytest.mark.parametrize("precision", [Precision.U8, Precision.FP32])
    def test_precisions_pinned(self, engine, model_file, precision):
        handle = ModelHandle.load(engine, model_file, input_precision=precision)
        assert handle.graph.input_precisions == {"input": precision}
        assert handle.graph.output_precisions == {"output": Precision.FP32}
        assert handle.input_desc.precision is precision

    def test_model_without_outputs(self):
        handle = ModelHandle(FakeGraph({"input": (1, 3, 8, 8)}, {}))
        with pytest.raises(ModelLoadError):
            handle.prepare_tensor_info()

    def test_batch_reshape_rejected(self, tmp_path, model_file):
        engine = FakeEngine()

        def reject(shapes):
            raise RuntimeError("static batch")

        original = engine.read_network

        def read_network(path):
            graph = original(path)
            graph.reshape = reject
            return graph

        engine.read_network = read_network
        with pytest.raises(ModelLoadError):
            ModelHandle.load(engine, model_file)


class TestTensorInfo:
    def test_not_prepared(self):
        handle = ModelHandle(FakeGraph({"input": (1, 3, 8, 8)}, {"output": (1, 3, 8, 8)}))
        with pytest.raises(NotPrepared):
            _ = handle.primary_input_name
        with pytest.raises(NotPrepared):
            _ = handle.primary_output_name
        with pytest.raises(NotPrepared):
            handle.reshape(16, 16)

    def test_image_inputs(self):
        graph = FakeGraph(
            {"image": (1, 3, 8, 8), "strength": (1, 1)},
            {"output": (1, 3, 8, 8)},
        )
        handle = ModelHandle(graph)
        handle.prepare_tensor_info()
        assert [d.name for d in handle.image_inputs()] == ["image"]


class TestReshape:
    def test_reshape_applies_alignment(self, engine, model_file):
        handle = ModelHandle.load(engine, model_file)
        assert handle.reshape(961, 543) == (960, 544)
        assert handle.input_desc.shape == (1, 3, 544, 960)
        assert handle.output_desc.shape == (1, 3, 544, 960)
        assert handle.resolution == (960, 544)

    def test_reshape_bumps_generation(self, engine, model_file):
        handle = ModelHandle.load(engine, model_file)
        assert handle.generation == 0
        handle.reshape(16, 16)
        handle.reshape(32, 16)
        assert handle.generation == 2

    def test_rejected_shape_keeps_previous(self, model_file):
        handle = ModelHandle.load(FakeEngine(max_side=64), model_file)
        handle.reshape(32, 32)
        generation = handle.generation

        with pytest.raises(ReshapeError):
            handle.reshape(128, 32)

        assert handle.input_desc.shape == (1, 3, 32, 32)
        assert handle.generation == generation

    def test_invalid_resolution(self, engine, model_file):
        handle = ModelHandle.load(engine, model_file, alignment=1)
        with pytest.raises(ReshapeError):
            handle.reshape(0, 16)
        with pytest.raises(ReshapeError):
            handle.reshape(16, -4)

    def test_reshape_without_alignment(self, model):
        assert model.input_desc.shape == (1, 3, 2, 4)
        assert model.reshape(5, 3) == (5, 3)
