"""
Tests for model session, inference strategy and the box segmenter
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import numpy as np
import pytest

from boxseg.ml import (
    BoxSegmenter,
    InferenceBackend,
    InferenceRuntimeFailure,
    InferenceShapeMismatch,
    ModelInferenceStrategy,
    ModelSession,
    ModelUnavailable,
    SessionStatus,
    ThresholdClassifier,
    get_segmenter,
    get_segmenter_from_config,
    threshold_mask
)
from boxseg.utils import BoundingBox, crop_box, resize_image


class FakeBackend:
    """In-memory stand-in for an inference runtime"""

    def __init__(self, output=None, accept=None, names=(), delay=0.0):
        self.output = output
        self.accept = accept
        self.names = list(names)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def declared_input_names(self):
        return self.names

    def run(self, name, tensor):
        with self._lock:
            self.calls.append((name, tensor.shape, tensor.dtype))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.accept is not None and name != self.accept:
                raise RuntimeError(f"unknown input {name}")
            return {"masks": self.output}
        finally:
            with self._lock:
                self.active -= 1


class AlwaysFailingBackend(FakeBackend):
    def run(self, name, tensor):
        self.calls.append((name, tensor.shape, tensor.dtype))
        raise RuntimeError("runtime exploded")


def make_scene(width=40, height=30):
    """White raster with a blue square at x,y in [10, 20)"""
    image = np.full((height, width, 4), 255, dtype=np.uint8)
    image[10:20, 10:20, :3] = (20, 30, 220)
    return image


class TestModelSession:
    """Test session lifecycle"""

    def test_initial_state(self):
        session = ModelSession()

        assert session.status is SessionStatus.UNLOADED
        assert not session.is_ready

    def test_load_without_path_stays_unloaded(self):
        session = ModelSession()

        assert session.load() is False
        assert session.status is SessionStatus.UNLOADED

    def test_load_failure_is_not_retried(self):
        """Test a failed load is recorded once and never attempted again"""
        with patch("boxseg.ml.session.OnnxBackend", side_effect=RuntimeError("bad model")) as backend_cls:
            session = ModelSession(model_path="missing.onnx")

            assert session.load() is False
            assert session.load() is False

            assert session.status is SessionStatus.FAILED
            assert backend_cls.call_count == 1

    def test_reset_allows_reload(self):
        with patch("boxseg.ml.session.OnnxBackend", side_effect=RuntimeError("bad model")) as backend_cls:
            session = ModelSession(model_path="missing.onnx")
            session.load()
            session.reset()

            assert session.status is SessionStatus.UNLOADED
            session.load()
            assert backend_cls.call_count == 2

    def test_load_success(self):
        backend = FakeBackend()
        with patch("boxseg.ml.session.OnnxBackend", return_value=backend) as backend_cls:
            session = ModelSession(model_path="model.onnx", device="cuda")

            assert session.load() is True
            assert session.load() is True

            assert session.status is SessionStatus.READY
            assert session.backend is backend
            backend_cls.assert_called_once_with("model.onnx", device="cuda")

    @pytest.mark.asyncio
    async def test_aload(self):
        with patch("boxseg.ml.session.OnnxBackend", return_value=FakeBackend()):
            session = ModelSession(model_path="model.onnx")

            assert await session.aload() is True
            assert session.is_ready

    def test_input_name_candidates(self):
        assert ModelSession.from_backend(FakeBackend()).input_name_candidates() == [
            "input", "images", "image", "input_image"
        ]
        declared = ModelSession.from_backend(FakeBackend(names=["pixel_values"]))
        assert declared.input_name_candidates() == ["pixel_values"]

    def test_fake_backend_satisfies_protocol(self):
        assert isinstance(FakeBackend(), InferenceBackend)


class TestModelInferenceStrategy:
    """Test preprocessing and output interpretation"""

    def test_preprocess_layout(self):
        session = ModelSession.from_backend(FakeBackend())
        strategy = ModelInferenceStrategy(session, input_size=16)
        crop = np.zeros((5, 9, 4), dtype=np.uint8)
        crop[:, :, 0] = 255
        crop[:, :, 3] = 7

        tensor = strategy.preprocess_image(crop)

        assert tensor.shape == (1, 3, 16, 16)
        assert tensor.dtype == np.float32
        assert np.allclose(tensor[0, 0], 1.0)
        assert np.allclose(tensor[0, 1:], 0.0)

    def test_preprocess_stretches_through_resize_image(self):
        strategy = ModelInferenceStrategy(ModelSession.from_backend(FakeBackend()), input_size=12)
        crop = np.zeros((5, 9, 4), dtype=np.uint8)

        with patch("boxseg.ml.inference.resize_image", wraps=resize_image) as resize:
            tensor = strategy.preprocess_image(crop)

        resize.assert_called_once()
        assert resize.call_args[0][1] == 12
        assert resize.call_args[1] == {"keep_aspect_ratio": False}
        assert tensor.shape == (1, 3, 12, 12)

    def test_tries_fallback_names_in_order(self):
        backend = FakeBackend(output=np.full((1, 1, 8, 8), 0.9, dtype=np.float32), accept="image")
        strategy = ModelInferenceStrategy(ModelSession.from_backend(backend), input_size=32)

        mask = strategy.predict(np.zeros((6, 10, 4), dtype=np.uint8))

        assert [name for name, _, _ in backend.calls] == ["input", "images", "image"]
        assert backend.calls[-1][1:] == ((1, 3, 32, 32), np.float32)
        assert mask.shape == (6, 10)
        assert np.all(mask == 255)

    def test_output_resampled_to_crop(self):
        grid = np.zeros((4, 4), dtype=np.float32)
        grid[:, :2] = 0.9
        backend = FakeBackend(output=grid[None, None])
        strategy = ModelInferenceStrategy(ModelSession.from_backend(backend), input_size=8)

        mask = strategy.predict(np.zeros((6, 8, 4), dtype=np.uint8))

        assert mask.shape == (6, 8)
        assert np.all(mask[:, :4] == 255)
        assert np.all(mask[:, 4:] == 0)

    def test_leading_dimensions_use_first_grid(self):
        output = np.zeros((1, 3, 2, 2), dtype=np.float32)
        output[0, 0] = 0.9
        output[0, 1:] = 0.0
        strategy = ModelInferenceStrategy(ModelSession.from_backend(FakeBackend(output=output)), input_size=4)

        mask = strategy.predict(np.zeros((2, 2, 4), dtype=np.uint8))

        assert np.all(mask == 255)

    def test_one_dimensional_output_fails(self):
        backend = FakeBackend(output=np.ones(10, dtype=np.float32))
        strategy = ModelInferenceStrategy(ModelSession.from_backend(backend), input_size=4)

        assert strategy.predict(np.zeros((3, 3, 4), dtype=np.uint8)) is None
        assert len(backend.calls) == 4

    def test_unready_session_fails(self):
        strategy = ModelInferenceStrategy(ModelSession())

        assert strategy.predict(np.zeros((3, 3, 4), dtype=np.uint8)) is None

    def test_runtime_failure_reports_none(self):
        backend = AlwaysFailingBackend()
        strategy = ModelInferenceStrategy(ModelSession.from_backend(backend), input_size=4)

        assert strategy.predict(np.zeros((3, 3, 4), dtype=np.uint8)) is None
        assert len(backend.calls) == 4

    def test_empty_leading_dimension_tries_every_name(self):
        """Test an output with no complete grid is a shape mismatch"""
        backend = FakeBackend(output=np.zeros((0, 4, 4), dtype=np.float32))
        strategy = ModelInferenceStrategy(ModelSession.from_backend(backend), input_size=4)

        with pytest.raises(InferenceShapeMismatch):
            strategy.run(np.zeros((3, 3, 4), dtype=np.uint8))
        assert len(backend.calls) == 4


class TestInferenceLogging:
    """Test how loudly each inference failure is reported"""

    def levels(self, caplog):
        return [r.levelno for r in caplog.records if r.name == "boxseg.ml.inference"]

    def test_every_name_rejected_is_warning(self, caplog):
        caplog.set_level(logging.INFO, logger="boxseg.ml.inference")
        backend = AlwaysFailingBackend()
        segmenter = BoxSegmenter(ModelSession.from_backend(backend), input_size=4)

        result = segmenter.segment(make_scene(), BoundingBox(8, 8, 9, 13))

        assert result.source == "threshold"
        assert self.levels(caplog) == [logging.WARNING]

    def test_every_name_rejected_is_shape_mismatch(self):
        strategy = ModelInferenceStrategy(ModelSession.from_backend(AlwaysFailingBackend()), input_size=4)

        with pytest.raises(InferenceShapeMismatch):
            strategy.run(np.zeros((3, 3, 4), dtype=np.uint8))

    def test_unusable_output_is_warning(self, caplog):
        caplog.set_level(logging.INFO, logger="boxseg.ml.inference")
        backend = FakeBackend(output=np.ones(10, dtype=np.float32))
        strategy = ModelInferenceStrategy(ModelSession.from_backend(backend), input_size=4)

        assert strategy.predict(np.zeros((3, 3, 4), dtype=np.uint8)) is None
        assert self.levels(caplog) == [logging.WARNING]

    def test_preprocessing_failure_is_error(self, caplog):
        caplog.set_level(logging.INFO, logger="boxseg.ml.inference")
        backend = FakeBackend(output=np.ones((1, 1, 2, 2), dtype=np.float32))
        strategy = ModelInferenceStrategy(ModelSession.from_backend(backend), input_size=4)

        with pytest.raises(InferenceRuntimeFailure):
            strategy.run(np.zeros((3, 3, 5), dtype=np.uint8))
        assert strategy.predict(np.zeros((3, 3, 5), dtype=np.uint8)) is None

        assert self.levels(caplog) == [logging.ERROR]
        assert backend.calls == []

    def test_unavailable_model_is_info(self, caplog):
        caplog.set_level(logging.INFO, logger="boxseg.ml.inference")
        strategy = ModelInferenceStrategy(ModelSession())

        with pytest.raises(ModelUnavailable):
            strategy.run(np.zeros((3, 3, 4), dtype=np.uint8))
        assert strategy.predict(np.zeros((3, 3, 4), dtype=np.uint8)) is None

        assert self.levels(caplog) == [logging.INFO]


class TestThresholdClassifier:
    """Test the color-threshold fallback"""

    @pytest.mark.parametrize("rgb,expected", [
        ((70, 80, 101), 255),
        ((70, 80, 100), 0),
        ((100, 0, 130), 0),
        ((0, 110, 130), 0),
        ((0, 109, 130), 255),
        ((250, 0, 255), 0),
        ((0, 0, 255), 255),
    ])
    def test_predicate(self, rgb, expected):
        image = np.zeros((1, 1, 4), dtype=np.uint8)
        image[0, 0, :3] = rgb

        assert threshold_mask(image)[0, 0] == expected

    def test_pure(self):
        rng = np.random.default_rng(1)
        image = rng.integers(0, 256, (16, 16, 4), dtype=np.uint8)
        original = image.copy()

        first = threshold_mask(image)
        second = threshold_mask(image)

        assert np.array_equal(first, second)
        assert np.array_equal(image, original)
        assert set(np.unique(first)) <= {0, 255}

    def test_custom_policy(self):
        image = np.zeros((1, 1, 4), dtype=np.uint8)
        image[0, 0, :3] = (0, 0, 60)

        assert ThresholdClassifier().predict(image)[0, 0] == 0
        assert ThresholdClassifier(blue_min=50).predict(image)[0, 0] == 255


class TestBoxSegmenter:
    """Test the segmentation facade"""

    def test_fallback_without_model(self):
        image = make_scene()
        box = BoundingBox(5, 5, 20, 20)

        result = BoxSegmenter().segment(image, box)

        assert result.source == "threshold"
        assert (result.width, result.height) == (20, 20)
        assert result.mask.shape == (20, 20)
        assert result.foreground_pixels == 100
        assert np.all(result.mask[5:15, 5:15] == 255)

    def test_failing_backend_matches_threshold(self):
        """Test a backend that throws on every input name falls back exactly"""
        image = make_scene()
        box = BoundingBox(8, 8, 9, 13)
        backend = AlwaysFailingBackend()

        result = BoxSegmenter(ModelSession.from_backend(backend)).segment(image, box)

        assert result.source == "threshold"
        assert np.array_equal(result.mask, threshold_mask(crop_box(image, box)))
        assert [name for name, _, _ in backend.calls] == ["input", "images", "image", "input_image"]

    def test_model_result(self):
        backend = FakeBackend(output=np.full((1, 1, 4, 4), 0.8, dtype=np.float32))
        segmenter = BoxSegmenter(ModelSession.from_backend(backend), input_size=8)

        result = segmenter.segment(make_scene(), BoundingBox(0, 0, 7, 3))

        assert result.source == "model"
        assert result.mask.shape == (3, 7)
        assert result.foreground_pixels == 21

    def test_box_outside_raster(self):
        result = BoxSegmenter().segment(make_scene(), BoundingBox(100, 100, 6, 4))

        assert result.mask.shape == (4, 6)
        assert result.foreground_pixels == 0
        assert (result.box.x, result.box.y) == (100, 100)

    def test_degenerate_box_clamped(self):
        result = BoxSegmenter().segment(make_scene(), BoundingBox(-5, 12.6, 0, 0.2))

        assert (result.width, result.height) == (1, 1)
        assert result.mask.size == 1

    def test_strategy_exception_contained(self):
        segmenter = BoxSegmenter(ModelSession.from_backend(FakeBackend()))

        with patch.object(segmenter.strategy, "predict", side_effect=MemoryError("oom")):
            result = segmenter.segment(make_scene(), BoundingBox(10, 10, 5, 5))

        assert result.source == "threshold"
        assert result.foreground_pixels == 25

    def test_failed_session_never_reloads(self):
        with patch("boxseg.ml.session.OnnxBackend", side_effect=RuntimeError("bad model")) as backend_cls:
            segmenter = get_segmenter(model_path="missing.onnx")
            segmenter.load_model()
            result = segmenter.segment(make_scene(), BoundingBox(10, 10, 5, 5))

        assert result.source == "threshold"
        assert backend_cls.call_count == 1
        assert segmenter.session.status is SessionStatus.FAILED

    def test_inference_serialized(self):
        backend = FakeBackend(output=np.ones((1, 1, 2, 2), dtype=np.float32), delay=0.02)
        segmenter = BoxSegmenter(ModelSession.from_backend(backend), input_size=4)
        image = make_scene()

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: segmenter.segment(image, BoundingBox(0, 0, 4, 4)), range(8)))

        assert all(r.source == "model" for r in results)
        assert backend.max_active == 1

    @pytest.mark.asyncio
    async def test_asegment_model(self):
        backend = FakeBackend(output=np.ones((1, 1, 2, 2), dtype=np.float32))
        segmenter = BoxSegmenter(ModelSession.from_backend(backend), input_size=4)

        result = await segmenter.asegment(make_scene(), BoundingBox(0, 0, 5, 5))

        assert result.source == "model"
        assert result.foreground_pixels == 25

    @pytest.mark.asyncio
    async def test_asegment_timeout_falls_back(self):
        backend = FakeBackend(output=np.ones((1, 1, 2, 2), dtype=np.float32), delay=0.5)
        segmenter = BoxSegmenter(ModelSession.from_backend(backend), input_size=4)

        result = await segmenter.asegment(make_scene(), BoundingBox(10, 10, 5, 5), timeout=0.05)

        assert result.source == "threshold"
        assert result.foreground_pixels == 25


class TestFactory:
    """Test segmenter factory functions"""

    def test_get_segmenter_without_model(self):
        segmenter = get_segmenter()

        assert not segmenter.model_ready
        assert segmenter.session.status is SessionStatus.UNLOADED

    def test_get_segmenter_from_config(self):
        class FakeConfig:
            MODEL_PATH = ""
            DEVICE = "cpu"
            MODEL_INPUT_SIZE = 256
            MASK_THRESHOLD = 0.3
            INPUT_NAME_CANDIDATES = ["pixels"]
            BLUE_MIN = 10
            BLUE_OVER_RED = 1
            BLUE_OVER_GREEN = 2

        segmenter = get_segmenter_from_config(FakeConfig)

        assert segmenter.strategy.input_size == 256
        assert segmenter.strategy.mask_threshold == 0.3
        assert segmenter.session.input_names == ["pixels"]
        assert segmenter.classifier.blue_min == 10
        assert not segmenter.model_ready
