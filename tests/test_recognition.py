"""
Tests for ArcFace embeddings and open/closed eye classification.
"""

from __future__ import annotations

import numpy as np
import pytest
from conftest import FakeVectorEngine, similarity_landmarks

from faceai.base import EyeStateDetector, FaceEmbeddingsGenerator
from faceai.eyes import OpenClosedEyeClassifier, OpenClosedEyeOptions
from faceai.eyes import create_image_tensor as eye_tensor
from faceai.exceptions import InferenceError, InvalidInputError, ModelLoadingError
from faceai.recognition import (
    ArcFaceEmbeddingsGenerator,
    ArcFaceEmbeddingsGeneratorOptions,
    create_image_tensor,
)


class TestArcFaceTensor:
    def test_raw_pixel_values(self):
        image = np.zeros((112, 112, 3), dtype=np.uint8)
        image[0, 0] = (255, 128, 1)
        tensor = create_image_tensor(image)

        assert tensor.shape == (1, 3, 112, 112)
        np.testing.assert_allclose(tensor[0, :, 0, 0], [255.0, 128.0, 1.0], rtol=1e-5)
        assert tensor[0, :, 1, 1].max() == 0.0

    def test_wrong_size(self):
        with pytest.raises(InvalidInputError) as exc_info:
            create_image_tensor(np.zeros((100, 112, 3), dtype=np.uint8))
        assert "112x112" in str(exc_info.value)


class TestArcFaceEmbeddingsGenerator:
    def test_embedding_is_unit_length(self):
        engine = FakeVectorEngine(np.arange(1, 513, dtype=np.float32).reshape(1, 512))
        generator = ArcFaceEmbeddingsGenerator(engine=engine)

        embedding = generator.generate(np.zeros((112, 112, 3), dtype=np.uint8))

        assert embedding.shape == (512,)
        assert embedding.dtype == np.float32
        assert float(np.dot(embedding, embedding)) == pytest.approx(1.0, rel=1e-5)
        assert isinstance(generator, FaceEmbeddingsGenerator)

    def test_other_sizes_are_padded(self):
        engine = FakeVectorEngine([[3.0, 4.0]])
        generator = ArcFaceEmbeddingsGenerator(engine=engine)

        generator.generate(np.full((50, 100, 3), 255, dtype=np.uint8))

        tensor = engine.calls[0]
        assert tensor.shape == (1, 3, 112, 112)
        assert tensor[0, :, :28].max() == 0.0
        assert tensor[0, :, 56, 56].min() > 250.0

    def test_strict_size(self):
        generator = ArcFaceEmbeddingsGenerator(
            ArcFaceEmbeddingsGeneratorOptions(auto_resize=False),
            engine=FakeVectorEngine([[1.0]]),
        )
        with pytest.raises(InvalidInputError):
            generator.generate(np.zeros((50, 50, 3), dtype=np.uint8))

    def test_empty_output(self):
        generator = ArcFaceEmbeddingsGenerator(engine=FakeVectorEngine(np.zeros((1, 0))))
        with pytest.raises(InferenceError):
            generator.generate(np.zeros((112, 112, 3), dtype=np.uint8))

    def test_missing_model_path(self):
        with pytest.raises(ModelLoadingError):
            ArcFaceEmbeddingsGenerator()

    def test_align_face_using_landmarks(self):
        image = np.zeros((400, 400, 3), dtype=np.uint8)
        aligned = ArcFaceEmbeddingsGenerator.align_face_using_landmarks(
            image, similarity_landmarks()
        )
        assert aligned.shape == (112, 112, 3)


class TestOpenClosedEyeClassifier:
    @pytest.mark.parametrize(
        "scores,expected",
        [([[0.1, 0.9]], True), ([[0.9, 0.1]], False), ([[0.5, 0.5]], False)],
    )
    def test_is_open(self, scores, expected):
        engine = FakeVectorEngine(scores, input_shape=(1, 3, 32, 32))
        classifier = OpenClosedEyeClassifier(engine=engine)
        assert classifier.is_open(np.zeros((32, 32, 3), dtype=np.uint8)) is expected
        assert isinstance(classifier, EyeStateDetector)

    def test_tensor_is_bgr_and_centered(self):
        image = np.zeros((32, 32, 3), dtype=np.uint8)
        image[..., 0] = 255
        tensor = eye_tensor(image)

        assert tensor.shape == (1, 3, 32, 32)
        np.testing.assert_allclose(tensor[0, 0], -0.5)
        np.testing.assert_allclose(tensor[0, 2], 0.5, atol=1e-6)

    def test_crops_are_resized(self):
        engine = FakeVectorEngine([[0.0, 1.0]], input_shape=(1, 3, 32, 32))
        classifier = OpenClosedEyeClassifier(engine=engine)
        classifier.is_open(np.zeros((40, 40, 3), dtype=np.uint8))
        assert engine.calls[0].shape == (1, 3, 32, 32)

    def test_strict_size(self):
        classifier = OpenClosedEyeClassifier(
            OpenClosedEyeOptions(auto_resize=False),
            engine=FakeVectorEngine([[0.0, 1.0]], input_shape=(1, 3, 32, 32)),
        )
        with pytest.raises(InvalidInputError):
            classifier.is_open(np.zeros((40, 40, 3), dtype=np.uint8))

    def test_single_score_output(self):
        engine = FakeVectorEngine([[1.0]], input_shape=(1, 3, 32, 32))
        with pytest.raises(InferenceError):
            OpenClosedEyeClassifier(engine=engine).is_open(np.zeros((32, 32, 3), np.uint8))
