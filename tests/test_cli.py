"""
Command line interface tests.
"""

from __future__ import annotations

import json
import logging
from types import SimpleNamespace

import numpy as np
import pytest
from conftest import FakeScrfdEngine, PlacedFace, StaticDetector, similarity_landmarks

from faceai import cli
from faceai.base import Detection
from faceai.detection import AnchorCenterCache, ScrfdDetector
from faceai.imaging import save_image


class AlwaysOpen:
    def is_open(self, eye_image):
        return True


class ConstantEmbedder:
    def generate(self, aligned_face):
        return np.array([0.6, 0.8], dtype=np.float32)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def use_components(monkeypatch):
    """Replace the configured models with in-memory components."""

    def install(**factories):
        components = SimpleNamespace(
            **{name: (lambda value=value: value) for name, value in factories.items()}
        )
        monkeypatch.setattr(cli, "_load", lambda args: components)

    return install


@pytest.fixture
def image_file(tmp_path, blank_image):
    path = tmp_path / "photo.png"
    save_image(path, blank_image)
    return path


def face_detector():
    return StaticDetector(
        [Detection(box=(100.0, 80.0, 250.0, 250.0), landmarks=tuple(similarity_landmarks()), confidence=0.9)]
    )


class TestParser:
    def test_no_command(self, capsys):
        assert cli.main([]) == 1
        assert "usage:" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("faceai ")

    def test_subcommand_arguments(self):
        args = cli.build_parser().parse_args(
            ["--log-level", "DEBUG", "embed", "a.jpg", "b/", "--workers", "2"]
        )
        assert args.func is cli.cmd_embed
        assert args.images == ["a.jpg", "b/"]
        assert args.workers == 2
        assert args.queue_size == 10


class TestErrors:
    def test_missing_config_file(self, image_file):
        assert cli.main(["--config", "/nonexistent/faceai.yaml", "detect", str(image_file)]) == 1

    def test_missing_model(self, image_file):
        assert cli.main(["detect", str(image_file)]) == 1

    def test_missing_model_file(self, tmp_path, image_file):
        missing = str(tmp_path / "missing.onnx")
        assert cli.main(["--detector-model", missing, "detect", str(image_file)]) == 1


class TestCommands:
    def test_detect_prints_json(self, use_components, image_file, tmp_path, capsys):
        detector = ScrfdDetector(
            engine=FakeScrfdEngine(faces=[PlacedFace(stride=8, col=10, row=20, score=0.9)]),
            anchor_cache=AnchorCenterCache(),
        )
        use_components(create_detector=detector)
        blurred = tmp_path / "blurred.png"
        profile = tmp_path / "profile.png"

        code = cli.main(
            ["detect", str(image_file), "--blur", str(blurred), "--profile-picture", str(profile)]
        )

        assert code == 0
        (line,) = capsys.readouterr().out.strip().splitlines()
        record = json.loads(line)
        assert record["box"] == [64.0, 144.0, 32.0, 32.0]
        assert record["confidence"] == 0.9
        assert record["landmarks"][2] == [80.0, 160.0]
        assert blurred.exists()
        assert profile.exists()

    def test_align_writes_faces(self, use_components, tmp_path, rng, capsys):
        image_path = tmp_path / "portrait.png"
        save_image(image_path, rng.integers(0, 256, size=(400, 400, 3), dtype=np.uint8))
        use_components(create_detector=face_detector())
        output = tmp_path / "aligned"

        assert cli.main(["align", str(image_path), str(output), "--edge-size", "224"]) == 0

        written = output / "portrait_face0.png"
        assert written.exists()
        assert str(written) in capsys.readouterr().out

    def test_align_without_faces(self, use_components, image_file, tmp_path):
        use_components(create_detector=StaticDetector())
        assert cli.main(["align", str(image_file), str(tmp_path / "out")]) == 1

    def test_count_eyes(self, use_components, tmp_path, rng, capsys):
        image_path = tmp_path / "eyes.png"
        save_image(image_path, rng.integers(0, 256, size=(400, 400, 3), dtype=np.uint8))
        use_components(create_detector=face_detector(), create_eye_classifier=AlwaysOpen())

        assert cli.main(["count-eyes", str(tmp_path)]) == 0
        assert "faces=1 open=2 closed=0" in capsys.readouterr().out

    def test_embed_writes_npz(self, use_components, tmp_path, rng):
        images = tmp_path / "images"
        images.mkdir()
        for idx in range(3):
            save_image(
                images / f"{idx}.png", rng.integers(0, 256, size=(400, 400, 3), dtype=np.uint8)
            )
        (images / "notes.txt").write_text("ignored")
        use_components(create_detector=face_detector(), create_embedder=ConstantEmbedder())
        output = tmp_path / "embeddings.npz"

        assert cli.main(["embed", str(images), "--output", str(output), "--workers", "2"]) == 0

        with np.load(output) as data:
            assert sorted(data["paths"]) == sorted(str(images / f"{i}.png") for i in range(3))
            np.testing.assert_allclose(data["embeddings"], [[0.6, 0.8]] * 3)
