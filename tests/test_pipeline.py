from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
from PIL import Image

from bgcutout import cli
from bgcutout.config import RemoverConfig
from bgcutout.errors import InferenceError, InvalidImageError, InvalidMaskError, ModelLoadError
from bgcutout.pipeline import BackgroundRemover
from bgcutout.runtime.session import BackendChoice


def _split_image(width: int, height: int) -> Image.Image:
    """Black left half, white right half."""
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:, width // 2 :] = 255
    return Image.fromarray(pixels)


@pytest.fixture
def remover(tmp_path, model_file, make_probe, make_factory, echo_session):
    instance = BackgroundRemover(
        RemoverConfig(cache_dir=tmp_path),
        probe=make_probe(),
        session_factory=make_factory(session=echo_session),
    )
    instance.initialize(str(model_file))
    return instance


def test_initialize_reports_portable_when_probe_throws(tmp_path, model_file, make_probe, make_factory):
    remover = BackgroundRemover(
        RemoverConfig(cache_dir=tmp_path),
        probe=make_probe(error=RuntimeError("adapter query crashed")),
        session_factory=make_factory(),
    )
    assert remover.initialize(str(model_file)) is BackendChoice.PORTABLE
    assert remover.backend is BackendChoice.PORTABLE


def test_initialize_reports_accelerated(tmp_path, model_file, make_probe, make_factory):
    factory = make_factory()
    remover = BackgroundRemover(
        RemoverConfig(cache_dir=tmp_path),
        probe=make_probe(available=True),
        session_factory=factory,
    )
    assert remover.initialize(str(model_file)) is BackendChoice.ACCELERATED
    assert factory.calls == [(model_file, BackendChoice.ACCELERATED)]


def test_initialize_missing_model(tmp_path, make_probe, make_factory):
    remover = BackgroundRemover(
        RemoverConfig(cache_dir=tmp_path),
        probe=make_probe(),
        session_factory=make_factory(),
    )
    with pytest.raises(ModelLoadError):
        remover.initialize(str(tmp_path / "missing.onnx"))


def test_remove_background_before_initialize(tmp_path, make_probe, make_factory):
    remover = BackgroundRemover(
        RemoverConfig(cache_dir=tmp_path), probe=make_probe(), session_factory=make_factory()
    )
    with pytest.raises(ModelLoadError, match="Model not loaded"):
        remover.remove_background(Image.new("RGB", (4, 4)))


def test_remove_background_end_to_end(remover, echo_session):
    image = _split_image(8, 8)
    cutout = remover.remove_background(image)
    pixels = np.asarray(cutout)

    assert cutout.mode == "RGBA"
    assert cutout.size == image.size
    assert np.array_equal(pixels[..., :3], np.asarray(image))
    assert np.all(pixels[:, 0, 3] == 0)
    assert np.all(pixels[:, 7, 3] == 255)
    assert echo_session.calls == 1


def test_letterboxed_image_end_to_end(remover):
    image = _split_image(16, 8)
    alpha = np.asarray(remover.remove_background(image))[..., 3]
    assert alpha.shape == (8, 16)
    assert np.all(alpha[:, 0] == 0)
    assert np.all(alpha[:, 15] == 255)


def test_predict_mask_returns_opaque_grey_mask(remover):
    mask = remover.predict_mask(_split_image(8, 8))
    pixels = np.asarray(mask)
    assert mask.mode == "RGBA"
    assert np.all(pixels[..., 3] == 255)
    assert np.array_equal(pixels[..., 0], pixels[..., 2])


def test_concurrent_requests_keep_their_own_geometry(remover):
    images = [_split_image(16, 8), _split_image(8, 16), _split_image(30, 10)] * 3
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(remover.remove_background, images))

    for image, cutout in zip(images, results):
        alpha = np.asarray(cutout)[..., 3]
        assert cutout.size == image.size
        assert np.all(alpha[:, 0] == 0)
        assert np.all(alpha[:, -1] == 255)


def test_missing_output_name_lists_available_outputs(tmp_path, model_file, make_probe, make_factory):
    class WrongName:
        def run(self, inputs):
            return {"logits": np.zeros((1, 1, 1024, 1024), dtype=np.float32)}

    remover = BackgroundRemover(
        RemoverConfig(cache_dir=tmp_path), probe=make_probe(), session_factory=make_factory(session=WrongName())
    )
    remover.initialize(str(model_file))

    with pytest.raises(InvalidMaskError, match="Available outputs: logits"):
        remover.remove_background(Image.new("RGB", (4, 4)))


def test_wrong_mask_size_is_rejected(tmp_path, model_file, make_probe, make_factory):
    class SmallMask:
        def run(self, inputs):
            return {"output": np.zeros((1, 1, 320, 320), dtype=np.float32)}

    remover = BackgroundRemover(
        RemoverConfig(cache_dir=tmp_path), probe=make_probe(), session_factory=make_factory(session=SmallMask())
    )
    remover.initialize(str(model_file))

    with pytest.raises(InvalidMaskError):
        remover.remove_background(Image.new("RGB", (4, 4)))


def test_engine_failure_becomes_inference_error(tmp_path, model_file, make_probe, make_factory, failing_session):
    remover = BackgroundRemover(
        RemoverConfig(cache_dir=tmp_path), probe=make_probe(), session_factory=make_factory(session=failing_session)
    )
    remover.initialize(str(model_file))
    image = Image.new("RGB", (4, 4), (1, 2, 3))

    with pytest.raises(InferenceError, match="kernel exploded") as excinfo:
        remover.remove_background(image)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert image.getpixel((0, 0)) == (1, 2, 3)


def test_empty_image_is_rejected_before_inference(remover, echo_session):
    with pytest.raises(InvalidImageError):
        remover.remove_background(Image.new("RGB", (0, 5)))
    assert echo_session.calls == 0


def test_process_directory(remover, tmp_path):
    input_dir = tmp_path / "in"
    (input_dir / "nested").mkdir(parents=True)
    _split_image(8, 8).save(input_dir / "a.jpg")
    _split_image(12, 6).save(input_dir / "nested" / "b.png")
    (input_dir / "notes.txt").write_text("skip me")
    output_dir = tmp_path / "out"

    timings = remover.process_directory(input_dir, output_dir)

    assert len(timings) == 2
    with Image.open(output_dir / "a.png") as result:
        assert result.mode == "RGBA"
        assert result.size == (8, 8)
    assert (output_dir / "b.png").exists()

    assert remover.process_directory(input_dir, output_dir) == {}
    assert len(remover.process_directory(input_dir, output_dir, overwrite=True)) == 2


def test_cli_writes_cutouts_and_report(monkeypatch, tmp_path, model_file, make_probe, make_factory, capsys):
    input_dir = tmp_path / "in"
    input_dir.mkdir()
    _split_image(8, 8).save(input_dir / "photo.png")
    output_dir = tmp_path / "out"
    report = tmp_path / "report.json"

    def fake_remover(config):
        return BackgroundRemover(config, probe=make_probe(), session_factory=make_factory())

    monkeypatch.setattr(cli, "BackgroundRemover", fake_remover)
    cli.run(
        [
            "--input-dir", str(input_dir),
            "--output-dir", str(output_dir),
            "--model", str(model_file),
            "--cache-dir", str(tmp_path / "cache"),
            "--json", str(report),
        ]
    )

    assert (output_dir / "photo.png").exists()
    data = json.loads(report.read_text(encoding="utf-8"))
    assert data["backend"] == "portable"
    assert data["images"] == 1
    assert "portable backend" in capsys.readouterr().out


def test_cli_reports_model_errors(tmp_path):
    input_dir = tmp_path / "in"
    input_dir.mkdir()
    with pytest.raises(SystemExit, match="Error loading model"):
        cli.run(
            [
                "--input-dir", str(input_dir),
                "--output-dir", str(tmp_path / "out"),
                "--model", str(tmp_path / "missing.onnx"),
                "--cpu-only",
            ]
        )
