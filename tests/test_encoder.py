import io

import pytest
from PIL import Image

from bir import encoder
from bir.encoder import EncodeError, encode, encode_to_target
from bir.settings import OutputFormat

from conftest import noise_image


@pytest.fixture
def noisy():
    return noise_image((96, 72), seed=3)


def _decode(data: bytes) -> Image.Image:
    im = Image.open(io.BytesIO(data))
    im.load()
    return im


@pytest.mark.parametrize(
    "fmt, pil_name",
    [(OutputFormat.JPEG, "JPEG"), (OutputFormat.PNG, "PNG"), (OutputFormat.WEBP, "WEBP")],
)
def test_encode_produces_decodable_buffer(noisy, fmt, pil_name):
    data = encode(noisy, fmt, 80)
    im = _decode(data)
    assert im.format == pil_name
    assert im.size == noisy.size


def test_png_ignores_quality(noisy):
    assert encode(noisy, OutputFormat.PNG, 1) == encode(noisy, OutputFormat.PNG, 100)


def test_jpeg_quality_changes_size(noisy):
    assert len(encode(noisy, OutputFormat.JPEG, 10)) < len(encode(noisy, OutputFormat.JPEG, 90))


def test_jpeg_flattens_alpha():
    im = Image.new("RGBA", (20, 20), (255, 0, 0, 0))
    out = _decode(encode(im, OutputFormat.JPEG, 90))
    assert out.mode == "RGB"
    # fully transparent pixels land on the white background
    r, g, b = out.getpixel((10, 10))
    assert min(r, g, b) > 240


def test_webp_keeps_alpha():
    im = Image.new("RGBA", (20, 20), (255, 0, 0, 128))
    out = _decode(encode(im, OutputFormat.WEBP, 90))
    assert out.mode == "RGBA"


def test_missing_encoder_is_an_encode_error(noisy, monkeypatch):
    Image.init()
    monkeypatch.delitem(Image.SAVE, "AVIF", raising=False)
    assert not encoder.encoder_available(OutputFormat.AVIF)
    with pytest.raises(EncodeError):
        encode(noisy, OutputFormat.AVIF, 80)


def test_codec_failure_is_an_encode_error(noisy, monkeypatch):
    def boom(self, fp, format=None, **params):
        raise OSError("disk on fire")

    monkeypatch.setattr(Image.Image, "save", boom)
    with pytest.raises(EncodeError, match="disk on fire"):
        encode(noisy, OutputFormat.JPEG, 80)


def test_target_below_minimum_falls_back_to_quality_one(noisy):
    data = encode_to_target(noisy, OutputFormat.JPEG, 10)
    assert data == encode(noisy, OutputFormat.JPEG, 1)
    assert len(data) > 10


def test_target_above_q95_size_converges_to_95(noisy):
    q95 = encode(noisy, OutputFormat.JPEG, 95)
    data = encode_to_target(noisy, OutputFormat.JPEG, len(q95) * 10)
    assert data == q95


@pytest.mark.parametrize("fmt", [OutputFormat.JPEG, OutputFormat.WEBP])
def test_target_in_range_fits_budget_and_is_repeatable(noisy, fmt):
    budget = len(encode(noisy, fmt, 60))
    first = encode_to_target(noisy, fmt, budget)
    second = encode_to_target(noisy, fmt, budget)
    assert len(first) <= budget
    assert first == second


def test_search_is_bounded(noisy, monkeypatch):
    calls = []
    real_encode = encoder.encode

    def counting(im, fmt, quality):
        calls.append(quality)
        return real_encode(im, fmt, quality)

    monkeypatch.setattr(encoder, "encode", counting)
    encode_to_target(noisy, OutputFormat.JPEG, 10)
    assert len(calls) <= 11
    assert calls[-1] == 1
    assert all(1 <= q <= 95 for q in calls)


def test_search_picks_highest_quality_under_budget(noisy, monkeypatch):
    # Fake codec where size == quality, so the best answer is exact.
    monkeypatch.setattr(encoder, "encode", lambda im, fmt, q: b"x" * q)
    assert len(encode_to_target(noisy, OutputFormat.JPEG, 42)) == 42
    assert len(encode_to_target(noisy, OutputFormat.JPEG, 1000)) == 95


def test_target_on_png_is_rejected(noisy):
    with pytest.raises(EncodeError):
        encode_to_target(noisy, OutputFormat.PNG, 1000)
