import io

import numpy as np
import pytest
from PIL import Image

from crop_engine import CropRegion, Handle
from editor_session import LoadError, decode_raster, encode_jpeg, open_session
from raster import Raster
from tone_normalize import derive_filter_triple


def encode(pixels, fmt="PNG", **params):
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, fmt, **params)
    return buffer.getvalue()


def gradient_png(width=1000, height=800):
    ys, xs = np.mgrid[0:height, 0:width]
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[..., 0] = (xs * 255) // max(1, width - 1)
    pixels[..., 1] = (ys * 255) // max(1, height - 1)
    pixels[..., 2] = 60
    return encode(pixels)


def gray_png(value, width=200, height=200):
    return encode(np.full((height, width, 3), value, dtype=np.uint8))


def decoded(data):
    with Image.open(io.BytesIO(data)) as image:
        return np.array(image.convert("RGB"))


@pytest.mark.parametrize("data", [b"", b"not an image at all", gradient_png()[:200]])
def test_undecodable_bytes_raise_load_error(data):
    with pytest.raises(LoadError):
        open_session(data)


def test_too_small_image_raises_load_error():
    with pytest.raises(LoadError):
        open_session(gray_png(100, width=40, height=300))


def test_failed_load_does_not_block_retry():
    with pytest.raises(LoadError):
        open_session(b"garbage")
    session = open_session(gradient_png())
    assert session.region == CropRegion(180, 80, 640, 640)


def test_decode_applies_exif_orientation():
    exif = Image.Exif()
    exif[0x0112] = 6  # Rotate 90 CW on display
    data = encode(np.full((100, 300, 3), 128, dtype=np.uint8), "JPEG", exif=exif.tobytes())
    assert decode_raster(data).size == (100, 300)


def test_decode_produces_rgba():
    raster = decode_raster(gray_png(90, 120, 80))
    assert raster.pixels.shape == (80, 120, 4)
    assert (raster.pixels[..., 3] == 255).all()


def test_toggle_auto_correction_restores_original_exactly():
    session = open_session(gradient_png())
    original = session.working.pixels.copy()

    session.toggle_auto_correction()
    assert session.auto_corrected
    assert not np.array_equal(session.working.pixels, original)

    session.toggle_auto_correction()
    assert not session.auto_corrected
    assert np.array_equal(session.working.pixels, original)
    assert np.array_equal(session.pristine.pixels, original)


def test_repeated_auto_correction_does_not_compound():
    session = open_session(gray_png(80))
    session.toggle_auto_correction()
    first = session.working.pixels.copy()
    session.toggle_auto_correction()
    session.toggle_auto_correction()
    assert np.array_equal(session.working.pixels, first)
    assert (first[..., :3] == 130).all()


def test_preview_filter_is_non_destructive():
    session = open_session(gray_png(80))
    untouched = session.display_raster.pixels.copy()

    session.toggle_preview_filter()
    assert session.preview_filter is not None
    assert (session.display_raster.pixels[..., :3] == 128).all()
    assert np.array_equal(session.working.pixels, untouched)

    session.toggle_preview_filter()
    assert session.preview_filter is None
    assert session.display_raster is session.working
    assert session.display_raster.pixels.tobytes() == untouched.tobytes()


def test_preview_filter_follows_auto_correction():
    session = open_session(gray_png(60))
    session.toggle_preview_filter()
    assert session.preview_filter == derive_filter_triple(60)

    session.toggle_auto_correction()
    assert session.preview_filter == derive_filter_triple(130)
    assert session.preview_filter.contrast == pytest.approx(1.05)

    session.toggle_auto_correction()
    assert session.preview_filter == derive_filter_triple(60)


def test_auto_correction_leaves_preview_off():
    session = open_session(gray_png(60))
    session.toggle_auto_correction()
    assert session.preview_filter is None
    assert session.display_raster is session.working


def test_session_uses_display_scale():
    session = open_session(gradient_png(), lambda: 2.0)
    session.crop.begin_drag(Handle.SE, 100, 100)
    session.crop.drag_to(125, 125)
    session.crop.end_drag()
    assert session.region == CropRegion(180, 80, 690, 690)


def test_reset_clears_crop_and_correction():
    session = open_session(gradient_png())
    original = session.pristine.pixels.copy()

    session.crop.begin_drag(Handle.MOVE, 0, 0)
    session.crop.drag_to(-90, 40)
    session.crop.end_drag()
    session.crop.begin_drag(Handle.NW, 0, 0)
    session.crop.drag_to(30, 30)
    session.toggle_auto_correction()
    session.toggle_preview_filter()

    session.reset()
    assert session.region == CropRegion(180, 80, 640, 640)
    assert not session.auto_corrected
    assert session.preview_filter is None
    assert not session.crop.is_dragging
    assert np.array_equal(session.working.pixels, original)


def test_confirm_returns_cropped_jpeg():
    session = open_session(gradient_png())
    session.crop.begin_drag(Handle.SE, 0, 0)
    session.crop.drag_to(-100, -200)
    session.crop.end_drag()

    data = session.confirm()
    with Image.open(io.BytesIO(data)) as image:
        assert image.format == "JPEG"
        assert image.size == (540, 440)

    pixels = decoded(data).astype(int)
    # Top-left of the crop is source pixel (180, 80): red = 180*255//999
    assert abs(pixels[0, 0, 0] - 45) <= 6
    assert abs(pixels[0, 0, 1] - 25) <= 6


def test_confirm_includes_auto_correction():
    session = open_session(gray_png(80))
    session.toggle_auto_correction()
    pixels = decoded(session.confirm())
    assert abs(float(pixels.mean()) - 130) <= 2


def test_confirm_flattens_transparency_onto_black():
    pixels = np.zeros((100, 100, 4), dtype=np.uint8)
    pixels[..., :3] = 255
    session = open_session(encode(pixels))
    assert decoded(session.confirm()).max() <= 5


def test_session_is_closed_after_confirm():
    session = open_session(gradient_png())
    session.confirm()
    assert session.closed
    with pytest.raises(RuntimeError):
        session.confirm()
    with pytest.raises(RuntimeError):
        session.toggle_auto_correction()


def test_cancel_discards_session():
    session = open_session(gradient_png())
    session.toggle_auto_correction()
    session.cancel()
    assert session.closed
    assert session.working is None and session.pristine is None
    with pytest.raises(RuntimeError):
        session.reset()


def test_encode_jpeg_quality_affects_size():
    rng = np.random.default_rng(5)
    raster = Raster(rng.integers(0, 256, size=(120, 120, 4), dtype=np.uint8))
    raster.pixels[..., 3] = 255
    assert len(encode_jpeg(raster, quality=30)) < len(encode_jpeg(raster))
