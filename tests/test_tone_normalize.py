import numpy as np
import pytest

from raster import Raster
from tone_normalize import (
    MIN_SAMPLES,
    FilterTriple,
    apply_auto_correction,
    apply_filter_triple,
    auto_correction_offset,
    derive_filter_triple,
    measure_brightness,
)


def uniform(width, height, rgb, alpha=255):
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = rgb
    pixels[..., 3] = alpha
    return Raster(pixels)


@pytest.mark.parametrize("size", [(64, 64), (1000, 800), (4000, 100)])
def test_brightness_of_flat_images(size):
    assert measure_brightness(uniform(*size, (128, 128, 128))).value == 128
    assert measure_brightness(uniform(*size, (0, 0, 0))).value == 0
    assert measure_brightness(uniform(*size, (255, 255, 255))).value == 255


def test_brightness_uses_luminance_weights():
    assert measure_brightness(uniform(100, 100, (255, 0, 0))).value == 76
    assert measure_brightness(uniform(100, 100, (0, 255, 0))).value == 149
    assert measure_brightness(uniform(100, 100, (0, 0, 255))).value == 29


def test_brightness_ignores_alpha():
    assert measure_brightness(uniform(100, 100, (200, 200, 200), alpha=0)).value == 200


def test_brightness_averages_all_pixels():
    raster = uniform(100, 100, (0, 0, 0))
    raster.pixels[:, 50:, :3] = 255
    assert measure_brightness(raster).value == 127


def test_small_images_are_measured_in_full():
    assert measure_brightness(uniform(80, 60, (10, 10, 10))).sampled_pixels == 80 * 60


@pytest.mark.parametrize("size", [(1000, 800), (4000, 100), (3000, 3000)])
def test_large_images_sample_enough_pixels(size):
    metric = measure_brightness(uniform(*size, (90, 90, 90)))
    assert MIN_SAMPLES <= metric.sampled_pixels < size[0] * size[1]


def test_filter_triple_for_dark_image():
    triple = derive_filter_triple(80)
    assert triple.brightness == pytest.approx(1.6)
    assert triple.contrast == pytest.approx(1.15)
    assert triple.saturate == pytest.approx(1.1)


@pytest.mark.parametrize("brightness, expected_brightness, expected_contrast", [
    (0, 1.6, 1.15),
    (5, 1.6, 1.15),
    (110, 135 / 110, 1.15),
    (135, 1.0, 1.05),
    (140, 135 / 140, 1.05),
    (160, 135 / 160, 1.10),
    (250, 0.8, 1.10),
])
def test_filter_triple_rules(brightness, expected_brightness, expected_contrast):
    triple = derive_filter_triple(brightness)
    assert triple.brightness == pytest.approx(expected_brightness)
    assert triple.contrast == pytest.approx(expected_contrast)


def test_filter_triple_css():
    assert derive_filter_triple(80).css() == "brightness(1.60) contrast(1.15) saturate(1.1)"
    assert derive_filter_triple(135).css() == "brightness(1.00) contrast(1.05) saturate(1.1)"


def test_identity_filter_leaves_pixels_alone():
    rng = np.random.default_rng(7)
    raster = Raster(rng.integers(0, 256, size=(40, 50, 4), dtype=np.uint8))
    out = apply_filter_triple(raster, FilterTriple(1.0, 1.0, 1.0))
    assert np.array_equal(out.pixels, raster.pixels)


def test_filter_preview_does_not_touch_source():
    rng = np.random.default_rng(3)
    raster = Raster(rng.integers(0, 256, size=(60, 60, 4), dtype=np.uint8))
    before = raster.pixels.copy()

    out = apply_filter_triple(raster, derive_filter_triple(measure_brightness(raster).value))
    assert out is not raster
    assert np.array_equal(raster.pixels, before)
    assert np.array_equal(out.pixels[..., 3], before[..., 3])


def test_filter_brightens_dark_gray():
    out = apply_filter_triple(uniform(20, 20, (80, 80, 80)), derive_filter_triple(80))
    # 80 * 1.6 = 128, contrast and saturate keep a neutral gray near mid
    assert (out.pixels[..., :3] == 128).all()


def test_saturate_boosts_color_spread():
    raster = uniform(10, 10, (150, 100, 100))
    out = apply_filter_triple(raster, FilterTriple(1.0, 1.0, 1.5))
    r, g, b = (int(v) for v in out.pixels[0, 0, :3])
    assert r > 150
    assert g < 100 and b < 100


def test_auto_correction_offset():
    assert auto_correction_offset(80) == 50
    assert auto_correction_offset(130) == 0
    assert auto_correction_offset(200) == 0


def test_auto_correction_dark_image():
    raster = uniform(30, 30, (80, 80, 80), alpha=77)
    result = apply_auto_correction(raster)
    assert result is raster
    # (80 + 50 - 128) * 1.2 + 128 = 130.4
    assert (raster.pixels[..., :3] == 130).all()
    assert (raster.pixels[..., 3] == 77).all()


def test_auto_correction_bright_image_only_gets_contrast():
    raster = uniform(30, 30, (200, 200, 200))
    apply_auto_correction(raster)
    # (200 - 128) * 1.2 + 128 = 214.4
    assert (raster.pixels[..., :3] == 214).all()


def test_auto_correction_clamps_channels():
    raster = uniform(30, 30, (250, 250, 250))
    raster.pixels[0, 0, :3] = (0, 5, 255)
    apply_auto_correction(raster, brightness=100)
    assert tuple(raster.pixels[0, 0, :3]) == (10, 16, 255)
    assert (raster.pixels[1:, :, :3] == 255).all()


def test_auto_correction_is_deterministic():
    rng = np.random.default_rng(11)
    pixels = rng.integers(0, 256, size=(70, 90, 4), dtype=np.uint8)
    a = apply_auto_correction(Raster(pixels.copy()))
    b = apply_auto_correction(Raster(pixels.copy()))
    assert np.array_equal(a.pixels, b.pixels)
