import numpy as np
import pytest

from ascii_digitizer import PixelSampler, RasterFrame
from ascii_digitizer.sampler import sobel_magnitude

from conftest import solid_raster


def raster_with_transparent(size: int, transparent: int) -> RasterFrame:
    """size x size white raster whose first `transparent` pixels have alpha 0"""
    pixels = np.full((size, size, 4), 255, dtype=np.uint8)
    flat = pixels.reshape(-1, 4)
    flat[:transparent, 3] = 0
    return RasterFrame(size, size, pixels)


def test_fast_path_alpha_threshold():
    pixels = np.array([[[10, 20, 30, 49], [10, 20, 30, 50]]], dtype=np.uint8)
    raster = RasterFrame(2, 1, pixels)
    sampler = PixelSampler()

    assert sampler.sample(raster, 0, 0, 2, 1).is_transparent
    opaque = sampler.sample(raster, 1, 0, 2, 1)
    assert not opaque.is_transparent
    assert opaque.rgb == (10, 20, 30)
    assert opaque.edge_intensity == 0.0


@pytest.mark.parametrize("transparent, expected", [
    (20, True),   # 80%
    (18, True),   # 72%
    (17, False),  # 68%
    (0, False),
])
def test_enhanced_transparency_fraction(transparent, expected):
    raster = raster_with_transparent(5, transparent)
    sample = PixelSampler(sub_samples=5).sample(raster, 0, 0, 1, 1, high_res=raster)
    assert sample.is_transparent is expected


def test_enhanced_half_transparent_averages_opaque_samples():
    pixels = np.zeros((2, 2, 4), dtype=np.uint8)
    pixels[0, :] = (200, 100, 50, 255)
    raster = RasterFrame(2, 2, pixels)

    sample = PixelSampler(sub_samples=2).sample(raster, 0, 0, 1, 1, high_res=raster)
    assert not sample.is_transparent
    assert sample.rgb == (200, 100, 50)


def test_enhanced_detects_edges(split_raster):
    sampler = PixelSampler(sub_samples=2)
    edge = sampler.sample(split_raster, 0, 0, 1, 1, high_res=split_raster)
    assert edge.edge_intensity == pytest.approx(1.0)


def test_enhanced_ignores_alpha_silhouette():
    # Opaque white on the right, fully transparent black on the left
    pixels = np.zeros((8, 8, 4), dtype=np.uint8)
    pixels[:, 4:] = 255
    raster = RasterFrame(8, 8, pixels)

    sampler = PixelSampler(sub_samples=4)
    for cell_x in range(2):
        sample = sampler.sample(raster, cell_x, 0, 2, 2, high_res=raster)
        assert sample.edge_intensity == 0.0


def test_enhanced_flat_region_has_no_edge(gray_raster):
    sample = PixelSampler(sub_samples=3).sample(gray_raster, 1, 1, 4, 4, high_res=gray_raster)
    assert sample.edge_intensity == 0.0
    assert sample.rgb == (128, 128, 128)


def test_weak_edges_are_dropped():
    pixels = np.full((8, 8, 4), 255, dtype=np.uint8)
    pixels[:, 4:, :3] = 250
    raster = RasterFrame(8, 8, pixels)
    sample = PixelSampler().sample(raster, 0, 0, 1, 1, high_res=raster)
    assert sample.edge_intensity == 0.0


def test_sobel_magnitude_shape():
    lum = np.zeros((5, 6), dtype=np.float32)
    lum[:, 3:] = 1.0
    magnitude = sobel_magnitude(lum)
    assert magnitude.shape == (3, 4)
    assert magnitude.max() == pytest.approx(4.0)
    assert magnitude[:, 0].max() == 0.0


def test_sub_samples_must_be_positive():
    with pytest.raises(ValueError):
        PixelSampler(sub_samples=0)


def test_brightness_of_sample():
    sample = PixelSampler().sample(solid_raster(1, 1, (255, 255, 255, 255)), 0, 0, 1, 1)
    assert sample.brightness == pytest.approx(1.0)
