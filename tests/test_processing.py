import numpy as np
import pytest

from worksheet_enhancer.edges import to_luminance
from worksheet_enhancer.errors import DegenerateGeometryError
from worksheet_enhancer.geometry import Corners, Point
from worksheet_enhancer.processing import (
    auto_crop,
    crop_is_significant,
    estimate_background,
    find_content_box,
    photocopy_filter,
    rectified_size,
    rectify,
    solve_homography,
)

from conftest import INK_BOX, solid

SKEWED = Corners(Point(10, 10), Point(90, 20), Point(5, 95), Point(95, 85))


# --- perspective rectification ---


def test_rectified_size_uses_longer_opposite_edges():
    corners = Corners(Point(0, 0), Point(30, 0), Point(0, 40), Point(50, 40))
    assert rectified_size(corners) == (50, 45)


def test_rectify_starts_at_top_left_corner(noise_image):
    buffer = noise_image(80, 80)
    corners = Corners(Point(10, 20), Point(50, 20), Point(10, 60), Point(50, 60))
    out = rectify(buffer, corners)
    assert out.shape == (40, 40, 4)
    assert np.array_equal(out[0, 0], buffer[20, 10])


@pytest.mark.parametrize("method", ["bilinear", "homography"])
def test_rectify_quad_inside_uniform_region(method):
    buffer = solid(100, 100, (200, 10, 10))
    out = rectify(buffer, SKEWED, method=method)
    assert out.shape[:2] == (rectified_size(SKEWED)[1], rectified_size(SKEWED)[0])
    assert (out[:, :, :3] == (200, 10, 10)).all()
    assert (out[:, :, 3] == 255).all()


def test_rectify_leaves_out_of_bounds_pixels_zeroed():
    buffer = solid(50, 50, (255, 0, 0))
    corners = Corners(Point(-10, 0), Point(40, 0), Point(-10, 50), Point(40, 50))
    out = rectify(buffer, corners)
    assert not out[25, 0].any()
    assert np.array_equal(out[25, 30], [255, 0, 0, 255])


def test_rectify_does_not_modify_input(noise_image):
    buffer = noise_image(100, 100)
    before = buffer.copy()
    rectify(buffer, SKEWED)
    assert np.array_equal(buffer, before)


def test_rectify_rejects_collapsed_corners():
    point = Point(5, 5)
    with pytest.raises(DegenerateGeometryError):
        rectify(solid(10, 10, 0), Corners(point, point, point, point))


def test_rectify_rejects_unknown_method():
    with pytest.raises(ValueError):
        rectify(solid(100, 100, 0), SKEWED, method="affine")


def test_homography_maps_output_corners_onto_quad():
    matrix = solve_homography(SKEWED, 80, 60)
    targets = {(0, 0): SKEWED.top_left, (80, 0): SKEWED.top_right, (80, 60): SKEWED.bottom_right, (0, 60): SKEWED.bottom_left}
    for (x, y), expected in targets.items():
        mapped = matrix @ np.array([x, y, 1.0])
        assert mapped[0] / mapped[2] == pytest.approx(expected.x)
        assert mapped[1] / mapped[2] == pytest.approx(expected.y)


def test_homography_rejects_collinear_corners():
    corners = Corners(Point(0, 0), Point(10, 0), Point(20, 0), Point(30, 0))
    with pytest.raises(DegenerateGeometryError):
        solve_homography(corners, 10, 10)


# --- background estimation and auto-crop ---


def test_background_is_border_average(page_scene):
    assert estimate_background(page_scene) == pytest.approx([255.0, 255.0, 255.0])


def test_content_box_is_padded_page(page_scene):
    assert find_content_box(page_scene) == (44, 44, 356, 256)


def test_auto_crop_trims_margin(page_scene):
    cropped = auto_crop(page_scene)
    assert cropped.shape == (212, 312, 4)
    assert not np.shares_memory(cropped, page_scene)


def test_auto_crop_is_idempotent(page_scene):
    once = auto_crop(page_scene)
    twice = auto_crop(once)
    assert twice is once
    assert np.array_equal(twice, once)


def test_auto_crop_keeps_small_subject_uncropped():
    buffer = solid(300, 400, 255)
    buffer[140:160, 190:210, :3] = 0
    assert auto_crop(buffer) is buffer


def test_auto_crop_ignores_uniform_image():
    buffer = solid(50, 80, 120)
    assert find_content_box(buffer) is None
    assert auto_crop(buffer) is buffer


def test_auto_crop_keeps_busy_image(noise_image):
    buffer = noise_image(120, 160)
    assert auto_crop(buffer) is buffer


@pytest.mark.parametrize("seed", [3, 4, 5])
def test_auto_crop_output_is_contained(noise_image, seed):
    buffer = solid(200, 260, 240)
    rng = np.random.default_rng(seed)
    x0, y0 = rng.integers(0, 60, size=2)
    buffer[y0:y0 + 130, x0:x0 + 180, :3] = noise_image(130, 180, seed=seed)[:, :, :3]

    cropped = auto_crop(buffer)
    height, width = buffer.shape[:2]
    if cropped is not buffer:
        assert cropped.shape[0] <= height and cropped.shape[1] <= width
        assert cropped.shape[0] >= height / 2 and cropped.shape[1] >= width / 2


def test_crop_policy():
    assert crop_is_significant((0, 0, 90, 100), 100, 100)
    assert not crop_is_significant((2, 2, 98, 98), 100, 100)
    assert not crop_is_significant((0, 0, 40, 100), 100, 100)


# --- photocopy filter ---


def test_photocopy_is_monotonic(noise_image):
    buffer = noise_image(60, 60, seed=7)
    before = to_luminance(buffer)
    after = to_luminance(photocopy_filter(buffer))
    order = np.argsort(before, axis=None, kind="stable")
    assert (np.diff(after.ravel()[order]) >= -1e-3).all()


def test_photocopy_whitens_paper_and_darkens_ink(page_scene):
    out = photocopy_filter(page_scene)
    assert (out[10, 10, :3] >= 230).all()
    ix0, iy0, ix1, iy1 = INK_BOX
    ink = out[iy0:iy1, ix0:ix1, :3]
    assert (ink < 60).all()


def test_photocopy_output_is_opaque_and_warm(noise_image):
    buffer = noise_image(20, 20)
    buffer[:, :, 3] = 0
    out = photocopy_filter(buffer)
    assert (out[:, :, 3] == 255).all()
    assert (out[:, :, 0] >= out[:, :, 1]).all()
    assert (out[:, :, 1] >= out[:, :, 2]).all()


def test_photocopy_flat_images():
    assert np.array_equal(photocopy_filter(solid(4, 4, 250))[0, 0], [233, 231, 230, 255])
    assert np.array_equal(photocopy_filter(solid(4, 4, 20))[0, 0], [63, 61, 60, 255])
    assert photocopy_filter(solid(1, 1, 0)).shape == (1, 1, 4)


def test_photocopy_does_not_modify_input(noise_image):
    buffer = noise_image(30, 30)
    before = buffer.copy()
    photocopy_filter(buffer)
    assert np.array_equal(buffer, before)
