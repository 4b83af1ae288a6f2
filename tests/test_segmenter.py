import numpy as np
import cv2
import pytest
import spotseg.core.segmenter as segmenter_mod
from spotseg.core import (
    SpotSegmenter, SegmenterParams, FourierConvolution, detect_spots, background_floor,
)

def test_single_disc_detected_near_centre(disc_image):
    seg = SpotSegmenter(disc_image, 20.0, (1.0, 1.0))
    assert seg.check_input()
    assert seg.process(), seg.error_message
    spots = seg.spots
    assert len(spots) == 1
    y, x = spots[0].coordinates
    assert abs(y - 64) <= 3 and abs(x - 64) <= 3
    assert spots[0].name == "Spot 0"
    assert seg.factors == pytest.approx((2.0, 2.0))
    assert seg.filtered_image.shape == (64, 64)

def test_flat_image_gives_no_spots(flat_image):
    seg = SpotSegmenter(flat_image, 20.0, (1.0, 1.0))
    assert seg.process(), seg.error_message
    assert seg.spots == []
    seg_edges = SpotSegmenter(flat_image, 20.0, (1.0, 1.0), allow_edge_extrema=True)
    assert seg_edges.process() and seg_edges.spots == []

def test_calibrated_coordinates(disc_image):
    spots = detect_spots(disc_image, 10.0, (0.5, 0.5))
    assert len(spots) == 1
    assert spots[0].coordinates == pytest.approx((32.0, 32.0), abs=1.5)

def test_anisotropic_calibration():
    img = np.zeros((128, 256), np.uint8) + 30
    # у фізичних одиницях це коло радіусом 10
    cv2.ellipse(img, (128, 64), (20, 10), 0, 0, 360, 200, -1)
    seg = SpotSegmenter(img, 20.0, (1.0, 0.5))
    assert seg.process(), seg.error_message
    assert seg.factors == pytest.approx((2.0, 4.0))
    assert seg.filtered_image.shape == (64, 64)
    assert len(seg.spots) == 1
    assert seg.spots[0].coordinates == pytest.approx((64.0, 64.0), abs=3.0)

def test_ball_in_3d_stack(ball_stack):
    seg = SpotSegmenter(ball_stack, 10.0, (1.0, 1.0, 1.0))
    assert seg.process(), seg.error_message
    assert seg.factors == (1.0, 1.0, 1.0)
    assert len(seg.spots) == 1
    assert seg.spots[0].coordinates == pytest.approx((20.0, 20.0, 20.0), abs=1.5)

def test_median_filter_path(disc_image):
    seg = SpotSegmenter(disc_image, 20.0, (1.0, 1.0), use_median_filter=True)
    assert seg.process(), seg.error_message
    assert len(seg.spots) == 1
    y, x = seg.spots[0].coordinates
    assert abs(y - 64) <= 3 and abs(x - 64) <= 3

def test_edge_extrema_flag():
    img = np.zeros((128, 128), np.uint8) + 30
    cv2.circle(img, (64, 0), 10, 200, -1)  # центр на верхньому краї
    assert detect_spots(img, 20.0, (1.0, 1.0)) == []
    spots = detect_spots(img, 20.0, (1.0, 1.0), allow_edge_extrema=True)
    assert len(spots) == 1
    assert spots[0].coordinates == pytest.approx((0.0, 64.0), abs=3.0)

def test_from_params(disc_image):
    params = SegmenterParams(diameter=20.0, calibration=(1.0, 1.0))
    seg = SpotSegmenter.from_params(disc_image, params)
    assert not seg.use_median_filter and not seg.allow_edge_extrema
    assert seg.process() and len(seg.spots) == 1

def test_set_image_same_dim_reuses_kernels_and_clears_results(disc_image, flat_image):
    seg = SpotSegmenter(disc_image, 20.0, (1.0, 1.0))
    kernels = seg.kernel_set
    assert seg.process() and len(seg.spots) == 1
    seg.set_image(flat_image)
    assert seg.kernel_set is kernels
    assert seg.kernels.builds == 1
    assert seg.spots == [] and seg.filtered_image is None
    assert seg.image is flat_image

def test_set_image_dim_change_rebuilds(disc_image, ball_stack):
    seg = SpotSegmenter(disc_image, 20.0, (1.0, 1.0))
    assert seg.sigma == pytest.approx(14.142, abs=1e-3)
    seg.set_image(ball_stack)
    assert seg.kernels.builds == 2
    assert seg.kernel_set.laplacian.shape == (3, 3, 3)
    assert seg.sigma == pytest.approx(11.547, abs=1e-3)

def test_set_image_none_is_ignored(disc_image):
    seg = SpotSegmenter(disc_image, 20.0, (1.0, 1.0))
    assert seg.process()
    seg.set_image(None)
    assert seg.image is disc_image and len(seg.spots) == 1

def test_downsample_failure_reported():
    seg = SpotSegmenter(np.zeros((3, 3)), 100.0, (1.0, 1.0))
    assert seg.check_input()
    assert seg.process() is False
    assert seg.error_message.startswith("SpotSegmenter: Failed to down-sample source image:\n")
    assert "at least 1 pixel" in seg.error_message

class _FailingLaplacian(FourierConvolution):
    def process(self):
        if self.kernel.shape == (3, 3):
            return self._fail("synthetic failure")
        return super().process()

def test_stage_failure_clears_previous_results(disc_image, monkeypatch):
    seg = SpotSegmenter(disc_image, 20.0, (1.0, 1.0))
    assert seg.process() and len(seg.spots) == 1
    monkeypatch.setattr(segmenter_mod, "FourierConvolution", _FailingLaplacian)
    assert seg.process() is False
    assert seg.error_message == (
        "SpotSegmenter: Fourier convolution with Laplacian failed:\nsynthetic failure"
    )
    assert seg.spots == []
    assert seg.filtered_image is None
    assert seg.factors is None

def test_detect_spots_raises_on_failure():
    with pytest.raises(ValueError, match="Calibration"):
        detect_spots(np.zeros((16, 16)), 5.0)

@pytest.mark.parametrize("scale", [1e-3, 1e-2, 0.1, 1.0, 10.0, 50.0])
def test_detection_same_in_any_unit(disc_image, scale):
    # той самий диск, калібрування в мм / мкм / нм
    seg = SpotSegmenter(disc_image, 20.0 * scale, (scale, scale))
    assert seg.process(), seg.error_message
    assert seg.kernel_set.gaussian.shape == (43, 43)
    assert len(seg.spots) == 1
    y, x = seg.spots[0].coordinates
    assert abs(y - 64 * scale) <= 3 * scale and abs(x - 64 * scale) <= 3 * scale

def test_ball_in_3d_stack_nm_calibration(ball_stack):
    seg = SpotSegmenter(ball_stack, 10000.0, (1000.0, 1000.0, 1000.0))
    assert seg.kernel_set.gaussian.shape == (35, 35, 35)
    assert seg.process(), seg.error_message
    assert len(seg.spots) == 1
    assert seg.spots[0].coordinates == pytest.approx((20000.0, 20000.0, 20000.0), abs=1500.0)

def test_anisotropic_kernel_is_round_after_downsampling():
    img = np.zeros((128, 256), np.uint8) + 30
    seg = SpotSegmenter(img, 20.0, (1.0, 0.5))
    assert seg.kernel_set.pixel_sigmas == pytest.approx((7.071, 7.071), abs=1e-3)
    seg_z = SpotSegmenter(np.zeros((20, 64, 64)), 2.0, (0.5, 0.2, 0.2))
    # по z об'єкт менший за 10 px і не зменшується
    assert seg_z.kernel_set.pixel_sigmas == pytest.approx(
        (4.0 / np.sqrt(3), 10.0 / np.sqrt(3), 10.0 / np.sqrt(3))
    )

def test_spot_on_high_background_offset():
    yy, xx = np.mgrid[:128, :128]
    img = np.full((128, 128), 60000.0)
    img[(yy - 64) ** 2 + (xx - 64) ** 2 <= 100] = 60020.0
    spots = detect_spots(img, 20.0, (1.0, 1.0))
    assert len(spots) == 1
    assert spots[0].coordinates == pytest.approx((64.0, 64.0), abs=3.0)

def test_background_floor_ignores_offset():
    ramp = np.linspace(0.0, 1.0, 64).reshape(8, 8)
    assert background_floor(ramp + 100.0) == pytest.approx(background_floor(ramp), rel=1e-6)
    flat = np.full((8, 8), 50.0)
    assert 0.0 < background_floor(flat) < 1e-6
