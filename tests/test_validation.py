import numpy as np
import pytest
from spotseg.core import SpotSegmenter

def _message(seg):
    assert seg.check_input() is False
    assert seg.error_message.startswith("SpotSegmenter: ")
    return seg.error_message

def test_each_invalid_input_has_distinct_message():
    img2 = np.zeros((32, 32))
    msgs = [
        _message(SpotSegmenter(None, 5.0, (1.0, 1.0))),
        _message(SpotSegmenter(np.zeros((4, 4, 4, 4)), 5.0, (1.0,) * 4)),
        _message(SpotSegmenter(img2, 0.0, (1.0, 1.0))),
        _message(SpotSegmenter(img2, -2.0, (1.0, 1.0))),
        _message(SpotSegmenter(img2, 5.0, None)),
        _message(SpotSegmenter(img2, 5.0, (1.0, 0.0))),
        _message(SpotSegmenter(img2, 5.0, (1.0, 1.0, 1.0))),
    ]
    # 0 та від'ємний діаметр дають однакове повідомлення
    assert msgs[2] == msgs[3]
    assert len(set(msgs)) == 6
    assert all(len(m) > len("SpotSegmenter: ") for m in msgs)

def test_checks_run_in_order():
    seg = SpotSegmenter(np.zeros((4,)), -1.0, None)
    assert not seg.check_input()
    assert "2D or 3D" in seg.error_message

def test_valid_input_passes_and_is_repeatable():
    seg = SpotSegmenter(np.zeros((32, 32)), 5.0, (0.5, 0.5))
    assert seg.check_input() and seg.check_input()
    assert seg.error_message == ""

def test_check_input_does_not_mutate_state(disc_image):
    seg = SpotSegmenter(disc_image, 20.0, (1.0, 1.0))
    assert seg.process()
    spots, filtered, builds = seg.spots, seg.filtered_image, seg.kernels.builds
    seg.calibration = (1.0, -1.0)
    assert not seg.check_input()
    assert seg.spots == spots and seg.filtered_image is filtered
    assert seg.kernels.builds == builds

def test_process_refuses_invalid_input():
    seg = SpotSegmenter(np.zeros((32, 32)), 5.0, None)
    assert seg.process() is False
    assert seg.error_message == "SpotSegmenter: Calibration is not set."
    assert seg.spots == [] and seg.filtered_image is None

def test_calibration_taken_from_image():
    from spotseg.core import CalibratedImage
    img = CalibratedImage(np.zeros((16, 16)), (0.2, 0.3), "µm")
    seg = SpotSegmenter(img, 2.0)
    assert seg.calibration == (0.2, 0.3)
    assert seg.check_input()
    with pytest.raises(TypeError):
        SpotSegmenter(img, None)
