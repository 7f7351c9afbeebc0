import logging
import numpy as np
import cv2
import pytest
from motionhist import (
    DimensionMismatch,
    InvalidConfiguration,
    InvalidRegion,
    MotionHistoryParams,
    MotionHistoryTracker,
    NotReady,
    OpenCVPrimitives,
    Rect,
)


def make_tracker(**kw):
    params = MotionHistoryParams(
        buffer_count=kw.pop("buffer_count", 2),
        diff_thresh=30,
        mhi_duration=1.0,
        max_time_delta=0.5,
        min_time_delta=0.05,
    )
    return MotionHistoryTracker(params, init_time=0.0, **kw)


def gray(h=4, w=4, value=100):
    return np.full((h, w), value, dtype=np.uint8)


def with_block(frame, y, x, size, value):
    out = frame.copy()
    out[y:y + size, x:x + size] = value
    return out


def test_scenario_static_then_block():
    tr = make_tracker()
    for t in (0.0, 0.1, 0.2):
        tr.update(gray(), t)
    assert tr.motion_info(Rect(0, 0, 4, 4)).pixel_count == 0

    tr.update(with_block(gray(), 0, 0, 2, 200), 0.3)
    assert tr.motion_info(Rect(0, 0, 2, 2)).pixel_count == 4
    assert tr.motion_info(Rect(2, 2, 2, 2)).pixel_count == 0


def test_buffer_is_bounded_and_keeps_latest():
    tr = make_tracker(buffer_count=3)
    frames = [gray(value=v) for v in (10, 20, 30, 40, 50)]
    for i, f in enumerate(frames):
        tr.update(f, 0.1 * i)
        assert len(tr.buffer) <= 3
        expected = frames[max(0, i - 2):i + 1]
        assert len(tr.buffer) == len(expected)
        for got, want in zip(tr.buffer, expected):
            assert np.array_equal(got, want)


def test_static_frames_leave_history_empty():
    tr = make_tracker(buffer_count=3)
    for t in (0.1, 0.2, 0.3):
        tr.update(gray(), t)
        assert not tr.silhouette.any()
    assert not tr.mhi.any()


def test_comparison_lag_grows_until_buffer_full():
    block = with_block(gray(value=0), 0, 0, 2, 100)

    tr = make_tracker(buffer_count=3)
    tr.update(gray(value=0), 0.1)
    tr.update(gray(value=0), 0.2)
    tr.update(block, 0.3)  # compared with the first frame
    assert tr.silhouette.sum() == 4
    tr.update(block, 0.4)  # buffer full: compared with the second frame
    assert tr.silhouette.sum() == 4

    tr = make_tracker(buffer_count=2)
    tr.update(gray(value=0), 0.1)
    tr.update(gray(value=0), 0.2)
    tr.update(block, 0.3)
    tr.update(block, 0.4)
    assert tr.silhouette.sum() == 0


def test_single_frame_buffer_never_sees_motion():
    tr = make_tracker(buffer_count=1)
    tr.update(gray(value=0), 0.1)
    tr.update(gray(value=255), 0.2)
    assert tr.silhouette.sum() == 0


def test_mhi_stamps_and_ages_out():
    tr = make_tracker()
    tr.update(gray(), 0.2)
    moved = with_block(gray(), 0, 0, 2, 200)
    tr.update(moved, 0.3)
    assert np.allclose(tr.mhi[0:2, 0:2], 0.3)
    assert np.all(tr.mhi[2:, :] == 0)

    tr.update(moved, 0.4)
    assert np.allclose(tr.mhi[0:2, 0:2], 0.3)

    tr.update(moved, 1.4)
    assert not tr.mhi.any()


def test_mask_is_rescaled_and_clamped():
    tr = make_tracker()
    tr.update(gray(), 1.9)
    mask = tr.update(with_block(gray(), 0, 0, 2, 200), 2.0)
    assert mask is tr.mask
    assert mask.dtype == np.uint8
    assert np.all(mask[0:2, 0:2] == 255)
    # no recorded motion lies below the window and clamps to 0
    assert np.all(mask[2:, :] == 0)


def test_images_are_reused_in_place():
    tr = make_tracker()
    tr.update(gray(), 0.1)
    mhi, mask, orientation = tr.mhi, tr.mask, tr.orientation
    tr.update(with_block(gray(), 0, 0, 2, 200), 0.2)
    assert tr.mhi is mhi
    assert tr.mask is mask
    assert tr.orientation is orientation
    assert orientation.shape == (4, 4) and orientation.dtype == np.float32


def test_queries_before_update_raise_not_ready():
    tr = make_tracker()
    assert not tr.is_ready
    with pytest.raises(NotReady):
        tr.mask
    with pytest.raises(NotReady):
        tr.motion_components()
    with pytest.raises(NotReady):
        tr.motion_info(Rect(0, 0, 1, 1))


@pytest.mark.parametrize("rect", [(10, 10, 2, 2), (3, 3, 2, 2), (-1, 0, 2, 2), (0, 0, 0, 2)])
def test_invalid_region_restores_scope(rect):
    tr = make_tracker()
    tr.update(gray(), 0.1)
    with pytest.raises(InvalidRegion):
        tr.motion_info(rect)
    assert tr.roi is None
    info = tr.motion_info((0, 0, 4, 4))
    assert info.pixel_count == 0
    assert tr.roi is None


def test_scope_restored_when_orientation_fails():
    class Broken(OpenCVPrimitives):
        def calc_global_orientation(self, *args):
            raise RuntimeError("boom")

    tr = make_tracker(primitives=Broken())
    tr.update(gray(), 0.1)
    with pytest.raises(RuntimeError):
        tr.motion_info((0, 0, 2, 2))
    assert tr.roi is None
    assert tr.mhi.shape == (4, 4)


def test_dimension_mismatch_leaves_state_untouched():
    tr = make_tracker()
    tr.update(gray(), 0.1)
    tr.update(with_block(gray(), 0, 0, 2, 200), 0.2)
    mhi = tr.mhi.copy()
    with pytest.raises(DimensionMismatch):
        tr.update(gray(h=5, w=5), 0.3)
    assert len(tr.buffer) == 2
    assert tr.last_time == 0.2
    assert np.array_equal(tr.mhi, mhi)


def test_failed_update_is_atomic():
    class FailingGradient(OpenCVPrimitives):
        fail = False

        def calc_motion_gradient(self, *args):
            if self.fail:
                raise RuntimeError("gradient failed")
            return super().calc_motion_gradient(*args)

    ops = FailingGradient()
    tr = make_tracker(primitives=ops)
    tr.update(gray(), 0.1)
    before = (tr.mhi.copy(), tr.mask.copy(), tr.silhouette.copy(), tr.buffer)

    ops.fail = True
    with pytest.raises(RuntimeError):
        tr.update(with_block(gray(), 0, 0, 2, 200), 0.2)
    assert np.array_equal(tr.mhi, before[0])
    assert np.array_equal(tr.mask, before[1])
    assert np.array_equal(tr.silhouette, before[2])
    assert len(tr.buffer) == len(before[3])
    assert tr.last_time == 0.1


@pytest.mark.parametrize("kw", [
    {"buffer_count": 0},
    {"buffer_count": -2},
    {"mhi_duration": 0.0},
    {"max_time_delta": 0.0},
    {"min_time_delta": 0.6},
    {"diff_thresh": 300},
    {"aperture_size": 4},
])
def test_invalid_configuration(kw):
    with pytest.raises(InvalidConfiguration):
        MotionHistoryTracker(MotionHistoryParams(**kw))


def test_accepts_bgr_frames():
    tr = make_tracker()
    tr.update(np.zeros((8, 8, 3), np.uint8), 0.1)
    frame = np.zeros((8, 8, 3), np.uint8)
    cv2.rectangle(frame, (2, 2), (5, 5), (255, 255, 255), -1)
    tr.update(frame, 0.2)
    assert tr.shape == (8, 8)
    assert tr.silhouette.sum() == 16


def test_rejects_non_uint8_frames():
    tr = make_tracker()
    with pytest.raises(ValueError):
        tr.update(np.zeros((4, 4), np.float32), 0.1)
    assert not tr.is_ready


def moving_square(tr, steps=8, dx=4):
    tr.update(np.zeros((64, 64), np.uint8), 0.0)
    for k in range(1, steps + 1):
        f = np.zeros((64, 64), np.uint8)
        x = 10 + dx * (k - 1)
        cv2.rectangle(f, (x, 20), (x + 15, 35), 255, -1)
        tr.update(f, 0.1 * k)


def test_motion_components_cover_moving_square():
    tr = make_tracker()
    moving_square(tr)
    comps = tr.motion_components()
    assert len(comps) >= 1
    biggest = max(comps, key=lambda c: c.area)
    assert biggest.area > 0
    x, y, w, h = biggest.rect
    # latest square spans x 38..53, y 20..35
    assert x <= 50 and x + w >= 54
    assert y <= 20 and y + h >= 36
    # the caller owns the list
    comps.clear()
    assert len(tr.motion_components()) >= 1


def test_global_angle_for_rightward_motion():
    tr = make_tracker()
    moving_square(tr)
    info = tr.motion_info(Rect(0, 0, 64, 64))
    a = info.angle % 360
    assert min(a, 360 - a) < 45
    assert info.pixel_count > 0


def test_reset_allows_new_dimensions():
    tr = make_tracker()
    tr.update(gray(), 0.1)
    tr.reset(init_time=0.0)
    assert not tr.is_ready
    tr.update(gray(h=6, w=6), 0.1)
    assert tr.mask.shape == (6, 6)
    assert tr.elapsed == pytest.approx(0.1)


def test_motion_components_ignore_stale_motion():
    tr = make_tracker()
    old = with_block(gray(16, 16), 0, 0, 4, 200)
    tr.update(gray(16, 16), 0.0)
    for k in range(1, 10):
        tr.update(old, 0.1 * k)
    # block was stamped at t=0.1 and is still in the history
    assert tr.mhi.max() == pytest.approx(0.1)
    assert tr.motion_components() == []

    tr.update(with_block(old, 10, 10, 4, 200), 1.0)
    comps = tr.motion_components()
    assert len(comps) == 1
    assert comps[0].rect == Rect(10, 10, 4, 4)
    assert comps[0].area == 16


def test_out_of_order_timestamp_warns(caplog):
    tr = make_tracker()
    with caplog.at_level(logging.WARNING, logger="motionhist.tracker"):
        tr.update(gray(), 0.5)
        tr.update(with_block(gray(), 0, 0, 2, 200), 0.2)
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert warnings[0].name == "motionhist.tracker"
    assert tr.last_time == 0.2
    assert len(tr.buffer) == 2
    assert tr.silhouette.sum() == 4


def test_mask_rounds_to_nearest_level():
    tr = make_tracker()
    block = with_block(gray(), 0, 0, 2, 200)
    tr.update(gray(), 2.2)
    tr.update(block, 2.3)
    tr.update(block, 2.45)
    # (2.3 - (2.45 - 1.0)) * 255 = 216.75
    assert np.all(tr.mask[0:2, 0:2] == 217)
    assert np.all(tr.mask[2:, :] == 0)
