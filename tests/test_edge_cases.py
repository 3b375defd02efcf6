"""Edge case tests for degenerate frames and keypoints."""

import math

import numpy as np
import pytest

from posecue.classifier import GestureClassifier, GestureState, Posture
from posecue.errors import MalformedFrameError
from posecue.frames import RawFrame
from posecue.history import GestureHistory
from posecue.keypoints import Keypoint, KeypointName, PoseFrame
from posecue.pipeline import PosePipeline
from posecue.recorder import PosePlayer, PoseRecorder
from posecue.regions import Region, RegionDetector


def full_pose(value, score=0.9):
    return PoseFrame(tuple(Keypoint(name, value, value, score) for name in KeypointName))


class TestFrameEdgeCases:
    """Tiny, saturated and mismatched buffers."""

    def test_single_pixel_skin_frame(self):
        regions = RegionDetector().detect(RawFrame(1, 1, bytes([200, 120, 90, 255])))
        assert regions.top_region is None
        assert regions.left_hand == Region(0.0, 0.0, 0.7)
        assert regions.lower_region is None

    def test_frame_smaller_than_stride(self):
        regions = RegionDetector().detect(RawFrame(3, 3, bytes(36)))
        assert regions.is_empty

    def test_all_skin_frame(self):
        image = np.zeros((480, 640, 4), dtype=np.uint8)
        image[..., :3] = (200, 120, 90)
        regions = RegionDetector().detect(RawFrame(640, 480, image.tobytes()))

        assert regions.top_region == Region(0.0, 0.0)
        assert regions.left_hand == Region(0.0, 0.0, 0.7)
        # right pool starts past 0.6W
        assert regions.right_hand == Region(392.0, 0.0, 0.7)
        assert regions.lower_region is not None
        assert regions.knee_region is not None

    def test_saturated_white_is_not_skin(self):
        image = np.full((48, 64, 4), 255, dtype=np.uint8)
        assert RegionDetector().detect(RawFrame(64, 48, image.tobytes())).is_empty

    def test_oversized_buffer_is_malformed(self):
        with pytest.raises(MalformedFrameError) as exc:
            RawFrame(2, 2, bytes(17)).validate()
        assert exc.value.length == 17
        assert "expects 16 bytes" in str(exc.value)

    def test_negative_dimensions_are_malformed(self):
        with pytest.raises(MalformedFrameError):
            RegionDetector().detect(RawFrame(-4, 4, b""))


class TestKeypointEdgeCases:
    """Degenerate keypoint values reaching the classifier."""

    def test_nan_keypoints(self):
        state = GestureClassifier().classify(full_pose(math.nan), GestureHistory.create())
        assert isinstance(state, GestureState)

    def test_inf_keypoints(self):
        state = GestureClassifier().classify(full_pose(math.inf), GestureHistory.create())
        assert isinstance(state, GestureState)

    def test_zero_keypoints(self):
        # everything at the origin: wrist not above shoulder, eyes level
        state = GestureClassifier().classify(full_pose(0.0), GestureHistory.create())
        assert state.hand_position == "down"
        assert state.eyes_closed

    def test_all_scores_at_threshold(self):
        state = GestureClassifier().classify(full_pose(100.0, score=0.3), GestureHistory.create())
        assert state == GestureState()

    def test_full_windows_stay_bounded(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        for i in range(100):
            classifier.classify(full_pose(float(i % 7)), history)
        lengths = history.lengths()
        assert lengths["mouth"] == 20
        assert lengths["eye"] == 10
        assert lengths["body"] == 20

    def test_zero_torso_length(self):
        # shoulders, hips and knees on one row
        history = GestureHistory.create()
        for _ in range(10):
            state = GestureClassifier().classify(full_pose(100.0), history)
        assert state.posture == Posture.SITTING


class TestPipelineEdgeCases:
    def test_stop_twice(self):
        pipeline = PosePipeline()
        pipeline.start()
        pipeline.stop()
        pipeline.stop()
        assert not pipeline.active

    def test_start_twice_keeps_history(self):
        pipeline = PosePipeline()
        pipeline.start()
        pipeline.process_pose(full_pose(1.0))
        pipeline.start()
        assert pipeline.stats.windows["mouth"] == 1

    def test_stats_before_any_tick(self):
        stats = PosePipeline().stats
        assert stats.fps == 0.0
        assert stats.avg_latency_ms == 0.0
        assert stats.total_ticks == 0

    def test_none_frame_while_inactive_is_not_counted(self):
        pipeline = PosePipeline()
        assert pipeline.process_frame(None) is None
        assert pipeline.stats.skipped_ticks == 0


class TestRecorderEdgeCases:
    def test_empty_recording(self, tmp_path):
        rec = PoseRecorder()
        rec.start()
        rec.stop()
        path = tmp_path / "empty.json"
        rec.save(path)

        player = PosePlayer.load(path)
        assert player.frame_count == 0
        assert player.duration == 0.0
        assert list(player.play_realtime()) == []
