"""Tests for keypoint recording and replay."""

import pytest

from posecue.classifier import GestureState, HandPosition, Posture
from posecue.keypoints import Keypoint, KeypointName, PoseFrame
from posecue.pipeline import PosePipeline
from posecue.recorder import PosePlayer, PoseRecorder, RecordedFrame


def make_keypoints(wrist_y=80.0):
    return (
        Keypoint(KeypointName.LEFT_SHOULDER, 260.0, 200.0, 0.8),
        Keypoint(KeypointName.RIGHT_SHOULDER, 380.0, 200.0, 0.8),
        Keypoint(KeypointName.LEFT_WRIST, 100.0, wrist_y, 0.7),
    )


def make_recording(n=10):
    rec = PoseRecorder()
    rec.start()
    for i in range(n):
        rec.add_frame(make_keypoints(), i * 33.0, GestureState(hand_position=HandPosition.UP))
    rec.stop()
    return rec


class TestRecorder:
    def test_record_and_count(self):
        rec = PoseRecorder()
        rec.start()
        for i in range(10):
            rec.add_frame(make_keypoints(), i * 33.0)
        assert rec.is_recording
        assert rec.stop() == 10
        assert not rec.is_recording

    def test_not_recording_ignores_frames(self):
        rec = PoseRecorder()
        rec.add_frame(make_keypoints(), 0.0)
        assert rec.frame_count == 0

    def test_duration_from_timestamps(self):
        assert make_recording(31).duration == pytest.approx(0.99)
        assert make_recording(1).duration == 0.0

    def test_start_discards_previous_frames(self):
        rec = make_recording(5)
        rec.start()
        assert rec.frame_count == 0


class TestPlayer:
    def test_save_and_load_json(self, tmp_path):
        path = tmp_path / "session.json"
        make_recording(10).save(path)

        player = PosePlayer.load(path)
        assert player.frame_count == 10
        assert player.duration == pytest.approx(0.297)

        frame = player.get_frame(0)
        pose = frame.to_pose()
        assert pose.get(KeypointName.LEFT_WRIST).y == 80.0
        assert frame.to_state().hand_position == HandPosition.UP

    def test_save_and_load_compact(self, tmp_path):
        path = make_recording(10).save_compact(tmp_path / "session.json")
        assert path.suffix == ".npz"

        player = PosePlayer.load(path)
        assert player.frame_count == 10
        first = player.get_frame(0)
        assert first.to_pose().get(KeypointName.RIGHT_SHOULDER).x == 380.0
        assert first.to_pose().get(KeypointName.NOSE) is None
        assert first.to_state() == GestureState(hand_position=HandPosition.UP)

    def test_frames_without_state(self, tmp_path):
        rec = PoseRecorder()
        rec.start()
        rec.add_frame((), 0.0)
        path = rec.save_compact(tmp_path / "empty")

        frame = PosePlayer.load(path).get_frame(0)
        assert frame.keypoints == []
        assert frame.to_state() is None

    def test_get_frame_out_of_range(self):
        player = PosePlayer([RecordedFrame(0.0, [])])
        assert player.get_frame(1) is None
        assert player.get_frame(-1) is None

    def test_play_realtime_keeps_order(self):
        frames = [RecordedFrame(i * 1.0, []) for i in range(5)]
        played = list(PosePlayer(frames).play_realtime(speed=100.0))
        assert [f.timestamp for f in played] == [0.0, 1.0, 2.0, 3.0, 4.0]

    def test_replay_reproduces_states(self, tmp_path):
        pipeline = PosePipeline()
        pipeline.start()
        rec = PoseRecorder()
        rec.start()
        pipeline.on_tick(lambda r: rec.add_frame(r.keypoints, r.timestamp, r.state))
        for i in range(12):
            wrist_y = 80.0 if i < 6 else 260.0
            pipeline.process_pose(PoseFrame(make_keypoints(wrist_y), timestamp=i * 33.0))
        path = tmp_path / "live.json"
        rec.save(path)

        replay = PosePipeline()
        replay.start()
        for frame in PosePlayer.load(path).play():
            result = replay.process_pose(frame.to_pose())
            assert result.state == frame.to_state()
        assert result.state.hand_position == HandPosition.DOWN
        assert result.state.posture == Posture.UNKNOWN
