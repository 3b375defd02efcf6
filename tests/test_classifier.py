"""Tests for gesture and posture classification."""

import pytest

from posecue.classifier import (
    GestureClassifier,
    GestureState,
    HandPosition,
    Posture,
    Thresholds,
    detect_waving,
)
from posecue.history import BodySample, GestureHistory, HandSample
from posecue.keypoints import Keypoint, KeypointName, PoseFrame


def kp(name, x, y, score=0.9):
    return Keypoint(KeypointName(name), float(x), float(y), score)


def make_pose(*keypoints, timestamp=0.0):
    return PoseFrame(tuple(keypoints), timestamp=timestamp)


def shoulders(y=200.0, score=0.8):
    return [kp("left_shoulder", 260, y, score), kp("right_shoulder", 380, y, score)]


def head(nose_y=100.0, ear_y=100.0, left_eye_y=95.0, right_eye_y=95.0):
    return [
        kp("nose", 320, nose_y, 0.8),
        kp("left_ear", 290, ear_y, 0.7),
        kp("right_ear", 350, ear_y, 0.7),
        kp("left_eye", 305, left_eye_y, 0.75),
        kp("right_eye", 335, right_eye_y, 0.75),
    ]


def body(shoulder_y, hip_y, knee_y=None, knee_score=0.5):
    points = shoulders(shoulder_y) + [
        kp("left_hip", 280, hip_y, 0.6),
        kp("right_hip", 360, hip_y, 0.6),
    ]
    if knee_y is not None:
        points += [
            kp("left_knee", 290, knee_y, knee_score),
            kp("right_knee", 350, knee_y, knee_score),
        ]
    return points


def raised_left(x, y=100.0, score=0.7):
    return shoulders() + [kp("left_wrist", x, y, score)]


class TestDetectWaving:
    def test_alternating_positions_wave(self):
        xs = [100, 150] * 7 + [100]
        assert len(xs) == 15
        assert detect_waving(xs)

    def test_monotonic_motion_is_not_waving(self):
        xs = [100 + 10 * i for i in range(15)]
        assert not detect_waving(xs)

    def test_needs_minimum_samples(self):
        assert not detect_waving([100, 130] * 7)

    def test_needs_three_reversals(self):
        two = [0, 20, 0, 20] + [20] * 11
        three = [0, 20, 0, 20, 0] + [0] * 10
        assert not detect_waving(two)
        assert detect_waving(three)

    def test_jitter_neither_counts_nor_resets_direction(self):
        # +20, then jitter in both directions, then +20 again: no reversal
        xs = [0, 20, 17, 20, 17, 37] + [37] * 9
        assert not detect_waving(xs)

    def test_jitter_threshold_is_inclusive(self):
        assert not detect_waving([0, 5] * 8)
        assert detect_waving([0, 6] * 8)


class TestHand:
    def test_raised_hand_is_up(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        state = classifier.classify(make_pose(*raised_left(100)), history)

        assert state.hand_position == HandPosition.UP
        assert not state.is_waving
        assert len(history.hand) == 1

    def test_waving_after_fifteen_alternating_ticks(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        states = [
            classifier.classify(make_pose(*raised_left(100 if i % 2 else 130), timestamp=i * 33.0), history)
            for i in range(15)
        ]
        assert not any(s.is_waving for s in states[:14])
        assert states[14].is_waving

    def test_monotonic_hand_motion_does_not_wave(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        for i in range(20):
            state = classifier.classify(make_pose(*raised_left(50 + 10 * i)), history)
        assert state.hand_position == HandPosition.UP
        assert not state.is_waving

    def test_lowered_hand_is_down_and_clears_window(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        for i in range(5):
            classifier.classify(make_pose(*raised_left(100 + 30 * (i % 2))), history)

        state = classifier.classify(make_pose(*raised_left(100, y=250)), history)
        assert state.hand_position == HandPosition.DOWN
        assert not state.is_waving
        assert len(history.hand) == 0

    def test_wrist_level_with_shoulder_is_down(self):
        state = GestureClassifier().classify(
            make_pose(*raised_left(100, y=200)), GestureHistory.create()
        )
        assert state.hand_position == HandPosition.DOWN

    def test_low_confidence_wrist_is_neutral(self):
        history = GestureHistory.create()
        history.hand.push(HandSample(1.0, 1.0, 0.0))

        # landmark threshold is strict: 0.3 is not enough
        state = GestureClassifier().classify(make_pose(*raised_left(100, score=0.3)), history)
        assert state.hand_position == HandPosition.NEUTRAL
        assert len(history.hand) == 0

    def test_no_keypoints_is_neutral(self):
        state = GestureClassifier().classify(make_pose(), GestureHistory.create())
        assert state == GestureState()

    def test_equal_scores_favor_left_wrist(self):
        pose = make_pose(
            *shoulders(),
            kp("left_wrist", 100, 50, 0.7),
            kp("right_wrist", 500, 300, 0.7),
        )
        state = GestureClassifier().classify(pose, GestureHistory.create())
        assert state.hand_position == HandPosition.UP

    def test_higher_scoring_right_wrist_wins(self):
        pose = make_pose(
            *shoulders(),
            kp("left_wrist", 100, 50, 0.7),
            kp("right_wrist", 500, 300, 0.71),
        )
        state = GestureClassifier().classify(pose, GestureHistory.create())
        assert state.hand_position == HandPosition.DOWN


class TestSpeaking:
    def test_varying_nose_offset_is_speaking(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        classifier.classify(make_pose(*head(nose_y=100)), history)
        state = classifier.classify(make_pose(*head(nose_y=102)), history)

        assert state.is_speaking
        assert state.mouth_movement == pytest.approx(1.0)

    def test_still_head_is_not_speaking(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        for _ in range(5):
            state = classifier.classify(make_pose(*head(nose_y=104)), history)
        assert not state.is_speaking
        assert state.mouth_movement == 0.0
        assert len(history.mouth) == 5

    def test_missing_ear_resets_mouth_window(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        classifier.classify(make_pose(*head()), history)

        without_ear = [k for k in head() if k.name != KeypointName.RIGHT_EAR]
        state = classifier.classify(make_pose(*without_ear), history)
        assert not state.is_speaking
        assert state.mouth_movement == 0.0
        assert len(history.mouth) == 0


class TestEyes:
    def _run(self, distances):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        for d in distances:
            # nose at y=100, so the normalized distance is dy / 100
            state = classifier.classify(
                make_pose(*head(nose_y=100, left_eye_y=95, right_eye_y=95 + d * 100)), history
            )
        return state, history

    def test_small_mean_distance_is_closed(self):
        state, history = self._run([0.01, 0.01, 0.01])
        assert state.eyes_closed
        assert len(history.eye) == 3

    def test_larger_distance_is_open(self):
        state, _ = self._run([0.05])
        assert not state.eyes_closed

    def test_level_eyes_read_as_closed(self):
        state, _ = self._run([0.0])
        assert state.eyes_closed

    def test_nose_at_top_row_does_not_divide_by_zero(self):
        state = GestureClassifier().classify(
            make_pose(*head(nose_y=0, left_eye_y=0, right_eye_y=3)), GestureHistory.create()
        )
        assert not state.eyes_closed

    def test_missing_eye_clears_window(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        history.eye.push(0.01)
        pose = make_pose(*[k for k in head() if k.name != KeypointName.LEFT_EYE])
        assert not classifier.classify(pose, history).eyes_closed
        assert len(history.eye) == 0


class TestPosture:
    def _run(self, frames):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        states = [classifier.classify(make_pose(*f, timestamp=i * 33.0), history)
                  for i, f in enumerate(frames)]
        return states, history

    def test_unknown_until_ten_samples(self):
        states, _ = self._run([body(250, 350)] * 10)
        assert all(s.posture == Posture.UNKNOWN for s in states[:9])
        assert all(s.movement_level == 0.0 for s in states[:9])
        assert states[9].posture == Posture.SITTING

    def test_low_hips_without_knees_is_sitting(self):
        states, _ = self._run([body(250, 350)] * 12)
        assert states[-1].posture == Posture.SITTING
        assert states[-1].movement_level == 0.0

    def test_high_hips_without_knees_is_unknown(self):
        states, _ = self._run([body(100, 200)] * 12)
        assert states[-1].posture == Posture.UNKNOWN

    def test_long_legs_are_standing(self):
        # torso 100, leg 200 > 80, shoulder-to-knee 300 > 150
        states, _ = self._run([body(250, 350, knee_y=550)] * 10)
        assert states[-1].posture == Posture.STANDING

    def test_short_legs_are_sitting(self):
        states, _ = self._run([body(100, 200, knee_y=230)] * 10)
        assert states[-1].posture == Posture.SITTING

    def test_faint_knees_fall_back_to_hip_rule(self):
        states, _ = self._run([body(100, 200, knee_y=500, knee_score=0.2)] * 10)
        assert states[-1].posture == Posture.UNKNOWN

    def test_single_knee_is_not_visible(self):
        frame = body(100, 200) + [kp("left_knee", 290, 500, 0.9)]
        states, _ = self._run([frame] * 10)
        assert states[-1].posture == Posture.UNKNOWN

    def test_bouncing_body_is_moving(self):
        # centers alternate 150/180: variance 225 > 50
        frames = [body(100, 200) if i % 2 else body(130, 230) for i in range(10)]
        states, _ = self._run(frames)
        assert states[-1].posture == Posture.MOVING
        assert states[-1].movement_level == pytest.approx(225.0)

    def test_missing_hip_resets_body_window(self):
        classifier = GestureClassifier()
        history = GestureHistory.create()
        history.body.push(BodySample(150.0, 0.0))
        pose = make_pose(*shoulders(), kp("left_hip", 280, 300, 0.6))
        state = classifier.classify(pose, history)

        assert state.posture == Posture.UNKNOWN
        assert len(history.body) == 0

    def test_custom_sitting_hip_threshold(self):
        classifier = GestureClassifier(Thresholds(sitting_hip_y=150.0))
        history = GestureHistory.create()
        for _ in range(10):
            state = classifier.classify(make_pose(*body(100, 200)), history)
        assert state.posture == Posture.SITTING


class TestClassifier:
    def test_identical_inputs_give_identical_outputs(self):
        pose = make_pose(*head(), *body(120, 240, knee_y=360), kp("left_wrist", 80, 64, 0.7))
        history = GestureHistory.create()
        for _ in range(12):
            GestureClassifier().classify(pose, history)

        a, b = history.copy(), history.copy()
        assert GestureClassifier().classify(pose, a) == GestureClassifier().classify(pose, b)
        assert a.lengths() == b.lengths()

    def test_signals_are_independent(self):
        # head only: hand and posture stay at defaults while eyes still update
        state = GestureClassifier().classify(make_pose(*head()), GestureHistory.create())
        assert state.hand_position == HandPosition.NEUTRAL
        assert state.posture == Posture.UNKNOWN
        assert state.eyes_closed

    def test_state_dict_round_trip(self):
        state = GestureState(
            is_waving=True, hand_position=HandPosition.UP,
            posture=Posture.MOVING, movement_level=70.5,
        )
        data = state.to_dict()
        assert data["hand_position"] == "up"
        assert data["posture"] == "moving"
        assert GestureState.from_dict(data) == state
