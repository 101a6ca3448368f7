"""
Per-exercise repetition detectors.

Each detector is a pure step function
    (state, points, frame_width, frame_height, now_ms) -> (new_state, event | None)
over filtered keypoints in pixel space (y grows downward). A detector whose
keypoints are absent this frame returns its state unchanged. The non-emitting
transition uses a hysteresis band; the debounce interval is measured from the
detector's last emitted event.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Mapping, Optional

import numpy as np

from .keypoints import Keypoint

logger = logging.getLogger(__name__)


class Exercise:
    HAND_LIFTS = "hand_lifts"
    EYE_BLINKS = "eye_blinks"
    PUSH_UPS = "push_ups"
    HIGH_JUMPS = "high_jumps"
    SQUATS = "squats"
    JUMPING_JACKS = "jumping_jacks"
    LUNGES = "lunges"


# Dispatch order; also the key order of every count mapping.
ALL_EXERCISES = (
    Exercise.HAND_LIFTS,
    Exercise.EYE_BLINKS,
    Exercise.PUSH_UPS,
    Exercise.HIGH_JUMPS,
    Exercise.SQUATS,
    Exercise.JUMPING_JACKS,
    Exercise.LUNGES,
)

# Phase labels
REST = "rest"
ACTIVE = "active"
OPEN = "open"
CLOSED = "closed"
UP = "up"
DOWN = "down"

# Hand lift: wrist counts as raised while above shoulder + margin (px).
HAND_LIFT_MARGIN_PX = 10.0
# Eye blink: mean eye-nose distance (px) to enter / leave the closed phase.
BLINK_CLOSE_PX = 80.0
BLINK_OPEN_PX = 95.0
# Push-up: right shoulder y as a fraction of frame height.
PUSH_UP_DOWN_FRAC = 0.45
PUSH_UP_UP_FRAC = 0.25
# High jump: mean ankle y as a fraction of frame height.
HIGH_JUMP_UP_FRAC = 0.24
HIGH_JUMP_DOWN_FRAC = 0.66
# Squat: knee y relative to hip y (px).
SQUAT_DOWN_PX = 40.0
SQUAT_UP_PX = 10.0
# Jumping jack: wrist / ankle horizontal spread as fractions of frame width.
JACK_ARM_OPEN_FRAC = 0.34
JACK_LEG_OPEN_FRAC = 0.18
JACK_ARM_CLOSED_FRAC = 0.12
JACK_LEG_CLOSED_FRAC = 0.06
# Lunge: vertical knee-hip distance (px) and forward knee offset (px).
LUNGE_DOWN_PX = 80.0
LUNGE_UP_PX = 40.0
LUNGE_KNEE_FORWARD_PX = 10.0

DEBOUNCE_MS = {
    Exercise.HAND_LIFTS: 0.0,
    Exercise.EYE_BLINKS: 250.0,
    Exercise.PUSH_UPS: 400.0,
    Exercise.HIGH_JUMPS: 500.0,
    Exercise.SQUATS: 500.0,
    Exercise.JUMPING_JACKS: 350.0,
    Exercise.LUNGES: 500.0,
}


@dataclass(frozen=True)
class ExerciseState:
    phase: str
    last_event_ms: Optional[float] = None


@dataclass(frozen=True)
class RepEvent:
    exercise: str
    timestamp_ms: float


Points = Mapping[str, Keypoint]
StepResult = tuple[ExerciseState, Optional[RepEvent]]
StepFn = Callable[[ExerciseState, Points, float, float, float], StepResult]


def _debounce_elapsed(state: ExerciseState, exercise: str, now_ms: float) -> bool:
    if state.last_event_ms is None:
        return True
    return now_ms - state.last_event_ms >= DEBOUNCE_MS[exercise]


def _emit(exercise: str, phase: str, now_ms: float) -> StepResult:
    logger.info("rep: %s at %.0f ms", exercise, now_ms)
    return ExerciseState(phase=phase, last_event_ms=now_ms), RepEvent(exercise, now_ms)


def _require(points: Points, *names: str) -> Optional[list[Keypoint]]:
    found = [points.get(n) for n in names]
    if any(p is None for p in found):
        return None
    return found


def step_hand_lift(
    state: ExerciseState, points: Points, width: float, height: float, now_ms: float
) -> StepResult:
    """Edge-triggered: one event per rise of the left wrist above the shoulder line."""
    kps = _require(points, "left_wrist", "left_shoulder")
    if kps is None:
        return state, None
    wrist, shoulder = kps
    raised = wrist.y < shoulder.y + HAND_LIFT_MARGIN_PX
    if raised and state.phase == REST:
        return _emit(Exercise.HAND_LIFTS, ACTIVE, now_ms)
    if not raised and state.phase == ACTIVE:
        return replace(state, phase=REST), None
    return state, None


def step_eye_blink(
    state: ExerciseState, points: Points, width: float, height: float, now_ms: float
) -> StepResult:
    kps = _require(points, "left_eye", "right_eye", "nose")
    if kps is None:
        return state, None
    left_eye, right_eye, nose = kps
    dist = float(np.mean([
        np.hypot(left_eye.x - nose.x, left_eye.y - nose.y),
        np.hypot(right_eye.x - nose.x, right_eye.y - nose.y),
    ]))
    if dist < BLINK_CLOSE_PX:
        if state.phase == OPEN and _debounce_elapsed(state, Exercise.EYE_BLINKS, now_ms):
            return _emit(Exercise.EYE_BLINKS, CLOSED, now_ms)
    elif dist > BLINK_OPEN_PX and state.phase == CLOSED:
        return replace(state, phase=OPEN), None
    return state, None


def step_push_up(
    state: ExerciseState, points: Points, width: float, height: float, now_ms: float
) -> StepResult:
    """Counts on the way back up; the debounce guards entering the down phase."""
    kps = _require(points, "right_shoulder")
    if kps is None:
        return state, None
    shoulder_y = kps[0].y
    if shoulder_y > height * PUSH_UP_DOWN_FRAC:
        if state.phase == UP and _debounce_elapsed(state, Exercise.PUSH_UPS, now_ms):
            return replace(state, phase=DOWN), None
    elif shoulder_y < height * PUSH_UP_UP_FRAC and state.phase == DOWN:
        return _emit(Exercise.PUSH_UPS, UP, now_ms)
    return state, None


def step_high_jump(
    state: ExerciseState, points: Points, width: float, height: float, now_ms: float
) -> StepResult:
    kps = _require(points, "left_ankle", "right_ankle")
    if kps is None:
        return state, None
    ankle_y = (kps[0].y + kps[1].y) / 2.0
    if ankle_y < height * HIGH_JUMP_UP_FRAC:
        if state.phase == DOWN and _debounce_elapsed(state, Exercise.HIGH_JUMPS, now_ms):
            return _emit(Exercise.HIGH_JUMPS, UP, now_ms)
    elif ankle_y > height * HIGH_JUMP_DOWN_FRAC and state.phase == UP:
        return replace(state, phase=DOWN), None
    return state, None


def step_squat(
    state: ExerciseState, points: Points, width: float, height: float, now_ms: float
) -> StepResult:
    kps = _require(points, "left_knee", "left_hip")
    if kps is None:
        return state, None
    knee, hip = kps
    if knee.y > hip.y + SQUAT_DOWN_PX:
        if state.phase == UP and _debounce_elapsed(state, Exercise.SQUATS, now_ms):
            return replace(state, phase=DOWN), None
    elif knee.y < hip.y + SQUAT_UP_PX and state.phase == DOWN:
        return _emit(Exercise.SQUATS, UP, now_ms)
    return state, None


def step_jumping_jack(
    state: ExerciseState, points: Points, width: float, height: float, now_ms: float
) -> StepResult:
    kps = _require(points, "left_wrist", "right_wrist", "left_ankle", "right_ankle")
    if kps is None:
        return state, None
    left_wrist, right_wrist, left_ankle, right_ankle = kps
    arm_spread = abs(left_wrist.x - right_wrist.x)
    leg_spread = abs(left_ankle.x - right_ankle.x)
    if arm_spread > width * JACK_ARM_OPEN_FRAC and leg_spread > width * JACK_LEG_OPEN_FRAC:
        if state.phase == CLOSED and _debounce_elapsed(state, Exercise.JUMPING_JACKS, now_ms):
            return _emit(Exercise.JUMPING_JACKS, OPEN, now_ms)
    elif (
        arm_spread < width * JACK_ARM_CLOSED_FRAC
        and leg_spread < width * JACK_LEG_CLOSED_FRAC
        and state.phase == OPEN
    ):
        return replace(state, phase=CLOSED), None
    return state, None


def step_lunge(
    state: ExerciseState, points: Points, width: float, height: float, now_ms: float
) -> StepResult:
    kps = _require(points, "right_knee", "right_hip")
    if kps is None:
        return state, None
    knee, hip = kps
    knee_hip = abs(knee.y - hip.y)
    if knee_hip > LUNGE_DOWN_PX and knee.x > hip.x + LUNGE_KNEE_FORWARD_PX:
        if state.phase == UP and _debounce_elapsed(state, Exercise.LUNGES, now_ms):
            return replace(state, phase=DOWN), None
    elif knee_hip < LUNGE_UP_PX and state.phase == DOWN:
        return _emit(Exercise.LUNGES, UP, now_ms)
    return state, None


@dataclass(frozen=True)
class Detector:
    exercise: str
    rest_phase: str
    step: StepFn

    def initial_state(self) -> ExerciseState:
        return ExerciseState(phase=self.rest_phase)


DETECTORS = (
    Detector(Exercise.HAND_LIFTS, REST, step_hand_lift),
    Detector(Exercise.EYE_BLINKS, OPEN, step_eye_blink),
    Detector(Exercise.PUSH_UPS, UP, step_push_up),
    Detector(Exercise.HIGH_JUMPS, DOWN, step_high_jump),
    Detector(Exercise.SQUATS, UP, step_squat),
    Detector(Exercise.JUMPING_JACKS, CLOSED, step_jumping_jack),
    Detector(Exercise.LUNGES, UP, step_lunge),
)
