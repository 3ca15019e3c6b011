"""
Pocket Challenge Physics Core
Geometry helpers, pocket schedule, per-tick motion, capture rules, aim vector.

Units are table pixels; one tick advances the ball by its velocity once.
"""

import enum
import json
import math
import random
import numpy as np
from dataclasses import dataclass, field, fields, replace
from typing import Optional

# ──────────────────────────────────────────────
# Constants (table units)
# ──────────────────────────────────────────────
TABLE_WIDTH: float = 400.0  # vertical layout
TABLE_HEIGHT: float = 600.0
BALL_RADIUS: float = 10.0

INITIAL_POCKET_RADIUS: float = 30.0
MIN_POCKET_RADIUS_FACTOR: float = 0.4  # pocket never shrinks below 40% of initial
POCKET_SHRINK_RATE: float = 0.02  # 2% per round
MAX_ROUNDS_FOR_SHRINK: int = 50
POCKET_MARGIN: float = 10.0  # extra gap between pocket and wall

FRICTION: float = 0.985  # velocity multiplier per tick
MIN_VELOCITY_THRESHOLD: float = 0.1
MAX_POCKET_ENTRY_SPEED: float = 7.0  # faster than this passes over the pocket

MAX_AIM_DRAG_DISTANCE: float = 150.0
MIN_DRAG_DISTANCE: float = 5.0  # shorter drags cancel the aim
POWER_MULTIPLIER: float = 0.15

INITIAL_LIVES: int = 3
MAX_ROUNDS_FOR_AIM_LINE_FADE: int = 30  # aim line invisible from this round on

SCORE_DELAY: float = 1.0  # s, SCORED -> next round
MISS_DELAY: float = 1.0  # s, MISSED_TURN -> ball reset


@dataclass(frozen=True)
class GameConfig:
    """All tunables, fixed for the lifetime of a controller."""
    table_width: float = TABLE_WIDTH
    table_height: float = TABLE_HEIGHT
    ball_radius: float = BALL_RADIUS
    initial_pocket_radius: float = INITIAL_POCKET_RADIUS
    min_pocket_radius_factor: float = MIN_POCKET_RADIUS_FACTOR
    pocket_shrink_rate: float = POCKET_SHRINK_RATE
    max_rounds_for_shrink: int = MAX_ROUNDS_FOR_SHRINK
    pocket_margin: float = POCKET_MARGIN
    friction: float = FRICTION
    min_velocity_threshold: float = MIN_VELOCITY_THRESHOLD
    max_pocket_entry_speed: float = MAX_POCKET_ENTRY_SPEED
    max_aim_drag_distance: float = MAX_AIM_DRAG_DISTANCE
    min_drag_distance: float = MIN_DRAG_DISTANCE
    power_multiplier: float = POWER_MULTIPLIER
    initial_lives: int = INITIAL_LIVES
    max_rounds_for_aim_line_fade: int = MAX_ROUNDS_FOR_AIM_LINE_FADE
    score_delay: float = SCORE_DELAY
    miss_delay: float = MISS_DELAY

    def __post_init__(self):
        if self.table_width <= 0 or self.table_height <= 0:
            raise ValueError("table dimensions must be positive")
        if self.ball_radius <= 0 or self.initial_pocket_radius <= 0:
            raise ValueError("ball and pocket radius must be positive")
        if not 0.0 < self.friction <= 1.0:
            raise ValueError(f"friction must be in (0, 1], got {self.friction}")
        if not 0.0 <= self.pocket_shrink_rate < 1.0:
            raise ValueError(f"pocket_shrink_rate must be in [0, 1), got {self.pocket_shrink_rate}")
        if not 0.0 <= self.min_pocket_radius_factor <= 1.0:
            raise ValueError("min_pocket_radius_factor must be in [0, 1]")
        if self.max_rounds_for_shrink < 1 or self.max_rounds_for_aim_line_fade < 1:
            raise ValueError("round limits must be >= 1")
        if self.initial_lives < 1:
            raise ValueError("initial_lives must be >= 1")
        if self.score_delay < 0 or self.miss_delay < 0:
            raise ValueError("delays must be non-negative")
        for name in ("max_pocket_entry_speed", "min_velocity_threshold", "power_multiplier",
                     "max_aim_drag_distance", "min_drag_distance"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.pocket_margin < 0:
            raise ValueError(f"pocket_margin must be non-negative, got {self.pocket_margin}")

    @property
    def table_center(self) -> np.ndarray:
        return np.array([self.table_width / 2, self.table_height / 2])

    @classmethod
    def from_dict(cls, data: dict) -> "GameConfig":
        """Build a config from a flat dict of overrides.

        Unknown keys raise ``ValueError`` so a typo never goes unnoticed.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown config keys: {unknown}")
        overrides = {}
        for key, value in data.items():
            default = getattr(DEFAULT_CONFIG, key)
            if isinstance(default, int):
                if float(value) != int(value):
                    raise ValueError(f"{key} must be a whole number, got {value!r}")
                overrides[key] = int(value)
            else:
                overrides[key] = float(value)
        return replace(DEFAULT_CONFIG, **overrides)

    @classmethod
    def from_file(cls, path) -> "GameConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        print(f"[CONFIG] loaded {len(data)} override(s) from {path}")
        return cls.from_dict(data)


DEFAULT_CONFIG = GameConfig()


class ShotOutcome(enum.Enum):
    ROLLING = 0
    PASS_OVER = 1
    CAPTURED = 2
    MISSED = 3
    AT_REST = 4

    @property
    def is_terminal(self) -> bool:
        return self in (ShotOutcome.CAPTURED, ShotOutcome.MISSED)


@dataclass
class Ball:
    """The single cue ball. ``velocity`` is None while the ball is at rest."""
    position: np.ndarray = field(default_factory=lambda: DEFAULT_CONFIG.table_center)
    velocity: Optional[np.ndarray] = None
    radius: float = BALL_RADIUS
    wall_hits: int = 0

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)
        if self.velocity is not None:
            self.velocity = np.array(self.velocity, dtype=float)

    @property
    def speed(self) -> float:
        return magnitude(self.velocity)

    def is_moving(self) -> bool:
        return self.velocity is not None


@dataclass
class Pocket:
    position: np.ndarray = field(default_factory=lambda: np.array([TABLE_WIDTH / 2, TABLE_HEIGHT / 4]))
    radius: float = INITIAL_POCKET_RADIUS

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)


# ──────────────────────────────────────────────
# Geometry
# ──────────────────────────────────────────────
def distance(a, b) -> float:
    """Euclidean distance between two points."""
    return float(np.linalg.norm(np.asarray(a, dtype=float) - np.asarray(b, dtype=float)))


def magnitude(v) -> float:
    """Euclidean norm of a velocity; an absent velocity has magnitude 0."""
    if v is None:
        return 0.0
    return float(np.linalg.norm(np.asarray(v, dtype=float)))


def angle(dx: float, dy: float) -> float:
    """Two-argument arctangent in (-pi, pi]. angle(0, 0) == 0."""
    return math.atan2(dy, dx)


# ──────────────────────────────────────────────
# Pocket Scheduler
# ──────────────────────────────────────────────
def compute_pocket_radius(round_number: int,
                          initial_radius: float = INITIAL_POCKET_RADIUS,
                          shrink_rate: float = POCKET_SHRINK_RATE,
                          max_shrink_rounds: int = MAX_ROUNDS_FOR_SHRINK,
                          min_factor: float = MIN_POCKET_RADIUS_FACTOR) -> float:
    """
    Pocket radius for a round.

    Shrinks geometrically by ``shrink_rate`` per round up to
    ``max_shrink_rounds``, stays frozen afterwards, and is floored at
    ``initial_radius * min_factor``.
    """
    if round_number < 1:
        raise ValueError(f"round_number must be >= 1, got {round_number}")
    effective = min(round_number, max_shrink_rounds)
    radius = initial_radius * (1.0 - shrink_rate) ** (effective - 1)
    return max(radius, initial_radius * min_factor)


def random_pocket_position(radius: float,
                           table_width: float = TABLE_WIDTH,
                           table_height: float = TABLE_HEIGHT,
                           ball_radius: float = BALL_RADIUS,
                           margin: float = POCKET_MARGIN,
                           rng: Optional[random.Random] = None) -> np.ndarray:
    """Uniform pocket center inset by radius + ball_radius + margin on every side."""
    rng = rng if rng is not None else random.Random()
    padding = radius + ball_radius + margin
    span_x = table_width - 2 * padding
    span_y = table_height - 2 * padding
    if span_x < 0 or span_y < 0:
        raise ValueError(
            f"pocket radius {radius} leaves no room on a {table_width}x{table_height} table"
        )
    return np.array([
        rng.random() * span_x + padding,
        rng.random() * span_y + padding,
    ])


# ──────────────────────────────────────────────
# Motion Integrator
# ──────────────────────────────────────────────
def integrate_tick(position, velocity, friction: float,
                   table_width: float, table_height: float,
                   radius: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Advance one tick: Euler step, friction decay, then per-axis wall reflection.

    Returns new (position, velocity) arrays; the inputs are not modified.
    Both axes can reflect in the same tick (corner hit).
    """
    position = np.asarray(position, dtype=float) + np.asarray(velocity, dtype=float)
    velocity = np.asarray(velocity, dtype=float) * friction

    for axis, bound in enumerate((table_width, table_height)):
        if position[axis] - radius < 0 or position[axis] + radius > bound:
            velocity[axis] = -velocity[axis]
            position[axis] = max(radius, min(bound - radius, position[axis]))

    return position, velocity


# ──────────────────────────────────────────────
# Capture / Miss Evaluator
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class CaptureResult:
    outcome: ShotOutcome
    distance: float
    speed: float
    stopped: bool = False  # ended by the rest threshold, not by entering the pocket


def evaluate_capture(position, velocity, pocket_position, pocket_radius: float,
                     max_entry_speed: float = MAX_POCKET_ENTRY_SPEED,
                     min_velocity: float = MIN_VELOCITY_THRESHOLD) -> CaptureResult:
    """
    Decide the fate of the ball after a tick.

    Inside the pocket and slower than ``max_entry_speed`` captures at once.
    Inside but faster is a pass-over and the ball keeps going. Independently,
    a ball slower than ``min_velocity`` has stopped: it is captured if it
    rests inside the pocket, otherwise the shot is missed. The boundary is
    strict, so resting exactly on the rim is outside.
    """
    dist = distance(position, pocket_position)
    speed = magnitude(velocity)

    if dist < pocket_radius and speed < max_entry_speed:
        return CaptureResult(ShotOutcome.CAPTURED, dist, speed)

    if speed < min_velocity:
        # Re-check at the resting position
        final_dist = distance(position, pocket_position)
        outcome = ShotOutcome.CAPTURED if final_dist < pocket_radius else ShotOutcome.MISSED
        return CaptureResult(outcome, final_dist, speed, stopped=True)

    if dist < pocket_radius:
        return CaptureResult(ShotOutcome.PASS_OVER, dist, speed)
    return CaptureResult(ShotOutcome.ROLLING, dist, speed)


# ──────────────────────────────────────────────
# Aim Vector Builder
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class AimVector:
    angle: float  # direction of the drag, radians
    drag_distance: float  # clamped
    power: float
    velocity: np.ndarray  # launch velocity, opposite to the drag


def build_aim(start, end,
              max_drag_distance: float = MAX_AIM_DRAG_DISTANCE,
              power_multiplier: float = POWER_MULTIPLIER) -> AimVector:
    """
    Convert a drag gesture into a launch velocity.

    Pull back, release forward: the ball launches opposite to the drag.
    Dragging beyond ``max_drag_distance`` adds no power.
    """
    raw = np.asarray(end, dtype=float) - np.asarray(start, dtype=float)
    drag_distance = min(magnitude(raw), max_drag_distance)
    theta = angle(raw[0], raw[1])
    power = drag_distance * power_multiplier
    velocity = np.array([-math.cos(theta) * power, -math.sin(theta) * power])
    return AimVector(theta, drag_distance, power, velocity)


def aim_line_endpoint(ball_position, aim: AimVector) -> np.ndarray:
    """End of the visual aim line, drawn from the ball along the launch direction."""
    ball_position = np.asarray(ball_position, dtype=float)
    return np.array([
        ball_position[0] - math.cos(aim.angle) * aim.drag_distance,
        ball_position[1] - math.sin(aim.angle) * aim.drag_distance,
    ])


def aim_line_opacity(round_number: int,
                     fade_rounds: int = MAX_ROUNDS_FOR_AIM_LINE_FADE) -> float:
    """Full opacity in round 1, linear fade to zero at ``fade_rounds``, zero after."""
    if round_number >= fade_rounds:
        opacity = 0.0
    elif round_number > 1:
        opacity = 1.0 - (round_number - 1) / (fade_rounds - 1)
    else:
        opacity = 1.0
    return max(0.0, min(1.0, opacity))


class PhysicsEngine:
    """Steps the ball against the table walls and the pocket."""

    def __init__(self, config: GameConfig = DEFAULT_CONFIG):
        self.config = config
        self.events: list = []

    def update(self, ball: Ball, pocket: Pocket) -> ShotOutcome:
        """Advance one tick and return what happened to the ball."""
        self.events.clear()
        if ball.velocity is None:
            return ShotOutcome.AT_REST

        cfg = self.config
        before = ball.velocity
        position, velocity = integrate_tick(
            ball.position, ball.velocity, cfg.friction,
            cfg.table_width, cfg.table_height, ball.radius,
        )

        for axis, name in enumerate(("x", "y")):
            if velocity[axis] * before[axis] < 0:
                ball.wall_hits += 1
                self.events.append({"type": "wall", "axis": name, "speed": float(abs(velocity[axis]))})

        ball.position = position
        ball.velocity = velocity

        result = evaluate_capture(
            position, velocity, pocket.position, pocket.radius,
            cfg.max_pocket_entry_speed, cfg.min_velocity_threshold,
        )

        if result.outcome == ShotOutcome.PASS_OVER:
            self.events.append({"type": "pass_over", "speed": result.speed})
        elif result.outcome.is_terminal:
            ball.velocity = None
            self.events.append({
                "type": "captured" if result.outcome == ShotOutcome.CAPTURED else "missed",
                "distance": result.distance,
                "speed": result.speed,
            })
        return result.outcome

    def simulate(self, ball: Ball, pocket: Pocket,
                 max_ticks: int = 100_000) -> tuple[ShotOutcome, int]:
        """
        Run ticks until the shot ends or ``max_ticks`` is reached.

        Returns:
            (final outcome, ticks run)
        """
        ticks = 0
        outcome = ShotOutcome.AT_REST
        while ticks < max_ticks and ball.velocity is not None:
            outcome = self.update(ball, pocket)
            ticks += 1
        return outcome, ticks
