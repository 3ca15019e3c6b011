"""
PocketController — Layer 2 (Game Logic)

Owns the game session, runs the physics tick and the round state machine.
Communicates with Layer 3 (server.py / any renderer) via two queues:
  - pending_events  : game events (shot_fired, scored, missed, new_round, …)
  - physics_events  : wall bounces for sound playback

Layer 3 calls:
  ctrl.begin_drag / update_drag / end_drag   — pointer/touch gesture
  ctrl.step(dt)                              — timers + one physics tick per frame
  ctrl.restart()                             — new game
  ctrl.get_frame()                           — JSON-ready snapshot to draw
"""

import enum
import random
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from physics import (
    DEFAULT_CONFIG, Ball, GameConfig, PhysicsEngine, Pocket, ShotOutcome,
    aim_line_endpoint, aim_line_opacity, build_aim, compute_pocket_radius,
    random_pocket_position,
)
from highscore import MemoryHighScoreStore


class GameState(enum.Enum):
    IDLE = 0
    AIMING = 1
    SHOOTING = 2
    SCORED = 3
    MISSED_TURN = 4
    GAME_OVER = 5


# States from which a new drag may start
_AIMABLE = (GameState.IDLE, GameState.SCORED, GameState.MISSED_TURN)


@dataclass
class GameSession:
    """Everything that changes during play. One per controller."""
    ball: Ball
    pocket: Pocket
    state: GameState = GameState.IDLE
    score: int = 0
    high_score: int = 0
    lives: int = DEFAULT_CONFIG.initial_lives
    round: int = 1
    drag_start: Optional[np.ndarray] = None
    drag_point: Optional[np.ndarray] = None


@dataclass
class _PendingTransition:
    """One-shot delayed transition; stale if the generation or state moved on."""
    remaining: float
    action: Callable[[], None]
    expected_state: GameState
    generation: int
    label: str = field(default="")


class PocketController:
    """Layer 2: round state machine + physics orchestration."""

    def __init__(self, config: GameConfig = DEFAULT_CONFIG, store=None,
                 rng: Optional[random.Random] = None):
        self.config = config
        self.store = store if store is not None else MemoryHighScoreStore()
        self.rng = rng if rng is not None else random.Random()

        # Physics
        self.engine = PhysicsEngine(config)
        self._sim_engine = PhysicsEngine(config)   # reused for headless simulate_shot()

        radius = config.initial_pocket_radius
        self.session = GameSession(
            ball=self._new_ball(),
            pocket=Pocket(self._random_pocket(radius), radius),
            lives=config.initial_lives,
            high_score=self.store.load(),
        )

        self._pending: Optional[_PendingTransition] = None
        self._generation = 0

        # Event queues
        self.pending_events: list[dict] = []   # L3 game events
        self.physics_events: list[dict] = []   # wall bounces

    # ──────────────────────────────────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────────────────────────────────

    def _new_ball(self) -> Ball:
        return Ball(position=self.config.table_center, radius=self.config.ball_radius)

    def _random_pocket(self, radius: float) -> np.ndarray:
        cfg = self.config
        return random_pocket_position(
            radius, cfg.table_width, cfg.table_height,
            cfg.ball_radius, cfg.pocket_margin, self.rng,
        )

    @property
    def state(self) -> GameState:
        return self.session.state

    @property
    def is_running(self) -> bool:
        """True while the host should keep calling tick()."""
        return self.session.state == GameState.SHOOTING and self.session.ball.velocity is not None

    def _reset_ball(self) -> None:
        self.session.ball = self._new_ball()
        self.pending_events.append({"type": "ball_reset"})

    def _clear_drag(self) -> None:
        self.session.drag_start = None
        self.session.drag_point = None

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def step(self, dt_frame: float) -> Optional[ShotOutcome]:
        """Advance timers by dt_frame seconds, then one physics tick. Called every frame by L3."""
        self._advance_timer(dt_frame)
        return self.tick()

    def tick(self) -> Optional[ShotOutcome]:
        """One physics tick. Returns None when no shot is in flight."""
        if not self.is_running:
            return None

        s = self.session
        self.physics_events.clear()
        outcome = self.engine.update(s.ball, s.pocket)
        for ev in self.engine.events:
            if ev["type"] == "wall":
                self.physics_events.append(ev)

        if outcome == ShotOutcome.CAPTURED:
            self._on_score()
        elif outcome == ShotOutcome.MISSED:
            self._on_miss()
        return outcome

    # ──────────────────────────────────────────────────────────────────────────
    # Delayed transitions
    # ──────────────────────────────────────────────────────────────────────────

    def _schedule(self, delay: float, action: Callable[[], None], label: str) -> None:
        self._pending = _PendingTransition(
            remaining=delay, action=action,
            expected_state=self.session.state,
            generation=self._generation, label=label,
        )

    def _advance_timer(self, dt: float) -> None:
        if self._pending is None:
            return
        self._pending.remaining -= dt
        if self._pending.remaining <= 0:
            self._fire_pending()

    def _fire_pending(self) -> None:
        pend, self._pending = self._pending, None
        if pend is None:
            return
        if pend.generation != self._generation or pend.expected_state != self.session.state:
            print(f"[GAME] stale timer '{pend.label}' ignored (state={self.session.state.name})")
            return
        pend.action()

    # ──────────────────────────────────────────────────────────────────────────
    # Gesture input
    # ──────────────────────────────────────────────────────────────────────────

    def begin_drag(self, point) -> bool:
        """Start aiming. Ignored unless idle or showing a score/miss message."""
        s = self.session
        if s.state not in _AIMABLE:
            return False
        if s.state in (GameState.SCORED, GameState.MISSED_TURN):
            # Aiming right away: apply the next turn's setup now
            self._fire_pending()
        s.drag_start = np.array(point, dtype=float)
        s.drag_point = s.drag_start.copy()
        s.state = GameState.AIMING
        return True

    def update_drag(self, point) -> bool:
        s = self.session
        if s.state != GameState.AIMING or s.drag_start is None:
            return False
        s.drag_point = np.array(point, dtype=float)
        return True

    def end_drag(self, point=None) -> bool:
        """Release: fire the shot, or cancel when the drag is too short.

        Returns True only when a shot was fired.
        """
        s = self.session
        if s.state != GameState.AIMING or s.drag_start is None:
            return False
        if point is not None:
            s.drag_point = np.array(point, dtype=float)

        aim = build_aim(s.drag_start, s.drag_point,
                        self.config.max_aim_drag_distance, self.config.power_multiplier)
        self._clear_drag()

        if aim.drag_distance < self.config.min_drag_distance:
            s.state = GameState.IDLE
            return False

        self.fire_shot(aim.velocity)
        return True

    def fire_shot(self, velocity) -> None:
        """Launch the ball with an explicit velocity."""
        s = self.session
        s.ball.velocity = np.array(velocity, dtype=float)
        s.ball.wall_hits = 0
        s.state = GameState.SHOOTING
        self.pending_events.append({
            "type": "shot_fired",
            "velocity": [float(v) for v in s.ball.velocity],
        })

    # ──────────────────────────────────────────────────────────────────────────
    # Round rules
    # ──────────────────────────────────────────────────────────────────────────

    def _on_score(self) -> None:
        s = self.session
        s.ball.velocity = None
        s.score += 1
        s.state = GameState.SCORED
        print(f"[GAME] Scored! score={s.score} round={s.round}")
        self.pending_events.append({"type": "scored", "score": s.score})
        self._schedule(self.config.score_delay, self._start_new_round, "new_round")

    def _start_new_round(self) -> None:
        s = self.session
        cfg = self.config
        s.round += 1
        radius = compute_pocket_radius(
            s.round, cfg.initial_pocket_radius, cfg.pocket_shrink_rate,
            cfg.max_rounds_for_shrink, cfg.min_pocket_radius_factor,
        )
        s.pocket = Pocket(self._random_pocket(radius), radius)
        self._reset_ball()
        s.state = GameState.IDLE
        self.pending_events.append({"type": "new_round", "round": s.round, "pocket_radius": radius})

    def _on_miss(self) -> None:
        s = self.session
        s.ball.velocity = None
        s.lives = max(0, s.lives - 1)
        self.pending_events.append({"type": "missed", "lives": s.lives})

        if s.lives > 0:
            s.state = GameState.MISSED_TURN
            self._schedule(self.config.miss_delay, self._after_miss, "ball_reset")
            return

        s.state = GameState.GAME_OVER
        new_record = s.score > s.high_score
        if new_record:
            s.high_score = s.score
            self.store.save(s.score)
        print(f"[GAME] Game over. score={s.score} high={s.high_score}")
        self.pending_events.append({
            "type": "game_over", "score": s.score,
            "high_score": s.high_score, "new_record": new_record,
        })

    def _after_miss(self) -> None:
        self._reset_ball()
        self.session.state = GameState.IDLE

    def restart(self) -> None:
        """Start over from round 1. Valid from any state."""
        cfg = self.config
        self._generation += 1
        self._pending = None

        s = self.session
        s.score = 0
        s.round = 1
        s.lives = cfg.initial_lives
        radius = cfg.initial_pocket_radius
        s.pocket = Pocket(self._random_pocket(radius), radius)
        s.ball = self._new_ball()
        self._clear_drag()
        s.state = GameState.IDLE
        print("[GAME] Restart")
        self.pending_events.append({"type": "restart"})

    # ──────────────────────────────────────────────────────────────────────────
    # Presets
    # ──────────────────────────────────────────────────────────────────────────

    def load_scenario(self, scenario_fn, label: str) -> bool:
        """Launch a shot preset in the live session.

        Only the preset's positions and launch velocity are used; the pocket
        keeps the current round's radius and the ball this config's radius.
        Returns False when the preset does not fit the table.
        """
        s = self.session
        if s.state in (GameState.SHOOTING, GameState.GAME_OVER):
            return False
        if s.state in (GameState.SCORED, GameState.MISSED_TURN):
            self._fire_pending()

        cfg = self.config
        result = scenario_fn(run=False)
        radius = compute_pocket_radius(
            s.round, cfg.initial_pocket_radius, cfg.pocket_shrink_rate,
            cfg.max_rounds_for_shrink, cfg.min_pocket_radius_factor,
        )
        ball = Ball(position=result["ball"].position, radius=cfg.ball_radius)
        pocket = Pocket(result["pocket"].position, radius)

        bounds = np.array([cfg.table_width, cfg.table_height])
        if (np.any(ball.position < ball.radius) or np.any(ball.position > bounds - ball.radius)
                or np.any(pocket.position < radius) or np.any(pocket.position > bounds - radius)):
            print(f"[GAME] scenario '{label}' does not fit a {cfg.table_width}x{cfg.table_height} table")
            return False

        self._clear_drag()
        s.ball = ball
        s.pocket = pocket
        self.pending_events.append({"type": "scenario", "label": label})
        self.fire_shot(result["aim"].velocity)
        return True

    # ──────────────────────────────────────────────────────────────────────────
    # Rendering snapshot
    # ──────────────────────────────────────────────────────────────────────────

    def current_aim(self):
        s = self.session
        if s.state != GameState.AIMING or s.drag_start is None or s.drag_point is None:
            return None
        return build_aim(s.drag_start, s.drag_point,
                         self.config.max_aim_drag_distance, self.config.power_multiplier)

    def get_frame(self) -> dict:
        """Return what a renderer needs for the current frame."""
        s = self.session
        opacity = aim_line_opacity(s.round, self.config.max_rounds_for_aim_line_fade)

        aim_line = None
        aim = self.current_aim()
        if aim is not None and opacity > 0:
            end = aim_line_endpoint(s.ball.position, aim)
            aim_line = {
                "x1": round(float(s.ball.position[0]), 3),
                "y1": round(float(s.ball.position[1]), 3),
                "x2": round(float(end[0]), 3),
                "y2": round(float(end[1]), 3),
            }

        return {
            "state": s.state.name,
            "ball": {
                "pos": [round(float(s.ball.position[0]), 3), round(float(s.ball.position[1]), 3)],
                "radius": s.ball.radius,
                "moving": s.ball.is_moving(),
            },
            "pocket": {
                "pos": [round(float(s.pocket.position[0]), 3), round(float(s.pocket.position[1]), 3)],
                "radius": round(float(s.pocket.radius), 4),
            },
            "aim_line": aim_line,
            "aim_line_opacity": round(opacity, 4),
            "score": s.score,
            "high_score": s.high_score,
            "lives": s.lives,
            "round": s.round,
        }

    # ──────────────────────────────────────────────────────────────────────────
    # Headless preview
    # ──────────────────────────────────────────────────────────────────────────

    def simulate_shot(self, start, end, max_ticks: int = 100_000) -> dict:
        """Predict a drag's result without touching the session.

        Runs on copies of the ball and pocket, so repeated calls with the
        same inputs give identical results.

        Returns:
            ``dict`` with keys ``fired`` (False when the drag would cancel),
            ``outcome`` (ShotOutcome name), ``ticks``, ``final_pos``,
            ``wall_hits`` and ``pass_overs``.
        """
        cfg = self.config
        s = self.session
        aim = build_aim(start, end, cfg.max_aim_drag_distance, cfg.power_multiplier)
        if aim.drag_distance < cfg.min_drag_distance:
            return {
                "fired": False, "outcome": ShotOutcome.AT_REST.name, "ticks": 0,
                "final_pos": [float(v) for v in s.ball.position],
                "wall_hits": 0, "pass_overs": 0,
            }

        ball = Ball(position=s.ball.position.copy(), velocity=aim.velocity, radius=s.ball.radius)
        pocket = Pocket(s.pocket.position.copy(), s.pocket.radius)
        eng = self._sim_engine

        outcome = ShotOutcome.AT_REST
        ticks = 0
        pass_overs = 0
        while ticks < max_ticks and ball.velocity is not None:
            outcome = eng.update(ball, pocket)
            ticks += 1
            if outcome == ShotOutcome.PASS_OVER:
                pass_overs += 1

        return {
            "fired": True,
            "outcome": outcome.name,
            "ticks": ticks,
            "final_pos": [round(float(ball.position[0]), 6), round(float(ball.position[1]), 6)],
            "wall_hits": ball.wall_hits,
            "pass_overs": pass_overs,
        }
