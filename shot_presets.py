"""
Shot Preset System
Four fixed shots (straight, bank, pass-over, short) that set up the ball,
pocket and drag, launch, and optionally simulate to the end.
"""

from physics import Ball, Pocket, PhysicsEngine, ShotOutcome, build_aim

_MAX_TICKS = 5000


def _launch(ball_pos, pocket_pos, drag_end, run: bool) -> dict:
    """Place ball and pocket, aim from the ball to ``drag_end``, launch, maybe run."""
    engine = PhysicsEngine()
    ball = Ball(position=ball_pos)
    pocket = Pocket(position=pocket_pos)
    aim = build_aim(ball.position, drag_end)
    ball.velocity = aim.velocity.copy()

    outcome = ShotOutcome.ROLLING
    ticks = 0
    pass_overs = 0
    if run:
        while ticks < _MAX_TICKS and ball.velocity is not None:
            outcome = engine.update(ball, pocket)
            ticks += 1
            if outcome == ShotOutcome.PASS_OVER:
                pass_overs += 1
    return {"ball": ball, "pocket": pocket, "aim": aim, "engine": engine,
            "outcome": outcome, "ticks": ticks, "pass_overs": pass_overs}


class ShotPreset:
    """Each preset returns ball, pocket, aim, engine and the run result."""

    @staticmethod
    def scenario_1_straight(run=True) -> dict:
        """Straight up the table; gentle enough to come to rest in the pocket."""
        return _launch([200.0, 300.0], [200.0, 150.0], [200.0, 316.0], run)

    @staticmethod
    def scenario_2_bank(run=True) -> dict:
        """Off the right wall and back into a pocket behind the ball."""
        return _launch([300.0, 300.0], [200.0, 300.0], [272.0, 300.0], run)

    @staticmethod
    def scenario_3_pass_over(run=True) -> dict:
        """Hard shot: too fast over the pocket, captured on the way back from the top wall."""
        return _launch([200.0, 500.0], [200.0, 300.0], [200.0, 600.0], run)

    @staticmethod
    def scenario_4_short(run=True) -> dict:
        """Weak shot that dies well short of the pocket."""
        return _launch([200.0, 300.0], [200.0, 100.0], [200.0, 310.0], run)
