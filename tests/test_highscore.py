"""
High score persistence tests — read fallbacks and write behaviour.
"""

import sys
import os
import json
import random

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from highscore import HighScoreStore, MemoryHighScoreStore, HIGH_SCORE_KEY
from controller import PocketController, GameState
from physics import Ball, Pocket


class TestHighScoreStore:

    def test_missing_file_reads_zero(self, tmp_path):
        assert HighScoreStore(tmp_path / "none.json").load() == 0

    def test_corrupt_file_reads_zero(self, tmp_path):
        path = tmp_path / "hs.json"
        path.write_text("not json {", encoding="utf-8")
        assert HighScoreStore(path).load() == 0

    def test_non_object_reads_zero(self, tmp_path):
        path = tmp_path / "hs.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        assert HighScoreStore(path).load() == 0

    def test_bad_value_reads_zero(self, tmp_path):
        path = tmp_path / "hs.json"
        path.write_text(json.dumps({HIGH_SCORE_KEY: "many"}), encoding="utf-8")
        assert HighScoreStore(path).load() == 0

    def test_save_then_load(self, tmp_path):
        store = HighScoreStore(tmp_path / "hs.json")
        store.save(12)
        assert store.load() == 12

    def test_save_keeps_other_keys(self, tmp_path):
        path = tmp_path / "hs.json"
        path.write_text(json.dumps({"volume": 0.5, HIGH_SCORE_KEY: 2}), encoding="utf-8")
        HighScoreStore(path).save(9)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"volume": 0.5, HIGH_SCORE_KEY: 9}

    def test_failed_write_is_not_fatal(self, tmp_path):
        store = HighScoreStore(tmp_path / "missing_dir" / "hs.json")
        store.save(3)
        assert store.load() == 0


class TestMemoryStore:

    def test_holds_value(self):
        store = MemoryHighScoreStore(4)
        assert store.load() == 4
        store.save(8)
        assert store.load() == 8


class TestControllerPersistence:

    def test_new_record_written_to_file(self, tmp_path):
        path = tmp_path / "hs.json"
        path.write_text(json.dumps({HIGH_SCORE_KEY: 3}), encoding="utf-8")
        ctrl = PocketController(store=HighScoreStore(path), rng=random.Random(0))
        assert ctrl.session.high_score == 3

        ctrl.session.score = 5
        ctrl.session.lives = 1
        ctrl.session.ball = Ball(position=(200.0, 300.0))
        ctrl.session.pocket = Pocket((200.0, 340.0), 30.0)
        ctrl.fire_shot((0.05, 0.0))
        ctrl.tick()

        assert ctrl.state == GameState.GAME_OVER
        assert json.loads(path.read_text(encoding="utf-8"))[HIGH_SCORE_KEY] == 5
        assert PocketController(store=HighScoreStore(path)).session.high_score == 5
