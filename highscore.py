"""
High score persistence.

The value lives under a single key in a small JSON file so other settings can
share the file. Reads never fail the session: anything unreadable counts as 0.
"""

import json
from pathlib import Path

HIGH_SCORE_KEY = "pocketballHighScore"


class HighScoreStore:
    """JSON-file key-value store for the best score."""

    def __init__(self, path, key: str = HIGH_SCORE_KEY):
        self.path = Path(path)
        self.key = key

    def _read(self) -> dict:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object in {self.path}")
        return data

    def load(self) -> int:
        try:
            return max(0, int(self._read().get(self.key, 0)))
        except FileNotFoundError:
            return 0
        except (OSError, ValueError, TypeError) as e:
            print(f"[SCORE] could not read {self.path}: {e}")
            return 0

    def save(self, score: int) -> None:
        try:
            data = self._read()
        except (OSError, ValueError):
            data = {}
        data[self.key] = int(score)
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            print(f"[SCORE] high score {score} → {self.path}")
        except OSError as e:
            print(f"[SCORE] write failed: {e}")


class MemoryHighScoreStore:
    """In-process store, used when nothing should touch the disk."""

    def __init__(self, score: int = 0):
        self.score = int(score)

    def load(self) -> int:
        return self.score

    def save(self, score: int) -> None:
        self.score = int(score)
