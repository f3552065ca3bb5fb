import numpy as np
import pytest

import termlife
from termlife import GridEngine, LifeConfig


@pytest.fixture(autouse=True)
def no_cursor(monkeypatch):
    """curs_set needs a real initscr(); the fake windows never call it."""
    monkeypatch.setattr(termlife.curses, "curs_set", lambda visibility: None)


# (row, col) offsets from the placement origin
PATTERNS = {
    "block": [(0, 0), (0, 1), (1, 0), (1, 1)],
    "blinker": [(0, 0), (0, 1), (0, 2)],
    "beacon": [(0, 0), (0, 1), (1, 0), (2, 3), (3, 2), (3, 3)],
    "glider": [(0, 1), (1, 2), (2, 0), (2, 1), (2, 2)],
    "pulsar": [
        (0, 2), (0, 3), (0, 4), (0, 8), (0, 9), (0, 10),
        (2, 0), (2, 5), (2, 7), (2, 12),
        (3, 0), (3, 5), (3, 7), (3, 12),
        (4, 0), (4, 5), (4, 7), (4, 12),
        (5, 2), (5, 3), (5, 4), (5, 8), (5, 9), (5, 10),
        (7, 2), (7, 3), (7, 4), (7, 8), (7, 9), (7, 10),
        (8, 0), (8, 5), (8, 7), (8, 12),
        (9, 0), (9, 5), (9, 7), (9, 12),
        (10, 0), (10, 5), (10, 7), (10, 12),
        (12, 2), (12, 3), (12, 4), (12, 8), (12, 9), (12, 10),
    ],
}


def engine_with_pattern(name, width, height, x, y, rotation=0):
    """Engine whose generation 0 is one pattern with its origin at (x, y)."""
    cells = np.zeros((height, width), dtype=np.int8)
    for dy, dx in PATTERNS[name]:
        for _ in range(rotation % 4):
            dy, dx = dx, -dy
        cells[y + dy, x + dx] = 1
    engine = GridEngine()
    engine.initialize(width, height, seed_fn=lambda shape: cells)
    return engine


@pytest.fixture
def with_pattern():
    return engine_with_pattern


@pytest.fixture
def pattern_size():
    return lambda name: len(PATTERNS[name])


def parse_rows(rows):
    """Turn [".#.", "..."] into a 0/1 array; '#' is alive."""
    return np.array([[ch == "#" for ch in row] for row in rows], dtype=np.int8)


def engine_from_rows(rows, **config):
    """Build an initialized engine whose generation 0 is ``rows``."""
    cells = parse_rows(rows)
    engine = GridEngine(LifeConfig(**config))
    engine.initialize(cells.shape[1], cells.shape[0], seed_fn=lambda shape: cells)
    return engine


def engine_rows(engine):
    """The engine's current generation in the same '#'/'.' notation."""
    return ["".join("#" if c else "." for c in row) for row in engine.grid().tolist()]


@pytest.fixture
def from_rows():
    return engine_from_rows


@pytest.fixture
def as_rows():
    return engine_rows
