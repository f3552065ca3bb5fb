#!/usr/bin/env python3
"""
  termlife
  Conway's Game of Life, sized to your terminal.

  The grid is seeded at random once, then advanced one generation per frame
  under the classic B3/S23 rules and redrawn in place until you stop it.
  Edges are dead by default: nothing lives beyond the border of the screen.

  Usage:
    termlife            seed half the cells alive
    termlife 0.2        seed with a different probability

  Controls:
    q / Ctrl-C          quit

  Set TERMLIFE_STATS=path.csv to log generation/population telemetry.
"""

from __future__ import annotations

import argparse
import curses
import enum
import os
import signal
import sys
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import IO, Callable, ClassVar

import numpy as np
from numpy.typing import NDArray
from scipy.ndimage import convolve as _convolve

__version__ = "0.1.0"

# ── Convolution kernel (reused every step) ────────────────────────────
NEIGHBOR_KERNEL: NDArray = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.int16)

# Boundary policy name → scipy.ndimage edge mode
BOUNDARY_MODES: dict[str, str] = {
    "dead": "constant",  # cells beyond the edge count as dead
    "wrap": "wrap",      # toroidal
}

# ── Sparkline characters ────────────────────────────────────────────────
SPARKS = "▁▂▃▄▅▆▇█"

SeedFn = Callable[[tuple[int, int]], NDArray]


# ═══════════════════════════════════════════════════════════════════════
#  Errors
# ═══════════════════════════════════════════════════════════════════════

class LifeError(Exception):
    """Base class for termlife failures."""


class StartupFailure(LifeError):
    """The terminal could not be prepared; no simulation was started."""


class RenderFailure(LifeError):
    """Writing a frame to the terminal failed mid-run."""


class ConfigError(LifeError, ValueError):
    """A LifeConfig field is out of range."""


# ═══════════════════════════════════════════════════════════════════════
#  Configuration
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class LifeConfig:
    """Run settings, fixed for the lifetime of an engine."""

    frame_interval: float = 0.1   # seconds per loop iteration
    seed_probability: float = 0.5
    boundary: str = "dead"
    seed: int | None = None       # RNG seed for reproducible grids
    alive_glyph: str = "#"
    dead_glyph: str = " "
    status_line: bool = True
    stats_path: Path | None = None

    def validate(self) -> None:
        if self.frame_interval < 0:
            raise ConfigError(f"frame interval must be >= 0, got {self.frame_interval}")
        if not 0.0 <= self.seed_probability <= 1.0:
            raise ConfigError(
                f"seed probability must be within [0, 1], got {self.seed_probability}"
            )
        if self.boundary not in BOUNDARY_MODES:
            raise ConfigError(
                f"unknown boundary policy {self.boundary!r} "
                f"(expected one of: {', '.join(sorted(BOUNDARY_MODES))})"
            )
        for name in ("alive_glyph", "dead_glyph"):
            if len(getattr(self, name)) != 1:
                raise ConfigError(f"{name} must be a single character")


def bernoulli_seed(probability: float, rng: np.random.Generator) -> SeedFn:
    """Seed function drawing each cell alive independently with ``probability``."""

    def seed(shape: tuple[int, int]) -> NDArray[np.bool_]:
        return rng.random(shape) < probability

    return seed


# ═══════════════════════════════════════════════════════════════════════
#  Stats logger
# ═══════════════════════════════════════════════════════════════════════

class StatsLogger:
    """Writes generation telemetry to CSV. A logger without a path is a no-op."""

    HEADER: ClassVar[str] = "gen,time_s,population,event\n"
    INTERVAL: ClassVar[int] = 10

    def __init__(self, path: Path | None) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()

    @property
    def enabled(self) -> bool:
        return self._fh is not None

    def open(self) -> None:
        if self._path is None:
            return
        try:
            self._fh = open(self._path, "w")
            self._fh.write(self.HEADER)
            self._fh.flush()
        except OSError:
            self._fh = None

    def log(self, gen: int, pop: int, event: str = "") -> None:
        if self._fh is None:
            return
        if not event and gen % self.INTERVAL != 0:
            return
        t = time.monotonic() - self._t0
        try:
            self._fh.write(f"{gen},{t:.1f},{pop},{event}\n")
            if event:
                self._fh.flush()
        except OSError:
            self.close()

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None


# ═══════════════════════════════════════════════════════════════════════
#  The grid
# ═══════════════════════════════════════════════════════════════════════

class GridEngine:
    """
    Double-buffered Game of Life grid.

    Two int8 buffers of shape (height, width) are allocated once by
    initialize(). step() reads the current buffer, writes the other one in
    place and flips which of the two is current, so every generation is
    computed from a frozen snapshot of the one before it.
    """

    def __init__(self, config: LifeConfig | None = None) -> None:
        self.config: LifeConfig = config if config is not None else LifeConfig()
        self.config.validate()

        self.width: int = 0
        self.height: int = 0
        self.generation: int = 0

        self._buffers: list[NDArray[np.int8]] = []
        self._current: int = 0
        self._mode: str = BOUNDARY_MODES[self.config.boundary]
        self._rng: np.random.Generator = np.random.default_rng(self.config.seed)

        # Pre-allocated scratch for step() (sized in initialize)
        self._grid_i16: NDArray[np.int16] = np.empty((0, 0), dtype=np.int16)
        self._neighbor_buf: NDArray[np.int16] = np.empty((0, 0), dtype=np.int16)
        self._n_is_3: NDArray[np.bool_] = np.empty((0, 0), dtype=np.bool_)
        self._survive: NDArray[np.bool_] = np.empty((0, 0), dtype=np.bool_)

        # Population tracking
        self.pop_history: deque[int] = deque(maxlen=500)
        self._cached_pop: int = 0

    # ── Seeding ─────────────────────────────────────────────────────

    def initialize(self, width: int, height: int, seed_fn: SeedFn | None = None) -> None:
        """Allocate both buffers and seed the current one.

        ``seed_fn`` receives the numpy shape ``(height, width)`` and returns an
        array of that shape whose non-zero entries are alive cells. By default
        each cell is drawn alive with ``config.seed_probability``.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"grid must be at least 1x1, got {width}x{height}")
        shape = (height, width)
        if seed_fn is None:
            seed_fn = bernoulli_seed(self.config.seed_probability, self._rng)

        cells = np.asarray(seed_fn(shape))
        if cells.shape != shape:
            raise ValueError(f"seed function returned shape {cells.shape}, expected {shape}")

        self.width = width
        self.height = height
        self._buffers = [np.zeros(shape, dtype=np.int8), np.zeros(shape, dtype=np.int8)]
        self._current = 0
        self._buffers[0][...] = cells != 0

        self._grid_i16 = np.empty(shape, dtype=np.int16)
        self._neighbor_buf = np.empty(shape, dtype=np.int16)
        self._n_is_3 = np.empty(shape, dtype=np.bool_)
        self._survive = np.empty(shape, dtype=np.bool_)

        self.generation = 0
        self.pop_history.clear()
        self._cached_pop = int(self._buffers[0].sum())

    # ── Simulation ──────────────────────────────────────────────────

    def _count_neighbors(self) -> NDArray[np.int16]:
        # Reuse pre-allocated input + output buffers (avoids per-frame allocations)
        np.copyto(self._grid_i16, self._buffers[self._current])
        _convolve(
            self._grid_i16, NEIGHBOR_KERNEL,
            output=self._neighbor_buf, mode=self._mode, cval=0,
        )
        return self._neighbor_buf

    def neighbor_counts(self) -> NDArray[np.int16]:
        """Live-neighbor count for every cell of the current generation."""
        self._require_grid()
        return self._count_neighbors().copy()

    def step(self) -> None:
        """Advance one generation."""
        self._require_grid()
        g = self._buffers[self._current]
        nxt = self._buffers[1 - self._current]
        n = self._count_neighbors()

        # Zero-copy bool views of the int8 grids (cells only ever hold 0 or 1)
        g_bool = g.view(np.bool_)
        nxt_bool = nxt.view(np.bool_)

        # next = (n == 3) | (alive & n == 2), all into pre-allocated scratch
        np.equal(n, 3, out=self._n_is_3)
        np.equal(n, 2, out=self._survive)
        np.logical_and(self._survive, g_bool, out=self._survive)
        np.logical_or(self._n_is_3, self._survive, out=nxt_bool)

        self._current = 1 - self._current
        self.generation += 1

        pop = int(nxt.sum())
        self._cached_pop = pop
        self.pop_history.append(pop)

    def _require_grid(self) -> None:
        if not self._buffers:
            raise RuntimeError("GridEngine.initialize() must be called first")

    # ── Read access ─────────────────────────────────────────────────

    def cell_state(self, x: int, y: int) -> bool:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"cell ({x}, {y}) is outside the {self.width}x{self.height} grid")
        return bool(self._buffers[self._current][y, x])

    def dimensions(self) -> tuple[int, int]:
        return self.width, self.height

    def grid(self) -> NDArray[np.int8]:
        """Read-only view of the current generation, shape (height, width)."""
        self._require_grid()
        view = self._buffers[self._current].view()
        view.flags.writeable = False
        return view

    def population(self) -> int:
        return self._cached_pop

    def sparkline(self, width: int = 24) -> str:
        ph_len = len(self.pop_history)
        if ph_len < 2:
            return ""
        start = max(0, ph_len - width)
        recent = [self.pop_history[i] for i in range(start, ph_len)]
        lo, hi = min(recent), max(recent)
        if hi == lo:
            return SPARKS[len(SPARKS) // 2] * len(recent)
        n_sparks = len(SPARKS) - 1
        return "".join(SPARKS[int((v - lo) / (hi - lo) * n_sparks)] for v in recent)


# ═══════════════════════════════════════════════════════════════════════
#  Rendering
# ═══════════════════════════════════════════════════════════════════════

class Renderer:
    """Draws one generation per frame, overwriting the previous frame in place.

    curses keeps its own copy of the screen and only sends the cells that
    changed since the last refresh, so redrawing every row is cheap.
    """

    def __init__(self, stdscr: curses.window, config: LifeConfig) -> None:
        self._stdscr = stdscr
        self._glyphs = np.array([config.dead_glyph, config.alive_glyph])
        self._status_line = config.status_line

    def draw(self, engine: GridEngine) -> None:
        try:
            self._draw(engine)
        except curses.error as exc:
            raise RenderFailure(f"terminal write failed: {exc}") from exc

    def _draw(self, engine: GridEngine) -> None:
        stdscr = self._stdscr
        # Clip to the terminal as it is now; a resize mid-run only truncates
        max_y, max_x = stdscr.getmaxyx()
        grid = engine.grid()
        g_rows, g_cols = grid.shape
        avail_rows = max_y - 1 if self._status_line else max_y
        draw_rows = max(0, min(g_rows, avail_rows))
        draw_cols = max(0, min(g_cols, max_x))

        cells = self._glyphs[grid[:draw_rows, :draw_cols]]
        for y, row in enumerate(cells.tolist()):
            self._put(y, "".join(row), max_y, max_x)

        if self._status_line and max_y > 0:
            self._put(max_y - 1, self.status_text(engine, max_x), max_y, max_x)

        stdscr.move(0, 0)
        stdscr.refresh()

    def _put(self, y: int, text: str, max_y: int, max_x: int) -> None:
        if not text or max_x <= 0:
            return
        if y == max_y - 1:
            # addstr into the bottom-right cell scrolls and errors. insstr
            # shifts the old row right, so fill the whole row to push it off.
            self._stdscr.insstr(y, 0, text[:max_x].ljust(max_x))
        else:
            self._stdscr.addstr(y, 0, text[:max_x])

    @staticmethod
    def status_text(engine: GridEngine, width: int) -> str:
        left = f" gen {engine.generation:,}  pop {engine.population():,}  {engine.sparkline()}"
        right = "q quit "
        gap = width - len(left) - len(right)
        if gap < 1:
            return left[:width]
        return left + " " * gap + right


# ═══════════════════════════════════════════════════════════════════════
#  Interrupts
# ═══════════════════════════════════════════════════════════════════════

INTERRUPT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)

_SignalHandler = Callable[[int, FrameType | None], object] | int | signal.Handlers | None


class StopFlag:
    """Shutdown request shared between a signal handler and the main loop.

    A single attribute write with no lock behind it, so setting it from a
    handler that interrupted the main thread can never block.
    """

    __slots__ = ("requested",)

    def __init__(self) -> None:
        self.requested: bool = False

    def set(self) -> None:
        self.requested = True

    def is_set(self) -> bool:
        return self.requested


def install_interrupt_handler(flag: StopFlag) -> dict[signal.Signals, _SignalHandler]:
    """Route SIGINT/SIGTERM to ``flag.set()``. Returns the previous handlers."""

    def _handler(signum: int, frame: FrameType | None) -> None:
        flag.set()

    previous: dict[signal.Signals, _SignalHandler] = {}
    for sig in INTERRUPT_SIGNALS:
        previous[sig] = signal.getsignal(sig)
        signal.signal(sig, _handler)
    return previous


def restore_handlers(previous: dict[signal.Signals, _SignalHandler]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler if handler is not None else signal.SIG_DFL)


# ═══════════════════════════════════════════════════════════════════════
#  Main loop
# ═══════════════════════════════════════════════════════════════════════

class State(enum.Enum):
    INIT = "init"
    SEEDING = "seeding"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class LoopController:
    """
    Drives step → draw → sleep at a fixed cadence until ``stop`` is set.

    The stop flag is only checked between frames: a frame that has started
    is always stepped and drawn in full.
    """

    def __init__(
        self,
        config: LifeConfig | None = None,
        stop: StopFlag | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config: LifeConfig = config if config is not None else LifeConfig()
        self.stop: StopFlag = stop if stop is not None else StopFlag()
        self.engine: GridEngine = GridEngine(self.config)
        self.state: State = State.INIT
        self._clock = clock
        self._sleep = sleep
        self._stats = StatsLogger(self.config.stats_path)

    def run(self, stdscr: curses.window) -> int:
        """curses.wrapper target. Returns the process exit code."""
        self.state = State.INIT
        width, height = self._prepare_terminal(stdscr)

        self.state = State.SEEDING
        self.engine.initialize(width, height)
        self._stats.open()
        self._stats.log(0, self.engine.population(), "start")
        renderer = Renderer(stdscr, self.config)

        self.state = State.RUNNING
        try:
            while not self.stop.is_set():
                frame_t0 = self._clock()
                self.engine.step()
                renderer.draw(self.engine)
                self._stats.log(self.engine.generation, self.engine.population())
                self._poll_keys(stdscr)

                remaining = self.config.frame_interval - (self._clock() - frame_t0)
                if remaining > 0 and not self.stop.is_set():
                    self._sleep(remaining)
        finally:
            self.state = State.SHUTTING_DOWN
            self._stats.log(self.engine.generation, self.engine.population(), "stop")
            self._stats.close()
        return 0

    def _prepare_terminal(self, stdscr: curses.window) -> tuple[int, int]:
        curses.curs_set(0)
        stdscr.nodelay(True)
        stdscr.timeout(0)

        max_y, max_x = stdscr.getmaxyx()
        rows = max_y - 1 if self.config.status_line else max_y
        if rows <= 0 or max_x <= 0:
            raise StartupFailure(f"terminal too small to hold a grid ({max_x}x{max_y})")
        return max_x, rows

    def _poll_keys(self, stdscr: curses.window) -> None:
        try:
            key = stdscr.getch()
        except curses.error:
            key = -1
        if key in (ord("q"), ord("Q")):
            self.stop.set()


# ═══════════════════════════════════════════════════════════════════════
#  Entry point
# ═══════════════════════════════════════════════════════════════════════

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termlife", description="Conway's Game of Life in the terminal"
    )
    parser.add_argument(
        "probability", nargs="?", type=float, default=LifeConfig.seed_probability,
        help="chance that each cell starts alive (default: %(default)s)",
    )
    return parser


def run(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    stats = os.environ.get("TERMLIFE_STATS")
    config = LifeConfig(
        seed_probability=args.probability,
        stats_path=Path(stats) if stats else None,
    )
    try:
        config.validate()
    except ConfigError as exc:
        print(f"termlife: {exc}", file=sys.stderr)
        return 1

    stop = StopFlag()
    previous = install_interrupt_handler(stop)
    controller = LoopController(config, stop)
    try:
        code = curses.wrapper(controller.run)
    except (StartupFailure, RenderFailure) as exc:
        print(f"termlife: {exc}", file=sys.stderr)
        return 1
    except curses.error as exc:
        print(f"termlife: cannot set up terminal: {exc}", file=sys.stderr)
        return 1
    finally:
        restore_handlers(previous)

    print(f"Exiting after {controller.engine.generation:,} generations.")
    return code


if __name__ == "__main__":
    sys.exit(run())
