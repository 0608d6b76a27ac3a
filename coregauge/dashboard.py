"""Interactive terminal dashboard: one live gauge per CPU core.

Samples per-core and total CPU utilization on a fixed cadence and paints
each core as a gauge in a grid sized to the terminal and the core count.
Grid slots past the last core show the machine-wide average.

Usage:
    coregauge
    coregauge --width 8 --interval 0.5 --config path/to/config.toml
"""

from __future__ import annotations

import argparse
import curses
import enum
import logging
import signal
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import Any, Protocol

from coregauge.config import (
    BORDER_STYLES,
    DashboardConfig,
    apply_overrides,
    build_config,
    dump_default_config,
    load_config,
)
from coregauge.errors import ConfigError, ProviderError, TerminalError
from coregauge.grid import GridSpec, iter_cells, plan_grid
from coregauge.render import (
    Borders,
    CursesRenderer,
    Direction,
    GaugeRenderer,
    Rect,
    borders_from_name,
    split_percentages,
)
from coregauge.sampler import Sample, Sampler
from coregauge.session import CursesBackend, SessionGuard, TerminalBackend

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────────

QUIT_KEYS = frozenset({ord("q"), ord("Q"), 3})  # 3 = Ctrl-C, a plain key in raw mode
AGGREGATE_TITLE = "AVG"
STALE_SUFFIX = " (stale)"
GRID_MARGIN = 1
MIN_CELL_WIDTH = 4
MIN_CELL_HEIGHT = 3


# ── Loop state ─────────────────────────────────────────────────────────────


class LoopState(enum.Enum):
    RUNNING = "running"
    TERMINATING = "terminating"


@dataclass
class LoopStats:
    """Counters kept across the run, printed on exit in debug mode."""

    ticks: int = 0
    frames_drawn: int = 0
    stale_frames: int = 0
    skipped_frames: int = 0
    provider_failures: int = 0
    resizes: int = 0
    core_count: int = 0
    rows: int = 0
    columns: int = 0

    def summary_lines(self) -> list[str]:
        return [
            "── coregauge debug ──",
            f"  {'ticks':18s}  {self.ticks}",
            f"  {'frames drawn':18s}  {self.frames_drawn}",
            f"  {'stale frames':18s}  {self.stale_frames}",
            f"  {'skipped frames':18s}  {self.skipped_frames}",
            f"  {'provider failures':18s}  {self.provider_failures}",
            f"  {'resizes':18s}  {self.resizes}",
            f"  {'cores':18s}  {self.core_count}",
            f"  {'grid':18s}  {self.rows} x {self.columns}",
        ]


class KeySource(Protocol):
    def poll_key(self, timeout: float) -> int | None: ...


# ── Frame drawing ──────────────────────────────────────────────────────────


def min_screen_size(spec: GridSpec) -> tuple[int, int]:
    """Smallest (width, height) that still fits one readable gauge per slot."""
    width = spec.columns_per_row * MIN_CELL_WIDTH + 2 * GRID_MARGIN
    height = spec.total_rows * MIN_CELL_HEIGHT + 2 * GRID_MARGIN
    return width, height


def summary_title(sampler: Sampler) -> str:
    """Title for the full-width summary row below the core grid."""
    if not sampler.supports_temperature:
        return AGGREGATE_TITLE
    try:
        celsius = sampler.temperature()
    except ProviderError as e:
        logger.info("temperature read failed: %s", e)
        return AGGREGATE_TITLE
    return f"{AGGREGATE_TITLE}  {celsius:.0f}°C"


def draw_frame(
    renderer: GaugeRenderer,
    spec: GridSpec,
    sample: Sample,
    borders: Borders,
    stale: bool = False,
    clear: bool = False,
    summary: str = AGGREGATE_TITLE,
) -> bool:
    """Issue the draw calls for one full frame, row-major.

    A slot shows its core when the index is inside both the planned core
    count and the sample actually returned; otherwise it shows the aggregate.
    Rows past the core grid are drawn full width, titled ``summary``.

    Returns:
        False if the terminal was too small and only a notice was drawn.
    """
    renderer.begin_frame(clear=clear)
    area = renderer.size()
    need_w, need_h = min_screen_size(spec)
    if area.width < need_w or area.height < need_h:
        renderer.draw_notice(f"Terminal too small (need {need_w}x{need_h}+)")
        renderer.end_frame()
        return False

    suffix = STALE_SUFFIX if stale else ""
    total = sample.total.utilization
    rows = split_percentages(
        area,
        [spec.cell_height_percent] * spec.total_rows,
        Direction.VERTICAL,
        margin=GRID_MARGIN,
    )
    row_cells: dict[int, list[Rect]] = {}

    for cell in iter_cells(spec):
        if cell.row not in row_cells:
            row_cells[cell.row] = split_percentages(
                rows[cell.row],
                [spec.cell_width_percent] * spec.columns_per_row,
                Direction.HORIZONTAL,
            )
        rect = row_cells[cell.row][cell.col]
        if cell.is_core and cell.index < len(sample):
            renderer.draw_gauge(
                rect, f"CPU{cell.index}{suffix}", borders, sample.ratio(cell.index)
            )
        else:
            renderer.draw_gauge(rect, f"{AGGREGATE_TITLE}{suffix}", borders, total)

    for row in range(spec.row_count, spec.total_rows):
        renderer.draw_gauge(rows[row], f"{summary}{suffix}", borders, total)

    renderer.end_frame()
    return True


# ── Render loop ────────────────────────────────────────────────────────────


class RenderLoop:
    """
    Single-threaded poll → sample → draw loop.

    The bounded key poll is the only wait, so it also paces the frames. A
    quit key is noticed only at poll boundaries.
    """

    def __init__(
        self,
        config: DashboardConfig,
        sampler: Sampler,
        renderer: GaugeRenderer,
        keys: KeySource,
        stats: LoopStats | None = None,
    ) -> None:
        self._config = config
        self._sampler = sampler
        self._renderer = renderer
        self._keys = keys
        self._borders = borders_from_name(config.borders)
        self.stats = stats if stats is not None else LoopStats()
        self.state = LoopState.RUNNING

        extra_rows = 1 if config.display_temperature else 0
        # Core count and width are fixed for the run: plan once
        self.spec = plan_grid(sampler.core_count(), config.width, extra_rows)
        self.stats.core_count = self.spec.core_count
        self.stats.rows = self.spec.total_rows
        self.stats.columns = self.spec.columns_per_row

        self._last_good: Sample | None = None
        self._consecutive_failures = 0
        self._needs_clear = False

    def _take_sample(self) -> tuple[Sample | None, bool]:
        """Fresh sample, or the last good one flagged stale, or None."""
        try:
            sample = self._sampler.sample()
        except ProviderError as e:
            self.stats.provider_failures += 1
            self._consecutive_failures += 1
            logger.info(
                "sample failed (%d in a row): %s", self._consecutive_failures, e
            )
            if self._consecutive_failures >= self._config.max_provider_failures:
                raise
            return self._last_good, True
        self._consecutive_failures = 0
        self._last_good = sample
        return sample, False

    def tick(self) -> LoopState:
        """Run one poll/sample/draw iteration."""
        if self.state is LoopState.TERMINATING:
            return self.state

        key = self._keys.poll_key(self._config.interval)
        self.stats.ticks += 1
        if key in QUIT_KEYS:
            logger.debug("quit key %r", key)
            self.state = LoopState.TERMINATING
            return self.state
        if key == curses.KEY_RESIZE:
            self.stats.resizes += 1
            self._needs_clear = True

        sample, stale = self._take_sample()
        if sample is None:
            self.stats.skipped_frames += 1
            return self.state

        summary = summary_title(self._sampler) if self.spec.extra_rows else AGGREGATE_TITLE
        draw_frame(
            self._renderer,
            self.spec,
            sample,
            self._borders,
            stale=stale,
            clear=self._needs_clear,
            summary=summary,
        )
        self._needs_clear = False
        self.stats.frames_drawn += 1
        if stale:
            self.stats.stale_frames += 1
        return self.state

    def run(self) -> LoopStats:
        while self.state is LoopState.RUNNING:
            self.tick()
        return self.stats


def run_dashboard(
    config: DashboardConfig,
    *,
    stats: LoopStats | None = None,
    backend: TerminalBackend | None = None,
    sampler: Sampler | None = None,
    renderer_factory: Callable[[Any], GaugeRenderer] | None = None,
) -> LoopStats:
    """Own the terminal for the length of one dashboard run.

    The sampler is created before the terminal is touched, so a provider
    failure at startup never leaves the screen half set up.
    """
    if sampler is None:
        sampler = Sampler(config.sim_core_count)
    if backend is None:
        backend = CursesBackend()
    if renderer_factory is None:
        renderer_factory = CursesRenderer

    with SessionGuard(backend) as handle:
        renderer = renderer_factory(handle.window)
        loop = RenderLoop(config, sampler, renderer, handle, stats)
        return loop.run()


# ── CLI entry point ────────────────────────────────────────────────────────


def _on_sigterm(signum: int, frame: FrameType | None) -> None:
    # Unwind through the session guard so the terminal is restored
    raise SystemExit(128 + signum)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live per-core CPU gauges in the terminal.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Print internal counters on exit",
    )
    parser.add_argument(
        "--width",
        type=int,
        default=None,
        help="Minimum gauges per row (default: 5)",
    )
    parser.add_argument(
        "--sim-core-count",
        type=int,
        default=None,
        metavar="N",
        help="Lay out N cores instead of the detected count (default: 0 = detect)",
    )
    parser.add_argument(
        "--cputin",
        default=None,
        metavar="LABEL",
        help="CPU temperature sensor label",
    )
    parser.add_argument(
        "--systin",
        default=None,
        metavar="LABEL",
        help="System temperature sensor label",
    )
    parser.add_argument(
        "--display-temperature",
        action="store_true",
        default=None,
        help="Append a full-width summary row below the core grid",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds to wait for a key between frames (default: 1.0)",
    )
    parser.add_argument(
        "--borders",
        choices=BORDER_STYLES,
        default=None,
        help="Gauge border style (default: all)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to TOML config file",
    )
    parser.add_argument(
        "--print-config",
        action="store_true",
        help="Print the default config as TOML and exit",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Write log messages to PATH",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.print_config:
        print(dump_default_config(), end="")
        return 0

    overrides: dict[str, Any] = {
        "debug": args.debug,
        "width": args.width,
        "sim_core_count": args.sim_core_count,
        "cputin": args.cputin,
        "systin": args.systin,
        "display_temperature": args.display_temperature,
        "interval": args.interval,
        "borders": args.borders,
    }
    try:
        config = build_config(apply_overrides(load_config(args.config), overrides))
    except ConfigError as e:
        print(f"coregauge: {e}")
        return 2

    if args.log_file is not None:
        logging.basicConfig(
            filename=args.log_file,
            level=logging.DEBUG if config.debug else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    if config.cputin or config.systin:
        logger.info(
            "sensor labels cputin=%r systin=%r are not used yet",
            config.cputin,
            config.systin,
        )

    signal.signal(signal.SIGTERM, _on_sigterm)
    stats = LoopStats()
    status = 0
    try:
        run_dashboard(config, stats=stats)
    except (ProviderError, TerminalError) as e:
        print(f"coregauge: {e}")
        status = 1
    except curses.error as e:
        # Raised by a draw call outside CursesRenderer's own checks
        logger.debug("unwrapped curses error: %s", e)
        print(f"coregauge: terminal error: {e}")
        status = 1
    except KeyboardInterrupt:
        pass
    finally:
        if config.debug:
            print("\n".join(stats.summary_lines()))
    return status


if __name__ == "__main__":
    sys.exit(main())
