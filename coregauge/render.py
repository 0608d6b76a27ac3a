"""Gauge drawing on a curses window.

The dashboard only ever asks for one thing: paint a rectangle with a title,
a border and a 0.0-1.0 fill. :class:`CursesRenderer` does that, and the
layout helpers here carve the screen into the rectangles to paint.
"""

from __future__ import annotations

import curses
import enum
from dataclasses import dataclass
from typing import Any, Protocol

from coregauge.errors import TerminalError

# ── Constants ──────────────────────────────────────────────────────────────

BAR_FILL = "█"
BAR_EMPTY = "░"

# Curses colour-pair IDs
C_GAUGE = 1
C_TITLE = 2
C_DIM = 3


# ── Geometry ───────────────────────────────────────────────────────────────


class Direction(enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(slots=True, frozen=True)
class Rect:
    """Screen rectangle in character cells."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def inset(self, margin: int) -> Rect:
        """Shrink by ``margin`` cells on every side, never below zero size."""
        return Rect(
            self.x + margin,
            self.y + margin,
            max(0, self.width - 2 * margin),
            max(0, self.height - 2 * margin),
        )


def split_percentages(
    rect: Rect,
    percents: list[int],
    direction: Direction,
    margin: int = 0,
) -> list[Rect]:
    """Carve ``rect`` into consecutive chunks sized by whole percentages.

    Each chunk gets ``size * p // 100`` cells. Whatever the truncation leaves
    over stays blank at the far edge.
    """
    area = rect.inset(margin)
    chunks: list[Rect] = []
    if direction is Direction.VERTICAL:
        y = area.y
        for p in percents:
            h = area.height * p // 100
            chunks.append(Rect(area.x, y, area.width, h))
            y += h
    else:
        x = area.x
        for p in percents:
            w = area.width * p // 100
            chunks.append(Rect(x, area.y, w, area.height))
            x += w
    return chunks


class Borders(enum.Flag):
    NONE = 0
    TOP = 1
    BOTTOM = 2
    LEFT = 4
    RIGHT = 8
    ALL = TOP | BOTTOM | LEFT | RIGHT


_BORDER_NAMES: dict[str, Borders] = {
    "all": Borders.ALL,
    "none": Borders.NONE,
    "bottom-left": Borders.BOTTOM | Borders.LEFT,
}


def borders_from_name(name: str) -> Borders:
    """Map a config border name onto a Borders flag."""
    try:
        return _BORDER_NAMES[name]
    except KeyError:
        raise ValueError(f"unknown border style {name!r}") from None


# ── Renderer protocol ──────────────────────────────────────────────────────


class GaugeRenderer(Protocol):
    def size(self) -> Rect: ...

    def begin_frame(self, clear: bool = False) -> None: ...

    def draw_gauge(self, rect: Rect, title: str, borders: Borders, ratio: float) -> None: ...

    def draw_notice(self, text: str) -> None: ...

    def end_frame(self) -> None: ...


# ── Curses implementation ──────────────────────────────────────────────────


def _safe(win: curses.window, *args: Any) -> None:
    """addstr wrapper that swallows out-of-bounds errors."""
    try:
        win.addstr(*args)
    except curses.error:
        pass


def _safe_line(draw: Any, *args: Any) -> None:
    """hline/vline/addch wrapper with the same clipping behaviour as _safe."""
    try:
        draw(*args)
    except curses.error:
        pass


def _checked(what: str, draw: Any, *args: Any) -> None:
    """Run a whole-screen curses call; failure means the terminal is unusable."""
    try:
        draw(*args)
    except curses.error as e:
        raise TerminalError(f"{what} failed: {e}") from e


class CursesRenderer:
    """Paints gauges onto a curses window.

    Per-cell drawing is clipped silently. Colour setup and the frame-level
    calls raise :class:`TerminalError` instead.
    """

    def __init__(self, win: curses.window) -> None:
        self._win = win
        self._init_colors()

    @staticmethod
    def _init_colors() -> None:
        if not curses.has_colors():
            return
        _checked("start_color", curses.start_color)
        _checked("use_default_colors", curses.use_default_colors)
        _checked("init_pair", curses.init_pair, C_GAUGE, curses.COLOR_GREEN, -1)
        _checked("init_pair", curses.init_pair, C_TITLE, curses.COLOR_CYAN, -1)
        _checked("init_pair", curses.init_pair, C_DIM, curses.COLOR_WHITE, -1)

    def size(self) -> Rect:
        max_y, max_x = self._win.getmaxyx()
        return Rect(0, 0, max_x, max_y)

    def begin_frame(self, clear: bool = False) -> None:
        if clear:
            _checked("clear", self._win.clear)
        else:
            _checked("erase", self._win.erase)

    def end_frame(self) -> None:
        _checked("refresh", self._win.refresh)

    def draw_notice(self, text: str) -> None:
        max_x = self.size().width
        _safe(self._win, 0, 0, text[: max(0, max_x - 1)], curses.color_pair(C_DIM))

    def _draw_borders(self, rect: Rect, borders: Borders) -> None:
        win = self._win
        left, top = rect.x, rect.y
        right, bottom = rect.x + rect.width - 1, rect.y + rect.height - 1
        if Borders.TOP in borders:
            _safe_line(win.hline, top, left, curses.ACS_HLINE, rect.width)
        if Borders.BOTTOM in borders:
            _safe_line(win.hline, bottom, left, curses.ACS_HLINE, rect.width)
        if Borders.LEFT in borders:
            _safe_line(win.vline, top, left, curses.ACS_VLINE, rect.height)
        if Borders.RIGHT in borders:
            _safe_line(win.vline, top, right, curses.ACS_VLINE, rect.height)

        corners = (
            (Borders.TOP | Borders.LEFT, top, left, curses.ACS_ULCORNER),
            (Borders.TOP | Borders.RIGHT, top, right, curses.ACS_URCORNER),
            (Borders.BOTTOM | Borders.LEFT, bottom, left, curses.ACS_LLCORNER),
            (Borders.BOTTOM | Borders.RIGHT, bottom, right, curses.ACS_LRCORNER),
        )
        for sides, y, x, ch in corners:
            if sides in borders:
                _safe_line(win.addch, y, x, ch)

    def draw_gauge(self, rect: Rect, title: str, borders: Borders, ratio: float) -> None:
        """Render a bordered, titled block filled to ``ratio`` of its width."""
        if rect.width < 1 or rect.height < 1:
            return
        win = self._win
        self._draw_borders(rect, borders)

        x0 = rect.x + (1 if Borders.LEFT in borders else 0)
        x1 = rect.x + rect.width - (1 if Borders.RIGHT in borders else 0)
        y0 = rect.y + (1 if Borders.TOP in borders else 0)
        y1 = rect.y + rect.height - (1 if Borders.BOTTOM in borders else 0)
        inner_w = x1 - x0

        # Title sits in the top edge; without one it takes the first inner row
        if title and inner_w > 0:
            _safe(
                win,
                rect.y,
                x0,
                title[:inner_w],
                curses.color_pair(C_TITLE) | curses.A_BOLD,
            )
            if Borders.TOP not in borders:
                y0 += 1

        if inner_w < 1 or y1 <= y0:
            return

        ratio = min(1.0, max(0.0, ratio))
        filled = int(inner_w * ratio)
        empty = inner_w - filled
        for y in range(y0, y1):
            _safe(win, y, x0, BAR_FILL * filled, curses.color_pair(C_GAUGE))
            _safe(win, y, x0 + filled, BAR_EMPTY * empty, curses.color_pair(C_DIM))

        label = f"{ratio * 100:.0f}%"
        if len(label) <= inner_w:
            mid_y = y0 + (y1 - y0) // 2
            mid_x = x0 + (inner_w - len(label)) // 2
            _safe(win, mid_y, mid_x, label, curses.color_pair(C_GAUGE) | curses.A_REVERSE)
