"""Grid planning: where each core's gauge goes on screen.

Cores are laid out row-major in rows of ``min_width`` gauges. Everything
here is pure arithmetic so the renderer can ask the same questions every
frame and always get the same answers.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class GridSpec:
    """Shape of the gauge grid for a given core count and row width."""

    core_count: int
    row_count: int  # rows holding core gauges, always >= 1
    columns_per_row: int
    extra_rows: int  # auxiliary full-width rows appended below the grid
    cell_width_percent: int
    cell_height_percent: int

    @property
    def total_rows(self) -> int:
        return self.row_count + self.extra_rows

    @property
    def slot_count(self) -> int:
        return self.row_count * self.columns_per_row


@dataclass(slots=True, frozen=True)
class Cell:
    """One grid slot in row-major order."""

    row: int
    col: int
    index: int
    is_core: bool  # False = slot past the last core, drawn as the aggregate


def row_count(core_count: int, min_width: int) -> int:
    """Rows needed so that every core gets a slot.

    Machines with fewer cores than ``min_width`` still get one row rather
    than a degenerate empty grid.
    """
    if min_width < 1:
        raise ValueError(f"min_width must be >= 1, got {min_width}")
    if core_count < 0:
        raise ValueError(f"core_count must be >= 0, got {core_count}")
    if core_count >= min_width:
        return max(1, -(-core_count // min_width))
    return 1


def cell_percent(n: int) -> int:
    """Share of the screen each of ``n`` equal cells gets, in whole percent.

    Truncating division: 3 cells get 33% each and the last 1% stays empty.
    Never drops below 1 so a huge grid still produces drawable constraints.
    """
    if n < 1:
        raise ValueError(f"cell count must be >= 1, got {n}")
    return max(1, 100 // n)


def linear_index(row: int, col: int, min_width: int) -> int:
    return row * min_width + col


def position_for(index: int, min_width: int) -> tuple[int, int]:
    """Inverse of :func:`linear_index`: the (row, col) holding ``index``."""
    if min_width < 1:
        raise ValueError(f"min_width must be >= 1, got {min_width}")
    if index < 0:
        raise ValueError(f"index must be >= 0, got {index}")
    return divmod(index, min_width)


def is_valid_index(index: int, core_count: int) -> bool:
    return 0 <= index < core_count


def plan_grid(core_count: int, min_width: int, extra_rows: int = 0) -> GridSpec:
    """Compute the grid for ``core_count`` cores, ``min_width`` per row.

    Args:
        core_count: Number of cores to place (may be 0).
        min_width: Gauges per row, >= 1.
        extra_rows: Auxiliary rows appended after the core rows.

    Returns:
        A GridSpec whose ``row_count * columns_per_row >= core_count``.
    """
    if extra_rows < 0:
        raise ValueError(f"extra_rows must be >= 0, got {extra_rows}")
    rows = row_count(core_count, min_width)
    return GridSpec(
        core_count=core_count,
        row_count=rows,
        columns_per_row=min_width,
        extra_rows=extra_rows,
        cell_width_percent=cell_percent(min_width),
        cell_height_percent=cell_percent(rows + extra_rows),
    )


def iter_cells(spec: GridSpec) -> Iterator[Cell]:
    """Yield every core-row slot in row-major order.

    Slots past the last core are yielded with ``is_core=False``; every one of
    them is filled with the aggregate gauge, not just the first gap.
    Auxiliary rows are not yielded: each is a single full-width cell.
    """
    for row in range(spec.row_count):
        for col in range(spec.columns_per_row):
            index = linear_index(row, col, spec.columns_per_row)
            yield Cell(row, col, index, is_valid_index(index, spec.core_count))
