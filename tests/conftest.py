"""Shared fakes for the coregauge tests."""

from __future__ import annotations

import curses
from collections import deque
from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock

import pytest

import coregauge.session
from coregauge.errors import ProviderError
from coregauge.render import Borders, Rect
from coregauge.sampler import AggregateReading, CoreReading, Sample


def make_sample(per_core: list[float], total: float = 0.5) -> Sample:
    return Sample(
        per_core=tuple(CoreReading(i, r) for i, r in enumerate(per_core)),
        total=AggregateReading(total),
    )


class FakeBackend:
    """Records every terminal step; steps named in ``fail_on`` raise."""

    def __init__(self, keys: list[int | None] | None = None, fail_on: set[str] | None = None) -> None:
        self.calls: list[str] = []
        self.fail_on = fail_on or set()
        self.keys: deque[int | None] = deque(keys or [])
        self.polls: list[float] = []
        self.window = MagicMock(name="window")

    def _step(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise curses.error(f"{name} exploded")

    def enter_alternate_screen(self) -> None:
        self._step("enter_alternate_screen")

    def hide_cursor(self) -> None:
        self._step("hide_cursor")

    def clear_screen(self) -> None:
        self._step("clear_screen")

    def enable_raw_mode(self) -> None:
        self._step("enable_raw_mode")

    def move_cursor_home(self) -> None:
        self._step("move_cursor_home")

    def leave_alternate_screen(self) -> None:
        self._step("leave_alternate_screen")

    def show_cursor(self) -> None:
        self._step("show_cursor")

    def disable_raw_mode(self) -> None:
        self._step("disable_raw_mode")

    def poll_key(self, timeout: float) -> int | None:
        self.polls.append(timeout)
        # Out of scripted keys: quit, so a loop under test always ends
        return self.keys.popleft() if self.keys else ord("q")

    @property
    def release_count(self) -> int:
        return self.calls.count("move_cursor_home")


class FakeRenderer:
    """Captures draw calls instead of painting."""

    def __init__(self, width: int = 120, height: int = 40) -> None:
        self.width = width
        self.height = height
        self.gauges: list[tuple[Rect, str, Borders, float]] = []
        self.notices: list[str] = []
        self.frames: list[bool] = []  # clear flag per begin_frame
        self.ended = 0

    def size(self) -> Rect:
        return Rect(0, 0, self.width, self.height)

    def begin_frame(self, clear: bool = False) -> None:
        self.frames.append(clear)
        self.gauges.clear()
        self.notices.clear()

    def draw_gauge(self, rect: Rect, title: str, borders: Borders, ratio: float) -> None:
        self.gauges.append((rect, title, borders, ratio))

    def draw_notice(self, text: str) -> None:
        self.notices.append(text)

    def end_frame(self) -> None:
        self.ended += 1

    @property
    def titles(self) -> list[str]:
        return [g[1] for g in self.gauges]

    @property
    def ratios(self) -> list[float]:
        return [g[3] for g in self.gauges]


class FakeSampler:
    """Hands out scripted samples; exceptions in the script are raised."""

    supports_temperature = False

    def __init__(self, core_count: int, script: list[Any] | None = None) -> None:
        self._core_count = core_count
        self.script: deque[Any] = deque(script or [])
        self.calls = 0

    def core_count(self) -> int:
        return self._core_count

    def sample(self) -> Sample:
        self.calls += 1
        item = self.script.popleft() if self.script else make_sample([0.1] * self._core_count)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def _reset_active_session() -> Iterator[None]:
    coregauge.session._active_handle = None
    yield
    coregauge.session._active_handle = None


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def provider_error() -> ProviderError:
    return ProviderError("cpu_percent failed: simulated")
