"""Terminal session lifecycle: alternate screen, hidden cursor, raw input.

:class:`SessionGuard` puts the terminal into dashboard mode and guarantees
it comes back out, whichever way the dashboard exits. The real work is done
by a :class:`TerminalBackend`; :class:`CursesBackend` is the one used in
production, tests substitute a recording fake.
"""

from __future__ import annotations

import curses
import logging
import sys
import termios
from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Protocol

from coregauge.errors import TerminalError

logger = logging.getLogger(__name__)

_TERMINAL_ERRORS: tuple[type[BaseException], ...] = (
    curses.error,
    termios.error,
    OSError,
    TerminalError,
)


class TerminalBackend(Protocol):
    """The terminal operations a session is built from."""

    def enter_alternate_screen(self) -> None: ...

    def hide_cursor(self) -> None: ...

    def clear_screen(self) -> None: ...

    def enable_raw_mode(self) -> None: ...

    def move_cursor_home(self) -> None: ...

    def leave_alternate_screen(self) -> None: ...

    def show_cursor(self) -> None: ...

    def disable_raw_mode(self) -> None: ...

    def poll_key(self, timeout: float) -> int | None: ...

    @property
    def window(self) -> Any: ...


class CursesBackend:
    """TerminalBackend on top of curses, restoring the tty with termios."""

    def __init__(self, fd: int | None = None) -> None:
        self._fd = sys.stdin.fileno() if fd is None else fd
        self._saved_tty: list[Any] | None = None
        self._stdscr: curses.window | None = None

    @property
    def window(self) -> curses.window:
        if self._stdscr is None:
            raise TerminalError("terminal session is not active")
        return self._stdscr

    def enter_alternate_screen(self) -> None:
        # initscr switches to the alternate screen and changes tty modes,
        # so the original attributes have to be captured first
        if sys.stdin.isatty():
            self._saved_tty = termios.tcgetattr(self._fd)
        self._stdscr = curses.initscr()

    def hide_cursor(self) -> None:
        curses.curs_set(0)

    def clear_screen(self) -> None:
        self.window.clear()
        self.window.refresh()

    def enable_raw_mode(self) -> None:
        curses.noecho()
        curses.raw()
        self.window.keypad(True)

    def move_cursor_home(self) -> None:
        self.window.move(0, 0)

    def leave_alternate_screen(self) -> None:
        curses.endwin()

    def show_cursor(self) -> None:
        curses.curs_set(1)

    def disable_raw_mode(self) -> None:
        if self._saved_tty is None:
            return
        termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_tty)
        self._saved_tty = None

    def poll_key(self, timeout: float) -> int | None:
        """Wait up to ``timeout`` seconds for a key. None on timeout."""
        win = self.window
        win.timeout(max(0, int(timeout * 1000)))
        key = win.getch()
        return None if key == -1 else key


@dataclass
class SessionState:
    """Which terminal modes the session currently has switched on."""

    alternate_screen: bool = False
    cursor_hidden: bool = False
    raw_mode: bool = False

    @property
    def active(self) -> bool:
        return self.alternate_screen or self.cursor_hidden or self.raw_mode


class SessionHandle:
    """Proof of an acquired terminal session; pass it to whatever draws."""

    def __init__(self, backend: TerminalBackend, state: SessionState) -> None:
        self.backend = backend
        self.state = state
        self.released = False

    @property
    def window(self) -> Any:
        return self.backend.window

    def poll_key(self, timeout: float) -> int | None:
        if self.released:
            raise TerminalError("terminal session already released")
        return self.backend.poll_key(timeout)


_active_handle: SessionHandle | None = None


def _attempt(step: Callable[[], None], name: str) -> TerminalError | None:
    """Run one backend step, returning (not raising) its failure."""
    try:
        step()
    except _TERMINAL_ERRORS as e:
        logger.debug("terminal step %s failed: %s", name, e)
        err = TerminalError(f"{name} failed: {e}")
        err.__cause__ = e
        return err
    return None


class SessionGuard:
    """
    Scoped ownership of the terminal.

    ``acquire`` enters the alternate screen, hides the cursor, clears the
    screen and enables raw input, in that order. ``release`` moves the cursor
    home, clears, leaves the alternate screen, shows the cursor and disables
    raw mode. Used as a context manager, release runs exactly once on every
    way out of the ``with`` block.
    """

    def __init__(self, backend: TerminalBackend) -> None:
        self._backend = backend
        self._handle: SessionHandle | None = None

    def acquire(self) -> SessionHandle:
        """
        Put the terminal into dashboard mode.

        Raises:
            TerminalError: A step failed. Every step that had already
                succeeded is undone before the error propagates.
        """
        global _active_handle
        if _active_handle is not None and not _active_handle.released:
            raise TerminalError("a terminal session is already active")

        backend = self._backend
        state = SessionState()
        # (step, flag it sets, undo step)
        steps: list[tuple[str, str | None, str | None]] = [
            ("enter_alternate_screen", "alternate_screen", "leave_alternate_screen"),
            ("hide_cursor", "cursor_hidden", "show_cursor"),
            ("clear_screen", None, None),
            ("enable_raw_mode", "raw_mode", "disable_raw_mode"),
        ]

        undo: list[tuple[str, str]] = []
        for name, flag, undo_name in steps:
            err = _attempt(getattr(backend, name), name)
            if err is not None:
                # Unwind whatever did succeed, every undo attempted
                for flag_name, reverse in reversed(undo):
                    undo_err = _attempt(getattr(backend, reverse), reverse)
                    if undo_err is None:
                        setattr(state, flag_name, False)
                    else:
                        err.add_note(f"while undoing: {undo_err}")
                raise err
            if flag is not None and undo_name is not None:
                setattr(state, flag, True)
                undo.append((flag, undo_name))

        handle = SessionHandle(backend, state)
        self._handle = handle
        _active_handle = handle
        logger.debug("terminal session acquired")
        return handle

    def release(self, handle: SessionHandle) -> None:
        """
        Return the terminal to its original mode.

        Every step is attempted even when an earlier one fails; the first
        failure is raised afterwards as TerminalError.
        """
        global _active_handle
        if handle.released:
            raise TerminalError("terminal session already released")
        handle.released = True
        if _active_handle is handle:
            _active_handle = None
        if self._handle is handle:
            self._handle = None

        backend = handle.backend
        state = handle.state
        # (step, flag it clears)
        steps: list[tuple[str, str | None]] = [
            ("move_cursor_home", None),
            ("clear_screen", None),
            ("leave_alternate_screen", "alternate_screen"),
            ("show_cursor", "cursor_hidden"),
            ("disable_raw_mode", "raw_mode"),
        ]

        first: TerminalError | None = None
        for name, flag in steps:
            err = _attempt(getattr(backend, name), name)
            if err is None:
                if flag is not None:
                    setattr(state, flag, False)
            elif first is None:
                first = err
            else:
                first.add_note(f"also: {err}")

        logger.debug("terminal session released")
        if first is not None:
            raise first

    def __enter__(self) -> SessionHandle:
        return self.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        handle = self._handle
        if handle is None:
            return
        try:
            self.release(handle)
        except TerminalError as release_err:
            if exc is None:
                raise
            # Keep the original error; the restore failure rides along
            exc.add_note(f"terminal restore failed: {release_err}")
