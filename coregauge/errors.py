"""Exception types raised by coregauge."""

from __future__ import annotations


class CoreGaugeError(Exception):
    """Base class for every error coregauge raises on purpose."""


class ProviderError(CoreGaugeError):
    """The CPU metrics source failed or returned malformed data."""


class TerminalError(CoreGaugeError):
    """A raw-mode, cursor or screen-buffer operation failed."""


class ConfigError(CoreGaugeError):
    """A configuration value is missing, malformed or out of range."""
