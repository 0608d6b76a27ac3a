"""coregauge: live per-core CPU gauges in the terminal."""

__version__ = "0.1.0"
