"""CPU utilization sampling for coregauge."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import psutil

from coregauge.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CoreReading:
    """Utilization of one logical core for a single tick."""

    index: int
    utilization: float  # 0.0 - 1.0


@dataclass(slots=True, frozen=True)
class AggregateReading:
    """Whole-machine utilization for a single tick."""

    utilization: float  # 0.0 - 1.0


@dataclass(slots=True, frozen=True)
class Sample:
    """Everything one tick learned from the provider."""

    per_core: tuple[CoreReading, ...]
    total: AggregateReading

    def __len__(self) -> int:
        return len(self.per_core)

    def ratio(self, index: int) -> float:
        return self.per_core[index].utilization


def clamp_ratio(value: float) -> float:
    """Pin a ratio into [0.0, 1.0]; in-range values pass through unchanged."""
    return min(1.0, max(0.0, value))


def _to_ratio(value: object, what: str) -> float:
    """Convert a psutil percentage into a clamped ratio."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProviderError(f"{what}: expected a number, got {value!r}")
    if not math.isfinite(value):
        raise ProviderError(f"{what}: non-finite reading {value!r}")
    return clamp_ratio(value / 100.0)


class Sampler:
    """
    Per-core and aggregate CPU utilization via psutil.

    psutil computes percentages as deltas since its previous call, so each
    provider function is called exactly once per :meth:`sample`.
    """

    supports_temperature = False

    def __init__(self, sim_core_count: int = 0) -> None:
        """
        Initialize the Sampler and prime psutil's delta counters.

        Args:
            sim_core_count: Pretend the machine has this many cores for
                layout purposes. 0 uses the detected count.
        """
        if sim_core_count < 0:
            raise ValueError(f"sim_core_count must be >= 0, got {sim_core_count}")
        try:
            # First call returns meaningless 0.0s, it only sets the baseline
            primed = psutil.cpu_percent(interval=None, percpu=True)
            psutil.cpu_percent(interval=None)
            detected = psutil.cpu_count(logical=True)
        except (psutil.Error, OSError) as e:
            raise ProviderError(f"cannot read CPU counters: {e}") from e

        self._detected = max(1, detected or len(primed or ()))
        self._core_count = sim_core_count if sim_core_count > 0 else self._detected
        if sim_core_count > 0:
            logger.info(
                "simulating %d cores (detected %d)", sim_core_count, self._detected
            )

    @property
    def detected_core_count(self) -> int:
        return self._detected

    def core_count(self) -> int:
        """Core count used for layout, fixed for the life of the sampler."""
        return self._core_count

    def sample(self) -> Sample:
        """
        Take one reading of every core and of the machine as a whole.

        Raises:
            ProviderError: psutil failed or handed back something unusable.
        """
        try:
            per_core_raw = psutil.cpu_percent(interval=None, percpu=True)
            total_raw = psutil.cpu_percent(interval=None)
        except (psutil.Error, OSError) as e:
            raise ProviderError(f"cpu_percent failed: {e}") from e

        if not per_core_raw:
            raise ProviderError("cpu_percent returned no per-core readings")

        per_core = tuple(
            CoreReading(index=i, utilization=_to_ratio(value, f"core {i}"))
            for i, value in enumerate(per_core_raw)
        )
        total = AggregateReading(utilization=_to_ratio(total_raw, "total"))
        return Sample(per_core=per_core, total=total)

    def temperature(self) -> float:
        """CPU temperature in degrees Celsius.

        Only called when :attr:`supports_temperature` is set, which it is not
        yet: the summary row falls back to the plain aggregate title.
        """
        raise NotImplementedError("temperature readings are not implemented")
