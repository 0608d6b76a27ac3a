"""Tests for coregauge.sampler."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import psutil
import pytest

from coregauge.errors import ProviderError
from coregauge.sampler import Sampler, clamp_ratio


def _cpu_percent(per_core: Any, total: Any) -> Any:
    """side_effect for psutil.cpu_percent that honours the percpu flag."""

    def fake(interval: float | None = None, percpu: bool = False) -> Any:
        return per_core if percpu else total

    return fake


# ── clamp_ratio ────────────────────────────────────────────────────────────


class TestClampRatio:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(-0.5, 0.0), (0.0, 0.0), (0.25, 0.25), (1.0, 1.0), (1.37, 1.0), (42.0, 1.0)],
    )
    def test_clamps(self, value: float, expected: float) -> None:
        assert clamp_ratio(value) == expected

    def test_in_range_values_unchanged(self) -> None:
        for i in range(101):
            r = i / 100
            assert clamp_ratio(r) == r


# ── Sampler ────────────────────────────────────────────────────────────────


@patch("coregauge.sampler.psutil.cpu_count", return_value=4)
@patch("coregauge.sampler.psutil.cpu_percent")
class TestSampler:
    def test_primes_counters_on_construction(
        self, mock_pct: MagicMock, mock_count: MagicMock
    ) -> None:
        mock_pct.side_effect = _cpu_percent([0.0] * 4, 0.0)
        Sampler()
        assert mock_pct.call_count == 2

    def test_sample_converts_to_ratios(
        self, mock_pct: MagicMock, mock_count: MagicMock
    ) -> None:
        mock_pct.side_effect = _cpu_percent([50.0, 25.0, 0.0, 100.0], 43.75)
        sample = Sampler().sample()
        assert [r.utilization for r in sample.per_core] == [0.5, 0.25, 0.0, 1.0]
        assert [r.index for r in sample.per_core] == [0, 1, 2, 3]
        assert sample.total.utilization == pytest.approx(0.4375)
        assert len(sample) == 4
        assert sample.ratio(1) == 0.25

    def test_out_of_range_reading_clamped(
        self, mock_pct: MagicMock, mock_count: MagicMock
    ) -> None:
        mock_pct.side_effect = _cpu_percent([137.0, -3.0], 112.0)
        sample = Sampler().sample()
        assert sample.ratio(0) == 1.0
        assert sample.ratio(1) == 0.0
        assert sample.total.utilization == 1.0

    def test_one_provider_call_each_per_sample(
        self, mock_pct: MagicMock, mock_count: MagicMock
    ) -> None:
        mock_pct.side_effect = _cpu_percent([10.0] * 4, 10.0)
        sampler = Sampler()
        mock_pct.reset_mock()
        sampler.sample()
        percpu_calls = [c for c in mock_pct.call_args_list if c.kwargs.get("percpu")]
        assert mock_pct.call_count == 2
        assert len(percpu_calls) == 1

    def test_detected_core_count(self, mock_pct: MagicMock, mock_count: MagicMock) -> None:
        mock_pct.side_effect = _cpu_percent([0.0] * 4, 0.0)
        sampler = Sampler()
        assert sampler.core_count() == 4
        assert sampler.detected_core_count == 4

    def test_simulated_core_count(self, mock_pct: MagicMock, mock_count: MagicMock) -> None:
        mock_pct.side_effect = _cpu_percent([0.0] * 4, 0.0)
        sampler = Sampler(sim_core_count=24)
        assert sampler.core_count() == 24
        assert sampler.detected_core_count == 4
        # The override only affects layout, not what gets sampled
        assert len(sampler.sample()) == 4

    def test_cpu_count_unknown_falls_back(
        self, mock_pct: MagicMock, mock_count: MagicMock
    ) -> None:
        mock_count.return_value = None
        mock_pct.side_effect = _cpu_percent([0.0] * 6, 0.0)
        assert Sampler().core_count() == 6

    def test_negative_sim_count_rejected(
        self, mock_pct: MagicMock, mock_count: MagicMock
    ) -> None:
        mock_pct.side_effect = _cpu_percent([0.0] * 4, 0.0)
        with pytest.raises(ValueError):
            Sampler(sim_core_count=-1)

    def test_priming_failure_is_provider_error(
        self, mock_pct: MagicMock, mock_count: MagicMock
    ) -> None:
        mock_pct.side_effect = OSError("no /proc/stat")
        with pytest.raises(ProviderError):
            Sampler()

    def test_psutil_error_wrapped(self, mock_pct: MagicMock, mock_count: MagicMock) -> None:
        mock_pct.side_effect = _cpu_percent([0.0] * 4, 0.0)
        sampler = Sampler()
        mock_pct.side_effect = psutil.AccessDenied()
        with pytest.raises(ProviderError) as excinfo:
            sampler.sample()
        assert isinstance(excinfo.value.__cause__, psutil.AccessDenied)

    @pytest.mark.parametrize(
        ("per_core", "total"),
        [
            ([], 10.0),
            ([10.0, float("nan")], 10.0),
            ([10.0, "busy"], 10.0),
            ([10.0, 20.0], float("inf")),
            ([10.0, 20.0], None),
        ],
    )
    def test_malformed_data_rejected(
        self,
        mock_pct: MagicMock,
        mock_count: MagicMock,
        per_core: list[Any],
        total: Any,
    ) -> None:
        mock_pct.side_effect = _cpu_percent([0.0] * 4, 0.0)
        sampler = Sampler()
        mock_pct.side_effect = _cpu_percent(per_core, total)
        with pytest.raises(ProviderError):
            sampler.sample()

    def test_temperature_not_implemented(
        self, mock_pct: MagicMock, mock_count: MagicMock
    ) -> None:
        mock_pct.side_effect = _cpu_percent([0.0] * 4, 0.0)
        sampler = Sampler()
        assert sampler.supports_temperature is False
        with pytest.raises(NotImplementedError):
            sampler.temperature()
