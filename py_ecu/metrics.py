"""Conversion usage metrics.

`ConversionMetrics` counts conversions per ``from -> to`` pair and per category, counts errors by
exception type and accumulates timing. `get_metrics()` returns an immutable `MetricsSnapshot`.
All counters sit behind one lock, so a single collector may be shared by every thread.

Examples:
    >>> metrics = ConversionMetrics()
    >>> with metrics.measure('km', 'm', UnitCategory.LENGTH):
    ...     result = 1000.0
    >>> snapshot = metrics.get_metrics()
    >>> snapshot.total_conversions, snapshot.conversions_by_category
    (1, {'length': 1})
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Generator, List, NamedTuple, Optional, Tuple

from py_ecu.definitions import UnitCategory
from py_ecu.logger import logger

__all__ = (
    'ConversionPair',
    'MetricsSnapshot',
    'ConversionMetrics',
    'default_metrics',
    'TOP_CONVERSIONS',
)

TOP_CONVERSIONS: int = 10
OTHER_CATEGORY = 'other'

Clock = Callable[[], float]


class ConversionPair(NamedTuple):
    """Usage of one ``from -> to`` pair. Times are in seconds."""

    from_unit: str
    to_unit: str
    count: int
    average_time: float


class MetricsSnapshot(NamedTuple):
    """Point-in-time copy of the counters. Times are in seconds."""

    total_conversions: int
    successful_conversions: int
    failed_conversions: int
    average_conversion_time: float
    most_used_conversions: Tuple[ConversionPair, ...]
    errors_by_type: Dict[str, int]
    conversions_by_category: Dict[str, int]

    def format(self) -> str:
        """Multi-line human-readable report."""
        lines = [
            "=== Conversion Metrics ===",
            f"Total conversions: {self.total_conversions}",
            f"Successful: {self.successful_conversions}",
            f"Failed: {self.failed_conversions}",
            f"Average time: {self.average_conversion_time * 1e6:.1f}us",
            "",
            f"Top {TOP_CONVERSIONS} Most Used Conversions:",
        ]
        for index, pair in enumerate(self.most_used_conversions, 1):
            lines.append(f"  {index}. {pair.from_unit} -> {pair.to_unit}: {pair.count} times "
                         f"(avg: {pair.average_time * 1e6:.1f}us)")
        if self.errors_by_type:
            lines += ["", "Errors by Type:"]
            lines += [f"  {name}: {count}" for name, count in self.errors_by_type.items()]
        lines += ["", "Conversions by Category:"]
        lines += [f"  {name}: {count}" for name, count in self.conversions_by_category.items()]
        return "\n".join(lines)


class ConversionMetrics:
    """Thread-safe collector of conversion counts, errors and timings."""

    __slots__ = ('_clock', '_lock', '_pair_counts', '_pair_times', '_errors', '_categories',
                 '_total', '_successful', '_failed', '_total_time')

    def __init__(self, clock: Clock = time.perf_counter):
        self._clock = clock
        self._lock = threading.Lock()
        self._pair_counts: Dict[Tuple[str, str], int] = {}
        self._pair_times: Dict[Tuple[str, str], float] = {}
        self._errors: Dict[str, int] = {}
        self._categories: Dict[str, int] = {}
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._total_time = 0.0

    def record_conversion(self, from_unit: str, to_unit: str, duration: float, success: bool = True,
                          category: Optional[UnitCategory] = None) -> None:
        """Count one conversion of `duration` seconds. An unknown `category` is counted as ``other``."""
        pair = (from_unit, to_unit)
        category_name = category.value if category is not None else OTHER_CATEGORY
        with self._lock:
            self._total += 1
            if success:
                self._successful += 1
            else:
                self._failed += 1
            self._pair_counts[pair] = self._pair_counts.get(pair, 0) + 1
            self._pair_times[pair] = self._pair_times.get(pair, 0.0) + duration
            self._total_time += duration
            self._categories[category_name] = self._categories.get(category_name, 0) + 1

    def record_error(self, from_unit: str, to_unit: str, error: BaseException) -> None:
        """Count `error` by its type name. The failed conversion itself is counted by `record_conversion`."""
        name = type(error).__name__
        with self._lock:
            self._errors[name] = self._errors.get(name, 0) + 1
        logger.debug(f"Conversion {from_unit} -> {to_unit} failed: {name}")

    @contextmanager
    def measure(self, from_unit: str, to_unit: str,
                category: Optional[UnitCategory] = None) -> Generator[None, None, None]:
        """Time the enclosed conversion and record it. Exceptions are recorded and re-raised."""
        start = self._clock()
        try:
            yield
        except Exception as e:
            self.record_conversion(from_unit, to_unit, self._clock() - start, False, category)
            self.record_error(from_unit, to_unit, e)
            raise
        self.record_conversion(from_unit, to_unit, self._clock() - start, True, category)

    def get_metrics(self) -> MetricsSnapshot:
        with self._lock:
            ranked = sorted(self._pair_counts.items(), key=lambda item: item[1], reverse=True)
            most_used: List[ConversionPair] = [
                ConversionPair(pair[0], pair[1], count, self._pair_times[pair] / count)
                for pair, count in ranked[:TOP_CONVERSIONS]
            ]
            return MetricsSnapshot(
                total_conversions=self._total,
                successful_conversions=self._successful,
                failed_conversions=self._failed,
                average_conversion_time=self._total_time / self._total if self._total else 0.0,
                most_used_conversions=tuple(most_used),
                errors_by_type=dict(self._errors),
                conversions_by_category=dict(self._categories),
            )

    def reset(self) -> None:
        with self._lock:
            self._pair_counts.clear()
            self._pair_times.clear()
            self._errors.clear()
            self._categories.clear()
            self._total = self._successful = self._failed = 0
            self._total_time = 0.0

    def report(self, level: int = logging.INFO) -> None:
        """Write the formatted snapshot to the library logger."""
        logger.log(level, self.get_metrics().format())

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self._total} conversions>"


_default_metrics: Optional[ConversionMetrics] = None
_default_metrics_lock = threading.Lock()


def default_metrics() -> ConversionMetrics:
    """Process-wide collector, created on first use."""
    global _default_metrics
    with _default_metrics_lock:
        if _default_metrics is None:
            _default_metrics = ConversionMetrics()
        return _default_metrics
