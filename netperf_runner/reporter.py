"""
Harness-facing reporting for network tests.
"""

import asyncio
from typing import Protocol

from loguru import logger
from shared.types import DataPoint, ReportEntry, ReportLevel


class ChartSink(Protocol):
    """Receives live (x, y) data points while a test runs."""

    def add_datapoint(self, x: float, y: float) -> None: ...


class SeriesRecorder:
    """Chart sink that keeps every data point it is given."""

    def __init__(self) -> None:
        self.points: list[DataPoint] = []

    def add_datapoint(self, x: float, y: float) -> None:
        self.points.append(DataPoint(x=x, y=y))


class TestReporter:
    """
    Collects progress and report lines for a single test run.

    Every report call is mirrored to the log. ``done()`` marks the terminal
    state; calling it twice is a bug in the test and is logged as such.
    """

    __test__ = False

    def __init__(self, test_name: str) -> None:
        self.test_name = test_name
        self.entries: list[ReportEntry] = []
        self.progress_percent = 0.0
        self.done_count = 0
        self._done = asyncio.Event()

    @property
    def is_done(self) -> bool:
        return self._done.is_set()

    @property
    def has_errors(self) -> bool:
        return any(e.level in (ReportLevel.ERROR, ReportLevel.FATAL) for e in self.entries)

    def messages(self, level: ReportLevel) -> list[str]:
        return [e.message for e in self.entries if e.level is level]

    def set_progress(self, percent: float) -> None:
        self.progress_percent = max(0.0, min(100.0, percent))

    def report_info(self, message: str) -> None:
        self.entries.append(ReportEntry(level=ReportLevel.INFO, message=message))
        logger.info(f"[{self.test_name}] {message}")

    def report_success(self, message: str) -> None:
        self.entries.append(ReportEntry(level=ReportLevel.SUCCESS, message=message))
        logger.info(f"✅ [{self.test_name}] {message}")

    def report_error(self, message: str) -> None:
        self.entries.append(ReportEntry(level=ReportLevel.ERROR, message=message))
        logger.error(f"❌ [{self.test_name}] {message}")

    def report_fatal(self, message: str) -> None:
        self.entries.append(ReportEntry(level=ReportLevel.FATAL, message=message))
        logger.critical(f"💥 [{self.test_name}] {message}")

    def done(self) -> None:
        self.done_count += 1
        if self.done_count > 1:
            logger.warning(f"[{self.test_name}] done() called {self.done_count} times")
            return
        self.progress_percent = 100.0
        self._done.set()
        logger.debug(f"[{self.test_name}] done")

    async def wait_done(self) -> None:
        await self._done.wait()
