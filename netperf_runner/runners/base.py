"""
Base network test with common session lifecycle handling.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from loguru import logger
from shared.types import TestResult
from shared.utils import Clock, monotonic_ms

from ..reporter import TestReporter
from ..sessions.base import ChannelOptions, TransportSession

ResultT = TypeVar("ResultT", bound=TestResult)


class BaseNetworkTest(ABC, Generic[ResultT]):
    """
    Abstract base class for network tests.

    A test owns its session for the whole run: it establishes it, runs its own
    measurement loop, closes it exactly once and reports ``done()`` exactly once.
    A session that cannot be established is reported as fatal and the
    measurement loop never starts.
    """

    name: str = "network-test"

    def __init__(
        self,
        session: TransportSession,
        reporter: TestReporter,
        clock: Clock = monotonic_ms,
    ) -> None:
        self.session = session
        self.reporter = reporter
        self.clock = clock
        self._session_closed = False

    def channel_options(self) -> ChannelOptions:
        """Data channel settings this test needs."""
        return ChannelOptions()

    @abstractmethod
    async def measure(self) -> ResultT:
        """Run the measurement on an established session. Must be implemented by subclasses."""
        pass

    async def close_session(self) -> None:
        """Tear the session down, once."""
        if self._session_closed:
            return
        self._session_closed = True
        try:
            await self.session.close()
        except Exception as e:
            logger.warning(f"[{self.name}] Error while closing session: {e}")

    async def run(self) -> ResultT | None:
        """
        Establish the session and run the measurement.

        Returns:
            The test result, or None if the session could not be established
            or the measurement was aborted by an unexpected error
        """
        logger.info(f"🏁 Starting {self.name}")
        try:
            await self.session.establish(self.channel_options())
        except Exception as e:
            self.reporter.report_fatal(f"Failed to establish session: {e}")
            await self.close_session()
            self.reporter.done()
            return None

        result: ResultT | None = None
        try:
            result = await self.measure()
        except Exception as e:
            self.reporter.report_error(f"Test aborted: {e}")
        finally:
            await self.close_session()

        self.reporter.done()
        if result is None:
            return None
        logger.info(f"🏁 Finished {self.name}: {'passed' if result.passed else 'failed'}")
        return result
