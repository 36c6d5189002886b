"""Abstract base class for oscilloscope drivers.

Each supported instrument family implements this interface in its own class,
for example tds_instruments.src.tektronix_tds3000.Tektronix_TDS3000.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .device_manager import Transport
from .waveform import BusyStatus, validate_average_count

logger = logging.getLogger(__name__)


class Oscilloscope(ABC):
    """Interface of a VISA oscilloscope driver.

    Args:
        transport: Connected (or connectable) Transport to the instrument.
        clock: Monotonic clock in seconds used for polling deadlines.
    """

    def __init__(self, transport: Transport, clock: Callable[[], float] = time.monotonic):
        self.transport = transport
        self._clock = clock

    def validate_average_count(self, count: int) -> None:
        """Raises InvalidParameterError unless count is a supported power of 2."""
        validate_average_count(count)

    @abstractmethod
    def get_busy_status(self) -> BusyStatus:
        """Read the busy status from the instrument once."""
        raise NotImplementedError

    def wait_for_ready(self, timeout_ms: float) -> BusyStatus:
        """Poll the busy status until the instrument is ready or timeout_ms passes.

        Polls without delay between queries. The instrument is queried at
        least once even for a zero timeout.

        Returns:
            BusyStatus.READY, or BusyStatus.BUSY if the deadline passed.
        """
        deadline = self._clock() + timeout_ms / 1000.0
        while True:
            status = self.get_busy_status()
            if status is BusyStatus.READY:
                return status
            if self._clock() >= deadline:
                logger.debug("Still busy after %d ms", timeout_ms)
                return status

    @abstractmethod
    def acquire(self, config, waveforms):
        """Acquire the channels of config into the caller's waveforms."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, average_count: Optional[int] = None, timeout_ms: Optional[int] = None):
        """Bring the instrument into a known state."""
        raise NotImplementedError

    def connect(self):
        self.transport.connect()

    def disconnect(self):
        self.transport.disconnect()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.disconnect()
