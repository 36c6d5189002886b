"""
Transport layer between the oscilloscope drivers and the instrument.

Transport is the command/response port the drivers talk to. VisaTransport
implements it on top of PyVISA; mock_instruments.MockTransport implements it
for tests and offline use.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import pyvisa

from .errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisaCapabilities:
    """
    What the VISA library behind a session can do.

    Attributes:
        name: Human readable library name.
        visa_library: Argument for pyvisa.ResourceManager ("" = system default,
            "@py" = pyvisa-py).
        max_read_size: Largest single read the library supports, in bytes.
        supports_device_clear: Whether viClear works. When it does not, the
            drivers fall back to the *CLS command.
    """

    name: str = "NI-VISA"
    visa_library: str = ""
    max_read_size: int = 0x20000
    supports_device_clear: bool = True


NI_VISA = VisaCapabilities()
PYVISA_PY = VisaCapabilities(name="pyvisa-py", visa_library="@py")
# libreVisa supports only a buffer size of 12 kB.
LIBRE_VISA = VisaCapabilities(
    name="libreVisa", max_read_size=12 * 1024, supports_device_clear=False
)


class Transport(ABC):
    """Synchronous command/response channel to one instrument."""

    capabilities: VisaCapabilities = NI_VISA

    @abstractmethod
    def write(self, command: str) -> None:
        """Send a command without waiting for a response."""
        raise NotImplementedError

    @abstractmethod
    def query(self, command: str) -> str:
        """Send a command and return the stripped response."""
        raise NotImplementedError

    @abstractmethod
    def read_bytes(self, capacity_hint: int, expected_count: int) -> bytes:
        """
        Read a raw binary response.

        Args:
            capacity_hint: Receive buffer size in bytes.
            expected_count: Number of bytes the response should have.
        """
        raise NotImplementedError

    @abstractmethod
    def set_timeout(self, timeout_ms: int) -> None:
        """Set the communication timeout in milliseconds."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Clear the device (VISA viClear)."""
        raise NotImplementedError

    def connect(self):
        pass

    def disconnect(self):
        pass


class VisaTransport(Transport):
    """
    Transport over a PyVISA instrument session.

    Every pyvisa.VisaIOError is re-raised as TransportError carrying the VISA
    status code.
    """

    def __init__(self, resource_name, capabilities: VisaCapabilities = NI_VISA, timeout_ms=5000):
        self.resource_name = resource_name
        self.capabilities = capabilities
        self.timeout_ms = timeout_ms
        self.rm = None
        self.instrument = None

    def connect(self):
        """Connects to the instrument."""
        try:
            if self.rm is None:
                self.rm = pyvisa.ResourceManager(self.capabilities.visa_library)
            self.instrument = self.rm.open_resource(self.resource_name)
            self.instrument.timeout = self.timeout_ms
            self.instrument.read_termination = "\n"
            self.instrument.write_termination = "\n"
            logger.info("Connected to %s (%s)", self.resource_name, self.capabilities.name)
        except pyvisa.VisaIOError as e:
            logger.error("Failed to connect to %s: %s", self.resource_name, e)
            raise TransportError(
                f"Failed to connect to {self.resource_name}: {e}", status=e.error_code
            ) from e

    def disconnect(self):
        """Disconnects from the instrument."""
        if self.instrument:
            self.instrument.close()
            self.instrument = None
            logger.info("Disconnected from %s", self.resource_name)

    def _require_instrument(self):
        if self.instrument is None:
            raise TransportError("Instrument not connected.")
        return self.instrument

    def write(self, command):
        instrument = self._require_instrument()
        try:
            instrument.write(command)
        except pyvisa.VisaIOError as e:
            raise TransportError(f"write {command!r} failed: {e}", status=e.error_code) from e
        logger.debug("Sent command: %s", command)

    def query(self, command):
        instrument = self._require_instrument()
        try:
            response = instrument.query(command)
        except pyvisa.VisaIOError as e:
            raise TransportError(f"query {command!r} failed: {e}", status=e.error_code) from e
        logger.debug("Query %s -> %s", command, response.strip())
        return response.strip()

    def read_bytes(self, capacity_hint, expected_count):
        """
        Read one binary response up to the END indicator.

        Term-char detection is off during the read, so 0x0A bytes inside the
        payload do not end it. The chunk size is bounded by the library's
        maximum read size. A response whose length differs from expected_count
        is returned as is; validating the block is the decoder's job.
        """
        instrument = self._require_instrument()
        chunk_size = min(capacity_hint, self.capabilities.max_read_size)
        old_termination = instrument.read_termination
        instrument.read_termination = None
        try:
            data = instrument.read_raw(chunk_size)
        except pyvisa.VisaIOError as e:
            raise TransportError(f"binary read failed: {e}", status=e.error_code) from e
        finally:
            instrument.read_termination = old_termination
        if len(data) != expected_count:
            logger.debug("Read %d bytes, expected %d", len(data), expected_count)
        return data

    def set_timeout(self, timeout_ms):
        instrument = self._require_instrument()
        self.timeout_ms = timeout_ms
        instrument.timeout = timeout_ms

    def clear(self):
        instrument = self._require_instrument()
        try:
            instrument.clear()
        except pyvisa.VisaIOError as e:
            raise TransportError(f"device clear failed: {e}", status=e.error_code) from e
