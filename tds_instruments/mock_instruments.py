"""
Mock transports for testing the TDS3000 driver without physical hardware.

MockTransport answers queries from a script and records every call.
SimulatedTDS3000 behaves like an instrument and synthesises curve data.

Usage:
    python -m tds_instruments.repl --mock
"""

import re

import numpy as np

from .src.device_manager import NI_VISA, Transport
from .src.errors import TransportError

# VI_ERROR_TMO
VISA_TIMEOUT = -1073807339


class MockTransport(Transport):
    """
    Scripted transport.

    Args:
        responses: Maps a query string to its reply. A list of replies is
            consumed one per query and its last element repeats. An Exception
            instance is raised instead of replied.
        binary_responses: Replies for read_bytes(), consumed in order.
        capabilities: VisaCapabilities reported to the driver.
    """

    def __init__(self, responses=None, binary_responses=None, capabilities=NI_VISA):
        self.responses = dict(responses or {})
        self.binary_responses = list(binary_responses or [])
        self.capabilities = capabilities
        self.calls = []
        self.timeout_ms = None
        self.connected = False

    @property
    def written(self):
        """Commands passed to write(), in order."""
        return [arg for method, arg in self.calls if method == "write"]

    @property
    def queried(self):
        """Commands passed to query(), in order."""
        return [arg for method, arg in self.calls if method == "query"]

    def count(self, command):
        """Number of times command was written."""
        return self.written.count(command)

    def connect(self):
        self.calls.append(("connect", None))
        self.connected = True

    def disconnect(self):
        self.calls.append(("disconnect", None))
        self.connected = False

    def write(self, command):
        self.calls.append(("write", command))

    def query(self, command):
        self.calls.append(("query", command))
        if command not in self.responses:
            raise TransportError(f"Timeout waiting for reply to {command!r}", status=VISA_TIMEOUT)
        reply = self.responses[command]
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if isinstance(reply, Exception):
            raise reply
        return str(reply).strip()

    def read_bytes(self, capacity_hint, expected_count):
        self.calls.append(("read_bytes", (capacity_hint, expected_count)))
        if not self.binary_responses:
            raise TransportError("Timeout waiting for binary data", status=VISA_TIMEOUT)
        reply = self.binary_responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def set_timeout(self, timeout_ms):
        self.calls.append(("set_timeout", timeout_ms))
        self.timeout_ms = timeout_ms

    def clear(self):
        self.calls.append(("clear", None))


class SimulatedTDS3000(MockTransport):
    """
    Simulated TDS3000 that understands the commands used by the driver.

    Each channel carries a 1 kHz sine of channel * 0.5 V amplitude with a
    channel dependent offset.

    Args:
        busy_polls: Number of BUSY? queries answered with 1 after a RUN or *RST.
        triggered: If False, an acquisition never finishes.
        capabilities: VisaCapabilities reported to the driver.
    """

    IDN = "TEKTRONIX,TDS 3014B,0,CF:91.1CT FV:v3.41 TDS3FFT:v1.00"
    FREQUENCY = 1000.0
    # Digitizer levels per vertical division
    LEVELS_PER_DIV = {1: 25.0, 2: 6400.0}

    def __init__(self, busy_polls=2, triggered=True, capabilities=NI_VISA):
        super().__init__(capabilities=capabilities)
        self.busy_polls = busy_polls
        self.triggered = triggered
        self.rebooted = False
        self._reset_state()

    def _reset_state(self):
        self.encoding = "RIBINARY"
        self.data_width = 1
        self.resolution = "HIGH"
        self.data_source = "CH1"
        self.horizontal_scale = 4.0e-4
        self.delay_time = 0.0
        self.vertical_scale = {channel: 0.5 for channel in range(1, 5)}
        self.running = False
        self._busy_remaining = 0

    @property
    def points(self):
        return 10000 if self.resolution == "HIGH" else 500

    @property
    def sample_interval(self):
        return self.horizontal_scale * 10 / self.points

    def _source_channel(self):
        return int(self.data_source[-1])

    def _y_mult(self):
        channel = self._source_channel()
        return self.vertical_scale[channel] / self.LEVELS_PER_DIV[self.data_width]

    def raw_values(self, channel=None):
        """Digitizer levels of the current data source."""
        channel = channel or self._source_channel()
        t = np.arange(self.points) * self.sample_interval
        volts = 0.5 * channel * np.sin(2 * np.pi * self.FREQUENCY * t) + 0.1 * channel
        levels = np.round(volts / self._y_mult())
        limit = 127 if self.data_width == 1 else 32767
        return np.clip(levels, -limit - 1, limit).astype(int)

    def write(self, command):
        super().write(command)
        for part in command.split(";"):
            self._apply(part.strip().upper())

    def _apply(self, part):
        if part == "*RST":
            self._reset_state()
            self._busy_remaining = self.busy_polls
        elif part == "REBOOT":
            self.rebooted = True
        elif part.startswith("DATA:ENCDG"):
            self.encoding = "ASCII" if "ASCI" in part else "RIBINARY"
        elif part.startswith("WIDTH"):
            self.data_width = int(part.split()[-1])
        elif part.startswith("HORIZONTAL:RESOLUTION"):
            self.resolution = part.split()[-1]
        elif part.startswith("HORIZONTAL:DELAY:TIME"):
            self.delay_time = float(part.split()[-1])
        elif part.startswith("DATA:SOURCE"):
            self.data_source = part.split()[-1]
        elif part in ("ACQUIRE:STATE RUN", "STATE RUN"):
            self.running = True
            self._busy_remaining = self.busy_polls
        elif part in ("ACQUIRE:STATE STOP", "STATE STOP"):
            self.running = False
            self._busy_remaining = 0
        else:
            match = re.match(r"CH(\d):SCALE\s+(\S+)", part)
            if match:
                self.vertical_scale[int(match.group(1))] = float(match.group(2))

    def _busy(self):
        if self.running and not self.triggered:
            return "1"
        if self._busy_remaining > 0:
            self._busy_remaining -= 1
            return "1"
        self.running = False
        return "0"

    def query(self, command):
        self.calls.append(("query", command))
        cmd = command.strip().upper()
        scale_match = re.match(r"CH(\d):SCALE\?", cmd)
        if cmd == "*IDN?":
            return self.IDN
        if cmd == "BUSY?":
            return self._busy()
        if cmd == "DATA:WIDTH?":
            return str(self.data_width)
        if scale_match:
            return f"{self.vertical_scale[int(scale_match.group(1))]:.1E}"
        if cmd == "HORIZONTAL:SCALE?":
            return f"{self.horizontal_scale:.1E}"
        if cmd == "WFMPRE:XINCR?":
            return f"{self.sample_interval:.6E}"
        if cmd == "WFMPRE:NR_PT?":
            return str(self.points)
        if cmd == "HORIZONTAL:DELAY:TIME?":
            return f"{self.delay_time:.6E}"
        if cmd == "WFMPRE:YMULT?":
            return f"{self._y_mult():.6E}"
        if cmd in ("WFMPRE:YZERO?", "WFMPRE:YOFF?"):
            return "0.0E+0"
        if cmd == "DATA:ENCDG?":
            return self.encoding
        if cmd == "CURVE?":
            return ",".join(str(v) for v in self.raw_values())
        raise TransportError(f"Timeout waiting for reply to {command!r}", status=VISA_TIMEOUT)

    def read_bytes(self, capacity_hint, expected_count):
        self.calls.append(("read_bytes", (capacity_hint, expected_count)))
        dtype = "i1" if self.data_width == 1 else ">i2"
        payload = self.raw_values().astype(dtype).tobytes()
        count = str(len(payload))
        return f"#{len(count)}{count}".encode("ascii") + payload + b"\n"
