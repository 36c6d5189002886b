"""Shared fixtures for the TDS3000 driver tests."""

import os
import sys

import numpy as np
import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tds_instruments import Tektronix_TDS3000  # noqa: E402
from tds_instruments.mock_instruments import MockTransport  # noqa: E402


class FakeClock:
    """Monotonic clock that advances by step seconds on every call."""

    def __init__(self, step=1.0):
        self.now = 0.0
        self.step = step
        self.calls = 0

    def __call__(self):
        self.calls += 1
        self.now += self.step
        return self.now


def binary_block(values, width=1, byte_order="big"):
    """Build a '#<x><yy..>' curve block with a trailing newline."""
    if width == 1:
        dtype = "i1"
    else:
        dtype = ">i2" if byte_order == "big" else "<i2"
    payload = np.asarray(values).astype(dtype).tobytes()
    count = str(len(payload))
    return f"#{len(count)}{count}".encode("ascii") + payload + b"\n"


def channel_responses(
    channel=1,
    points=500,
    width=1,
    encoding="RIBINARY",
    x_incr="8.0E-6",
    delay="0.0E+0",
    y_mult="2.0E-2",
    y_zero="0.0",
    y_off="0.0",
    scale="5.0E-1",
):
    """Replies to the settings queries issued for one channel."""
    return {
        "DATA:WIDTH?": str(width),
        f"CH{channel}:SCALE?": scale,
        "HORIZONTAL:SCALE?": "4.0E-4",
        "WFMPRE:XINCR?": x_incr,
        "WFMPRE:NR_PT?": str(points),
        "HORIZONTAL:DELAY:TIME?": delay,
        "WFMPRE:YMULT?": y_mult,
        "WFMPRE:YZERO?": y_zero,
        "WFMPRE:YOFF?": y_off,
        "DATA:ENCDG?": encoding,
    }


@pytest.fixture
def clock():
    return FakeClock(step=1.0)


@pytest.fixture
def transport():
    return MockTransport(responses={"BUSY?": "0"})


@pytest.fixture
def scope(transport, clock):
    return Tektronix_TDS3000(transport, clock=clock)
