"""
Data model shared by the TDS3000 driver and the waveform decoder.
"""

import csv
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidParameterError

# Number of acquisitions to average. 512 might only work for certain models.
VALID_AVERAGE_COUNTS = (1, 2, 4, 8, 16, 32, 64, 128, 256, 512)

CHANNEL_MIN = 1
CHANNEL_MAX = 4

VALID_DATA_WIDTHS = (1, 2)

# Empirical acquisition time per averaged sweep and channel, in ms.
ACQUISITION_TIME_PER_AVERAGE = 1200


class Resolution(Enum):
    """Horizontal resolution and the number of points it yields."""

    HIGH = "HIGH"
    LOW = "LOW"

    @property
    def sample_count(self) -> int:
        return 10000 if self is Resolution.HIGH else 500


class CurveEncoding(Enum):
    ASCII = "ASCII"
    BINARY = "BINARY"


class BusyStatus(Enum):
    READY = 0
    BUSY = 1


class AcquireStatus(Enum):
    """Outcome of an acquisition that did not raise."""

    DONE = "done"
    # Busy poll timed out, usually because there is no trigger. Retry.
    STILL_ACQUIRING = "still_acquiring"


class ResetStatus(Enum):
    """Outcome of a reset that did not raise."""

    SUCCESS = "success"
    STILL_BUSY = "still_busy"
    # REBOOT was sent. The session has to be re-opened.
    REBOOTED = "rebooted"


def validate_average_count(count) -> None:
    """
    Check that the number of acquisitions to average is a supported power of 2.

    Raises:
        InvalidParameterError: If count is not an int in VALID_AVERAGE_COUNTS.
    """
    if isinstance(count, bool) or not isinstance(count, int) or count not in VALID_AVERAGE_COUNTS:
        raise InvalidParameterError(
            f"Invalid average count {count!r}. Must be one of: {list(VALID_AVERAGE_COUNTS)}"
        )


def validate_channel(channel) -> None:
    """Raises InvalidParameterError unless channel is an int in [1, 4]."""
    if (
        isinstance(channel, bool)
        or not isinstance(channel, int)
        or not CHANNEL_MIN <= channel <= CHANNEL_MAX
    ):
        raise InvalidParameterError(
            f"Invalid channel {channel!r}. Must be one of: {list(range(CHANNEL_MIN, CHANNEL_MAX + 1))}"
        )


def acquisition_timeout_ms(average_count: int, channel_count: int) -> int:
    """
    Busy-poll budget for an acquisition.

    Linear in both inputs: 1200 ms per averaged sweep per channel.
    """
    return ACQUISITION_TIME_PER_AVERAGE * average_count * channel_count


def expected_curve_length(resolution: Resolution, data_width: int) -> int:
    """
    Number of bytes requested from the transport for a binary CURVE? reply.

    The reply is '#<x><yy..><data><terminator>'. The sizes are fixed per
    resolution and width and are not negotiated with the instrument.
    """
    if data_width not in VALID_DATA_WIDTHS:
        raise InvalidParameterError(f"Invalid data width {data_width!r}. Must be 1 or 2")
    if resolution is Resolution.HIGH:
        return 20008 if data_width == 2 else 10008
    return 1007 if data_width == 2 else 5006


@dataclass
class AcquisitionConfig:
    """
    Parameters of one acquisition request.

    Attributes:
        average_count: Number of acquisitions to average (power of 2, 1-512).
        resolution: Resolution.HIGH (10000 points) or Resolution.LOW (500 points).
        channels: Channels to acquire, in the order the results are wanted.
        encoding: Curve encoding the instrument is told to use.
        data_width: Bytes per sample for binary encoding (1 or 2).
    """

    average_count: int = 64
    resolution: Resolution = Resolution.HIGH
    channels: Sequence[int] = (1,)
    encoding: CurveEncoding = CurveEncoding.BINARY
    data_width: int = 2

    def validate(self) -> None:
        """Raises InvalidParameterError for any out-of-range setting."""
        validate_average_count(self.average_count)
        if not isinstance(self.resolution, Resolution):
            raise InvalidParameterError(f"Invalid resolution {self.resolution!r}")
        if not isinstance(self.encoding, CurveEncoding):
            raise InvalidParameterError(f"Invalid encoding {self.encoding!r}")
        if self.data_width not in VALID_DATA_WIDTHS:
            raise InvalidParameterError(
                f"Invalid data width {self.data_width!r}. Must be 1 or 2"
            )
        if self.channels is None or len(self.channels) == 0:
            raise InvalidParameterError("At least one channel is required")
        for channel in self.channels:
            validate_channel(channel)

    @property
    def poll_timeout_ms(self) -> int:
        return acquisition_timeout_ms(self.average_count, len(self.channels))

    @property
    def encoding_command(self) -> str:
        if self.encoding is CurveEncoding.ASCII:
            return "DATA:ENCDG ASCII"
        return f"DATA:ENCDG RIBINARY;WIDTH {self.data_width}"


@dataclass
class WaveForm:
    """
    Waveform of one channel and the settings it was acquired with.

    Instances are created by the caller and filled in place by
    Tektronix_TDS3000.acquire().

    Attributes:
        data_size: Number of points reported by the instrument.
        sample_interval: Time between points in seconds (WFMPRE:XINCR).
        gain: Vertical scale in volts per division (informational).
        trigger_delay: Before acquiring, the HORIZONTAL:DELAY:TIME to request
            in seconds (None keeps the instrument default). After acquiring,
            the time of the first point with the trigger instant at 0.
        samples: Amplitudes in volts.
        min: Smallest value in samples.
        max: Largest value in samples.
        channel: Source channel (1-4) once acquired.
    """

    data_size: int = 0
    sample_interval: float = 0.0
    gain: float = 0.0
    trigger_delay: Optional[float] = None
    samples: np.ndarray = field(default_factory=lambda: np.empty(0), repr=False)
    min: float = 0.0
    max: float = 0.0
    channel: Optional[int] = None

    def __len__(self) -> int:
        """Return number of points in waveform."""
        return len(self.samples)

    def time_axis(self) -> np.ndarray:
        """
        Time of each sample in seconds, the trigger instant being 0.

        Returns:
            numpy array of length data_size.
        """
        start = self.trigger_delay if self.trigger_delay is not None else 0.0
        return start + np.arange(len(self.samples)) * self.sample_interval


@dataclass(frozen=True)
class DecodedHeader:
    """Parsed '#<x><yy..>' prefix of a binary curve block."""

    declared_byte_count: int
    data_width: int
    payload_offset: int


@dataclass(frozen=True)
class DecodedWaveform:
    samples: np.ndarray
    min: float
    max: float

    def as_tuple(self) -> Tuple[np.ndarray, float, float]:
        return self.samples, self.min, self.max


def save_waveforms_csv(waveforms: Sequence[WaveForm], filename, max_points: Optional[int] = None) -> int:
    """
    Saves acquired waveforms to a single CSV file.

    The time column comes from the first waveform. All waveforms must have
    been acquired together (same resolution).

    Args:
        waveforms: Filled WaveForm objects.
        filename: Output filename (e.g., 'data.csv').
        max_points: Keep only the last max_points samples. If None, saves all.

    Returns:
        Number of data rows written.
    """
    if not waveforms:
        raise InvalidParameterError("No waveforms to save")
    sizes = {len(waveform) for waveform in waveforms}
    if len(sizes) != 1:
        raise InvalidParameterError(f"Waveforms differ in length: {sorted(sizes)}")

    times = waveforms[0].time_axis()
    columns = [waveform.samples for waveform in waveforms]
    if max_points is not None and max_points < len(times):
        times = times[-max_points:]
        columns = [column[-max_points:] for column in columns]

    with open(filename, "w", newline="") as csvfile:
        writer = csv.writer(csvfile)
        header = ["Time (s)"] + [
            f"CH{waveform.channel} Voltage (V)" if waveform.channel else f"Trace {i + 1} Voltage (V)"
            for i, waveform in enumerate(waveforms)
        ]
        writer.writerow(header)
        for i, t in enumerate(times):
            writer.writerow([t] + [column[i] for column in columns])
    return len(times)
