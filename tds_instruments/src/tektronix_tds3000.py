# Tektronix TDS3000 Series
"""
Driver for the Tektronix TDS3000 Series Oscilloscope.
Instrument Type: Digital Phosphor Oscilloscope (DPO)

Acquires averaged waveforms through reference memories and decodes the curve
data into volts.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence

from .device_manager import Transport
from .errors import DecodeError, InvalidParameterError, WaveformMismatchError
from .oscilloscope import Oscilloscope
from .waveform import (
    AcquireStatus,
    AcquisitionConfig,
    BusyStatus,
    CurveEncoding,
    ResetStatus,
    Resolution,
    VALID_AVERAGE_COUNTS,
    VALID_DATA_WIDTHS,
    WaveForm,
    expected_curve_length,
)
from .waveform_decoder import decode

logger = logging.getLogger(__name__)


def acquire_mode_command(average_count: int) -> str:
    """Averaging mode, single sequence, acquisition stopped."""
    return f"ACQUIRE:MODE AVERAGE;STOPAFTER SEQUENCE;NUMAVG {average_count};STATE STOP"


class Tektronix_TDS3000(Oscilloscope):
    """
    Driver for Tektronix TDS3000 Series (TDS3012B, TDS3014B, TDS3054C, ...).

    Args:
        transport: Transport to the instrument (VisaTransport or a mock).
        average_count: Default number of acquisitions to average.
        resolution: Default horizontal resolution.
        clock: Monotonic clock in seconds used for polling deadlines.
    """

    VALID_AVERAGE_COUNTS = VALID_AVERAGE_COUNTS

    # Channel Mapping
    CHANNEL_MAP = {
        1: "CH1",
        2: "CH2",
        3: "CH3",
        4: "CH4",
    }
    CHANNEL_DEFAULT = 1

    IS_BUSY = "BUSY?"
    CURVE_ENCODING = "DATA:ENCDG RIBINARY;WIDTH 2"
    # RIBINARY: signed, most significant byte first
    BYTE_ORDER = "big"

    # Receive buffer size in bytes
    BUFFER_SIZE = 0x20000
    # Default communication and ready-check timeout in ms
    TIMEOUT = 5000
    # Busy-poll budgets of reset() in ms, independent of the caller's timeout
    RESET_POLL_TIMEOUT = 6000
    RECONFIGURE_POLL_TIMEOUT = 10000

    def __init__(
        self,
        transport: Transport,
        average_count: int = 64,
        resolution: Resolution = Resolution.HIGH,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(transport, clock=clock)
        self.validate_average_count(average_count)
        self.average_count = average_count
        self.resolution = resolution

    @property
    def capabilities(self):
        return self.transport.capabilities

    # ==========================================
    # STATUS
    # ==========================================

    def get_busy_status(self) -> BusyStatus:
        """
        Query BUSY? once.

        Returns:
            BusyStatus.READY for a reply of 0, BusyStatus.BUSY otherwise.
        """
        reply = self.transport.query(self.IS_BUSY)
        # Tolerate a ':BUSY 0' reply while HEADER is still ON after *RST.
        tokens = reply.split()
        if tokens and tokens[-1] == "0":
            return BusyStatus.READY
        return BusyStatus.BUSY

    def stop(self):
        """Stop acquisition."""
        self.transport.write("ACQUIRE:STATE STOP")

    # ==========================================
    # RESET & RECOVERY
    # ==========================================

    def _clear_status(self):
        if self.capabilities.supports_device_clear:
            self.transport.clear()
        else:
            self.transport.write("*CLS")

    def reset(self, average_count: Optional[int] = None, timeout_ms: Optional[int] = None) -> ResetStatus:
        """
        Reset the instrument and configure it for averaged acquisitions.

        Escalates to REBOOT if the instrument does not become ready. After a
        reboot the session has to be re-opened.

        Args:
            average_count: Number of acquisitions to average (default: current).
            timeout_ms: Communication timeout to apply (default: TIMEOUT).

        Returns:
            ResetStatus.SUCCESS, ResetStatus.STILL_BUSY if the instrument did
            not finish *RST in time, or ResetStatus.REBOOTED.

        Raises:
            InvalidParameterError: If average_count is invalid (nothing is sent).
            TransportError: If communication fails.
        """
        if average_count is None:
            average_count = self.average_count
        if timeout_ms is None:
            timeout_ms = self.TIMEOUT
        self.validate_average_count(average_count)

        logger.warning("Resetting instrument...")
        self.transport.write("*RST")
        if self.wait_for_ready(self.RESET_POLL_TIMEOUT) is BusyStatus.BUSY:
            logger.error("Instrument still busy %d ms after *RST", self.RESET_POLL_TIMEOUT)
            return ResetStatus.STILL_BUSY

        self._clear_status()
        self.transport.set_timeout(timeout_ms)
        self.transport.write(self.CURVE_ENCODING)
        self.transport.write("HORIZONTAL:TRIGGER:POSITION 0")
        self.transport.write("TRIGGER:A:SETLEVEL")
        self.average_count = average_count

        self.transport.write(acquire_mode_command(average_count))
        if self.wait_for_ready(self.RECONFIGURE_POLL_TIMEOUT) is BusyStatus.READY:
            logger.warning("Finished resetting instrument.")
            return ResetStatus.SUCCESS

        # Polling timed out, try to stop the acquisition.
        self.transport.write("*OPC")
        self.stop()
        if self.get_busy_status() is BusyStatus.READY:
            logger.warning("Finished resetting instrument.")
            return ResetStatus.SUCCESS

        logger.warning("Finished resetting instrument.")
        logger.warning("Rebooting instrument...")
        self.transport.write("REBOOT")
        return ResetStatus.REBOOTED

    # ==========================================
    # ACQUISITION
    # ==========================================

    def _configure(self, config: AcquisitionConfig, trigger_delay: Optional[float]):
        # The mode has to be set before the other acquisition settings.
        self.transport.write(acquire_mode_command(config.average_count))
        self.transport.write(config.encoding_command)
        self.transport.write(f"ACQUIRE:NUMAVG {config.average_count}")
        self.transport.write(f"HORIZONTAL:RESOLUTION {config.resolution.value}")
        if trigger_delay is not None:
            self.transport.write(f"HORIZONTAL:DELAY:TIME {trigger_delay:E}")
            self.transport.write("HORIZONTAL:DELAY:STATE ON")
        self.transport.write(f"DATA:START 1;STOP {config.resolution.sample_count}")
        self.transport.write("HEADER OFF")

    def _query_number(self, command: str, channel: int, cast=float):
        response = self.transport.query(command)
        try:
            return cast(response)
        except ValueError as exc:
            raise WaveformMismatchError(
                f"CH{channel}: invalid reply {response!r} to {command}", channel=channel
            ) from exc

    def _fetch_channel(self, channel: int, waveform: WaveForm, config: AcquisitionConfig):
        scpi_source = self.CHANNEL_MAP[channel]
        ref = f"REF{channel}"

        # Snapshot the channel into its reference memory and read from there.
        self.transport.write(f"DATA:SOURCE {scpi_source}")
        self.transport.write(f"SAVE:WAVEFORM {scpi_source},{ref}")
        self.transport.write(f"SELECT:{ref} ON")
        self.transport.write(f"DATA:SOURCE {ref}")

        try:
            self._read_channel(channel, waveform, config)
        except WaveformMismatchError:
            self.transport.write(f"SELECT:{ref} OFF")
            raise
        self.transport.write(f"SELECT:{ref} OFF")

    def _read_channel(self, channel: int, waveform: WaveForm, config: AcquisitionConfig):
        data_width = self._query_number("DATA:WIDTH?", channel, int)
        gain = self._query_number(f"{self.CHANNEL_MAP[channel]}:SCALE?", channel)
        # Horizontal scale is not needed, the sample interval is.
        self.transport.query("HORIZONTAL:SCALE?")
        sample_interval = self._query_number("WFMPRE:XINCR?", channel)

        data_size = self._query_number("WFMPRE:NR_PT?", channel, int)
        expected_size = config.resolution.sample_count
        if data_size != expected_size:
            raise WaveformMismatchError(
                f"CH{channel}: instrument reports {data_size} points, expected {expected_size}",
                channel=channel,
            )

        # DELAY:TIME is the trigger offset from the center of the screen,
        # which is half the total time of the trace.
        reported_delay = self._query_number("HORIZONTAL:DELAY:TIME?", channel)
        trigger_delay = reported_delay - data_size * sample_interval / 2.0

        y_mult = self._query_number("WFMPRE:YMULT?", channel)
        y_zero = self._query_number("WFMPRE:YZERO?", channel)
        y_off = self._query_number("WFMPRE:YOFF?", channel)

        encoding_reply = self.transport.query("DATA:ENCDG?")
        if encoding_reply.upper().startswith("ASCI"):
            encoding = CurveEncoding.ASCII
            raw = self.transport.query("CURVE?")
        else:
            encoding = CurveEncoding.BINARY
            if data_width not in VALID_DATA_WIDTHS:
                raise WaveformMismatchError(
                    f"CH{channel}: unsupported data width {data_width}", channel=channel
                )
            self.transport.write("CURVE?")
            raw = self.transport.read_bytes(
                self.BUFFER_SIZE, expected_curve_length(config.resolution, data_width)
            )

        try:
            decoded = decode(
                raw, encoding, data_size, data_width, y_mult, y_zero, y_off, self.BYTE_ORDER
            )
        except DecodeError as exc:
            raise WaveformMismatchError(f"CH{channel}: {exc}", channel=channel) from exc

        waveform.channel = channel
        waveform.data_size = data_size
        waveform.gain = gain
        waveform.sample_interval = sample_interval
        waveform.trigger_delay = trigger_delay
        waveform.samples = decoded.samples
        waveform.min = decoded.min
        waveform.max = decoded.max
        logger.debug(
            "CH%d: %d points, %.6g V to %.6g V", channel, data_size, decoded.min, decoded.max
        )

    def acquire(self, config: AcquisitionConfig, waveforms: Sequence[WaveForm]) -> AcquireStatus:
        """
        Acquire averaged waveforms of one or more channels.

        waveforms[i] receives config.channels[i]. The trigger delay set on
        waveforms[0] (if any) is applied before the acquisition.

        Args:
            config: Acquisition parameters.
            waveforms: One caller-owned WaveForm per requested channel.

        Returns:
            AcquireStatus.DONE, or AcquireStatus.STILL_ACQUIRING if the
            instrument stayed busy (e.g. no trigger). Retrying is up to the caller.

        Raises:
            InvalidParameterError: Before any I/O, for invalid parameters.
            TransportError: If communication fails.
            WaveformMismatchError: If the instrument returns inconsistent data.
        """
        config.validate()
        if waveforms is None or len(waveforms) != len(config.channels):
            raise InvalidParameterError(
                f"Need one waveform per channel: {len(config.channels)} channels, "
                f"{0 if waveforms is None else len(waveforms)} waveforms"
            )
        self.average_count = config.average_count
        self.resolution = config.resolution

        if self.wait_for_ready(self.TIMEOUT) is BusyStatus.BUSY:
            logger.warning("Instrument is busy.")
            return AcquireStatus.STILL_ACQUIRING

        self._configure(config, waveforms[0].trigger_delay)

        self.transport.write("ACQUIRE:STATE RUN")
        logger.info("Acquiring waveform...")
        timeout_ms = config.poll_timeout_ms
        if self.wait_for_ready(timeout_ms) is BusyStatus.BUSY:
            # Usually "Single Seq" is on or there is no trigger.
            logger.warning("Acquisition not finished after %d ms", timeout_ms)
            return AcquireStatus.STILL_ACQUIRING

        for channel, waveform in zip(config.channels, waveforms):
            self._fetch_channel(channel, waveform, config)

        logger.info("Acquisition finished successfully.")
        return AcquireStatus.DONE

    def acquire_channel(
        self,
        waveform: WaveForm,
        average_count: Optional[int] = None,
        channel: int = CHANNEL_DEFAULT,
        resolution: Optional[Resolution] = None,
    ) -> AcquireStatus:
        """Acquire a single channel with the driver's default settings."""
        config = AcquisitionConfig(
            average_count=self.average_count if average_count is None else average_count,
            resolution=self.resolution if resolution is None else resolution,
            channels=(channel,),
        )
        return self.acquire(config, [waveform])

    def acquire_waveforms(self, config: AcquisitionConfig) -> List[WaveForm]:
        """
        Acquire config.channels into newly created WaveForm objects.

        Returns:
            List of WaveForm, empty if the instrument was still acquiring.
        """
        waveforms = [WaveForm() for _ in config.channels]
        if self.acquire(config, waveforms) is AcquireStatus.STILL_ACQUIRING:
            return []
        return waveforms
