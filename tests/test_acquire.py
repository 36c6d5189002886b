import numpy as np
import pytest

from conftest import FakeClock, binary_block, channel_responses
from tds_instruments import (
    AcquireStatus,
    AcquisitionConfig,
    BadHeaderError,
    BusyStatus,
    CurveEncoding,
    InvalidParameterError,
    LengthMismatchError,
    Resolution,
    Tektronix_TDS3000,
    TransportError,
    WaveForm,
    WaveformMismatchError,
)
from tds_instruments.mock_instruments import VISA_TIMEOUT, MockTransport

LOW_BINARY = AcquisitionConfig(
    average_count=4, resolution=Resolution.LOW, channels=(1,), data_width=1
)


def make_scope(responses, binary=None, clock=None):
    transport = MockTransport(responses=responses, binary_responses=binary)
    return Tektronix_TDS3000(transport, clock=clock or FakeClock()), transport


def ramp(points=500):
    return (np.arange(points) % 200) - 100


# ==========================================
# PARAMETER VALIDATION
# ==========================================


@pytest.mark.parametrize("channel", [0, 5, -1, 9])
def test_invalid_channel_sends_nothing(channel):
    scope, transport = make_scope({"BUSY?": "0"})
    config = AcquisitionConfig(average_count=1, channels=(1, channel))
    with pytest.raises(InvalidParameterError):
        scope.acquire(config, [WaveForm(), WaveForm()])
    assert transport.calls == []


def test_invalid_average_count_sends_nothing():
    scope, transport = make_scope({"BUSY?": "0"})
    with pytest.raises(InvalidParameterError):
        scope.acquire(AcquisitionConfig(average_count=48), [WaveForm()])
    assert transport.calls == []


@pytest.mark.parametrize("waveforms", [None, [], [WaveForm(), WaveForm()]])
def test_waveform_count_must_match_channels(waveforms):
    scope, transport = make_scope({"BUSY?": "0"})
    with pytest.raises(InvalidParameterError):
        scope.acquire(AcquisitionConfig(average_count=1, channels=(1,)), waveforms)
    assert transport.calls == []


# ==========================================
# BUSY POLLING
# ==========================================


def test_busy_status_parsing():
    scope, _ = make_scope({"BUSY?": ["0", "1", ":BUSY 0", "2", ""]})
    assert scope.get_busy_status() is BusyStatus.READY
    assert scope.get_busy_status() is BusyStatus.BUSY
    assert scope.get_busy_status() is BusyStatus.READY
    assert scope.get_busy_status() is BusyStatus.BUSY
    assert scope.get_busy_status() is BusyStatus.BUSY


def test_wait_for_ready_is_bounded_by_wall_clock():
    scope, transport = make_scope({"BUSY?": "1"}, clock=FakeClock(step=1.0))
    assert scope.wait_for_ready(5000) is BusyStatus.BUSY
    assert transport.queried.count("BUSY?") == 5


def test_wait_for_ready_returns_as_soon_as_ready():
    scope, transport = make_scope({"BUSY?": ["1", "1", "0", "1"]})
    assert scope.wait_for_ready(60000) is BusyStatus.READY
    assert transport.queried.count("BUSY?") == 3


def test_wait_for_ready_polls_at_least_once():
    scope, transport = make_scope({"BUSY?": "0"})
    assert scope.wait_for_ready(0) is BusyStatus.READY
    assert transport.queried == ["BUSY?"]


def test_busy_before_configuring_returns_still_acquiring():
    scope, transport = make_scope({"BUSY?": "1"})
    status = scope.acquire(AcquisitionConfig(average_count=1), [WaveForm()])
    assert status is AcquireStatus.STILL_ACQUIRING
    assert transport.written == []


def test_no_trigger_returns_still_acquiring():
    scope, transport = make_scope({"BUSY?": ["0", "1"]}, clock=FakeClock(step=0.25))
    waveform = WaveForm()
    status = scope.acquire(AcquisitionConfig(average_count=1, channels=(1,)), [waveform])
    assert status is AcquireStatus.STILL_ACQUIRING
    assert "ACQUIRE:STATE RUN" in transport.written
    assert not any(cmd.startswith("DATA:SOURCE") for cmd in transport.written)
    assert waveform.data_size == 0
    # One ready check, then 1200 ms polled in steps of 250 ms
    assert transport.queried.count("BUSY?") == 1 + 5


@pytest.mark.parametrize("count, channels, polls", [(1, (1,), 5), (2, (1,), 10), (1, (1, 2), 10)])
def test_poll_budget_scales_with_average_count_and_channels(count, channels, polls):
    scope, transport = make_scope({"BUSY?": ["0", "1"]}, clock=FakeClock(step=0.25))
    waveforms = [WaveForm() for _ in channels]
    config = AcquisitionConfig(average_count=count, channels=channels)
    assert scope.acquire(config, waveforms) is AcquireStatus.STILL_ACQUIRING
    assert transport.queried.count("BUSY?") == 1 + polls


# ==========================================
# FULL ACQUISITION
# ==========================================


def test_acquire_binary_width_one():
    values = ramp()
    responses = {"BUSY?": "0", **channel_responses(channel=1, width=1)}
    scope, transport = make_scope(responses, [binary_block(values, width=1)])
    waveform = WaveForm()

    status = scope.acquire(LOW_BINARY, [waveform])

    assert status is AcquireStatus.DONE
    assert waveform.channel == 1
    assert waveform.data_size == 500
    assert len(waveform) == 500
    assert waveform.gain == pytest.approx(0.5)
    assert waveform.sample_interval == pytest.approx(8.0e-6)
    np.testing.assert_allclose(waveform.samples, values * 0.02)
    assert waveform.min == pytest.approx(-2.0)
    assert waveform.max == pytest.approx(1.98)
    assert waveform.min <= waveform.samples.min()
    assert waveform.max >= waveform.samples.max()
    # Delay is re-centred on the trigger: 0 - 500 * 8 us / 2
    assert waveform.trigger_delay == pytest.approx(-2.0e-3)


def test_acquire_command_sequence():
    responses = {"BUSY?": "0", **channel_responses(channel=1, width=1)}
    scope, transport = make_scope(responses, [binary_block(ramp(), width=1)])

    scope.acquire(LOW_BINARY, [WaveForm()])

    assert transport.written == [
        "ACQUIRE:MODE AVERAGE;STOPAFTER SEQUENCE;NUMAVG 4;STATE STOP",
        "DATA:ENCDG RIBINARY;WIDTH 1",
        "ACQUIRE:NUMAVG 4",
        "HORIZONTAL:RESOLUTION LOW",
        "DATA:START 1;STOP 500",
        "HEADER OFF",
        "ACQUIRE:STATE RUN",
        "DATA:SOURCE CH1",
        "SAVE:WAVEFORM CH1,REF1",
        "SELECT:REF1 ON",
        "DATA:SOURCE REF1",
        "CURVE?",
        "SELECT:REF1 OFF",
    ]
    assert transport.queried == [
        "BUSY?",
        "BUSY?",
        "DATA:WIDTH?",
        "CH1:SCALE?",
        "HORIZONTAL:SCALE?",
        "WFMPRE:XINCR?",
        "WFMPRE:NR_PT?",
        "HORIZONTAL:DELAY:TIME?",
        "WFMPRE:YMULT?",
        "WFMPRE:YZERO?",
        "WFMPRE:YOFF?",
        "DATA:ENCDG?",
    ]


@pytest.mark.parametrize(
    "resolution, width, expected",
    [
        (Resolution.HIGH, 2, 20008),
        (Resolution.HIGH, 1, 10008),
        (Resolution.LOW, 2, 1007),
        (Resolution.LOW, 1, 5006),
    ],
)
def test_binary_read_is_sized_by_resolution_and_width(resolution, width, expected):
    points = resolution.sample_count
    responses = {"BUSY?": "0", **channel_responses(points=points, width=width)}
    block = binary_block(np.zeros(points), width=width)
    scope, transport = make_scope(responses, [block])
    config = AcquisitionConfig(average_count=1, resolution=resolution, data_width=width)

    assert scope.acquire(config, [WaveForm()]) is AcquireStatus.DONE
    reads = [arg for method, arg in transport.calls if method == "read_bytes"]
    assert reads == [(Tektronix_TDS3000.BUFFER_SIZE, expected)]


def test_trigger_delay_is_applied_from_first_waveform():
    responses = {"BUSY?": "0", **channel_responses(width=1, delay="1.0E-3")}
    scope, transport = make_scope(responses, [binary_block(ramp(), width=1)])
    waveform = WaveForm(trigger_delay=1.0e-3)

    scope.acquire(LOW_BINARY, [waveform])

    written = transport.written
    resolution_index = written.index("HORIZONTAL:RESOLUTION LOW")
    assert written[resolution_index + 1] == "HORIZONTAL:DELAY:TIME 1.000000E-03"
    assert written[resolution_index + 2] == "HORIZONTAL:DELAY:STATE ON"
    assert waveform.trigger_delay == pytest.approx(1.0e-3 - 500 * 8.0e-6 / 2)


def test_no_delay_command_without_trigger_delay():
    responses = {"BUSY?": "0", **channel_responses(width=1)}
    scope, transport = make_scope(responses, [binary_block(ramp(), width=1)])
    scope.acquire(LOW_BINARY, [WaveForm()])
    assert not any(cmd.startswith("HORIZONTAL:DELAY") for cmd in transport.written)


def test_acquire_ascii_with_affine_scaling():
    values = ramp()
    responses = {
        "BUSY?": "0",
        **channel_responses(encoding="ASCII", y_mult="0.5", y_zero="1.0", y_off="10.0"),
        "CURVE?": ",".join(str(v) for v in values),
    }
    scope, transport = make_scope(responses)
    waveform = WaveForm()
    config = AcquisitionConfig(
        average_count=1, resolution=Resolution.LOW, encoding=CurveEncoding.ASCII
    )

    assert scope.acquire(config, [waveform]) is AcquireStatus.DONE
    assert "DATA:ENCDG ASCII" in transport.written
    assert "CURVE?" in transport.queried
    np.testing.assert_allclose(waveform.samples, (values - 10.0) * 0.5 + 1.0)
    assert waveform.min == pytest.approx((-100 - 10.0) * 0.5 + 1.0)


def test_waveforms_are_filled_in_request_order():
    responses = {
        "BUSY?": "0",
        **channel_responses(channel=3, width=1, scale="1.0E+0"),
        "CH1:SCALE?": "2.0E-1",
    }
    blocks = [binary_block(np.full(500, 10), width=1), binary_block(np.full(500, -10), width=1)]
    scope, transport = make_scope(responses, blocks)
    first, second = WaveForm(), WaveForm()
    config = AcquisitionConfig(
        average_count=2, resolution=Resolution.LOW, channels=(3, 1), data_width=1
    )

    assert scope.acquire(config, [first, second]) is AcquireStatus.DONE
    assert (first.channel, second.channel) == (3, 1)
    assert first.gain == pytest.approx(1.0)
    assert second.gain == pytest.approx(0.2)
    assert first.max == pytest.approx(0.2)
    assert second.max == pytest.approx(-0.2)
    sources = [cmd for cmd in transport.written if cmd.startswith("DATA:SOURCE")]
    assert sources == ["DATA:SOURCE CH3", "DATA:SOURCE REF3", "DATA:SOURCE CH1", "DATA:SOURCE REF1"]
    assert transport.count("SELECT:REF3 OFF") == 1
    assert transport.count("SELECT:REF1 OFF") == 1


# ==========================================
# FAILURES
# ==========================================


def test_sample_count_mismatch():
    responses = {"BUSY?": "0", **channel_responses(points=10000, width=1)}
    scope, transport = make_scope(responses)
    with pytest.raises(WaveformMismatchError) as info:
        scope.acquire(LOW_BINARY, [WaveForm()])
    assert info.value.channel == 1
    assert "CURVE?" not in transport.written
    assert transport.written[-1] == "SELECT:REF1 OFF"


def test_bad_curve_header_is_a_waveform_mismatch():
    raw = b"%14" + bytes(500)
    responses = {"BUSY?": "0", **channel_responses(width=1)}
    scope, transport = make_scope(responses, [raw])
    waveform = WaveForm()
    with pytest.raises(WaveformMismatchError) as info:
        scope.acquire(LOW_BINARY, [waveform])
    assert isinstance(info.value.__cause__, BadHeaderError)
    assert waveform.samples.size == 0
    assert transport.written[-1] == "SELECT:REF1 OFF"


def test_declared_length_mismatch_is_a_waveform_mismatch():
    raw = binary_block(np.zeros(499), width=1)
    responses = {"BUSY?": "0", **channel_responses(width=1)}
    scope, _ = make_scope(responses, [raw])
    with pytest.raises(WaveformMismatchError) as info:
        scope.acquire(LOW_BINARY, [WaveForm()])
    cause = info.value.__cause__
    assert isinstance(cause, LengthMismatchError)
    assert (cause.expected, cause.declared) == (500, 499)


def test_unparsable_setting_is_a_waveform_mismatch():
    responses = {"BUSY?": "0", **channel_responses(width=1), "WFMPRE:YMULT?": "garbage"}
    scope, _ = make_scope(responses)
    with pytest.raises(WaveformMismatchError):
        scope.acquire(LOW_BINARY, [WaveForm()])


def test_unsupported_data_width():
    responses = {"BUSY?": "0", **channel_responses(width=4)}
    scope, transport = make_scope(responses)
    with pytest.raises(WaveformMismatchError):
        scope.acquire(LOW_BINARY, [WaveForm()])
    assert "CURVE?" not in transport.written


def test_transport_failure_aborts_acquisition():
    responses = {"BUSY?": "0", **channel_responses(width=1)}
    del responses["WFMPRE:XINCR?"]
    scope, transport = make_scope(responses)
    with pytest.raises(TransportError) as info:
        scope.acquire(LOW_BINARY, [WaveForm()])
    assert info.value.status == VISA_TIMEOUT
    assert "SELECT:REF1 OFF" not in transport.written


def test_binary_read_failure_aborts_acquisition():
    responses = {"BUSY?": "0", **channel_responses(width=1)}
    scope, _ = make_scope(responses, [TransportError("read failed", status=-1)])
    with pytest.raises(TransportError):
        scope.acquire(LOW_BINARY, [WaveForm()])


# ==========================================
# CONVENIENCE
# ==========================================


def test_acquire_channel_uses_driver_defaults():
    responses = {"BUSY?": "0", **channel_responses(channel=2, points=10000, width=2)}
    scope, transport = make_scope(responses, [binary_block(np.zeros(10000), width=2)])
    scope.average_count = 16
    waveform = WaveForm()

    assert scope.acquire_channel(waveform, channel=2) is AcquireStatus.DONE
    assert "ACQUIRE:NUMAVG 16" in transport.written
    assert "HORIZONTAL:RESOLUTION HIGH" in transport.written
    assert waveform.channel == 2


def test_acquire_waveforms_returns_empty_list_while_busy():
    scope, _ = make_scope({"BUSY?": "1"})
    assert scope.acquire_waveforms(AcquisitionConfig(average_count=1)) == []


def test_time_axis():
    waveform = WaveForm(sample_interval=1e-3, trigger_delay=-2e-3, samples=np.zeros(5))
    np.testing.assert_allclose(waveform.time_axis(), [-2e-3, -1e-3, 0.0, 1e-3, 2e-3])


# ==========================================
# SIMULATED INSTRUMENT
# ==========================================


def simulated_scope(**kwargs):
    from tds_instruments.mock_instruments import SimulatedTDS3000

    transport = SimulatedTDS3000(**kwargs)
    return Tektronix_TDS3000(transport, clock=FakeClock(step=0.001)), transport


def test_simulated_high_resolution_binary():
    scope, transport = simulated_scope()
    waveform = WaveForm()
    config = AcquisitionConfig(average_count=8, channels=(1,))

    assert scope.acquire(config, [waveform]) is AcquireStatus.DONE
    assert waveform.data_size == 10000
    assert waveform.sample_interval == pytest.approx(4.0e-7)
    assert waveform.trigger_delay == pytest.approx(-2.0e-3)
    assert waveform.max == pytest.approx(0.6, abs=1e-3)
    assert waveform.min == pytest.approx(-0.4, abs=1e-3)
    reads = [arg for method, arg in transport.calls if method == "read_bytes"]
    assert reads == [(Tektronix_TDS3000.BUFFER_SIZE, 20008)]


def test_simulated_low_resolution_ascii():
    scope, transport = simulated_scope()
    config = AcquisitionConfig(
        average_count=1, resolution=Resolution.LOW, encoding=CurveEncoding.ASCII
    )

    waveforms = scope.acquire_waveforms(config)

    assert len(waveforms) == 1
    assert len(waveforms[0]) == 500
    assert waveforms[0].max == pytest.approx(0.6, abs=0.02)
    assert not any(method == "read_bytes" for method, _ in transport.calls)


def test_simulated_channel_order():
    scope, _ = simulated_scope()
    config = AcquisitionConfig(average_count=2, channels=(3, 1))

    first, second = scope.acquire_waveforms(config)

    assert (first.channel, second.channel) == (3, 1)
    assert first.max == pytest.approx(1.8, abs=1e-3)
    assert second.max == pytest.approx(0.6, abs=1e-3)


def test_simulated_without_trigger():
    scope, transport = simulated_scope(triggered=False)
    assert scope.acquire_waveforms(AcquisitionConfig(average_count=1)) == []
    assert not any(cmd.startswith("SAVE:WAVEFORM") for cmd in transport.written)
