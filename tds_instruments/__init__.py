__version__ = "1.0.0"
__author__ = "Brighton Sikarskie, Cesar Magana"

from .src.device_manager import (
    LIBRE_VISA,
    NI_VISA,
    PYVISA_PY,
    Transport,
    VisaCapabilities,
    VisaTransport,
)
from .src.errors import (
    BadHeaderError,
    DecodeError,
    InvalidParameterError,
    LengthMismatchError,
    ScopeError,
    TransportError,
    WaveformMismatchError,
)
from .src.oscilloscope import Oscilloscope
from .src.tektronix_tds3000 import Tektronix_TDS3000
from .src.terminal import ColorPrinter
from .src.waveform import (
    AcquireStatus,
    AcquisitionConfig,
    BusyStatus,
    CurveEncoding,
    DecodedHeader,
    DecodedWaveform,
    ResetStatus,
    Resolution,
    WaveForm,
    acquisition_timeout_ms,
    expected_curve_length,
    save_waveforms_csv,
    validate_average_count,
    validate_channel,
)
from .src.waveform_decoder import decode, parse_block_header

__all__ = [
    "Tektronix_TDS3000",
    "Oscilloscope",
    "Transport",
    "VisaTransport",
    "VisaCapabilities",
    "NI_VISA",
    "PYVISA_PY",
    "LIBRE_VISA",
    "AcquisitionConfig",
    "WaveForm",
    "Resolution",
    "CurveEncoding",
    "BusyStatus",
    "AcquireStatus",
    "ResetStatus",
    "DecodedHeader",
    "DecodedWaveform",
    "decode",
    "parse_block_header",
    "validate_average_count",
    "validate_channel",
    "acquisition_timeout_ms",
    "expected_curve_length",
    "save_waveforms_csv",
    "ScopeError",
    "InvalidParameterError",
    "TransportError",
    "WaveformMismatchError",
    "DecodeError",
    "BadHeaderError",
    "LengthMismatchError",
    "ColorPrinter",
]
