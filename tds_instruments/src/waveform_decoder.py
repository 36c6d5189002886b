"""
Decoder for Tektronix CURVE? responses.

Pure functions without I/O, usable on captured instrument traffic.

Binary replies use IEEE 488.2 definite-length blocks:
    #<x><yy..><block of bytes or integers><termination character>
<x> is one ASCII digit giving the number of y's, <yy..> is the number of data
bytes in ASCII. ASCII replies are comma-separated integers.

Every raw value is scaled to volts with:
    voltage = (value - y_off) * y_mult + y_zero
"""

from typing import Union

import numpy as np

from .errors import BadHeaderError, DecodeError, LengthMismatchError
from .waveform import CurveEncoding, DecodedHeader, DecodedWaveform, VALID_DATA_WIDTHS

BLOCK_START = ord("#")

_DTYPES = {
    (1, "big"): np.dtype("i1"),
    (1, "little"): np.dtype("i1"),
    (2, "big"): np.dtype(">i2"),
    (2, "little"): np.dtype("<i2"),
}


def parse_block_header(raw: bytes, data_size: int, data_width: int) -> DecodedHeader:
    """
    Parse and check the '#<x><yy..>' prefix of a binary curve block.

    Args:
        raw: Bytes as read from the instrument.
        data_size: Number of points the instrument reported (WFMPRE:NR_PT?).
        data_width: Bytes per point (DATA:WIDTH?).

    Returns:
        DecodedHeader

    Raises:
        BadHeaderError: If the block does not start with '#<digit><digits>'.
        LengthMismatchError: If the declared byte count is not data_size * data_width.
    """
    if len(raw) < 2 or raw[0] != BLOCK_START:
        raise BadHeaderError(f"Curve block must start with '#', got {bytes(raw[:2])!r}")

    y_length = raw[1] & 0x0F
    if y_length == 0 or not chr(raw[1]).isdigit():
        raise BadHeaderError(f"Invalid length digit {chr(raw[1])!r} in curve block header")

    digits = bytes(raw[2:2 + y_length])
    if len(digits) != y_length or not digits.isdigit():
        raise BadHeaderError(f"Invalid byte count {digits!r} in curve block header")

    declared = int(digits)
    expected = data_size * data_width
    if declared != expected:
        raise LengthMismatchError(expected, declared)

    return DecodedHeader(
        declared_byte_count=declared,
        data_width=data_width,
        payload_offset=2 + y_length,
    )


def _scale(raw_values: np.ndarray, y_mult: float, y_zero: float, y_off: float) -> DecodedWaveform:
    samples = (raw_values.astype(float) - y_off) * y_mult + y_zero
    # Extrema come from the samples themselves, never from a 0 seed.
    return DecodedWaveform(
        samples=samples,
        min=float(samples.min()),
        max=float(samples.max()),
    )


def decode_ascii(
    raw: Union[bytes, str], data_size: int, y_mult: float, y_zero: float, y_off: float
) -> DecodedWaveform:
    """Decode a comma-separated CURVE? reply."""
    text = raw.decode("ascii", errors="replace") if isinstance(raw, (bytes, bytearray)) else raw
    tokens = text.strip().split(",")
    if len(tokens) != data_size:
        raise LengthMismatchError(data_size, len(tokens), what="values")
    try:
        values = np.array([float(token) for token in tokens])
    except ValueError as exc:
        raise DecodeError(f"Invalid value in ASCII curve data: {exc}") from exc
    return _scale(values, y_mult, y_zero, y_off)


def decode_binary(
    raw: bytes,
    data_size: int,
    data_width: int,
    y_mult: float,
    y_zero: float,
    y_off: float,
    byte_order: str = "big",
) -> DecodedWaveform:
    """
    Decode a definite-length binary CURVE? reply.

    Width 1 is signed 8 bit, width 2 is signed 16 bit in byte_order
    ('big' for RIBINARY, 'little' for SRIBINARY).
    """
    header = parse_block_header(raw, data_size, data_width)
    start = header.payload_offset
    payload = bytes(raw[start:start + header.declared_byte_count])
    if len(payload) != header.declared_byte_count:
        raise LengthMismatchError(
            header.declared_byte_count, header.declared_byte_count, delivered=len(payload)
        )

    values = np.frombuffer(payload, dtype=_DTYPES[(data_width, byte_order)])
    return _scale(values, y_mult, y_zero, y_off)


def decode(
    raw: Union[bytes, str],
    encoding: CurveEncoding,
    data_size: int,
    data_width: int,
    y_mult: float,
    y_zero: float,
    y_off: float,
    byte_order: str = "big",
) -> DecodedWaveform:
    """
    Decode a raw CURVE? reply into amplitudes.

    Args:
        raw: Reply as read from the instrument.
        encoding: CurveEncoding.ASCII or CurveEncoding.BINARY.
        data_size: Number of points (WFMPRE:NR_PT?).
        data_width: Bytes per point for binary data (1 or 2).
        y_mult: Vertical multiplier (WFMPRE:YMULT?).
        y_zero: Vertical zero (WFMPRE:YZERO?).
        y_off: Vertical offset in digitizer levels (WFMPRE:YOFF?).
        byte_order: 'big' or 'little', must match the encoding requested
            from the instrument.

    Returns:
        DecodedWaveform with samples, min and max.

    Raises:
        BadHeaderError, LengthMismatchError, DecodeError
    """
    if data_size <= 0:
        raise DecodeError(f"data_size must be positive, got {data_size}")
    if encoding is CurveEncoding.ASCII:
        return decode_ascii(raw, data_size, y_mult, y_zero, y_off)

    if data_width not in VALID_DATA_WIDTHS:
        raise DecodeError(f"data_width must be 1 or 2, got {data_width}")
    if byte_order not in ("big", "little"):
        raise DecodeError(f"byte_order must be 'big' or 'little', got {byte_order!r}")
    if isinstance(raw, str):
        raw = raw.encode("latin-1")
    return decode_binary(raw, data_size, data_width, y_mult, y_zero, y_off, byte_order)
