from __future__ import annotations

import base64
import binascii
import json
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import numpy as np

from .ads1299 import NUM_CHANNELS
from .errors import DecodeError

# Raw sample layout: <timestamp u32le><sample_number u32le><status 3B be><8 x i24be>
TIMESTAMP_OFFSET = 0
SAMPLE_NUMBER_OFFSET = 4
STATUS_OFFSET = 8
STATUS_SIZE = 3
CHANNEL_OFFSET = 11
CHANNEL_SIZE = 3
SAMPLE_PAYLOAD_SIZE = CHANNEL_OFFSET + NUM_CHANNELS * CHANNEL_SIZE

# MessagePack frames are {"C": <code>, "D": <bin8 payload>} with a fixed header.
MP_BINARY_OFFSET = 9
MP_MESSAGE_SIZE = MP_BINARY_OFFSET + SAMPLE_PAYLOAD_SIZE
MP_MAP_MARKER = 0x82

JSON_CODE_KEY = "C"
JSON_DATA_KEY = "D"

_COUNTERS = struct.Struct("<II")
# fixmap(2), fixstr "C", uint8 code, fixstr "D", bin8 length
_MP_HEADER = struct.Struct(">BBcBBBcBB")
_MP_STR1 = 0xA1
_MP_UINT8 = 0xCC
_MP_BIN8 = 0xC4


@dataclass(frozen=True)
class SampleFrame:
    """One acquisition tick as reported by the firmware."""

    timestamp: int
    sample_number: int
    status_bits: int
    gpio: int
    lead_off_negative: int
    lead_off_positive: int
    extra: int
    channels: Tuple[int, ...]

    def as_flat_samples(self) -> List[int]:
        return list(self.channels)

    def as_array(self) -> np.ndarray:
        return np.asarray(self.channels, dtype=np.int32)

    def as_record(self) -> Dict[str, int]:
        record: Dict[str, int] = {
            "timestamp": self.timestamp,
            "sample_number": self.sample_number,
            "status_bits": self.status_bits,
            "gpio": self.gpio,
            "lead_off_negative": self.lead_off_negative,
            "lead_off_positive": self.lead_off_positive,
            "extra": self.extra,
        }
        for idx, value in enumerate(self.channels, start=1):
            record[f"ch{idx}"] = value
        return record


def record_fieldnames() -> List[str]:
    base = [
        "timestamp",
        "sample_number",
        "status_bits",
        "gpio",
        "lead_off_negative",
        "lead_off_positive",
        "extra",
    ]
    return base + [f"ch{idx}" for idx in range(1, NUM_CHANNELS + 1)]


def decode_channel(data: bytes) -> int:
    if len(data) < CHANNEL_SIZE:
        raise DecodeError(f"Channel value needs {CHANNEL_SIZE} bytes, got {len(data)}")
    return int.from_bytes(data[:CHANNEL_SIZE], "big", signed=True)


def decode_sample(data: bytes) -> SampleFrame:
    """
    Decode the fixed-layout raw sample payload.

    Bytes past the payload length are ignored; a shorter buffer raises
    `DecodeError`.
    """
    if len(data) < SAMPLE_PAYLOAD_SIZE:
        raise DecodeError(
            f"Sample payload needs {SAMPLE_PAYLOAD_SIZE} bytes, got {len(data)}"
        )
    timestamp, sample_number = _COUNTERS.unpack_from(data, TIMESTAMP_OFFSET)
    status_raw = int.from_bytes(data[STATUS_OFFSET : STATUS_OFFSET + STATUS_SIZE], "big")
    status_bits = status_raw >> 1
    channels = tuple(
        decode_channel(data[start : start + CHANNEL_SIZE])
        for start in range(CHANNEL_OFFSET, SAMPLE_PAYLOAD_SIZE, CHANNEL_SIZE)
    )
    return SampleFrame(
        timestamp=timestamp,
        sample_number=sample_number,
        status_bits=status_bits,
        gpio=status_bits & 0x0F,
        lead_off_negative=(status_bits >> 4) & 0xFF,
        lead_off_positive=(status_bits >> 12) & 0xFF,
        extra=(status_bits >> 20) & 0xFF,
        channels=channels,
    )


def decode_base64_sample(encoded: str) -> SampleFrame:
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Invalid base64 sample data: {exc}") from exc
    return decode_sample(raw)


def decode_json_payload(line: str | bytes) -> SampleFrame:
    """Decode one JSON Lines sample reply, e.g. `{"C":200,"D":"<base64>"}`."""
    payload = load_json_object(line)
    if JSON_DATA_KEY not in payload or JSON_CODE_KEY not in payload:
        raise DecodeError(f"Sample payload missing '{JSON_CODE_KEY}'/'{JSON_DATA_KEY}': {payload!r}")
    data = payload[JSON_DATA_KEY]
    if not isinstance(data, str):
        raise DecodeError(f"Sample payload '{JSON_DATA_KEY}' must be a base64 string")
    return decode_base64_sample(data)


def decode_messagepack_frame(data: bytes) -> SampleFrame:
    if len(data) < MP_MESSAGE_SIZE:
        raise DecodeError(f"MessagePack frame needs {MP_MESSAGE_SIZE} bytes, got {len(data)}")
    prefix = bytes(data[:MP_BINARY_OFFSET])
    if prefix != _messagepack_prefix(prefix[4]):
        raise DecodeError(f"Misaligned MessagePack frame header {prefix.hex()}")
    return decode_sample(data[MP_BINARY_OFFSET:MP_MESSAGE_SIZE])


def encode_json_payload(raw: bytes, code: int = 200) -> str:
    encoded = base64.b64encode(bytes(raw)).decode("ascii")
    return json.dumps({JSON_CODE_KEY: code, JSON_DATA_KEY: encoded}, separators=(",", ":"))


def encode_messagepack_frame(raw: bytes, code: int = 200) -> bytes:
    if len(raw) < SAMPLE_PAYLOAD_SIZE:
        raise ValueError(f"Raw payload needs {SAMPLE_PAYLOAD_SIZE} bytes, got {len(raw)}")
    if not 0 <= code <= 0xFF:
        raise ValueError("Status code must fit in a MessagePack uint8")
    return _messagepack_prefix(code) + bytes(raw[:SAMPLE_PAYLOAD_SIZE])


def _messagepack_prefix(code: int) -> bytes:
    return _MP_HEADER.pack(
        MP_MAP_MARKER, _MP_STR1, b"C", _MP_UINT8, code, _MP_STR1, b"D", _MP_BIN8, SAMPLE_PAYLOAD_SIZE
    )


def load_json_object(line: str | bytes) -> Dict[str, Any]:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Malformed JSON reply {line.strip()!r}: {exc}") from exc
    if not isinstance(payload, dict):
        raise DecodeError(f"Expected a JSON object, got {line.strip()!r}")
    return payload
