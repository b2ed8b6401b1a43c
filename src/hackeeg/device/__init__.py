"""
Host-side protocol client for the HackEEG ADS1299 acquisition board.

The subpackage holds the register map, the sample-frame codec, the
line-oriented transaction protocol, wire-mode negotiation and the client that
composes them, plus the acquisition loop and sinks used by the CLI.
"""

from .ads1299 import NUM_CHANNELS, Gain, Speed, gain_bits
from .client import HackEEGClient, SerialSettings
from .config import HostRuntime, LslConfig, StreamConfig, load_config
from .errors import (
    DecodeError,
    DeviceStatusError,
    HackEEGError,
    ProtocolStateError,
    TransportClosed,
    TransportError,
    TransportTimeout,
)
from .frames import (
    MP_MESSAGE_SIZE,
    SAMPLE_PAYLOAD_SIZE,
    SampleFrame,
    decode_json_payload,
    decode_messagepack_frame,
    decode_sample,
    encode_json_payload,
    encode_messagepack_frame,
)
from .modes import ModeStateMachine, WireMode
from .protocol import Command, StatusReply, TransactionProtocol, Transport
from .runner import StreamHost, StreamStats, configure_device
from .sinks import ConsoleSink, CsvRecorder, LslSink, SinkFanout

__all__ = [
    "NUM_CHANNELS",
    "Gain",
    "Speed",
    "gain_bits",
    "HackEEGClient",
    "SerialSettings",
    "HostRuntime",
    "LslConfig",
    "StreamConfig",
    "load_config",
    "DecodeError",
    "DeviceStatusError",
    "HackEEGError",
    "ProtocolStateError",
    "TransportClosed",
    "TransportError",
    "TransportTimeout",
    "MP_MESSAGE_SIZE",
    "SAMPLE_PAYLOAD_SIZE",
    "SampleFrame",
    "decode_json_payload",
    "decode_messagepack_frame",
    "decode_sample",
    "encode_json_payload",
    "encode_messagepack_frame",
    "ModeStateMachine",
    "WireMode",
    "Command",
    "StatusReply",
    "TransactionProtocol",
    "Transport",
    "StreamHost",
    "StreamStats",
    "configure_device",
    "ConsoleSink",
    "CsvRecorder",
    "LslSink",
    "SinkFanout",
]
