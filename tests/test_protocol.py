from __future__ import annotations

import pytest
import serial

from fakes import ScriptedSerial, build_raw
from hackeeg.device.errors import (
    DecodeError,
    DeviceStatusError,
    TransportClosed,
    TransportError,
    TransportTimeout,
)
from hackeeg.device.frames import MP_MESSAGE_SIZE, encode_json_payload, encode_messagepack_frame
from hackeeg.device.protocol import Command, StatusReply, TransactionProtocol


class BrokenSerial(ScriptedSerial):
    def readline(self) -> bytes:
        raise serial.SerialException("device reports readiness to read but returned no data")

    def write(self, data: bytes) -> int:
        raise OSError("I/O error")


def test_command_wire_format():
    assert Command("wreg", (5, 0x60)).encode() == b'{"COMMAND":"wreg","PARAMETERS":[5,96]}\r\n'
    assert Command("nop").to_json() == '{"COMMAND":"nop","PARAMETERS":[]}'


def test_execute_writes_command_and_parses_status():
    port = ScriptedSerial(b'{"STATUS_CODE": 200, "STATUS_TEXT": "Ok"}\r\n')
    reply = TransactionProtocol(port).execute(Command("start"))
    assert port.written == [b'{"COMMAND":"start","PARAMETERS":[]}\r\n']
    assert reply == StatusReply(200, "Ok")
    assert reply.ok
    assert reply.assert_ok() is reply


def test_error_status_is_returned_and_raised_on_assert():
    port = ScriptedSerial(b'{"STATUS_CODE": 400, "STATUS_TEXT": "Bad Request"}\n')
    reply = TransactionProtocol(port).execute(Command("wreg", (99, 1)))
    assert not reply.ok
    with pytest.raises(DeviceStatusError) as excinfo:
        reply.assert_ok()
    assert excinfo.value.code == 400
    assert excinfo.value.text == "Bad Request"


@pytest.mark.parametrize(
    "line",
    [
        b"Failure: command not recognized\r\n",
        b'{"STATUS_TEXT": "Ok"}\r\n',
        b'{"STATUS_CODE": true, "STATUS_TEXT": "Ok"}\r\n',
        b'{"STATUS_CODE": 200, "STATUS_TEXT": 1}\r\n',
    ],
)
def test_malformed_status_lines(line):
    with pytest.raises(DecodeError):
        TransactionProtocol(ScriptedSerial(line)).execute(Command("nop"))


def test_missing_line_terminator_is_a_timeout():
    proto = TransactionProtocol(ScriptedSerial(b'{"STATUS_CODE": 20'))
    with pytest.raises(TransportTimeout) as excinfo:
        proto.execute(Command("nop"))
    assert excinfo.value.partial == b'{"STATUS_CODE": 20'


def test_send_text_consumes_acknowledgement():
    port = ScriptedSerial(b"200 Ok\r\nnext\n")
    proto = TransactionProtocol(port)
    proto.send_text("jsonlines")
    assert port.written == [b"jsonlines\n"]
    assert proto.read_line() == "next\n"


def test_send_text_tolerates_missing_acknowledgement():
    port = ScriptedSerial()
    TransactionProtocol(port).send_text("messagepack")
    assert port.written == [b"messagepack\n"]


def test_read_exact_and_short_read():
    proto = TransactionProtocol(ScriptedSerial(b"abcdef"))
    assert proto.read_exact(4) == b"abcd"
    with pytest.raises(TransportTimeout) as excinfo:
        proto.read_exact(4)
    assert excinfo.value.partial == b"ef"


def test_drain_discards_pending_input():
    port = ScriptedSerial(b"x" * 5000)
    proto = TransactionProtocol(port)
    assert proto.drain() == 5000
    assert proto.drain() == 0


def test_serial_failures_are_wrapped():
    proto = TransactionProtocol(BrokenSerial())
    with pytest.raises(TransportError):
        proto.execute(Command("nop"))
    with pytest.raises(TransportError):
        proto.read_line()


def test_closed_port_is_rejected():
    port = ScriptedSerial(b"200 Ok\n")
    port.close()
    proto = TransactionProtocol(port)
    assert proto.closed
    with pytest.raises(TransportClosed):
        proto.execute(Command("nop"))
    with pytest.raises(TransportClosed):
        proto.read_exact(1)


def sample_lines(count: int) -> bytes:
    lines = (encode_json_payload(build_raw(sample_number=n)) + "\r\n" for n in range(count))
    return "".join(lines).encode("ascii")


def test_streaming_reply_skips_sample_lines():
    port = ScriptedSerial(sample_lines(3) + b'{"STATUS_CODE": 200, "STATUS_TEXT": "Ok"}\r\nnext\n')
    proto = TransactionProtocol(port)
    reply, skipped = proto.execute_while_streaming(Command("sdatac"))
    assert reply == StatusReply(200, "Ok")
    assert skipped == 3
    assert port.written == [b'{"COMMAND":"sdatac","PARAMETERS":[]}\r\n']
    assert proto.read_line() == "next\n"


def test_streaming_reply_skips_messagepack_frames():
    frames = b"".join(encode_messagepack_frame(build_raw(sample_number=n)) for n in range(4))
    port = ScriptedSerial(frames + b'{"STATUS_CODE": 500, "STATUS_TEXT": "Error"}\r\n')
    reply, skipped = TransactionProtocol(port).execute_while_streaming(Command("stop"), MP_MESSAGE_SIZE)
    assert reply.code == 500
    assert skipped == 4


def test_streaming_reply_without_samples():
    port = ScriptedSerial(b'{"STATUS_CODE": 200, "STATUS_TEXT": "Ok"}\r\n')
    reply, skipped = TransactionProtocol(port).execute_while_streaming(Command("sdatac"), MP_MESSAGE_SIZE)
    assert reply.ok
    assert skipped == 0


def test_streaming_reply_gives_up_after_limit(monkeypatch):
    monkeypatch.setattr("hackeeg.device.protocol.MAX_SKIPPED_SAMPLES", 3)
    proto = TransactionProtocol(ScriptedSerial(sample_lines(10)))
    with pytest.raises(DecodeError):
        proto.execute_while_streaming(Command("sdatac"))


def test_streaming_reply_times_out_mid_frame():
    frame = encode_messagepack_frame(build_raw())
    proto = TransactionProtocol(ScriptedSerial(frame[:20]))
    with pytest.raises(TransportTimeout):
        proto.execute_while_streaming(Command("sdatac"), MP_MESSAGE_SIZE)
