from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

import serial

from .errors import (
    DecodeError,
    DeviceStatusError,
    TransportClosed,
    TransportError,
    TransportTimeout,
)
from .frames import JSON_CODE_KEY, JSON_DATA_KEY, MP_MAP_MARKER, load_json_object

logger = logging.getLogger(__name__)

STATUS_OK = 200
STATUS_CODE_KEY = "STATUS_CODE"
STATUS_TEXT_KEY = "STATUS_TEXT"
DRAIN_CHUNK_SIZE = 4096
# Upper bound on samples discarded while waiting for a reply in continuous read.
MAX_SKIPPED_SAMPLES = 20000


class Transport(Protocol):
    """The subset of `serial.Serial` the client relies on."""

    timeout: Optional[float]

    def read(self, size: int = 1) -> bytes:
        ...

    def readline(self) -> bytes:
        ...

    def write(self, data: bytes) -> Optional[int]:
        ...


@dataclass(frozen=True)
class Command:
    name: str
    parameters: Tuple[int, ...] = ()

    def to_json(self) -> str:
        return json.dumps(
            {"COMMAND": self.name, "PARAMETERS": list(self.parameters)},
            separators=(",", ":"),
        )

    def encode(self) -> bytes:
        return (self.to_json() + "\r\n").encode("ascii")


@dataclass(frozen=True)
class StatusReply:
    code: int
    text: str

    @property
    def ok(self) -> bool:
        return self.code == STATUS_OK

    def assert_ok(self) -> "StatusReply":
        if not self.ok:
            raise DeviceStatusError(self.code, self.text)
        return self

    @staticmethod
    def from_line(line: str | bytes) -> "StatusReply":
        return StatusReply.from_payload(load_json_object(line))

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> "StatusReply":
        code = payload.get(STATUS_CODE_KEY)
        text = payload.get(STATUS_TEXT_KEY)
        if not isinstance(code, int) or isinstance(code, bool) or not isinstance(text, str):
            raise DecodeError(f"Reply is not a status object: {payload!r}")
        return StatusReply(code=code, text=text)


class TransactionProtocol:
    """
    Line-oriented request/response exchange over a serial transport.

    Structured commands are one JSON object per CRLF-terminated line and every
    command is answered by exactly one newline-terminated reply line. Plain text
    commands are used for mode switching and are acknowledged by a single line
    whose content is not interpreted.
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    @property
    def closed(self) -> bool:
        return not getattr(self.transport, "is_open", True)

    def execute(self, command: Command) -> StatusReply:
        logger.debug("Executing JSON command '%s' %s", command.name, list(command.parameters))
        self._write(command.encode())
        line = self.read_line()
        logger.debug("Got response: %s", line.strip())
        return StatusReply.from_line(line)

    def execute_while_streaming(
        self, command: Command, frame_size: Optional[int] = None
    ) -> Tuple[StatusReply, int]:
        """
        Execute `command` while the device may still be emitting samples.

        Sample payload lines queued ahead of the status reply are discarded.
        With `frame_size` set, samples are binary MessagePack frames of that
        size instead. Returns the reply and the number of samples skipped.
        """
        logger.debug(
            "Executing JSON command '%s' %s during continuous read", command.name, list(command.parameters)
        )
        self._write(command.encode())
        for skipped in range(MAX_SKIPPED_SAMPLES + 1):
            if frame_size:
                lead = self.read_exact(1)
                if lead[0] == MP_MAP_MARKER:
                    self.read_exact(frame_size - 1)
                    continue
                line = lead.decode("utf-8", errors="replace") + self.read_line()
                return StatusReply.from_line(line), skipped
            payload = load_json_object(self.read_line())
            if JSON_DATA_KEY in payload and JSON_CODE_KEY in payload:
                continue
            return StatusReply.from_payload(payload), skipped
        raise DecodeError(
            f"No reply to '{command.name}' after {MAX_SKIPPED_SAMPLES} sample payloads"
        )

    def send_text(self, text: str) -> None:
        logger.debug("Sending text command '%s'", text)
        self._write((text + "\n").encode("ascii"))
        try:
            ack = self.read_line()
        except TransportTimeout as exc:
            logger.debug("No acknowledgement for text command '%s' (%r)", text, exc.partial)
            return
        logger.debug("Text command '%s' acknowledged: %s", text, ack.strip())

    def read_line(self) -> str:
        self._check_open()
        try:
            raw = self.transport.readline()
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Serial read failed: {exc}") from exc
        if not raw.endswith(b"\n"):
            raise TransportTimeout("Timed out waiting for a reply line", partial=raw)
        return raw.decode("utf-8", errors="replace")

    def read_exact(self, size: int) -> bytes:
        self._check_open()
        buffer = bytearray()
        try:
            while len(buffer) < size:
                chunk = self.transport.read(size - len(buffer))
                if not chunk:
                    break
                buffer.extend(chunk)
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Serial read failed: {exc}") from exc
        if len(buffer) < size:
            raise TransportTimeout(
                f"Timed out reading {size} bytes (got {len(buffer)})", partial=bytes(buffer)
            )
        return bytes(buffer)

    def drain(self) -> int:
        """Discard buffered input until a read comes back empty."""
        self._check_open()
        drained = 0
        try:
            while True:
                chunk = self.transport.read(DRAIN_CHUNK_SIZE)
                if not chunk:
                    break
                drained += len(chunk)
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Serial read failed while draining: {exc}") from exc
        logger.debug("Drained %d bytes", drained)
        return drained

    def _write(self, payload: bytes) -> None:
        self._check_open()
        try:
            self.transport.write(payload)
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Serial write failed: {exc}") from exc

    def _check_open(self) -> None:
        if self.closed:
            raise TransportClosed("Serial port is closed")
