from __future__ import annotations

import enum
import logging
from typing import Protocol

from .errors import DecodeError, DeviceStatusError, ProtocolStateError, TransportTimeout
from .protocol import Command, StatusReply

logger = logging.getLogger(__name__)

# The firmware toggles out of JSON Lines with the same text command that enters it.
JSONLINES_TEXT_COMMAND = "jsonlines"
MESSAGEPACK_TEXT_COMMAND = "messagepack"
MESSAGEPACK_COMMAND = Command("messagepack")

_IGNORED_WHILE_IDLING = (DeviceStatusError, DecodeError, TransportTimeout)


class WireMode(str, enum.Enum):
    UNKNOWN = "unknown"
    TEXT = "text"
    JSONLINES = "jsonlines"
    MSGPACK = "messagepack"


class ModeLink(Protocol):
    """Device operations a mode transition is built from."""

    def send_text(self, text: str) -> None:
        ...

    def execute(self, command: Command) -> StatusReply:
        ...

    def stop(self) -> None:
        ...

    def sdatac(self) -> None:
        ...

    def drain(self) -> int:
        ...

    def no_op(self) -> bool:
        ...


class ModeStateMachine:
    """
    Tracks the wire encoding the firmware speaks and drives the command
    sequences that move it between encodings.

    A failed transition leaves `current` untouched even though the device may
    already have switched part way; callers that need certainty should
    renegotiate from `WireMode.UNKNOWN`.
    """

    def __init__(self, link: ModeLink, current: WireMode = WireMode.UNKNOWN):
        self.link = link
        self.current = current

    def reset(self) -> None:
        self.current = WireMode.UNKNOWN

    def ensure_mode(self, desired: WireMode) -> bool:
        """Return True when a transition was performed, False when already in `desired`."""
        desired = WireMode(desired)
        logger.info("Ensuring we're in mode %s", desired.value)
        if self.current is desired:
            logger.debug("Already in mode %s", desired.value)
            return False
        logger.debug("Desired mode %s doesn't match current mode %s", desired.value, self.current.value)
        if desired is WireMode.TEXT:
            self._to_text()
        elif desired is WireMode.JSONLINES:
            self._to_jsonlines()
        elif desired is WireMode.MSGPACK:
            self._to_msgpack()
        else:
            raise ProtocolStateError("Cannot transition into an unknown wire mode")
        logger.info("Switched wire mode %s -> %s", self.current.value, desired.value)
        self.current = desired
        return True

    def _to_text(self) -> None:
        if self.current is WireMode.JSONLINES:
            self.link.send_text(JSONLINES_TEXT_COMMAND)
        elif self.current is WireMode.MSGPACK:
            self.link.send_text(JSONLINES_TEXT_COMMAND)
            self.link.send_text(MESSAGEPACK_TEXT_COMMAND)
        else:
            raise ProtocolStateError(f"No transition from {self.current.value} to text")

    def _to_jsonlines(self) -> None:
        if self.current is WireMode.MSGPACK:
            self.link.send_text(JSONLINES_TEXT_COMMAND)
            return
        if self.current not in (WireMode.TEXT, WireMode.UNKNOWN):
            raise ProtocolStateError(f"No transition from {self.current.value} to jsonlines")
        # stop/sdatac fail when the device is not speaking JSON Lines yet
        for step in (self.link.stop, self.link.sdatac):
            try:
                step()
            except _IGNORED_WHILE_IDLING as exc:
                logger.debug("Ignoring %s failure while idling device: %s", step.__name__, exc)
        self.link.drain()
        self.link.send_text(JSONLINES_TEXT_COMMAND)
        if not self.link.no_op():
            logger.warning("Device did not answer the no-op probe with a status reply")

    def _to_msgpack(self) -> None:
        if self.current is WireMode.JSONLINES:
            self.link.execute(MESSAGEPACK_COMMAND).assert_ok()
        elif self.current is WireMode.TEXT:
            self.link.send_text(JSONLINES_TEXT_COMMAND)
            self.link.execute(MESSAGEPACK_COMMAND).assert_ok()
        else:
            raise ProtocolStateError(f"No transition from {self.current.value} to messagepack")
