from __future__ import annotations


class HackEEGError(Exception):
    """Base class for errors raised while talking to the board."""


class TransportError(HackEEGError):
    """The serial byte stream failed."""


class TransportTimeout(TransportError):
    """A read returned before the expected bytes or line terminator arrived."""

    def __init__(self, message: str, partial: bytes = b"") -> None:
        super().__init__(message)
        self.partial = partial


class TransportClosed(TransportError):
    """The serial port is no longer open."""


class DecodeError(HackEEGError, ValueError):
    """A reply or sample payload could not be decoded."""


class DeviceStatusError(HackEEGError):
    def __init__(self, code: int, text: str) -> None:
        super().__init__(f"Device returned status {code}: {text}")
        self.code = code
        self.text = text


class ProtocolStateError(HackEEGError):
    """Operation is not valid for the wire mode the device is currently in."""
