from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import serial

from . import ads1299
from .ads1299 import NUM_CHANNELS, Gain, Speed, gain_bits
from .errors import DecodeError, HackEEGError, ProtocolStateError, TransportError, TransportTimeout
from .frames import MP_MESSAGE_SIZE, SampleFrame, decode_json_payload, decode_messagepack_frame
from .modes import ModeStateMachine, WireMode
from .protocol import Command, StatusReply, TransactionProtocol, Transport

logger = logging.getLogger(__name__)

BLINK_INTERVAL_SEC = 0.1
BOARD_LED_BLINK_SEC = 0.3


@dataclass
class SerialSettings:
    port: str
    baudrate: int = 115200
    timeout: float = 0.5


class HackEEGClient:
    """
    Synchronous client for the HackEEG firmware.

    The client owns the transport and the current wire mode. Construction
    negotiates JSON Lines so that structured commands can be issued right away.
    """

    def __init__(self, transport: Transport, *, negotiate: bool = True):
        self.protocol = TransactionProtocol(transport)
        self._modes = ModeStateMachine(self)
        self._continuous_read = False
        if negotiate:
            self.ensure_mode(WireMode.JSONLINES)

    @classmethod
    def open(cls, settings: SerialSettings, *, negotiate: bool = True) -> "HackEEGClient":
        logger.info("Creating client connection to %s", settings.port)
        try:
            port = serial.Serial(
                port=settings.port,
                baudrate=settings.baudrate,
                timeout=settings.timeout,
            )
        except serial.SerialException as exc:
            raise TransportError(f"Unable to open {settings.port}: {exc}") from exc
        try:
            return cls(port, negotiate=negotiate)
        except BaseException:
            port.close()
            raise

    @property
    def transport(self) -> Transport:
        return self.protocol.transport

    @property
    def mode(self) -> WireMode:
        return self._modes.current

    @property
    def continuous_read(self) -> bool:
        return self._continuous_read

    @property
    def closed(self) -> bool:
        return self.protocol.closed

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "HackEEGClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- mode negotiation -------------------------------------------------

    def ensure_mode(self, desired: WireMode) -> bool:
        return self._modes.ensure_mode(desired)

    def send_text(self, text: str) -> None:
        self.protocol.send_text(text)

    def drain(self) -> int:
        logger.debug("Draining port until idle")
        return self.protocol.drain()

    # -- transactions -----------------------------------------------------

    def execute(self, command: Command) -> StatusReply:
        return self.protocol.execute(command)

    def execute_command(self, name: str, *parameters: int) -> StatusReply:
        return self.execute(Command(name, tuple(int(p) for p in parameters)))

    def no_op(self) -> bool:
        # A missing or unparseable reply means the device is not in JSON Lines yet.
        try:
            self.execute_command("nop")
        except DecodeError as exc:
            logger.debug("no-op reply did not decode: %s", exc)
            return False
        except TransportTimeout as exc:
            logger.debug("no-op reply incomplete: %r", exc.partial)
            return False
        return True

    def wreg(self, register: int, value: int) -> StatusReply:
        logger.debug("Writing 0x%02X to register 0x%02X", value, register)
        return self.execute_command("wreg", register, value)

    def write_register(self, register: int, value: int) -> None:
        with self._continuous_read_paused():
            self.wreg(register, value).assert_ok()

    def start(self) -> None:
        logger.info("start")
        self.execute_command("start").assert_ok()

    def stop(self) -> None:
        logger.info("stop")
        self._execute_streaming("stop").assert_ok()

    def rdatac(self) -> None:
        logger.info("rdatac")
        self.execute_command("rdatac").assert_ok()
        self._continuous_read = True

    def sdatac(self) -> None:
        logger.info("sdatac")
        self._execute_streaming("sdatac").assert_ok()
        self._continuous_read = False

    def stop_and_sdatac_messagepack(self) -> None:
        self.stop()
        self.sdatac()
        self.no_op()
        self.drain()

    # -- board LED --------------------------------------------------------

    def board_led_on(self) -> None:
        logger.info("Turning board LED on")
        self.execute_command("boardledon").assert_ok()

    def board_led_off(self) -> None:
        logger.info("Turning board LED off")
        self.execute_command("boardledoff").assert_ok()

    def blink_board_led(self) -> None:
        logger.info("Blinking board LED")
        self.board_led_on()
        time.sleep(BOARD_LED_BLINK_SEC)
        self.board_led_off()

    def blink_test(self, count: int) -> None:
        logger.info("Starting blink test")
        for idx in range(count):
            logger.info("Blinking %d more times", count - idx)
            self.board_led_on()
            time.sleep(BLINK_INTERVAL_SEC)
            self.board_led_off()
            time.sleep(BLINK_INTERVAL_SEC)

    # -- channel configuration --------------------------------------------

    def enable_channel(self, channel: int, gain: Gain = Gain.X1) -> None:
        logger.info("Enabling channel %d with %s", channel, gain)
        self.write_register(
            _channel_register(channel), ads1299.ELECTRODE_INPUT | gain_bits(gain)
        )

    def disable_channel(self, channel: int) -> None:
        logger.info("Disabling channel %d", channel)
        self.write_register(_channel_register(channel), ads1299.PDn | ads1299.SHORTED)

    def enable_all_channels(self, gain: Gain = Gain.X1) -> None:
        logger.info("Enabling all channels")
        with self._continuous_read_paused():
            for channel in range(1, NUM_CHANNELS + 1):
                self.enable_channel(channel, gain)

    def disable_all_channels(self) -> None:
        logger.info("Disabling all channels")
        with self._continuous_read_paused():
            for channel in range(1, NUM_CHANNELS + 1):
                self.disable_channel(channel)

    def channel_config_test(self) -> None:
        """Route channels 1-7 to the internal test sources and power down channel 8."""
        logger.info("Applying channel test configuration")
        x1 = gain_bits(Gain.X1)
        with self._continuous_read_paused():
            self.write_register(ads1299.CONFIG2, ads1299.INT_TEST_4HZ | ads1299.CONFIG2_const)
            self.write_register(ads1299.CH1SET, ads1299.INT_TEST_DC | x1)
            self.write_register(ads1299.CH2SET, ads1299.SHORTED | x1)
            self.write_register(ads1299.CH3SET, ads1299.MVDD | x1)
            self.write_register(ads1299.CH4SET, ads1299.BIAS_DRN | x1)
            self.write_register(ads1299.CH5SET, ads1299.BIAS_DRP | x1)
            self.write_register(ads1299.CH6SET, ads1299.TEMP | x1)
            self.write_register(ads1299.CH7SET, ads1299.TEST_SIGNAL | x1)
            self.disable_channel(8)

    def set_sample_rate(self, sps: int) -> None:
        speed = Speed.from_sps(sps)
        logger.info("Setting sample rate to %d SPS", sps)
        self.write_register(ads1299.CONFIG1, ads1299.CONFIG1_const | speed)

    def set_reference_electrode(self, srb1: bool) -> None:
        """SRB1 routes the reference electrode to all negative inputs; off means dual-ended."""
        if srb1:
            logger.info("Enabling reference electrode SRB1")
            self.write_register(ads1299.MISC1, ads1299.SRB1 | ads1299.MISC1_const)
        else:
            logger.info("Setting dual-ended mode")
            self.write_register(ads1299.MISC1, ads1299.MISC1_const)

    # -- acquisition ------------------------------------------------------

    def read_next_sample(self) -> SampleFrame:
        if self.mode is WireMode.MSGPACK:
            return decode_messagepack_frame(self.protocol.read_exact(MP_MESSAGE_SIZE))
        if self.mode is WireMode.JSONLINES:
            line = self.protocol.read_line()
            logger.debug("Raw rdatac response line: %r", line)
            return decode_json_payload(line)
        raise ProtocolStateError(f"Cannot read samples in {self.mode.value} mode")

    def _execute_streaming(self, name: str) -> StatusReply:
        # Samples already queued by the device arrive ahead of the reply.
        if not self._continuous_read:
            return self.execute_command(name)
        frame_size = MP_MESSAGE_SIZE if self.mode is WireMode.MSGPACK else None
        reply, skipped = self.protocol.execute_while_streaming(Command(name), frame_size)
        if skipped:
            logger.debug("Discarded %d samples ahead of the '%s' reply", skipped, name)
        return reply

    @contextmanager
    def _continuous_read_paused(self) -> Iterator[None]:
        was_reading = self._continuous_read
        if was_reading:
            logger.debug("In continuous read mode, temporarily disabling")
            self.sdatac()
        try:
            yield
        except Exception:
            if was_reading:
                self._resume_after_failure()
            raise
        if was_reading:
            logger.debug("Re-enabling continuous read")
            self.rdatac()

    def _resume_after_failure(self) -> None:
        try:
            self.rdatac()
        except HackEEGError as exc:
            logger.error("Failed to resume continuous read: %s", exc)


def _channel_register(channel: int) -> int:
    if not 1 <= channel <= NUM_CHANNELS:
        raise ValueError(f"Channel must be between 1 and {NUM_CHANNELS}, got {channel}")
    return ads1299.CHnSET + channel

