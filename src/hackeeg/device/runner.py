from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from .ads1299 import NUM_CHANNELS
from .client import HackEEGClient
from .config import StreamConfig
from .errors import DecodeError, TransportTimeout
from .sinks import ConsoleSink, CsvRecorder, LslSink, OutletFactory, SinkFanout, open_lsl_outlet

logger = logging.getLogger(__name__)


@dataclass
class StreamStats:
    samples: int = 0
    errors: int = 0
    timeouts: int = 0
    started: float = 0.0
    finished: float = 0.0

    @property
    def elapsed(self) -> float:
        end = self.finished or time.monotonic()
        return max(end - self.started, 0.0)

    @property
    def rate(self) -> float:
        elapsed = self.elapsed
        return self.samples / elapsed if elapsed > 0 else 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            "samples": self.samples,
            "errors": self.errors,
            "timeouts": self.timeouts,
            "elapsed": self.elapsed,
            "rate": self.rate,
        }


def configure_device(client: HackEEGClient, config: StreamConfig) -> None:
    """Apply the stream configuration and leave the board acquiring in continuous read."""
    client.blink_board_led()
    client.set_sample_rate(config.sps)
    client.disable_all_channels()
    if config.channel_test:
        client.channel_config_test()
    else:
        gain = config.gain_enum
        logger.info("Configuring channels with %s", gain)
        client.enable_all_channels(gain)
    client.set_reference_electrode(config.reference_srb1)
    client.ensure_mode(config.wire_mode_enum)
    client.start()
    client.rdatac()


class StreamHost:
    """Reads samples from a configured client and forwards them to the sinks."""

    def __init__(
        self,
        client: HackEEGClient,
        config: StreamConfig,
        *,
        sinks: Optional[SinkFanout] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.client = client
        self.config = config
        self.sinks = sinks if sinks is not None else SinkFanout()
        self.stop_event = stop_event or threading.Event()
        self.stats = StreamStats()

    @classmethod
    def from_config(
        cls,
        client: HackEEGClient,
        config: StreamConfig,
        *,
        stop_event: Optional[threading.Event] = None,
        outlet_factory: OutletFactory = open_lsl_outlet,
    ) -> "StreamHost":
        sinks = SinkFanout()
        if not config.quiet:
            sinks.add(ConsoleSink())
        if config.output_csv:
            recorder = CsvRecorder(config.output_csv)
            recorder.set_metadata(
                {
                    "sps": str(config.sps),
                    "gain": str(config.gain),
                    "wire_mode": config.wire_mode,
                    "channels": str(NUM_CHANNELS),
                }
            )
            sinks.add(recorder)
        if config.lsl.enabled:
            sinks.add(
                LslSink(
                    config.lsl.stream_name,
                    config.lsl.stream_type,
                    config.sps,
                    outlet_factory=outlet_factory,
                )
            )
        return cls(client, config, sinks=sinks, stop_event=stop_event)

    def stop(self) -> None:
        self.stop_event.set()

    def run(self) -> StreamStats:
        """
        Run the acquisition loop until the stop event is set or the sample
        limit is reached. The device is left in continuous read mode.
        """
        max_samples = self.config.max_samples
        interval_sec = max(float(self.config.host.stats_log_interval), 1.0)
        self.stats = StreamStats(started=time.monotonic())
        next_log = self.stats.started + interval_sec
        try:
            while not self.stop_event.is_set():
                try:
                    frame = self.client.read_next_sample()
                except TransportTimeout as exc:
                    self.stats.errors += 1
                    self.stats.timeouts += 1
                    logger.warning("Timed out waiting for sample: %s", exc)
                    continue
                except DecodeError as exc:
                    self.stats.errors += 1
                    logger.warning("Error decoding sample: %s", exc)
                    continue
                finally:
                    if time.monotonic() >= next_log:
                        self._log_stats()
                        next_log = time.monotonic() + interval_sec
                self.sinks.push(frame)
                self.stats.samples += 1
                if max_samples > 0 and self.stats.samples >= max_samples:
                    logger.info("Reached %d samples, breaking", max_samples)
                    break
            else:
                logger.info("Stop requested, breaking read loop")
        finally:
            self.stats.finished = time.monotonic()
            self.sinks.close()
            logger.info(
                "%d samples (%d errors) in %.3f seconds, or %.1f/s",
                self.stats.samples,
                self.stats.errors,
                self.stats.elapsed,
                self.stats.rate,
            )
        return self.stats

    def _log_stats(self) -> None:
        logger.info(
            "samples=%d errors=%d timeouts=%d rate=%.1f/s",
            self.stats.samples,
            self.stats.errors,
            self.stats.timeouts,
            self.stats.rate,
        )
