from __future__ import annotations

import csv
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TextIO

import typer

from .ads1299 import NUM_CHANNELS
from .frames import SampleFrame, record_fieldnames

logger = logging.getLogger(__name__)


class SampleSink(Protocol):
    def push(self, frame: SampleFrame) -> None:
        ...

    def close(self) -> None:
        ...


def stream_source_id(name: str, stream_type: str, channel_count: int = NUM_CHANNELS) -> str:
    """Stable LSL source id derived from name, type and channel count."""
    return uuid.uuid5(uuid.NAMESPACE_OID, f"{name}-{stream_type}-{channel_count}").hex


def open_lsl_outlet(
    name: str,
    stream_type: str,
    channel_count: int,
    nominal_rate: float,
    source_id: str,
) -> Any:
    try:
        import pylsl
    except ImportError as exc:  # pragma: no cover - depends on liblsl being present
        raise RuntimeError("pylsl is required for LSL streaming (pip install pylsl)") from exc
    info = pylsl.StreamInfo(
        name,
        stream_type,
        channel_count,
        nominal_rate,
        "int32",
        source_id,
    )
    return pylsl.StreamOutlet(info)


OutletFactory = Callable[[str, str, int, float, str], Any]


class LslSink:
    """Publishes each frame's channel values to a Lab Streaming Layer outlet."""

    def __init__(
        self,
        name: str,
        stream_type: str,
        nominal_rate: float,
        *,
        channel_count: int = NUM_CHANNELS,
        outlet_factory: OutletFactory = open_lsl_outlet,
    ) -> None:
        self.source_id = stream_source_id(name, stream_type, channel_count)
        self.outlet = outlet_factory(name, stream_type, channel_count, float(nominal_rate), self.source_id)
        logger.info(
            "Opened LSL outlet %s (type=%s channels=%d rate=%.1f id=%s)",
            name,
            stream_type,
            channel_count,
            nominal_rate,
            self.source_id,
        )

    def push(self, frame: SampleFrame) -> None:
        self.outlet.push_sample(frame.as_flat_samples(), float(frame.timestamp))

    def close(self) -> None:
        self.outlet = None


class CsvRecorder:
    """
    Lazily creates a CSV writer when the first frame arrives. Metadata set
    before that point is written as `#` comment lines above the header.
    """

    def __init__(self, path: Path):
        self.path = path
        self._handle: Optional[csv.DictWriter[str]] = None
        self._file_handle: Optional[TextIO] = None
        self._pending_metadata: List[str] = []

    def push(self, frame: SampleFrame) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = self.path.open("w", newline="", encoding="utf-8")
            for line in self._pending_metadata:
                self._file_handle.write(line + "\n")
            self._pending_metadata.clear()
            self._handle = csv.DictWriter(self._file_handle, fieldnames=record_fieldnames())
            self._handle.writeheader()
        self._handle.writerow(frame.as_record())

    def set_metadata(self, metadata: Dict[str, str]) -> None:
        if not metadata:
            return
        line = "# " + " ".join(f"{key}={value}" for key, value in metadata.items())
        if self._file_handle is None:
            self._pending_metadata.append(line)
            return
        self._file_handle.write(line + "\n")

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            self._handle = None


class ConsoleSink:
    def __init__(self, echo: Callable[[str], Any] = typer.echo):
        self._echo = echo

    def push(self, frame: SampleFrame) -> None:
        values = ", ".join(str(value) for value in frame.channels)
        self._echo(f"{frame.sample_number} @ {frame.timestamp}: [{values}]")

    def close(self) -> None:
        pass


class SinkFanout:
    """Forwards frames to every registered sink and closes them together."""

    def __init__(self, sinks: Sequence[SampleSink] = ()):
        self.sinks: List[SampleSink] = list(sinks)

    def add(self, sink: SampleSink) -> None:
        self.sinks.append(sink)

    def push(self, frame: SampleFrame) -> None:
        for sink in self.sinks:
            sink.push(frame)

    def close(self) -> None:
        for sink in self.sinks:
            try:
                sink.close()
            except Exception:
                logger.exception("Failed to close sink %s", type(sink).__name__)
