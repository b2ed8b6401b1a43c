from __future__ import annotations

from pathlib import Path

from fakes import FakeHackEEG, build_raw
from hackeeg.device.client import HackEEGClient
from hackeeg.device.config import load_config
from hackeeg.device.frames import encode_messagepack_frame
from hackeeg.device.modes import WireMode
from hackeeg.device.runner import StreamHost, configure_device
from hackeeg.device.sinks import ConsoleSink, CsvRecorder, LslSink, SinkFanout


class CollectingSink:
    def __init__(self):
        self.frames = []
        self.closed = False

    def push(self, frame):
        self.frames.append(frame)

    def close(self):
        self.closed = True


def streaming_client(device: FakeHackEEG, overrides=()) -> HackEEGClient:
    client = HackEEGClient(device)
    configure_device(client, load_config(overrides=list(overrides)))
    return client


def test_configure_device_sequence(fake_device, no_sleep):
    client = HackEEGClient(fake_device)
    mark = len(fake_device.log)
    configure_device(client, load_config(overrides=["sps=250", "gain=2", "reference_srb1=true"]))
    names = [entry[1] for entry in fake_device.log[mark:] if entry[0] == "json"]
    assert names[:3] == ["boardledon", "boardledoff", "wreg"]
    assert names[-2:] == ["start", "rdatac"]
    wregs = [entry[2] for entry in fake_device.log[mark:] if entry[0] == "json" and entry[1] == "wreg"]
    assert wregs[0] == (0x01, 0x96)
    assert wregs[1:9] == [(0x04 + n, 0x81) for n in range(1, 9)]
    assert wregs[9:17] == [(0x04 + n, 0x10) for n in range(1, 9)]
    assert wregs[-1] == (0x15, 0x20)
    assert client.continuous_read
    assert client.mode is WireMode.JSONLINES


def test_configure_device_messagepack(fake_device, no_sleep):
    client = streaming_client(fake_device, ["wire_mode=messagepack", "channel_test=true"])
    assert client.mode is WireMode.MSGPACK
    assert fake_device.mode == "messagepack"
    assert "messagepack" in fake_device.json_commands()


def test_run_stops_at_sample_limit(fake_device, no_sleep):
    fake_device.pending_samples = [build_raw(sample_number=n) for n in range(5)]
    client = streaming_client(fake_device, ["max_samples=3"])
    sink = CollectingSink()
    host = StreamHost(client, load_config(overrides=["max_samples=3"]), sinks=SinkFanout([sink]))
    stats = host.run()
    assert stats.samples == 3
    assert stats.errors == 0
    assert [frame.sample_number for frame in sink.frames] == [0, 1, 2]
    assert sink.closed
    assert stats.as_dict()["samples"] == 3


def test_run_counts_errors_and_continues(fake_device, no_sleep):
    client = streaming_client(fake_device)
    fake_device.feed(b"garbage\r\n")
    fake_device.queue_sample(build_raw(sample_number=9))
    sink = CollectingSink()
    host = StreamHost(client, load_config(overrides=["max_samples=1"]), sinks=SinkFanout([sink]))
    stats = host.run()
    assert stats.samples == 1
    assert stats.errors == 1
    assert stats.timeouts == 0
    assert sink.frames[0].sample_number == 9


def test_run_exits_when_stop_requested(fake_device, no_sleep):
    client = streaming_client(fake_device, ["wire_mode=messagepack"])
    fake_device.queue_sample(build_raw(sample_number=1))
    sink = CollectingSink()
    host = StreamHost(client, load_config(), sinks=SinkFanout([sink]))
    fake_device.on_idle = host.stop
    stats = host.run()
    assert stats.samples == 1
    assert stats.timeouts == 1
    assert sink.closed
    assert client.continuous_read


def test_run_counts_misaligned_messagepack_frames(fake_device, no_sleep):
    client = streaming_client(fake_device, ["wire_mode=messagepack"])
    frames = b"".join(encode_messagepack_frame(build_raw(sample_number=n)) for n in (1, 2))
    # tail of a frame left over from an earlier short read
    fake_device.feed(frames[10:44] + frames)
    sink = CollectingSink()
    host = StreamHost(client, load_config(), sinks=SinkFanout([sink]))
    fake_device.on_idle = host.stop
    stats = host.run()
    assert stats.samples == 0
    assert stats.errors == 3
    assert stats.timeouts == 1
    assert sink.frames == []


def test_from_config_builds_sinks(fake_device, tmp_path: Path, no_sleep):
    client = streaming_client(fake_device)
    outlets = []

    def factory(*args):
        outlets.append(args)
        return object()

    cfg = load_config(overrides=["quiet=true", "lsl.enabled=true", "lsl.stream_name=Lab1"])
    cfg.output_csv = tmp_path / "rec.csv"
    host = StreamHost.from_config(client, cfg, outlet_factory=factory)
    kinds = [type(sink) for sink in host.sinks.sinks]
    assert kinds == [CsvRecorder, LslSink]
    assert outlets[0][:4] == ("Lab1", "EEG", 8, 500.0)

    loud = StreamHost.from_config(client, load_config())
    assert [type(sink) for sink in loud.sinks.sinks] == [ConsoleSink]
