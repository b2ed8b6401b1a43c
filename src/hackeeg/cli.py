"""Command line interface for the hackeeg package."""
from __future__ import annotations

import logging
import signal
from pathlib import Path
from typing import List, Optional

import typer

from .device.client import HackEEGClient, SerialSettings
from .device.config import load_config
from .device.errors import HackEEGError
from .device.runner import StreamHost, configure_device
from .plotting import plot_recording

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s][%(threadName)s][%(name)s][%(levelname)s] %(message)s"

app = typer.Typer(add_completion=False, help="HackEEG host utilities.")


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity (-v debug)."),
) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


@app.command()
def stream(
    port: str = typer.Argument(..., help="Serial device path of the board."),
    baudrate: int = typer.Option(115200, "--baud", help="Serial baudrate."),
    timeout: float = typer.Option(0.5, "--timeout", help="Serial read timeout (seconds)."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON stream configuration."),
    override: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set gain=4 --set lsl.stream_name=Lab1",
    ),
    sps: Optional[int] = typer.Option(None, "--sps", "-s", help="Samples per second."),
    gain: Optional[int] = typer.Option(None, "--gain", "-g", help="ADS1299 gain for all channels."),
    messagepack: bool = typer.Option(False, "--messagepack", "-M", help="Stream samples as MessagePack."),
    channel_test: bool = typer.Option(False, "--channel-test", "-T", help="Route channels to internal test signals."),
    lsl: bool = typer.Option(False, "--lsl", "-L", help="Publish samples to an LSL stream."),
    lsl_stream_name: Optional[str] = typer.Option(None, "--lsl-stream-name", "-N", help="Name of the LSL stream."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not print sample data."),
    samples: Optional[int] = typer.Option(None, "--samples", "-S", help="Stop after this many samples."),
    output_csv: Optional[Path] = typer.Option(None, "--csv", help="Record samples to this CSV file."),
) -> None:
    """Configure the board and stream samples until Ctrl+C or the sample limit."""

    flag_overrides: List[str] = []
    if sps is not None:
        flag_overrides.append(f"sps={sps}")
    if gain is not None:
        flag_overrides.append(f"gain={gain}")
    if messagepack:
        flag_overrides.append("wire_mode=messagepack")
    if channel_test:
        flag_overrides.append("channel_test=true")
    if lsl:
        flag_overrides.append("lsl.enabled=true")
    if lsl_stream_name:
        flag_overrides.append(f"lsl.stream_name={lsl_stream_name}")
    if quiet:
        flag_overrides.append("quiet=true")
    if samples is not None:
        flag_overrides.append(f"max_samples={samples}")
    try:
        cfg = load_config(config_path, (override or []) + flag_overrides)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if output_csv is not None:
        cfg.output_csv = output_csv

    settings = SerialSettings(port=port, baudrate=baudrate, timeout=timeout)
    try:
        with HackEEGClient.open(settings) as client:
            configure_device(client, cfg)
            host = StreamHost.from_config(client, cfg)
            signal.signal(signal.SIGINT, lambda *_: host.stop())
            host.run()
    except (HackEEGError, RuntimeError) as exc:
        logger.error("Streaming failed: %s", exc)
        raise typer.Exit(code=1) from exc


@app.command()
def blink(
    port: str = typer.Argument(..., help="Serial device path of the board."),
    baudrate: int = typer.Option(115200, "--baud", help="Serial baudrate."),
    timeout: float = typer.Option(0.5, "--timeout", help="Serial read timeout (seconds)."),
    count: int = typer.Option(10, "--count", "-n", help="Number of blinks."),
) -> None:
    """Blink the board LED to check the connection."""

    settings = SerialSettings(port=port, baudrate=baudrate, timeout=timeout)
    try:
        with HackEEGClient.open(settings) as client:
            client.blink_test(count)
    except HackEEGError as exc:
        logger.error("Blink test failed: %s", exc)
        raise typer.Exit(code=1) from exc


@app.command()
def plot(
    input_path: Path = typer.Option(..., "--in", help="Recorded sample CSV.", exists=True, readable=True),
    out: Path = typer.Option(Path("recording.png"), "--out", help="Output PNG."),
    channels: Optional[List[int]] = typer.Option(None, "--channel", help="Channel to plot (repeatable)."),
) -> None:
    """Plot the channels of a recorded CSV."""

    try:
        figure_path = plot_recording(input_path, out, channels)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--in") from exc
    except RuntimeError as exc:
        typer.echo(f"[warning] plotting skipped: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Plot written to {figure_path}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
