"""Plotting helpers for recorded sample CSVs."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

from .device.ads1299 import NUM_CHANNELS


def load_recording(csv_path: Path) -> pd.DataFrame:
    """Load a CSV written by the stream recorder, skipping `#` metadata lines."""
    data = pd.read_csv(csv_path, comment="#")
    required = {"timestamp", "sample_number"}
    missing = required - set(data.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")
    return data


def plot_recording(
    csv_path: Path,
    output_path: Path,
    channels: Optional[Sequence[int]] = None,
) -> Path:
    """Render one stacked trace per channel against the device timestamp."""
    data = load_recording(csv_path)
    selected = list(channels) if channels else list(range(1, NUM_CHANNELS + 1))
    columns = [f"ch{idx}" for idx in selected]
    unknown = [column for column in columns if column not in data.columns]
    if unknown:
        raise ValueError(f"Recording has no column(s) {unknown}")

    plt = _require_matplotlib()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig, axes = plt.subplots(len(columns), 1, figsize=(11, 1.6 * len(columns) + 1), sharex=True, squeeze=False)
    timestamps = data["timestamp"].to_numpy(dtype=float)
    x = (timestamps - timestamps[0]) / 1e6 if timestamps.size else timestamps

    for axis, column in zip(axes[:, 0], columns):
        values = data[column].to_numpy(dtype=float)
        axis.plot(x, values - np.mean(values) if values.size else values, linewidth=0.8)
        axis.set_ylabel(column)
    axes[-1, 0].set_xlabel("Time [s]")
    axes[0, 0].set_title(f"{csv_path.name} ({len(data)} samples)")

    fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    return output_path


def _require_matplotlib() -> Any:
    home_cache = Path.home() / ".cache" / "fontconfig"
    try:
        home_cache.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError("matplotlib cannot write font cache in this environment") from exc

    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib initialisation failed: {exc}") from exc
    return plt
