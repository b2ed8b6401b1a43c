from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence

from .ads1299 import Gain, Speed
from .modes import WireMode

STREAM_WIRE_MODES = {WireMode.JSONLINES.value, WireMode.MSGPACK.value}


@dataclass
class LslConfig:
    enabled: bool = False
    stream_name: str = "HackEEG"
    stream_type: str = "EEG"


@dataclass
class HostRuntime:
    stats_log_interval: float = 10.0


@dataclass
class StreamConfig:
    sps: int = 500
    gain: int = 1
    wire_mode: str = "jsonlines"  # jsonlines | messagepack
    channel_test: bool = False
    reference_srb1: bool = False
    max_samples: int = 0  # 0 streams until interrupted
    quiet: bool = False
    output_csv: Path | None = None
    lsl: LslConfig = field(default_factory=LslConfig)
    host: HostRuntime = field(default_factory=HostRuntime)

    @property
    def wire_mode_enum(self) -> WireMode:
        return WireMode(self.wire_mode.lower())

    @property
    def gain_enum(self) -> Gain:
        return Gain.from_factor(self.gain)

    def validate(self) -> "StreamConfig":
        if self.wire_mode.lower() not in STREAM_WIRE_MODES:
            raise ValueError(f"Unsupported wire_mode '{self.wire_mode}'")
        Gain.from_factor(self.gain)
        Speed.from_sps(self.sps)
        if self.max_samples < 0:
            raise ValueError("max_samples must be zero or positive")
        return self


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> StreamConfig:
    """
    Load a stream configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["gain=4", "lsl.enabled=true", "lsl.stream_name=Lab1"]
    Without a path, the overrides are applied to the defaults.
    """
    data = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    lsl_data = merged.get("lsl") or {}
    host_data = merged.get("host") or {}
    config = StreamConfig(
        sps=int(merged.get("sps", 500)),
        gain=int(merged.get("gain", 1)),
        wire_mode=str(merged.get("wire_mode", "jsonlines")),
        channel_test=bool(merged.get("channel_test", False)),
        reference_srb1=bool(merged.get("reference_srb1", False)),
        max_samples=int(merged.get("max_samples", 0)),
        quiet=bool(merged.get("quiet", False)),
        output_csv=Path(merged["output_csv"]) if merged.get("output_csv") else None,
        lsl=LslConfig(
            enabled=bool(lsl_data.get("enabled", False)),
            stream_name=str(lsl_data.get("stream_name", "HackEEG")),
            stream_type=str(lsl_data.get("stream_type", "EEG")),
        ),
        host=HostRuntime(
            stats_log_interval=float(host_data.get("stats_log_interval", 10.0)),
        ),
    )
    return config.validate()


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
