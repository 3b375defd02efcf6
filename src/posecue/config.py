"""Pipeline configuration, loaded from and saved to YAML.

Every section is optional in the file; missing values keep their defaults.

    detector:
      stride: 8
      noise_floor: 50
      skin: {min_red: 95, min_green: 40, min_blue: 20, min_red_green_gap: 15}
      template: {upper_offset_y: 80, hip_offset_y: 200, ...}
    thresholds: {landmark: 0.3, knee_visible: 0.2, ...}
    windows: {hand: 30, mouth: 20, eye: 10, body: 20}
    malformed_budget: null
    server: {host: 0.0.0.0, port: 8765, camera_index: 0}
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from posecue.classifier import Thresholds
from posecue.errors import ConfigError
from posecue.history import WindowCapacities
from posecue.regions import RegionTemplate, SkinThresholds


@dataclass(frozen=True)
class DetectorConfig:
    stride: int = 8
    noise_floor: int = 50
    skin: SkinThresholds = field(default_factory=SkinThresholds)
    template: RegionTemplate = field(default_factory=RegionTemplate)


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8765
    camera_index: int = 0
    camera_width: int = 640
    camera_height: int = 480


@dataclass(frozen=True)
class PipelineConfig:
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)
    windows: WindowCapacities = field(default_factory=WindowCapacities)
    # Consecutive malformed frames tolerated before halting; None = no limit
    malformed_budget: Optional[int] = None
    server: ServerConfig = field(default_factory=ServerConfig)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> PipelineConfig:
        config = _build(cls, data or {}, "config")
        if config.malformed_budget is not None and config.malformed_budget < 0:
            raise ConfigError("malformed_budget must be >= 0 or null")
        for name, capacity in asdict(config.windows).items():
            if capacity < 1:
                raise ConfigError(f"windows.{name} must be >= 1, got {capacity}")
        if config.detector.stride < 1:
            raise ConfigError(f"detector.stride must be >= 1, got {config.detector.stride}")
        return config

    @classmethod
    def from_yaml(cls, path: str | Path) -> PipelineConfig:
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"invalid YAML in {path}: {e}") from e
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        return cls.from_dict(data)

    def to_yaml(self, path: str | Path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def _build(cls: type, data: Any, where: str):
    """Recursively build a dataclass from a mapping, rejecting unknown keys."""
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: expected a mapping, got {type(data).__name__}")

    known = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        raise ConfigError(f"{where}: unknown keys {sorted(unknown)}")

    kwargs = {}
    defaults = cls()
    for name, value in data.items():
        default = getattr(defaults, name)
        if hasattr(type(default), "__dataclass_fields__"):
            kwargs[name] = _build(type(default), value, f"{where}.{name}")
        elif default is None:
            # only optional ints (malformed_budget) default to None
            kwargs[name] = None if value is None else _coerce(int, value, f"{where}.{name}")
        else:
            kwargs[name] = _coerce(type(default), value, f"{where}.{name}")
    return cls(**kwargs)


def _coerce(target: type, value: Any, where: str):
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigError(f"{where}: unsupported value {value!r}")
    if target is int and isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"{where}: expected an integer, got {value!r}")
    try:
        return target(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}: {e}") from e
