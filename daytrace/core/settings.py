"""
Pipeline settings
Thresholds used by segmentation, scoring and reconciliation, read from the [pipeline] config section
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from daytrace.core.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineSettings:
    """Tunable thresholds; defaults match the shipped config.toml"""

    timezone: str = "UTC"
    # place matching
    place_radius_m: float = 150.0
    place_match_threshold: float = 0.7
    # segmentation
    merge_gap_seconds: int = 300
    merge_distance_m: float = 200.0
    min_dwell_seconds: int = 300
    moving_speed_mps: float = 1.0
    # reconciliation
    trim_floor_seconds: int = 60
    extension_window_seconds: int = 60

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PipelineSettings":
        """Build settings from a config mapping, ignoring unknown keys"""
        data = data or {}
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown pipeline setting: {key}")
                continue
            values[key] = value
        if not values.get("timezone", "UTC"):
            values.pop("timezone")
        return cls(**values)

    @classmethod
    def from_config(cls, config_loader=None) -> "PipelineSettings":
        if config_loader is None:
            from daytrace.config.loader import get_config

            config_loader = get_config()
        return cls.from_dict(config_loader.get("pipeline", {}))


DEFAULT_SETTINGS = PipelineSettings()
