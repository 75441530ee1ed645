"""Activity baselines, regional surge detection and per-source anomalies."""

from src.activity.detector import (
    ActivityLevel,
    RegionActivity,
    RegionStatus,
    SurgeDetector,
    SurgeThresholds,
    VsNormal,
    classify,
)
from src.activity.source_activity import SourceActivity, calculate_source_activity

__all__ = [
    "ActivityLevel",
    "RegionActivity",
    "RegionStatus",
    "SourceActivity",
    "SurgeDetector",
    "SurgeThresholds",
    "VsNormal",
    "calculate_source_activity",
    "classify",
]
