"""Threshold bands and the defaults applied when a patient has no overrides."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Optional


@dataclass(frozen=True)
class Band:
    """Warning band [min, max] nested inside a wider critical band.

    Any bound may be None, meaning the vital has no limit on that side.
    Comparisons are strict: a value equal to a bound is inside the band.
    """

    min: Optional[float] = None
    max: Optional[float] = None
    critical_min: Optional[float] = None
    critical_max: Optional[float] = None


@dataclass(frozen=True)
class BloodPressureLimits:
    systolic_max: float = 140
    diastolic_max: float = 90
    systolic_critical: float = 180
    diastolic_critical: float = 120


@dataclass(frozen=True)
class ThresholdConfig:
    heart_rate: Band = field(
        default_factory=lambda: Band(min=60, max=100, critical_min=40, critical_max=120)
    )
    temperature: Band = field(
        default_factory=lambda: Band(
            min=36.1, max=37.8, critical_min=35, critical_max=38.5
        )
    )
    spo2: Band = field(default_factory=lambda: Band(min=95, critical_min=90))
    blood_pressure: BloodPressureLimits = field(default_factory=BloodPressureLimits)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_THRESHOLDS = ThresholdConfig()

_BAND_FIELDS = ("heart_rate", "temperature", "spo2")


def merge_thresholds(
    overrides: Optional[Mapping[str, Any]],
    base: ThresholdConfig = DEFAULT_THRESHOLDS,
) -> ThresholdConfig:
    """Overlay a partial override document on ``base``.

    ``overrides`` uses the same nested shape as ``ThresholdConfig.to_dict()``.
    Missing groups, missing keys and explicit ``None`` values all keep the
    base value, so a null or empty config yields the defaults.
    """
    if not overrides:
        return base

    changes: dict[str, Any] = {}
    for name in (*_BAND_FIELDS, "blood_pressure"):
        group = overrides.get(name)
        if not group:
            continue
        current = getattr(base, name)
        patch = {
            key: float(value)
            for key, value in group.items()
            if value is not None and hasattr(current, key)
        }
        if patch:
            changes[name] = replace(current, **patch)
    return replace(base, **changes) if changes else base


def ordering_problems(config: ThresholdConfig) -> list[str]:
    """Describe bands whose bounds are out of order after merging."""
    problems = []
    for name in _BAND_FIELDS:
        band: Band = getattr(config, name)
        bounds = [
            value
            for value in (band.critical_min, band.min, band.max, band.critical_max)
            if value is not None
        ]
        if bounds != sorted(bounds):
            problems.append(f"{name}: expected critical_min <= min <= max <= critical_max")
    bp = config.blood_pressure
    if bp.systolic_critical < bp.systolic_max:
        problems.append("blood_pressure: systolic_critical below systolic_max")
    if bp.diastolic_critical < bp.diastolic_max:
        problems.append("blood_pressure: diastolic_critical below diastolic_max")
    return problems
