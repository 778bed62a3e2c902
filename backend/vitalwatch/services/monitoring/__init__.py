"""Vital-sign monitoring core.

Readings flow through the validator and the threshold evaluator; abnormal
results become alerts through the alert manager, which notifies and
broadcasts. The risk scorer runs on demand or after ingestion.
"""

from importlib import import_module

__all__ = [
    "validate",
    "NormalizedReading",
    "evaluate",
    "Evaluation",
    "AlertCandidate",
    "ThresholdConfig",
    "DEFAULT_THRESHOLDS",
    "score",
    "RiskPrediction",
    "AlertManager",
    "NotificationDispatcher",
    "WebSocketBroadcaster",
    "MonitoringService",
]

_LAZY_IMPORTS = {
    "validate": ("vitalwatch.services.monitoring.validator", "validate"),
    "NormalizedReading": ("vitalwatch.services.monitoring.validator", "NormalizedReading"),
    "evaluate": ("vitalwatch.services.monitoring.evaluator", "evaluate"),
    "Evaluation": ("vitalwatch.services.monitoring.evaluator", "Evaluation"),
    "AlertCandidate": ("vitalwatch.services.monitoring.evaluator", "AlertCandidate"),
    "ThresholdConfig": ("vitalwatch.services.monitoring.thresholds", "ThresholdConfig"),
    "DEFAULT_THRESHOLDS": (
        "vitalwatch.services.monitoring.thresholds",
        "DEFAULT_THRESHOLDS",
    ),
    "score": ("vitalwatch.services.monitoring.risk", "score"),
    "RiskPrediction": ("vitalwatch.services.monitoring.risk", "RiskPrediction"),
    "AlertManager": ("vitalwatch.services.monitoring.alerts", "AlertManager"),
    "NotificationDispatcher": (
        "vitalwatch.services.monitoring.notifications",
        "NotificationDispatcher",
    ),
    "WebSocketBroadcaster": (
        "vitalwatch.services.monitoring.broadcaster",
        "WebSocketBroadcaster",
    ),
    "MonitoringService": ("vitalwatch.services.monitoring.pipeline", "MonitoringService"),
}


def __getattr__(name: str):
    target = _LAZY_IMPORTS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    return getattr(import_module(module_name), attr_name)
