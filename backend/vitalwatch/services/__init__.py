"""Business logic services for VitalWatch.

This package intentionally avoids eager imports to prevent circular import
chains during application startup.
"""

from importlib import import_module

__all__ = [
    # Stores
    "ReadingStore",
    "AlertStore",
    "ThresholdStore",
    "DeviceStore",
    "SQLReadingStore",
    "SQLAlertStore",
    "SQLThresholdStore",
    "SQLDeviceStore",
    "InMemoryReadingStore",
    "InMemoryAlertStore",
    "InMemoryThresholdStore",
    "InMemoryDeviceStore",
    # Monitoring
    "AlertManager",
    "MonitoringService",
    "NotificationDispatcher",
    "WebSocketBroadcaster",
]

_LAZY_IMPORTS = {
    "ReadingStore": ("vitalwatch.services.stores", "ReadingStore"),
    "AlertStore": ("vitalwatch.services.stores", "AlertStore"),
    "ThresholdStore": ("vitalwatch.services.stores", "ThresholdStore"),
    "DeviceStore": ("vitalwatch.services.stores", "DeviceStore"),
    "SQLReadingStore": ("vitalwatch.services.stores", "SQLReadingStore"),
    "SQLAlertStore": ("vitalwatch.services.stores", "SQLAlertStore"),
    "SQLThresholdStore": ("vitalwatch.services.stores", "SQLThresholdStore"),
    "SQLDeviceStore": ("vitalwatch.services.stores", "SQLDeviceStore"),
    "InMemoryReadingStore": ("vitalwatch.services.stores", "InMemoryReadingStore"),
    "InMemoryAlertStore": ("vitalwatch.services.stores", "InMemoryAlertStore"),
    "InMemoryThresholdStore": ("vitalwatch.services.stores", "InMemoryThresholdStore"),
    "InMemoryDeviceStore": ("vitalwatch.services.stores", "InMemoryDeviceStore"),
    "AlertManager": ("vitalwatch.services.monitoring.alerts", "AlertManager"),
    "MonitoringService": ("vitalwatch.services.monitoring.pipeline", "MonitoringService"),
    "NotificationDispatcher": (
        "vitalwatch.services.monitoring.notifications",
        "NotificationDispatcher",
    ),
    "WebSocketBroadcaster": (
        "vitalwatch.services.monitoring.broadcaster",
        "WebSocketBroadcaster",
    ),
}


def __getattr__(name: str):
    target = _LAZY_IMPORTS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    return getattr(import_module(module_name), attr_name)
