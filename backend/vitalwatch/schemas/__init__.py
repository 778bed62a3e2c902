from vitalwatch.schemas.alerts import (
    AcknowledgeRequest,
    AlertResponse,
    AlertStatistics,
    EmergencyRequest,
    EscalateRequest,
    ResolveRequest,
)
from vitalwatch.schemas.devices import (
    DeviceCreate,
    DeviceListResponse,
    DeviceResponse,
    DeviceStatsResponse,
    DeviceStatusUpdate,
    DeviceUpdate,
)
from vitalwatch.schemas.predictions import (
    AnomalyResponse,
    RiskPredictionResponse,
    RiskRequest,
    RiskResponse,
)
from vitalwatch.schemas.readings import (
    BatchIngestRequest,
    BatchIngestResponse,
    IngestResponse,
    ReadingResponse,
    ReadingSummaryResponse,
)
from vitalwatch.schemas.thresholds import (
    ContactResponse,
    ContactSettings,
    ThresholdResponse,
    ThresholdSettings,
)

__all__ = [
    # Alerts
    "AlertResponse",
    "AcknowledgeRequest",
    "ResolveRequest",
    "EscalateRequest",
    "EmergencyRequest",
    "AlertStatistics",
    # Devices
    "DeviceCreate",
    "DeviceUpdate",
    "DeviceStatusUpdate",
    "DeviceResponse",
    "DeviceListResponse",
    "DeviceStatsResponse",
    # Readings
    "ReadingResponse",
    "IngestResponse",
    "BatchIngestRequest",
    "BatchIngestResponse",
    "ReadingSummaryResponse",
    # Thresholds
    "ThresholdSettings",
    "ThresholdResponse",
    "ContactSettings",
    "ContactResponse",
    # Predictions
    "RiskRequest",
    "RiskResponse",
    "RiskPredictionResponse",
    "AnomalyResponse",
]
