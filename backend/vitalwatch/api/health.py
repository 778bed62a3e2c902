from fastapi import APIRouter, Depends, Response

from vitalwatch.api.deps import get_broadcaster
from vitalwatch.config import settings
from vitalwatch.services.monitoring.alerts import AlertManager
from vitalwatch.services.monitoring.broadcaster import ALERTS_TOPIC

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "service": "vitalwatch-api",
        "version": settings.app_version,
        "storage": settings.storage_backend,
    }


@router.get("/")
async def root():
    """Root endpoint with API information."""
    return {"message": "Welcome to VitalWatch API", "docs": "/docs", "health": "/health"}


@router.get("/metrics")
async def metrics(broadcaster=Depends(get_broadcaster)):
    """Prometheus-style metrics endpoint."""
    counters = AlertManager.get_global_event_counters()
    lines = [
        "# HELP vitalwatch_alert_events_total Count of alert lifecycle events.",
        "# TYPE vitalwatch_alert_events_total counter",
    ]
    if counters:
        for event in sorted(counters):
            lines.append(f'vitalwatch_alert_events_total{{event="{event}"}} {counters[event]}')
    else:
        lines.append('vitalwatch_alert_events_total{event="none"} 0')
    if hasattr(broadcaster, "subscriber_count"):
        lines.extend(
            [
                "# HELP vitalwatch_alert_subscribers Sockets following all alerts.",
                "# TYPE vitalwatch_alert_subscribers gauge",
                f"vitalwatch_alert_subscribers {broadcaster.subscriber_count(ALERTS_TOPIC)}",
            ]
        )
    body = "\n".join(lines) + "\n"
    return Response(body, media_type="text/plain; version=0.0.4")
