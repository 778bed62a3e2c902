"""VitalWatch: vital-sign ingestion, threshold alerting and risk scoring."""
