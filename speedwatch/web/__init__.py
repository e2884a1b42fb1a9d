"""
HTTP surface (FastAPI) for telemetry ingestion and sync.
"""
