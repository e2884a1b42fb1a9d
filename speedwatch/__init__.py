"""
speedwatch - telemetry ingestion and incremental sync service.
"""

__version__ = "1.0.0"
