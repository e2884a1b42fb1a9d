"""
Service layer for the telemetry backend.
"""
