"""Tidy-data pipeline for Aleutian Islands harbor seal satellite telemetry."""
