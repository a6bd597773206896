"""
Capture - ingestion of described screenshots into memory stores.
"""

from glimpse.capture.ingest import CaptureIngestor

__all__ = ["CaptureIngestor"]
