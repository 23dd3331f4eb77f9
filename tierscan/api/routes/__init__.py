"""API routes package initialization."""
from tierscan.api.routes import health, scan, thresholds

__all__ = ["health", "scan", "thresholds"]
