"""Workers package initialization."""
from tierscan.workers.scan_orchestrator import ScanOrchestrator, ScanResult

__all__ = ["ScanOrchestrator", "ScanResult"]
