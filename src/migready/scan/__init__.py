from migready.scan.models import ScanResult, ScanSummary
from migready.scan.orchestrator import ScanOrchestrator

__all__ = ["ScanOrchestrator", "ScanResult", "ScanSummary"]
