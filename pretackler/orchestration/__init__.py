"""Orchestration: dual-channel scheduling and batch coordination."""

from pretackler.orchestration.batch import BatchPlan, BatchRunner
from pretackler.orchestration.result import BatchResult
from pretackler.orchestration.scheduler import DualChannelScheduler, validate_allocation

__all__ = [
    "BatchRunner",
    "BatchPlan",
    "BatchResult",
    "DualChannelScheduler",
    "validate_allocation",
]
