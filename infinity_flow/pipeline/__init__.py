"""
Infinity Flow Pipeline Module
=============================

Staged, resumable orchestration of the imputation pipeline:

subsample -> transform -> fit -> predict -> embed -> export -> plot
-> background correction -> plot (background corrected)

Every stage reads its inputs from, and writes its artifacts to, the
intermediary directory, so an interrupted run resumes by re-invoking it
with the same intermediary root.

Components:
    - PipelineOrchestrator: Main orchestration class
    - CheckpointManager: Run journal
    - PipelineContext: Shared execution context
    - TimingAggregator: Per-algorithm fit/predict timings
"""

from .checkpoint import CheckpointManager
from .context import PipelineContext
from .orchestrator import PipelineOrchestrator, PipelineResult
from .timing import TimingAggregator

__all__ = [
    "CheckpointManager",
    "PipelineContext",
    "PipelineOrchestrator",
    "PipelineResult",
    "TimingAggregator",
]
