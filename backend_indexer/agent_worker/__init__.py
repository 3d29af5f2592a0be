"""
Indexing worker: cycle orchestrator and periodic runner.

The orchestrator performs one checkpointed catch-up pass; the runner
schedules it on an interval and never lets two passes overlap.
"""

from backend_indexer.agent_worker.orchestrator import (
    BatchReport,
    CycleOutcome,
    CycleReport,
    CycleState,
    IndexingOrchestrator,
    LogOutcome,
    LogStatus,
    plan_batches,
)
from backend_indexer.agent_worker.runner import (
    IndexerRunner,
    RunnerStats,
    build_orchestrator,
    run_periodic_indexer,
)

__all__ = [
    "BatchReport",
    "CycleOutcome",
    "CycleReport",
    "CycleState",
    "IndexerRunner",
    "IndexingOrchestrator",
    "LogOutcome",
    "LogStatus",
    "RunnerStats",
    "build_orchestrator",
    "plan_batches",
    "run_periodic_indexer",
]
