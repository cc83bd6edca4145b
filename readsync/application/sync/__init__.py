"""Sync orchestration use cases."""

from readsync.application.sync.optimistic import OptimisticMutation, run_optimistic
from readsync.application.sync.orchestrator import SyncContext, SyncOrchestrator
from readsync.application.sync.results import MutationResult, SyncResult, SyncState, SyncStatus

__all__ = [
    "MutationResult",
    "OptimisticMutation",
    "SyncContext",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    "run_optimistic",
]
