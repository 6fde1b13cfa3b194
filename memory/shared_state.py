"""Scoped shared state for a single workflow run.

Stages read and write namespaced key/value pairs through this store. Writes
are queued and only become visible when the engine commits them at the end
of a superstep, so sibling stages running in the same superstep always see
the same committed snapshot.
"""

import threading
from typing import Any, Dict, List, Tuple

from loguru import logger


class _NotFound:
    """Sentinel type returned for keys that were never written."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


class SharedStateScopes:
    """Scope names used by the contract pipeline."""
    CONTRACT_ANALYSIS = "contract-analysis"
    ORIGINAL_CONTRACT = "original-contract"
    ORIGINAL_RISK = "original-risk"
    NEGOTIATION = "negotiation"
    NEGOTIATION_HISTORY = "negotiation-history"
    EVALUATION_HISTORY = "evaluation-history"


class SharedStateKeys:
    """Keys used within the pipeline scopes."""
    CONTRACT = "contract"
    ORIGINAL_CONTRACT = "original_contract"
    ORIGINAL_RISK = "original_risk"
    CURRENT_RISK = "current_risk"
    ITERATION = "iteration"
    PROPOSALS = "proposals"
    EVALUATIONS = "evaluations"


class SharedStateStore:
    """In-memory scoped key/value store with superstep commits.

    Reads never take a lock: committed scopes are replaced wholesale on
    commit, so a reader always sees a complete dictionary. Queued writes are
    applied in queue order, one scope lock at a time.
    """

    def __init__(self):
        self._committed: Dict[str, Dict[str, Any]] = {}
        self._pending: List[Tuple[str, str, Any]] = []
        self._pending_lock = threading.Lock()
        self._scope_locks: Dict[str, threading.Lock] = {}
        self._scope_locks_guard = threading.Lock()

    def read(self, scope: str, key: str) -> Any:
        """Read a committed value.

        Args:
            scope: Scope name
            key: Key within the scope

        Returns:
            The committed value, or ``NOT_FOUND`` if the key was never committed
        """
        return self._committed.get(scope, {}).get(key, NOT_FOUND)

    def queue_write(self, scope: str, key: str, value: Any) -> None:
        """Queue a value to be committed at the next checkpoint.

        Args:
            scope: Scope name
            key: Key within the scope
            value: Value to store
        """
        with self._pending_lock:
            self._pending.append((scope, key, value))

    def commit(self) -> int:
        """Apply all queued writes.

        Returns:
            Number of writes applied
        """
        with self._pending_lock:
            pending, self._pending = self._pending, []

        for scope, key, value in pending:
            with self._lock_for(scope):
                updated = dict(self._committed.get(scope, {}))
                updated[key] = value
                self._committed[scope] = updated

        if pending:
            logger.debug(f"Committed {len(pending)} shared state update(s)")
        return len(pending)

    def discard_pending(self) -> int:
        """Drop queued writes without applying them (used when a run aborts)."""
        with self._pending_lock:
            dropped = len(self._pending)
            self._pending = []
        return dropped

    def scopes(self) -> List[str]:
        return list(self._committed)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Copy of the committed state, one dictionary per scope."""
        return {scope: dict(values) for scope, values in self._committed.items()}

    def _lock_for(self, scope: str) -> threading.Lock:
        with self._scope_locks_guard:
            lock = self._scope_locks.get(scope)
            if lock is None:
                lock = threading.Lock()
                self._scope_locks[scope] = lock
            return lock
