"""Memory package for per-run shared state."""

from memory.shared_state import NOT_FOUND, SharedStateKeys, SharedStateScopes, SharedStateStore

__all__ = [
    "NOT_FOUND",
    "SharedStateKeys",
    "SharedStateScopes",
    "SharedStateStore",
]
