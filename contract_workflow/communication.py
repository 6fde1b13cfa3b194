"""Output sinks for workflow runs.

The engine hands every terminal and intermediate-visible output to the
run's sink. Presentation (console, HTTP polling) is up to the host that
picks the sink.
"""

import threading
from typing import Any, Callable, List, Optional, Protocol

from loguru import logger

from contract_workflow.models import FinalDecision


class OutputSink(Protocol):
    def emit(self, value: Any) -> None:
        ...


def describe_output(value: Any) -> str:
    """One-line description of an output for logs and progress lists."""
    if isinstance(value, FinalDecision):
        return (
            f"Final decision: {value.decision} for {value.contract_info.supplier_name} "
            f"(risk score {value.final_risk_score})"
        )
    return str(value)


class LoggingOutputSink:
    """Writes outputs to the application log."""

    def __init__(self, level: str = "INFO"):
        self.level = level

    def emit(self, value: Any) -> None:
        logger.log(self.level, describe_output(value))


class CollectingOutputSink:
    """Keeps every output in memory, optionally forwarding to a callback."""

    def __init__(self, on_emit: Optional[Callable[[Any], None]] = None):
        self._outputs: List[Any] = []
        self._lock = threading.Lock()
        self._on_emit = on_emit

    def emit(self, value: Any) -> None:
        with self._lock:
            self._outputs.append(value)
        if self._on_emit is not None:
            self._on_emit(value)

    @property
    def outputs(self) -> List[Any]:
        with self._lock:
            return list(self._outputs)

    def messages(self) -> List[str]:
        return [describe_output(value) for value in self.outputs]

    def final_decisions(self) -> List[FinalDecision]:
        return [value for value in self.outputs if isinstance(value, FinalDecision)]
