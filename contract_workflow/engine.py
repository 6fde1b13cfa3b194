"""
Workflow Engine - superstep scheduler for ``WorkflowGraph``.

Each superstep runs every ready invocation concurrently, one asyncio task
per invocation. When all tasks of the step have finished, queued shared
state writes are committed and the outgoing edges of every completed node
are evaluated in ready order, producing the ready set of the next step.

Fan-in targets wait in a pending-join table until every declared source
has delivered an output. The engine never bounds loops itself; the stages
of a loop decide through their outputs whether the loop-back edge fires,
and ``max_supersteps`` only guards against a runaway graph.
"""

import asyncio
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from msgspec import Struct

from contract_workflow.communication import OutputSink, LoggingOutputSink
from contract_workflow.error_handling import (
    ConditionalEdgeConflictError,
    StageExecutionError,
    WorkflowCancelledError,
    WorkflowFatalError,
    WorkflowStalledError,
)
from contract_workflow.executor import WorkflowContext
from contract_workflow.graph import Edge, EdgeKind, WorkflowGraph
from contract_workflow.logging_config import get_run_logger
from contract_workflow.models import StageTrace
from memory.shared_state import SharedStateStore


DEFAULT_MAX_SUPERSTEPS = 100


class CancellationToken:
    """Cancellation signal shared by every stage of a run."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class WorkflowResult(Struct, kw_only=True):
    """Outcome of a completed run."""
    run_id: str
    output: Any
    output_stage_id: str
    intermediate_outputs: List[Any]
    traces: List[StageTrace]
    supersteps: int
    duration_seconds: float


class _RunState:
    """Mutable bookkeeping of a single run."""

    def __init__(self, run_id: str, state: SharedStateStore, cancellation: CancellationToken):
        self.run_id = run_id
        self.state = state
        self.cancellation = cancellation
        self.traces: List[StageTrace] = []
        self.intermediate_outputs: List[Any] = []
        # (fan-in edge index) -> {source id: output}
        self.pending_joins: Dict[int, Dict[str, Any]] = {}


class WorkflowEngine:
    """Executes a ``WorkflowGraph`` from its entry node to a terminal output."""

    def __init__(
        self,
        graph: WorkflowGraph,
        output_sink: Optional[OutputSink] = None,
        max_supersteps: int = DEFAULT_MAX_SUPERSTEPS
    ):
        """Initialize the engine.

        Args:
            graph: Validated graph to execute
            output_sink: Receives intermediate and terminal outputs
            max_supersteps: Upper bound on supersteps per run
        """
        self.graph = graph
        self.output_sink = output_sink or LoggingOutputSink()
        self.max_supersteps = max_supersteps
        self._edge_index = {id(edge): index for index, edge in enumerate(graph.edges)}

    async def run(
        self,
        message: Any,
        run_id: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
        state: Optional[SharedStateStore] = None
    ) -> WorkflowResult:
        """Run the graph on ``message``.

        Args:
            message: Input of the entry node
            run_id: Identifier of the run (generated if omitted)
            cancellation: Token that aborts the run when cancelled
            state: Shared state store (a fresh one if omitted)

        Returns:
            WorkflowResult carrying the terminal output

        Raises:
            WorkflowCancelledError: If the token is cancelled before completion
            StageExecutionError: If a stage raises
            ConditionalEdgeConflictError: If a conditional switch is ambiguous
            WorkflowStalledError: If the run ends without a terminal output
        """
        run_id = run_id or str(uuid.uuid4())
        cancellation = cancellation or CancellationToken()
        run = _RunState(run_id, state or SharedStateStore(), cancellation)
        run_logger = get_run_logger(run_id)
        started = time.time()

        run_logger.info(
            f"Starting workflow '{self.graph.name}'",
            entry=self.graph.entry_id,
            max_supersteps=self.max_supersteps
        )

        ready: List[Tuple[str, Any]] = [(self.graph.entry_id, message)]
        superstep = 0

        try:
            while ready:
                if cancellation.is_cancelled:
                    raise WorkflowCancelledError(self._cancel_message(cancellation))

                superstep += 1
                if superstep > self.max_supersteps:
                    raise WorkflowStalledError(
                        f"Workflow '{self.graph.name}' exceeded {self.max_supersteps} supersteps"
                    )

                run_logger.debug(
                    f"Superstep {superstep}",
                    nodes=[node_id for node_id, _ in ready]
                )
                completed = await self._run_superstep(run, superstep, ready)
                committed = run.state.commit()
                if committed:
                    run_logger.debug(f"Superstep {superstep} committed {committed} state update(s)")

                terminal = [(node_id, output) for node_id, output in completed if self.graph.is_output(node_id)]
                if terminal:
                    output_stage_id, output = terminal[0]
                    if len(terminal) > 1 or len(completed) > 1:
                        run_logger.warning(
                            "Discarding sibling outputs of the terminal superstep",
                            terminal=output_stage_id,
                            discarded=[node_id for node_id, _ in completed if node_id != output_stage_id]
                        )
                    self.output_sink.emit(output)
                    duration = round(time.time() - started, 3)
                    run_logger.info(
                        f"Workflow '{self.graph.name}' completed",
                        output_stage=output_stage_id,
                        supersteps=superstep,
                        duration_seconds=duration
                    )
                    return WorkflowResult(
                        run_id=run_id,
                        output=output,
                        output_stage_id=output_stage_id,
                        intermediate_outputs=list(run.intermediate_outputs),
                        traces=list(run.traces),
                        supersteps=superstep,
                        duration_seconds=duration
                    )

                next_ready: List[Tuple[str, Any]] = []
                for node_id, output in completed:
                    next_ready.extend(self._route(run, node_id, output))
                ready = next_ready

            waiting = [self.graph.edges[i].targets[0] for i in run.pending_joins]
            raise WorkflowStalledError(
                f"Workflow '{self.graph.name}' stopped after {superstep} superstep(s) "
                f"without a terminal output"
                + (f" (joins still waiting: {', '.join(waiting)})" if waiting else "")
            )

        except WorkflowFatalError as e:
            dropped = run.state.discard_pending()
            run_logger.error(
                f"Workflow '{self.graph.name}' aborted",
                error=str(e),
                error_type=type(e).__name__,
                supersteps=superstep,
                dropped_state_updates=dropped
            )
            raise

    async def _run_superstep(
        self,
        run: _RunState,
        superstep: int,
        ready: List[Tuple[str, Any]]
    ) -> List[Tuple[str, Any]]:
        """Run one superstep and return ``(node_id, output)`` in ready order."""
        tasks = [
            asyncio.create_task(self._invoke(run, superstep, node_id, message), name=f"{run.run_id}:{node_id}")
            for node_id, message in ready
        ]
        cancel_waiter = asyncio.create_task(run.cancellation.wait())

        try:
            pending = set(tasks)
            while pending:
                done, _ = await asyncio.wait(pending | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if cancel_waiter in done:
                    raise WorkflowCancelledError(self._cancel_message(run.cancellation))
                for task in done:
                    pending.discard(task)
                    error = task.exception()
                    if error is not None:
                        raise error
        finally:
            cancel_waiter.cancel()
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        return [(node_id, task.result()) for (node_id, _), task in zip(ready, tasks)]

    async def _invoke(self, run: _RunState, superstep: int, node_id: str, message: Any) -> Any:
        executor = self.graph.executor(node_id)
        ctx = WorkflowContext(
            run_id=run.run_id,
            stage_id=node_id,
            superstep=superstep,
            state=run.state,
            cancellation=run.cancellation,
            output_callback=lambda stage_id, value: self._emit_intermediate(run, stage_id, value)
        )

        start_time = time.time()
        try:
            output = await executor.handle(message, ctx)
        except asyncio.CancelledError:
            self._record_trace(run, node_id, superstep, start_time, False, "cancelled")
            raise
        except WorkflowFatalError as e:
            self._record_trace(run, node_id, superstep, start_time, False, str(e))
            raise
        except Exception as e:
            self._record_trace(run, node_id, superstep, start_time, False, str(e))
            ctx.logger.error(
                f"Stage {node_id} failed",
                error=str(e),
                error_type=type(e).__name__
            )
            raise StageExecutionError(node_id, e) from e

        self._record_trace(run, node_id, superstep, start_time, True)
        return output

    def _route(self, run: _RunState, node_id: str, output: Any) -> List[Tuple[str, Any]]:
        """Targets enqueued by ``node_id``'s output, in edge declaration order."""
        edges = self.graph.outgoing(node_id)
        chosen = self._select_guarded(node_id, [e for e in edges if e.is_guarded], output)

        targets: List[Tuple[str, Any]] = []
        for edge in edges:
            if edge.is_guarded and edge is not chosen:
                continue

            if edge.kind == EdgeKind.FAN_IN:
                joined = self._fill_join(run, edge, node_id, output)
                if joined is not None:
                    targets.append((edge.targets[0], joined))
            else:
                targets.extend((target, output) for target in edge.targets)

        return targets

    def _select_guarded(self, node_id: str, edges: List[Edge], output: Any) -> Optional[Edge]:
        """Pick the single guarded edge that fires, if any."""
        matches = []
        for edge in edges:
            try:
                if edge.predicate(output):
                    matches.append(edge)
            except Exception as e:
                raise StageExecutionError(node_id, e) from e

        if not matches:
            return None

        best = min(edge.priority for edge in matches)
        winners = [edge for edge in matches if edge.priority == best]
        if len(winners) > 1:
            raise ConditionalEdgeConflictError(node_id, [edge.targets[0] for edge in winners])
        return winners[0]

    def _fill_join(self, run: _RunState, edge: Edge, node_id: str, output: Any) -> Optional[List[Any]]:
        index = self._edge_index[id(edge)]
        slots = run.pending_joins.setdefault(index, {})
        if node_id in slots:
            get_run_logger(run.run_id).warning(
                f"Join into {edge.targets[0]} received a second output from {node_id}, keeping the latest"
            )
        slots[node_id] = output

        if len(slots) < len(edge.sources):
            return None

        del run.pending_joins[index]
        return [slots[source] for source in edge.sources]

    def _emit_intermediate(self, run: _RunState, stage_id: str, value: Any) -> None:
        run.intermediate_outputs.append(value)
        self.output_sink.emit(value)

    def _record_trace(
        self,
        run: _RunState,
        node_id: str,
        superstep: int,
        start_time: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        run.traces.append(StageTrace(
            stage_id=node_id,
            superstep=superstep,
            timestamp=datetime.now(),
            latency_seconds=round(time.time() - start_time, 3),
            success=success,
            error_message=error
        ))

    @staticmethod
    def _cancel_message(cancellation: CancellationToken) -> str:
        if cancellation.reason:
            return f"Workflow run cancelled: {cancellation.reason}"
        return "Workflow run cancelled"
