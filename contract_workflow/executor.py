"""Stage abstraction for workflow graphs.

A stage turns one input message into one output. Besides its return value
a stage may only touch the run's shared state (through the context) and
emit intermediate outputs. External collaborators (reviewers, proposers,
the approval gateway) are injected by closing over a ``Capabilities``
bundle instead of being looked up globally.
"""

import asyncio
import inspect
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from contract_workflow.logging_config import get_run_logger
from memory.shared_state import SharedStateStore

if TYPE_CHECKING:
    from contract_workflow.engine import CancellationToken


StageFunction = Callable[[Any, "WorkflowContext"], Union[Any, Awaitable[Any]]]


class WorkflowContext:
    """Per-invocation view of a workflow run handed to every stage."""

    def __init__(
        self,
        run_id: str,
        stage_id: str,
        superstep: int,
        state: SharedStateStore,
        cancellation: "CancellationToken",
        output_callback: Callable[[str, Any], None]
    ):
        """Initialize the context.

        Args:
            run_id: Identifier of the run
            stage_id: Id of the stage being invoked
            superstep: 1-based superstep number of this invocation
            state: Shared state of the run
            cancellation: Cancellation token of the run
            output_callback: Receives ``(stage_id, value)`` for intermediate outputs
        """
        self.run_id = run_id
        self.stage_id = stage_id
        self.superstep = superstep
        self.cancellation = cancellation
        self.logger = get_run_logger(run_id, stage_id)
        self._state = state
        self._output_callback = output_callback

    def read_state(self, scope: str, key: str) -> Any:
        """Committed value of ``scope``/``key`` or ``NOT_FOUND``."""
        return self._state.read(scope, key)

    def queue_state_update(self, scope: str, key: str, value: Any) -> None:
        """Queue a shared state write, visible from the next superstep on."""
        self._state.queue_write(scope, key, value)

    def yield_output(self, value: Any) -> None:
        """Publish an intermediate output to the run's output sink."""
        self._output_callback(self.stage_id, value)

    @property
    def is_cancelled(self) -> bool:
        return self.cancellation.is_cancelled


class Executor:
    """Base class for graph nodes."""

    def __init__(self, id: str):
        self.id = id

    async def handle(self, message: Any, ctx: WorkflowContext) -> Any:
        """Process one input message and return the stage output.

        Args:
            message: Output of the upstream stage (a list for fan-in targets)
            ctx: Context of the current invocation

        Returns:
            Value routed along the outgoing edges
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


class FunctionExecutor(Executor):
    """Executor backed by a plain function.

    Coroutine functions are awaited directly. Plain functions run in a
    worker thread so that a blocking stage does not stall its siblings.
    """

    def __init__(self, id: str, func: StageFunction, description: Optional[str] = None):
        super().__init__(id)
        self.func = func
        self.description = description or (inspect.getdoc(func) or "").split("\n")[0] or None
        self._is_async = asyncio.iscoroutinefunction(func)

    async def handle(self, message: Any, ctx: WorkflowContext) -> Any:
        if self._is_async:
            return await self.func(message, ctx)
        return await asyncio.to_thread(self.func, message, ctx)


def stage(id: str, description: Optional[str] = None) -> Callable[[StageFunction], FunctionExecutor]:
    """Decorator turning a function into a ``FunctionExecutor``.

    Example:
        @stage("contract_analysis")
        async def analyze(contract, ctx):
            ...

    Args:
        id: Unique node id of the stage in its graph
        description: Optional label (defaults to the docstring's first line)

    Returns:
        Decorator producing the executor
    """
    def decorator(func: StageFunction) -> FunctionExecutor:
        return FunctionExecutor(id, func, description=description)
    return decorator


async def call_capability(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call a sync or async capability without blocking the event loop."""
    if asyncio.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result
