"""Tests for the superstep engine."""

import asyncio

import pytest

from contract_workflow.communication import CollectingOutputSink
from contract_workflow.engine import CancellationToken, WorkflowEngine
from contract_workflow.error_handling import (
    ConditionalEdgeConflictError,
    StageExecutionError,
    WorkflowCancelledError,
    WorkflowStalledError,
)
from contract_workflow.executor import stage
from contract_workflow.graph import WorkflowBuilder
from memory.shared_state import NOT_FOUND


def _delayed(node_id, delay, value=None):
    @stage(node_id)
    async def delayed(message, ctx):
        await asyncio.sleep(delay)
        return value if value is not None else node_id
    return delayed


def _passthrough(node_id):
    @stage(node_id)
    async def passthrough(message, ctx):
        return message
    return passthrough


def test_fan_in_delivers_outputs_in_declared_order():
    entry = _passthrough("entry")
    branches = [_delayed("slow", 0.05), _delayed("fast", 0.0), _delayed("medium", 0.02)]
    join = _passthrough("join")
    graph = (
        WorkflowBuilder()
        .set_entry(entry)
        .add_fan_out_edges(entry, branches)
        .add_fan_in_edges(branches, join)
        .add_output(join)
        .build()
    )

    result = asyncio.run(WorkflowEngine(graph).run("go"))

    assert result.output == ["slow", "fast", "medium"]
    assert result.output_stage_id == "join"
    assert result.supersteps == 3


def test_sync_stages_run_in_worker_threads():
    @stage("entry")
    def double(message, ctx):
        return message * 2

    graph = WorkflowBuilder().set_entry(double).add_output(double).build()
    result = asyncio.run(WorkflowEngine(graph).run(21))
    assert result.output == 42


def test_state_writes_become_visible_in_the_next_superstep():
    seen = {}

    @stage("writer")
    async def writer(message, ctx):
        ctx.queue_state_update("scope", "key", "value")
        return message

    @stage("sibling")
    async def sibling(message, ctx):
        await asyncio.sleep(0.01)
        seen["sibling"] = ctx.read_state("scope", "key")
        return message

    @stage("reader")
    async def reader(messages, ctx):
        seen["reader"] = ctx.read_state("scope", "key")
        return messages

    entry = _passthrough("entry")
    graph = (
        WorkflowBuilder()
        .set_entry(entry)
        .add_fan_out_edges(entry, [writer, sibling])
        .add_fan_in_edges([writer, sibling], reader)
        .add_output(reader)
        .build()
    )
    asyncio.run(WorkflowEngine(graph).run("x"))

    assert seen["sibling"] is NOT_FOUND
    assert seen["reader"] == "value"


def test_lowest_priority_guarded_edge_wins():
    source, low, high = _passthrough("source"), _passthrough("low"), _passthrough("high")
    graph = (
        WorkflowBuilder()
        .set_entry(source)
        .add_conditional_edge(source, high, lambda m: True, priority=1)
        .add_conditional_edge(source, low, lambda m: True, priority=0)
        .add_output(low)
        .add_output(high)
        .build()
    )

    result = asyncio.run(WorkflowEngine(graph).run(5))
    assert result.output_stage_id == "low"


def test_overlapping_conditions_with_equal_priority_conflict():
    source, a, b = _passthrough("source"), _passthrough("a"), _passthrough("b")
    graph = (
        WorkflowBuilder()
        .set_entry(source)
        .add_conditional_edge(source, a, lambda m: m > 1)
        .add_conditional_edge(source, b, lambda m: m > 2)
        .add_output(a)
        .add_output(b)
        .build()
    )

    with pytest.raises(ConditionalEdgeConflictError) as exc_info:
        asyncio.run(WorkflowEngine(graph).run(5))
    assert exc_info.value.source_id == "source"
    assert exc_info.value.target_ids == ["a", "b"]


def test_no_matching_condition_stalls_the_run():
    source, a = _passthrough("source"), _passthrough("a")
    graph = (
        WorkflowBuilder()
        .set_entry(source)
        .add_conditional_edge(source, a, lambda m: m > 100)
        .add_output(a)
        .build()
    )

    with pytest.raises(WorkflowStalledError):
        asyncio.run(WorkflowEngine(graph).run(1))


def test_stage_exception_aborts_the_run():
    @stage("broken")
    async def broken(message, ctx):
        raise ValueError("bad input")

    graph = WorkflowBuilder().set_entry(broken).add_output(broken).build()

    with pytest.raises(StageExecutionError) as exc_info:
        asyncio.run(WorkflowEngine(graph).run(None))
    assert exc_info.value.stage_id == "broken"
    assert isinstance(exc_info.value.cause, ValueError)


def test_superstep_guard_stops_runaway_loops():
    head, tail, out = _passthrough("head"), _passthrough("tail"), _passthrough("out")
    graph = (
        WorkflowBuilder()
        .set_entry(head)
        .add_edge(head, tail)
        .add_conditional_edge(tail, out, lambda m: False)
        .add_loop_region("forever", [head, tail])
        .add_loop_back_edge(tail, head, lambda m: True, priority=1)
        .add_output(out)
        .build()
    )

    with pytest.raises(WorkflowStalledError, match="exceeded 10 supersteps"):
        asyncio.run(WorkflowEngine(graph, max_supersteps=10).run(0))


def test_cancellation_token_stops_in_flight_stages():
    state = {"finished": False, "cancelled": False}

    @stage("blocking")
    async def blocking(message, ctx):
        try:
            await asyncio.sleep(10)
            state["finished"] = True
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise
        return message

    graph = WorkflowBuilder().set_entry(blocking).add_output(blocking).build()

    async def scenario():
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel, "test stop")
        await WorkflowEngine(graph).run("x", cancellation=token)

    with pytest.raises(WorkflowCancelledError, match="test stop"):
        asyncio.run(scenario())
    assert state == {"finished": False, "cancelled": True}


def test_cancelling_the_run_task_propagates_cancelled_error():
    graph = WorkflowBuilder().set_entry(_delayed("slow", 10)).add_output("slow").build()

    async def scenario():
        task = asyncio.create_task(WorkflowEngine(graph).run("x"))
        await asyncio.sleep(0.05)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(scenario())


def test_intermediate_and_terminal_outputs_reach_the_sink():
    @stage("reporter")
    async def reporter(message, ctx):
        ctx.yield_output("halfway")
        return "done"

    sink = CollectingOutputSink()
    graph = WorkflowBuilder().set_entry(reporter).add_output(reporter).build()
    result = asyncio.run(WorkflowEngine(graph, output_sink=sink).run(None))

    assert sink.outputs == ["halfway", "done"]
    assert result.intermediate_outputs == ["halfway"]
    assert [t.stage_id for t in result.traces] == ["reporter"]
    assert result.traces[0].success
