"""Tests for graph building and validation."""

import pytest

from contract_workflow.error_handling import GraphValidationError
from contract_workflow.executor import stage
from contract_workflow.graph import EdgeKind, WorkflowBuilder


def _node(node_id):
    @stage(node_id)
    async def passthrough(message, ctx):
        return message
    return passthrough


def test_valid_graph_builds():
    a, b, c = _node("a"), _node("b"), _node("c")
    graph = (
        WorkflowBuilder("ok")
        .set_entry(a)
        .add_edge(a, b)
        .add_conditional_edge(b, c, lambda m: True)
        .add_output(c)
        .build()
    )

    assert graph.entry_id == "a"
    assert [e.kind for e in graph.outgoing("a")] == [EdgeKind.DIRECT]
    assert graph.is_output("c")
    assert not graph.is_output("b")


def test_duplicate_executor_ids_are_rejected():
    a = _node("a")
    with pytest.raises(GraphValidationError, match="duplicate executor id 'b'"):
        (
            WorkflowBuilder()
            .set_entry(a)
            .add_edge(a, _node("b"))
            .add_edge(a, _node("b"))
            .add_output("b")
            .build()
        )


def test_missing_entry_is_rejected():
    with pytest.raises(GraphValidationError, match="no entry node"):
        WorkflowBuilder().add_executor(_node("a")).add_output("a").build()


def test_unknown_edge_endpoint_is_rejected():
    a = _node("a")
    with pytest.raises(GraphValidationError, match="unknown node 'ghost'"):
        WorkflowBuilder().set_entry(a).add_edge(a, "ghost").add_output(a).build()


def test_graph_without_output_is_rejected():
    a = _node("a")
    with pytest.raises(GraphValidationError, match="no output node"):
        WorkflowBuilder().set_entry(a).build()


def test_unreachable_output_is_rejected():
    a, b = _node("a"), _node("b")
    with pytest.raises(GraphValidationError, match="unreachable"):
        WorkflowBuilder().set_entry(a).add_executor(b).add_output(b).build()


def test_fan_in_with_repeated_source_is_rejected():
    a, b, c = _node("a"), _node("b"), _node("c")
    with pytest.raises(GraphValidationError, match="more than once"):
        (
            WorkflowBuilder()
            .set_entry(a)
            .add_fan_out_edges(a, [b])
            .add_fan_in_edges([b, b], c)
            .add_output(c)
            .build()
        )


def test_node_cannot_be_target_of_two_fan_ins():
    a, b, c, d = _node("a"), _node("b"), _node("c"), _node("d")
    with pytest.raises(GraphValidationError, match="more than one fan-in"):
        (
            WorkflowBuilder()
            .set_entry(a)
            .add_fan_out_edges(a, [b, c])
            .add_fan_in_edges([b, c], d)
            .add_fan_in_edges([c, b], d)
            .add_output(d)
            .build()
        )


def test_loop_back_outside_region_is_rejected():
    a, b, c = _node("a"), _node("b"), _node("c")
    with pytest.raises(GraphValidationError, match="not inside a declared loop region"):
        (
            WorkflowBuilder()
            .set_entry(a)
            .add_edge(a, b)
            .add_edge(b, c)
            .add_loop_back_edge(b, a)
            .add_output(c)
            .build()
        )


def test_loop_back_must_close_a_cycle():
    a, b, c = _node("a"), _node("b"), _node("c")
    with pytest.raises(GraphValidationError, match="does not close a cycle"):
        (
            WorkflowBuilder()
            .set_entry(a)
            .add_edge(a, b)
            .add_edge(a, c)
            .add_loop_region("loop", [b, c])
            .add_loop_back_edge(b, c)
            .add_output(c)
            .build()
        )


def test_mermaid_rendering_marks_loops_and_conditions():
    a, b, c = _node("a"), _node("b"), _node("c")
    graph = (
        WorkflowBuilder()
        .set_entry(a)
        .add_edge(a, b)
        .add_conditional_edge(b, c, lambda m: m > 2, label="big")
        .add_loop_region("retry", [a, b])
        .add_loop_back_edge(b, a, lambda m: m <= 2, label="again")
        .add_output(c)
        .build()
    )

    mermaid = graph.to_mermaid()
    assert mermaid.startswith("flowchart TD")
    assert "b -->|big| c" in mermaid
    assert "b -. again .-> a" in mermaid
    assert "subgraph retry" in mermaid
