"""Stages running against an empty shared state store."""

import asyncio

from contract_workflow.engine import WorkflowEngine
from contract_workflow.executors import (
    create_hitl_approval_stage,
    create_negotiation_evaluator_stage,
    create_negotiation_loopback_stage,
    create_review_aggregator_stage,
)
from contract_workflow.graph import WorkflowBuilder
from contract_workflow.models import (
    ContractEvaluation,
    ContractRisk,
    EvaluationResult,
    NegotiationProposal,
    ProposalOutcome,
    ReviewResult,
)
from contract_workflow.risk import placeholder_assessment
from memory.shared_state import SharedStateKeys, SharedStateScopes, SharedStateStore
from tests.helpers import make_capabilities


def _run_alone(stage_executor, message, state=None):
    graph = WorkflowBuilder().set_entry(stage_executor).add_output(stage_executor).build()
    return asyncio.run(WorkflowEngine(graph).run(message, state=state))


def test_aggregator_uses_default_contract_when_analysis_is_missing():
    reviews = [
        ReviewResult(reviewer=name, opinion="ok", risk_score=50, concerns=[f"{name} concern"])
        for name in ("Legal", "Finance", "Procurement")
    ]

    result = _run_alone(create_review_aggregator_stage(), reviews)

    assert isinstance(result.output, ContractRisk)
    assert result.output.contract.supplier_name == "Sample Supplier"
    assert result.output.contract.description == "Contract details unavailable"
    assert result.output.risk.overall_risk_score == 50
    assert result.intermediate_outputs[0].startswith("Risk assessment for Sample Supplier")


def test_evaluator_uses_input_risk_when_current_risk_is_missing(contract):
    proposal = NegotiationProposal(
        iteration=1,
        proposals=["Extend payment terms to Net 60"],
        target_risk_score=30,
        rationale="r"
    )
    message = ProposalOutcome(contract, placeholder_assessment(60, "input risk"), proposal)
    state = SharedStateStore()

    result = _run_alone(create_negotiation_evaluator_stage(make_capabilities(perturbation=0)), message, state)

    assert isinstance(result.output, ContractEvaluation)
    assert result.output.evaluation.new_risk_score == 55
    assert result.output.evaluation.continue_negotiation

    current = state.read(SharedStateScopes.NEGOTIATION, SharedStateKeys.CURRENT_RISK)
    assert current.overall_risk_score == 55
    assert current.risk_level == "Medium"
    assert current.summary == "Current risk unavailable during evaluation"
    assert len(state.read(SharedStateScopes.EVALUATION_HISTORY, SharedStateKeys.EVALUATIONS)) == 1


def test_loopback_uses_placeholder_when_original_risk_is_missing(contract):
    evaluation = EvaluationResult(
        iteration=1,
        is_improved=True,
        new_risk_score=45,
        evaluation_comment="improved",
        continue_negotiation=True
    )
    state = SharedStateStore()

    result = _run_alone(create_negotiation_loopback_stage(), ContractEvaluation(contract, evaluation), state)

    assert result.output.iteration == 2
    assert result.output.risk.overall_risk_score == 45
    assert result.output.risk.risk_level == "Medium"
    assert result.output.risk.summary.startswith("Loop-back fallback")
    assert "[Negotiation iteration 1 result]" in result.output.risk.summary
    assert state.read(SharedStateScopes.NEGOTIATION, SharedStateKeys.ITERATION) == 2


def test_hitl_stage_leaves_history_empty_when_snapshots_are_missing(contract):
    risk = placeholder_assessment(25, "after negotiation")
    stage_executor = create_hitl_approval_stage("final_approval", make_capabilities())

    result = _run_alone(stage_executor, ContractRisk(contract, risk))

    decision = result.output
    assert decision.decision == "Approved"
    assert decision.final_risk_score == 25
    assert decision.original_contract_info is None
    assert decision.original_risk_score is None
    assert decision.negotiation_history is None
    assert decision.evaluation_history is None
