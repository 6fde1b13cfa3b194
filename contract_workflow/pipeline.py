"""
Contract Review Pipeline - graph wiring and runner.

    contract_analysis -> (legal | finance | procurement)_review
        -> review_aggregator
            score <= 30  -> low_risk_approval
            31..70       -> negotiation_state_init -> negotiation loop
                              -> negotiation_result
                                   score <= 30 -> hitl_final_approval
                                   score >  30 -> hitl_escalation
            score >  70  -> hitl_rejection_confirm
"""

from typing import Any, Optional

from contract_workflow.capabilities import SPECIALTIES, Capabilities
from contract_workflow.engine import DEFAULT_MAX_SUPERSTEPS, CancellationToken, WorkflowEngine, WorkflowResult
from contract_workflow.executors import (
    create_contract_analysis_stage,
    create_hitl_approval_stage,
    create_low_risk_approval_stage,
    create_negotiation_evaluator_stage,
    create_negotiation_loopback_stage,
    create_negotiation_proposer_stage,
    create_negotiation_result_stage,
    create_negotiation_state_init_stage,
    create_review_aggregator_stage,
    create_specialist_review_stage,
)
from contract_workflow.graph import WorkflowBuilder, WorkflowGraph
from contract_workflow.models import ContractEvaluation, ContractRisk
from contract_workflow.risk import LOW_RISK_MAX, MEDIUM_RISK_MAX


WORKFLOW_NAME = "contract-review"
NEGOTIATION_LOOP = "negotiation"


def is_low_risk(message: ContractRisk) -> bool:
    return message.risk.overall_risk_score <= LOW_RISK_MAX


def is_medium_risk(message: ContractRisk) -> bool:
    return LOW_RISK_MAX < message.risk.overall_risk_score <= MEDIUM_RISK_MAX


def is_high_risk(message: ContractRisk) -> bool:
    return message.risk.overall_risk_score > MEDIUM_RISK_MAX


def should_continue_negotiation(message: ContractEvaluation) -> bool:
    return message.evaluation.continue_negotiation


def negotiation_finished(message: ContractEvaluation) -> bool:
    return not message.evaluation.continue_negotiation


def build_contract_workflow(capabilities: Capabilities) -> WorkflowGraph:
    """Wire the contract review graph.

    Args:
        capabilities: Collaborators closed over by the stages

    Returns:
        Validated WorkflowGraph
    """
    analysis = create_contract_analysis_stage()
    reviews = [create_specialist_review_stage(specialty, capabilities) for specialty in SPECIALTIES]
    aggregator = create_review_aggregator_stage()
    low_risk = create_low_risk_approval_stage()

    state_init = create_negotiation_state_init_stage()
    proposer = create_negotiation_proposer_stage(capabilities)
    evaluator = create_negotiation_evaluator_stage(capabilities)
    loopback = create_negotiation_loopback_stage()
    result = create_negotiation_result_stage()

    final_approval = create_hitl_approval_stage("final_approval", capabilities, after_negotiation=True)
    escalation = create_hitl_approval_stage("escalation", capabilities, after_negotiation=True)
    rejection = create_hitl_approval_stage("rejection_confirm", capabilities, after_negotiation=False)

    builder = (
        WorkflowBuilder(WORKFLOW_NAME)
        .set_entry(analysis)
        .add_fan_out_edges(analysis, reviews)
        .add_fan_in_edges(reviews, aggregator)
        .add_conditional_edge(aggregator, low_risk, is_low_risk, label="score <= 30")
        .add_conditional_edge(aggregator, state_init, is_medium_risk, label="31-70")
        .add_conditional_edge(aggregator, rejection, is_high_risk, label="score > 70")
        .add_edge(state_init, proposer)
        .add_edge(proposer, evaluator)
        .add_conditional_edge(evaluator, loopback, should_continue_negotiation, label="continue")
        .add_conditional_edge(evaluator, result, negotiation_finished, label="done")
        .add_loop_region(NEGOTIATION_LOOP, [proposer, evaluator, loopback])
        .add_loop_back_edge(loopback, proposer, label="next iteration")
        .add_conditional_edge(result, final_approval, is_low_risk, label="score <= 30")
        .add_conditional_edge(result, escalation, lambda m: not is_low_risk(m), label="score > 30")
    )
    for terminal in (low_risk, final_approval, escalation, rejection):
        builder.add_output(terminal)

    return builder.build()


async def run_contract_workflow(
    contract: Any,
    capabilities: Capabilities,
    run_id: Optional[str] = None,
    cancellation: Optional[CancellationToken] = None,
    max_supersteps: int = DEFAULT_MAX_SUPERSTEPS
) -> WorkflowResult:
    """Build the graph and run it on one contract.

    Args:
        contract: ContractInfo or contract text
        capabilities: Collaborators of the run
        run_id: Identifier of the run (generated if omitted)
        cancellation: Token that aborts the run
        max_supersteps: Upper bound on supersteps

    Returns:
        WorkflowResult whose ``output`` is a FinalDecision
    """
    graph = build_contract_workflow(capabilities)
    engine = WorkflowEngine(graph, output_sink=capabilities.output_sink, max_supersteps=max_supersteps)
    return await engine.run(contract, run_id=run_id, cancellation=cancellation)
