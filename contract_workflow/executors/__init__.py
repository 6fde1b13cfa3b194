"""Stage factories of the contract pipeline."""

from contract_workflow.executors.analysis import (
    CONTRACT_ANALYSIS_ID,
    REVIEW_AGGREGATOR_ID,
    create_contract_analysis_stage,
    create_review_aggregator_stage,
    create_specialist_review_stage,
    fallback_review,
    review_stage_id,
)
from contract_workflow.executors.decisions import (
    LOW_RISK_APPROVAL_ID,
    create_low_risk_approval_stage,
    decision_label,
    next_actions,
)
from contract_workflow.executors.hitl_approval import (
    build_approval_prompt,
    create_hitl_approval_stage,
    hitl_stage_id,
)
from contract_workflow.executors.negotiation import (
    NEGOTIATION_EVALUATOR_ID,
    NEGOTIATION_LOOPBACK_ID,
    NEGOTIATION_PROPOSER_ID,
    NEGOTIATION_RESULT_ID,
    NEGOTIATION_STATE_INIT_ID,
    create_negotiation_evaluator_stage,
    create_negotiation_loopback_stage,
    create_negotiation_proposer_stage,
    create_negotiation_result_stage,
    create_negotiation_state_init_stage,
    evaluate_proposal,
    fallback_proposal,
)

__all__ = [
    "CONTRACT_ANALYSIS_ID",
    "REVIEW_AGGREGATOR_ID",
    "LOW_RISK_APPROVAL_ID",
    "NEGOTIATION_STATE_INIT_ID",
    "NEGOTIATION_PROPOSER_ID",
    "NEGOTIATION_EVALUATOR_ID",
    "NEGOTIATION_LOOPBACK_ID",
    "NEGOTIATION_RESULT_ID",
    "create_contract_analysis_stage",
    "create_specialist_review_stage",
    "create_review_aggregator_stage",
    "create_low_risk_approval_stage",
    "create_negotiation_state_init_stage",
    "create_negotiation_proposer_stage",
    "create_negotiation_evaluator_stage",
    "create_negotiation_loopback_stage",
    "create_negotiation_result_stage",
    "create_hitl_approval_stage",
    "build_approval_prompt",
    "decision_label",
    "evaluate_proposal",
    "fallback_proposal",
    "fallback_review",
    "hitl_stage_id",
    "next_actions",
    "review_stage_id",
]
