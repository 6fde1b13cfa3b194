"""Terminal decision stages and the labels and actions they report."""

from typing import List

from contract_workflow.executor import FunctionExecutor, WorkflowContext, stage
from contract_workflow.models import ApprovalKind, ContractRisk, DecisionLabel, FinalDecision


LOW_RISK_APPROVAL_ID = "low_risk_approval"

LOW_RISK_NEXT_ACTIONS = [
    "Final contract review",
    "Start the signing process",
    "Notify stakeholders",
]

APPROVED_NEXT_ACTIONS = {
    "final_approval": [
        "Final contract check and signature",
        "Formal notification to the supplier",
        "Register the contract in the contract management system",
    ],
    "escalation": [
        "Prepare a report for the senior approver",
        "Carry out additional due diligence",
        "Review at the executive meeting",
    ],
    "rejection_confirm": [
        "Send a polite rejection notice to the supplier",
        "Document the reasons for rejection",
        "Start evaluating alternative suppliers",
    ],
}

NOT_APPROVED_NEXT_ACTIONS = [
    "Reconsider the contract terms",
    "Consider an alternative supplier",
    "Re-evaluate the risk mitigation measures",
]

DECISION_LABELS = {
    "final_approval": ("Approved", "Rejected"),
    "escalation": ("Escalated", "Rejected"),
    "rejection_confirm": ("Rejected", "RequiresReview"),
}

APPROVAL_KIND_TITLES = {
    "final_approval": "Final approval",
    "escalation": "Escalation",
    "rejection_confirm": "Rejection confirmation",
}


def decision_label(kind: ApprovalKind, approved: bool) -> DecisionLabel:
    """Decision recorded for a human answer to an approval of ``kind``."""
    when_approved, when_not = DECISION_LABELS[kind]
    return when_approved if approved else when_not


def next_actions(kind: ApprovalKind, approved: bool) -> List[str]:
    if not approved:
        return list(NOT_APPROVED_NEXT_ACTIONS)
    return list(APPROVED_NEXT_ACTIONS[kind])


def create_low_risk_approval_stage() -> FunctionExecutor:
    """Terminal stage auto-approving contracts with a Low score."""

    @stage(LOW_RISK_APPROVAL_ID)
    async def low_risk_approval(message: ContractRisk, ctx: WorkflowContext) -> FinalDecision:
        contract, risk = message.contract, message.risk
        ctx.logger.info(
            f"Auto-approving low-risk contract with {contract.supplier_name}",
            risk_score=risk.overall_risk_score
        )
        return FinalDecision(
            decision="Approved",
            contract_info=contract,
            original_contract_info=contract,
            original_risk_score=risk.overall_risk_score,
            final_risk_score=risk.overall_risk_score,
            decision_summary=(
                f"Automatically approved: risk score {risk.overall_risk_score}/100 ({risk.risk_level})."
            ),
            next_actions=list(LOW_RISK_NEXT_ACTIONS)
        )

    return low_risk_approval
