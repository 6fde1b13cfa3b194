"""Human-in-the-loop decision stages."""

from typing import Any, List, Optional

from contract_workflow.capabilities import Capabilities
from contract_workflow.executor import FunctionExecutor, WorkflowContext, stage
from contract_workflow.executors.decisions import APPROVAL_KIND_TITLES, decision_label, next_actions
from contract_workflow.models import ApprovalKind, ContractInfo, ContractRisk, FinalDecision, RiskAssessment
from memory.shared_state import NOT_FOUND, SharedStateKeys, SharedStateScopes


APPROVAL_QUESTIONS = {
    "final_approval": "Negotiation reached the target risk level. Approve this contract?",
    "escalation": (
        "Negotiation ran 3 iterations without reaching the target risk level. "
        "Escalate to a senior approver?"
    ),
    "rejection_confirm": "This contract is rated high risk. Confirm the rejection?",
}


def hitl_stage_id(kind: ApprovalKind) -> str:
    return f"hitl_{kind}"


def build_approval_prompt(kind: ApprovalKind, contract: ContractInfo, risk: RiskAssessment) -> str:
    """Question shown to the approver for a decision of ``kind``."""
    lines = [
        f"Supplier: {contract.supplier_name}",
        f"Contract value: {contract.contract_value:,.0f}",
        f"Risk score: {risk.overall_risk_score}/100 ({risk.risk_level})",
    ]
    if risk.key_concerns:
        lines.append("Key concerns:")
        lines.extend(f"  - {concern}" for concern in risk.key_concerns)
    lines.append("")
    lines.append(APPROVAL_QUESTIONS[kind])
    return "\n".join(lines)


def _read_or_warn(ctx: WorkflowContext, scope: str, key: str) -> Optional[Any]:
    value = ctx.read_state(scope, key)
    if value is NOT_FOUND:
        ctx.logger.warning(f"'{key}' missing from shared state scope '{scope}'")
        return None
    return value


def create_hitl_approval_stage(
    kind: ApprovalKind,
    capabilities: Capabilities,
    after_negotiation: bool = True
) -> FunctionExecutor:
    """Terminal stage asking a human to decide.

    No answer, a timeout or a transport failure count as "not approved".
    When the stage follows a negotiation, the pre-negotiation contract, the
    original score and both histories are taken from shared state.

    Args:
        kind: final_approval, escalation or rejection_confirm
        capabilities: Capability set holding the approval gateway
        after_negotiation: Whether the input comes from the negotiation loop

    Returns:
        Stage executor with id ``hitl_<kind>``
    """

    @stage(hitl_stage_id(kind))
    async def hitl_approval(message: ContractRisk, ctx: WorkflowContext) -> FinalDecision:
        contract, risk = message.contract, message.risk
        gateway = capabilities.approval_gateway

        prompt = build_approval_prompt(kind, contract, risk)
        approved = await gateway.request(kind, contract, risk, prompt, run_id=ctx.run_id)

        original_contract: Optional[ContractInfo] = contract
        original_score: Optional[int] = risk.overall_risk_score
        proposals: Optional[List] = None
        evaluations: Optional[List] = None

        if after_negotiation:
            original_contract = _read_or_warn(
                ctx, SharedStateScopes.ORIGINAL_CONTRACT, SharedStateKeys.ORIGINAL_CONTRACT
            )
            original_risk = _read_or_warn(ctx, SharedStateScopes.ORIGINAL_RISK, SharedStateKeys.ORIGINAL_RISK)
            original_score = original_risk.overall_risk_score if original_risk is not None else None
            proposals = _read_or_warn(ctx, SharedStateScopes.NEGOTIATION_HISTORY, SharedStateKeys.PROPOSALS)
            evaluations = _read_or_warn(ctx, SharedStateScopes.EVALUATION_HISTORY, SharedStateKeys.EVALUATIONS)

        summary = (
            f"{APPROVAL_KIND_TITLES[kind]} was {'approved' if approved else 'rejected'}. "
            f"Contract: {contract.supplier_name}, "
            f"final risk score: {risk.overall_risk_score}/100 ({risk.risk_level})"
        )
        response = gateway.last_response
        if response is not None and response.approver_comment:
            summary = f"{summary}\nApprover comment: {response.approver_comment}"

        decision = decision_label(kind, approved)
        ctx.logger.info(f"Human decision: {decision}", kind=kind, approved=approved)

        return FinalDecision(
            decision=decision,
            contract_info=contract,
            final_risk_score=risk.overall_risk_score,
            decision_summary=summary,
            original_contract_info=original_contract,
            original_risk_score=original_score,
            next_actions=next_actions(kind, approved),
            negotiation_history=list(proposals) if proposals is not None else None,
            evaluation_history=list(evaluations) if evaluations is not None else None
        )

    return hitl_approval
