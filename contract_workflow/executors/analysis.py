"""Entry stage, specialist reviews and the review aggregator."""

from typing import Any, List, Optional

from msgspec import structs

from contract_workflow.capabilities import Capabilities
from contract_workflow.executor import FunctionExecutor, WorkflowContext, call_capability, stage
from contract_workflow.models import ContractInfo, ContractRisk, ReviewResult
from contract_workflow.risk import aggregate_reviews
from memory.shared_state import NOT_FOUND, SharedStateKeys, SharedStateScopes
from tools.contract_loader import default_contract, parse_contract_text


CONTRACT_ANALYSIS_ID = "contract_analysis"
REVIEW_AGGREGATOR_ID = "review_aggregator"

FALLBACK_REVIEW_SCORE = 70
FALLBACK_CONCERN = "Review result could not be parsed"
FALLBACK_RECOMMENDATION = "Manual re-review recommended"


def review_stage_id(specialty: str) -> str:
    return f"{specialty.lower()}_review"


def fallback_review(specialty: str, detail: Optional[str] = None) -> ReviewResult:
    """High-risk stand-in for a review that failed."""
    opinion = f"{specialty} review could not be completed"
    if detail:
        opinion = f"{opinion}: {detail}"
    return ReviewResult(
        reviewer=specialty,
        opinion=opinion,
        risk_score=FALLBACK_REVIEW_SCORE,
        concerns=[FALLBACK_CONCERN],
        recommendations=[FALLBACK_RECOMMENDATION]
    )


def create_contract_analysis_stage() -> FunctionExecutor:
    """Entry stage: normalizes the input and records the contract for later stages."""

    @stage(CONTRACT_ANALYSIS_ID)
    async def contract_analysis(message: Any, ctx: WorkflowContext) -> ContractInfo:
        if isinstance(message, ContractInfo):
            contract = message
        else:
            contract = parse_contract_text(message if isinstance(message, str) else str(message))

        ctx.logger.info(
            f"Analyzing contract for {contract.supplier_name}",
            contract_value=contract.contract_value,
            term_months=contract.contract_term_months
        )
        ctx.queue_state_update(SharedStateScopes.CONTRACT_ANALYSIS, SharedStateKeys.CONTRACT, contract)
        return contract

    return contract_analysis


def create_specialist_review_stage(specialty: str, capabilities: Capabilities) -> FunctionExecutor:
    """Review stage for one specialty.

    Reviewer failures never escape the stage: they are logged and replaced
    by ``fallback_review``. A result labelled with another reviewer name is
    relabelled with the specialty.

    Args:
        specialty: Legal, Finance or Procurement
        capabilities: Capability set holding the specialty's reviewer

    Returns:
        Stage executor with id ``<specialty>_review``
    """

    @stage(review_stage_id(specialty))
    async def specialist_review(contract: ContractInfo, ctx: WorkflowContext) -> ReviewResult:
        reviewer = capabilities.reviewer_for(specialty)
        try:
            result = await call_capability(reviewer.review, contract, specialty)
        except Exception as e:
            ctx.logger.error(
                f"{specialty} review failed, using fallback review",
                error=str(e),
                error_type=type(e).__name__
            )
            return fallback_review(specialty, str(e))

        if not isinstance(result, ReviewResult):
            ctx.logger.error(f"{specialty} reviewer returned {type(result).__name__}, using fallback review")
            return fallback_review(specialty, "unexpected reviewer output")

        if result.reviewer != specialty:
            result = structs.replace(result, reviewer=specialty)

        ctx.logger.info(f"{specialty} review complete", risk_score=result.risk_score)
        return result

    return specialist_review


def create_review_aggregator_stage() -> FunctionExecutor:
    """Fan-in stage combining the specialist reviews into one assessment."""

    @stage(REVIEW_AGGREGATOR_ID)
    async def review_aggregator(reviews: List[ReviewResult], ctx: WorkflowContext) -> ContractRisk:
        contract = ctx.read_state(SharedStateScopes.CONTRACT_ANALYSIS, SharedStateKeys.CONTRACT)
        if contract is NOT_FOUND:
            ctx.logger.warning("Analyzed contract missing from shared state, using default contract")
            contract = default_contract(description="Contract details unavailable")

        risk = aggregate_reviews(reviews)

        ctx.logger.info(
            "Reviews aggregated",
            reviewers=[r.reviewer for r in reviews],
            overall_risk_score=risk.overall_risk_score,
            risk_level=risk.risk_level
        )
        ctx.yield_output(
            f"Risk assessment for {contract.supplier_name}: "
            f"{risk.risk_level} ({risk.overall_risk_score}/100) from {len(reviews)} review(s)"
        )
        return ContractRisk(contract, risk)

    return review_aggregator
