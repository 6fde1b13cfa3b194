"""
Negotiation loop stages.

    negotiation_state_init -> negotiation_proposer -> negotiation_evaluator
        -> negotiation_loopback -> (loop back to negotiation_proposer)
        -> negotiation_result

The loop is bounded by the evaluator: it sets ``continue_negotiation`` only
while the score is above target and fewer than the maximum iterations have
run. The iteration counter grows by exactly one per loop-back.
"""

from typing import Callable, List, Optional, Tuple

from msgspec import structs

from contract_workflow.capabilities import PERTURBATION_RANGE, Capabilities
from contract_workflow.executor import FunctionExecutor, WorkflowContext, call_capability, stage
from contract_workflow.models import (
    ContractEvaluation,
    ContractInfo,
    ContractRisk,
    EvaluationResult,
    NegotiationProposal,
    NegotiationState,
    ProposalOutcome,
    RiskAssessment,
)
from contract_workflow.risk import (
    MAX_NEGOTIATION_ITERATIONS,
    TARGET_RISK_SCORE,
    clamp_score,
    classify_risk,
    placeholder_assessment,
)
from memory.shared_state import NOT_FOUND, SharedStateKeys, SharedStateScopes


NEGOTIATION_STATE_INIT_ID = "negotiation_state_init"
NEGOTIATION_PROPOSER_ID = "negotiation_proposer"
NEGOTIATION_EVALUATOR_ID = "negotiation_evaluator"
NEGOTIATION_LOOPBACK_ID = "negotiation_loopback"
NEGOTIATION_RESULT_ID = "negotiation_result"

RISK_REDUCTION_PER_PROPOSAL = 5

FALLBACK_PROPOSALS = [
    "Request a 10% reduction of the contract value",
    "Extend payment terms to Net 60",
    "Add a penalty clause",
]
FALLBACK_RATIONALE = "standard risk mitigation"


def fallback_proposal(iteration: int) -> NegotiationProposal:
    """Generic proposal used when the proposer fails. Leaves the contract unchanged."""
    return NegotiationProposal(
        iteration=iteration,
        proposals=list(FALLBACK_PROPOSALS),
        target_risk_score=TARGET_RISK_SCORE,
        rationale=FALLBACK_RATIONALE
    )


def evaluate_proposal(
    current_score: int,
    proposal: NegotiationProposal,
    perturbation: int
) -> EvaluationResult:
    """Estimate the risk score after a proposal.

    reduction = 5 per distinct proposal item; the new score is
    ``clamp(max(0, score - reduction) + perturbation, 0, 100)``. A perturbation
    outside [-5, +5] is clamped into that range.

    Args:
        current_score: Score before the proposal
        proposal: Proposal of the current iteration
        perturbation: Random adjustment, expected in [-5, +5]

    Returns:
        EvaluationResult for the proposal's iteration
    """
    iteration = proposal.iteration
    low, high = PERTURBATION_RANGE
    perturbation = min(max(perturbation, low), high)
    reduction = RISK_REDUCTION_PER_PROPOSAL * len(set(proposal.proposals))
    new_score = clamp_score(max(0, current_score - reduction) + perturbation)

    target_reached = new_score <= proposal.target_risk_score
    continue_negotiation = new_score > proposal.target_risk_score and iteration < MAX_NEGOTIATION_ITERATIONS

    return EvaluationResult(
        iteration=iteration,
        is_improved=new_score < current_score,
        new_risk_score=new_score,
        evaluation_comment=evaluation_comment(current_score, new_score, target_reached, iteration),
        continue_negotiation=continue_negotiation
    )


def evaluation_comment(old_score: int, new_score: int, target_reached: bool, iteration: int) -> str:
    improvement = old_score - new_score
    if target_reached:
        return (
            f"Target reached! Risk score improved from {old_score} to {new_score} "
            f"({improvement} points, iteration {iteration})"
        )
    if improvement > 0:
        return (
            f"Risk score improved {old_score} -> {new_score} but target ({TARGET_RISK_SCORE}) "
            f"not reached (iteration {iteration}/{MAX_NEGOTIATION_ITERATIONS})"
        )
    return (
        f"Risk score did not improve ({old_score} -> {new_score}, "
        f"iteration {iteration}/{MAX_NEGOTIATION_ITERATIONS})"
    )


def _append_history(ctx: WorkflowContext, scope: str, key: str, item) -> List:
    history = ctx.read_state(scope, key)
    if history is NOT_FOUND:
        ctx.logger.warning(f"No '{key}' history in scope '{scope}', starting a new one")
        history = []
    updated = list(history) + [item]
    ctx.queue_state_update(scope, key, updated)
    return updated


def create_negotiation_state_init_stage() -> FunctionExecutor:
    """Snapshots the pre-negotiation contract and risk and starts iteration 1."""

    @stage(NEGOTIATION_STATE_INIT_ID)
    async def negotiation_state_init(message: ContractRisk, ctx: WorkflowContext) -> NegotiationState:
        contract, risk = message.contract, message.risk

        ctx.queue_state_update(SharedStateScopes.ORIGINAL_CONTRACT, SharedStateKeys.ORIGINAL_CONTRACT, contract)
        ctx.queue_state_update(SharedStateScopes.ORIGINAL_RISK, SharedStateKeys.ORIGINAL_RISK, risk)
        ctx.queue_state_update(SharedStateScopes.NEGOTIATION, SharedStateKeys.CURRENT_RISK, risk)
        ctx.queue_state_update(SharedStateScopes.NEGOTIATION, SharedStateKeys.ITERATION, 1)
        ctx.queue_state_update(SharedStateScopes.NEGOTIATION_HISTORY, SharedStateKeys.PROPOSALS, [])
        ctx.queue_state_update(SharedStateScopes.EVALUATION_HISTORY, SharedStateKeys.EVALUATIONS, [])

        ctx.logger.info(
            f"Starting negotiation with {contract.supplier_name}",
            risk_score=risk.overall_risk_score,
            target=TARGET_RISK_SCORE,
            max_iterations=MAX_NEGOTIATION_ITERATIONS
        )
        return NegotiationState(contract, risk, 1)

    return negotiation_state_init


def create_negotiation_proposer_stage(capabilities: Capabilities) -> FunctionExecutor:
    """Proposal stage of the loop.

    Proposer failures and malformed results are replaced by
    ``fallback_proposal``, which keeps the loop going with the contract
    unchanged.

    Args:
        capabilities: Capability set holding the negotiation proposer

    Returns:
        Stage executor with id ``negotiation_proposer``
    """

    @stage(NEGOTIATION_PROPOSER_ID)
    async def negotiation_proposer(message: NegotiationState, ctx: WorkflowContext) -> ProposalOutcome:
        contract, risk, iteration = message.contract, message.risk, message.iteration
        ctx.logger.info(
            f"Generating negotiation proposal (iteration {iteration}/{MAX_NEGOTIATION_ITERATIONS})",
            risk_score=risk.overall_risk_score
        )

        proposal, amended = await _propose(ctx, capabilities, contract, risk, iteration)

        _append_history(ctx, SharedStateScopes.NEGOTIATION_HISTORY, SharedStateKeys.PROPOSALS, proposal)
        ctx.logger.info(
            f"Proposal ready with {len(proposal.proposals)} item(s)",
            changed_fields=list(proposal.contract_changes or {})
        )
        return ProposalOutcome(amended, risk, proposal)

    return negotiation_proposer


async def _propose(
    ctx: WorkflowContext,
    capabilities: Capabilities,
    contract: ContractInfo,
    risk: RiskAssessment,
    iteration: int
) -> Tuple[NegotiationProposal, ContractInfo]:
    try:
        result = await call_capability(capabilities.proposer.propose, contract, risk, iteration)
    except Exception as e:
        ctx.logger.error(
            "Negotiation proposer failed, using fallback proposal",
            error=str(e),
            error_type=type(e).__name__
        )
        return fallback_proposal(iteration), contract

    try:
        proposal, amended = result
    except (TypeError, ValueError):
        proposal, amended = None, None

    if not isinstance(proposal, NegotiationProposal) or not isinstance(amended, ContractInfo):
        ctx.logger.error(f"Proposer returned {type(result).__name__}, using fallback proposal")
        return fallback_proposal(iteration), contract

    if proposal.iteration != iteration:
        proposal = structs.replace(proposal, iteration=iteration)
    return proposal, amended


def create_negotiation_evaluator_stage(
    capabilities: Capabilities,
    perturbation: Optional[Callable[[], int]] = None
) -> FunctionExecutor:
    """Evaluation stage of the loop.

    Scores the proposal against the current negotiation risk and records the
    evaluation. The current risk is only advanced when the loop continues.

    Args:
        capabilities: Capability set providing the random perturbation
        perturbation: Overrides ``capabilities.perturbation`` when given

    Returns:
        Stage executor with id ``negotiation_evaluator``
    """
    draw = perturbation or capabilities.perturbation

    @stage(NEGOTIATION_EVALUATOR_ID)
    async def negotiation_evaluator(message: ProposalOutcome, ctx: WorkflowContext) -> ContractEvaluation:
        contract, proposal = message.contract, message.proposal

        current_risk = ctx.read_state(SharedStateScopes.NEGOTIATION, SharedStateKeys.CURRENT_RISK)
        if current_risk is NOT_FOUND:
            ctx.logger.warning("Current negotiation risk missing from shared state, using proposal input risk")
            current_risk = placeholder_assessment(
                message.risk.overall_risk_score,
                "Current risk unavailable during evaluation"
            )

        evaluation = evaluate_proposal(current_risk.overall_risk_score, proposal, draw())

        _append_history(ctx, SharedStateScopes.EVALUATION_HISTORY, SharedStateKeys.EVALUATIONS, evaluation)
        if evaluation.continue_negotiation:
            ctx.queue_state_update(
                SharedStateScopes.NEGOTIATION,
                SharedStateKeys.CURRENT_RISK,
                structs.replace(
                    current_risk,
                    overall_risk_score=evaluation.new_risk_score,
                    risk_level=classify_risk(evaluation.new_risk_score)
                )
            )

        ctx.logger.info(
            evaluation.evaluation_comment,
            old_risk_score=current_risk.overall_risk_score,
            new_risk_score=evaluation.new_risk_score,
            continue_negotiation=evaluation.continue_negotiation
        )
        return ContractEvaluation(contract, evaluation)

    return negotiation_evaluator


def create_negotiation_loopback_stage() -> FunctionExecutor:
    """Prepares the next iteration from the pre-negotiation risk and the latest score."""

    @stage(NEGOTIATION_LOOPBACK_ID)
    async def negotiation_loopback(message: ContractEvaluation, ctx: WorkflowContext) -> NegotiationState:
        contract, evaluation = message.contract, message.evaluation
        new_score = evaluation.new_risk_score

        original_risk = ctx.read_state(SharedStateScopes.ORIGINAL_RISK, SharedStateKeys.ORIGINAL_RISK)
        if original_risk is NOT_FOUND:
            ctx.logger.warning("Original risk missing from shared state, using loop-back fallback")
            original_risk = placeholder_assessment(new_score, "Loop-back fallback")

        updated_risk = structs.replace(
            original_risk,
            overall_risk_score=new_score,
            risk_level=classify_risk(new_score),
            summary=(
                f"{original_risk.summary}\n\n"
                f"[Negotiation iteration {evaluation.iteration} result]\n"
                f"{evaluation.evaluation_comment}"
            )
        )

        counter = ctx.read_state(SharedStateScopes.NEGOTIATION, SharedStateKeys.ITERATION)
        if counter is NOT_FOUND or counter != evaluation.iteration:
            ctx.logger.warning(
                f"Iteration counter is {counter}, continuing from evaluated iteration {evaluation.iteration}"
            )

        next_iteration = evaluation.iteration + 1
        ctx.queue_state_update(SharedStateScopes.NEGOTIATION, SharedStateKeys.ITERATION, next_iteration)
        ctx.logger.info(f"Looping back for negotiation iteration {next_iteration}", risk_score=new_score)
        return NegotiationState(contract, updated_risk, next_iteration)

    return negotiation_loopback


def create_negotiation_result_stage() -> FunctionExecutor:
    """Turns the last evaluation into the contract's post-negotiation risk."""

    @stage(NEGOTIATION_RESULT_ID)
    async def negotiation_result(message: ContractEvaluation, ctx: WorkflowContext) -> ContractRisk:
        contract, evaluation = message.contract, message.evaluation
        score = evaluation.new_risk_score

        if evaluation.is_improved:
            concerns = [f"Improved through {evaluation.iteration} negotiation iteration(s)"]
        else:
            concerns = ["Negotiation did not achieve sufficient improvement"]

        risk = RiskAssessment(
            overall_risk_score=score,
            risk_level=classify_risk(score),
            reviews=[],
            summary=evaluation.evaluation_comment,
            key_concerns=concerns
        )

        ctx.logger.info(
            f"Negotiation finished after {evaluation.iteration} iteration(s)",
            final_risk_score=score,
            risk_level=risk.risk_level
        )
        ctx.yield_output(
            f"Negotiation with {contract.supplier_name} finished: "
            f"risk {score}/100 ({risk.risk_level}) after {evaluation.iteration} iteration(s)"
        )
        return ContractRisk(contract, risk)

    return negotiation_result
