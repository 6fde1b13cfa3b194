"""
Data Models - msgspec Structs passed along workflow edges.

All structs are frozen: a stage that needs a changed contract or risk
assessment builds a copy with ``msgspec.structs.replace`` instead of mutating
the instance it received. Field names on the wire follow the JSON the
reviewer and negotiation prompts ask the LLM for.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

import msgspec
from msgspec import Struct


RiskLevel = Literal["Low", "Medium", "High"]
DecisionLabel = Literal["Approved", "Rejected", "Escalated", "RequiresReview"]
ApprovalKind = Literal["final_approval", "escalation", "rejection_confirm"]


def _check_score(value: int, field_name: str) -> None:
    if not 0 <= value <= 100:
        raise ValueError(f"{field_name} must be within [0, 100], got {value}")


class ContractInfo(Struct, frozen=True, kw_only=True):
    """Commercial terms of a supplier contract."""
    supplier_name: str
    contract_value: float
    contract_term_months: int
    payment_terms: str
    delivery_terms: str
    warranty_period_months: int = 0
    has_penalty_clause: bool = msgspec.field(default=False, name="penalty_clause")
    has_auto_renewal: bool = msgspec.field(default=False, name="auto_renewal")
    description: Optional[str] = None


class ReviewResult(Struct, frozen=True, kw_only=True):
    """One specialist's opinion of a contract."""
    reviewer: str
    opinion: str
    risk_score: int
    concerns: Optional[List[str]] = None
    recommendations: Optional[List[str]] = None

    def __post_init__(self):
        _check_score(self.risk_score, "risk_score")


class RiskAssessment(Struct, frozen=True, kw_only=True):
    """Aggregated risk of a contract across all reviews."""
    overall_risk_score: int
    risk_level: RiskLevel
    reviews: List[ReviewResult]
    summary: str
    key_concerns: Optional[List[str]] = None

    def __post_init__(self):
        _check_score(self.overall_risk_score, "overall_risk_score")


class ContractChange(Struct, frozen=True):
    """Before/after value of a single contract field."""
    before: Any
    after: Any


class NegotiationProposal(Struct, frozen=True, kw_only=True):
    """Amendments proposed in one negotiation iteration."""
    iteration: int
    proposals: List[str]
    target_risk_score: int
    rationale: str
    contract_changes: Optional[Dict[str, ContractChange]] = None


class EvaluationResult(Struct, frozen=True, kw_only=True):
    """Effect of a proposal on the contract's risk score."""
    iteration: int
    is_improved: bool
    new_risk_score: int
    evaluation_comment: str
    continue_negotiation: bool


class ApprovalRequest(Struct, frozen=True, kw_only=True):
    """A pending human approval, as exposed to approval transports."""
    request_id: str
    request_type: ApprovalKind
    contract_info: ContractInfo
    risk_assessment: RiskAssessment
    prompt_message: str
    created_at: datetime


class ApprovalResponse(Struct, frozen=True, kw_only=True):
    """Human answer to an ApprovalRequest."""
    approved: bool
    approver_comment: Optional[str] = None


class FinalDecision(Struct, frozen=True, kw_only=True):
    """Terminal output of a workflow run."""
    decision: DecisionLabel
    contract_info: ContractInfo
    final_risk_score: int
    decision_summary: str
    original_contract_info: Optional[ContractInfo] = None
    original_risk_score: Optional[int] = None
    next_actions: Optional[List[str]] = None
    negotiation_history: Optional[List[NegotiationProposal]] = None
    evaluation_history: Optional[List[EvaluationResult]] = None


# Edge payloads

class ContractRisk(Struct, frozen=True):
    """Contract together with its current risk assessment."""
    contract: ContractInfo
    risk: RiskAssessment


class NegotiationState(Struct, frozen=True):
    """Input of one negotiation iteration."""
    contract: ContractInfo
    risk: RiskAssessment
    iteration: int


class ProposalOutcome(Struct, frozen=True):
    """Proposal produced for an iteration and the contract it yields."""
    contract: ContractInfo
    risk: RiskAssessment
    proposal: NegotiationProposal


class ContractEvaluation(Struct, frozen=True):
    """Evaluation of an iteration's proposal."""
    contract: ContractInfo
    evaluation: EvaluationResult


class StageTrace(Struct, kw_only=True):
    """Execution trace of one stage invocation."""
    stage_id: str
    superstep: int
    timestamp: datetime
    latency_seconds: float
    success: bool
    error_message: Optional[str] = None
