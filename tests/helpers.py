"""Stub capabilities for the workflow tests."""

import asyncio
from typing import Dict, List, Optional, Tuple

from contract_workflow.capabilities import SPECIALTIES, Capabilities
from contract_workflow.communication import CollectingOutputSink
from contract_workflow.hitl import HumanApprovalGateway, StaticApprovalTransport
from contract_workflow.models import ContractInfo, NegotiationProposal, ReviewResult, RiskAssessment
from contract_workflow.risk import TARGET_RISK_SCORE


class FixedReviewer:
    """Returns a fixed score per specialty, optionally after a delay."""

    def __init__(self, scores: Dict[str, int], delays: Optional[Dict[str, float]] = None):
        self.scores = scores
        self.delays = delays or {}
        self.completed: List[str] = []

    async def review(self, contract: ContractInfo, specialty: str) -> ReviewResult:
        await asyncio.sleep(self.delays.get(specialty, 0))
        self.completed.append(specialty)
        return ReviewResult(
            reviewer=specialty,
            opinion=f"{specialty} opinion",
            risk_score=self.scores[specialty],
            concerns=[f"{specialty} concern"]
        )


class FailingReviewer:
    def review(self, contract: ContractInfo, specialty: str) -> ReviewResult:
        raise RuntimeError("reviewer backend unavailable")


class SingleItemProposer:
    """Proposes one item per iteration and leaves the contract unchanged."""

    def __init__(self):
        self.iterations: List[int] = []

    def propose(
        self,
        contract: ContractInfo,
        risk: RiskAssessment,
        iteration: int
    ) -> Tuple[NegotiationProposal, ContractInfo]:
        self.iterations.append(iteration)
        proposal = NegotiationProposal(
            iteration=iteration,
            proposals=["Extend payment terms to Net 60"],
            target_risk_score=TARGET_RISK_SCORE,
            rationale="test"
        )
        return proposal, contract


class FailingProposer:
    def propose(self, contract, risk, iteration):
        raise RuntimeError("proposer backend unavailable")


def make_capabilities(
    reviewer=None,
    proposer=None,
    transport=None,
    perturbation: int = 0,
    timeout_seconds: float = 5.0,
    reviewers: Optional[Dict[str, object]] = None
) -> Capabilities:
    """Capability set built from stubs, with a deterministic perturbation."""
    reviewer = reviewer or FixedReviewer({"Legal": 50, "Finance": 50, "Procurement": 50})
    return Capabilities(
        reviewers=reviewers or {specialty: reviewer for specialty in SPECIALTIES},
        proposer=proposer or SingleItemProposer(),
        approval_gateway=HumanApprovalGateway(
            transport or StaticApprovalTransport(approved=True),
            timeout_seconds=timeout_seconds
        ),
        output_sink=CollectingOutputSink(),
        perturbation=lambda: perturbation
    )
