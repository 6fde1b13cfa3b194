"""
Capabilities - external collaborators injected into the pipeline stages.

Stages never construct reviewers, proposers or transports themselves. A
``Capabilities`` bundle is built per run (or per host) and closed over by
the stage functions in ``contract_workflow.executors``.
"""

import random
from typing import Callable, Dict, Literal, Optional, Protocol, Tuple

from loguru import logger

from contract_workflow.agents import (
    GeminiNegotiationProposer,
    GeminiReviewer,
    RuleBasedNegotiationProposer,
    RuleBasedReviewer,
)
from contract_workflow.communication import LoggingOutputSink, OutputSink
from contract_workflow.config import WorkflowConfig
from contract_workflow.error_handling import ConfigurationError
from contract_workflow.hitl import ApprovalTransport, ConsoleApprovalTransport, HumanApprovalGateway
from contract_workflow.models import ContractInfo, NegotiationProposal, ReviewResult, RiskAssessment


Specialty = Literal["Legal", "Finance", "Procurement"]
SPECIALTIES: Tuple[Specialty, ...] = ("Legal", "Finance", "Procurement")

PERTURBATION_RANGE = (-5, 5)


class Reviewer(Protocol):
    def review(self, contract: ContractInfo, specialty: Specialty) -> ReviewResult:
        ...


class NegotiationProposer(Protocol):
    def propose(
        self,
        contract: ContractInfo,
        risk: RiskAssessment,
        iteration: int
    ) -> Tuple[NegotiationProposal, ContractInfo]:
        ...


def default_perturbation() -> int:
    """Uniform integer in [-5, +5]."""
    return random.randint(*PERTURBATION_RANGE)


class Capabilities:
    """Collaborators available to the stages of one run."""

    def __init__(
        self,
        reviewers: Dict[str, Reviewer],
        proposer: NegotiationProposer,
        approval_gateway: HumanApprovalGateway,
        output_sink: Optional[OutputSink] = None,
        perturbation: Callable[[], int] = default_perturbation
    ):
        """Initialize the capability set.

        Args:
            reviewers: One reviewer per specialty
            proposer: Negotiation proposer
            approval_gateway: Human approval gateway
            output_sink: Receives terminal and intermediate outputs
            perturbation: Source of the evaluation's random adjustment
        """
        missing = [s for s in SPECIALTIES if s not in reviewers]
        if missing:
            raise ConfigurationError(f"No reviewer configured for: {', '.join(missing)}")

        self.reviewers = dict(reviewers)
        self.proposer = proposer
        self.approval_gateway = approval_gateway
        self.output_sink = output_sink or LoggingOutputSink()
        self.perturbation = perturbation

    def reviewer_for(self, specialty: str) -> Reviewer:
        return self.reviewers[specialty]


def create_capabilities(
    config: WorkflowConfig,
    approval_transport: Optional[ApprovalTransport] = None,
    output_sink: Optional[OutputSink] = None,
    perturbation: Callable[[], int] = default_perturbation
) -> Capabilities:
    """Build the capability set described by ``config``.

    Args:
        config: Runtime configuration (reviewer mode, model, timeouts)
        approval_transport: Transport for HITL requests (console if omitted)
        output_sink: Output sink (logging if omitted)
        perturbation: Source of the evaluation's random adjustment

    Returns:
        Capabilities ready to be passed to ``build_contract_workflow``
    """
    if config.reviewer_mode == "gemini":
        reviewer = GeminiReviewer(api_key=config.google_api_key, model_name=config.gemini_model)
        proposer = GeminiNegotiationProposer(api_key=config.google_api_key, model_name=config.gemini_model)
    else:
        reviewer = RuleBasedReviewer()
        proposer = RuleBasedNegotiationProposer()

    gateway = HumanApprovalGateway(
        transport=approval_transport or ConsoleApprovalTransport(),
        timeout_seconds=config.hitl_timeout_seconds
    )

    logger.info(
        "Capabilities created",
        reviewer_mode=config.reviewer_mode,
        hitl_timeout_seconds=config.hitl_timeout_seconds
    )

    return Capabilities(
        reviewers={specialty: reviewer for specialty in SPECIALTIES},
        proposer=proposer,
        approval_gateway=gateway,
        output_sink=output_sink,
        perturbation=perturbation
    )
