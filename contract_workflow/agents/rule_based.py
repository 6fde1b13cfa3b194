"""
Rule-based reviewer and negotiation proposer.

Deterministic stand-ins for the Gemini-backed capabilities, used when no
API key is configured and in tests:

- ``RuleBasedReviewer`` scores a contract from the rules in
  ``tools/contract_risk_rules.json`` (base score plus the weight of every
  matched rule of the specialty)
- ``RuleBasedNegotiationProposer`` proposes amendments for the contract's
  riskiest terms and applies them
"""

from typing import Callable, List, Optional, Tuple

from loguru import logger

from contract_workflow.agents.amendments import apply_contract_changes
from contract_workflow.logging_config import log_stage_execution
from contract_workflow.models import ContractInfo, NegotiationProposal, ReviewResult, RiskAssessment
from contract_workflow.risk import TARGET_RISK_SCORE, clamp_score
from tools.risk_rule_lookup import RiskRuleLookup


BASE_RISK_SCORE = 10
PROPOSALS_PER_ITERATION = 3

# (field, proposal text, applies to contract, proposed value)
AMENDMENT_PLAYBOOK: List[Tuple[str, str, Callable[[ContractInfo], bool], Callable[[ContractInfo], object]]] = [
    (
        "penalty_clause",
        "Add a penalty clause for late delivery and non-performance",
        lambda c: not c.has_penalty_clause,
        lambda c: True,
    ),
    (
        "auto_renewal",
        "Replace automatic renewal with a written renewal decision",
        lambda c: c.has_auto_renewal,
        lambda c: False,
    ),
    (
        "contract_term_months",
        "Shorten the initial term to 12 months with an extension option",
        lambda c: c.contract_term_months > 12,
        lambda c: 12,
    ),
    (
        "warranty_period_months",
        "Extend the warranty period to 24 months",
        lambda c: c.warranty_period_months < 24,
        lambda c: 24,
    ),
    (
        "delivery_terms",
        "Move delivery to FOB Destination",
        lambda c: "destination" not in (c.delivery_terms or "").lower(),
        lambda c: "FOB Destination",
    ),
    (
        "payment_terms",
        "Extend payment terms to Net 60",
        lambda c: (c.payment_terms or "").strip().lower() not in ("net 60", "net 90"),
        lambda c: "Net 60",
    ),
]

GENERIC_PROPOSALS = [
    "Request a 10% reduction of the contract value",
    "Schedule quarterly supplier performance reviews",
    "Request price protection for the full contract term",
]


class RuleBasedReviewer:
    """Scores contracts with the specialty's risk rules."""

    def __init__(self, rules_path: Optional[str] = None, base_score: int = BASE_RISK_SCORE):
        """Initialize the reviewer.

        Args:
            rules_path: Path to a rules JSON file (defaults to the bundled rules)
            base_score: Score of a contract that matches no rule
        """
        self.risk_lookup = RiskRuleLookup(rules_path=rules_path)
        self.base_score = base_score

    @log_stage_execution("RuleBasedReviewer")
    def review(self, contract: ContractInfo, specialty: str) -> ReviewResult:
        matches = self.risk_lookup.match_contract(contract, specialty)
        score = clamp_score(self.base_score + sum(m["weight"] for m in matches))

        if matches:
            opinion = (
                f"{specialty} review of {contract.supplier_name} found {len(matches)} issue(s): "
                + "; ".join(m["concern"] for m in matches)
            )
        else:
            opinion = f"{specialty} review of {contract.supplier_name} found no issues with the standard terms."

        return ReviewResult(
            reviewer=specialty,
            opinion=opinion,
            risk_score=score,
            concerns=[m["concern"] for m in matches] or None,
            recommendations=[m["recommendation"] for m in matches] or None
        )


class RuleBasedNegotiationProposer:
    """Proposes fixes for the contract's riskiest terms, three per iteration."""

    def __init__(self, proposals_per_iteration: int = PROPOSALS_PER_ITERATION):
        self.proposals_per_iteration = proposals_per_iteration

    @log_stage_execution("RuleBasedNegotiationProposer")
    def propose(
        self,
        contract: ContractInfo,
        risk: RiskAssessment,
        iteration: int
    ) -> Tuple[NegotiationProposal, ContractInfo]:
        """Build the proposal for one iteration.

        Args:
            contract: Contract as amended by earlier iterations
            risk: Current risk assessment
            iteration: 1-based iteration number

        Returns:
            Tuple of (proposal, amended contract)
        """
        selected = [
            (field_name, text, value(contract))
            for field_name, text, applies, value in AMENDMENT_PLAYBOOK
            if applies(contract)
        ][:self.proposals_per_iteration]

        proposals = [text for _, text, _ in selected]
        for generic in GENERIC_PROPOSALS:
            if len(proposals) >= self.proposals_per_iteration:
                break
            proposals.append(generic)

        amended, changes = apply_contract_changes(
            contract,
            {field_name: value for field_name, _, value in selected}
        )

        logger.debug(
            f"Rule-based proposal for iteration {iteration}",
            proposals=len(proposals),
            changed_fields=list(changes)
        )

        proposal = NegotiationProposal(
            iteration=iteration,
            proposals=proposals,
            target_risk_score=TARGET_RISK_SCORE,
            rationale=(
                f"Addresses {len(selected)} contract term(s) driving the current risk score "
                f"of {risk.overall_risk_score}/100"
            ),
            contract_changes=changes or None
        )
        return proposal, amended
