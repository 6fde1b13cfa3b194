"""
Gemini Negotiation Proposer - LLM-generated contract amendments.

The model proposes 3-5 concrete negotiation points and, optionally, the
new values of amendable contract fields. Proposed field values are applied
to a copy of the contract; the changes actually applied are recorded on
the proposal.
"""

import os
from typing import Any, Dict, List, Optional, Tuple

import msgspec
from google import genai
from google.genai import types
from loguru import logger

from contract_workflow.agents.amendments import AMENDABLE_FIELDS, apply_contract_changes
from contract_workflow.agents.gemini_reviewer import format_contract
from contract_workflow.agents.response_parsing import decode_json_response
from contract_workflow.error_handling import (
    GEMINI_RETRY_CONFIG,
    LLMError,
    NegotiationError,
    handle_errors,
    retry_with_backoff,
)
from contract_workflow.logging_config import log_stage_execution
from contract_workflow.models import ContractInfo, NegotiationProposal, RiskAssessment
from contract_workflow.risk import MAX_NEGOTIATION_ITERATIONS, TARGET_RISK_SCORE


class ProposalPayload(msgspec.Struct):
    """Shape of the JSON the negotiation prompt asks for."""
    proposals: List[str]
    rationale: str
    contract_changes: Optional[Dict[str, Any]] = None


class GeminiNegotiationProposer:
    """Negotiation proposer backed by Gemini."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "gemini-2.5-flash-lite"
    ):
        """Initialize the proposer.

        Args:
            api_key: Google API key for Gemini (defaults to GOOGLE_API_KEY env var)
            model_name: Gemini model to use
        """
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY")
        self.model_name = model_name

        if not self.api_key:
            raise NegotiationError("No API key provided for Gemini negotiation proposer")

        self.client = genai.Client(api_key=self.api_key)
        self.instruction = self._build_instruction()

        logger.info("Gemini negotiation proposer initialized", model=model_name)

    def _build_instruction(self) -> str:
        """System prompt for amendment proposals."""
        return """You are a Negotiation specialist for supplier contracts.
Propose negotiation strategies, improved terms, pricing concessions and contract
optimizations that lower the buyer's risk.
Keep your answer concise and practical."""

    @log_stage_execution("GeminiNegotiationProposer")
    @handle_errors(NegotiationError)
    def propose(
        self,
        contract: ContractInfo,
        risk: RiskAssessment,
        iteration: int
    ) -> Tuple[NegotiationProposal, ContractInfo]:
        """Propose amendments for one negotiation iteration.

        Args:
            contract: Contract as amended by earlier iterations
            risk: Current risk assessment
            iteration: 1-based iteration number

        Returns:
            Tuple of (proposal, amended contract)

        Raises:
            NegotiationError: If the model fails or its answer cannot be decoded
        """
        concerns = "\n".join(
            f"{i}. {concern}" for i, concern in enumerate(risk.key_concerns or [], start=1)
        ) or "None"
        amendable = ", ".join(AMENDABLE_FIELDS)

        prompt = f"""Generate negotiation proposals that reduce the risk of the following contract.

[Current contract terms]
{format_contract(contract)}

[Risk assessment]
- Overall risk score: {risk.overall_risk_score}/100
- Risk level: {risk.risk_level}

[Key concerns]
{concerns}

[Negotiation goal]
- Target risk score: {TARGET_RISK_SCORE} or lower
- Current iteration: {iteration}/{MAX_NEGOTIATION_ITERATIONS}

[Output format]
Return JSON with 3-5 concrete proposals. "contract_changes" is optional and maps
any of {amendable} to its proposed new value.
{{
  "proposals": ["proposal 1", "proposal 2", "proposal 3"],
  "rationale": "why these proposals reduce the risk",
  "contract_changes": {{"penalty_clause": true}}
}}"""

        response_text = self._generate(prompt)
        payload = decode_json_response(response_text, ProposalPayload)

        proposals = [p.strip() for p in payload.proposals if p and p.strip()]
        if not proposals:
            raise NegotiationError("Model returned no proposals")

        amended, changes = apply_contract_changes(contract, payload.contract_changes or {})

        proposal = NegotiationProposal(
            iteration=iteration,
            proposals=proposals,
            target_risk_score=TARGET_RISK_SCORE,
            rationale=payload.rationale or "No rationale given",
            contract_changes=changes or None
        )
        return proposal, amended

    @retry_with_backoff(config=GEMINI_RETRY_CONFIG, exceptions=(LLMError,))
    def _generate(self, prompt: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=[
                    types.Content(
                        role="user",
                        parts=[types.Part(text=prompt)]
                    )
                ],
                config=types.GenerateContentConfig(
                    system_instruction=self.instruction,
                    temperature=0.4,
                    max_output_tokens=1000,
                    response_mime_type="application/json"
                )
            )
        except Exception as e:
            raise LLMError(f"Gemini request failed: {e}") from e

        text = response.text.strip() if response and response.text else ""
        if not text:
            raise LLMError("Empty response from Gemini")
        return text
