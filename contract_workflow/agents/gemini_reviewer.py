"""
Gemini Reviewer - LLM-backed specialist contract review.

One reviewer instance serves every specialty; the specialty selects the
instruction the model receives:

- Legal: liability, compliance, obligations, renewal and termination terms
- Finance: cost exposure, payment terms, budget impact
- Procurement: supplier reliability, delivery, warranty, lock-in

The model is asked for JSON which is decoded with msgspec. Failures raise
``ReviewError``; the review stage turns them into the fallback review.
"""

import os
from typing import List, Optional

import msgspec
from google import genai
from google.genai import types
from loguru import logger

from contract_workflow.agents.response_parsing import decode_json_response
from contract_workflow.error_handling import (
    GEMINI_RETRY_CONFIG,
    LLMError,
    ReviewError,
    handle_errors,
    retry_with_backoff,
)
from contract_workflow.logging_config import log_stage_execution
from contract_workflow.models import ContractInfo, ReviewResult


SPECIALTY_INSTRUCTIONS = {
    "Legal": """You are a Legal specialist reviewing supplier contracts.
Analyze legal risk, compliance and regulatory requirements, contractual obligations,
liability, intellectual property, renewal and termination terms.
Keep your answer concise and practical.""",
    "Finance": """You are a Finance specialist reviewing supplier contracts.
Analyze cost structure, total financial exposure, payment terms, budget impact,
and the financial recourse available if the supplier under-delivers.
Keep your answer concise and practical.""",
    "Procurement": """You are a Procurement specialist reviewing supplier contracts.
Analyze supplier selection and reliability, quality management, delivery terms,
warranty coverage, and the risk of supplier lock-in.
Keep your answer concise and practical.""",
}


class ReviewPayload(msgspec.Struct):
    """Shape of the JSON the reviewer prompt asks for."""
    opinion: str
    risk_score: int
    concerns: Optional[List[str]] = None
    recommendations: Optional[List[str]] = None


def format_contract(contract: ContractInfo) -> str:
    """Contract terms as a bullet list for prompts."""
    lines = [
        f"- Supplier: {contract.supplier_name}",
        f"- Contract value: ${contract.contract_value:,.0f}",
        f"- Term: {contract.contract_term_months} months",
        f"- Payment terms: {contract.payment_terms}",
        f"- Delivery terms: {contract.delivery_terms}",
        f"- Warranty period: {contract.warranty_period_months} months",
        f"- Penalty clause: {'yes' if contract.has_penalty_clause else 'no'}",
        f"- Automatic renewal: {'yes' if contract.has_auto_renewal else 'no'}",
    ]
    if contract.description:
        lines.append(f"- Description: {contract.description}")
    return "\n".join(lines)


class GeminiReviewer:
    """Specialist contract reviewer backed by Gemini."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "gemini-2.5-flash-lite"
    ):
        """Initialize the reviewer.

        Args:
            api_key: Google API key for Gemini (defaults to GOOGLE_API_KEY env var)
            model_name: Gemini model to use
        """
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY")
        self.model_name = model_name

        if not self.api_key:
            raise ReviewError("No API key provided for Gemini reviewer")

        self.client = genai.Client(api_key=self.api_key)

        logger.info("Gemini reviewer initialized", model=model_name)

    @log_stage_execution("GeminiReviewer")
    @handle_errors(ReviewError)
    def review(self, contract: ContractInfo, specialty: str) -> ReviewResult:
        """Review a contract from one specialty's point of view.

        Args:
            contract: Contract to review
            specialty: Legal, Finance or Procurement

        Returns:
            ReviewResult labelled with the specialty

        Raises:
            ReviewError: If the model fails or its answer cannot be decoded
        """
        instruction = SPECIALTY_INSTRUCTIONS.get(specialty)
        if instruction is None:
            raise ReviewError(f"Unknown reviewer specialty: {specialty}")

        prompt = f"""Review the following contract and return your assessment as JSON.

[Contract]
{format_contract(contract)}

[Output format]
{{
  "opinion": "overall finding from your specialty",
  "risk_score": integer from 0 to 100 (100 is the highest risk),
  "concerns": ["concern 1", "concern 2"],
  "recommendations": ["recommendation 1", "recommendation 2"]
}}"""

        response_text = self._generate(instruction, prompt)
        payload = decode_json_response(response_text, ReviewPayload)

        return ReviewResult(
            reviewer=specialty,
            opinion=payload.opinion or "No opinion given",
            risk_score=payload.risk_score,
            concerns=payload.concerns,
            recommendations=payload.recommendations
        )

    @retry_with_backoff(config=GEMINI_RETRY_CONFIG, exceptions=(LLMError,))
    def _generate(self, instruction: str, prompt: str) -> str:
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
                    system_instruction=instruction,
                    temperature=0.2,
                    max_output_tokens=800,
                    response_mime_type="application/json"
                )
            )
        except Exception as e:
            raise LLMError(f"Gemini request failed: {e}") from e

        text = response.text.strip() if response and response.text else ""
        if not text:
            raise LLMError("Empty response from Gemini")
        return text
