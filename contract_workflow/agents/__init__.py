"""Reviewer and negotiation proposer capabilities."""

from contract_workflow.agents.gemini_negotiator import GeminiNegotiationProposer
from contract_workflow.agents.gemini_reviewer import GeminiReviewer
from contract_workflow.agents.rule_based import RuleBasedNegotiationProposer, RuleBasedReviewer

__all__ = [
    "GeminiNegotiationProposer",
    "GeminiReviewer",
    "RuleBasedNegotiationProposer",
    "RuleBasedReviewer",
]
